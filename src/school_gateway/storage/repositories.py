"""Read repositories for role lookups and tenant-scoped data."""

from __future__ import annotations

import uuid
from collections.abc import Collection
from typing import Any

from sqlalchemy import Table, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from school_gateway.auth.context import RoleRecord
from school_gateway.storage.tables import role_info_function, user_tenant_mapping


def _parse_user_id(user_id: str) -> uuid.UUID | None:
    try:
        return uuid.UUID(user_id)
    except ValueError:
        return None


class TenantViewRepository:
    """Tenant-scoped reads from dashboard views and tables.

    Every query is filtered by ``schema_name IN (...)`` built from the
    given entitlement. Callers must not pass an empty entitlement; the
    query policy short-circuits that case before reaching the database.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def fetch(
        self, source: Table, schemas: Collection[str]
    ) -> list[dict[str, Any]]:
        """Return all rows of ``source`` whose schema_name is in ``schemas``."""
        if not schemas:
            raise ValueError("Tenant-scoped query requires a non-empty entitlement")
        stmt = (
            select(source)
            .where(source.c.schema_name.in_(sorted(schemas)))
            .order_by(source.c.schema_name)
        )
        result = await self._session.execute(stmt)
        return [dict(row) for row in result.mappings().all()]


class TenantMappingRepository:
    """Access to ``user_tenant_mapping`` (user → schema, role)."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def list_for_user(self, user_id: str) -> list[tuple[str, str | None]]:
        """Return (schema_name, role) pairs mapped to ``user_id``."""
        parsed = _parse_user_id(user_id)
        if parsed is None:
            return []
        stmt = (
            select(user_tenant_mapping.c.schema_name, user_tenant_mapping.c.role)
            .where(user_tenant_mapping.c.user_id == parsed)
            .order_by(user_tenant_mapping.c.schema_name)
        )
        result = await self._session.execute(stmt)
        return [(row.schema_name, row.role) for row in result.all()]


class SqlRoleLookup:
    """Role/entitlement lookup through ``get_user_role_info``.

    Opens a short-lived session per lookup; the gateway runs outside
    FastAPI's dependency injection.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def lookup(self, user_id: str) -> RoleRecord | None:
        parsed = _parse_user_id(user_id)
        if parsed is None:
            return None

        fn = role_info_function(parsed)
        stmt = select(fn.c.role_type, fn.c.allowed_schemas)
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            row = result.first()

        if row is None or row.role_type is None:
            return None
        schemas = row.allowed_schemas
        return RoleRecord(
            role_type=str(row.role_type),
            allowed_schemas=tuple(schemas) if schemas is not None else None,
        )
