"""Role directory: principal id → role type and schema entitlement."""

from __future__ import annotations

import asyncio
from typing import Protocol

import structlog
from sqlalchemy.exc import SQLAlchemyError

from school_gateway.auth.context import RoleRecord

logger = structlog.get_logger()


class RoleLookup(Protocol):
    """Authoritative role source; at most one record per principal."""

    async def lookup(self, user_id: str) -> RoleRecord | None: ...


class RoleDirectory:
    """Resolve a principal's role record, bounding the lookup by ``timeout``.

    No caching: every protected request resolves again, so role and
    entitlement changes apply on the next request. A lookup error, an
    empty result or a timeout all mean "role undefined" and yield None.
    """

    def __init__(self, lookup: RoleLookup, timeout: float = 5.0) -> None:
        self._lookup = lookup
        self._timeout = timeout

    async def resolve(self, principal_id: str) -> RoleRecord | None:
        try:
            record = await asyncio.wait_for(
                self._lookup.lookup(principal_id), timeout=self._timeout
            )
        except TimeoutError:
            logger.warning(
                "role_lookup_timeout",
                principal_id=principal_id,
                timeout=self._timeout,
            )
            return None
        except SQLAlchemyError as e:
            logger.error(
                "role_lookup_failed",
                principal_id=principal_id,
                error=type(e).__name__,
            )
            return None

        if record is None:
            logger.info("role_lookup_empty", principal_id=principal_id)
        return record
