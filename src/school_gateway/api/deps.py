"""FastAPI dependency injection."""

from __future__ import annotations

from fastapi import Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from school_gateway.auth.context import Principal
from school_gateway.query_policy import SchemaScopedQueryPolicy
from school_gateway.storage.database import get_session
from school_gateway.storage.repositories import (
    TenantMappingRepository,
    TenantViewRepository,
)

__all__ = [
    "get_current_principal",
    "get_query_policy",
    "get_session",
    "get_tenant_mapping_repository",
]

_get_session = Depends(get_session)


async def get_current_principal(request: Request) -> Principal:
    """Return the principal attached by the authorization gateway.

    Raises:
        HTTPException 401: the request did not pass through the gateway as
            an authorized principal.
    """
    principal: Principal | None = getattr(request.state, "principal", None)
    if principal is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return principal


async def get_query_policy(
    session: AsyncSession = _get_session,
) -> SchemaScopedQueryPolicy:
    return SchemaScopedQueryPolicy(TenantViewRepository(session))


async def get_tenant_mapping_repository(
    session: AsyncSession = _get_session,
) -> TenantMappingRepository:
    return TenantMappingRepository(session)
