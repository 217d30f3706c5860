"""Dashboard query actions: schemas, summary, events, alerts.

Each action serves the principal attached by the gateway; data actions
are restricted to the principal's schema entitlement.
"""

from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.exc import SQLAlchemyError

from school_gateway.api.deps import (
    get_current_principal,
    get_query_policy,
    get_tenant_mapping_repository,
)
from school_gateway.auth.context import Principal
from school_gateway.errors import QueryError
from school_gateway.models.dashboard import (
    AlertRow,
    EventRow,
    QueryResult,
    SchemasResponse,
    SummaryRow,
)
from school_gateway.query_policy import SchemaScopedQueryPolicy
from school_gateway.storage.repositories import TenantMappingRepository

router = APIRouter(prefix="/dashboard", tags=["dashboard"])

_principal_dep = Depends(get_current_principal)
_policy_dep = Depends(get_query_policy)
_mapping_dep = Depends(get_tenant_mapping_repository)


async def _run_query(
    policy: SchemaScopedQueryPolicy, dataset: str, principal: Principal
) -> QueryResult[Any]:
    try:
        return await policy.run(dataset, principal.allowed_schemas)
    except QueryError as e:
        raise HTTPException(status_code=400, detail=e.detail()) from e


@router.get("/schemas", response_model=SchemasResponse)
async def get_schemas(
    principal: Principal = _principal_dep,
    mappings: TenantMappingRepository = _mapping_dep,
) -> SchemasResponse:
    """List the tenant schemas and roles mapped to the caller."""
    try:
        rows = await mappings.list_for_user(principal.id)
    except SQLAlchemyError as e:
        raise HTTPException(
            status_code=400,
            detail={"message": "Upstream query failed", "cause": str(e)},
        ) from e

    schemas = list(dict.fromkeys(schema for schema, _role in rows))
    roles = [role for _schema, role in rows if role]
    return SchemasResponse(user_id=principal.id, schemas=schemas, roles=roles)


@router.get("/summary", response_model=QueryResult[SummaryRow])
async def get_summary(
    principal: Principal = _principal_dep,
    policy: SchemaScopedQueryPolicy = _policy_dep,
) -> QueryResult[Any]:
    """Per-school summary; falls back to raw event stats when the view is empty."""
    return await _run_query(policy, "summary", principal)


@router.get("/events", response_model=QueryResult[EventRow])
async def get_events(
    principal: Principal = _principal_dep,
    policy: SchemaScopedQueryPolicy = _policy_dep,
) -> QueryResult[Any]:
    """Raw per-school event statistics."""
    return await _run_query(policy, "events", principal)


@router.get("/alerts", response_model=QueryResult[AlertRow])
async def get_alerts(
    principal: Principal = _principal_dep,
    policy: SchemaScopedQueryPolicy = _policy_dep,
) -> QueryResult[Any]:
    """Health alerts per school."""
    return await _run_query(policy, "alerts", principal)
