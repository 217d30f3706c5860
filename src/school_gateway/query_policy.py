"""Tenant-scoped dashboard queries with primary/fallback composition.

Every read is filtered to the caller's entitlement (the set of tenant
schemas it may see). An empty entitlement is a valid "sees nothing" state
and returns an empty result without touching the database. Schemas in the
entitlement that the platform does not know simply match no rows.

A dataset may declare a fallback: when its primary source returns no rows,
the result is composed from a lower-level source filtered by the same
entitlement, mapped into the primary row shape with missing fields set to
None. The fallback query runs only after the primary one has finished.
"""

from __future__ import annotations

import time
from collections.abc import Collection, Mapping
from dataclasses import dataclass
from typing import Any

import structlog
from pydantic import TypeAdapter, ValidationError
from sqlalchemy import Table
from sqlalchemy.exc import SQLAlchemyError

from school_gateway.errors import ShapeValidationError, UpstreamQueryError
from school_gateway.models.dashboard import (
    AlertRow,
    EventRow,
    QueryResult,
    SummaryRow,
    TenantRow,
)
from school_gateway.storage.repositories import TenantViewRepository
from school_gateway.storage.tables import (
    dashboard_consolidado,
    eventos_acesso_dashboard,
    v_health_alerts_monitor,
)

logger = structlog.get_logger()


@dataclass(frozen=True)
class FallbackSource:
    source: Table
    # Fields copied from the fallback row; every other field becomes None.
    carried_fields: tuple[str, ...]


@dataclass(frozen=True)
class DatasetSpec:
    name: str
    source: Table
    row_model: type[TenantRow]
    fallback: FallbackSource | None = None


DATASETS: Mapping[str, DatasetSpec] = {
    "summary": DatasetSpec(
        name="summary",
        source=dashboard_consolidado,
        row_model=SummaryRow,
        fallback=FallbackSource(
            source=eventos_acesso_dashboard,
            carried_fields=(
                "total_eventos",
                "eventos_24h",
                "eventos_1h",
                "eventos_pendentes",
                "notif_falhas",
                "evento_mais_antigo",
                "evento_mais_recente",
                "dias_agregados",
                "total_movimentacoes",
                "ultima_agregacao",
                "health_status",
            ),
        ),
    ),
    "events": DatasetSpec(
        name="events",
        source=eventos_acesso_dashboard,
        row_model=EventRow,
    ),
    "alerts": DatasetSpec(
        name="alerts",
        source=v_health_alerts_monitor,
        row_model=AlertRow,
    ),
}


def compose_fallback_row(
    raw: Mapping[str, Any],
    row_model: type[TenantRow],
    carried_fields: Collection[str],
) -> dict[str, Any]:
    """Map a fallback-source row into ``row_model``'s canonical field set."""
    row: dict[str, Any] = dict.fromkeys(row_model.model_fields)
    row["schema_name"] = raw.get("schema_name")
    for field in carried_fields:
        row[field] = raw.get(field)
    return row


class SchemaScopedQueryPolicy:
    """Run dataset queries restricted to an entitlement.

    Raises:
        UpstreamQueryError: a backend query failed, or returned a row
            outside the entitlement.
        ShapeValidationError: rows do not match the dataset's row model.
    """

    def __init__(
        self,
        repository: TenantViewRepository,
        datasets: Mapping[str, DatasetSpec] = DATASETS,
    ) -> None:
        self._repository = repository
        self._datasets = datasets

    async def run(
        self, dataset: str, entitlement: Collection[str]
    ) -> QueryResult[Any]:
        spec = self._datasets.get(dataset)
        if spec is None:
            raise ValueError(f"Unknown dataset: {dataset}")

        result_model = QueryResult[spec.row_model]  # type: ignore[name-defined]
        schemas = frozenset(entitlement)
        if not schemas:
            logger.debug("dashboard_query_empty_entitlement", dataset=dataset)
            return result_model(duration_ms=0, rows=0, data=[])

        start = time.perf_counter()
        raw_rows = await self._fetch(spec.name, spec.source, schemas)
        if not raw_rows and spec.fallback is not None:
            fallback = spec.fallback
            fallback_rows = await self._fetch(spec.name, fallback.source, schemas)
            logger.info(
                "dashboard_query_fallback",
                dataset=dataset,
                source=fallback.source.name,
                rows=len(fallback_rows),
            )
            raw_rows = [
                compose_fallback_row(r, spec.row_model, fallback.carried_fields)
                for r in fallback_rows
            ]
        duration_ms = round((time.perf_counter() - start) * 1000, 2)

        data = self._validate(spec, raw_rows)
        outside = sorted({row.schema_name for row in data} - schemas)
        if outside:
            raise UpstreamQueryError(
                spec.name, f"rows outside entitlement: {', '.join(outside)}"
            )

        logger.debug(
            "dashboard_query",
            dataset=dataset,
            rows=len(data),
            duration_ms=duration_ms,
        )
        return result_model(duration_ms=duration_ms, rows=len(data), data=data)

    async def _fetch(
        self, dataset: str, source: Table, schemas: frozenset[str]
    ) -> list[dict[str, Any]]:
        try:
            return await self._repository.fetch(source, schemas)
        except SQLAlchemyError as e:
            logger.warning(
                "dashboard_query_failed",
                dataset=dataset,
                source=source.name,
                error=type(e).__name__,
            )
            raise UpstreamQueryError(dataset, e) from e

    @staticmethod
    def _validate(spec: DatasetSpec, raw_rows: list[dict[str, Any]]) -> list[Any]:
        adapter = TypeAdapter(list[spec.row_model])  # type: ignore[name-defined]
        try:
            return adapter.validate_python(raw_rows)
        except ValidationError as e:
            logger.warning(
                "dashboard_query_invalid_shape",
                dataset=spec.name,
                errors=e.error_count(),
            )
            raise ShapeValidationError(spec.name, e) from e
