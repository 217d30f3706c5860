"""Row shapes and payloads for the dashboard query actions."""

from __future__ import annotations

from datetime import datetime
from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field


class TenantRow(BaseModel):
    """Any row read from a tenant-scoped source."""

    schema_name: str


class SummaryRow(TenantRow):
    """Canonical per-school summary (consolidated view shape)."""

    total_eventos: int | None = None
    eventos_24h: int | None = None
    eventos_1h: int | None = None
    eventos_pendentes: int | None = None
    notif_falhas: int | None = None
    evento_mais_antigo: datetime | None = None
    evento_mais_recente: datetime | None = None
    dias_agregados: int | None = None
    total_movimentacoes: int | None = None
    ultima_agregacao: datetime | None = None
    media_diaria: float | None = None
    eventos_arquivados: int | None = None
    arquivo_mais_antigo: datetime | None = None
    arquivo_mais_recente: datetime | None = None
    tamanho_eventos: int | None = None
    tamanho_diario: int | None = None
    tamanho_arquivo: int | None = None
    health_status: str | None = None
    alerta: str | None = None
    taxa_processamento: float | None = None
    taxa_notificacao: float | None = None


class EventRow(TenantRow):
    """Raw event statistics row."""

    total_eventos: int | None = None
    eventos_24h: int | None = None
    eventos_1h: int | None = None
    eventos_pendentes: int | None = None
    notif_falhas: int | None = None
    evento_mais_antigo: datetime | None = None
    evento_mais_recente: datetime | None = None
    dias_agregados: int | None = None
    total_movimentacoes: int | None = None
    ultima_agregacao: datetime | None = None
    health_status: str | None = None


class AlertRow(TenantRow):
    total_alerts: int | None = None
    latest_alert: datetime | None = None


RowT = TypeVar("RowT", bound=TenantRow)


class QueryResult(BaseModel, Generic[RowT]):
    """Payload of ``summary``, ``events`` and ``alerts``.

    Serialized as ``{"durationMs", "rows", "data"}``. ``duration_ms`` is the
    time spent fetching rows, excluding authorization and validation.
    """

    model_config = ConfigDict(populate_by_name=True)

    duration_ms: float = Field(alias="durationMs")
    rows: int
    data: list[RowT]


class SchemasResponse(BaseModel):
    """Payload of ``schemas``: the caller's mapped tenants and roles."""

    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(alias="userId")
    schemas: list[str]
    roles: list[str]
