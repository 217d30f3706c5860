"""Table and view definitions read by the gateway.

These objects live in the platform database and are owned by it; they are
declared here only so queries can be built with SQLAlchemy expressions.
Every tenant-scoped relation carries a ``schema_name`` discriminator.
"""

import uuid

from sqlalchemy import (
    BigInteger,
    Column,
    DateTime,
    Float,
    MetaData,
    Table,
    Text,
    Uuid,
    func,
)
from sqlalchemy.sql.selectable import TableValuedAlias

metadata = MetaData()

# Consolidated per-school dashboard view (summary primary source).
dashboard_consolidado = Table(
    "dashboard_consolidado",
    metadata,
    Column("schema_name", Text, nullable=False),
    Column("total_eventos", BigInteger),
    Column("eventos_24h", BigInteger),
    Column("eventos_1h", BigInteger),
    Column("eventos_pendentes", BigInteger),
    Column("notif_falhas", BigInteger),
    Column("evento_mais_antigo", DateTime(timezone=True)),
    Column("evento_mais_recente", DateTime(timezone=True)),
    Column("dias_agregados", BigInteger),
    Column("total_movimentacoes", BigInteger),
    Column("ultima_agregacao", DateTime(timezone=True)),
    Column("media_diaria", Float),
    Column("eventos_arquivados", BigInteger),
    Column("arquivo_mais_antigo", DateTime(timezone=True)),
    Column("arquivo_mais_recente", DateTime(timezone=True)),
    Column("tamanho_eventos", BigInteger),
    Column("tamanho_diario", BigInteger),
    Column("tamanho_arquivo", BigInteger),
    Column("health_status", Text),
    Column("alerta", Text),
    Column("taxa_processamento", Float),
    Column("taxa_notificacao", Float),
)

# Raw per-school event statistics (events primary, summary fallback).
eventos_acesso_dashboard = Table(
    "eventos_acesso_dashboard",
    metadata,
    Column("schema_name", Text, nullable=False),
    Column("total_eventos", BigInteger),
    Column("eventos_24h", BigInteger),
    Column("eventos_1h", BigInteger),
    Column("eventos_pendentes", BigInteger),
    Column("notif_falhas", BigInteger),
    Column("evento_mais_antigo", DateTime(timezone=True)),
    Column("evento_mais_recente", DateTime(timezone=True)),
    Column("dias_agregados", BigInteger),
    Column("total_movimentacoes", BigInteger),
    Column("ultima_agregacao", DateTime(timezone=True)),
    Column("health_status", Text),
)

v_health_alerts_monitor = Table(
    "v_health_alerts_monitor",
    metadata,
    Column("schema_name", Text, nullable=False),
    Column("total_alerts", BigInteger),
    Column("latest_alert", DateTime(timezone=True)),
)

user_tenant_mapping = Table(
    "user_tenant_mapping",
    metadata,
    Column("user_id", Uuid, nullable=False),
    Column("schema_name", Text, nullable=False),
    Column("role", Text),
)


def role_info_function(user_id: uuid.UUID) -> TableValuedAlias:
    """``get_user_role_info(p_user_id)`` as a table-valued function."""
    return func.get_user_role_info(user_id).table_valued(
        "role_type", "allowed_schemas"
    )
