"""Authenticated principal context for request processing."""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import StrEnum


class RoleType(StrEnum):
    """Roles allowed on the monitoring dashboard."""

    DIRETORIA = "DIRETORIA"
    SEC_EDUC_MUN = "SEC_EDUC_MUN"
    SEC_EDUC_EST = "SEC_EDUC_EST"
    SEC_SEG_PUB = "SEC_SEG_PUB"


@dataclass(frozen=True)
class Identity:
    """Verified session subject returned by the identity provider."""

    user_id: str
    email: str | None = None


@dataclass(frozen=True)
class RoleRecord:
    """Raw role-directory row; ``role_type`` is not yet validated."""

    role_type: str
    allowed_schemas: tuple[str, ...] | None


@dataclass(frozen=True)
class Principal:
    """Authenticated principal, attached to every authorized request.

    Built by the gateway once the role lookup succeeds and the route
    check passes. Immutable for the lifetime of the request.
    ``schemas_declared`` is False when the role record carried no schema
    list at all; the entitlement is then empty and no schemas header is
    forwarded.
    """

    id: str
    email: str
    role: RoleType
    allowed_schemas: frozenset[str]
    schemas_declared: bool = True

    # Headers attached to the forwarded request for downstream consumers.
    HEADER_ID = "x-user-id"
    HEADER_ROLE = "x-user-role"
    HEADER_EMAIL = "x-user-email"
    HEADER_SCHEMAS = "x-user-schemas"

    def to_headers(self) -> dict[str, str]:
        headers = {
            self.HEADER_ID: self.id,
            self.HEADER_ROLE: str(self.role),
            self.HEADER_EMAIL: self.email,
        }
        if self.schemas_declared:
            headers[self.HEADER_SCHEMAS] = json.dumps(sorted(self.allowed_schemas))
        return headers
