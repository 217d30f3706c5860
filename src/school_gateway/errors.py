"""Domain-specific exceptions for school-gateway.

Authorization errors are terminal: the gateway stops the pipeline and the
middleware renders them as HTTP responses. Query errors are raised by the
tenant-scoped query policy and surfaced by the routes as 400 responses.
"""

from __future__ import annotations

import json
from enum import StrEnum
from typing import Any


class GatewayState(StrEnum):
    """Terminal states of one pass through the authorization gateway."""

    PUBLIC = "public"
    UNAUTHENTICATED = "unauthenticated"
    RATE_LIMITED = "rate_limited"
    ROLE_UNDEFINED = "role_undefined"
    ROLE_INVALID = "role_invalid"
    FORBIDDEN = "forbidden"
    AUTHORIZED = "authorized"


class AuthorizationError(Exception):
    """Base class for requests the gateway refuses."""

    status_code: int = 403
    state: GatewayState = GatewayState.FORBIDDEN
    redirect_to_login: bool = False

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class Unauthenticated(AuthorizationError):
    """No valid session accompanies a request to a protected route."""

    status_code = 401
    state = GatewayState.UNAUTHENTICATED
    redirect_to_login = True

    def __init__(self, message: str = "Not authenticated") -> None:
        super().__init__(message)


class RateLimited(AuthorizationError):
    status_code = 429
    state = GatewayState.RATE_LIMITED

    def __init__(self, retry_after: int) -> None:
        self.retry_after = retry_after
        super().__init__(
            f"Rate limit exceeded. Try again in {retry_after} seconds."
        )


class RoleUndefined(AuthorizationError):
    """Authenticated principal has no role-directory record."""

    state = GatewayState.ROLE_UNDEFINED
    redirect_to_login = True

    def __init__(self, principal_id: str) -> None:
        self.principal_id = principal_id
        super().__init__("User has no permissions defined")


class RoleInvalid(AuthorizationError):
    """Role-directory record names a role outside the known set."""

    state = GatewayState.ROLE_INVALID

    def __init__(self, role_type: str) -> None:
        self.role_type = role_type
        super().__init__(f"Role {role_type!r} is not authorized for the dashboard")


class RouteForbidden(AuthorizationError):
    state = GatewayState.FORBIDDEN

    def __init__(self, role_type: str, path: str) -> None:
        self.role_type = role_type
        self.path = path
        super().__init__(f"Role {role_type} is not allowed to access {path}")


class RateLimitStoreUnavailable(Exception):
    """Shared rate limit store could not be reached; no decision was made."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Rate limit store unavailable: {reason}")


class PermissionMatrixError(Exception):
    """Permission table is inconsistent; raised once at startup."""


class QueryError(Exception):
    """Base class for tenant-scoped query failures."""

    message: str = "Query failed"

    def __init__(self, dataset: str, cause: Any) -> None:
        self.dataset = dataset
        self.cause = cause
        super().__init__(f"{self.message} ({dataset}): {cause}")

    def detail(self) -> dict[str, Any]:
        """JSON-safe body for the client-facing 400 response."""
        return {
            "message": self.message,
            "dataset": self.dataset,
            "cause": str(self.cause),
        }


class UpstreamQueryError(QueryError):
    """Backend query failed or returned rows outside the entitlement."""

    message = "Upstream query failed"


class ShapeValidationError(QueryError):
    """Backend rows do not match the declared row shape.

    ``cause`` is the pydantic ``ValidationError``.
    """

    message = "Invalid response shape"

    def detail(self) -> dict[str, Any]:
        return {
            "message": self.message,
            "dataset": self.dataset,
            "cause": json.loads(self.cause.json(include_url=False)),
        }
