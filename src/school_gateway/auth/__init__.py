"""Authentication, rate limiting and route authorization."""

from school_gateway.auth.context import Identity, Principal, RoleRecord, RoleType
from school_gateway.auth.gateway import AuthorizationGateway

__all__ = [
    "AuthorizationGateway",
    "Identity",
    "Principal",
    "RoleRecord",
    "RoleType",
]
