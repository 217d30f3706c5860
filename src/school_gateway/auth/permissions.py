"""Route classification and the role → route permission matrix.

Both tables are plain immutable data, validated once at import time.
Prefixes are compared as plain strings: a path matches a prefix when it
equals it or continues it with ``/``. ``/dashboard`` therefore covers
``/dashboard/x`` but not ``/dashboardx``.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from enum import StrEnum
from types import MappingProxyType

from school_gateway.auth.context import RoleType
from school_gateway.errors import PermissionMatrixError

PUBLIC_ROUTES: tuple[str, ...] = (
    "/login",
    "/auth",
    "/static",
    "/_next",
    "/favicon.ico",
    "/health",
)

_DASHBOARD_COMMON: tuple[str, ...] = (
    "/dashboard",
    "/api/v1/dashboard/summary",
    "/api/v1/dashboard/schemas",
)

_EDUCATION: tuple[str, ...] = (
    *_DASHBOARD_COMMON,
    "/api/dashboard/presence",
    "/api/dashboard/complaints",
    "/api/dashboard/emotional",
    "/api/v1/dashboard/events",
)

ROLE_ROUTE_PERMISSIONS: Mapping[str, tuple[str, ...]] = {
    RoleType.DIRETORIA: _EDUCATION,
    RoleType.SEC_EDUC_MUN: _EDUCATION,
    RoleType.SEC_EDUC_EST: _EDUCATION,
    RoleType.SEC_SEG_PUB: (
        *_DASHBOARD_COMMON,
        "/api/dashboard/security",
        "/api/v1/dashboard/alerts",
    ),
}


def matches_prefix(path: str, prefix: str) -> bool:
    """Return True if ``path`` is ``prefix`` or a sub-path of it."""
    return path == prefix or path.startswith(prefix + "/")


class RouteClass(StrEnum):
    PUBLIC = "public"
    PROTECTED = "protected"


class RouteClassifier:
    """Split request paths into public and protected.

    Anything that is not under a public prefix is protected.
    """

    def __init__(self, public_routes: Iterable[str] = PUBLIC_ROUTES) -> None:
        # Longest first, so the most specific public prefix is reported.
        self._public = tuple(sorted(public_routes, key=len, reverse=True))

    def matching_public_route(self, path: str) -> str | None:
        for prefix in self._public:
            if matches_prefix(path, prefix):
                return prefix
        return None

    def classify(self, path: str) -> RouteClass:
        if self.matching_public_route(path) is not None:
            return RouteClass.PUBLIC
        return RouteClass.PROTECTED


class PermissionMatrix:
    """Immutable role → allowed route prefixes table.

    Every enumerated role must define at least one prefix; a role string
    outside the table has no permissions.

    Raises:
        PermissionMatrixError: if a role is missing, has no prefixes, or a
            prefix is not an absolute path.
    """

    def __init__(
        self,
        rules: Mapping[str, Iterable[str]] = ROLE_ROUTE_PERMISSIONS,
        roles: Iterable[str] = tuple(RoleType),
    ) -> None:
        frozen: dict[str, tuple[str, ...]] = {}
        for role, prefixes in rules.items():
            ordered = tuple(dict.fromkeys(prefixes))
            for prefix in ordered:
                if not prefix.startswith("/") or (
                    len(prefix) > 1 and prefix.endswith("/")
                ):
                    raise PermissionMatrixError(
                        f"Invalid route prefix {prefix!r} for role {role}"
                    )
            frozen[str(role)] = ordered

        for role in roles:
            if not frozen.get(str(role)):
                raise PermissionMatrixError(f"Role {role} has no route prefixes")

        self._rules: Mapping[str, tuple[str, ...]] = MappingProxyType(frozen)

    @property
    def rules(self) -> Mapping[str, tuple[str, ...]]:
        return self._rules

    def prefixes_for(self, role_type: str) -> tuple[str, ...]:
        return self._rules.get(str(role_type), ())

    def permitted(self, role_type: str, path: str) -> bool:
        """Return True if ``role_type`` may access ``path``."""
        return any(
            matches_prefix(path, prefix) for prefix in self.prefixes_for(role_type)
        )


route_classifier = RouteClassifier()
permission_matrix = PermissionMatrix()
