"""Authorization gateway: the allow/deny decision for one request.

Stages run strictly in order, each gating the next:

1. route classification: public paths are allowed with no lookups;
2. identity resolution from the session cookie;
3. per-principal rate limiting, before the more expensive role lookup;
4. role directory lookup;
5. role validation against the enumerated roles;
6. route permission check.

Any refusal raises an ``AuthorizationError`` subclass and ends the
pipeline. Refusals are deterministic and never retried.
"""

from __future__ import annotations

from collections.abc import Mapping

import structlog

from school_gateway.auth.context import Principal, RoleType
from school_gateway.auth.identity import IdentityResolver
from school_gateway.auth.permissions import (
    PermissionMatrix,
    RouteClass,
    RouteClassifier,
    permission_matrix,
    route_classifier,
)
from school_gateway.auth.rate_limiter import RateLimiter
from school_gateway.auth.roles import RoleDirectory
from school_gateway.errors import (
    RateLimited,
    RoleInvalid,
    RoleUndefined,
    RouteForbidden,
    Unauthenticated,
)

logger = structlog.get_logger()


class AuthorizationGateway:
    def __init__(
        self,
        identity_resolver: IdentityResolver,
        role_directory: RoleDirectory,
        rate_limiter: RateLimiter,
        permissions: PermissionMatrix = permission_matrix,
        classifier: RouteClassifier = route_classifier,
    ) -> None:
        self.identity_resolver = identity_resolver
        self.role_directory = role_directory
        self.rate_limiter = rate_limiter
        self.permissions = permissions
        self.classifier = classifier

    def is_public(self, path: str) -> bool:
        return self.classifier.classify(path) is RouteClass.PUBLIC

    async def authorize(
        self, path: str, cookies: Mapping[str, str]
    ) -> Principal | None:
        """Decide whether the request for ``path`` may proceed.

        Returns:
            None for public paths, otherwise the authorized Principal.

        Raises:
            Unauthenticated: no valid session.
            RateLimited: principal is over its request quota.
            RoleUndefined: no role record for the principal.
            RoleInvalid: role record names an unknown role.
            RouteForbidden: role may not access ``path``.
            RateLimitStoreUnavailable: from the limiter; not a refusal.
        """
        if self.is_public(path):
            return None

        identity = await self.identity_resolver.resolve(cookies)
        if identity is None:
            raise Unauthenticated()

        allowed, retry_after = await self.rate_limiter.acheck(identity.user_id)
        if not allowed:
            logger.warning(
                "rate_limited",
                principal_id=identity.user_id,
                retry_after=retry_after,
            )
            raise RateLimited(retry_after)

        record = await self.role_directory.resolve(identity.user_id)
        if record is None:
            raise RoleUndefined(identity.user_id)

        try:
            role = RoleType(record.role_type)
        except ValueError:
            logger.warning(
                "role_invalid",
                principal_id=identity.user_id,
                role_type=record.role_type,
            )
            raise RoleInvalid(record.role_type) from None

        if not self.permissions.permitted(role, path):
            raise RouteForbidden(role, path)

        schemas = record.allowed_schemas
        return Principal(
            id=identity.user_id,
            email=identity.email or "",
            role=role,
            allowed_schemas=frozenset(schemas or ()),
            schemas_declared=schemas is not None,
        )
