"""HTTP middleware: request logging and the authorization gateway."""

import time
from urllib.parse import quote

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from school_gateway.api.security import (
    apply_security_headers,
    refusal_response,
    unavailable_response,
)
from school_gateway.auth.context import Principal
from school_gateway.auth.gateway import AuthorizationGateway
from school_gateway.config import settings
from school_gateway.errors import (
    AuthorizationError,
    GatewayState,
    RateLimitStoreUnavailable,
)
from school_gateway.logging_config import bind_request_context, clear_request_context

logger = structlog.get_logger()

IDENTITY_HEADER_PREFIX = b"x-user-"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log HTTP requests with method, path, status code, and latency."""

    SKIP_PATHS: frozenset[str] = frozenset(
        {"/health", "/docs", "/openapi.json", "/redoc"}
    )

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        """Process request and log timing information."""
        if request.url.path in self.SKIP_PATHS:
            return await call_next(request)

        start = time.perf_counter()
        response = await call_next(request)
        latency_ms = int((time.perf_counter() - start) * 1000)

        logger.info(
            "http_request",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            latency_ms=latency_ms,
            gateway_state=getattr(request.state, "gateway_state", None),
        )
        return response


def _header_value(value: str) -> bytes:
    """ASCII values pass unchanged; anything else is percent-encoded UTF-8."""
    try:
        return value.encode("ascii")
    except UnicodeEncodeError:
        return quote(value, safe="@+").encode("ascii")


def _forward_identity(request: Request, principal: Principal | None) -> None:
    """Replace any client-sent ``x-user-*`` headers with the gateway's own."""
    headers = [
        (name, value)
        for name, value in request.scope["headers"]
        if not name.lower().startswith(IDENTITY_HEADER_PREFIX)
    ]
    if principal is not None:
        headers.extend(
            (name.encode("latin-1"), _header_value(value))
            for name, value in principal.to_headers().items()
        )
    request.scope["headers"] = headers


class AuthorizationMiddleware(BaseHTTPMiddleware):
    """Run every request through the ``AuthorizationGateway``.

    The gateway instance is read from ``app.state.gateway`` (built in the
    lifespan). Authorized requests continue with the principal on
    ``request.state.principal`` and in ``x-user-*`` headers. Every response,
    allowed or refused, leaves with the security headers set.
    """

    def __init__(self, app: ASGIApp, login_path: str = settings.login_path) -> None:
        super().__init__(app)
        self.login_path = login_path

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        gateway: AuthorizationGateway = request.app.state.gateway
        path = request.url.path

        clear_request_context()
        bind_request_context(path=path)

        try:
            principal = await gateway.authorize(path, request.cookies)
        except AuthorizationError as e:
            request.state.gateway_state = e.state
            logger.info(
                "gateway_denied",
                state=str(e.state),
                status_code=e.status_code,
                reason=e.message,
            )
            response = refusal_response(e, path, self.login_path)
            return apply_security_headers(response)
        except RateLimitStoreUnavailable as e:
            logger.error("rate_limit_store_unavailable", reason=e.reason)
            return apply_security_headers(unavailable_response())

        _forward_identity(request, principal)
        if principal is None:
            request.state.gateway_state = GatewayState.PUBLIC
        else:
            request.state.gateway_state = GatewayState.AUTHORIZED
            request.state.principal = principal
            bind_request_context(principal_id=principal.id, role=str(principal.role))
            logger.debug("gateway_authorized", schemas=len(principal.allowed_schemas))

        response = await call_next(request)
        return apply_security_headers(response)
