"""FastAPI application with lifespan management."""

import asyncio
from collections.abc import AsyncGenerator, Awaitable
from contextlib import asynccontextmanager
from datetime import UTC, datetime

import httpx
import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from redis.asyncio import Redis
from redis.exceptions import RedisError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from school_gateway.api.middleware import (
    AuthorizationMiddleware,
    RequestLoggingMiddleware,
)
from school_gateway.api.routes.dashboard import router as dashboard_router
from school_gateway.api.security import apply_security_headers
from school_gateway.auth.gateway import AuthorizationGateway
from school_gateway.auth.identity import IdentityResolver, SupabaseIdentityProvider
from school_gateway.auth.rate_limiter import (
    InMemoryRateLimiter,
    RateLimiter,
    RedisRateLimiter,
)
from school_gateway.auth.roles import RoleDirectory
from school_gateway.config import RateLimitBackend, Settings, settings
from school_gateway.logging_config import configure_logging
from school_gateway.storage.database import async_session, engine
from school_gateway.storage.repositories import SqlRoleLookup

logger = structlog.get_logger()

HEALTH_CHECK_TIMEOUT = 5.0


def build_rate_limiter(config: Settings) -> RateLimiter:
    if config.rate_limit_backend == RateLimitBackend.REDIS:
        return RedisRateLimiter(
            Redis.from_url(config.redis_url),
            window_seconds=config.rate_limit_window_seconds,
            max_requests=config.rate_limit_max_requests,
        )
    return InMemoryRateLimiter(
        window_seconds=config.rate_limit_window_seconds,
        max_requests=config.rate_limit_max_requests,
    )


def build_gateway(
    config: Settings,
    http_client: httpx.AsyncClient,
    rate_limiter: RateLimiter,
) -> AuthorizationGateway:
    """Wire the gateway's collaborators from settings."""
    provider = SupabaseIdentityProvider(
        http_client,
        base_url=config.supabase_url,
        anon_key=config.supabase_anon_key.get_secret_value(),
    )
    return AuthorizationGateway(
        identity_resolver=IdentityResolver(
            provider,
            cookie_name=config.auth_cookie_name,
            timeout=config.external_lookup_timeout_seconds,
        ),
        role_directory=RoleDirectory(
            SqlRoleLookup(async_session),
            timeout=config.external_lookup_timeout_seconds,
        ),
        rate_limiter=rate_limiter,
    )


async def _cleanup_loop(limiter: RateLimiter, interval: int) -> None:
    """Periodic sweep of elapsed rate limit windows."""
    while True:
        await asyncio.sleep(interval)
        try:
            cleaned = await limiter.asweep()
            if cleaned:
                logger.debug("rate_limiter_cleanup", keys_removed=cleaned)
        except Exception:
            logger.exception("rate_limiter_cleanup_error")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Manage application startup and shutdown.

    Startup:
        - Build the authorization gateway and its rate limiter.
        - Start the rate limiter sweep task.
    Shutdown:
        - Cancel the sweep task, close HTTP and Redis clients.
        - Dispose database engine (close connection pool).
    """
    configure_logging(
        environment=str(settings.environment),
        log_level=settings.log_level,
    )

    http_client = httpx.AsyncClient(timeout=settings.external_lookup_timeout_seconds)
    rate_limiter = build_rate_limiter(settings)
    app.state.gateway = build_gateway(settings, http_client, rate_limiter)

    cleanup_task = asyncio.create_task(
        _cleanup_loop(rate_limiter, settings.rate_limit_cleanup_interval_seconds)
    )

    logger.info(
        "app_started",
        environment=str(settings.environment),
        rate_limit_backend=str(settings.rate_limit_backend),
    )
    yield

    cleanup_task.cancel()
    await http_client.aclose()
    if isinstance(rate_limiter, RedisRateLimiter):
        await rate_limiter.aclose()
    await engine.dispose()
    logger.info("app_stopped")


app = FastAPI(
    title="School Gateway",
    description="Authorization gateway and tenant-scoped dashboard queries",
    version="0.1.0",
    lifespan=lifespan,
    debug=settings.is_dev,
)

# Added last runs first: CORS, then request logging, then the gateway.
app.add_middleware(AuthorizationMiddleware, login_path=settings.login_path)
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allowed_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allowed_methods,
    allow_headers=settings.cors_allowed_headers,
)


async def _check_db() -> str:
    async with async_session() as session:
        await session.execute(text("SELECT 1"))
    return "ok"


async def _check_rate_limiter(limiter: RateLimiter) -> str:
    await limiter.aping()
    return "ok"


async def _run_check(name: str, check: Awaitable[str]) -> str:
    try:
        return await asyncio.wait_for(check, timeout=HEALTH_CHECK_TIMEOUT)
    except (TimeoutError, SQLAlchemyError, RedisError) as e:
        logger.warning("health_check_failed", check=name, error=type(e).__name__)
        return f"error: {type(e).__name__}"


@app.get("/health")
async def health(request: Request) -> JSONResponse:
    """Deep health check: database and rate limit store.

    Public route; 503 with per-check detail when any dependency is down.
    """
    gateway: AuthorizationGateway = request.app.state.gateway
    checks = {
        "db": await _run_check("db", _check_db()),
        "rate_limiter": await _run_check(
            "rate_limiter", _check_rate_limiter(gateway.rate_limiter)
        ),
    }
    healthy = all(result == "ok" for result in checks.values())
    return JSONResponse(
        status_code=200 if healthy else 503,
        content={
            "status": "ok" if healthy else "degraded",
            "checks": checks,
            "timestamp": datetime.now(UTC).isoformat(timespec="seconds"),
        },
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """Last resort: log with traceback, answer without internals."""
    logger.error(
        "unhandled_exception",
        exc_info=exc,
        method=request.method,
        path=request.url.path,
    )
    response = JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"},
    )
    return apply_security_headers(response)


app.include_router(dashboard_router, prefix="/api/v1")
