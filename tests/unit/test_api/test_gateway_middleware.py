"""HTTP behaviour of the authorization gateway middleware."""

from collections.abc import Callable
from unittest.mock import AsyncMock, patch

import pytest
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from httpx import ASGITransport, AsyncClient

from school_gateway.api.middleware import AuthorizationMiddleware
from school_gateway.api.security import SECURITY_HEADERS
from school_gateway.auth.context import Identity, RoleRecord
from school_gateway.auth.gateway import AuthorizationGateway
from school_gateway.auth.rate_limiter import InMemoryRateLimiter
from school_gateway.errors import RateLimitStoreUnavailable

GatewayFactory = Callable[..., AuthorizationGateway]

USER_ID = "7f1c2a8e-6a55-4c1b-9d0e-2f3b4c5d6e7f"
SCHEMA = "escola_00000001"


def assert_security_headers(response) -> None:  # type: ignore[no-untyped-def]
    for name, value in SECURITY_HEADERS.items():
        assert response.headers[name] == value


class TestPublicRoutes:
    @pytest.mark.asyncio
    async def test_health_skips_gateway_lookups(
        self, client: AsyncClient, install_gateway: GatewayFactory
    ) -> None:
        gateway = install_gateway(identity=None)
        with patch("school_gateway.api.app.async_session") as factory:
            factory.return_value.__aenter__ = AsyncMock(return_value=AsyncMock())
            factory.return_value.__aexit__ = AsyncMock(return_value=False)
            response = await client.get("/health")

        assert response.status_code == 200
        assert gateway.identity_resolver.calls == 0  # type: ignore[attr-defined]
        assert_security_headers(response)

    @pytest.mark.asyncio
    async def test_login_page_not_redirected(
        self, client: AsyncClient, install_gateway: GatewayFactory
    ) -> None:
        install_gateway(identity=None)
        response = await client.get("/login")
        # No page is served here, but the gateway lets it through.
        assert response.status_code == 404
        assert_security_headers(response)


class TestUnauthenticated:
    @pytest.mark.asyncio
    async def test_page_redirects_to_login(
        self, client: AsyncClient, install_gateway: GatewayFactory
    ) -> None:
        install_gateway(identity=None)
        response = await client.get("/dashboard")

        assert response.status_code == 307
        assert response.headers["location"] == "/login"
        assert_security_headers(response)

    @pytest.mark.asyncio
    async def test_api_gets_json_401(
        self, client: AsyncClient, install_gateway: GatewayFactory
    ) -> None:
        install_gateway(identity=None)
        response = await client.get("/api/v1/dashboard/summary")

        assert response.status_code == 401
        body = response.json()
        assert body["error"] == "Not authenticated"
        assert body["redirect"] == "/login"
        assert "timestamp" in body
        assert_security_headers(response)

    @pytest.mark.asyncio
    async def test_unknown_path_is_protected(
        self, client: AsyncClient, install_gateway: GatewayFactory
    ) -> None:
        install_gateway(identity=None)
        response = await client.get("/loginx")
        assert response.status_code == 307


class TestRateLimited:
    @pytest.mark.asyncio
    async def test_429_with_retry_after(
        self, client: AsyncClient, install_gateway: GatewayFactory
    ) -> None:
        gateway = install_gateway(
            limiter=InMemoryRateLimiter(window_seconds=60, max_requests=1)
        )
        first = await client.get("/dashboard")
        second = await client.get("/dashboard")

        assert first.status_code == 404
        assert second.status_code == 429
        assert 1 <= int(second.headers["retry-after"]) <= 60
        assert "Rate limit exceeded" in second.json()["error"]
        assert gateway.role_directory.calls == 1  # type: ignore[attr-defined]
        assert_security_headers(second)


class TestRoleFailures:
    @pytest.mark.asyncio
    async def test_undefined_role_api(
        self, client: AsyncClient, install_gateway: GatewayFactory
    ) -> None:
        install_gateway(record=None)
        response = await client.get("/api/v1/dashboard/summary")

        assert response.status_code == 403
        assert response.json()["error"] == "User has no permissions defined"
        assert response.json()["redirect"] == "/login"

    @pytest.mark.asyncio
    async def test_undefined_role_page(
        self, client: AsyncClient, install_gateway: GatewayFactory
    ) -> None:
        install_gateway(record=None)
        response = await client.get("/dashboard")

        assert response.status_code == 307
        assert response.headers["location"] == "/login"

    @pytest.mark.asyncio
    async def test_invalid_role(
        self, client: AsyncClient, install_gateway: GatewayFactory
    ) -> None:
        install_gateway(record=RoleRecord(role_type="ALUNO", allowed_schemas=()))
        response = await client.get("/dashboard")

        assert response.status_code == 403
        assert "ALUNO" in response.json()["error"]
        assert "redirect" not in response.json()
        assert_security_headers(response)

    @pytest.mark.asyncio
    async def test_route_forbidden_names_role_and_path(
        self, client: AsyncClient, install_gateway: GatewayFactory
    ) -> None:
        install_gateway()
        response = await client.get("/api/v1/dashboard/alerts")

        assert response.status_code == 403
        assert response.json()["error"] == (
            "Role DIRETORIA is not allowed to access /api/v1/dashboard/alerts"
        )


def _echo_app() -> FastAPI:
    """Minimal app that reports what the gateway forwarded downstream."""
    echo = FastAPI()
    echo.add_middleware(AuthorizationMiddleware, login_path="/login")

    @echo.get("/dashboard")
    async def dashboard(request: Request) -> dict[str, object]:
        return {
            "headers": {
                k: v for k, v in request.headers.items() if k.startswith("x-user-")
            },
            "principal_id": request.state.principal.id,
        }

    @echo.get("/login")
    async def login(request: Request) -> dict[str, object]:
        return {
            "headers": {
                k: v for k, v in request.headers.items() if k.startswith("x-user-")
            },
        }

    return echo


class TestIdentityForwarding:
    @pytest.mark.asyncio
    async def test_principal_headers_forwarded(
        self, install_gateway: GatewayFactory
    ) -> None:
        echo = _echo_app()
        echo.state.gateway = install_gateway()
        async with AsyncClient(
            transport=ASGITransport(app=echo), base_url="http://test"
        ) as ac:
            response = await ac.get(
                "/dashboard",
                headers={"x-user-role": "SEC_SEG_PUB", "x-user-id": "spoofed"},
            )

        assert response.status_code == 200
        body = response.json()
        assert body["principal_id"] == USER_ID
        assert body["headers"] == {
            "x-user-id": USER_ID,
            "x-user-role": "DIRETORIA",
            "x-user-email": "d@escola.br",
            "x-user-schemas": f'["{SCHEMA}"]',
        }
        assert_security_headers(response)

    @pytest.mark.asyncio
    async def test_spoofed_headers_stripped_on_public_route(
        self, install_gateway: GatewayFactory
    ) -> None:
        echo = _echo_app()
        echo.state.gateway = install_gateway(identity=None)
        async with AsyncClient(
            transport=ASGITransport(app=echo), base_url="http://test"
        ) as ac:
            response = await ac.get("/login", headers={"x-user-role": "DIRETORIA"})

        assert response.json()["headers"] == {}

    @pytest.mark.asyncio
    async def test_undeclared_schemas_not_forwarded(
        self, install_gateway: GatewayFactory
    ) -> None:
        echo = _echo_app()
        echo.state.gateway = install_gateway(
            identity=Identity(user_id=USER_ID),
            record=RoleRecord(role_type="SEC_SEG_PUB", allowed_schemas=None),
        )
        async with AsyncClient(
            transport=ASGITransport(app=echo), base_url="http://test"
        ) as ac:
            response = await ac.get("/dashboard")

        headers = response.json()["headers"]
        assert "x-user-schemas" not in headers
        assert headers["x-user-email"] == ""

    @pytest.mark.asyncio
    async def test_non_ascii_email_percent_encoded(
        self, install_gateway: GatewayFactory
    ) -> None:
        echo = _echo_app()
        echo.state.gateway = install_gateway(
            identity=Identity(user_id=USER_ID, email="joão@escola.br")
        )
        async with AsyncClient(
            transport=ASGITransport(app=echo), base_url="http://test"
        ) as ac:
            response = await ac.get("/dashboard")

        assert response.status_code == 200
        assert response.json()["headers"]["x-user-email"] == "jo%C3%A3o@escola.br"


class UnreachableStoreLimiter(InMemoryRateLimiter):
    async def acheck(self, key: str) -> tuple[bool, int]:
        raise RateLimitStoreUnavailable("ConnectionError")


class TestRateLimitStoreOutage:
    @pytest.mark.asyncio
    async def test_store_outage_is_503(
        self, client: AsyncClient, install_gateway: GatewayFactory
    ) -> None:
        gateway = install_gateway(limiter=UnreachableStoreLimiter())
        response = await client.get("/api/v1/dashboard/summary")

        assert response.status_code == 503
        assert response.json()["error"] == "Service temporarily unavailable"
        assert gateway.role_directory.calls == 0  # type: ignore[attr-defined]
        assert_security_headers(response)

    @pytest.mark.asyncio
    async def test_store_outage_keeps_cors_headers(
        self, install_gateway: GatewayFactory
    ) -> None:
        origin = "https://painel.escola.br"
        echo = _echo_app()
        echo.add_middleware(CORSMiddleware, allow_origins=[origin])
        echo.state.gateway = install_gateway(limiter=UnreachableStoreLimiter())
        async with AsyncClient(
            transport=ASGITransport(app=echo), base_url="http://test"
        ) as ac:
            response = await ac.get("/dashboard", headers={"Origin": origin})

        assert response.status_code == 503
        assert response.headers["access-control-allow-origin"] == origin
