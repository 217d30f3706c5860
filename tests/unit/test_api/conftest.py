"""Shared fixtures for HTTP-level tests against the FastAPI app."""

from collections.abc import AsyncGenerator, Callable
from unittest.mock import AsyncMock

import pytest
from httpx import ASGITransport, AsyncClient

from school_gateway.api.app import app
from school_gateway.auth.context import Identity, RoleRecord
from school_gateway.auth.gateway import AuthorizationGateway
from school_gateway.auth.rate_limiter import InMemoryRateLimiter
from school_gateway.storage.database import get_session

USER_ID = "7f1c2a8e-6a55-4c1b-9d0e-2f3b4c5d6e7f"
SCHEMA = "escola_00000001"


class StubResolver:
    def __init__(self, identity: Identity | None) -> None:
        self.identity = identity
        self.calls = 0

    async def resolve(self, cookies: object) -> Identity | None:
        self.calls += 1
        return self.identity


class StubDirectory:
    def __init__(self, record: RoleRecord | None) -> None:
        self.record = record
        self.calls = 0

    async def resolve(self, principal_id: str) -> RoleRecord | None:
        self.calls += 1
        return self.record


GatewayFactory = Callable[..., AuthorizationGateway]


@pytest.fixture()
def install_gateway() -> GatewayFactory:
    """Install a stub-backed gateway on ``app.state``.

    Defaults to an authenticated DIRETORIA principal entitled to ``SCHEMA``.
    """

    def _install(
        identity: Identity | None = Identity(user_id=USER_ID, email="d@escola.br"),
        record: RoleRecord | None = RoleRecord(
            role_type="DIRETORIA", allowed_schemas=(SCHEMA,)
        ),
        limiter: InMemoryRateLimiter | None = None,
    ) -> AuthorizationGateway:
        gateway = AuthorizationGateway(
            identity_resolver=StubResolver(identity),  # type: ignore[arg-type]
            role_directory=StubDirectory(record),  # type: ignore[arg-type]
            rate_limiter=limiter or InMemoryRateLimiter(),
        )
        app.state.gateway = gateway
        return gateway

    return _install


@pytest.fixture()
def mock_session() -> AsyncMock:
    return AsyncMock()


@pytest.fixture()
async def client(
    mock_session: AsyncMock, install_gateway: GatewayFactory
) -> AsyncGenerator[AsyncClient]:
    """AsyncClient on the real app with a stub gateway and no real DB."""
    install_gateway()
    app.dependency_overrides[get_session] = lambda: mock_session
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
    app.dependency_overrides.clear()
