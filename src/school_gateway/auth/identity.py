"""Session identity resolution.

The resolver reads the session cookie, extracts the access token and asks
an identity provider to verify it. It never verifies tokens itself.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import json
from collections.abc import Mapping
from typing import Protocol

import httpx
import structlog

from school_gateway.auth.context import Identity

logger = structlog.get_logger()

BASE64_PREFIX = "base64-"
MAX_COOKIE_CHUNKS = 16


class IdentityProvider(Protocol):
    """Capability: verify a session token and return its subject."""

    async def verify(self, access_token: str) -> Identity | None: ...


class SupabaseIdentityProvider:
    """Verify access tokens against the Supabase (GoTrue) user endpoint.

    Rejected tokens (401/403) and success bodies that are not a JSON object
    yield None; transport failures and other error statuses raise
    ``httpx.HTTPError`` for the caller to handle.
    """

    def __init__(self, client: httpx.AsyncClient, base_url: str, anon_key: str) -> None:
        self._client = client
        self._user_url = f"{base_url.rstrip('/')}/auth/v1/user"
        self._anon_key = anon_key

    async def verify(self, access_token: str) -> Identity | None:
        response = await self._client.get(
            self._user_url,
            headers={
                "Authorization": f"Bearer {access_token}",
                "apikey": self._anon_key,
            },
        )
        if response.status_code in (401, 403):
            return None
        response.raise_for_status()

        try:
            payload = response.json()
        except ValueError:
            logger.warning("identity_payload_invalid", reason="not_json")
            return None
        if not isinstance(payload, dict):
            logger.warning("identity_payload_invalid", reason="not_object")
            return None

        user_id = payload.get("id")
        if not user_id:
            return None
        return Identity(user_id=str(user_id), email=payload.get("email"))


def read_session_cookie(cookies: Mapping[str, str], name: str) -> str | None:
    """Return the raw session cookie, joining ``name.0``, ``name.1``... chunks."""
    value = cookies.get(name)
    if value:
        return value

    chunks: list[str] = []
    for i in range(MAX_COOKIE_CHUNKS):
        chunk = cookies.get(f"{name}.{i}")
        if chunk is None:
            break
        chunks.append(chunk)
    return "".join(chunks) or None


def extract_access_token(raw: str) -> str | None:
    """Pull the access token out of a session cookie value.

    Accepts a bare token, a JSON session object (``access_token`` key),
    a JSON array whose first item is the token, and any of these encoded
    as ``base64-<base64url>``.
    """
    if raw.startswith(BASE64_PREFIX):
        encoded = raw[len(BASE64_PREFIX) :]
        try:
            raw = base64.urlsafe_b64decode(encoded + "=" * (-len(encoded) % 4)).decode()
        except (binascii.Error, UnicodeDecodeError):
            return None

    if raw[:1] not in ("{", "["):
        return raw or None

    # Deeply nested input exhausts the decoder's recursion limit.
    try:
        session = json.loads(raw)
    except (ValueError, RecursionError):
        return None

    if isinstance(session, dict):
        token = session.get("access_token")
    elif isinstance(session, list) and session:
        token = session[0]
    else:
        token = None
    return token if isinstance(token, str) and token else None


class IdentityResolver:
    """Resolve the authenticated user of a request from its cookies.

    Returns None (unauthenticated) when the cookie is missing or malformed,
    the provider rejects the token, the provider fails, or the lookup
    exceeds ``timeout`` seconds.
    """

    def __init__(
        self,
        provider: IdentityProvider,
        cookie_name: str,
        timeout: float = 5.0,
    ) -> None:
        self._provider = provider
        self._cookie_name = cookie_name
        self._timeout = timeout

    async def resolve(self, cookies: Mapping[str, str]) -> Identity | None:
        raw = read_session_cookie(cookies, self._cookie_name)
        if raw is None:
            return None

        access_token = extract_access_token(raw)
        if access_token is None:
            logger.info("session_cookie_malformed")
            return None

        try:
            return await asyncio.wait_for(
                self._provider.verify(access_token), timeout=self._timeout
            )
        except TimeoutError:
            logger.warning("identity_lookup_timeout", timeout=self._timeout)
        except httpx.HTTPError as e:
            logger.warning("identity_lookup_failed", error=type(e).__name__)
        return None
