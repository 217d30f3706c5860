"""Security headers and gateway refusal responses."""

from __future__ import annotations

from datetime import UTC, datetime

from starlette.responses import JSONResponse, RedirectResponse, Response

from school_gateway.errors import AuthorizationError, RateLimited

CONTENT_SECURITY_POLICY = (
    "default-src 'self'; "
    "script-src 'self' 'unsafe-eval' 'unsafe-inline'; "
    "style-src 'self' 'unsafe-inline'; "
    "img-src 'self' data: https:; "
    "font-src 'self' data:; "
    "connect-src 'self' https://*.supabase.co wss://*.supabase.co;"
)

SECURITY_HEADERS: dict[str, str] = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "X-XSS-Protection": "1; mode=block",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Content-Security-Policy": CONTENT_SECURITY_POLICY,
}

API_PREFIX = "/api/"


def apply_security_headers(response: Response) -> Response:
    for name, value in SECURITY_HEADERS.items():
        response.headers[name] = value
    return response


def is_api_request(path: str) -> bool:
    """API calls get JSON errors; everything else is a navigable page."""
    return path.startswith(API_PREFIX)


def refusal_response(
    error: AuthorizationError, path: str, login_path: str
) -> Response:
    """Render a gateway refusal.

    Pages are redirected to the login page when the error calls for it.
    API calls always get ``{"error", "timestamp"}`` with the error's status
    code, plus a ``redirect`` hint for errors that send pages to login.
    """
    if error.redirect_to_login and not is_api_request(path):
        return RedirectResponse(login_path)

    body: dict[str, str] = {
        "error": error.message,
        "timestamp": datetime.now(UTC).isoformat(),
    }
    if error.redirect_to_login:
        body["redirect"] = login_path

    headers: dict[str, str] = {}
    if isinstance(error, RateLimited):
        headers["Retry-After"] = str(error.retry_after)

    return JSONResponse(status_code=error.status_code, content=body, headers=headers)


def unavailable_response() -> Response:
    """503 for requests the gateway could not decide on."""
    return JSONResponse(
        status_code=503,
        content={
            "error": "Service temporarily unavailable",
            "timestamp": datetime.now(UTC).isoformat(),
        },
    )
