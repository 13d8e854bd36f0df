"""Pure ASGI middleware for response hardening and span user tagging."""

from __future__ import annotations

from opentelemetry import trace
from starlette.types import ASGIApp, Message, Receive, Scope, Send

_CSP = (b"content-security-policy", b"default-src 'none'; frame-ancestors 'none'")

_BASE_HEADERS: tuple[tuple[bytes, bytes], ...] = (
    (b"x-content-type-options", b"nosniff"),
    (b"x-frame-options", b"DENY"),
    (b"referrer-policy", b"no-referrer"),
    (b"strict-transport-security", b"max-age=31536000; includeSubDomains"),
    (b"cache-control", b"no-store"),
)

# Swagger UI and ReDoc load scripts and styles
_DOCS_PATHS = frozenset({"/docs", "/redoc"})


class SecurityHeadersMiddleware:
    """Append hardening headers to every HTTP response.

    The API only serves JSON, so the CSP blocks everything; the docs pages
    are exempt from it.
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    def headers_for(self, path: str) -> tuple[tuple[bytes, bytes], ...]:
        if path in _DOCS_PATHS:
            return _BASE_HEADERS
        return (*_BASE_HEADERS, _CSP)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        extra = self.headers_for(scope.get("path", ""))

        async def send_with_headers(message: Message) -> None:
            if message["type"] == "http.response.start":
                message["headers"] = [*message.get("headers", []), *extra]
            await send(message)

        await self.app(scope, receive, send_with_headers)


class UserTrackingMiddleware:
    """Tag the current span with ``enduser.id`` from the session cookie.

    Installed inside SessionMiddleware, which fills ``scope["session"]``.
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "http":
            user_id = scope.get("session", {}).get("user_id")
            span = trace.get_current_span()
            if user_id is not None and span.is_recording():
                span.set_attribute("enduser.id", str(user_id))

        await self.app(scope, receive, send)
