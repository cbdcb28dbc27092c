"""
HTTP middleware for the ytdlp-mcp API.

One middleware stamps every response: it propagates or generates an
X-Request-ID, binds it into the structlog context while the request runs,
and optionally attaches the browser hardening headers from
``security_headers``.
"""

import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp
from structlog.contextvars import bind_contextvars, clear_contextvars

REQUEST_ID_HEADER = "X-Request-ID"

# Swagger UI and ReDoc load their assets from a CDN
_DOCS_PATHS = ("/docs", "/redoc", "/openapi")
_DOCS_CSP = "; ".join(
    [
        "default-src 'self' 'unsafe-inline'",
        "script-src 'self' 'unsafe-inline' https://cdn.jsdelivr.net",
        "style-src 'self' 'unsafe-inline' https://cdn.jsdelivr.net",
        "img-src 'self' https://fastapi.tiangolo.com",
        "connect-src 'self' https://cdn.jsdelivr.net",
    ]
)
_API_CSP = "default-src 'self'"
_HSTS = "max-age=31536000; includeSubDomains"


def security_headers(path: str, scheme: str) -> dict[str, str]:
    """
    Hardening headers for a response to ``path``.

    HSTS is only sent when the request itself arrived over HTTPS.
    """
    headers = {
        "X-Content-Type-Options": "nosniff",
        "X-Frame-Options": "DENY",
        "Content-Security-Policy": _DOCS_CSP if path.startswith(_DOCS_PATHS) else _API_CSP,
    }
    if scheme == "https":
        headers["Strict-Transport-Security"] = _HSTS
    return headers


class ResponseHeadersMiddleware(BaseHTTPMiddleware):
    """Request ID tracing plus optional security headers."""

    def __init__(self, app: ASGIApp, add_security_headers: bool = True):
        super().__init__(app)
        self.add_security_headers = add_security_headers

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())

        clear_contextvars()
        bind_contextvars(request_id=request_id, path=request.url.path)
        try:
            response = await call_next(request)
        finally:
            clear_contextvars()

        response.headers[REQUEST_ID_HEADER] = request_id
        if self.add_security_headers:
            response.headers.update(security_headers(request.url.path, request.url.scheme))
        return response
