from __future__ import annotations

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from ..core.config import settings


def content_security_policy(storage_origin: str) -> str:
    """Pages load images from the hosted object store; everything else is same-origin."""

    images = "'self' data:"
    if storage_origin:
        images += f" {storage_origin}"
    return (
        f"default-src 'self'; img-src {images}; connect-src 'self'; "
        "base-uri 'self'; form-action 'self'; frame-ancestors 'none'; object-src 'none';"
    )


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, storage_origin: str | None = None) -> None:  # type: ignore[override]
        super().__init__(app)
        origin = settings.SUPABASE_URL.rstrip("/") if storage_origin is None else storage_origin
        self.headers = {
            "Strict-Transport-Security": "max-age=31536000; includeSubDomains",
            "X-Content-Type-Options": "nosniff",
            "X-Frame-Options": "DENY",
            "Referrer-Policy": "strict-origin-when-cross-origin",
            "Content-Security-Policy": content_security_policy(origin),
        }

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        response = await call_next(request)
        for name, value in self.headers.items():
            response.headers.setdefault(name, value)
        return response
