from __future__ import annotations

import logging
import time
from contextvars import ContextVar
from uuid import uuid4

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

request_id_ctx_var: ContextVar[str | None] = ContextVar("request_id", default=None)
principal_ctx_var: ContextVar[str | None] = ContextVar("principal_id", default=None)
logger = logging.getLogger("timeflow.request")

# Probes, scrapes and assets only show up at debug level.
QUIET_PREFIXES = ("/health", "/metrics", "/static/")


def _log_level(path: str, status_code: int) -> int:
    if status_code >= 500:
        return logging.ERROR
    if path.startswith(QUIET_PREFIXES):
        return logging.DEBUG
    return logging.INFO


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Tag every request with a correlation id and log one line when it completes.

    The principal is whatever the auth dependency bound for the request
    (``session:<id>`` or ``bearer:<id>``), so a desktop tracker call can be
    told apart from a browser page view in the logs.
    """

    def __init__(self, app, header_name: str = "X-Request-ID") -> None:  # type: ignore[override]
        super().__init__(app)
        self.header_name = header_name

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get(self.header_name) or uuid4().hex
        request.state.request_id = request_id
        id_token = request_id_ctx_var.set(request_id)
        principal_token = principal_ctx_var.set(None)
        started = time.perf_counter()
        try:
            response = await call_next(request)
        finally:
            principal = getattr(request.state, "principal", None) or principal_ctx_var.get()
            request_id_ctx_var.reset(id_token)
            principal_ctx_var.reset(principal_token)

        elapsed_ms = round((time.perf_counter() - started) * 1000, 2)
        response.headers[self.header_name] = request_id
        response.headers.setdefault("Server-Timing", f"app;dur={elapsed_ms}")

        path = request.url.path
        fields = {
            "request_id": request_id,
            "method": request.method,
            "path": path,
            "status": response.status_code,
            "duration_ms": elapsed_ms,
            "principal": principal,
        }
        if "callback" in request.query_params:
            fields["desktop_handoff"] = True
        logger.log(_log_level(path, response.status_code), "request.completed", extra={"extra_data": fields})
        return response
