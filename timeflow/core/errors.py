from __future__ import annotations

import logging
from typing import Any
from urllib.parse import urlencode

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, RedirectResponse
from starlette import status
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class BackendError(Exception):
    """Raised when the hosted auth or storage API rejects a call."""

    def __init__(self, message: str, *, status_code: int = 502, code: str = "backend_error") -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code


class BackendNotConfigured(BackendError):
    """Raised when the hosted backend credentials are missing."""

    def __init__(self, message: str = "Hosted backend is not configured") -> None:
        super().__init__(message, status_code=503, code="backend_not_configured")


class ErrorEnvelope(JSONResponse):
    def __init__(
        self,
        *,
        status_code: int,
        code: str,
        message: str,
        details: Any | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        payload: dict[str, Any] = {"code": code, "message": message}
        if details is not None:
            payload["details"] = details
        super().__init__(payload, status_code=status_code, headers=headers)


def _wants_html(request: Request) -> bool:
    accept = (request.headers.get("accept") or "").lower()
    path = request.url.path
    return "text/html" in accept and not path.startswith("/api")


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    if _wants_html(request):
        path = request.url.path
        if exc.status_code == status.HTTP_401_UNAUTHORIZED and not path.startswith("/login"):
            target = path + (f"?{request.url.query}" if request.url.query else "")
            return RedirectResponse(url="/login?" + urlencode({"next": target}), status_code=302)
        if exc.status_code == status.HTTP_403_FORBIDDEN:
            return RedirectResponse(url="/", status_code=302)
    detail = exc.detail
    if isinstance(detail, str):
        message = detail
    else:
        message = "Error"
    details = detail if isinstance(detail, dict) else None
    return ErrorEnvelope(
        status_code=exc.status_code,
        code="http_error",
        message=message,
        details=details,
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return ErrorEnvelope(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        code="validation_error",
        message="Validation failed",
        details={"errors": exc.errors()},
    )


async def backend_exception_handler(request: Request, exc: BackendError):
    logger.warning(
        "backend.error",
        extra={"extra_data": {"code": exc.code, "status": exc.status_code, "error": exc.message}},
    )
    return ErrorEnvelope(status_code=exc.status_code, code=exc.code, message=exc.message)
