from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Mapping

from ..middlewares import principal_ctx_var, request_id_ctx_var

# httpx logs every hosted backend call at INFO, including token exchanges.
NOISY_LOGGERS = ("httpx", "httpcore", "uvicorn.access")


class JsonLogFormatter(logging.Formatter):
    """One JSON object per line, tagged with the request and caller it belongs to."""

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        payload: dict[str, Any] = {
            "timestamp": created.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        context = {"request_id": request_id_ctx_var.get(), "principal": principal_ctx_var.get()}
        payload.update({key: value for key, value in context.items() if value})
        extra = getattr(record, "extra_data", None)
        if isinstance(extra, Mapping):
            payload.update({key: value for key, value in extra.items() if value is not None})
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
            payload["where"] = f"{record.module}:{record.lineno}"
        return json.dumps(payload, separators=(",", ":"), default=str)


def configure_logging(level: str | int = "INFO") -> None:
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    handler = logging.StreamHandler()
    handler.setFormatter(JsonLogFormatter())
    logging.root.handlers = [handler]
    logging.root.setLevel(level)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
