"""Process entry point: JSON logging plus the ASGI app for uvicorn."""

from __future__ import annotations

import uvicorn

from . import app
from .core.config import settings
from .core.logging import configure_logging

configure_logging(settings.LOG_LEVEL)

__all__ = ["app", "run"]


def run() -> None:
    uvicorn.run("timeflow.main:app", host=settings.HOST, port=settings.PORT, proxy_headers=True)


if __name__ == "__main__":
    run()
