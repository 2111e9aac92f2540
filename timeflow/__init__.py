"""Application factory and top-level wiring for TimeFlow.

TimeFlow is the web dashboard for the desktop time tracker: attendance,
reports, projects, team management, screenshot review and administration on
top of the hosted Postgres database and its auth/storage APIs.

This module brings the pieces together in the order they are needed:

* the mapped models register their tables with ``Base.metadata``;
* middlewares attach request ids, security headers, the session cookie and
  the desktop ``?callback=`` hand-off;
* exception handlers turn HTTP errors into login redirects for browsers and
  JSON envelopes for API clients;
* the HTML and JSON routers are mounted, followed by a catch-all that sends
  signed-in users back to the dashboard.
"""

from __future__ import annotations

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from prometheus_fastapi_instrumentator import Instrumentator
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.sessions import SessionMiddleware

from . import models as _models  # noqa: F401
from .core.config import settings
from .core.errors import (
    BackendError,
    backend_exception_handler,
    http_exception_handler,
    validation_exception_handler,
)
from .db.session import Base, engine
from .middlewares import CallbackForwardMiddleware, RequestIdMiddleware, SecurityHeadersMiddleware
from .routers import (
    api_admin,
    api_auth,
    api_notifications,
    api_profile,
    api_projects,
    api_reports,
    api_screenshots,
    api_team,
    api_tracker,
    auth_ui,
    ui,
    ui_admin,
)


def create_app() -> FastAPI:
    app = FastAPI(title=settings.APP_NAME)

    app.mount("/static", StaticFiles(directory=str(settings.static_dir)), name="static")

    # Tables already exist in the hosted database; this covers local SQLite.
    Base.metadata.create_all(bind=engine)

    # Starlette wraps middlewares in reverse order: the last one added runs
    # first. The session must be loaded before the callback hand-off reads it.
    app.add_middleware(CallbackForwardMiddleware)
    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.APP_SECRET,
        session_cookie=settings.SESSION_COOKIE_NAME,
        max_age=settings.SESSION_MAX_AGE,
        same_site="lax",
        https_only=settings.PUBLIC_BASE_URL.startswith("https://"),
    )
    if settings.ALLOWED_ORIGINS:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.ALLOWED_ORIGINS,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestIdMiddleware)

    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(BackendError, backend_exception_handler)

    # UI login routes (no session required)
    app.include_router(auth_ui.router)

    # UI pages and form posts
    app.include_router(ui.router)
    app.include_router(ui_admin.router)

    # JSON API (session cookie or bearer token)
    app.include_router(api_auth.router)
    app.include_router(api_projects.router)
    app.include_router(api_projects.tasks_router)
    app.include_router(api_team.router)
    app.include_router(api_reports.router)
    app.include_router(api_notifications.router)
    app.include_router(api_screenshots.router)
    app.include_router(api_profile.router)
    app.include_router(api_tracker.router)
    app.include_router(api_admin.router)

    @app.get("/health", include_in_schema=False)
    async def health() -> dict[str, bool]:
        return {"ok": True}

    Instrumentator(excluded_handlers=["/health", "/metrics", "/static.*"]).instrument(app).expose(
        app, include_in_schema=False
    )

    # Registered last so every real route wins.
    app.add_api_route(
        "/{full_path:path}",
        ui.redirect_unknown,
        methods=["GET"],
        include_in_schema=False,
    )
    return app


app = create_app()

__all__ = ["app", "create_app"]
