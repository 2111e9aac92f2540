"""Shared Jinja2 environment and the formatting filters the pages rely on."""

from __future__ import annotations

from datetime import datetime
from functools import lru_cache
from typing import Any
from zoneinfo import ZoneInfo

from fastapi.templating import Jinja2Templates
from starlette.requests import Request

from ..services.timecalc import ensure_utc, format_duration
from .config import settings
from .roles import ROLE_LABELS
from .toasts import pop_toasts

_LOCAL_TZ = ZoneInfo(settings.TZ) if settings.TZ else None


def _to_dt(value: Any) -> datetime | None:
    """Convert strings or datetimes into aware datetimes in the display timezone."""

    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str) and value:
        try:
            dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None

    dt = ensure_utc(dt)
    if _LOCAL_TZ:
        dt = dt.astimezone(_LOCAL_TZ)
    return dt


def _fmt_dt(value: Any, fmt: str = "%b %d, %Y %I:%M %p") -> str:
    dt = _to_dt(value)
    return dt.strftime(fmt) if dt else ""


def _fmt_date(value: Any, fmt: str = "%b %d, %Y") -> str:
    dt = _to_dt(value)
    return dt.strftime(fmt) if dt else ""


def _fmt_time(value: Any, fmt: str = "%I:%M %p") -> str:
    dt = _to_dt(value)
    return dt.strftime(fmt) if dt else "-"


def _fmt_hours(value: Any) -> str:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return "0.0h"
    return f"{number:.1f}h"


def _role_label(value: Any) -> str:
    return ROLE_LABELS.get(str(value), str(value).title())


@lru_cache(maxsize=1)
def get_templates() -> Jinja2Templates:
    """Create a ``Jinja2Templates`` instance with our standard filters registered."""

    templates = Jinja2Templates(directory=str(settings.templates_dir))
    env = templates.env
    env.filters["fmt_dt"] = _fmt_dt
    env.filters["fmt_date"] = _fmt_date
    env.filters["fmt_time"] = _fmt_time
    env.filters["fmt_duration"] = format_duration
    env.filters["fmt_hours"] = _fmt_hours
    env.filters["role_label"] = _role_label
    env.globals["app_name"] = settings.APP_NAME
    return templates


def render(request: Request, name: str, context: dict[str, Any] | None = None, *, status_code: int = 200):
    """Render a page with the pending toasts and the signed-in profile attached."""

    payload: dict[str, Any] = {
        "request": request,
        "toasts": pop_toasts(request),
        "current_user": getattr(request.state, "profile", None),
    }
    payload.update(context or {})
    return get_templates().TemplateResponse(request, name, payload, status_code=status_code)
