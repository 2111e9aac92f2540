from __future__ import annotations

from datetime import timedelta

from fastapi import Query

from ..core.config import settings
from ..services.reporting import ReportFilters
from ..services.timecalc import local_today, parse_day


def report_filters(
    start: str | None = None,
    end: str | None = None,
    users: list[str] = Query([]),
    team: str | None = None,
    project: str | None = None,
    role: str | None = None,
) -> ReportFilters:
    """Report query parameters; the range defaults to the current month."""

    today = local_today(settings.TZ)
    month_start = today.replace(day=1)
    month_end = (month_start + timedelta(days=32)).replace(day=1) - timedelta(days=1)
    return ReportFilters(
        start_date=parse_day(start, month_start),
        end_date=parse_day(end, month_end),
        user_ids=[uid for uid in users if uid],
        team=team or None,
        project_id=project or None,
        role=role or None,
    )
