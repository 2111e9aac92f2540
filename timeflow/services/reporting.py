"""Aggregations behind the Reports page and its CSV export."""

from __future__ import annotations

import csv
import io
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any, Dict, Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..core.roles import is_admin, is_supervisor
from ..crud.profiles import visible_user_ids
from ..crud.time_entries import entry_is_billable, list_entries
from ..models.profile import Profile
from ..models.time_entry import TimeEntry
from .timecalc import iter_days, local_date, local_today, range_bounds, round_tenth, seconds_to_hours

DEFAULT_PROJECT_LABEL = "Default Project"
UNKNOWN_PROJECT_LABEL = "Unknown Project"
OTHER_LABEL = "Other"
_NO_PROJECT_KEY = "__no_project__"

CSV_HEADERS = ["Date", "User", "Team", "Project", "Description", "Duration (Hours)", "Billable"]


@dataclass
class ReportFilters:
    start_date: date
    end_date: date
    user_ids: list[str] = field(default_factory=list)
    team: str | None = None
    project_id: str | None = None
    role: str | None = None


def _ids_where(db: Session, column, value) -> set[str]:
    return set(db.execute(select(Profile.id).where(column == value)).scalars().all())


def resolve_report_user_ids(db: Session, viewer: Profile, filters: ReportFilters) -> list[str]:
    """Users whose entries the viewer's report covers after all filters apply."""

    user_ids = visible_user_ids(db, viewer)
    if filters.user_ids and (is_admin(viewer.role) or is_supervisor(viewer.role)):
        allowed = set(user_ids)
        # A selection can only narrow the viewer's own scope.
        user_ids = [uid for uid in dict.fromkeys(filters.user_ids) if uid in allowed]
    if filters.team:
        team_ids = _ids_where(db, Profile.team, filters.team)
        user_ids = [uid for uid in user_ids if uid in team_ids]
    if filters.role and is_admin(viewer.role):
        role_ids = _ids_where(db, Profile.role, filters.role)
        user_ids = [uid for uid in user_ids if uid in role_ids]
    return user_ids


def _matches_project(entry: TimeEntry, project_id: str) -> bool:
    return any(link.project_id == project_id for link in entry.project_links or [])


def load_report_entries(db: Session, viewer: Profile, filters: ReportFilters, tz: str) -> list[TimeEntry]:
    user_ids = resolve_report_user_ids(db, viewer, filters)
    if not user_ids:
        return []
    start, end = range_bounds(filters.start_date, filters.end_date, tz)
    entries = list_entries(db, user_ids, start, end)
    if filters.project_id:
        entries = [entry for entry in entries if _matches_project(entry, filters.project_id)]
    return entries


def _project_hours(entries: Iterable[TimeEntry]) -> list[dict[str, Any]]:
    buckets: Dict[str, Dict[str, Any]] = {}
    for entry in entries:
        hours = seconds_to_hours(entry.duration)
        links = list(entry.project_links or [])
        if not links:
            bucket = buckets.setdefault(_NO_PROJECT_KEY, {"name": DEFAULT_PROJECT_LABEL, "hours": 0.0})
            bucket["hours"] += hours
            continue
        # An entry split across projects counts fully towards each of them.
        for link in links:
            if link.project_id:
                name = link.project.name if link.project is not None else UNKNOWN_PROJECT_LABEL
                key = link.project_id
            else:
                name, key = DEFAULT_PROJECT_LABEL, _NO_PROJECT_KEY
            bucket = buckets.setdefault(key, {"name": name, "hours": 0.0})
            bucket["hours"] += hours
    return list(buckets.values())


def _hours_by_day(entries: Iterable[TimeEntry], tz: str) -> Dict[date, float]:
    totals: Dict[date, float] = {}
    for entry in entries:
        day = local_date(entry.start_time, tz)
        if day is None:
            continue
        totals[day] = totals.get(day, 0.0) + seconds_to_hours(entry.duration)
    return totals


def calculate_report_metrics(
    entries: list[TimeEntry],
    start_date: date,
    end_date: date,
    tz: str,
    *,
    today: date | None = None,
) -> Dict[str, Any]:
    """Totals and chart series for a filtered set of entries."""

    total = sum(seconds_to_hours(entry.duration) for entry in entries)
    billable = sum(seconds_to_hours(entry.duration) for entry in entries if entry_is_billable(entry))
    teams = {entry.profile.team for entry in entries if entry.profile is not None and entry.profile.team}

    by_day = _hours_by_day(entries, tz)
    days = list(iter_days(start_date, end_date))
    today = today or local_today(tz)
    last_week = [today - timedelta(days=offset) for offset in range(6, -1, -1)]

    projects = _project_hours(entries)
    if projects:
        pie = {"labels": [item["name"] for item in projects], "data": [item["hours"] for item in projects]}
    else:
        pie = {"labels": [OTHER_LABEL], "data": [total]}

    return {
        "total_hours": total,
        "billable_hours": billable,
        "non_billable_hours": total - billable,
        "productive_teams": len(teams),
        "entry_count": len(entries),
        "daily": {
            "labels": [day.strftime("%b %d").replace(" 0", " ") for day in days],
            "data": [by_day.get(day, 0.0) for day in days],
        },
        "weekly": {
            "labels": [day.strftime("%a") for day in last_week],
            "data": [by_day.get(day, 0.0) for day in last_week],
        },
        "projects": pie,
    }


def export_report_csv(entries: Iterable[TimeEntry], tz: str) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(CSV_HEADERS)
    for entry in entries:
        links = list(entry.project_links or [])
        project_names = "; ".join(
            (link.project.name if link.project is not None else "N/A") for link in links
        ) or "N/A"
        day = local_date(entry.start_time, tz)
        writer.writerow(
            [
                day.isoformat() if day else "",
                entry.profile.full_name if entry.profile is not None else "Unknown",
                (entry.profile.team if entry.profile is not None else None) or "—",
                project_names,
                entry.description or "—",
                f"{seconds_to_hours(entry.duration):.2f}",
                "Yes" if links else "No",
            ]
        )
    return buffer.getvalue()


def report_filename(start_date: date, end_date: date) -> str:
    return f"time-report_{start_date.isoformat()}_{end_date.isoformat()}.csv"


def summarize(metrics: Dict[str, Any]) -> Dict[str, float]:
    """Rounded headline numbers for templates."""
    return {
        "total_hours": round_tenth(metrics["total_hours"]),
        "billable_hours": round_tenth(metrics["billable_hours"]),
        "non_billable_hours": round_tenth(metrics["non_billable_hours"]),
    }


__all__ = [
    "CSV_HEADERS",
    "DEFAULT_PROJECT_LABEL",
    "ReportFilters",
    "calculate_report_metrics",
    "export_report_csv",
    "load_report_entries",
    "report_filename",
    "resolve_report_user_ids",
    "summarize",
]
