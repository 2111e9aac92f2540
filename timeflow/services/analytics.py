"""Organisation-wide numbers for the admin analytics tab."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..models.profile import Profile
from ..models.project import Project
from ..models.time_entry import ProjectTimeEntry, TimeEntry
from .timecalc import iter_days, local_date, local_today, round_tenth, seconds_to_hours

RANGES = {"7d": 7, "30d": 30, "90d": 90, "all": None}
TOP_USERS = 10
ATTENDANCE_HOURS = 4


def range_start(range_key: str, now: datetime | None = None) -> datetime | None:
    if range_key not in RANGES:
        raise ValueError("range must be one of 7d, 30d, 90d, all")
    days = RANGES[range_key]
    if days is None:
        return None
    return (now or datetime.now(timezone.utc)) - timedelta(days=days)


def admin_analytics(db: Session, range_key: str, tz: str, *, now: datetime | None = None) -> Dict[str, Any]:
    since = range_start(range_key, now)

    profiles = db.execute(select(Profile.id, Profile.full_name, Profile.role)).all()
    names = {pid: name for pid, name, _ in profiles}
    total_users = len(profiles)

    stmt = select(TimeEntry.user_id, TimeEntry.start_time, TimeEntry.duration)
    if since is not None:
        stmt = stmt.where(TimeEntry.start_time >= since)
    entries = db.execute(stmt).all()

    seconds_by_user: dict[str, int] = {}
    for user_id, _, duration in entries:
        seconds_by_user[user_id] = seconds_by_user.get(user_id, 0) + (duration or 0)

    top_users = sorted(
        (
            {"user_id": uid, "name": names.get(uid) or "Unknown", "hours": round_tenth(seconds_to_hours(secs))}
            for uid, secs in seconds_by_user.items()
        ),
        key=lambda item: item["hours"],
        reverse=True,
    )[:TOP_USERS]

    attending = sum(1 for secs in seconds_by_user.values() if seconds_to_hours(secs) >= ATTENDANCE_HOURS)
    attendance_rate = attending / total_users * 100 if total_users else 0.0

    today = local_today(tz) if now is None else local_date(now, tz)
    days = list(iter_days(today - timedelta(days=6), today))
    active_by_day: dict = {day: set() for day in days}
    hours_by_day: dict = {day: 0.0 for day in days}
    for user_id, start_time, duration in entries:
        day = local_date(start_time, tz)
        if day in active_by_day:
            active_by_day[day].add(user_id)
            hours_by_day[day] += seconds_to_hours(duration)

    roles: dict[str, int] = {}
    for _, _, role in profiles:
        roles[role] = roles.get(role, 0) + 1

    link_stmt = (
        select(ProjectTimeEntry.project_id, TimeEntry.duration)
        .join(TimeEntry, TimeEntry.id == ProjectTimeEntry.time_entry_id)
    )
    if since is not None:
        link_stmt = link_stmt.where(TimeEntry.start_time >= since)
    project_seconds: dict[str | None, int] = {}
    for project_id, duration in db.execute(link_stmt).all():
        project_seconds[project_id] = project_seconds.get(project_id, 0) + (duration or 0)
    projects = db.execute(select(Project.id, Project.name).order_by(Project.name)).all()

    labels = [f"{day.strftime('%b')} {day.day}" for day in days]
    return {
        "range": range_key,
        "total_users": total_users,
        "active_users": len(seconds_by_user),
        "total_hours": round_tenth(seconds_to_hours(sum(seconds_by_user.values()))),
        "attendance_rate": round_tenth(attendance_rate),
        "attendance": {"present": attending, "absent": total_users - attending},
        "top_users": top_users,
        "user_activity": {"labels": labels, "data": [len(active_by_day[day]) for day in days]},
        "hours_trend": {"labels": labels, "data": [round(hours_by_day[day], 2) for day in days]},
        "role_distribution": {"labels": list(roles), "data": list(roles.values())},
        "project_hours": {
            "labels": [name for _, name in projects],
            "data": [round_tenth(seconds_to_hours(project_seconds.get(pid, 0))) for pid, _ in projects],
        },
    }


__all__ = ["RANGES", "admin_analytics", "range_start"]
