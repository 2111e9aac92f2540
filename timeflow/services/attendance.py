"""Daily attendance derived from tracker time entries.

An attendance day ``D`` starts at the reset hour (06:00 by default) in the
attendance timezone and lasts 24 hours; an entry belongs to the day in which
its ``start_time`` falls.
"""

from __future__ import annotations

import csv
import io
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Iterable
from zoneinfo import ZoneInfo

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from ..core.roles import can_view_team
from ..crud.profiles import attendance_team_ids, list_profiles
from ..models.profile import Profile
from ..models.project import Project
from ..models.screenshot import Screenshot
from ..models.time_entry import ProjectTimeEntry, TimeEntry
from .timecalc import ensure_utc, iter_days, seconds_to_hours

PRESENT_HOURS = 8
HALF_DAY_HOURS = 4
NO_PROJECT = "No Project"

CSV_HEADERS = ["Employee Name", "Department", "Date", "Clock In Time", "Status", "Hours Worked"]


@dataclass
class AttendanceRecord:
    user_id: str
    date: date
    status: str
    duration: int = 0
    clock_in: datetime | None = None
    clock_out: datetime | None = None
    profile: Profile | None = None
    entries: list[dict[str, Any]] = field(default_factory=list)

    @property
    def id(self) -> str:
        return f"{self.user_id}-{self.date.isoformat()}"

    @property
    def hours(self) -> float:
        return seconds_to_hours(self.duration)


def attendance_period(day: date, tz: str, reset_hour: int) -> tuple[datetime, datetime]:
    """UTC ``[start, end)`` of the attendance day ``day``."""
    start = datetime.combine(day, time(hour=reset_hour), tzinfo=ZoneInfo(tz))
    end = start + timedelta(days=1)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


def attendance_status(duration_seconds: int) -> str:
    hours = seconds_to_hours(duration_seconds)
    if hours >= PRESENT_HOURS:
        return "present"
    if hours >= HALF_DAY_HOURS:
        return "half_day"
    return "absent"


def status_label(status: str) -> str:
    return status.replace("_", " ").capitalize()


def _entry_detail(entry: TimeEntry) -> dict[str, Any]:
    projects = [
        {
            "project_id": link.project_id,
            "project_name": link.project.name if link.project is not None else NO_PROJECT,
            "task_name": link.project.task.name if link.project is not None and link.project.task is not None else None,
        }
        for link in entry.project_links or []
    ]
    keystrokes = 0
    mouse_movements = 0
    score_total = 0.0
    samples = 0
    for shot in entry.screenshots or []:
        for log in shot.activity_logs or []:
            keystrokes += log.keystrokes or 0
            mouse_movements += log.mouse_movements or 0
            score_total += log.productivity_score or 0
            samples += 1
    average = score_total / samples if samples else 0.0
    return {
        "id": entry.id,
        "start_time": ensure_utc(entry.start_time),
        "end_time": ensure_utc(entry.end_time),
        "duration": entry.duration or 0,
        "description": entry.description,
        "projects": projects or [{"project_id": None, "project_name": NO_PROJECT, "task_name": None}],
        "activity": {
            "total_keystrokes": keystrokes,
            "total_mouse_movements": mouse_movements,
            "productivity_score": round(average * 10) / 10,
        },
    }


def _load_window(db: Session, user_ids: list[str] | None, start: datetime, end: datetime) -> list[TimeEntry]:
    stmt = (
        select(TimeEntry)
        .where(TimeEntry.start_time >= start, TimeEntry.start_time <= end)
        .options(
            selectinload(TimeEntry.profile),
            selectinload(TimeEntry.project_links)
            .selectinload(ProjectTimeEntry.project)
            .selectinload(Project.task),
            selectinload(TimeEntry.screenshots).selectinload(Screenshot.activity_logs),
        )
        .order_by(TimeEntry.start_time.desc())
    )
    if user_ids is not None:
        stmt = stmt.where(TimeEntry.user_id.in_(user_ids))
    return list(db.execute(stmt).scalars().all())


def build_attendance(
    entries: Iterable[TimeEntry],
    user_ids: list[str],
    start_date: date,
    end_date: date,
    *,
    tz: str,
    reset_hour: int,
    profiles: dict[str, Profile] | None = None,
    now: datetime | None = None,
) -> list[AttendanceRecord]:
    """One record per user and day in ``[start_date, end_date]``, newest day first."""

    now = ensure_utc(now) or datetime.now(timezone.utc)
    profiles = profiles or {}
    by_user: dict[str, list[TimeEntry]] = {}
    for entry in entries:
        by_user.setdefault(entry.user_id, []).append(entry)

    records: list[AttendanceRecord] = []
    for user_id in user_ids:
        user_entries = by_user.get(user_id, [])
        profile = profiles.get(user_id) or next((e.profile for e in user_entries if e.profile is not None), None)
        for day in iter_days(start_date, end_date):
            period_start, period_end = attendance_period(day, tz, reset_hour)
            day_entries = [
                entry for entry in user_entries if period_start <= ensure_utc(entry.start_time) < period_end
            ]
            if not day_entries:
                records.append(AttendanceRecord(user_id=user_id, date=day, status="absent", profile=profile))
                continue
            duration = sum(entry.duration or 0 for entry in day_entries)
            clock_in = min(ensure_utc(entry.start_time) for entry in day_entries)
            # Running entries have no end yet and count as ending now.
            clock_out = max(ensure_utc(entry.end_time) or now for entry in day_entries)
            records.append(
                AttendanceRecord(
                    user_id=user_id,
                    date=day,
                    status=attendance_status(duration),
                    duration=duration,
                    clock_in=clock_in,
                    clock_out=clock_out,
                    profile=profile,
                    entries=[_entry_detail(entry) for entry in day_entries],
                )
            )
    records.sort(key=lambda record: record.date, reverse=True)
    return records


def load_attendance(
    db: Session,
    viewer: Profile,
    start_date: date,
    end_date: date,
    *,
    tz: str,
    reset_hour: int,
    selected_user_ids: list[str] | None = None,
    now: datetime | None = None,
) -> list[AttendanceRecord]:
    if end_date < start_date:
        raise ValueError("end date must not be before start date")

    allowed = attendance_team_ids(db, viewer)
    if can_view_team(viewer.role):
        selected = [uid for uid in (selected_user_ids or []) if uid in allowed]
    else:
        selected = [viewer.id]

    window_start = attendance_period(start_date, tz, reset_hour)[0] - timedelta(hours=6)
    window_end = attendance_period(end_date, tz, reset_hour)[1]
    entries = _load_window(db, selected or allowed, window_start, window_end)

    if selected:
        user_ids = selected
    else:
        user_ids = list(dict.fromkeys(entry.user_id for entry in entries))
    profiles = {profile.id: profile for profile in list_profiles(db, user_ids)}
    return build_attendance(
        entries,
        user_ids,
        start_date,
        end_date,
        tz=tz,
        reset_hour=reset_hour,
        profiles=profiles,
        now=now,
    )


def search_records(records: Iterable[AttendanceRecord], term: str | None) -> list[AttendanceRecord]:
    needle = (term or "").strip().lower()
    if not needle:
        return list(records)
    matches = []
    for record in records:
        name = (record.profile.full_name if record.profile else "") or ""
        team = (record.profile.team if record.profile else "") or ""
        if needle in name.lower() or needle in team.lower():
            matches.append(record)
    return matches


def export_attendance_csv(records: Iterable[AttendanceRecord], tz: str) -> str:
    zone = ZoneInfo(tz)
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(CSV_HEADERS)
    for record in records:
        clock_in = record.clock_in.astimezone(zone).strftime("%I:%M %p") if record.clock_in else "—"
        writer.writerow(
            [
                (record.profile.full_name if record.profile else None) or "Unknown",
                (record.profile.team if record.profile else None) or "—",
                f"{record.date.strftime('%b')} {record.date.day}, {record.date.year}",
                clock_in,
                status_label(record.status),
                f"{record.hours:.2f}h",
            ]
        )
    return buffer.getvalue()


def attendance_filename(start_date: date, end_date: date) -> str:
    return f"attendance-report_{start_date.isoformat()}_{end_date.isoformat()}.csv"


__all__ = [
    "AttendanceRecord",
    "CSV_HEADERS",
    "attendance_filename",
    "attendance_period",
    "attendance_status",
    "build_attendance",
    "export_attendance_csv",
    "load_attendance",
    "search_records",
    "status_label",
]
