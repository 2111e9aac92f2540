"""Screen and camera captures: daily listing, hourly grouping, activity summaries, purge."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Iterable
from urllib.parse import urlsplit
from zoneinfo import ZoneInfo

from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from ..core.config import settings
from ..crud.profiles import visible_user_ids
from ..models.profile import Profile
from ..models.screenshot import ActivityLog, Screenshot, ScreenshotActivity
from ..models.time_entry import ProjectTimeEntry, TimeEntry
from .storage import public_url
from .timecalc import day_bounds, ensure_utc

logger = logging.getLogger(__name__)

LIST_LIMIT = 500
CAMERA_PREFIX = "camera/"
CAMERA_TYPES = ("camera", "webcam")
SCREEN_TYPES = ("screen", "screenshot", "desktop")
TYPE_FILTERS = {"camera": CAMERA_TYPES, "screenshot": SCREEN_TYPES}


def is_camera(kind: str | None) -> bool:
    return kind in CAMERA_TYPES


def storage_path_for(storage_path: str, kind: str | None) -> str:
    """Camera captures live under ``camera/`` in the bucket; screen captures at the root."""
    if is_camera(kind):
        return storage_path if storage_path.startswith(CAMERA_PREFIX) else f"{CAMERA_PREFIX}{storage_path}"
    if storage_path.startswith(CAMERA_PREFIX):
        return storage_path[len(CAMERA_PREFIX):]
    return storage_path


def image_url(screenshot: Screenshot, bucket: str | None = None) -> str:
    return public_url(bucket or settings.SCREENSHOTS_BUCKET, storage_path_for(screenshot.storage_path, screenshot.type))


def list_screenshots(
    db: Session,
    viewer: Profile,
    day: date,
    tz: str,
    *,
    user_id: str | None = None,
    type_filter: str | None = None,
    limit: int = LIST_LIMIT,
) -> list[Screenshot]:
    """Captures taken on ``day`` in ``tz``, newest first.

    ``user_id`` outside the viewer's visibility yields an empty list.
    """
    visible = visible_user_ids(db, viewer)
    if user_id:
        if user_id not in visible:
            return []
        user_ids = [user_id]
    else:
        user_ids = visible

    start, end = day_bounds(day, tz)
    stmt = (
        select(Screenshot)
        .join(TimeEntry, TimeEntry.id == Screenshot.time_entry_id)
        .options(
            selectinload(Screenshot.time_entry).selectinload(TimeEntry.profile),
            selectinload(Screenshot.time_entry)
            .selectinload(TimeEntry.project_links)
            .selectinload(ProjectTimeEntry.project),
            selectinload(Screenshot.activity),
            selectinload(Screenshot.activity_logs),
        )
        .where(
            Screenshot.taken_at >= start,
            Screenshot.taken_at <= end,
            TimeEntry.user_id.in_(user_ids),
        )
        .order_by(Screenshot.taken_at.desc())
        .limit(limit)
    )
    if type_filter and type_filter != "all":
        kinds = TYPE_FILTERS.get(type_filter, (type_filter,))
        stmt = stmt.where(Screenshot.type.in_(kinds))
    return list(db.execute(stmt).scalars().all())


def _matches(screenshot: Screenshot, term: str) -> bool:
    entry = screenshot.time_entry
    if entry is None:
        return False
    name = (entry.profile.full_name if entry.profile else "") or ""
    return term in name.lower() or term in (entry.description or "").lower()


def group_by_hour(screenshots: Iterable[Screenshot], tz: str, search: str | None = None) -> list[dict[str, Any]]:
    """Buckets keyed by local hour of capture, latest hour first."""
    zone = ZoneInfo(tz)
    term = (search or "").strip().lower()
    grouped: dict[int, list[Screenshot]] = {}
    for shot in screenshots:
        if shot.taken_at is None:
            continue
        if term and not _matches(shot, term):
            continue
        hour = ensure_utc(shot.taken_at).astimezone(zone).hour
        grouped.setdefault(hour, []).append(shot)

    groups = []
    for hour in sorted(grouped, reverse=True):
        shots = sorted(grouped[hour], key=lambda s: ensure_utc(s.taken_at), reverse=True)
        groups.append({"hour": hour, "label": f"{hour:02d}:00 - {hour + 1:02d}:00", "screenshots": shots})
    return groups


def website_domain(url: str) -> str:
    if url.startswith("file://"):
        return "Local File"
    try:
        host = urlsplit(url if url.startswith("http") else f"https://{url}").hostname
    except ValueError:
        return url
    if not host:
        return url
    return host.replace("www.", "", 1)


@dataclass
class ActivitySummary:
    source: str
    mouse_clicks: int = 0
    mouse_active_seconds: float = 0.0
    mouse_movement_seconds: float = 0.0
    scroll_events: int = 0
    keystrokes: int = 0
    keyboard_active_seconds: float = 0.0
    key_frequency: dict[str, int] = field(default_factory=dict)
    websites: list[dict[str, Any]] = field(default_factory=list)
    suspicious_flags: list[str] = field(default_factory=list)
    mouse_percentage: float = 0.0
    keyboard_percentage: float = 0.0
    confidence_score: int = 0
    active_applications: list[Any] = field(default_factory=list)
    device_os: str = "Unknown"
    app_version: str = "Unknown"

    def to_dict(self) -> dict[str, Any]:
        return dict(self.__dict__)


def confidence_score(flags: int, clicks: int, keystrokes: int, mouse_pct: float, keyboard_pct: float) -> int:
    score = 100 - flags * 15
    if clicks == 0 and keystrokes == 0:
        score -= 30
    if mouse_pct < 5 and keyboard_pct < 5:
        score -= 20
    return max(0, min(100, score))


def _details(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def summarize_activity(rows: list[ScreenshotActivity]) -> ActivitySummary:
    summary = ActivitySummary(source="screenshot_activity")
    domains: dict[str, dict[str, Any]] = {}
    flags: list[str] = []
    for row in rows:
        mouse = _details(row.mouse_activity_details)
        keyboard = _details(row.keyboard_activity_details)
        summary.mouse_clicks += int(mouse.get("total_clicks") or 0)
        summary.mouse_active_seconds += (mouse.get("active_time_ms") or 0) / 1000
        summary.mouse_movement_seconds += (mouse.get("movement_duration_ms") or 0) / 1000
        summary.scroll_events += len(mouse.get("scroll_events") or [])
        summary.keystrokes += int(keyboard.get("total_keystrokes") or 0)
        summary.keyboard_active_seconds += (keyboard.get("active_time_ms") or 0) / 1000
        for key, count in (keyboard.get("key_frequency") or {}).items():
            summary.key_frequency[key] = summary.key_frequency.get(key, 0) + int(count or 0)

        for site in row.visited_websites or []:
            if not isinstance(site, dict):
                continue
            domain = site.get("domain") or website_domain(site.get("url") or "") or "Unknown"
            bucket = domains.setdefault(domain, {"domain": domain, "visit_count": 0, "total_duration": 0})
            bucket["visit_count"] += 1
            bucket["total_duration"] += site.get("duration_seconds") or 0

        for flag in row.suspicious_activity_flags or []:
            if flag not in flags:
                flags.append(flag)
        summary.active_applications.extend(row.active_applications or [])

    summary.websites = sorted(domains.values(), key=lambda item: item["visit_count"], reverse=True)
    summary.suspicious_flags = flags
    if rows:
        avg_mouse = sum(row.mouse_usage_percentage or 0 for row in rows) / len(rows)
        avg_keyboard = sum(row.keyboard_usage_percentage or 0 for row in rows) / len(rows)
        summary.device_os = rows[0].device_os or "Unknown"
        summary.app_version = rows[0].app_version or "Unknown"
    else:
        avg_mouse = avg_keyboard = 0.0

    total = summary.mouse_clicks + summary.keystrokes
    summary.mouse_percentage = summary.mouse_clicks / total * 100 if total else avg_mouse
    summary.keyboard_percentage = summary.keystrokes / total * 100 if total else avg_keyboard
    summary.confidence_score = confidence_score(
        len(flags), summary.mouse_clicks, summary.keystrokes, avg_mouse, avg_keyboard
    )
    return summary


def legacy_flags(logs: list[ActivityLog], movements: int, keystrokes: int) -> list[str]:
    flags = []
    if movements < 10 and keystrokes < 50:
        flags.append("Very low activity detected")
    if logs:
        mean = keystrokes / len(logs)
        variance = sum(((log.keystrokes or 0) - mean) ** 2 for log in logs) / len(logs)
        if variance < 1 and keystrokes > 0:
            flags.append("Repetitive keystroke pattern detected")
        avg_productivity = sum(log.productivity_score or 0 for log in logs) / len(logs)
        if avg_productivity < 20 and (movements > 100 or keystrokes > 200):
            flags.append("Possible inactivity bypass detected")
    if movements > keystrokes * 5 and movements > 200:
        flags.append("Artificial mouse movement pattern detected")
    return flags


def summarize_legacy(logs: list[ActivityLog]) -> ActivitySummary:
    """Estimates from the older per-capture counters."""
    movements = sum(log.mouse_movements or 0 for log in logs)
    keystrokes = sum(log.keystrokes or 0 for log in logs)

    visits: dict[str, int] = {}
    for log in logs:
        for url in log.urls or []:
            if isinstance(url, str) and url:
                domain = website_domain(url)
                visits[domain] = visits.get(domain, 0) + 1
    websites = [
        {"domain": domain, "visit_count": count, "total_duration": count * 30}
        for domain, count in sorted(visits.items(), key=lambda item: item[1], reverse=True)
    ]

    flags = legacy_flags(logs, movements, keystrokes)
    score = 100 - len(flags) * 15
    if movements < 10 and keystrokes < 50:
        score -= 20
    if logs and sum(log.productivity_score or 0 for log in logs) / len(logs) < 30:
        score -= 15

    total = movements + keystrokes
    return ActivitySummary(
        source="activity_logs",
        mouse_clicks=movements // 10,
        mouse_active_seconds=movements * 0.1,
        scroll_events=movements // 50,
        keystrokes=keystrokes,
        keyboard_active_seconds=keystrokes / 5,
        websites=websites,
        suspicious_flags=flags,
        mouse_percentage=movements / total * 100 if total else 0.0,
        keyboard_percentage=keystrokes / total * 100 if total else 0.0,
        confidence_score=max(0, min(100, score)),
    )


def activity_summary(screenshot: Screenshot) -> ActivitySummary:
    if screenshot.activity:
        return summarize_activity(list(screenshot.activity))
    if screenshot.activity_logs:
        return summarize_legacy(list(screenshot.activity_logs))
    return ActivitySummary(source="none", suspicious_flags=["No activity data available for this screenshot"])


def get_screenshot(db: Session, viewer: Profile, screenshot_id: str) -> Screenshot | None:
    stmt = (
        select(Screenshot)
        .options(
            selectinload(Screenshot.time_entry).selectinload(TimeEntry.profile),
            selectinload(Screenshot.activity),
            selectinload(Screenshot.activity_logs),
        )
        .where(Screenshot.id == screenshot_id)
    )
    shot = db.execute(stmt).scalars().first()
    if shot is None or shot.time_entry is None:
        return None
    if shot.time_entry.user_id not in visible_user_ids(db, viewer):
        return None
    return shot


def serialize_screenshot(screenshot: Screenshot) -> dict[str, Any]:
    entry = screenshot.time_entry
    summary = activity_summary(screenshot)
    return {
        "id": screenshot.id,
        "type": screenshot.type,
        "taken_at": ensure_utc(screenshot.taken_at).isoformat() if screenshot.taken_at else None,
        "image_url": image_url(screenshot),
        "user_id": entry.user_id if entry else None,
        "user_name": entry.profile.full_name if entry and entry.profile else None,
        "description": entry.description if entry else None,
        "activity": {
            "keystrokes": summary.keystrokes,
            "mouse_clicks": summary.mouse_clicks,
            "mouse_percentage": round(summary.mouse_percentage, 1),
            "keyboard_percentage": round(summary.keyboard_percentage, 1),
            "confidence_score": summary.confidence_score,
        },
    }


def _before(cutoff: datetime):
    return select(Screenshot.id).where(Screenshot.taken_at < cutoff)


def purge_preview(db: Session, cutoff: datetime) -> dict[str, Any]:
    """What :func:`purge_screenshots` would delete for ``cutoff``."""
    cutoff = ensure_utc(cutoff)
    rows = db.execute(
        select(Screenshot.type, func.count(), func.min(Screenshot.taken_at), func.max(Screenshot.taken_at))
        .where(Screenshot.taken_at < cutoff)
        .group_by(Screenshot.type)
        .order_by(Screenshot.type)
    ).all()
    by_type = [
        {"type": kind, "count": count, "oldest": ensure_utc(oldest), "newest": ensure_utc(newest)}
        for kind, count, oldest, newest in rows
    ]
    ids = _before(cutoff)
    return {
        "cutoff": cutoff,
        "by_type": by_type,
        "screenshots": sum(item["count"] for item in by_type),
        "screenshot_activity": db.scalar(
            select(func.count()).select_from(ScreenshotActivity).where(ScreenshotActivity.screenshot_id.in_(ids))
        )
        or 0,
        "activity_logs": db.scalar(
            select(func.count()).select_from(ActivityLog).where(ActivityLog.screenshot_id.in_(ids))
        )
        or 0,
    }


def purge_screenshots(db: Session, cutoff: datetime) -> dict[str, int]:
    """Delete captures taken before ``cutoff`` with their activity rows.

    Storage objects are left in place.
    """
    cutoff = ensure_utc(cutoff)
    ids = _before(cutoff)
    try:
        activity = db.execute(
            delete(ScreenshotActivity).where(ScreenshotActivity.screenshot_id.in_(ids)).execution_options(synchronize_session=False)
        ).rowcount
        logs = db.execute(
            delete(ActivityLog).where(ActivityLog.screenshot_id.in_(ids)).execution_options(synchronize_session=False)
        ).rowcount
        shots = db.execute(
            delete(Screenshot).where(Screenshot.taken_at < cutoff).execution_options(synchronize_session=False)
        ).rowcount
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("screenshots.purge_failed", extra={"extra_data": {"cutoff": cutoff.isoformat()}})
        raise
    logger.info(
        "screenshots.purged",
        extra={"extra_data": {"cutoff": cutoff.isoformat(), "screenshots": shots, "activity": activity, "logs": logs}},
    )
    return {"screenshots": shots or 0, "screenshot_activity": activity or 0, "activity_logs": logs or 0}


__all__ = [
    "ActivitySummary",
    "activity_summary",
    "confidence_score",
    "get_screenshot",
    "group_by_hour",
    "image_url",
    "list_screenshots",
    "purge_preview",
    "purge_screenshots",
    "serialize_screenshot",
    "storage_path_for",
    "summarize_activity",
    "summarize_legacy",
    "website_domain",
]
