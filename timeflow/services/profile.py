from __future__ import annotations

import time as _time
from datetime import timedelta
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..crud.time_entries import total_duration
from ..db.session import utcnow
from ..models.profile import Profile
from ..models.project import Project, ProjectMember
from .storage import StorageClient
from .timecalc import day_bounds, local_today, range_bounds, seconds_to_hours

AVATAR_CONTENT_PREFIX = "image/"


def personal_stats(db: Session, profile: Profile, tz: str) -> dict[str, Any]:
    """Hours for today, this week (Sunday start) and this month plus project counts."""

    today = local_today(tz)
    week_start = today - timedelta(days=(today.weekday() + 1) % 7)
    month_start = today.replace(day=1)
    day_start, day_end = day_bounds(today, tz)
    week_from, week_to = range_bounds(week_start, week_start + timedelta(days=6), tz)
    next_month = (month_start + timedelta(days=32)).replace(day=1)
    month_from, month_to = range_bounds(month_start, next_month - timedelta(days=1), tz)

    statuses = db.execute(
        select(Project.status)
        .join(ProjectMember, ProjectMember.project_id == Project.id)
        .where(ProjectMember.user_id == profile.id)
    ).scalars().all()

    ids = [profile.id]
    return {
        "today_hours": seconds_to_hours(total_duration(db, ids, day_start, day_end)),
        "week_hours": seconds_to_hours(total_duration(db, ids, week_from, week_to)),
        "month_hours": seconds_to_hours(total_duration(db, ids, month_from, month_to)),
        "total_hours": seconds_to_hours(total_duration(db, ids)),
        "projects_assigned": len(statuses),
        "active_projects": sum(1 for status in statuses if status == "active"),
        "completed_projects": sum(1 for status in statuses if status == "completed"),
    }


def avatar_path(user_id: str, filename: str, *, now_ms: int | None = None) -> str:
    extension = filename.rsplit(".", 1)[-1].lower() if "." in filename else "png"
    stamp = now_ms if now_ms is not None else int(_time.time() * 1000)
    return f"{user_id}/{user_id}-{stamp}.{extension}"


def upload_avatar(
    db: Session,
    storage: StorageClient,
    profile: Profile,
    *,
    filename: str,
    content_type: str | None,
    content: bytes,
    bucket: str,
    max_bytes: int,
) -> Profile:
    if not (content_type or "").startswith(AVATAR_CONTENT_PREFIX):
        raise ValueError("Please select an image file")
    if len(content) > max_bytes:
        raise ValueError(f"Image size should be less than {max_bytes // (1024 * 1024)}MB")
    path = avatar_path(profile.id, filename or "avatar.png")
    storage.upload(bucket, path, content, content_type=content_type or "image/png", upsert=True)
    profile.avatar_url = storage.public_url(bucket, path)
    profile.updated_at = utcnow()
    db.commit()
    db.refresh(profile)
    return profile


__all__ = ["avatar_path", "personal_stats", "upload_avatar"]
