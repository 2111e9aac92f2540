"""Read helpers for tracker time entries (the desktop tracker writes them)."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import desc, func, select
from sqlalchemy.orm import Session, selectinload

from ..models.time_entry import ProjectTimeEntry, TimeEntry

ENTRIES_PER_PAGE = 10


def _with_links(stmt):
    return stmt.options(
        selectinload(TimeEntry.profile),
        selectinload(TimeEntry.project_links).selectinload(ProjectTimeEntry.project),
    )


def recent_entries(db: Session, user_id: str, page: int = 1, per_page: int = ENTRIES_PER_PAGE):
    """One page of a user's entries, newest first, plus the total entry count."""
    page = max(page, 1)
    total = db.execute(select(func.count(TimeEntry.id)).where(TimeEntry.user_id == user_id)).scalar_one()
    stmt = _with_links(
        select(TimeEntry)
        .where(TimeEntry.user_id == user_id)
        .order_by(desc(TimeEntry.created_at))
        .limit(per_page)
        .offset((page - 1) * per_page)
    )
    return list(db.execute(stmt).scalars().all()), int(total or 0)


def list_entries(
    db: Session,
    user_ids: list[str] | None,
    start: datetime | None = None,
    end: datetime | None = None,
    *,
    end_exclusive: bool = False,
) -> list[TimeEntry]:
    """Entries whose ``start_time`` falls in the window, oldest first.

    ``user_ids=None`` means every user; an empty list matches nothing.
    """
    if user_ids is not None and not user_ids:
        return []
    stmt = select(TimeEntry)
    if user_ids is not None:
        stmt = stmt.where(TimeEntry.user_id.in_(user_ids))
    if start is not None:
        stmt = stmt.where(TimeEntry.start_time >= start)
    if end is not None:
        stmt = stmt.where(TimeEntry.start_time < end if end_exclusive else TimeEntry.start_time <= end)
    stmt = _with_links(stmt.order_by(TimeEntry.start_time))
    return list(db.execute(stmt).scalars().all())


def total_duration(
    db: Session,
    user_ids: list[str],
    start: datetime | None = None,
    end: datetime | None = None,
) -> int:
    """Sum of ``duration`` seconds for the users, optionally within a window."""
    if not user_ids:
        return 0
    stmt = select(func.coalesce(func.sum(TimeEntry.duration), 0)).where(TimeEntry.user_id.in_(user_ids))
    if start is not None:
        stmt = stmt.where(TimeEntry.start_time >= start)
    if end is not None:
        stmt = stmt.where(TimeEntry.start_time <= end)
    return int(db.execute(stmt).scalar_one() or 0)


def active_user_ids(db: Session, user_ids: list[str], start: datetime, end: datetime) -> list[str]:
    if not user_ids:
        return []
    stmt = (
        select(TimeEntry.user_id)
        .where(TimeEntry.user_id.in_(user_ids), TimeEntry.start_time >= start, TimeEntry.start_time <= end)
        .distinct()
    )
    return list(db.execute(stmt).scalars().all())


def duration_by_user(db: Session, user_ids: list[str], start: datetime, end: datetime) -> dict[str, int]:
    if not user_ids:
        return {}
    stmt = (
        select(TimeEntry.user_id, func.coalesce(func.sum(TimeEntry.duration), 0))
        .where(TimeEntry.user_id.in_(user_ids), TimeEntry.start_time >= start, TimeEntry.start_time <= end)
        .group_by(TimeEntry.user_id)
    )
    return {user_id: int(total or 0) for user_id, total in db.execute(stmt).all()}


def entry_project_names(entry: TimeEntry) -> list[str]:
    names = [link.project.name for link in entry.project_links or [] if link.project is not None]
    return names


def entry_is_billable(entry: TimeEntry) -> bool:
    """Linked to at least one project and not every link marked non-billable."""
    links = list(entry.project_links or [])
    if not links:
        return False
    return any(link.billable is not False for link in links)


__all__ = [
    "ENTRIES_PER_PAGE",
    "active_user_ids",
    "duration_by_user",
    "entry_is_billable",
    "entry_project_names",
    "list_entries",
    "recent_entries",
    "total_duration",
]
