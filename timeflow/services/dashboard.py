from __future__ import annotations

import math
from typing import Any, Dict

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ..crud.profiles import visible_user_ids
from ..crud.time_entries import (
    ENTRIES_PER_PAGE,
    active_user_ids,
    entry_is_billable,
    entry_project_names,
    recent_entries,
    total_duration,
)
from ..models.profile import Profile
from ..models.project import Project, ProjectMember
from .timecalc import day_bounds, local_today, seconds_to_hours


def count_active_projects(db: Session, user_id: str) -> int:
    stmt = (
        select(func.count(ProjectMember.id))
        .join(Project, Project.id == ProjectMember.project_id)
        .where(ProjectMember.user_id == user_id, Project.status == "active")
    )
    return int(db.execute(stmt).scalar_one() or 0)


def dashboard_summary(db: Session, viewer: Profile, tz: str, page: int = 1) -> Dict[str, Any]:
    """Everything the dashboard page shows for the signed-in user."""

    today_start, today_end = day_bounds(local_today(tz), tz)
    entries, total_count = recent_entries(db, viewer.id, page=page)
    team_ids = visible_user_ids(db, viewer)

    rows = [
        {
            "entry": entry,
            "projects": entry_project_names(entry),
            "billable": entry_is_billable(entry),
        }
        for entry in entries
    ]
    return {
        "entries": rows,
        "page": max(page, 1),
        "pages": max(1, math.ceil(total_count / ENTRIES_PER_PAGE)),
        "entry_count": total_count,
        "today_hours": seconds_to_hours(total_duration(db, [viewer.id], today_start, today_end)),
        "total_hours": seconds_to_hours(total_duration(db, [viewer.id])),
        "active_projects": count_active_projects(db, viewer.id),
        "team_total": len(team_ids),
        "team_online": len(active_user_ids(db, team_ids, today_start, today_end)),
    }
