from __future__ import annotations

from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ..crud.profiles import list_profiles, visible_user_ids
from ..crud.time_entries import duration_by_user
from ..models.profile import Profile
from ..models.project import ProjectMember
from .timecalc import day_bounds, local_today, seconds_to_hours


def _project_counts(db: Session, user_ids: list[str]) -> dict[str, int]:
    if not user_ids:
        return {}
    stmt = (
        select(ProjectMember.user_id, func.count(ProjectMember.id))
        .where(ProjectMember.user_id.in_(user_ids))
        .group_by(ProjectMember.user_id)
    )
    return {user_id: int(count) for user_id, count in db.execute(stmt).all()}


def team_overview(
    db: Session,
    viewer: Profile,
    tz: str,
    *,
    search: str | None = None,
    role: str | None = None,
    department: str | None = None,
) -> dict[str, Any]:
    """Visible team members ordered by name with today's hours and project counts."""

    members = list_profiles(db, visible_user_ids(db, viewer))
    ids = [member.id for member in members]
    start, end = day_bounds(local_today(tz), tz)
    today = duration_by_user(db, ids, start, end)
    projects = _project_counts(db, ids)

    rows = [
        {
            "profile": member,
            "hours_today": seconds_to_hours(today.get(member.id, 0)),
            "projects_assigned": projects.get(member.id, 0),
        }
        for member in members
    ]

    needle = (search or "").strip().lower()
    filtered = []
    for row in rows:
        profile = row["profile"]
        if needle and needle not in (profile.full_name or "").lower() and needle not in (profile.role or "").lower():
            continue
        if role and role != "all" and profile.role != role:
            continue
        if department and department != "all" and profile.team != department:
            continue
        filtered.append(row)

    return {
        "members": filtered,
        "roles": sorted({member.role for member in members if member.role}),
        "departments": sorted({member.team for member in members if member.team}),
        "total": len(members),
    }


__all__ = ["team_overview"]
