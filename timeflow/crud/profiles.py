"""Profile lookups, first-login provisioning and role-based visibility."""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..core.roles import MANAGER_CANDIDATE_ROLES, Role, is_admin, is_supervisor
from ..db.session import utcnow
from ..models.profile import EmployeeManager, Profile
from ..services.auth_bridge import AuthUser

logger = logging.getLogger(__name__)


def get_profile(db: Session, profile_id: str) -> Profile | None:
    return db.get(Profile, profile_id)


def list_profiles(db: Session, ids: list[str] | None = None) -> list[Profile]:
    stmt = select(Profile).order_by(Profile.full_name)
    if ids is not None:
        if not ids:
            return []
        stmt = stmt.where(Profile.id.in_(ids))
    return list(db.execute(stmt).scalars().all())


def _display_name(user: AuthUser, email: str) -> str:
    metadata = user.user_metadata or {}
    return metadata.get("full_name") or metadata.get("name") or email.split("@")[0] or "User"


def ensure_profile(db: Session, user: AuthUser) -> Profile:
    """Load the profile for an auth user, creating it on first SSO login."""

    email = user.email or (user.user_metadata or {}).get("email") or ""
    profile = get_profile(db, user.id)
    if profile is None:
        profile = Profile(
            id=user.id,
            email=email,
            full_name=_display_name(user, email),
            role=Role.EMPLOYEE.value,
            team=None,
            manager_id=None,
            force_password_change=False,
        )
        db.add(profile)
        db.commit()
        db.refresh(profile)
        logger.info("profile.created", extra={"extra_data": {"user_id": user.id}})
        return profile

    if email and profile.email != email:
        profile.email = email
        profile.updated_at = utcnow()
        db.commit()
        db.refresh(profile)
    return profile


def visible_user_ids(db: Session, viewer: Profile) -> list[str]:
    """Admins see everyone, managers and HR their direct reports, others themselves."""

    if is_admin(viewer.role):
        return list(db.execute(select(Profile.id)).scalars().all())
    if is_supervisor(viewer.role):
        reports = db.execute(select(Profile.id).where(Profile.manager_id == viewer.id)).scalars().all()
        return [viewer.id, *[rid for rid in reports if rid != viewer.id]]
    return [viewer.id]


def attendance_team_ids(db: Session, viewer: Profile) -> list[str]:
    """Like ``visible_user_ids`` but managers resolve reports through ``employee_managers``."""

    if is_admin(viewer.role):
        return list(db.execute(select(Profile.id)).scalars().all())
    if is_supervisor(viewer.role):
        linked = db.execute(
            select(EmployeeManager.employee_id).where(EmployeeManager.manager_id == viewer.id)
        ).scalars().all()
        ids = [viewer.id]
        for employee_id in linked:
            if employee_id not in ids:
                ids.append(employee_id)
        return ids
    return [viewer.id]


def list_manager_candidates(db: Session) -> list[Profile]:
    stmt = select(Profile).where(Profile.role.in_(MANAGER_CANDIDATE_ROLES)).order_by(Profile.full_name)
    return list(db.execute(stmt).scalars().all())


def list_teams(db: Session) -> list[str]:
    teams = db.execute(select(Profile.team).distinct()).scalars().all()
    return sorted({team.strip() for team in teams if team and team.strip()})


def update_own_profile(db: Session, profile: Profile, payload: dict) -> Profile:
    if "full_name" in payload:
        full_name = (payload.get("full_name") or "").strip()
        if not full_name:
            raise ValueError("full_name is required")
        profile.full_name = full_name
    for field in ("email", "team", "phone", "location"):
        if field in payload:
            value = payload.get(field)
            setattr(profile, field, (value or "").strip() or None)
    profile.updated_at = utcnow()
    db.commit()
    db.refresh(profile)
    return profile


__all__ = [
    "attendance_team_ids",
    "ensure_profile",
    "get_profile",
    "list_manager_candidates",
    "list_profiles",
    "list_teams",
    "update_own_profile",
    "visible_user_ids",
]
