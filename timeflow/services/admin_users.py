"""User administration: hosted auth accounts plus their ``profiles`` rows."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.errors import BackendError
from ..core.roles import Role, normalize_role
from ..crud.profiles import get_profile
from ..db.session import utcnow
from ..models.profile import Profile
from .auth_bridge import AuthClient
from .changefeed import feed

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6
CAPTURE_FIELDS = {"screenshot": "enable_screenshot_capture", "camera": "enable_camera_capture"}


@dataclass
class AdminResult:
    profile: Profile | None
    message: str
    # Set when the profile change succeeded but the auth server refused part of it.
    warning: str | None = None


def _role(value: str | None) -> str:
    return normalize_role(value or Role.EMPLOYEE.value)


def _clean(value: str | None) -> str | None:
    return (value or "").strip() or None


def create_user(db: Session, client: AuthClient, payload: dict) -> AdminResult:
    email = (payload.get("email") or "").strip()
    password = payload.get("password") or ""
    full_name = (payload.get("full_name") or "").strip()
    if not email or not full_name:
        raise ValueError("Email and full name are required")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValueError("Password must be at least 6 characters")
    role = _role(payload.get("role"))

    user = client.admin_create_user(email=email, password=password, email_confirm=True)
    if not user or not user.id:
        raise BackendError("Failed to create user account")

    profile = Profile(
        id=user.id,
        email=email,
        full_name=full_name,
        role=role,
        team=_clean(payload.get("team")),
        manager_id=_clean(payload.get("manager_id")),
        force_password_change=True,
        enable_screenshot_capture=True,
        enable_camera_capture=True,
    )
    db.add(profile)
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("admin.profile_insert_failed", extra={"extra_data": {"user_id": user.id}})
        try:
            client.admin_delete_user(user.id)
        except BackendError as exc:
            logger.warning("admin.auth_cleanup_failed", extra={"extra_data": {"user_id": user.id, "error": exc.message}})
        raise
    db.refresh(profile)
    feed.publish("profiles", "insert", profile.id)
    return AdminResult(profile, "User created successfully!")


def update_user(db: Session, client: AuthClient, profile: Profile, payload: dict) -> AdminResult:
    """Save the profile, then push email/password changes to the auth server."""

    password = (payload.get("password") or "").strip()
    if password and len(password) < MIN_PASSWORD_LENGTH:
        raise ValueError("Password must be at least 6 characters")
    full_name = (payload.get("full_name") or profile.full_name or "").strip()
    if not full_name:
        raise ValueError("full_name is required")

    original_email = profile.email
    email = (payload.get("email") or original_email or "").strip()
    profile.email = email
    profile.full_name = full_name
    profile.role = _role(payload.get("role") or profile.role)
    profile.team = _clean(payload.get("team"))
    profile.manager_id = _clean(payload.get("manager_id"))
    profile.updated_at = utcnow()
    db.commit()
    db.refresh(profile)
    feed.publish("profiles", "update", profile.id)

    changes: dict = {}
    if email != original_email:
        changes.update(email=email, email_confirm=True)
    if password:
        changes["password"] = password

    warning = None
    if changes:
        try:
            client.admin_update_user(profile.id, changes)
        except BackendError as exc:
            logger.warning("admin.auth_update_failed", extra={"extra_data": {"user_id": profile.id, "error": exc.message}})
            what = "password" if password else "email"
            warning = f"Profile updated, but {what} could not be changed. Admin API access may be required."

    message = "User saved successfully! Password has been changed." if password else "User saved successfully!"
    return AdminResult(profile, message, warning)


def delete_user(db: Session, client: AuthClient, user_id: str) -> AdminResult:
    profile = get_profile(db, user_id)
    if profile is None:
        raise LookupError("User not found")
    db.delete(profile)
    db.commit()
    feed.publish("profiles", "delete", user_id)
    try:
        client.admin_delete_user(user_id)
    except BackendError as exc:
        logger.warning("admin.auth_delete_failed", extra={"extra_data": {"user_id": user_id, "error": exc.message}})
    return AdminResult(None, "User deleted successfully!")


def reset_password(db: Session, client: AuthClient, profile: Profile) -> AdminResult:
    """Send a recovery link; when that is refused, force a change at next login."""

    if profile.email:
        try:
            client.admin_generate_recovery_link(profile.email)
            return AdminResult(profile, "Password reset email sent to user.")
        except BackendError as exc:
            logger.info("admin.recovery_link_failed", extra={"extra_data": {"user_id": profile.id, "error": exc.message}})

    profile.force_password_change = True
    profile.updated_at = utcnow()
    db.commit()
    db.refresh(profile)
    return AdminResult(profile, "Password reset initiated. User will be prompted to change password on next login.")


def toggle_capture(db: Session, profile: Profile, setting: str) -> AdminResult:
    field = CAPTURE_FIELDS.get(setting)
    if field is None:
        raise ValueError("setting must be 'screenshot' or 'camera'")
    value = not bool(getattr(profile, field))
    setattr(profile, field, value)
    profile.updated_at = utcnow()
    db.commit()
    db.refresh(profile)
    feed.publish("profiles", "update", profile.id)
    label = "Screenshot" if setting == "screenshot" else "Camera"
    return AdminResult(profile, f"{label} capture {'enabled' if value else 'disabled'} for user")


__all__ = ["AdminResult", "create_user", "delete_user", "reset_password", "toggle_capture", "update_user"]
