"""Required-version policy for the desktop tracker.

The tracker calls ``/api/v1/tracker/version`` at start-up and on login. The
required version lives in ``system_settings`` so admins can roll it forward
from the admin panel without a deploy.
"""

from __future__ import annotations

import logging
import re
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.config import settings
from ..crud.system_settings import decode_setting_value, get_setting_rows, upsert_setting
from ..models.system_setting import UserLog
from ..models.time_entry import TimeEntry
from .changefeed import feed

logger = logging.getLogger(__name__)

REQUIRED_VERSION_KEY = "tracker_required_version"
UPDATE_URL_KEY = "tracker_update_url"
FORCE_UPDATE_KEY = "tracker_force_update"
TRACKER_KEYS = (REQUIRED_VERSION_KEY, UPDATE_URL_KEY, FORCE_UPDATE_KEY)
VERSION_PATTERN = re.compile(r"^\d+\.\d+\.\d+$")
STATS_WINDOW_DAYS = 30


@dataclass
class VersionPolicy:
    required_version: str
    update_url: str | None = None
    force_update: bool = False


@dataclass
class VersionCheck(VersionPolicy):
    is_compatible: bool = True
    current_version: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _normalize(version: str) -> str:
    return re.sub(r"^v", "", (version or "").strip(), flags=re.IGNORECASE).strip()


def is_version_compatible(current: str, required: str) -> bool:
    """Versions must match exactly once a leading ``v`` is stripped."""
    return _normalize(current) == _normalize(required)


def _parts(version: str) -> list[int]:
    parts = []
    for piece in version.split("."):
        try:
            parts.append(int(piece))
        except ValueError:
            parts.append(0)
    return parts


def compare_versions(a: str, b: str) -> int:
    left, right = _parts(a), _parts(b)
    for index in range(max(len(left), len(right))):
        x = left[index] if index < len(left) else 0
        y = right[index] if index < len(right) else 0
        if x < y:
            return -1
        if x > y:
            return 1
    return 0


def get_required_tracker_version(db: Session) -> VersionPolicy | None:
    try:
        rows = get_setting_rows(db, TRACKER_KEYS)
    except SQLAlchemyError:
        logger.exception("tracker.version_settings_failed")
        return None
    default = settings.DEFAULT_TRACKER_VERSION
    if not rows:
        logger.warning("tracker.version_settings_missing")
        return VersionPolicy(required_version=default)
    values = {row.setting_key: decode_setting_value(row.setting_value) for row in rows}
    force = values.get(FORCE_UPDATE_KEY)
    return VersionPolicy(
        required_version=str(values.get(REQUIRED_VERSION_KEY) or default),
        update_url=values.get(UPDATE_URL_KEY) or None,
        force_update=force is True or force == "true",
    )


def _log_version_check(
    db: Session,
    user_id: str,
    current: str,
    required: str | None,
    compatible: bool,
    message: str,
    device_info: str | None,
) -> None:
    try:
        db.add(
            UserLog(
                user_id=user_id,
                log_type="version_check_passed" if compatible else "version_check_failed",
                log_message=message,
                log_metadata={
                    "current_version": current,
                    "required_version": required,
                    "is_compatible": compatible,
                },
                device_info=device_info or None,
            )
        )
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("tracker.version_log_failed", extra={"extra_data": {"user_id": user_id}})


def check_tracker_version(db: Session, current_version: str, user_id: str, device_info: str | None = None) -> VersionCheck:
    """Compare the tracker's version with the policy; unreadable settings fail open."""

    policy = get_required_tracker_version(db)
    if policy is None:
        _log_version_check(db, user_id, current_version, None, False, "Failed to fetch version settings", device_info)
        return VersionCheck(
            required_version=settings.DEFAULT_TRACKER_VERSION,
            is_compatible=True,
            current_version=current_version,
        )

    compatible = is_version_compatible(current_version, policy.required_version)
    _log_version_check(
        db,
        user_id,
        current_version,
        policy.required_version,
        compatible,
        "Version check passed" if compatible else "Version mismatch detected",
        device_info,
    )
    return VersionCheck(
        required_version=policy.required_version,
        update_url=policy.update_url,
        force_update=policy.force_update,
        is_compatible=compatible,
        current_version=current_version,
    )


def update_required_tracker_version(
    db: Session,
    version: str,
    update_url: str | None = None,
    force_update: bool = False,
) -> tuple[bool, str | None]:
    if not VERSION_PATTERN.match(version or ""):
        return False, "Invalid version format. Use semantic versioning (e.g., 1.0.0)"
    try:
        upsert_setting(
            db,
            REQUIRED_VERSION_KEY,
            version,
            category="tracker",
            description="Required version of the desktop tracker app",
            commit=False,
        )
        if update_url is not None:
            upsert_setting(
                db,
                UPDATE_URL_KEY,
                update_url,
                category="tracker",
                description="URL where users can download the latest version",
                commit=False,
            )
        upsert_setting(
            db,
            FORCE_UPDATE_KEY,
            bool(force_update),
            category="tracker",
            description="Force all tracker apps to update immediately",
            commit=False,
        )
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("tracker.version_update_failed")
        return False, str(exc.orig) if getattr(exc, "orig", None) else str(exc)
    feed.publish("system_settings", "upsert", REQUIRED_VERSION_KEY)
    return True, None


def get_tracker_version_stats(db: Session, *, now: datetime | None = None) -> dict[str, Any] | None:
    policy = get_required_tracker_version(db)
    if policy is None:
        return None
    since = (now or datetime.now(timezone.utc)) - timedelta(days=STATS_WINDOW_DAYS)
    stmt = (
        select(TimeEntry.app_version, TimeEntry.user_id)
        .where(TimeEntry.app_version.is_not(None), TimeEntry.start_time >= since)
        .distinct()
    )
    try:
        rows = db.execute(stmt).all()
    except SQLAlchemyError:
        logger.exception("tracker.version_stats_failed")
        return None

    by_version: dict[str, set[str]] = {}
    users: set[str] = set()
    for version, user_id in rows:
        if not version or not user_id:
            continue
        by_version.setdefault(version, set()).add(user_id)
        users.add(user_id)

    distribution = {version: len(ids) for version, ids in by_version.items()}
    outdated = sum(
        count for version, count in distribution.items() if not is_version_compatible(version, policy.required_version)
    )
    return {
        "total_users": len(users),
        "outdated_users": outdated,
        "version_distribution": distribution,
        "required_version": policy.required_version,
    }


__all__ = [
    "VersionCheck",
    "VersionPolicy",
    "check_tracker_version",
    "compare_versions",
    "get_required_tracker_version",
    "get_tracker_version_stats",
    "is_version_compatible",
    "update_required_tracker_version",
]
