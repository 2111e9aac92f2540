"""Key/value system settings.

Values are stored JSON-encoded (``"\\"1.6.0\\""`` for the string ``1.6.0``),
matching what the hosted dashboard and the desktop tracker write.
"""

from __future__ import annotations

import json
from typing import Any, Iterable

from sqlalchemy import asc, select
from sqlalchemy.orm import Session

from ..db.session import utcnow
from ..models.system_setting import SystemSetting
from ..services.changefeed import feed


def decode_setting_value(value: Any) -> Any:
    """JSON-decode string values, falling back to stripping surrounding quotes."""
    if not isinstance(value, str):
        return value
    try:
        return json.loads(value)
    except ValueError:
        if len(value) >= 2 and value.startswith('"') and value.endswith('"'):
            return value[1:-1]
        return value


def unquote_setting_value(value: Any) -> Any:
    """Display form used by the admin panel: drop a leading and a trailing quote."""
    if not isinstance(value, str):
        return value
    if value.startswith('"'):
        value = value[1:]
    if value.endswith('"'):
        value = value[:-1]
    return value


def list_settings(db: Session) -> list[SystemSetting]:
    stmt = select(SystemSetting).order_by(asc(SystemSetting.category), asc(SystemSetting.setting_key))
    return list(db.execute(stmt).scalars().all())


def settings_for_display(db: Session) -> dict[str, Any]:
    return {row.setting_key: unquote_setting_value(row.setting_value) for row in list_settings(db)}


def get_setting_rows(db: Session, keys: Iterable[str]) -> list[SystemSetting]:
    stmt = select(SystemSetting).where(SystemSetting.setting_key.in_(list(keys)))
    return list(db.execute(stmt).scalars().all())


def upsert_setting(
    db: Session,
    key: str,
    value: Any,
    *,
    category: str | None = None,
    description: str | None = None,
    commit: bool = True,
) -> SystemSetting:
    key = (key or "").strip()
    if not key:
        raise ValueError("setting_key is required")
    row = db.execute(select(SystemSetting).where(SystemSetting.setting_key == key)).scalars().first()
    if row is None:
        row = SystemSetting(setting_key=key)
        db.add(row)
    row.setting_value = json.dumps(value)
    if category is not None:
        row.category = category
    if description is not None:
        row.description = description
    row.updated_at = utcnow()
    if commit:
        db.commit()
        db.refresh(row)
        feed.publish("system_settings", "upsert", row.id)
    return row


__all__ = [
    "decode_setting_value",
    "get_setting_rows",
    "list_settings",
    "settings_for_display",
    "unquote_setting_value",
    "upsert_setting",
]
