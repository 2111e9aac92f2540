"""Key/value system settings and the audit log the tracker writes into."""

from __future__ import annotations

from sqlalchemy import Column, DateTime, String, Text

from ..db.session import Base, JsonDocument, new_id, utcnow


class SystemSetting(Base):
    __tablename__ = "system_settings"

    id = Column(String(36), primary_key=True, default=new_id)
    setting_key = Column(String(128), nullable=False, unique=True, index=True)
    # JSONB upstream; values written by the dashboard are JSON-encoded strings.
    setting_value = Column(JsonDocument, nullable=True)
    category = Column(String(64), nullable=True)
    description = Column(Text, nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=True, default=utcnow)


class UserLog(Base):
    __tablename__ = "user_logs"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), nullable=True, index=True)
    log_type = Column(String(64), nullable=False)
    log_message = Column(Text, nullable=True)
    log_metadata = Column("metadata", JsonDocument, nullable=True)
    device_info = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=True, default=utcnow)


__all__ = ["SystemSetting", "UserLog"]
