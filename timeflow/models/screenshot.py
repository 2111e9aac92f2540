"""Screen and camera captures plus the activity samples attached to them."""

from __future__ import annotations

from sqlalchemy import Column, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from ..db.session import Base, JsonDocument, StringList, new_id, utcnow


class Screenshot(Base):
    __tablename__ = "screenshots"

    id = Column(String(36), primary_key=True, default=new_id)
    time_entry_id = Column(String(36), ForeignKey("time_entries.id"), nullable=False, index=True)
    storage_path = Column(Text, nullable=False)
    type = Column(String(32), nullable=False, default="screenshot")
    taken_at = Column(DateTime(timezone=True), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), nullable=True, default=utcnow)

    time_entry = relationship("TimeEntry", back_populates="screenshots")
    activity_logs = relationship("ActivityLog", back_populates="screenshot")
    activity = relationship(
        "ScreenshotActivity",
        back_populates="screenshot",
        order_by="ScreenshotActivity.created_at",
    )


class ActivityLog(Base):
    """Legacy per-capture counters, superseded by ``screenshot_activity``."""

    __tablename__ = "activity_logs"

    id = Column(String(36), primary_key=True, default=new_id)
    screenshot_id = Column(String(36), ForeignKey("screenshots.id"), nullable=False, index=True)
    keystrokes = Column(Integer, nullable=False, default=0)
    mouse_movements = Column(Integer, nullable=False, default=0)
    productivity_score = Column(Float, nullable=False, default=0)
    urls = Column(StringList, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=True, default=utcnow)

    screenshot = relationship("Screenshot", back_populates="activity_logs")


class ScreenshotActivity(Base):
    __tablename__ = "screenshot_activity"

    id = Column(String(36), primary_key=True, default=new_id)
    screenshot_id = Column(String(36), ForeignKey("screenshots.id"), nullable=False, index=True)
    mouse_activity_details = Column(JsonDocument, nullable=True)
    keyboard_activity_details = Column(JsonDocument, nullable=True)
    visited_websites = Column(JsonDocument, nullable=True)
    suspicious_activity_flags = Column(StringList, nullable=True)
    mouse_usage_percentage = Column(Float, nullable=True)
    keyboard_usage_percentage = Column(Float, nullable=True)
    active_applications = Column(JsonDocument, nullable=True)
    device_os = Column(Text, nullable=True)
    app_version = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=True, default=utcnow)

    screenshot = relationship("Screenshot", back_populates="activity")


__all__ = ["Screenshot", "ActivityLog", "ScreenshotActivity"]
