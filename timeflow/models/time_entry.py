"""Time entries recorded by the desktop tracker and their project links."""

from __future__ import annotations

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from ..db.session import Base, new_id, utcnow


class TimeEntry(Base):
    __tablename__ = "time_entries"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("profiles.id"), nullable=False, index=True)
    start_time = Column(DateTime(timezone=True), nullable=False, index=True)
    end_time = Column(DateTime(timezone=True), nullable=True)
    # Seconds.
    duration = Column(Integer, nullable=True)
    description = Column(Text, nullable=True)
    app_version = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=True, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=True, default=utcnow)

    profile = relationship("Profile")
    project_links = relationship(
        "ProjectTimeEntry",
        back_populates="time_entry",
        cascade="all, delete-orphan",
    )
    screenshots = relationship("Screenshot", back_populates="time_entry")


class ProjectTimeEntry(Base):
    __tablename__ = "project_time_entries"

    id = Column(String(36), primary_key=True, default=new_id)
    # NULL means the entry was logged against the default project.
    project_id = Column(String(36), ForeignKey("projects.id"), nullable=True, index=True)
    time_entry_id = Column(String(36), ForeignKey("time_entries.id"), nullable=False, index=True)
    billable = Column(Boolean, nullable=True, default=True)
    created_at = Column(DateTime(timezone=True), nullable=True, default=utcnow)

    project = relationship("Project")
    time_entry = relationship("TimeEntry", back_populates="project_links")


__all__ = ["TimeEntry", "ProjectTimeEntry"]
