"""Profiles mirror the hosted ``profiles`` table (one row per auth user)."""

from __future__ import annotations

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String, Text
from sqlalchemy.orm import relationship

from ..db.session import Base, new_id, utcnow


class Profile(Base):
    __tablename__ = "profiles"

    id = Column(String(36), primary_key=True, default=new_id)
    email = Column(Text, nullable=True)
    full_name = Column(Text, nullable=False)
    role = Column(String(32), nullable=False, default="employee")
    team = Column(Text, nullable=True)
    manager_id = Column(String(36), ForeignKey("profiles.id"), nullable=True, index=True)
    force_password_change = Column(Boolean, nullable=True, default=False)
    enable_screenshot_capture = Column(Boolean, nullable=True, default=True)
    enable_camera_capture = Column(Boolean, nullable=True, default=True)
    avatar_url = Column(Text, nullable=True)
    phone = Column(Text, nullable=True)
    location = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=True, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=True, default=utcnow)

    manager = relationship("Profile", remote_side=[id])


class EmployeeManager(Base):
    """Explicit employee → manager links used by the attendance view."""

    __tablename__ = "employee_managers"

    id = Column(String(36), primary_key=True, default=new_id)
    employee_id = Column(String(36), ForeignKey("profiles.id"), nullable=False, index=True)
    manager_id = Column(String(36), ForeignKey("profiles.id"), nullable=False, index=True)
    manager_type = Column(Text, nullable=False, default="primary")
    created_at = Column(DateTime(timezone=True), nullable=True, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=True, default=utcnow)

    employee = relationship("Profile", foreign_keys=[employee_id])


__all__ = ["Profile", "EmployeeManager"]
