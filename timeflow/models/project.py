"""Projects, their members and the task catalogue offered by the tracker."""

from __future__ import annotations

from sqlalchemy import Column, DateTime, Float, ForeignKey, String, Text
from sqlalchemy.orm import relationship

from ..db.session import Base, StringList, new_id, utcnow


class Task(Base):
    __tablename__ = "tasks"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(Text, nullable=False)
    category = Column(String(32), nullable=False, default="custom")
    created_at = Column(DateTime(timezone=True), nullable=True, default=utcnow)


class Project(Base):
    __tablename__ = "projects"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    status = Column(String(32), nullable=False, default="pending")
    client_id = Column(String(36), nullable=True)
    task_id = Column(String(36), ForeignKey("tasks.id"), nullable=True)
    created_by = Column(String(36), ForeignKey("profiles.id"), nullable=True)
    project_managers = Column(StringList, nullable=True)
    deadline = Column(DateTime(timezone=True), nullable=True)
    total_hours = Column(Float, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=True, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=True, default=utcnow)

    task = relationship("Task")
    creator = relationship("Profile", foreign_keys=[created_by])
    members = relationship(
        "ProjectMember",
        back_populates="project",
        cascade="all, delete-orphan",
    )

    @property
    def manager_ids(self) -> list[str]:
        return [str(item) for item in (self.project_managers or [])]

    @property
    def member_ids(self) -> list[str]:
        return [member.user_id for member in self.members or []]


class ProjectMember(Base):
    __tablename__ = "project_members"

    id = Column(String(36), primary_key=True, default=new_id)
    project_id = Column(String(36), ForeignKey("projects.id"), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("profiles.id"), nullable=False, index=True)
    role = Column(String(32), nullable=True, default="member")
    created_at = Column(DateTime(timezone=True), nullable=True, default=utcnow)

    project = relationship("Project", back_populates="members")
    profile = relationship("Profile")


__all__ = ["Project", "ProjectMember", "Task"]
