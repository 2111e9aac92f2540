from __future__ import annotations

from sqlalchemy import Column, DateTime, ForeignKey, String, Text
from sqlalchemy.orm import relationship

from ..db.session import Base, new_id, utcnow


class Group(Base):
    """Named set of profiles a manager can assign to projects in one go."""

    __tablename__ = "groups"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(Text, nullable=False)
    created_by = Column(String(36), ForeignKey("profiles.id"), nullable=True)
    manager_id = Column(String(36), ForeignKey("profiles.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=True, default=utcnow)

    members = relationship(
        "GroupMember",
        back_populates="group",
        cascade="all, delete-orphan",
    )

    @property
    def member_ids(self) -> list[str]:
        return [member.user_id for member in self.members or []]


class GroupMember(Base):
    __tablename__ = "group_members"

    id = Column(String(36), primary_key=True, default=new_id)
    group_id = Column(String(36), ForeignKey("groups.id"), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("profiles.id"), nullable=False, index=True)

    group = relationship("Group", back_populates="members")
    profile = relationship("Profile")


__all__ = ["Group", "GroupMember"]
