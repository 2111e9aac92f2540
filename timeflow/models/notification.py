from __future__ import annotations

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String, Text

from ..db.session import Base, new_id, utcnow


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("profiles.id"), nullable=False, index=True)
    title = Column(Text, nullable=False)
    message = Column(Text, nullable=False)
    type = Column(String(32), nullable=False)
    read = Column(Boolean, nullable=True, default=False)
    created_at = Column(DateTime(timezone=True), nullable=True, default=utcnow)


__all__ = ["Notification"]
