"""Per-user notifications and the helpers that create the standard kinds."""

from __future__ import annotations

import logging

from sqlalchemy import desc, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..models.notification import Notification
from ..services.changefeed import feed

logger = logging.getLogger(__name__)

NOTIFICATION_TYPES = ("leave_request", "leave_approved", "leave_rejected", "time_tracking", "system")
LATEST_LIMIT = 20


def create_notification(db: Session, user_id: str, title: str, message: str, type: str) -> Notification:
    if type not in NOTIFICATION_TYPES:
        raise ValueError(f"Unknown notification type: {type}")
    if not user_id:
        raise ValueError("user_id is required")
    notification = Notification(user_id=user_id, title=title, message=message, type=type, read=False)
    db.add(notification)
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("notification.create_failed", extra={"extra_data": {"user_id": user_id}})
        raise
    db.refresh(notification)
    feed.publish("notifications", "insert", notification.id, user_id)
    return notification


def notify_leave_approved(db: Session, user_id: str, leave_details: str | None = None) -> Notification:
    return create_notification(
        db,
        user_id,
        "Leave Request Approved",
        leave_details or "Your leave request has been approved.",
        "leave_approved",
    )


def notify_leave_rejected(db: Session, user_id: str, leave_details: str | None = None) -> Notification:
    return create_notification(
        db,
        user_id,
        "Leave Request Rejected",
        leave_details or "Your leave request has been rejected.",
        "leave_rejected",
    )


def notify_new_leave_request(
    db: Session, manager_id: str, employee_name: str, leave_details: str | None = None
) -> Notification:
    return create_notification(
        db,
        manager_id,
        "New Leave Request",
        leave_details or f"{employee_name} has submitted a leave request.",
        "leave_request",
    )


def notify_time_tracking(db: Session, user_id: str, message: str) -> Notification:
    return create_notification(db, user_id, "Time Tracking Update", message, "time_tracking")


def notify_system(db: Session, user_id: str, title: str, message: str) -> Notification:
    return create_notification(db, user_id, title, message, "system")


def list_notifications(db: Session, user_id: str, limit: int = LATEST_LIMIT) -> list[Notification]:
    stmt = (
        select(Notification)
        .where(Notification.user_id == user_id)
        .order_by(desc(Notification.created_at))
        .limit(limit)
    )
    return list(db.execute(stmt).scalars().all())


def mark_notification_as_read(db: Session, user_id: str, notification_id: str) -> bool:
    notification = db.get(Notification, notification_id)
    if notification is None or notification.user_id != user_id:
        return False
    notification.read = True
    db.commit()
    feed.publish("notifications", "update", notification_id, user_id)
    return True


def mark_all_notifications_as_read(db: Session, user_id: str) -> int:
    result = db.execute(
        update(Notification)
        .where(Notification.user_id == user_id, Notification.read.is_(False))
        .values(read=True)
    )
    db.commit()
    feed.publish("notifications", "update", None, user_id)
    return int(result.rowcount or 0)


def get_unread_notification_count(db: Session, user_id: str) -> int:
    """Unread count; read failures are logged and reported as zero."""
    try:
        count = db.execute(
            select(func.count(Notification.id)).where(
                Notification.user_id == user_id, Notification.read.is_(False)
            )
        ).scalar_one()
    except SQLAlchemyError:
        logger.exception("notification.count_failed", extra={"extra_data": {"user_id": user_id}})
        return 0
    return int(count or 0)


__all__ = [
    "NOTIFICATION_TYPES",
    "create_notification",
    "get_unread_notification_count",
    "list_notifications",
    "mark_all_notifications_as_read",
    "mark_notification_as_read",
    "notify_leave_approved",
    "notify_leave_rejected",
    "notify_new_leave_request",
    "notify_system",
    "notify_time_tracking",
]
