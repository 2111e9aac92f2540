from __future__ import annotations

from typing import Callable

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session, sessionmaker

from ..crud.notifications import (
    get_unread_notification_count,
    list_notifications,
    mark_all_notifications_as_read,
    mark_notification_as_read,
)
from ..db.session import get_db, get_session_factory
from ..deps.auth import current_profile
from ..models.profile import Profile
from ..schemas.notification import NotificationOut, UnreadCount
from ..services.changefeed import unread_count_stream

router = APIRouter(prefix="/api/v1/notifications", tags=["notifications"])


def _unread_counter(session_factory: sessionmaker) -> Callable[[str], int]:
    # Runs in a worker thread for the lifetime of the stream, so it opens its own session.
    def count(user_id: str) -> int:
        with session_factory() as db:
            return get_unread_notification_count(db, user_id)

    return count


@router.get("", response_model=list[NotificationOut])
def api_list_notifications(
    limit: int = Query(10, ge=1, le=100),
    profile: Profile = Depends(current_profile),
    db: Session = Depends(get_db),
):
    return list_notifications(db, profile.id, limit)


@router.get("/unread-count", response_model=UnreadCount)
def api_unread_count(profile: Profile = Depends(current_profile), db: Session = Depends(get_db)):
    return UnreadCount(unread=get_unread_notification_count(db, profile.id))


@router.post("/{notification_id}/read")
def api_mark_read(notification_id: str, profile: Profile = Depends(current_profile), db: Session = Depends(get_db)):
    if not mark_notification_as_read(db, profile.id, notification_id):
        raise HTTPException(404, "Notification not found")
    return {"status": "read"}


@router.post("/read-all")
def api_mark_all_read(profile: Profile = Depends(current_profile), db: Session = Depends(get_db)):
    return {"status": "read", "updated": mark_all_notifications_as_read(db, profile.id)}


@router.get("/stream")
async def api_notification_stream(
    request: Request,
    profile: Profile = Depends(current_profile),
    session_factory: sessionmaker = Depends(get_session_factory),
):
    """Server-sent events carrying the caller's unread count."""

    stream = unread_count_stream(profile.id, _unread_counter(session_factory), is_disconnected=request.is_disconnected)
    return StreamingResponse(
        stream,
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
