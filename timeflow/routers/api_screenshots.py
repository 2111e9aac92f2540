from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..core.config import settings
from ..db.session import get_db
from ..deps.auth import current_profile
from ..models.profile import Profile
from ..services.screenshots import (
    TYPE_FILTERS,
    activity_summary,
    get_screenshot,
    group_by_hour,
    list_screenshots,
    serialize_screenshot,
)
from ..services.timecalc import local_today, parse_day

router = APIRouter(prefix="/api/v1/screenshots", tags=["screenshots"])


@router.get("")
def api_list_screenshots(
    date: str | None = None,
    user: str | None = None,
    type: str = "all",
    search: str | None = None,
    profile: Profile = Depends(current_profile),
    db: Session = Depends(get_db),
):
    if type != "all" and type not in TYPE_FILTERS:
        raise HTTPException(422, "type must be one of: all, " + ", ".join(TYPE_FILTERS))
    day = parse_day(date, local_today(settings.TZ))
    shots = list_screenshots(db, profile, day, settings.TZ, user_id=user or None, type_filter=type)
    groups = group_by_hour(shots, settings.TZ, search)
    return {
        "date": day.isoformat(),
        "total": sum(len(group["screenshots"]) for group in groups),
        "hours": [
            {
                "hour": group["hour"],
                "label": group["label"],
                "screenshots": [serialize_screenshot(shot) for shot in group["screenshots"]],
            }
            for group in groups
        ],
    }


@router.get("/{screenshot_id}")
def api_get_screenshot(screenshot_id: str, profile: Profile = Depends(current_profile), db: Session = Depends(get_db)):
    shot = get_screenshot(db, profile, screenshot_id)
    if shot is None:
        raise HTTPException(404, "Not found")
    return {**serialize_screenshot(shot), "summary": activity_summary(shot).to_dict()}
