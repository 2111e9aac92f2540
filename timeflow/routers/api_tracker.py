from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..db.session import get_db
from ..deps.auth import current_profile
from ..models.profile import Profile
from ..schemas.tracker import VersionCheckOut
from ..services.tracker_version import check_tracker_version

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/tracker", tags=["tracker"])


@router.get("/version", response_model=VersionCheckOut)
def api_check_version(
    current_version: str = Query(..., min_length=1),
    device_info: str | None = None,
    profile: Profile = Depends(current_profile),
    db: Session = Depends(get_db),
):
    """Called by the desktop tracker on start-up; the outcome is written to ``user_logs``."""

    result = check_tracker_version(db, current_version.strip(), profile.id, device_info)
    if not result.is_compatible:
        logger.info(
            "tracker.version_outdated",
            extra={"extra_data": {"user_id": profile.id, "current": result.current_version, "required": result.required_version}},
        )
    return result.to_dict()
