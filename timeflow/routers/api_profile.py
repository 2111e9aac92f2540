from __future__ import annotations

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from sqlalchemy.orm import Session

from ..core.config import settings
from ..crud.profiles import update_own_profile
from ..db.session import get_db
from ..deps.auth import current_profile
from ..models.profile import Profile
from ..schemas.profile import ProfileOut, ProfileUpdate
from ..services.downloads import find_installer_links
from ..services.profile import personal_stats, upload_avatar
from ..services.storage import StorageClient, get_storage_client

router = APIRouter(prefix="/api/v1", tags=["profile"])


@router.get("/me", response_model=ProfileOut)
def api_me(profile: Profile = Depends(current_profile)):
    return profile


@router.patch("/me", response_model=ProfileOut)
def api_update_me(payload: ProfileUpdate, profile: Profile = Depends(current_profile), db: Session = Depends(get_db)):
    try:
        return update_own_profile(db, profile, payload.model_dump(exclude_unset=True))
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc


@router.get("/me/stats")
def api_my_stats(profile: Profile = Depends(current_profile), db: Session = Depends(get_db)):
    return personal_stats(db, profile, settings.TZ)


@router.post("/me/avatar", response_model=ProfileOut)
async def api_upload_avatar(
    avatar: UploadFile = File(...),
    profile: Profile = Depends(current_profile),
    db: Session = Depends(get_db),
    storage: StorageClient = Depends(get_storage_client),
):
    content = await avatar.read()
    try:
        return upload_avatar(
            db,
            storage,
            profile,
            filename=avatar.filename or "avatar.png",
            content_type=avatar.content_type,
            content=content,
            bucket=settings.AVATARS_BUCKET,
            max_bytes=settings.AVATAR_MAX_BYTES,
        )
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc


@router.get("/downloads")
def api_downloads(profile: Profile = Depends(current_profile), storage: StorageClient = Depends(get_storage_client)):
    return find_installer_links(storage, settings.DOWNLOAD_BUCKETS)
