from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..core.config import settings
from ..crud.profiles import get_profile, list_profiles
from ..crud.system_settings import settings_for_display, upsert_setting
from ..db.session import get_db
from ..deps.auth import require_admin
from ..schemas.admin import AdminActionOut, CaptureToggle, SettingIn, UserCreate, UserUpdate
from ..schemas.profile import ProfileOut
from ..schemas.tracker import VersionPolicyIn, VersionStatsOut
from ..services import admin_users
from ..services.analytics import admin_analytics
from ..services.auth_bridge import AuthClient, get_auth_client
from ..services.tracker_version import (
    get_required_tracker_version,
    get_tracker_version_stats,
    update_required_tracker_version,
)

router = APIRouter(prefix="/api/v1/admin", tags=["admin"], dependencies=[Depends(require_admin)])


def _out(result: admin_users.AdminResult) -> AdminActionOut:
    return AdminActionOut(
        message=result.message,
        warning=result.warning,
        profile=ProfileOut.model_validate(result.profile) if result.profile is not None else None,
    )


def _user_or_404(db: Session, user_id: str):
    profile = get_profile(db, user_id)
    if profile is None:
        raise HTTPException(404, "User not found")
    return profile


@router.get("/users", response_model=list[ProfileOut])
def api_list_users(db: Session = Depends(get_db)):
    return list_profiles(db)


@router.post("/users", response_model=AdminActionOut, status_code=201)
def api_create_user(payload: UserCreate, db: Session = Depends(get_db), client: AuthClient = Depends(get_auth_client)):
    try:
        return _out(admin_users.create_user(db, client, payload.model_dump()))
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc


@router.patch("/users/{user_id}", response_model=AdminActionOut)
def api_update_user(
    user_id: str,
    payload: UserUpdate,
    db: Session = Depends(get_db),
    client: AuthClient = Depends(get_auth_client),
):
    profile = _user_or_404(db, user_id)
    changes = payload.model_dump(exclude_unset=True)
    # Fields left out of a PATCH keep their current values.
    merged = {"team": profile.team, "manager_id": profile.manager_id, **changes}
    try:
        return _out(admin_users.update_user(db, client, profile, merged))
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc


@router.delete("/users/{user_id}", response_model=AdminActionOut)
def api_delete_user(user_id: str, db: Session = Depends(get_db), client: AuthClient = Depends(get_auth_client)):
    try:
        return _out(admin_users.delete_user(db, client, user_id))
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@router.post("/users/{user_id}/reset-password", response_model=AdminActionOut)
def api_reset_password(user_id: str, db: Session = Depends(get_db), client: AuthClient = Depends(get_auth_client)):
    return _out(admin_users.reset_password(db, client, _user_or_404(db, user_id)))


@router.post("/users/{user_id}/capture", response_model=AdminActionOut)
def api_toggle_capture(user_id: str, payload: CaptureToggle, db: Session = Depends(get_db)):
    try:
        return _out(admin_users.toggle_capture(db, _user_or_404(db, user_id), payload.setting))
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc


@router.get("/settings")
def api_list_settings(db: Session = Depends(get_db)):
    return settings_for_display(db)


@router.put("/settings")
def api_save_setting(payload: SettingIn, db: Session = Depends(get_db)):
    try:
        row = upsert_setting(db, payload.key, payload.value, category=payload.category, description=payload.description)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return {"status": "saved", "key": row.setting_key}


@router.get("/analytics")
def api_analytics(range: str = "30d", db: Session = Depends(get_db)):
    try:
        return admin_analytics(db, range, settings.TZ)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc


@router.get("/tracker")
def api_tracker_policy(db: Session = Depends(get_db)):
    policy = get_required_tracker_version(db)
    if policy is None:
        raise HTTPException(503, "Version settings are unavailable")
    return {
        "required_version": policy.required_version,
        "update_url": policy.update_url,
        "force_update": policy.force_update,
    }


@router.put("/tracker")
def api_update_tracker_policy(payload: VersionPolicyIn, db: Session = Depends(get_db)):
    ok, error = update_required_tracker_version(db, payload.version.strip(), payload.update_url, payload.force_update)
    if not ok:
        raise HTTPException(status_code=422, detail=error or "Failed to update tracker version")
    return {"status": "saved", "required_version": payload.version.strip()}


@router.get("/tracker/stats", response_model=VersionStatsOut)
def api_tracker_stats(db: Session = Depends(get_db)):
    stats = get_tracker_version_stats(db)
    if stats is None:
        raise HTTPException(503, "Version statistics are unavailable")
    return stats
