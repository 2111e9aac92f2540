"""Admin panel: users, system settings, tracker version policy and analytics."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Form, HTTPException, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from sqlalchemy.orm import Session

from ..core import toasts
from ..core.config import settings
from ..core.errors import BackendError
from ..core.jinja import render
from ..core.roles import ROLE_LABELS
from ..crud.profiles import get_profile, list_manager_candidates, list_profiles, list_teams
from ..crud.system_settings import settings_for_display, upsert_setting
from ..db.session import get_db
from ..deps.auth import require_admin
from ..models.profile import Profile
from ..services import admin_users
from ..services.analytics import RANGES, admin_analytics
from ..services.auth_bridge import AuthClient, get_auth_client
from ..services.tracker_version import (
    get_required_tracker_version,
    get_tracker_version_stats,
    update_required_tracker_version,
)

router = APIRouter(prefix="/admin", dependencies=[Depends(require_admin)])

TABS = ("users", "settings", "tracker", "analytics")


def _back(tab: str) -> RedirectResponse:
    return RedirectResponse(url=f"/admin?tab={tab}", status_code=303)


def _user_or_404(db: Session, user_id: str) -> Profile:
    profile = get_profile(db, user_id)
    if profile is None:
        raise HTTPException(404, "User not found")
    return profile


def _report(request: Request, result: admin_users.AdminResult) -> None:
    if result.warning:
        toasts.error(request, result.warning)
    else:
        toasts.success(request, result.message)


@router.get("", response_class=HTMLResponse)
def admin_page(
    request: Request,
    tab: str = "users",
    range: str = "30d",
    db: Session = Depends(get_db),
):
    tab = tab if tab in TABS else "users"
    context = {"tab": tab, "tabs": TABS}
    if tab == "users":
        context.update(
            users=list_profiles(db),
            managers=list_manager_candidates(db),
            teams=list_teams(db),
            roles=ROLE_LABELS,
        )
    elif tab == "settings":
        context.update(system_settings=settings_for_display(db))
    elif tab == "tracker":
        context.update(
            policy=get_required_tracker_version(db),
            stats=get_tracker_version_stats(db),
        )
    else:
        range_key = range if range in RANGES else "30d"
        context.update(analytics=admin_analytics(db, range_key, settings.TZ), ranges=list(RANGES))
    return render(request, "admin.html", context)


@router.post("/users")
def user_create_submit(
    request: Request,
    email: str = Form(""),
    password: str = Form(""),
    full_name: str = Form(""),
    role: str = Form("employee"),
    team: str = Form(""),
    new_team: str = Form(""),
    manager_id: str = Form(""),
    db: Session = Depends(get_db),
    client: AuthClient = Depends(get_auth_client),
):
    payload = {
        "email": email,
        "password": password,
        "full_name": full_name,
        "role": role,
        "team": new_team or team,
        "manager_id": manager_id,
    }
    try:
        _report(request, admin_users.create_user(db, client, payload))
    except ValueError as exc:
        toasts.error(request, str(exc))
    except BackendError as exc:
        toasts.error(request, exc.message or "Failed to create user")
    return _back("users")


@router.post("/users/{user_id}/update")
def user_update_submit(
    request: Request,
    user_id: str,
    email: str = Form(""),
    full_name: str = Form(""),
    role: str = Form("employee"),
    team: str = Form(""),
    new_team: str = Form(""),
    manager_id: str = Form(""),
    password: str = Form(""),
    db: Session = Depends(get_db),
    client: AuthClient = Depends(get_auth_client),
):
    profile = _user_or_404(db, user_id)
    payload = {
        "email": email,
        "full_name": full_name,
        "role": role,
        "team": new_team or team,
        "manager_id": manager_id,
        "password": password,
    }
    try:
        _report(request, admin_users.update_user(db, client, profile, payload))
    except ValueError as exc:
        toasts.error(request, str(exc))
    return _back("users")


@router.post("/users/{user_id}/delete")
def user_delete_submit(
    request: Request,
    user_id: str,
    db: Session = Depends(get_db),
    client: AuthClient = Depends(get_auth_client),
):
    try:
        _report(request, admin_users.delete_user(db, client, user_id))
    except LookupError as exc:
        toasts.error(request, str(exc))
    return _back("users")


@router.post("/users/{user_id}/reset-password")
def user_reset_submit(
    request: Request,
    user_id: str,
    db: Session = Depends(get_db),
    client: AuthClient = Depends(get_auth_client),
):
    _report(request, admin_users.reset_password(db, client, _user_or_404(db, user_id)))
    return _back("users")


@router.post("/users/{user_id}/capture")
def user_capture_submit(
    request: Request,
    user_id: str,
    setting: str = Form(...),
    db: Session = Depends(get_db),
):
    try:
        _report(request, admin_users.toggle_capture(db, _user_or_404(db, user_id), setting))
    except ValueError as exc:
        toasts.error(request, str(exc))
    return _back("users")


@router.post("/settings")
def setting_submit(
    request: Request,
    key: str = Form(""),
    value: str = Form(""),
    db: Session = Depends(get_db),
):
    try:
        upsert_setting(db, key, value)
        toasts.success(request, "Setting saved successfully!")
    except ValueError as exc:
        toasts.error(request, str(exc))
    return _back("settings")


@router.post("/tracker")
def tracker_submit(
    request: Request,
    version: str = Form(""),
    update_url: str = Form(""),
    force_update: bool = Form(False),
    db: Session = Depends(get_db),
):
    ok, error = update_required_tracker_version(db, version.strip(), update_url.strip() or None, force_update)
    if ok:
        toasts.success(request, f"Required tracker version set to {version.strip()}")
    else:
        toasts.error(request, error or "Failed to update tracker version")
    return _back("tracker")
