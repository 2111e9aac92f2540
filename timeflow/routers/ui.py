"""Server-rendered pages and the form posts behind them."""

from __future__ import annotations

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, Request, UploadFile
from fastapi.responses import HTMLResponse, RedirectResponse
from sqlalchemy.orm import Session

from ..core import toasts
from ..core.config import settings
from ..core.errors import BackendError
from ..core.jinja import render
from ..core.roles import ROLE_LABELS, can_manage_groups, can_manage_tasks, can_view_team
from ..crud.groups import create_group, delete_group, get_group, list_groups, update_group
from ..crud.profiles import attendance_team_ids, list_profiles, list_teams, update_own_profile, visible_user_ids
from ..crud.projects import (
    PROJECT_STATUSES,
    create_project,
    create_task,
    delete_project,
    delete_task,
    get_project,
    get_task,
    list_projects,
    list_tasks,
    project_summary,
    rename_task,
    update_project,
)
from ..db.session import get_db
from ..deps.auth import current_profile
from ..deps.filters import report_filters
from ..models.profile import Profile
from ..services.attendance import load_attendance, search_records
from ..services.dashboard import dashboard_summary
from ..services.downloads import find_installer_links
from ..services.profile import personal_stats, upload_avatar
from ..services.reporting import ReportFilters, calculate_report_metrics, load_report_entries, summarize
from ..services.screenshots import TYPE_FILTERS, activity_summary, group_by_hour, image_url, list_screenshots
from ..services.storage import StorageClient, get_storage_client
from ..services.team import team_overview
from ..services.timecalc import local_today, parse_day

router = APIRouter()


def _back(url: str) -> RedirectResponse:
    return RedirectResponse(url=url, status_code=303)


@router.get("/", response_class=HTMLResponse)
def index_page(
    request: Request,
    page: int = Query(1, ge=1),
    profile: Profile = Depends(current_profile),
    db: Session = Depends(get_db),
):
    summary = dashboard_summary(db, profile, settings.TZ, page=page)
    return render(request, "index.html", {"summary": summary})


@router.get("/attendance", response_class=HTMLResponse)
def attendance_page(
    request: Request,
    start: str | None = None,
    end: str | None = None,
    users: list[str] = Query([]),
    search: str | None = None,
    profile: Profile = Depends(current_profile),
    db: Session = Depends(get_db),
):
    today = local_today(settings.ATTENDANCE_TZ)
    start_date = parse_day(start, today)
    end_date = parse_day(end, today)
    records = []
    try:
        records = load_attendance(
            db,
            profile,
            start_date,
            end_date,
            tz=settings.ATTENDANCE_TZ,
            reset_hour=settings.ATTENDANCE_RESET_HOUR,
            selected_user_ids=users,
        )
    except ValueError as exc:
        toasts.error(request, str(exc))
    context = {
        "records": search_records(records, search),
        "start": start_date,
        "end": end_date,
        "selected": users,
        "search": search or "",
        "members": list_profiles(db, attendance_team_ids(db, profile)) if can_view_team(profile.role) else [],
        "tz": settings.ATTENDANCE_TZ,
    }
    return render(request, "attendance.html", context)


@router.get("/reports", response_class=HTMLResponse)
def reports_page(
    request: Request,
    filters: ReportFilters = Depends(report_filters),
    profile: Profile = Depends(current_profile),
    db: Session = Depends(get_db),
):
    entries = load_report_entries(db, profile, filters, settings.TZ)
    metrics = calculate_report_metrics(entries, filters.start_date, filters.end_date, settings.TZ)
    context = {
        "filters": filters,
        "metrics": metrics,
        "headline": summarize(metrics),
        "entries": entries[:200],
        "members": list_profiles(db, visible_user_ids(db, profile)),
        "teams": list_teams(db),
        "projects": list_projects(db, profile),
        "roles": ROLE_LABELS,
        "query": request.url.query,
    }
    return render(request, "reports.html", context)


# ---- projects


@router.get("/projects", response_class=HTMLResponse)
def projects_page(request: Request, profile: Profile = Depends(current_profile), db: Session = Depends(get_db)):
    context = {
        "rows": [project_summary(db, profile, project) for project in list_projects(db, profile)],
        "tasks": list_tasks(db),
        "statuses": PROJECT_STATUSES,
        "people": list_profiles(db),
        "groups": list_groups(db, profile),
        "can_manage_tasks": can_manage_tasks(profile.role),
    }
    return render(request, "projects.html", context)


@router.get("/projects/{project_id}", response_class=HTMLResponse)
def project_detail_page(
    request: Request,
    project_id: str,
    profile: Profile = Depends(current_profile),
    db: Session = Depends(get_db),
):
    project = get_project(db, project_id)
    if project is None or project.id not in {p.id for p in list_projects(db, profile)}:
        raise HTTPException(404, "Not found")
    context = {
        "row": project_summary(db, profile, project, with_entries=True),
        "tasks": list_tasks(db),
        "statuses": PROJECT_STATUSES,
        "people": list_profiles(db),
        "groups": list_groups(db, profile),
    }
    return render(request, "project_detail.html", context)


@router.post("/projects")
def project_create_submit(
    request: Request,
    name: str = Form(""),
    description: str = Form(""),
    status: str = Form("pending"),
    task_id: str = Form(""),
    project_managers: list[str] = Form([]),
    member_ids: list[str] = Form([]),
    group_ids: list[str] = Form([]),
    profile: Profile = Depends(current_profile),
    db: Session = Depends(get_db),
):
    payload = {
        "name": name,
        "description": description,
        "status": status,
        "task_id": task_id,
        "project_managers": project_managers,
        "member_ids": member_ids,
        "group_ids": group_ids,
    }
    try:
        create_project(db, profile, payload)
        toasts.success(request, "Project created successfully!")
    except (ValueError, PermissionError) as exc:
        toasts.error(request, str(exc))
    return _back("/projects")


@router.post("/projects/{project_id}/update")
def project_update_submit(
    request: Request,
    project_id: str,
    name: str = Form(""),
    description: str = Form(""),
    status: str = Form("pending"),
    task_id: str = Form(""),
    project_managers: list[str] = Form([]),
    member_ids: list[str] = Form([]),
    group_ids: list[str] = Form([]),
    profile: Profile = Depends(current_profile),
    db: Session = Depends(get_db),
):
    project = get_project(db, project_id)
    if project is None:
        raise HTTPException(404, "Not found")
    payload = {
        "name": name,
        "description": description,
        "status": status,
        "task_id": task_id,
        "project_managers": project_managers,
        "member_ids": member_ids,
        "group_ids": group_ids,
    }
    try:
        update_project(db, profile, project, payload)
        toasts.success(request, "Project updated successfully!")
    except (ValueError, PermissionError) as exc:
        toasts.error(request, str(exc))
    return _back(f"/projects/{project_id}")


@router.post("/projects/{project_id}/delete")
def project_delete_submit(
    request: Request,
    project_id: str,
    profile: Profile = Depends(current_profile),
    db: Session = Depends(get_db),
):
    project = get_project(db, project_id)
    if project is None:
        raise HTTPException(404, "Not found")
    try:
        delete_project(db, profile, project)
        toasts.success(request, "Project deleted successfully!")
    except PermissionError as exc:
        toasts.error(request, str(exc))
    return _back("/projects")


@router.post("/tasks")
def task_create_submit(
    request: Request,
    name: str = Form(""),
    profile: Profile = Depends(current_profile),
    db: Session = Depends(get_db),
):
    try:
        create_task(db, profile, name)
        toasts.success(request, "Task added")
    except (ValueError, PermissionError) as exc:
        toasts.error(request, str(exc))
    return _back("/projects")


@router.post("/tasks/{task_id}/rename")
def task_rename_submit(
    request: Request,
    task_id: str,
    name: str = Form(""),
    profile: Profile = Depends(current_profile),
    db: Session = Depends(get_db),
):
    task = get_task(db, task_id)
    if task is None:
        raise HTTPException(404, "Not found")
    try:
        rename_task(db, profile, task, name)
        toasts.success(request, "Task updated")
    except (ValueError, PermissionError) as exc:
        toasts.error(request, str(exc))
    return _back("/projects")


@router.post("/tasks/{task_id}/delete")
def task_delete_submit(
    request: Request,
    task_id: str,
    profile: Profile = Depends(current_profile),
    db: Session = Depends(get_db),
):
    task = get_task(db, task_id)
    if task is None:
        raise HTTPException(404, "Not found")
    try:
        delete_task(db, profile, task)
        toasts.success(request, "Task deleted")
    except PermissionError as exc:
        toasts.error(request, str(exc))
    return _back("/projects")


# ---- team & groups


@router.get("/team", response_class=HTMLResponse)
def team_page(
    request: Request,
    search: str | None = None,
    role: str | None = None,
    department: str | None = None,
    profile: Profile = Depends(current_profile),
    db: Session = Depends(get_db),
):
    overview = team_overview(db, profile, settings.TZ, search=search, role=role, department=department)
    context = {
        "overview": overview,
        "search": search or "",
        "role": role or "all",
        "department": department or "all",
        "groups": list_groups(db, profile),
        "can_manage_groups": can_manage_groups(profile.role),
        "people": list_profiles(db, visible_user_ids(db, profile)),
    }
    return render(request, "team.html", context)


@router.post("/team/groups")
def group_create_submit(
    request: Request,
    name: str = Form(""),
    member_ids: list[str] = Form([]),
    profile: Profile = Depends(current_profile),
    db: Session = Depends(get_db),
):
    try:
        create_group(db, profile, {"name": name, "member_ids": member_ids})
        toasts.success(request, "Group created successfully!")
    except (ValueError, PermissionError) as exc:
        toasts.error(request, str(exc))
    return _back("/team")


@router.post("/team/groups/{group_id}/update")
def group_update_submit(
    request: Request,
    group_id: str,
    name: str = Form(""),
    member_ids: list[str] = Form([]),
    profile: Profile = Depends(current_profile),
    db: Session = Depends(get_db),
):
    group = get_group(db, profile, group_id)
    if group is None:
        raise HTTPException(404, "Not found")
    try:
        update_group(db, profile, group, {"name": name, "member_ids": member_ids})
        toasts.success(request, "Group updated successfully!")
    except (ValueError, PermissionError) as exc:
        toasts.error(request, str(exc))
    return _back("/team")


@router.post("/team/groups/{group_id}/delete")
def group_delete_submit(
    request: Request,
    group_id: str,
    profile: Profile = Depends(current_profile),
    db: Session = Depends(get_db),
):
    group = get_group(db, profile, group_id)
    if group is None:
        raise HTTPException(404, "Not found")
    try:
        delete_group(db, profile, group)
        toasts.success(request, "Group deleted successfully!")
    except PermissionError as exc:
        toasts.error(request, str(exc))
    return _back("/team")


# ---- screenshots


@router.get("/screenshots", response_class=HTMLResponse)
def screenshots_page(
    request: Request,
    date: str | None = None,
    user: str | None = None,
    type: str = "all",
    search: str | None = None,
    profile: Profile = Depends(current_profile),
    db: Session = Depends(get_db),
):
    day = parse_day(date, local_today(settings.TZ))
    shots = list_screenshots(db, profile, day, settings.TZ, user_id=user or None, type_filter=type)
    context = {
        "day": day,
        "user": user or "",
        "type": type,
        "types": ["all", *TYPE_FILTERS],
        "search": search or "",
        "groups": group_by_hour(shots, settings.TZ, search),
        "total": len(shots),
        "members": list_profiles(db, visible_user_ids(db, profile)),
        "image_url": image_url,
        "activity_summary": activity_summary,
    }
    return render(request, "screenshots.html", context)


# ---- downloads & profile


@router.get("/download", response_class=HTMLResponse)
def download_page(
    request: Request,
    profile: Profile = Depends(current_profile),
    storage: StorageClient = Depends(get_storage_client),
):
    try:
        links = find_installer_links(storage, settings.DOWNLOAD_BUCKETS)
    except BackendError as exc:
        toasts.error(request, exc.message)
        links = {"windows": "", "macos": "", "bucket": ""}
    return render(request, "download.html", {"links": links})


@router.get("/profile", response_class=HTMLResponse)
def profile_page(request: Request, profile: Profile = Depends(current_profile), db: Session = Depends(get_db)):
    return render(request, "profile.html", {"stats": personal_stats(db, profile, settings.TZ)})


@router.post("/profile")
def profile_submit(
    request: Request,
    full_name: str = Form(""),
    email: str = Form(""),
    team: str = Form(""),
    phone: str = Form(""),
    location: str = Form(""),
    profile: Profile = Depends(current_profile),
    db: Session = Depends(get_db),
):
    payload = {"full_name": full_name, "email": email, "team": team, "phone": phone, "location": location}
    try:
        update_own_profile(db, profile, payload)
        toasts.success(request, "Profile updated successfully!")
    except ValueError as exc:
        toasts.error(request, str(exc))
    return _back("/profile")


@router.post("/profile/avatar")
async def avatar_submit(
    request: Request,
    avatar: UploadFile = File(...),
    profile: Profile = Depends(current_profile),
    db: Session = Depends(get_db),
    storage: StorageClient = Depends(get_storage_client),
):
    content = await avatar.read()
    try:
        upload_avatar(
            db,
            storage,
            profile,
            filename=avatar.filename or "avatar.png",
            content_type=avatar.content_type,
            content=content,
            bucket=settings.AVATARS_BUCKET,
            max_bytes=settings.AVATAR_MAX_BYTES,
        )
        toasts.success(request, "Profile picture updated successfully!")
    except ValueError as exc:
        toasts.error(request, str(exc))
    except BackendError as exc:
        toasts.error(request, exc.message or "Failed to upload image")
    return _back("/profile")


def redirect_unknown(request: Request, profile: Profile = Depends(current_profile)):
    """Catch-all for signed-in users; unknown API paths stay 404."""
    if request.url.path.startswith("/api/"):
        raise HTTPException(404, "Not found")
    return RedirectResponse(url="/", status_code=302)


__all__ = ["redirect_unknown", "router"]
