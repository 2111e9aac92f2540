from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..crud.projects import (
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
from ..models.profile import Profile
from ..schemas.project import (
    MemberEntryOut,
    MemberOut,
    ProjectCreate,
    ProjectDetail,
    ProjectOut,
    ProjectUpdate,
    TaskCreate,
    TaskOut,
)

router = APIRouter(prefix="/api/v1/projects", tags=["projects"])
tasks_router = APIRouter(prefix="/api/v1/tasks", tags=["tasks"], dependencies=[Depends(current_profile)])


def _project_to_schema(summary: dict[str, Any], *, include_entries: bool = False) -> ProjectOut | ProjectDetail:
    project = summary["project"]
    hours = {row["user_id"]: row["hours"] for row in summary["member_hours"]}
    members = [
        MemberOut(
            user_id=member.user_id,
            full_name=member.profile.full_name if member.profile else None,
            role=member.role,
            hours=hours.get(member.user_id, 0.0),
        )
        for member in project.members or []
    ]
    base = ProjectOut.model_validate(project, from_attributes=True).model_copy(
        update={
            "project_managers": project.manager_ids,
            "hours_spent": summary["hours_spent"],
            "members": members,
            "can_manage": summary["can_manage"],
        }
    )
    if not include_entries:
        return base
    detail = ProjectDetail(**base.model_dump())
    detail.member_entries = {
        row["user_id"]: [
            MemberEntryOut(
                id=entry.id,
                start_time=entry.start_time,
                end_time=entry.end_time,
                duration=entry.duration or 0,
                description=entry.description,
            )
            for entry in row.get("entries", [])
        ]
        for row in summary["member_hours"]
    }
    return detail


def _visible_project(db: Session, viewer: Profile, project_id: str):
    project = get_project(db, project_id)
    if project is None or project.id not in {p.id for p in list_projects(db, viewer)}:
        raise HTTPException(404, "Not found")
    return project


@router.get("", response_model=list[ProjectOut])
def api_list_projects(profile: Profile = Depends(current_profile), db: Session = Depends(get_db)):
    return [_project_to_schema(project_summary(db, profile, project)) for project in list_projects(db, profile)]


@router.post("", response_model=ProjectOut, status_code=201)
def api_create_project(payload: ProjectCreate, profile: Profile = Depends(current_profile), db: Session = Depends(get_db)):
    try:
        project = create_project(db, profile, payload.model_dump())
    except PermissionError as exc:
        raise HTTPException(status_code=403, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    project = get_project(db, project.id) or project
    return _project_to_schema(project_summary(db, profile, project))


@router.get("/{project_id}", response_model=ProjectDetail)
def api_get_project(project_id: str, profile: Profile = Depends(current_profile), db: Session = Depends(get_db)):
    project = _visible_project(db, profile, project_id)
    return _project_to_schema(project_summary(db, profile, project, with_entries=True), include_entries=True)


@router.patch("/{project_id}", response_model=ProjectOut)
def api_update_project(
    project_id: str,
    payload: ProjectUpdate,
    profile: Profile = Depends(current_profile),
    db: Session = Depends(get_db),
):
    project = get_project(db, project_id)
    if not project:
        raise HTTPException(404, "Not found")
    try:
        updated = update_project(db, profile, project, payload.model_dump(exclude_unset=True))
    except PermissionError as exc:
        raise HTTPException(status_code=403, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    refreshed = get_project(db, updated.id) or updated
    return _project_to_schema(project_summary(db, profile, refreshed))


@router.delete("/{project_id}")
def api_delete_project(project_id: str, profile: Profile = Depends(current_profile), db: Session = Depends(get_db)):
    project = get_project(db, project_id)
    if not project:
        raise HTTPException(404, "Not found")
    try:
        delete_project(db, profile, project)
    except PermissionError as exc:
        raise HTTPException(status_code=403, detail=str(exc)) from exc
    return {"status": "deleted"}


@tasks_router.get("", response_model=list[TaskOut])
def api_list_tasks(db: Session = Depends(get_db)):
    return list_tasks(db)


@tasks_router.post("", response_model=TaskOut, status_code=201)
def api_create_task(payload: TaskCreate, profile: Profile = Depends(current_profile), db: Session = Depends(get_db)):
    try:
        return create_task(db, profile, payload.name)
    except PermissionError as exc:
        raise HTTPException(status_code=403, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc


@tasks_router.patch("/{task_id}", response_model=TaskOut)
def api_rename_task(
    task_id: str,
    payload: TaskCreate,
    profile: Profile = Depends(current_profile),
    db: Session = Depends(get_db),
):
    task = get_task(db, task_id)
    if task is None:
        raise HTTPException(404, "Not found")
    try:
        return rename_task(db, profile, task, payload.name)
    except PermissionError as exc:
        raise HTTPException(status_code=403, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc


@tasks_router.delete("/{task_id}")
def api_delete_task(task_id: str, profile: Profile = Depends(current_profile), db: Session = Depends(get_db)):
    task = get_task(db, task_id)
    if task is None:
        raise HTTPException(404, "Not found")
    try:
        delete_task(db, profile, task)
    except PermissionError as exc:
        raise HTTPException(status_code=403, detail=str(exc)) from exc
    return {"status": "deleted"}
