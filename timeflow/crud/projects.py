"""CRUD helpers for projects, their members and the task catalogue."""

from __future__ import annotations

from typing import Any, Iterable

from sqlalchemy import asc, desc, select
from sqlalchemy.orm import Session, selectinload

from ..core.roles import Role, can_manage_project, can_manage_tasks
from ..db.session import utcnow
from ..models.group import GroupMember
from ..models.profile import Profile
from ..models.project import Project, ProjectMember, Task
from ..models.time_entry import ProjectTimeEntry, TimeEntry
from ..services.changefeed import feed
from ..services.timecalc import round_tenth, seconds_to_hours

PROJECT_STATUSES = ("pending", "active", "in_progress", "completed", "on_hold", "cancelled")
DEFAULT_PROJECT_NAMES = frozenset({"unassigned", "no project", "general", "misc", "miscellaneous"})


def is_default_project_name(name: str | None) -> bool:
    lowered = (name or "").lower()
    return "default" in lowered or lowered in DEFAULT_PROJECT_NAMES


def _project_query():
    return select(Project).options(
        selectinload(Project.task),
        selectinload(Project.creator),
        selectinload(Project.members).selectinload(ProjectMember.profile),
    )


def get_project(db: Session, project_id: str) -> Project | None:
    return db.execute(_project_query().where(Project.id == project_id)).scalars().first()


def _member_project_ids(db: Session, user_id: str) -> set[str]:
    return set(db.execute(select(ProjectMember.project_id).where(ProjectMember.user_id == user_id)).scalars().all())


def list_projects(db: Session, viewer: Profile) -> list[Project]:
    """Projects visible to ``viewer``, newest first."""

    projects = list(db.execute(_project_query().order_by(desc(Project.created_at))).scalars().all())
    if viewer.role == Role.EMPLOYEE.value:
        member_of = _member_project_ids(db, viewer.id)
        return [project for project in projects if project.id in member_of]
    if viewer.role == Role.MANAGER.value:
        member_of = _member_project_ids(db, viewer.id)
        return [
            project
            for project in projects
            if project.created_by == viewer.id or viewer.id in project.manager_ids or project.id in member_of
        ]
    return projects


def _project_links(db: Session, project: Project):
    condition = ProjectTimeEntry.project_id == project.id
    if is_default_project_name(project.name):
        condition = condition | ProjectTimeEntry.project_id.is_(None)
    stmt = (
        select(ProjectTimeEntry)
        .where(condition)
        .options(selectinload(ProjectTimeEntry.time_entry).selectinload(TimeEntry.profile))
    )
    return db.execute(stmt).scalars().all()


def project_hours(db: Session, project: Project, *, with_entries: bool = False) -> dict[str, Any]:
    """Hours spent on a project in total and per member."""

    total_seconds = 0
    per_member: dict[str, dict[str, Any]] = {}
    for link in _project_links(db, project):
        entry = link.time_entry
        if entry is None:
            continue
        seconds = entry.duration or 0
        total_seconds += seconds
        bucket = per_member.setdefault(entry.user_id, {"user_id": entry.user_id, "user_name": "", "seconds": 0, "entries": []})
        bucket["seconds"] += seconds
        if entry.profile is not None:
            bucket["user_name"] = entry.profile.full_name
        if with_entries:
            bucket["entries"].append(entry)

    member_hours = []
    for bucket in per_member.values():
        row = {
            "user_id": bucket["user_id"],
            "user_name": bucket["user_name"],
            "hours": round_tenth(seconds_to_hours(bucket["seconds"])),
        }
        if with_entries:
            row["entries"] = sorted(bucket["entries"], key=lambda e: e.start_time, reverse=True)
        member_hours.append(row)
    return {"hours_spent": round_tenth(seconds_to_hours(total_seconds)), "member_hours": member_hours}


def manager_profiles(db: Session, project: Project) -> list[Profile]:
    ids = project.manager_ids
    if not ids:
        return []
    return list(db.execute(select(Profile).where(Profile.id.in_(ids)).order_by(Profile.full_name)).scalars().all())


def group_member_ids(db: Session, group_ids: Iterable[str]) -> list[str]:
    ids = [gid for gid in group_ids if gid]
    if not ids:
        return []
    rows = db.execute(select(GroupMember.user_id).where(GroupMember.group_id.in_(ids))).scalars().all()
    return list(dict.fromkeys(rows))


def _clean_ids(values: Iterable[str] | None) -> list[str]:
    return list(dict.fromkeys(str(value) for value in (values or []) if value))


def _validate_status(value: str | None) -> str:
    status = (value or "pending").strip().lower()
    if status not in PROJECT_STATUSES:
        raise ValueError(f"Unknown status: {value}")
    return status


def create_project(db: Session, creator: Profile, payload: dict) -> Project:
    if creator.role == Role.EMPLOYEE.value:
        raise PermissionError("Employees cannot create projects")
    name = (payload.get("name") or "").strip()
    if not name:
        raise ValueError("name is required")

    managers = _clean_ids(payload.get("project_managers")) or [creator.id]
    members = _clean_ids([*(payload.get("member_ids") or []), *group_member_ids(db, payload.get("group_ids") or [])])

    now = utcnow()
    project = Project(
        name=name,
        description=(payload.get("description") or None),
        status=_validate_status(payload.get("status")),
        task_id=(payload.get("task_id") or None),
        created_by=creator.id,
        project_managers=managers,
        created_at=now,
        updated_at=now,
    )
    project.members = [ProjectMember(user_id=user_id, role="member") for user_id in members]
    db.add(project)
    db.commit()
    db.refresh(project)
    feed.publish("projects", "insert", project.id)
    return project


def update_project(db: Session, viewer: Profile, project: Project, payload: dict) -> Project:
    if not can_manage_project(viewer.id, viewer.role, project.created_by, project.manager_ids):
        raise PermissionError("You do not have permission to manage team members for this project")

    if "name" in payload:
        name = (payload.get("name") or "").strip()
        if not name:
            raise ValueError("name is required")
        project.name = name
    if "description" in payload:
        project.description = payload.get("description") or None
    if "status" in payload:
        project.status = _validate_status(payload.get("status"))
    if "task_id" in payload:
        project.task_id = payload.get("task_id") or None
    if "project_managers" in payload:
        project.project_managers = _clean_ids(payload.get("project_managers")) or None

    if "member_ids" in payload or payload.get("group_ids"):
        base = (payload.get("member_ids") or []) if "member_ids" in payload else project.member_ids
        wanted = _clean_ids([*base, *group_member_ids(db, payload.get("group_ids") or [])])
        current = project.member_ids
        for member in list(project.members):
            if member.user_id not in wanted:
                project.members.remove(member)
        for user_id in wanted:
            if user_id not in current:
                project.members.append(ProjectMember(user_id=user_id, role="member"))

    project.updated_at = utcnow()
    db.commit()
    db.refresh(project)
    feed.publish("projects", "update", project.id)
    return project


def delete_project(db: Session, viewer: Profile, project: Project) -> None:
    if not can_manage_project(viewer.id, viewer.role, project.created_by, project.manager_ids):
        raise PermissionError("You do not have permission to delete this project")
    project_id = project.id
    # Members go first; delete-orphan removes them from the collection and the table.
    project.members.clear()
    db.flush()
    db.delete(project)
    db.commit()
    feed.publish("projects", "delete", project_id)


def project_summary(db: Session, viewer: Profile, project: Project, *, with_entries: bool = False) -> dict[str, Any]:
    """Project annotated with hours, managers and whether ``viewer`` may edit it."""

    hours = project_hours(db, project, with_entries=with_entries)
    return {
        "project": project,
        "hours_spent": hours["hours_spent"],
        "member_hours": hours["member_hours"],
        "managers": manager_profiles(db, project),
        "can_manage": can_manage_project(viewer.id, viewer.role, project.created_by, project.manager_ids),
    }


# ---- tasks


def list_tasks(db: Session) -> list[Task]:
    stmt = select(Task).order_by(desc(Task.category), asc(Task.name))
    return list(db.execute(stmt).scalars().all())


def get_task(db: Session, task_id: str) -> Task | None:
    return db.get(Task, task_id)


def _require_task_editor(actor: Profile) -> None:
    if not can_manage_tasks(actor.role):
        raise PermissionError("Only admins and managers can change tasks")


def create_task(db: Session, actor: Profile, name: str) -> Task:
    _require_task_editor(actor)
    cleaned = (name or "").strip()
    if not cleaned:
        raise ValueError("Task name is required")
    task = Task(name=cleaned, category="custom")
    db.add(task)
    db.commit()
    db.refresh(task)
    feed.publish("tasks", "insert", task.id)
    return task


def rename_task(db: Session, actor: Profile, task: Task, name: str) -> Task:
    _require_task_editor(actor)
    cleaned = (name or "").strip()
    if not cleaned:
        raise ValueError("Task name is required")
    task.name = cleaned
    db.commit()
    db.refresh(task)
    feed.publish("tasks", "update", task.id)
    return task


def delete_task(db: Session, actor: Profile, task: Task) -> None:
    _require_task_editor(actor)
    task_id = task.id
    for project in db.execute(select(Project).where(Project.task_id == task_id)).scalars().all():
        project.task_id = None
    db.delete(task)
    db.commit()
    feed.publish("tasks", "delete", task_id)


__all__ = [
    "DEFAULT_PROJECT_NAMES",
    "PROJECT_STATUSES",
    "create_project",
    "create_task",
    "delete_project",
    "delete_task",
    "get_project",
    "get_task",
    "group_member_ids",
    "project_summary",
    "is_default_project_name",
    "list_projects",
    "list_tasks",
    "manager_profiles",
    "project_hours",
    "rename_task",
    "update_project",
]
