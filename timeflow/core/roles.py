"""Role names and the visibility rules that hang off them."""

from __future__ import annotations

from enum import Enum
from typing import Iterable


class Role(str, Enum):
    EMPLOYEE = "employee"
    MANAGER = "manager"
    ADMIN = "admin"
    HR = "hr"
    ACCOUNTANT = "accountant"


ROLE_LABELS = {
    Role.EMPLOYEE.value: "Employee",
    Role.MANAGER.value: "Manager",
    Role.ADMIN.value: "Admin",
    Role.HR.value: "HR",
    Role.ACCOUNTANT.value: "Accountant",
}

# Roles that supervise other people and can see their team's data.
SUPERVISOR_ROLES = frozenset({Role.MANAGER.value, Role.HR.value})
TEAM_VIEW_ROLES = frozenset({Role.ADMIN.value, *SUPERVISOR_ROLES})
# Candidates offered in the "manager" picker of the admin panel.
MANAGER_CANDIDATE_ROLES = (Role.ADMIN.value, Role.MANAGER.value, Role.HR.value)


def normalize_role(value: str | None) -> str:
    candidate = (value or "").strip().lower()
    if candidate not in ROLE_LABELS:
        raise ValueError(f"Unknown role: {value}")
    return candidate


def is_admin(role: str | None) -> bool:
    return role == Role.ADMIN.value


def is_supervisor(role: str | None) -> bool:
    return role in SUPERVISOR_ROLES


def can_view_team(role: str | None) -> bool:
    return role in TEAM_VIEW_ROLES


def can_manage_groups(role: str | None) -> bool:
    return role in TEAM_VIEW_ROLES


# Roles allowed to edit the shared task catalogue.
TASK_EDITOR_ROLES = frozenset({Role.ADMIN.value, Role.MANAGER.value})


def can_manage_tasks(role: str | None) -> bool:
    return role in TASK_EDITOR_ROLES


def can_manage_project(viewer_id: str, role: str | None, created_by: str | None, managers: Iterable[str] | None) -> bool:
    if is_admin(role):
        return True
    if created_by and created_by == viewer_id:
        return True
    return viewer_id in set(managers or [])


__all__ = [
    "Role",
    "ROLE_LABELS",
    "MANAGER_CANDIDATE_ROLES",
    "normalize_role",
    "is_admin",
    "is_supervisor",
    "can_view_team",
    "can_manage_groups",
    "can_manage_project",
    "can_manage_tasks",
]
