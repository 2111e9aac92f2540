"""Groups are named member sets that managers reuse when staffing projects."""

from __future__ import annotations

from sqlalchemy import desc, or_, select
from sqlalchemy.orm import Session, selectinload

from ..core.roles import can_manage_groups, is_admin, is_supervisor
from ..models.group import Group, GroupMember
from ..models.profile import Profile
from ..services.changefeed import feed


def _require_group_role(viewer: Profile) -> None:
    if not can_manage_groups(viewer.role):
        raise PermissionError("Only managers, HR and admins can manage groups")


def _clean_members(member_ids) -> list[str]:
    return list(dict.fromkeys(str(uid) for uid in (member_ids or []) if uid))


def list_groups(db: Session, viewer: Profile) -> list[Group]:
    if not can_manage_groups(viewer.role):
        return []
    stmt = (
        select(Group)
        .options(selectinload(Group.members).selectinload(GroupMember.profile))
        .order_by(desc(Group.created_at))
    )
    if not is_admin(viewer.role):
        stmt = stmt.where(or_(Group.manager_id == viewer.id, Group.created_by == viewer.id))
    return list(db.execute(stmt).scalars().all())


def get_group(db: Session, viewer: Profile, group_id: str) -> Group | None:
    """A group the viewer is allowed to see, or ``None``."""
    for group in list_groups(db, viewer):
        if group.id == group_id:
            return group
    return None


def create_group(db: Session, viewer: Profile, payload: dict) -> Group:
    _require_group_role(viewer)
    name = (payload.get("name") or "").strip()
    if not name:
        raise ValueError("Please enter a group name")
    member_ids = _clean_members(payload.get("member_ids"))
    if not member_ids:
        raise ValueError("Please select at least one team member")

    group = Group(
        name=name,
        created_by=viewer.id,
        manager_id=viewer.id if is_supervisor(viewer.role) else None,
    )
    group.members = [GroupMember(user_id=user_id) for user_id in member_ids]
    db.add(group)
    db.commit()
    db.refresh(group)
    feed.publish("groups", "insert", group.id)
    return group


def update_group(db: Session, viewer: Profile, group: Group, payload: dict) -> Group:
    """Rename the group and replace its member set."""
    _require_group_role(viewer)
    if "name" in payload:
        name = (payload.get("name") or "").strip()
        if not name:
            raise ValueError("Please enter a group name")
        group.name = name
    if "member_ids" in payload:
        group.members.clear()
        db.flush()
        group.members.extend(GroupMember(user_id=user_id) for user_id in _clean_members(payload.get("member_ids")))
    db.commit()
    db.refresh(group)
    feed.publish("groups", "update", group.id)
    return group


def delete_group(db: Session, viewer: Profile, group: Group) -> None:
    _require_group_role(viewer)
    group_id = group.id
    for member in list(group.members):
        db.delete(member)
    db.flush()
    db.delete(group)
    db.commit()
    feed.publish("groups", "delete", group_id)


__all__ = ["create_group", "delete_group", "get_group", "list_groups", "update_group"]
