from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..core.config import settings
from ..crud.groups import create_group, delete_group, get_group, list_groups, update_group
from ..db.session import get_db
from ..deps.auth import current_profile, require_group_manager
from ..models.profile import Profile
from ..schemas.group import GroupCreate, GroupOut, GroupUpdate
from ..schemas.profile import ProfileOut, TeamMemberOut
from ..services.team import team_overview

router = APIRouter(prefix="/api/v1/team", tags=["team"])


@router.get("")
def api_team(
    search: str | None = None,
    role: str | None = None,
    department: str | None = None,
    profile: Profile = Depends(current_profile),
    db: Session = Depends(get_db),
):
    overview = team_overview(db, profile, settings.TZ, search=search, role=role, department=department)
    return {
        "members": [
            TeamMemberOut(
                profile=ProfileOut.model_validate(row["profile"]),
                hours_today=row["hours_today"],
                projects_assigned=row["projects_assigned"],
            )
            for row in overview["members"]
        ],
        "roles": overview["roles"],
        "departments": overview["departments"],
        "total": overview["total"],
    }


@router.get("/groups", response_model=list[GroupOut])
def api_list_groups(profile: Profile = Depends(require_group_manager), db: Session = Depends(get_db)):
    return list_groups(db, profile)


@router.post("/groups", response_model=GroupOut, status_code=201)
def api_create_group(payload: GroupCreate, profile: Profile = Depends(require_group_manager), db: Session = Depends(get_db)):
    try:
        return create_group(db, profile, payload.model_dump())
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc


@router.patch("/groups/{group_id}", response_model=GroupOut)
def api_update_group(
    group_id: str,
    payload: GroupUpdate,
    profile: Profile = Depends(require_group_manager),
    db: Session = Depends(get_db),
):
    group = get_group(db, profile, group_id)
    if group is None:
        raise HTTPException(404, "Not found")
    try:
        return update_group(db, profile, group, payload.model_dump(exclude_unset=True))
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc


@router.delete("/groups/{group_id}")
def api_delete_group(group_id: str, profile: Profile = Depends(require_group_manager), db: Session = Depends(get_db)):
    group = get_group(db, profile, group_id)
    if group is None:
        raise HTTPException(404, "Not found")
    delete_group(db, profile, group)
    return {"status": "deleted"}
