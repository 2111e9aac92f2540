"""Pydantic schemas that describe project and task payloads for the API."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class ProjectBase(BaseModel):
    name: str
    description: Optional[str] = None
    status: Optional[str] = None
    task_id: Optional[str] = None


class ProjectCreate(ProjectBase):
    project_managers: list[str] = Field(default_factory=list)
    member_ids: list[str] = Field(default_factory=list)
    group_ids: list[str] = Field(default_factory=list)


class ProjectUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    status: Optional[str] = None
    task_id: Optional[str] = None
    project_managers: Optional[list[str]] = None
    member_ids: Optional[list[str]] = None
    group_ids: Optional[list[str]] = None


class MemberOut(BaseModel):
    user_id: str
    full_name: Optional[str] = None
    role: Optional[str] = None
    hours: float = 0.0


class ProjectOut(ProjectBase):
    model_config = ConfigDict(from_attributes=True)

    id: str
    created_by: Optional[str] = None
    project_managers: list[str] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    hours_spent: float = 0.0
    members: list[MemberOut] = Field(default_factory=list)
    can_manage: bool = False


class MemberEntryOut(BaseModel):
    id: str
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    duration: int = 0
    description: Optional[str] = None


class ProjectDetail(ProjectOut):
    member_entries: dict[str, list[MemberEntryOut]] = Field(default_factory=dict)


class TaskCreate(BaseModel):
    name: str = Field(..., min_length=1)


class TaskOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    category: str
    created_at: Optional[datetime] = None
