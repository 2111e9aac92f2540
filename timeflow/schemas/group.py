from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class GroupCreate(BaseModel):
    name: str
    member_ids: list[str] = Field(default_factory=list)


class GroupUpdate(BaseModel):
    name: Optional[str] = None
    member_ids: Optional[list[str]] = None


class GroupOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    created_by: Optional[str] = None
    manager_id: Optional[str] = None
    created_at: Optional[datetime] = None
    member_ids: list[str] = Field(default_factory=list)
