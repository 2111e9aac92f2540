from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class VersionCheckOut(BaseModel):
    required_version: str
    update_url: Optional[str] = None
    force_update: bool = False
    is_compatible: bool = True
    current_version: Optional[str] = None


class VersionPolicyIn(BaseModel):
    version: str = Field(..., examples=["1.6.0"])
    update_url: Optional[str] = None
    force_update: bool = False


class VersionStatsOut(BaseModel):
    total_users: int
    outdated_users: int
    version_distribution: dict[str, int]
    required_version: str
