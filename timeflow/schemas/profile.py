"""Profile payloads shared by the team, admin and self-service endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict


class ProfileOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    email: Optional[str] = None
    full_name: str
    role: str
    team: Optional[str] = None
    manager_id: Optional[str] = None
    avatar_url: Optional[str] = None
    phone: Optional[str] = None
    location: Optional[str] = None
    force_password_change: Optional[bool] = None
    enable_screenshot_capture: Optional[bool] = None
    enable_camera_capture: Optional[bool] = None
    created_at: Optional[datetime] = None


class ProfileUpdate(BaseModel):
    full_name: Optional[str] = None
    email: Optional[str] = None
    team: Optional[str] = None
    phone: Optional[str] = None
    location: Optional[str] = None


class TeamMemberOut(BaseModel):
    profile: ProfileOut
    hours_today: float
    projects_assigned: int
