from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field

from .profile import ProfileOut


class UserCreate(BaseModel):
    email: str
    password: str = Field(..., min_length=6)
    full_name: str
    role: str = "employee"
    team: Optional[str] = None
    manager_id: Optional[str] = None


class UserUpdate(BaseModel):
    email: Optional[str] = None
    full_name: Optional[str] = None
    role: Optional[str] = None
    team: Optional[str] = None
    manager_id: Optional[str] = None
    # Blank keeps the current password.
    password: Optional[str] = None


class CaptureToggle(BaseModel):
    setting: str = Field(..., pattern="^(screenshot|camera)$")


class AdminActionOut(BaseModel):
    message: str
    warning: Optional[str] = None
    profile: Optional[ProfileOut] = None


class SettingIn(BaseModel):
    key: str = Field(..., min_length=1)
    value: Any = None
    category: Optional[str] = None
    description: Optional[str] = None
