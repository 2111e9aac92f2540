"""Importing this package registers every mapped table with ``Base.metadata``."""

from __future__ import annotations

from .group import Group, GroupMember
from .notification import Notification
from .profile import EmployeeManager, Profile
from .project import Project, ProjectMember, Task
from .screenshot import ActivityLog, Screenshot, ScreenshotActivity
from .system_setting import SystemSetting, UserLog
from .time_entry import ProjectTimeEntry, TimeEntry

__all__ = [
    "ActivityLog",
    "EmployeeManager",
    "Group",
    "GroupMember",
    "Notification",
    "Profile",
    "Project",
    "ProjectMember",
    "ProjectTimeEntry",
    "Screenshot",
    "ScreenshotActivity",
    "SystemSetting",
    "Task",
    "TimeEntry",
    "UserLog",
]
