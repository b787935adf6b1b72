"""Fachdienste über einem TableStore."""

from .base import (
    AdminError,
    AssignmentError,
    AttendanceError,
    AuthError,
    ChatError,
    GradesError,
    InviteError,
    ParentError,
    ProfileError,
    ScheduleError,
    ServiceError,
    TeacherError,
)
from .assignments import AssignmentService
from .attendance import AttendanceService
from .auth import AuthService, InMemoryAuthBackend, SupabaseAuthBackend
from .chat import ChatService
from .grades import GradesService
from .invites import InviteService
from .parent import ParentService
from .profile import ProfileService
from .schedule import ScheduleService, week_start
from .school_admin import SchoolAdminService
from .teacher import TeacherService

__all__ = [
    "ServiceError",
    "AuthError",
    "InviteError",
    "ScheduleError",
    "GradesError",
    "AttendanceError",
    "ChatError",
    "AdminError",
    "AssignmentError",
    "TeacherError",
    "ParentError",
    "ProfileError",
    "AssignmentService",
    "AttendanceService",
    "AuthService",
    "InMemoryAuthBackend",
    "SupabaseAuthBackend",
    "ChatService",
    "GradesService",
    "InviteService",
    "ScheduleService",
    "week_start",
    "SchoolAdminService",
    "TeacherService",
    "ParentService",
    "ProfileService",
]
