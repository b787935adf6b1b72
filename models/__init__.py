from models.roles import UserRole
from models.user import AppUser
from models.school import School, ClassInfo, SchoolStats, DeputyStats, TeacherStats
from models.subject import Subject
from models.lesson import Lesson, LessonStatus
from models.grade import Grade, GradeSummary, SubjectGradeStats
from models.assignment import Assignment, SubjectDetail
from models.attendance import (
    AttendanceStatus,
    AttendanceRecord,
    AttendanceStats,
    DailyAttendanceStatus,
    AbsenceExcuse,
    AbsenceExcuseStatus,
)
from models.invite import InviteToken, InviteCode, ParentInvite
from models.chat import MessageType, Message, GroupMember, MessageGroup, Conversation

__all__ = [
    "UserRole",
    "AppUser",
    "School",
    "ClassInfo",
    "SchoolStats",
    "DeputyStats",
    "TeacherStats",
    "Subject",
    "Lesson",
    "LessonStatus",
    "Grade",
    "SubjectGradeStats",
    "GradeSummary",
    "Assignment",
    "SubjectDetail",
    "AttendanceStatus",
    "AttendanceRecord",
    "AttendanceStats",
    "DailyAttendanceStatus",
    "AbsenceExcuse",
    "AbsenceExcuseStatus",
    "InviteToken",
    "InviteCode",
    "ParentInvite",
    "MessageType",
    "Message",
    "GroupMember",
    "MessageGroup",
    "Conversation",
]
