"""Strikte Umwandlung von Backend-Zeilen in Domänenobjekte.

Anders als die DTOs werfen diese Funktionen ValueError, sobald ein
Pflichtfeld fehlt. Sie werden dort verwendet, wo eine kaputte Zeile ein
Fehler des Aufrufers ist (Profile, Tokens, Schulen).
"""

from typing import Optional

from data.json_parsing import (
    parse_bool,
    parse_date,
    parse_datetime,
    parse_datetime_required,
    parse_int,
    parse_int_nullable,
    parse_profile_name,
    parse_string_nullable,
    parse_string_required,
)
from models.attendance import AttendanceRecord, AttendanceStatus
from models.chat import GroupMember, Message, MessageGroup, MessageType
from models.invite import InviteCode, InviteToken, ParentInvite
from models.roles import UserRole
from models.school import ClassInfo, School
from models.user import AppUser


def _role_required(value, field: str = "role") -> UserRole:
    role = UserRole.parse(value)
    if role is None:
        raise ValueError(f"Unbekannte Rolle in Feld '{field}': {value!r}")
    return role


def user_from_row(row: dict) -> AppUser:
    """Profilzeile (profiles) → AppUser."""
    return AppUser(
        id=parse_string_required(row.get("id"), "id"),
        email=parse_string_required(row.get("email"), "email"),
        role=_role_required(row.get("role")),
        first_name=parse_string_nullable(row.get("first_name"), "first_name"),
        last_name=parse_string_nullable(row.get("last_name"), "last_name"),
        school_id=parse_string_nullable(row.get("school_id"), "school_id"),
        avatar_url=parse_string_nullable(row.get("avatar_url"), "avatar_url"),
        bio=parse_string_nullable(row.get("bio"), "bio"),
        phone_number=parse_string_nullable(row.get("phone_number"), "phone_number"),
        created_at=parse_datetime(row.get("created_at"), "created_at"),
    )


def invite_token_from_row(row: dict) -> InviteToken:
    times_used = parse_int_nullable(row.get("times_used"), "times_used")
    usage_limit = parse_int_nullable(row.get("usage_limit"), "usage_limit")
    if times_used is None or usage_limit is None:
        raise ValueError("Token-Zeile ohne times_used/usage_limit")
    return InviteToken(
        token=parse_string_required(row.get("token"), "token"),
        role=_role_required(row.get("role")),
        school_id=parse_string_nullable(row.get("school_id"), "school_id"),
        created_by_user_id=parse_string_nullable(
            row.get("created_by_user_id"), "created_by_user_id"),
        specific_class_id=parse_string_nullable(
            row.get("specific_class_id"), "specific_class_id"),
        times_used=times_used,
        usage_limit=usage_limit,
        expires_at=parse_datetime(row.get("expires_at"), "expires_at"),
        created_at=parse_datetime_required(row.get("created_at"), "created_at"),
    )


def invite_code_from_row(row: dict) -> InviteCode:
    return InviteCode(
        id=parse_string_required(row.get("id"), "id"),
        code=parse_string_required(row.get("code"), "code"),
        role=_role_required(row.get("role")),
        school_id=parse_string_required(row.get("school_id"), "school_id"),
        class_id=parse_string_nullable(row.get("class_id"), "class_id"),
        usage_limit=parse_int(row.get("usage_limit"), "usage_limit", default=1),
        times_used=parse_int(row.get("times_used"), "times_used", default=0),
        is_active=parse_bool(row.get("is_active"), "is_active", default=True),
        expires_at=parse_datetime(row.get("expires_at"), "expires_at"),
        created_at=parse_datetime(row.get("created_at"), "created_at"),
    )


def school_from_row(row: dict) -> School:
    return School(
        id=parse_string_required(row.get("id"), "id"),
        name=parse_string_required(row.get("name"), "name"),
        created_at=parse_datetime(row.get("created_at"), "created_at"),
        subscription_status=parse_string_nullable(
            row.get("subscription_status"), "subscription_status") or "active",
        subscription_expires_at=parse_datetime(
            row.get("subscription_expires_at"), "subscription_expires_at"),
    )


def class_from_row(row: dict) -> ClassInfo:
    grade_level = row.get("grade_level")
    return ClassInfo(
        id=parse_string_required(row.get("id"), "id"),
        school_id=parse_string_required(row.get("school_id"), "school_id"),
        name=parse_string_required(row.get("name"), "name"),
        grade_level=parse_string_nullable(grade_level, "grade_level"),
        academic_year=parse_string_nullable(row.get("academic_year"), "academic_year"),
        head_teacher_id=parse_string_nullable(row.get("head_teacher_id"), "head_teacher_id"),
        created_at=parse_datetime(row.get("created_at"), "created_at"),
    )


def attendance_from_row(row: dict, subject_name: Optional[str] = None) -> AttendanceRecord:
    when = parse_date(row.get("date"), "date")
    if when is None:
        raise ValueError(f"Anwesenheit ohne Datum: {row.get('id')}")
    return AttendanceRecord(
        id=parse_string_required(row.get("id"), "id"),
        student_id=parse_string_required(row.get("student_id"), "student_id"),
        lesson_id=parse_string_required(row.get("lesson_id"), "lesson_id"),
        date=when,
        status=AttendanceStatus.parse(row.get("status")) or AttendanceStatus.PRESENT,
        subject_id=parse_string_nullable(row.get("subject_id"), "subject_id"),
        subject_name=subject_name,
        note=parse_string_nullable(row.get("note"), "note"),
        recorded_by=parse_string_nullable(row.get("recorded_by"), "recorded_by"),
        recorded_at=parse_datetime(row.get("recorded_at"), "recorded_at"),
    )


def message_from_row(row: dict, sender: Optional[dict] = None) -> Message:
    return Message(
        id=parse_string_required(row.get("id"), "id"),
        sender_id=parse_string_required(row.get("sender_id"), "sender_id"),
        sender_name=display_name(sender),
        recipient_id=parse_string_nullable(row.get("recipient_id"), "recipient_id"),
        group_id=parse_string_nullable(row.get("group_id"), "group_id"),
        content=parse_string_required(row.get("content"), "content"),
        type=MessageType.parse(row.get("message_type")),
        is_read=parse_bool(row.get("is_read"), "is_read"),
        created_at=parse_datetime_required(row.get("created_at"), "created_at"),
    )


def display_name(profile: Optional[dict]) -> Optional[str]:
    """Anzeigename; superadmin erscheint als "Admin <Vorname>"."""
    if not profile:
        return None
    if profile.get("role") == UserRole.SUPERADMIN.value and profile.get("first_name"):
        return f"Admin {profile['first_name']}"
    return parse_profile_name(profile, "profile")


def group_member_from_row(row: dict, profile: Optional[dict] = None) -> GroupMember:
    user_id = parse_string_required(row.get("user_id"), "user_id")
    return GroupMember(
        id=parse_string_nullable(row.get("id"), "id") or f"{row.get('group_id')}_{user_id}",
        user_id=user_id,
        user_name=display_name(profile),
        user_role=(profile or {}).get("role"),
    )


def group_from_row(row: dict, members: list[GroupMember]) -> MessageGroup:
    return MessageGroup(
        id=parse_string_required(row.get("id"), "id"),
        name=parse_string_required(row.get("name"), "name"),
        school_id=parse_string_nullable(row.get("school_id"), "school_id"),
        created_by=parse_string_required(row.get("created_by"), "created_by"),
        type=MessageType.parse(row.get("type") or MessageType.GROUP.value),
        members=members,
        created_at=parse_datetime(row.get("created_at"), "created_at"),
    )


def parent_invite_from_row(row: dict, student: Optional[dict] = None) -> ParentInvite:
    return ParentInvite(
        id=parse_string_required(row.get("id"), "id"),
        code=parse_string_required(row.get("code"), "code"),
        student_id=parse_string_required(row.get("student_id"), "student_id"),
        school_id=parse_string_required(row.get("school_id"), "school_id"),
        times_used=parse_int(row.get("times_used"), "times_used", default=0),
        usage_limit=parse_int(row.get("usage_limit"), "usage_limit", default=1),
        student_name=parse_profile_name(student, "student"),
        parent_id=parse_string_nullable(row.get("parent_id"), "parent_id"),
        created_at=parse_datetime(row.get("created_at"), "created_at"),
        used_at=parse_datetime(row.get("used_at"), "used_at"),
        expires_at=parse_datetime(row.get("expires_at"), "expires_at"),
    )
