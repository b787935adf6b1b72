"""Datenmodelle für Schule, Klasse und Schul-Kennzahlen (Pydantic v2)."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class School(BaseModel):
    """Eine Schule (Mandant)."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    created_at: Optional[datetime] = None
    subscription_status: str = "active"          # active/trial/expired/suspended
    subscription_expires_at: Optional[datetime] = None

    def is_subscription_active(self, now: Optional[datetime] = None) -> bool:
        if self.subscription_status in ("expired", "suspended"):
            return False
        if self.subscription_expires_at is None:
            return True
        now = now or datetime.now(self.subscription_expires_at.tzinfo)
        return self.subscription_expires_at > now


class ClassInfo(BaseModel):
    """Eine Klasse einer Schule."""

    model_config = ConfigDict(frozen=True)

    id: str
    school_id: str
    name: str                                    # "7b"
    grade_level: Optional[str] = None            # "7"
    academic_year: Optional[str] = None          # "2025/2026"
    head_teacher_id: Optional[str] = None
    created_at: Optional[datetime] = None


class SchoolStats(BaseModel):
    """Kennzahlen für die Schulleitung."""

    total_staff: int = Field(0, ge=0)
    total_teachers: int = Field(0, ge=0)
    total_admins: int = Field(0, ge=0)
    total_classes: int = Field(0, ge=0)
    total_students: int = Field(0, ge=0)
    total_parents: int = Field(0, ge=0)
    active_invite_codes: int = Field(0, ge=0)


class DeputyStats(BaseModel):
    """Kennzahlen für die stellvertretende Schulleitung."""

    total_lessons: int = Field(0, ge=0)
    total_classes: int = Field(0, ge=0)
    students_without_parents: int = Field(0, ge=0)
    pending_parent_invites: int = Field(0, ge=0)
    total_subjects: int = Field(0, ge=0)
    total_teachers: int = Field(0, ge=0)


class TeacherStats(BaseModel):
    """Kennzahlen für das Dashboard einer Lehrkraft."""

    total_subjects: int = Field(0, ge=0)
    total_lessons: int = Field(0, ge=0)
    total_students: int = Field(0, ge=0)
    pending_excuses: int = Field(0, ge=0)
    todays_lessons: int = Field(0, ge=0)
    average_attendance: float = Field(100.0, ge=0, le=100)
    assignments_due: int = Field(0, ge=0)
