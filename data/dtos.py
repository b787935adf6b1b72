"""DTOs für Zeilen aus dem Backend: Fach, Stunde, Note, Hausaufgabe, Entschuldigung.

Die Zeilen folgen dem Join-Format des Backends: eine Stunde trägt ihr Fach
unter "subjects", ein Fach seine Lehrkraft unter "teacher".
"""

import math
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional

from data.dto_base import BaseDTO
from data.json_parsing import (
    parse_bool,
    parse_date,
    parse_datetime,
    parse_double,
    parse_double_nullable,
    parse_enum,
    parse_int,
    parse_int_nullable,
    parse_map,
    parse_profile_name,
    parse_string,
    parse_string_nullable,
    parse_time_string,
)
from models.assignment import Assignment
from models.attendance import AbsenceExcuse, AbsenceExcuseStatus
from models.grade import Grade
from models.lesson import Lesson, LessonStatus
from models.subject import Subject, color_for_id

UNKNOWN_SUBJECT = "Unknown Subject"


# ─── Wochentage ───

def db_to_weekday(db_day: int) -> int:
    """Backend 0=So..6=Sa → 1=Mo..7=So."""
    return 7 if db_day == 0 else db_day


def weekday_to_db(day_of_week: int) -> int:
    """1=Mo..7=So → Backend 0=So..6=Sa."""
    return 0 if day_of_week == 7 else day_of_week


def date_for_weekday(week_start: date, day_of_week: int) -> date:
    return week_start + timedelta(days=day_of_week - 1)


# ─── Fach ───

@dataclass
class SubjectDTO(BaseDTO[Subject]):
    id: Optional[str]
    name: Optional[str]
    color: Optional[int] = None
    teacher_id: Optional[str] = None
    teacher_name: Optional[str] = None
    class_id: Optional[str] = None

    @classmethod
    def from_row(cls, row: Optional[dict],
                 fallback_subject_id: Optional[str] = None) -> "SubjectDTO":
        """Fehlt der Join, entsteht ein Platzhalter mit fallback_subject_id."""
        if row is None:
            return cls(id=fallback_subject_id, name=UNKNOWN_SUBJECT)
        teacher = parse_map(row.get("teacher"), "teacher")
        return cls(
            id=parse_string_nullable(row.get("id"), "subject.id") or fallback_subject_id,
            name=parse_string(row.get("name"), "subject.name", default=UNKNOWN_SUBJECT),
            color=parse_int_nullable(row.get("color"), "subject.color"),
            teacher_id=parse_string_nullable(row.get("teacher_id"), "subject.teacher_id"),
            teacher_name=parse_profile_name(teacher, "teacher"),
            class_id=parse_string_nullable(row.get("class_id"), "subject.class_id"),
        )

    def validation_errors(self) -> list[str]:
        errors = []
        if not self.id:
            errors.append("subject.id is required")
        if not self.name:
            errors.append("subject.name is required")
        return errors

    def _build(self) -> Subject:
        return Subject(
            id=self.id,
            name=self.name,
            color=self.color if self.color is not None else color_for_id(self.id),
            teacher_id=self.teacher_id,
            teacher_name=self.teacher_name,
            class_id=self.class_id,
        )


# ─── Stunde ───

@dataclass
class LessonDTO(BaseDTO[Lesson]):
    id: Optional[str]
    subject: SubjectDTO
    day_of_week: Optional[int]
    start_time: Optional[datetime]
    end_time: Optional[datetime]
    room: str = ""
    status: LessonStatus = LessonStatus.NORMAL
    substitute_teacher: Optional[str] = None
    note: Optional[str] = None
    is_stable: bool = False
    stable_lesson_id: Optional[str] = None
    modified_from_stable: bool = False
    week_start_date: Optional[date] = None
    stable_lesson: Optional[Lesson] = None

    @classmethod
    def from_row(cls, row: dict, on_date: date,
                 stable_lesson: Optional[Lesson] = None) -> "LessonDTO":
        """Baut das DTO; Uhrzeiten werden mit on_date kombiniert."""
        subject = SubjectDTO.from_row(
            parse_map(row.get("subjects"), "subjects"),
            fallback_subject_id=parse_string_nullable(row.get("subject_id"), "subject_id"),
        )
        db_day = parse_int_nullable(row.get("day_of_week"), "day_of_week")
        return cls(
            id=parse_string_nullable(row.get("id"), "id"),
            subject=subject,
            day_of_week=db_to_weekday(db_day) if db_day is not None else on_date.isoweekday(),
            start_time=parse_time_string(row.get("start_time"), on_date, "start_time"),
            end_time=parse_time_string(row.get("end_time"), on_date, "end_time"),
            room=parse_string(row.get("room"), "room"),
            status=parse_enum(row.get("status"), LessonStatus, "status",
                              default=LessonStatus.NORMAL),
            substitute_teacher=parse_string_nullable(
                row.get("substitute_teacher"), "substitute_teacher"),
            note=parse_string_nullable(row.get("note"), "note"),
            is_stable=parse_bool(row.get("is_stable"), "is_stable"),
            stable_lesson_id=parse_string_nullable(
                row.get("stable_lesson_id"), "stable_lesson_id"),
            modified_from_stable=parse_bool(
                row.get("modified_from_stable"), "modified_from_stable"),
            week_start_date=parse_date(row.get("week_start_date"), "week_start_date"),
            stable_lesson=stable_lesson,
        )

    def validation_errors(self) -> list[str]:
        errors = []
        if not self.id:
            errors.append("id is required")
        errors.extend(self.subject.validation_errors())
        if self.day_of_week is None or not 1 <= self.day_of_week <= 7:
            errors.append(f"day_of_week must be between 1 and 7 (got: {self.day_of_week})")
        if self.start_time is None:
            errors.append("start_time is required or invalid")
        if self.end_time is None:
            errors.append("end_time is required or invalid")
        if self.start_time and self.end_time and self.start_time >= self.end_time:
            errors.append(
                f"start_time must be before end_time "
                f"(got: {self.start_time.time()} - {self.end_time.time()})")
        if self.week_start_date is not None and self.week_start_date.weekday() != 0:
            errors.append(f"week_start_date must be a Monday (got: {self.week_start_date})")
        return errors

    def _build(self) -> Lesson:
        return Lesson(
            id=self.id,
            subject=self.subject._build(),
            day_of_week=self.day_of_week,
            start_time=self.start_time,
            end_time=self.end_time,
            room=self.room,
            status=self.status,
            substitute_teacher=self.substitute_teacher,
            note=self.note,
            is_stable=self.is_stable,
            stable_lesson_id=self.stable_lesson_id,
            modified_from_stable=self.modified_from_stable,
            week_start_date=self.week_start_date,
            stable_lesson=self.stable_lesson,
        )


# ─── Note ───

@dataclass
class GradeDTO(BaseDTO[Grade]):
    id: Optional[str]
    subject_id: Optional[str]
    score: Optional[float]
    weight: Optional[float]
    description: str
    date: Optional[datetime]
    student_id: Optional[str] = None

    @classmethod
    def from_row(cls, row: dict) -> "GradeDTO":
        """Beschreibung: grade_type → comment → description → "Grade".
        Datum: created_at, sonst date."""
        description = (
            parse_string_nullable(row.get("grade_type"), "grade_type")
            or parse_string_nullable(row.get("comment"), "comment")
            or parse_string_nullable(row.get("description"), "description")
            or "Grade"
        )
        when = (parse_datetime(row.get("created_at"), "created_at")
                or parse_datetime(row.get("date"), "date"))
        return cls(
            id=parse_string_nullable(row.get("id"), "id"),
            subject_id=parse_string_nullable(row.get("subject_id"), "subject_id"),
            score=parse_double_nullable(row.get("score"), "score"),
            weight=parse_double(row.get("weight"), "weight", default=1.0),
            description=description,
            date=when,
            student_id=parse_string_nullable(row.get("student_id"), "student_id"),
        )

    def validation_errors(self) -> list[str]:
        errors = []
        if not self.id:
            errors.append("id is required")
        if not self.subject_id:
            errors.append("subject_id is required")
        if self.score is None:
            errors.append("score is required")
        elif not math.isfinite(self.score) or not 0 <= self.score <= 100:
            errors.append(f"score must be between 0 and 100 (got: {self.score})")
        if self.date is None:
            errors.append("date (created_at) is required")
        if self.weight is None or not math.isfinite(self.weight) or self.weight <= 0:
            errors.append(f"weight must be positive (got: {self.weight})")
        return errors

    def _build(self) -> Grade:
        return Grade(
            id=self.id,
            subject_id=self.subject_id,
            score=self.score,
            weight=self.weight,
            description=self.description,
            date=self.date,
            student_id=self.student_id,
        )


# ─── Hausaufgabe ───

@dataclass
class AssignmentDTO(BaseDTO[Assignment]):
    id: Optional[str]
    subject: SubjectDTO
    title: Optional[str]
    due_date: Optional[datetime]
    description: Optional[str] = None
    max_score: Optional[int] = 100
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    is_completed: bool = False

    @classmethod
    def from_row(cls, row: dict, subject_row: Optional[dict] = None,
                 is_completed: bool = False) -> "AssignmentDTO":
        """subject_row ersetzt einen fehlenden Join unter "subjects"."""
        subject = SubjectDTO.from_row(
            parse_map(row.get("subjects"), "subjects") or subject_row,
            fallback_subject_id=parse_string_nullable(row.get("subject_id"), "subject_id"),
        )
        return cls(
            id=parse_string_nullable(row.get("id"), "id"),
            subject=subject,
            title=parse_string_nullable(row.get("title"), "title"),
            due_date=parse_datetime(row.get("due_date"), "due_date"),
            description=parse_string_nullable(row.get("description"), "description"),
            max_score=parse_int(row.get("max_score"), "max_score", default=100),
            created_by=parse_string_nullable(row.get("created_by"), "created_by"),
            created_at=parse_datetime(row.get("created_at"), "created_at"),
            is_completed=is_completed,
        )

    def validation_errors(self) -> list[str]:
        errors = []
        if not self.id:
            errors.append("id is required")
        errors.extend(self.subject.validation_errors())
        if not self.title:
            errors.append("title is required")
        if self.due_date is None:
            errors.append("due_date is required or invalid")
        if self.max_score is None or self.max_score < 1:
            errors.append(f"max_score must be positive (got: {self.max_score})")
        return errors

    def _build(self) -> Assignment:
        return Assignment(
            id=self.id,
            subject=self.subject._build(),
            title=self.title,
            due_date=self.due_date,
            description=self.description,
            is_completed=self.is_completed,
            max_score=self.max_score,
            created_by=self.created_by,
            created_at=self.created_at,
        )


# ─── Entschuldigung ───

@dataclass
class AbsenceExcuseDTO(BaseDTO[AbsenceExcuse]):
    id: Optional[str]
    attendance_id: Optional[str]
    student_id: Optional[str]
    parent_id: Optional[str]
    reason: Optional[str]
    status: AbsenceExcuseStatus
    teacher_response: Optional[str]
    teacher_id: Optional[str]
    created_at: Optional[datetime]
    updated_at: Optional[datetime]
    student_name: Optional[str] = None
    parent_name: Optional[str] = None
    teacher_name: Optional[str] = None
    subject_name: Optional[str] = None
    attendance_date: Optional[date] = None

    @classmethod
    def from_row(cls, row: dict) -> "AbsenceExcuseDTO":
        attendance = parse_map(row.get("attendance"), "attendance") or {}
        created = parse_datetime(row.get("created_at"), "created_at")
        return cls(
            id=parse_string_nullable(row.get("id"), "id"),
            attendance_id=parse_string_nullable(row.get("attendance_id"), "attendance_id"),
            student_id=parse_string_nullable(row.get("student_id"), "student_id"),
            parent_id=parse_string_nullable(row.get("parent_id"), "parent_id"),
            reason=parse_string_nullable(row.get("reason"), "reason"),
            status=AbsenceExcuseStatus.parse(row.get("status")),
            teacher_response=parse_string_nullable(
                row.get("teacher_response"), "teacher_response"),
            teacher_id=parse_string_nullable(row.get("teacher_id"), "teacher_id"),
            created_at=created,
            updated_at=parse_datetime(row.get("updated_at"), "updated_at") or created,
            student_name=parse_profile_name(parse_map(row.get("student")), "student"),
            parent_name=parse_profile_name(parse_map(row.get("parent")), "parent"),
            teacher_name=parse_profile_name(parse_map(row.get("teacher")), "teacher"),
            subject_name=parse_string_nullable(attendance.get("subject_name"),
                                               "attendance.subject_name"),
            attendance_date=parse_date(attendance.get("date"), "attendance.date"),
        )

    def validation_errors(self) -> list[str]:
        errors = []
        for name in ("id", "attendance_id", "student_id", "parent_id", "reason"):
            if not getattr(self, name):
                errors.append(f"{name} is required")
        if self.created_at is None:
            errors.append("created_at is required")
        return errors

    def _build(self) -> AbsenceExcuse:
        return AbsenceExcuse(
            id=self.id,
            attendance_id=self.attendance_id,
            student_id=self.student_id,
            parent_id=self.parent_id,
            reason=self.reason,
            status=self.status,
            teacher_response=self.teacher_response,
            teacher_id=self.teacher_id,
            created_at=self.created_at,
            updated_at=self.updated_at,
            student_name=self.student_name,
            parent_name=self.parent_name,
            teacher_name=self.teacher_name,
            subject_name=self.subject_name,
            attendance_date=self.attendance_date,
        )
