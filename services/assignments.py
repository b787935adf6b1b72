"""Hausaufgaben: Anlegen durch die Fachlehrkraft, Abgabe und Übersicht für Schüler.

Eine Hausaufgabe gehört über ihr Fach (subject_id) zu einer Klasse. Abgaben
liegen in assignment_submissions, je Schüler und Hausaufgabe höchstens eine;
eine vorhandene Abgabe markiert die Hausaufgabe für diesen Schüler als erledigt.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from data.dto_base import dtos_to_entities
from data.dtos import AssignmentDTO, SubjectDTO
from data.store import Order, StoreError, TableStore, eq, gte, in_, lte, now_iso, to_storable
from models.assignment import Assignment, SubjectDetail
from models.user import AppUser
from services.base import AssignmentError, store_errors

logger = logging.getLogger(__name__)

UPCOMING_DAYS = 7


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _check_title(title: Optional[str]) -> str:
    if not title or not title.strip():
        raise AssignmentError("Title cannot be empty")
    return title.strip()


def _check_max_score(max_score: int) -> None:
    if max_score < 1:
        raise AssignmentError(f"max_score must be positive (got: {max_score})")


class AssignmentService:
    def __init__(self, store: TableStore, now: Callable[[], datetime] = _utcnow):
        self.store = store
        self._now = now

    # ─── Laden ───

    def _subjects_with_teachers(self, filters: list) -> dict[str, dict]:
        rows = self.store.select("subjects", filters)
        teacher_ids = sorted({r["teacher_id"] for r in rows if r.get("teacher_id")})
        teachers = {p["id"]: p for p in self.store.select(
            "profiles", [in_("id", teacher_ids)])} if teacher_ids else {}
        return {r["id"]: {**r, "teacher": teachers.get(r.get("teacher_id"))} for r in rows}

    def _to_assignments(self, rows: list[dict], subjects: dict[str, dict],
                        completed: frozenset = frozenset(),
                        context: str = "assignments") -> list[Assignment]:
        dtos = [AssignmentDTO.from_row(r, subjects.get(r.get("subject_id")),
                                       is_completed=r.get("id") in completed)
                for r in rows]
        return dtos_to_entities(dtos, context)

    def _submitted_ids(self, student_id: Optional[str], assignment_ids: list[str]) -> frozenset:
        if student_id is None or not assignment_ids:
            return frozenset()
        rows = self.store.select("assignment_submissions", [
            eq("student_id", student_id), in_("assignment_id", assignment_ids)])
        return frozenset(r["assignment_id"] for r in rows)

    def _assignment_row(self, assignment_id: str, action: str) -> dict:
        try:
            return self.store.select_single("assignments", [eq("id", assignment_id)])
        except StoreError as e:
            if e.is_not_found:
                raise AssignmentError(f"Assignment not found with id {assignment_id}") from e
            raise AssignmentError(f"{action}: {e.message}") from e

    def _check_subject_teacher(self, teacher: AppUser, subject_id: str) -> dict:
        with store_errors(AssignmentError, "Failed to verify subject"):
            subject = self.store.select_maybe("subjects", [eq("id", subject_id)])
        if subject is None:
            raise AssignmentError(f"Subject not found: {subject_id}")
        if subject.get("teacher_id") != teacher.id:
            raise AssignmentError("Only the subject teacher can manage its assignments")
        return subject

    def _single(self, row: dict) -> Assignment:
        subjects = self._subjects_with_teachers([eq("id", row.get("subject_id"))])
        return AssignmentDTO.from_row(row, subjects.get(row.get("subject_id"))).to_entity()

    # ─── Lehrkraft ───

    def create_assignment(self, teacher: AppUser, subject_id: str, title: str,
                          due_date: datetime, description: Optional[str] = None,
                          max_score: int = 100) -> Assignment:
        title = _check_title(title)
        _check_max_score(max_score)
        if due_date is None:
            raise AssignmentError("Due date is required")
        self._check_subject_teacher(teacher, subject_id)
        with store_errors(AssignmentError, "Failed to create assignment"):
            row = self.store.insert("assignments", {
                "subject_id": subject_id,
                "title": title,
                "description": description,
                "due_date": to_storable(due_date),
                "max_score": max_score,
                "created_by": teacher.id,
                "created_at": now_iso(),
            })
            assignment = self._single(row)
        logger.info(f"Hausaufgabe '{title}' für Fach {subject_id} angelegt "
                    f"(fällig {assignment.due_date:%Y-%m-%d})")
        return assignment

    def update_assignment(self, teacher: AppUser, assignment_id: str,
                          title: Optional[str] = None, description: Optional[str] = None,
                          due_date: Optional[datetime] = None,
                          max_score: Optional[int] = None) -> Assignment:
        """Ändert nur die übergebenen Felder."""
        row = self._assignment_row(assignment_id, "Failed to update assignment")
        self._check_subject_teacher(teacher, row.get("subject_id"))
        values: dict = {}
        if title is not None:
            values["title"] = _check_title(title)
        if description is not None:
            values["description"] = description
        if due_date is not None:
            values["due_date"] = to_storable(due_date)
        if max_score is not None:
            _check_max_score(max_score)
            values["max_score"] = max_score
        with store_errors(AssignmentError, "Failed to update assignment"):
            updated = self.store.update("assignments", values, [eq("id", assignment_id)])
            return self._single(updated[0] if updated else {**row, **values})

    def delete_assignment(self, teacher: AppUser, assignment_id: str) -> None:
        """Löscht die Hausaufgabe samt Abgaben."""
        row = self._assignment_row(assignment_id, "Failed to delete assignment")
        self._check_subject_teacher(teacher, row.get("subject_id"))
        with store_errors(AssignmentError, "Failed to delete assignment"):
            self.store.delete("assignment_submissions", [eq("assignment_id", assignment_id)])
            self.store.delete("assignments", [eq("id", assignment_id)])
        logger.info(f"Hausaufgabe {assignment_id} gelöscht")

    def teacher_assignments(self, teacher: AppUser) -> list[Assignment]:
        """Alle Hausaufgaben der Fächer der Lehrkraft, späteste Fälligkeit zuerst."""
        with store_errors(AssignmentError, "Failed to fetch assignments"):
            subjects = self._subjects_with_teachers([eq("teacher_id", teacher.id)])
            if not subjects:
                return []
            rows = self.store.select("assignments", [in_("subject_id", list(subjects))],
                                     order_by=[Order("due_date", desc=True)])
        return self._to_assignments(rows, subjects, context="teacher assignments")

    # ─── Listen ───

    def subject_assignments(self, subject_id: str,
                            student_id: Optional[str] = None) -> list[Assignment]:
        """Hausaufgaben eines Fachs, früheste Fälligkeit zuerst.

        Mit student_id ist is_completed für diesen Schüler gesetzt.
        """
        with store_errors(AssignmentError, "Failed to fetch assignments"):
            subjects = self._subjects_with_teachers([eq("id", subject_id)])
            rows = self.store.select("assignments", [eq("subject_id", subject_id)],
                                     order_by=[Order("due_date")])
            completed = self._submitted_ids(student_id, [r["id"] for r in rows])
        return self._to_assignments(rows, subjects, completed, "subject assignments")

    def class_assignments(self, class_id: str) -> list[Assignment]:
        with store_errors(AssignmentError, "Failed to fetch class assignments"):
            subjects = self._subjects_with_teachers([eq("class_id", class_id)])
            if not subjects:
                return []
            rows = self.store.select("assignments", [in_("subject_id", list(subjects))],
                                     order_by=[Order("due_date")])
        return self._to_assignments(rows, subjects, context="class assignments")

    def subject_detail(self, subject_id: str,
                       student_id: Optional[str] = None) -> SubjectDetail:
        with store_errors(AssignmentError, "Failed to fetch subject detail"):
            subjects = self._subjects_with_teachers([eq("id", subject_id)])
        if subject_id not in subjects:
            raise AssignmentError(f"Subject not found: {subject_id}")
        subject = SubjectDTO.from_row(subjects[subject_id]).to_entity()
        return SubjectDetail(subject=subject,
                             assignments=self.subject_assignments(subject_id, student_id))

    # ─── Schüler ───

    def upcoming_for_student(self, student_id: str, days: int = UPCOMING_DAYS,
                             now: Optional[datetime] = None) -> list[Assignment]:
        """Hausaufgaben der Klasse, fällig in [jetzt, jetzt + days], früheste zuerst."""
        now = now or self._now()
        with store_errors(AssignmentError, "Failed to fetch upcoming assignments"):
            enrolment = self.store.select_maybe("class_students", [eq("student_id", student_id)])
            if enrolment is None:
                return []
            subjects = self._subjects_with_teachers([eq("class_id", enrolment["class_id"])])
            if not subjects:
                return []
            rows = self.store.select("assignments", [
                in_("subject_id", list(subjects)),
                gte("due_date", now),
                lte("due_date", now + timedelta(days=days)),
            ], order_by=[Order("due_date")])
            completed = self._submitted_ids(student_id, [r["id"] for r in rows])
        return self._to_assignments(rows, subjects, completed, "upcoming assignments")

    def submit_assignment(self, student: AppUser, assignment_id: str,
                          content: Optional[str] = None) -> None:
        """Gibt die Hausaufgabe ab; nur Schüler der Klasse des Fachs, nur einmal."""
        if not student.is_student:
            raise AssignmentError("Only students can submit assignments")
        action = "Failed to submit assignment"
        row = self._assignment_row(assignment_id, action)
        with store_errors(AssignmentError, action):
            subject = self.store.select_maybe("subjects", [eq("id", row.get("subject_id"))]) or {}
            enrolled = self.store.select_maybe("class_students", [
                eq("class_id", subject.get("class_id")), eq("student_id", student.id)])
            if enrolled is None:
                raise AssignmentError("Assignment is not for your class")
            try:
                self.store.insert("assignment_submissions", {
                    "assignment_id": assignment_id,
                    "student_id": student.id,
                    "content": content,
                    "submitted_at": now_iso(),
                })
            except StoreError as e:
                if e.is_unique_violation:
                    raise AssignmentError("Assignment already submitted") from e
                raise
        logger.info(f"Hausaufgabe {assignment_id} von {student.email} abgegeben")
