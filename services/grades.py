"""Noten: Übersicht je Fach für Schüler, Erfassen durch Lehrkräfte."""

import logging
import math
from typing import Optional

from data.dtos import GradeDTO
from data.dto_base import dtos_to_entities
from data.store import Order, StoreError, TableStore, eq, in_, now_iso
from models.grade import Grade, SubjectGradeStats
from models.subject import color_for_id
from models.user import AppUser
from services.base import GradesError, store_errors

logger = logging.getLogger(__name__)


def _check_score(score: float) -> None:
    if not math.isfinite(score) or not 0 <= score <= 100:
        raise GradesError(f"score must be between 0 and 100 (got: {score})")


def _check_weight(weight: float) -> None:
    if not math.isfinite(weight) or weight <= 0:
        raise GradesError(f"weight must be positive (got: {weight})")


class GradesService:
    def __init__(self, store: TableStore):
        self.store = store

    # ─── Schüler-Sicht ───

    def _grades(self, student_id: str, *filters) -> list[Grade]:
        rows = self.store.select("grades", [eq("student_id", student_id), *filters],
                                 order_by=[Order("created_at", desc=True)])
        return dtos_to_entities([GradeDTO.from_row(r) for r in rows],
                                f"grades of {student_id}")

    def _student_subjects(self, student_id: str, extra_ids: set[str]) -> dict[str, dict]:
        """Fächer der Klasse des Schülers plus alle Fächer mit Noten."""
        subjects: dict[str, dict] = {}
        enrolment = self.store.select_maybe("class_students", [eq("student_id", student_id)])
        if enrolment:
            for row in self.store.select("subjects", [eq("class_id", enrolment["class_id"])]):
                subjects[row["id"]] = row
        missing = sorted(extra_ids - set(subjects))
        if missing:
            for row in self.store.select("subjects", [in_("id", missing)]):
                subjects[row["id"]] = row
        return subjects

    @staticmethod
    def _stats(subject_id: str, subject: Optional[dict],
               grades: list[Grade]) -> SubjectGradeStats:
        subject = subject or {}
        color = subject.get("color")
        return SubjectGradeStats.from_grades(
            subject_id=subject_id,
            subject_name=subject.get("name") or "Unknown Subject",
            subject_color=color if isinstance(color, int) else color_for_id(subject_id),
            grades=grades,
        )

    def subject_stats(self, student_id: str) -> list[SubjectGradeStats]:
        """Übersicht aller Fächer, alphabetisch; Fächer ohne Noten mit Durchschnitt 0.0."""
        with store_errors(GradesError, "Failed to fetch grades"):
            grades = self._grades(student_id)
            by_subject: dict[str, list[Grade]] = {}
            for grade in grades:
                by_subject.setdefault(grade.subject_id, []).append(grade)
            subjects = self._student_subjects(student_id, set(by_subject))
        stats = [self._stats(sid, subjects.get(sid), by_subject.get(sid, []))
                 for sid in set(subjects) | set(by_subject)]
        return sorted(stats, key=lambda s: s.subject_name)

    def subject_stats_for(self, student_id: str,
                          subject_id: str) -> Optional[SubjectGradeStats]:
        with store_errors(GradesError, "Failed to fetch subject grades"):
            subject = self.store.select_maybe("subjects", [eq("id", subject_id)])
            grades = self._grades(student_id, eq("subject_id", subject_id))
        if subject is None and not grades:
            return None
        return self._stats(subject_id, subject, grades)

    def recent_grades(self, student_id: str, limit: int = 5) -> list[Grade]:
        with store_errors(GradesError, "Failed to fetch recent grades"):
            return self._grades(student_id)[:limit]

    def subject_averages(self, student_id: str) -> dict[str, float]:
        """Fachname → gewichteter Durchschnitt, nur Fächer mit Noten."""
        return {s.subject_name: s.average
                for s in self.subject_stats(student_id) if not s.has_no_grades}

    # ─── Lehrkraft ───

    def _check_subject_teacher(self, teacher: AppUser, subject_id: str) -> None:
        with store_errors(GradesError, "Failed to verify subject"):
            subject = self.store.select_maybe("subjects", [eq("id", subject_id)])
        if subject is None:
            raise GradesError(f"Subject not found: {subject_id}")
        if subject.get("teacher_id") != teacher.id:
            raise GradesError("Only the subject teacher can grade this subject")

    def _grade_row(self, grade_id: str, action: str) -> dict:
        try:
            return self.store.select_single("grades", [eq("id", grade_id)])
        except StoreError as e:
            raise GradesError(f"{action}: {e.message}") from e

    def add_grade(self, teacher: AppUser, student_id: str, subject_id: str,
                  score: float, weight: float = 1.0, grade_type: Optional[str] = None,
                  comment: Optional[str] = None) -> Grade:
        _check_score(score)
        _check_weight(weight)
        self._check_subject_teacher(teacher, subject_id)
        with store_errors(GradesError, "Failed to add grade"):
            row = self.store.insert("grades", {
                "student_id": student_id,
                "subject_id": subject_id,
                "teacher_id": teacher.id,
                "score": score,
                "weight": weight,
                "grade_type": grade_type,
                "comment": comment,
                "created_at": now_iso(),
            })
        logger.info(f"Note {score} für {student_id} in {subject_id} erfasst")
        return GradeDTO.from_row(row).to_entity()

    def update_grade(self, teacher: AppUser, grade_id: str,
                     score: Optional[float] = None, weight: Optional[float] = None,
                     grade_type: Optional[str] = None,
                     comment: Optional[str] = None) -> Grade:
        row = self._grade_row(grade_id, "Failed to update grade")
        self._check_subject_teacher(teacher, row.get("subject_id"))
        values: dict = {}
        if score is not None:
            _check_score(score)
            values["score"] = score
        if weight is not None:
            _check_weight(weight)
            values["weight"] = weight
        if grade_type is not None:
            values["grade_type"] = grade_type
        if comment is not None:
            values["comment"] = comment
        with store_errors(GradesError, "Failed to update grade"):
            updated = self.store.update("grades", values, [eq("id", grade_id)])
        return GradeDTO.from_row(updated[0] if updated else {**row, **values}).to_entity()

    def delete_grade(self, teacher: AppUser, grade_id: str) -> None:
        row = self._grade_row(grade_id, "Failed to delete grade")
        self._check_subject_teacher(teacher, row.get("subject_id"))
        with store_errors(GradesError, "Failed to delete grade"):
            self.store.delete("grades", [eq("id", grade_id)])
        logger.info(f"Note {grade_id} gelöscht")
