"""Sicht der Lehrkraft: eigene Fächer und Klassen, Stunden, Kennzahlen.

Eine Lehrkraft unterrichtet eine Klasse, sobald sie dort ein Fach hat
(subjects.teacher_id); die Klassenleitung zählt ebenfalls.
"""

import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import Callable, Optional

from data.dto_base import dtos_to_entities
from data.dtos import GradeDTO, SubjectDTO
from data.records import attendance_from_row, class_from_row, user_from_row
from data.store import Order, TableStore, eq, gte, in_, lte
from models.attendance import AttendanceStats
from models.grade import GradeSummary
from models.lesson import Lesson
from models.school import ClassInfo, TeacherStats
from models.subject import Subject
from models.user import AppUser
from services.attendance import AttendanceService
from services.base import AttendanceError, ServiceError, TeacherError, store_errors
from services.schedule import ScheduleService

logger = logging.getLogger(__name__)

MAX_RANGE_DAYS = 62


def _require_teacher(user: AppUser) -> None:
    if not (user.is_teacher or user.has_admin_privileges):
        raise TeacherError("Only teachers can access teaching data")


class TeacherService:
    def __init__(self, store: TableStore, schedule: Optional[ScheduleService] = None,
                 today: Callable[[], date] = date.today):
        self.store = store
        self.schedule = schedule or ScheduleService(store, today=today)
        self._today = today

    # ─── Fächer & Klassen ───

    def _subject_rows(self, teacher: AppUser) -> list[dict]:
        return self.store.select("subjects", [eq("teacher_id", teacher.id)],
                                 order_by=[Order("name")])

    def my_subjects(self, teacher: AppUser) -> list[Subject]:
        _require_teacher(teacher)
        with store_errors(TeacherError, "Failed to fetch subjects"):
            rows = self._subject_rows(teacher)
        profile = {"first_name": teacher.first_name, "last_name": teacher.last_name}
        return dtos_to_entities([SubjectDTO.from_row({**r, "teacher": profile}) for r in rows],
                                "teacher subjects")

    def my_classes(self, teacher: AppUser) -> list[ClassInfo]:
        """Klassen mit eigenem Fach oder eigener Klassenleitung, nach Name."""
        _require_teacher(teacher)
        with store_errors(TeacherError, "Failed to fetch classes"):
            class_ids = {r["class_id"] for r in self._subject_rows(teacher) if r.get("class_id")}
            class_ids |= {c["id"] for c in
                          self.store.select("classes", [eq("head_teacher_id", teacher.id)])}
            rows = self.store.select("classes", [in_("id", sorted(class_ids))],
                                     order_by=[Order("name")]) if class_ids else []
        return [class_from_row(r) for r in rows]

    def students_for_lesson(self, lesson_id: str) -> list[AppUser]:
        """Schüler der Klasse, zu deren Fach die Stunde gehört."""
        with store_errors(TeacherError, "Failed to fetch students"):
            lesson = self.store.select_maybe("lessons", [eq("id", lesson_id)])
            if lesson is None:
                raise TeacherError(f"Lesson not found with id {lesson_id}")
            subject = self.store.select_maybe("subjects", [eq("id", lesson.get("subject_id"))])
            if subject is None or not subject.get("class_id"):
                return []
            ids = [l["student_id"] for l in
                   self.store.select("class_students", [eq("class_id", subject["class_id"])])]
            rows = self.store.select("profiles", [in_("id", ids)],
                                     order_by=[Order("last_name"), Order("first_name")]) if ids else []
        return [user_from_row(r) for r in rows]

    # ─── Stunden ───

    def lessons_for_date_range(self, teacher: AppUser, start: date,
                               end: date) -> dict[date, list[Lesson]]:
        """Eigene Stunden je Tag in [start, end]; Tage ohne Stunden fehlen."""
        _require_teacher(teacher)
        if end < start:
            raise TeacherError(f"End date {end} is before start date {start}")
        if (end - start).days >= MAX_RANGE_DAYS:
            raise TeacherError(f"Date range must be shorter than {MAX_RANGE_DAYS} days")
        with store_errors(TeacherError, "Failed to fetch lessons"):
            class_ids = sorted({r["class_id"] for r in self._subject_rows(teacher)
                                if r.get("class_id")})
        result: dict[date, list[Lesson]] = {}
        day = start
        while day <= end:
            lessons = []
            for class_id in class_ids:
                try:
                    lessons.extend(l for l in self.schedule.lessons_for_day(class_id, day)
                                   if l.subject.teacher_id == teacher.id)
                except ServiceError as e:
                    raise TeacherError(f"Failed to fetch lessons: {e}") from e
            if lessons:
                result[day] = sorted(lessons, key=lambda l: l.start_time)
            day += timedelta(days=1)
        return result

    # ─── Kennzahlen ───

    def _attendance_stats(self, subject_ids: list[str],
                          start: Optional[date] = None,
                          end: Optional[date] = None) -> AttendanceStats:
        if not subject_ids:
            return AttendanceStats()
        filters = [in_("subject_id", subject_ids)]
        if start is not None:
            filters.append(gte("date", start))
        if end is not None:
            filters.append(lte("date", end))
        rows = self.store.select("attendance", filters)
        return AttendanceStats.from_records([attendance_from_row(r) for r in rows])

    def class_attendance_stats(self, class_id: str, start: Optional[date] = None,
                               end: Optional[date] = None) -> AttendanceStats:
        """Alle Einträge zu Fächern der Klasse, optional im Zeitraum [start, end]."""
        with store_errors(TeacherError, "Failed to fetch class attendance"):
            subject_ids = [s["id"] for s in
                           self.store.select("subjects", [eq("class_id", class_id)])]
            return self._attendance_stats(subject_ids, start, end)

    def subject_grade_stats(self, subject_id: str) -> GradeSummary:
        with store_errors(TeacherError, "Failed to fetch grade stats"):
            rows = self.store.select("grades", [eq("subject_id", subject_id)])
        grades = dtos_to_entities([GradeDTO.from_row(r) for r in rows],
                                  f"grades of subject {subject_id}")
        return GradeSummary.from_scores([g.score for g in grades])

    def teacher_stats(self, teacher: AppUser) -> TeacherStats:
        _require_teacher(teacher)
        today = self._today()
        with store_errors(TeacherError, "Failed to fetch teacher stats"):
            subjects = self._subject_rows(teacher)
            subject_ids = [s["id"] for s in subjects]
            class_ids = sorted({s["class_id"] for s in subjects if s.get("class_id")})
            total_lessons = self.store.count("lessons", [
                in_("subject_id", subject_ids), eq("is_stable", True)]) if subject_ids else 0
            students = {l["student_id"] for l in self.store.select(
                "class_students", [in_("class_id", class_ids)])} if class_ids else set()
            due_from = datetime.combine(today, time(), tzinfo=timezone.utc)
            assignments_due = self.store.count("assignments", [
                in_("subject_id", subject_ids), gte("due_date", due_from)]) if subject_ids else 0
            attendance = self._attendance_stats(subject_ids)
        try:
            pending = len(AttendanceService(self.store).pending_for_teacher(teacher))
        except AttendanceError as e:
            raise TeacherError(f"Failed to fetch teacher stats: {e}") from e
        todays = self.lessons_for_date_range(teacher, today, today).get(today, [])
        stats = TeacherStats(
            total_subjects=len(subjects),
            total_lessons=total_lessons,
            total_students=len(students),
            pending_excuses=pending,
            todays_lessons=len(todays),
            average_attendance=attendance.attendance_percentage,
            assignments_due=assignments_due,
        )
        logger.debug(f"Kennzahlen für {teacher.email}: {stats}")
        return stats
