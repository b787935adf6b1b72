"""Tests für die Sicht der Lehrkraft: Fächer, Klassen, Stunden und Kennzahlen."""

from datetime import date, datetime, timezone

import pytest

from config.schema import ScheduleConfig
from models.attendance import AttendanceStatus
from services.attendance import AttendanceService
from services.base import TeacherError
from services.grades import GradesService
from services.schedule import ScheduleService
from services.teacher import TeacherService

MONDAY = date(2026, 10, 19)
WEDNESDAY = date(2026, 10, 21)


# ─── Hilfsfunktionen ──────────────────────────────────────────────────────────

def _make_service(school) -> TeacherService:
    schedule = ScheduleService(school.store, ScheduleConfig(), today=lambda: MONDAY)
    return TeacherService(school.store, schedule, today=lambda: MONDAY)


def _make_plan(school) -> dict:
    """Mo 8:00 Mathe, Mo 8:50 Kunst, Mi 10:00 Mathe."""
    schedule = ScheduleService(school.store, ScheduleConfig(), today=lambda: MONDAY)
    return {
        "mo_math": schedule.create_lesson(school.class_id, school.math_id, 1, "08:00", "08:45"),
        "mo_art": schedule.create_lesson(school.class_id, school.art_id, 1, "08:50", "09:35"),
        "mi_math": schedule.create_lesson(school.class_id, school.math_id, 3, "10:00", "10:45"),
    }


# ─── FÄCHER & KLASSEN ─────────────────────────────────────────────────────────

class TestSubjectsAndClasses:
    def test_my_subjects(self, school):
        subjects = _make_service(school).my_subjects(school.teacher)
        assert [s.name for s in subjects] == ["Mathematik"]
        assert subjects[0].teacher_name == "Tina Lehrer"

    def test_my_classes_includes_head_teacher(self, school):
        """Klassenleitung ohne eigenes Fach zählt ebenfalls."""
        extra = school.store.insert("classes", {"school_id": school.school_id, "name": "5a",
                                                "head_teacher_id": school.teacher.id})
        classes = _make_service(school).my_classes(school.teacher)
        assert [c.name for c in classes] == ["5a", "7b"]
        assert classes[0].id == extra["id"]

    def test_other_teacher_has_nothing(self, school):
        service = _make_service(school)
        assert service.my_subjects(school.other_teacher) == []
        assert service.my_classes(school.other_teacher) == []

    def test_students_not_allowed(self, school):
        with pytest.raises(TeacherError, match="Only teachers"):
            _make_service(school).my_subjects(school.student)

    def test_students_for_lesson(self, school):
        plan = _make_plan(school)
        students = _make_service(school).students_for_lesson(plan["mo_math"].id)
        assert [s.id for s in students] == [school.student.id]

    def test_students_for_unknown_lesson(self, school):
        with pytest.raises(TeacherError, match="Lesson not found with id nope"):
            _make_service(school).students_for_lesson("nope")


# ─── STUNDEN ──────────────────────────────────────────────────────────────────

class TestLessonsForDateRange:
    def test_only_own_lessons(self, school):
        """Kunst am Montag gehört teacher2 und fehlt; Tage ohne Stunden fehlen."""
        _make_plan(school)
        lessons = _make_service(school).lessons_for_date_range(
            school.teacher, MONDAY, WEDNESDAY)
        assert list(lessons) == [MONDAY, WEDNESDAY]
        assert [l.subject.name for l in lessons[MONDAY]] == ["Mathematik"]
        assert lessons[WEDNESDAY][0].start_time.hour == 10

    def test_next_week_uses_stable_plan(self, school):
        _make_plan(school)
        next_monday = date(2026, 10, 26)
        lessons = _make_service(school).lessons_for_date_range(
            school.teacher2, next_monday, next_monday)
        assert [l.subject.name for l in lessons[next_monday]] == ["Kunst"]

    def test_end_before_start(self, school):
        with pytest.raises(TeacherError, match="before start date"):
            _make_service(school).lessons_for_date_range(school.teacher, WEDNESDAY, MONDAY)

    def test_range_too_long(self, school):
        with pytest.raises(TeacherError, match="Date range must be shorter"):
            _make_service(school).lessons_for_date_range(
                school.teacher, MONDAY, date(2027, 1, 1))


# ─── KENNZAHLEN ───────────────────────────────────────────────────────────────

class TestStats:
    def test_class_attendance_stats(self, school):
        plan = _make_plan(school)
        attendance = AttendanceService(school.store)
        for lesson, status in [("mo_math", AttendanceStatus.PRESENT),
                               ("mo_art", AttendanceStatus.LATE),
                               ("mi_math", AttendanceStatus.ABSENT)]:
            teacher = school.teacher2 if lesson == "mo_art" else school.teacher
            attendance.mark_attendance(teacher, plan[lesson].id, school.student.id,
                                       status, MONDAY)
        stats = _make_service(school).class_attendance_stats(school.class_id)
        assert stats.total_days == 3
        assert (stats.present_days, stats.late_days, stats.absent_days) == (1, 1, 1)
        assert _make_service(school).class_attendance_stats(
            school.class_id, start=WEDNESDAY).total_days == 0

    def test_subject_grade_stats(self, school):
        grades = GradesService(school.store)
        for score in (60, 90, 75):
            grades.add_grade(school.teacher, school.student.id, school.math_id, score)
        summary = _make_service(school).subject_grade_stats(school.math_id)
        assert summary.count == 3
        assert summary.average == pytest.approx(75.0)
        assert (summary.highest, summary.lowest) == (90, 60)

    def test_subject_grade_stats_empty(self, school):
        summary = _make_service(school).subject_grade_stats(school.art_id)
        assert (summary.average, summary.highest, summary.lowest) == (0.0, 0.0, 0.0)

    def test_teacher_stats(self, school):
        plan = _make_plan(school)
        attendance = AttendanceService(school.store)
        attendance.mark_attendance(school.teacher, plan["mi_math"].id, school.student.id,
                                   AttendanceStatus.PRESENT, WEDNESDAY)
        absence = attendance.mark_attendance(school.teacher, plan["mo_math"].id,
                                             school.student.id, AttendanceStatus.ABSENT, MONDAY)
        attendance.submit_excuse(school.parent, absence.id, "Arzttermin")
        school.store.insert("assignments", {
            "subject_id": school.math_id, "title": "Seite 42",
            "due_date": datetime(2026, 10, 20, 8, 0, tzinfo=timezone.utc)})
        school.store.insert("assignments", {
            "subject_id": school.math_id, "title": "Vorbei",
            "due_date": datetime(2026, 10, 12, 8, 0, tzinfo=timezone.utc)})

        stats = _make_service(school).teacher_stats(school.teacher)
        assert stats.total_subjects == 1
        assert stats.total_lessons == 2
        assert stats.total_students == 1
        assert stats.pending_excuses == 1
        assert stats.todays_lessons == 1
        assert stats.average_attendance == pytest.approx(50.0)
        assert stats.assignments_due == 1

    def test_teacher_stats_without_subjects(self, school):
        stats = _make_service(school).teacher_stats(school.other_teacher)
        assert stats.total_subjects == 0
        assert stats.average_attendance == 100.0
