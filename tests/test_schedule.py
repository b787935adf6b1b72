"""Tests für den Stundenplan-Dienst: stabiler Plan, Wochenkopien, Verwaltung."""

from datetime import date, datetime, time

import pytest

from config.schema import ScheduleConfig
from data.store import eq
from services.base import ScheduleError
from services.schedule import (
    ScheduleService,
    differs_from_stable,
    empty_week,
    week_start,
)

MONDAY = date(2026, 10, 19)
WEDNESDAY = date(2026, 10, 21)


# ─── Hilfsfunktionen ──────────────────────────────────────────────────────────

def _make_service(school) -> ScheduleService:
    return ScheduleService(school.store, ScheduleConfig(), today=lambda: WEDNESDAY)


def _make_stable_plan(school, service: ScheduleService) -> dict:
    """Mo 8:00 Mathe, Mo 8:50 Kunst, Mi 10:00 Mathe."""
    return {
        "mo_math": service.create_lesson(school.class_id, school.math_id, 1,
                                         "08:00", "08:45", room="R101"),
        "mo_art": service.create_lesson(school.class_id, school.art_id, 1,
                                        "08:50", "09:35", room="Atelier"),
        "mi_math": service.create_lesson(school.class_id, school.math_id, 3,
                                         "10:00", "10:45"),
    }


def _week_copy(timetable: dict, day: int, subject_name: str):
    return next(l for l in timetable[day] if l.subject.name == subject_name)


# ─── HILFSFUNKTIONEN ──────────────────────────────────────────────────────────

class TestHelpers:
    def test_week_start(self):
        assert week_start(WEDNESDAY) == MONDAY
        assert week_start(MONDAY) == MONDAY
        assert week_start(date(2026, 10, 25)) == MONDAY

    def test_empty_week_has_seven_days(self):
        assert list(empty_week()) == [1, 2, 3, 4, 5, 6, 7]

    def test_differs_room_none_equals_empty(self):
        """Raum None und "" gelten als gleich, Uhrzeiten formatunabhängig."""
        stable = {"subject_id": "s", "day_of_week": 1, "start_time": "08:00:00",
                  "end_time": "08:45:00", "room": None}
        assert not differs_from_stable({**stable, "room": "", "start_time": "08:00"}, stable)
        assert differs_from_stable({**stable, "room": "Aula"}, stable)


# ─── STABILER PLAN ────────────────────────────────────────────────────────────

class TestStableTimetable:
    def test_grouped_and_sorted(self, school):
        """Stunden liegen am richtigen Tag, nach Beginn sortiert."""
        service = _make_service(school)
        _make_stable_plan(school, service)
        plan = service.stable_timetable(school.class_id, MONDAY)
        assert [l.subject.name for l in plan[1]] == ["Mathematik", "Kunst"]
        assert [l.subject.name for l in plan[3]] == ["Mathematik"]
        assert plan[2] == []
        assert plan[1][0].start_time == datetime(2026, 10, 19, 8, 0)
        assert plan[3][0].start_time == datetime(2026, 10, 21, 10, 0)

    def test_teacher_name_joined(self, school):
        service = _make_service(school)
        _make_stable_plan(school, service)
        lesson = service.stable_timetable(school.class_id)[1][0]
        assert lesson.subject.teacher_name == "Tina Lehrer"
        assert lesson.is_stable
        assert lesson.room == "R101"

    def test_sunday_roundtrip(self, school):
        """Sonntag (7) wird im Backend als 0 gespeichert und wieder 7."""
        service = _make_service(school)
        lesson = service.create_lesson(school.class_id, school.math_id, 7, "09:00", "10:00")
        assert lesson.day_of_week == 7
        row = school.store.select_single("lessons", [eq("id", lesson.id)])
        assert row["day_of_week"] == 0
        assert service.stable_timetable(school.class_id)[7][0].id == lesson.id

    def test_unknown_class_is_empty(self, school):
        assert _make_service(school).stable_timetable("nope") == empty_week()

    def test_lessons_for_day(self, school):
        service = _make_service(school)
        _make_stable_plan(school, service)
        assert len(service.lessons_for_day(school.class_id, MONDAY)) == 2
        assert len(service.lessons_for_day(school.class_id, date(2026, 10, 20))) == 0


# ─── WOCHENKOPIEN ─────────────────────────────────────────────────────────────

class TestWeekCopies:
    def test_week_without_copy_shows_stable(self, school):
        service = _make_service(school)
        _make_stable_plan(school, service)
        week = service.week_timetable(school.class_id, MONDAY)
        assert all(l.is_stable for day in week.values() for l in day)

    def test_create_week_from_stable(self, school):
        """Jede stabile Stunde wird einmal in die Woche kopiert."""
        service = _make_service(school)
        stable = _make_stable_plan(school, service)
        week = service.create_week_from_stable(school.class_id, WEDNESDAY)
        copies = [l for day in week.values() for l in day]
        assert len(copies) == 3
        assert all(not l.is_stable and l.week_start_date == MONDAY for l in copies)
        assert {l.stable_lesson_id for l in copies} == {l.id for l in stable.values()}
        assert all(not l.modified_from_stable for l in copies)

    def test_create_week_idempotent(self, school):
        service = _make_service(school)
        _make_stable_plan(school, service)
        service.create_week_from_stable(school.class_id, MONDAY)
        service.create_week_from_stable(school.class_id, MONDAY)
        assert school.store.count("lessons") == 6

    def test_create_week_without_subjects(self, school):
        empty_class = school.store.insert("classes", {"school_id": school.school_id,
                                                      "name": "9a"})["id"]
        assert _make_service(school).create_week_from_stable(empty_class, MONDAY) == empty_week()

    def test_update_week_lesson_marks_modified(self, school):
        service = _make_service(school)
        _make_stable_plan(school, service)
        week = service.create_week_from_stable(school.class_id, MONDAY)
        copy = _week_copy(week, 1, "Mathematik")

        changed = service.update_week_lesson(copy.id, room="Aula")
        assert changed.modified_from_stable
        assert changed.changes_from_stable() == {"room": ("R101", "Aula")}

        back = service.update_week_lesson(copy.id, room="R101")
        assert not back.modified_from_stable

    def test_update_week_lesson_moves_day(self, school):
        service = _make_service(school)
        _make_stable_plan(school, service)
        copy = _week_copy(service.create_week_from_stable(school.class_id, MONDAY),
                          3, "Mathematik")
        moved = service.update_week_lesson(copy.id, day_of_week=5, start_time=time(11, 0),
                                           end_time="11:45")
        assert moved.day_of_week == 5
        assert moved.start_time == datetime(2026, 10, 23, 11, 0)
        assert moved.modified_from_stable
        assert service.week_timetable(school.class_id, MONDAY)[5][0].id == copy.id

    def test_stable_lessons_cannot_be_updated(self, school):
        service = _make_service(school)
        stable = _make_stable_plan(school, service)
        with pytest.raises(ScheduleError, match="Cannot modify stable lessons directly"):
            service.update_week_lesson(stable["mo_math"].id, room="Aula")

    def test_update_week_lesson_time_order(self, school):
        service = _make_service(school)
        _make_stable_plan(school, service)
        copy = _week_copy(service.create_week_from_stable(school.class_id, MONDAY),
                          1, "Mathematik")
        with pytest.raises(ScheduleError, match="must be after start_time"):
            service.update_week_lesson(copy.id, start_time="10:00")

    def test_update_unknown_lesson(self, school):
        with pytest.raises(ScheduleError, match="lesson not found with id nope"):
            _make_service(school).update_week_lesson("nope", room="Aula")

    def test_reset_week_lesson(self, school):
        service = _make_service(school)
        _make_stable_plan(school, service)
        copy = _week_copy(service.create_week_from_stable(school.class_id, MONDAY),
                          1, "Mathematik")
        service.update_week_lesson(copy.id, subject_id=school.art_id, room="Aula")
        reset = service.reset_week_lesson(copy.id)
        assert reset.subject.id == school.math_id
        assert reset.room == "R101"
        assert not reset.modified_from_stable

    def test_reset_stable_lesson_fails(self, school):
        service = _make_service(school)
        stable = _make_stable_plan(school, service)
        with pytest.raises(ScheduleError, match="has no stable lesson"):
            service.reset_week_lesson(stable["mo_math"].id)

    def test_stable_lesson_for(self, school):
        service = _make_service(school)
        stable = _make_stable_plan(school, service)
        copy = _week_copy(service.create_week_from_stable(school.class_id, MONDAY),
                          1, "Kunst")
        assert service.stable_lesson_for(copy.id).id == stable["mo_art"].id
        assert service.stable_lesson_for(stable["mo_art"].id) is None

    def test_week_lessons_replace_stable(self, school):
        """Eine einzelne Wochenstunde ersetzt den ganzen stabilen Plan der Woche."""
        service = _make_service(school)
        _make_stable_plan(school, service)
        extra = service.create_lesson(school.class_id, school.art_id, 2, "12:00", "12:45",
                                      is_stable=False, week=WEDNESDAY)
        assert extra.week_start_date == MONDAY
        week = service.week_timetable(school.class_id, MONDAY)
        assert [l.id for day in week.values() for l in day] == [extra.id]
        # Nächste Woche wieder stabil
        assert len(service.week_timetable(school.class_id, date(2026, 10, 26))[1]) == 2


# ─── SCHÜLERSICHT ─────────────────────────────────────────────────────────────

class TestStudentView:
    def test_class_for_student(self, school):
        service = _make_service(school)
        assert service.class_for_student(school.student.id) == school.class_id
        assert service.class_for_student(school.student2.id) is None

    def test_week_for_student(self, school):
        service = _make_service(school)
        _make_stable_plan(school, service)
        assert len(service.week_for_student(school.student.id, MONDAY)[1]) == 2
        assert service.week_for_student(school.student2.id, MONDAY) == empty_week()

    def test_lessons_for_student(self, school):
        service = _make_service(school)
        _make_stable_plan(school, service)
        assert len(service.lessons_for_student(school.student.id, WEDNESDAY)) == 1
        assert service.lessons_for_student(school.student2.id, WEDNESDAY) == []


# ─── VERWALTUNG ───────────────────────────────────────────────────────────────

class TestLessonManagement:
    def test_invalid_day(self, school):
        with pytest.raises(ScheduleError, match="dayOfWeek must be between 1 and 7"):
            _make_service(school).create_lesson(school.class_id, school.math_id, 8,
                                                "08:00", "08:45")

    def test_end_before_start(self, school):
        with pytest.raises(ScheduleError, match="must be after start_time"):
            _make_service(school).create_lesson(school.class_id, school.math_id, 1,
                                                "09:00", "08:00")

    def test_invalid_time_format(self, school):
        with pytest.raises(ScheduleError, match="HH:MM"):
            _make_service(school).create_lesson(school.class_id, school.math_id, 1,
                                                "8 Uhr", "09:00")

    def test_subject_from_other_class(self, school):
        other_class = school.store.insert("classes", {"school_id": school.school_id,
                                                      "name": "9a"})["id"]
        with pytest.raises(ScheduleError, match="does not belong to the specified class"):
            _make_service(school).create_lesson(other_class, school.math_id, 1,
                                                "08:00", "08:45")

    def test_week_lesson_requires_week(self, school):
        with pytest.raises(ScheduleError, match="week is required"):
            _make_service(school).create_lesson(school.class_id, school.math_id, 1,
                                                "08:00", "08:45", is_stable=False)

    def test_update_lesson_clears_room(self, school):
        service = _make_service(school)
        stable = _make_stable_plan(school, service)
        updated = service.update_lesson(stable["mo_math"].id, room="")
        assert updated.room == ""
        row = school.store.select_single("lessons", [eq("id", stable["mo_math"].id)])
        assert row["room"] is None

    def test_update_lesson_unknown(self, school):
        with pytest.raises(ScheduleError, match="lesson not found"):
            _make_service(school).update_lesson("nope", room="Aula")

    def test_delete_lesson(self, school):
        service = _make_service(school)
        stable = _make_stable_plan(school, service)
        assert service.delete_lesson(stable["mi_math"].id) is True
        assert service.stable_timetable(school.class_id)[3] == []
