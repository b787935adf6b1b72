"""Tests für Hausaufgaben: Anlegen, Ändern, Löschen, Abgabe und Übersichten."""

from datetime import datetime, timedelta, timezone

import pytest

from data.store import eq
from services.assignments import AssignmentService
from services.base import AssignmentError

NOW = datetime(2026, 10, 19, 8, 0, tzinfo=timezone.utc)


# ─── Hilfsfunktionen ──────────────────────────────────────────────────────────

def _make_service(school) -> AssignmentService:
    return AssignmentService(school.store, now=lambda: NOW)


def _make_assignment(school, service: AssignmentService, days: int = 2,
                     title: str = "Seite 42", subject: str = "math"):
    teacher = school.teacher if subject == "math" else school.teacher2
    subject_id = school.math_id if subject == "math" else school.art_id
    return service.create_assignment(teacher, subject_id, title, NOW + timedelta(days=days))


# ─── ANLEGEN ──────────────────────────────────────────────────────────────────

class TestCreateAssignment:
    def test_create(self, school):
        service = _make_service(school)
        assignment = service.create_assignment(
            school.teacher, school.math_id, "  Seite 42  ", NOW + timedelta(days=2),
            description="Aufgaben 1-5", max_score=20)
        assert assignment.title == "Seite 42"
        assert assignment.subject.name == "Mathematik"
        assert assignment.subject.teacher_name == "Tina Lehrer"
        assert assignment.max_score == 20
        assert assignment.created_by == school.teacher.id
        assert assignment.due_date == NOW + timedelta(days=2)
        row = school.store.select_single("assignments", [eq("id", assignment.id)])
        assert row["description"] == "Aufgaben 1-5"

    def test_default_max_score(self, school):
        assert _make_assignment(school, _make_service(school)).max_score == 100

    def test_only_subject_teacher(self, school):
        """Kunst gehört teacher2; teacher darf dort nichts anlegen."""
        with pytest.raises(AssignmentError, match="Only the subject teacher"):
            _make_service(school).create_assignment(
                school.teacher, school.art_id, "Bild malen", NOW)
        assert school.store.count("assignments") == 0

    @pytest.mark.parametrize("title, due, max_score, message", [
        ("", NOW, 100, "Title cannot be empty"),
        ("   ", NOW, 100, "Title cannot be empty"),
        ("Test", None, 100, "Due date is required"),
        ("Test", NOW, 0, "max_score must be positive"),
    ])
    def test_value_checks(self, school, title, due, max_score, message):
        with pytest.raises(AssignmentError, match=message):
            _make_service(school).create_assignment(
                school.teacher, school.math_id, title, due, max_score=max_score)

    def test_unknown_subject(self, school):
        with pytest.raises(AssignmentError, match="Subject not found"):
            _make_service(school).create_assignment(school.teacher, "nope", "Test", NOW)


# ─── ÄNDERN & LÖSCHEN ─────────────────────────────────────────────────────────

class TestUpdateDelete:
    def test_update_only_given_fields(self, school):
        service = _make_service(school)
        assignment = _make_assignment(school, service)
        updated = service.update_assignment(school.teacher, assignment.id,
                                            due_date=NOW + timedelta(days=4))
        assert updated.title == "Seite 42"
        assert updated.due_date == NOW + timedelta(days=4)

    def test_update_by_other_teacher(self, school):
        service = _make_service(school)
        assignment = _make_assignment(school, service)
        with pytest.raises(AssignmentError, match="Only the subject teacher"):
            service.update_assignment(school.teacher2, assignment.id, title="Neu")
        assert service.subject_assignments(school.math_id)[0].title == "Seite 42"

    def test_update_unknown(self, school):
        with pytest.raises(AssignmentError, match="Assignment not found"):
            _make_service(school).update_assignment(school.teacher, "nope", title="X")

    def test_delete_removes_submissions(self, school):
        service = _make_service(school)
        assignment = _make_assignment(school, service)
        service.submit_assignment(school.student, assignment.id, "fertig")
        service.delete_assignment(school.teacher, assignment.id)
        assert school.store.count("assignments") == 0
        assert school.store.count("assignment_submissions") == 0

    def test_delete_by_other_teacher(self, school):
        service = _make_service(school)
        assignment = _make_assignment(school, service)
        with pytest.raises(AssignmentError):
            service.delete_assignment(school.other_teacher, assignment.id)
        assert school.store.count("assignments") == 1


# ─── ÜBERSICHTEN ──────────────────────────────────────────────────────────────

class TestListings:
    def test_subject_and_class_order(self, school):
        """Früheste Fälligkeit zuerst, Klasse über alle Fächer."""
        service = _make_service(school)
        _make_assignment(school, service, days=5, title="Später")
        _make_assignment(school, service, days=1, title="Früher")
        _make_assignment(school, service, days=3, title="Bild", subject="art")
        assert [a.title for a in service.subject_assignments(school.math_id)] == \
            ["Früher", "Später"]
        assert [a.title for a in service.class_assignments(school.class_id)] == \
            ["Früher", "Bild", "Später"]

    def test_teacher_assignments_latest_first(self, school):
        service = _make_service(school)
        _make_assignment(school, service, days=1, title="Früher")
        _make_assignment(school, service, days=5, title="Später")
        _make_assignment(school, service, days=3, title="Bild", subject="art")
        assert [a.title for a in service.teacher_assignments(school.teacher)] == \
            ["Später", "Früher"]
        assert service.teacher_assignments(school.other_teacher) == []

    def test_broken_row_skipped(self, school):
        school.store.insert("assignments", {"subject_id": school.math_id, "title": None,
                                            "due_date": "2026-10-20T08:00:00+00:00"})
        service = _make_service(school)
        _make_assignment(school, service)
        assert len(service.subject_assignments(school.math_id)) == 1

    def test_subject_detail(self, school):
        service = _make_service(school)
        done = _make_assignment(school, service, days=1, title="Erledigt")
        _make_assignment(school, service, days=2, title="Offen")
        service.submit_assignment(school.student, done.id)
        detail = service.subject_detail(school.math_id, student_id=school.student.id)
        assert detail.subject.name == "Mathematik"
        assert detail.subject.teacher_name == "Tina Lehrer"
        assert [a.title for a in detail.assignments] == ["Erledigt", "Offen"]
        assert [a.title for a in detail.open_assignments] == ["Offen"]

    def test_subject_detail_unknown(self, school):
        with pytest.raises(AssignmentError, match="Subject not found"):
            _make_service(school).subject_detail("nope")


# ─── SCHÜLER ──────────────────────────────────────────────────────────────────

class TestStudent:
    def test_upcoming_window(self, school):
        """Nur fällig in [jetzt, jetzt + 7 Tage], früheste zuerst."""
        service = _make_service(school)
        _make_assignment(school, service, days=-1, title="Vorbei")
        _make_assignment(school, service, days=6, title="Nächste Woche")
        _make_assignment(school, service, days=9, title="Zu spät")
        _make_assignment(school, service, days=2, title="Bald", subject="art")
        upcoming = service.upcoming_for_student(school.student.id)
        assert [a.title for a in upcoming] == ["Bald", "Nächste Woche"]
        assert not any(a.is_completed for a in upcoming)

    def test_upcoming_custom_days(self, school):
        service = _make_service(school)
        _make_assignment(school, service, days=9)
        assert len(service.upcoming_for_student(school.student.id, days=10)) == 1

    def test_upcoming_without_class(self, school):
        service = _make_service(school)
        _make_assignment(school, service)
        assert service.upcoming_for_student(school.student2.id) == []

    def test_submit_marks_completed(self, school):
        service = _make_service(school)
        assignment = _make_assignment(school, service)
        service.submit_assignment(school.student, assignment.id, "Lösung")
        assert service.upcoming_for_student(school.student.id)[0].is_completed
        with pytest.raises(AssignmentError, match="already submitted"):
            service.submit_assignment(school.student, assignment.id)

    def test_submit_other_class(self, school):
        service = _make_service(school)
        assignment = _make_assignment(school, service)
        with pytest.raises(AssignmentError, match="not for your class"):
            service.submit_assignment(school.student2, assignment.id)

    def test_submit_only_students(self, school):
        service = _make_service(school)
        assignment = _make_assignment(school, service)
        with pytest.raises(AssignmentError, match="Only students"):
            service.submit_assignment(school.parent, assignment.id)
