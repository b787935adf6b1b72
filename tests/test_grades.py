"""Tests für Notenübersicht und Notenerfassung."""

import pytest

from data.store import eq
from models.subject import color_for_id
from services.base import GradesError
from services.grades import GradesService


# ─── Hilfsfunktionen ──────────────────────────────────────────────────────────

def _insert_grade(school, subject_id: str, score: float, weight: float = 1.0,
                  day: int = 1, student_id: str = None, **extra) -> dict:
    return school.store.insert("grades", {
        "student_id": student_id or school.student.id,
        "subject_id": subject_id,
        "score": score,
        "weight": weight,
        "created_at": f"2026-10-{day:02d}T10:00:00+00:00",
        **extra,
    })


# ─── SCHÜLER-SICHT ────────────────────────────────────────────────────────────

class TestSubjectStats:
    def test_all_class_subjects_listed(self, school):
        """Auch Fächer ohne Noten erscheinen, alphabetisch sortiert."""
        _insert_grade(school, school.math_id, 80)
        stats = GradesService(school.store).subject_stats(school.student.id)
        assert [s.subject_name for s in stats] == ["Kunst", "Mathematik"]
        art, math = stats
        assert art.has_no_grades
        assert art.average == 0.0
        assert math.grade_count == 1

    def test_weighted_average(self, school):
        _insert_grade(school, school.math_id, 90, weight=2, day=1)
        _insert_grade(school, school.math_id, 60, weight=1, day=2)
        stats = GradesService(school.store).subject_stats_for(school.student.id, school.math_id)
        assert stats.average == pytest.approx(80)
        assert [g.score for g in stats.grades] == [60, 90]

    def test_colors(self, school):
        """Eigene Fachfarbe, sonst Palettenfarbe aus der Fach-ID."""
        stats = {s.subject_id: s for s in
                 GradesService(school.store).subject_stats(school.student.id)}
        assert stats[school.math_id].subject_color == 0xFF2196F3
        assert stats[school.art_id].subject_color == color_for_id(school.art_id)

    def test_grades_outside_class_included(self, school):
        other_class = school.store.insert("classes", {"school_id": school.school_id,
                                                      "name": "AG"})["id"]
        chess = school.store.insert("subjects", {"name": "Schach", "class_id": other_class})["id"]
        _insert_grade(school, chess, 100)
        names = [s.subject_name for s in
                 GradesService(school.store).subject_stats(school.student.id)]
        assert "Schach" in names

    def test_student_without_class(self, school):
        assert GradesService(school.store).subject_stats(school.student2.id) == []

    def test_invalid_rows_skipped(self, school):
        """Zeilen mit ungültiger Punktzahl werden übersprungen."""
        _insert_grade(school, school.math_id, 80)
        _insert_grade(school, school.math_id, 150)
        stats = GradesService(school.store).subject_stats_for(school.student.id, school.math_id)
        assert stats.grade_count == 1

    def test_unknown_subject_without_grades(self, school):
        assert GradesService(school.store).subject_stats_for(school.student.id, "nope") is None

    def test_recent_grades(self, school):
        for day in range(1, 8):
            _insert_grade(school, school.math_id, 50 + day, day=day)
        recent = GradesService(school.store).recent_grades(school.student.id, limit=3)
        assert [g.score for g in recent] == [57, 56, 55]

    def test_subject_averages(self, school):
        _insert_grade(school, school.math_id, 70)
        averages = GradesService(school.store).subject_averages(school.student.id)
        assert averages == {"Mathematik": 70}

    def test_description_from_comment(self, school):
        _insert_grade(school, school.math_id, 70, comment="Mündlich")
        grade = GradesService(school.store).recent_grades(school.student.id)[0]
        assert grade.description == "Mündlich"

    def test_non_finite_row_skipped(self, school):
        """Eine Zeile mit weight "NaN" fällt aus der Übersicht, der Rest bleibt."""
        _insert_grade(school, school.math_id, 80, day=1)
        _insert_grade(school, school.math_id, 40, weight="NaN", day=2)
        stats = GradesService(school.store).subject_stats_for(school.student.id, school.math_id)
        assert stats.grade_count == 1
        assert stats.average == pytest.approx(80)


# ─── LEHRKRAFT ────────────────────────────────────────────────────────────────

class TestGradeEditing:
    def test_add_grade(self, school):
        service = GradesService(school.store)
        grade = service.add_grade(school.teacher, school.student.id, school.math_id,
                                  85, weight=2, grade_type="Klausur", comment="Sehr gut")
        assert grade.score == 85
        assert grade.description == "Klausur"
        row = school.store.select_single("grades", [eq("id", grade.id)])
        assert row["comment"] == "Sehr gut"
        assert "note" not in row
        assert row["teacher_id"] == school.teacher.id

    def test_only_subject_teacher(self, school):
        with pytest.raises(GradesError, match="Only the subject teacher"):
            GradesService(school.store).add_grade(school.teacher2, school.student.id,
                                                  school.math_id, 85)

    def test_unknown_subject(self, school):
        with pytest.raises(GradesError, match="Subject not found: nope"):
            GradesService(school.store).add_grade(school.teacher, school.student.id,
                                                  "nope", 85)

    @pytest.mark.parametrize("score,weight,message", [
        (101, 1.0, "score must be between 0 and 100"),
        (-1, 1.0, "score must be between 0 and 100"),
        (50, 0, "weight must be positive"),
        (float("nan"), 1.0, "score must be between 0 and 100"),
        (50, float("nan"), "weight must be positive"),
    ])
    def test_value_checks(self, school, score, weight, message):
        with pytest.raises(GradesError, match=message):
            GradesService(school.store).add_grade(school.teacher, school.student.id,
                                                  school.math_id, score, weight=weight)

    def test_update_grade(self, school):
        service = GradesService(school.store)
        grade = service.add_grade(school.teacher, school.student.id, school.math_id, 60)
        updated = service.update_grade(school.teacher, grade.id, score=75, comment="korrigiert")
        assert updated.score == 75
        assert updated.description == "korrigiert"

    def test_update_by_other_teacher(self, school):
        service = GradesService(school.store)
        grade = service.add_grade(school.teacher, school.student.id, school.math_id, 60)
        with pytest.raises(GradesError, match="Only the subject teacher"):
            service.update_grade(school.teacher2, grade.id, score=100)

    def test_update_unknown_grade(self, school):
        with pytest.raises(GradesError, match="Failed to update grade"):
            GradesService(school.store).update_grade(school.teacher, "nope", score=50)

    def test_delete_grade(self, school):
        service = GradesService(school.store)
        grade = service.add_grade(school.teacher, school.student.id, school.math_id, 60)
        service.delete_grade(school.teacher, grade.id)
        assert school.store.count("grades") == 0
