"""Datenmodelle für Noten und Fach-Notenübersicht (Pydantic v2)."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class Grade(BaseModel):
    """Eine einzelne Note (Punkte 0–100)."""

    model_config = ConfigDict(frozen=True)

    id: str
    subject_id: str
    score: float = Field(ge=0, le=100)
    weight: float = Field(1.0, gt=0)
    description: str = "Grade"
    date: datetime
    student_id: Optional[str] = None


class SubjectGradeStats(BaseModel):
    """Noten eines Schülers in einem Fach mit gewichtetem Durchschnitt."""

    model_config = ConfigDict(frozen=True)

    subject_id: str
    subject_name: str
    subject_color: int
    average: float = 0.0
    grades: list[Grade] = []

    @property
    def grade_count(self) -> int:
        return len(self.grades)

    @property
    def has_no_grades(self) -> bool:
        return not self.grades

    @classmethod
    def from_grades(cls, subject_id: str, subject_name: str,
                    subject_color: int, grades: list[Grade]) -> "SubjectGradeStats":
        """Baut die Übersicht und berechnet den Durchschnitt."""
        ordered = sorted(grades, key=lambda g: g.date, reverse=True)
        return cls(
            subject_id=subject_id,
            subject_name=subject_name,
            subject_color=subject_color,
            average=weighted_average(ordered),
            grades=ordered,
        )


def weighted_average(grades: list[Grade]) -> float:
    """sum(score * weight) / sum(weight); 0.0 ohne Noten."""
    total_weight = sum(g.weight for g in grades)
    if total_weight <= 0:
        return 0.0
    return sum(g.score * g.weight for g in grades) / total_weight


class GradeSummary(BaseModel):
    """Ungewichteter Überblick über alle Noten eines Fachs (Sicht der Lehrkraft)."""

    model_config = ConfigDict(frozen=True)

    count: int = Field(0, ge=0)
    average: float = 0.0
    highest: float = 0.0
    lowest: float = 0.0

    @classmethod
    def from_scores(cls, scores: list[float]) -> "GradeSummary":
        """0.0 für alle Werte ohne Noten."""
        if not scores:
            return cls()
        return cls(count=len(scores), average=sum(scores) / len(scores),
                   highest=max(scores), lowest=min(scores))
