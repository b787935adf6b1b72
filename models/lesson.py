"""Datenmodell für eine Unterrichtsstunde (Pydantic v2).

Eine Stunde ist entweder Teil des stabilen Wochenplans (is_stable=True,
ohne week_start_date) oder eine wochenspezifische Kopie, die über
stable_lesson_id auf ihre Vorlage verweist.
"""

from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from models.subject import Subject


class LessonStatus(str, Enum):
    NORMAL = "normal"
    CANCELLED = "cancelled"
    SUBSTITUTION = "substitution"


def format_clock(value: datetime) -> str:
    """Uhrzeit als "H:MM" (Stunde ohne führende Null)."""
    return f"{value.hour}:{value.minute:02d}"


class Lesson(BaseModel):
    """Eine konkrete Stunde an einem Datum."""

    model_config = ConfigDict(frozen=True)

    id: str
    subject: Subject
    day_of_week: int = Field(ge=1, le=7)   # 1=Mo .. 7=So
    start_time: datetime
    end_time: datetime
    room: str = ""
    status: LessonStatus = LessonStatus.NORMAL
    substitute_teacher: Optional[str] = None
    note: Optional[str] = None
    is_stable: bool = False
    stable_lesson_id: Optional[str] = None
    modified_from_stable: bool = False
    week_start_date: Optional[date] = None   # immer ein Montag
    stable_lesson: Optional[Lesson] = None

    @model_validator(mode='after')
    def _check_times(self):
        if self.start_time >= self.end_time:
            raise ValueError(
                f"Stunde {self.id}: Beginn {format_clock(self.start_time)} "
                f"liegt nicht vor Ende {format_clock(self.end_time)}"
            )
        if self.week_start_date is not None and self.week_start_date.weekday() != 0:
            raise ValueError(
                f"week_start_date muss ein Montag sein: {self.week_start_date}")
        return self

    @property
    def is_cancelled(self) -> bool:
        return self.status == LessonStatus.CANCELLED

    @property
    def is_substitution(self) -> bool:
        return self.status == LessonStatus.SUBSTITUTION

    @property
    def duration_minutes(self) -> int:
        return int((self.end_time - self.start_time).total_seconds() // 60)

    @property
    def time_label(self) -> str:
        return f"{format_clock(self.start_time)}–{format_clock(self.end_time)}"

    def with_stable_lesson(self, stable: Optional[Lesson]) -> Lesson:
        return self.model_copy(update={"stable_lesson": stable})

    def changes_from_stable(self) -> dict[str, tuple[str, str]]:
        """Unterschiede zur Vorlage als {feld: (alt, neu)}.

        Leer, solange keine Vorlage angehängt ist oder die Stunde nicht als
        geändert markiert ist. Verglichen werden nur Fach, Raum, Beginn, Ende
        und Lehrkraft.
        """
        changes: dict[str, tuple[str, str]] = {}
        stable = self.stable_lesson
        if stable is None or not self.modified_from_stable:
            return changes

        if self.subject.id != stable.subject.id:
            changes["subject"] = (stable.subject.name, self.subject.name)

        if self.room != stable.room:
            changes["room"] = (stable.room, self.room)

        old_start, new_start = format_clock(stable.start_time), format_clock(self.start_time)
        if old_start != new_start:
            changes["start_time"] = (old_start, new_start)

        old_end, new_end = format_clock(stable.end_time), format_clock(self.end_time)
        if old_end != new_end:
            changes["end_time"] = (old_end, new_end)

        if stable.subject.teacher_name != self.subject.teacher_name:
            changes["teacher"] = (
                stable.subject.teacher_name or "N/A",
                self.subject.teacher_name or "N/A",
            )

        return changes


Lesson.model_rebuild()
