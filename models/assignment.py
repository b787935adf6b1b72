"""Datenmodelle für Hausaufgaben und die Fachansicht (Pydantic v2)."""

from datetime import datetime, timedelta
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from models.subject import Subject


class Assignment(BaseModel):
    """Hausaufgabe eines Fachs mit Fälligkeitsdatum.

    is_completed gilt aus Sicht eines Schülers (Abgabe vorhanden).
    """

    model_config = ConfigDict(frozen=True)

    id: str
    subject: Subject
    title: str
    due_date: datetime
    description: Optional[str] = None
    is_completed: bool = False
    max_score: int = Field(100, ge=1)
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None

    def is_overdue(self, now: Optional[datetime] = None) -> bool:
        now = now or datetime.now(self.due_date.tzinfo)
        return not self.is_completed and now > self.due_date

    def is_due_today(self, now: Optional[datetime] = None) -> bool:
        now = now or datetime.now(self.due_date.tzinfo)
        return self.due_date.date() == now.date()

    def is_due_tomorrow(self, now: Optional[datetime] = None) -> bool:
        now = now or datetime.now(self.due_date.tzinfo)
        return self.due_date.date() == now.date() + timedelta(days=1)


class SubjectDetail(BaseModel):
    """Fach mit Lehrkraft und allen Hausaufgaben, früheste Fälligkeit zuerst."""

    model_config = ConfigDict(frozen=True)

    subject: Subject
    assignments: list[Assignment] = Field(default_factory=list)

    @property
    def open_assignments(self) -> list[Assignment]:
        return [a for a in self.assignments if not a.is_completed]
