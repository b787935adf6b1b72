"""Datenmodelle für Anwesenheit und Entschuldigungen (Pydantic v2)."""

from datetime import date, datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class AttendanceStatus(str, Enum):
    PRESENT = "present"
    ABSENT = "absent"
    LATE = "late"
    LEFT_EARLY = "left_early"
    EXCUSED = "excused"

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["AttendanceStatus"]:
        """Akzeptiert auch die camelCase-Schreibweise "leftEarly".

        Unbekannte Werte gelten als present.
        """
        if value is None:
            return None
        normalized = str(value).strip().lower().replace("_", "")
        for status in cls:
            if status.value.replace("_", "") == normalized:
                return status
        return cls.PRESENT

    @property
    def label(self) -> str:
        return _STATUS_LABELS[self]


_STATUS_LABELS = {
    AttendanceStatus.PRESENT: "Anwesend",
    AttendanceStatus.ABSENT: "Abwesend",
    AttendanceStatus.LATE: "Verspätet",
    AttendanceStatus.LEFT_EARLY: "Früher gegangen",
    AttendanceStatus.EXCUSED: "Entschuldigt",
}


class DailyAttendanceStatus(str, Enum):
    """Zusammenfassung aller Einträge eines Tages für den Elternkalender."""

    ALL_PRESENT = "all_present"
    ALL_ABSENT = "all_absent"
    WAS_LATE = "was_late"
    PARTIAL_ABSENT = "partial_absent"

    @classmethod
    def from_statuses(cls, statuses: list[AttendanceStatus]) -> "DailyAttendanceStatus":
        """Alle anwesend, alle abwesend, sonst Verspätung vor teilweiser Abwesenheit."""
        if all(s == AttendanceStatus.PRESENT for s in statuses):
            return cls.ALL_PRESENT
        if all(s == AttendanceStatus.ABSENT for s in statuses):
            return cls.ALL_ABSENT
        if AttendanceStatus.LATE in statuses:
            return cls.WAS_LATE
        if AttendanceStatus.ABSENT in statuses:
            return cls.PARTIAL_ABSENT
        return cls.ALL_PRESENT


class AbsenceExcuseStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    DECLINED = "declined"

    @classmethod
    def parse(cls, value: Optional[str]) -> "AbsenceExcuseStatus":
        """Unbekannt oder leer → pending."""
        if value is None:
            return cls.PENDING
        normalized = str(value).strip().lower()
        for status in cls:
            if status.value == normalized:
                return status
        return cls.PENDING


class AttendanceRecord(BaseModel):
    """Anwesenheit eines Schülers in einer Stunde an einem Datum."""

    model_config = ConfigDict(frozen=True)

    id: str
    student_id: str
    lesson_id: str
    date: date
    status: AttendanceStatus
    subject_id: Optional[str] = None
    subject_name: Optional[str] = None
    note: Optional[str] = None
    recorded_by: Optional[str] = None
    recorded_at: Optional[datetime] = None

    @property
    def is_negative(self) -> bool:
        return self.status in (AttendanceStatus.ABSENT, AttendanceStatus.LATE)

    @property
    def can_submit_excuse(self) -> bool:
        return self.is_negative


class AttendanceStats(BaseModel):
    """Zusammenfassung über einen Zeitraum."""

    total_days: int = Field(0, ge=0)
    present_days: int = Field(0, ge=0)
    absent_days: int = Field(0, ge=0)
    late_days: int = Field(0, ge=0)
    excused_days: int = Field(0, ge=0)

    @property
    def attendance_percentage(self) -> float:
        """(anwesend + entschuldigt) / gesamt · 100; 100.0 ohne Einträge."""
        if self.total_days == 0:
            return 100.0
        return (self.present_days + self.excused_days) / self.total_days * 100

    @classmethod
    def from_records(cls, records: list[AttendanceRecord]) -> "AttendanceStats":
        counts = {status: 0 for status in AttendanceStatus}
        for r in records:
            counts[r.status] += 1
        return cls(
            total_days=len(records),
            present_days=counts[AttendanceStatus.PRESENT],
            absent_days=counts[AttendanceStatus.ABSENT],
            late_days=counts[AttendanceStatus.LATE],
            excused_days=counts[AttendanceStatus.EXCUSED],
        )


class AbsenceExcuse(BaseModel):
    """Entschuldigung eines Elternteils für einen Anwesenheitseintrag."""

    model_config = ConfigDict(frozen=True)

    id: str
    attendance_id: str
    student_id: str
    parent_id: str
    reason: str
    status: AbsenceExcuseStatus = AbsenceExcuseStatus.PENDING
    teacher_response: Optional[str] = None
    teacher_id: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    student_name: Optional[str] = None
    parent_name: Optional[str] = None
    teacher_name: Optional[str] = None
    subject_name: Optional[str] = None
    attendance_date: Optional[date] = None

    @property
    def is_pending(self) -> bool:
        return self.status == AbsenceExcuseStatus.PENDING

    @property
    def is_approved(self) -> bool:
        return self.status == AbsenceExcuseStatus.APPROVED

    @property
    def is_declined(self) -> bool:
        return self.status == AbsenceExcuseStatus.DECLINED
