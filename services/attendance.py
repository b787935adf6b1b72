"""Anwesenheit erfassen und Entschuldigungen bearbeiten.

Lehrkräfte erfassen je Stunde, Schüler und Datum genau einen Eintrag.
Eltern reichen für Fehlzeiten ihrer Kinder eine Entschuldigung ein; die
Lehrkraft des Fachs nimmt sie an (Eintrag wird "excused") oder lehnt ab.
"""

import calendar
import logging
from datetime import date
from typing import Optional

from data.dtos import AbsenceExcuseDTO
from data.dto_base import DTOValidationError
from data.records import attendance_from_row
from data.store import Order, TableStore, eq, gte, in_, lte, now_iso
from models.attendance import (
    AbsenceExcuse,
    AbsenceExcuseStatus,
    AttendanceRecord,
    AttendanceStats,
    AttendanceStatus,
)
from models.user import AppUser
from services.base import AttendanceError, store_errors

logger = logging.getLogger(__name__)


def month_range(month: date) -> tuple[date, date]:
    """Erster und letzter Tag des Monats von month."""
    last = calendar.monthrange(month.year, month.month)[1]
    return month.replace(day=1), month.replace(day=last)


class AttendanceService:
    def __init__(self, store: TableStore):
        self.store = store

    # ─── Erfassen ───

    def _lesson_subject(self, lesson_id: str) -> Optional[dict]:
        lesson = self.store.select_maybe("lessons", [eq("id", lesson_id)])
        if lesson is None:
            return None
        return self.store.select_maybe("subjects", [eq("id", lesson.get("subject_id"))]) or {}

    def mark_attendance(self, teacher: AppUser, lesson_id: str, student_id: str,
                        status: AttendanceStatus, day: date,
                        note: Optional[str] = None) -> AttendanceRecord:
        """Legt den Eintrag an oder überschreibt ihn (Stunde + Schüler + Datum)."""
        if not (teacher.is_teacher or teacher.has_admin_privileges):
            raise AttendanceError("Only teachers can mark attendance")
        action = "Failed to mark attendance"
        with store_errors(AttendanceError, action):
            subject = self._lesson_subject(lesson_id)
            if subject is None:
                raise AttendanceError(f"{action}: lesson not found with id {lesson_id}")
            row = self.store.upsert("attendance", {
                "lesson_id": lesson_id,
                "student_id": student_id,
                "date": day,
                "status": status,
                "subject_id": subject.get("id"),
                "note": note,
                "recorded_by": teacher.id,
                "recorded_at": now_iso(),
            }, on_conflict=("lesson_id", "student_id", "date"))
        return attendance_from_row(row, subject.get("name"))

    def bulk_mark(self, teacher: AppUser, lesson_id: str, day: date,
                  statuses: dict[str, AttendanceStatus]) -> list[AttendanceRecord]:
        """Erfasst mehrere Schüler einer Stunde (Schüler-ID → Status)."""
        records = [self.mark_attendance(teacher, lesson_id, student_id, status, day)
                   for student_id, status in statuses.items()]
        logger.info(f"{len(records)} Anwesenheiten für Stunde {lesson_id} am {day} erfasst")
        return records

    # ─── Abfragen ───

    def attendance_for_student(self, student_id: str, start: Optional[date] = None,
                               end: Optional[date] = None) -> list[AttendanceRecord]:
        """Einträge des Schülers, neueste zuerst, optional im Zeitraum [start, end]."""
        filters = [eq("student_id", student_id)]
        if start is not None:
            filters.append(gte("date", start))
        if end is not None:
            filters.append(lte("date", end))
        with store_errors(AttendanceError, "Failed to fetch attendance"):
            rows = self.store.select("attendance", filters,
                                     order_by=[Order("date", desc=True)])
            subject_ids = sorted({r["subject_id"] for r in rows if r.get("subject_id")})
            names = {s["id"]: s.get("name") for s in
                     self.store.select("subjects", [in_("id", subject_ids)])} if subject_ids else {}
        return [attendance_from_row(r, names.get(r.get("subject_id"))) for r in rows]

    def attendance_stats(self, student_id: str,
                         month: Optional[date] = None) -> AttendanceStats:
        start, end = month_range(month) if month else (None, None)
        return AttendanceStats.from_records(self.attendance_for_student(student_id, start, end))

    # ─── Entschuldigungen ───

    def _excuse(self, row: dict) -> AbsenceExcuse:
        """Ergänzt Namen und Anwesenheitsdaten und baut die Entschuldigung."""
        profile_ids = [row.get(k) for k in ("student_id", "parent_id", "teacher_id") if row.get(k)]
        profiles = {p["id"]: p for p in
                    self.store.select("profiles", [in_("id", profile_ids)])} if profile_ids else {}
        attendance = self.store.select_maybe("attendance", [eq("id", row.get("attendance_id"))])
        if attendance and attendance.get("subject_id"):
            subject = self.store.select_maybe("subjects", [eq("id", attendance["subject_id"])])
            attendance["subject_name"] = (subject or {}).get("name")
        enriched = {
            **row,
            "student": profiles.get(row.get("student_id")),
            "parent": profiles.get(row.get("parent_id")),
            "teacher": profiles.get(row.get("teacher_id")),
            "attendance": attendance,
        }
        try:
            return AbsenceExcuseDTO.from_row(enriched).to_entity()
        except DTOValidationError as e:
            raise AttendanceError(f"Invalid excuse {row.get('id')}: {e}") from e

    def _excuses(self, filters: list, context: str) -> list[AbsenceExcuse]:
        with store_errors(AttendanceError, context):
            rows = self.store.select("absence_excuses", filters,
                                     order_by=[Order("created_at", desc=True)])
            return [self._excuse(r) for r in rows]

    def submit_excuse(self, parent: AppUser, attendance_id: str, reason: str) -> AbsenceExcuse:
        """Reicht eine Entschuldigung ein; je Anwesenheitseintrag höchstens eine."""
        if not reason or not reason.strip():
            raise AttendanceError("Reason is required")
        action = "Failed to submit excuse"
        with store_errors(AttendanceError, action):
            row = self.store.select_maybe("attendance", [eq("id", attendance_id)])
            if row is None:
                raise AttendanceError(f"{action}: attendance record not found")
            record = attendance_from_row(row)
            link = self.store.select_maybe("parent_student", [
                eq("parent_id", parent.id), eq("student_id", record.student_id)])
            if link is None:
                raise AttendanceError("You can only submit excuses for your own children")
            if not record.can_submit_excuse:
                raise AttendanceError("Excuses can only be submitted for absences")
            if self.store.select_maybe("absence_excuses",
                                       [eq("attendance_id", attendance_id)]) is not None:
                raise AttendanceError("An excuse has already been submitted for this absence")
            now = now_iso()
            excuse = self.store.insert("absence_excuses", {
                "attendance_id": attendance_id,
                "student_id": record.student_id,
                "parent_id": parent.id,
                "reason": reason.strip(),
                "status": AbsenceExcuseStatus.PENDING,
                "created_at": now,
                "updated_at": now,
            })
            logger.info(f"Entschuldigung für {record.student_id} am {record.date} eingereicht")
            return self._excuse(excuse)

    def _teacher_subject_ids(self, teacher: AppUser) -> list[str]:
        return [s["id"] for s in self.store.select("subjects", [eq("teacher_id", teacher.id)])]

    def _decide(self, teacher: AppUser, excuse_id: str, status: AbsenceExcuseStatus,
                response: Optional[str], action: str) -> AbsenceExcuse:
        with store_errors(AttendanceError, action):
            row = self.store.select_maybe("absence_excuses", [eq("id", excuse_id)])
            if row is None:
                raise AttendanceError(f"{action}: excuse not found")
            attendance = self.store.select_maybe("attendance",
                                                 [eq("id", row["attendance_id"])]) or {}
            if not teacher.has_admin_privileges and \
                    attendance.get("subject_id") not in self._teacher_subject_ids(teacher):
                raise AttendanceError("Only the subject teacher can review this excuse")
            self.store.update("absence_excuses", {
                "status": status,
                "teacher_id": teacher.id,
                "teacher_response": response,
                "updated_at": now_iso(),
            }, [eq("id", excuse_id)])
            if status == AbsenceExcuseStatus.APPROVED:
                self.store.update("attendance", {"status": AttendanceStatus.EXCUSED},
                                  [eq("id", row["attendance_id"])])
            updated = self.store.select_single("absence_excuses", [eq("id", excuse_id)])
            logger.info(f"Entschuldigung {excuse_id}: {status.value}")
            return self._excuse(updated)

    def approve_excuse(self, teacher: AppUser, excuse_id: str,
                       response: Optional[str] = None) -> AbsenceExcuse:
        return self._decide(teacher, excuse_id, AbsenceExcuseStatus.APPROVED, response,
                            "Failed to approve excuse")

    def decline_excuse(self, teacher: AppUser, excuse_id: str,
                       response: Optional[str] = None) -> AbsenceExcuse:
        return self._decide(teacher, excuse_id, AbsenceExcuseStatus.DECLINED, response,
                            "Failed to decline excuse")

    def pending_for_teacher(self, teacher: AppUser) -> list[AbsenceExcuse]:
        """Offene Entschuldigungen zu Stunden der Fächer der Lehrkraft."""
        action = "Failed to fetch pending excuses"
        with store_errors(AttendanceError, action):
            subject_ids = self._teacher_subject_ids(teacher)
            if not subject_ids:
                return []
            attendance_ids = [a["id"] for a in
                              self.store.select("attendance", [in_("subject_id", subject_ids)])]
        if not attendance_ids:
            return []
        return self._excuses([in_("attendance_id", attendance_ids),
                              eq("status", AbsenceExcuseStatus.PENDING)], action)

    def excuses_for_child(self, parent: AppUser, child_id: str) -> list[AbsenceExcuse]:
        return self._excuses([eq("student_id", child_id), eq("parent_id", parent.id)],
                             "Failed to fetch excuses")

    def excuse_for_attendance(self, attendance_id: str) -> Optional[AbsenceExcuse]:
        with store_errors(AttendanceError, "Failed to fetch excuse"):
            row = self.store.select_maybe("absence_excuses",
                                          [eq("attendance_id", attendance_id)])
            return self._excuse(row) if row else None
