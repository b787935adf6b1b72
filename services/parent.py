"""Sicht der Eltern: eigene Kinder, Anwesenheitskalender und Hausaufgaben.

Jeder Zugriff auf ein Kind setzt eine Verknüpfung in parent_student voraus.
"""

import logging
from collections import defaultdict
from datetime import date, datetime
from typing import Optional

from data.records import attendance_from_row, user_from_row
from data.store import Order, TableStore, eq, in_
from models.assignment import Assignment
from models.attendance import AttendanceRecord, AttendanceStatus, DailyAttendanceStatus
from models.user import AppUser
from services.assignments import UPCOMING_DAYS, AssignmentService
from services.attendance import AttendanceService, month_range
from services.base import AssignmentError, AttendanceError, ParentError, store_errors

logger = logging.getLogger(__name__)

ISSUE_LIMIT = 10


class ParentService:
    def __init__(self, store: TableStore, assignments: Optional[AssignmentService] = None):
        self.store = store
        self.attendance = AttendanceService(store)
        self.assignments = assignments or AssignmentService(store)

    def my_children(self, parent: AppUser) -> list[AppUser]:
        if not parent.is_parent:
            raise ParentError("Only parents can view children")
        with store_errors(ParentError, "Failed to fetch children"):
            ids = [l["student_id"] for l in
                   self.store.select("parent_student", [eq("parent_id", parent.id)])]
            rows = self.store.select("profiles", [in_("id", ids)],
                                     order_by=[Order("first_name")]) if ids else []
        return [user_from_row(r) for r in rows]

    def _verify_child(self, parent: AppUser, child_id: str) -> None:
        with store_errors(ParentError, "Failed to verify child"):
            link = self.store.select_maybe("parent_student", [
                eq("parent_id", parent.id), eq("student_id", child_id)])
        if link is None:
            raise ParentError("Child not found or access denied")

    # ─── Anwesenheit ───

    def _child_attendance(self, child_id: str, start: Optional[date] = None,
                          end: Optional[date] = None) -> list[AttendanceRecord]:
        try:
            return self.attendance.attendance_for_student(child_id, start, end)
        except AttendanceError as e:
            raise ParentError(str(e)) from e

    def child_attendance_calendar(self, parent: AppUser, child_id: str,
                                  month: date) -> dict[date, DailyAttendanceStatus]:
        """Tagesstatus für jeden Tag des Monats mit mindestens einem Eintrag."""
        self._verify_child(parent, child_id)
        by_day: dict[date, list[AttendanceStatus]] = defaultdict(list)
        for record in self._child_attendance(child_id, *month_range(month)):
            by_day[record.date].append(record.status)
        return {day: DailyAttendanceStatus.from_statuses(statuses)
                for day, statuses in sorted(by_day.items())}

    def child_attendance_issues(self, parent: AppUser, child_id: str,
                                limit: int = ISSUE_LIMIT) -> list[AttendanceRecord]:
        """Fehlzeiten und Verspätungen, neueste zuerst."""
        self._verify_child(parent, child_id)
        with store_errors(ParentError, "Failed to fetch attendance issues"):
            rows = self.store.select("attendance", [
                eq("student_id", child_id),
                in_("status", [AttendanceStatus.ABSENT, AttendanceStatus.LATE]),
            ], order_by=[Order("date", desc=True)], limit=limit)
            subject_ids = sorted({r["subject_id"] for r in rows if r.get("subject_id")})
            names = {s["id"]: s.get("name") for s in
                     self.store.select("subjects", [in_("id", subject_ids)])} if subject_ids else {}
        return [attendance_from_row(r, names.get(r.get("subject_id"))) for r in rows]

    # ─── Hausaufgaben ───

    def child_assignments(self, parent: AppUser, child_id: str, days: int = UPCOMING_DAYS,
                          now: Optional[datetime] = None) -> list[Assignment]:
        self._verify_child(parent, child_id)
        try:
            return self.assignments.upcoming_for_student(child_id, days, now)
        except AssignmentError as e:
            raise ParentError(str(e)) from e
