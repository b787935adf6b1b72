"""Stundenplan: stabiler Wochenplan und wochenspezifische Abweichungen.

Stunden gehören über ihr Fach (subjects.class_id) zu einer Klasse. Stabile
Stunden (is_stable=True) bilden den wiederkehrenden Plan. Für eine Woche
kann eine Kopie angelegt werden (week_start_date = Montag der Woche,
stable_lesson_id = Vorlage); gibt es für eine Woche Kopien, ersetzen sie
den stabilen Plan vollständig.

Wochentage: 1=Mo .. 7=So. Das Backend speichert 0=So .. 6=Sa.
"""

import logging
from datetime import date, time, timedelta
from typing import Callable, Optional, Union

from config.schema import ScheduleConfig
from data.dto_base import DTOValidationError, dtos_to_entities
from data.dtos import LessonDTO, date_for_weekday, db_to_weekday, weekday_to_db
from data.json_parsing import format_time, parse_int_nullable, parse_time
from data.store import Order, StoreError, TableStore, eq, in_
from models.lesson import Lesson
from services.base import ScheduleError, store_errors

logger = logging.getLogger(__name__)

TimeInput = Union[time, str]

# Felder, deren Abweichung eine Stunde als geändert markiert
_COMPARED_FIELDS = ("subject_id", "day_of_week", "start_time", "end_time", "room")


def week_start(day: date) -> date:
    """Montag der Woche von day."""
    return day - timedelta(days=day.weekday())


def empty_week() -> dict[int, list[Lesson]]:
    return {d: [] for d in range(1, 8)}


def group_by_day(lessons: list[Lesson]) -> dict[int, list[Lesson]]:
    """Stunden nach Wochentag (1..7), je Tag nach Beginn sortiert."""
    week = empty_week()
    for lesson in lessons:
        week[lesson.day_of_week].append(lesson)
    for day_lessons in week.values():
        day_lessons.sort(key=lambda l: l.start_time)
    return week


def _normalized(row: dict, column: str):
    value = row.get(column)
    if column == "room":
        return value or ""
    if column in ("start_time", "end_time"):
        return parse_time(value, column)
    return value


def differs_from_stable(row: dict, stable_row: dict) -> bool:
    """Vergleicht Fach, Tag, Beginn, Ende und Raum (Raum None ≡ "")."""
    return any(_normalized(row, c) != _normalized(stable_row, c) for c in _COMPARED_FIELDS)


def _check_day(day_of_week: Optional[int]) -> None:
    if day_of_week is not None and not 1 <= day_of_week <= 7:
        raise ScheduleError(
            f"dayOfWeek must be between 1 and 7 (1=Monday, 7=Sunday), got {day_of_week}")


def _time_value(value: Optional[TimeInput], field: str) -> Optional[time]:
    if value is None:
        return None
    parsed = parse_time(value, field)
    if parsed is None:
        raise ScheduleError(f'{field} must be in HH:MM or HH:MM:SS format, got "{value}"')
    return parsed


class ScheduleService:
    def __init__(self, store: TableStore, config: Optional[ScheduleConfig] = None,
                 today: Callable[[], date] = date.today):
        self.store = store
        self.config = config or ScheduleConfig()
        self._today = today

    # ─── Laden ───

    def _class_subjects(self, class_id: str) -> dict[str, dict]:
        """Fächer der Klasse inkl. Lehrkraft unter "teacher"."""
        rows = self.store.select("subjects", [eq("class_id", class_id)])
        return self._with_teachers(rows)

    def _with_teachers(self, subject_rows: list[dict]) -> dict[str, dict]:
        teacher_ids = {r["teacher_id"] for r in subject_rows if r.get("teacher_id")}
        teachers = {}
        if teacher_ids:
            teachers = {p["id"]: p for p in
                        self.store.select("profiles", [in_("id", sorted(teacher_ids))])}
        return {r["id"]: {**r, "teacher": teachers.get(r.get("teacher_id"))}
                for r in subject_rows}

    def _lesson_rows(self, subjects: dict[str, dict], *filters) -> list[dict]:
        if not subjects:
            return []
        rows = self.store.select(
            "lessons", [in_("subject_id", list(subjects)), *filters],
            order_by=[Order("day_of_week"), Order("start_time")],
        )
        for row in rows:
            row["subjects"] = subjects.get(row.get("subject_id"))
        return rows

    def _occurrence(self, row: dict, week: date) -> date:
        db_day = parse_int_nullable(row.get("day_of_week"), "day_of_week")
        return date_for_weekday(week, db_to_weekday(db_day) if db_day is not None else 1)

    def _to_lessons(self, rows: list[dict], week: date,
                    stable_by_id: Optional[dict[str, Lesson]] = None,
                    context: str = "lessons") -> list[Lesson]:
        stable_by_id = stable_by_id or {}
        dtos = [
            LessonDTO.from_row(row, self._occurrence(row, week),
                               stable_lesson=stable_by_id.get(row.get("stable_lesson_id")))
            for row in rows
        ]
        return dtos_to_entities(dtos, context)

    def _stable_for_rows(self, rows: list[dict], week: date) -> dict[str, Lesson]:
        """Vorlagen aller Zeilen mit stable_lesson_id, nach ID."""
        stable_ids = sorted({r["stable_lesson_id"] for r in rows if r.get("stable_lesson_id")})
        if not stable_ids:
            return {}
        stable_rows = self.store.select("lessons", [in_("id", stable_ids)])
        subject_ids = sorted({r["subject_id"] for r in stable_rows if r.get("subject_id")})
        subjects = self._with_teachers(
            self.store.select("subjects", [in_("id", subject_ids)])) if subject_ids else {}
        for row in stable_rows:
            row["subjects"] = subjects.get(row.get("subject_id"))
        return {l.id: l for l in self._to_lessons(stable_rows, week, context="stable lessons")}

    def _lesson_row(self, lesson_id: str, action: str) -> dict:
        try:
            return self.store.select_single("lessons", [eq("id", lesson_id)])
        except StoreError as e:
            if e.is_not_found:
                raise ScheduleError(f"{action}: lesson not found with id {lesson_id}") from e
            raise ScheduleError(f"{action}: {e.message}") from e

    def _single_lesson(self, row: dict, week: Optional[date] = None) -> Lesson:
        """Baut eine Stunde inkl. Fach und Vorlage."""
        week = week or (date.fromisoformat(row["week_start_date"])
                        if row.get("week_start_date") else week_start(self._today()))
        subjects = self._with_teachers(
            self.store.select("subjects", [eq("id", row.get("subject_id"))]))
        row = {**row, "subjects": subjects.get(row.get("subject_id"))}
        stable = self._stable_for_rows([row], week).get(row.get("stable_lesson_id"))
        try:
            return LessonDTO.from_row(row, self._occurrence(row, week), stable).to_entity()
        except DTOValidationError as e:
            raise ScheduleError(f"Invalid lesson {row.get('id')}: {e}") from e

    # ─── Abfragen ───

    def stable_timetable(self, class_id: str,
                         week: Optional[date] = None) -> dict[int, list[Lesson]]:
        """Stabiler Plan der Klasse; Uhrzeiten bezogen auf week (Standard: aktuelle Woche)."""
        monday = week_start(week or self._today())
        with store_errors(ScheduleError, "Failed to fetch stable timetable"):
            subjects = self._class_subjects(class_id)
            rows = self._lesson_rows(subjects, eq("is_stable", True))
        return group_by_day(self._to_lessons(rows, monday, context="stable timetable"))

    def week_timetable(self, class_id: str, week: date) -> dict[int, list[Lesson]]:
        """Plan einer Woche: Wochenkopien falls vorhanden, sonst der stabile Plan."""
        monday = week_start(week)
        with store_errors(ScheduleError, "Failed to fetch week timetable"):
            subjects = self._class_subjects(class_id)
            rows = self._lesson_rows(subjects, eq("week_start_date", monday))
            if not rows:
                rows = self._lesson_rows(subjects, eq("is_stable", True))
            stable_by_id = self._stable_for_rows(rows, monday)
        return group_by_day(self._to_lessons(rows, monday, stable_by_id, "week timetable"))

    def lessons_for_day(self, class_id: str, day: date) -> list[Lesson]:
        monday = week_start(day)
        db_day = weekday_to_db(day.isoweekday())
        with store_errors(ScheduleError, "Failed to fetch lessons"):
            subjects = self._class_subjects(class_id)
            rows = self._lesson_rows(subjects, eq("day_of_week", db_day),
                                     eq("week_start_date", monday))
            if not rows:
                rows = self._lesson_rows(subjects, eq("day_of_week", db_day),
                                         eq("is_stable", True))
            stable_by_id = self._stable_for_rows(rows, monday)
        lessons = self._to_lessons(rows, monday, stable_by_id, "lessons for day")
        return sorted(lessons, key=lambda l: l.start_time)

    def class_for_student(self, student_id: str) -> Optional[str]:
        with store_errors(ScheduleError, "Failed to get user class"):
            row = self.store.select_maybe("class_students", [eq("student_id", student_id)])
        return row.get("class_id") if row else None

    def lessons_for_student(self, student_id: str, day: date) -> list[Lesson]:
        class_id = self.class_for_student(student_id)
        if class_id is None:
            return []
        return self.lessons_for_day(class_id, day)

    def week_for_student(self, student_id: str, week: date) -> dict[int, list[Lesson]]:
        class_id = self.class_for_student(student_id)
        if class_id is None:
            return empty_week()
        return self.week_timetable(class_id, week)

    def stable_lesson_for(self, lesson_id: str) -> Optional[Lesson]:
        """Vorlage einer Wochenstunde, oder None."""
        with store_errors(ScheduleError, "Failed to get stable lesson"):
            row = self.store.select_maybe("lessons", [eq("id", lesson_id)])
            if row is None or not row.get("stable_lesson_id"):
                return None
            stable_row = self.store.select_maybe("lessons", [eq("id", row["stable_lesson_id"])])
            if stable_row is None:
                return None
            return self._single_lesson(stable_row)

    # ─── Wochenkopien ───

    def create_week_from_stable(self, class_id: str, week: date) -> dict[int, list[Lesson]]:
        """Kopiert den stabilen Plan in die Woche. Bestehende Kopien bleiben unangetastet."""
        monday = week_start(week)
        with store_errors(ScheduleError, "Failed to create week from stable"):
            subjects = self._class_subjects(class_id)
            if not subjects:
                return empty_week()
            if self._lesson_rows(subjects, eq("week_start_date", monday)):
                logger.info(f"Woche {monday} für Klasse {class_id} existiert bereits")
                return self.week_timetable(class_id, monday)
            stable_rows = self._lesson_rows(subjects, eq("is_stable", True))
            for stable in stable_rows:
                self.store.insert("lessons", {
                    "subject_id": stable["subject_id"],
                    "day_of_week": stable["day_of_week"],
                    "start_time": stable["start_time"],
                    "end_time": stable["end_time"],
                    "room": stable.get("room"),
                    "is_stable": False,
                    "stable_lesson_id": stable["id"],
                    "modified_from_stable": False,
                    "week_start_date": monday,
                })
        logger.info(f"{len(stable_rows)} Stunden in Woche {monday} kopiert (Klasse {class_id})")
        return self.week_timetable(class_id, monday)

    def update_week_lesson(self, lesson_id: str, subject_id: Optional[str] = None,
                           day_of_week: Optional[int] = None,
                           start_time: Optional[TimeInput] = None,
                           end_time: Optional[TimeInput] = None,
                           room: Optional[str] = None) -> Lesson:
        """Ändert eine Wochenstunde und berechnet modified_from_stable neu."""
        action = "Failed to update lesson"
        row = self._lesson_row(lesson_id, action)
        if row.get("is_stable"):
            raise ScheduleError(
                "Cannot modify stable lessons directly. Create a week-specific copy first.")
        _check_day(day_of_week)
        start = _time_value(start_time, "start_time")
        end = _time_value(end_time, "end_time")

        values: dict = {}
        if subject_id is not None:
            values["subject_id"] = subject_id
        if day_of_week is not None:
            values["day_of_week"] = weekday_to_db(day_of_week)
        if start is not None:
            values["start_time"] = format_time(start)
        if end is not None:
            values["end_time"] = format_time(end)
        if room is not None:
            values["room"] = room

        new_start = start or parse_time(row.get("start_time"))
        new_end = end or parse_time(row.get("end_time"))
        if new_start and new_end and new_start >= new_end:
            raise ScheduleError(
                f"{action}: end_time ({new_end}) must be after start_time ({new_start})")

        with store_errors(ScheduleError, action):
            updated = {**row, **values}
            stable_id = row.get("stable_lesson_id")
            if stable_id:
                stable_row = self.store.select_maybe("lessons", [eq("id", stable_id)])
                values["modified_from_stable"] = (
                    stable_row is not None and differs_from_stable(updated, stable_row))
            self.store.update("lessons", values, [eq("id", lesson_id)])
            lesson = self._single_lesson({**updated, **values})
        logger.info(f"Stunde {lesson_id} geändert (abweichend: {lesson.modified_from_stable})")
        return lesson

    def reset_week_lesson(self, lesson_id: str) -> Lesson:
        """Setzt eine Wochenstunde auf die Werte ihrer Vorlage zurück."""
        action = "Failed to reset lesson"
        row = self._lesson_row(lesson_id, action)
        if row.get("is_stable") or not row.get("stable_lesson_id"):
            raise ScheduleError(f"{action}: lesson {lesson_id} has no stable lesson")
        stable_row = self._lesson_row(row["stable_lesson_id"], action)
        values = {c: stable_row.get(c) for c in _COMPARED_FIELDS}
        values["modified_from_stable"] = False
        with store_errors(ScheduleError, action):
            self.store.update("lessons", values, [eq("id", lesson_id)])
            return self._single_lesson({**row, **values})

    # ─── Verwaltung (Stellvertretung) ───

    def create_lesson(self, class_id: str, subject_id: str, day_of_week: int,
                      start_time: TimeInput, end_time: TimeInput,
                      room: Optional[str] = None, is_stable: bool = True,
                      week: Optional[date] = None) -> Lesson:
        """Legt eine stabile oder wochenspezifische Stunde an."""
        _check_day(day_of_week)
        start = _time_value(start_time, "start_time")
        end = _time_value(end_time, "end_time")
        if end <= start:
            raise ScheduleError(f"end_time ({end}) must be after start_time ({start})")
        if not class_id:
            raise ScheduleError("classId cannot be empty")
        if not subject_id:
            raise ScheduleError("subjectId cannot be empty")
        if not is_stable and week is None:
            raise ScheduleError("week is required for week-specific lessons")

        action = "Failed to create lesson"
        with store_errors(ScheduleError, action):
            subject = self.store.select_maybe(
                "subjects", [eq("id", subject_id), eq("class_id", class_id)])
            if subject is None:
                raise ScheduleError("Subject does not belong to the specified class")
            row = self.store.insert("lessons", {
                "subject_id": subject_id,
                "day_of_week": weekday_to_db(day_of_week),
                "start_time": format_time(start),
                "end_time": format_time(end),
                "room": room,
                "is_stable": is_stable,
                "week_start_date": None if is_stable else week_start(week),
            })
            return self._single_lesson(row)

    def update_lesson(self, lesson_id: str, subject_id: Optional[str] = None,
                      day_of_week: Optional[int] = None,
                      start_time: Optional[TimeInput] = None,
                      end_time: Optional[TimeInput] = None,
                      room: Optional[str] = None) -> Lesson:
        """Ändert eine beliebige Stunde; leerer Raum löscht den Raum."""
        if not lesson_id:
            raise ScheduleError("lessonId cannot be empty")
        _check_day(day_of_week)
        start = _time_value(start_time, "start_time")
        end = _time_value(end_time, "end_time")
        if start and end and end <= start:
            raise ScheduleError(f"end_time ({end}) must be after start_time ({start})")
        if subject_id is not None and not subject_id:
            raise ScheduleError("subjectId cannot be empty")

        values: dict = {}
        if subject_id is not None:
            values["subject_id"] = subject_id
        if day_of_week is not None:
            values["day_of_week"] = weekday_to_db(day_of_week)
        if start is not None:
            values["start_time"] = format_time(start)
        if end is not None:
            values["end_time"] = format_time(end)
        if room is not None:
            values["room"] = room or None

        action = "Failed to update lesson"
        with store_errors(ScheduleError, action):
            updated = self.store.update("lessons", values, [eq("id", lesson_id)])
            if not updated:
                raise ScheduleError(f"{action}: lesson not found with id {lesson_id}")
            return self._single_lesson(updated[0])

    def delete_lesson(self, lesson_id: str) -> bool:
        if not lesson_id:
            raise ScheduleError("lessonId cannot be empty")
        with store_errors(ScheduleError, "Failed to delete lesson"):
            self.store.delete("lessons", [eq("id", lesson_id)])
        return True
