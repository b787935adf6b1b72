"""Vergleich eines Wochenplans mit dem stabilen Plan (Diff / Changelog).

Gibt strukturierte Unterschiede zurück, die als Rich-Tabelle oder JSON
ausgegeben werden können.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field

from models.lesson import Lesson


@dataclass
class LessonChange:
    """Ein geändertes Feld einer Wochenstunde gegenüber ihrer Vorlage."""

    lesson_id: str
    day_of_week: int
    field: str
    old: str
    new: str


@dataclass
class LessonSlot:
    """Kurzbeschreibung einer Stunde für hinzugefügte/entfallene Einträge."""

    lesson_id: str
    day_of_week: int
    time: str
    subject: str

    @classmethod
    def of(cls, lesson: Lesson) -> "LessonSlot":
        return cls(lesson.id, lesson.day_of_week, lesson.time_label, lesson.subject.name)


@dataclass
class WeekDiff:
    """Vollständiger Diff zwischen Wochenplan und stabilem Plan."""

    changes: list[LessonChange] = field(default_factory=list)
    added: list[LessonSlot] = field(default_factory=list)
    removed: list[LessonSlot] = field(default_factory=list)

    def is_empty(self) -> bool:
        """Gibt True zurück wenn kein Unterschied gefunden wurde."""
        return not self.changes and not self.added and not self.removed

    def changes_for(self, lesson_id: str) -> list[LessonChange]:
        return [c for c in self.changes if c.lesson_id == lesson_id]

    def to_dict(self) -> dict:
        """Serialisiert den Diff als Dictionary (für JSON-Ausgabe)."""
        return {
            "changes": [
                {
                    "lesson_id": c.lesson_id,
                    "day_of_week": c.day_of_week,
                    "field": c.field,
                    "old": c.old,
                    "new": c.new,
                }
                for c in self.changes
            ],
            "added": [vars(s).copy() for s in self.added],
            "removed": [vars(s).copy() for s in self.removed],
        }

    def to_json(self, indent: int = 2) -> str:
        """Gibt den Diff als JSON-String zurück."""
        return json.dumps(self.to_dict(), indent=indent, ensure_ascii=False)


def _flatten(timetable: dict[int, list[Lesson]]) -> list[Lesson]:
    return [lesson for day in sorted(timetable) for lesson in timetable[day]]


def diff_week_against_stable(week: dict[int, list[Lesson]],
                             stable: dict[int, list[Lesson]]) -> WeekDiff:
    """Vergleicht einen Wochenplan mit dem stabilen Plan der Klasse.

    Vergleicht:
    - geänderte Wochenstunden (Fach, Raum, Beginn, Ende, Lehrkraft)
    - Wochenstunden ohne Vorlage (hinzugefügt)
    - stabile Stunden ohne Wochenkopie (entfallen)

    Besteht der Wochenplan nur aus stabilen Stunden (keine Kopie angelegt),
    ist der Diff leer.

    Args:
        week: Wochenplan, z.B. aus ScheduleService.week_timetable().
        stable: Stabiler Plan, z.B. aus ScheduleService.stable_timetable().

    Returns:
        WeekDiff mit allen gefundenen Unterschieden.
    """
    diff = WeekDiff()
    week_lessons = [l for l in _flatten(week) if not l.is_stable]
    if not week_lessons:
        return diff

    # ── Geänderte & hinzugefügte Stunden ─────────────────────────────────────
    referenced: set[str] = set()
    for lesson in week_lessons:
        if lesson.stable_lesson_id is None:
            diff.added.append(LessonSlot.of(lesson))
            continue
        referenced.add(lesson.stable_lesson_id)
        for name, (old, new) in lesson.changes_from_stable().items():
            diff.changes.append(LessonChange(
                lesson_id=lesson.id,
                day_of_week=lesson.day_of_week,
                field=name,
                old=old,
                new=new,
            ))

    # ── Entfallene Stunden ───────────────────────────────────────────────────
    for lesson in _flatten(stable):
        if lesson.id not in referenced:
            diff.removed.append(LessonSlot.of(lesson))

    return diff
