"""Gemeinsamer Renderer für die Terminal-Anzeige des Stundenplans.

Wird von `timetable show` und `timetable diff` verwendet.
"""

from datetime import date, timedelta
from typing import TYPE_CHECKING, Optional

from rich.table import Table
from rich import box

if TYPE_CHECKING:
    from analysis.timetable_diff import WeekDiff
    from config.schema import ScheduleConfig
    from models.lesson import Lesson


def _cell(lesson: "Lesson", stable_view: bool) -> str:
    """Zelleninhalt: Fach, Lehrkraft, Raum; geänderte Stunden gelb."""
    lines = [lesson.subject.name]
    if lesson.subject.teacher_name:
        lines.append(lesson.subject.teacher_name)
    if lesson.room:
        lines.append(lesson.room)
    text = "\n".join(lines)
    if lesson.is_cancelled:
        return f"[strike]{text}[/strike]"
    if not stable_view and lesson.modified_from_stable:
        return f"[yellow]{text}[/yellow]"
    return text


def render_week_rows(timetable: dict[int, list["Lesson"]], days: int,
                     stable_view: bool = False) -> list[list[str]]:
    """Gibt Tabellenzeilen für einen Wochenplan zurück.

    Jede Zeile: [Zeit, Tag 1, …, Tag n]. Zeilen entstehen aus den
    vorkommenden Anfangszeiten, leere Zellen werden mit '—' gefüllt.
    """
    slots: dict[tuple[int, int], dict[int, "Lesson"]] = {}
    labels: dict[tuple[int, int], str] = {}
    for day in range(1, days + 1):
        for lesson in timetable.get(day, []):
            key = (lesson.start_time.hour, lesson.start_time.minute)
            slots.setdefault(key, {})[day] = lesson
            labels.setdefault(key, lesson.time_label)

    rows: list[list[str]] = []
    for key in sorted(slots):
        cells = [labels[key]]
        for day in range(1, days + 1):
            lesson = slots[key].get(day)
            cells.append("—" if lesson is None else _cell(lesson, stable_view))
        rows.append(cells)
    return rows


def build_week_table(timetable: dict[int, list["Lesson"]], config: "ScheduleConfig",
                     title: str, week: Optional[date] = None,
                     stable_view: bool = False) -> Table:
    """Rich-Tabelle für einen Wochenplan; mit week stehen Daten im Kopf."""
    table = Table(title=title, box=box.ROUNDED, show_lines=True)
    table.add_column("Zeit", style="bold", no_wrap=True)
    for i in range(config.school_days):
        header = config.day_names[i]
        if week is not None:
            header = f"{header} {(week + timedelta(days=i)).strftime('%d.%m.')}"
        table.add_column(header, min_width=12)

    for row in render_week_rows(timetable, config.school_days, stable_view):
        table.add_row(*row)
    return table


def build_diff_table(diff: "WeekDiff", config: "ScheduleConfig") -> Table:
    """Rich-Tabelle mit allen Abweichungen einer Woche vom stabilen Plan."""
    table = Table(title="Abweichungen vom stabilen Plan", box=box.ROUNDED)
    table.add_column("Tag", style="bold")
    table.add_column("Art")
    table.add_column("Feld / Stunde")
    table.add_column("Alt")
    table.add_column("Neu")

    for change in diff.changes:
        table.add_row(config.day_names[change.day_of_week - 1], "geändert",
                      change.field, change.old, change.new)
    for slot in diff.added:
        table.add_row(config.day_names[slot.day_of_week - 1], "[green]neu[/green]",
                      f"{slot.time} {slot.subject}", "", "")
    for slot in diff.removed:
        table.add_row(config.day_names[slot.day_of_week - 1], "[red]entfällt[/red]",
                      f"{slot.time} {slot.subject}", "", "")
    return table
