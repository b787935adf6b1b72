"""Demo-Daten für Classio.

Erzeugt eine vollständige Schule in einem TableStore: Leitung, Lehrkräfte,
Klassen mit Fächern und stabilem Stundenplan, Schüler mit Eltern, Noten,
die Anwesenheit der Vorwoche und offene Hausaufgaben. Mit gleichem seed
entsteht derselbe Datenbestand (bis auf IDs und Zeitstempel).

Absichtliche Besonderheiten:
  1. Ein Schüler je Klasse ohne Eltern-Verknüpfung, für ihn liegt eine
     offene Eltern-Einladung vor
  2. Einzelne Fehlzeiten und Verspätungen in der Vorwoche
  3. Eine Wochenkopie für die aktuelle Woche der ersten Klasse mit
     Raumänderung
"""

import random
import unicodedata
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional

from config.schema import ClassioConfig
from data.dtos import weekday_to_db
from data.json_parsing import format_time
from data.store import TableStore, now_iso
from models.attendance import AttendanceStatus
from models.roles import UserRole
from models.subject import color_for_id

# ─── Namens-Listen ────────────────────────────────────────────────────────────

_FIRST_NAMES_M = [
    "Andreas", "Bernd", "Christian", "Dieter", "Franz", "Hans", "Jürgen",
    "Klaus", "Ludwig", "Markus", "Michael", "Norbert", "Peter", "Stefan",
    "Thomas", "Tobias", "Ulrich", "Werner", "Yusuf", "Martin", "Robert",
]

_FIRST_NAMES_F = [
    "Anna", "Birgit", "Christine", "Eva", "Gabi", "Iris", "Kathrin",
    "Karin", "Lena", "Maria", "Olga", "Renate", "Sandra", "Tanja",
    "Ulrike", "Vera", "Xenia", "Zoe", "Monika", "Sabine", "Heike",
]

_LAST_NAMES = [
    "Müller", "Schmidt", "Schneider", "Fischer", "Weber", "Meyer",
    "Wagner", "Becker", "Schulz", "Hoffmann", "Schäfer", "Koch",
    "Bauer", "Richter", "Klein", "Wolf", "Schröder", "Neumann",
    "Schwarz", "Zimmermann", "Braun", "Krüger", "Hofmann", "Hartmann",
    "Lange", "Schmitt", "Werner", "Schmitz", "Krause", "Meier",
]

# ─── Fächer (Name, Wochenstunden) ─────────────────────────────────────────────

_DEMO_SUBJECTS: list[tuple[str, int]] = [
    ("Mathematik", 4),
    ("Deutsch", 4),
    ("Englisch", 3),
    ("Biologie", 2),
    ("Geschichte", 2),
    ("Physik", 2),
    ("Sport", 2),
    ("Kunst", 1),
    ("Musik", 1),
]

# Beginn der Stunden 1..6
_SLOT_STARTS = [time(8, 0), time(8, 50), time(9, 55), time(10, 45), time(11, 50), time(12, 40)]

_GRADE_TYPES = ["Klassenarbeit", "Test", "Hausaufgabe", "Mündlich"]

DEMO_DOMAIN = "demo-schule.de"


def _ascii(text: str) -> str:
    text = text.replace("ä", "ae").replace("ö", "oe").replace("ü", "ue").replace("ß", "ss")
    text = text.replace("Ä", "Ae").replace("Ö", "Oe").replace("Ü", "Ue")
    return unicodedata.normalize("NFKD", text).encode("ascii", "ignore").decode()


@dataclass
class DemoSummary:
    """IDs des erzeugten Datenbestands."""

    school_id: str
    superadmin_id: str
    bigadmin_id: str
    admin_id: str
    teacher_ids: list[str] = field(default_factory=list)
    class_ids: list[str] = field(default_factory=list)
    subject_ids: list[str] = field(default_factory=list)
    student_ids: list[str] = field(default_factory=list)
    parent_ids: list[str] = field(default_factory=list)
    lesson_count: int = 0
    grade_count: int = 0
    attendance_count: int = 0
    assignment_count: int = 0


class DemoDataGenerator:
    """Schreibt einen Demo-Datenbestand in einen TableStore."""

    def __init__(self, config: Optional[ClassioConfig] = None, seed: Optional[int] = None,
                 num_classes: int = 3, students_per_class: int = 8, num_teachers: int = 6,
                 today: Optional[date] = None) -> None:
        self.config = config or ClassioConfig()
        self.rng = random.Random(seed)
        self.num_classes = num_classes
        self.students_per_class = students_per_class
        self.num_teachers = num_teachers
        self.today = today or date.today()
        self._used_emails: set[str] = set()

    # ─── Personen ─────────────────────────────────────────────────────────────

    def _name(self) -> tuple[str, str]:
        first_names = _FIRST_NAMES_F if self.rng.random() < 0.5 else _FIRST_NAMES_M
        return self.rng.choice(first_names), self.rng.choice(_LAST_NAMES)

    def _email(self, first: str, last: str) -> str:
        base = f"{_ascii(first)}.{_ascii(last)}".lower()
        candidate, n = base, 1
        while candidate in self._used_emails:
            n += 1
            candidate = f"{base}{n}"
        self._used_emails.add(candidate)
        return f"{candidate}@{DEMO_DOMAIN}"

    def _profile(self, store: TableStore, role: UserRole, school_id: Optional[str],
                 first: Optional[str] = None, last: Optional[str] = None) -> dict:
        if first is None or last is None:
            first, last = self._name()
        return store.insert("profiles", {
            "email": self._email(first, last),
            "role": role,
            "first_name": first,
            "last_name": last,
            "school_id": school_id,
            "created_at": now_iso(),
        })

    # ─── Stundenplan ──────────────────────────────────────────────────────────

    def _stable_timetable(self, store: TableStore, subjects: list[tuple[dict, int]],
                          room: str) -> list[dict]:
        """Verteilt die Wochenstunden zufällig auf Tage × Stunden."""
        school_days = self.config.schedule.school_days
        slots = [(day, i) for day in range(1, school_days + 1) for i in range(len(_SLOT_STARTS))]
        hours = [row for row, count in subjects for _ in range(count)]
        if len(hours) > len(slots):
            raise ValueError(f"Zu viele Wochenstunden ({len(hours)}) für {len(slots)} Slots")
        chosen = sorted(self.rng.sample(slots, len(hours)))
        self.rng.shuffle(hours)

        duration = timedelta(minutes=self.config.schedule.default_lesson_minutes)
        lessons = []
        for (day, slot), subject in zip(chosen, hours):
            start = _SLOT_STARTS[slot]
            end = (datetime.combine(self.today, start) + duration).time()
            lessons.append(store.insert("lessons", {
                "subject_id": subject["id"],
                "day_of_week": weekday_to_db(day),
                "start_time": format_time(start),
                "end_time": format_time(end),
                "room": "Turnhalle" if subject["name"] == "Sport" else room,
                "is_stable": True,
                "modified_from_stable": False,
            }))
        return lessons

    def _week_copy(self, store: TableStore, stable_lessons: list[dict], week: date) -> None:
        """Wochenkopie mit geändertem Raum für die erste Stunde."""
        for i, stable in enumerate(stable_lessons):
            store.insert("lessons", {
                "subject_id": stable["subject_id"],
                "day_of_week": stable["day_of_week"],
                "start_time": stable["start_time"],
                "end_time": stable["end_time"],
                "room": "Aula" if i == 0 else stable["room"],
                "is_stable": False,
                "stable_lesson_id": stable["id"],
                "modified_from_stable": i == 0,
                "week_start_date": week,
            })

    # ─── Noten & Anwesenheit ──────────────────────────────────────────────────

    def _grades(self, store: TableStore, student_id: str,
                subjects: list[tuple[dict, int]]) -> int:
        count = 0
        for subject, _ in subjects:
            for _ in range(self.rng.randint(0, 3)):
                days_ago = self.rng.randint(1, 60)
                created = datetime.now(timezone.utc) - timedelta(days=days_ago)
                store.insert("grades", {
                    "student_id": student_id,
                    "subject_id": subject["id"],
                    "teacher_id": subject["teacher_id"],
                    "score": float(self.rng.randint(45, 100)),
                    "weight": self.rng.choice([1.0, 1.0, 2.0]),
                    "grade_type": self.rng.choice(_GRADE_TYPES),
                    "created_at": created.isoformat(),
                })
                count += 1
        return count

    def _attendance(self, store: TableStore, student_id: str, lessons: list[dict],
                    subjects_by_id: dict[str, dict], last_week: date) -> int:
        statuses = [AttendanceStatus.PRESENT] * 18 + [AttendanceStatus.ABSENT,
                                                      AttendanceStatus.LATE]
        for lesson in lessons:
            db_day = lesson["day_of_week"]
            day = last_week + timedelta(days=(7 if db_day == 0 else db_day) - 1)
            subject = subjects_by_id[lesson["subject_id"]]
            store.insert("attendance", {
                "lesson_id": lesson["id"],
                "student_id": student_id,
                "date": day,
                "status": self.rng.choice(statuses),
                "subject_id": subject["id"],
                "recorded_by": subject["teacher_id"],
                "recorded_at": now_iso(),
            })
        return len(lessons)

    def _assignments(self, store: TableStore, subjects: list[tuple[dict, int]]) -> int:
        """Je eine Hausaufgabe für die ersten beiden Fächer, fällig in 2 bzw. 5 Tagen."""
        due_times = [datetime.combine(self.today + timedelta(days=d), time(8, 0),
                                      tzinfo=timezone.utc) for d in (2, 5)]
        for (subject, _), due in zip(subjects, due_times):
            store.insert("assignments", {
                "subject_id": subject["id"],
                "title": f"{subject['name']}: Übungsblatt",
                "description": "Aufgaben aus dem Unterricht wiederholen",
                "due_date": due,
                "max_score": 100,
                "created_by": subject["teacher_id"],
                "created_at": now_iso(),
            })
        return min(len(subjects), len(due_times))

    # ─── Gesamt ───────────────────────────────────────────────────────────────

    def generate(self, store: TableStore) -> DemoSummary:
        """Schreibt den Datenbestand in store und gibt die IDs zurück."""
        school = store.insert("schools", {
            "name": "Demo-Gymnasium",
            "subscription_status": "active",
            "created_at": now_iso(),
        })
        school_id = school["id"]

        superadmin = self._profile(store, UserRole.SUPERADMIN, None, "System", "Admin")
        bigadmin = self._profile(store, UserRole.BIGADMIN, school_id)
        admin = self._profile(store, UserRole.ADMIN, school_id)
        summary = DemoSummary(school_id=school_id, superadmin_id=superadmin["id"],
                              bigadmin_id=bigadmin["id"], admin_id=admin["id"])

        teachers = [self._profile(store, UserRole.TEACHER, school_id)
                    for _ in range(self.num_teachers)]
        summary.teacher_ids = [t["id"] for t in teachers]

        this_week = self.today - timedelta(days=self.today.weekday())
        last_week = this_week - timedelta(days=7)

        for c in range(self.num_classes):
            grade_level = 5 + c // 2
            klass = store.insert("classes", {
                "school_id": school_id,
                "name": f"{grade_level}{'abc'[c % 2]}",
                "grade_level": str(grade_level),
                "academic_year": f"{self.today.year}/{self.today.year + 1}",
                "head_teacher_id": teachers[c % len(teachers)]["id"],
            })
            summary.class_ids.append(klass["id"])

            subjects: list[tuple[dict, int]] = []
            for name, hours in _DEMO_SUBJECTS:
                subject_id = str(uuid.UUID(int=self.rng.getrandbits(128), version=4))
                row = store.insert("subjects", {
                    "id": subject_id,
                    "name": name,
                    "class_id": klass["id"],
                    "teacher_id": self.rng.choice(teachers)["id"],
                    "color": color_for_id(subject_id),
                })
                subjects.append((row, hours))
                summary.subject_ids.append(row["id"])
            subjects_by_id = {row["id"]: row for row, _ in subjects}
            summary.assignment_count += self._assignments(store, subjects)

            lessons = self._stable_timetable(store, subjects, room=f"R{101 + c}")
            summary.lesson_count += len(lessons)
            if c == 0:
                self._week_copy(store, lessons, this_week)
                summary.lesson_count += len(lessons)

            for s in range(self.students_per_class):
                student = self._profile(store, UserRole.STUDENT, school_id)
                summary.student_ids.append(student["id"])
                store.insert("class_students", {
                    "class_id": klass["id"],
                    "student_id": student["id"],
                    "enrolled_at": now_iso(),
                })
                summary.grade_count += self._grades(store, student["id"], subjects)
                summary.attendance_count += self._attendance(
                    store, student["id"], lessons, subjects_by_id, last_week)

                if s == 0:
                    # Offene Eltern-Einladung statt verknüpftem Elternteil
                    store.insert("parent_invites", {
                        "code": f"{self.config.invites.parent_prefix}DEMO{c:02d}"
                                f"{self.rng.randint(10**9, 10**10 - 1)}",
                        "student_id": student["id"],
                        "school_id": school_id,
                        "created_by": admin["id"],
                        "times_used": 0,
                        "usage_limit": 1,
                    })
                    continue
                parent = self._profile(store, UserRole.PARENT, school_id,
                                       self._name()[0], student["last_name"])
                summary.parent_ids.append(parent["id"])
                store.insert("parent_student", {
                    "parent_id": parent["id"],
                    "student_id": student["id"],
                })

        return summary

    # ─── Ausgabe ──────────────────────────────────────────────────────────────

    def print_summary(self, summary: DemoSummary) -> None:
        """Gibt eine Rich-Tabelle mit Übersicht der erzeugten Daten aus."""
        from rich.console import Console
        from rich.table import Table
        from rich import box

        console = Console()
        table = Table(title="Erzeugte Demo-Daten", box=box.ROUNDED)
        table.add_column("Kategorie", style="bold cyan")
        table.add_column("Anzahl", justify="right")
        table.add_column("Details")

        table.add_row("Schule", "1", summary.school_id)
        table.add_row("Leitung", "3", "superadmin, bigadmin, admin")
        table.add_row("Lehrkräfte", str(len(summary.teacher_ids)), "")
        table.add_row("Klassen", str(len(summary.class_ids)), "")
        table.add_row("Fächer", str(len(summary.subject_ids)), "je Klasse")
        table.add_row("Stunden", str(summary.lesson_count), "stabil + Wochenkopie")
        table.add_row("Schüler", str(len(summary.student_ids)), "")
        table.add_row("Eltern", str(len(summary.parent_ids)),
                      f"{len(summary.class_ids)} offene Einladungen")
        table.add_row("Noten", str(summary.grade_count), "")
        table.add_row("Anwesenheit", str(summary.attendance_count), "Vorwoche")
        table.add_row("Hausaufgaben", str(summary.assignment_count), "je Klasse zwei")

        console.print(table)