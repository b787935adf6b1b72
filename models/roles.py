"""Benutzerrollen und ihre Rangordnung."""

from enum import Enum
from typing import Optional


class UserRole(str, Enum):
    """Rollen in absteigender Hierarchie.

    superadmin  Plattform-Betreiber, sieht alle Schulen
    bigadmin    Schulleitung
    admin       stellvertretende Schulleitung
    teacher     Lehrkraft
    student     Schüler/in
    parent      Elternteil (gleicher Rang wie student)
    """

    SUPERADMIN = "superadmin"
    BIGADMIN = "bigadmin"
    ADMIN = "admin"
    TEACHER = "teacher"
    STUDENT = "student"
    PARENT = "parent"

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["UserRole"]:
        """Wandelt einen String (Groß-/Kleinschreibung egal) in eine Rolle um.

        Unbekannte oder leere Werte ergeben None.
        """
        if value is None:
            return None
        if isinstance(value, UserRole):
            return value
        normalized = str(value).strip().lower()
        for role in cls:
            if role.value == normalized:
                return role
        return None

    @property
    def rank(self) -> int:
        return ROLE_RANKS[self]

    @property
    def display_name(self) -> str:
        return ROLE_DISPLAY_NAMES[self]


ROLE_RANKS: dict[UserRole, int] = {
    UserRole.SUPERADMIN: 5,
    UserRole.BIGADMIN: 4,
    UserRole.ADMIN: 3,
    UserRole.TEACHER: 2,
    UserRole.STUDENT: 1,
    UserRole.PARENT: 1,
}

ROLE_DISPLAY_NAMES: dict[UserRole, str] = {
    UserRole.SUPERADMIN: "Superadmin",
    UserRole.BIGADMIN: "Schulleitung",
    UserRole.ADMIN: "Stellv. Schulleitung",
    UserRole.TEACHER: "Lehrkraft",
    UserRole.STUDENT: "Schüler/in",
    UserRole.PARENT: "Elternteil",
}
