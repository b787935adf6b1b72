"""Routentabelle und rollenbasierte Weiterleitungen.

resolve_redirect() entscheidet für einen angefragten Pfad, ob und wohin
umgeleitet wird. None bedeutet: Pfad darf angezeigt werden.
"""

import re
from dataclasses import dataclass
from typing import Optional

from models.roles import UserRole
from models.user import AppUser


@dataclass(frozen=True)
class Route:
    name: str
    path: str                        # Muster, Parameter als ":name"
    legacy: bool = False

    @property
    def _regex(self) -> re.Pattern:
        pattern = re.sub(r":(\w+)", r"(?P<\1>[^/]+)", self.path)
        return re.compile(f"^{pattern}$")

    def match(self, location: str) -> Optional[dict[str, str]]:
        m = self._regex.match(location)
        return m.groupdict() if m else None

    def build(self, **params: str) -> str:
        path = self.path
        for key, value in params.items():
            path = path.replace(f":{key}", value)
        return path


HOME = "/"
SCHEDULE = "/schedule"
GRADES = "/grades"
PROFILE = "/profile"
SETTINGS = "/settings"
AUTH = "/auth"
SUPERADMIN = "/superadmin"
SCHOOL_ADMIN = "/school_admin"
TEACHER_DASHBOARD = "/teacher_dashboard"
SCHOOLS = "/schools"                 # veraltet
TEACHER = "/teacher"                 # veraltet

ROUTES: list[Route] = [
    Route("home", HOME),
    Route("schedule", SCHEDULE),
    Route("grades", GRADES),
    Route("profile", PROFILE),
    Route("settings", SETTINGS),
    Route("auth", AUTH),
    Route("subject", "/subject/:id"),
    Route("superadmin", SUPERADMIN),
    Route("school_admin", SCHOOL_ADMIN),
    Route("teacher_dashboard", TEACHER_DASHBOARD),
    Route("teacher_subject_detail", "/teacher_dashboard/subject/:id"),
    Route("schools", SCHOOLS, legacy=True),
    Route("teacher", TEACHER, legacy=True),
    Route("teacher-subject", "/teacher/subject/:id", legacy=True),
]

# Präfixe, die für Schüler gesperrt sind
_STUDENT_BLOCKED_PREFIXES = ("/admin", "/school", "/teacher", "/superadmin")


def find_route(location: str) -> Optional[Route]:
    """Erste Route, deren Muster auf den Pfad passt."""
    for route in ROUTES:
        if route.match(location) is not None:
            return route
    return None


def home_for(role: Optional[UserRole]) -> str:
    """Startseite nach der Anmeldung."""
    if role == UserRole.SUPERADMIN:
        return SUPERADMIN
    if role in (UserRole.BIGADMIN, UserRole.ADMIN):
        return SCHOOL_ADMIN
    if role == UserRole.TEACHER:
        return TEACHER_DASHBOARD
    return HOME


def resolve_redirect(location: str, user: Optional[AppUser]) -> Optional[str]:
    """Weiterleitungsziel für location, oder None wenn keine nötig ist."""
    if user is None:
        return None if location == AUTH else AUTH

    role = user.role
    if location == AUTH:
        return home_for(role)

    if location in (SUPERADMIN, SCHOOLS) and role != UserRole.SUPERADMIN:
        return HOME

    if location == SCHOOL_ADMIN and role not in (
            UserRole.ADMIN, UserRole.BIGADMIN, UserRole.SUPERADMIN):
        return HOME

    if location in (TEACHER_DASHBOARD, TEACHER) and role != UserRole.TEACHER:
        return HOME

    if role == UserRole.STUDENT and location.startswith(_STUDENT_BLOCKED_PREFIXES):
        return HOME

    return None
