"""Gemeinsame Fehlerklassen und Hilfen der Dienste.

Jeder Dienst übersetzt StoreError in seine eigene Fehlerklasse. Die Meldung
beginnt mit der fehlgeschlagenen Aktion, z.B. "Failed to fetch lessons: ...".
"""

import logging
from contextlib import contextmanager
from typing import Iterator

from data.store import StoreError

logger = logging.getLogger(__name__)


class ServiceError(Exception):
    """Basisklasse aller fachlichen Fehler."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def __str__(self) -> str:
        return f"{type(self).__name__}: {self.message}"


class AuthError(ServiceError):
    pass


class InviteError(ServiceError):
    pass


class ScheduleError(ServiceError):
    pass


class GradesError(ServiceError):
    pass


class AttendanceError(ServiceError):
    pass


class ChatError(ServiceError):
    pass


class AdminError(ServiceError):
    pass


class AssignmentError(ServiceError):
    pass


class TeacherError(ServiceError):
    pass


class ParentError(ServiceError):
    pass


class ProfileError(ServiceError):
    pass


@contextmanager
def store_errors(error_cls: type[ServiceError], action: str) -> Iterator[None]:
    """Übersetzt StoreError in error_cls mit "<action>: <meldung>"."""
    try:
        yield
    except StoreError as e:
        logger.error(f"{error_cls.__name__}: {action}: {e.message}")
        raise error_cls(f"{action}: {e.message}") from e
