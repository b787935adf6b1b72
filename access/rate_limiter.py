"""Begrenzung von Anmeldeversuchen pro Schlüssel (z.B. E-Mail-Adresse).

Gleitendes Zeitfenster: Versuche älter als window verfallen. Wer
max_attempts innerhalb des Fensters erreicht, wird beim nächsten
check() für lockout gesperrt.
"""

from collections import deque
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RateLimiter:
    def __init__(self, max_attempts: int = 5,
                 window: timedelta = timedelta(minutes=15),
                 lockout: timedelta = timedelta(minutes=30),
                 clock: Callable[[], datetime] = _utcnow) -> None:
        self.max_attempts = max_attempts
        self.window = window
        self.lockout = lockout
        self._clock = clock
        self._attempts: dict[str, deque[datetime]] = {}
        self._lockouts: dict[str, datetime] = {}

    @staticmethod
    def _key(key: str) -> str:
        return key.strip().lower()

    def _cleanup(self, key: str) -> None:
        attempts = self._attempts.get(key)
        if attempts is None:
            return
        cutoff = self._clock() - self.window
        while attempts and attempts[0] < cutoff:
            attempts.popleft()
        if not attempts:
            del self._attempts[key]

    def check(self, key: str) -> Optional[timedelta]:
        """Verbleibende Sperrzeit, oder None wenn ein Versuch erlaubt ist."""
        key = self._key(key)
        self._cleanup(key)

        lockout_end = self._lockouts.get(key)
        if lockout_end is not None:
            remaining = lockout_end - self._clock()
            if remaining <= timedelta(0):
                del self._lockouts[key]
                self._attempts.pop(key, None)
                return None
            return remaining

        if len(self._attempts.get(key, ())) >= self.max_attempts:
            self._lockouts[key] = self._clock() + self.lockout
            return self.lockout
        return None

    def record_attempt(self, key: str) -> None:
        self._attempts.setdefault(self._key(key), deque()).append(self._clock())

    def clear(self, key: str) -> None:
        key = self._key(key)
        self._attempts.pop(key, None)
        self._lockouts.pop(key, None)

    def remaining_attempts(self, key: str) -> int:
        key = self._key(key)
        self._cleanup(key)
        used = len(self._attempts.get(key, ()))
        return max(0, min(self.max_attempts, self.max_attempts - used))
