"""Tolerante Umwandlung von JSON-Zeilen in Python-Werte.

Alle Funktionen geben bei fehlenden oder ungültigen Werten None bzw. den
Default zurück und protokollieren eine Warnung mit dem Feldnamen. Die
*_required-Varianten werfen stattdessen ValueError.
"""

import logging
import math
from datetime import date, datetime, time, timezone
from enum import Enum
from typing import Any, Optional, TypeVar

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=Enum)


def _field(name: Optional[str]) -> str:
    return name or "unbekannt"


# ─── Text ───

def parse_string_nullable(value: Any, field: Optional[str] = None) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, str):
        return value or None
    if isinstance(value, (int, float, bool)):
        return str(value)
    logger.warning(f"Unerwarteter Typ für Textfeld {_field(field)}: "
                   f"{type(value).__name__} ({value!r})")
    return None


def parse_string(value: Any, field: Optional[str] = None, default: str = "") -> str:
    parsed = parse_string_nullable(value, field)
    return default if parsed is None else parsed


def parse_string_required(value: Any, field: str) -> str:
    parsed = parse_string_nullable(value, field)
    if parsed is None:
        raise ValueError(f"Pflichtfeld '{field}' fehlt oder ist ungültig: {value!r}")
    return parsed


# ─── Zahlen ───

def parse_double_nullable(value: Any, field: Optional[str] = None) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        if not value.strip():
            return None
        try:
            return float(value)
        except ValueError:
            logger.warning(f"Kommazahl für Feld {_field(field)} nicht lesbar: {value!r}")
            return None
    logger.warning(f"Unerwarteter Typ für Zahlenfeld {_field(field)}: "
                   f"{type(value).__name__} ({value!r})")
    return None


def parse_double(value: Any, field: Optional[str] = None, default: float = 0.0) -> float:
    parsed = parse_double_nullable(value, field)
    return default if parsed is None else parsed


def parse_int_nullable(value: Any, field: Optional[str] = None) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if not math.isfinite(value):
            logger.warning(f"Ganzzahl für Feld {_field(field)} nicht endlich: {value!r}")
            return None
        return int(value)
    if isinstance(value, str):
        if not value.strip():
            return None
        try:
            return int(value)
        except ValueError:
            try:
                return int(float(value))
            except (ValueError, OverflowError):
                logger.warning(f"Ganzzahl für Feld {_field(field)} nicht lesbar: {value!r}")
                return None
    logger.warning(f"Unerwarteter Typ für Ganzzahlfeld {_field(field)}: "
                   f"{type(value).__name__} ({value!r})")
    return None


def parse_int(value: Any, field: Optional[str] = None, default: int = 0) -> int:
    parsed = parse_int_nullable(value, field)
    return default if parsed is None else parsed


def parse_bool(value: Any, field: Optional[str] = None, default: bool = False) -> bool:
    """Akzeptiert bool, 0/1 und "true"/"false"/"yes"/"no"/"1"/"0"."""
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value != 0
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("true", "yes", "1"):
            return True
        if lowered in ("false", "no", "0"):
            return False
    logger.warning(f"Wahrheitswert für Feld {_field(field)} nicht lesbar: {value!r}")
    return default


# ─── Datum & Uhrzeit ───

def parse_datetime(value: Any, field: Optional[str] = None) -> Optional[datetime]:
    """datetime, ISO-8601-String (auch mit "Z") oder Epoch-Millisekunden."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, bool):
        logger.warning(f"Unerwarteter Typ für Zeitfeld {_field(field)}: bool")
        return None
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError) as e:
            logger.warning(f"Zeitstempel für Feld {_field(field)} nicht lesbar: {value!r} ({e})")
            return None
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            return datetime.fromisoformat(text)
        except ValueError:
            if text.isdigit():
                return parse_datetime(int(text), field)
            logger.warning(f"Datum/Zeit für Feld {_field(field)} nicht lesbar: {value!r}")
            return None
    logger.warning(f"Unerwarteter Typ für Zeitfeld {_field(field)}: "
                   f"{type(value).__name__} ({value!r})")
    return None


def parse_datetime_required(value: Any, field: str) -> datetime:
    parsed = parse_datetime(value, field)
    if parsed is None:
        raise ValueError(f"Pflichtfeld '{field}' (Datum/Zeit) fehlt oder ist ungültig: {value!r}")
    return parsed


def parse_date(value: Any, field: Optional[str] = None) -> Optional[date]:
    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    parsed = parse_datetime(value, field)
    return parsed.date() if parsed else None


def parse_time(value: Any, field: Optional[str] = None) -> Optional[time]:
    """Uhrzeit "HH:MM" oder "HH:MM:SS" (Stunde 0–23, Minute 0–59)."""
    if value is None:
        return None
    if isinstance(value, time):
        return value
    if isinstance(value, datetime):
        return value.time()
    if not isinstance(value, str):
        logger.warning(f"Unerwarteter Typ für Uhrzeit {_field(field)}: "
                       f"{type(value).__name__} ({value!r})")
        return None
    parts = value.strip().split(":")
    if len(parts) not in (2, 3):
        logger.warning(f"Uhrzeit für Feld {_field(field)} nicht im Format HH:MM: {value!r}")
        return None
    try:
        hour, minute = int(parts[0]), int(parts[1])
        second = int(parts[2].split(".")[0]) if len(parts) == 3 else 0
    except ValueError:
        logger.warning(f"Uhrzeit für Feld {_field(field)} nicht lesbar: {value!r}")
        return None
    if not (0 <= hour <= 23 and 0 <= minute <= 59 and 0 <= second <= 59):
        logger.warning(f"Uhrzeit für Feld {_field(field)} außerhalb des Bereichs: {value!r}")
        return None
    return time(hour, minute, second)


def parse_time_string(value: Any, on_date: date,
                      field: Optional[str] = None) -> Optional[datetime]:
    """Kombiniert eine Uhrzeit-Angabe mit einem Datum."""
    parsed = parse_time(value, field)
    if parsed is None:
        return None
    return datetime.combine(on_date, parsed)


def format_time(value: time) -> str:
    """Uhrzeit im Speicherformat "HH:MM:SS"."""
    return value.strftime("%H:%M:%S")


# ─── Strukturen ───

def parse_enum(value: Any, enum_cls: type[E], field: Optional[str] = None,
               default: Optional[E] = None) -> Optional[E]:
    """Sucht den Enum-Wert ohne Beachtung der Groß-/Kleinschreibung."""
    if value is None:
        return default
    if isinstance(value, enum_cls):
        return value
    normalized = str(value).strip().lower()
    for member in enum_cls:
        if str(member.value).lower() == normalized or member.name.lower() == normalized:
            return member
    logger.warning(f"Unbekannter Wert für {enum_cls.__name__} in Feld {_field(field)}: {value!r}")
    return default


def parse_map(value: Any, field: Optional[str] = None) -> Optional[dict]:
    """dict direkt; bei einer Liste (1:n-Join) das erste Element."""
    if value is None:
        return None
    if isinstance(value, dict):
        return value
    if isinstance(value, list):
        first = value[0] if value else None
        return first if isinstance(first, dict) else None
    logger.warning(f"Unerwarteter Typ für Objektfeld {_field(field)}: {type(value).__name__}")
    return None


def parse_list(value: Any, field: Optional[str] = None) -> list:
    if value is None:
        return []
    if isinstance(value, list):
        return value
    logger.warning(f"Unerwarteter Typ für Listenfeld {_field(field)}: {type(value).__name__}")
    return []


def parse_profile_name(profile: Optional[dict], field: Optional[str] = None) -> Optional[str]:
    """Anzeigename "Vorname Nachname" aus einem Profil; None wenn beides fehlt."""
    if not profile:
        return None
    first = parse_string_nullable(profile.get("first_name"), f"{_field(field)}.first_name")
    last = parse_string_nullable(profile.get("last_name"), f"{_field(field)}.last_name")
    name = " ".join(p for p in (first, last) if p).strip()
    return name or None
