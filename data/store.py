"""Tabellen-Speicher: gemeinsame Schnittstelle und In-Memory-/JSON-Umsetzung.

Die Dienste sprechen ausschließlich mit TableStore. InMemoryStore bildet das
Verhalten des Backends nach, soweit die Dienste darauf angewiesen sind:
automatische IDs und Zeitstempel, eindeutige Schlüssel (Fehlercode 23505)
und single() ohne Treffer (Fehlercode PGRST116).
"""

import copy
import json
import logging
import uuid
from dataclasses import dataclass
from datetime import date, datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Iterable, Optional, Sequence

from config.defaults import TABLES, UNIQUE_KEYS

logger = logging.getLogger(__name__)

UNIQUE_VIOLATION = "23505"
NO_ROWS = "PGRST116"


class StoreError(Exception):
    """Fehler des Tabellen-Speichers mit optionalem Postgres-Fehlercode."""

    def __init__(self, message: str, code: Optional[str] = None) -> None:
        self.message = message
        self.code = code
        super().__init__(message if code is None else f"{message} (code {code})")

    @property
    def is_unique_violation(self) -> bool:
        return self.code == UNIQUE_VIOLATION

    @property
    def is_not_found(self) -> bool:
        return self.code == NO_ROWS


# ─── Filter & Sortierung ───

_OPS = ("eq", "neq", "in", "lt", "lte", "gt", "gte", "is")


@dataclass(frozen=True)
class Filter:
    """Bedingung auf eine Spalte. op "is" prüft nur auf None."""

    column: str
    op: str
    value: Any = None

    def __post_init__(self) -> None:
        if self.op not in _OPS:
            raise ValueError(f"Unbekannter Filter-Operator: {self.op}")

    def matches(self, row: dict) -> bool:
        actual = row.get(self.column)
        expected = to_storable(self.value)
        if self.op == "is":
            return actual is None if expected is None else actual == expected
        if self.op == "eq":
            return actual == expected
        if self.op == "neq":
            return actual != expected
        if self.op == "in":
            return actual in [to_storable(v) for v in self.value]
        if actual is None or expected is None:
            return False
        if self.op == "lt":
            return actual < expected
        if self.op == "lte":
            return actual <= expected
        if self.op == "gt":
            return actual > expected
        return actual >= expected


def eq(column: str, value: Any) -> Filter:
    return Filter(column, "eq", value)


def neq(column: str, value: Any) -> Filter:
    return Filter(column, "neq", value)


def in_(column: str, values: Iterable[Any]) -> Filter:
    return Filter(column, "in", tuple(values))


def lt(column: str, value: Any) -> Filter:
    return Filter(column, "lt", value)


def lte(column: str, value: Any) -> Filter:
    return Filter(column, "lte", value)


def gt(column: str, value: Any) -> Filter:
    return Filter(column, "gt", value)


def gte(column: str, value: Any) -> Filter:
    return Filter(column, "gte", value)


def is_null(column: str) -> Filter:
    return Filter(column, "is", None)


@dataclass(frozen=True)
class Order:
    column: str
    desc: bool = False


def to_storable(value: Any) -> Any:
    """datetime/date → ISO-String (UTC), Enums → Wert, sonst unverändert."""
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc).isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    return value


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ─── Schnittstelle ───

class TableStore:
    """Gemeinsame Schnittstelle aller Speicher."""

    def select(self, table: str, filters: Sequence[Filter] = (),
               order_by: Sequence[Order] = (), limit: Optional[int] = None) -> list[dict]:
        raise NotImplementedError

    def insert(self, table: str, row: dict) -> dict:
        raise NotImplementedError

    def update(self, table: str, values: dict, filters: Sequence[Filter]) -> list[dict]:
        raise NotImplementedError

    def upsert(self, table: str, row: dict, on_conflict: Sequence[str]) -> dict:
        raise NotImplementedError

    def delete(self, table: str, filters: Sequence[Filter]) -> list[dict]:
        raise NotImplementedError

    # ─── Hilfen ───

    def select_single(self, table: str, filters: Sequence[Filter]) -> dict:
        """Genau eine Zeile, sonst StoreError mit Code PGRST116."""
        rows = self.select(table, filters, limit=2)
        if len(rows) != 1:
            raise StoreError(
                f"JSON object requested, multiple (or no) rows returned ({len(rows)})",
                code=NO_ROWS,
            )
        return rows[0]

    def select_maybe(self, table: str, filters: Sequence[Filter]) -> Optional[dict]:
        rows = self.select(table, filters, limit=1)
        return rows[0] if rows else None

    def count(self, table: str, filters: Sequence[Filter] = ()) -> int:
        return len(self.select(table, filters))


# ─── In-Memory ───

class InMemoryStore(TableStore):
    """Speicher im Arbeitsspeicher; optional als JSON-Datei persistierbar."""

    def __init__(self, unique_keys: Optional[dict[str, list[tuple[str, ...]]]] = None) -> None:
        self._tables: dict[str, list[dict]] = {name: [] for name in TABLES}
        self._unique_keys = UNIQUE_KEYS if unique_keys is None else unique_keys

    def _rows(self, table: str) -> list[dict]:
        if table not in self._tables:
            raise StoreError(f'relation "public.{table}" does not exist', code="42P01")
        return self._tables[table]

    def _check_unique(self, table: str, candidate: dict, ignore: Optional[dict] = None) -> None:
        for cols in self._unique_keys.get(table, []):
            if any(candidate.get(c) is None for c in cols):
                continue
            for row in self._tables[table]:
                if row is ignore:
                    continue
                if all(row.get(c) == candidate.get(c) for c in cols):
                    raise StoreError(
                        f'duplicate key value violates unique constraint '
                        f'"{table}_{"_".join(cols)}_key"',
                        code=UNIQUE_VIOLATION,
                    )

    def select(self, table: str, filters: Sequence[Filter] = (),
               order_by: Sequence[Order] = (), limit: Optional[int] = None) -> list[dict]:
        rows = [r for r in self._rows(table) if all(f.matches(r) for f in filters)]
        # Stabile Sortierung: letzte Sortierspalte zuerst anwenden
        for order in reversed(list(order_by)):
            present = [r for r in rows if r.get(order.column) is not None]
            missing = [r for r in rows if r.get(order.column) is None]
            present.sort(key=lambda r: r[order.column], reverse=order.desc)
            rows = present + missing
        if limit is not None:
            rows = rows[:limit]
        return [copy.deepcopy(r) for r in rows]

    def insert(self, table: str, row: dict) -> dict:
        rows = self._rows(table)
        stored = {k: to_storable(v) for k, v in row.items()}
        if table != "invite_tokens":
            stored.setdefault("id", str(uuid.uuid4()))
        stored.setdefault("created_at", now_iso())
        self._check_unique(table, stored)
        rows.append(stored)
        return copy.deepcopy(stored)

    def update(self, table: str, values: dict, filters: Sequence[Filter]) -> list[dict]:
        changed = []
        for row in self._rows(table):
            if not all(f.matches(row) for f in filters):
                continue
            candidate = {**row, **{k: to_storable(v) for k, v in values.items()}}
            self._check_unique(table, candidate, ignore=row)
            row.update(candidate)
            changed.append(copy.deepcopy(row))
        return changed

    def upsert(self, table: str, row: dict, on_conflict: Sequence[str]) -> dict:
        stored = {k: to_storable(v) for k, v in row.items()}
        for existing in self._rows(table):
            if all(existing.get(c) == stored.get(c) for c in on_conflict):
                self._check_unique(table, {**existing, **stored}, ignore=existing)
                existing.update(stored)
                return copy.deepcopy(existing)
        return self.insert(table, row)

    def delete(self, table: str, filters: Sequence[Filter]) -> list[dict]:
        rows = self._rows(table)
        removed = [r for r in rows if all(f.matches(r) for f in filters)]
        self._tables[table] = [r for r in rows if not all(f.matches(r) for f in filters)]
        return removed

    # ─── Persistenz ───

    def save_json(self, path: Path) -> None:
        """Speichert alle Tabellen als JSON-Datei."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(self._tables, f, indent=2, ensure_ascii=False)
        logger.info(f"Datenbestand gespeichert: {path}")

    def load_json(self, path: Path) -> None:
        """Lädt alle Tabellen aus einer JSON-Datei (überschreibt den Bestand)."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"JSON-Datei nicht gefunden: {path}")
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        self._tables = {name: [] for name in TABLES}
        for name, rows in data.items():
            self._tables[name] = list(rows)
        logger.info(f"Datenbestand geladen: {path} "
                    f"({sum(len(r) for r in self._tables.values())} Zeilen)")

    def __repr__(self) -> str:
        filled = {k: len(v) for k, v in self._tables.items() if v}
        return f"InMemoryStore({filled})"
