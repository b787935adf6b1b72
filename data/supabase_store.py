"""Tabellen-Speicher über den Supabase-Client (Postgres + PostgREST)."""

import logging
from pathlib import Path
from typing import Optional, Sequence

from postgrest.exceptions import APIError
from supabase import Client, create_client

from config.schema import BackendConfig, BackendKind
from data.store import Filter, InMemoryStore, Order, StoreError, TableStore, to_storable

logger = logging.getLogger(__name__)


def _apply_filters(query, filters: Sequence[Filter]):
    for f in filters:
        value = to_storable(f.value)
        if f.op == "in":
            query = query.in_(f.column, [to_storable(v) for v in f.value])
        elif f.op == "is":
            query = query.is_(f.column, "null") if value is None else query.eq(f.column, value)
        else:
            query = getattr(query, f.op)(f.column, value)
    return query


def _execute(query, action: str) -> list[dict]:
    try:
        response = query.execute()
    except APIError as e:
        logger.error(f"Supabase-Fehler bei {action}: {e.message} (code {e.code})")
        raise StoreError(e.message or str(e), code=e.code) from e
    return list(response.data or [])


class SupabaseStore(TableStore):
    """Setzt die TableStore-Aufrufe in Abfragen des supabase-Clients um."""

    def __init__(self, client: Client) -> None:
        self._client = client

    @classmethod
    def from_config(cls, config: BackendConfig) -> "SupabaseStore":
        return cls(create_client(config.supabase_url, config.supabase_key))

    @property
    def client(self) -> Client:
        return self._client

    def select(self, table: str, filters: Sequence[Filter] = (),
               order_by: Sequence[Order] = (), limit: Optional[int] = None) -> list[dict]:
        query = _apply_filters(self._client.table(table).select("*"), filters)
        for order in order_by:
            query = query.order(order.column, desc=order.desc)
        if limit is not None:
            query = query.limit(limit)
        return _execute(query, f"select {table}")

    def insert(self, table: str, row: dict) -> dict:
        payload = {k: to_storable(v) for k, v in row.items()}
        rows = _execute(self._client.table(table).insert(payload), f"insert {table}")
        if not rows:
            raise StoreError(f"Insert in {table} lieferte keine Zeile zurück")
        return rows[0]

    def update(self, table: str, values: dict, filters: Sequence[Filter]) -> list[dict]:
        payload = {k: to_storable(v) for k, v in values.items()}
        query = _apply_filters(self._client.table(table).update(payload), filters)
        return _execute(query, f"update {table}")

    def upsert(self, table: str, row: dict, on_conflict: Sequence[str]) -> dict:
        payload = {k: to_storable(v) for k, v in row.items()}
        query = self._client.table(table).upsert(payload, on_conflict=",".join(on_conflict))
        rows = _execute(query, f"upsert {table}")
        if not rows:
            raise StoreError(f"Upsert in {table} lieferte keine Zeile zurück")
        return rows[0]

    def delete(self, table: str, filters: Sequence[Filter]) -> list[dict]:
        query = _apply_filters(self._client.table(table).delete(), filters)
        return _execute(query, f"delete {table}")


def create_store(config: BackendConfig) -> TableStore:
    """Erzeugt den konfigurierten Speicher (json lädt eine vorhandene Datei)."""
    if config.kind == BackendKind.SUPABASE:
        logger.info(f"Verbinde mit Supabase: {config.supabase_url}")
        return SupabaseStore.from_config(config)
    store = InMemoryStore()
    if config.kind == BackendKind.JSON:
        path = Path(config.data_path)
        if path.exists():
            store.load_json(path)
    return store
