"""Supabase-backed store."""

import threading
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass, field

from supabase import Client

from medication_tracker.domain.errors import StoreError
from medication_tracker.services.store import Row, Store

# (table, row id, row before the change or None if the row was inserted)
_JournalEntry = tuple[str, int, Row | None]


@dataclass
class SupabaseStore(Store):
    """Supabase implementation of the row store.

    PostgREST has no client-side transactions, so ``atomic()`` keeps a
    journal of the rows it touched and writes the previous versions back
    if the unit fails.
    """

    client: Client
    _lock: threading.RLock = field(default_factory=threading.RLock, repr=False)
    _journals: list[list[_JournalEntry]] = field(default_factory=list, repr=False)
    _closed: bool = False

    def upsert(self, table: str, row: Row) -> int:
        """Insert or replace a row and return its id."""
        payload = dict(row)
        row_id = int(payload.pop("id", 0) or 0)
        with self._lock:
            self._ensure_open()
            if row_id > 0:
                previous = self.get_by_id(table, row_id) if self._journals else None
                payload["id"] = row_id
                response = self.client.table(table).upsert(payload).execute()
            else:
                previous = None
                response = self.client.table(table).insert(payload).execute()
            if not response.data:
                raise StoreError(f"Failed to write row to {table}")
            saved_id = int(response.data[0]["id"])
            self._journal(table, saved_id, previous)
            return saved_id

    def get_by_id(self, table: str, row_id: int) -> Row | None:
        """Return a row by id."""
        self._ensure_open()
        response = (
            self.client.table(table).select("*").eq("id", row_id).limit(1).execute()
        )
        if not response.data:
            return None
        return dict(response.data[0])

    def query_all(  # noqa: PLR0913
        self,
        table: str,
        filters: Mapping[str, object] | None = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[Row]:
        """Return rows matching equality filters."""
        self._ensure_open()
        query = self.client.table(table).select("*")
        for column, value in (filters or {}).items():
            query = query.eq(column, value)
        if order_by:
            query = query.order(order_by, desc=descending)
        if limit is not None:
            query = query.limit(limit)
        response = query.execute()
        return [dict(row) for row in response.data or []]

    def delete_by_id(self, table: str, row_id: int) -> bool:
        """Delete a row by id."""
        with self._lock:
            self._ensure_open()
            previous = self.get_by_id(table, row_id) if self._journals else None
            response = self.client.table(table).delete().eq("id", row_id).execute()
            deleted = bool(response.data)
            if deleted and previous is not None:
                self._journal(table, row_id, previous)
            return deleted

    def delete_where(self, table: str, filters: Mapping[str, object]) -> int:
        """Delete rows matching equality filters."""
        with self._lock:
            self._ensure_open()
            previous = self.query_all(table, filters) if self._journals else []
            query = self.client.table(table).delete()
            for column, value in filters.items():
                query = query.eq(column, value)
            response = query.execute()
            for row in previous:
                self._journal(table, int(row["id"]), row)
            return len(response.data or [])

    def count(self, table: str, filters: Mapping[str, object] | None = None) -> int:
        """Count rows matching equality filters."""
        self._ensure_open()
        query = self.client.table(table).select("id", count="exact")
        for column, value in (filters or {}).items():
            query = query.eq(column, value)
        response = query.execute()
        if response.count is not None:
            return int(response.count)
        return len(response.data or [])

    @contextmanager
    def atomic(self) -> Iterator[None]:
        """Group writes; on failure restore every touched row."""
        with self._lock:
            journal: list[_JournalEntry] = []
            self._journals.append(journal)
            try:
                yield
            except BaseException:
                self._journals.pop()
                self._rollback(journal)
                raise
            else:
                self._journals.pop()
                if self._journals:
                    self._journals[-1].extend(journal)

    def is_connected(self) -> bool:
        return not self._closed

    def close(self) -> None:
        self._closed = True

    def _journal(self, table: str, row_id: int, previous: Row | None) -> None:
        if self._journals:
            self._journals[-1].append((table, row_id, previous))

    def _rollback(self, journal: list[_JournalEntry]) -> None:
        for table, row_id, previous in reversed(journal):
            if previous is None:
                self.client.table(table).delete().eq("id", row_id).execute()
            else:
                self.client.table(table).upsert(previous).execute()

    def _ensure_open(self) -> None:
        if self._closed:
            raise StoreError("store is closed")
