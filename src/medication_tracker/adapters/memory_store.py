"""In-memory store for tests and throwaway sessions."""

import copy
import threading
from collections.abc import Iterator, Mapping
from contextlib import contextmanager

from medication_tracker.domain.errors import StoreError
from medication_tracker.services.store import Row, Store


class InMemoryStore(Store):
    """Dictionary-backed store; ``atomic()`` restores a snapshot on failure."""

    def __init__(self) -> None:
        self._tables: dict[str, dict[int, Row]] = {}
        self._next_ids: dict[str, int] = {}
        self._lock = threading.RLock()
        self._closed = False

    def upsert(self, table: str, row: Row) -> int:
        with self._lock:
            rows = self._table(table)
            payload = dict(row)
            row_id = int(payload.get("id") or 0)
            if row_id <= 0:
                row_id = self._next_ids.get(table, 1)
            payload["id"] = row_id
            rows[row_id] = payload
            self._next_ids[table] = max(self._next_ids.get(table, 1), row_id + 1)
            return row_id

    def get_by_id(self, table: str, row_id: int) -> Row | None:
        with self._lock:
            row = self._table(table).get(row_id)
            return dict(row) if row is not None else None

    def query_all(  # noqa: PLR0913
        self,
        table: str,
        filters: Mapping[str, object] | None = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[Row]:
        with self._lock:
            rows = [
                dict(row)
                for row in self._table(table).values()
                if _matches(row, filters)
            ]
        if order_by:
            rows.sort(key=lambda row: (row.get(order_by), row["id"]), reverse=descending)
        if limit is not None:
            rows = rows[:limit]
        return rows

    def delete_by_id(self, table: str, row_id: int) -> bool:
        with self._lock:
            return self._table(table).pop(row_id, None) is not None

    def delete_where(self, table: str, filters: Mapping[str, object]) -> int:
        with self._lock:
            rows = self._table(table)
            doomed = [row_id for row_id, row in rows.items() if _matches(row, filters)]
            for row_id in doomed:
                del rows[row_id]
            return len(doomed)

    def count(self, table: str, filters: Mapping[str, object] | None = None) -> int:
        with self._lock:
            return sum(1 for row in self._table(table).values() if _matches(row, filters))

    @contextmanager
    def atomic(self) -> Iterator[None]:
        with self._lock:
            tables = copy.deepcopy(self._tables)
            next_ids = dict(self._next_ids)
            try:
                yield
            except BaseException:
                self._tables = tables
                self._next_ids = next_ids
                raise

    def is_connected(self) -> bool:
        return not self._closed

    def close(self) -> None:
        self._closed = True

    def _table(self, table: str) -> dict[int, Row]:
        if self._closed:
            raise StoreError("store is closed")
        return self._tables.setdefault(table, {})


def _matches(row: Row, filters: Mapping[str, object] | None) -> bool:
    if not filters:
        return True
    return all(row.get(column) == value for column, value in filters.items())
