"""SQLite-backed store for single-device persistence."""

import sqlite3
import threading
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from pathlib import Path

from medication_tracker.domain.errors import StoreError
from medication_tracker.services.store import (
    HEALTH_DIARIES_TABLE,
    INTAKE_RECORDS_TABLE,
    MEDICATIONS_TABLE,
    Row,
    Store,
)

_SCHEMA = {
    MEDICATIONS_TABLE: """
        CREATE TABLE IF NOT EXISTS medications (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL,
            color TEXT NOT NULL,
            dosage_form TEXT NOT NULL,
            total_quantity INTEGER NOT NULL DEFAULT 0,
            remaining_quantity INTEGER NOT NULL DEFAULT 0,
            dosage_per_intake INTEGER NOT NULL DEFAULT 1,
            low_stock_threshold INTEGER NOT NULL DEFAULT 0,
            unit TEXT NOT NULL DEFAULT '',
            created_at INTEGER NOT NULL,
            updated_at INTEGER NOT NULL,
            photo_path TEXT
        );
    """,
    INTAKE_RECORDS_TABLE: """
        CREATE TABLE IF NOT EXISTS medication_intake_records (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            medication_name TEXT NOT NULL,
            intake_time INTEGER NOT NULL,
            dosage_taken INTEGER NOT NULL
        );
    """,
    HEALTH_DIARIES_TABLE: """
        CREATE TABLE IF NOT EXISTS health_diaries (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id INTEGER NOT NULL,
            content TEXT,
            created_at INTEGER NOT NULL,
            updated_at INTEGER NOT NULL
        );
    """,
}

_INDEXES = (
    "CREATE INDEX IF NOT EXISTS idx_medications_name ON medications(name);",
    "CREATE INDEX IF NOT EXISTS idx_intake_records_name_time "
    "ON medication_intake_records(medication_name, intake_time DESC);",
    "CREATE INDEX IF NOT EXISTS idx_health_diaries_user_created "
    "ON health_diaries(user_id, created_at DESC);",
)


class SqliteStore(Store):
    """One shared connection guarded by a re-entrant lock.

    ``atomic()`` holds the lock for the whole transaction, so other threads
    never read rows written by an unfinished unit.
    """

    def __init__(self, db_path: Path | str) -> None:
        path = Path(db_path) if str(db_path) != ":memory:" else None
        if path is not None:
            path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(
            str(db_path), check_same_thread=False, isolation_level=None
        )
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.RLock()
        self._depth = 0
        self._closed = False
        self._columns: dict[str, set[str]] = {}
        self._init_schema()

    def _init_schema(self) -> None:
        with self._lock:
            for table, ddl in _SCHEMA.items():
                self._conn.execute(ddl)
                info = self._conn.execute(f"PRAGMA table_info({table})").fetchall()
                self._columns[table] = {str(column["name"]) for column in info}
            for ddl in _INDEXES:
                self._conn.execute(ddl)

    def upsert(self, table: str, row: Row) -> int:
        payload = dict(row)
        row_id = int(payload.pop("id", 0) or 0)
        columns = self._check_columns(table, payload)
        with self._lock:
            conn = self._connection()
            if row_id <= 0:
                placeholders = ", ".join("?" for _ in columns)
                cursor = conn.execute(
                    f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({placeholders})",
                    [payload[column] for column in columns],
                )
                return int(cursor.lastrowid)
            assignments = ", ".join(f"{column} = excluded.{column}" for column in columns)
            placeholders = ", ".join("?" for _ in range(len(columns) + 1))
            conn.execute(
                f"INSERT INTO {table} (id, {', '.join(columns)}) VALUES ({placeholders}) "
                f"ON CONFLICT(id) DO UPDATE SET {assignments}",
                [row_id, *(payload[column] for column in columns)],
            )
            return row_id

    def get_by_id(self, table: str, row_id: int) -> Row | None:
        self._check_table(table)
        with self._lock:
            found = self._connection().execute(
                f"SELECT * FROM {table} WHERE id = ?", (row_id,)
            ).fetchone()
        return dict(found) if found is not None else None

    def query_all(  # noqa: PLR0913
        self,
        table: str,
        filters: Mapping[str, object] | None = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[Row]:
        where, params = self._where(table, filters)
        sql = f"SELECT * FROM {table}{where}"
        if order_by:
            self._check_columns(table, {order_by: None})
            direction = "DESC" if descending else "ASC"
            sql += f" ORDER BY {order_by} {direction}, id {direction}"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)
        with self._lock:
            rows = self._connection().execute(sql, params).fetchall()
        return [dict(row) for row in rows]

    def delete_by_id(self, table: str, row_id: int) -> bool:
        self._check_table(table)
        with self._lock:
            cursor = self._connection().execute(
                f"DELETE FROM {table} WHERE id = ?", (row_id,)
            )
        return cursor.rowcount > 0

    def delete_where(self, table: str, filters: Mapping[str, object]) -> int:
        where, params = self._where(table, filters)
        with self._lock:
            cursor = self._connection().execute(f"DELETE FROM {table}{where}", params)
        return cursor.rowcount

    def count(self, table: str, filters: Mapping[str, object] | None = None) -> int:
        where, params = self._where(table, filters)
        with self._lock:
            found = self._connection().execute(
                f"SELECT COUNT(*) FROM {table}{where}", params
            ).fetchone()
        return int(found[0])

    @contextmanager
    def atomic(self) -> Iterator[None]:
        with self._lock:
            conn = self._connection()
            if self._depth:
                self._depth += 1
                try:
                    yield
                finally:
                    self._depth -= 1
                return
            conn.execute("BEGIN IMMEDIATE")
            self._depth = 1
            try:
                yield
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            else:
                try:
                    conn.execute("COMMIT")
                except sqlite3.Error:
                    conn.execute("ROLLBACK")
                    raise
            finally:
                self._depth = 0

    def is_connected(self) -> bool:
        return not self._closed

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._conn.close()

    def _connection(self) -> sqlite3.Connection:
        if self._closed:
            raise StoreError("store is closed")
        return self._conn

    def _check_table(self, table: str) -> set[str]:
        columns = self._columns.get(table)
        if columns is None:
            raise StoreError(f"unknown table: {table}")
        return columns

    def _check_columns(self, table: str, payload: Mapping[str, object]) -> list[str]:
        known = self._check_table(table)
        unknown = [column for column in payload if column not in known]
        if unknown:
            raise StoreError(f"unknown columns for {table}: {', '.join(unknown)}")
        return list(payload)

    def _where(
        self, table: str, filters: Mapping[str, object] | None
    ) -> tuple[str, list[object]]:
        if not filters:
            self._check_table(table)
            return "", []
        columns = self._check_columns(table, filters)
        clause = " AND ".join(f"{column} = ?" for column in columns)
        return f" WHERE {clause}", [filters[column] for column in columns]
