"""Persistence interface shared by all repositories."""

from collections.abc import Mapping
from contextlib import AbstractContextManager
from typing import Protocol

MEDICATIONS_TABLE = "medications"
INTAKE_RECORDS_TABLE = "medication_intake_records"
HEALTH_DIARIES_TABLE = "health_diaries"

Row = dict[str, object]


class Store(Protocol):
    """Table/row storage used by the repositories.

    A single ``upsert`` is atomic for its row. ``atomic()`` groups several
    calls into one unit that is either fully applied or fully rolled back,
    and keeps other callers of the same store out until it finishes.
    """

    def upsert(self, table: str, row: Row) -> int:
        """Insert a row (id 0 or missing) or replace it, returning its id."""

    def get_by_id(self, table: str, row_id: int) -> Row | None:
        """Return a row by id, if present."""

    def query_all(  # noqa: PLR0913
        self,
        table: str,
        filters: Mapping[str, object] | None = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[Row]:
        """Return rows matching all equality filters."""

    def delete_by_id(self, table: str, row_id: int) -> bool:
        """Delete a row, returning True if it existed."""

    def delete_where(self, table: str, filters: Mapping[str, object]) -> int:
        """Delete rows matching all equality filters, returning the count."""

    def count(self, table: str, filters: Mapping[str, object] | None = None) -> int:
        """Count rows matching all equality filters."""

    def atomic(self) -> AbstractContextManager[None]:
        """Return a context manager grouping writes into one unit."""

    def is_connected(self) -> bool:
        """Return True while the store can serve requests."""

    def close(self) -> None:
        """Release the underlying connection."""
