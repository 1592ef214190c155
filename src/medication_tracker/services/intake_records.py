"""Repository for medication intake history."""

import logging
from dataclasses import replace

from medication_tracker.domain.errors import (
    NotFoundError,
    OperationResult,
    ValidationError,
)
from medication_tracker.domain.intake import MedicationIntakeRecord
from medication_tracker.services.base import BaseRepository
from medication_tracker.services.snapshots import Listener, Subscription
from medication_tracker.services.store import INTAKE_RECORDS_TABLE, Row
from medication_tracker.services.validation import (
    TIME_RANGE_INVALID,
    validate_intake_record,
)

INTAKE_RECORD_NOT_FOUND = "intake record does not exist"
LIMIT_INVALID = "limit must be positive"

_logger = logging.getLogger(__name__)


class IntakeRecordRepository(BaseRepository):
    """Stores and queries logged doses, newest first."""

    async def create(
        self, record: MedicationIntakeRecord
    ) -> OperationResult[MedicationIntakeRecord]:
        return await self._run("create", self._create, replace(record))

    async def update(
        self, record: MedicationIntakeRecord
    ) -> OperationResult[MedicationIntakeRecord]:
        return await self._run("update", self._update, replace(record))

    async def delete(self, record_id: int) -> OperationResult[bool]:
        return await self._run("delete", self._delete, record_id)

    async def get_by_id(self, record_id: int) -> OperationResult[MedicationIntakeRecord]:
        return await self._run("get_by_id", self._get_by_id, record_id)

    async def get_all(self) -> OperationResult[list[MedicationIntakeRecord]]:
        return await self._run("get_all", self._load, None)

    async def get_for_medication(
        self, medication_name: str
    ) -> OperationResult[list[MedicationIntakeRecord]]:
        return await self._run("get_for_medication", self._load, medication_name)

    async def get_in_range(
        self, start_time: int, end_time: int
    ) -> OperationResult[list[MedicationIntakeRecord]]:
        return await self._run("get_in_range", self._in_range, start_time, end_time)

    async def get_recent(self, limit: int) -> OperationResult[list[MedicationIntakeRecord]]:
        return await self._run("get_recent", self._recent, limit)

    async def get_count(
        self, medication_name: str | None = None
    ) -> OperationResult[int]:
        return await self._run("get_count", self._count, medication_name)

    async def delete_for_medication(self, medication_name: str) -> OperationResult[int]:
        """Remove the whole history of one medication name."""
        return await self._run(
            "delete_for_medication", self._delete_for_medication, medication_name
        )

    def observe_all(
        self, listener: Listener, medication_name: str | None = None
    ) -> Subscription:
        """Deliver the record list now and after every change."""
        return self._observe(
            ("records", medication_name),
            lambda: self._load(medication_name),
            listener,
        )

    def _create(self, record: MedicationIntakeRecord) -> MedicationIntakeRecord:
        _raise_if_invalid(record)
        record.id = 0
        record.id = self._store.upsert(INTAKE_RECORDS_TABLE, record_to_row(record))
        _logger.info(
            "Intake record created: id=%s medication=%s",
            record.id,
            record.medication_name,
        )
        self.refresh_snapshots()
        return replace(record)

    def _update(self, record: MedicationIntakeRecord) -> MedicationIntakeRecord:
        if record.id <= 0:
            raise NotFoundError(INTAKE_RECORD_NOT_FOUND)
        _raise_if_invalid(record)
        with self._locks.hold(record.id):
            if self._store.get_by_id(INTAKE_RECORDS_TABLE, record.id) is None:
                raise NotFoundError(INTAKE_RECORD_NOT_FOUND)
            self._store.upsert(INTAKE_RECORDS_TABLE, record_to_row(record))
        self.refresh_snapshots()
        return replace(record)

    def _delete(self, record_id: int) -> bool:
        with self._locks.hold(record_id):
            if not self._store.delete_by_id(INTAKE_RECORDS_TABLE, record_id):
                raise NotFoundError(INTAKE_RECORD_NOT_FOUND)
        _logger.info("Intake record deleted: id=%s", record_id)
        self.refresh_snapshots()
        return True

    def _get_by_id(self, record_id: int) -> MedicationIntakeRecord:
        row = self._store.get_by_id(INTAKE_RECORDS_TABLE, record_id)
        if row is None:
            raise NotFoundError(INTAKE_RECORD_NOT_FOUND)
        return parse_record(row)

    def _load(
        self, medication_name: str | None, limit: int | None = None
    ) -> list[MedicationIntakeRecord]:
        filters = {"medication_name": medication_name} if medication_name else None
        rows = self._store.query_all(
            INTAKE_RECORDS_TABLE,
            filters=filters,
            order_by="intake_time",
            descending=True,
            limit=limit,
        )
        return [parse_record(row) for row in rows]

    def _in_range(self, start_time: int, end_time: int) -> list[MedicationIntakeRecord]:
        if start_time > end_time:
            raise ValidationError(TIME_RANGE_INVALID)
        return [
            record
            for record in self._load(None)
            if start_time <= record.intake_time <= end_time
        ]

    def _recent(self, limit: int) -> list[MedicationIntakeRecord]:
        if limit <= 0:
            raise ValidationError(LIMIT_INVALID)
        return self._load(None, limit=limit)

    def _count(self, medication_name: str | None) -> int:
        filters = {"medication_name": medication_name} if medication_name else None
        return self._store.count(INTAKE_RECORDS_TABLE, filters)

    def _delete_for_medication(self, medication_name: str) -> int:
        deleted = self._store.delete_where(
            INTAKE_RECORDS_TABLE, {"medication_name": medication_name}
        )
        _logger.info(
            "Intake history cleared: medication=%s rows=%s", medication_name, deleted
        )
        if deleted:
            self.refresh_snapshots()
        return deleted


def _raise_if_invalid(record: MedicationIntakeRecord) -> None:
    error = validate_intake_record(record)
    if error:
        raise ValidationError(error)


def record_to_row(record: MedicationIntakeRecord) -> Row:
    return {
        "id": record.id,
        "medication_name": record.medication_name,
        "intake_time": record.intake_time,
        "dosage_taken": record.dosage_taken,
    }


def parse_record(row: Row) -> MedicationIntakeRecord:
    return MedicationIntakeRecord(
        id=int(row["id"]),
        medication_name=str(row.get("medication_name") or ""),
        intake_time=int(row.get("intake_time") or 0),
        dosage_taken=int(row.get("dosage_taken") or 0),
    )
