"""Repository for medications and the consume-a-dose transaction."""

import logging
from collections.abc import Callable
from dataclasses import replace

from medication_tracker.clock import SYSTEM_CLOCK, Clock
from medication_tracker.domain.errors import (
    NotFoundError,
    OperationResult,
    ValidationError,
)
from medication_tracker.domain.intake import MedicationIntakeRecord
from medication_tracker.domain.medications import (
    ConsumptionResult,
    MedicationInfo,
    StockStatus,
)
from medication_tracker.services.base import BaseRepository
from medication_tracker.services.intake_records import (
    IntakeRecordRepository,
    record_to_row,
)
from medication_tracker.services.snapshots import Listener, Subscription
from medication_tracker.services.store import (
    INTAKE_RECORDS_TABLE,
    MEDICATIONS_TABLE,
    Row,
    Store,
)
from medication_tracker.services.validation import (
    MEDICATION_NAME_EXISTS,
    QUANTITY_NEGATIVE,
    SEARCH_KEYWORD_EMPTY,
    validate_medication,
)

MEDICATION_NOT_FOUND = "medication does not exist"

_logger = logging.getLogger(__name__)


class MedicationRepository(BaseRepository):
    """Stores medications and applies stock consumption.

    ``consume``, ``update``, ``update_quantity`` and ``delete`` share one
    lock per medication id, so a read-modify-write on a medication never
    interleaves with another write to it.
    """

    def __init__(
        self,
        store: Store,
        clock: Clock = SYSTEM_CLOCK,
        max_workers: int = 2,
        intake_records: IntakeRecordRepository | None = None,
    ) -> None:
        super().__init__(store, clock=clock, max_workers=max_workers)
        self._intake_records = intake_records

    async def create(
        self, medication: MedicationInfo, allow_duplicate: bool = False
    ) -> OperationResult[MedicationInfo]:
        """Persist a new medication; duplicate names are refused by default."""
        return await self._run(
            "create", self._create, replace(medication), allow_duplicate
        )

    async def update(self, medication: MedicationInfo) -> OperationResult[MedicationInfo]:
        return await self._run("update", self._update, replace(medication))

    async def update_quantity(
        self, medication_id: int, remaining_quantity: int
    ) -> OperationResult[MedicationInfo]:
        """Set the remaining stock directly, e.g. after a refill."""
        return await self._run(
            "update_quantity", self._update_quantity, medication_id, remaining_quantity
        )

    async def delete(self, medication_id: int) -> OperationResult[bool]:
        return await self._run("delete", self._delete, medication_id)

    async def get_by_id(self, medication_id: int) -> OperationResult[MedicationInfo]:
        return await self._run("get_by_id", self._get_by_id, medication_id)

    async def get_all(self) -> OperationResult[list[MedicationInfo]]:
        return await self._run("get_all", self._load_all)

    async def get_count(self) -> OperationResult[int]:
        return await self._run(
            "get_count", lambda: self._store.count(MEDICATIONS_TABLE)
        )

    async def name_exists(self, name: str) -> OperationResult[bool]:
        return await self._run("name_exists", self._name_exists, name)

    async def search_by_name(self, query: str) -> OperationResult[list[MedicationInfo]]:
        return await self._run("search_by_name", self._search_by_name, query)

    async def get_by_color(self, color: str) -> OperationResult[list[MedicationInfo]]:
        return await self._run("get_by_color", self._load_all, {"color": color})

    async def get_by_dosage_form(
        self, dosage_form: str
    ) -> OperationResult[list[MedicationInfo]]:
        return await self._run(
            "get_by_dosage_form", self._load_all, {"dosage_form": dosage_form}
        )

    async def get_low_stock(self) -> OperationResult[list[MedicationInfo]]:
        return await self._run(
            "get_low_stock",
            self._filtered,
            lambda medication: medication.status is StockStatus.LOW_STOCK,
        )

    async def get_out_of_stock(self) -> OperationResult[list[MedicationInfo]]:
        return await self._run("get_out_of_stock", self._out_of_stock)

    async def get_needing_refill(
        self, threshold_percent: int
    ) -> OperationResult[list[MedicationInfo]]:
        """Medications at or below a stock percentage, emptiest first."""
        return await self._run(
            "get_needing_refill", self._needing_refill, threshold_percent
        )

    async def consume(
        self, medication: int | MedicationInfo
    ) -> OperationResult[ConsumptionResult]:
        """Take one dose: decrement stock and log an intake record atomically."""
        medication_id = (
            medication.id if isinstance(medication, MedicationInfo) else medication
        )
        return await self._run("consume", self._consume, medication_id)

    def observe_all(self, listener: Listener) -> Subscription:
        """Deliver the medication list now and after every change."""
        return self._observe("medications", self._load_all, listener)

    def _create(
        self, medication: MedicationInfo, allow_duplicate: bool
    ) -> MedicationInfo:
        medication.name = (medication.name or "").strip()
        error = validate_medication(medication)
        if error:
            raise ValidationError(error)
        now = self._clock.now_ms()
        medication.id = 0
        medication.created_at = now
        medication.updated_at = now
        with self._locks.hold(("name", medication.name)):
            if not allow_duplicate and self._name_exists(medication.name):
                raise ValidationError(MEDICATION_NAME_EXISTS)
            medication.id = self._store.upsert(
                MEDICATIONS_TABLE, medication_to_row(medication)
            )
        _logger.info(
            "Medication created: id=%s name=%s stock=%s",
            medication.id,
            medication.name,
            medication.remaining_quantity,
        )
        self.refresh_snapshots()
        return replace(medication)

    def _update(self, medication: MedicationInfo) -> MedicationInfo:
        if medication.id <= 0:
            raise NotFoundError(MEDICATION_NOT_FOUND)
        error = validate_medication(medication)
        if error:
            raise ValidationError(error)
        with self._locks.hold(medication.id):
            existing = self._require(medication.id)
            medication.created_at = existing.created_at
            medication.updated_at = self._clock.now_ms()
            self._store.upsert(MEDICATIONS_TABLE, medication_to_row(medication))
        _logger.info("Medication updated: id=%s", medication.id)
        self.refresh_snapshots()
        return replace(medication)

    def _update_quantity(self, medication_id: int, remaining_quantity: int) -> MedicationInfo:
        if remaining_quantity < 0:
            raise ValidationError(QUANTITY_NEGATIVE)
        with self._locks.hold(medication_id):
            medication = self._require(medication_id)
            medication.remaining_quantity = remaining_quantity
            medication.updated_at = self._clock.now_ms()
            self._store.upsert(MEDICATIONS_TABLE, medication_to_row(medication))
        _logger.info(
            "Medication stock set: id=%s remaining=%s", medication_id, remaining_quantity
        )
        self.refresh_snapshots()
        return medication

    def _delete(self, medication_id: int) -> bool:
        with self._locks.hold(medication_id):
            if not self._store.delete_by_id(MEDICATIONS_TABLE, medication_id):
                raise NotFoundError(MEDICATION_NOT_FOUND)
        _logger.info("Medication deleted: id=%s", medication_id)
        self.refresh_snapshots()
        return True

    def _consume(self, medication_id: int) -> ConsumptionResult:
        with self._locks.hold(medication_id):
            with self._store.atomic():
                medication = self._require(medication_id)
                previous = medication.remaining_quantity
                dosage = medication.dosage_per_intake
                now = self._clock.now_ms()
                medication.reduce_quantity(max(dosage, 0), now)
                self._store.upsert(MEDICATIONS_TABLE, medication_to_row(medication))
                record = MedicationIntakeRecord(
                    medication_name=medication.name,
                    intake_time=now,
                    dosage_taken=dosage,
                )
                record.id = self._store.upsert(
                    INTAKE_RECORDS_TABLE, record_to_row(record)
                )
        _logger.info(
            "Medication consumed: id=%s dosage=%s remaining=%s->%s",
            medication_id,
            dosage,
            previous,
            medication.remaining_quantity,
        )
        self.refresh_snapshots()
        if self._intake_records is not None:
            self._intake_records.refresh_snapshots()
        return ConsumptionResult(
            medication=medication, intake_record=record, previous_remaining=previous
        )

    def _require(self, medication_id: int) -> MedicationInfo:
        row = self._store.get_by_id(MEDICATIONS_TABLE, medication_id)
        if row is None:
            raise NotFoundError(MEDICATION_NOT_FOUND)
        return parse_medication(row)

    def _get_by_id(self, medication_id: int) -> MedicationInfo:
        return self._require(medication_id)

    def _name_exists(self, name: str) -> bool:
        cleaned = (name or "").strip()
        if not cleaned:
            return False
        return self._store.count(MEDICATIONS_TABLE, {"name": cleaned}) > 0

    def _load_all(self, filters: dict[str, object] | None = None) -> list[MedicationInfo]:
        rows = self._store.query_all(
            MEDICATIONS_TABLE, filters=filters, order_by="created_at", descending=True
        )
        return [parse_medication(row) for row in rows]

    def _filtered(
        self, predicate: Callable[[MedicationInfo], bool]
    ) -> list[MedicationInfo]:
        return [medication for medication in self._load_all() if predicate(medication)]

    def _search_by_name(self, query: str) -> list[MedicationInfo]:
        needle = (query or "").strip().casefold()
        if not needle:
            raise ValidationError(SEARCH_KEYWORD_EMPTY)
        return self._filtered(lambda medication: needle in medication.name.casefold())

    def _out_of_stock(self) -> list[MedicationInfo]:
        empty = self._load_all({"remaining_quantity": 0})
        return sorted(empty, key=lambda medication: medication.updated_at, reverse=True)

    def _needing_refill(self, threshold_percent: int) -> list[MedicationInfo]:
        candidates = [
            medication
            for medication in self._load_all()
            if medication.total_quantity > 0
            and medication.needs_refill(threshold_percent)
        ]
        return sorted(
            candidates,
            key=lambda medication: medication.remaining_quantity
            / medication.total_quantity,
        )


def medication_to_row(medication: MedicationInfo) -> Row:
    return {
        "id": medication.id,
        "name": medication.name,
        "color": medication.color,
        "dosage_form": medication.dosage_form,
        "total_quantity": medication.total_quantity,
        "remaining_quantity": medication.remaining_quantity,
        "dosage_per_intake": medication.dosage_per_intake,
        "low_stock_threshold": medication.low_stock_threshold,
        "unit": medication.unit,
        "created_at": medication.created_at,
        "updated_at": medication.updated_at,
        "photo_path": medication.photo_path,
    }


def parse_medication(row: Row) -> MedicationInfo:
    photo_path = row.get("photo_path")
    return MedicationInfo(
        id=int(row["id"]),
        name=str(row.get("name") or ""),
        color=str(row.get("color") or ""),
        dosage_form=str(row.get("dosage_form") or ""),
        total_quantity=int(row.get("total_quantity") or 0),
        remaining_quantity=int(row.get("remaining_quantity") or 0),
        dosage_per_intake=int(row.get("dosage_per_intake") or 0),
        low_stock_threshold=int(row.get("low_stock_threshold") or 0),
        unit=str(row.get("unit") or ""),
        created_at=int(row.get("created_at") or 0),
        updated_at=int(row.get("updated_at") or 0),
        photo_path=str(photo_path) if photo_path is not None else None,
    )
