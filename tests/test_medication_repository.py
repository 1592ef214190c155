"""Tests for the medication repository and the consume transaction."""

import asyncio
import threading
from dataclasses import replace

import pytest

from medication_tracker.domain.errors import ErrorKind
from medication_tracker.domain.medications import StockStatus
from medication_tracker.services.intake_records import IntakeRecordRepository
from medication_tracker.services.medications import (
    MedicationRepository,
    medication_to_row,
)
from medication_tracker.services.store import INTAKE_RECORDS_TABLE, MEDICATIONS_TABLE
from tests.conftest import FailingStore, FakeClock, make_medication


def _create(repository: MedicationRepository, **overrides: object):
    result = asyncio.run(repository.create(make_medication(**overrides)))
    assert result.ok, result.error_pair
    return result.unwrap()


def test_create_assigns_id_and_timestamps(medication_repository, clock) -> None:
    created = _create(medication_repository)

    assert created.id > 0
    assert created.created_at == created.updated_at
    fetched = asyncio.run(medication_repository.get_by_id(created.id)).unwrap()
    assert fetched == created


@pytest.mark.parametrize(
    ("overrides", "message"),
    [
        ({"name": "  "}, "medication name is required"),
        ({"name": "x" * 101}, "medication name exceeds 100 characters"),
        ({"color": ""}, "medication color is required"),
        ({"dosage_form": ""}, "medication dosage form is required"),
        ({"remaining_quantity": -1}, "quantities must not be negative"),
    ],
)
def test_create_rejects_invalid_medication(
    medication_repository, overrides, message
) -> None:
    result = asyncio.run(medication_repository.create(make_medication(**overrides)))

    assert result.error_pair == (ErrorKind.VALIDATION, message)
    assert asyncio.run(medication_repository.get_count()).unwrap() == 0


def test_create_refuses_duplicate_names_unless_allowed(medication_repository) -> None:
    _create(medication_repository, name="Aspirin")

    duplicate = asyncio.run(medication_repository.create(make_medication(name="Aspirin")))
    allowed = asyncio.run(
        medication_repository.create(make_medication(name="Aspirin"), allow_duplicate=True)
    )

    assert duplicate.error_pair == (ErrorKind.VALIDATION, "medication name already exists")
    assert allowed.ok
    assert asyncio.run(medication_repository.name_exists("Aspirin")).unwrap()


def test_consume_decrements_and_logs(medication_repository, intake_repository) -> None:
    created = _create(medication_repository, remaining_quantity=10, dosage_per_intake=3)

    outcome = asyncio.run(medication_repository.consume(created.id)).unwrap()

    assert outcome.previous_remaining == 10
    assert outcome.medication.remaining_quantity == 7
    assert outcome.intake_record.id > 0
    assert outcome.intake_record.medication_name == "Aspirin"
    assert outcome.intake_record.dosage_taken == 3
    assert outcome.intake_record.intake_time == outcome.medication.updated_at
    records = asyncio.run(intake_repository.get_all()).unwrap()
    assert [record.id for record in records] == [outcome.intake_record.id]


@pytest.mark.parametrize(
    ("remaining", "dosage", "expected"),
    [(10, 3, 7), (2, 5, 0), (4, 0, 4), (0, 1, 0), (7, -2, 7)],
)
def test_consume_never_goes_negative(
    medication_repository, store, remaining, dosage, expected
) -> None:
    # Written straight to the store: negative dosages never pass validation.
    medication_id = store.upsert(
        MEDICATIONS_TABLE,
        medication_to_row(
            make_medication(remaining_quantity=remaining, dosage_per_intake=dosage)
        ),
    )

    outcome = asyncio.run(medication_repository.consume(medication_id)).unwrap()

    assert outcome.medication.remaining_quantity == expected
    assert outcome.medication.remaining_quantity >= 0
    assert outcome.intake_record.dosage_taken == dosage


def test_consume_at_zero_stays_zero(medication_repository) -> None:
    created = _create(medication_repository, remaining_quantity=0)

    first = asyncio.run(medication_repository.consume(created.id))
    second = asyncio.run(medication_repository.consume(created))

    assert first.ok
    assert second.unwrap().medication.remaining_quantity == 0


def test_consume_missing_medication(medication_repository) -> None:
    result = asyncio.run(medication_repository.consume(999))

    assert result.error_pair == (ErrorKind.NOT_FOUND, "medication does not exist")


def test_consumption_scenario_walks_through_statuses(medication_repository) -> None:
    created = _create(
        medication_repository,
        total_quantity=100,
        remaining_quantity=20,
        dosage_per_intake=1,
        low_stock_threshold=5,
    )

    medication = asyncio.run(medication_repository.consume(created.id)).unwrap().medication
    assert medication.remaining_quantity == 19
    assert medication.status is StockStatus.SUFFICIENT

    while medication.remaining_quantity > 5:
        outcome = asyncio.run(medication_repository.consume(created.id)).unwrap()
        medication = outcome.medication
    assert medication.status is StockStatus.LOW_STOCK

    while medication.remaining_quantity > 0:
        outcome = asyncio.run(medication_repository.consume(created.id)).unwrap()
        medication = outcome.medication
    assert medication.status is StockStatus.OUT_OF_STOCK
    assert not medication.is_low_stock()


def test_concurrent_consumes_are_serialised(
    medication_repository, intake_repository
) -> None:
    created = _create(medication_repository, remaining_quantity=10, dosage_per_intake=3)

    async def consume_twice():
        return await asyncio.gather(
            medication_repository.consume(created.id),
            medication_repository.consume(created.id),
        )

    results = asyncio.run(consume_twice())

    remaining = sorted(result.unwrap().medication.remaining_quantity for result in results)
    assert remaining == [4, 7]
    final = asyncio.run(medication_repository.get_by_id(created.id)).unwrap()
    assert final.remaining_quantity == 4
    assert asyncio.run(intake_repository.get_count()).unwrap() == 2


def test_consumes_from_many_threads(medication_repository) -> None:
    created = _create(medication_repository, remaining_quantity=10, dosage_per_intake=1)
    outcomes: list[int] = []
    outcomes_lock = threading.Lock()

    def worker() -> None:
        result = asyncio.run(medication_repository.consume(created.id))
        with outcomes_lock:
            outcomes.append(result.unwrap().medication.remaining_quantity)

    threads = [threading.Thread(target=worker) for _ in range(6)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert sorted(outcomes) == [4, 5, 6, 7, 8, 9]
    final = asyncio.run(medication_repository.get_by_id(created.id)).unwrap()
    assert final.remaining_quantity == 4


def test_failed_record_write_rolls_back_stock() -> None:
    store = FailingStore(fail_table=INTAKE_RECORDS_TABLE)
    clock = FakeClock()
    intake_repository = IntakeRecordRepository(store, clock=clock)
    repository = MedicationRepository(
        store, clock=clock, intake_records=intake_repository
    )
    try:
        created = _create(repository, remaining_quantity=10, dosage_per_intake=2)
        store.armed = True

        result = asyncio.run(repository.consume(created.id))

        assert result.error_pair == (ErrorKind.STORE, "storage operation failed")
        after = asyncio.run(repository.get_by_id(created.id)).unwrap()
        assert after.remaining_quantity == 10
        assert store.count(INTAKE_RECORDS_TABLE) == 0
    finally:
        repository.cleanup()
        intake_repository.cleanup()


def test_update_keeps_created_at_and_refreshes_updated_at(medication_repository) -> None:
    created = _create(medication_repository)
    edited = replace(created, name="Aspirin 100mg", created_at=1)

    updated = asyncio.run(medication_repository.update(edited)).unwrap()

    assert updated.name == "Aspirin 100mg"
    assert updated.created_at == created.created_at
    assert updated.updated_at > updated.created_at


def test_update_unknown_medication(medication_repository) -> None:
    result = asyncio.run(medication_repository.update(make_medication(id=404)))

    assert result.error_pair == (ErrorKind.NOT_FOUND, "medication does not exist")


def test_update_quantity(medication_repository) -> None:
    created = _create(medication_repository, remaining_quantity=0)

    refilled = asyncio.run(medication_repository.update_quantity(created.id, 30)).unwrap()
    rejected = asyncio.run(medication_repository.update_quantity(created.id, -1))

    assert refilled.remaining_quantity == 30
    assert rejected.error_pair == (ErrorKind.VALIDATION, "quantities must not be negative")


def test_delete(medication_repository) -> None:
    created = _create(medication_repository)

    deleted = asyncio.run(medication_repository.delete(created.id))
    missing = asyncio.run(medication_repository.delete(created.id))

    assert deleted.unwrap() is True
    assert missing.error_pair == (ErrorKind.NOT_FOUND, "medication does not exist")
    assert asyncio.run(medication_repository.get_count()).unwrap() == 0


def test_queries(medication_repository) -> None:
    _create(medication_repository, name="Aspirin", remaining_quantity=50, color="WHITE")
    _create(medication_repository, name="Ibuprofen", remaining_quantity=3, color="RED")
    _create(
        medication_repository,
        name="Vitamin D",
        remaining_quantity=0,
        dosage_form="CAPSULE",
    )

    names = [m.name for m in asyncio.run(medication_repository.get_all()).unwrap()]
    assert names == ["Vitamin D", "Ibuprofen", "Aspirin"]
    search = asyncio.run(medication_repository.search_by_name("prof")).unwrap()
    assert [m.name for m in search] == ["Ibuprofen"]
    red = asyncio.run(medication_repository.get_by_color("RED")).unwrap()
    assert [m.name for m in red] == ["Ibuprofen"]
    capsules = asyncio.run(medication_repository.get_by_dosage_form("CAPSULE")).unwrap()
    assert [m.name for m in capsules] == ["Vitamin D"]
    low = asyncio.run(medication_repository.get_low_stock()).unwrap()
    assert [m.name for m in low] == ["Ibuprofen"]
    empty = asyncio.run(medication_repository.get_out_of_stock()).unwrap()
    assert [m.name for m in empty] == ["Vitamin D"]
    refill = asyncio.run(medication_repository.get_needing_refill(10)).unwrap()
    assert [m.name for m in refill] == ["Vitamin D", "Ibuprofen"]
    assert asyncio.run(medication_repository.get_count()).unwrap() == 3


def test_published_entities_are_copies(medication_repository) -> None:
    created = _create(medication_repository, remaining_quantity=10)
    created.remaining_quantity = 0

    fetched = asyncio.run(medication_repository.get_by_id(created.id)).unwrap()

    assert fetched.remaining_quantity == 10


def test_observe_all_receives_initial_and_updates(medication_repository) -> None:
    snapshots: list[list[str]] = []
    received = threading.Condition()

    def listener(medications) -> None:
        with received:
            snapshots.append([medication.name for medication in medications])
            received.notify_all()

    subscription = medication_repository.observe_all(listener)
    with received:
        assert received.wait_for(lambda: len(snapshots) >= 1, timeout=5)

    _create(medication_repository, name="Aspirin")
    with received:
        assert received.wait_for(lambda: ["Aspirin"] in snapshots, timeout=5)

    assert snapshots[0] == []
    subscription.close()
    subscription.close()
    assert not subscription.active


def test_cleanup_is_idempotent_and_stops_work(store, clock) -> None:
    repository = MedicationRepository(store, clock=clock)
    assert repository.get_repository_status() == (
        "MedicationRepository status: store=connected, executor=running"
    )

    repository.cleanup()
    repository.cleanup()

    result = asyncio.run(repository.get_count())
    assert result.error_pair == (ErrorKind.STORE, "repository has been shut down")
    assert repository.get_repository_status().endswith("executor=stopped")


def test_needing_refill_ignores_rounding(medication_repository) -> None:
    _create(medication_repository, total_quantity=200, remaining_quantity=21)

    refill = asyncio.run(medication_repository.get_needing_refill(10)).unwrap()

    assert refill == []


@pytest.mark.parametrize("query", ["", "   "])
def test_search_by_name_rejects_blank_query(medication_repository, query) -> None:
    _create(medication_repository)

    result = asyncio.run(medication_repository.search_by_name(query))

    assert result.error_pair == (ErrorKind.VALIDATION, "search keyword must not be empty")


def test_observe_after_cleanup_is_inactive(store, clock) -> None:
    repository = MedicationRepository(store, clock=clock)
    received: list[object] = []
    repository.cleanup()

    subscription = repository.observe_all(received.append)

    assert not subscription.active
    assert received == []
    repository.refresh_snapshots()
    assert received == []
