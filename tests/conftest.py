"""Shared test fixtures."""

import threading
from collections.abc import Iterator
from dataclasses import dataclass, field

import pytest

from medication_tracker.adapters.memory_store import InMemoryStore
from medication_tracker.adapters.sqlite_store import SqliteStore
from medication_tracker.config import Settings
from medication_tracker.domain.medications import MedicationInfo
from medication_tracker.services.diaries import HealthDiaryRepository
from medication_tracker.services.intake_records import IntakeRecordRepository
from medication_tracker.services.medications import MedicationRepository
from medication_tracker.services.store import Row


@dataclass(eq=False)
class FakeClock:
    """Deterministic clock that advances one millisecond per reading."""

    current: int = 1_700_000_000_000
    step: int = 1
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def now_ms(self) -> int:
        with self._lock:
            self.current += self.step
            return self.current

    def advance(self, millis: int) -> None:
        with self._lock:
            self.current += millis


class FailingStore(InMemoryStore):
    """In-memory store that fails on a chosen table write."""

    def __init__(self, fail_table: str) -> None:
        super().__init__()
        self.fail_table = fail_table
        self.armed = False

    def upsert(self, table: str, row: Row) -> int:
        if self.armed and table == self.fail_table:
            raise RuntimeError(f"simulated failure writing {table}")
        return super().upsert(table, row)


def make_medication(**overrides: object) -> MedicationInfo:
    values: dict[str, object] = {
        "name": "Aspirin",
        "color": "WHITE",
        "dosage_form": "TABLET",
        "total_quantity": 100,
        "remaining_quantity": 20,
        "dosage_per_intake": 1,
        "low_stock_threshold": 5,
    }
    values.update(overrides)
    return MedicationInfo(**values)  # type: ignore[arg-type]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        store_backend="sqlite",
        sqlite_path=str(tmp_path / "tracker.db"),
        repository_workers=2,
        log_level="INFO",
        environment="test",
    )


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path) -> Iterator[InMemoryStore | SqliteStore]:
    if request.param == "memory":
        backend: InMemoryStore | SqliteStore = InMemoryStore()
    else:
        backend = SqliteStore(tmp_path / "store.db")
    yield backend
    backend.close()


@pytest.fixture
def intake_repository(store, clock) -> Iterator[IntakeRecordRepository]:
    repository = IntakeRecordRepository(store, clock=clock)
    yield repository
    repository.cleanup()


@pytest.fixture
def medication_repository(
    store, clock, intake_repository
) -> Iterator[MedicationRepository]:
    repository = MedicationRepository(
        store, clock=clock, max_workers=4, intake_records=intake_repository
    )
    yield repository
    repository.cleanup()


@pytest.fixture
def diary_repository(store, clock) -> Iterator[HealthDiaryRepository]:
    repository = HealthDiaryRepository(store, clock=clock)
    yield repository
    repository.cleanup()
