"""Dependency container wiring for the application.

``build_container`` is the single place where repositories are constructed;
callers receive them from the container instead of a global.
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from supabase import create_client

from medication_tracker.adapters.memory_store import InMemoryStore
from medication_tracker.adapters.sqlite_store import SqliteStore
from medication_tracker.adapters.supabase_store import SupabaseStore
from medication_tracker.app_logging import configure_logging
from medication_tracker.clock import SYSTEM_CLOCK, Clock
from medication_tracker.config import Settings
from medication_tracker.services.diaries import HealthDiaryRepository
from medication_tracker.services.intake_records import IntakeRecordRepository
from medication_tracker.services.medications import MedicationRepository
from medication_tracker.services.store import Store


@dataclass
class AppContainer:
    """Holds application-wide dependencies."""

    settings: Settings
    store: Store
    medication_repository: MedicationRepository
    intake_record_repository: IntakeRecordRepository
    health_diary_repository: HealthDiaryRepository
    close_resources: Callable[[], Awaitable[None]]


def build_store(settings: Settings) -> Store:
    """Create the store selected by ``settings.store_backend``."""
    if settings.store_backend == "memory":
        return InMemoryStore()
    if settings.store_backend == "supabase":
        client = create_client(
            settings.supabase_url or "", settings.supabase_service_key or ""
        )
        return SupabaseStore(client)
    return SqliteStore(settings.sqlite_path)


def build_container(
    settings: Settings | None = None,
    store: Store | None = None,
    clock: Clock = SYSTEM_CLOCK,
) -> AppContainer:
    """Create the default dependency container."""
    resolved_settings = settings or Settings()
    configure_logging(resolved_settings.log_level)
    resolved_store = store or build_store(resolved_settings)
    workers = resolved_settings.repository_workers
    intake_record_repository = IntakeRecordRepository(
        resolved_store, clock=clock, max_workers=workers
    )
    medication_repository = MedicationRepository(
        resolved_store,
        clock=clock,
        max_workers=workers,
        intake_records=intake_record_repository,
    )
    health_diary_repository = HealthDiaryRepository(
        resolved_store, clock=clock, max_workers=workers
    )

    async def close_resources() -> None:
        medication_repository.cleanup()
        intake_record_repository.cleanup()
        health_diary_repository.cleanup()
        resolved_store.close()

    return AppContainer(
        settings=resolved_settings,
        store=resolved_store,
        medication_repository=medication_repository,
        intake_record_repository=intake_record_repository,
        health_diary_repository=health_diary_repository,
        close_resources=close_resources,
    )
