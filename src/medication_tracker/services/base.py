"""Shared machinery for the entity repositories."""

import asyncio
import functools
import logging
import threading
from collections.abc import Callable, Hashable
from concurrent.futures import ThreadPoolExecutor
from typing import TypeVar

from medication_tracker.clock import SYSTEM_CLOCK, Clock
from medication_tracker.domain.errors import (
    NotFoundError,
    OperationResult,
    RepositoryError,
    StoreError,
    ValidationError,
)
from medication_tracker.services.locks import KeyedLock
from medication_tracker.services.snapshots import (
    Listener,
    SnapshotChannel,
    Subscription,
)
from medication_tracker.services.store import Store

T = TypeVar("T")

REPOSITORY_CLOSED = "repository has been shut down"
STORE_FAILURE = "storage operation failed"

_logger = logging.getLogger(__name__)


class BaseRepository:
    """Runs store work on a bounded thread pool and reports via results.

    Coroutines never raise: every failure comes back as an
    ``OperationResult`` carrying a typed error. Writes on the same record
    key are serialised through ``self._locks``.
    """

    def __init__(
        self, store: Store, clock: Clock = SYSTEM_CLOCK, max_workers: int = 2
    ) -> None:
        self._store = store
        self._clock = clock
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix=type(self).__name__
        )
        self._locks = KeyedLock()
        self._channels: dict[Hashable, SnapshotChannel] = {}
        self._state_lock = threading.Lock()
        self._closed = False

    @property
    def name(self) -> str:
        return type(self).__name__

    @property
    def closed(self) -> bool:
        return self._closed

    async def _run(
        self, operation: str, func: Callable[..., T], *args: object
    ) -> OperationResult[T]:
        if self._closed:
            return OperationResult.failure(StoreError(REPOSITORY_CLOSED))
        loop = asyncio.get_running_loop()
        call = functools.partial(self._execute, operation, func, *args)
        try:
            future = loop.run_in_executor(self._executor, call)
        except RuntimeError:
            # Executor shut down after the closed check.
            return OperationResult.failure(StoreError(REPOSITORY_CLOSED))
        return await future

    def _execute(
        self, operation: str, func: Callable[..., T], *args: object
    ) -> OperationResult[T]:
        try:
            return OperationResult.success(func(*args))
        except ValidationError as exc:
            _logger.warning("%s.%s rejected: %s", self.name, operation, exc.message)
            return OperationResult.failure(exc)
        except NotFoundError as exc:
            _logger.info("%s.%s: %s", self.name, operation, exc.message)
            return OperationResult.failure(exc)
        except RepositoryError as exc:
            _logger.error("%s.%s failed: %s", self.name, operation, exc.message)
            return OperationResult.failure(exc)
        except Exception:
            _logger.exception("%s.%s failed", self.name, operation)
            return OperationResult.failure(StoreError(STORE_FAILURE))

    def _observe(
        self, key: Hashable, loader: Callable[[], list[T]], listener: Listener
    ) -> Subscription:
        with self._state_lock:
            if self._closed:
                _logger.debug("%s refused observer after shutdown", self.name)
                detached = SnapshotChannel(f"{self.name}:{key}", loader)
                return Subscription(detached, listener)
            channel = self._channels.get(key)
            if channel is None:
                channel = SnapshotChannel(f"{self.name}:{key}", loader)
                self._channels[key] = channel
            subscription = channel.subscribe(listener)
        self._schedule(functools.partial(channel.publish, only=listener))
        return subscription

    def refresh_snapshots(self) -> None:
        """Queue a reload of every observed list."""
        self._schedule(self._publish_all)

    def _publish_all(self) -> None:
        with self._state_lock:
            channels = list(self._channels.values())
        for channel in channels:
            if self._closed:
                return
            if channel.has_listeners():
                channel.publish()

    def _schedule(self, task: Callable[[], None]) -> None:
        if self._closed:
            return

        def guarded() -> None:
            if not self._closed:
                task()

        try:
            self._executor.submit(guarded)
        except RuntimeError:
            _logger.debug("%s dropped snapshot refresh after shutdown", self.name)

    def cleanup(self) -> None:
        """Stop accepting work, drop observers, and release worker threads.

        Writes already submitted still finish; queued snapshot refreshes are
        skipped. Safe to call repeatedly.
        """
        with self._state_lock:
            if self._closed:
                return
            self._closed = True
            channels = list(self._channels.values())
            self._channels.clear()
        for channel in channels:
            channel.close()
        try:
            self._executor.shutdown(wait=True)
        except Exception:
            _logger.exception("%s executor shutdown failed", self.name)
        _logger.debug("%s cleaned up", self.name)

    def get_repository_status(self) -> str:
        """Describe store connectivity and executor state."""
        try:
            connected = self._store.is_connected()
        except Exception:
            connected = False
        store_state = "connected" if connected else "disconnected"
        executor_state = "stopped" if self._closed else "running"
        return f"{self.name} status: store={store_state}, executor={executor_state}"
