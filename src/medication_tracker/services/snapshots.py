"""Observable list snapshots published by repositories."""

import logging
import threading
from collections.abc import Callable
from typing import Generic, TypeVar

T = TypeVar("T")
Listener = Callable[[list[T]], None]

_logger = logging.getLogger(__name__)


class Subscription:
    """Handle returned to an observer; closing it stops further deliveries."""

    def __init__(self, channel: "SnapshotChannel", listener: Listener) -> None:
        self._channel = channel
        self._listener = listener

    @property
    def active(self) -> bool:
        return self._channel.has_listener(self._listener)

    def close(self) -> None:
        """Detach the listener. Safe to call more than once."""
        self._channel.remove(self._listener)


class SnapshotChannel(Generic[T]):
    """Callback registry that re-reads a list and pushes it to listeners.

    Loads and deliveries are serialised, so every listener sees snapshots
    in the order they were read from the store.
    """

    def __init__(self, name: str, loader: Callable[[], list[T]]) -> None:
        self.name = name
        self._loader = loader
        self._listeners: list[Listener] = []
        self._listeners_lock = threading.Lock()
        self._publish_lock = threading.Lock()
        self._latest: list[T] | None = None

    @property
    def latest(self) -> list[T] | None:
        """Most recently published snapshot, if any."""
        return None if self._latest is None else list(self._latest)

    def subscribe(self, listener: Listener) -> Subscription:
        with self._listeners_lock:
            self._listeners.append(listener)
        return Subscription(self, listener)

    def has_listener(self, listener: Listener) -> bool:
        with self._listeners_lock:
            return listener in self._listeners

    def has_listeners(self) -> bool:
        with self._listeners_lock:
            return bool(self._listeners)

    def remove(self, listener: Listener) -> None:
        with self._listeners_lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def close(self) -> None:
        with self._listeners_lock:
            self._listeners.clear()

    def publish(self, only: Listener | None = None) -> None:
        """Load the current list and deliver it.

        With ``only`` set, just that listener receives it (initial delivery).
        """
        with self._publish_lock:
            with self._listeners_lock:
                targets = list(self._listeners)
            if only is not None:
                targets = [listener for listener in targets if listener is only]
            if not targets:
                return
            try:
                snapshot = self._loader()
            except Exception:
                _logger.exception("Failed to load snapshot for %s", self.name)
                return
            self._latest = snapshot
            for listener in targets:
                try:
                    listener(list(snapshot))
                except Exception:
                    _logger.exception("Snapshot listener failed for %s", self.name)
