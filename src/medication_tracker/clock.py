"""Clock abstractions for entity timestamps."""

import threading
import time
from dataclasses import dataclass, field
from typing import Protocol


class Clock(Protocol):
    """Source of epoch-millisecond timestamps."""

    def now_ms(self) -> int:
        """Return the current time in epoch milliseconds."""


@dataclass(eq=False)
class SystemClock(Clock):
    """Wall clock that never returns the same millisecond twice."""

    _last: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def now_ms(self) -> int:
        """Return wall time, bumped past the previous reading if needed."""
        current = time.time_ns() // 1_000_000
        with self._lock:
            if current <= self._last:
                current = self._last + 1
            self._last = current
            return current


SYSTEM_CLOCK = SystemClock()
