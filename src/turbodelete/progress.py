"""Thread-safe progress counter shared by the removal tasks of one target."""

import threading
from typing import Callable

TickCallback = Callable[[int], None]


class ProgressCounter:
    """
    Count processed entries for a single ``delete`` call.

    A fresh counter is passed to every call; subscribers receive the running
    count after each tick and must not raise.
    """

    def __init__(self, total: int = 0):
        self._count = 0
        self._total = total
        self._lock = threading.Lock()
        self._subscribers: list[TickCallback] = []

    @property
    def value(self) -> int:
        with self._lock:
            return self._count

    @property
    def total(self) -> int:
        return self._total

    @total.setter
    def total(self, total: int) -> None:
        if total < 0:
            raise ValueError(f"total must be >= 0, got {total}")
        self._total = total

    def subscribe(self, callback: TickCallback) -> None:
        """Register a callback invoked with the running count after every tick."""
        self._subscribers.append(callback)

    def increment(self, count: int = 1) -> int:
        """Add ``count`` processed entries and notify subscribers."""
        if count < 0:
            raise ValueError(f"count must be >= 0, got {count}")

        with self._lock:
            self._count += count
            value = self._count

        for callback in self._subscribers:
            callback(value)
        return value
