from __future__ import annotations

import threading
import time
from collections import deque
from typing import Callable, Deque, Generic, List, TypeVar


T = TypeVar("T")


class RollingWindow(Generic[T]):
    """Thread-safe bounded FIFO of items awaiting evaluation.

    When full, adding drops the oldest item. ``swap`` hands back everything
    buffered and leaves the window empty in one step, so an item is
    dispatched at most once.
    """

    def __init__(self, capacity: int) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self._capacity: int = capacity
        self._buffer: Deque[T] = deque(maxlen=capacity)
        self._lock = threading.RLock()

    def add(self, item: T) -> None:
        with self._lock:
            self._buffer.append(item)

    def size(self) -> int:
        with self._lock:
            return len(self._buffer)

    def capacity(self) -> int:
        return self._capacity

    def snapshot(self) -> List[T]:
        with self._lock:
            return list(self._buffer)

    def swap(self) -> List[T]:
        with self._lock:
            items = list(self._buffer)
            self._buffer = deque(maxlen=self._capacity)
            return items

    def __len__(self) -> int:
        return self.size()


class SimulationBatch(Generic[T]):
    """Small accumulator for simulation traffic with size and age triggers."""

    def __init__(
        self,
        max_size: int = 3,
        max_age_ms: float = 3000.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._max_size = max_size
        self._max_age_ms = max_age_ms
        self._clock = clock
        self._items: List[T] = []
        self._last_flush = clock()
        self._lock = threading.RLock()

    def add(self, item: T) -> int:
        with self._lock:
            self._items.append(item)
            return len(self._items)

    def size(self) -> int:
        with self._lock:
            return len(self._items)

    def elapsed_ms(self) -> float:
        with self._lock:
            return (self._clock() - self._last_flush) * 1000.0

    def due(self, forced: bool = False) -> bool:
        with self._lock:
            if not self._items:
                return False
            if forced or len(self._items) >= self._max_size:
                return True
            return self.elapsed_ms() > self._max_age_ms

    def drain(self) -> List[T]:
        with self._lock:
            items = self._items
            self._items = []
            self._last_flush = self._clock()
            return items
