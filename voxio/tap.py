"""A bounded buffer of recently played samples for visualisation."""

from __future__ import annotations

import threading
from collections import deque
from collections.abc import Iterable


class SampleTap:
    """Keeps at most ``capacity`` samples, dropping the oldest when full."""

    def __init__(self, capacity: int) -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self._buffer: deque[float] = deque(maxlen=capacity)
        self._lock = threading.Lock()

    def push(self, samples: Iterable[float]) -> None:
        with self._lock:
            self._buffer.extend(float(s) for s in samples)

    def get_latest(self, amount: int) -> list[float]:
        """Remove and return up to ``amount`` samples, oldest first."""
        count = min(amount, self.capacity)
        with self._lock:
            taken = min(count, len(self._buffer))
            return [self._buffer.popleft() for _ in range(taken)]

    def __len__(self) -> int:
        return len(self._buffer)