"""
Bounded in-memory window of the most recent derived readings.

Backed by ``collections.deque(maxlen=capacity)`` so append is O(1) and the
oldest reading is evicted on overflow.  Insertion order is treated as
chronological order; out-of-order readings are kept where they land and
are never re-sorted.

One window belongs to one device session.  It is not safe for concurrent
writers; the session is the single producer.

CHANGELOG:
- 2026-10-17: Initial creation (STORY-005)

TODO:
- None
"""

from __future__ import annotations

from collections import deque
from collections.abc import Iterable

from boiler.src.models import DerivedReading


class RollingWindow:
    """FIFO window of at most *capacity* derived readings.

    Args:
        capacity: Maximum number of readings held (must be >= 1).
        sample_interval_s: Interval used for :meth:`total_flow_l`.

    Raises:
        ValueError: If *capacity* is less than 1.
    """

    def __init__(self, capacity: int, sample_interval_s: float = 5.0) -> None:
        if capacity < 1:
            raise ValueError("RollingWindow capacity must be >= 1")
        self._capacity = capacity
        self._sample_interval_s = sample_interval_s
        self._items: deque[DerivedReading] = deque(maxlen=capacity)

    @property
    def capacity(self) -> int:
        """Maximum number of readings the window holds."""
        return self._capacity

    def __len__(self) -> int:
        return len(self._items)

    def append(self, reading: DerivedReading) -> None:
        """Append *reading*, evicting the oldest entry when full."""
        self._items.append(reading)

    def extend(self, readings: Iterable[DerivedReading]) -> None:
        """Append each reading in order."""
        self._items.extend(readings)

    def snapshot(self) -> list[DerivedReading]:
        """Return the held readings, oldest first, as a new list."""
        return list(self._items)

    def latest(self) -> DerivedReading | None:
        """Return the newest reading, or ``None`` when empty."""
        return self._items[-1] if self._items else None

    @property
    def last_cumulative_flow(self) -> float:
        """Cumulative flow of the newest reading, 0 when empty."""
        latest = self.latest()
        return latest.cumulative_flow_l if latest is not None else 0.0

    def total_flow_l(self) -> float:
        """Volume in litres over the readings currently held."""
        return sum(r.flow_rate_l_s * self._sample_interval_s for r in self._items)

    def clear(self) -> None:
        """Drop every reading."""
        self._items.clear()
