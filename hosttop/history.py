"""Fixed-size sample histories for sparklines and graphs.

Every metric stream keeps the last ``HISTORY_SIZE`` samples in a ring. All
rings share one ``HistoryClock`` so that slot *i* of every stream belongs to
the same refresh tick, which lets multi-series graphs (disk read + write)
be combined element by element.
"""

from __future__ import annotations

HISTORY_SIZE = 120


class HistoryClock:
    """Write cursor shared by every history ring, advanced once per tick."""

    def __init__(self, capacity: int = HISTORY_SIZE) -> None:
        if capacity < 1:
            raise ValueError(f"capacity must be positive, got {capacity}")
        self.capacity = capacity
        self.cursor = 0
        self.ticks = 0

    def tick(self) -> None:
        self.cursor = (self.cursor + 1) % self.capacity
        self.ticks += 1

    @property
    def last_slot(self) -> int:
        """Slot written during the most recently completed tick."""
        return (self.cursor - 1) % self.capacity


class HistoryRingBuffer:
    """Circular store of one metric stream.

    ``append`` overwrites the slot under the shared cursor and does not move
    it; the owner of the clock calls ``HistoryClock.tick`` once all streams
    have been written for the tick.
    """

    def __init__(self, clock: HistoryClock | None = None, fill: float = 0.0) -> None:
        self.clock = clock if clock is not None else HistoryClock()
        self._fill = fill
        self._slots: list[float] = [fill] * self.clock.capacity

    @property
    def capacity(self) -> int:
        return self.clock.capacity

    def append(self, value: float) -> None:
        self._slots[self.clock.cursor] = value

    @property
    def latest(self) -> float:
        return self._slots[self.clock.last_slot]

    def window(self, width: int) -> list[float]:
        """Return the last *width* samples, oldest first.

        Slots that were never written read as the fill value.
        """
        width = max(0, min(width, self.capacity))
        start = (self.clock.cursor - width) % self.capacity
        return [self._slots[(start + i) % self.capacity] for i in range(width)]

    def combined(self, other: HistoryRingBuffer, ceiling: float) -> HistoryRingBuffer:
        """Element-wise sum with *other*, each slot capped at *ceiling*."""
        if other.clock is not self.clock:
            raise ValueError("histories must share a clock to be combined")
        merged = HistoryRingBuffer(self.clock, self._fill)
        merged._slots = [min(a + b, ceiling) for a, b in zip(self._slots, other._slots)]
        return merged

    def __len__(self) -> int:
        return self.capacity
