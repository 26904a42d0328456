"""Rate computation from cumulative counter snapshots.

Every OS counter consumed here only ever grows, so an instantaneous value
is derived by differencing two successive samples. A counter that moves
backwards (wraparound, device reset) produces a zero delta rather than a
negative rate.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields

from hosttop.history import HistoryClock, HistoryRingBuffer

# ── Constants ──────────────────────────────────────────────────────────────

LAZY_WEIGHT = 0.3
DEFAULT_SECTOR_SIZE = 512
DEFAULT_TICK_RATE = 100


# ── Data types ─────────────────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class CpuTimes:
    """Cumulative scheduler ticks per category for one core (or all cores)."""

    user: int = 0
    nice: int = 0
    system: int = 0
    idle: int = 0
    iowait: int = 0
    irq: int = 0
    softirq: int = 0
    steal: int = 0

    @property
    def total(self) -> int:
        return sum(getattr(self, f.name) for f in fields(self))

    @property
    def idle_all(self) -> int:
        return self.idle + self.iowait

    @property
    def busy(self) -> int:
        return self.total - self.idle_all

    @classmethod
    def from_values(cls, values: list[int]) -> CpuTimes:
        """Build from the leading columns of a ``/proc/stat`` cpu line.

        Kernels older than 2.6.11 report fewer columns; missing ones are 0.
        """
        padded = list(values[:8]) + [0] * (8 - min(len(values), 8))
        return cls(*padded)


# ── Pure rate functions ────────────────────────────────────────────────────


def counter_delta(prev: int | float, curr: int | float) -> int | float:
    """Difference of two cumulative counter readings, never negative."""
    return max(0, curr - prev)


def cpu_percent(prev: CpuTimes | None, curr: CpuTimes, previous_percent: float) -> float:
    """Busy share of the ticks elapsed between *prev* and *curr*.

    Returns *previous_percent* unchanged when there is no predecessor or no
    ticks elapsed, so a stalled counter holds the last reading instead of
    dropping to zero.
    """
    if prev is None:
        return previous_percent
    delta_total = counter_delta(prev.total, curr.total)
    if delta_total <= 0:
        return previous_percent
    delta_idle = counter_delta(prev.idle_all, curr.idle_all)
    delta_busy = max(0, delta_total - delta_idle)
    return delta_busy / delta_total * 100.0


def process_cpu_percent(
    delta_ticks: int,
    tick_rate: int | float,
    elapsed_seconds: float,
    core_count: int,
) -> float:
    """Share of total machine capacity used by a process during the tick.

    A process saturating every core of an 8-core box reads 100, not 800.
    """
    if core_count <= 0 or elapsed_seconds <= 0 or tick_rate <= 0:
        return 0.0
    return max(0, delta_ticks) / (tick_rate * elapsed_seconds * core_count) * 100.0


def smooth_cpu(previous_lazy: float | None, raw: float) -> float:
    """Exponential moving average used for the "lazy" CPU column.

    A process seen for the first time starts at its raw value.
    """
    if previous_lazy is None:
        return raw
    return previous_lazy * (1.0 - LAZY_WEIGHT) + raw * LAZY_WEIGHT


def usage_percent(total: int, available: int) -> float | None:
    """``(total - available) / total`` as a percentage, None if total is unknown."""
    if total <= 0:
        return None
    used = max(0, total - available)
    return used / total * 100.0


def sector_bytes(delta_sectors: int, sector_size: int | None) -> int:
    size = sector_size if sector_size and sector_size > 0 else DEFAULT_SECTOR_SIZE
    return max(0, delta_sectors) * size


def transfer_speed_kib(prev: int, curr: int, elapsed_seconds: float) -> float:
    """Transfer speed in KiB/s between two byte counter readings.

    With no usable elapsed time the per-tick KiB delta is returned as is.
    """
    kib = counter_delta(prev, curr) / 1024.0
    if elapsed_seconds <= 0:
        return kib
    return kib / elapsed_seconds


# ── Per-core state ─────────────────────────────────────────────────────────


@dataclass
class CoreStat:
    """Current percentage and history for one core or the aggregate."""

    clock: HistoryClock
    percent: float = 0.0
    prev: CpuTimes | None = None
    history: HistoryRingBuffer = field(init=False)

    def __post_init__(self) -> None:
        self.history = HistoryRingBuffer(self.clock, 0.0)

    def update(self, curr: CpuTimes | None) -> float:
        """Fold in a new sample (or none) and record this tick's percentage."""
        if curr is not None:
            self.percent = cpu_percent(self.prev, curr, self.percent)
            self.prev = curr
        self.history.append(self.percent)
        return self.percent
