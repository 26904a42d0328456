"""Process table: per-process CPU deltas, smoothing, ordering and selection."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from enum import IntEnum

from hosttop.rates import counter_delta, process_cpu_percent, smooth_cpu

logger = logging.getLogger(__name__)

RUNNING_STATE = "running"
PAGE_SIZE = 10


class SortMode(IntEnum):
    """Process ordering; the ordinal is what the config file stores."""

    CPU_LAZY = 0
    CPU_DIRECT = 1
    MEMORY = 2
    PID = 3
    NAME = 4

    @property
    def label(self) -> str:
        return _SORT_LABELS[self]

    def next(self) -> SortMode:
        return SortMode((self + 1) % len(SortMode))

    def previous(self) -> SortMode:
        return SortMode((self - 1) % len(SortMode))


_SORT_LABELS = {
    SortMode.CPU_LAZY: "CPU-L",
    SortMode.CPU_DIRECT: "CPU-D",
    SortMode.MEMORY: "Mem",
    SortMode.PID: "PID",
    SortMode.NAME: "Name",
}


# ── Data types ─────────────────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class ProcessRecord:
    """One process as enumerated by the data source this tick."""

    pid: int
    name: str
    cmdline: str
    user: str
    state: str
    utime: int  # cumulative clock ticks
    stime: int
    rss_kib: int

    @property
    def cpu_ticks(self) -> int:
        return self.utime + self.stime


@dataclass(frozen=True, slots=True)
class ProcessSnapshot:
    """A process with its derived CPU and memory shares for one tick."""

    pid: int
    name: str
    cmdline: str
    user: str
    state: str
    rss_kib: int
    cpu_ticks: int
    cpu_direct: float
    cpu_lazy: float
    mem_percent: float


def _sort_key(mode: SortMode):
    if mode is SortMode.CPU_LAZY:
        return lambda p: (-p.cpu_lazy, p.pid)
    if mode is SortMode.CPU_DIRECT:
        return lambda p: (-p.cpu_direct, p.pid)
    if mode is SortMode.MEMORY:
        return lambda p: (-p.rss_kib, p.pid)
    if mode is SortMode.NAME:
        return lambda p: (p.name.lower(), p.pid)
    return lambda p: p.pid


def sort_processes(
    snapshots: Iterable[ProcessSnapshot], mode: SortMode
) -> list[ProcessSnapshot]:
    """Order *snapshots* by *mode*; equal keys fall back to pid ascending."""
    return sorted(snapshots, key=_sort_key(mode))


# ── Table ──────────────────────────────────────────────────────────────────


class ProcessTable:
    """Current process set, rebuilt from a full enumeration every tick.

    Only the previous tick's cumulative ticks and lazy CPU value are carried
    forward, keyed by pid. A pid missing from the new enumeration is gone.
    """

    def __init__(self, sort_mode: SortMode = SortMode.CPU_LAZY) -> None:
        self.sort_mode = sort_mode
        self.processes: list[ProcessSnapshot] = []
        self.running_count = 0
        self._by_pid: dict[int, ProcessSnapshot] = {}
        # pids whose lazy value has been seeded by a real tick delta
        self._seeded: set[int] = set()

    def __len__(self) -> int:
        return len(self.processes)

    def get(self, pid: int) -> ProcessSnapshot | None:
        return self._by_pid.get(pid)

    def rebuild(
        self,
        records: Iterable[ProcessRecord],
        *,
        elapsed_seconds: float,
        tick_rate: int | float,
        core_count: int,
        total_mem_kib: int,
    ) -> list[ProcessSnapshot]:
        current: dict[int, ProcessSnapshot] = {}
        seeded: set[int] = set()
        running = 0

        for rec in records:
            if rec.pid in current:
                logger.debug("duplicate pid %d in enumeration, keeping first", rec.pid)
                continue

            ticks = rec.cpu_ticks
            prior = self._by_pid.get(rec.pid)
            if prior is None:
                direct = 0.0
                lazy = 0.0
            else:
                delta = int(counter_delta(prior.cpu_ticks, ticks))
                direct = process_cpu_percent(delta, tick_rate, elapsed_seconds, core_count)
                baseline = prior.cpu_lazy if rec.pid in self._seeded else None
                lazy = smooth_cpu(baseline, direct)
                seeded.add(rec.pid)

            mem_percent = rec.rss_kib / total_mem_kib * 100.0 if total_mem_kib > 0 else 0.0

            current[rec.pid] = ProcessSnapshot(
                pid=rec.pid,
                name=rec.name,
                cmdline=rec.cmdline or rec.name,
                user=rec.user,
                state=rec.state,
                rss_kib=rec.rss_kib,
                cpu_ticks=ticks,
                cpu_direct=direct,
                cpu_lazy=lazy,
                mem_percent=mem_percent,
            )
            if rec.state == RUNNING_STATE:
                running += 1

        self._by_pid = current
        self._seeded = seeded
        self.running_count = running
        self.processes = sort_processes(current.values(), self.sort_mode)
        return self.processes

    def resort(self, mode: SortMode) -> None:
        self.sort_mode = mode
        self.processes = sort_processes(self.processes, mode)


# ── Selection ──────────────────────────────────────────────────────────────


@dataclass
class SelectionCursor:
    """Selected row of the process list and the first visible row."""

    selected: int = 0
    scroll: int = 0

    def clamp(self, count: int) -> int:
        if count <= 0:
            self.selected = 0
        else:
            self.selected = max(0, min(self.selected, count - 1))
        return self.selected

    def move(self, delta: int, count: int) -> int:
        self.selected += delta
        return self.clamp(count)

    def page_down(self, count: int) -> int:
        return self.move(PAGE_SIZE, count)

    def page_up(self, count: int) -> int:
        return self.move(-PAGE_SIZE, count)

    def home(self) -> int:
        self.selected = 0
        return self.selected

    def end(self, count: int) -> int:
        self.selected = max(0, count - 1)
        return self.selected

    def follow(self, viewport_rows: int) -> int:
        """Scroll the least amount needed to keep the selection visible."""
        if viewport_rows <= 0:
            return self.scroll
        if self.selected < self.scroll:
            self.scroll = self.selected
        elif self.selected >= self.scroll + viewport_rows:
            self.scroll = self.selected - viewport_rows + 1
        return self.scroll
