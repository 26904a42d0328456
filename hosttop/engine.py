"""Engine context: owns all metric state and runs one refresh tick.

Control flow per tick::

    HostSample -> CPU / memory / network / disk rates -> histories
               -> process table rebuild + sort -> selection clamp
               -> history clock advances

A category the source could not read this tick arrives as ``None``; its
last known value is kept and re-recorded so every history stays aligned on
the shared clock.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from hosttop.history import HistoryClock, HistoryRingBuffer
from hosttop.processes import ProcessRecord, ProcessTable, SelectionCursor, SortMode
from hosttop.rates import (
    DEFAULT_TICK_RATE,
    CoreStat,
    CpuTimes,
    counter_delta,
    sector_bytes,
    transfer_speed_kib,
    usage_percent,
)

logger = logging.getLogger(__name__)

LOOPBACK_INTERFACES = frozenset({"lo"})
DEFAULT_INTERVAL_SECONDS = 1.0


# ── Source data types ──────────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class MemorySample:
    """``/proc/meminfo`` style figures, all in KiB."""

    total: int
    free: int
    available: int
    buffers: int = 0
    cached: int = 0
    swap_total: int = 0
    swap_free: int = 0


@dataclass(frozen=True, slots=True)
class NetCounters:
    rx_bytes: int
    tx_bytes: int


@dataclass(frozen=True, slots=True)
class DiskCounters:
    read_sectors: int
    write_sectors: int
    sector_size: int = 512


@dataclass(frozen=True, slots=True)
class BatteryStatus:
    present: bool
    percent: int = 0
    status: str = ""  # "Charging", "Discharging", "Full", ...


@dataclass
class HostSample:
    """Everything the data source read during one tick."""

    cpu_total: CpuTimes | None = None
    cpu_cores: list[CpuTimes] | None = None
    memory: MemorySample | None = None
    net: dict[str, NetCounters] | None = None
    disks: dict[str, DiskCounters] | None = None
    battery: BatteryStatus | None = None
    processes: list[ProcessRecord] | None = None
    tick_rate: int = DEFAULT_TICK_RATE


# ── Derived state ──────────────────────────────────────────────────────────


@dataclass
class DiskStat:
    name: str
    clock: HistoryClock
    counters: DiskCounters | None = None
    read_speed: float = 0.0  # KiB/s
    write_speed: float = 0.0
    history_read: HistoryRingBuffer = field(init=False)
    history_write: HistoryRingBuffer = field(init=False)

    def __post_init__(self) -> None:
        self.history_read = HistoryRingBuffer(self.clock, 0.0)
        self.history_write = HistoryRingBuffer(self.clock, 0.0)

    def update(self, curr: DiskCounters, elapsed_seconds: float) -> None:
        if self.counters is not None:
            size = curr.sector_size
            read_bytes = sector_bytes(
                int(counter_delta(self.counters.read_sectors, curr.read_sectors)), size
            )
            write_bytes = sector_bytes(
                int(counter_delta(self.counters.write_sectors, curr.write_sectors)), size
            )
            self.read_speed = transfer_speed_kib(0, read_bytes, elapsed_seconds)
            self.write_speed = transfer_speed_kib(0, write_bytes, elapsed_seconds)
        self.counters = curr
        self.history_read.append(self.read_speed)
        self.history_write.append(self.write_speed)

    def combined_history(self, ceiling: float) -> HistoryRingBuffer:
        return self.history_read.combined(self.history_write, ceiling)


@dataclass
class MemoryStat:
    sample: MemorySample | None = None
    percent: float = 0.0
    swap_percent: float = 0.0

    @property
    def used_kib(self) -> int:
        if self.sample is None:
            return 0
        return max(0, self.sample.total - self.sample.available)

    @property
    def cached_kib(self) -> int:
        if self.sample is None:
            return 0
        return self.sample.cached + self.sample.buffers


@dataclass
class NetStat:
    rx_total: int | None = None
    tx_total: int | None = None
    rx_speed: float = 0.0  # KiB/s
    tx_speed: float = 0.0


# ── Engine ─────────────────────────────────────────────────────────────────


class EngineContext:
    """All dashboard metric state, owned by the main loop.

    Pass the same instance to every refresh; nothing here is global.
    """

    def __init__(
        self,
        sort_mode: SortMode = SortMode.CPU_LAZY,
        interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
    ) -> None:
        self.clock = HistoryClock()
        self.interval_seconds = interval_seconds
        self.overall = CoreStat(self.clock)
        self.cores: list[CoreStat] = []
        self.memory = MemoryStat()
        self.mem_history: HistoryRingBuffer = HistoryRingBuffer(self.clock, 0.0)
        self.net = NetStat()
        self.net_history_rx: HistoryRingBuffer = HistoryRingBuffer(self.clock, 0.0)
        self.net_history_tx: HistoryRingBuffer = HistoryRingBuffer(self.clock, 0.0)
        self.disks: dict[str, DiskStat] = {}
        self.battery = BatteryStatus(present=False)
        self.table = ProcessTable(sort_mode)
        self.selection = SelectionCursor()
        self.tick_rate = DEFAULT_TICK_RATE
        self.last_update: float | None = None
        self.elapsed_seconds = interval_seconds

    # ── properties ─────────────────────────────────────────────────────────

    @property
    def core_count(self) -> int:
        return len(self.cores)

    @property
    def sort_mode(self) -> SortMode:
        return self.table.sort_mode

    def set_sort_mode(self, mode: SortMode) -> None:
        self.table.resort(mode)

    # ── tick ───────────────────────────────────────────────────────────────

    def refresh(self, sample: HostSample, now: float) -> None:
        """Fold one sample into the engine state."""
        if self.last_update is None:
            elapsed = self.interval_seconds
        else:
            elapsed = now - self.last_update
            if elapsed <= 0:
                elapsed = 1.0
        self.elapsed_seconds = elapsed
        self.last_update = now

        self._update_cpu(sample)
        self._update_memory(sample.memory)
        self._update_net(sample.net, elapsed)
        self._update_disks(sample.disks, elapsed)
        if sample.battery is not None:
            self.battery = sample.battery
        if sample.tick_rate > 0:
            self.tick_rate = sample.tick_rate
        self._update_processes(sample.processes, elapsed)

        self.selection.clamp(len(self.table))
        self.clock.tick()

    def _update_cpu(self, sample: HostSample) -> None:
        self.overall.update(sample.cpu_total)
        if sample.cpu_cores is not None:
            while len(self.cores) < len(sample.cpu_cores):
                self.cores.append(CoreStat(self.clock))
            for core, times in zip(self.cores, sample.cpu_cores):
                core.update(times)
            for core in self.cores[len(sample.cpu_cores):]:
                core.update(None)
        else:
            for core in self.cores:
                core.update(None)

    def _update_memory(self, sample: MemorySample | None) -> None:
        if sample is not None:
            self.memory.sample = sample
            percent = usage_percent(sample.total, sample.available)
            if percent is not None:
                self.memory.percent = percent
            swap = usage_percent(sample.swap_total, sample.swap_free)
            self.memory.swap_percent = swap if swap is not None else 0.0
        self.mem_history.append(self.memory.percent)

    def _update_net(self, counters: dict[str, NetCounters] | None, elapsed: float) -> None:
        if counters is not None:
            rx = sum(c.rx_bytes for name, c in counters.items() if name not in LOOPBACK_INTERFACES)
            tx = sum(c.tx_bytes for name, c in counters.items() if name not in LOOPBACK_INTERFACES)
            if self.net.rx_total is not None and self.net.tx_total is not None:
                self.net.rx_speed = transfer_speed_kib(self.net.rx_total, rx, elapsed)
                self.net.tx_speed = transfer_speed_kib(self.net.tx_total, tx, elapsed)
            self.net.rx_total = rx
            self.net.tx_total = tx
        self.net_history_rx.append(self.net.rx_speed)
        self.net_history_tx.append(self.net.tx_speed)

    def _update_disks(self, counters: dict[str, DiskCounters] | None, elapsed: float) -> None:
        if counters is not None:
            refreshed: dict[str, DiskStat] = {}
            for name, curr in counters.items():
                stat = self.disks.get(name) or DiskStat(name, self.clock)
                stat.update(curr, elapsed)
                refreshed[name] = stat
            gone = self.disks.keys() - refreshed.keys()
            if gone:
                logger.debug("disks removed: %s", ", ".join(sorted(gone)))
            self.disks = refreshed
        else:
            for stat in self.disks.values():
                stat.history_read.append(stat.read_speed)
                stat.history_write.append(stat.write_speed)

    def _update_processes(self, records: list[ProcessRecord] | None, elapsed: float) -> None:
        if records is None:
            return
        total_mem = self.memory.sample.total if self.memory.sample else 0
        self.table.rebuild(
            records,
            elapsed_seconds=elapsed,
            tick_rate=self.tick_rate,
            core_count=self.core_count,
            total_mem_kib=total_mem,
        )
