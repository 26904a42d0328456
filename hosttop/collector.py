"""Host data source: reads /proc, /sys and psutil once per tick.

CPU tick counters and disk sector counters come straight from /proc (no
sleeps, no psutil percent state); memory, network, battery and the process
list come from psutil. Each category is read independently: a category that
cannot be read this tick is reported as ``None`` and a malformed line only
drops itself.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable
from pathlib import Path
from typing import Any, TypeVar

import psutil

from hosttop.engine import (
    BatteryStatus,
    DiskCounters,
    HostSample,
    MemorySample,
    NetCounters,
)
from hosttop.processes import ProcessRecord
from hosttop.rates import DEFAULT_SECTOR_SIZE, DEFAULT_TICK_RATE, CpuTimes

logger = logging.getLogger(__name__)

SKIPPED_DISK_PREFIXES = ("loop", "ram", "dm-")

PROCESS_ATTRS = [
    "pid",
    "name",
    "cmdline",
    "status",
    "username",
    "cpu_times",
    "memory_info",
]

T = TypeVar("T")


def clock_tick_rate() -> int:
    """Scheduler ticks per second (``getconf CLK_TCK``)."""
    try:
        rate = os.sysconf("SC_CLK_TCK")
    except (ValueError, OSError, AttributeError):
        return DEFAULT_TICK_RATE
    return rate if rate > 0 else DEFAULT_TICK_RATE


# ── /proc parsers ──────────────────────────────────────────────────────────


def parse_proc_stat(text: str) -> tuple[CpuTimes | None, list[CpuTimes]]:
    """Aggregate and per-core tick counters from ``/proc/stat`` text.

    Cores missing from the file (offline) are reported with zero counters so
    core indices stay stable.
    """
    overall: CpuTimes | None = None
    per_core: dict[int, CpuTimes] = {}
    for line in text.splitlines():
        if not line.startswith("cpu"):
            continue
        parts = line.split()
        try:
            values = [int(v) for v in parts[1:9]]
        except ValueError:
            logger.debug("skipping malformed /proc/stat line: %r", line)
            continue
        if len(values) < 4:
            continue
        label = parts[0]
        if label == "cpu":
            overall = CpuTimes.from_values(values)
        elif label[3:].isdigit():
            per_core[int(label[3:])] = CpuTimes.from_values(values)

    cores: list[CpuTimes] = []
    if per_core:
        cores = [per_core.get(i, CpuTimes()) for i in range(max(per_core) + 1)]
    return overall, cores


def parse_diskstats(text: str) -> dict[str, tuple[int, int]]:
    """Map device name -> (sectors read, sectors written)."""
    disks: dict[str, tuple[int, int]] = {}
    for line in text.splitlines():
        parts = line.split()
        if len(parts) < 10:
            continue
        name = parts[2]
        if name.startswith(SKIPPED_DISK_PREFIXES):
            continue
        try:
            disks[name] = (int(parts[5]), int(parts[9]))
        except ValueError:
            logger.debug("skipping malformed /proc/diskstats line: %r", line)
    return disks


def battery_status(battery: Any) -> BatteryStatus:
    """Translate a ``psutil.sensors_battery()`` result."""
    if battery is None:
        return BatteryStatus(present=False)
    percent = int(round(battery.percent))
    if battery.power_plugged is None:
        status = "Unknown"
    elif battery.power_plugged:
        status = "Full" if percent >= 100 else "Charging"
    else:
        status = "Discharging"
    return BatteryStatus(present=True, percent=percent, status=status)


# ── Collector ──────────────────────────────────────────────────────────────


class HostCollector:
    """Pull-based provider producing one ``HostSample`` per call."""

    def __init__(self, proc_root: str | Path = "/proc", sys_root: str | Path = "/sys") -> None:
        self._proc = Path(proc_root)
        self._sys = Path(sys_root)
        self._sector_sizes: dict[str, int] = {}
        self.tick_rate = clock_tick_rate()

    def collect(self) -> HostSample:
        cpu = self._guarded("cpu", self.read_cpu)
        overall, cores = cpu if cpu is not None else (None, None)
        return HostSample(
            cpu_total=overall,
            cpu_cores=cores,
            memory=self._guarded("memory", self.read_memory),
            net=self._guarded("network", self.read_net),
            disks=self._guarded("disks", self.read_disks),
            battery=self._guarded("battery", self.read_battery),
            processes=self._guarded("processes", self.read_processes),
            tick_rate=self.tick_rate,
        )

    @staticmethod
    def _guarded(category: str, reader: Callable[[], T]) -> T | None:
        try:
            return reader()
        except (OSError, ValueError, psutil.Error) as e:
            logger.debug("%s unavailable this tick: %s", category, e)
            return None

    # ── categories ─────────────────────────────────────────────────────────

    def read_cpu(self) -> tuple[CpuTimes | None, list[CpuTimes]]:
        return parse_proc_stat((self._proc / "stat").read_text())

    def read_memory(self) -> MemorySample:
        ram = psutil.virtual_memory()
        swap = psutil.swap_memory()
        return MemorySample(
            total=ram.total // 1024,
            free=ram.free // 1024,
            available=ram.available // 1024,
            buffers=getattr(ram, "buffers", 0) // 1024,
            cached=getattr(ram, "cached", 0) // 1024,
            swap_total=swap.total // 1024,
            swap_free=swap.free // 1024,
        )

    def read_net(self) -> dict[str, NetCounters]:
        counters = psutil.net_io_counters(pernic=True)
        return {
            name: NetCounters(rx_bytes=c.bytes_recv, tx_bytes=c.bytes_sent)
            for name, c in counters.items()
        }

    def read_disks(self) -> dict[str, DiskCounters]:
        stats = parse_diskstats((self._proc / "diskstats").read_text())
        return {
            name: DiskCounters(read, write, self.sector_size(name))
            for name, (read, write) in stats.items()
        }

    def sector_size(self, device: str) -> int:
        """Hardware sector size of *device*, read once and cached."""
        size = self._sector_sizes.get(device)
        if size is None:
            path = self._sys / "block" / device / "queue" / "hw_sector_size"
            try:
                size = int(path.read_text().strip())
            except (OSError, ValueError):
                size = DEFAULT_SECTOR_SIZE
            if size <= 0:
                size = DEFAULT_SECTOR_SIZE
            self._sector_sizes[device] = size
        return size

    def read_battery(self) -> BatteryStatus:
        try:
            battery = psutil.sensors_battery()
        except AttributeError:
            return BatteryStatus(present=False)
        return battery_status(battery)

    def read_processes(self) -> list[ProcessRecord]:
        records: list[ProcessRecord] = []
        for proc in psutil.process_iter(attrs=PROCESS_ATTRS):
            try:
                record = self._process_record(proc.info)
            except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
                continue
            except (KeyError, TypeError, ValueError) as e:
                logger.debug("skipping malformed process entry: %s", e)
                continue
            records.append(record)
        return records

    def _process_record(self, info: dict[str, Any]) -> ProcessRecord:
        name = info.get("name") or ""
        cmdline = info.get("cmdline") or []
        times = info.get("cpu_times")
        mem = info.get("memory_info")
        return ProcessRecord(
            pid=int(info["pid"]),
            name=name,
            cmdline=" ".join(cmdline) if cmdline else name,
            user=info.get("username") or "?",
            state=info.get("status") or "?",
            utime=round(times.user * self.tick_rate) if times else 0,
            stime=round(times.system * self.tick_rate) if times else 0,
            rss_kib=mem.rss // 1024 if mem else 0,
        )
