"""Screen layout: terminal size + pane visibility -> non-overlapping regions.

Everything here is a pure function of its arguments. The dashboard calls
``compute_layout`` on every resize, pane toggle or core-count change and
draws each pane into the region it is handed.

Screen structure (rows)::

    0            top bar
    1..          CPU band (full width)
    ..           bottom band: memory/disk/network stack | process list
    height - 1   help bar
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

# ── Constants ──────────────────────────────────────────────────────────────

TOP_BAR_ROWS = 1
HELP_BAR_ROWS = 1

MIN_SCREEN_WIDTH = 80
MIN_SCREEN_HEIGHT = 10

CPU_MIN_ROWS = 5
LEFT_PANE_MIN_ROWS = 4
PROC_MIN_ROWS = 6
BOTTOM_MIN_ROWS = 6

# Rows the bottom band should keep before the CPU band may grow.
PROC_USEFUL_ROWS = 10
LEFT_STACK_ALLOWANCE = 3

LEFT_MIN_COLS = 20
PROC_MIN_COLS = 45
MARGIN_COLS = 4

LEFT_SHARE_PERCENT = 35
LEFT_FLOOR_COLS = 18
PROC_FLOOR_COLS = 40

CPU_GRAPH_MAX_COLS = 60
TWO_LINE_EXTRA_COLS = 12
SINGLE_LINE_EXTRA_COLS = 6


class Pane(Enum):
    """Dashboard sections, in hotkey order."""

    CPU = "cpu"
    MEMORY = "mem"
    DISK = "disks"
    NETWORK = "net"
    PROCESSES = "proc"

    @property
    def hotkey(self) -> str:
        return str(list(Pane).index(self) + 1)

    @property
    def title(self) -> str:
        return _PANE_TITLES[self]


_PANE_TITLES = {
    Pane.CPU: "CPU",
    Pane.MEMORY: "Memory",
    Pane.DISK: "Disk",
    Pane.NETWORK: "Network",
    Pane.PROCESSES: "Processes",
}

LEFT_STACK = (Pane.MEMORY, Pane.DISK, Pane.NETWORK)


# ── Data types ─────────────────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class PaneVisibility:
    cpu: bool = True
    mem: bool = True
    disks: bool = True
    net: bool = True
    proc: bool = True

    def is_visible(self, pane: Pane) -> bool:
        return bool(getattr(self, pane.value))

    def toggled(self, pane: Pane) -> PaneVisibility:
        values = self.to_config()
        values[pane.value] = not values[pane.value]
        return PaneVisibility(**values)

    def left_panes(self) -> list[Pane]:
        return [p for p in LEFT_STACK if self.is_visible(p)]

    @property
    def any_bottom(self) -> bool:
        return self.proc or bool(self.left_panes())

    @classmethod
    def from_config(cls, panes: dict[str, Any]) -> PaneVisibility:
        return cls(**{p.value: bool(panes.get(p.value, True)) for p in Pane})

    def to_config(self) -> dict[str, bool]:
        return {p.value: self.is_visible(p) for p in Pane}


@dataclass(frozen=True, slots=True)
class Region:
    """Rectangle of character cells assigned to one pane."""

    pane: Pane
    x: int
    y: int
    width: int
    height: int

    @property
    def right(self) -> int:
        return self.x + self.width

    @property
    def bottom(self) -> int:
        return self.y + self.height

    def overlaps(self, other: Region) -> bool:
        return (
            self.x < other.right
            and other.x < self.right
            and self.y < other.bottom
            and other.y < self.bottom
        )

    def contains(self, width: int, height: int) -> bool:
        """True if the region lies inside a *width* x *height* screen."""
        return self.x >= 0 and self.y >= 0 and self.right <= width and self.bottom <= height


@dataclass(frozen=True, slots=True)
class CoreGrid:
    """Arrangement of per-core meters inside the CPU band."""

    two_line: bool
    per_row: int
    rows: int  # row groups; a two-line group spans two screen rows
    item_width: int
    label_width: int
    shown: int

    @property
    def lines_per_core(self) -> int:
        return 2 if self.two_line else 1

    def position(self, index: int) -> tuple[int, int]:
        """Column/row offset of core *index* from the top-left of the grid."""
        col = index % self.per_row
        group = index // self.per_row
        return col * self.item_width, group * self.lines_per_core


@dataclass(frozen=True, slots=True)
class CpuBandGeometry:
    graph_rows: int
    graph_cols: int
    core_rows: int
    core_cols: int

    @property
    def core_offset(self) -> int:
        """Rows between the band top and the first core row."""
        return 1 + self.graph_rows


@dataclass(frozen=True)
class Layout:
    width: int
    height: int
    insufficient: bool = False
    required: tuple[int, int] = (0, 0)
    regions: dict[Pane, Region] = field(default_factory=dict)
    cpu_grid: CoreGrid | None = None

    def region(self, pane: Pane) -> Region | None:
        return self.regions.get(pane)


# ── Minimum size ───────────────────────────────────────────────────────────


def minimum_size(visibility: PaneVisibility) -> tuple[int, int]:
    """Smallest (width, height) that renders the visible panes unclipped."""
    min_w = MIN_SCREEN_WIDTH
    content_h = 0

    if visibility.cpu:
        content_h += CPU_MIN_ROWS

    left_count = len(visibility.left_panes())
    if visibility.any_bottom:
        left_h = left_count * LEFT_PANE_MIN_ROWS
        proc_h = PROC_MIN_ROWS if visibility.proc else 0
        content_h += max(left_h, proc_h, BOTTOM_MIN_ROWS)

        proc_w = PROC_MIN_COLS if visibility.proc else 0
        left_w = LEFT_MIN_COLS if left_count else 0
        min_w = max(min_w, left_w + proc_w + MARGIN_COLS)

    min_h = max(MIN_SCREEN_HEIGHT, TOP_BAR_ROWS + HELP_BAR_ROWS + content_h)
    return min_w, min_h


# ── Core grid ──────────────────────────────────────────────────────────────


def core_label_width(core_count: int) -> int:
    if core_count >= 100:
        return 4
    if core_count >= 10:
        return 3
    return 2


def select_core_grid(core_count: int, rows: int, cols: int) -> CoreGrid:
    """Pick the per-core meter arrangement for a *rows* x *cols* area.

    The two-line form (label, bar, percentage, then a sparkline) is used when
    every core fits at the densest width-wise packing. Among the column
    counts that still fit it prefers one that fills every row equally, and
    otherwise keeps the widest. If two-line does not fit, a one-line compact
    grid shows as many cores as fit and silently drops the rest.
    """
    label_w = core_label_width(core_count)
    if core_count <= 0 or rows <= 0 or cols <= 0:
        return CoreGrid(False, 1, 0, label_w + SINGLE_LINE_EXTRA_COLS, label_w, 0)

    two_item = label_w + TWO_LINE_EXTRA_COLS
    max_per_row = max(1, cols // two_item)
    min_groups = math.ceil(core_count / max_per_row)

    if rows >= min_groups * 2:
        per_row = max_per_row
        for candidate in range(max_per_row, 0, -1):
            groups = math.ceil(core_count / candidate)
            if groups * 2 > rows:
                break
            if core_count % candidate == 0:
                per_row = candidate
                break
        groups = math.ceil(core_count / per_row)
        item_w = max(two_item, cols // per_row)
        return CoreGrid(True, per_row, groups, item_w, label_w, core_count)

    single_item = label_w + SINGLE_LINE_EXTRA_COLS
    per_row = max(1, cols // single_item)
    shown = min(core_count, per_row * rows)
    groups = math.ceil(shown / per_row)
    return CoreGrid(False, per_row, groups, single_item, label_w, shown)


def cpu_band_geometry(region: Region) -> CpuBandGeometry:
    """Split the CPU band into header row, history graph and core area.

    The last row of the band is left empty as a separator.
    """
    if region.height < 4:
        return CpuBandGeometry(0, 0, 0, 0)
    graph_rows = 2 if region.height > 8 else 1
    graph_cols = max(0, min(region.width - 2, CPU_GRAPH_MAX_COLS))
    core_rows = max(0, region.height - 2 - graph_rows)
    core_cols = max(0, region.width - 2)
    return CpuBandGeometry(graph_rows, graph_cols, core_rows, core_cols)


# ── Layout ─────────────────────────────────────────────────────────────────


def _split_vertical(available: int, visibility: PaneVisibility) -> tuple[int, int]:
    """Return (cpu_height, bottom_height)."""
    has_bottom = visibility.any_bottom
    cpu_h = 0
    if visibility.cpu:
        if not has_bottom:
            return available, 0
        cpu_h = CPU_MIN_ROWS
        needed_for_bottom = PROC_USEFUL_ROWS + (
            LEFT_STACK_ALLOWANCE if visibility.left_panes() else 0
        )
        if available > cpu_h + needed_for_bottom:
            extra = available - cpu_h - needed_for_bottom
            cpu_h += extra // 4
            cpu_h = min(cpu_h, available // 3)

    bottom_h = available - cpu_h
    if has_bottom and bottom_h < BOTTOM_MIN_ROWS:
        if visibility.cpu:
            cpu_h = available - BOTTOM_MIN_ROWS
            if cpu_h < 3:
                cpu_h = 0
        bottom_h = available - cpu_h
    return cpu_h, bottom_h


def _split_horizontal(width: int, left_count: int, show_proc: bool) -> tuple[int, int]:
    """Return (left_width, proc_width) for the bottom band."""
    if show_proc and left_count == 0:
        return 0, width - 2
    if not show_proc and left_count > 0:
        return width - 2, 0
    if not show_proc:
        return 0, 0

    inner = width - 3  # one column margin each side plus a gap
    left_w = max(inner * LEFT_SHARE_PERCENT // 100, LEFT_FLOOR_COLS)
    proc_w = inner - left_w
    if proc_w < PROC_FLOOR_COLS:
        proc_w = PROC_FLOOR_COLS
        left_w = inner - proc_w
    return left_w, proc_w


def _stack_left(panes: list[Pane], x: int, y: int, width: int, height: int) -> list[Region]:
    regions: list[Region] = []
    if not panes or width <= 0:
        return regions
    remaining = height
    base = height // len(panes)
    for i, pane in enumerate(panes):
        if remaining <= 0:
            break
        if i == len(panes) - 1:
            pane_h = remaining
        else:
            pane_h = base
            if pane_h < LEFT_PANE_MIN_ROWS:
                pane_h = remaining
            pane_h = min(pane_h, remaining)
        regions.append(Region(pane, x, y, width, pane_h))
        y += pane_h
        remaining -= pane_h
    return regions


def compute_layout(
    width: int,
    height: int,
    visibility: PaneVisibility,
    core_count: int,
) -> Layout:
    """Assign a region to every visible pane, or report insufficient space."""
    required = minimum_size(visibility)
    if width < required[0] or height < required[1]:
        return Layout(width, height, insufficient=True, required=required)

    available = height - TOP_BAR_ROWS - HELP_BAR_ROWS
    cpu_h, bottom_h = _split_vertical(available, visibility)

    regions: dict[Pane, Region] = {}
    cpu_grid: CoreGrid | None = None
    y = TOP_BAR_ROWS

    if visibility.cpu and cpu_h > 0:
        cpu_region = Region(Pane.CPU, 1, y, width - 2, cpu_h)
        regions[Pane.CPU] = cpu_region
        band = cpu_band_geometry(cpu_region)
        cpu_grid = select_core_grid(core_count, band.core_rows, band.core_cols)
        y += cpu_h

    left = visibility.left_panes()
    left_w, proc_w = _split_horizontal(width, len(left), visibility.proc)

    if bottom_h > 0:
        for region in _stack_left(left, 1, y, left_w, bottom_h):
            regions[region.pane] = region
        if visibility.proc and proc_w > 0:
            proc_x = left_w + 2 if left else 1
            regions[Pane.PROCESSES] = Region(Pane.PROCESSES, proc_x, y, proc_w, bottom_h)

    return Layout(width, height, required=required, regions=regions, cpu_grid=cpu_grid)
