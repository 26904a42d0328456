"""Interactive terminal dashboard: hosttop's btop-inspired host monitor.

Draws CPU (overall graph + per-core grid), memory, disk, network and a
scrollable process list using curses. Pane positions come from
``hosttop.layout``; all numbers come from an ``EngineContext`` refreshed
once per tick.

Usage:
    hosttop
    hosttop --interval 2000 --config path/to/config.toml
    python -m hosttop.dashboard
"""

from __future__ import annotations

import argparse
import curses
import logging
import os
import sys
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from hosttop.collector import HostCollector
from hosttop.config import config_dir, load_config, save_config, valid_refresh_ms
from hosttop.controller import ESC, Controller, Outcome, time_until_refresh, translate_key
from hosttop.engine import EngineContext
from hosttop.layout import (
    CoreGrid,
    Layout,
    Pane,
    PaneVisibility,
    Region,
    compute_layout,
    cpu_band_geometry,
)
from hosttop.processes import SortMode

logger = logging.getLogger(__name__)

VERSION = "1.0.0"

# ── Constants ──────────────────────────────────────────────────────────────

SPARK = "▁▂▃▄▅▆▇█"
BAR_FILL = "█"
SUPERSCRIPT = {Pane.CPU: "¹", Pane.MEMORY: "²", Pane.DISK: "³", Pane.NETWORK: "⁴", Pane.PROCESSES: "⁵"}

# Speed graphs are drawn on a fixed 0..10 MiB/s scale.
SPEED_GRAPH_CEILING_KIB = 10000.0

HELP_TEXT = "1-5:toggle | C-f/b:sort | C-n/p:nav | C-v/M-v:page | C-a/e:home/end | q:quit"

PROC_PID_WIDTH = 8
PROC_CPU_WIDTH = 6
PROC_MEM_WIDTH = 8
PROC_PROG_MIN_WIDTH = 8
PROC_CMD_MIN_WIDTH = 8
PROC_USER_MIN_WIDTH = 6
PROC_COLUMN_SPACING = 4

# Curses colour-pair IDs
C_NORMAL = 1
C_WARNING = 2
C_CRITICAL = 3
C_TITLE = 4
C_DIM = 5
C_BLUE = 6
C_MAGENTA = 7
C_RED = 8


# ── Colour helpers ─────────────────────────────────────────────────────────


def _init_colors() -> None:
    curses.start_color()
    curses.use_default_colors()
    curses.init_pair(C_NORMAL, curses.COLOR_GREEN, -1)
    curses.init_pair(C_WARNING, curses.COLOR_YELLOW, -1)
    curses.init_pair(C_CRITICAL, curses.COLOR_RED, -1)
    curses.init_pair(C_TITLE, curses.COLOR_CYAN, -1)
    curses.init_pair(C_DIM, curses.COLOR_WHITE, -1)
    curses.init_pair(C_BLUE, curses.COLOR_BLUE, -1)
    curses.init_pair(C_MAGENTA, curses.COLOR_MAGENTA, -1)
    curses.init_pair(C_RED, curses.COLOR_RED, -1)


def _severity_color(value: float, warn: float, crit: float) -> int:
    if value >= crit:
        return C_CRITICAL
    if value >= warn:
        return C_WARNING
    return C_NORMAL


def _usage_color(pct: float) -> int:
    return _severity_color(pct, 50.0, 80.0)


# ── Formatting helpers ─────────────────────────────────────────────────────


def fmt_bytes(n: int | float) -> str:
    """Human-readable byte count (binary prefixes)."""
    v = float(n)
    for unit in ("B", "KiB", "MiB", "GiB"):
        if abs(v) < 1024:
            return f"{v:.2f} {unit}"
        v /= 1024
    return f"{v:.2f} TiB"


def fmt_speed(kib_per_s: float) -> str:
    """Human-readable transfer speed from KiB/s."""
    if kib_per_s >= 1024 * 1024:
        return f"{kib_per_s / (1024 * 1024):.2f} GiB/s"
    if kib_per_s >= 1024:
        return f"{kib_per_s / 1024:.2f} MiB/s"
    return f"{kib_per_s:.2f} KiB/s"


def mini_bar(width: int, pct: float) -> str:
    """Horizontal bar of *width* cells with a partial block at the edge."""
    if width <= 0:
        return ""
    exact = max(0.0, min(pct, 100.0)) / 100.0 * width
    filled = int(exact)
    cells = BAR_FILL * filled
    if filled < width:
        frac = int((exact - filled) * 7)
        cells += SPARK[frac] if frac > 0 else " "
    return cells.ljust(width)[:width]


def sparkline(values: list[float], max_val: float = 100.0) -> str:
    """One character per value, scaled against *max_val*."""
    chars: list[str] = []
    for v in values:
        idx = int(min(max(v, 0.0) / max_val, 1.0) * (len(SPARK) - 1)) if max_val > 0 else 0
        chars.append(SPARK[idx])
    return "".join(chars)


def graph_rows(values: list[float], height: int, max_val: float = 100.0) -> list[str]:
    """Render *values* as a column graph *height* rows tall, top row first."""
    if height <= 0:
        return []
    rows = [[" "] * len(values) for _ in range(height)]
    for col, v in enumerate(values):
        level = min(max(v, 0.0) / max_val, 1.0) * height if max_val > 0 else 0.0
        full = int(level)
        frac = int((level - full) * 7)
        for r in range(height):
            if r < full:
                rows[height - 1 - r][col] = BAR_FILL
            elif r == full and frac > 0:
                rows[height - 1 - r][col] = SPARK[frac - 1]
    return ["".join(row) for row in rows]


@dataclass(frozen=True, slots=True)
class ProcessColumns:
    prog: int
    cmd: int
    user: int
    show_cmd: bool
    show_user: bool


def process_columns(width: int) -> ProcessColumns:
    """Variable column widths; command, then user, are dropped when narrow."""
    fixed = PROC_PID_WIDTH + PROC_MEM_WIDTH + PROC_CPU_WIDTH + PROC_COLUMN_SPACING
    var = width - fixed
    if var < PROC_PROG_MIN_WIDTH + PROC_USER_MIN_WIDTH:
        return ProcessColumns(max(6, var - 1), 0, 0, False, False)
    if var < PROC_PROG_MIN_WIDTH + PROC_CMD_MIN_WIDTH + PROC_USER_MIN_WIDTH:
        prog = max(PROC_PROG_MIN_WIDTH, var * 60 // 100)
        user = max(PROC_USER_MIN_WIDTH, var - prog - 1)
        return ProcessColumns(prog, 0, user, False, True)
    prog = max(PROC_PROG_MIN_WIDTH, var * 30 // 100)
    cmd = max(PROC_CMD_MIN_WIDTH, var * 40 // 100)
    user = max(PROC_USER_MIN_WIDTH, var - prog - cmd - 2)
    return ProcessColumns(prog, cmd, user, True, True)


# ── Curses drawing primitives ──────────────────────────────────────────────


def _safe(win: curses.window, *args: Any) -> None:
    """addstr wrapper that swallows out-of-bounds errors."""
    try:
        win.addstr(*args)
    except curses.error:
        pass


def _draw_header(win: curses.window, region: Region, color: int) -> None:
    title = f"[{SUPERSCRIPT[region.pane]}{region.pane.value}]"
    _safe(win, region.y, region.x, title, curses.color_pair(color) | curses.A_BOLD)


def _draw_graph(
    win: curses.window,
    y: int,
    x: int,
    width: int,
    height: int,
    values: list[float],
    color: int,
    max_val: float = 100.0,
) -> None:
    for i, row in enumerate(graph_rows(values[-width:] if width > 0 else [], height, max_val)):
        _safe(win, y + i, x, row, curses.color_pair(color))


# ── Panel renderers ────────────────────────────────────────────────────────


def draw_cpu_panel(
    win: curses.window, region: Region, engine: EngineContext, grid: CoreGrid | None
) -> None:
    _draw_header(win, region, C_NORMAL)
    x, y, w, h = region.x, region.y, region.width, region.height
    if h < 3:
        return

    overall = engine.overall.percent
    color = _usage_color(overall)
    bar_w = 12 if w > 40 else (8 if w > 30 else 5)
    _safe(win, y, x + 6, "CPU ", curses.color_pair(C_DIM))
    _safe(win, y, x + 10, mini_bar(bar_w, overall), curses.color_pair(color))
    _safe(win, y, x + 11 + bar_w, f"{overall:3.0f}%", curses.color_pair(color) | curses.A_BOLD)

    band = cpu_band_geometry(region)
    if band.graph_rows == 0:
        return
    _draw_graph(
        win, y + 1, x, band.graph_cols, band.graph_rows,
        engine.overall.history.window(band.graph_cols), C_NORMAL,
    )

    if grid is None or grid.shown == 0:
        return
    top = y + band.core_offset
    last_row = y + h - 1
    for i in range(grid.shown):
        core = engine.cores[i]
        dx, dy = grid.position(i)
        cx, cy = x + dx, top + dy
        if cy + grid.lines_per_core - 1 >= last_row:
            break
        ccolor = _usage_color(core.percent)
        label = f"C{i:<{grid.label_width - 1}d}"
        _safe(win, cy, cx, label, curses.color_pair(C_DIM))
        if grid.two_line:
            core_bar = min(10, grid.item_width - grid.label_width - 5)
            _safe(win, cy, cx + grid.label_width, mini_bar(core_bar, core.percent), curses.color_pair(ccolor))
            _safe(win, cy, cx + grid.label_width + core_bar + 1, f"{core.percent:3.0f}%", curses.color_pair(ccolor))
            spark = sparkline(core.history.window(grid.item_width - 2))
            _safe(win, cy + 1, cx + 1, spark, curses.color_pair(ccolor))
        else:
            _safe(win, cy, cx + grid.label_width, mini_bar(2, core.percent), curses.color_pair(ccolor))
            _safe(win, cy, cx + grid.label_width + 3, f"{core.percent:2.0f}%", curses.color_pair(ccolor))


def draw_mem_panel(win: curses.window, region: Region, engine: EngineContext) -> None:
    _draw_header(win, region, C_WARNING)
    x, y, w, h = region.x, region.y, region.width, region.height
    if h < 4:
        return
    mem = engine.memory
    total = mem.sample.total if mem.sample else 0
    available = mem.sample.available if mem.sample else 0
    color = _usage_color(mem.percent)
    line, max_line = y + 2, y + h - 1

    if line < max_line:
        _safe(win, line, x, "Used:", curses.color_pair(C_DIM))
        used = fmt_bytes(mem.used_kib * 1024)
        if w > 30:
            _safe(win, line, x + 10, f"{used:>10s}", curses.color_pair(color) | curses.A_BOLD)
            _safe(win, line, x + 22, mini_bar(w - 26, mem.percent), curses.color_pair(color))
        else:
            _safe(win, line, x + 6, used, curses.color_pair(color) | curses.A_BOLD)
        line += 1
    if line < max_line:
        _safe(win, line, x, "Total:", curses.color_pair(C_DIM))
        _safe(win, line, x + 10, f"{fmt_bytes(total * 1024):>10s}", curses.A_BOLD)
        line += 1
    if line < max_line:
        _safe(win, line, x, "Free:", curses.color_pair(C_DIM))
        _safe(win, line, x + 10, f"{fmt_bytes(available * 1024):>10s}", curses.color_pair(C_NORMAL) | curses.A_BOLD)
        line += 1
    if line < max_line and h > 6:
        _safe(win, line, x, "Cached:", curses.color_pair(C_DIM))
        _safe(win, line, x + 10, f"{fmt_bytes(mem.cached_kib * 1024):>10s}", curses.A_BOLD)
        line += 1
    if line < max_line:
        graph_h = max(1, min(3, max_line - line))
        _draw_graph(win, line, x, w - 2, graph_h, engine.mem_history.window(w - 2), C_WARNING)


def draw_disk_panel(win: curses.window, region: Region, engine: EngineContext) -> None:
    _draw_header(win, region, C_MAGENTA)
    x, y, w, h = region.x, region.y, region.width, region.height
    if h < 4:
        return
    line, max_line = y + 2, y + h - 1
    per_row = 2 if w > 60 else 1
    disk_w = (w - 2) // per_row

    for i, disk in enumerate(engine.disks.values()):
        if line >= max_line - 1:
            break
        dx = x + (i % per_row) * disk_w
        _safe(win, line, dx, f"{disk.name:<8s}", curses.color_pair(C_MAGENTA) | curses.A_BOLD)
        if line + 1 < max_line:
            _safe(win, line + 1, dx, "▼", curses.color_pair(C_BLUE))
            _safe(win, line + 1, dx + 2, f"{fmt_speed(disk.read_speed):<10s}")
        if line + 2 < max_line:
            _safe(win, line + 2, dx, "▲", curses.color_pair(C_RED))
            _safe(win, line + 2, dx + 2, f"{fmt_speed(disk.write_speed):<10s}")
        if line + 3 < max_line and disk_w > 15:
            graph_w = min(disk_w - 2, 30)
            combined = disk.combined_history(SPEED_GRAPH_CEILING_KIB)
            _draw_graph(
                win, line + 3, dx, graph_w, 2, combined.window(graph_w),
                C_MAGENTA, SPEED_GRAPH_CEILING_KIB,
            )
        if (i + 1) % per_row == 0:
            line += 6


def draw_net_panel(win: curses.window, region: Region, engine: EngineContext) -> None:
    _draw_header(win, region, C_BLUE)
    x, y, w, h = region.x, region.y, region.width, region.height
    if h < 4:
        return
    net = engine.net
    line, max_line = y + 2, y + h - 1

    if line < max_line:
        _safe(win, line, x, "▼ down ", curses.color_pair(C_BLUE))
        _safe(win, line, x + 10, fmt_speed(net.rx_speed), curses.A_BOLD)
        line += 1
    if line + 1 < max_line and h > 5:
        graph_h = min(2, max_line - line - 2)
        if graph_h > 0:
            _draw_graph(
                win, line, x, w - 2, graph_h, engine.net_history_rx.window(w - 2),
                C_BLUE, SPEED_GRAPH_CEILING_KIB,
            )
            line += graph_h
    if line < max_line:
        _safe(win, line, x, "▲ up   ", curses.color_pair(C_RED))
        _safe(win, line, x + 10, fmt_speed(net.tx_speed), curses.A_BOLD)
        line += 1
    if line < max_line and h > 6:
        graph_h = min(2, max_line - line)
        if graph_h > 0:
            _draw_graph(
                win, line, x, w - 2, graph_h, engine.net_history_tx.window(w - 2),
                C_RED, SPEED_GRAPH_CEILING_KIB,
            )


def draw_proc_panel(win: curses.window, region: Region, engine: EngineContext) -> None:
    _draw_header(win, region, C_DIM)
    x, y, w, h = region.x, region.y, region.width, region.height
    if h < 5:
        return
    list_start = y + 2
    list_height = h - 3
    max_line = y + h - 1
    cols = process_columns(w)
    hdr_attr = curses.color_pair(C_TITLE) | curses.A_BOLD

    headers = [(PROC_PID_WIDTH, "Pid:"), (cols.prog, "Program:")]
    if cols.show_cmd:
        headers.append((cols.cmd, "Command:"))
    if cols.show_user:
        headers.append((cols.user, "User:"))
    headers += [(PROC_MEM_WIDTH, "MemB"), (PROC_CPU_WIDTH, "Cpu%")]
    cx = x
    for width, text in headers:
        _safe(win, list_start - 1, cx, f"{text:<{width}s}", hdr_attr)
        cx += width + 1

    cursor = engine.selection
    procs = engine.table.processes
    cursor.follow(list_height)
    for i in range(list_height):
        idx = cursor.scroll + i
        row = list_start + i
        if idx >= len(procs) or row >= max_line:
            break
        p = procs[idx]
        selected = idx == cursor.selected
        attr = curses.A_REVERSE if selected else curses.A_NORMAL

        cells = [f"{p.pid:<{PROC_PID_WIDTH}d}", f"{p.name[:cols.prog]:<{cols.prog}s}"]
        if cols.show_cmd:
            cells.append(f"{p.cmdline[:cols.cmd]:<{cols.cmd}s}")
        if cols.show_user:
            cells.append(f"{p.user[:cols.user]:<{cols.user}s}")
        cells.append(f"{fmt_bytes(p.rss_kib * 1024)[:PROC_MEM_WIDTH]:<{PROC_MEM_WIDTH}s}")
        _safe(win, row, x, " ".join(cells) + " ", attr)

        cpu = p.cpu_lazy if engine.sort_mode is SortMode.CPU_LAZY else p.cpu_direct
        cpu_attr = curses.color_pair(_severity_color(cpu, 20.0, 50.0)) | attr
        if not selected:
            cpu_attr |= curses.A_BOLD
        cpu_x = x + sum(len(c) + 1 for c in cells)
        _safe(win, row, cpu_x, f"{cpu:>{PROC_CPU_WIDTH - 1}.1f}", cpu_attr)

    shown_selection = cursor.selected + 1 if procs else 0
    status = (
        f"{engine.table.running_count}/{len(procs)} | {shown_selection} "
        f"| Sort:{engine.sort_mode.label}"
    )
    _safe(win, max_line, x, status[: max(0, w - 2)], curses.color_pair(C_DIM))


PANEL_RENDERERS = {
    Pane.MEMORY: draw_mem_panel,
    Pane.DISK: draw_disk_panel,
    Pane.NETWORK: draw_net_panel,
    Pane.PROCESSES: draw_proc_panel,
}


# ── Bars and screens ───────────────────────────────────────────────────────


def battery_icon(status: str) -> str:
    if "Discharging" in status:
        return "▼"
    if "Charging" in status:
        return "▲"
    return "●"


def _draw_top_bar(win: curses.window, w: int, engine: EngineContext) -> None:
    ts = time.strftime("%H:%M:%S")
    _safe(win, 0, 2, f"hosttop {VERSION}", curses.color_pair(C_DIM) | curses.A_BOLD)
    _safe(win, 0, max(0, w // 2 - 4), ts, curses.color_pair(C_WARNING) | curses.A_BOLD)
    bat = engine.battery
    if bat.present:
        color = _severity_color(100 - bat.percent, 50, 80)
        bx = w - 20
        _safe(win, 0, bx, f"BAT{battery_icon(bat.status)} {bat.percent}%", curses.color_pair(color))
        _safe(win, 0, bx + 10, mini_bar(8, bat.percent), curses.color_pair(color))


def _draw_help_bar(win: curses.window, y: int, w: int) -> None:
    _safe(win, y, 2, HELP_TEXT[: max(0, w - 3)], curses.color_pair(C_DIM))


def draw_too_small(win: curses.window, layout: Layout, visibility: PaneVisibility) -> None:
    win.erase()
    x, y = 2, 2
    _safe(win, y, x, "ERROR: Terminal too small!", curses.color_pair(C_CRITICAL) | curses.A_BOLD)
    y += 2
    _safe(win, y, x, f"Current size: {layout.width}x{layout.height}")
    y += 1
    req_w, req_h = layout.required
    _safe(win, y, x, f"Required size: {req_w}x{req_h} (for current layout)")
    y += 2
    _safe(win, y, x, "Pane Status:", curses.color_pair(C_TITLE) | curses.A_BOLD)
    y += 1
    for pane in Pane:
        on = visibility.is_visible(pane)
        color = C_NORMAL if on else C_CRITICAL
        _safe(win, y, x, f"  [{pane.hotkey}] {pane.title}: {'ON' if on else 'OFF'}", curses.color_pair(color))
        y += 1
    y += 1
    _safe(win, y, x, "Press 1-5 to toggle panes, or resize terminal.")
    _safe(win, y + 1, x, "Press 'q' to quit.")
    win.refresh()


def draw_screen(win: curses.window, engine: EngineContext, visibility: PaneVisibility) -> Layout:
    max_y, max_x = win.getmaxyx()
    layout = compute_layout(max_x, max_y, visibility, engine.core_count)
    if layout.insufficient:
        draw_too_small(win, layout, visibility)
        return layout

    win.erase()
    _draw_top_bar(win, max_x, engine)
    for pane, region in layout.regions.items():
        if pane is Pane.CPU:
            draw_cpu_panel(win, region, engine, layout.cpu_grid)
        else:
            PANEL_RENDERERS[pane](win, region, engine)
    _draw_help_bar(win, max_y - 1, max_x)
    win.refresh()
    return layout


# ── Main loop ──────────────────────────────────────────────────────────────


def _settings(config: dict[str, Any], controller: Controller) -> dict[str, Any]:
    return {
        **config,
        "panes": controller.visibility.to_config(),
        "sort_mode": int(controller.engine.sort_mode),
    }


def _read_key(stdscr: curses.window, timeout_ms: int) -> tuple[int, bool]:
    """Wait up to *timeout_ms* for a key; ESC followed by a key means Alt."""
    stdscr.timeout(timeout_ms)
    key = stdscr.getch()
    if key != ESC:
        return key, False
    stdscr.timeout(0)
    follow = stdscr.getch()
    if follow == -1:
        return key, False
    return follow, True


def _dashboard_loop(
    stdscr: curses.window,
    config: dict[str, Any],
    config_path: Path | None,
    interval_ms: int,
) -> None:
    _init_colors()
    try:
        curses.curs_set(0)
    except curses.error:
        pass
    curses.raw()
    stdscr.keypad(True)

    interval = interval_ms / 1000.0
    engine = EngineContext(SortMode(config["sort_mode"]), interval)
    controller = Controller(engine, PaneVisibility.from_config(config["panes"]))
    collector = HostCollector()

    last_update = time.monotonic()
    engine.refresh(collector.collect(), last_update)
    layout = draw_screen(stdscr, engine, controller.visibility)

    while controller.running:
        wait = time_until_refresh(time.monotonic(), last_update, interval)
        key, alt = _read_key(stdscr, int(wait * 1000))

        outcome = Outcome()
        if key != -1:
            outcome = controller.handle(translate_key(key, alt), layout.insufficient)
        if outcome.quit:
            break
        if outcome.redraw:
            if key == curses.KEY_RESIZE:
                curses.update_lines_cols()
                stdscr.clear()
            layout = draw_screen(stdscr, engine, controller.visibility)

        now = time.monotonic()
        if outcome.refresh or now - last_update >= interval:
            if outcome.save_settings:
                save_config(_settings(config, controller), config_path)
            if not layout.insufficient or outcome.refresh:
                engine.refresh(collector.collect(), now)
            last_update = now
            layout = draw_screen(stdscr, engine, controller.visibility)

    save_config(_settings(config, controller), config_path)
    logger.info("hosttop stopped")


# ── CLI entry point ────────────────────────────────────────────────────────


def _setup_logging(log_file: Path | None, level: str) -> None:
    path = log_file if log_file is not None else config_dir() / "hosttop.log"
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        logging.basicConfig(
            filename=path,
            filemode="a",
            level=getattr(logging, level.upper()),
            format="%(asctime)s %(levelname)s %(message)s",
            encoding="utf-8",
        )
    except OSError:
        logging.basicConfig(handlers=[logging.NullHandler()])


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Live host resource dashboard: CPU, memory, disk, network and processes.",
    )
    parser.add_argument(
        "--interval",
        type=int,
        default=None,
        metavar="MS",
        help="Milliseconds between refreshes, 100-10000 (default: from config, 1000)",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        metavar="PATH",
        help="Path to TOML config file",
    )
    parser.add_argument(
        "--log-file",
        type=Path,
        default=None,
        metavar="PATH",
        help="Log file (default: hosttop.log next to the config file)",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level (default: WARNING)",
    )
    args = parser.parse_args()

    _setup_logging(args.log_file, args.log_level)
    config = load_config(args.config)
    interval_ms = config["refresh_ms"]
    if args.interval is not None:
        if not valid_refresh_ms(args.interval):
            parser.error("--interval must be between 100 and 10000 milliseconds")
        interval_ms = args.interval

    os.environ.setdefault("ESCDELAY", "25")
    logger.info("hosttop %s starting, refresh every %d ms", VERSION, interval_ms)
    try:
        curses.wrapper(_dashboard_loop, config, args.config, interval_ms)
    except curses.error as e:
        logger.error("terminal initialization failed: %s", e)
        print(f"hosttop: failed to initialize terminal: {e}", file=sys.stderr)
        raise SystemExit(1) from e
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
