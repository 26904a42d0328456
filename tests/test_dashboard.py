"""Tests for the dashboard module helpers and rendering."""

from __future__ import annotations

import curses
from collections.abc import Iterator
from itertools import count
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from hosttop.config import DEFAULT_CONFIG, load_config
from hosttop.controller import CTRL_F, ESC, Action, Controller
from hosttop.dashboard import (
    C_CRITICAL,
    C_NORMAL,
    C_WARNING,
    HELP_TEXT,
    _dashboard_loop,
    _read_key,
    _settings,
    _severity_color,
    battery_icon,
    draw_screen,
    fmt_bytes,
    fmt_speed,
    graph_rows,
    main,
    mini_bar,
    process_columns,
    sparkline,
)
from hosttop.engine import (
    BatteryStatus,
    DiskCounters,
    EngineContext,
    HostSample,
    MemorySample,
    NetCounters,
)
from hosttop.layout import PaneVisibility
from hosttop.processes import ProcessRecord, SortMode
from hosttop.rates import CpuTimes

# ── fmt_bytes ──────────────────────────────────────────────────────────────


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        (0, "0.00 B"),
        (512, "512.00 B"),
        (1024, "1.00 KiB"),
        (1536, "1.50 KiB"),
        (1024 * 1024, "1.00 MiB"),
        (1024**3, "1.00 GiB"),
        (1024**4, "1.00 TiB"),
    ],
)
def test_fmt_bytes(value: int | float, expected: str) -> None:
    assert fmt_bytes(value) == expected


# ── fmt_speed ──────────────────────────────────────────────────────────────


@pytest.mark.parametrize(
    ("kib", "expected"),
    [
        (0, "0.00 KiB/s"),
        (512.5, "512.50 KiB/s"),
        (1024, "1.00 MiB/s"),
        (1536, "1.50 MiB/s"),
        (1024 * 1024, "1.00 GiB/s"),
    ],
)
def test_fmt_speed(kib: float, expected: str) -> None:
    assert fmt_speed(kib) == expected


# ── _severity_color ────────────────────────────────────────────────────────


def test_severity_normal() -> None:
    assert _severity_color(40.0, 50.0, 80.0) == C_NORMAL


def test_severity_warning() -> None:
    assert _severity_color(60.0, 50.0, 80.0) == C_WARNING


def test_severity_critical() -> None:
    assert _severity_color(90.0, 50.0, 80.0) == C_CRITICAL


# ── Bars and graphs ────────────────────────────────────────────────────────


class TestMiniBar:
    def test_half(self) -> None:
        assert mini_bar(10, 50.0) == "█████     "

    def test_partial_block(self) -> None:
        assert mini_bar(10, 55.0) == "█████▄    "

    @pytest.mark.parametrize(("pct", "expected"), [(0.0, "    "), (100.0, "████"), (150.0, "████")])
    def test_bounds(self, pct: float, expected: str) -> None:
        assert mini_bar(4, pct) == expected

    def test_zero_width(self) -> None:
        assert mini_bar(0, 50.0) == ""


def test_sparkline() -> None:
    assert sparkline([0.0, 50.0, 100.0, 250.0]) == "▁▄██"


def test_sparkline_custom_scale() -> None:
    assert sparkline([0.0, 10.0], max_val=10.0) == "▁█"


class TestGraphRows:
    def test_columns_fill_from_bottom(self) -> None:
        assert graph_rows([100.0, 50.0, 0.0], 2) == ["█  ", "██ "]

    def test_partial_cell(self) -> None:
        top, bottom = graph_rows([75.0], 2)
        assert bottom == "█"
        assert top == "▃"

    def test_no_height(self) -> None:
        assert graph_rows([1.0, 2.0], 0) == []


# ── Process columns ────────────────────────────────────────────────────────


class TestProcessColumns:
    def test_wide_shows_everything(self) -> None:
        cols = process_columns(100)
        assert cols.show_cmd and cols.show_user
        assert (cols.prog, cols.cmd, cols.user) == (22, 29, 21)

    def test_medium_hides_command(self) -> None:
        cols = process_columns(40)
        assert not cols.show_cmd
        assert cols.show_user

    def test_narrow_hides_user(self) -> None:
        cols = process_columns(35)
        assert not cols.show_cmd and not cols.show_user


@pytest.mark.parametrize(
    ("status", "icon"),
    [("Charging", "▲"), ("Discharging", "▼"), ("Full", "●"), ("Unknown", "●")],
)
def test_battery_icon(status: str, icon: str) -> None:
    assert battery_icon(status) == icon


# ── Input ──────────────────────────────────────────────────────────────────


class TestReadKey:
    def test_plain_key(self) -> None:
        win = MagicMock()
        win.getch.side_effect = [ord("q")]
        assert _read_key(win, 500) == (ord("q"), False)
        win.timeout.assert_called_once_with(500)

    def test_escape_prefix_is_alt(self) -> None:
        win = MagicMock()
        win.getch.side_effect = [ESC, ord("v")]
        assert _read_key(win, 500) == (ord("v"), True)

    def test_lone_escape(self) -> None:
        win = MagicMock()
        win.getch.side_effect = [ESC, -1]
        assert _read_key(win, 500) == (ESC, False)


def test_settings_reflect_controller_state() -> None:
    engine = EngineContext(SortMode.CPU_LAZY)
    ctl = Controller(engine, PaneVisibility())
    ctl.handle(Action.TOGGLE_NETWORK)
    ctl.handle(Action.SORT_NEXT)
    saved = _settings(DEFAULT_CONFIG, ctl)
    assert saved["panes"]["net"] is False
    assert saved["sort_mode"] == int(SortMode.CPU_DIRECT)
    assert saved["refresh_ms"] == DEFAULT_CONFIG["refresh_ms"]


# ── Rendering ──────────────────────────────────────────────────────────────


def _populated_engine() -> EngineContext:
    engine = EngineContext(SortMode.PID)
    for tick, now in enumerate((100.0, 101.0)):
        engine.refresh(
            HostSample(
                cpu_total=CpuTimes(user=40 * tick, idle=60 * tick),
                cpu_cores=[CpuTimes(user=10 * tick, idle=15 * tick) for _ in range(4)],
                memory=MemorySample(total=8_000_000, free=1_000_000, available=4_000_000),
                net={"eth0": NetCounters(rx_bytes=2048 * tick, tx_bytes=1024 * tick)},
                disks={"sda": DiskCounters(read_sectors=16 * tick, write_sectors=8 * tick)},
                battery=BatteryStatus(present=True, percent=70, status="Charging"),
                processes=[
                    ProcessRecord(pid, f"proc{pid}", f"/usr/bin/proc{pid} --flag", "root",
                                  "running" if pid == 1 else "sleeping", 5 * tick * pid, 0, 1024 * pid)
                    for pid in range(1, 40)
                ],
                tick_rate=100,
            ),
            now=now,
        )
    return engine


def _drawn_text(win: MagicMock) -> list[str]:
    return [str(c.args[2]) for c in win.addstr.call_args_list if len(c.args) > 2]


@patch("hosttop.dashboard.curses.color_pair", return_value=0)
class TestDrawScreen:
    def test_full_screen(self, _color: MagicMock) -> None:
        win = MagicMock()
        win.getmaxyx.return_value = (50, 200)
        layout = draw_screen(win, _populated_engine(), PaneVisibility())
        assert not layout.insufficient
        text = _drawn_text(win)
        assert any(t.startswith("hosttop ") for t in text)
        assert any("Sort:PID" in t for t in text)
        assert any(t.startswith("1/39") for t in text)
        assert any(t.startswith("BAT▲ 70%") for t in text)
        assert HELP_TEXT in text
        win.refresh.assert_called_once()

    def test_too_small_screen(self, _color: MagicMock) -> None:
        win = MagicMock()
        win.getmaxyx.return_value = (10, 40)
        layout = draw_screen(win, _populated_engine(), PaneVisibility())
        assert layout.insufficient
        text = _drawn_text(win)
        assert "ERROR: Terminal too small!" in text
        assert "Current size: 40x10" in text
        assert any("[5] Processes: ON" in t for t in text)

    def test_hidden_panes_not_drawn(self, _color: MagicMock) -> None:
        win = MagicMock()
        win.getmaxyx.return_value = (40, 120)
        draw_screen(win, _populated_engine(), PaneVisibility(proc=False))
        assert not any("Sort:" in t for t in _drawn_text(win))

    def test_empty_process_list_shows_no_selection(self, _color: MagicMock) -> None:
        win = MagicMock()
        win.getmaxyx.return_value = (50, 200)
        draw_screen(win, EngineContext(), PaneVisibility())
        assert "0/0 | 0 | Sort:CPU-L" in _drawn_text(win)


# ── Main loop ──────────────────────────────────────────────────────────────


def _screen(*keys: int) -> MagicMock:
    stdscr = MagicMock()
    stdscr.getmaxyx.return_value = (50, 200)
    stdscr.getch.side_effect = list(keys)
    return stdscr


def _host_sample() -> HostSample:
    return HostSample(
        processes=[
            ProcessRecord(pid, f"proc{pid}", "", "root", "sleeping", 0, 0, 1024)
            for pid in range(1, 6)
        ]
    )


@pytest.fixture
def loop_env() -> Iterator[SimpleNamespace]:
    collector = MagicMock()
    collector.collect.side_effect = lambda: _host_sample()
    with (
        patch("hosttop.dashboard.HostCollector", return_value=collector),
        patch("hosttop.dashboard._init_colors"),
        patch("hosttop.dashboard.curses.curs_set"),
        patch("hosttop.dashboard.curses.raw"),
        patch("hosttop.dashboard.curses.color_pair", return_value=0),
        patch("hosttop.dashboard.curses.update_lines_cols", create=True) as relayout,
        patch("hosttop.dashboard.save_config") as save,
    ):
        yield SimpleNamespace(collector=collector, relayout=relayout, save=save)


def _config(tmp_path: Path, text: str = "") -> dict:
    path = tmp_path / "config.toml"
    path.write_text(text)
    return load_config(path)


class TestDashboardLoop:
    def test_toggle_refreshes_and_saves(self, loop_env: SimpleNamespace, tmp_path: Path) -> None:
        _dashboard_loop(_screen(ord("3"), ord("q")), _config(tmp_path), None, 10_000)
        assert loop_env.collector.collect.call_count == 2
        # once for the toggle, once on exit
        assert loop_env.save.call_count == 2
        for saved_call in loop_env.save.call_args_list:
            assert saved_call.args[0]["panes"]["disks"] is False

    def test_sort_change_refreshes_without_saving(
        self, loop_env: SimpleNamespace, tmp_path: Path
    ) -> None:
        _dashboard_loop(_screen(CTRL_F, ord("q")), _config(tmp_path), None, 10_000)
        assert loop_env.collector.collect.call_count == 2
        loop_env.save.assert_called_once()
        assert loop_env.save.call_args.args[0]["sort_mode"] == int(SortMode.CPU_DIRECT)

    def test_resize_relayouts_without_refresh(
        self, loop_env: SimpleNamespace, tmp_path: Path
    ) -> None:
        stdscr = _screen(curses.KEY_RESIZE, ord("q"))
        _dashboard_loop(stdscr, _config(tmp_path), None, 10_000)
        loop_env.relayout.assert_called_once()
        stdscr.clear.assert_called_once()
        assert loop_env.collector.collect.call_count == 1

    def test_timeout_triggers_scheduled_refresh(
        self, loop_env: SimpleNamespace, tmp_path: Path
    ) -> None:
        stdscr = _screen(-1, ord("q"))
        with patch("hosttop.dashboard.time.monotonic", side_effect=count(0.0, 1.0)):
            _dashboard_loop(stdscr, _config(tmp_path), None, 100)
        assert loop_env.collector.collect.call_count == 2
        stdscr.timeout.assert_any_call(0)

    def test_alt_v_pages_up(self, loop_env: SimpleNamespace, tmp_path: Path) -> None:
        stdscr = _screen(curses.KEY_END, ESC, ord("v"), ord("q"))
        _dashboard_loop(stdscr, _config(tmp_path), None, 10_000)
        assert loop_env.collector.collect.call_count == 1

    def test_interval_override_not_saved(self, loop_env: SimpleNamespace, tmp_path: Path) -> None:
        config = _config(tmp_path, "refresh_ms = 2000\n")
        _dashboard_loop(_screen(ord("2"), ord("q")), config, None, 100)
        for saved_call in loop_env.save.call_args_list:
            assert saved_call.args[0]["refresh_ms"] == 2000


class TestMain:
    def test_interval_flag_passed_separately(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        path = tmp_path / "config.toml"
        path.write_text("refresh_ms = 2000\n")
        monkeypatch.setattr(
            "sys.argv",
            ["hosttop", "--config", str(path), "--interval", "5000", "--log-file", str(tmp_path / "h.log")],
        )
        with (
            patch("hosttop.dashboard._setup_logging"),
            patch("hosttop.dashboard.curses.wrapper") as wrapper,
        ):
            main()
        _loop, config, config_path, interval_ms = wrapper.call_args.args
        assert config["refresh_ms"] == 2000
        assert config_path == path
        assert interval_ms == 5000

    def test_out_of_range_interval_rejected(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(
            "sys.argv", ["hosttop", "--config", str(tmp_path / "c.toml"), "--interval", "50"]
        )
        with (
            patch("hosttop.dashboard._setup_logging"),
            patch("hosttop.dashboard.curses.wrapper") as wrapper,
            pytest.raises(SystemExit),
        ):
            main()
        wrapper.assert_not_called()

    def test_curses_failure_exits_one(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr("sys.argv", ["hosttop", "--config", str(tmp_path / "c.toml")])
        with (
            patch("hosttop.dashboard._setup_logging"),
            patch("hosttop.dashboard.curses.wrapper", side_effect=curses.error("no tty")),
            pytest.raises(SystemExit) as exc,
        ):
            main()
        assert exc.value.code == 1
