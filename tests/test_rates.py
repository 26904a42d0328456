"""Tests for hosttop.rates."""

from __future__ import annotations

import pytest

from hosttop.history import HistoryClock
from hosttop.rates import (
    CoreStat,
    CpuTimes,
    counter_delta,
    cpu_percent,
    process_cpu_percent,
    sector_bytes,
    smooth_cpu,
    transfer_speed_kib,
    usage_percent,
)


# ── CpuTimes ───────────────────────────────────────────────────────────────


class TestCpuTimes:
    def test_totals(self) -> None:
        t = CpuTimes(user=10, nice=1, system=4, idle=80, iowait=5)
        assert t.total == 100
        assert t.idle_all == 85
        assert t.busy == 15

    def test_from_short_line_pads_zeroes(self) -> None:
        t = CpuTimes.from_values([1, 2, 3, 4])
        assert t == CpuTimes(1, 2, 3, 4, 0, 0, 0, 0)

    def test_from_long_line_truncates(self) -> None:
        t = CpuTimes.from_values(list(range(1, 11)))
        assert t.steal == 8


# ── Counter deltas ─────────────────────────────────────────────────────────


@pytest.mark.parametrize(
    ("prev", "curr", "expected"),
    [(100, 150, 50), (150, 150, 0), (200, 100, 0)],
)
def test_counter_delta(prev: int, curr: int, expected: int) -> None:
    assert counter_delta(prev, curr) == expected


class TestCpuPercent:
    def test_all_idle_is_zero(self) -> None:
        prev = CpuTimes(user=100, idle=100)
        curr = CpuTimes(user=100, idle=200)
        assert cpu_percent(prev, curr, 42.0) == 0.0

    def test_all_busy_is_hundred(self) -> None:
        prev = CpuTimes(user=100, idle=100)
        curr = CpuTimes(user=150, system=50, idle=100)
        assert cpu_percent(prev, curr, 0.0) == 100.0

    def test_half_busy(self) -> None:
        prev = CpuTimes(user=0, idle=0)
        curr = CpuTimes(user=25, iowait=25, idle=25, system=25)
        assert cpu_percent(prev, curr, 0.0) == pytest.approx(50.0)

    def test_no_elapsed_ticks_keeps_previous(self) -> None:
        t = CpuTimes(user=10, idle=10)
        assert cpu_percent(t, t, 33.0) == 33.0

    def test_no_predecessor_keeps_previous(self) -> None:
        assert cpu_percent(None, CpuTimes(user=10), 12.0) == 12.0

    def test_counter_reset_keeps_previous(self) -> None:
        prev = CpuTimes(user=500, idle=500)
        curr = CpuTimes(user=10, idle=10)
        assert cpu_percent(prev, curr, 7.0) == 7.0


class TestProcessCpuPercent:
    def test_one_core_saturated_of_four(self) -> None:
        # 100 ticks in 1 s at 100 Hz on 4 cores
        assert process_cpu_percent(100, 100, 1.0, 4) == pytest.approx(25.0)

    def test_all_cores_saturated_reads_hundred(self) -> None:
        assert process_cpu_percent(1600, 100, 2.0, 8) == pytest.approx(100.0)

    @pytest.mark.parametrize(
        ("ticks", "rate", "elapsed", "cores"),
        [(10, 100, 1.0, 0), (10, 100, 0.0, 4), (10, 0, 1.0, 4), (-5, 100, 1.0, 4)],
    )
    def test_degenerate_inputs_are_zero(
        self, ticks: int, rate: int, elapsed: float, cores: int
    ) -> None:
        assert process_cpu_percent(ticks, rate, elapsed, cores) == 0.0


class TestSmoothCpu:
    def test_cold_start_takes_raw(self) -> None:
        assert smooth_cpu(None, 37.5) == 37.5

    def test_moving_average(self) -> None:
        assert smooth_cpu(10.0, 20.0) == pytest.approx(13.0)

    def test_converges_towards_raw(self) -> None:
        lazy = 0.0
        for _ in range(50):
            lazy = smooth_cpu(lazy, 80.0)
        assert lazy == pytest.approx(80.0, abs=0.01)


# ── Memory / IO ────────────────────────────────────────────────────────────


class TestUsagePercent:
    def test_used_share(self) -> None:
        assert usage_percent(1000, 250) == pytest.approx(75.0)

    def test_unknown_total(self) -> None:
        assert usage_percent(0, 0) is None

    def test_available_above_total_is_zero(self) -> None:
        assert usage_percent(100, 150) == 0.0


class TestSectorBytes:
    def test_uses_sector_size(self) -> None:
        assert sector_bytes(8, 4096) == 32768

    @pytest.mark.parametrize("size", [None, 0, -1])
    def test_falls_back_to_512(self, size: int | None) -> None:
        assert sector_bytes(2, size) == 1024


class TestTransferSpeed:
    def test_normalised_by_elapsed(self) -> None:
        assert transfer_speed_kib(0, 4096, 2.0) == pytest.approx(2.0)

    def test_zero_elapsed_gives_tick_delta(self) -> None:
        assert transfer_speed_kib(0, 2048, 0.0) == pytest.approx(2.0)

    def test_counter_wrap_is_zero(self) -> None:
        assert transfer_speed_kib(10_000, 10, 1.0) == 0.0


# ── CoreStat ───────────────────────────────────────────────────────────────


class TestCoreStat:
    def test_first_sample_is_zero(self) -> None:
        core = CoreStat(HistoryClock(4))
        assert core.update(CpuTimes(user=50, idle=50)) == 0.0

    def test_records_history_each_tick(self) -> None:
        clock = HistoryClock(4)
        core = CoreStat(clock)
        core.update(CpuTimes(user=0, idle=0))
        clock.tick()
        core.update(CpuTimes(user=50, idle=50))
        clock.tick()
        assert core.history.window(2) == [0.0, 50.0]

    def test_missing_sample_repeats_last_percent(self) -> None:
        clock = HistoryClock(4)
        core = CoreStat(clock)
        core.update(CpuTimes(user=0, idle=0))
        clock.tick()
        core.update(CpuTimes(user=30, idle=70))
        clock.tick()
        core.update(None)
        clock.tick()
        assert core.history.window(2) == [30.0, 30.0]
