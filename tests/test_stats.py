"""Tests for molineaux_sim.stats — per-run statistics and golden files.

Synthetic density series are laid out on the 2-day sampling grid; odd
days hold arbitrary filler values, which the statistics never read.
"""

import math

import numpy as np
import pytest

from molineaux_sim.config import ParameterSet
from molineaux_sim.infection import INITIAL_DENSITY, init_model
from molineaux_sim.rng import RandomSource
from molineaux_sim.stats import (
    HEADER,
    PERCENTILE_NAMES,
    STAT_NAMES,
    InfectionStats,
    compute_run_stats,
    find_local_maxima,
    ols_slope,
    percentile_indices,
    run_to_extinction,
)
from molineaux_sim.types import StatRun


def on_grid(values, filler=1.0):
    """Place values on even days, filler on odd days."""
    out = np.full(2 * len(values) - 1, filler)
    out[::2] = values
    return out


@pytest.fixture
def ranked_stats():
    """200 runs whose every statistic takes the values 0..199."""
    stats = InfectionStats(200)
    for name in STAT_NAMES:
        stats.values[name] = np.arange(200, dtype=np.float64)
    return stats


# ── Local maxima & slopes ────────────────────────────────────────────

class TestLocalMaxima:
    def test_grid_maxima(self):
        dens = on_grid([0, 5, 1, 6, 1], filler=9.0)
        np.testing.assert_array_equal(find_local_maxima(dens), [2, 6])

    def test_endpoints_excluded(self):
        dens = on_grid([10, 1, 10])
        assert len(find_local_maxima(dens)) == 0

    def test_ties_are_not_maxima(self):
        dens = on_grid([1, 5, 5, 1])
        assert len(find_local_maxima(dens)) == 0

    def test_ols_slope(self):
        assert ols_slope([0, 2, 4], [0, 1, 2]) == pytest.approx(0.5)
        assert math.isnan(ols_slope([3], [1.0]))


# ── Per-run statistics ───────────────────────────────────────────────

class TestComputeRunStats:
    def test_synthetic_series(self):
        # grid days 0..16; maxima at days 4, 8, 12
        dens = on_grid([1, 10, 100, 50, 1000, 20, 500, 5, 2])
        run = compute_run_stats(dens)
        assert run.no_max == 3
        assert run.log_1st_max == pytest.approx(2.0)
        assert run.init_slope == pytest.approx(0.5)
        assert run.slope_max == pytest.approx((math.log10(500) - 2.0) / 8.0)
        assert run.GM_interv == pytest.approx(4.0)
        assert run.SD_log == pytest.approx(0.0)
        assert run.last_pos_day == 16.0
        # first half days 0..8 (10 is not above the limit), second half 10..16
        assert run.prop_pos_1st == pytest.approx(3 / 5)
        assert run.prop_pos_2nd == pytest.approx(2 / 4)

    def test_interval_spread(self):
        # maxima at days 2, 6, 14 → intervals 4, 8
        dens = on_grid([1, 100, 10, 200, 10, 10, 10, 300, 1])
        run = compute_run_stats(dens)
        assert run.no_max == 3
        assert run.GM_interv == pytest.approx(math.sqrt(32.0))
        assert run.SD_log == pytest.approx(np.std(np.log10([4.0, 8.0]), ddof=1))

    def test_no_maxima(self):
        dens = on_grid([100, 50, 20, 5])
        run = compute_run_stats(dens)
        assert run.no_max == 0
        for name in ('init_slope', 'log_1st_max', 'slope_max', 'GM_interv', 'SD_log'):
            assert math.isnan(getattr(run, name))
        assert run.last_pos_day == 6.0
        assert run.prop_pos_1st == pytest.approx(1.0)
        assert run.prop_pos_2nd == pytest.approx(0.5)

    def test_single_maximum(self):
        dens = on_grid([1, 100, 10])
        run = compute_run_stats(dens)
        assert run.no_max == 1
        assert run.log_1st_max == pytest.approx(2.0)
        assert math.isnan(run.slope_max)
        assert math.isnan(run.GM_interv)
        assert math.isnan(run.SD_log)

    def test_leading_zeros(self):
        """The first positive observation anchors slope and duration."""
        dens = on_grid([0, 0, 1, 100, 10])
        run = compute_run_stats(dens)
        assert run.init_slope == pytest.approx(1.0)
        assert run.last_pos_day == 4.0

    def test_empty_series(self):
        run = compute_run_stats([])
        assert isinstance(run, StatRun)
        assert run.no_max == 0
        assert math.isnan(run.last_pos_day)
        assert math.isnan(run.prop_pos_1st)

    def test_densities_kept(self):
        dens = on_grid([1, 100, 10])
        np.testing.assert_array_equal(compute_run_stats(dens).densities, dens)


# ── Percentiles ──────────────────────────────────────────────────────

class TestPercentiles:
    def test_indices_for_200(self):
        assert percentile_indices(200) == {
            'c5': 10, 'q1': 50, 'med': 100, 'q3': 149, 'c95': 189,
        }

    def test_single_value(self):
        assert set(percentile_indices(1).values()) == {0}

    def test_rejects_empty(self):
        with pytest.raises(ValueError):
            percentile_indices(0)

    def test_values(self, ranked_stats):
        pct = ranked_stats.percentiles()
        assert list(pct) == list(STAT_NAMES)
        assert pct['init_slope'] == {
            'c5': 10.0, 'q1': 50.0, 'med': 100.0, 'q3': 149.0, 'c95': 189.0,
        }

    def test_sort_puts_nan_last(self):
        stats = InfectionStats(3)
        stats.values['slope_max'] = np.array([3.0, np.nan, 1.0])
        stats.sort()
        assert stats.values['slope_max'][0] == 1.0
        assert stats.values['slope_max'][1] == 3.0
        assert math.isnan(stats.values['slope_max'][2])

    def test_rejects_zero_runs(self):
        with pytest.raises(ValueError, match="n_runs"):
            InfectionStats(0)


# ── Golden files ─────────────────────────────────────────────────────

class TestGoldenFiles:
    def test_format(self, ranked_stats, tmp_path):
        path = tmp_path / "golden"
        ranked_stats.write(path)
        lines = path.read_text().splitlines()
        assert lines[0] == '\t'.join(HEADER)
        assert lines[1] == "init_slope\t10\t50\t100\t149\t189"
        assert [line.split('\t')[0] for line in lines[1:]] == list(STAT_NAMES)

    def test_significant_digits(self, tmp_path):
        stats = InfectionStats(1)
        for name in STAT_NAMES:
            stats.values[name][0] = 0.123456789
        path = tmp_path / "golden"
        stats.write(path)
        assert path.read_text().splitlines()[1].split('\t')[1] == "0.12346"

    def test_write_then_compare(self, ranked_stats, tmp_path):
        path = tmp_path / "golden"
        ranked_stats.write(path)
        report = ranked_stats.compare(path)
        assert report.ok
        assert report.mismatches == []

    def test_nan_matches_nan(self, tmp_path):
        stats = InfectionStats(5)  # all NaN except no_max
        path = tmp_path / "golden"
        stats.write(path)
        assert "nan" in path.read_text()
        assert stats.compare(path).ok

    def test_within_tolerance(self, ranked_stats, tmp_path):
        path = tmp_path / "golden"
        ranked_stats.write(path)
        ranked_stats.values['GM_interv'] = ranked_stats.values['GM_interv'] * (1.0 + 5e-5)
        assert ranked_stats.compare(path).ok

    def test_mismatch_reported_and_continues(self, ranked_stats, tmp_path):
        path = tmp_path / "golden"
        ranked_stats.write(path)
        ranked_stats.values['no_max'] = ranked_stats.values['no_max'] + 1.0
        ranked_stats.values['SD_log'] = ranked_stats.values['SD_log'] * 2.0
        report = ranked_stats.compare(path)
        assert not report.ok
        assert report.file_error is None
        stats_hit = {m.stat for m in report.mismatches}
        assert stats_hit == {'no_max', 'SD_log'}
        assert len([m for m in report.mismatches if m.stat == 'no_max']) == len(PERCENTILE_NAMES)

    def test_bad_header(self, ranked_stats, tmp_path):
        path = tmp_path / "golden"
        ranked_stats.write(path)
        lines = path.read_text().splitlines()
        lines[0] = "stat\tp5\tq1\tmed\tq3\tp95"
        path.write_text('\n'.join(lines) + '\n')
        report = ranked_stats.compare(path)
        assert [m.stat for m in report.mismatches] == ['header']

    def test_missing_row(self, ranked_stats, tmp_path):
        path = tmp_path / "golden"
        ranked_stats.write(path)
        lines = path.read_text().splitlines()[:-1]
        path.write_text('\n'.join(lines) + '\n')
        report = ranked_stats.compare(path)
        assert [m.stat for m in report.mismatches] == ['last_pos_day']

    def test_extra_rows_reported(self, ranked_stats, tmp_path):
        path = tmp_path / "golden"
        ranked_stats.write(path)
        with open(path, 'a') as f:
            f.write("bonus_stat\t1\t2\t3\t4\t5\n")
        report = ranked_stats.compare(path)
        assert [m.stat for m in report.mismatches] == ['bonus_stat']

    def test_undecodable_file(self, ranked_stats, tmp_path):
        path = tmp_path / "golden"
        path.write_bytes(b"\xff\xfe\x00garbage\x80\x81\n")
        report = ranked_stats.compare(path)
        assert not report.ok
        assert report.file_error is not None
        assert report.mismatches == []

    def test_missing_file(self, ranked_stats, tmp_path):
        report = ranked_stats.compare(tmp_path / "absent")
        assert not report.ok
        assert report.file_error is not None
        assert report.mismatches == []


# ── Harness runs ─────────────────────────────────────────────────────

class TestCapture:
    def test_run_to_extinction_skips_latency(self):
        model = init_model(ParameterSet())
        dens = run_to_extinction(model, RandomSource(1095))
        assert dens[0] == pytest.approx(INITIAL_DENSITY)
        assert len(dens) <= model.max_days
        assert np.all(dens >= 0.0)

    def test_capture_is_reproducible(self):
        model = init_model(ParameterSet(), mode="original", replication_gamma=False)
        rng = RandomSource(1095)
        first = InfectionStats(200)
        first.capture(model, rng)
        rng.reset()
        second = InfectionStats(200)
        second.capture(model, rng)
        assert first.format_table() == second.format_table()

    def test_capture_then_compare(self, tmp_path):
        model = init_model(ParameterSet(), mode="pairwise")
        rng = RandomSource(7)
        stats = InfectionStats(20)
        stats.capture(model, rng)
        for name in STAT_NAMES:
            finite = stats.values[name][~np.isnan(stats.values[name])]
            assert np.all(np.diff(finite) >= 0.0)
        assert np.all(stats.values['no_max'] >= 0)
        path = tmp_path / "MolineauxStatsPairwise"
        stats.write(path)
        assert stats.compare(path).ok

    def test_different_seed_detected(self, tmp_path):
        model = init_model(ParameterSet())
        stats = InfectionStats(20)
        stats.capture(model, RandomSource(1))
        path = tmp_path / "golden"
        stats.write(path)
        other = InfectionStats(20)
        other.capture(model, RandomSource(2))
        assert not other.compare(path).ok
