"""Statistical validation harness for the density model.

Reproduces the summary statistics of Table 1 in Molineaux et al. (2001)
('log' means log base 10) over many independent runs, then reduces each
statistic to five percentiles that are written to / compared against
golden files. Golden files detect changes in model output; they are not
ground truth.

Per-run statistics (canonical order):
  init_slope    OLS slope of log density, first positive → first local max
  log_1st_max   log density at the first local max
  no_max        number of local maxima
  slope_max     OLS slope of log density through the local maxima
  GM_interv     geometric mean of intervals between consecutive maxima
  SD_log        SD of log intervals between consecutive maxima
  prop_pos_1st  fraction of first-half observations above detection limit
  prop_pos_2nd  same for the second half
  last_pos_day  days between first and last positive observation
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

import numpy as np
from scipy import stats as sp_stats

from molineaux_sim.infection import InfectionModel, MolineauxInfection
from molineaux_sim.rng import RandomSource
from molineaux_sim.types import StatRun

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════
# CONSTANTS
# ═══════════════════════════════════════════════════════════════════════

STAT_NAMES = (
    'init_slope',
    'log_1st_max',
    'no_max',
    'slope_max',
    'GM_interv',
    'SD_log',
    'prop_pos_1st',
    'prop_pos_2nd',
    'last_pos_day',
)
PERCENTILE_NAMES = ('c5', 'q1', 'med', 'q3', 'c95')
HEADER = ('stat',) + PERCENTILE_NAMES

STRIDE = 2                 # sample every other day
SAMPLE_START = 0
DETECTION_LIMIT = 10.0     # parasites/µL
TOL_REL = 1e-4
TOL_ABS = 1e-4


# ═══════════════════════════════════════════════════════════════════════
# PER-RUN STATISTICS
# ═══════════════════════════════════════════════════════════════════════

def find_local_maxima(
    dens: Sequence[float],
    stride: int = STRIDE,
    start: int = SAMPLE_START,
) -> np.ndarray:
    """Days on the stride grid whose density beats both stride neighbours.

    Assumes non-zero densities never exactly repeat at compared points.
    """
    dens = np.asarray(dens, dtype=np.float64)
    days = np.arange(start, len(dens), stride)
    inner = days[(days >= stride) & (days + stride < len(dens))]
    is_max = (dens[inner] > dens[inner - stride]) & (dens[inner] > dens[inner + stride])
    return inner[is_max]


def ols_slope(x: Sequence[float], y: Sequence[float]) -> float:
    """Least-squares slope of y on x; NaN with fewer than two points."""
    if len(x) < 2:
        return np.nan
    return float(sp_stats.linregress(x, y).slope)


def compute_run_stats(
    dens: Sequence[float],
    stride: int = STRIDE,
    start: int = SAMPLE_START,
    detection_limit: float = DETECTION_LIMIT,
) -> StatRun:
    """Reduce one post-latent density series to the nine statistics."""
    dens = np.asarray(dens, dtype=np.float64)
    run = StatRun(densities=dens)

    grid = np.arange(start, len(dens), stride)
    positive = grid[dens[grid] > 0.0]
    if len(positive) == 0:
        return run
    first_pos, last_pos = int(positive[0]), int(positive[-1])
    run.last_pos_day = float(last_pos - first_pos)

    # split at the midpoint, re-aligned to the sampling grid
    mid_pos = (first_pos + last_pos) // 2
    mid_pos = start + ((mid_pos - start) // stride) * stride
    first_half = np.arange(first_pos, mid_pos + 1, stride)
    second_half = np.arange(mid_pos + stride, last_pos + 1, stride)
    run.prop_pos_1st = float(np.sum(dens[first_half] > detection_limit)) / len(first_half)
    if len(second_half):
        run.prop_pos_2nd = float(np.sum(dens[second_half] > detection_limit)) / len(second_half)

    maxima = find_local_maxima(dens, stride, start)
    run.no_max = len(maxima)
    if len(maxima) == 0:
        # degenerate: should not happen with sensible parameters
        return run

    log_max = np.log10(dens[maxima])
    run.log_1st_max = float(log_max[0])

    init_days = np.arange(first_pos, maxima[0] + 1, stride)
    run.init_slope = ols_slope(init_days, np.log10(dens[init_days]))
    run.slope_max = ols_slope(maxima, log_max)

    intervals = np.diff(maxima).astype(np.float64)
    if len(intervals) >= 1:
        run.GM_interv = float(sp_stats.gmean(intervals))
    if len(intervals) >= 2:
        run.SD_log = float(np.std(np.log10(intervals), ddof=1))
    return run


def run_to_extinction(
    model: InfectionModel,
    rng: RandomSource,
    survival_factor: float = 1.0,
) -> np.ndarray:
    """Step one infection (inoculated at day 0) until it signals extinction.

    Returns:
        Density of every blood-stage day before the extinction day; days
        inside the latent period are not recorded.
    """
    infection = MolineauxInfection(model, rng)
    dens = []
    now = 0
    while not infection.update(survival_factor, now):
        if infection.blood_stage_age(now) >= 0:
            dens.append(infection.get_density())
        now += 1
    return np.array(dens)


# ═══════════════════════════════════════════════════════════════════════
# PERCENTILES
# ═══════════════════════════════════════════════════════════════════════

def percentile_indices(n: int) -> Dict[str, int]:
    """Rounded-to-nearest indices of c5, q1, med, q3, c95 in a sorted array."""
    if n < 1:
        raise ValueError(f"need at least one value, got {n}")
    last = n - 1
    return {
        'c5': (last + 10) // 20,
        'q1': (last + 2) // 4,
        'med': (last + 1) // 2,
        'q3': (last * 3 + 2) // 4,
        'c95': (last * 19 + 10) // 20,
    }


def _format_value(value: float) -> str:
    return f"{value:.5g}"


def _values_match(stored: float, computed: float) -> bool:
    if math.isnan(stored) or math.isnan(computed):
        return math.isnan(stored) and math.isnan(computed)
    return math.isclose(stored, computed, rel_tol=TOL_REL, abs_tol=TOL_ABS)


# ═══════════════════════════════════════════════════════════════════════
# COMPARISON REPORT
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class Mismatch:
    """One failed check of a golden-file comparison."""
    stat: str
    column: str
    expected: Union[float, str, None]
    actual: Union[float, str, None]

    def __str__(self) -> str:
        return f"{self.stat}/{self.column}: golden {self.expected!r}, computed {self.actual!r}"


@dataclass
class ComparisonReport:
    """Result of InfectionStats.compare()."""
    path: Path
    mismatches: List[Mismatch] = field(default_factory=list)
    file_error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.file_error is None and not self.mismatches

    def _fail(self, stat: str, column: str, expected, actual) -> None:
        mismatch = Mismatch(stat, column, expected, actual)
        logger.warning("%s: %s", self.path, mismatch)
        self.mismatches.append(mismatch)


# ═══════════════════════════════════════════════════════════════════════
# HARNESS
# ═══════════════════════════════════════════════════════════════════════

class InfectionStats:
    """Runs the density model repeatedly and summarises the output.

    Args:
        n_runs: Number of independent infections per capture().

    Usage:
        stats = InfectionStats(200)
        stats.capture(model, rng)
        report = stats.compare("tests/golden/MolineauxStatsOrig")
    """

    def __init__(self, n_runs: int):
        if n_runs < 1:
            raise ValueError(f"n_runs must be >= 1, got {n_runs}")
        self.n_runs = n_runs
        self.values: Dict[str, np.ndarray] = {
            name: np.full(n_runs, np.nan) for name in STAT_NAMES
        }
        self.values['no_max'] = np.zeros(n_runs)

    def record(self, index: int, run: StatRun) -> None:
        for name in STAT_NAMES:
            self.values[name][index] = getattr(run, name)

    def capture(self, model: InfectionModel, rng: RandomSource) -> None:
        """Run n_runs infections to extinction, then sort the statistics.

        Each infection is inoculated at day 0 and stepped without external
        immunity; densities before the latent period are not recorded.
        """
        logger.info("Capturing %d runs (mode=%s, replication_gamma=%s)",
                    self.n_runs, model.mode.value, model.replication_gamma)
        for index in range(self.n_runs):
            dens = run_to_extinction(model, rng)
            self.record(index, compute_run_stats(dens))
            logger.debug("run %d: %d blood-stage days", index, len(dens))
        self.sort()

    def sort(self) -> None:
        """Sort each statistic independently; NaNs go last."""
        for name in STAT_NAMES:
            self.values[name] = np.sort(self.values[name])

    def percentiles(self) -> Dict[str, Dict[str, float]]:
        """Five percentiles per statistic (call after sort())."""
        idx = percentile_indices(self.n_runs)
        return {
            name: {col: float(self.values[name][idx[col]]) for col in PERCENTILE_NAMES}
            for name in STAT_NAMES
        }

    def format_table(self) -> str:
        rows = ['\t'.join(HEADER)]
        for name, pct in self.percentiles().items():
            rows.append('\t'.join([name] + [_format_value(pct[c]) for c in PERCENTILE_NAMES]))
        return '\n'.join(rows)

    def write(self, path: Union[str, Path]) -> None:
        """Write the percentile table as a golden file."""
        path = Path(path)
        with open(path, 'w', encoding='utf-8') as f:
            f.write(self.format_table() + '\n')
        logger.info("Wrote stats table to %s", path)

    def compare(self, path: Union[str, Path]) -> ComparisonReport:
        """Check the percentile table against a golden file.

        Mismatches are logged and collected; they never abort the
        comparison. Rows beyond the nine statistics are mismatches too.
        An unreadable or undecodable file is reported once.
        """
        path = Path(path)
        report = ComparisonReport(path=path)
        try:
            with open(path, encoding='utf-8') as f:
                lines = [line.split() for line in f if line.strip()]
        except (OSError, UnicodeDecodeError) as exc:
            report.file_error = f"cannot read {path}: {exc}"
            logger.error(report.file_error)
            return report

        header = tuple(lines[0]) if lines else ()
        if header != HEADER:
            report._fail('header', 'stat', ' '.join(header), ' '.join(HEADER))

        computed = self.percentiles()
        rows = lines[1:]
        for i, name in enumerate(STAT_NAMES):
            if i >= len(rows):
                report._fail(name, 'stat', None, name)
                continue
            row = rows[i]
            if row[0] != name:
                report._fail(name, 'stat', row[0], name)
            for j, col in enumerate(PERCENTILE_NAMES):
                actual = computed[name][col]
                try:
                    stored = float(row[j + 1])
                except (IndexError, ValueError):
                    report._fail(name, col, None, actual)
                    continue
                if not _values_match(stored, actual):
                    report._fail(name, col, stored, actual)
        for row in rows[len(STAT_NAMES):]:
            report._fail(row[0], 'stat', row[0], None)

        if report.ok:
            logger.info("%s: all %d statistics match", path, len(STAT_NAMES))
        return report
