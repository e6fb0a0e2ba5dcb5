#!/usr/bin/env python3
"""Regenerate or check golden statistics tables for the density model.

For each selected mode / replication-gamma combination, runs the
validation harness from a fixed seed and either writes the percentile
table into the golden directory or compares against the existing one.

Usage:
    python scripts/write_golden_stats.py
    python scripts/write_golden_stats.py --compare
    python scripts/write_golden_stats.py --only MolineauxStatsPairwise --runs 200

References:
    - molineaux_sim/stats.py: InfectionStats
    - configs/default.yaml: seed, latent period, fitted parameters
"""

import argparse
import logging
import sys
from pathlib import Path

# ── Project imports ──────────────────────────────────────────────────
PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT))

from molineaux_sim.config import load_config
from molineaux_sim.infection import setup_model
from molineaux_sim.rng import RandomSource
from molineaux_sim.stats import InfectionStats
from molineaux_sim.utils import timer

logger = logging.getLogger("write_golden_stats")

# Golden file name → (mode, replication_gamma)
GOLDEN_CASES = {
    "MolineauxStatsOrig": ("original", False),
    "MolineauxStatsOrigRG": ("original", True),
    "MolineauxStatsPairwise": ("pairwise", False),
    "MolineauxStatsPairwiseRG": ("pairwise", True),
    "MolineauxStats1MG": ("1st_max_gamma", False),
    "MolineauxStats1MGRG": ("1st_max_gamma", True),
    "MolineauxStatsMDG": ("mean_dur_gamma", False),
    "MolineauxStatsMDGRG": ("mean_dur_gamma", True),
    "MolineauxStats1MGMDG": ("1st_max_and_mean_dur_gamma", False),
    "MolineauxStats1MGMDGRG": ("1st_max_and_mean_dur_gamma", True),
}


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--config", default=str(PROJECT_ROOT / "configs" / "default.yaml"),
                        help="Base YAML configuration")
    parser.add_argument("--golden-dir", default=None,
                        help="Override validation.golden_dir")
    parser.add_argument("--runs", type=int, default=None,
                        help="Override validation.n_runs")
    parser.add_argument("--only", nargs="*", choices=sorted(GOLDEN_CASES),
                        help="Restrict to these golden files")
    parser.add_argument("--compare", action="store_true",
                        help="Compare against existing golden files instead of writing")
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    config = load_config(args.config)
    golden_dir = Path(args.golden_dir or PROJECT_ROOT / config.validation.golden_dir)
    n_runs = args.runs or config.validation.n_runs
    golden_dir.mkdir(parents=True, exist_ok=True)

    failures = 0
    rng = RandomSource(config.simulation.seed)
    for name in args.only or GOLDEN_CASES:
        mode, repl_gamma = GOLDEN_CASES[name]
        config.model.mode = mode
        config.model.replication_gamma = repl_gamma
        result = setup_model(config)
        if not result.ok:
            logger.error("%s: setup failed: %s", name, result.message)
            failures += 1
            continue

        rng.reset()
        stats = InfectionStats(n_runs)
        with timer(name):
            stats.capture(result.value, rng)
        logger.info("%s\n%s", name, stats.format_table())

        path = golden_dir / name
        if args.compare:
            report = stats.compare(path)
            if not report.ok:
                failures += 1
        else:
            stats.write(path)

    return 1 if failures else 0


if __name__ == "__main__":
    sys.exit(main())
