"""Tests for scripts/write_golden_stats.py — write and compare modes."""

import importlib.util
from pathlib import Path

import pytest

SCRIPT = Path(__file__).parent.parent / "scripts" / "write_golden_stats.py"


@pytest.fixture(scope="module")
def script():
    spec = importlib.util.spec_from_file_location("write_golden_stats", SCRIPT)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def test_cases_cover_all_modes(script):
    from molineaux_sim.types import VariantMode
    modes = {mode for mode, _ in script.GOLDEN_CASES.values()}
    assert modes == {m.value for m in VariantMode}
    assert len(script.GOLDEN_CASES) == 2 * len(VariantMode)


def test_write_then_compare(script, tmp_path):
    args = ["--golden-dir", str(tmp_path), "--runs", "5",
            "--only", "MolineauxStatsOrig", "MolineauxStatsPairwiseRG"]
    assert script.main(args) == 0
    assert (tmp_path / "MolineauxStatsOrig").exists()
    assert (tmp_path / "MolineauxStatsPairwiseRG").exists()
    assert script.main(args + ["--compare"]) == 0


def test_compare_missing_file_fails(script, tmp_path):
    args = ["--golden-dir", str(tmp_path), "--runs", "3",
            "--only", "MolineauxStats1MG", "--compare"]
    assert script.main(args) == 1
