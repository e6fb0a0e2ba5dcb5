"""Core data types for molineaux-sim.

This module is the single source of truth for:
  - VariantMode: the selectable growth / immune-feedback algorithm families
  - StatRun: per-run summary statistics produced by the validation harness
"""

from dataclasses import dataclass, field
from enum import Enum

import numpy as np

from molineaux_sim.errors import UnknownModeError


# ═══════════════════════════════════════════════════════════════════════
# ENUMERATIONS
# ═══════════════════════════════════════════════════════════════════════

class VariantMode(Enum):
    """Model variants, keyed by their scenario names.

    PAIRWISE         dominant/emerging pool competition under a fitted
                     peak-and-slope density envelope
    ORIGINAL         50-variant switching model, normal-sampled peak and
                     duration
    FIRST_MAX_GAMMA  as ORIGINAL, first local max sampled from a gamma
    MEAN_DUR_GAMMA   as ORIGINAL, positive duration sampled from a gamma
    BOTH_GAMMA       as ORIGINAL, both sampled from gammas
    """
    PAIRWISE = "pairwise"
    ORIGINAL = "original"
    FIRST_MAX_GAMMA = "1st_max_gamma"
    MEAN_DUR_GAMMA = "mean_dur_gamma"
    BOTH_GAMMA = "1st_max_and_mean_dur_gamma"

    @classmethod
    def parse(cls, name) -> "VariantMode":
        """Look up a mode by scenario name (or pass a VariantMode through).

        Raises:
            UnknownModeError: If ``name`` is not a known mode.
        """
        if isinstance(name, cls):
            return name
        try:
            return cls(name)
        except ValueError:
            valid = sorted(m.value for m in cls)
            raise UnknownModeError(
                f"unknown Molineaux variant mode '{name}'; expected one of {valid}"
            ) from None

    @property
    def first_max_gamma(self) -> bool:
        return self in (VariantMode.FIRST_MAX_GAMMA, VariantMode.BOTH_GAMMA)

    @property
    def mean_dur_gamma(self) -> bool:
        return self in (VariantMode.MEAN_DUR_GAMMA, VariantMode.BOTH_GAMMA)


# ═══════════════════════════════════════════════════════════════════════
# DATA TRANSFER OBJECTS
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class StatRun:
    """Nine summary statistics of one infection's density series.

    Maxima-derived fields stay NaN when no local maximum was found.
    """
    init_slope: float = np.nan
    log_1st_max: float = np.nan
    no_max: int = 0
    slope_max: float = np.nan
    GM_interv: float = np.nan
    SD_log: float = np.nan
    prop_pos_1st: float = np.nan
    prop_pos_2nd: float = np.nan
    last_pos_day: float = np.nan
    densities: np.ndarray = field(default_factory=lambda: np.zeros(0))
