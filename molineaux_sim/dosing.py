"""Dosing interface consumed by the density model.

The PK/PD model is external: all the infection sees is a per-day
survival factor. This module provides the two pieces of the contract
that live on this side of the boundary:
  - DosageTable: age- or body-mass-keyed dose multipliers
  - survival_factor(): combines host immunity with drug kill efficacy
"""

from __future__ import annotations

import logging
import math
from typing import Iterable, Mapping, Tuple, Union

import numpy as np

from molineaux_sim.errors import DosageTableError, SetupResult

logger = logging.getLogger(__name__)


class DosageTable:
    """Dose multipliers keyed by age (years) or body mass (kg).

    Each key is the exclusive upper bound of its bucket: a lookup returns
    the multiplier of the smallest key strictly greater than the query.
    Oral doses are usually whole pills, so multipliers are mostly
    integers; IV doses in mg/kg usually have multiplier 1.

    Args:
        table: Mapping or (key, multiplier) pairs.
        use_mass: False for age-keyed tables, True for body-mass-keyed.

    Raises:
        DosageTableError: Empty table, non-finite key, or negative multiplier.
    """

    def __init__(
        self,
        table: Union[Mapping[float, float], Iterable[Tuple[float, float]]],
        use_mass: bool = False,
    ):
        items = table.items() if isinstance(table, Mapping) else table
        pairs = sorted((float(k), float(v)) for k, v in items)
        if not pairs:
            raise DosageTableError("dosage table is empty")
        for key, mult in pairs:
            if not math.isfinite(key):
                raise DosageTableError(f"dosage table key must be finite, got {key}")
            if not (math.isfinite(mult) and mult >= 0.0):
                raise DosageTableError(
                    f"dosage multiplier for key {key} must be >= 0, got {mult}"
                )
        self.use_mass = use_mass
        self.keys = np.array([k for k, _ in pairs])
        self.multipliers = np.array([v for _, v in pairs])
        if np.any(np.diff(self.keys) == 0):
            raise DosageTableError("dosage table has duplicate keys")

    def get_multiplier(self, key: float) -> float:
        """Multiplier of the first bucket whose upper bound exceeds key.

        Raises:
            DosageTableError: key is at or above every table key.
        """
        idx = int(np.searchsorted(self.keys, key, side='right'))
        if idx >= len(self.keys):
            kind = "body mass" if self.use_mass else "age"
            raise DosageTableError(
                f"bad {kind}/dosage table: {key} is beyond the last entry "
                f"({self.keys[-1]})"
            )
        return float(self.multipliers[idx])


def load_dosage_table(
    table: Union[Mapping[float, float], Iterable[Tuple[float, float]]],
    use_mass: bool = False,
) -> SetupResult[DosageTable]:
    """Setup routine: build a DosageTable, reporting failures as a result."""
    try:
        return SetupResult.success(DosageTable(table, use_mass=use_mass))
    except DosageTableError as exc:
        logger.error("Dosage table rejected: %s", exc)
        return SetupResult.failure(exc)
    except (TypeError, ValueError) as exc:
        err = DosageTableError(f"malformed dosage table: {exc}")
        logger.error("Dosage table rejected: %s", err)
        return SetupResult.failure(err)


def survival_factor(immunity: float = 1.0, kill_efficacy: float = 0.0) -> float:
    """Per-day parasite survival from host immunity and drug kill.

    factor = immunity × (1 − kill_efficacy)

    Args:
        immunity: Survival under external immunity, in (0, 1].
        kill_efficacy: Fraction killed by drug today, in [0, 1).

    Returns:
        Survival factor in (0, 1], suitable for MolineauxInfection.update().
    """
    if not 0.0 < immunity <= 1.0:
        raise ValueError(f"immunity must be in (0, 1], got {immunity}")
    if not 0.0 <= kill_efficacy < 1.0:
        raise ValueError(f"kill_efficacy must be in [0, 1), got {kill_efficacy}")
    return immunity * (1.0 - kill_efficacy)
