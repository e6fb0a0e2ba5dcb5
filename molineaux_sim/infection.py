"""Within-host parasite density dynamics: the Molineaux model family.

Implements:
  - Shared, immutable model setup (InfectionModel) built once per run
  - Per-infection stochastic draws: multiplication factor, optional gamma
    replication jitter, first local max density, positive duration
  - Two distinct growth laws on a 2-day (schizogony) cycle:
      * Variant competition (original + gamma-sampled modes):
        50 antigenic variants, switching with geometric probabilities,
        innate (S_c), general adaptive (S_m) and variant-specific (S_i)
        suppression
      * Pairwise competition: dominant vs. emerging pool under a density
        envelope declining log-linearly from the sampled first peak
  - Daily stepping: cycle densities on even blood-stage days, geometric
    interpolation on odd days
  - External immunity/drug survival factor applied multiplicatively
  - Extinction on a numerical floor, plus a safety bound on duration

References:
  - Molineaux et al. (2001) Parasitology 122:379-391
"""

from __future__ import annotations

import logging
import math
from collections import deque
from dataclasses import dataclass
from typing import Deque, Optional

import numpy as np

from molineaux_sim.config import MolineauxConfig, ParameterSet
from molineaux_sim.errors import ConfigError, InvalidParameterError, SetupResult
from molineaux_sim.rng import RandomSource
from molineaux_sim.types import VariantMode

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════
# CONSTANTS
# ═══════════════════════════════════════════════════════════════════════

N_VARIANTS = 50            # Antigenic variants (PfEMP1 repertoire)
CYCLE_DAYS = 2             # Schizogony cycle length (days)
LAG_CYCLES = 4             # Immune responses act on densities ≥ 8 days old
INITIAL_DENSITY = 0.1      # Density of the first blood-stage cycle (parasites/µL)
DENSITY_FLOOR = 1.0e-5     # Densities below this are clamped to 0

MU_M = 16.0                # Mean multiplication factor per cycle
SIGMA_M = 10.4             # SD of multiplication factor
REPL_GAMMA_SHAPE = 10.0    # Shape of mean-1 replication jitter (CV ≈ 0.32)

SWITCH_PROB = 0.02         # s: fraction switching variant per cycle
SWITCH_DECAY = 0.3         # q: geometric decay of switching probabilities
BETA = 0.01                # Residual survival under saturated general immunity
RHO = 0.0                  # Decay of general adaptive memory (d⁻¹)
SIGMA = 0.02               # Decay of variant-specific memory (d⁻¹)
PSTAR_V = 30.0             # Critical variant-specific exposure
KAPPA_C = 3.0
KAPPA_M = 1.0
KAPPA_V = 3.0
PM_STAR_RATIO = 0.004      # Pm* per (first max density × cycles of positivity)
PM_STAR_DECAY_DAYS = 10.0  # Pm* falls tenfold per this many days past the positive duration
MAX_REPLICATION = 0.9 / BETA  # m_i · β < 1: saturated general immunity always clears

GENERAL_DECAY = math.exp(-RHO * CYCLE_DAYS)
VARIANT_DECAY = math.exp(-SIGMA * CYCLE_DAYS)

# p_i ∝ q^(i+1), normalised over the repertoire
_q_pow = SWITCH_DECAY ** np.arange(1, N_VARIANTS + 1, dtype=np.float64)
SWITCH_PROBS = _q_pow / _q_pow.sum()


# ═══════════════════════════════════════════════════════════════════════
# SHARED MODEL SETUP
# ═══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class InfectionModel:
    """Read-only state shared by all infections of a simulation run.

    Build with init_model() or setup_model(); to re-configure between runs
    build a new one.
    """
    params: ParameterSet
    mode: VariantMode = VariantMode.ORIGINAL
    replication_gamma: bool = False
    latent_period: int = 15
    max_days: int = 2000


def init_model(
    params: ParameterSet,
    mode="original",
    replication_gamma: bool = False,
    latent_period: int = 15,
    max_days: int = 2000,
) -> InfectionModel:
    """Validate and build the shared model setup.

    Args:
        params: Fitted constants.
        mode: VariantMode or its scenario name.
        replication_gamma: Enable per-variant gamma replication jitter.
        latent_period: Days from inoculation to blood stage.
        max_days: Blood-stage days after which extinction is forced.

    Raises:
        UnknownModeError: Unknown mode name.
        InvalidParameterError: Parameters unusable for the selected mode.
    """
    mode = VariantMode.parse(mode)
    if mode.first_max_gamma and not (
        params.first_local_max_mean > 0 and params.first_local_max_sd > 0
    ):
        raise InvalidParameterError(
            f"mode '{mode.value}' samples the first local max from a gamma; "
            f"mean and sd must be > 0"
        )
    if mode.mean_dur_gamma and not (
        params.diff_pos_days_mean > 0 and params.diff_pos_days_sd > 0
    ):
        raise InvalidParameterError(
            f"mode '{mode.value}' samples diff positive days from a gamma; "
            f"mean and sd must be > 0"
        )
    if latent_period < 0:
        raise InvalidParameterError(f"latent_period must be >= 0, got {latent_period}")
    if max_days < 1:
        raise InvalidParameterError(f"max_days must be >= 1, got {max_days}")
    return InfectionModel(
        params=params,
        mode=mode,
        replication_gamma=bool(replication_gamma),
        latent_period=int(latent_period),
        max_days=int(max_days),
    )


def setup_model(config: MolineauxConfig) -> SetupResult[InfectionModel]:
    """Build the shared model from configuration without raising.

    Returns:
        SetupResult holding the InfectionModel, or the ErrorKind and
        message of the first configuration problem found.
    """
    try:
        model = init_model(
            config.parameters.to_parameter_set(),
            mode=config.model.mode,
            replication_gamma=config.model.replication_gamma,
            latent_period=config.simulation.latent_period,
            max_days=config.simulation.max_days,
        )
    except ConfigError as exc:
        logger.error("Model setup failed (%s): %s", exc.kind.value, exc)
        return SetupResult.failure(exc)
    logger.info(
        "Model set up: mode=%s replication_gamma=%s",
        model.mode.value, model.replication_gamma,
    )
    return SetupResult.success(model)


# ═══════════════════════════════════════════════════════════════════════
# PER-INFECTION DRAWS
# ═══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class InfectionDraws:
    """Stochastic parameters fixed for an infection's lifetime."""
    multiplication: float          # m, mean multiplication factor per cycle
    replication: np.ndarray        # (N_VARIANTS,) per-variant factors m·g_i
    first_local_max: float         # log10 density of the first local max
    diff_pos_days: float           # log10 days between first and last positive

    @property
    def duration_days(self) -> float:
        return 10.0 ** self.diff_pos_days


def draw_parameters(model: InfectionModel, rng: RandomSource) -> InfectionDraws:
    """Draw an infection's parameters. Draw order is part of the contract."""
    m = rng.gauss(MU_M, SIGMA_M)
    while m <= 1.0:
        m = rng.gauss(MU_M, SIGMA_M)

    if model.replication_gamma:
        jitter = np.array([
            rng.gamma(REPL_GAMMA_SHAPE, 1.0 / REPL_GAMMA_SHAPE)
            for _ in range(N_VARIANTS)
        ])
    else:
        jitter = np.ones(N_VARIANTS)

    p = model.params
    if model.mode.first_max_gamma:
        first_max = rng.gamma_mean_sd(p.first_local_max_mean, p.first_local_max_sd)
    else:
        first_max = rng.gauss(p.first_local_max_mean, p.first_local_max_sd)
    if model.mode.mean_dur_gamma:
        diff_days = rng.gamma_mean_sd(p.diff_pos_days_mean, p.diff_pos_days_sd)
    else:
        diff_days = rng.gauss(p.diff_pos_days_mean, p.diff_pos_days_sd)

    return InfectionDraws(
        multiplication=m,
        replication=np.minimum(m * jitter, MAX_REPLICATION),
        first_local_max=first_max,
        diff_pos_days=diff_days,
    )


# ═══════════════════════════════════════════════════════════════════════
# GROWTH LAWS
# ═══════════════════════════════════════════════════════════════════════

def _saturating(x, critical: float, kappa: float):
    """1 / (1 + (x / critical)^kappa); works on scalars and arrays."""
    return 1.0 / (1.0 + (x / critical) ** kappa)


class GrowthLaw:
    """Cycle-level dynamics of one infection.

    Holds the current cycle's per-pool densities and the pending next
    cycle. The infection drives it: advance() on even days, apply_factor()
    on odd days, commit() at the start of each later cycle.
    """

    extinction_window = 2  # days at zero density before extinction

    def __init__(self, draws: InfectionDraws, n_pools: int):
        self.draws = draws
        self._state = np.zeros(n_pools)
        self._state[0] = INITIAL_DENSITY
        self._pending = np.zeros(n_pools)

    def current_total(self) -> float:
        return float(self._state.sum())

    def pending_total(self) -> float:
        return float(self._pending.sum())

    def commit(self) -> None:
        self._state = self._pending
        self._pending = np.zeros_like(self._state)

    def apply_factor(self, factor: float) -> None:
        self._pending *= factor
        self._pending[self._pending < DENSITY_FLOOR] = 0.0

    def advance(self, factor: float, bs_age: int) -> None:
        raise NotImplementedError


class VariantCompetition(GrowthLaw):
    """Molineaux 50-variant switching model.

    P_i(t+2) = m_i S_c S_m S_i [(1-s) P_i + s p_i (P - P_i)] f

    With ρ = 0 the general response alone only holds m S_m near 1, so
    past the sampled positive duration Pm* decays log-linearly and S_m
    falls to β, which ends the infection.
    """

    def __init__(self, draws: InfectionDraws):
        super().__init__(draws, N_VARIANTS)
        peak = 10.0 ** draws.first_local_max
        # innate suppression balances mean multiplication at the sampled peak
        self.pc_star = peak / (draws.multiplication - 1.0) ** (1.0 / KAPPA_C)
        self.pm_star = PM_STAR_RATIO * peak * draws.duration_days / CYCLE_DAYS
        self.duration = draws.duration_days
        self._cumulative = 0.0                       # G
        self._exposure = np.zeros(N_VARIANTS)        # Y_i
        self._lagged: Deque[np.ndarray] = deque()

    def pm_star_at(self, bs_age: int) -> float:
        """Critical general exposure Pm* at a blood-stage age."""
        overdue = max(0.0, bs_age - self.duration) / PM_STAR_DECAY_DAYS
        return self.pm_star * 10.0 ** -min(overdue, 250.0)

    def advance(self, factor: float, bs_age: int) -> None:
        p = self._state
        self._lagged.append(p.copy())
        if len(self._lagged) > LAG_CYCLES:
            old = self._lagged.popleft()
            self._cumulative = self._cumulative * GENERAL_DECAY + float(old.sum())
            self._exposure = self._exposure * VARIANT_DECAY + old

        total = float(p.sum())
        s_c = _saturating(total, self.pc_star, KAPPA_C)
        s_m = (1.0 - BETA) * _saturating(
            self._cumulative, self.pm_star_at(bs_age), KAPPA_M
        ) + BETA
        s_v = _saturating(self._exposure, PSTAR_V, KAPPA_V)

        inflow = (1.0 - SWITCH_PROB) * p + SWITCH_PROB * SWITCH_PROBS * (total - p)
        self._pending = self.draws.replication * s_c * s_m * s_v * inflow
        self.apply_factor(factor)


class PairwiseCompetition(GrowthLaw):
    """Dominant/emerging pool competition under a fitted density envelope.

    log10 H(a) declines linearly from the sampled first local max to the
    density floor over the sampled positive duration.
    """

    def __init__(self, draws: InfectionDraws):
        super().__init__(draws, 2)
        self.slope = (
            (draws.first_local_max - math.log10(DENSITY_FLOOR)) / draws.duration_days
        )
        self._crowding_root = (draws.multiplication - 1.0) ** (1.0 / KAPPA_C)
        self._exposure = np.zeros(2)
        self._lagged: Deque[np.ndarray] = deque()
        self.wave = 0

    def envelope(self, bs_age: int) -> float:
        """Density ceiling H(a); never below a tenth of the floor."""
        log_h = self.draws.first_local_max - self.slope * bs_age
        return 10.0 ** max(log_h, math.log10(DENSITY_FLOOR) - 1.0)

    def advance(self, factor: float, bs_age: int) -> None:
        a, b = self._state
        self._lagged.append(self._state.copy())
        if len(self._lagged) > LAG_CYCLES:
            self._exposure = self._exposure * VARIANT_DECAY + self._lagged.popleft()

        critical = self.envelope(bs_age) / self._crowding_root
        s = _saturating(a + b, critical, KAPPA_C)
        s_a, s_b = _saturating(self._exposure, PSTAR_V, KAPPA_V)
        m = self.draws.replication
        next_a = m[self.wave % N_VARIANTS] * s * s_a * (1.0 - SWITCH_PROB) * a
        next_b = m[(self.wave + 1) % N_VARIANTS] * s * s_b * (b + SWITCH_PROB * a)

        if next_b > next_a:
            # emerging pool takes over; its exposure history moves with it
            self.wave += 1
            next_a, next_b = next_b, 0.0
            self._exposure = np.array([self._exposure[1], 0.0])
            self._lagged = deque(np.array([x[1], 0.0]) for x in self._lagged)
        self._pending = np.array([next_a, next_b])
        self.apply_factor(factor)


def make_growth_law(model: InfectionModel, draws: InfectionDraws) -> GrowthLaw:
    if model.mode is VariantMode.PAIRWISE:
        return PairwiseCompetition(draws)
    return VariantCompetition(draws)


# ═══════════════════════════════════════════════════════════════════════
# INFECTION
# ═══════════════════════════════════════════════════════════════════════

class MolineauxInfection:
    """One infection's parasite density trajectory.

    Args:
        model: Shared model setup.
        rng: Random source; parameters are drawn from it on construction.
        strain_tag: Caller's strain / drug-model identifier.
        start_day: Simulated day of inoculation.

    Example:
        >>> inf = MolineauxInfection(model, rng)
        >>> now = 0
        >>> while not inf.update(1.0, now):
        ...     now += 1
    """

    def __init__(
        self,
        model: InfectionModel,
        rng: RandomSource,
        strain_tag: int = 0xFFFFFFFF,
        start_day: int = 0,
    ):
        self.model = model
        self.strain_tag = strain_tag
        self.start_day = start_day
        self.latent_period = model.latent_period
        self.days_elapsed = 0
        self.extinct = False
        self.draws = draw_parameters(model, rng)
        self._law = make_growth_law(model, self.draws)
        self._density = 0.0
        self._zero_days = 0
        self._last_day: Optional[int] = None

    def blood_stage_age(self, now: int) -> int:
        return now - self.start_day - self.latent_period

    def get_density(self) -> float:
        """Density (parasites/µL) reported by the last update.

        Zero before the latent period has elapsed.
        """
        return self._density

    def update(self, survival_factor: float, now: int) -> bool:
        """Advance one day.

        Args:
            survival_factor: External immunity × drug survival in (0, 1].
            now: Current simulated day; must follow the previous call's day.

        Returns:
            True once the infection is extinct. Stop calling after that.
        """
        if not 0.0 < survival_factor <= 1.0:
            raise ValueError(
                f"survival_factor must be in (0, 1], got {survival_factor}"
            )
        if self._last_day is not None and now != self._last_day + 1:
            raise ValueError(
                f"update must be called once per day: last day {self._last_day}, got {now}"
            )
        self._last_day = now
        self.days_elapsed += 1
        if self.extinct:
            return True

        age = self.blood_stage_age(now)
        if age < 0:
            return False
        if age >= self.model.max_days:
            logger.warning(
                "Infection %#x reached %d blood-stage days; forcing extinction",
                self.strain_tag, self.model.max_days,
            )
            self._density = 0.0
            self.extinct = True
            return True

        law = self._law
        if age % CYCLE_DAYS == 0:
            if age > 0:
                law.commit()
            density = law.current_total()
            law.advance(survival_factor, age)
        else:
            law.apply_factor(survival_factor)
            density = math.sqrt(law.current_total() * law.pending_total())

        if density <= DENSITY_FLOOR:
            density = 0.0
            self._zero_days += 1
        else:
            self._zero_days = 0
        self._density = density

        if self._zero_days >= law.extinction_window:
            self.extinct = True
        return self.extinct
