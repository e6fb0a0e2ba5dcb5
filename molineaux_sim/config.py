"""Configuration system for molineaux-sim.

Hierarchical YAML configuration with deep-merge support:
  base.yaml → override.yaml → sweep overrides

The four externally fitted constants live in ParameterSet, an immutable
object shared by reference between all infections of a run.
"""

from __future__ import annotations

import dataclasses
import math
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

import yaml

from molineaux_sim.errors import (
    ConfigError,
    InvalidParameterError,
    MissingParameterError,
)
from molineaux_sim.types import VariantMode


# ═══════════════════════════════════════════════════════════════════════
# FITTED PARAMETERS
# ═══════════════════════════════════════════════════════════════════════

# Scenario parameter names → ParameterSet field names
SCENARIO_PARAMETER_NAMES = {
    "Molineaux first local max density mean": "first_local_max_mean",
    "Molineaux first local max density sd": "first_local_max_sd",
    "Diff positive days mean": "diff_pos_days_mean",
    "Diff positive days sd": "diff_pos_days_sd",
}


@dataclass(frozen=True)
class ParameterSet:
    """Externally fitted constants of the Molineaux model.

    first_local_max_*: log10 density (parasites/µL) of the first local max.
    diff_pos_days_*:   log10 of the days between first and last positive.
    """
    first_local_max_mean: float = 4.7601
    first_local_max_sd: float = 0.5008
    diff_pos_days_mean: float = 2.2736
    diff_pos_days_sd: float = 0.2315

    def __post_init__(self):
        for f in dataclasses.fields(self):
            value = getattr(self, f.name)
            if not isinstance(value, (int, float)) or not math.isfinite(value):
                raise InvalidParameterError(
                    f"parameter {f.name} must be a finite number, got {value!r}"
                )
        for name in ("first_local_max_sd", "diff_pos_days_sd"):
            if getattr(self, name) < 0:
                raise InvalidParameterError(
                    f"parameter {name} must be >= 0, got {getattr(self, name)}"
                )

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "ParameterSet":
        """Build from a mapping keyed by field or scenario names.

        Raises:
            MissingParameterError: If any of the four constants is absent.
            InvalidParameterError: If a constant is not a finite number.
        """
        values = {}
        for key, value in data.items():
            name = SCENARIO_PARAMETER_NAMES.get(key, key)
            values[name] = value
        wanted = [f.name for f in dataclasses.fields(cls)]
        missing = [name for name in wanted if name not in values]
        if missing:
            raise MissingParameterError(
                f"missing fitted parameters: {', '.join(missing)}"
            )
        try:
            return cls(**{name: float(values[name]) for name in wanted})
        except (TypeError, ValueError) as exc:
            if isinstance(exc, ConfigError):
                raise
            raise InvalidParameterError(f"non-numeric fitted parameter: {exc}") from exc


# ═══════════════════════════════════════════════════════════════════════
# CONFIGURATION DATACLASSES
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class SimulationSection:
    """Run control and time model."""
    seed: int = 1095
    latent_period: int = 15       # Days from inoculation to first blood-stage density
    max_days: int = 2000          # Safety bound on blood-stage days before forced extinction


@dataclass
class ModelSection:
    """Variant selection."""
    mode: str = "original"        # see VariantMode
    replication_gamma: bool = False


@dataclass
class ParametersSection:
    """Fitted constants as they appear in YAML (may be incomplete)."""
    first_local_max_mean: Optional[float] = 4.7601
    first_local_max_sd: Optional[float] = 0.5008
    diff_pos_days_mean: Optional[float] = 2.2736
    diff_pos_days_sd: Optional[float] = 0.2315

    def to_parameter_set(self) -> ParameterSet:
        present = {k: v for k, v in dataclasses.asdict(self).items() if v is not None}
        return ParameterSet.from_mapping(present)


@dataclass
class ValidationSection:
    """Statistical validation harness."""
    n_runs: int = 200
    golden_dir: str = "tests/golden"


@dataclass
class MolineauxConfig:
    """Complete configuration.

    Load from YAML via `load_config()`. Sections map 1:1 to YAML top-level keys.
    """
    simulation: SimulationSection = field(default_factory=SimulationSection)
    model: ModelSection = field(default_factory=ModelSection)
    parameters: ParametersSection = field(default_factory=ParametersSection)
    validation: ValidationSection = field(default_factory=ValidationSection)


# ═══════════════════════════════════════════════════════════════════════
# YAML LOADING & MERGING
# ═══════════════════════════════════════════════════════════════════════

def deep_merge(base: Dict, override: Dict) -> Dict:
    """Recursively merge override into base. Modifies base in place.

    - Dict values are merged recursively
    - Non-dict values are replaced
    - Keys in override but not base are added

    Returns:
        The merged base dictionary.
    """
    for key, value in override.items():
        if (
            key in base
            and isinstance(base[key], dict)
            and isinstance(value, dict)
        ):
            deep_merge(base[key], value)
        else:
            base[key] = value
    return base


def _dict_to_section(section_cls, data: Dict) -> Any:
    """Convert a dict to a dataclass, ignoring unknown keys."""
    valid_fields = {f.name for f in dataclasses.fields(section_cls)}
    filtered = {k: v for k, v in data.items() if k in valid_fields}
    return section_cls(**filtered)


def _parameters_from_yaml(data: Dict) -> ParametersSection:
    """Parameters may be given under field or scenario names.

    A YAML ``parameters`` section replaces the defaults entirely, so a
    partial section is reported as missing parameters at validation.
    """
    renamed = {SCENARIO_PARAMETER_NAMES.get(k, k): v for k, v in data.items()}
    blank = {f.name: None for f in dataclasses.fields(ParametersSection)}
    blank.update({k: v for k, v in renamed.items() if k in blank})
    return ParametersSection(**blank)


def _yaml_to_config(data: Dict) -> MolineauxConfig:
    """Convert a merged YAML dict to a MolineauxConfig."""
    sections = {}
    section_map = {
        'simulation': SimulationSection,
        'model': ModelSection,
        'validation': ValidationSection,
    }
    for key, cls in section_map.items():
        if key in data and isinstance(data[key], dict):
            sections[key] = _dict_to_section(cls, data[key])
        else:
            sections[key] = cls()
    if isinstance(data.get('parameters'), dict):
        sections['parameters'] = _parameters_from_yaml(data['parameters'])
    else:
        sections['parameters'] = ParametersSection()
    return MolineauxConfig(**sections)


def validate_config(config: MolineauxConfig) -> None:
    """Validate configuration constraints.

    Raises:
        UnknownModeError: model.mode is not a VariantMode name.
        MissingParameterError: a fitted constant is absent.
        InvalidParameterError: any other out-of-range value.
    """
    VariantMode.parse(config.model.mode)
    config.parameters.to_parameter_set()

    sim = config.simulation
    if sim.seed < 0:
        raise InvalidParameterError("simulation.seed must be non-negative")
    if sim.latent_period < 0:
        raise InvalidParameterError(
            f"simulation.latent_period must be >= 0, got {sim.latent_period}"
        )
    if sim.max_days < 1:
        raise InvalidParameterError(
            f"simulation.max_days must be >= 1, got {sim.max_days}"
        )

    if config.validation.n_runs < 1:
        raise InvalidParameterError(
            f"validation.n_runs must be >= 1, got {config.validation.n_runs}"
        )
    if not Path(config.validation.golden_dir).is_dir():
        warnings.warn(
            f"validation.golden_dir '{config.validation.golden_dir}' "
            f"does not exist. Golden-file comparison will report it missing.",
            UserWarning,
            stacklevel=2,
        )


def load_config(
    base_path: Union[str, Path],
    override_path: Optional[Union[str, Path]] = None,
    sweep_overrides: Optional[Dict] = None,
) -> MolineauxConfig:
    """Load and merge hierarchical YAML configuration.

    Merge order: base → override → sweep overrides.

    Raises:
        FileNotFoundError: If base_path doesn't exist.
        ConfigError: If validation fails.
    """
    base_path = Path(base_path)
    if not base_path.exists():
        raise FileNotFoundError(f"Config file not found: {base_path}")

    with open(base_path) as f:
        config_dict = yaml.safe_load(f) or {}

    if override_path is not None:
        override_path = Path(override_path)
        if override_path.exists():
            with open(override_path) as f:
                override = yaml.safe_load(f) or {}
            deep_merge(config_dict, override)

    if sweep_overrides is not None:
        deep_merge(config_dict, sweep_overrides)

    config = _yaml_to_config(config_dict)
    validate_config(config)
    return config


def default_config() -> MolineauxConfig:
    """Return a MolineauxConfig with all default values (not validated)."""
    return MolineauxConfig()
