"""Configuration system for StoX.

Hierarchical YAML configuration with deep-merge support:
  base.yaml → override.yaml → command-line overrides

Sections:
  simulation: initial population, iterations, eps, seed
  check:      row-sum tolerance, abort-on-warning policy
  output:     output directory, number formatting, plots
  logging:    log level
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from stox.types import ROW_SUM_TOLERANCE, SimulationParameters


# ═══════════════════════════════════════════════════════════════════════
# CONFIGURATION DATACLASSES
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class SimulationSection:
    """Run parameters."""
    initial_population: float = 1000.0   # Seeds entering the root stage
    iterations: int = 1000               # Bootstrap iterations
    eps: float = 1e-4                    # Quasi-zero for unobserved transitions
    seed: Optional[int] = None           # None = high-entropy seeding


@dataclass
class CheckSection:
    """Consistency check policy."""
    row_sum_tolerance: float = ROW_SUM_TOLERANCE
    abort_on_warning: bool = False       # Treat row-sum warnings as fatal


@dataclass
class OutputSection:
    """Output files and formatting."""
    output_dir: str = "results"
    precision: int = 3                   # Decimals in the output table
    min_columns: int = 5
    save_plots: bool = False


@dataclass
class LoggingSection:
    level: str = "INFO"


@dataclass
class SimulationConfig:
    """Complete run configuration."""
    simulation: SimulationSection = field(default_factory=SimulationSection)
    check: CheckSection = field(default_factory=CheckSection)
    output: OutputSection = field(default_factory=OutputSection)
    logging: LoggingSection = field(default_factory=LoggingSection)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# ═══════════════════════════════════════════════════════════════════════
# MERGING / CONVERSION
# ═══════════════════════════════════════════════════════════════════════

def deep_merge(base: Dict, override: Dict) -> Dict:
    """Recursively merge override into base (mutates base).

    Dict values are merged; everything else in override replaces base.

    Returns:
        The mutated base dict.
    """
    for key, value in override.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            deep_merge(base[key], value)
        else:
            base[key] = value
    return base


_SECTIONS = {
    'simulation': SimulationSection,
    'check': CheckSection,
    'output': OutputSection,
    'logging': LoggingSection,
}


def _dict_to_section(section_cls, data: Dict, section: str) -> Any:
    known = set(section_cls.__dataclass_fields__)
    unknown = set(data) - known
    if unknown:
        raise ValueError(
            f"Unknown key(s) in '{section}' section: {sorted(unknown)}"
        )
    values = dict(data)
    for key, value in values.items():
        default = section_cls.__dataclass_fields__[key].default
        # YAML 1.1 reads exponent floats without a dot ("1e-4") as strings
        if isinstance(default, float) and isinstance(value, (int, str)) \
                and not isinstance(value, bool):
            try:
                values[key] = float(value)
            except ValueError:
                raise ValueError(
                    f"{section}.{key} must be a number, got {value!r}"
                ) from None
    return section_cls(**values)


def _yaml_to_config(data: Dict) -> SimulationConfig:
    unknown = set(data) - set(_SECTIONS)
    if unknown:
        raise ValueError(f"Unknown config section(s): {sorted(unknown)}")
    sections = {
        name: _dict_to_section(cls, data.get(name) or {}, name)
        for name, cls in _SECTIONS.items()
    }
    return SimulationConfig(**sections)


# ═══════════════════════════════════════════════════════════════════════
# VALIDATION / LOADING
# ═══════════════════════════════════════════════════════════════════════

def validate_config(config: SimulationConfig) -> None:
    """Validate configuration constraints. Raises ValueError on failure."""
    sim = config.simulation
    if sim.initial_population < 0:
        raise ValueError(
            f"simulation.initial_population must be >= 0, "
            f"got {sim.initial_population}"
        )
    if isinstance(sim.iterations, bool) or not isinstance(sim.iterations, int):
        raise ValueError(
            f"simulation.iterations must be an integer, got {sim.iterations!r}"
        )
    if sim.iterations < 1:
        raise ValueError(
            f"simulation.iterations must be >= 1, got {sim.iterations}"
        )
    if sim.eps <= 0:
        raise ValueError(f"simulation.eps must be > 0, got {sim.eps}")
    if sim.seed is not None:
        if isinstance(sim.seed, bool) or not isinstance(sim.seed, int):
            raise ValueError(
                f"simulation.seed must be an integer, got {sim.seed!r}"
            )
        if sim.seed < 0:
            raise ValueError("simulation.seed must be non-negative")

    if config.check.row_sum_tolerance < 0:
        raise ValueError(
            f"check.row_sum_tolerance must be >= 0, "
            f"got {config.check.row_sum_tolerance}"
        )

    if config.output.precision < 0:
        raise ValueError(
            f"output.precision must be >= 0, got {config.output.precision}"
        )
    if config.output.min_columns < 1:
        raise ValueError(
            f"output.min_columns must be >= 1, got {config.output.min_columns}"
        )

    valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
    if config.logging.level.upper() not in valid_levels:
        raise ValueError(
            f"logging.level must be one of {sorted(valid_levels)}, "
            f"got '{config.logging.level}'"
        )


def load_config(
    base_path: Union[str, Path],
    override_path: Optional[Union[str, Path]] = None,
    overrides: Optional[Dict] = None,
) -> SimulationConfig:
    """Load and merge hierarchical YAML configuration.

    Merge order: base → override file → overrides dict.

    Args:
        base_path: Path to base configuration YAML.
        override_path: Optional override YAML; skipped if it doesn't exist.
        overrides: Optional dict of overrides (e.g. from the command line).

    Returns:
        Validated SimulationConfig.

    Raises:
        FileNotFoundError: If base_path doesn't exist.
        ValueError: If validation fails.
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
                deep_merge(config_dict, yaml.safe_load(f) or {})

    if overrides is not None:
        deep_merge(config_dict, overrides)

    config = _yaml_to_config(config_dict)
    validate_config(config)
    return config


def default_config() -> SimulationConfig:
    """Return a SimulationConfig with all default values."""
    config = SimulationConfig()
    validate_config(config)
    return config


def parameters_from_config(config: SimulationConfig) -> SimulationParameters:
    sim = config.simulation
    return SimulationParameters(
        initial_population=float(sim.initial_population),
        iterations=sim.iterations,
        eps=float(sim.eps),
    )
