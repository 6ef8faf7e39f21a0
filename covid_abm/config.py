"""Configuration system for covid_abm.

Hierarchical YAML configuration with deep-merge support:
  base.yaml → scenario override → sweep overrides

Every engine parameter has a default here so that `default_config()` is a
runnable scenario (the Orange County, FL spring 2020 stay-at-home sequence).
Validation runs once, before any tick executes, and fails fast with
ValueError; suspicious-but-legal settings only warn.
"""

from __future__ import annotations

import dataclasses
import warnings
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from covid_abm.utils import to_datetime

N_QUARANTINE_LEVELS = 5   # 0 (strictest) .. 4 (fully open)


# ═══════════════════════════════════════════════════════════════════════
# CONFIGURATION DATACLASSES
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class SimulationSection:
    """Top-level simulation timing and control."""
    seed: int = 42
    dt: float = 1.0 / 24.0          # tick length (fraction of a day)
    n_steps: int = 2400             # default run length (100 days hourly)
    start: datetime = field(default_factory=lambda: datetime(2020, 3, 1))
    initial_quarantine_level: int = 2


@dataclass
class SpaceSection:
    """Toroidal domain and contact scale."""
    extent_x: float = 1.0
    extent_y: float = 1.0
    interaction_radius: float = 0.012


@dataclass
class PopulationSection:
    """Population composition and mobility."""
    n_agents: int = 1000
    age_min: int = 10
    age_max: int = 90
    speed: float = 0.02              # space units/day at full speed
    mask_fraction: float = 0.9       # fraction of agents wearing masks
    infected_fraction: float = 0.1   # fraction infected at t=0
    ignore_fraction: float = 0.2     # fraction exempt from stay-at-home orders
    initial_reinfection_prob: float = 0.01


@dataclass
class DiseaseSection:
    """Disease progression, detection and transmission parameters.

    Death fires once critical_time (cumulative days with severity above
    critical_threshold) exceeds death_critical_time. Hospitalized agents
    grow severity at hospital_growth_factor × the normal rate.
    """
    detection_threshold: float = 10.0
    critical_threshold: float = 75.0
    reinfect_max: float = 0.05         # cap that reinfection_prob approaches
    K_beta_min: float = 5.0
    K_beta_max: float = 10.0
    beta_max_mean: float = 75.0        # mean peak transmission, in percent
    mask_effect: float = 0.67          # multiplier per mask wearer in a contact
    hospital_growth_factor: float = 0.5
    death_critical_time: float = 3.0   # days
    forced_recovery_time: float = 30.0 # days


@dataclass
class QuarantineEvent:
    """A calendar-triggered quarantine level change."""
    timestamp: datetime
    level: int


def _default_schedule() -> List[QuarantineEvent]:
    return [
        QuarantineEvent(datetime(2020, 3, 26), 0),
        QuarantineEvent(datetime(2020, 5, 4), 1),
        QuarantineEvent(datetime(2020, 6, 5), 2),
        QuarantineEvent(datetime(2020, 6, 19), 3),
        QuarantineEvent(datetime(2020, 7, 5), 4),
    ]


@dataclass
class QuarantineSection:
    """Ordered quarantine transition schedule."""
    schedule: List[QuarantineEvent] = field(default_factory=_default_schedule)


@dataclass
class OutputSection:
    """Output control."""
    record_agents: bool = True   # per-agent records in every snapshot
    perf: bool = False           # per-phase timing


@dataclass
class SimulationConfig:
    """Complete simulation configuration.

    Load from YAML via `load_config()`. Sections map 1:1 to YAML top-level keys.
    """
    simulation: SimulationSection = field(default_factory=SimulationSection)
    space: SpaceSection = field(default_factory=SpaceSection)
    population: PopulationSection = field(default_factory=PopulationSection)
    disease: DiseaseSection = field(default_factory=DiseaseSection)
    quarantine: QuarantineSection = field(default_factory=QuarantineSection)
    output: OutputSection = field(default_factory=OutputSection)


# ═══════════════════════════════════════════════════════════════════════
# YAML LOADING & MERGING
# ═══════════════════════════════════════════════════════════════════════

def deep_merge(base: Dict, override: Dict) -> Dict:
    """Recursively merge override into base. Modifies base in place.

    - Dict values are merged recursively
    - Non-dict values are replaced (lists included, so a scenario
      replaces the whole quarantine schedule)
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


def _parse_schedule(raw: List[Any]) -> List[QuarantineEvent]:
    """Parse schedule entries given as dicts or [timestamp, level] pairs."""
    events = []
    for i, entry in enumerate(raw):
        if isinstance(entry, QuarantineEvent):
            events.append(entry)
        elif isinstance(entry, dict):
            events.append(QuarantineEvent(
                timestamp=to_datetime(entry['timestamp']),
                level=int(entry['level']),
            ))
        elif isinstance(entry, (list, tuple)) and len(entry) == 2:
            events.append(QuarantineEvent(to_datetime(entry[0]), int(entry[1])))
        else:
            raise ValueError(
                f"quarantine.schedule[{i}] must be a {{timestamp, level}} "
                f"mapping or a [timestamp, level] pair, got {entry!r}"
            )
    return events


def _yaml_to_config(data: Dict) -> SimulationConfig:
    """Convert a merged YAML dict to a SimulationConfig."""
    sections = {}
    section_map = {
        'simulation': SimulationSection,
        'space': SpaceSection,
        'population': PopulationSection,
        'disease': DiseaseSection,
        'quarantine': QuarantineSection,
        'output': OutputSection,
    }
    for key, cls in section_map.items():
        if key in data and isinstance(data[key], dict):
            sections[key] = _dict_to_section(cls, data[key])
        else:
            sections[key] = cls()

    sim = sections['simulation']
    sim.start = to_datetime(sim.start)
    q = sections['quarantine']
    q.schedule = _parse_schedule(q.schedule)

    return SimulationConfig(**sections)


def _check_fraction(name: str, value: float) -> None:
    if not 0.0 <= value <= 1.0:
        raise ValueError(f"{name} must be in [0, 1], got {value}")


def validate_config(config: SimulationConfig) -> None:
    """Validate configuration constraints. Raises ValueError on failure.

    Checks:
      - Positive population, tick length, extents and interaction radius
      - Non-empty, strictly increasing quarantine schedule with valid levels
      - Fractions and probabilities in [0, 1]
      - Consistent age range and Kβ bounds
    """
    sim = config.simulation
    space = config.space
    pop = config.population
    dis = config.disease

    # Timing
    if sim.dt <= 0:
        raise ValueError(f"simulation.dt must be positive, got {sim.dt}")
    if sim.n_steps < 0:
        raise ValueError(f"simulation.n_steps must be >= 0, got {sim.n_steps}")
    if sim.seed < 0:
        raise ValueError("simulation.seed must be non-negative")
    if not 0 <= sim.initial_quarantine_level < N_QUARANTINE_LEVELS:
        raise ValueError(
            f"simulation.initial_quarantine_level must be in "
            f"0..{N_QUARANTINE_LEVELS - 1}, got {sim.initial_quarantine_level}"
        )

    # Space
    if space.extent_x <= 0 or space.extent_y <= 0:
        raise ValueError(
            f"space extents must be positive, got "
            f"({space.extent_x}, {space.extent_y})"
        )
    if space.interaction_radius <= 0:
        raise ValueError(
            f"space.interaction_radius must be positive, "
            f"got {space.interaction_radius}"
        )

    # Population
    if pop.n_agents <= 0:
        raise ValueError(f"population.n_agents must be positive, got {pop.n_agents}")
    if pop.age_min > pop.age_max:
        raise ValueError(
            f"population.age_min ({pop.age_min}) must be <= "
            f"age_max ({pop.age_max})"
        )
    if pop.speed < 0:
        raise ValueError(f"population.speed must be >= 0, got {pop.speed}")
    _check_fraction("population.mask_fraction", pop.mask_fraction)
    _check_fraction("population.infected_fraction", pop.infected_fraction)
    _check_fraction("population.ignore_fraction", pop.ignore_fraction)
    _check_fraction("population.initial_reinfection_prob", pop.initial_reinfection_prob)

    # Disease
    if dis.K_beta_min <= 0 or dis.K_beta_max <= 0:
        raise ValueError(
            f"disease Kβ bounds must be positive, got "
            f"({dis.K_beta_min}, {dis.K_beta_max})"
        )
    if dis.beta_max_mean < 0:
        raise ValueError(f"disease.beta_max_mean must be >= 0, got {dis.beta_max_mean}")
    _check_fraction("disease.mask_effect", dis.mask_effect)
    _check_fraction("disease.reinfect_max", dis.reinfect_max)
    if dis.hospital_growth_factor < 0:
        raise ValueError(
            f"disease.hospital_growth_factor must be >= 0, "
            f"got {dis.hospital_growth_factor}"
        )
    if dis.death_critical_time <= 0:
        raise ValueError("disease.death_critical_time must be positive")
    if dis.forced_recovery_time <= 0:
        raise ValueError("disease.forced_recovery_time must be positive")

    # Quarantine schedule
    schedule = config.quarantine.schedule
    if not schedule:
        raise ValueError("quarantine.schedule must contain at least one event")
    for i, event in enumerate(schedule):
        if not 0 <= event.level < N_QUARANTINE_LEVELS:
            raise ValueError(
                f"quarantine.schedule[{i}].level must be in "
                f"0..{N_QUARANTINE_LEVELS - 1}, got {event.level}"
            )
        if i > 0 and event.timestamp <= schedule[i - 1].timestamp:
            raise ValueError(
                f"quarantine.schedule must be strictly increasing in time: "
                f"event {i} ({event.timestamp}) is not after event {i - 1} "
                f"({schedule[i - 1].timestamp})"
            )

    # Advisory checks
    half_extent = 0.5 * min(space.extent_x, space.extent_y)
    if space.interaction_radius > half_extent:
        warnings.warn(
            f"space.interaction_radius ({space.interaction_radius}) exceeds "
            f"half the smallest extent ({half_extent}); periodic neighbours "
            f"become ambiguous.",
            UserWarning,
            stacklevel=2,
        )
    if pop.speed * sim.dt > space.interaction_radius:
        warnings.warn(
            f"agents travel {pop.speed * sim.dt:g} per tick, farther than the "
            f"interaction radius ({space.interaction_radius}); contacts may "
            f"be skipped.",
            UserWarning,
            stacklevel=2,
        )


def load_config(
    base_path: Union[str, Path],
    scenario_path: Optional[Union[str, Path]] = None,
    sweep_overrides: Optional[Dict] = None,
) -> SimulationConfig:
    """Load and merge hierarchical YAML configuration.

    Merge order: base → scenario → sweep overrides.
    Each layer overrides only the fields it specifies.

    Args:
        base_path: Path to base configuration YAML.
        scenario_path: Optional scenario override YAML.
        sweep_overrides: Optional dict of parameter overrides, e.g. one
            point of a calibration search.

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

    if scenario_path is not None:
        scenario_path = Path(scenario_path)
        if scenario_path.exists():
            with open(scenario_path) as f:
                scenario = yaml.safe_load(f) or {}
            deep_merge(config_dict, scenario)

    if sweep_overrides is not None:
        deep_merge(config_dict, sweep_overrides)

    config = _yaml_to_config(config_dict)
    validate_config(config)
    return config


def config_from_dict(data: Dict) -> SimulationConfig:
    """Build and validate a SimulationConfig from a plain (YAML-shaped) dict."""
    config = _yaml_to_config(data)
    validate_config(config)
    return config


def default_config() -> SimulationConfig:
    """Return a SimulationConfig with all default values."""
    config = SimulationConfig()
    validate_config(config)
    return config
