"""Tests for covid_abm.config — YAML loading, merging and validation."""

import warnings
from datetime import date, datetime, timezone
from pathlib import Path

import pytest
import yaml

from covid_abm.config import (
    QuarantineEvent,
    SimulationConfig,
    config_from_dict,
    deep_merge,
    default_config,
    load_config,
    validate_config,
)
from covid_abm.utils import step_delta, to_datetime


# ═══════════════════════════════════════════════════════════════════════
# DEFAULTS
# ═══════════════════════════════════════════════════════════════════════

class TestDefaults:
    def test_default_config_is_valid(self):
        config = default_config()
        assert isinstance(config, SimulationConfig)
        assert config.population.n_agents == 1000
        assert config.simulation.initial_quarantine_level == 2

    def test_default_schedule(self):
        schedule = default_config().quarantine.schedule
        assert [e.level for e in schedule] == [0, 1, 2, 3, 4]
        assert schedule[0].timestamp == datetime(2020, 3, 26)
        assert schedule[-1].timestamp == datetime(2020, 7, 5)

    def test_default_config_has_no_warnings(self):
        with warnings.catch_warnings():
            warnings.simplefilter("error")
            default_config()

    def test_sections_are_independent(self):
        a = default_config()
        b = default_config()
        a.quarantine.schedule.pop()
        assert len(b.quarantine.schedule) == 5


# ═══════════════════════════════════════════════════════════════════════
# MERGING & LOADING
# ═══════════════════════════════════════════════════════════════════════

class TestDeepMerge:
    def test_nested_merge(self):
        base = {'a': {'x': 1, 'y': 2}, 'b': 3}
        deep_merge(base, {'a': {'y': 20}, 'c': 4})
        assert base == {'a': {'x': 1, 'y': 20}, 'b': 3, 'c': 4}

    def test_lists_replaced(self):
        base = {'quarantine': {'schedule': [1, 2, 3]}}
        deep_merge(base, {'quarantine': {'schedule': [9]}})
        assert base['quarantine']['schedule'] == [9]


class TestLoadConfig:
    def test_load_from_yaml(self, tmp_path):
        content = {
            'simulation': {'seed': 7, 'start': '2020-04-01T06:00:00'},
            'population': {'n_agents': 50},
            'quarantine': {'schedule': [
                {'timestamp': '2020-04-02', 'level': 0},
                {'timestamp': '2020-04-10', 'level': 4},
            ]},
        }
        path = tmp_path / "test.yaml"
        with open(path, 'w') as f:
            yaml.dump(content, f)

        config = load_config(path)
        assert config.simulation.seed == 7
        assert config.simulation.start == datetime(2020, 4, 1, 6)
        assert config.population.n_agents == 50
        assert config.quarantine.schedule == [
            QuarantineEvent(datetime(2020, 4, 2), 0),
            QuarantineEvent(datetime(2020, 4, 10), 4),
        ]
        # untouched sections keep defaults
        assert config.disease.mask_effect == pytest.approx(0.67)

    def test_yaml_dates(self, tmp_path):
        """Unquoted YAML dates load as date objects and are normalized."""
        path = tmp_path / "dates.yaml"
        path.write_text(
            "simulation:\n"
            "  start: 2020-03-01\n"
            "quarantine:\n"
            "  schedule:\n"
            "    - {timestamp: 2020-03-26, level: 0}\n"
        )
        config = load_config(path)
        assert config.simulation.start == datetime(2020, 3, 1)
        assert config.quarantine.schedule[0].timestamp == datetime(2020, 3, 26)

    def test_scenario_and_sweep_overrides(self, tmp_path):
        base_path = tmp_path / "base.yaml"
        scen_path = tmp_path / "scenario.yaml"
        with open(base_path, 'w') as f:
            yaml.dump({'population': {'n_agents': 100, 'mask_fraction': 0.5}}, f)
        with open(scen_path, 'w') as f:
            yaml.dump({'population': {'n_agents': 200}}, f)

        config = load_config(base_path, scen_path,
                             sweep_overrides={'disease': {'mask_effect': 0.5}})
        assert config.population.n_agents == 200
        assert config.population.mask_fraction == 0.5
        assert config.disease.mask_effect == 0.5

    def test_missing_scenario_is_ignored(self, tmp_path):
        base_path = tmp_path / "base.yaml"
        base_path.write_text("population:\n  n_agents: 30\n")
        config = load_config(base_path, tmp_path / "nope.yaml")
        assert config.population.n_agents == 30

    def test_empty_file_gives_defaults(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_config(path).population.n_agents == 1000

    def test_unknown_keys_ignored(self):
        config = config_from_dict({'population': {'n_agents': 10, 'bogus': 1}})
        assert config.population.n_agents == 10

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "nonexistent.yaml")

    def test_load_real_default_yaml(self):
        """Load the shipped configs/default.yaml."""
        default_path = Path(__file__).parent.parent / "configs" / "default.yaml"
        config = load_config(default_path)
        assert config.simulation.start == datetime(2020, 3, 1)
        assert config.simulation.dt == pytest.approx(1.0 / 24.0)
        assert config.quarantine.schedule == default_config().quarantine.schedule

    def test_schedule_as_pairs(self):
        config = config_from_dict({'quarantine': {'schedule': [
            ['2020-03-26', 0], ['2020-05-04', 1],
        ]}})
        assert [e.level for e in config.quarantine.schedule] == [0, 1]

    def test_malformed_schedule_entry(self):
        with pytest.raises(ValueError, match="schedule\\[0\\]"):
            config_from_dict({'quarantine': {'schedule': ['2020-03-26']}})


# ═══════════════════════════════════════════════════════════════════════
# VALIDATION
# ═══════════════════════════════════════════════════════════════════════

class TestValidation:
    @pytest.mark.parametrize("section,key,value,match", [
        ('population', 'n_agents', 0, "n_agents"),
        ('simulation', 'dt', 0.0, "dt"),
        ('simulation', 'dt', -1.0, "dt"),
        ('simulation', 'seed', -3, "seed"),
        ('simulation', 'initial_quarantine_level', 5, "initial_quarantine_level"),
        ('space', 'interaction_radius', 0.0, "interaction_radius"),
        ('space', 'extent_x', 0.0, "extents"),
        ('population', 'age_min', 95, "age_min"),
        ('population', 'speed', -0.1, "speed"),
        ('population', 'mask_fraction', 1.5, "mask_fraction"),
        ('population', 'infected_fraction', -0.1, "infected_fraction"),
        ('disease', 'mask_effect', 1.2, "mask_effect"),
        ('disease', 'reinfect_max', 2.0, "reinfect_max"),
        ('disease', 'K_beta_min', 0.0, "Kβ"),
        ('disease', 'death_critical_time', 0.0, "death_critical_time"),
    ])
    def test_invalid_values_rejected(self, section, key, value, match):
        with pytest.raises(ValueError, match=match):
            config_from_dict({section: {key: value}})

    def test_empty_schedule_rejected(self):
        with pytest.raises(ValueError, match="at least one event"):
            config_from_dict({'quarantine': {'schedule': []}})

    def test_non_increasing_schedule_rejected(self):
        with pytest.raises(ValueError, match="strictly increasing"):
            config_from_dict({'quarantine': {'schedule': [
                {'timestamp': '2020-05-01', 'level': 0},
                {'timestamp': '2020-05-01', 'level': 1},
            ]}})

    def test_schedule_level_out_of_range(self):
        with pytest.raises(ValueError, match="level"):
            config_from_dict({'quarantine': {'schedule': [
                {'timestamp': '2020-05-01', 'level': 7},
            ]}})

    def test_equal_k_beta_bounds_allowed(self):
        config = config_from_dict({'disease': {'K_beta_min': 6.0, 'K_beta_max': 6.0}})
        assert config.disease.K_beta_min == config.disease.K_beta_max

    def test_validate_directly(self):
        config = default_config()
        config.population.n_agents = -5
        with pytest.raises(ValueError):
            validate_config(config)


class TestAdvisoryWarnings:
    def test_large_radius_warns(self):
        with pytest.warns(UserWarning, match="half the smallest extent"):
            config_from_dict({'space': {'interaction_radius': 0.6}})

    def test_fast_agents_warn(self):
        with pytest.warns(UserWarning, match="farther than the interaction radius"):
            config_from_dict({'population': {'speed': 1.0}})


# ═══════════════════════════════════════════════════════════════════════
# TIME HELPERS
# ═══════════════════════════════════════════════════════════════════════

class TestTimeHelpers:
    def test_to_datetime(self):
        assert to_datetime(date(2020, 3, 1)) == datetime(2020, 3, 1)
        assert to_datetime("2020-03-01T12:30:00") == datetime(2020, 3, 1, 12, 30)
        dt = datetime(2021, 1, 1, 5)
        assert to_datetime(dt) is dt

    def test_aware_timestamps_become_naive_utc(self):
        assert to_datetime("2020-03-01T12:00:00+02:00") == datetime(2020, 3, 1, 10)
        aware = datetime(2020, 3, 1, 12, tzinfo=timezone.utc)
        assert to_datetime(aware) == datetime(2020, 3, 1, 12)

    def test_aware_schedule_mixes_with_naive_start(self):
        config = config_from_dict({
            'simulation': {'start': '2020-03-01T00:00:00+00:00'},
            'quarantine': {'schedule': [
                {'timestamp': datetime(2020, 3, 2, tzinfo=timezone.utc), 'level': 1},
            ]},
        })
        assert config.simulation.start.tzinfo is None
        assert config.quarantine.schedule[0].timestamp == datetime(2020, 3, 2)

    def test_to_datetime_rejects_numbers(self):
        with pytest.raises(TypeError):
            to_datetime(20200301)

    def test_step_delta(self):
        assert step_delta(1.0 / 24.0).total_seconds() == pytest.approx(3600.0)
        assert step_delta(1.0).days == 1
