"""Tests for covid_abm.quarantine — level mobility rules and the event schedule."""

import logging
from datetime import datetime, timedelta

import numpy as np
import pytest

from covid_abm.config import QuarantineEvent
from covid_abm.quarantine import (
    ELDERLY_AGE,
    QuarantineSchedule,
    apply_quarantine_level,
)
from covid_abm.types import allocate_agents


# ═══════════════════════════════════════════════════════════════════════
# HELPERS
# ═══════════════════════════════════════════════════════════════════════

SPEED = 0.3


@pytest.fixture
def agents():
    """Six live agents covering every policy cohort.

    0: young, free              3: young, hospitalized
    1: elderly, free            4: young, ignores orders (moving)
    2: young, quarantined       5: young, free, dead
    """
    a = allocate_agents(6)
    a['alive'] = [True, True, True, True, True, False]
    a['age'] = [30, ELDERLY_AGE, 40, 50, 25, 30]
    a['quarantined'] = [False, False, True, True, False, False]
    a['hospitalized'] = [False, False, False, True, False, False]
    a['ignore_quarantine'] = [False, False, False, False, True, False]
    a['mass'] = np.inf
    a['mass'][4] = 1.0
    a['vx'][4] = SPEED
    return a


def speeds(a):
    return np.hypot(a['vx'], a['vy'])


# ═══════════════════════════════════════════════════════════════════════
# LEVELS
# ═══════════════════════════════════════════════════════════════════════

class TestApplyQuarantineLevel:
    def test_level_zero_freezes_followers(self, agents):
        agents['mass'][:4] = 1.0
        agents['vx'][:4] = 0.1
        n = apply_quarantine_level(agents, 0, SPEED, np.random.default_rng(0))
        assert n == 4
        assert np.isinf(agents['mass'][:4]).all()
        assert (speeds(agents)[:4] == 0).all()
        # ignoring agent untouched
        assert agents['mass'][4] == 1.0 and agents['vx'][4] == SPEED

    @pytest.mark.parametrize("level,fraction", [(1, 0.33), (2, 0.67), (3, 1.0)])
    def test_partial_levels_release_young_free_agents(self, agents, level, fraction):
        n = apply_quarantine_level(agents, level, SPEED, np.random.default_rng(0))
        assert n == 1
        assert speeds(agents)[0] == pytest.approx(SPEED * fraction)
        assert agents['mass'][0] == 1.0
        # elderly, quarantined, hospitalized and dead stay put
        for i in (1, 2, 3, 5):
            assert speeds(agents)[i] == 0.0
            assert np.isinf(agents['mass'][i])

    def test_level_four_releases_elderly(self, agents):
        n = apply_quarantine_level(agents, 4, SPEED, np.random.default_rng(0))
        assert n == 2
        np.testing.assert_allclose(speeds(agents)[[0, 1]], SPEED)
        assert np.isinf(agents['mass'][2]) and np.isinf(agents['mass'][3])

    def test_partial_level_leaves_elderly_unchanged(self, agents):
        """Levels 1–3 don't touch the elderly, even if they were moving."""
        agents['mass'][1] = 1.0
        agents['vx'][1] = SPEED
        apply_quarantine_level(agents, 2, SPEED, np.random.default_rng(0))
        assert agents['vx'][1] == SPEED

    def test_ignoring_agent_never_touched(self, agents):
        before = agents[4].copy()
        for level in range(5):
            apply_quarantine_level(agents, level, SPEED, np.random.default_rng(level))
            assert agents[4].tobytes() == before.tobytes()

    def test_invalid_level(self, agents):
        with pytest.raises(ValueError, match="0..4"):
            apply_quarantine_level(agents, 5, SPEED, np.random.default_rng(0))


# ═══════════════════════════════════════════════════════════════════════
# SCHEDULE
# ═══════════════════════════════════════════════════════════════════════

START = datetime(2020, 3, 1)


def events():
    return [
        QuarantineEvent(datetime(2020, 3, 2), 0),
        QuarantineEvent(datetime(2020, 3, 3), 1),
        QuarantineEvent(datetime(2020, 3, 5), 4),
    ]


class TestQuarantineSchedule:
    def test_nothing_due_before_first_event(self):
        schedule = QuarantineSchedule(events(), START)
        assert schedule.due(START + timedelta(hours=23)) == []
        assert schedule.next_event.level == 0

    def test_fires_once_when_reached(self):
        schedule = QuarantineSchedule(events(), START)
        fired = schedule.due(datetime(2020, 3, 2))
        assert [e.level for e in fired] == [0]
        assert schedule.due(datetime(2020, 3, 2, 1)) == []

    def test_catches_up_in_order(self):
        """A clock that jumps past several events fires all of them."""
        schedule = QuarantineSchedule(events(), START)
        fired = schedule.due(datetime(2020, 3, 10))
        assert [e.level for e in fired] == [0, 1, 4]
        assert schedule.exhausted
        assert schedule.next_event is None

    def test_events_before_start_skipped(self, caplog):
        with caplog.at_level(logging.DEBUG, logger="covid_abm.quarantine"):
            schedule = QuarantineSchedule(events(), datetime(2020, 3, 4))
        assert schedule.next_event.level == 4
        assert "Skipping" in caplog.text

    def test_event_at_start_fires(self):
        schedule = QuarantineSchedule(events(), datetime(2020, 3, 2))
        assert [e.level for e in schedule.due(datetime(2020, 3, 2))] == [0]
