"""Quarantine policy: a calendar-driven state machine over mobility levels.

Levels (0 strictest, 4 fully open):
  0  every agent following orders stays home (v = 0, mass = ∞)
  1  under-70s not in quarantine/hospital released at 33% speed
  2  same cohort at 67% speed
  3  same cohort at 100% speed
  4  everyone not in quarantine/hospital released at full speed

Agents with ignore_quarantine are never touched by the policy. Released
agents get a fresh random heading and mass 1. Levels 1–3 leave agents
aged 70+ exactly as they were.

The schedule is supplied by the caller as an ordered list of
(timestamp, level) events; the scheduler asks `due()` each tick and
applies every event whose timestamp has been reached.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Sequence

import numpy as np

from covid_abm.config import QuarantineEvent
from covid_abm.movement import set_immobile, set_mobile

logger = logging.getLogger(__name__)

ELDERLY_AGE = 70

# Fraction of full speed granted to released agents, by level
LEVEL_SPEED_FRACTION = {
    1: 0.33,
    2: 0.67,
    3: 1.0,
    4: 1.0,
}


def apply_quarantine_level(
    agents: np.ndarray,
    level: int,
    speed: float,
    rng: np.random.Generator,
) -> int:
    """Recompute mobility of the live population for a quarantine level.

    Args:
        agents: Structured array with AGENT_DTYPE fields.
        level: Quarantine level, 0..4.
        speed: Full agent speed.
        rng: Random stream (headings of released agents).

    Returns:
        Number of agents whose mobility was set.

    Raises:
        ValueError: If level is outside 0..4.
    """
    follows = agents['alive'] & ~agents['ignore_quarantine']

    if level == 0:
        idx = np.flatnonzero(follows)
        set_immobile(agents, idx)
        return len(idx)

    if level not in LEVEL_SPEED_FRACTION:
        raise ValueError(f"quarantine level must be in 0..4, got {level}")

    free = follows & ~agents['quarantined'] & ~agents['hospitalized']
    if level < 4:
        free &= agents['age'] < ELDERLY_AGE
    idx = np.flatnonzero(free)
    set_mobile(agents, idx, speed * LEVEL_SPEED_FRACTION[level], rng)
    return len(idx)


class QuarantineSchedule:
    """Ordered quarantine events with a pointer to the next pending one.

    Args:
        events: Events in strictly increasing timestamp order.
        start: Initial clock. Events strictly before it are history and
            are skipped; an event exactly at `start` fires on the first tick.
    """

    def __init__(self, events: Sequence[QuarantineEvent], start: datetime):
        self.events: List[QuarantineEvent] = list(events)
        self.pointer = 0
        while (self.pointer < len(self.events)
               and self.events[self.pointer].timestamp < start):
            logger.debug("Skipping past quarantine event %s", self.events[self.pointer])
            self.pointer += 1

    @property
    def exhausted(self) -> bool:
        return self.pointer >= len(self.events)

    @property
    def next_event(self):
        """The next pending event, or None."""
        return None if self.exhausted else self.events[self.pointer]

    def due(self, now: datetime) -> List[QuarantineEvent]:
        """Pop every pending event whose timestamp is ≤ now, in order."""
        fired = []
        while not self.exhausted and self.events[self.pointer].timestamp <= now:
            fired.append(self.events[self.pointer])
            self.pointer += 1
        return fired
