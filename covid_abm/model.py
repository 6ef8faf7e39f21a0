"""Tick scheduler: population initialization and the simulation loop.

Per tick:
  1. Interactions: pair every live agent with its nearest unmatched
     neighbour within the interaction radius; for each pair run
     transmission, then an elastic collision.
  2. Quarantine: if the clock has reached the next scheduled event, set
     the new level and recompute population mobility.
  3. Agents: move (toroidal wrap), progress disease, run status checks
     (detection, hospitalization, death, forced recovery).
  4. Advance the clock by dt.
  5. Emit a TickSnapshot.

A Simulation owns all of its state, including its random stream, so any
number of instances can run side by side (e.g. seeded replicas in a
calibration loop) without interfering. `step()` is the single-tick entry
point; callers may stop between ticks but a tick itself always runs to
completion.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, Optional

import numpy as np

from covid_abm.config import SimulationConfig, default_config, validate_config
from covid_abm.disease import (
    check_status,
    generate_severity_curves,
    generate_transmission_curves,
    progress_disease,
    transmit,
)
from covid_abm.movement import elastic_collisions, move_agents, restore_default_mobility
from covid_abm.perf import PerfMonitor
from covid_abm.quarantine import QuarantineSchedule, apply_quarantine_level
from covid_abm.rng import create_rng, restore_rng_state, rng_state_snapshot
from covid_abm.snapshots import AgentRecords, SnapshotRecorder, TickRecord, TickSnapshot
from covid_abm.spatial import SpatialDomain
from covid_abm.types import Status, allocate_agents, live_indices
from covid_abm.utils import step_delta

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════
# INITIALIZATION
# ═══════════════════════════════════════════════════════════════════════

def initialize_population(
    config: SimulationConfig,
    domain: SpatialDomain,
    rng: np.random.Generator,
) -> np.ndarray:
    """Create the agent arena.

    Each agent gets a uniform position, a discrete-uniform age in
    [age_min, age_max], a mask with probability mask_fraction, Infected
    status with probability infected_fraction, the ignore-quarantine flag
    with probability ignore_fraction, and its first severity and
    transmission curves. Agents ignoring orders start moving at full
    speed; everyone else starts immobile (the initial quarantine level is
    applied afterwards by the Simulation).

    Returns:
        Structured array (n_agents,) with AGENT_DTYPE, all alive.
    """
    pop = config.population
    dis = config.disease
    n = pop.n_agents

    agents = allocate_agents(n)
    agents['alive'] = True
    x = rng.uniform(0.0, domain.extent_x, size=n)
    y = rng.uniform(0.0, domain.extent_y, size=n)
    agents['x'], agents['y'] = domain.wrap(x, y)

    agents['age'] = rng.integers(pop.age_min, pop.age_max, size=n, endpoint=True)
    agents['mask'] = rng.random(n) < pop.mask_fraction
    infected = rng.random(n) < pop.infected_fraction
    agents['status'] = np.where(infected, Status.I, Status.S)
    agents['ignore_quarantine'] = rng.random(n) < pop.ignore_fraction
    agents['reinfection_prob'] = pop.initial_reinfection_prob

    agents['severity_curve'] = generate_severity_curves(agents['age'], rng)
    agents['beta_curve'] = generate_transmission_curves(
        agents['severity_curve']['t_S0'], rng,
        dis.K_beta_min, dis.K_beta_max, dis.beta_max_mean,
    )
    restore_default_mobility(agents, np.arange(n), pop.speed, rng)
    return agents


# ═══════════════════════════════════════════════════════════════════════
# SIMULATION STATE
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class SimulationState:
    """Global mutable state of one run. Written only by the scheduler."""
    tick: int
    start: datetime
    timestamp: datetime
    dt: float
    step: timedelta
    quarantine_level: int
    schedule: QuarantineSchedule
    rng: np.random.Generator
    n_initial: int
    cumulative_infections: int = 0
    cumulative_deaths: int = 0
    cumulative_recoveries: int = 0


class Simulation:
    """One simulation instance.

    Args:
        config: Engine configuration; validated here, before any tick.
            Uses default_config() if None.
        perf: Optional PerfMonitor for per-phase timing.

    Raises:
        ValueError: If the configuration is invalid.
    """

    def __init__(
        self,
        config: Optional[SimulationConfig] = None,
        perf: Optional[PerfMonitor] = None,
    ):
        if config is None:
            config = default_config()
        validate_config(config)
        self.config = config
        self.perf = perf if perf is not None else PerfMonitor(enabled=config.output.perf)

        sim = config.simulation
        self.domain = SpatialDomain(
            config.space.extent_x,
            config.space.extent_y,
            config.space.interaction_radius,
        )
        rng = create_rng(sim.seed)
        self.agents = initialize_population(config, self.domain, rng)
        self.state = SimulationState(
            tick=0,
            start=sim.start,
            timestamp=sim.start,
            dt=sim.dt,
            step=step_delta(sim.dt),
            quarantine_level=sim.initial_quarantine_level,
            schedule=QuarantineSchedule(config.quarantine.schedule, sim.start),
            rng=rng,
            n_initial=config.population.n_agents,
        )
        apply_quarantine_level(self.agents, self.state.quarantine_level,
                               config.population.speed, rng)

        logger.info(
            "Initialized %d agents (%d infected, %d ignoring quarantine), "
            "quarantine level %d, start %s, seed %d",
            len(self.agents),
            int(np.sum(self.agents['status'] == Status.I)),
            int(np.sum(self.agents['ignore_quarantine'])),
            self.state.quarantine_level,
            self.state.timestamp.isoformat(),
            sim.seed,
        )

    # ── Queries ──────────────────────────────────────────────────────

    @property
    def n_alive(self) -> int:
        return int(np.count_nonzero(self.agents['alive']))

    @property
    def tick(self) -> int:
        return self.state.tick

    @property
    def timestamp(self) -> datetime:
        return self.state.timestamp

    def snapshot(
        self,
        new_infections: int = 0,
        new_deaths: int = 0,
        new_recoveries: int = 0,
    ) -> TickSnapshot:
        """Report the current state without advancing the clock."""
        agents = self.agents
        alive = agents['alive']
        status = agents['status'][alive]
        n_alive = int(np.count_nonzero(alive))
        record = TickRecord(
            tick=self.state.tick,
            timestamp=self.state.timestamp,
            n_alive=n_alive,
            n_deceased=self.state.n_initial - n_alive,
            n_susceptible=int(np.count_nonzero(status == Status.S)),
            n_infected=int(np.count_nonzero(status == Status.I)),
            n_recovered=int(np.count_nonzero(status == Status.R)),
            n_quarantined=int(np.count_nonzero(agents['quarantined'][alive])),
            n_hospitalized=int(np.count_nonzero(agents['hospitalized'][alive])),
            new_infections=new_infections,
            new_deaths=new_deaths,
            new_recoveries=new_recoveries,
            quarantine_level=self.state.quarantine_level,
        )
        records = AgentRecords.from_agents(agents) if self.config.output.record_agents else None
        return TickSnapshot(record=record, agents=records)

    # ── Tick ─────────────────────────────────────────────────────────

    def step(self) -> TickSnapshot:
        """Run exactly one tick and return its snapshot."""
        agents = self.agents
        state = self.state
        rng = state.rng
        dis = self.config.disease
        speed = self.config.population.speed

        # 1. Pairwise interactions
        with self.perf.track('interactions'):
            live = live_indices(agents)
            local = self.domain.nearest_pairs(agents['x'][live], agents['y'][live])
            pairs = live[local]
            infected = transmit(agents, pairs, dis, rng)
            elastic_collisions(agents, pairs, self.domain)

        # 2. Quarantine policy
        with self.perf.track('quarantine'):
            for event in state.schedule.due(state.timestamp):
                previous = state.quarantine_level
                state.quarantine_level = event.level
                n_set = apply_quarantine_level(agents, event.level, speed, rng)
                logger.info(
                    "%s: quarantine level %d -> %d (%d agents updated)",
                    state.timestamp.isoformat(), previous, event.level, n_set,
                )

        # 3. Per-agent update
        with self.perf.track('agents'):
            move_agents(agents, state.dt, self.domain)
            recovered = progress_disease(agents, dis, state.dt, speed, rng)
            outcome = check_status(agents, dis, speed, rng)
            if len(outcome.died) > 0:
                logger.debug("tick %d: %d deaths", state.tick + 1, len(outcome.died))

        # 4. Clock
        state.tick += 1
        state.timestamp = state.start + state.step * state.tick

        n_recovered = len(recovered) + len(outcome.recovered)
        state.cumulative_infections += len(infected)
        state.cumulative_deaths += len(outcome.died)
        state.cumulative_recoveries += n_recovered

        # 5. Snapshot
        return self.snapshot(
            new_infections=len(infected),
            new_deaths=len(outcome.died),
            new_recoveries=n_recovered,
        )

    def run(
        self,
        n_steps: Optional[int] = None,
        recorder: Optional[SnapshotRecorder] = None,
    ) -> SnapshotRecorder:
        """Run n_steps ticks (default: config.simulation.n_steps).

        An empty recorder first receives the current state, so a fresh
        simulation's stream starts at tick 0.
        """
        if n_steps is None:
            n_steps = self.config.simulation.n_steps
        if recorder is None:
            recorder = SnapshotRecorder(record_agents=self.config.output.record_agents)
        if len(recorder) == 0:
            recorder.capture(self.snapshot())
        for _ in range(n_steps):
            recorder.capture(self.step())
        return recorder

    # ── Checkpointing ────────────────────────────────────────────────

    def checkpoint(self) -> Dict:
        """Capture everything needed to resume exactly from this tick."""
        return {
            'agents': self.agents.copy(),
            'tick': self.state.tick,
            'quarantine_level': self.state.quarantine_level,
            'schedule_pointer': self.state.schedule.pointer,
            'counters': (self.state.cumulative_infections,
                         self.state.cumulative_deaths,
                         self.state.cumulative_recoveries),
            'rng': copy.deepcopy(rng_state_snapshot(self.state.rng)),
        }

    def restore(self, checkpoint: Dict) -> None:
        """Resume from a checkpoint taken on a simulation with the same config."""
        state = self.state
        self.agents = checkpoint['agents'].copy()
        state.tick = checkpoint['tick']
        state.timestamp = state.start + state.step * state.tick
        state.quarantine_level = checkpoint['quarantine_level']
        state.schedule.pointer = checkpoint['schedule_pointer']
        (state.cumulative_infections,
         state.cumulative_deaths,
         state.cumulative_recoveries) = checkpoint['counters']
        restore_rng_state(state.rng, copy.deepcopy(checkpoint['rng']))


# ═══════════════════════════════════════════════════════════════════════
# RUN TO COMPLETION
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class SimulationResult:
    """Outcome of a complete run."""
    recorder: SnapshotRecorder = field(default_factory=SnapshotRecorder)
    n_steps: int = 0
    initial_pop: int = 0
    final_pop: int = 0
    total_deaths: int = 0
    total_infections: int = 0
    total_recoveries: int = 0
    peak_infected: int = 0
    final_quarantine_level: int = 0
    perf: Optional[dict] = None


def run_simulation(
    config: Optional[SimulationConfig] = None,
    n_steps: Optional[int] = None,
    perf: Optional[PerfMonitor] = None,
) -> SimulationResult:
    """Build a Simulation, run it to completion and summarize.

    Args:
        config: Engine configuration (default_config() if None).
        n_steps: Ticks to run (config.simulation.n_steps if None).
        perf: Optional PerfMonitor.

    Returns:
        SimulationResult with the full tick stream and run totals.
    """
    sim = Simulation(config, perf=perf)
    recorder = sim.run(n_steps)
    summary = recorder.summary()
    state = sim.state
    return SimulationResult(
        recorder=recorder,
        n_steps=state.tick,
        initial_pop=state.n_initial,
        final_pop=sim.n_alive,
        total_deaths=state.cumulative_deaths,
        total_infections=state.cumulative_infections,
        total_recoveries=state.cumulative_recoveries,
        peak_infected=summary.get('peak_infected', 0),
        final_quarantine_level=state.quarantine_level,
        perf=sim.perf.summary() if sim.perf.enabled else None,
    )
