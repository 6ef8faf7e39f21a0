"""Per-tick output records.

Every tick the scheduler emits one TickSnapshot:
  - TickRecord: aggregate {tick, timestamp, n_alive} plus compartment
    counts and this tick's new infections / deaths / recoveries
  - AgentRecords: {id, status, hospitalized, quarantined} for every live
    agent. Dead agents are simply absent (no tombstones).

SnapshotRecorder keeps the stream in memory, in tick order. Turning the
stream into daily case/hospitalization/death counts is left to the caller.

Usage:
    recorder = SnapshotRecorder(enabled=True)

    # In simulation loop:
    recorder.capture(sim.step())

    # After simulation:
    recorder.population_series()
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional

import numpy as np

from covid_abm.types import Status


@dataclass
class TickRecord:
    """Aggregate state after one tick."""
    tick: int
    timestamp: datetime
    n_alive: int
    n_deceased: int = 0
    n_susceptible: int = 0
    n_infected: int = 0
    n_recovered: int = 0
    n_quarantined: int = 0
    n_hospitalized: int = 0
    new_infections: int = 0
    new_deaths: int = 0
    new_recoveries: int = 0
    quarantine_level: int = 0


@dataclass
class AgentRecords:
    """Parallel arrays over live agents, in id order."""
    id: np.ndarray            # int32
    status: np.ndarray        # int8 (Status)
    hospitalized: np.ndarray  # bool
    quarantined: np.ndarray   # bool

    def __len__(self) -> int:
        return len(self.id)

    @classmethod
    def from_agents(cls, agents: np.ndarray) -> 'AgentRecords':
        alive = agents['alive']
        return cls(
            id=agents['id'][alive].copy(),
            status=agents['status'][alive].copy(),
            hospitalized=agents['hospitalized'][alive].copy(),
            quarantined=agents['quarantined'][alive].copy(),
        )

    def equals(self, other: 'AgentRecords') -> bool:
        return (np.array_equal(self.id, other.id)
                and np.array_equal(self.status, other.status)
                and np.array_equal(self.hospitalized, other.hospitalized)
                and np.array_equal(self.quarantined, other.quarantined))


@dataclass
class TickSnapshot:
    """One tick of output: the aggregate record and (optionally) agent records."""
    record: TickRecord
    agents: Optional[AgentRecords] = None


class SnapshotRecorder:
    """Records the tick stream in memory.

    When enabled=False, capture() is a no-op (zero overhead).
    """

    def __init__(self, enabled: bool = True, record_agents: bool = True):
        """
        Args:
            enabled: Master switch. False = no-ops everywhere.
            record_agents: Keep per-agent records; False keeps aggregates only.
        """
        self.enabled = enabled
        self.record_agents = record_agents
        self.snapshots: List[TickSnapshot] = []

    def __len__(self) -> int:
        return len(self.snapshots)

    def capture(self, snapshot: TickSnapshot) -> None:
        """Append one tick. Ticks must arrive in order without gaps.

        Raises:
            ValueError: If the tick does not follow the last captured one.
        """
        if not self.enabled:
            return
        if self.snapshots:
            expected = self.snapshots[-1].record.tick + 1
            if snapshot.record.tick != expected:
                raise ValueError(
                    f"Out-of-order snapshot: expected tick {expected}, "
                    f"got {snapshot.record.tick}"
                )
        if not self.record_agents and snapshot.agents is not None:
            snapshot = TickSnapshot(record=snapshot.record)
        self.snapshots.append(snapshot)

    def records(self) -> List[TickRecord]:
        """Aggregate records in tick order."""
        return [s.record for s in self.snapshots]

    def get(self, tick: int) -> Optional[TickSnapshot]:
        """Snapshot for a given tick, or None if not captured."""
        if not self.snapshots:
            return None
        offset = tick - self.snapshots[0].record.tick
        if 0 <= offset < len(self.snapshots):
            return self.snapshots[offset]
        return None

    def population_series(self) -> np.ndarray:
        """Live population per captured tick."""
        return np.array([s.record.n_alive for s in self.snapshots], dtype=np.int64)

    def status_counts(self) -> np.ndarray:
        """(n_ticks, 3) counts of S, I, R per captured tick."""
        return np.array(
            [[s.record.n_susceptible, s.record.n_infected, s.record.n_recovered]
             for s in self.snapshots],
            dtype=np.int64,
        ).reshape(-1, len(Status))

    def summary(self) -> Dict[str, int]:
        """Totals over the captured stream."""
        recs = self.records()
        if not recs:
            return {}
        return {
            'n_ticks': len(recs),
            'initial_alive': recs[0].n_alive,
            'final_alive': recs[-1].n_alive,
            'total_deaths': sum(r.new_deaths for r in recs),
            'total_infections': sum(r.new_infections for r in recs),
            'total_recoveries': sum(r.new_recoveries for r in recs),
            'peak_infected': max(r.n_infected for r in recs),
        }
