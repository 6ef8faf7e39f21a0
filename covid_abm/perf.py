"""Per-phase timing for the tick loop.

The scheduler wraps its three phases (pairwise interactions, quarantine
policy, per-agent update) in `perf.track(...)`. With enabled=False every
call is a no-op, so instrumentation can stay in the hot loop.

Usage:
    perf = PerfMonitor(enabled=True)
    sim = Simulation(config, perf=perf)
    sim.run(1000)
    print(perf.report())
"""

import time
from collections import defaultdict
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Dict


@dataclass
class PhaseStats:
    """Accumulated wall-clock time of one phase."""
    total_time: float = 0.0
    calls: int = 0
    max_time: float = 0.0

    @property
    def mean_time(self) -> float:
        return self.total_time / self.calls if self.calls else 0.0

    def add(self, elapsed: float) -> None:
        self.total_time += elapsed
        self.calls += 1
        self.max_time = max(self.max_time, elapsed)


class PerfMonitor:
    """Accumulates wall-clock time per named phase."""

    def __init__(self, enabled: bool = False):
        self.enabled = enabled
        self._stats: Dict[str, PhaseStats] = defaultdict(PhaseStats)

    @contextmanager
    def track(self, phase: str):
        if not self.enabled:
            yield
            return
        t0 = time.perf_counter()
        try:
            yield
        finally:
            self._stats[phase].add(time.perf_counter() - t0)

    def get_stats(self) -> Dict[str, PhaseStats]:
        return dict(self._stats)

    def summary(self) -> dict:
        """Per-phase totals, sorted by time spent (JSON-friendly)."""
        total = sum(s.total_time for s in self._stats.values())
        result = {}
        for name, stats in sorted(self._stats.items(), key=lambda kv: -kv[1].total_time):
            result[name] = {
                'total_s': round(stats.total_time, 4),
                'calls': stats.calls,
                'mean_ms': round(stats.mean_time * 1000, 3),
                'max_ms': round(stats.max_time * 1000, 3),
                'pct': round(stats.total_time / total * 100, 1) if total > 0 else 0.0,
            }
        result['_total_s'] = round(total, 4)
        return result

    def report(self, title: str = "Tick phase breakdown") -> str:
        """Human-readable table of the summary."""
        summary = self.summary()
        lines = [
            title,
            f"{'Phase':<16} {'Total (s)':>10} {'Calls':>8} {'Mean (ms)':>10} {'%':>6}",
        ]
        for name, row in summary.items():
            if name.startswith('_'):
                continue
            lines.append(
                f"{name:<16} {row['total_s']:>10.4f} {row['calls']:>8} "
                f"{row['mean_ms']:>10.3f} {row['pct']:>5.1f}%"
            )
        lines.append(f"{'TOTAL':<16} {summary['_total_s']:>10.4f}")
        return '\n'.join(lines)

    def reset(self) -> None:
        self._stats.clear()
