"""Seeded RNG factory for reproducible simulations.

Uses NumPy's SeedSequence → PCG64 hierarchy to guarantee:
  - One explicit stream per simulation instance (no global RNG state)
  - Bit-exact replay with the same seed
  - Statistically independent streams for seeded replicas

References:
  - NumPy docs: numpy.random.SeedSequence
"""

from __future__ import annotations

from typing import Dict, List

import numpy as np


def create_rng(seed: int) -> np.random.Generator:
    """Create the random stream for one simulation instance.

    Args:
        seed: Non-negative integer seed.

    Returns:
        PCG64-backed numpy Generator.

    Example:
        >>> rng = create_rng(42)
        >>> rng.random()  # reproducible
    """
    if seed < 0:
        raise ValueError(f"seed must be non-negative, got {seed}")
    return np.random.Generator(np.random.PCG64(np.random.SeedSequence(seed)))


def replica_seeds(master_seed: int, n_replicas: int) -> List[int]:
    """Derive independent per-replica seeds from one master seed.

    Uses SeedSequence spawning, so replica k gets the same seed no matter
    how many replicas are requested in total.

    Args:
        master_seed: Master seed (non-negative integer).
        n_replicas: Number of replica seeds to derive.

    Returns:
        List of n_replicas non-negative integer seeds.
    """
    ss = np.random.SeedSequence(master_seed)
    return [int(child.generate_state(1, dtype=np.uint32)[0])
            for child in ss.spawn(n_replicas)]


def rng_state_snapshot(rng: np.random.Generator) -> Dict:
    """Capture full RNG state for checkpointing between ticks.

    Returns a state dict that can be serialized (e.g. via pickle) and
    restored to resume a simulation exactly.
    """
    return rng.bit_generator.state


def restore_rng_state(rng: np.random.Generator, state: Dict) -> None:
    """Restore RNG state from a checkpoint snapshot.

    Raises:
        ValueError: If the state belongs to a different bit generator.
    """
    expected = type(rng.bit_generator).__name__
    if state.get('bit_generator') != expected:
        raise ValueError(
            f"Cannot restore {state.get('bit_generator')!r} state into a "
            f"{expected} generator"
        )
    rng.bit_generator.state = state
