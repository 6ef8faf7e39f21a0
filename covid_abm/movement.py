"""Agent movement and collision deflection.

Movement is ballistic: each live agent advances by velocity × dt and wraps
around the toroidal domain. Headings only change through collisions or
when the quarantine policy re-samples a velocity.

Mobility conventions (enforced by every writer of vx/vy/mass):
  - mobile:   mass = 1, |v| = speed × fraction, uniform random heading
  - immobile: mass = ∞, v = (0, 0)

Collisions: proximate pairs undergo a mass-weighted elastic collision
along their line of centres (minimum image). For masses m1, m2 and
relative position r = x1 − x2:

    v1' = v1 − 2·m2/(m1+m2) · ⟨v1 − v2, r⟩/|r|² · r
    v2' = v2 + 2·m1/(m1+m2) · ⟨v1 − v2, r⟩/|r|² · r

An infinite-mass agent keeps its zero velocity and its finite-mass partner
reflects off it as off a wall.
"""

from __future__ import annotations

import numpy as np

from covid_abm.spatial import SpatialDomain

TWO_PI = 2.0 * np.pi
MOBILE_MASS = 1.0


# ═══════════════════════════════════════════════════════════════════════
# MOBILITY HELPERS
# ═══════════════════════════════════════════════════════════════════════

def random_velocities(n: int, speed: float, rng: np.random.Generator) -> np.ndarray:
    """Velocities of magnitude `speed` with uniform random headings.

    Returns:
        Array of shape (n, 2).
    """
    heading = rng.uniform(0.0, TWO_PI, size=n)
    return np.column_stack((np.cos(heading), np.sin(heading))) * speed


def set_mobile(
    agents: np.ndarray,
    idx: np.ndarray,
    speed: float,
    rng: np.random.Generator,
) -> None:
    """Release agents at `speed` with a fresh random heading (in-place)."""
    if len(idx) == 0:
        return
    vel = random_velocities(len(idx), speed, rng)
    agents['vx'][idx] = vel[:, 0]
    agents['vy'][idx] = vel[:, 1]
    agents['mass'][idx] = MOBILE_MASS


def set_immobile(agents: np.ndarray, idx: np.ndarray) -> None:
    """Freeze agents in place: zero velocity, infinite mass (in-place)."""
    agents['vx'][idx] = 0.0
    agents['vy'][idx] = 0.0
    agents['mass'][idx] = np.inf


def restore_default_mobility(
    agents: np.ndarray,
    idx: np.ndarray,
    speed: float,
    rng: np.random.Generator,
) -> None:
    """Mobility an agent returns to after leaving quarantine.

    Agents ignoring stay-at-home orders move at full speed; all others
    are immobile until the next quarantine level change releases them.
    """
    ignoring = agents['ignore_quarantine'][idx]
    set_mobile(agents, idx[ignoring], speed, rng)
    set_immobile(agents, idx[~ignoring])


# ═══════════════════════════════════════════════════════════════════════
# MOVEMENT
# ═══════════════════════════════════════════════════════════════════════

def move_agents(agents: np.ndarray, dt: float, domain: SpatialDomain) -> None:
    """Advance all live agents by velocity × dt with periodic wrap (in-place)."""
    alive_idx = np.flatnonzero(agents['alive'])
    if len(alive_idx) == 0:
        return
    new_x = agents['x'][alive_idx] + agents['vx'][alive_idx] * dt
    new_y = agents['y'][alive_idx] + agents['vy'][alive_idx] * dt
    agents['x'][alive_idx], agents['y'][alive_idx] = domain.wrap(new_x, new_y)


# ═══════════════════════════════════════════════════════════════════════
# ELASTIC COLLISIONS
# ═══════════════════════════════════════════════════════════════════════

def elastic_collisions(
    agents: np.ndarray,
    pairs: np.ndarray,
    domain: SpatialDomain,
) -> int:
    """Deflect velocities of proximate pairs (in-place).

    Pairs must be disjoint (each agent in at most one row), which holds for
    SpatialDomain.nearest_pairs, so the update is vectorized without races.

    A pair collides only if the agents are approaching each other; two
    infinite masses, or agents at the same position, are left unchanged.

    Args:
        agents: Structured array with AGENT_DTYPE fields.
        pairs: (m, 2) arena indices.
        domain: Domain used for minimum-image displacements.

    Returns:
        Number of pairs whose velocities changed.
    """
    if len(pairs) == 0:
        return 0
    i = pairs[:, 0]
    j = pairs[:, 1]

    m1 = agents['mass'][i]
    m2 = agents['mass'][j]
    inf1 = np.isinf(m1)
    inf2 = np.isinf(m2)

    v1 = np.column_stack((agents['vx'][i], agents['vy'][i]))
    v2 = np.column_stack((agents['vx'][j], agents['vy'][j]))
    rx, ry = domain.displacement(agents['x'][i], agents['y'][i],
                                 agents['x'][j], agents['y'][j])
    r = np.column_stack((rx, ry))     # x1 − x2
    r_sq = np.einsum('ij,ij->i', r, r)

    dv = v1 - v2
    closing = np.einsum('ij,ij->i', dv, r)   # < 0 when approaching
    valid = ~(inf1 & inf2) & (closing < 0) & (r_sq > 0)
    if not valid.any():
        return 0

    with np.errstate(invalid='ignore', divide='ignore'):
        total = m1 + m2
        f1 = np.where(inf1, 0.0, np.where(inf2, 2.0, 2.0 * m2 / total))
        f2 = np.where(inf2, 0.0, np.where(inf1, 2.0, 2.0 * m1 / total))
        proj = np.where(valid, closing / r_sq, 0.0)

    v1_new = v1 - (f1 * proj)[:, None] * r
    v2_new = v2 + (f2 * proj)[:, None] * r

    iv = i[valid]
    jv = j[valid]
    agents['vx'][iv] = v1_new[valid, 0]
    agents['vy'][iv] = v1_new[valid, 1]
    agents['vx'][jv] = v2_new[valid, 0]
    agents['vy'][jv] = v2_new[valid, 1]
    return int(valid.sum())
