"""Core data types for covid_abm.

This module is the SINGLE SOURCE OF TRUTH for:
  - Status enumeration (S / I / R)
  - SEVERITY_CURVE_DTYPE, TRANSMISSION_CURVE_DTYPE: per-episode curve records
  - AGENT_DTYPE: NumPy structured array dtype for individual agents

All modules import these types from here. No other module defines agent fields.

Agents live in an arena: row index == agent id, and the `alive` flag marks
rows that still take part in the simulation. Dead rows are never compacted
out of the arena; every pass filters on `alive` instead.
"""

from enum import IntEnum

import numpy as np


# ═══════════════════════════════════════════════════════════════════════
# ENUMERATIONS
# ═══════════════════════════════════════════════════════════════════════

class Status(IntEnum):
    """Infection status of an agent.

    Allowed transitions:
      S → I  (transmission from an infected contact)
      I → R  (severity falls to zero, or forced after a long infection)
      R → I  (reinfection, with probability reinfection_prob)
    """
    S = 0   # Susceptible
    I = 1   # Infected
    R = 2   # Recovered


# ═══════════════════════════════════════════════════════════════════════
# CURVE RECORDS
# ═══════════════════════════════════════════════════════════════════════

# Severity curve: logistic growth to S_max around t_S0, linear decline after t_S_max
SEVERITY_CURVE_DTYPE = np.dtype([
    ('t_S_max', np.float64),   # time of peak severity (days since infection)
    ('t_S0',    np.float64),   # symptom onset (days since infection)
    ('K_S',     np.float64),   # steepness of severity growth
    ('S_max',   np.float64),   # severity ceiling, 0–100
    ('gamma',   np.float64),   # linear recovery slope (severity/day)
])

# Transmission curve: logistic rise to beta_max, linear decay by day ~11
TRANSMISSION_CURVE_DTYPE = np.dtype([
    ('t_beta_max', np.float64),   # time of peak transmissibility
    ('t_beta_med', np.float64),   # logistic midpoint
    ('K_beta',     np.float64),   # steepness of transmissibility growth
    ('beta_max',   np.float64),   # peak transmission probability
    ('eta',        np.float64),   # decay slope after the peak
])


# ═══════════════════════════════════════════════════════════════════════
# AGENT_DTYPE: canonical structured array for individual agents
# ═══════════════════════════════════════════════════════════════════════

AGENT_DTYPE = np.dtype([
    # --- Identity ---
    ('id',                np.int32),     # stable arena index

    # --- Spatial (movement / collisions write) ---
    ('x',                 np.float64),   # position, wraps on [0, extent_x)
    ('y',                 np.float64),   # position, wraps on [0, extent_y)
    ('vx',                np.float64),   # velocity (space units/day)
    ('vy',                np.float64),
    ('mass',              np.float64),   # np.inf = immobile / not pushed

    # --- Demographics (fixed at creation) ---
    ('age',               np.int16),     # years, 10–90 by default
    ('mask',              np.bool_),
    ('ignore_quarantine', np.bool_),     # exempt from policy-driven mobility

    # --- Disease (disease module writes) ---
    ('status',            np.int8),      # Status enum
    ('infection_time',    np.float64),   # days since current infection
    ('severity',          np.float64),   # 0–100
    ('critical_time',     np.float64),   # cumulative days above critical threshold
    ('recovery_time',     np.float64),   # days since recovery
    ('beta',              np.float64),   # current transmission probability, >= 0
    ('reinfection_prob',  np.float64),   # r, grows while Recovered
    ('quarantined',       np.bool_),
    ('hospitalized',      np.bool_),     # implies quarantined

    # --- Per-episode curve parameters ---
    ('severity_curve',    SEVERITY_CURVE_DTYPE),
    ('beta_curve',        TRANSMISSION_CURVE_DTYPE),

    # --- Administrative ---
    ('alive',             np.bool_),     # cleared on death, never set again
])


def allocate_agents(n: int) -> np.ndarray:
    """Allocate a zeroed agent array of `n` rows with ids 0..n-1.

    Zeroed rows are Susceptible, dead, and have mass 0; callers
    initialize mobility and liveness explicitly.
    """
    agents = np.zeros(n, dtype=AGENT_DTYPE)
    agents['id'] = np.arange(n, dtype=np.int32)
    return agents


def live_indices(agents: np.ndarray) -> np.ndarray:
    """Arena indices of live agents, in id order."""
    return np.flatnonzero(agents['alive'])
