"""Disease dynamics: per-episode curves, progression, status checks, transmission.

Implements:
  - Per-episode severity and transmissibility curves, sampled per agent
  - Closed-form logistic growth rates for β (transmissibility) and S (severity)
  - Progression of Infected agents (β, S, critical time, recovery at S ≤ 0)
  - Growth of reinfection probability r for Recovered agents
  - Status checks: detection → quarantine, hospitalization, death,
    forced recovery after a long infection
  - Pairwise transmission (exactly one infected member per pair)

Curve growth phase (t < t_peak), with e = exp(−K (t − t_mid)):

    rate = peak · K · e / (K · (1 + e))²

evaluated through the symmetric form exp(−K|t − t_mid|), which is equal
and cannot overflow. After the peak both curves decline linearly
(−eta for β, −gamma for S).

All functions operate in-place on an AGENT_DTYPE arena and draw from the
caller's Generator only; nothing here holds state between ticks.
"""

from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np

from covid_abm.config import DiseaseSection
from covid_abm.movement import restore_default_mobility, set_immobile
from covid_abm.types import (
    SEVERITY_CURVE_DTYPE,
    TRANSMISSION_CURVE_DTYPE,
    Status,
)


# ═══════════════════════════════════════════════════════════════════════
# CONSTANTS
# ═══════════════════════════════════════════════════════════════════════

SEVERITY_MIN = 0.0
SEVERITY_MAX = 100.0

# Severity ceiling: logistic in age, centred at 70 (S_max mean 50 at age 70)
S_MAX_AGE_MID = 70.0
S_MAX_AGE_SLOPE = 0.2
S_MAX_SD = 20.0

T_S0_RANGE = (2.0, 14.0)        # symptom onset, days after infection
T_S_PEAK_DELAY = (1.0, 14.0)    # peak severity, days after onset
K_S_RANGE = (0.1, 2.0)
GAMMA_MEAN = 10.0
GAMMA_SD = 2.0

T_BETA_LEAD = (1.0, 3.0)        # peak contagion precedes onset by 1–3 days
T_BETA_MED_ANCHOR = 2.0
BETA_MAX_REL_SD = 0.05
BETA_END_DAY = 11.0             # not contagious after ~11 days
MIN_DECAY_WINDOW = 1.0          # days; keeps eta finite and positive

HOSPITAL_SEVERITY_DIVISOR = 4.0


# ═══════════════════════════════════════════════════════════════════════
# CURVE GENERATION
# ═══════════════════════════════════════════════════════════════════════

def generate_severity_curves(ages: np.ndarray, rng: np.random.Generator) -> np.ndarray:
    """Sample one severity curve per agent.

    - S_max ~ Normal(100 / (1 + exp(−0.2 (age − 70))), 20), clipped to [0, 100]
    - t_S0 ~ Uniform(2, 14)
    - t_S_max = t_S0 + Uniform(1, 14)
    - K_S ~ Uniform(0.1, 2)
    - gamma ~ Normal(10, 2)

    Args:
        ages: Agent ages (n,).
        rng: Random stream.

    Returns:
        Structured array (n,) with SEVERITY_CURVE_DTYPE.
    """
    ages = np.asarray(ages, dtype=np.float64)
    n = len(ages)
    curves = np.zeros(n, dtype=SEVERITY_CURVE_DTYPE)
    s_max_mean = SEVERITY_MAX / (1.0 + np.exp(-S_MAX_AGE_SLOPE * (ages - S_MAX_AGE_MID)))
    curves['S_max'] = np.clip(rng.normal(s_max_mean, S_MAX_SD, size=n),
                              SEVERITY_MIN, SEVERITY_MAX)
    curves['t_S0'] = rng.uniform(*T_S0_RANGE, size=n)
    curves['t_S_max'] = curves['t_S0'] + rng.uniform(*T_S_PEAK_DELAY, size=n)
    curves['K_S'] = rng.uniform(*K_S_RANGE, size=n)
    curves['gamma'] = rng.normal(GAMMA_MEAN, GAMMA_SD, size=n)
    return curves


def generate_transmission_curves(
    t_S0: np.ndarray,
    rng: np.random.Generator,
    K_beta_min: float = 5.0,
    K_beta_max: float = 10.0,
    beta_max_mean: float = 75.0,
) -> np.ndarray:
    """Sample one transmissibility curve per agent from its symptom onset.

    - t_beta_max = max(0, t_S0 − Uniform(1, 3))
    - t_beta_med = 2 + (t_beta_max − 2) / 2
    - K_beta ~ Uniform(Kβ_min, Kβ_max); equal bounds give a single point
    - beta_max ~ Normal(βmax_mean, 0.05 βmax_mean) / 100
    - eta = beta_max / (11 − t_beta_max), window clamped to ≥ 1 day

    Args:
        t_S0: Symptom onset times of the agents' severity curves (n,).
        rng: Random stream.
        K_beta_min, K_beta_max: Steepness bounds (order-insensitive).
        beta_max_mean: Mean peak transmission probability, in percent.

    Returns:
        Structured array (n,) with TRANSMISSION_CURVE_DTYPE.
    """
    t_S0 = np.asarray(t_S0, dtype=np.float64)
    n = len(t_S0)
    lo, hi = sorted((K_beta_min, K_beta_max))
    curves = np.zeros(n, dtype=TRANSMISSION_CURVE_DTYPE)
    curves['t_beta_max'] = np.maximum(0.0, t_S0 - rng.uniform(*T_BETA_LEAD, size=n))
    curves['t_beta_med'] = (T_BETA_MED_ANCHOR
                            + (curves['t_beta_max'] - T_BETA_MED_ANCHOR) / 2.0)
    curves['K_beta'] = lo if lo == hi else rng.uniform(lo, hi, size=n)
    curves['beta_max'] = rng.normal(beta_max_mean, BETA_MAX_REL_SD * beta_max_mean,
                                    size=n) / 100.0
    window = np.maximum(BETA_END_DAY - curves['t_beta_max'], MIN_DECAY_WINDOW)
    curves['eta'] = curves['beta_max'] / window
    return curves


def logistic_rate(
    t: np.ndarray,
    peak: np.ndarray,
    K: np.ndarray,
    t_mid: np.ndarray,
) -> np.ndarray:
    """Growth-phase rate peak·K·e / (1 + e)², e = exp(−K (t − t_mid)).

    This is the time derivative of the logistic peak / (1 + e), so over a
    full growth phase the integrated value approaches `peak`.
    """
    z = np.exp(-K * np.abs(t - t_mid))
    return peak * K * z / (1.0 + z) ** 2


# ═══════════════════════════════════════════════════════════════════════
# STATE TRANSITIONS
# ═══════════════════════════════════════════════════════════════════════

def infect_agents(
    agents: np.ndarray,
    idx: np.ndarray,
    cfg: DiseaseSection,
    rng: np.random.Generator,
) -> None:
    """S → I or R → I transition for `idx` (in-place).

    Starts a new episode: counters and β reset, r reset to 0, and a fresh
    transmission curve is drawn from the agent's severity curve (which was
    sampled at creation or at the last recovery and has not been used yet).
    """
    if len(idx) == 0:
        return
    agents['status'][idx] = Status.I
    agents['infection_time'][idx] = 0.0
    agents['severity'][idx] = 0.0
    agents['critical_time'][idx] = 0.0
    agents['beta'][idx] = 0.0
    agents['reinfection_prob'][idx] = 0.0
    agents['beta_curve'][idx] = generate_transmission_curves(
        agents['severity_curve']['t_S0'][idx], rng,
        cfg.K_beta_min, cfg.K_beta_max, cfg.beta_max_mean,
    )


def recover_agents(
    agents: np.ndarray,
    idx: np.ndarray,
    speed: float,
    rng: np.random.Generator,
    reset_reinfection: bool = False,
) -> None:
    """I → R transition for `idx` (in-place).

    Clears quarantine and hospitalization, restores default mobility and
    draws a fresh severity curve for a possible reinfection episode.
    """
    if len(idx) == 0:
        return
    agents['status'][idx] = Status.R
    agents['recovery_time'][idx] = 0.0
    agents['infection_time'][idx] = 0.0
    agents['severity'][idx] = 0.0
    agents['critical_time'][idx] = 0.0
    agents['beta'][idx] = 0.0
    agents['quarantined'][idx] = False
    agents['hospitalized'][idx] = False
    if reset_reinfection:
        agents['reinfection_prob'][idx] = 0.0
    restore_default_mobility(agents, idx, speed, rng)
    agents['severity_curve'][idx] = generate_severity_curves(agents['age'][idx], rng)


# ═══════════════════════════════════════════════════════════════════════
# PROGRESSION
# ═══════════════════════════════════════════════════════════════════════

def progress_disease(
    agents: np.ndarray,
    cfg: DiseaseSection,
    dt: float,
    speed: float,
    rng: np.random.Generator,
) -> np.ndarray:
    """Advance Infected and Recovered agents by one tick (in-place).

    Infected (t = infection_time + dt):
      β += dt · (rate_β(t) if t < t_beta_max else −eta), clamped ≥ 0
      S += dt · (rate_S(t) [× hospital factor] if t < t_S_max else −gamma),
           clamped ≤ 100
      critical_time += dt while S > critical_threshold
      S ≤ 0 → Recovered

    Recovered:
      recovery_time += dt
      r += dt · Normal(r_max, r_max/6) while r < r_max

    Args:
        agents: Structured array with AGENT_DTYPE fields.
        cfg: Disease configuration section.
        dt: Tick length (days).
        speed: Full agent speed, for mobility restored at recovery.
        rng: Random stream.

    Returns:
        Arena indices of agents that recovered this tick.
    """
    alive = agents['alive']
    status = agents['status']
    inf_idx = np.flatnonzero(alive & (status == Status.I))
    rec_idx = np.flatnonzero(alive & (status == Status.R))

    # ── Recovered: reinfection probability drifts toward its cap ─────
    if len(rec_idx) > 0:
        agents['recovery_time'][rec_idx] += dt
        r = agents['reinfection_prob'][rec_idx]
        growing = rec_idx[r < cfg.reinfect_max]
        if len(growing) > 0:
            step = rng.normal(cfg.reinfect_max, cfg.reinfect_max / 6.0, size=len(growing))
            agents['reinfection_prob'][growing] += dt * step

    if len(inf_idx) == 0:
        return np.empty(0, dtype=np.int64)

    # ── Infected: advance clock ──────────────────────────────────────
    t = agents['infection_time'][inf_idx] + dt
    agents['infection_time'][inf_idx] = t

    # ── Transmissibility ─────────────────────────────────────────────
    bc = agents['beta_curve'][inf_idx]
    d_beta = np.where(
        t < bc['t_beta_max'],
        logistic_rate(t, bc['beta_max'], bc['K_beta'], bc['t_beta_med']),
        -bc['eta'],
    )
    agents['beta'][inf_idx] = np.maximum(agents['beta'][inf_idx] + d_beta * dt, 0.0)

    # ── Severity ─────────────────────────────────────────────────────
    sc = agents['severity_curve'][inf_idx]
    growth = logistic_rate(t, sc['S_max'], sc['K_S'], sc['t_S0'])
    growth = np.where(agents['hospitalized'][inf_idx],
                      growth * cfg.hospital_growth_factor, growth)
    d_sev = np.where(t < sc['t_S_max'], growth, -sc['gamma'])
    severity = np.minimum(agents['severity'][inf_idx] + d_sev * dt, SEVERITY_MAX)
    agents['severity'][inf_idx] = np.maximum(severity, SEVERITY_MIN)

    critical = severity > cfg.critical_threshold
    agents['critical_time'][inf_idx[critical]] += dt

    recovered = inf_idx[severity <= SEVERITY_MIN]
    recover_agents(agents, recovered, speed, rng)
    return recovered


# ═══════════════════════════════════════════════════════════════════════
# STATUS CHECKS
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class StatusOutcome:
    """Arena indices affected by one round of status checks."""
    detected: np.ndarray = field(default_factory=lambda: np.empty(0, dtype=np.int64))
    hospitalized: np.ndarray = field(default_factory=lambda: np.empty(0, dtype=np.int64))
    died: np.ndarray = field(default_factory=lambda: np.empty(0, dtype=np.int64))
    recovered: np.ndarray = field(default_factory=lambda: np.empty(0, dtype=np.int64))


def check_status(
    agents: np.ndarray,
    cfg: DiseaseSection,
    speed: float,
    rng: np.random.Generator,
) -> StatusOutcome:
    """Detection, hospitalization, death and forced recovery (in-place).

    Applied to live Infected agents, in this order:
      1. Detection: S ≥ S_detect or u < S (raw severity, not normalized)
         → quarantined, not hospitalized, immobile
      2. Hospitalization: S ≥ S_crit and u ≤ S/4
         → quarantined and hospitalized, immobile
      3. Death: critical_time > death_critical_time → alive = False
      4. Forced recovery: infection_time > forced_recovery_time
         → Recovered with r = 0 (survivors of step 3 only)

    Returns:
        StatusOutcome with the arena indices hit by each check.
    """
    outcome = StatusOutcome()
    idx = np.flatnonzero(agents['alive'] & (agents['status'] == Status.I))
    if len(idx) == 0:
        return outcome

    severity = agents['severity'][idx]

    # 1. Detection
    u_detect = rng.random(len(idx))
    detected = idx[(severity >= cfg.detection_threshold) | (u_detect < severity)]
    agents['quarantined'][detected] = True
    agents['hospitalized'][detected] = False
    set_immobile(agents, detected)
    outcome.detected = detected

    # 2. Hospitalization
    u_hosp = rng.random(len(idx))
    admitted = idx[(severity >= cfg.critical_threshold)
                   & (u_hosp <= severity / HOSPITAL_SEVERITY_DIVISOR)]
    agents['quarantined'][admitted] = True
    agents['hospitalized'][admitted] = True
    set_immobile(agents, admitted)
    outcome.hospitalized = admitted

    # 3. Death
    dies = agents['critical_time'][idx] > cfg.death_critical_time
    died = idx[dies]
    agents['alive'][died] = False
    outcome.died = died

    # 4. Forced recovery
    survivors = idx[~dies]
    overdue = survivors[agents['infection_time'][survivors] > cfg.forced_recovery_time]
    recover_agents(agents, overdue, speed, rng, reset_reinfection=True)
    outcome.recovered = overdue

    return outcome


# ═══════════════════════════════════════════════════════════════════════
# TRANSMISSION
# ═══════════════════════════════════════════════════════════════════════

def transmit(
    agents: np.ndarray,
    pairs: np.ndarray,
    cfg: DiseaseSection,
    rng: np.random.Generator,
) -> np.ndarray:
    """Pairwise transmission over disjoint proximate pairs (in-place).

    Only pairs with exactly one Infected member are eligible. The chance
    of infection is the infected agent's β, or the healthy agent's own
    reinfection probability r if it is Recovered, multiplied by
    mask_effect once for each member wearing a mask. One uniform draw u
    per eligible pair; transmission iff u ≤ actual β.

    Args:
        agents: Structured array with AGENT_DTYPE fields.
        pairs: (m, 2) arena indices, disjoint.
        cfg: Disease configuration section.
        rng: Random stream.

    Returns:
        Arena indices of newly infected agents.
    """
    if len(pairs) == 0:
        return np.empty(0, dtype=np.int64)

    status = agents['status']
    inf_a = status[pairs[:, 0]] == Status.I
    inf_b = status[pairs[:, 1]] == Status.I
    eligible = inf_a ^ inf_b
    if not eligible.any():
        return np.empty(0, dtype=np.int64)

    a = pairs[eligible, 0]
    b = pairs[eligible, 1]
    a_infected = inf_a[eligible]
    infected = np.where(a_infected, a, b)
    healthy = np.where(a_infected, b, a)

    actual_beta = np.where(status[healthy] == Status.R,
                           agents['reinfection_prob'][healthy],
                           agents['beta'][infected])
    actual_beta = actual_beta * np.where(agents['mask'][healthy], cfg.mask_effect, 1.0)
    actual_beta = actual_beta * np.where(agents['mask'][infected], cfg.mask_effect, 1.0)

    u = rng.random(len(healthy))
    newly = healthy[u <= actual_beta]
    infect_agents(agents, newly, cfg, rng)
    return newly
