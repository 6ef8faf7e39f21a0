"""covid_abm: agent-based simulation of COVID-19 spread under stay-at-home orders.

A spatially explicit, individual-based model coupling:
  - Ballistic movement with elastic collisions on a toroidal 2-D domain
  - Per-agent S/I/R disease episodes with sampled severity and
    transmissibility curves, reinfection and mask effects
  - Detection, quarantine, hospitalization and death
  - A calendar-driven quarantine policy that sets population mobility
"""

__version__ = "0.1.0"
