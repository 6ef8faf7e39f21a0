"""Continuous periodic (toroidal) 2-D space and proximity pairing.

Positions live in [0, extent_x) × [0, extent_y); each axis wraps, so
displacements use the minimum-image convention:

    d = (x1 − x2) − L · round((x1 − x2) / L)

Pairing: once per tick every live agent is matched with at most one
partner: its nearest *unmatched* neighbour within the interaction
radius. Agents are visited in id order, which makes the matching greedy
(not globally stable) but fully deterministic.

The proximity index is a scipy cKDTree with `boxsize` set to the
extents, which gives periodic distances natively. It is rebuilt from the
live agents every tick; dead agents are dropped at rebuild time.
"""

from __future__ import annotations

from typing import Tuple

import numpy as np
from scipy.spatial import cKDTree

# Nearest-neighbour candidates fetched per agent before falling back to a
# full ball query (only needed when all candidates are already matched).
K_CANDIDATES = 8


def _wrap(x: np.ndarray, side: float) -> np.ndarray:
    """Periodic wrap onto [0, side).

    `np.mod` can return exactly `side` for tiny negative inputs; those
    are folded back to 0 so the result is always a valid cKDTree input.
    """
    x = np.mod(x, side)
    return np.where(x >= side, 0.0, x)


def minimum_image(d: np.ndarray, side: float) -> np.ndarray:
    """Shortest periodic representative of a displacement component."""
    return d - side * np.round(d / side)


class SpatialDomain:
    """Toroidal 2-D domain with an interaction radius.

    Args:
        extent_x: Width of the domain.
        extent_y: Height of the domain.
        radius: Interaction radius for pairing (inclusive).
    """

    def __init__(self, extent_x: float, extent_y: float, radius: float):
        if extent_x <= 0 or extent_y <= 0:
            raise ValueError(f"extents must be positive, got ({extent_x}, {extent_y})")
        if radius <= 0:
            raise ValueError(f"radius must be positive, got {radius}")
        self.extent_x = float(extent_x)
        self.extent_y = float(extent_y)
        self.radius = float(radius)

    @property
    def extents(self) -> Tuple[float, float]:
        return (self.extent_x, self.extent_y)

    def wrap(self, x: np.ndarray, y: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """Map coordinates into the periodic domain."""
        return _wrap(x, self.extent_x), _wrap(y, self.extent_y)

    def displacement(
        self,
        x1: np.ndarray,
        y1: np.ndarray,
        x2: np.ndarray,
        y2: np.ndarray,
    ) -> Tuple[np.ndarray, np.ndarray]:
        """Minimum-image displacement vector from point 2 to point 1."""
        dx = minimum_image(np.asarray(x1) - np.asarray(x2), self.extent_x)
        dy = minimum_image(np.asarray(y1) - np.asarray(y2), self.extent_y)
        return dx, dy

    def distance(self, x1, y1, x2, y2) -> np.ndarray:
        """Toroidal Euclidean distance."""
        dx, dy = self.displacement(x1, y1, x2, y2)
        return np.hypot(dx, dy)

    def nearest_pairs(self, x: np.ndarray, y: np.ndarray) -> np.ndarray:
        """Greedy nearest-neighbour matching within the radius.

        Args:
            x: Positions (n,), already wrapped into the domain.
            y: Positions (n,).

        Returns:
            Integer array of shape (m, 2); each row holds two row indices
            into x/y. Every index appears in at most one row, and the
            first column is the agent that initiated the match.
        """
        n = len(x)
        if n < 2:
            return np.empty((0, 2), dtype=np.int64)

        points = np.column_stack((x, y))
        tree = cKDTree(points, boxsize=self.extents)
        # Inclusive radius: cKDTree's upper bound is strict
        bound = np.nextafter(self.radius, np.inf)
        k = min(K_CANDIDATES + 1, n)
        _, nbr = tree.query(points, k=k, distance_upper_bound=bound)

        matched = np.zeros(n, dtype=bool)
        pairs = []
        for a in range(n):
            if matched[a]:
                continue
            partner = -1
            exhausted = True
            for b in nbr[a]:
                if b == n:          # no more neighbours inside the radius
                    exhausted = False
                    break
                if b == a or matched[b]:
                    continue
                partner = b
                exhausted = False
                break
            if partner < 0 and exhausted and k < n:
                partner = self._nearest_unmatched(tree, points, a, matched)
            if partner >= 0:
                matched[a] = True
                matched[partner] = True
                pairs.append((a, partner))

        if not pairs:
            return np.empty((0, 2), dtype=np.int64)
        return np.asarray(pairs, dtype=np.int64)

    def _nearest_unmatched(
        self,
        tree: cKDTree,
        points: np.ndarray,
        a: int,
        matched: np.ndarray,
    ) -> int:
        """Full ball query for agent `a`; nearest unmatched neighbour or -1."""
        cands = np.asarray(tree.query_ball_point(points[a], self.radius), dtype=np.int64)
        cands = np.sort(cands[(cands != a) & ~matched[cands]])
        if len(cands) == 0:
            return -1
        d = self.distance(points[a, 0], points[a, 1], points[cands, 0], points[cands, 1])
        # stable sort keeps id order among equidistant candidates
        return int(cands[np.argsort(d, kind='stable')[0]])
