# src/rates_core/lattice/trinomial_tree.py

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import List

import numpy as np

from rates_core.errors import ModelDomainError
from rates_core.processes import DiffusionProcess
from .time_grid import TimeGrid

logger = logging.getLogger(__name__)

SQRT3 = math.sqrt(3.0)

# Probabilities may miss [0, 1] by this much through rounding alone
PROBABILITY_TOLERANCE = 1e-10

# Largest drift (relative to max(1, |x0|)) a zero-variance step may carry
DRIFT_TOLERANCE = 1e-12


@dataclass(frozen=True)
class Branching:
    """
    Branching of one time step.

    k           : centre-branch target (offset from the central node of the
                  next step) for every node of the current step
    probs       : (3, n) array, rows are (down, mid, up)
    j_min/j_max : node offset range of the *next* step
    """
    k: np.ndarray
    probs: np.ndarray

    @property
    def j_min(self) -> int:
        return int(self.k.min()) - 1

    @property
    def j_max(self) -> int:
        return int(self.k.max()) + 1


class TrinomialTree:
    """
    Recombining trinomial tree for a 1-D diffusion.

    At step i the spacing is dx[i] = sqrt(3 * Var) (variance of step i-1)
    and node j (0-based) sits at x0 + (j_min[i] + j) * dx[i]. Each node
    branches to its centre target k and to k - 1, k + 1 at step i + 1,
    with probabilities matching the first two conditional moments of the
    process.

    Tie-breaks (deterministic):
      * the centre is round-half-up of (mean - x0) / dx;
      * a step with zero variance puts all mass on the mid branch, k = 0,
        which is only valid while every conditional mean stays at x0;
        a drifting zero-variance step raises ModelDomainError.

    Probabilities outside [0, 1] raise ModelDomainError; they are never
    clamped, since a clamped tree no longer matches the process moments.
    """

    branches = 3

    def __init__(self, process: DiffusionProcess, grid: TimeGrid, is_positive: bool = False) -> None:
        self.process = process
        self.grid = grid
        self.is_positive = bool(is_positive)

        x0 = float(process.x0)
        self.x0 = x0

        dx: List[float] = [0.0]
        j_mins: List[int] = [0]
        branchings: List[Branching] = []

        j_min, j_max = 0, 0
        for i in range(len(grid) - 1):
            t = grid[i]
            dt = grid.dt(i)

            # variance must not depend on x
            v2 = float(process.variance(t, 0.0, dt))
            if v2 < 0.0:
                raise ModelDomainError(f"negative variance {v2} at step {i} (t={t})")
            v = math.sqrt(v2)
            dx_next = v * SQRT3

            js = np.arange(j_min, j_max + 1)
            xs = x0 + js * dx[i]
            means = np.array([process.expectation(t, float(x), dt) for x in xs], dtype=float)

            if dx_next == 0.0:
                self._check_driftless(i, t, means)
                k = np.zeros(js.size, dtype=int)
                probs = np.zeros((3, js.size), dtype=float)
                probs[1, :] = 1.0
            else:
                k = np.floor((means - x0) / dx_next + 0.5).astype(int)
                if self.is_positive:
                    for n in range(k.size):
                        while x0 + (k[n] - 1) * dx_next <= 0.0:
                            k[n] += 1
                e = means - (x0 + k * dx_next)
                e2 = e * e
                e3 = e * SQRT3
                probs = np.vstack(
                    (
                        (1.0 + e2 / v2 - e3 / v) / 6.0,
                        (2.0 - e2 / v2) / 3.0,
                        (1.0 + e2 / v2 + e3 / v) / 6.0,
                    )
                )

            self._check_probabilities(i, t, probs)

            branching = Branching(k=k, probs=probs)
            branchings.append(branching)
            dx.append(dx_next)

            j_min, j_max = branching.j_min, branching.j_max
            j_mins.append(j_min)

        self._dx = dx
        self._j_min = j_mins
        self._branchings = branchings

        logger.debug(
            "TrinomialTree: %d steps, final width %d",
            len(branchings),
            self.size(len(grid) - 1),
        )

    def _check_driftless(self, i: int, t: float, means: np.ndarray) -> None:
        # with dx = 0 every node of the next step sits at x0
        drift = np.abs(means - self.x0)
        if np.any(drift > DRIFT_TOLERANCE * max(1.0, abs(self.x0))):
            raise ModelDomainError(
                f"zero variance at step {i} (t={t}) but the process drifts away from x0 "
                f"(largest move {float(drift.max()):.3e}); a degenerate tree cannot follow it"
            )

    @staticmethod
    def _check_probabilities(i: int, t: float, probs: np.ndarray) -> None:
        lo = float(probs.min())
        hi = float(probs.max())
        if lo < -PROBABILITY_TOLERANCE or hi > 1.0 + PROBABILITY_TOLERANCE:
            node = int(np.argmin(probs.min(axis=0))) if lo < -PROBABILITY_TOLERANCE \
                else int(np.argmax(probs.max(axis=0)))
            raise ModelDomainError(
                f"branching probabilities outside [0, 1] at step {i} (t={t}), node {node}: "
                f"{probs[:, node].tolist()}; drift too large for the grid spacing"
            )
        sums = probs.sum(axis=0)
        if np.any(np.abs(sums - 1.0) > PROBABILITY_TOLERANCE):
            raise ModelDomainError(f"branching probabilities do not sum to 1 at step {i} (t={t})")

    # ---------- geometry ----------

    def size(self, i: int) -> int:
        """Number of nodes at step i."""
        if i == 0:
            return 1
        b = self._branchings[i - 1]
        return b.j_max - b.j_min + 1

    def dx(self, i: int) -> float:
        return float(self._dx[i])

    def j_min(self, i: int) -> int:
        return int(self._j_min[i])

    def underlying(self, i: int, index: int) -> float:
        return self.x0 + (self._j_min[i] + index) * self._dx[i]

    def underlying_values(self, i: int) -> np.ndarray:
        return self.x0 + (self._j_min[i] + np.arange(self.size(i))) * self._dx[i]

    def descendant(self, i: int, index: int, branch: int) -> int:
        return int(self._branchings[i].k[index]) - self._j_min[i + 1] + branch - 1

    def descendants(self, i: int) -> np.ndarray:
        """(3, size(i)) array of successor indices (down, mid, up)."""
        k = self._branchings[i].k
        base = k - self._j_min[i + 1]
        return np.vstack((base - 1, base, base + 1))

    def probability(self, i: int, index: int, branch: int) -> float:
        return float(self._branchings[i].probs[branch, index])

    def probabilities(self, i: int) -> np.ndarray:
        return self._branchings[i].probs

    def branching(self, i: int) -> Branching:
        return self._branchings[i]


def build_trinomial_tree(process: DiffusionProcess, grid: TimeGrid, is_positive: bool = False) -> TrinomialTree:
    """Build the trinomial geometry for ``process`` on ``grid``."""
    return TrinomialTree(process, grid, is_positive=is_positive)


__all__ = ["Branching", "TrinomialTree", "build_trinomial_tree", "PROBABILITY_TOLERANCE", "DRIFT_TOLERANCE"]
