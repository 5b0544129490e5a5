# src/rates_core/lattice/tree_lattice.py

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, List

import numpy as np

from rates_core.comparison import close
from rates_core.errors import ConfigurationError, ModelDomainError
from .time_grid import TimeGrid
from .trinomial_tree import PROBABILITY_TOLERANCE, TrinomialTree

if TYPE_CHECKING:
    from rates_core.pricing.discretized import DiscretizedAsset

logger = logging.getLogger(__name__)


class TreeLattice:
    """
    Generic recombining lattice on a TimeGrid.

    Subclasses describe one slice at a time through vectorised accessors:

      size(i)               number of nodes at slice i
      descendants(i)        (n_branches, size(i)) successor indices
      probabilities(i)      (n_branches, size(i)) branch probabilities
      discounts(i)          (size(i),) one-step discount factors
      underlying_values(i)  node levels handed to payoffs / conditions

    From these the base class provides forward induction of state prices
    and backward induction (rollback) of discretized assets.
    """

    n_branches = 3

    def __init__(self, grid: TimeGrid) -> None:
        self.grid = grid
        self._state_prices: List[np.ndarray] = [np.array([1.0])]

    # ---------- slice description (subclass responsibility) ----------

    def size(self, i: int) -> int:
        raise NotImplementedError

    def descendants(self, i: int) -> np.ndarray:
        raise NotImplementedError

    def probabilities(self, i: int) -> np.ndarray:
        raise NotImplementedError

    def discounts(self, i: int) -> np.ndarray:
        raise NotImplementedError

    def underlying_values(self, i: int) -> np.ndarray:
        raise NotImplementedError

    # scalar accessors, mostly for inspection and tests

    def descendant(self, i: int, index: int, branch: int) -> int:
        return int(self.descendants(i)[branch, index])

    def probability(self, i: int, index: int, branch: int) -> float:
        return float(self.probabilities(i)[branch, index])

    def discount(self, i: int, index: int) -> float:
        return float(self.discounts(i)[index])

    def underlying(self, i: int, index: int) -> float:
        return float(self.underlying_values(i)[index])

    # ---------- forward induction ----------

    def _reset_state_prices(self) -> None:
        self._state_prices = [np.array([1.0])]

    def _forward_step(self, i: int, prices: np.ndarray) -> np.ndarray:
        """Arrow-Debreu prices at slice i + 1 from those at slice i."""
        out = np.zeros(self.size(i + 1))
        weighted = prices * self.discounts(i)
        desc = self.descendants(i)
        probs = self.probabilities(i)
        for b in range(desc.shape[0]):
            # several nodes can share a descendant
            np.add.at(out, desc[b], weighted * probs[b])
        return out

    def _compute_state_prices(self, until: int) -> None:
        for i in range(len(self._state_prices) - 1, until):
            self._state_prices.append(self._forward_step(i, self._state_prices[i]))

    def state_prices(self, i: int) -> np.ndarray:
        """State prices at slice i (computed on demand, then cached)."""
        if i < 0 or i >= len(self.grid):
            raise ConfigurationError(f"slice {i} outside the grid (0..{len(self.grid) - 1})")
        if i >= len(self._state_prices):
            self._compute_state_prices(i)
        return self._state_prices[i]

    def implied_discount(self, i: int) -> float:
        """Price of 1 paid at grid time i, as the lattice sees it."""
        return float(np.sum(self.state_prices(i)))

    # ---------- backward induction ----------

    def stepback(self, i: int, values: np.ndarray) -> np.ndarray:
        """
        One step of discounted expectation: values at slice i + 1 in,
        values at slice i out.
        """
        values = np.asarray(values, dtype=float)
        if values.size != self.size(i + 1):
            raise ConfigurationError(
                f"values at slice {i + 1} have size {values.size}, expected {self.size(i + 1)}"
            )
        desc = self.descendants(i)
        probs = self.probabilities(i)
        expected = np.zeros(self.size(i))
        for b in range(desc.shape[0]):
            expected += probs[b] * values[desc[b]]
        return self.discounts(i) * expected

    def initialize(self, asset: "DiscretizedAsset", t: float) -> None:
        i = self.grid.index(t)
        asset.time = float(t)
        asset.reset(self.size(i))

    def rollback(self, asset: "DiscretizedAsset", to: float) -> None:
        self.partial_rollback(asset, to)
        asset.adjust_values()

    def partial_rollback(self, asset: "DiscretizedAsset", to: float) -> None:
        """
        Roll back to ``to`` adjusting at every intermediate slice but not
        at ``to`` itself, so the caller can interleave its own logic there.
        """
        t_from = asset.time
        if close(t_from, to):
            return
        if not t_from > to:
            raise ConfigurationError(
                f"cannot roll the asset back to {to} (it is already at t = {t_from})"
            )

        i_from = self.grid.index(t_from)
        i_to = self.grid.index(to)

        for i in range(i_from - 1, i_to - 1, -1):
            new_values = self.stepback(i, asset.values)
            asset.time = self.grid[i]
            asset.values = new_values
            if i != i_to:
                asset.adjust_values()

    def present_value(self, asset: "DiscretizedAsset") -> float:
        i = self.grid.index(asset.time)
        return float(np.dot(asset.values, self.state_prices(i)))


# ---------------------------------------------------------------------------
# One tree
# ---------------------------------------------------------------------------


class TreeLattice1D(TreeLattice):
    """Lattice whose geometry is a single TrinomialTree."""

    def __init__(self, tree: TrinomialTree) -> None:
        super().__init__(tree.grid)
        self.tree = tree

    def size(self, i: int) -> int:
        return self.tree.size(i)

    def descendants(self, i: int) -> np.ndarray:
        return self.tree.descendants(i)

    def probabilities(self, i: int) -> np.ndarray:
        return self.tree.probabilities(i)

    def underlying_values(self, i: int) -> np.ndarray:
        return self.tree.underlying_values(i)


# ---------------------------------------------------------------------------
# Two correlated trees
# ---------------------------------------------------------------------------

# Correction terms for correlated branching, rows/cols are (down, mid, up).
# Both give covariance rho * dx1 * dx2 / 3 when scaled by rho.
_M_POSITIVE = np.array([[5.0, -4.0, -1.0], [-4.0, 8.0, -4.0], [-1.0, -4.0, 5.0]])
_M_NEGATIVE = np.array([[1.0, 4.0, -5.0], [4.0, -8.0, 4.0], [-5.0, 4.0, 1.0]])


class TreeLattice2D(TreeLattice):
    """
    Cartesian product of two trinomial trees with correlated branching.

    Node (i1, i2) has flat index i1 + i2 * size1; branch b splits into
    b1 = b % 3 on the first tree and b2 = b // 3 on the second, and

        p = p1 * p2 + rho * M[b1][b2] / 36

    with M picked by the sign of rho. The correction keeps the marginals
    and induces covariance rho * dx1 * dx2 / 3 per step.
    """

    n_branches = 9

    def __init__(self, tree1: TrinomialTree, tree2: TrinomialTree, correlation: float) -> None:
        if len(tree1.grid) != len(tree2.grid) or not np.array_equal(tree1.grid.times, tree2.grid.times):
            raise ConfigurationError("both trees must be built on the same time grid")
        if abs(correlation) > 1.0:
            raise ConfigurationError(f"correlation must be in [-1, 1], got {correlation}")
        super().__init__(tree1.grid)
        self.tree1 = tree1
        self.tree2 = tree2
        self.correlation = float(correlation)
        self._m = _M_NEGATIVE if self.correlation < 0.0 else _M_POSITIVE

        self._descendants: List[np.ndarray] = []
        self._probabilities: List[np.ndarray] = []
        for i in range(len(self.grid) - 1):
            desc, probs = self._build_branching(i)
            self._descendants.append(desc)
            self._probabilities.append(probs)

    def _build_branching(self, i: int):
        s1 = self.tree1.size(i)
        s1_next = self.tree1.size(i + 1)
        n = np.arange(self.size(i))
        i1 = n % s1
        i2 = n // s1

        d1 = self.tree1.descendants(i)
        d2 = self.tree2.descendants(i)
        p1 = self.tree1.probabilities(i)
        p2 = self.tree2.probabilities(i)

        desc = np.empty((9, n.size), dtype=int)
        probs = np.empty((9, n.size), dtype=float)
        for b in range(9):
            b1, b2 = b % 3, b // 3
            desc[b] = d1[b1, i1] + d2[b2, i2] * s1_next
            probs[b] = p1[b1, i1] * p2[b2, i2] + self.correlation * self._m[b1, b2] / 36.0

        if probs.min() < -PROBABILITY_TOLERANCE or probs.max() > 1.0 + PROBABILITY_TOLERANCE:
            raise ModelDomainError(
                f"correlated branching probabilities outside [0, 1] at step {i} "
                f"(t={self.grid[i]}), correlation {self.correlation}: "
                f"min {probs.min():.3e}, max {probs.max():.3e}"
            )
        return desc, probs

    def size(self, i: int) -> int:
        return self.tree1.size(i) * self.tree2.size(i)

    def descendants(self, i: int) -> np.ndarray:
        return self._descendants[i]

    def probabilities(self, i: int) -> np.ndarray:
        return self._probabilities[i]

    def factor_values(self, i: int):
        """State variables (x, y) of both factors at every flat node index."""
        s1 = self.tree1.size(i)
        n = np.arange(self.size(i))
        x = self.tree1.underlying_values(i)[n % s1]
        y = self.tree2.underlying_values(i)[n // s1]
        return x, y

    def underlying_values(self, i: int) -> np.ndarray:
        # first factor; two-factor payoffs should use factor_values()
        return self.factor_values(i)[0]


# ---------------------------------------------------------------------------
# Convenience
# ---------------------------------------------------------------------------


def rollback(asset: "DiscretizedAsset", lattice: TreeLattice, from_time: float, to_time: float) -> np.ndarray:
    """
    Initialize ``asset`` on ``lattice`` at ``from_time`` and roll it back
    to ``to_time``. Returns the asset's values at ``to_time``.
    """
    asset.initialize(lattice, from_time)
    asset.rollback(to_time)
    return asset.values


__all__ = ["TreeLattice", "TreeLattice1D", "TreeLattice2D", "rollback"]
