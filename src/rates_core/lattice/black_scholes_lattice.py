# src/rates_core/lattice/black_scholes_lattice.py

from __future__ import annotations

import numpy as np

from rates_core.processes import BlackScholesProcess
from .time_grid import TimeGrid
from .tree_lattice import TreeLattice1D
from .trinomial_tree import TrinomialTree


class BlackScholesLattice(TreeLattice1D):
    """
    Equity lattice: trinomial tree on x = ln S, node underlyings are the
    spot levels exp(x), and every node of slice i discounts at the
    risk-free forward over [t_i, t_{i+1}].
    """

    def __init__(self, process: BlackScholesProcess, grid: TimeGrid) -> None:
        super().__init__(TrinomialTree(process, grid))
        self.process = process
        curve = process.risk_free
        times = grid.times
        self._step_discounts = np.array(
            [curve.discount(times[i + 1]) / curve.discount(times[i]) for i in range(len(grid) - 1)]
        )

    def discounts(self, i: int) -> np.ndarray:
        return np.full(self.size(i), self._step_discounts[i])

    def underlying_values(self, i: int) -> np.ndarray:
        return np.exp(self.tree.underlying_values(i))


__all__ = ["BlackScholesLattice"]
