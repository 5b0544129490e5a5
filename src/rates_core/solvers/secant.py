# src/rates_core/solvers/secant.py

from __future__ import annotations

from .base import Solver1D


class Secant(Solver1D):
    """
    Secant method. Starts from the bracket ends but does not keep the
    root bracketed while iterating.
    """

    name = "Secant"

    def _solve_impl(self, x_accuracy: float) -> float:
        # pick the bound with the smaller |f| as the most recent iterate
        if abs(self._fx_min) < abs(self._fx_max):
            root, froot = self._x_min, self._fx_min
            xl, fl = self._x_max, self._fx_max
        else:
            root, froot = self._x_max, self._fx_max
            xl, fl = self._x_min, self._fx_min

        while self._evaluations <= self.max_evaluations:
            dx = (xl - root) * froot / (froot - fl)
            xl, fl = root, froot
            root += dx
            froot = self._value(root)

            self._x_min, self._fx_min = xl, fl
            self._x_max, self._fx_max = root, froot

            if self._is_root(froot):
                return root
            if abs(dx) < x_accuracy:
                self._converged_on_step()
                return root

        raise self._exhausted()


__all__ = ["Secant"]
