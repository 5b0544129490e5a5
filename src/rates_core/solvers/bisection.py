# src/rates_core/solvers/bisection.py

from __future__ import annotations

from .base import Solver1D


class Bisection(Solver1D):
    """Halves the bracket at every evaluation."""

    name = "Bisection"

    def _solve_impl(self, x_accuracy: float) -> float:
        # orient the search so that f(root) < 0
        if self._fx_min < 0.0:
            dx = self._x_max - self._x_min
            root = self._x_min
        else:
            dx = self._x_min - self._x_max
            root = self._x_max

        while self._evaluations <= self.max_evaluations:
            dx /= 2.0
            x_mid = root + dx
            f_mid = self._value(x_mid)
            if self._is_root(f_mid):
                return x_mid
            if f_mid < 0.0:
                root = x_mid
                self._x_min, self._fx_min = x_mid, f_mid
            else:
                self._x_max, self._fx_max = x_mid, f_mid
            if abs(dx) < x_accuracy:
                self._converged_on_step()
                return root

        raise self._exhausted()


__all__ = ["Bisection"]
