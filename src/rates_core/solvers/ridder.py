# src/rates_core/solvers/ridder.py

from __future__ import annotations

import math

from rates_core.comparison import close

from .base import Solver1D, sign


class Ridder(Solver1D):
    """
    Ridder's method: evaluates the bracket midpoint and applies an
    exponential correction, keeping the root bracketed at every step.
    """

    name = "Ridder"

    def _solve_impl(self, x_accuracy: float) -> float:
        # Ridder delivers about 100x less accuracy than the step test suggests
        x_accuracy /= 100.0

        x_min, x_max = self._x_min, self._x_max
        fx_min, fx_max = self._fx_min, self._fx_max
        root = self._root

        while self._evaluations <= self.max_evaluations:
            x_mid = 0.5 * (x_min + x_max)
            fx_mid = self._value(x_mid)
            if self._is_root(fx_mid):
                return x_mid

            s = math.sqrt(fx_mid * fx_mid - fx_min * fx_max)
            if close(s, 0.0):
                self._converged_on_step()
                return root

            direction = 1.0 if fx_min >= fx_max else -1.0
            next_root = x_mid + (x_mid - x_min) * (direction * fx_mid / s)
            if abs(next_root - root) <= x_accuracy:
                self._converged_on_step()
                return next_root

            root = next_root
            froot = self._value(root)
            if self._is_root(froot):
                return root

            # keep the root bracketed on the next iteration
            if sign(fx_mid, froot) != fx_mid:
                x_min, fx_min = x_mid, fx_mid
                x_max, fx_max = root, froot
            elif sign(fx_min, froot) != fx_min:
                x_max, fx_max = root, froot
            elif sign(fx_max, froot) != fx_max:
                x_min, fx_min = root, froot
            else:
                raise RuntimeError("Ridder: bracket lost, never get here")

            self._x_min, self._x_max = x_min, x_max
            self._fx_min, self._fx_max = fx_min, fx_max

            if abs(x_max - x_min) <= x_accuracy:
                self._converged_on_step()
                return root

        raise self._exhausted()


__all__ = ["Ridder"]
