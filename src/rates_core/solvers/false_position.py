# src/rates_core/solvers/false_position.py

from __future__ import annotations

from .base import Solver1D


class FalsePosition(Solver1D):
    """
    Regula falsi: linear interpolation between the bracket ends,
    replacing whichever end has the same sign as the new point.
    """

    name = "FalsePosition"

    def _solve_impl(self, x_accuracy: float) -> float:
        # identify the limits so that xl corresponds to the low side
        if self._fx_min < 0.0:
            xl, fl = self._x_min, self._fx_min
            xh, fh = self._x_max, self._fx_max
        else:
            xl, fl = self._x_max, self._fx_max
            xh, fh = self._x_min, self._fx_min

        dx = xh - xl
        while self._evaluations <= self.max_evaluations:
            root = xl + dx * fl / (fl - fh)
            froot = self._value(root)
            if froot < 0.0:
                delta = xl - root
                xl, fl = root, froot
            else:
                delta = xh - root
                xh, fh = root, froot
            dx = xh - xl

            self._x_min, self._fx_min = xl, fl
            self._x_max, self._fx_max = xh, fh

            if self._is_root(froot):
                return root
            if abs(delta) < x_accuracy:
                self._converged_on_step()
                return root

        raise self._exhausted()


__all__ = ["FalsePosition"]
