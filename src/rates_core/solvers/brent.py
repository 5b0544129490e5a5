# src/rates_core/solvers/brent.py

from __future__ import annotations

from rates_core.comparison import EPSILON, close

from .base import Solver1D, sign


class Brent(Solver1D):
    """
    Brent's method: inverse quadratic interpolation and secant steps,
    falling back to bisection whenever the interpolated step would leave
    the bracket or shrink it too slowly.

    See Press et al., "Numerical Recipes", ch. 9.3.
    """

    name = "Brent"

    def _solve_impl(self, x_accuracy: float) -> float:
        root = self._root
        x_min, x_max = self._x_min, self._x_max
        fx_min, fx_max = self._fx_min, self._fx_max

        froot = self._value(root)
        if self._is_root(froot):
            return root

        # keep the root bracketed between root and x_max
        if froot * fx_min < 0.0:
            x_max, fx_max = x_min, fx_min
        else:
            x_min, fx_min = x_max, fx_max

        d = root - x_max
        e = d

        while self._evaluations <= self.max_evaluations:
            if (froot > 0.0 and fx_max > 0.0) or (froot < 0.0 and fx_max < 0.0):
                # rename x_min, root, x_max and adjust bounds
                x_max, fx_max = x_min, fx_min
                d = root - x_min
                e = d
            if abs(fx_max) < abs(froot):
                x_min, root, x_max = root, x_max, root
                fx_min, froot, fx_max = froot, fx_max, froot

            x_acc1 = 2.0 * EPSILON * abs(root) + 0.5 * x_accuracy
            x_mid = (x_max - root) / 2.0

            if self._is_root(froot):
                return root
            if abs(x_mid) <= x_acc1:
                self._converged_on_step()
                return root

            if abs(e) >= x_acc1 and abs(fx_min) > abs(froot):
                s = froot / fx_min
                if close(x_min, x_max):
                    p = 2.0 * x_mid * s
                    q = 1.0 - s
                else:
                    q = fx_min / fx_max
                    r = froot / fx_max
                    p = s * (2.0 * x_mid * q * (q - r) - (root - x_min) * (r - 1.0))
                    q = (q - 1.0) * (r - 1.0) * (s - 1.0)
                if p > 0.0:
                    q = -q
                p = abs(p)
                min1 = 3.0 * x_mid * q - abs(x_acc1 * q)
                min2 = abs(e * q)
                if 2.0 * p < min(min1, min2):
                    # accept interpolation
                    e = d
                    d = p / q
                else:
                    d = x_mid
                    e = d
            else:
                # bounds decreasing too slowly, use bisection
                d = x_mid
                e = d

            x_min, fx_min = root, froot
            if abs(d) > x_acc1:
                root += d
            else:
                root += sign(x_acc1, x_mid)
            froot = self._value(root)

            self._x_min, self._x_max = x_min, x_max
            self._fx_min, self._fx_max = fx_min, fx_max

        raise self._exhausted()


__all__ = ["Brent"]
