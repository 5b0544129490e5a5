# src/rates_core/solvers/base.py

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from rates_core.comparison import EPSILON, close
from rates_core.errors import (
    BracketError,
    ConfigurationError,
    LatticeError,
    MaxEvaluationsExceeded,
)

logger = logging.getLogger(__name__)

Objective = Callable[[float], float]

MAX_FUNCTION_EVALUATIONS = 100

# Reasons reported in Solver1D.last_stop_reason / SolverResult.reason
STOP_EXACT_ROOT = "exact_root"
STOP_FUNCTION_TOLERANCE = "function_tolerance"
STOP_STEP_SIZE = "step_size"


def sign(a: float, b: float) -> float:
    """|a| carrying the sign of b (b == 0 counts as positive)."""
    return abs(a) if b >= 0.0 else -abs(a)


@dataclass
class SolverResult:
    """
    Outcome of Solver1D.try_solve.

    converged : bool
        True if a root was found within the evaluation budget.
    root : float or None
        The root (None when not converged).
    evaluations : int
        Number of objective evaluations performed.
    reason : str
        Stop reason on success, or a short failure tag.
    error : LatticeError or None
        The numerical error that stopped the search, if any.
    """
    converged: bool
    root: Optional[float]
    evaluations: int
    reason: str
    error: Optional[LatticeError] = None


class Solver1D:
    """
    Base class for one-dimensional root finders.

    Before ``_solve_impl`` is called the base class guarantees:

      * ``_x_min`` / ``_x_max`` bracket the root,
      * ``_fx_min`` / ``_fx_max`` hold f at those points,
      * ``_root`` holds a valid initial guess.

    Two independent stopping criteria exist:

      * step size: successive iterates closer than ``accuracy``;
      * function value: ``|f(x)| <= function_accuracy`` when a function
        accuracy is given, otherwise only an exact zero stops early.

    ``last_stop_reason`` records which of them fired.
    """

    name = "solver"

    def __init__(
        self,
        max_evaluations: int = MAX_FUNCTION_EVALUATIONS,
        lower_bound: Optional[float] = None,
        upper_bound: Optional[float] = None,
    ) -> None:
        if max_evaluations <= 0:
            raise ConfigurationError(f"max_evaluations must be positive, got {max_evaluations}")
        self.max_evaluations = int(max_evaluations)
        self.lower_bound = lower_bound
        self.upper_bound = upper_bound

        self._f: Optional[Objective] = None
        self._function_accuracy: Optional[float] = None
        self._root = 0.0
        self._x_min = 0.0
        self._x_max = 0.0
        self._fx_min = 0.0
        self._fx_max = 0.0
        self._evaluations = 0
        self.last_stop_reason: Optional[str] = None

    # ---------- public API ----------

    @property
    def evaluations(self) -> int:
        """Objective evaluations used by the last solve."""
        return self._evaluations

    def solve(
        self,
        f: Objective,
        accuracy: float,
        guess: Optional[float] = None,
        step: Optional[float] = None,
        *,
        x_min: Optional[float] = None,
        x_max: Optional[float] = None,
        function_accuracy: Optional[float] = None,
    ) -> float:
        """
        Find a zero of f.

        Either pass an explicit bracket (``x_min``, ``x_max``) or a
        ``guess`` and a ``step`` used to search for one.

        Raises
        ------
        ConfigurationError
            Non-positive accuracy, invalid range, guess outside bracket.
        BracketError
            No sign change on the bracket, or none found by the search.
        MaxEvaluationsExceeded
            Evaluation budget exhausted before convergence.
        """
        if accuracy <= 0.0:
            raise ConfigurationError(f"accuracy ({accuracy}) must be positive")
        if function_accuracy is not None and function_accuracy < 0.0:
            raise ConfigurationError(
                f"function_accuracy ({function_accuracy}) must be non-negative"
            )
        accuracy = max(accuracy, EPSILON)

        self._f = f
        self._function_accuracy = function_accuracy
        self._evaluations = 0
        self.last_stop_reason = None

        if x_min is not None or x_max is not None:
            if x_min is None or x_max is None:
                raise ConfigurationError("both x_min and x_max are required for a bracketed solve")
            return self._solve_bracketed(accuracy, guess, float(x_min), float(x_max))

        if guess is None or step is None:
            raise ConfigurationError("either (x_min, x_max) or (guess, step) must be given")
        return self._solve_with_search(accuracy, float(guess), float(step))

    def try_solve(self, f: Objective, accuracy: float, guess: Optional[float] = None,
                  step: Optional[float] = None, **kwargs) -> SolverResult:
        """
        Same as solve() but reports numerical failure as a SolverResult
        instead of raising. Configuration errors still raise.
        """
        try:
            root = self.solve(f, accuracy, guess, step, **kwargs)
        except MaxEvaluationsExceeded as exc:
            return SolverResult(False, None, self._evaluations, "max_evaluations", exc)
        except BracketError as exc:
            return SolverResult(False, None, self._evaluations, "not_bracketed", exc)
        return SolverResult(True, root, self._evaluations, self.last_stop_reason or "")

    # ---------- helpers for implementations ----------

    def _value(self, x: float) -> float:
        self._evaluations += 1
        return float(self._f(x))

    def _is_root(self, fx: float) -> bool:
        """Function-value stopping criterion; records the reason."""
        if self._function_accuracy is not None and abs(fx) <= self._function_accuracy:
            self.last_stop_reason = STOP_FUNCTION_TOLERANCE
            return True
        if close(fx, 0.0):
            self.last_stop_reason = STOP_EXACT_ROOT
            return True
        return False

    def _converged_on_step(self) -> None:
        self.last_stop_reason = STOP_STEP_SIZE

    def _exhausted(self) -> MaxEvaluationsExceeded:
        return MaxEvaluationsExceeded(
            f"{self.name}: maximum number of function evaluations "
            f"({self.max_evaluations}) exceeded; last bracket "
            f"[{self._x_min}, {self._x_max}] -> [{self._fx_min}, {self._fx_max}]",
            evaluations=self._evaluations,
            x_min=self._x_min,
            x_max=self._x_max,
            fx_min=self._fx_min,
            fx_max=self._fx_max,
        )

    def _enforce_bounds(self, x: float) -> float:
        if self.lower_bound is not None and x < self.lower_bound:
            return self.lower_bound
        if self.upper_bound is not None and x > self.upper_bound:
            return self.upper_bound
        return x

    # ---------- bracketing ----------

    def _solve_bracketed(self, accuracy: float, guess: Optional[float],
                         x_min: float, x_max: float) -> float:
        if not x_min < x_max:
            raise ConfigurationError(f"invalid range: x_min ({x_min}) >= x_max ({x_max})")
        if self.lower_bound is not None and x_min < self.lower_bound:
            raise ConfigurationError(
                f"x_min ({x_min}) < enforced low bound ({self.lower_bound})"
            )
        if self.upper_bound is not None and x_max > self.upper_bound:
            raise ConfigurationError(
                f"x_max ({x_max}) > enforced hi bound ({self.upper_bound})"
            )

        self._x_min, self._x_max = x_min, x_max

        self._fx_min = self._value(x_min)
        if self._is_root(self._fx_min):
            return x_min
        self._fx_max = self._value(x_max)
        if self._is_root(self._fx_max):
            return x_max

        if not self._fx_min * self._fx_max < 0.0:
            raise BracketError(
                f"root not bracketed: f[{x_min}, {x_max}] -> [{self._fx_min}, {self._fx_max}]"
            )

        if guess is None:
            guess = 0.5 * (x_min + x_max)
        if not guess > x_min:
            raise ConfigurationError(f"guess ({guess}) < x_min ({x_min})")
        if not guess < x_max:
            raise ConfigurationError(f"guess ({guess}) > x_max ({x_max})")

        self._root = float(guess)
        return self._solve_impl(accuracy)

    def _solve_with_search(self, accuracy: float, guess: float, step: float) -> float:
        growth_factor = 1.6
        flipflop = -1

        self._root = guess
        self._fx_max = self._value(self._root)

        if self._is_root(self._fx_max):
            return self._root
        if self._fx_max > 0.0:
            self._x_min = self._enforce_bounds(self._root - step)
            self._fx_min = self._value(self._x_min)
            self._x_max = self._root
        else:
            self._x_min = self._root
            self._fx_min = self._fx_max
            self._x_max = self._enforce_bounds(self._root + step)
            self._fx_max = self._value(self._x_max)

        while self._evaluations <= self.max_evaluations:
            if self._fx_min * self._fx_max <= 0.0:
                if self._is_root(self._fx_min):
                    return self._x_min
                if self._is_root(self._fx_max):
                    return self._x_max
                self._root = 0.5 * (self._x_max + self._x_min)
                return self._solve_impl(accuracy)

            if abs(self._fx_min) < abs(self._fx_max):
                self._x_min = self._enforce_bounds(
                    self._x_min + growth_factor * (self._x_min - self._x_max)
                )
                self._fx_min = self._value(self._x_min)
            elif abs(self._fx_min) > abs(self._fx_max):
                self._x_max = self._enforce_bounds(
                    self._x_max + growth_factor * (self._x_max - self._x_min)
                )
                self._fx_max = self._value(self._x_max)
            elif flipflop == -1:
                self._x_min = self._enforce_bounds(
                    self._x_min + growth_factor * (self._x_min - self._x_max)
                )
                self._fx_min = self._value(self._x_min)
                flipflop = 1
            else:
                self._x_max = self._enforce_bounds(
                    self._x_max + growth_factor * (self._x_max - self._x_min)
                )
                self._fx_max = self._value(self._x_max)
                flipflop = -1

        raise BracketError(
            f"unable to bracket root in {self.max_evaluations} function evaluations "
            f"(last bracket attempt: f[{self._x_min}, {self._x_max}] -> "
            f"[{self._fx_min}, {self._fx_max}])"
        )

    def _solve_impl(self, x_accuracy: float) -> float:
        raise NotImplementedError


__all__ = [
    "Objective",
    "SolverResult",
    "Solver1D",
    "MAX_FUNCTION_EVALUATIONS",
    "STOP_EXACT_ROOT",
    "STOP_FUNCTION_TOLERANCE",
    "STOP_STEP_SIZE",
    "sign",
]
