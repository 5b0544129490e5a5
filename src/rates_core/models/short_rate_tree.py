# src/rates_core/models/short_rate_tree.py

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional, Tuple, Union

import numpy as np
import pandas as pd

from rates_core.curves.types import DiscountCurve
from rates_core.errors import (
    BracketError,
    ConfigurationError,
    MaxEvaluationsExceeded,
    ModelDomainError,
)
from rates_core.lattice.time_grid import TimeGrid
from rates_core.lattice.tree_lattice import TreeLattice1D, TreeLattice2D
from rates_core.lattice.trinomial_tree import TrinomialTree
from rates_core.solvers import Brent, Solver1D
from .dynamics import OneFactorDynamics, TwoFactorDynamics

logger = logging.getLogger(__name__)

FITTING_METHODS = ("numerical", "analytic", "none")

# Defaults of the per-slice root solve
FIT_ACCURACY = 1e-7
FIT_MAX_EVALUATIONS = 1000
FIT_BRACKET = (-100.0, 100.0)


class _TermStructureFitting:
    """
    Per-slice shift fitting shared by the one- and two-factor trees.

    For slice i the shift theta_i solves

        P(0, t_{i+1}) = sum_j Q_i[j] * exp(-r(t_i, node_j; theta_i) * dt_i)

    where Q_i are the state prices reached with theta_0 .. theta_{i-1}
    already frozen. Fitting is lazy: it runs the first time discounts or
    state prices are needed, and again from slice 0 whenever the curve's
    ``generation`` moves on.
    """

    def _init_fitting(
        self,
        curve: Optional[DiscountCurve],
        fitting: str,
        solver: Optional[Solver1D],
        accuracy: float,
        bracket: Tuple[float, float],
        initial_guess: float,
        additive: bool,
    ) -> None:
        fitting = str(fitting).strip().lower()
        if fitting not in FITTING_METHODS:
            raise ConfigurationError(f"unknown fitting {fitting!r}; expected one of {FITTING_METHODS}")
        if fitting != "none" and curve is None:
            raise ConfigurationError(f"{fitting} fitting needs a discount curve")
        if fitting == "analytic" and not additive:
            raise ConfigurationError("analytic fitting needs additive dynamics (r = x + theta)")
        if accuracy <= 0.0:
            raise ConfigurationError(f"fit accuracy must be positive, got {accuracy}")
        lo, hi = float(bracket[0]), float(bracket[1])
        if not lo < hi:
            raise ConfigurationError(f"invalid fit bracket [{lo}, {hi}]")

        self.curve = curve
        self.fitting = fitting
        self.solver = solver if solver is not None else Brent(max_evaluations=FIT_MAX_EVALUATIONS)
        self.accuracy = float(accuracy)
        self.bracket = (lo, hi)
        self.initial_guess = float(initial_guess)

        self._theta: List[float] = []
        self._evaluations: List[int] = []
        self._fitted = False
        self._in_fit = False
        self._fit_generation: Optional[int] = None

    # ---------- hooks ----------

    def _slice_rates(self, i: int, shift: float) -> np.ndarray:
        """Short rates at every node of slice i for a given shift."""
        raise NotImplementedError

    # ---------- state ----------

    @property
    def is_fitted(self) -> bool:
        return self._fitted and not self.is_stale

    @property
    def is_stale(self) -> bool:
        """True once the curve has changed since the last fit."""
        if not self._fitted or self.curve is None:
            return False
        return getattr(self.curve, "generation", None) != self._fit_generation

    @property
    def theta(self) -> np.ndarray:
        """Fitted shift per slice (read-only)."""
        self._ensure_fitted()
        out = np.array(self._theta, dtype=float)
        out.setflags(write=False)
        return out

    def _ensure_fitted(self) -> None:
        if self._in_fit:
            return
        if not self._fitted or self.is_stale:
            self.fit()

    # ---------- fitting ----------

    def fit(self):
        """(Re)fit every slice from 0; returns self."""
        n_slices = len(self.grid) - 1
        self._in_fit = True
        self._fitted = False
        try:
            self._theta = []
            self._evaluations = []
            self._reset_state_prices()

            if self.fitting == "none":
                self._theta = [0.0] * n_slices
                self._evaluations = [0] * n_slices
            else:
                guess = self.initial_guess
                for i in range(n_slices):
                    value, evaluations = self._fit_slice(i, guess)
                    self._theta.append(value)
                    self._evaluations.append(evaluations)
                    self._state_prices.append(self._forward_step(i, self._state_prices[i]))
                    guess = value

            self._fit_generation = getattr(self.curve, "generation", None)
            self._fitted = True
        finally:
            self._in_fit = False

        logger.debug(
            "%s: fitted %d slices (%s), total evaluations %d",
            type(self).__name__,
            n_slices,
            self.fitting,
            sum(self._evaluations),
        )
        return self

    def _fit_slice(self, i: int, guess: float) -> Tuple[float, int]:
        t = self.grid[i]
        dt = self.grid.dt(i)
        target = self.curve.discount(self.grid[i + 1])
        prices = self._state_prices[i]

        if self.fitting == "analytic":
            rates = self._slice_rates(i, 0.0)
            value = float(np.log(np.dot(prices, np.exp(-rates * dt)) / target) / dt)
            evaluations = 0
        else:
            def objective(shift: float) -> float:
                return target - float(np.dot(prices, np.exp(-self._slice_rates(i, shift) * dt)))

            lo, hi = self.bracket
            if not lo < guess < hi:
                guess = 0.5 * (lo + hi)
            try:
                value = self.solver.solve(objective, self.accuracy, guess, x_min=lo, x_max=hi)
            except MaxEvaluationsExceeded as exc:
                raise MaxEvaluationsExceeded(
                    f"term-structure fit failed at slice {i} (t={t}): {exc}",
                    evaluations=exc.evaluations,
                    x_min=exc.x_min,
                    x_max=exc.x_max,
                    fx_min=exc.fx_min,
                    fx_max=exc.fx_max,
                    slice_index=i,
                ) from exc
            except BracketError as exc:
                raise BracketError(f"term-structure fit failed at slice {i} (t={t}): {exc}") from exc
            evaluations = self.solver.evaluations

        self._check_monotonic(i, self._slice_rates(i, value))

        logger.debug(
            "fit slice %d: t=%.6f dt=%.6f target=%.10f theta=%.10f evaluations=%d",
            i, t, dt, target, value, evaluations,
        )
        return value, evaluations

    def _check_monotonic(self, i: int, rates: np.ndarray) -> None:
        raise NotImplementedError

    # ---------- lattice overrides ----------

    def discounts(self, i: int) -> np.ndarray:
        self._ensure_fitted()
        return np.exp(-self._slice_rates(i, self._theta[i]) * self.grid.dt(i))

    def state_prices(self, i: int) -> np.ndarray:
        self._ensure_fitted()
        return super().state_prices(i)

    def short_rates(self, i: int) -> np.ndarray:
        """Fitted short rate at every node of slice i."""
        self._ensure_fitted()
        # the last slice has no shift of its own and reuses the previous one
        if i < len(self._theta):
            shift = self._theta[i]
        else:
            shift = self._theta[-1] if self._theta else 0.0
        return self._slice_rates(i, shift)

    # ---------- reporting ----------

    def fitting_report(self) -> pd.DataFrame:
        """
        One row per slice: shift, market vs lattice discount at the end
        of the slice and solver evaluations.
        """
        self._ensure_fitted()
        rows = []
        for i in range(len(self.grid) - 1):
            t_next = self.grid[i + 1]
            market = self.curve.discount(t_next) if self.curve is not None else np.nan
            implied = self.implied_discount(i + 1)
            rows.append(
                {
                    "step": i,
                    "t_yrs": self.grid[i],
                    "dt": self.grid.dt(i),
                    "theta": self._theta[i],
                    "t_next": t_next,
                    "market_df": market,
                    "lattice_df": implied,
                    "df_error": implied - market,
                    "evaluations": self._evaluations[i],
                }
            )
        return pd.DataFrame.from_records(rows)

    def export_to_excel(self, path: Union[str, Path]) -> Path:
        """
        Write the fitting report (FIT sheet) and the node-level lattice
        (LATTICE sheet) to an .xlsx workbook.
        """
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with pd.ExcelWriter(path, engine="openpyxl") as writer:
            self.fitting_report().to_excel(writer, sheet_name="FIT", index=False)
            self.to_frame().to_excel(writer, sheet_name="LATTICE", index=False)
        logger.info("Exported %s to %s", type(self).__name__, path)
        return path


# ---------------------------------------------------------------------------
# One factor
# ---------------------------------------------------------------------------


class ShortRateTree(_TermStructureFitting, TreeLattice1D):
    """
    Trinomial short-rate lattice fitted to a discount curve.

    The node rate at slice i is ``dynamics.short_rate(t_i, x_j + theta_i)``
    with x_j the tree's state variable. Fitting methods:

      * "numerical": per-slice Brent solve (default)
      * "analytic":  closed form, additive dynamics only
      * "none":      theta = 0, the bare dynamics (e.g. Vasicek, CIR)

    Parameters
    ----------
    tree : TrinomialTree
        Geometry for the dynamics' state variable.
    dynamics : OneFactorDynamics
    curve : DiscountCurve, optional
        Required unless fitting == "none".
    solver : Solver1D, optional
        Defaults to Brent with 1000 evaluations.
    accuracy, bracket, initial_guess
        Settings of the per-slice solve.
    """

    def __init__(
        self,
        tree: TrinomialTree,
        dynamics: OneFactorDynamics,
        curve: Optional[DiscountCurve] = None,
        *,
        fitting: str = "numerical",
        solver: Optional[Solver1D] = None,
        accuracy: float = FIT_ACCURACY,
        bracket: Tuple[float, float] = FIT_BRACKET,
        initial_guess: float = 0.0,
    ) -> None:
        TreeLattice1D.__init__(self, tree)
        self.dynamics = dynamics
        self._init_fitting(curve, fitting, solver, accuracy, bracket, initial_guess, dynamics.additive)

    def _slice_rates(self, i: int, shift: float) -> np.ndarray:
        x = self.tree.underlying_values(i)
        return self.dynamics.short_rates(self.grid[i], x + shift)

    def _check_monotonic(self, i: int, rates: np.ndarray) -> None:
        if rates.size < 2:
            return
        d = np.diff(rates)
        if not (np.all(d >= 0.0) or np.all(d <= 0.0)):
            raise ModelDomainError(
                f"short rate is not monotonic in the state variable at slice {i} "
                f"(t={self.grid[i]}); the fitted shift may be spurious"
            )

    def to_frame(self) -> pd.DataFrame:
        """Node-level view: step, t_yrs, j, x, r_short, state_price."""
        self._ensure_fitted()
        frames = []
        for i in range(len(self.grid)):
            n = self.size(i)
            frames.append(
                pd.DataFrame(
                    {
                        "step": i,
                        "t_yrs": self.grid[i],
                        "j": self.tree.j_min(i) + np.arange(n),
                        "x": self.tree.underlying_values(i),
                        "r_short": self.short_rates(i),
                        "state_price": self.state_prices(i),
                    }
                )
            )
        return pd.concat(frames, ignore_index=True)


# ---------------------------------------------------------------------------
# Two factors
# ---------------------------------------------------------------------------


class TwoFactorShortRateTree(_TermStructureFitting, TreeLattice2D):
    """
    Two-factor lattice fitted to a curve by shifting the first factor:
    r = dynamics.short_rate(t, x + theta_i, y).
    """

    def __init__(
        self,
        tree1: TrinomialTree,
        tree2: TrinomialTree,
        dynamics: TwoFactorDynamics,
        curve: Optional[DiscountCurve] = None,
        *,
        fitting: str = "numerical",
        solver: Optional[Solver1D] = None,
        accuracy: float = FIT_ACCURACY,
        bracket: Tuple[float, float] = FIT_BRACKET,
        initial_guess: float = 0.0,
    ) -> None:
        TreeLattice2D.__init__(self, tree1, tree2, dynamics.correlation)
        self.dynamics = dynamics
        self._init_fitting(curve, fitting, solver, accuracy, bracket, initial_guess, dynamics.additive)

    def _slice_rates(self, i: int, shift: float) -> np.ndarray:
        x, y = self.factor_values(i)
        return self.dynamics.short_rates(self.grid[i], x + shift, y)

    def _check_monotonic(self, i: int, rates: np.ndarray) -> None:
        # monotonic in x along each y column of the product grid
        s1 = self.tree1.size(i)
        if s1 < 2:
            return
        cols = rates.reshape(self.tree2.size(i), s1)
        d = np.diff(cols, axis=1)
        if not (np.all(d >= 0.0) or np.all(d <= 0.0)):
            raise ModelDomainError(
                f"short rate is not monotonic in the first factor at slice {i} (t={self.grid[i]})"
            )

    def to_frame(self) -> pd.DataFrame:
        """Node-level view: step, t_yrs, node, x, y, r_short, state_price."""
        self._ensure_fitted()
        frames = []
        for i in range(len(self.grid)):
            x, y = self.factor_values(i)
            frames.append(
                pd.DataFrame(
                    {
                        "step": i,
                        "t_yrs": self.grid[i],
                        "node": np.arange(self.size(i)),
                        "x": x,
                        "y": y,
                        "r_short": self.short_rates(i),
                        "state_price": self.state_prices(i),
                    }
                )
            )
        return pd.concat(frames, ignore_index=True)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def fit_short_rate_tree(
    dynamics: Union[OneFactorDynamics, TwoFactorDynamics],
    grid: TimeGrid,
    curve: Optional[DiscountCurve] = None,
    *,
    fitting: str = "numerical",
    solver: Optional[Solver1D] = None,
    accuracy: float = FIT_ACCURACY,
    bracket: Tuple[float, float] = FIT_BRACKET,
    initial_guess: float = 0.0,
    is_positive: Optional[bool] = None,
    lazy: bool = False,
) -> Union[ShortRateTree, TwoFactorShortRateTree]:
    """
    Build the trinomial tree(s) for ``dynamics`` on ``grid`` and fit them
    to ``curve``. With ``lazy=True`` the fit is deferred to first use.
    """
    options = dict(
        fitting=fitting,
        solver=solver,
        accuracy=accuracy,
        bracket=bracket,
        initial_guess=initial_guess,
    )
    if isinstance(dynamics, TwoFactorDynamics):
        tree1 = TrinomialTree(dynamics.process_x, grid)
        tree2 = TrinomialTree(dynamics.process_y, grid)
        lattice = TwoFactorShortRateTree(tree1, tree2, dynamics, curve, **options)
    else:
        positive = dynamics.is_positive if is_positive is None else is_positive
        tree = TrinomialTree(dynamics.process, grid, is_positive=positive)
        lattice = ShortRateTree(tree, dynamics, curve, **options)

    if not lazy:
        lattice.fit()
    return lattice


__all__ = [
    "FITTING_METHODS",
    "FIT_ACCURACY",
    "FIT_MAX_EVALUATIONS",
    "FIT_BRACKET",
    "ShortRateTree",
    "TwoFactorShortRateTree",
    "fit_short_rate_tree",
]
