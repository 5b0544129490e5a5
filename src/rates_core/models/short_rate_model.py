# src/rates_core/models/short_rate_model.py

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional, Tuple, Union

from rates_core.curves.types import DiscountCurve
from rates_core.errors import ConfigurationError
from rates_core.lattice.time_grid import TimeGrid
from rates_core.solvers import make_solver
from .dynamics import (
    OneFactorDynamics,
    TwoFactorDynamics,
    black_karasinski_dynamics,
    cox_ingersoll_ross_dynamics,
    g2_dynamics,
    ho_lee_dynamics,
    hull_white_dynamics,
    vasicek_dynamics,
)
from .short_rate_tree import (
    FIT_ACCURACY,
    FIT_BRACKET,
    FIT_MAX_EVALUATIONS,
    ShortRateTree,
    TwoFactorShortRateTree,
    fit_short_rate_tree,
)

logger = logging.getLogger(__name__)

Lattice = Union[ShortRateTree, TwoFactorShortRateTree]


@dataclass
class ShortRateModel:
    """
    A short-rate model is its dynamics plus the curve it is fitted to.

    ``tree(grid)`` hands out a fitted lattice and caches it per grid, keeping
    at most ``max_cached_trees`` lattices (oldest evicted first). When the
    curve's ``generation`` changes (e.g. after FlatForward.set_rate) every
    lattice fitted to the old curve is dropped, and the requested one is
    rebuilt from slice 0.
    """

    dynamics: Union[OneFactorDynamics, TwoFactorDynamics]
    curve: Optional[DiscountCurve] = None
    fitting: str = "numerical"
    solver_name: str = "brent"
    max_evaluations: int = FIT_MAX_EVALUATIONS
    accuracy: float = FIT_ACCURACY
    bracket: Tuple[float, float] = FIT_BRACKET
    initial_guess: float = 0.0
    is_positive: Optional[bool] = None
    max_cached_trees: int = 8
    _cache: Dict[Tuple[float, ...], Tuple[Optional[int], Lattice]] = field(
        default_factory=dict, init=False, repr=False
    )

    @property
    def name(self) -> str:
        return self.dynamics.name

    @property
    def n_factors(self) -> int:
        return 2 if isinstance(self.dynamics, TwoFactorDynamics) else 1

    def _curve_generation(self) -> Optional[int]:
        return getattr(self.curve, "generation", None)

    def tree(self, grid: TimeGrid) -> Lattice:
        """Fitted lattice on ``grid`` (cached while the curve is unchanged)."""
        key = tuple(float(t) for t in grid.times)
        generation = self._curve_generation()

        cached = self._cache.get(key)
        if cached is not None and cached[0] == generation:
            return cached[1]
        if cached is not None:
            logger.debug(
                "%s: curve generation %s -> %s, rebuilding lattice", self.name, cached[0], generation
            )
        self._drop_stale(generation)

        lattice = fit_short_rate_tree(
            self.dynamics,
            grid,
            self.curve,
            fitting=self.fitting,
            solver=make_solver(self.solver_name, self.max_evaluations),
            accuracy=self.accuracy,
            bracket=self.bracket,
            initial_guess=self.initial_guess,
            is_positive=self.is_positive,
            lazy=True,
        )
        self._cache[key] = (generation, lattice)
        while len(self._cache) > max(1, self.max_cached_trees):
            del self._cache[next(iter(self._cache))]
        return lattice

    def _drop_stale(self, generation: Optional[int]) -> None:
        for key in [k for k, (gen, _) in self._cache.items() if gen != generation]:
            del self._cache[key]

    @property
    def cached_trees(self) -> int:
        return len(self._cache)

    def clear_cache(self) -> None:
        self._cache.clear()


# ---------------------------------------------------------------------------
# Model families
# ---------------------------------------------------------------------------


def hull_white(curve: DiscountCurve, a: float = 0.1, sigma: float = 0.01, fitting: str = "analytic", **kwargs) -> ShortRateModel:
    return ShortRateModel(hull_white_dynamics(a, sigma), curve, fitting=fitting, **kwargs)


def ho_lee(curve: DiscountCurve, sigma: float = 0.01, fitting: str = "analytic", **kwargs) -> ShortRateModel:
    return ShortRateModel(ho_lee_dynamics(sigma), curve, fitting=fitting, **kwargs)


def black_karasinski(curve: DiscountCurve, a: float = 0.1, sigma: float = 0.1, **kwargs) -> ShortRateModel:
    return ShortRateModel(black_karasinski_dynamics(a, sigma), curve, fitting="numerical", **kwargs)


def vasicek(r0: float = 0.05, a: float = 0.1, b: float = 0.05, sigma: float = 0.01, **kwargs) -> ShortRateModel:
    """Vasicek is endogenous: its lattice is not fitted to a curve."""
    return ShortRateModel(vasicek_dynamics(r0, a, b, sigma), None, fitting="none", **kwargs)


def cox_ingersoll_ross(theta: float = 0.05, k: float = 0.1, sigma: float = 0.1, r0: float = 0.05, **kwargs) -> ShortRateModel:
    """CIR on its square-root tree, not fitted to a curve."""
    return ShortRateModel(cox_ingersoll_ross_dynamics(theta, k, sigma, r0), None, fitting="none", **kwargs)


def g2(
    curve: DiscountCurve,
    a: float = 0.1,
    sigma: float = 0.01,
    b: float = 0.1,
    eta: float = 0.01,
    rho: float = 0.0,
    **kwargs,
) -> ShortRateModel:
    return ShortRateModel(g2_dynamics(a, sigma, b, eta, rho), curve, fitting="numerical", **kwargs)


MODEL_FACTORIES: Dict[str, Callable[..., ShortRateModel]] = {
    "hull_white": hull_white,
    "ho_lee": ho_lee,
    "black_karasinski": black_karasinski,
    "vasicek": vasicek,
    "cir": cox_ingersoll_ross,
    "g2": g2,
}

# families that take the curve as first argument
CURVE_FITTED = ("hull_white", "ho_lee", "black_karasinski", "g2")


def make_model(kind: str, curve: Optional[DiscountCurve] = None, **params) -> ShortRateModel:
    """Build a model family by name ('hull_white', 'g2', ...)."""
    key = str(kind).strip().lower().replace("-", "_")
    if key not in MODEL_FACTORIES:
        raise ConfigurationError(f"unknown model kind {kind!r}; expected one of {sorted(MODEL_FACTORIES)}")
    factory = MODEL_FACTORIES[key]
    if key in CURVE_FITTED:
        if curve is None:
            raise ConfigurationError(f"model {key!r} needs a discount curve")
        return factory(curve, **params)
    return factory(**params)


__all__ = [
    "ShortRateModel",
    "hull_white",
    "ho_lee",
    "black_karasinski",
    "vasicek",
    "cox_ingersoll_ross",
    "g2",
    "MODEL_FACTORIES",
    "make_model",
]
