# src/rates_core/models/dynamics.py

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Callable, Optional

import numpy as np

from rates_core.curves.types import DiscountCurve, instantaneous_forward
from rates_core.errors import ConfigurationError
from rates_core.processes import (
    DiffusionProcess,
    OrnsteinUhlenbeckProcess,
    SquareRootHelperProcess,
)

# Mappings are called with scalars and with numpy arrays of node values,
# so they must be written with numpy ufuncs.
RateMap = Callable[[float, "np.ndarray | float"], "np.ndarray | float"]
RateMap2 = Callable[[float, "np.ndarray | float", "np.ndarray | float"], "np.ndarray | float"]


@dataclass(frozen=True)
class OneFactorDynamics:
    """
    Short rate as a function of one state variable x following ``process``.

    short_rate_fn : (t, x) -> r
    variable_fn   : (t, r) -> x, the inverse mapping
    additive      : r(t, x + c) == r(t, x) + c, which allows the
                    closed-form fit of the lattice shift
    is_positive   : the state variable must stay > 0 on the tree
                    (square-root processes)
    """
    process: DiffusionProcess
    short_rate_fn: RateMap
    variable_fn: RateMap
    additive: bool = False
    is_positive: bool = False
    name: str = "one_factor"

    def short_rate(self, t: float, x):
        return self.short_rate_fn(t, x)

    def variable(self, t: float, r):
        return self.variable_fn(t, r)

    def short_rates(self, t: float, xs) -> np.ndarray:
        return np.asarray(self.short_rate_fn(t, np.asarray(xs, dtype=float)), dtype=float)


@dataclass(frozen=True)
class TwoFactorDynamics:
    """
    Short rate driven by two correlated state variables:
    r = short_rate_fn(t, x, y), corr(dW_x, dW_y) = correlation.
    """
    process_x: DiffusionProcess
    process_y: DiffusionProcess
    correlation: float
    short_rate_fn: RateMap2
    additive: bool = False
    name: str = "two_factor"

    def __post_init__(self) -> None:
        if abs(self.correlation) > 1.0:
            raise ConfigurationError(f"correlation must be in [-1, 1], got {self.correlation}")

    def short_rate(self, t: float, x, y):
        return self.short_rate_fn(t, x, y)

    def short_rates(self, t: float, xs, ys) -> np.ndarray:
        return np.asarray(
            self.short_rate_fn(t, np.asarray(xs, dtype=float), np.asarray(ys, dtype=float)),
            dtype=float,
        )


# ---------------------------------------------------------------------------
# Deterministic drift terms
# ---------------------------------------------------------------------------


def _variance_term(a: float, sigma: float, t: float) -> float:
    """sigma^2 / (2 a^2) * (1 - e^{-a t})^2, with its a -> 0 limit."""
    if a < math.sqrt(2.220446049250313e-16):
        return 0.5 * sigma * sigma * t * t
    tmp = 1.0 - math.exp(-a * t)
    return 0.5 * sigma * sigma * tmp * tmp / (a * a)


def hull_white_phi(curve: DiscountCurve, a: float, sigma: float) -> Callable[[float], float]:
    """
    phi(t) = f(0, t) + sigma^2 / (2 a^2) (1 - e^{-a t})^2 so that
    r = x + phi(t) reprices ``curve`` when x is a zero-level OU process.
    """
    def phi(t: float) -> float:
        return instantaneous_forward(curve, t) + _variance_term(a, sigma, t)

    return phi


def g2_phi(curve: DiscountCurve, a: float, sigma: float, b: float, eta: float, rho: float) -> Callable[[float], float]:
    def phi(t: float) -> float:
        if a > 0.0 and b > 0.0:
            cross = rho * sigma * eta / (a * b) * (1.0 - math.exp(-a * t)) * (1.0 - math.exp(-b * t))
        else:
            cross = rho * sigma * eta * t * t
        return (
            instantaneous_forward(curve, t)
            + _variance_term(a, sigma, t)
            + _variance_term(b, eta, t)
            + cross
        )

    return phi


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------


def hull_white_dynamics(a: float, sigma: float, curve: Optional[DiscountCurve] = None) -> OneFactorDynamics:
    """
    Hull-White: r = x + phi(t), dx = -a x dt + sigma dW, x(0) = 0.

    Without a curve phi is zero and the fitted lattice supplies the shift
    slice by slice; with a curve phi is the closed-form drift.
    """
    process = OrnsteinUhlenbeckProcess(speed=a, volatility=sigma)
    if curve is None:
        return OneFactorDynamics(
            process,
            short_rate_fn=lambda t, x: x,
            variable_fn=lambda t, r: r,
            additive=True,
            name="hull_white",
        )

    phi = hull_white_phi(curve, a, sigma)
    return OneFactorDynamics(
        process,
        short_rate_fn=lambda t, x: x + phi(t),
        variable_fn=lambda t, r: r - phi(t),
        additive=True,
        name="hull_white",
    )


def ho_lee_dynamics(sigma: float, curve: Optional[DiscountCurve] = None) -> OneFactorDynamics:
    """Ho-Lee: Hull-White without mean reversion."""
    dyn = hull_white_dynamics(0.0, sigma, curve)
    return OneFactorDynamics(
        dyn.process, dyn.short_rate_fn, dyn.variable_fn, additive=True, name="ho_lee"
    )


def vasicek_dynamics(r0: float, a: float, b: float, sigma: float) -> OneFactorDynamics:
    """Vasicek: r = x + b with x an OU process started at r0 - b."""
    process = OrnsteinUhlenbeckProcess(speed=a, volatility=sigma, x0=r0 - b)
    return OneFactorDynamics(
        process,
        short_rate_fn=lambda t, x: x + b,
        variable_fn=lambda t, r: r - b,
        additive=True,
        name="vasicek",
    )


def black_karasinski_dynamics(a: float, sigma: float) -> OneFactorDynamics:
    """Black-Karasinski: r = exp(x), x a zero-level OU process."""
    process = OrnsteinUhlenbeckProcess(speed=a, volatility=sigma)
    return OneFactorDynamics(
        process,
        short_rate_fn=lambda t, x: np.exp(x),
        variable_fn=lambda t, r: np.log(r),
        name="black_karasinski",
    )


def cox_ingersoll_ross_dynamics(theta: float, k: float, sigma: float, r0: float) -> OneFactorDynamics:
    """CIR: the tree runs on y = sqrt(r), r = y^2."""
    if r0 <= 0.0:
        raise ConfigurationError(f"r0 must be positive for CIR, got {r0}")
    if theta <= 0.0 or k <= 0.0 or sigma <= 0.0:
        raise ConfigurationError(
            f"CIR parameters must be positive (theta={theta}, k={k}, sigma={sigma})"
        )
    process = SquareRootHelperProcess(theta=theta, k=k, sigma=sigma, x0=math.sqrt(r0))
    return OneFactorDynamics(
        process,
        short_rate_fn=lambda t, y: y * y,
        variable_fn=lambda t, r: np.sqrt(r),
        is_positive=True,
        name="cox_ingersoll_ross",
    )


def g2_dynamics(
    a: float,
    sigma: float,
    b: float,
    eta: float,
    rho: float,
    curve: Optional[DiscountCurve] = None,
) -> TwoFactorDynamics:
    """
    G2++: r = x + y + phi(t) with two zero-level OU factors of correlation
    rho. phi is zero without a curve (the fitted lattice supplies it).
    """
    px = OrnsteinUhlenbeckProcess(speed=a, volatility=sigma)
    py = OrnsteinUhlenbeckProcess(speed=b, volatility=eta)
    if curve is None:
        return TwoFactorDynamics(px, py, rho, lambda t, x, y: x + y, additive=True, name="g2")

    phi = g2_phi(curve, a, sigma, b, eta, rho)
    return TwoFactorDynamics(px, py, rho, lambda t, x, y: x + y + phi(t), additive=True, name="g2")


__all__ = [
    "OneFactorDynamics",
    "TwoFactorDynamics",
    "hull_white_phi",
    "g2_phi",
    "hull_white_dynamics",
    "ho_lee_dynamics",
    "vasicek_dynamics",
    "black_karasinski_dynamics",
    "cox_ingersoll_ross_dynamics",
    "g2_dynamics",
]
