# src/rates_core/processes.py

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Callable, Protocol, runtime_checkable

from rates_core.curves.types import DiscountCurve
from rates_core.errors import ConfigurationError


@runtime_checkable
class DiffusionProcess(Protocol):
    """
    What the trinomial tree needs from a 1-D diffusion: the starting
    level and the first two conditional moments over a step of length dt.
    """

    x0: float

    def expectation(self, t: float, x: float, dt: float) -> float: ...

    def variance(self, t: float, x: float, dt: float) -> float: ...


# ---------------------------------------------------------------------------
# Generic Euler-discretized process
# ---------------------------------------------------------------------------

@dataclass
class EulerProcess1D:
    """
    dx = mu(t, x) dt + sigma(t, x) dW with Euler moments:

        E[x(t+dt)]   = x + mu(t, x) dt
        Var[x(t+dt)] = sigma(t, x)^2 dt
    """
    x0: float
    drift_fn: Callable[[float, float], float]
    diffusion_fn: Callable[[float, float], float]

    def drift(self, t: float, x: float) -> float:
        return self.drift_fn(t, x)

    def diffusion(self, t: float, x: float) -> float:
        return self.diffusion_fn(t, x)

    def expectation(self, t: float, x: float, dt: float) -> float:
        return x + self.drift(t, x) * dt

    def variance(self, t: float, x: float, dt: float) -> float:
        sigma = self.diffusion(t, x)
        return sigma * sigma * dt


# ---------------------------------------------------------------------------
# Ornstein-Uhlenbeck
# ---------------------------------------------------------------------------

@dataclass
class OrnsteinUhlenbeckProcess:
    """
    dx = a (level - x) dt + sigma dW, with exact conditional moments.

    speed = 0 degenerates to arithmetic Brownian motion (Ho-Lee).
    """
    speed: float
    volatility: float
    x0: float = 0.0
    level: float = 0.0

    def __post_init__(self) -> None:
        if self.speed < 0.0:
            raise ConfigurationError(f"negative mean-reversion speed given: {self.speed}")
        if self.volatility < 0.0:
            raise ConfigurationError(f"negative volatility given: {self.volatility}")

    def drift(self, t: float, x: float) -> float:
        return self.speed * (self.level - x)

    def diffusion(self, t: float, x: float) -> float:
        return self.volatility

    def expectation(self, t: float, x: float, dt: float) -> float:
        return self.level + (x - self.level) * math.exp(-self.speed * dt)

    def variance(self, t: float, x: float, dt: float) -> float:
        a = self.speed
        v = self.volatility
        if a < math.sqrt(2.220446049250313e-16):
            # algebraic limit for small speed
            return v * v * dt * (1.0 - a * dt)
        return 0.5 * v * v / a * (1.0 - math.exp(-2.0 * a * dt))


# ---------------------------------------------------------------------------
# CIR: square root of the short rate
# ---------------------------------------------------------------------------

@dataclass
class SquareRootHelperProcess:
    """
    y = sqrt(r) for the Cox-Ingersoll-Ross model
    dr = k (theta - r) dt + sigma sqrt(r) dW. By Ito,

        dy = [(k theta / 2 - sigma^2 / 8) / y - k y / 2] dt + sigma / 2 dW

    which has constant diffusion and can be put on a trinomial tree.
    """
    theta: float
    k: float
    sigma: float
    x0: float

    def drift(self, t: float, y: float) -> float:
        return (0.5 * self.theta * self.k - 0.125 * self.sigma * self.sigma) / y - 0.5 * self.k * y

    def diffusion(self, t: float, y: float) -> float:
        return 0.5 * self.sigma

    def expectation(self, t: float, y: float, dt: float) -> float:
        return y + self.drift(t, y) * dt

    def variance(self, t: float, y: float, dt: float) -> float:
        s = self.diffusion(t, y)
        return s * s * dt


# ---------------------------------------------------------------------------
# Black-Scholes on log-spot
# ---------------------------------------------------------------------------

@dataclass
class BlackScholesProcess:
    """
    x = ln S with dS / S = (r(t) - q(t)) dt + sigma dW.

    The drift over [t, t + dt] is read off the risk-free and dividend
    curves, so the tree's expected forward matches the curves exactly.
    """
    spot: float
    risk_free: DiscountCurve
    dividend: DiscountCurve
    volatility: float

    def __post_init__(self) -> None:
        if self.spot <= 0.0:
            raise ConfigurationError(f"spot must be positive, got {self.spot}")
        if self.volatility < 0.0:
            raise ConfigurationError(f"negative volatility given: {self.volatility}")

    @property
    def x0(self) -> float:
        return math.log(self.spot)

    def expectation(self, t: float, x: float, dt: float) -> float:
        carry = math.log(self.risk_free.discount(t) / self.risk_free.discount(t + dt))
        carry -= math.log(self.dividend.discount(t) / self.dividend.discount(t + dt))
        return x + carry - 0.5 * self.volatility * self.volatility * dt

    def variance(self, t: float, x: float, dt: float) -> float:
        return self.volatility * self.volatility * dt


__all__ = [
    "DiffusionProcess",
    "EulerProcess1D",
    "OrnsteinUhlenbeckProcess",
    "SquareRootHelperProcess",
    "BlackScholesProcess",
]
