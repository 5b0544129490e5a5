# src/rates_core/curves/types.py

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, List, Protocol, Tuple, runtime_checkable

import math

import numpy as np
from scipy.interpolate import PchipInterpolator

from rates_core.errors import ConfigurationError


@runtime_checkable
class DiscountCurve(Protocol):
    """Anything that can discount: DF(t) for t >= 0 in years."""

    def discount(self, t_years: float) -> float: ...


def forward_rate(curve: DiscountCurve, t1: float, t2: float) -> float:
    """
    Continuously compounded forward rate between t1 and t2.

    Negative times are clamped to 0 and a degenerate window is nudged
    forward so an instantaneous forward can be read off the curve.
    """
    t1 = max(0.0, float(t1))
    t2 = max(0.0, float(t2))
    if t2 <= t1:
        t2 = t1 + 1e-6

    df1 = curve.discount(t1)
    df2 = curve.discount(t2)
    if df1 <= 0 or df2 <= 0:
        raise ValueError(f"Non-positive discount factors: df1={df1}, df2={df2}")
    return -math.log(df2 / df1) / (t2 - t1)


def instantaneous_forward(curve: DiscountCurve, t: float, h: float = 1e-4) -> float:
    """f(0, t) by a central difference of -ln DF (one-sided at t = 0)."""
    t = float(t)
    if t <= h:
        return forward_rate(curve, t, t + h)
    return forward_rate(curve, t - h, t + h)


# ---------------------------------------------------------------------------
# Flat forward curve
# ---------------------------------------------------------------------------

_COMPOUNDING = ("continuous", "compounded", "simple")


@dataclass
class FlatForward:
    """
    Flat curve at a single quoted rate.

    compounding:
      * "continuous": DF(t) = exp(-r t)
      * "compounded": DF(t) = (1 + r / frequency) ** (-frequency t)
      * "simple":     DF(t) = 1 / (1 + r t)

    ``set_rate`` mutates the quote and bumps ``generation`` so lattices
    fitted on the old rate know to rebuild.
    """

    rate: float
    compounding: str = "continuous"
    frequency: int = 1
    generation: int = field(default=0, init=False)

    def __post_init__(self) -> None:
        self.compounding = str(self.compounding).strip().lower()
        if self.compounding == "annual":
            self.compounding, self.frequency = "compounded", 1
        if self.compounding not in _COMPOUNDING:
            raise ConfigurationError(
                f"unknown compounding {self.compounding!r}; expected one of {_COMPOUNDING}"
            )
        if self.frequency <= 0:
            raise ConfigurationError(f"frequency must be positive, got {self.frequency}")

    def set_rate(self, rate: float) -> None:
        self.rate = float(rate)
        self.generation += 1

    def discount(self, t_years: float) -> float:
        t = float(t_years)
        r = float(self.rate)
        if self.compounding == "continuous":
            return math.exp(-r * t)
        if self.compounding == "compounded":
            f = float(self.frequency)
            return (1.0 + r / f) ** (-f * t)
        return 1.0 / (1.0 + r * t)

    def zero_rate(self, t_years: float) -> float:
        """Continuously compounded zero rate implied by discount()."""
        t = float(t_years)
        if t <= 0.0:
            t = 1e-6
        return -math.log(self.discount(t)) / t


# ---------------------------------------------------------------------------
# Interpolated zero curve
# ---------------------------------------------------------------------------

@dataclass
class CurvePoint:
    """
    A single point on a zero curve.

    tenor_years: time to maturity in years (e.g. 1.0, 5.0, 10.0)
    zero_rate:   continuously compounded zero rate (decimal, e.g. 0.0225 = 2.25%)
    """
    tenor_years: float
    zero_rate: float


@dataclass
class ZeroCurve:
    """
    Zero curve built from (tenor_years, zero_rate) points.

    Provides:
    - zero_rate(t): linear (default) or PCHIP interpolation in time,
      flat extrapolation on both sides
    - discount(t): exp(-r(t) * t)
    - forward_rate(t1, t2): implied forward between t1 and t2

    ``set_points`` replaces the points in place and bumps ``generation``.
    """

    points: List[CurvePoint]
    interpolation: str = "linear"
    generation: int = field(default=0, init=False)

    def __post_init__(self) -> None:
        if not self.points:
            raise ConfigurationError("ZeroCurve requires at least one point")
        if self.interpolation not in ("linear", "pchip"):
            raise ConfigurationError(
                f"unknown interpolation {self.interpolation!r}; expected 'linear' or 'pchip'"
            )
        self._rebuild()

    def _rebuild(self) -> None:
        self.points.sort(key=lambda p: p.tenor_years)
        tenors = [p.tenor_years for p in self.points]
        if len(set(tenors)) != len(tenors):
            raise ConfigurationError(f"duplicate tenors in ZeroCurve: {tenors}")
        self._tenors = np.asarray(tenors, dtype=float)
        self._rates = np.asarray([p.zero_rate for p in self.points], dtype=float)
        self._pchip = None
        if self.interpolation == "pchip" and self._tenors.size >= 2:
            self._pchip = PchipInterpolator(self._tenors, self._rates, extrapolate=False)

    @classmethod
    def from_pairs(cls, pairs: Iterable[Tuple[float, float]], interpolation: str = "linear") -> "ZeroCurve":
        pts = [CurvePoint(float(t), float(r)) for t, r in pairs]
        return cls(points=pts, interpolation=interpolation)

    def set_points(self, pairs: Iterable[Tuple[float, float]]) -> None:
        pts = [CurvePoint(float(t), float(r)) for t, r in pairs]
        if not pts:
            raise ConfigurationError("ZeroCurve requires at least one point")
        self.points = pts
        self._rebuild()
        self.generation += 1

    def bumped(self, bump_bp: float) -> "ZeroCurve":
        """New curve with every zero rate shifted by bump_bp basis points."""
        shift = bump_bp / 10_000.0
        return ZeroCurve.from_pairs(
            ((p.tenor_years, p.zero_rate + shift) for p in self.points),
            interpolation=self.interpolation,
        )

    def zero_rate(self, t_years: float) -> float:
        t = float(t_years)
        if t <= self._tenors[0]:
            return float(self._rates[0])
        if t >= self._tenors[-1]:
            return float(self._rates[-1])
        if self._pchip is not None:
            return float(self._pchip(t))
        return float(np.interp(t, self._tenors, self._rates))

    def discount(self, t_years: float) -> float:
        """DF(t) = exp(-r(t) * t), using continuously compounded zero rate."""
        r = self.zero_rate(t_years)
        return math.exp(-r * float(t_years))

    def forward_rate(self, t1: float, t2: float) -> float:
        return forward_rate(self, t1, t2)


__all__ = [
    "DiscountCurve",
    "FlatForward",
    "CurvePoint",
    "ZeroCurve",
    "forward_rate",
    "instantaneous_forward",
]
