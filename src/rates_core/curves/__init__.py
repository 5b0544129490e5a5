"""
Discount curves, year fractions and fixing history for rates_core.
"""

from .types import (
    CurvePoint,
    DiscountCurve,
    FlatForward,
    ZeroCurve,
    forward_rate,
    instantaneous_forward,
)
from .daycount import year_fraction, times_from_dates
from .history import FixingHistory, zero_curve_from_history

__all__ = [
    # curve types
    "CurvePoint",
    "DiscountCurve",
    "FlatForward",
    "ZeroCurve",
    "forward_rate",
    "instantaneous_forward",

    # dates -> times
    "year_fraction",
    "times_from_dates",

    # history
    "FixingHistory",
    "zero_curve_from_history",
]
