# src/rates_core/curves/daycount.py

from __future__ import annotations

from datetime import date
from typing import Iterable, List

from rates_core.errors import ConfigurationError

_DENOMINATORS = {
    "ACT/365.25": 365.25,
    "ACT/365F": 365.0,
    "ACT/365": 365.0,
    "ACT/360": 360.0,
}


def year_fraction(start: date, end: date, basis: str = "ACT/365.25") -> float:
    """
    Simple actual-days year fraction between two dates.

    Calendar adjustments are out of scope: the lattice only needs times
    in years, and callers with a proper day counter can pass times in
    directly.
    """
    key = basis.upper().replace(" ", "")
    try:
        denom = _DENOMINATORS[key]
    except KeyError:
        raise ConfigurationError(
            f"unsupported basis {basis!r}; expected one of {sorted(_DENOMINATORS)}"
        ) from None
    return float((end - start).days) / denom


def times_from_dates(
    asof: date,
    dates: Iterable[date],
    basis: str = "ACT/365.25",
    *,
    future_only: bool = True,
) -> List[float]:
    """
    Convert event dates to year fractions from ``asof``.

    With future_only (default) dates on or before asof are dropped,
    matching how exercise/payment dates already in the past are ignored.
    """
    out: List[float] = []
    for d in dates:
        t = year_fraction(asof, d, basis)
        if future_only and t <= 0.0:
            continue
        out.append(t)
    return out


__all__ = ["year_fraction", "times_from_dates"]
