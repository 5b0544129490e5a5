# src/rates_core/pricing/conditions.py

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, List, Protocol, Sequence, runtime_checkable

import numpy as np

from rates_core.comparison import close_enough
from rates_core.errors import ConfigurationError
from rates_core.lattice.time_grid import merge_times

Payoff = Callable[[np.ndarray], np.ndarray]

# Lower runs first when several conditions fall on the same date
PRIORITY_DIVIDEND = 0
PRIORITY_EXERCISE = 1


@runtime_checkable
class StepCondition(Protocol):
    """
    Adjustment applied to an asset's values at a lattice slice, before the
    slice is discounted back. ``values`` is modified in place;
    ``underlying`` holds the node levels of the slice.
    """

    def apply_to(self, values: np.ndarray, t: float, underlying: np.ndarray) -> None: ...

    def mandatory_times(self) -> List[float]: ...


def _on_any(t: float, times: Sequence[float]) -> bool:
    return any(close_enough(t, s) for s in times)


@dataclass
class AmericanExercise:
    """Exercise allowed at every slice in [earliest, latest]."""

    payoff: Payoff
    latest: float
    earliest: float = 0.0
    priority: int = field(default=PRIORITY_EXERCISE, init=False)

    def __post_init__(self) -> None:
        if self.earliest < 0.0 or self.latest < self.earliest:
            raise ConfigurationError(
                f"invalid exercise window [{self.earliest}, {self.latest}]"
            )

    def _in_window(self, t: float) -> bool:
        if close_enough(t, self.earliest) or close_enough(t, self.latest):
            return True
        return self.earliest <= t <= self.latest

    def apply_to(self, values: np.ndarray, t: float, underlying: np.ndarray) -> None:
        if self._in_window(t):
            np.maximum(values, self.payoff(underlying), out=values)

    def mandatory_times(self) -> List[float]:
        return [self.latest] if self.earliest == 0.0 else [self.earliest, self.latest]


@dataclass
class BermudanExercise:
    """Exercise allowed on a discrete set of dates."""

    payoff: Payoff
    exercise_times: Sequence[float]
    priority: int = field(default=PRIORITY_EXERCISE, init=False)

    def __post_init__(self) -> None:
        if len(self.exercise_times) == 0:
            raise ConfigurationError("BermudanExercise needs at least one exercise time")
        self.exercise_times = sorted(float(t) for t in self.exercise_times)

    def apply_to(self, values: np.ndarray, t: float, underlying: np.ndarray) -> None:
        if _on_any(t, self.exercise_times):
            np.maximum(values, self.payoff(underlying), out=values)

    def mandatory_times(self) -> List[float]:
        return [t for t in self.exercise_times if t >= 0.0]


@dataclass
class CashDividend:
    """
    Discrete cash dividends on an equity lattice.

    At an ex-date t with amount D, the value just before the dividend at
    spot S is the value just after it at S - D:

        V(t-, S) = V(t+, S - D)

    read off the slice by linear interpolation (flat beyond the ends).
    """

    times: Sequence[float]
    amounts: Sequence[float]
    priority: int = field(default=PRIORITY_DIVIDEND, init=False)

    def __post_init__(self) -> None:
        if len(self.times) != len(self.amounts):
            raise ConfigurationError(
                f"{len(self.times)} dividend times but {len(self.amounts)} amounts"
            )
        self.times = [float(t) for t in self.times]
        self.amounts = [float(a) for a in self.amounts]

    def apply_to(self, values: np.ndarray, t: float, underlying: np.ndarray) -> None:
        for when, amount in zip(self.times, self.amounts):
            if close_enough(t, when):
                s = np.asarray(underlying, dtype=float)
                values[:] = np.interp(s - amount, s, values)

    def mandatory_times(self) -> List[float]:
        return [t for t in self.times if t >= 0.0]


@dataclass
class CompositeStepCondition:
    """
    Several conditions applied in priority order: dividends strictly before
    exercise at coincident times, otherwise in the order given.
    """

    conditions: List[StepCondition]

    def __post_init__(self) -> None:
        # sorted() is stable, so equal priorities keep their order
        self.conditions = sorted(
            self.conditions, key=lambda c: getattr(c, "priority", PRIORITY_EXERCISE)
        )

    def apply_to(self, values: np.ndarray, t: float, underlying: np.ndarray) -> None:
        for condition in self.conditions:
            condition.apply_to(values, t, underlying)

    def mandatory_times(self) -> List[float]:
        return merge_times(*(c.mandatory_times() for c in self.conditions))


__all__ = [
    "StepCondition",
    "AmericanExercise",
    "BermudanExercise",
    "CashDividend",
    "CompositeStepCondition",
    "PRIORITY_DIVIDEND",
    "PRIORITY_EXERCISE",
]
