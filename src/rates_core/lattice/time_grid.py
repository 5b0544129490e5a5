# src/rates_core/lattice/time_grid.py

from __future__ import annotations

import bisect
import logging
from typing import Iterable, List, Sequence

import numpy as np

from rates_core.comparison import close_enough
from rates_core.errors import ConfigurationError

logger = logging.getLogger(__name__)


def merge_times(*sequences: Iterable[float]) -> List[float]:
    """
    Union of several event-time lists, sorted, with near-duplicates
    (close_enough) collapsed onto the first occurrence.

    Use this to combine payment / exercise / dividend times coming from
    different sources before building a TimeGrid.
    """
    merged = sorted(float(t) for seq in sequences for t in seq)
    out: List[float] = []
    for t in merged:
        if out and close_enough(out[-1], t):
            continue
        out.append(t)
    return out


def _sanitize_mandatory(times: Sequence[float]) -> List[float]:
    if len(times) == 0:
        raise ConfigurationError("empty time sequence")

    ordered = sorted(float(t) for t in times)
    if ordered[0] < 0.0:
        raise ConfigurationError(f"negative times not allowed (got {ordered[0]})")

    out: List[float] = []
    for t in ordered:
        if out and t == out[-1]:
            # exact repeats are the same event seen twice
            continue
        if out and close_enough(out[-1], t):
            raise ConfigurationError(
                f"mandatory times {out[-1]!r} and {t!r} are distinct but closer "
                "than the numerical tolerance; merge them with merge_times()"
            )
        out.append(t)
    return out


class TimeGrid:
    """
    Ordered, immutable set of simulation times.

    The grid always starts at 0.0 and contains every mandatory time as an
    exact node. Between mandatory times the grid is refined uniformly so
    that no step is (much) longer than ``last_mandatory / steps``.

    Parameters
    ----------
    times : sequence of float
        Mandatory times (payment / exercise / event dates as year
        fractions). Need not be sorted.
    steps : int
        Target number of steps over [0, last mandatory time]. With
        ``steps == 0`` the smallest gap between mandatory times sets the
        step size.
    """

    def __init__(self, times: Sequence[float], steps: int = 0) -> None:
        if steps < 0:
            raise ConfigurationError(f"steps must be >= 0, got {steps}")

        mandatory = _sanitize_mandatory(times)
        last = mandatory[-1]

        points = list(mandatory)
        if points[0] > 0.0:
            points.insert(0, 0.0)

        if last == 0.0:
            grid = [0.0]
        else:
            if steps == 0:
                dt_max = min(b - a for a, b in zip(points[:-1], points[1:]))
            else:
                dt_max = last / steps

            grid = [0.0]
            period_begin = 0.0
            for period_end in mandatory:
                if period_end == 0.0:
                    continue
                n_steps = int((period_end - period_begin) / dt_max + 0.5)
                n_steps = n_steps if n_steps != 0 else 1
                dt = (period_end - period_begin) / n_steps
                for n in range(1, n_steps):
                    grid.append(period_begin + n * dt)
                # the interval end is pinned to the mandatory value itself
                grid.append(period_end)
                period_begin = period_end

        self._mandatory = tuple(mandatory)
        self._times = np.asarray(grid, dtype=float)
        self._times.setflags(write=False)
        self._dt = np.diff(self._times)
        self._dt.setflags(write=False)

        logger.debug(
            "TimeGrid: %d mandatory times, %d requested steps -> %d nodes up to t=%.6f",
            len(mandatory),
            steps,
            len(grid),
            last,
        )

    # ---------- constructors ----------

    @classmethod
    def regular(cls, end: float, steps: int) -> "TimeGrid":
        """Equally spaced grid with ``steps`` steps on [0, end]."""
        if end <= 0.0:
            raise ConfigurationError(f"end must be positive, got {end}")
        if steps <= 0:
            raise ConfigurationError(f"steps must be positive, got {steps}")
        return cls([end], steps)

    @classmethod
    def from_times(cls, times: Sequence[float]) -> "TimeGrid":
        """Grid made of 0.0 plus the mandatory times, no refinement."""
        mandatory = _sanitize_mandatory(times)
        grid = cls.__new__(cls)
        points = list(mandatory)
        if points[0] > 0.0:
            points.insert(0, 0.0)
        grid._mandatory = tuple(mandatory)
        grid._times = np.asarray(points, dtype=float)
        grid._times.setflags(write=False)
        grid._dt = np.diff(grid._times)
        grid._dt.setflags(write=False)
        return grid

    # ---------- accessors ----------

    def __len__(self) -> int:
        return int(self._times.size)

    def __getitem__(self, i: int) -> float:
        return float(self._times[i])

    def __iter__(self):
        return iter(float(t) for t in self._times)

    def __repr__(self) -> str:
        return f"TimeGrid(size={len(self)}, end={self.back:.6f})"

    @property
    def times(self) -> np.ndarray:
        """Read-only view of the grid times."""
        return self._times

    @property
    def mandatory_times(self) -> tuple:
        return self._mandatory

    @property
    def front(self) -> float:
        return float(self._times[0])

    @property
    def back(self) -> float:
        return float(self._times[-1])

    def size(self) -> int:
        return len(self)

    def dt(self, i: int) -> float:
        """Length of step i, i.e. times[i+1] - times[i]."""
        return float(self._dt[i])

    def closest_index(self, t: float) -> int:
        times = self._times
        result = bisect.bisect_left(times, t)
        if result == 0:
            return 0
        if result == times.size:
            return int(times.size - 1)
        dt1 = times[result] - t
        dt2 = t - times[result - 1]
        if dt1 < dt2:
            return int(result)
        return int(result - 1)

    def closest_time(self, t: float) -> float:
        return float(self._times[self.closest_index(t)])

    def index(self, t: float) -> int:
        """
        Index of the node equal (within tolerance) to t.

        Raises ConfigurationError if t is not a node of this grid; this
        usually means an event time was left out of the mandatory times.
        """
        i = self.closest_index(t)
        if close_enough(t, float(self._times[i])):
            return i
        if t < self.front:
            raise ConfigurationError(
                f"using inadequate time grid: all nodes are later than the required "
                f"time t = {t} (earliest node is t1 = {self.front})"
            )
        if t > self.back:
            raise ConfigurationError(
                f"using inadequate time grid: all nodes are earlier than the required "
                f"time t = {t} (latest node is t1 = {self.back})"
            )
        if t > self._times[i]:
            j, k = i, i + 1
        else:
            j, k = i - 1, i
        raise ConfigurationError(
            f"using inadequate time grid: the nodes closest to the required time "
            f"t = {t} are t1 = {self._times[j]} and t2 = {self._times[k]}"
        )


__all__ = ["TimeGrid", "merge_times"]
