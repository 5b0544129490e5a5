# src/rates_core/pricing/discretized.py

from __future__ import annotations

import logging
from typing import Callable, List, Optional, Sequence

import numpy as np

from rates_core.comparison import close, close_enough
from rates_core.errors import ConfigurationError
from rates_core.lattice.tree_lattice import TreeLattice
from .conditions import StepCondition

logger = logging.getLogger(__name__)

EXERCISE_TYPES = ("european", "bermudan", "american")


class DiscretizedAsset:
    """
    Value vector living on a lattice slice.

    The lattice moves the asset between slices (``rollback``); the asset
    decides what happens at each slice it lands on through two hooks:

      pre_adjust_values_impl   before anything that depends on this
                               asset's value (e.g. issuer calls)
      post_adjust_values_impl  everything else (coupons, exercise)

    Each hook runs at most once per time, even if several owners (an
    option and its underlying) trigger it.
    """

    def __init__(self) -> None:
        self.time = 0.0
        self.values = np.empty(0)
        self.method: Optional[TreeLattice] = None
        self._latest_pre_adjustment = float("-inf")
        self._latest_post_adjustment = float("-inf")

    # ---------- lattice plumbing ----------

    def initialize(self, method: TreeLattice, t: float) -> None:
        self.method = method
        self._latest_pre_adjustment = float("-inf")
        self._latest_post_adjustment = float("-inf")
        method.initialize(self, t)

    def _lattice(self) -> TreeLattice:
        if self.method is None:
            raise ConfigurationError(f"{type(self).__name__} has not been initialized on a lattice")
        return self.method

    def rollback(self, to: float) -> None:
        self._lattice().rollback(self, to)

    def partial_rollback(self, to: float) -> None:
        self._lattice().partial_rollback(self, to)

    def present_value(self) -> float:
        return self._lattice().present_value(self)

    # ---------- adjustments ----------

    def reset(self, size: int) -> None:
        raise NotImplementedError

    def mandatory_times(self) -> List[float]:
        raise NotImplementedError

    def pre_adjust_values(self) -> None:
        if not close(self.time, self._latest_pre_adjustment):
            self.pre_adjust_values_impl()
            self._latest_pre_adjustment = self.time

    def post_adjust_values(self) -> None:
        if not close(self.time, self._latest_post_adjustment):
            self.post_adjust_values_impl()
            self._latest_post_adjustment = self.time

    def adjust_values(self) -> None:
        self.pre_adjust_values()
        self.post_adjust_values()

    def pre_adjust_values_impl(self) -> None:
        pass

    def post_adjust_values_impl(self) -> None:
        pass

    # ---------- helpers ----------

    def is_on_time(self, t: float) -> bool:
        """True if the asset currently sits on the grid node of time t."""
        grid = self._lattice().grid
        return close_enough(grid[grid.index(t)], self.time)

    def underlying_values(self) -> np.ndarray:
        lattice = self._lattice()
        return lattice.underlying_values(lattice.grid.index(self.time))


# ---------------------------------------------------------------------------
# Assets
# ---------------------------------------------------------------------------


class DiscretizedDiscountBond(DiscretizedAsset):
    """Pays 1 at the time it is initialized at."""

    def reset(self, size: int) -> None:
        self.values = np.ones(size)

    def mandatory_times(self) -> List[float]:
        return []


class DiscretizedPayoff(DiscretizedAsset):
    """
    Payoff of the node underlying at maturity, plus an optional step
    condition (exercise, dividends) applied at every slice.
    """

    def __init__(self, payoff: Callable, maturity: float, condition: Optional[StepCondition] = None) -> None:
        super().__init__()
        self.payoff = payoff
        self.maturity = float(maturity)
        self.condition = condition

    def reset(self, size: int) -> None:
        self.values = np.zeros(size)
        self.adjust_values()

    def mandatory_times(self) -> List[float]:
        times = [self.maturity]
        if self.condition is not None:
            times.extend(self.condition.mandatory_times())
        return times

    def post_adjust_values_impl(self) -> None:
        underlying = self.underlying_values()
        if self.is_on_time(self.maturity):
            self.values = np.array(self.payoff(underlying), dtype=float)
        if self.condition is not None:
            self.condition.apply_to(self.values, self.time, underlying)


class DiscretizedOption(DiscretizedAsset):
    """
    Option to receive ``exercise_value(underlying asset values)``.

    exercise_type:
      * "european" / "bermudan": on each time in ``exercise_times``
      * "american": at every slice in [exercise_times[0], exercise_times[1]]

    The default exercise value is the underlying itself, so the option is
    max(underlying, continuation).
    """

    def __init__(
        self,
        underlying: DiscretizedAsset,
        exercise_type: str,
        exercise_times: Sequence[float],
        exercise_value: Optional[Callable] = None,
    ) -> None:
        super().__init__()
        kind = str(exercise_type).strip().lower()
        if kind not in EXERCISE_TYPES:
            raise ConfigurationError(f"unknown exercise type {exercise_type!r}; expected one of {EXERCISE_TYPES}")
        times = [float(t) for t in exercise_times]
        if not times:
            raise ConfigurationError("at least one exercise time is required")
        if kind == "american" and len(times) != 2:
            raise ConfigurationError("american exercise needs [earliest, latest]")
        self.underlying = underlying
        self.exercise_type = kind
        self.exercise_times = times
        self.exercise_value = exercise_value

    def reset(self, size: int) -> None:
        if self.method is not self.underlying.method:
            raise ConfigurationError("option and underlying were initialized on different lattices")
        self.values = np.zeros(size)
        self.adjust_values()

    def mandatory_times(self) -> List[float]:
        times = list(self.underlying.mandatory_times())
        times.extend(t for t in self.exercise_times if t >= 0.0)
        return times

    def post_adjust_values_impl(self) -> None:
        self.underlying.partial_rollback(self.time)
        self.underlying.pre_adjust_values()

        if self.exercise_type == "american":
            if self._in_american_window():
                self._apply_exercise()
        else:
            for t in self.exercise_times:
                if t >= 0.0 and self.is_on_time(t):
                    self._apply_exercise()

        self.underlying.post_adjust_values()

    def _in_american_window(self) -> bool:
        earliest, latest = self.exercise_times
        if close_enough(self.time, earliest) or close_enough(self.time, latest):
            return True
        return earliest <= self.time <= latest

    def _apply_exercise(self) -> None:
        payoff = self.underlying.values
        if self.exercise_value is not None:
            payoff = self.exercise_value(payoff)
        self.values = np.maximum(payoff, self.values)


class DiscretizedCouponBond(DiscretizedAsset):
    """
    Bond with known coupon times/amounts and redemption at maturity, with
    an optional issuer call schedule.

    At a call date the holder gets min(continuation, call price) on the
    ex-coupon value; the coupon paid on that date is added afterwards.
    Cashflow times that are not grid nodes are moved to the closest node
    (with a warning) each time the bond is initialized; the schedule the
    bond was built with is left untouched.
    """

    def __init__(
        self,
        coupon_times: Sequence[float],
        coupon_amounts: Sequence[float],
        redemption: float,
        maturity: float,
        call_times: Sequence[float] = (),
        call_prices: Sequence[float] = (),
    ) -> None:
        super().__init__()
        if len(coupon_times) != len(coupon_amounts):
            raise ConfigurationError(
                f"{len(coupon_times)} coupon times but {len(coupon_amounts)} amounts"
            )
        if len(call_times) != len(call_prices):
            raise ConfigurationError(
                f"{len(call_times)} call times but {len(call_prices)} call prices"
            )
        maturity = float(maturity)
        if any(float(t) > maturity and not close_enough(float(t), maturity) for t in coupon_times):
            raise ConfigurationError("coupon paid after maturity")

        self.coupon_times = [float(t) for t in coupon_times]
        self.coupon_amounts = [float(a) for a in coupon_amounts]
        self.redemption = float(redemption)
        self.maturity = maturity
        self.call_times = [float(t) for t in call_times]
        self.call_prices = [float(p) for p in call_prices]
        self._coupon_nodes = list(self.coupon_times)
        self._call_nodes = list(self.call_times)

    def initialize(self, method: TreeLattice, t: float) -> None:
        self._coupon_nodes = self._snap(method, self.coupon_times, "coupon")
        self._call_nodes = self._snap(method, self.call_times, "call")
        super().initialize(method, t)

    @staticmethod
    def _snap(method: TreeLattice, times: List[float], what: str) -> List[float]:
        grid = method.grid
        out = []
        for t in times:
            if t < 0.0:
                out.append(t)
                continue
            node = grid.closest_time(t)
            if not close_enough(node, t):
                logger.warning("%s time %.6f is not a lattice node; using t=%.6f", what, t, node)
            out.append(node)
        return out

    def reset(self, size: int) -> None:
        self.values = np.full(size, self.redemption)
        self.adjust_values()

    def mandatory_times(self) -> List[float]:
        return self.coupon_times + self.call_times + [self.maturity]

    def pre_adjust_values_impl(self) -> None:
        for t, price in zip(self._call_nodes, self.call_prices):
            if t >= 0.0 and self.is_on_time(t):
                np.minimum(self.values, price, out=self.values)

    def post_adjust_values_impl(self) -> None:
        for t, amount in zip(self._coupon_nodes, self.coupon_amounts):
            if t >= 0.0 and self.is_on_time(t):
                self.values = self.values + amount


class DiscretizedSwap(DiscretizedAsset):
    """
    Fixed-for-floating swap with already-computed payment times.

    Each period is valued on its reset slice (pre-adjust hook): a fixed
    coupon is worth ``amount * P(reset, pay)`` and a floating coupon
    ``nominal * (1 - P(reset, pay)) + spread_amount * P(reset, pay)``,
    with P read off a discount bond rolled back on the same lattice.
    Periods that reset before t = 0 pay their known amount on the pay
    slice instead (post-adjust hook).

    swap_type "payer" pays fixed and receives floating; "receiver" is the
    reverse.
    """

    def __init__(
        self,
        nominal: float,
        fixed_reset_times: Sequence[float],
        fixed_pay_times: Sequence[float],
        fixed_amounts: Sequence[float],
        floating_reset_times: Sequence[float],
        floating_pay_times: Sequence[float],
        floating_spread_amounts: Optional[Sequence[float]] = None,
        floating_fixed_amounts: Optional[Sequence[Optional[float]]] = None,
        swap_type: str = "payer",
    ) -> None:
        super().__init__()
        kind = str(swap_type).strip().lower()
        if kind not in ("payer", "receiver"):
            raise ConfigurationError(f"unknown swap type {swap_type!r}; expected 'payer' or 'receiver'")
        if not len(fixed_reset_times) == len(fixed_pay_times) == len(fixed_amounts):
            raise ConfigurationError("fixed leg needs one reset time, pay time and amount per period")
        if len(floating_reset_times) != len(floating_pay_times):
            raise ConfigurationError("floating leg needs one reset time and pay time per period")

        n_float = len(floating_reset_times)
        spreads = [0.0] * n_float if floating_spread_amounts is None else [float(s) for s in floating_spread_amounts]
        fixings = [None] * n_float if floating_fixed_amounts is None else list(floating_fixed_amounts)
        if len(spreads) != n_float or len(fixings) != n_float:
            raise ConfigurationError("floating spreads/fixed amounts must match the floating periods")

        self.nominal = float(nominal)
        self.swap_type = kind
        self.fixed_reset_times = [float(t) for t in fixed_reset_times]
        self.fixed_pay_times = [float(t) for t in fixed_pay_times]
        self.fixed_amounts = [float(a) for a in fixed_amounts]
        self.floating_reset_times = [float(t) for t in floating_reset_times]
        self.floating_pay_times = [float(t) for t in floating_pay_times]
        self.floating_spread_amounts = spreads
        self.floating_fixed_amounts = [None if a is None else float(a) for a in fixings]

        for reset, pay in zip(self.fixed_reset_times + self.floating_reset_times,
                              self.fixed_pay_times + self.floating_pay_times):
            if pay < reset:
                raise ConfigurationError(f"payment at {pay} precedes its reset at {reset}")
        for reset, pay, known in zip(self.floating_reset_times, self.floating_pay_times, self.floating_fixed_amounts):
            if reset < 0.0 <= pay and known is None:
                raise ConfigurationError(
                    f"floating period paying at {pay} has already reset; its amount must be given"
                )

    @property
    def _sign(self) -> float:
        # +1 when receiving floating
        return 1.0 if self.swap_type == "payer" else -1.0

    def reset(self, size: int) -> None:
        self.values = np.zeros(size)
        self.adjust_values()

    def mandatory_times(self) -> List[float]:
        times = (
            self.fixed_reset_times
            + self.fixed_pay_times
            + self.floating_reset_times
            + self.floating_pay_times
        )
        return [t for t in times if t >= 0.0]

    def _discount_to_now(self, pay_time: float) -> np.ndarray:
        bond = DiscretizedDiscountBond()
        bond.initialize(self._lattice(), pay_time)
        bond.rollback(self.time)
        return bond.values

    def pre_adjust_values_impl(self) -> None:
        for reset, pay, spread in zip(
            self.floating_reset_times, self.floating_pay_times, self.floating_spread_amounts
        ):
            if reset >= 0.0 and self.is_on_time(reset):
                df = self._discount_to_now(pay)
                self.values = self.values + self._sign * (self.nominal * (1.0 - df) + spread * df)

        for reset, pay, amount in zip(self.fixed_reset_times, self.fixed_pay_times, self.fixed_amounts):
            if reset >= 0.0 and self.is_on_time(reset):
                df = self._discount_to_now(pay)
                self.values = self.values - self._sign * amount * df

    def post_adjust_values_impl(self) -> None:
        for reset, pay, amount in zip(self.fixed_reset_times, self.fixed_pay_times, self.fixed_amounts):
            if reset < 0.0 <= pay and self.is_on_time(pay):
                self.values = self.values - self._sign * amount

        for reset, pay, known in zip(
            self.floating_reset_times, self.floating_pay_times, self.floating_fixed_amounts
        ):
            if reset < 0.0 <= pay and self.is_on_time(pay):
                self.values = self.values + self._sign * known


__all__ = [
    "DiscretizedAsset",
    "DiscretizedDiscountBond",
    "DiscretizedPayoff",
    "DiscretizedOption",
    "DiscretizedCouponBond",
    "DiscretizedSwap",
    "EXERCISE_TYPES",
]
