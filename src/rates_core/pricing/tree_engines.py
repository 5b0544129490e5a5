# src/rates_core/pricing/tree_engines.py

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

import pandas as pd

from rates_core.errors import ConfigurationError
from rates_core.lattice.black_scholes_lattice import BlackScholesLattice
from rates_core.lattice.time_grid import TimeGrid, merge_times
from rates_core.lattice.tree_lattice import TreeLattice
from rates_core.models.short_rate_model import ShortRateModel
from rates_core.processes import BlackScholesProcess
from .conditions import (
    AmericanExercise,
    BermudanExercise,
    CashDividend,
    CompositeStepCondition,
    StepCondition,
)
from .discretized import (
    DiscretizedCouponBond,
    DiscretizedDiscountBond,
    DiscretizedOption,
    DiscretizedPayoff,
    DiscretizedSwap,
)
from .payoffs import PlainVanillaPayoff

logger = logging.getLogger(__name__)


# -------------------------------------------------------------------
# Cashflow inputs
# -------------------------------------------------------------------


@dataclass
class CashflowSchedule:
    """
    Already-computed bond cashflows.

    t_yrs      : coupon payment times in years
    amounts    : coupon amounts at those times
    redemption : principal repaid at maturity
    maturity   : final maturity in years
    """
    t_yrs: List[float]
    amounts: List[float]
    redemption: float
    maturity: float

    def __post_init__(self) -> None:
        if len(self.t_yrs) != len(self.amounts):
            raise ConfigurationError(
                f"{len(self.t_yrs)} payment times but {len(self.amounts)} amounts"
            )
        if self.maturity <= 0.0:
            raise ConfigurationError(f"maturity must be positive, got {self.maturity}")

    @classmethod
    def from_arrays(
        cls,
        t_yrs: Sequence[float],
        amounts: Sequence[float],
        redemption: float,
        maturity: float,
    ) -> "CashflowSchedule":
        return cls(
            [float(t) for t in t_yrs],
            [float(a) for a in amounts],
            float(redemption),
            float(maturity),
        )

    def to_dataframe(self) -> pd.DataFrame:
        """Coupons plus the redemption as one table (t_yrs, amount)."""
        df = pd.DataFrame({"t_yrs": self.t_yrs + [self.maturity], "amount": self.amounts + [self.redemption]})
        return df.groupby("t_yrs", as_index=False)["amount"].sum()


# -------------------------------------------------------------------
# Pricing from state prices
# -------------------------------------------------------------------


def price_cashflows_from_state_prices(lattice: TreeLattice, schedule: CashflowSchedule) -> float:
    """
    Price = sum_k CF_k * DF(0, t_k), where DF(0, t_n) = sum_j Q(n, j) is
    read off the lattice's state prices. Every payment time must be a
    grid node.
    """
    flows = schedule.to_dataframe()
    total = 0.0
    for t, amount in zip(flows["t_yrs"], flows["amount"]):
        if t <= 0.0:
            continue
        total += float(amount) * lattice.implied_discount(lattice.grid.index(float(t)))
    return total


# -------------------------------------------------------------------
# Equity options on a Black-Scholes lattice
# -------------------------------------------------------------------


def price_vanilla_option_tree(
    process: BlackScholesProcess,
    payoff: PlainVanillaPayoff,
    maturity: float,
    exercise: str = "european",
    steps: int = 100,
    exercise_times: Optional[Sequence[float]] = None,
    dividend_times: Sequence[float] = (),
    dividend_amounts: Sequence[float] = (),
) -> float:
    """
    Price a vanilla option by rollback on a trinomial ln S lattice.

    exercise: "european", "american" (any slice up to maturity) or
    "bermudan" (``exercise_times``). Cash dividends are applied before
    exercise on coincident dates.
    """
    kind = str(exercise).strip().lower()
    conditions: List[StepCondition] = []
    if len(dividend_times) > 0:
        conditions.append(CashDividend(dividend_times, dividend_amounts))
    if kind == "american":
        conditions.append(AmericanExercise(payoff, latest=maturity))
    elif kind == "bermudan":
        if exercise_times is None or len(exercise_times) == 0:
            raise ConfigurationError("bermudan exercise needs exercise_times")
        conditions.append(BermudanExercise(payoff, exercise_times))
    elif kind != "european":
        raise ConfigurationError(f"unknown exercise {exercise!r}")

    condition = CompositeStepCondition(conditions) if conditions else None
    asset = DiscretizedPayoff(payoff, maturity, condition)

    grid = TimeGrid(merge_times([t for t in asset.mandatory_times() if t <= maturity]), steps)
    lattice = BlackScholesLattice(process, grid)

    asset.initialize(lattice, maturity)
    asset.rollback(0.0)
    value = asset.present_value()
    logger.debug(
        "%s %s K=%.4f T=%.4f steps=%d -> %.8f",
        kind, payoff.option_type, payoff.strike, maturity, len(grid) - 1, value,
    )
    return value


# -------------------------------------------------------------------
# Short-rate lattice engines
# -------------------------------------------------------------------


def price_zero_bond_option_tree(
    model: ShortRateModel,
    option_type: str,
    strike: float,
    option_maturity: float,
    bond_maturity: float,
    steps: int = 100,
    exercise: str = "european",
) -> float:
    """
    Option on a zero-coupon bond (pays 1 at ``bond_maturity``), exercisable
    at ``option_maturity`` (european) or at any slice up to it (american).
    """
    if not 0.0 < option_maturity <= bond_maturity:
        raise ConfigurationError(
            f"need 0 < option maturity ({option_maturity}) <= bond maturity ({bond_maturity})"
        )
    kind = str(exercise).strip().lower()
    if kind == "european":
        exercise_times = [option_maturity]
    elif kind == "american":
        exercise_times = [0.0, option_maturity]
    else:
        raise ConfigurationError(f"unknown exercise {exercise!r}")

    grid = TimeGrid([option_maturity, bond_maturity], steps)
    lattice = model.tree(grid)

    bond = DiscretizedDiscountBond()
    bond.initialize(lattice, bond_maturity)

    option = DiscretizedOption(bond, kind, exercise_times, PlainVanillaPayoff(option_type, strike))
    option.initialize(lattice, option_maturity)
    option.rollback(0.0)
    return option.present_value()


def price_callable_bond_tree(
    model: ShortRateModel,
    schedule: CashflowSchedule,
    call_times: Optional[Sequence[float]] = None,
    call_prices: Optional[Sequence[float]] = None,
    steps: int = 60,
    lattice: Optional[TreeLattice] = None,
) -> float:
    """
    Price a coupon bond with an issuer Bermudan call on a fitted short-rate
    lattice. Without call dates this is the bullet bond.

    At a call date the investor receives the worse of continuation and
    the call price; the option therefore lowers the bond's value.
    """
    call_times = list(call_times or [])
    call_prices = list(call_prices or [])
    if len(call_prices) == 1 and len(call_times) > 1:
        call_prices = call_prices * len(call_times)

    bond = DiscretizedCouponBond(
        schedule.t_yrs,
        schedule.amounts,
        schedule.redemption,
        schedule.maturity,
        call_times,
        call_prices,
    )

    if lattice is None:
        mandatory = [t for t in bond.mandatory_times() if 0.0 < t <= schedule.maturity]
        grid = TimeGrid(merge_times(mandatory), steps)
        lattice = model.tree(grid)

    bond.initialize(lattice, schedule.maturity)
    bond.rollback(0.0)
    price = bond.present_value()

    logger.debug(
        "callable bond: T=%.4f, %d coupons, %d call dates -> %.6f",
        schedule.maturity, len(schedule.t_yrs), len(call_times), price,
    )
    return price


def _swap_lattice(model: ShortRateModel, times: Sequence[float], steps: int) -> TreeLattice:
    mandatory = [t for t in times if t > 0.0]
    if not mandatory:
        raise ConfigurationError("the swap has no payments left")
    return model.tree(TimeGrid(merge_times(mandatory), steps))


def price_swap_tree(
    model: ShortRateModel,
    swap: DiscretizedSwap,
    steps: int = 50,
    lattice: Optional[TreeLattice] = None,
) -> float:
    """Swap PV by rollback on a fitted short-rate lattice."""
    if lattice is None:
        lattice = _swap_lattice(model, swap.mandatory_times(), steps)
    swap.initialize(lattice, max(swap.mandatory_times()))
    swap.rollback(0.0)
    return swap.present_value()


def price_swaption_tree(
    model: ShortRateModel,
    swap: DiscretizedSwap,
    exercise: str = "bermudan",
    exercise_times: Sequence[float] = (),
    steps: int = 50,
    lattice: Optional[TreeLattice] = None,
) -> float:
    """
    Option to enter ``swap`` (payer or receiver) on a fitted short-rate lattice.

    exercise:
      * "european": ``exercise_times`` holds the single exercise time
      * "bermudan": any of ``exercise_times``, normally the fixed reset times
      * "american": any slice in [exercise_times[0], exercise_times[1]]

    Exercising at t delivers every swap period resetting at or after t.
    """
    kind = str(exercise).strip().lower()
    times = [float(t) for t in exercise_times]
    if not times:
        raise ConfigurationError("swaption needs at least one exercise time")
    if kind == "european" and len(times) != 1:
        raise ConfigurationError("european swaption needs exactly one exercise time")
    if any(t < 0.0 for t in times):
        raise ConfigurationError(f"exercise times must not be negative: {times}")

    option = DiscretizedOption(swap, kind, times)
    if lattice is None:
        lattice = _swap_lattice(model, option.mandatory_times(), steps)

    swap.initialize(lattice, max(swap.mandatory_times()))
    option.initialize(lattice, max(times))
    option.rollback(0.0)
    value = option.present_value()
    logger.debug(
        "%s %s swaption: %d exercise times, steps=%d -> %.8f",
        kind, swap.swap_type, len(times), len(lattice.grid) - 1, value,
    )
    return value


def price_discount_bond_tree(lattice: TreeLattice, maturity: float) -> float:
    """Zero-coupon bond by rollback; equals implied_discount on a fitted lattice."""
    bond = DiscretizedDiscountBond()
    bond.initialize(lattice, maturity)
    bond.rollback(0.0)
    return bond.present_value()


__all__ = [
    "CashflowSchedule",
    "price_cashflows_from_state_prices",
    "price_vanilla_option_tree",
    "price_zero_bond_option_tree",
    "price_callable_bond_tree",
    "price_discount_bond_tree",
    "price_swap_tree",
    "price_swaption_tree",
]
