"""
Discretized assets, step conditions and tree pricing engines.
"""

from .payoffs import PlainVanillaPayoff
from .conditions import (
    AmericanExercise,
    BermudanExercise,
    CashDividend,
    CompositeStepCondition,
    StepCondition,
)
from .discretized import (
    DiscretizedAsset,
    DiscretizedCouponBond,
    DiscretizedDiscountBond,
    DiscretizedOption,
    DiscretizedPayoff,
    DiscretizedSwap,
)
from .tree_engines import (
    CashflowSchedule,
    price_callable_bond_tree,
    price_cashflows_from_state_prices,
    price_discount_bond_tree,
    price_swap_tree,
    price_swaption_tree,
    price_vanilla_option_tree,
    price_zero_bond_option_tree,
)

__all__ = [
    "PlainVanillaPayoff",
    "StepCondition",
    "AmericanExercise",
    "BermudanExercise",
    "CashDividend",
    "CompositeStepCondition",
    "DiscretizedAsset",
    "DiscretizedDiscountBond",
    "DiscretizedPayoff",
    "DiscretizedOption",
    "DiscretizedCouponBond",
    "DiscretizedSwap",
    "CashflowSchedule",
    "price_cashflows_from_state_prices",
    "price_vanilla_option_tree",
    "price_zero_bond_option_tree",
    "price_callable_bond_tree",
    "price_discount_bond_tree",
    "price_swap_tree",
    "price_swaption_tree",
]
