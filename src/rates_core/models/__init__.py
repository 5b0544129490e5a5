"""
Short-rate dynamics, fitted lattices and model families.
"""

from .dynamics import (
    OneFactorDynamics,
    TwoFactorDynamics,
    black_karasinski_dynamics,
    cox_ingersoll_ross_dynamics,
    g2_dynamics,
    ho_lee_dynamics,
    hull_white_dynamics,
    vasicek_dynamics,
)
from .short_rate_tree import ShortRateTree, TwoFactorShortRateTree, fit_short_rate_tree
from .short_rate_model import ShortRateModel, make_model

__all__ = [
    "OneFactorDynamics",
    "TwoFactorDynamics",
    "hull_white_dynamics",
    "ho_lee_dynamics",
    "vasicek_dynamics",
    "black_karasinski_dynamics",
    "cox_ingersoll_ross_dynamics",
    "g2_dynamics",
    "ShortRateTree",
    "TwoFactorShortRateTree",
    "fit_short_rate_tree",
    "ShortRateModel",
    "make_model",
]
