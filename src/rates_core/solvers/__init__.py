"""
One-dimensional root solvers used for calibration and lattice fitting.
"""

from __future__ import annotations

from typing import Dict, Type

from rates_core.errors import ConfigurationError

from .base import (
    MAX_FUNCTION_EVALUATIONS,
    STOP_EXACT_ROOT,
    STOP_FUNCTION_TOLERANCE,
    STOP_STEP_SIZE,
    Solver1D,
    SolverResult,
)
from .bisection import Bisection
from .brent import Brent
from .false_position import FalsePosition
from .ridder import Ridder
from .secant import Secant

SOLVERS: Dict[str, Type[Solver1D]] = {
    "brent": Brent,
    "bisection": Bisection,
    "false_position": FalsePosition,
    "secant": Secant,
    "ridder": Ridder,
}


def make_solver(name: str, max_evaluations: int = MAX_FUNCTION_EVALUATIONS) -> Solver1D:
    """Build a solver from its config name (e.g. 'brent', 'ridder')."""
    key = str(name).strip().lower().replace("-", "_").replace(" ", "_")
    try:
        cls = SOLVERS[key]
    except KeyError:
        raise ConfigurationError(
            f"unknown solver {name!r}; expected one of {sorted(SOLVERS)}"
        ) from None
    return cls(max_evaluations=max_evaluations)


__all__ = [
    "Solver1D",
    "SolverResult",
    "Brent",
    "Bisection",
    "FalsePosition",
    "Secant",
    "Ridder",
    "SOLVERS",
    "make_solver",
    "MAX_FUNCTION_EVALUATIONS",
    "STOP_EXACT_ROOT",
    "STOP_FUNCTION_TOLERANCE",
    "STOP_STEP_SIZE",
]
