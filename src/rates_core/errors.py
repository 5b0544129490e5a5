# src/rates_core/errors.py

from __future__ import annotations

from typing import Optional


class LatticeError(Exception):
    """Root of every error raised by rates_core."""


class ConfigurationError(LatticeError, ValueError):
    """
    Invalid construction inputs: bad grids, negative step counts,
    mismatched array sizes, out-of-range model parameters.

    Subclasses ValueError so callers written against plain ValueError
    checks keep working.
    """


class BracketError(LatticeError, ValueError):
    """The objective has no sign change on the given (or searched) bracket."""


class ModelDomainError(LatticeError):
    """
    The (process, grid) pair or the short-rate mapping violates a
    modelling invariant: branching probabilities outside [0, 1],
    a non-monotonic short-rate mapping, or invalid 2-D probabilities.

    These are never auto-corrected.
    """


class MaxEvaluationsExceeded(LatticeError):
    """
    A root solver used up its evaluation budget before converging.

    Carries the last bracket so callers can retry with a wider range or
    a looser accuracy.
    """

    def __init__(
        self,
        message: str,
        *,
        evaluations: int,
        x_min: Optional[float] = None,
        x_max: Optional[float] = None,
        fx_min: Optional[float] = None,
        fx_max: Optional[float] = None,
        slice_index: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.evaluations = evaluations
        self.x_min = x_min
        self.x_max = x_max
        self.fx_min = fx_min
        self.fx_max = fx_max
        self.slice_index = slice_index


__all__ = [
    "LatticeError",
    "ConfigurationError",
    "BracketError",
    "ModelDomainError",
    "MaxEvaluationsExceeded",
]
