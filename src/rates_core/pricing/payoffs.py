# src/rates_core/pricing/payoffs.py

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from rates_core.errors import ConfigurationError

OPTION_TYPES = ("call", "put")


@dataclass(frozen=True)
class PlainVanillaPayoff:
    """max(S - K, 0) for calls, max(K - S, 0) for puts; works on arrays."""

    option_type: str
    strike: float

    def __post_init__(self) -> None:
        kind = str(self.option_type).strip().lower()
        if kind not in OPTION_TYPES:
            raise ConfigurationError(f"unknown option type {self.option_type!r}; expected 'call' or 'put'")
        object.__setattr__(self, "option_type", kind)

    def __call__(self, underlying):
        s = np.asarray(underlying, dtype=float)
        if self.option_type == "call":
            out = np.maximum(s - self.strike, 0.0)
        else:
            out = np.maximum(self.strike - s, 0.0)
        return float(out) if out.ndim == 0 else out

    def value(self, underlying):
        return self(underlying)


__all__ = ["PlainVanillaPayoff", "OPTION_TYPES"]
