# src/rates_core/comparison.py

from __future__ import annotations

import sys

EPSILON = sys.float_info.epsilon


def close(x: float, y: float, n: int = 42) -> bool:
    """
    Tolerant float equality (Knuth, "strongly close").

    Both relative differences must be within n * epsilon. Exact
    equality short-circuits so that 0.0 == 0.0 holds.
    """
    if x == y:
        return True
    diff = abs(x - y)
    tolerance = n * EPSILON
    if x == 0.0 or y == 0.0:
        return diff < tolerance * tolerance
    return diff <= tolerance * abs(x) and diff <= tolerance * abs(y)


def close_enough(x: float, y: float, n: int = 42) -> bool:
    """
    Weaker variant of close(): one of the two relative differences
    within n * epsilon is enough.
    """
    if x == y:
        return True
    diff = abs(x - y)
    tolerance = n * EPSILON
    if x == 0.0 or y == 0.0:
        return diff < tolerance * tolerance
    return diff <= tolerance * abs(x) or diff <= tolerance * abs(y)


__all__ = ["EPSILON", "close", "close_enough"]
