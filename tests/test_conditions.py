from __future__ import annotations

import math

import numpy as np
import pytest
from scipy.stats import norm

from rates_core.curves import FlatForward
from rates_core.errors import ConfigurationError
from rates_core.pricing import (
    AmericanExercise,
    BermudanExercise,
    CashDividend,
    CompositeStepCondition,
    PlainVanillaPayoff,
    price_vanilla_option_tree,
)
from rates_core.processes import BlackScholesProcess


def _bs_process(vol: float, spot: float = 100.0) -> BlackScholesProcess:
    return BlackScholesProcess(spot, FlatForward(0.05), FlatForward(0.0), vol)


def _black_scholes(option_type, s, k, r, vol, t):
    d1 = (math.log(s / k) + (r + 0.5 * vol * vol) * t) / (vol * math.sqrt(t))
    d2 = d1 - vol * math.sqrt(t)
    if option_type == "call":
        return s * norm.cdf(d1) - k * math.exp(-r * t) * norm.cdf(d2)
    return k * math.exp(-r * t) * norm.cdf(-d2) - s * norm.cdf(-d1)


@pytest.mark.parametrize("option_type", ["call", "put"])
def test_european_tree_converges_to_black_scholes(option_type):
    value = price_vanilla_option_tree(
        _bs_process(0.2), PlainVanillaPayoff(option_type, 100.0), 1.0, steps=200
    )
    assert value == pytest.approx(_black_scholes(option_type, 100.0, 100.0, 0.05, 0.2, 1.0), abs=0.05)


@pytest.mark.parametrize("strike", [90.0, 100.0, 110.0])
@pytest.mark.parametrize("vol", [0.1, 0.2, 0.4])
def test_american_put_dominates_european(strike, vol):
    payoff = PlainVanillaPayoff("put", strike)
    european = price_vanilla_option_tree(_bs_process(vol), payoff, 1.0, "european", steps=50)
    american = price_vanilla_option_tree(_bs_process(vol), payoff, 1.0, "american", steps=50)
    assert american >= european - 1e-12


def test_bermudan_sits_between_european_and_american():
    payoff = PlainVanillaPayoff("put", 110.0)
    process = _bs_process(0.2)
    european = price_vanilla_option_tree(process, payoff, 1.0, "european", steps=100)
    bermudan = price_vanilla_option_tree(
        process, payoff, 1.0, "bermudan", steps=100, exercise_times=[0.25, 0.5, 0.75, 1.0]
    )
    american = price_vanilla_option_tree(process, payoff, 1.0, "american", steps=100)
    assert european - 1e-8 <= bermudan <= american + 1e-8
    assert american > european


def test_dividend_lowers_call_and_raises_put():
    process = _bs_process(0.2)
    for option_type, sign in (("call", -1.0), ("put", 1.0)):
        payoff = PlainVanillaPayoff(option_type, 100.0)
        plain = price_vanilla_option_tree(process, payoff, 1.0, steps=100)
        with_div = price_vanilla_option_tree(
            process, payoff, 1.0, steps=100, dividend_times=[0.5], dividend_amounts=[3.0]
        )
        assert sign * (with_div - plain) > 0.5


def test_dividend_is_applied_before_exercise():
    put = PlainVanillaPayoff("put", 100.0)
    composite = CompositeStepCondition([AmericanExercise(put, latest=1.0), CashDividend([1.0], [10.0])])
    assert isinstance(composite.conditions[0], CashDividend)
    assert composite.mandatory_times() == [1.0]

    underlying = np.array([80.0, 90.0, 100.0, 110.0, 120.0])
    values = np.full(5, 5.0)
    composite.apply_to(values, 1.0, underlying)
    # exercising first and then shifting by the dividend would give [20, 20, 10, 5, 5]
    assert values.tolist() == [20.0, 10.0, 5.0, 5.0, 5.0]


def test_american_exercise_window():
    put = PlainVanillaPayoff("put", 100.0)
    condition = AmericanExercise(put, latest=1.0, earliest=0.5)
    underlying = np.array([90.0, 110.0])

    values = np.zeros(2)
    condition.apply_to(values, 0.2, underlying)
    assert values.tolist() == [0.0, 0.0]

    condition.apply_to(values, 0.5, underlying)
    assert values.tolist() == [10.0, 0.0]
    assert condition.mandatory_times() == [0.5, 1.0]

    with pytest.raises(ConfigurationError):
        AmericanExercise(put, latest=0.5, earliest=1.0)


def test_bermudan_exercise_only_on_dates():
    call = PlainVanillaPayoff("call", 100.0)
    condition = BermudanExercise(call, [1.0, 0.5])
    assert condition.mandatory_times() == [0.5, 1.0]

    values = np.zeros(2)
    condition.apply_to(values, 0.75, np.array([90.0, 110.0]))
    assert values.tolist() == [0.0, 0.0]
    condition.apply_to(values, 0.5, np.array([90.0, 110.0]))
    assert values.tolist() == [0.0, 10.0]

    with pytest.raises(ConfigurationError):
        BermudanExercise(call, [])


def test_invalid_condition_inputs():
    with pytest.raises(ConfigurationError):
        CashDividend([0.5, 1.0], [1.0])
    with pytest.raises(ConfigurationError):
        PlainVanillaPayoff("straddle", 100.0)
    with pytest.raises(ConfigurationError):
        price_vanilla_option_tree(_bs_process(0.2), PlainVanillaPayoff("put", 100.0), 1.0, "bermudan")


def test_payoff_scalar_and_array():
    put = PlainVanillaPayoff("Put", 100.0)
    assert put.option_type == "put"
    assert put(90.0) == 10.0
    assert put.value(np.array([90.0, 110.0])).tolist() == [10.0, 0.0]
