from __future__ import annotations

import math

import numpy as np
import pytest

from rates_core.errors import ConfigurationError
from rates_core.lattice import TimeGrid, rollback
from rates_core.models.short_rate_model import hull_white
from rates_core.pricing import (
    DiscretizedDiscountBond,
    DiscretizedOption,
    PlainVanillaPayoff,
    price_discount_bond_tree,
    price_zero_bond_option_tree,
)


@pytest.fixture
def hw_lattice(sloped_curve):
    return hull_white(sloped_curve, a=0.1, sigma=0.01).tree(TimeGrid.regular(5.0, 20))


def test_discount_bond_rollback_reprices_curve(hw_lattice, sloped_curve):
    for maturity in (1.0, 2.5, 5.0):
        price = price_discount_bond_tree(hw_lattice, maturity)
        assert price == pytest.approx(sloped_curve.discount(maturity), abs=1e-10)
        assert price == pytest.approx(hw_lattice.implied_discount(hw_lattice.grid.index(maturity)), abs=1e-12)


def test_rollback_helper_returns_values_at_target(hw_lattice):
    values = rollback(DiscretizedDiscountBond(), hw_lattice, 5.0, 2.0)
    assert values.shape == (hw_lattice.size(hw_lattice.grid.index(2.0)),)
    assert np.all((values > 0.0) & (values < 1.0))


def test_present_value_from_intermediate_slice(hw_lattice, sloped_curve):
    bond = DiscretizedDiscountBond()
    bond.initialize(hw_lattice, 5.0)
    bond.rollback(2.0)
    assert bond.time == pytest.approx(2.0)
    assert bond.present_value() == pytest.approx(sloped_curve.discount(5.0), abs=1e-10)


def test_partial_rollback_matches_rollback_without_adjustments(hw_lattice):
    full = DiscretizedDiscountBond()
    full.initialize(hw_lattice, 4.0)
    full.rollback(1.0)

    partial = DiscretizedDiscountBond()
    partial.initialize(hw_lattice, 4.0)
    partial.partial_rollback(1.0)

    assert np.array_equal(full.values, partial.values)


def test_rollback_is_bit_for_bit_repeatable(sloped_curve):
    grid = TimeGrid([1.0, 5.0], 40)
    prices = []
    for _ in range(2):
        model = hull_white(sloped_curve, a=0.1, sigma=0.01)
        prices.append(price_zero_bond_option_tree(model, "call", 0.85, 1.0, 5.0, steps=40))
        values = rollback(DiscretizedDiscountBond(), model.tree(grid), 5.0, 0.0)
        prices.append(float(values[0]))
    assert prices[0] == prices[2]
    assert prices[1] == prices[3]


def test_rolling_forward_is_rejected(hw_lattice):
    bond = DiscretizedDiscountBond()
    bond.initialize(hw_lattice, 2.0)
    with pytest.raises(ConfigurationError, match="cannot roll"):
        bond.rollback(3.0)


def test_rolling_to_a_non_node_is_rejected(hw_lattice):
    bond = DiscretizedDiscountBond()
    bond.initialize(hw_lattice, 5.0)
    with pytest.raises(ConfigurationError):
        bond.rollback(2.1)


def test_uninitialized_asset_has_no_lattice():
    with pytest.raises(ConfigurationError):
        DiscretizedDiscountBond().rollback(0.0)


def test_stepback_checks_slice_size(hw_lattice):
    with pytest.raises(ConfigurationError):
        hw_lattice.stepback(3, np.ones(hw_lattice.size(3)))


def test_state_prices_outside_grid(hw_lattice):
    with pytest.raises(ConfigurationError):
        hw_lattice.state_prices(len(hw_lattice.grid))


def test_option_and_underlying_must_share_a_lattice(sloped_curve, hw_lattice):
    other = hull_white(sloped_curve, a=0.2, sigma=0.01).tree(TimeGrid.regular(5.0, 20))
    bond = DiscretizedDiscountBond()
    bond.initialize(hw_lattice, 5.0)
    option = DiscretizedOption(bond, "european", [1.0])
    with pytest.raises(ConfigurationError, match="different lattices"):
        option.initialize(other, 1.0)


def _american_bond_put(lattice, earliest: float) -> float:
    bond = DiscretizedDiscountBond()
    bond.initialize(lattice, 2.0)
    put = DiscretizedOption(bond, "american", [earliest, 1.0], PlainVanillaPayoff("put", 1.0))
    put.initialize(lattice, 1.0)
    put.rollback(0.0)
    return put.present_value()


def test_american_window_start_is_matched_tolerantly(flat_curve):
    # a put struck at 1 on a bond is exercised as early as allowed, so
    # missing the 0.5 slice would lower the price
    lattice = hull_white(flat_curve).tree(TimeGrid.regular(2.0, 16))
    exact = _american_bond_put(lattice, 0.5)
    one_ulp_late = _american_bond_put(lattice, math.nextafter(0.5, 1.0))
    assert one_ulp_late == pytest.approx(exact, abs=1e-14)
    assert exact >= (1.0 - flat_curve.discount(2.0) / flat_curve.discount(0.5)) * flat_curve.discount(0.5) - 1e-10
