from __future__ import annotations

import math

import numpy as np
import pytest

from rates_core.curves import FlatForward
from rates_core.errors import ModelDomainError
from rates_core.lattice import BlackScholesLattice, TimeGrid, TrinomialTree, build_trinomial_tree
from rates_core.models.short_rate_model import vasicek
from rates_core.processes import BlackScholesProcess, EulerProcess1D, OrnsteinUhlenbeckProcess


def _hw_tree(steps: int = 20, horizon: float = 5.0) -> TrinomialTree:
    return build_trinomial_tree(OrnsteinUhlenbeckProcess(0.1, 0.01), TimeGrid.regular(horizon, steps))


def test_probabilities_are_valid_and_sum_to_one():
    tree = _hw_tree()
    for i in range(len(tree.grid) - 1):
        probs = tree.probabilities(i)
        assert probs.shape == (3, tree.size(i))
        assert np.all(probs >= 0.0)
        assert np.all(probs <= 1.0)
        assert np.allclose(probs.sum(axis=0), 1.0, atol=1e-12, rtol=0.0)


def test_descendants_stay_inside_next_step():
    tree = _hw_tree()
    for i in range(len(tree.grid) - 1):
        desc = tree.descendants(i)
        assert desc.min() >= 0
        assert desc.max() < tree.size(i + 1)
        for index in range(tree.size(i)):
            for branch in range(3):
                assert tree.descendant(i, index, branch) == desc[branch, index]


def test_node_spacing_matches_step_variance():
    process = OrnsteinUhlenbeckProcess(0.1, 0.01)
    grid = TimeGrid.regular(5.0, 20)
    tree = build_trinomial_tree(process, grid)

    assert tree.size(0) == 1
    assert tree.underlying(0, 0) == pytest.approx(0.0)
    for i in range(len(grid) - 1):
        expected = math.sqrt(3.0 * process.variance(grid[i], 0.0, grid.dt(i)))
        assert tree.dx(i + 1) == pytest.approx(expected)


def test_mean_reversion_bounds_the_width():
    # with a * dt large enough the centre branch folds back inwards
    tree = build_trinomial_tree(OrnsteinUhlenbeckProcess(1.0, 0.01), TimeGrid.regular(30.0, 60))
    widths = [tree.size(i) for i in range(len(tree.grid))]
    assert max(widths) < 2 * 60 + 1
    assert widths[-1] == widths[-2]


def test_branching_matches_first_two_moments():
    process = OrnsteinUhlenbeckProcess(0.1, 0.01)
    grid = TimeGrid.regular(2.0, 8)
    tree = build_trinomial_tree(process, grid)

    i = 4
    xs = tree.underlying_values(i)
    next_x = tree.underlying_values(i + 1)
    desc = tree.descendants(i)
    probs = tree.probabilities(i)
    dt = grid.dt(i)
    for n, x in enumerate(xs):
        targets = next_x[desc[:, n]]
        mean = float(np.dot(probs[:, n], targets))
        var = float(np.dot(probs[:, n], targets ** 2)) - mean ** 2
        assert mean == pytest.approx(process.expectation(grid[i], x, dt), abs=1e-14)
        assert var == pytest.approx(process.variance(grid[i], x, dt), rel=1e-8)


def test_zero_volatility_collapses_to_single_path():
    tree = build_trinomial_tree(OrnsteinUhlenbeckProcess(0.1, 0.0), TimeGrid.regular(1.0, 12))
    for i in range(12):
        probs = tree.probabilities(i)
        assert np.all(probs[0] == 0.0)
        assert np.all(probs[1] == 1.0)
        assert np.all(probs[2] == 0.0)
        assert tree.dx(i + 1) == 0.0
        assert np.all(tree.underlying_values(i + 1) == 0.0)


def test_zero_volatility_with_drift_raises():
    # mean reverts from 0.03 towards 0.06, but a zero-width tree cannot move
    process = OrnsteinUhlenbeckProcess(0.5, 0.0, x0=0.03, level=0.06)
    with pytest.raises(ModelDomainError, match="zero variance"):
        build_trinomial_tree(process, TimeGrid.regular(2.0, 40))


def test_zero_volatility_vasicek_away_from_its_level_raises():
    model = vasicek(r0=0.03, a=0.5, b=0.06, sigma=0.0)
    with pytest.raises(ModelDomainError, match="zero variance"):
        model.tree(TimeGrid.regular(2.0, 40)).short_rates(39)


def test_zero_volatility_vasicek_at_its_level_stays_there():
    model = vasicek(r0=0.06, a=0.5, b=0.06, sigma=0.0)
    lattice = model.tree(TimeGrid.regular(2.0, 40))
    assert np.allclose(lattice.short_rates(39), 0.06, atol=1e-15, rtol=0.0)


def test_zero_volatility_spot_lattice_needs_zero_carry():
    grid = TimeGrid.regular(1.0, 4)
    drifting = BlackScholesProcess(100.0, FlatForward(0.05), FlatForward(0.0), 0.0)
    with pytest.raises(ModelDomainError, match="zero variance"):
        BlackScholesLattice(drifting, grid)

    curve = FlatForward(0.03)
    flat = BlackScholesLattice(BlackScholesProcess(100.0, curve, curve, 0.0), grid)
    assert np.allclose(flat.underlying_values(4), 100.0, rtol=1e-12, atol=0.0)


def test_euler_process_tree():
    process = EulerProcess1D(
        x0=0.03,
        drift_fn=lambda t, x: 0.2 * (0.04 - x),
        diffusion_fn=lambda t, x: 0.01,
    )
    tree = build_trinomial_tree(process, TimeGrid.regular(3.0, 12))
    assert tree.underlying(0, 0) == pytest.approx(0.03)
    for i in range(12):
        assert np.allclose(tree.probabilities(i).sum(axis=0), 1.0, atol=1e-12, rtol=0.0)


def test_is_positive_leaves_far_from_zero_trees_alone():
    grid = TimeGrid.regular(1.0, 4)
    process = OrnsteinUhlenbeckProcess(0.1, 0.01, x0=1.0, level=1.0)
    plain = build_trinomial_tree(process, grid)
    positive = build_trinomial_tree(process, grid, is_positive=True)
    for i in range(4):
        assert np.array_equal(plain.branching(i).k, positive.branching(i).k)
        assert np.array_equal(plain.probabilities(i), positive.probabilities(i))
    assert np.all(positive.underlying_values(4) > 0.0)


def test_is_positive_push_outside_probability_range_raises():
    # dx exceeds x0, so the lowest branch can only stay positive by shifting
    # the centre a full node up, which breaks the moment match
    process = OrnsteinUhlenbeckProcess(0.0, 0.01, x0=0.01)
    with pytest.raises(ModelDomainError, match="outside"):
        build_trinomial_tree(process, TimeGrid.regular(1.0, 1), is_positive=True)


class _NegativeVarianceProcess:
    x0 = 0.0

    def expectation(self, t, x, dt):
        return x

    def variance(self, t, x, dt):
        return -dt


def test_negative_variance_raises():
    with pytest.raises(ModelDomainError, match="negative variance"):
        build_trinomial_tree(_NegativeVarianceProcess(), TimeGrid.regular(1.0, 2))
