"""
FILE: tests/test_short_rate_tree.py

PURPOSE:
  Fitted short-rate lattices must reprice the discount curve they were
  fitted to, refit when the curve moves, and fail loudly when the fit
  cannot be done.
"""

from __future__ import annotations

import math

import numpy as np
import pandas as pd
import pytest

from rates_core.errors import ConfigurationError, MaxEvaluationsExceeded, ModelDomainError
from rates_core.lattice import TimeGrid
from rates_core.models import (
    OneFactorDynamics,
    ShortRateTree,
    black_karasinski_dynamics,
    fit_short_rate_tree,
    hull_white_dynamics,
    make_model,
)
from rates_core.models.short_rate_model import hull_white, vasicek, cox_ingersoll_ross
from rates_core.processes import OrnsteinUhlenbeckProcess
from rates_core.solvers import Brent


def _assert_reprices_curve(lattice, curve, abs_tol=1e-7):
    for i in range(len(lattice.grid)):
        assert lattice.implied_discount(i) == pytest.approx(curve.discount(lattice.grid[i]), abs=abs_tol)


@pytest.mark.parametrize("fitting", ["numerical", "analytic"])
def test_hull_white_reprices_flat_annual_curve(annual_curve, fitting):
    lattice = fit_short_rate_tree(
        hull_white_dynamics(0.1, 0.01), TimeGrid.regular(5.0, 20), annual_curve, fitting=fitting
    )
    assert lattice.is_fitted
    _assert_reprices_curve(lattice, annual_curve)


def test_hull_white_reprices_sloped_curve(sloped_curve):
    grid = TimeGrid([1.0, 2.0, 5.0, 10.0], steps=40)
    lattice = fit_short_rate_tree(hull_white_dynamics(0.05, 0.012), grid, sloped_curve)
    _assert_reprices_curve(lattice, sloped_curve)


def test_black_karasinski_reprices_curve(sloped_curve):
    lattice = fit_short_rate_tree(black_karasinski_dynamics(0.1, 0.2), TimeGrid.regular(5.0, 20), sloped_curve)
    _assert_reprices_curve(lattice, sloped_curve)
    for i in range(len(lattice.grid)):
        assert np.all(lattice.short_rates(i) > 0.0)


def test_analytic_and_numerical_shifts_agree(flat_curve):
    grid = TimeGrid.regular(3.0, 12)
    numerical = fit_short_rate_tree(hull_white_dynamics(0.1, 0.01), grid, flat_curve, fitting="numerical")
    analytic = fit_short_rate_tree(hull_white_dynamics(0.1, 0.01), grid, flat_curve, fitting="analytic")
    assert np.allclose(numerical.theta, analytic.theta, atol=1e-6, rtol=0.0)
    assert np.all(analytic.fitting_report()["evaluations"] == 0)


def test_zero_volatility_lattice_is_the_curve(annual_curve):
    grid = TimeGrid.regular(1.0, 12)
    lattice = fit_short_rate_tree(hull_white_dynamics(0.1, 0.0), grid, annual_curve)

    for i in range(12):
        probs = lattice.probabilities(i)
        assert np.all(probs[1] == 1.0)
    _assert_reprices_curve(lattice, annual_curve)

    # every slice discounts at the curve's continuously compounded rate
    assert np.allclose(lattice.theta, math.log(1.05), atol=1e-6, rtol=0.0)


def test_lazy_fit_runs_on_first_use(flat_curve):
    lattice = fit_short_rate_tree(
        hull_white_dynamics(0.1, 0.01), TimeGrid.regular(2.0, 8), flat_curve, lazy=True
    )
    assert not lattice.is_fitted
    assert lattice.implied_discount(8) == pytest.approx(math.exp(-0.10), abs=1e-7)
    assert lattice.is_fitted


def test_theta_is_read_only(flat_curve):
    lattice = fit_short_rate_tree(hull_white_dynamics(0.1, 0.01), TimeGrid.regular(1.0, 4), flat_curve)
    with pytest.raises(ValueError):
        lattice.theta[0] = 0.0


def test_curve_change_invalidates_fitted_lattices(flat_curve):
    model = hull_white(flat_curve, fitting="numerical")
    grid = TimeGrid.regular(2.0, 8)

    first = model.tree(grid)
    assert first.implied_discount(8) == pytest.approx(math.exp(-0.10), abs=1e-7)
    assert model.tree(grid) is first

    flat_curve.set_rate(0.06)
    assert first.is_stale

    second = model.tree(grid)
    assert second is not first
    assert second.implied_discount(8) == pytest.approx(math.exp(-0.12), abs=1e-7)

    # the stale lattice refits itself from slice 0 on next use
    assert first.implied_discount(8) == pytest.approx(math.exp(-0.12), abs=1e-7)
    assert not first.is_stale


def test_cache_is_bounded_and_drops_old_curve_fits(flat_curve):
    model = hull_white(flat_curve, max_cached_trees=2)
    grids = [TimeGrid.regular(2.0, n) for n in (4, 6, 8)]

    first = model.tree(grids[0])
    model.tree(grids[1])
    model.tree(grids[2])
    assert model.cached_trees == 2
    # oldest grid was evicted, so it is fitted again
    assert model.tree(grids[0]) is not first

    flat_curve.set_rate(0.06)
    model.tree(grids[2])
    assert model.cached_trees == 1

    model.clear_cache()
    assert model.cached_trees == 0


def test_solver_budget_exhaustion_reports_slice(flat_curve):
    with pytest.raises(MaxEvaluationsExceeded) as info:
        fit_short_rate_tree(
            hull_white_dynamics(0.1, 0.01),
            TimeGrid.regular(1.0, 4),
            flat_curve,
            solver=Brent(max_evaluations=3),
        )
    assert info.value.slice_index == 0
    assert "slice 0" in str(info.value)


def test_non_monotonic_short_rate_is_rejected(flat_curve):
    # r = 0.16 x^2 is not monotonic once the shifted nodes straddle zero
    dynamics = OneFactorDynamics(
        OrnsteinUhlenbeckProcess(0.0, 1.0),
        short_rate_fn=lambda t, x: 0.16 * x * x,
        variable_fn=lambda t, r: np.sqrt(r / 0.16),
        name="square",
    )
    with pytest.raises(ModelDomainError, match="monotonic"):
        fit_short_rate_tree(dynamics, TimeGrid.regular(0.5, 2), flat_curve, bracket=(0.0, 100.0))


@pytest.mark.parametrize(
    "kwargs",
    [
        {"fitting": "bootstrap"},
        {"fitting": "numerical", "curve": None},
        {"accuracy": 0.0},
        {"bracket": (1.0, -1.0)},
    ],
)
def test_invalid_fit_settings(flat_curve, kwargs):
    kwargs = dict(kwargs)
    curve = kwargs.pop("curve", flat_curve)
    tree_grid = TimeGrid.regular(1.0, 4)
    with pytest.raises(ConfigurationError):
        fit_short_rate_tree(hull_white_dynamics(0.1, 0.01), tree_grid, curve, **kwargs)


def test_analytic_fit_needs_additive_dynamics(flat_curve):
    with pytest.raises(ConfigurationError, match="additive"):
        fit_short_rate_tree(
            black_karasinski_dynamics(0.1, 0.2), TimeGrid.regular(1.0, 4), flat_curve, fitting="analytic"
        )


def test_endogenous_models_are_not_fitted():
    grid = TimeGrid.regular(2.0, 8)

    vas = vasicek(r0=0.03, a=0.2, b=0.05, sigma=0.01).tree(grid)
    assert np.all(vas.theta == 0.0)
    assert vas.short_rates(0)[0] == pytest.approx(0.03)
    assert 0.0 < vas.implied_discount(8) < 1.0

    cir = cox_ingersoll_ross(theta=0.05, k=0.5, sigma=0.1, r0=0.04).tree(grid)
    assert cir.short_rates(0)[0] == pytest.approx(0.04)
    for i in range(len(grid)):
        assert np.all(cir.short_rates(i) >= 0.0)


def test_make_model_by_kind(flat_curve):
    model = make_model("hull_white", flat_curve, a=0.05, sigma=0.015)
    assert model.name == "hull_white"
    assert model.n_factors == 1
    assert make_model("g2", flat_curve).n_factors == 2

    with pytest.raises(ConfigurationError):
        make_model("hull_white")
    with pytest.raises(ConfigurationError):
        make_model("libor_market", flat_curve)


def test_lattice_frames_and_excel_export(flat_curve, tmp_path):
    grid = TimeGrid.regular(2.0, 8)
    lattice = fit_short_rate_tree(hull_white_dynamics(0.1, 0.01), grid, flat_curve)
    assert isinstance(lattice, ShortRateTree)

    nodes = lattice.to_frame()
    assert list(nodes.columns) == ["step", "t_yrs", "j", "x", "r_short", "state_price"]
    assert len(nodes) == sum(lattice.size(i) for i in range(len(grid)))
    by_step = nodes.groupby("step")["state_price"].sum()
    assert by_step.loc[8] == pytest.approx(flat_curve.discount(2.0), abs=1e-7)

    report = lattice.fitting_report()
    assert len(report) == 8
    assert report["df_error"].abs().max() < 1e-7

    out = lattice.export_to_excel(tmp_path / "out" / "lattice.xlsx")
    assert out.exists()
    fit_sheet = pd.read_excel(out, sheet_name="FIT")
    lattice_sheet = pd.read_excel(out, sheet_name="LATTICE")
    assert len(fit_sheet) == 8
    assert len(lattice_sheet) == len(nodes)
