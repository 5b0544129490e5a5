from __future__ import annotations

import math

import pandas as pd
import pytest
import yaml

from rates_core.config import AppConfig
from rates_core.curves import FlatForward, ZeroCurve
from rates_core.errors import ConfigurationError
from rates_core.solvers import Brent, Ridder


def test_example_config_loads(repo_root):
    cfg_path = repo_root / "config" / "example_config.yaml"
    assert cfg_path.exists(), f"Missing config at {cfg_path}"

    app_cfg = AppConfig.from_yaml(cfg_path)
    assert app_cfg.lattice.steps == 120
    assert app_cfg.solver.name == "brent"
    assert app_cfg.solver.bracket == (-100.0, 100.0)
    assert app_cfg.model.kind == "hull_white"
    assert app_cfg.controls_file is None

    assert isinstance(app_cfg.make_solver(), Brent)
    curve = app_cfg.make_curve()
    assert isinstance(curve, ZeroCurve)
    assert curve.zero_rate(5.0) == pytest.approx(0.036)

    model = app_cfg.make_model(curve)
    assert model.name == "hull_white"
    assert model.fitting == "numerical"
    assert model.accuracy == pytest.approx(1e-7)


def test_example_config_prices_a_bond(repo_root):
    app_cfg = AppConfig.from_yaml(repo_root / "config" / "example_config.yaml")
    curve = app_cfg.make_curve()
    model = app_cfg.make_model(curve)

    grid = app_cfg.make_grid([1.0, 2.0])
    lattice = model.tree(grid)
    assert lattice.implied_discount(grid.index(2.0)) == pytest.approx(curve.discount(2.0), abs=1e-7)


def test_flat_curve_section():
    app_cfg = AppConfig.from_dict({"curve": {"flat_rate": 0.05, "compounding": "annual"}})
    curve = app_cfg.make_curve()
    assert isinstance(curve, FlatForward)
    assert curve.discount(2.0) == pytest.approx(1.0 / 1.05 ** 2)


def test_defaults_without_sections():
    app_cfg = AppConfig.from_dict({})
    assert app_cfg.lattice.steps == 100
    assert app_cfg.solver.name == "brent"
    with pytest.raises(ConfigurationError):
        app_cfg.make_curve()


def test_endogenous_model_from_config():
    app_cfg = AppConfig.from_dict(
        {
            "solver": {"name": "Ridder"},
            "model": {"kind": "vasicek", "params": {"r0": 0.03, "a": 0.2, "b": 0.05, "sigma": 0.01}},
        }
    )
    assert isinstance(app_cfg.make_solver(), Ridder)
    model = app_cfg.make_model()
    assert model.fitting == "none"
    assert model.solver_name == "ridder"


@pytest.mark.parametrize(
    "data",
    [
        {"solver": {"name": "newton"}},
        {"solver": {"accuracy": 0.0}},
        {"solver": {"bracket_low": 1.0, "bracket_high": -1.0}},
        {"model": {"kind": "libor_market"}},
        {"model": {"fitting": "bootstrap"}},
        {"lattice": {"steps": -1}},
        {"curve": {"flat_rate": 0.05, "points": [[1.0, 0.05]]}},
        {"curve": {"interpolation": "pchip"}},
    ],
)
def test_invalid_sections_rejected(data):
    with pytest.raises(ConfigurationError):
        AppConfig.from_dict(data)


def test_controls_sheet_overrides_model_params(tmp_path):
    controls = pd.DataFrame({"Control": ["MODEL_SIGMA", "OTHER"], "Value": [0.02, 1.0]})
    with pd.ExcelWriter(tmp_path / "controls.xlsx", engine="openpyxl") as writer:
        controls.to_excel(writer, sheet_name="Controls", index=False)

    cfg = {
        "model": {"kind": "hull_white", "params": {"a": 0.1, "sigma": 0.01}},
        "curve": {"flat_rate": 0.04},
        "controls": {"file": "controls.xlsx", "sheet": "Controls"},
    }
    cfg_path = tmp_path / "config.yaml"
    cfg_path.write_text(yaml.safe_dump(cfg), encoding="utf-8")

    app_cfg = AppConfig.from_yaml(cfg_path)
    assert app_cfg.controls_file == (tmp_path / "controls.xlsx").resolve()
    assert app_cfg.get_control_value("model_sigma") == "0.02"
    assert app_cfg.get_control_value("MISSING", default="x") == "x"

    params = app_cfg.model_params()
    assert params == {"a": 0.1, "sigma": 0.02}

    model = app_cfg.make_model(app_cfg.make_curve())
    assert model.dynamics.process.volatility == pytest.approx(0.02)
    assert model.curve.discount(1.0) == pytest.approx(math.exp(-0.04))


def test_controls_sheet_needs_name_and_value_columns(tmp_path):
    pd.DataFrame({"Foo": ["MODEL_SIGMA"], "Bar": [0.02]}).to_excel(
        tmp_path / "bad.xlsx", sheet_name="Controls", index=False
    )
    app_cfg = AppConfig.from_dict({"controls": {"file": str(tmp_path / "bad.xlsx")}})
    with pytest.raises(ConfigurationError):
        app_cfg.get_control_value("MODEL_SIGMA")
