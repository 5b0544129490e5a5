# examples/run_callable_bond.py

from __future__ import annotations

import logging
import sys
from pathlib import Path

from rates_core.config import AppConfig
from rates_core.lattice import TimeGrid
from rates_core.pricing import CashflowSchedule, price_callable_bond_tree


def find_repo_root() -> Path:
    """
    Resolve the repo root assuming this file lives in <repo>/examples/>.
    """
    return Path(__file__).resolve().parents[1]


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    repo_root = find_repo_root()

    cfg_path = repo_root / "config" / "example_config.yaml"
    if not cfg_path.exists():
        print(f"[ERROR] Could not find config YAML at {cfg_path}")
        sys.exit(1)

    app_cfg = AppConfig.from_yaml(cfg_path)
    curve = app_cfg.make_curve()
    model = app_cfg.make_model(curve)

    # 10Y 4% semi-annual bond, callable at par from year 5 on coupon dates
    maturity = 10.0
    times = [0.5 * k for k in range(1, 21)]
    schedule = CashflowSchedule.from_arrays(times, [2.0] * len(times), redemption=100.0, maturity=maturity)
    call_times = [t for t in times if 5.0 <= t < maturity]

    bullet = price_callable_bond_tree(model, schedule, steps=app_cfg.lattice.steps)
    callable_px = price_callable_bond_tree(
        model, schedule, call_times, [100.0], steps=app_cfg.lattice.steps
    )

    print(f"[OK] model={model.name} fitting={model.fitting}")
    print(f"     bullet   : {bullet:10.4f}")
    print(f"     callable : {callable_px:10.4f}")
    print(f"     call opt : {bullet - callable_px:10.4f}")

    # Fitted lattice dump for inspection
    grid = TimeGrid(times, app_cfg.lattice.steps)
    out = repo_root / "output" / f"lattice_{model.name}.xlsx"
    model.tree(grid).export_to_excel(out)
    print(f"[OK] lattice written to {out}")


if __name__ == "__main__":
    main()
