# src/rates_core/config/loader.py

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import pandas as pd
import yaml

from rates_core.curves.types import DiscountCurve, FlatForward, ZeroCurve
from rates_core.errors import ConfigurationError
from rates_core.lattice.time_grid import TimeGrid
from rates_core.models.short_rate_model import MODEL_FACTORIES, ShortRateModel, make_model
from rates_core.models.short_rate_tree import FITTING_METHODS
from rates_core.solvers import SOLVERS, Solver1D, make_solver


# ---------- Lattice ----------

@dataclass
class LatticeConfig:
    steps: int = 100
    is_positive: bool = False

    def __post_init__(self) -> None:
        if self.steps < 0:
            raise ConfigurationError(f"lattice.steps must be >= 0, got {self.steps}")


# ---------- Solver ----------

@dataclass
class SolverConfig:
    """
    Root solver used by the per-slice term-structure fit.

    The defaults reproduce the usual fitting setup: Brent, 1e-7 accuracy,
    1000 evaluations, bracket [-100, 100], first guess 0.
    """
    name: str = "brent"
    accuracy: float = 1e-7
    max_evaluations: int = 1000
    bracket_low: float = -100.0
    bracket_high: float = 100.0
    initial_guess: float = 0.0

    def __post_init__(self) -> None:
        key = str(self.name).strip().lower().replace("-", "_")
        if key not in SOLVERS:
            raise ConfigurationError(f"solver.name {self.name!r} not in {sorted(SOLVERS)}")
        self.name = key
        if self.accuracy <= 0.0:
            raise ConfigurationError(f"solver.accuracy must be positive, got {self.accuracy}")
        if self.max_evaluations <= 0:
            raise ConfigurationError(f"solver.max_evaluations must be positive, got {self.max_evaluations}")
        if not self.bracket_low < self.bracket_high:
            raise ConfigurationError(
                f"solver bracket [{self.bracket_low}, {self.bracket_high}] is empty"
            )

    @property
    def bracket(self) -> Tuple[float, float]:
        return (self.bracket_low, self.bracket_high)


# ---------- Model ----------

@dataclass
class ModelConfig:
    """
    kind    : hull_white / ho_lee / black_karasinski / vasicek / cir / g2
    params  : keyword arguments of the model family (a, sigma, ...)
    fitting : numerical / analytic / none; None keeps the family default
    """
    kind: str = "hull_white"
    params: Dict[str, float] = field(default_factory=dict)
    fitting: Optional[str] = None

    def __post_init__(self) -> None:
        key = str(self.kind).strip().lower().replace("-", "_")
        if key not in MODEL_FACTORIES:
            raise ConfigurationError(f"model.kind {self.kind!r} not in {sorted(MODEL_FACTORIES)}")
        self.kind = key
        if self.fitting is not None and self.fitting not in FITTING_METHODS:
            raise ConfigurationError(f"model.fitting {self.fitting!r} not in {FITTING_METHODS}")
        self.params = {str(k): float(v) for k, v in (self.params or {}).items()}


# ---------- Curve ----------

@dataclass
class CurveConfig:
    """
    Either a flat quote (flat_rate + compounding) or a list of
    (tenor_years, zero_rate) points.
    """
    flat_rate: Optional[float] = None
    compounding: str = "continuous"
    frequency: int = 1
    points: List[Tuple[float, float]] = field(default_factory=list)
    interpolation: str = "linear"

    def __post_init__(self) -> None:
        if self.flat_rate is None and not self.points:
            raise ConfigurationError("curve needs either flat_rate or points")
        if self.flat_rate is not None and self.points:
            raise ConfigurationError("curve takes flat_rate or points, not both")


@dataclass
class AppConfig:
    """
    Top-level configuration object for rates_core.

    - lattice: grid refinement
    - solver:  per-slice fitting solver
    - model:   model family and parameters
    - curve:   discount curve to fit
    - controls_file / controls_sheet: optional Excel Controls sheet whose
      MODEL_<PARAM> rows override model.params
    """
    lattice: LatticeConfig = field(default_factory=LatticeConfig)
    solver: SolverConfig = field(default_factory=SolverConfig)
    model: ModelConfig = field(default_factory=ModelConfig)
    curve: Optional[CurveConfig] = None
    controls_file: Optional[Path] = None
    controls_sheet: str = "Controls"

    # ---------- constructors ----------

    @classmethod
    def from_dict(cls, data: Dict[str, Any], base_dir: Optional[Path] = None) -> "AppConfig":
        data = data or {}

        def resolve_path(p: str) -> Path:
            path = Path(p)
            if not path.is_absolute() and base_dir is not None:
                path = base_dir / path
            return path.resolve()

        lattice_data: Dict[str, Any] = data.get("lattice", {}) or {}
        lattice_cfg = LatticeConfig(
            steps=int(lattice_data.get("steps", 100)),
            is_positive=bool(lattice_data.get("is_positive", False)),
        )

        solver_data: Dict[str, Any] = data.get("solver", {}) or {}
        solver_cfg = SolverConfig(
            name=solver_data.get("name", "brent"),
            accuracy=float(solver_data.get("accuracy", 1e-7)),
            max_evaluations=int(solver_data.get("max_evaluations", 1000)),
            bracket_low=float(solver_data.get("bracket_low", -100.0)),
            bracket_high=float(solver_data.get("bracket_high", 100.0)),
            initial_guess=float(solver_data.get("initial_guess", 0.0)),
        )

        model_data: Dict[str, Any] = data.get("model", {}) or {}
        model_cfg = ModelConfig(
            kind=model_data.get("kind", "hull_white"),
            params=model_data.get("params", {}) or {},
            fitting=model_data.get("fitting"),
        )

        curve_cfg: Optional[CurveConfig] = None
        curve_data: Dict[str, Any] = data.get("curve", {}) or {}
        if curve_data:
            points = [(float(p[0]), float(p[1])) for p in curve_data.get("points", []) or []]
            flat = curve_data.get("flat_rate")
            curve_cfg = CurveConfig(
                flat_rate=float(flat) if flat is not None else None,
                compounding=curve_data.get("compounding", "continuous"),
                frequency=int(curve_data.get("frequency", 1)),
                points=points,
                interpolation=curve_data.get("interpolation", "linear"),
            )

        controls_file: Optional[Path] = None
        controls_data: Dict[str, Any] = data.get("controls", {}) or {}
        if controls_data.get("file"):
            controls_file = resolve_path(controls_data["file"])

        return cls(
            lattice=lattice_cfg,
            solver=solver_cfg,
            model=model_cfg,
            curve=curve_cfg,
            controls_file=controls_file,
            controls_sheet=controls_data.get("sheet", "Controls"),
        )

    @classmethod
    def from_yaml(cls, cfg_path: Union[str, Path]) -> "AppConfig":
        """
        Load configuration from a YAML file.

        Relative paths in the YAML (controls.file) are resolved against
        the directory holding the YAML file.
        """
        cfg_path = Path(cfg_path)
        text = cfg_path.read_text(encoding="utf-8")
        data: Dict[str, Any] = yaml.safe_load(text) or {}
        if not isinstance(data, dict):
            raise ConfigurationError(f"{cfg_path}: top level must be a mapping")
        return cls.from_dict(data, base_dir=cfg_path.parent)

    # ---------- factories ----------

    def make_solver(self) -> Solver1D:
        return make_solver(self.solver.name, self.solver.max_evaluations)

    def make_curve(self) -> DiscountCurve:
        if self.curve is None:
            raise ConfigurationError("no curve section in configuration")
        if self.curve.flat_rate is not None:
            return FlatForward(
                self.curve.flat_rate,
                compounding=self.curve.compounding,
                frequency=self.curve.frequency,
            )
        return ZeroCurve.from_pairs(self.curve.points, interpolation=self.curve.interpolation)

    def make_grid(self, times) -> TimeGrid:
        return TimeGrid(times, self.lattice.steps)

    def model_params(self) -> Dict[str, float]:
        """model.params with any MODEL_<PARAM> overrides from the Controls sheet."""
        params = dict(self.model.params)
        if self.controls_file is None:
            return params
        for name in list(params):
            raw = self.get_control_value(f"MODEL_{name.upper()}")
            if raw not in (None, ""):
                params[name] = float(raw)
        return params

    def make_model(self, curve: Optional[DiscountCurve] = None) -> ShortRateModel:
        """Model family from the model section, fitted with the solver section."""
        params: Dict[str, Any] = self.model_params()
        model = make_model(
            self.model.kind,
            curve,
            solver_name=self.solver.name,
            max_evaluations=self.solver.max_evaluations,
            accuracy=self.solver.accuracy,
            bracket=self.solver.bracket,
            initial_guess=self.solver.initial_guess,
            is_positive=True if self.lattice.is_positive else None,
            **params,
        )
        if self.model.fitting is not None:
            model.fitting = self.model.fitting
        return model

    # -------------- Controls helpers --------------

    def load_controls_df(self) -> pd.DataFrame:
        """
        Load the Controls sheet.

        Expected columns (flexible naming):
          - Control / ControlName / Name / Key
          - Value
        """
        if self.controls_file is None:
            raise ConfigurationError("controls.file not set in YAML.")
        return pd.read_excel(self.controls_file, sheet_name=self.controls_sheet)

    def get_control_value(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """
        Look up a value in the Controls sheet by control name.

        Example usage:
            app_cfg.get_control_value("MODEL_SIGMA")

        Returns string or default if not found.
        """
        df = self.load_controls_df()

        # Normalise column names
        norm = {str(c).lower().replace(" ", ""): c for c in df.columns}

        key_col = None
        val_col = None
        for candidate in ("control", "controlname", "name", "key"):
            if candidate in norm:
                key_col = norm[candidate]
                break
        for candidate in ("value", "val"):
            if candidate in norm:
                val_col = norm[candidate]
                break

        if key_col is None or val_col is None:
            raise ConfigurationError(
                f"Controls sheet needs a name and a value column, got {list(df.columns)}"
            )

        mask = df[key_col].astype(str).str.strip().str.upper() == name.upper()
        sub = df.loc[mask]
        if sub.empty:
            return default

        val = sub.iloc[0][val_col]
        if pd.isna(val):
            return default

        return str(val)
