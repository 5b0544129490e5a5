"""
Configuration loading for rates_core.
"""

from .loader import AppConfig, CurveConfig, LatticeConfig, ModelConfig, SolverConfig

__all__ = ["AppConfig", "LatticeConfig", "SolverConfig", "ModelConfig", "CurveConfig"]
