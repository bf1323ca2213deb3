"""Configuration parsing modules for crossmatrix."""

from .ini_parser import DEFAULT_CONFIG_NAME, PipelineConfig, load_config
from .matrix_config import Axis, MatrixConfig, OverrideRecord, TriggerConfig

__all__ = [
    "DEFAULT_CONFIG_NAME",
    "PipelineConfig",
    "load_config",
    "Axis",
    "MatrixConfig",
    "OverrideRecord",
    "TriggerConfig",
]
