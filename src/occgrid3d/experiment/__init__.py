"""Configuration, JSONL logging, metrics and the mapping runner."""

from occgrid3d.experiment.config import build_grid, default_config, load_config
from occgrid3d.experiment.logger import MapLogger
from occgrid3d.experiment.metrics import compute_metrics
from occgrid3d.experiment.runner import MappingResult, Scan, run_mapping

__all__ = [
    "MapLogger",
    "MappingResult",
    "Scan",
    "build_grid",
    "compute_metrics",
    "default_config",
    "load_config",
    "run_mapping",
]
