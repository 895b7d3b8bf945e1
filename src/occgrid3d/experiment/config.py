# TDP: Config loader
# Approach: Load YAML file and merge with defaults. Return plain dict so
#   downstream code uses standard dict access. Every parameter has an explicit
#   default here so configs can be minimal and only override what matters.
# Risks: Silent merging of defaults may hide misspelt keys; build_grid only
#   reads the keys documented below.
"""Config loader for occupancy mapping runs.

Loads a YAML config file and merges it with built-in defaults so that partial
configs work correctly.  ``build_grid`` turns the ``grid`` and ``model``
sections into a configured :class:`~occgrid3d.grid.OccupancyGrid`.
"""

from __future__ import annotations

import copy
from pathlib import Path
from typing import Any

import yaml

from occgrid3d.grid.occupancy_grid import OccupancyGrid

_DEFAULTS: dict[str, Any] = {
    "name": "default",
    "output_dir": "results/default",
    "seed": 0,
    "grid": {
        "voxel_size": 0.1,
        "resolution": 128,
        "origin": [0.0, 0.0, 0.0],
    },
    "model": {
        "clamping_thres_min": -2.0,
        "clamping_thres_max": 3.5,
        "prob_hit_log": 0.85,
        "prob_miss_log": -0.4,
        "occ_prob_thres_log": 0.0,
        "visualize_free_area": True,
    },
    "insert": {
        "max_range": -1.0,
        "chunk_size": 65536,
    },
    "scene": {
        "width": 8.0,
        "depth": 6.0,
        "height": 3.0,
        "origin": [2.0, 2.0, 2.0],
        "obstacles": 3,
        "scans": 5,
        "sensor_height": 1.0,
        "num_azimuth": 180,
        "num_elevation": 45,
        "max_elevation_deg": 60.0,
        "max_range": 12.0,
        "noise_stddev": 0.0,
    },
    "logging": {
        "log_file": "run.jsonl",
        "snapshot_interval": 0,
    },
}


def _deep_merge(base: dict, override: dict) -> dict:
    """Recursively merge override into a copy of base."""
    result = copy.deepcopy(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = copy.deepcopy(value)
    return result


def default_config() -> dict[str, Any]:
    """Return a fresh copy of the built-in defaults."""
    return copy.deepcopy(_DEFAULTS)


def load_config(path: str | Path | None = None, overrides: dict[str, Any] | None = None) -> dict[str, Any]:
    """Load YAML config from *path* and merge with defaults.

    Parameters
    ----------
    path:
        Path to a YAML config file, or None for the defaults alone.
    overrides:
        Optional dict merged last (e.g. from command-line flags).

    Returns
    -------
    dict
        Merged configuration dictionary.
    """
    config = default_config()
    if path is not None:
        path = Path(path)
        if not path.exists():
            msg = f"Config file not found: {path}"
            raise FileNotFoundError(msg)
        with path.open("r") as fh:
            user_config = yaml.safe_load(fh) or {}
        config = _deep_merge(config, user_config)
    if overrides:
        config = _deep_merge(config, overrides)
    return config


def build_grid(config: dict[str, Any]) -> OccupancyGrid:
    """Construct an empty OccupancyGrid from the ``grid``/``model``/``insert`` sections.

    Raises
    ------
    ConfigurationError
        If the geometry or log-odds model is invalid.
    """
    grid_cfg = config["grid"]
    model_cfg = config["model"]
    return OccupancyGrid(
        float(grid_cfg["voxel_size"]),
        int(grid_cfg["resolution"]),
        tuple(float(v) for v in grid_cfg.get("origin", (0.0, 0.0, 0.0))),
        clamping_thres_min=float(model_cfg["clamping_thres_min"]),
        clamping_thres_max=float(model_cfg["clamping_thres_max"]),
        prob_hit_log=float(model_cfg["prob_hit_log"]),
        prob_miss_log=float(model_cfg["prob_miss_log"]),
        occ_prob_thres_log=float(model_cfg["occ_prob_thres_log"]),
        visualize_free_area=bool(model_cfg["visualize_free_area"]),
        chunk_size=int(config.get("insert", {}).get("chunk_size", 65536)),
    )
