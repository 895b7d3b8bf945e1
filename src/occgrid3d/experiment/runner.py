# TDP: Mapping runner
#
# Approach: Keep orchestration out of the CLI entry point (run.py).  The
#   runner owns scan acquisition (synthetic room or caller-supplied clouds),
#   the insert loop, JSONL logging, metric collection and file output.
#
# File layout:
#   {output_dir}/
#     run.jsonl      (run_start, one entry per insert, run_complete)
#     metrics.json   (final metrics + timing)
"""Mapping orchestration: scans in, populated grid and metrics out.

Provides:
- Scan: one viewpoint and the points observed from it
- MappingResult: grid, metrics and output location of one run
- synthetic_scans: scans of a generated room with its ground truth
- run_mapping: full run driven by a config dict
"""

from __future__ import annotations

import json
import math
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import numpy as np

from occgrid3d.experiment.config import build_grid
from occgrid3d.experiment.logger import MapLogger, json_value
from occgrid3d.experiment.metrics import compute_metrics
from occgrid3d.grid.dense_index import DenseVoxelIndex
from occgrid3d.grid.occupancy_grid import OccupancyGrid
from occgrid3d.io.pointcloud import PointCloud
from occgrid3d.simulation.scene import (
    cast_rays_3d,
    generate_room,
    ground_truth_indices,
    sample_viewpoints,
)


@dataclass
class Scan:
    """Points observed from one sensor viewpoint."""

    viewpoint: np.ndarray
    cloud: PointCloud


@dataclass
class MappingResult:
    """Outcome of :func:`run_mapping`."""

    grid: OccupancyGrid
    metrics: dict[str, float]
    output_dir: Path
    insert_seconds: list[float] = field(default_factory=list)


def synthetic_scans(
    config: dict[str, Any],
    index: DenseVoxelIndex,
    rng: np.random.Generator,
) -> tuple[list[Scan], np.ndarray]:
    """Generate scans of a random room described by ``config["scene"]``.

    Returns
    -------
    tuple[list[Scan], np.ndarray]
        The scans and the ground-truth occupied voxel indices in *index*.
    """
    sc = config["scene"]
    scene = generate_room(
        width=float(sc["width"]),
        depth=float(sc["depth"]),
        height=float(sc["height"]),
        num_obstacles=int(sc["obstacles"]),
        rng=rng,
        origin=tuple(float(v) for v in sc["origin"]),
    )
    viewpoints = sample_viewpoints(
        scene, int(sc["scans"]), rng, sensor_height=float(sc["sensor_height"])
    )
    scans = []
    for vp in viewpoints:
        pts = cast_rays_3d(
            scene,
            vp,
            num_azimuth=int(sc["num_azimuth"]),
            num_elevation=int(sc["num_elevation"]),
            max_range=float(sc["max_range"]),
            rng=rng,
            max_elevation=math.radians(float(sc["max_elevation_deg"])),
            noise_stddev=float(sc["noise_stddev"]),
        )
        scans.append(Scan(viewpoint=vp, cloud=PointCloud(pts)))
    return scans, ground_truth_indices(scene, index)


def run_mapping(
    config: dict[str, Any],
    scans: list[Scan] | None = None,
    ground_truth: np.ndarray | None = None,
) -> MappingResult:
    """Build a grid from *config*, insert every scan and write outputs.

    Parameters
    ----------
    config:
        Merged configuration (see ``occgrid3d.experiment.config``).
    scans:
        Scans to insert.  When None, a synthetic room is generated from
        ``config["scene"]`` and its ground truth is used for metrics.
    ground_truth:
        Optional ground-truth occupied voxel indices for caller scans.

    Returns
    -------
    MappingResult
    """
    rng = np.random.default_rng(int(config.get("seed", 0)))
    grid = build_grid(config)
    if scans is None:
        scans, ground_truth = synthetic_scans(config, grid, rng)

    output_dir = Path(config["output_dir"])
    output_dir.mkdir(parents=True, exist_ok=True)
    log_cfg = config.get("logging", {})
    log_path = output_dir / log_cfg.get("log_file", "run.jsonl")
    max_range = float(config.get("insert", {}).get("max_range", -1.0))

    timings: list[float] = []
    with MapLogger(log_path, snapshot_interval=int(log_cfg.get("snapshot_interval", 0))) as logger:
        logger.log_event("run_start", {
            "name": config.get("name", "default"),
            "voxel_size": grid.voxel_size,
            "resolution": grid.resolution,
            "num_scans": len(scans),
            "max_range": max_range,
        })
        for step, scan in enumerate(scans):
            t0 = time.perf_counter()
            summary = grid.insert(scan.cloud, scan.viewpoint, max_range)
            timings.append(time.perf_counter() - t0)
            logger.log_insert(step=step, viewpoint=scan.viewpoint, summary=summary, grid=grid)

        metrics = compute_metrics(grid, ground_truth)
        metrics["insert_seconds_total"] = float(sum(timings))
        logger.log_event("run_complete", metrics)

    with (output_dir / "metrics.json").open("w") as fh:
        json.dump({k: json_value(v) for k, v in metrics.items()}, fh, indent=2)

    return MappingResult(grid=grid, metrics=metrics, output_dir=output_dir, insert_seconds=timings)
