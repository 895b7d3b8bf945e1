"""Command-line entry point for occupancy mapping runs.

Usage:
    python -m occgrid3d.run --config configs/small.yaml
    python -m occgrid3d.run --config configs/small.yaml --points scan.npy --viewpoint 0 0 1

This is a thin CLI wrapper.  All mapping and metric logic lives in
occgrid3d/experiment/runner.py.  Without ``--points`` a synthetic room is
generated and scanned; with it, one scan is inserted from the given file.
"""

from __future__ import annotations

import argparse
import sys

import numpy as np

from occgrid3d.experiment.config import load_config
from occgrid3d.experiment.runner import Scan, run_mapping
from occgrid3d.io.pointcloud import load_point_cloud


def main(argv: list[str] | None = None) -> int:
    """Run one mapping pass and print the resulting metrics."""
    parser = argparse.ArgumentParser(description="Dense 3D occupancy mapping from point clouds")
    parser.add_argument("--config", default=None, help="Path to YAML config file")
    parser.add_argument("--points", default=None, help="Point cloud file (.npy, .xyz, .txt)")
    parser.add_argument(
        "--viewpoint", type=float, nargs=3, default=[0.0, 0.0, 0.0],
        metavar=("X", "Y", "Z"), help="Sensor origin for --points",
    )
    parser.add_argument("--output-dir", default=None, help="Override output_dir")
    args = parser.parse_args(argv)

    overrides = {"output_dir": args.output_dir} if args.output_dir else None
    config = load_config(args.config, overrides)

    scans = None
    if args.points is not None:
        cloud = load_point_cloud(args.points)
        scans = [Scan(viewpoint=np.asarray(args.viewpoint, dtype=np.float64), cloud=cloud)]

    grid_cfg = config["grid"]
    print("Occupancy mapping")
    print(f"  Config     : {args.config or '(defaults)'}")
    print(f"  Grid       : {grid_cfg['resolution']}^3 @ {grid_cfg['voxel_size']} m/voxel")
    print(f"  Source     : {args.points or 'synthetic room'}")
    print(f"  Output     : {config['output_dir']}")

    result = run_mapping(config, scans=scans)

    print("\nResults:")
    for name, value in result.metrics.items():
        if isinstance(value, float) and value == value:
            print(f"  {name:<26}: {value:.4f}")
        else:
            print(f"  {name:<26}: N/A")
    print(f"\n  Metrics JSON: {result.output_dir / 'metrics.json'}")
    print("\nDone.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
