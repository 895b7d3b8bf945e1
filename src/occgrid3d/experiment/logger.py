# TDP: Minimal structured JSON logger
# Approach: Write one JSON object per line (JSONL) to a log file.
#   Each insert entry contains the step number, the viewpoint, the update
#   summary and the grid's classification counts.  Occupied-voxel snapshots
#   (grid indices, not log-odds) are written every N steps to keep files small.
#   The logger streams directly to disk and does not accumulate entries in RAM.
# Schema per insert entry:
#   { "step": int, "viewpoint": [x, y, z],
#     "update": {num_points, num_rays, num_events, num_touched, num_created},
#     "counts": {known, free, occupied},
#     "occupied_snapshot": [[ix, iy, iz], ...] }   <- optional
"""Minimal structured JSON (JSONL) logger for mapping runs."""

from __future__ import annotations

import json
from dataclasses import asdict
from pathlib import Path
from typing import Any

import numpy as np

from occgrid3d.grid.occupancy_grid import OccupancyGrid, UpdateSummary


def json_value(value: Any) -> Any:
    """Make numpy scalars JSON-safe and turn NaN into null."""
    if isinstance(value, (np.floating, float)):
        return None if np.isnan(value) else float(value)
    if isinstance(value, np.integer):
        return int(value)
    return value


class MapLogger:
    """Writes mapping events to a JSONL file.

    Parameters
    ----------
    log_path:
        Path to the output JSONL log file.
    snapshot_interval:
        Write the occupied voxel indices every this many steps.  Set to 0
        to disable snapshots.
    """

    def __init__(self, log_path: Path, snapshot_interval: int = 0) -> None:
        self._path = Path(log_path)
        self._interval = snapshot_interval
        self._fh = self._path.open("w", encoding="utf-8")

    @property
    def path(self) -> Path:
        return self._path

    def log_insert(
        self,
        *,
        step: int,
        viewpoint: np.ndarray,
        summary: UpdateSummary,
        grid: OccupancyGrid,
    ) -> None:
        """Write one entry describing an insert into *grid*.

        Parameters
        ----------
        step:
            Scan number (0-indexed).
        viewpoint:
            Sensor origin used for the insert.
        summary:
            Value returned by ``OccupancyGrid.insert``.
        grid:
            Grid after the insert; its counts (and, on snapshot steps, its
            occupied indices) are recorded.
        """
        entry: dict[str, Any] = {
            "step": step,
            "viewpoint": [float(v) for v in np.asarray(viewpoint).reshape(3)],
            "update": {k: json_value(v) for k, v in asdict(summary).items()},
            "counts": {
                "known": grid.count_known_voxels(),
                "free": grid.count_free_voxels(),
                "occupied": grid.count_occupied_voxels(),
            },
        }
        if self._interval > 0 and step % self._interval == 0:
            entry["occupied_snapshot"] = grid.extract_occupied_voxel_indices().tolist()

        self._fh.write(json.dumps(entry) + "\n")
        self._fh.flush()

    def log_event(self, event_type: str, data: dict[str, Any]) -> None:
        """Write an arbitrary event entry to the log file.

        Parameters
        ----------
        event_type:
            Short string identifying the event kind.
        data:
            JSON-serialisable data; numpy scalars and NaN are converted.
        """
        entry: dict[str, Any] = {"event": event_type, **{k: json_value(v) for k, v in data.items()}}
        self._fh.write(json.dumps(entry) + "\n")
        self._fh.flush()

    def close(self) -> None:
        """Close the log file handle."""
        self._fh.close()

    def __enter__(self) -> "MapLogger":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()
