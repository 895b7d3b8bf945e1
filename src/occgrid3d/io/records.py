"""Host-side voxel records: export and rehydration of an occupancy store.

A ``VoxelRecords`` holds three aligned arrays -- integer grid indices,
log-odds and colours -- in ascending linear-index order.  Log-odds are
copied verbatim (NaN included), so a round trip preserves both the exact
values and the classification of every voxel.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import numpy as np

from occgrid3d.grid.occupancy_grid import OccupancyGrid
from occgrid3d.grid.voxel import DEFAULT_COLOR


@dataclass
class VoxelRecords:
    """Voxel store contents detached from any grid."""

    indices: np.ndarray
    prob_log: np.ndarray
    colors: np.ndarray

    def __len__(self) -> int:
        return int(self.indices.shape[0])

    @classmethod
    def from_grid(cls, grid: OccupancyGrid) -> "VoxelRecords":
        store = grid.store
        return cls(
            indices=grid.unlinearize(store.keys).astype(np.int32),
            prob_log=store.prob_log.copy(),
            colors=store.colors.copy(),
        )

    def to_grid(self, grid: OccupancyGrid) -> int:
        """Replace *grid*'s store with these records.

        Records outside *grid* are skipped; when two records share an index
        the later one wins.

        Returns
        -------
        int
            Number of voxels stored in *grid*.
        """
        idx = np.asarray(self.indices, dtype=np.int64).reshape(-1, 3)
        valid = grid.in_bounds(idx)
        keys = grid.linearize(idx[valid])
        prob = np.asarray(self.prob_log, dtype=np.float32).reshape(-1)[valid]
        colors = np.asarray(self.colors, dtype=np.float32).reshape(-1, 3)[valid]
        # Keep the last occurrence of each key.
        rev_keys = keys[::-1]
        _, first_rev = np.unique(rev_keys, return_index=True)
        last = keys.size - 1 - first_rev
        grid.store.replace(keys[last], prob[last], colors[last])
        return len(grid.store)

    def to_dict(self) -> dict[tuple[int, int, int], dict[str, Any]]:
        """Mapping ``(ix, iy, iz) -> {"prob_log": float, "color": [r, g, b]}``."""
        out: dict[tuple[int, int, int], dict[str, Any]] = {}
        for idx, prob, color in zip(self.indices, self.prob_log, self.colors):
            key = (int(idx[0]), int(idx[1]), int(idx[2]))
            out[key] = {"prob_log": float(prob), "color": [float(c) for c in color]}
        return out

    @classmethod
    def from_dict(cls, records: dict[tuple[int, int, int], dict[str, Any]]) -> "VoxelRecords":
        """Inverse of :meth:`to_dict`; a missing ``color`` gets the default."""
        n = len(records)
        indices = np.empty((n, 3), dtype=np.int32)
        prob_log = np.empty(n, dtype=np.float32)
        colors = np.empty((n, 3), dtype=np.float32)
        for i, (key, rec) in enumerate(records.items()):
            indices[i] = key
            prob_log[i] = rec.get("prob_log", float("nan"))
            colors[i] = rec.get("color", DEFAULT_COLOR)
        return cls(indices, prob_log, colors)
