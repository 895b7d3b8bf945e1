"""Bayesian log-odds helpers and independent-evidence grid fusion.

Fusion rule
-----------
Independent log-odds evidence adds: L_fused = L_a + L_b, clamped.  A voxel
unknown in one grid contributes nothing, so fusing with an empty grid
changes nothing.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np

if TYPE_CHECKING:
    from occgrid3d.grid.occupancy_grid import OccupancyGrid


def logodds_to_probability(log_odds: np.ndarray) -> np.ndarray:
    """Convert log-odds to occupancy probability in [0, 1].

    NaN (unknown) maps to NaN.
    """
    log = np.asarray(log_odds, dtype=np.float64)
    prob = 1.0 - 1.0 / (1.0 + np.exp(log))
    return prob.astype(np.float32)


def probability_to_logodds(prob: np.ndarray, eps: float = 1e-6) -> np.ndarray:
    """Convert occupancy probability to log-odds; *prob* is clipped to (eps, 1-eps)."""
    p = np.clip(np.asarray(prob, dtype=np.float64), eps, 1.0 - eps)
    return np.log(p / (1.0 - p))


def fuse_grids(grid_a: OccupancyGrid, grid_b: OccupancyGrid) -> OccupancyGrid:
    """Merge two grids of identical geometry into a new grid.

    The result keeps *grid_a*'s tunables.  Voxels known in both grids get
    the clamped sum of their log-odds; voxels known in only one keep that
    value; colours come from *grid_a* where it stores the voxel.

    Raises
    ------
    ValueError
        If voxel size, resolution or origin differ.
    """
    if (
        grid_a.voxel_size != grid_b.voxel_size
        or grid_a.resolution != grid_b.resolution
        or not np.array_equal(grid_a.origin, grid_b.origin)
    ):
        raise ValueError(f"cannot fuse grids of different geometry: {grid_a!r} vs {grid_b!r}")

    fused = grid_a.copy()
    store_a, store_b = fused.store, grid_b.store
    if len(store_b) == 0:
        return fused

    keys = np.union1d(store_a.keys, store_b.keys)
    pos_a, in_a = store_a.lookup(keys)
    pos_b, in_b = store_b.lookup(keys)

    la = np.full(keys.size, np.nan)
    lb = np.full(keys.size, np.nan)
    la[in_a] = store_a.prob_log[pos_a[in_a]]
    lb[in_b] = store_b.prob_log[pos_b[in_b]]
    known = ~np.isnan(la) | ~np.isnan(lb)
    total = np.nan_to_num(la, nan=0.0) + np.nan_to_num(lb, nan=0.0)
    prob_log = np.where(
        known,
        np.clip(total, grid_a.clamping_thres_min, grid_a.clamping_thres_max),
        np.nan,
    )

    colors = np.empty((keys.size, 3), dtype=np.float32)
    colors[in_a] = store_a.colors[pos_a[in_a]]
    only_b = ~in_a
    colors[only_b] = store_b.colors[pos_b[only_b]]

    store_a.replace(keys, prob_log, colors)
    return fused
