# TDP: Map quality metrics
# Metrics:
#   1. occupancy_precision_recall: occupied voxels vs ground-truth surface voxels
#   2. known_fraction:             share of the index cube that has been observed
#   3. mean_entropy:               mean binary entropy of known voxels
#   4. store_memory_bytes:         bytes held by the voxel store
"""Map quality metrics over an OccupancyGrid."""

from __future__ import annotations

import numpy as np

from occgrid3d.fusion.bayesian import logodds_to_probability
from occgrid3d.grid.occupancy_grid import OccupancyGrid


# ---------------------------------------------------------------------------
# Metric 1: Occupied-voxel precision / recall
# ---------------------------------------------------------------------------

def occupancy_precision_recall(
    grid: OccupancyGrid,
    ground_truth: np.ndarray,
) -> tuple[float, float]:
    """Precision and recall of the grid's occupied voxels.

    Parameters
    ----------
    grid:
        Mapped grid.
    ground_truth:
        Grid indices of truly occupied voxels, shape (M, 3).

    Returns
    -------
    tuple[float, float]
        ``(precision, recall)``.  Precision is NaN when nothing is occupied;
        recall is NaN when the ground truth is empty.
    """
    predicted = grid.linearize(grid.extract_occupied_voxel_indices())
    gt = np.asarray(ground_truth, dtype=np.int64).reshape(-1, 3)
    truth = np.unique(grid.linearize(gt[grid.in_bounds(gt)]))
    tp = float(np.intersect1d(predicted, truth, assume_unique=True).size)
    precision = tp / predicted.size if predicted.size else float("nan")
    recall = tp / truth.size if truth.size else float("nan")
    return precision, recall


# ---------------------------------------------------------------------------
# Metric 2: Known fraction
# ---------------------------------------------------------------------------

def known_fraction(grid: OccupancyGrid) -> float:
    """Fraction of the ``resolution**3`` voxels that are known."""
    return grid.count_known_voxels() / float(grid.num_cells)


# ---------------------------------------------------------------------------
# Metric 3: Mean entropy
# ---------------------------------------------------------------------------

def mean_entropy(grid: OccupancyGrid) -> float:
    """Mean binary entropy H(p) in bits over known voxels; NaN if none."""
    _, prob = grid.occupancy_probability()
    if prob.size == 0:
        return float("nan")
    p = np.clip(prob.astype(np.float64), 1e-10, 1.0 - 1e-10)
    H = -p * np.log2(p) - (1.0 - p) * np.log2(1.0 - p)
    return float(np.mean(H))


# ---------------------------------------------------------------------------
# Metric 4: Resource cost
# ---------------------------------------------------------------------------

def store_memory_bytes(grid: OccupancyGrid) -> int:
    """Bytes consumed by the voxel store arrays."""
    return grid.store.nbytes()


def compute_metrics(grid: OccupancyGrid, ground_truth: np.ndarray | None = None) -> dict[str, float]:
    """All metrics for *grid* in one dict (precision/recall only with ground truth)."""
    metrics: dict[str, float] = {
        "known_voxels": float(grid.count_known_voxels()),
        "free_voxels": float(grid.count_free_voxels()),
        "occupied_voxels": float(grid.count_occupied_voxels()),
        "known_fraction": known_fraction(grid),
        "mean_entropy": mean_entropy(grid),
        "mean_occupied_probability": _mean_occupied_probability(grid),
        "memory_bytes": float(store_memory_bytes(grid)),
    }
    if ground_truth is not None:
        precision, recall = occupancy_precision_recall(grid, ground_truth)
        metrics["precision"] = precision
        metrics["recall"] = recall
    return metrics


def _mean_occupied_probability(grid: OccupancyGrid) -> float:
    log = grid.store.prob_log
    occupied = log[log > grid.occ_prob_thres_log]
    if occupied.size == 0:
        return float("nan")
    return float(np.mean(logodds_to_probability(occupied)))
