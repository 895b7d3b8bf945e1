# TDP: Occupancy voxel store as sorted parallel arrays
# Approach: Keep three aligned numpy arrays -- int64 linear keys (strictly
#   ascending), float32 log-odds and float32 RGB colours.  Only touched voxels
#   are materialised.  Bulk updates arrive already reduced by key (one net
#   delta per key, keys ascending) so a merge is a single searchsorted over
#   the incoming keys, an in-place vectorised update of existing entries and
#   one concatenate + argsort for the new ones.
#   Log-odds: NaN = never observed; 0.0 = p 0.5; >0 occupied side; <0 free side.
# Risks: Each merge that creates voxels reallocates the arrays (O(M)).  Fine
#   for batch inserts of whole scans; per-point inserts would be quadratic.
"""Voxel value type and the sorted-array voxel store."""

from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np

DEFAULT_COLOR: tuple[float, float, float] = (0.0, 0.0, 1.0)


@dataclass
class OccupancyVoxel:
    """One voxel of an occupancy grid.

    ``prob_log`` is NaN when the voxel has never been observed.
    """

    grid_index: tuple[int, int, int]
    prob_log: float = float("nan")
    color: tuple[float, float, float] = field(default=DEFAULT_COLOR)

    @property
    def is_known(self) -> bool:
        return not np.isnan(self.prob_log)


class OccupancyVoxelStore:
    """Mapping from linear voxel key to (log-odds, colour).

    Keys are kept strictly ascending so that lookups use binary search and
    every extraction comes out in linear-index order.
    """

    def __init__(self) -> None:
        self.keys: np.ndarray = np.empty(0, dtype=np.int64)
        self.prob_log: np.ndarray = np.empty(0, dtype=np.float32)
        self.colors: np.ndarray = np.empty((0, 3), dtype=np.float32)

    def __len__(self) -> int:
        return int(self.keys.size)

    def clear(self) -> None:
        self.keys = np.empty(0, dtype=np.int64)
        self.prob_log = np.empty(0, dtype=np.float32)
        self.colors = np.empty((0, 3), dtype=np.float32)

    def copy(self) -> "OccupancyVoxelStore":
        other = OccupancyVoxelStore()
        other.keys = self.keys.copy()
        other.prob_log = self.prob_log.copy()
        other.colors = self.colors.copy()
        return other

    def nbytes(self) -> int:
        """Bytes held by the three backing arrays."""
        return int(self.keys.nbytes + self.prob_log.nbytes + self.colors.nbytes)

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def lookup(self, keys: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        """Locate *keys* in the store.

        Returns
        -------
        tuple[np.ndarray, np.ndarray]
            ``(positions, found)``.  ``positions[i]`` is the array slot of
            ``keys[i]`` where ``found[i]`` is True, and undefined otherwise.
        """
        keys = np.asarray(keys, dtype=np.int64).reshape(-1)
        pos = np.searchsorted(self.keys, keys)
        if self.keys.size == 0:
            return pos, np.zeros(keys.size, dtype=bool)
        safe = np.minimum(pos, self.keys.size - 1)
        found = (pos < self.keys.size) & (self.keys[safe] == keys)
        return safe, found

    # ------------------------------------------------------------------
    # Bulk mutation
    # ------------------------------------------------------------------

    def merge_deltas(
        self,
        keys: np.ndarray,
        deltas: np.ndarray,
        clamp_min: float,
        clamp_max: float,
    ) -> int:
        """Add one net log-odds delta per key and clamp the result.

        Parameters
        ----------
        keys:
            Unique linear keys in ascending order, shape (K,).
        deltas:
            Net delta for each key, shape (K,).  Summed before the call.
        clamp_min, clamp_max:
            Log-odds saturation bounds.

        Returns
        -------
        int
            Number of voxels created by this merge.

        A missing entry, or an entry whose log-odds is NaN, starts from 0.0.
        """
        keys = np.asarray(keys, dtype=np.int64)
        deltas = np.asarray(deltas, dtype=np.float64)
        pos, found = self.lookup(keys)

        if np.any(found):
            slots = pos[found]
            prior = self.prob_log[slots].astype(np.float64)
            prior = np.where(np.isnan(prior), 0.0, prior)
            self.prob_log[slots] = np.clip(prior + deltas[found], clamp_min, clamp_max)

        new = ~found
        n_new = int(np.count_nonzero(new))
        if n_new:
            values = np.clip(deltas[new], clamp_min, clamp_max)
            self._append(keys[new], values, None)
        return n_new

    def assign(self, keys: np.ndarray, value: float) -> int:
        """Overwrite the log-odds of *keys* (ascending, unique) with *value*.

        Returns the number of voxels created.
        """
        keys = np.asarray(keys, dtype=np.int64)
        pos, found = self.lookup(keys)
        self.prob_log[pos[found]] = value
        new = ~found
        n_new = int(np.count_nonzero(new))
        if n_new:
            self._append(keys[new], np.full(n_new, value, dtype=np.float64), None)
        return n_new

    def replace(self, keys: np.ndarray, prob_log: np.ndarray, colors: np.ndarray | None = None) -> None:
        """Replace the whole store contents.

        *keys* must be unique; they are sorted here together with their values.
        """
        keys = np.asarray(keys, dtype=np.int64).reshape(-1)
        prob_log = np.asarray(prob_log, dtype=np.float32).reshape(-1)
        if colors is None:
            colors = np.tile(np.asarray(DEFAULT_COLOR, dtype=np.float32), (keys.size, 1))
        colors = np.asarray(colors, dtype=np.float32).reshape(-1, 3)
        order = np.argsort(keys, kind="stable")
        self.keys = keys[order]
        self.prob_log = prob_log[order].copy()
        self.colors = colors[order].copy()

    def _append(self, keys: np.ndarray, values: np.ndarray, colors: np.ndarray | None) -> None:
        if colors is None:
            colors = np.tile(np.asarray(DEFAULT_COLOR, dtype=np.float32), (keys.size, 1))
        all_keys = np.concatenate([self.keys, keys])
        all_vals = np.concatenate([self.prob_log, values.astype(np.float32)])
        all_cols = np.concatenate([self.colors, colors.astype(np.float32)])
        order = np.argsort(all_keys, kind="stable")
        self.keys = all_keys[order]
        self.prob_log = all_vals[order]
        self.colors = all_cols[order]
