"""Dense voxel index: world coordinates <-> integer grid indices.

The index space is a cube of ``resolution`` voxels per edge whose minimum
corner sits at ``origin``.  Each voxel is an axis-aligned cube of edge
``voxel_size``.

Coordinate convention:
- Grid index (0, 0, 0) is the voxel touching ``origin``.
- index = floor((point - origin) / voxel_size), valid iff every component
  lies in [0, resolution).
- Linear address = ix + iy * resolution + iz * resolution**2.
"""

from __future__ import annotations

import numpy as np

from occgrid3d.grid.errors import ConfigurationError


def _validate(voxel_size: float, resolution: int) -> None:
    if not voxel_size > 0.0:
        raise ConfigurationError(f"voxel_size must be > 0, got {voxel_size!r}")
    if int(resolution) != resolution or resolution <= 0:
        raise ConfigurationError(f"resolution must be a positive integer, got {resolution!r}")


class DenseVoxelIndex:
    """Fixed-size cubic index space.

    Parameters
    ----------
    voxel_size:
        Edge length of one voxel in metres.  Must be > 0.
    resolution:
        Number of voxels along each axis.  Must be > 0.
    origin:
        World coordinate of the minimum corner of voxel (0, 0, 0).
    """

    def __init__(
        self,
        voxel_size: float,
        resolution: int,
        origin: np.ndarray | tuple[float, float, float] = (0.0, 0.0, 0.0),
    ) -> None:
        _validate(voxel_size, resolution)
        self.voxel_size = float(voxel_size)
        self.resolution = int(resolution)
        self.origin = np.asarray(origin, dtype=np.float64).reshape(3).copy()

    # ------------------------------------------------------------------
    # Bounds
    # ------------------------------------------------------------------

    def get_min_bound(self) -> np.ndarray:
        return self.origin.copy()

    def get_max_bound(self) -> np.ndarray:
        return self.origin + self.resolution * self.voxel_size

    def get_center(self) -> np.ndarray:
        return 0.5 * (self.get_min_bound() + self.get_max_bound())

    @property
    def num_cells(self) -> int:
        """Total number of addressable voxels (``resolution ** 3``)."""
        return self.resolution ** 3

    # ------------------------------------------------------------------
    # Conversions
    # ------------------------------------------------------------------

    def world_to_indices(self, points: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        """Map world points to integer grid indices.

        Parameters
        ----------
        points:
            World coordinates, shape (N, 3).

        Returns
        -------
        tuple[np.ndarray, np.ndarray]
            ``(indices, valid)`` -- indices of shape (N, 3), dtype int64, and a
            boolean mask of shape (N,) that is True where the point lies
            inside the grid.  Indices of invalid points are meaningless.
        """
        pts = np.asarray(points, dtype=np.float64).reshape(-1, 3)
        idx = np.floor((pts - self.origin) / self.voxel_size)
        valid = np.all((idx >= 0) & (idx < self.resolution), axis=1)
        # Non-finite coordinates never produce a valid index.
        idx = np.clip(np.where(np.isnan(idx), -1, idx), -1, self.resolution)
        return idx.astype(np.int64), valid

    def world_to_index(self, point) -> tuple[int, int, int] | None:
        """Return the grid index of *point*, or None if it is out of bounds."""
        idx, valid = self.world_to_indices(np.asarray(point, dtype=np.float64).reshape(1, 3))
        if not valid[0]:
            return None
        return (int(idx[0, 0]), int(idx[0, 1]), int(idx[0, 2]))

    def index_to_world(self, index) -> np.ndarray:
        """Return the world coordinate of the centre of voxel(s) *index*.

        Accepts a single index triple or an array of shape (N, 3).
        """
        idx = np.asarray(index, dtype=np.float64)
        return self.origin + (idx + 0.5) * self.voxel_size

    def in_bounds(self, indices: np.ndarray) -> np.ndarray:
        """Boolean mask of index triples (shape (N, 3)) inside the cube."""
        idx = np.asarray(indices).reshape(-1, 3)
        return np.all((idx >= 0) & (idx < self.resolution), axis=1)

    def linearize(self, indices: np.ndarray) -> np.ndarray:
        """Linear addresses of in-bounds index triples, shape (N,), int64."""
        idx = np.asarray(indices, dtype=np.int64).reshape(-1, 3)
        r = self.resolution
        return idx[:, 0] + idx[:, 1] * r + idx[:, 2] * r * r

    def unlinearize(self, keys: np.ndarray) -> np.ndarray:
        """Inverse of :meth:`linearize`; returns shape (N, 3), int64."""
        keys = np.asarray(keys, dtype=np.int64).reshape(-1)
        r = self.resolution
        out = np.empty((keys.size, 3), dtype=np.int64)
        out[:, 0] = keys % r
        out[:, 1] = (keys // r) % r
        out[:, 2] = keys // (r * r)
        return out

    def __repr__(self) -> str:
        o = ", ".join(f"{v:g}" for v in self.origin)
        return (
            f"{type(self).__name__}(voxel_size={self.voxel_size:g}, "
            f"resolution={self.resolution}, origin=({o}))"
        )
