# TDP: Dense 3D log-odds occupancy grid
# Approach: Standard log-odds inverse sensor model over a dense, fixed-size
#   voxel index.  For each point of a batch:
#     - voxels on the ray before the point's voxel are updated as FREE
#       (prob_miss_log), only when visualize_free_area is set
#     - the point's own voxel is updated as OCCUPIED (prob_hit_log)
#   The batch is a map/reduce: rays are traversed independently into
#   (linear key, point position, delta) events, events are sorted by
#   (key, point position) and summed per key, and only then is the store
#   touched, once per distinct key.  Two rays crossing the same voxel in one
#   call therefore both count, and the per-key summation order is ascending
#   input-point position.
#
#   Log-odds representation:
#     L(x) = log(p / (1-p))
#     NaN  = unknown (never observed)
#     > occ_prob_thres_log = occupied, otherwise free
#   Clamped to [clamping_thres_min, clamping_thres_max].
"""Dense 3D occupancy grid with batched ray-cast log-odds updates."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from occgrid3d.fusion.bayesian import logodds_to_probability
from occgrid3d.grid.dense_index import DenseVoxelIndex, _validate
from occgrid3d.grid.errors import ConfigurationError
from occgrid3d.grid.traversal import select_rays, traverse_rays
from occgrid3d.grid.voxel import OccupancyVoxel, OccupancyVoxelStore

_CLAMPING_THRES_MIN = -2.0
_CLAMPING_THRES_MAX = 3.5
_PROB_HIT_LOG = 0.85
_PROB_MISS_LOG = -0.4
_OCC_PROB_THRES_LOG = 0.0
_CHUNK_SIZE = 65536  # rays traversed per vectorised pass


def validate_model(
    *,
    clamping_thres_min: float,
    clamping_thres_max: float,
    prob_hit_log: float,
    prob_miss_log: float,
    occ_prob_thres_log: float,
) -> None:
    """Raise ConfigurationError unless the log-odds model is consistent."""
    if not clamping_thres_min < clamping_thres_max:
        raise ConfigurationError(
            f"clamping_thres_min ({clamping_thres_min}) must be < "
            f"clamping_thres_max ({clamping_thres_max})"
        )
    if not prob_hit_log > 0.0:
        raise ConfigurationError(f"prob_hit_log must be > 0, got {prob_hit_log}")
    if not prob_miss_log < 0.0:
        raise ConfigurationError(f"prob_miss_log must be < 0, got {prob_miss_log}")
    if prob_hit_log > clamping_thres_max or prob_miss_log < clamping_thres_min:
        raise ConfigurationError(
            f"update deltas ({prob_miss_log}, {prob_hit_log}) must lie within the "
            f"clamping range [{clamping_thres_min}, {clamping_thres_max}]"
        )
    if not clamping_thres_min <= occ_prob_thres_log < clamping_thres_max:
        raise ConfigurationError(
            f"occ_prob_thres_log ({occ_prob_thres_log}) must lie in "
            f"[{clamping_thres_min}, {clamping_thres_max})"
        )


def reduce_by_key(
    keys: np.ndarray,
    order_ids: np.ndarray,
    deltas: np.ndarray,
) -> tuple[np.ndarray, np.ndarray]:
    """Sum *deltas* sharing a key.

    Events are sorted by ``(key, order_id)`` first, so every key's deltas
    are added in ascending *order_ids* order.

    Returns
    -------
    tuple[np.ndarray, np.ndarray]
        Unique keys in ascending order and the net delta of each.
    """
    if keys.size == 0:
        return np.empty(0, dtype=np.int64), np.empty(0, dtype=np.float64)
    order = np.lexsort((order_ids, keys))
    k = keys[order]
    v = deltas[order].astype(np.float64)
    starts = np.flatnonzero(np.concatenate(([True], k[1:] != k[:-1])))
    return k[starts], np.add.reduceat(v, starts)


def _model_property(name: str, doc: str) -> property:
    attr = "_" + name

    def fget(self: "OccupancyGrid") -> float:
        return getattr(self, attr)

    def fset(self: "OccupancyGrid", value: float) -> None:
        params = self.model_params()
        params[name] = float(value)
        validate_model(**params)
        setattr(self, attr, float(value))

    return property(fget, fset, doc=doc)


@dataclass
class UpdateSummary:
    """Outcome of one mutating call on an OccupancyGrid."""

    num_points: int = 0
    num_rays: int = 0
    num_events: int = 0
    num_touched: int = 0
    num_created: int = 0


@dataclass
class ReconstructSummary:
    """Outcome of OccupancyGrid.reconstruct_voxels."""

    num_before: int = 0
    num_after: int = 0
    num_dropped: int = 0
    num_merged: int = 0


def _as_points(points) -> np.ndarray:
    # PointCloud and anything else exposing a ``points`` array.
    data = getattr(points, "points", points)
    arr = np.asarray(data, dtype=np.float64)
    if arr.size == 0:
        return np.empty((0, 3), dtype=np.float64)
    return arr.reshape(-1, 3)


class OccupancyGrid(DenseVoxelIndex):
    """Probabilistic occupancy map over a dense cubic voxel index.

    Parameters
    ----------
    voxel_size:
        Voxel edge length in metres.  Must be > 0.
    resolution:
        Voxels per axis.  Must be > 0.
    origin:
        World coordinate of the grid's minimum corner.
    clamping_thres_min, clamping_thres_max:
        Log-odds saturation bounds.
    prob_hit_log:
        Log-odds increment for a voxel containing an observed point (> 0).
    prob_miss_log:
        Log-odds increment for a voxel a ray passes through (< 0).
    occ_prob_thres_log:
        Voxels with log-odds strictly above this value are occupied.
    visualize_free_area:
        When False, inserts only record hits; free-space voxels are not
        generated at all.
    chunk_size:
        Maximum number of rays traversed in one vectorised pass.

    Raises
    ------
    ConfigurationError
        If the geometry or the log-odds model is invalid.
    """

    clamping_thres_min = _model_property("clamping_thres_min", "Lower log-odds clamp.")
    clamping_thres_max = _model_property("clamping_thres_max", "Upper log-odds clamp.")
    prob_hit_log = _model_property("prob_hit_log", "Log-odds delta for a hit voxel.")
    prob_miss_log = _model_property("prob_miss_log", "Log-odds delta for a free-space voxel.")
    occ_prob_thres_log = _model_property("occ_prob_thres_log", "Occupied/free decision boundary.")

    def __init__(
        self,
        voxel_size: float,
        resolution: int = 512,
        origin: np.ndarray | tuple[float, float, float] = (0.0, 0.0, 0.0),
        *,
        clamping_thres_min: float = _CLAMPING_THRES_MIN,
        clamping_thres_max: float = _CLAMPING_THRES_MAX,
        prob_hit_log: float = _PROB_HIT_LOG,
        prob_miss_log: float = _PROB_MISS_LOG,
        occ_prob_thres_log: float = _OCC_PROB_THRES_LOG,
        visualize_free_area: bool = True,
        chunk_size: int = _CHUNK_SIZE,
    ) -> None:
        super().__init__(voxel_size, resolution, origin)
        validate_model(
            clamping_thres_min=clamping_thres_min,
            clamping_thres_max=clamping_thres_max,
            prob_hit_log=prob_hit_log,
            prob_miss_log=prob_miss_log,
            occ_prob_thres_log=occ_prob_thres_log,
        )
        if chunk_size <= 0:
            raise ConfigurationError(f"chunk_size must be > 0, got {chunk_size}")
        self._clamping_thres_min = float(clamping_thres_min)
        self._clamping_thres_max = float(clamping_thres_max)
        self._prob_hit_log = float(prob_hit_log)
        self._prob_miss_log = float(prob_miss_log)
        self._occ_prob_thres_log = float(occ_prob_thres_log)
        self.visualize_free_area = bool(visualize_free_area)
        self.chunk_size = int(chunk_size)
        self._store = OccupancyVoxelStore()

    def model_params(self) -> dict[str, float]:
        """The five numeric log-odds tunables as a dict."""
        return {
            "clamping_thres_min": self._clamping_thres_min,
            "clamping_thres_max": self._clamping_thres_max,
            "prob_hit_log": self._prob_hit_log,
            "prob_miss_log": self._prob_miss_log,
            "occ_prob_thres_log": self._occ_prob_thres_log,
        }

    @property
    def store(self) -> OccupancyVoxelStore:
        return self._store

    def __len__(self) -> int:
        return len(self._store)

    def has_voxels(self) -> bool:
        return len(self._store) > 0

    def has_colors(self) -> bool:
        # Every stored voxel carries a colour (default blue).
        return True

    def copy(self) -> "OccupancyGrid":
        other = OccupancyGrid(
            self.voxel_size,
            self.resolution,
            self.origin,
            visualize_free_area=self.visualize_free_area,
            chunk_size=self.chunk_size,
            **self.model_params(),
        )
        other._store = self._store.copy()
        return other

    def clear(self) -> None:
        """Release every stored voxel; geometry and tunables are kept."""
        self._store.clear()

    # ------------------------------------------------------------------
    # Updates
    # ------------------------------------------------------------------

    def insert(self, points, viewpoint, max_range: float = -1.0) -> UpdateSummary:
        """Integrate one batch of observed points seen from *viewpoint*.

        Parameters
        ----------
        points:
            Array-like of shape (N, 3), or a PointCloud.  Colours are unused.
        viewpoint:
            Sensor origin in world coordinates.
        max_range:
            When > 0, points farther than this from the viewpoint are
            discarded together with their whole ray.

        Returns
        -------
        UpdateSummary
            Counts describing the update.  An empty batch changes nothing.
        """
        pts = _as_points(points)
        summary = UpdateSummary(num_points=int(pts.shape[0]))
        if pts.shape[0] == 0:
            return summary

        vp = np.asarray(viewpoint, dtype=np.float64).reshape(3)
        rays = select_rays(pts, vp, max_range)
        summary.num_rays = int(rays.size)

        key_chunks: list[np.ndarray] = []
        id_chunks: list[np.ndarray] = []
        delta_chunks: list[np.ndarray] = []
        for start in range(0, rays.size, self.chunk_size):
            batch = rays[start:start + self.chunk_size]
            cells = traverse_rays(vp, pts[batch], self, free_space=self.visualize_free_area)
            if cells.free_cells.shape[0]:
                key_chunks.append(self.linearize(cells.free_cells))
                id_chunks.append(batch[cells.free_ray])
                delta_chunks.append(np.full(cells.free_ray.size, self._prob_miss_log))
            if cells.hit_cells.shape[0]:
                key_chunks.append(self.linearize(cells.hit_cells))
                id_chunks.append(batch[cells.hit_ray])
                delta_chunks.append(np.full(cells.hit_ray.size, self._prob_hit_log))

        if not key_chunks:
            return summary

        keys = np.concatenate(key_chunks)
        summary.num_events = int(keys.size)
        keys, deltas = reduce_by_key(keys, np.concatenate(id_chunks), np.concatenate(delta_chunks))
        summary.num_touched = int(keys.size)
        summary.num_created = self._store.merge_deltas(
            keys, deltas, self._clamping_thres_min, self._clamping_thres_max
        )
        return summary

    def add_voxel(self, index, occupied: bool = False) -> UpdateSummary:
        """Mark one voxel (integer triple) definitely occupied or free."""
        return self.add_voxels(np.asarray(index, dtype=np.int64).reshape(1, 3), occupied)

    def add_voxels(self, indices, occupied: bool = False) -> UpdateSummary:
        """Mark voxels definitely occupied or free, bypassing ray updates.

        Occupied voxels are set to ``clamping_thres_max`` and free voxels to
        ``clamping_thres_min``, which bound ``prob_hit_log`` and
        ``prob_miss_log`` from outside.  Out-of-bounds indices are ignored.
        """
        idx = np.asarray(indices, dtype=np.int64)
        if idx.size == 0:
            return UpdateSummary()
        idx = idx.reshape(-1, 3)
        summary = UpdateSummary(num_points=int(idx.shape[0]))
        keys = np.unique(self.linearize(idx[self.in_bounds(idx)]))
        summary.num_touched = int(keys.size)
        value = self._clamping_thres_max if occupied else self._clamping_thres_min
        summary.num_created = self._store.assign(keys, value)
        return summary

    def reconstruct_voxels(self, voxel_size: float, resolution: int) -> ReconstructSummary:
        """Change voxel size and resolution, re-mapping the stored voxels.

        Each voxel's world centre is mapped into the new index space (the
        origin is unchanged).  Voxels landing outside the new grid are
        dropped.  Voxels landing on the same new index are merged: their
        log-odds are summed (NaN contributes nothing; all-NaN stays NaN) and
        re-clamped, and the colour of the lowest old index is kept.
        """
        _validate(voxel_size, resolution)
        store = self._store
        summary = ReconstructSummary(num_before=len(store))
        centers = self.index_to_world(self.unlinearize(store.keys))

        self.voxel_size = float(voxel_size)
        self.resolution = int(resolution)
        if summary.num_before == 0:
            return summary

        new_idx, valid = self.world_to_indices(centers)
        keys = self.linearize(new_idx[valid])
        probs = store.prob_log[valid].astype(np.float64)
        colors = store.colors[valid]
        summary.num_dropped = int(np.count_nonzero(~valid))
        if keys.size == 0:
            store.clear()
            return summary

        # Old keys are ascending, so a stable sort keeps the lowest old index first.
        order = np.argsort(keys, kind="stable")
        keys, probs, colors = keys[order], probs[order], colors[order]
        starts = np.flatnonzero(np.concatenate(([True], keys[1:] != keys[:-1])))
        known = ~np.isnan(probs)
        sums = np.add.reduceat(np.where(known, probs, 0.0), starts)
        n_known = np.add.reduceat(known.astype(np.int64), starts)
        merged = np.where(
            n_known > 0,
            np.clip(sums, self._clamping_thres_min, self._clamping_thres_max),
            np.nan,
        )
        store.replace(keys[starts], merged, colors[starts])
        summary.num_after = len(store)
        summary.num_merged = int(keys.size - starts.size)
        return summary

    # ------------------------------------------------------------------
    # Point queries
    # ------------------------------------------------------------------

    def get_voxel_index(self, point) -> int:
        """Linear index of the voxel containing *point*, or -1 if outside."""
        idx = self.world_to_index(point)
        if idx is None:
            return -1
        return int(self.linearize(np.asarray(idx))[0])

    def get_voxel(self, point) -> tuple[bool, OccupancyVoxel | None]:
        """Return ``(found, voxel)`` for the stored voxel containing *point*."""
        key = self.get_voxel_index(point)
        if key < 0:
            return False, None
        pos, found = self._store.lookup(np.array([key]))
        if not found[0]:
            return False, None
        return True, self._make_voxel(int(pos[0]))

    def is_occupied(self, point) -> bool:
        found, voxel = self.get_voxel(point)
        if not found:
            return False
        return voxel.is_known and voxel.prob_log > self._occ_prob_thres_log

    def is_unknown(self, point) -> bool:
        """True when *point* is outside the grid, unstored or never observed."""
        found, voxel = self.get_voxel(point)
        if not found:
            return True
        return not voxel.is_known

    # ------------------------------------------------------------------
    # Classification and extraction
    # ------------------------------------------------------------------

    def _known_mask(self) -> np.ndarray:
        return ~np.isnan(self._store.prob_log)

    def _occupied_mask(self) -> np.ndarray:
        # NaN compares False, so unknown voxels are never occupied.
        return self._store.prob_log > self._occ_prob_thres_log

    def _free_mask(self) -> np.ndarray:
        return self._known_mask() & ~self._occupied_mask()

    def count_known_voxels(self) -> int:
        return int(np.count_nonzero(self._known_mask()))

    def count_free_voxels(self) -> int:
        return int(np.count_nonzero(self._free_mask()))

    def count_occupied_voxels(self) -> int:
        return int(np.count_nonzero(self._occupied_mask()))

    def extract_known_voxel_indices(self) -> np.ndarray:
        return self.unlinearize(self._store.keys[self._known_mask()])

    def extract_free_voxel_indices(self) -> np.ndarray:
        return self.unlinearize(self._store.keys[self._free_mask()])

    def extract_occupied_voxel_indices(self) -> np.ndarray:
        return self.unlinearize(self._store.keys[self._occupied_mask()])

    def extract_known_voxels(self) -> list[OccupancyVoxel]:
        return self._extract(self._known_mask())

    def extract_free_voxels(self) -> list[OccupancyVoxel]:
        return self._extract(self._free_mask())

    def extract_occupied_voxels(self) -> list[OccupancyVoxel]:
        return self._extract(self._occupied_mask())

    def occupancy_probability(self) -> tuple[np.ndarray, np.ndarray]:
        """Occupancy probability of every known voxel.

        Returns
        -------
        tuple[np.ndarray, np.ndarray]
            ``(indices, prob)`` -- grid indices, shape (M, 3), and
            probabilities in [0, 1], shape (M,), float32.
        """
        mask = self._known_mask()
        prob = logodds_to_probability(self._store.prob_log[mask])
        return self.unlinearize(self._store.keys[mask]), prob

    def _extract(self, mask: np.ndarray) -> list[OccupancyVoxel]:
        return [self._make_voxel(int(p)) for p in np.flatnonzero(mask)]

    def _make_voxel(self, pos: int) -> OccupancyVoxel:
        store = self._store
        ix, iy, iz = (int(v) for v in self.unlinearize(store.keys[pos:pos + 1])[0])
        prob = float(store.prob_log[pos])
        color = tuple(float(c) for c in store.colors[pos])
        return OccupancyVoxel((ix, iy, iz), prob, color)

    def __repr__(self) -> str:
        return (
            f"OccupancyGrid(voxel_size={self.voxel_size:g}, resolution={self.resolution}, "
            f"voxels={len(self)}, occupied={self.count_occupied_voxels()})"
        )
