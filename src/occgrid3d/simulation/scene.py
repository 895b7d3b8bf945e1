# TDP: Synthetic 3D room scans
# Approach: A scene is one axis-aligned room box (floor, ceiling, four walls)
#   plus axis-aligned box obstacles standing on the floor.  A scan casts
#   num_azimuth x num_elevation rays from a viewpoint inside the room; every
#   ray is intersected analytically with the room (exit distance) and with
#   each obstacle (slab entry distance), vectorised over rays.  The nearest
#   hit within max_range becomes an observed point; rays with no hit in range
#   return nothing.  Gaussian range noise is optional.
#
#   Ground truth is the set of voxels touched by the scene surfaces, found by
#   sampling every face at half-voxel spacing.
"""Synthetic room scenes, point-cloud scans and ground-truth voxels."""

from __future__ import annotations

import math
from dataclasses import dataclass, field

import numpy as np

from occgrid3d.grid.dense_index import DenseVoxelIndex

_MIN_OBSTACLE_FRACTION = 0.05
_MAX_OBSTACLE_FRACTION = 0.25
_OBSTACLE_PLACEMENT_RETRIES = 100
_VIEWPOINT_RETRIES = 100


@dataclass
class Box:
    """Axis-aligned box given by its minimum and maximum corners."""

    min_corner: np.ndarray
    max_corner: np.ndarray

    def __post_init__(self) -> None:
        self.min_corner = np.asarray(self.min_corner, dtype=np.float64).reshape(3)
        self.max_corner = np.asarray(self.max_corner, dtype=np.float64).reshape(3)

    def contains(self, points: np.ndarray) -> np.ndarray:
        pts = np.asarray(points, dtype=np.float64).reshape(-1, 3)
        return np.all((pts >= self.min_corner) & (pts <= self.max_corner), axis=1)

    def overlaps(self, other: "Box", margin: float = 0.0) -> bool:
        return bool(
            np.all(self.min_corner - margin < other.max_corner)
            and np.all(other.min_corner - margin < self.max_corner)
        )


@dataclass
class RoomScene:
    """A room box with static box obstacles inside it."""

    room: Box
    obstacles: list[Box] = field(default_factory=list)

    def is_free(self, point: np.ndarray, clearance: float = 0.0) -> bool:
        """True if *point* is inside the room and outside every obstacle."""
        p = np.asarray(point, dtype=np.float64).reshape(3)
        if np.any(p <= self.room.min_corner + clearance) or np.any(p >= self.room.max_corner - clearance):
            return False
        for obs in self.obstacles:
            if np.all(p >= obs.min_corner - clearance) and np.all(p <= obs.max_corner + clearance):
                return False
        return True


def generate_room(
    *,
    width: float,
    depth: float,
    height: float,
    num_obstacles: int,
    rng: np.random.Generator,
    origin: tuple[float, float, float] = (0.0, 0.0, 0.0),
) -> RoomScene:
    """Generate a room with up to *num_obstacles* non-overlapping boxes.

    Obstacles rest on the floor; their footprint edges are 5-25 % of the room
    dimensions and their height 10-60 % of the room height.  Placement gives
    up after a fixed number of attempts, so fewer obstacles may be returned.
    """
    o = np.asarray(origin, dtype=np.float64)
    room = Box(o, o + np.array([width, depth, height]))
    scene = RoomScene(room=room)

    dims = np.array([width, depth])
    placed = 0
    attempts = 0
    while placed < num_obstacles and attempts < _OBSTACLE_PLACEMENT_RETRIES * max(num_obstacles, 1):
        attempts += 1
        size_xy = rng.uniform(_MIN_OBSTACLE_FRACTION, _MAX_OBSTACLE_FRACTION, size=2) * dims
        size_z = rng.uniform(0.1, 0.6) * height
        lo_xy = o[:2] + rng.uniform(0.05 * dims, 0.95 * dims - size_xy)
        candidate = Box(
            np.array([lo_xy[0], lo_xy[1], o[2]]),
            np.array([lo_xy[0] + size_xy[0], lo_xy[1] + size_xy[1], o[2] + size_z]),
        )
        if any(candidate.overlaps(other, margin=0.1) for other in scene.obstacles):
            continue
        scene.obstacles.append(candidate)
        placed += 1
    return scene


def sample_viewpoints(
    scene: RoomScene,
    num_viewpoints: int,
    rng: np.random.Generator,
    *,
    sensor_height: float = 1.0,
    clearance: float = 0.2,
) -> np.ndarray:
    """Draw sensor positions in free space at a fixed height above the floor.

    Returns
    -------
    numpy.ndarray, shape (K, 3)
        Viewpoints; K may be smaller than *num_viewpoints* if the room is
        too cluttered to place them.
    """
    lo = scene.room.min_corner
    hi = scene.room.max_corner
    z = min(lo[2] + sensor_height, hi[2] - clearance)
    out: list[np.ndarray] = []
    for _ in range(num_viewpoints):
        for _ in range(_VIEWPOINT_RETRIES):
            xy = rng.uniform(lo[:2] + clearance, hi[:2] - clearance)
            p = np.array([xy[0], xy[1], z])
            if scene.is_free(p, clearance):
                out.append(p)
                break
    if not out:
        return np.empty((0, 3), dtype=np.float64)
    return np.stack(out)


def _ray_directions(num_azimuth: int, num_elevation: int, max_elevation: float) -> np.ndarray:
    az = np.linspace(0.0, 2.0 * np.pi, num_azimuth, endpoint=False)
    if num_elevation == 1:
        el = np.zeros(1)
    else:
        el = np.linspace(-max_elevation, max_elevation, num_elevation)
    A, E = np.meshgrid(az, el, indexing="ij")
    dirs = np.stack([np.cos(E) * np.cos(A), np.cos(E) * np.sin(A), np.sin(E)], axis=-1)
    return dirs.reshape(-1, 3)


def cast_rays_3d(
    scene: RoomScene,
    viewpoint: np.ndarray,
    *,
    num_azimuth: int,
    num_elevation: int,
    max_range: float,
    rng: np.random.Generator,
    max_elevation: float = math.radians(60.0),
    noise_stddev: float = 0.0,
) -> np.ndarray:
    """Cast rays from *viewpoint* and return the observed points.

    Parameters
    ----------
    scene:
        Room and obstacles.  *viewpoint* must lie inside the room.
    viewpoint:
        Sensor origin, shape (3,).
    num_azimuth, num_elevation:
        Angular sampling; azimuth covers [0, 2*pi), elevation covers
        [-max_elevation, max_elevation].
    max_range:
        Rays whose nearest surface is farther than this return no point.
    rng:
        Random generator for range noise.
    noise_stddev:
        Standard deviation of additive Gaussian range noise in metres.

    Returns
    -------
    numpy.ndarray, shape (M, 3), dtype float32
        Observed points, M <= num_azimuth * num_elevation.
    """
    o = np.asarray(viewpoint, dtype=np.float64).reshape(3)
    d = _ray_directions(num_azimuth, num_elevation, max_elevation)

    with np.errstate(divide="ignore", invalid="ignore"):
        inv = 1.0 / d
        # Room: the ray starts inside, so take the nearest exit plane.
        t_room = np.where(d > 0, (scene.room.max_corner - o) * inv, (scene.room.min_corner - o) * inv)
        t_room = np.where(d == 0, np.inf, t_room)
        ranges = t_room.min(axis=1)

        for obs in scene.obstacles:
            ta = (obs.min_corner - o) * inv
            tb = (obs.max_corner - o) * inv
            inside_slab = (o >= obs.min_corner) & (o <= obs.max_corner)
            t_near = np.where(d == 0, np.where(inside_slab, -np.inf, np.inf), np.minimum(ta, tb))
            t_far = np.where(d == 0, np.where(inside_slab, np.inf, -np.inf), np.maximum(ta, tb))
            enter = t_near.max(axis=1)
            leave = t_far.min(axis=1)
            hit = (enter <= leave) & (enter > 0.0)
            ranges = np.where(hit & (enter < ranges), enter, ranges)

    if noise_stddev > 0.0:
        ranges = ranges + rng.normal(0.0, noise_stddev, size=ranges.shape)

    keep = np.isfinite(ranges) & (ranges > 0.0) & (ranges <= max_range)
    points = o + ranges[keep, None] * d[keep]
    return points.astype(np.float32)


def sample_surface_points(scene: RoomScene, spacing: float) -> np.ndarray:
    """Sample every face of the room and of each obstacle on a regular lattice."""
    boxes = [scene.room] + list(scene.obstacles)
    chunks: list[np.ndarray] = []
    for box in boxes:
        lo, hi = box.min_corner, box.max_corner
        axes = [np.linspace(lo[a], hi[a], max(2, int(np.ceil((hi[a] - lo[a]) / spacing)) + 1)) for a in range(3)]
        for a in range(3):
            u, v = [axes[b] for b in range(3) if b != a]
            U, V = np.meshgrid(u, v, indexing="ij")
            for fixed in (lo[a], hi[a]):
                face = np.empty((U.size, 3))
                face[:, a] = fixed
                others = [b for b in range(3) if b != a]
                face[:, others[0]] = U.ravel()
                face[:, others[1]] = V.ravel()
                chunks.append(face)
    return np.concatenate(chunks)


def ground_truth_indices(scene: RoomScene, index: DenseVoxelIndex) -> np.ndarray:
    """Grid indices of voxels touched by a scene surface, ascending linear order."""
    pts = sample_surface_points(scene, 0.5 * index.voxel_size)
    idx, valid = index.world_to_indices(pts)
    keys = np.unique(index.linearize(idx[valid]))
    return index.unlinearize(keys)
