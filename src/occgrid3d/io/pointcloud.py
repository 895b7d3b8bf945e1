"""Point cloud container and file loader.

Supported formats
-----------------
``.npy``
    Array of shape (N, 3) (xyz) or (N, 6) (xyz + rgb in [0, 1]).
``.xyz`` / ``.txt``
    Whitespace-separated text, one point per line, 3 or 6 columns.
    Blank lines and lines starting with ``#`` are skipped.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import numpy as np

_TEXT_SUFFIXES = (".xyz", ".txt")


@dataclass
class PointCloud:
    """Observed points with optional per-point colours.

    Colours are carried for callers; occupancy updates only read ``points``.
    """

    points: np.ndarray
    colors: np.ndarray | None = None

    def __post_init__(self) -> None:
        self.points = np.asarray(self.points, dtype=np.float32).reshape(-1, 3)
        if self.colors is not None:
            self.colors = np.asarray(self.colors, dtype=np.float32).reshape(-1, 3)
            if self.colors.shape[0] != self.points.shape[0]:
                msg = (
                    f"colors has {self.colors.shape[0]} rows but points has "
                    f"{self.points.shape[0]}"
                )
                raise ValueError(msg)

    def __len__(self) -> int:
        return int(self.points.shape[0])

    def has_colors(self) -> bool:
        return self.colors is not None


def _from_array(data: np.ndarray, path: Path) -> PointCloud:
    if data.ndim != 2 or data.shape[1] not in (3, 6):
        msg = f"{path}: expected an (N, 3) or (N, 6) array, got shape {data.shape}"
        raise ValueError(msg)
    if data.shape[1] == 6:
        return PointCloud(data[:, :3], data[:, 3:])
    return PointCloud(data)


def load_point_cloud(path: str | Path) -> PointCloud:
    """Load a point cloud from *path*.

    Raises
    ------
    FileNotFoundError
        If the file does not exist.
    ValueError
        If the suffix is unsupported or the data has the wrong shape.
    """
    path = Path(path)
    if not path.exists():
        msg = f"Point cloud file not found: {path}"
        raise FileNotFoundError(msg)

    suffix = path.suffix.lower()
    if suffix == ".npy":
        return _from_array(np.load(path), path)
    if suffix in _TEXT_SUFFIXES:
        data = np.loadtxt(path, comments="#", ndmin=2)
        if data.size == 0:
            return PointCloud(np.empty((0, 3), dtype=np.float32))
        return _from_array(data, path)
    msg = f"Unsupported point cloud format {suffix!r}: {path}"
    raise ValueError(msg)


def save_point_cloud(path: str | Path, cloud: PointCloud) -> None:
    """Write *cloud* as ``.npy`` (xyz or xyz+rgb)."""
    data = cloud.points if cloud.colors is None else np.hstack([cloud.points, cloud.colors])
    np.save(Path(path), data.astype(np.float32))
