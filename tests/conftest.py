from __future__ import annotations

import numpy as np
import pytest

from occgrid3d.grid.occupancy_grid import OccupancyGrid


@pytest.fixture
def small_grid() -> OccupancyGrid:
    """1 m voxels, 4^3 cube at the origin."""
    return OccupancyGrid(voxel_size=1.0, resolution=4)


@pytest.fixture
def rng() -> np.random.Generator:
    return np.random.default_rng(1234)
