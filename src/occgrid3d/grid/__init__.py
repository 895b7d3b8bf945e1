"""Dense voxel index, voxel store, ray traversal and the occupancy grid.

    DenseVoxelIndex  -- world <-> index mapping over a fixed cube
    OccupancyVoxel   -- value type: grid index, log-odds, colour
    OccupancyGrid    -- batched ray-cast log-odds updates and queries
"""

from occgrid3d.grid.dense_index import DenseVoxelIndex
from occgrid3d.grid.errors import ConfigurationError
from occgrid3d.grid.occupancy_grid import (
    OccupancyGrid,
    ReconstructSummary,
    UpdateSummary,
    reduce_by_key,
    validate_model,
)
from occgrid3d.grid.traversal import RayCells, ray_cells, traverse_rays
from occgrid3d.grid.voxel import OccupancyVoxel, OccupancyVoxelStore

__all__ = [
    "ConfigurationError",
    "DenseVoxelIndex",
    "OccupancyGrid",
    "OccupancyVoxel",
    "OccupancyVoxelStore",
    "RayCells",
    "ReconstructSummary",
    "UpdateSummary",
    "ray_cells",
    "reduce_by_key",
    "traverse_rays",
    "validate_model",
]
