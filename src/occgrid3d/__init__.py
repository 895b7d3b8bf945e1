# occgrid3d: dense 3D log-odds occupancy mapping from point clouds.
#
# Subpackages:
#   grid        -- voxel index, store, ray traversal, OccupancyGrid
#   fusion      -- log-odds conversions and grid fusion
#   io          -- point cloud loading and voxel record export/import
#   simulation  -- synthetic room scans with ground truth
#   experiment  -- YAML config, JSONL logging, metrics, mapping runner
"""Dense 3D log-odds occupancy grids built from streamed point clouds."""

from occgrid3d.grid import ConfigurationError, OccupancyGrid, OccupancyVoxel, UpdateSummary

__version__ = "0.1.0"

__all__ = [
    "ConfigurationError",
    "OccupancyGrid",
    "OccupancyVoxel",
    "UpdateSummary",
    "__version__",
]
