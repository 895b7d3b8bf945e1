"""Point sources and voxel record export/import."""

from occgrid3d.io.pointcloud import PointCloud, load_point_cloud, save_point_cloud
from occgrid3d.io.records import VoxelRecords

__all__ = [
    "PointCloud",
    "VoxelRecords",
    "load_point_cloud",
    "save_point_cloud",
]
