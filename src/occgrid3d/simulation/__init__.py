"""Synthetic room scenes and point-cloud scans with ground truth."""

from occgrid3d.simulation.scene import (
    Box,
    RoomScene,
    cast_rays_3d,
    generate_room,
    ground_truth_indices,
    sample_surface_points,
    sample_viewpoints,
)

__all__ = [
    "Box",
    "RoomScene",
    "cast_rays_3d",
    "generate_room",
    "ground_truth_indices",
    "sample_surface_points",
    "sample_viewpoints",
]
