"""Log-odds conversions and independent-evidence grid fusion."""

from occgrid3d.fusion.bayesian import fuse_grids, logodds_to_probability, probability_to_logodds

__all__ = [
    "fuse_grids",
    "logodds_to_probability",
    "probability_to_logodds",
]
