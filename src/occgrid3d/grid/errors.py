"""Exceptions raised by the occupancy grid engine."""

from __future__ import annotations


class ConfigurationError(ValueError):
    """Invalid grid geometry or occupancy model parameters."""
