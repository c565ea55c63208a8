"""Capacity-constrained Voronoi tessellation for point stippling."""

__version__ = "0.1.0"
