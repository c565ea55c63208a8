"""
Capacity quality of a partition.

Measures how evenly the Voronoi cells of the sites split the mass of a
density field. Diagnostics only; nothing here feeds back into balancing.
"""

from dataclasses import dataclass
from typing import Optional

import numpy as np
import structlog

from .spatial_index import SpatialIndex, as_points

logger = structlog.get_logger()


def check_density(densities, width: int, height: int) -> np.ndarray:
    densities = np.asarray(densities, dtype=np.float64).ravel()
    if densities.size != width * height:
        raise ValueError(
            f"Density field has {densities.size} values, expected {width}x{height}"
        )
    return densities


def pixel_grid(width: int, height: int) -> np.ndarray:
    """Integer pixel coordinates in row-major order, as an (width*height, 2) array."""
    ys, xs = np.mgrid[0:height, 0:width]
    return np.column_stack([xs.ravel(), ys.ravel()]).astype(np.float64)


def pixel_masses(densities, width: int, height: int, index: SpatialIndex) -> np.ndarray:
    """
    Sum the density of every pixel into the site nearest to it.

    Args:
        densities: Row-major density field, ``densities[x + y * width]``
        width: Field width
        height: Field height
        index: Spatial index over the sites

    Returns:
        Mass per site
    """
    densities = check_density(densities, width, height)
    owners = index.find_many(pixel_grid(width, height))
    return np.bincount(owners, weights=densities, minlength=len(index))


def sample_masses(samples, index: SpatialIndex, weights=None) -> np.ndarray:
    """Count (or weight) every sample into the site nearest to it."""
    owners = index.find_many(as_points(samples))
    if weights is not None:
        weights = np.asarray(weights, dtype=np.float64)
    return np.bincount(owners, weights=weights, minlength=len(index)).astype(np.float64)


def normalized_capacity_error(masses) -> float:
    """
    Mean squared relative deviation from the fair share.

    ``(1/S) * sum((m_i / C* - 1)^2)`` with ``C* = sum(m) / S``.
    """
    masses = np.asarray(masses, dtype=np.float64)
    if masses.size == 0:
        return 0.0
    c_star = masses.sum() / masses.size
    if c_star == 0:
        return 0.0
    return float(np.mean((masses / c_star - 1.0) ** 2))


@dataclass
class QualityReport:
    """Capacity error figures for one partition."""
    sample_error: float
    pixel_error: Optional[float] = None
    c_star: Optional[float] = None  # Fair-share pixel mass per site


def evaluate_quality(index: SpatialIndex, samples, densities=None,
                     width: Optional[int] = None, height: Optional[int] = None) -> QualityReport:
    """
    Compute the capacity errors of the sites in ``index``.

    The pixel figure is only computed when a density field is given.
    """
    sample_error = normalized_capacity_error(sample_masses(samples, index))

    pixel_error = None
    c_star = None
    if densities is not None:
        if width is None or height is None:
            raise ValueError("width and height are required with a density field")
        masses = pixel_masses(densities, width, height, index)
        c_star = float(masses.sum() / max(len(masses), 1))
        pixel_error = normalized_capacity_error(masses)

    logger.info("Normalized capacity error", sample_error=sample_error,
                pixel_error=pixel_error, c_star=c_star)
    return QualityReport(sample_error=sample_error, pixel_error=pixel_error, c_star=c_star)
