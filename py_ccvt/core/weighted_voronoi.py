"""
Density-weighted Lloyd relaxation (weighted Voronoi stippling).

Produces well-spread starting sites for the capacity-constrained run: each
iteration moves every site to the density-weighted centroid of the pixels
in its Voronoi cell.
"""

from typing import Optional, Tuple

import numpy as np
import structlog

from ..config import settings
from ..utils.random import get_rng
from .progress import ProgressCallback, emit
from .quality import check_density, pixel_grid
from .spatial_index import SpatialIndex, as_points

logger = structlog.get_logger()


def weighted_centroids(densities, width: int, height: int,
                       index: SpatialIndex) -> Tuple[np.ndarray, np.ndarray]:
    """
    One raster pass over the density field.

    Returns:
        Tuple of (centroids, weights). Sites whose cells carry no mass keep
        their current position as centroid.
    """
    densities = check_density(densities, width, height)
    pixels = pixel_grid(width, height)
    owners = index.find_many(pixels)
    n = len(index)

    weights = np.bincount(owners, weights=densities, minlength=n)
    cx = np.bincount(owners, weights=densities * pixels[:, 0], minlength=n)
    cy = np.bincount(owners, weights=densities * pixels[:, 1], minlength=n)

    centroids = index.points.copy()
    massive = weights > 0
    centroids[massive, 0] = cx[massive] / weights[massive]
    centroids[massive, 1] = cy[massive] / weights[massive]
    return centroids, weights


def weighted_lloyd(densities, width: int, height: int, sites,
                   iterations: Optional[int] = None,
                   on_progress: Optional[ProgressCallback] = None) -> Tuple[np.ndarray, float]:
    """
    Relax sites towards the weighted centroids of their cells.

    Args:
        densities: Row-major density field
        width: Field width
        height: Field height
        sites: Initial sites; not modified
        iterations: Relaxation steps, defaults to ``settings.lloyd_iterations``
        on_progress: Receives the sites after every iteration

    Returns:
        Tuple of (relaxed (S, 2) sites, fair-share mass C* per site)
    """
    iterations = settings.lloyd_iterations if iterations is None else iterations
    points = as_points(sites).copy()
    total = float(np.asarray(densities, dtype=np.float64).sum())

    logger.info("Starting weighted Lloyd relaxation", sites=len(points), iterations=iterations)

    if len(points) == 0:
        return points, 0.0

    index = SpatialIndex(points, bounds=(0.0, 0.0, float(width), float(height)))
    for iteration in range(iterations):
        centroids, _ = weighted_centroids(densities, width, height, index)
        points[:] = centroids
        index.update()
        emit(on_progress, "lloyd", iteration + 1, points)

    c_star = total / len(points)
    logger.info("Weighted Lloyd relaxation complete", c_star=c_star)
    return points, c_star


def subsample_sites(samples, num_sites: int, rng: Optional[np.random.Generator] = None) -> np.ndarray:
    """Pick ``num_sites`` starting sites among the samples, with replacement."""
    pts = as_points(samples)
    if len(pts) == 0:
        raise ValueError("Cannot subsample sites from an empty sample buffer")
    rng = rng or get_rng()
    picks = rng.integers(0, len(pts), size=num_sites)
    return pts[picks].copy()
