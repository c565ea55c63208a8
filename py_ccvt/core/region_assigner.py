"""
Initial region assignment.

Each site, in index order, claims the unassigned sample nearest to it and
then grows outward through the samples' own neighbour graph until its
capacity is met. The result is exact in size but geometrically arbitrary;
balancing improves the shapes afterwards.
"""

from typing import List, Optional

import numpy as np
import structlog

from .assignment import RegionAssignment
from .errors import AssignmentExhaustionError, EmptyRegionError
from .spatial_index import ExpansionMode, SpatialIndex, as_points

logger = structlog.get_logger()


def assign_regions(sites, samples, capacities, sample_index: Optional[SpatialIndex] = None,
                   offset: Optional[float] = None) -> RegionAssignment:
    """
    Fill every site's region with unique samples.

    Args:
        sites: Site buffer (flat or (S, 2))
        samples: Sample buffer (flat or (N, 2))
        capacities: Exact region size per site, summing to N
        sample_index: Spatial index over the samples; built if omitted
        offset: Shift applied to a site position before locating its
            nearest sample, defaults to the index's coincidence offset

    Returns:
        RegionAssignment satisfying every capacity

    Raises:
        AssignmentExhaustionError: if samples remain unassigned or the
            regions do not add up to all samples
        EmptyRegionError: if a site with nonzero capacity got no samples
    """
    site_pts = as_points(sites)
    sample_pts = as_points(samples)
    capacities = np.asarray(capacities, dtype=np.int64)
    num_sites = len(site_pts)
    num_samples = len(sample_pts)

    if sample_index is None:
        sample_index = SpatialIndex(sample_pts)
    if offset is None:
        offset = sample_index.coincidence_offset

    logger.info("Assigning regions", sites=num_sites, samples=num_samples)

    assigned = np.zeros(num_samples, dtype=bool)
    regions: List[List[int]] = []
    hint = 0
    fallbacks = 0

    def claim(region: List[int], sample: int):
        region.append(sample)
        assigned[sample] = True

    for i in range(num_sites):
        capacity = int(capacities[i])
        region: List[int] = []
        regions.append(region)
        if capacity == 0:
            continue

        x, y = site_pts[i]
        hint = sample_index.find(x + offset, y + offset, hint)
        if not assigned[hint]:
            claim(region, hint)

        if len(region) < capacity:
            candidates = sample_index.neighbors_and_neighbors(
                hint,
                depth=None,
                target_count=capacity - len(region),
                accept=lambda s: not assigned[s],
                mode=ExpansionMode.INDIVIDUALS,
            )
            for candidate in candidates:
                if not assigned[candidate]:
                    claim(region, candidate)
                    if len(region) == capacity:
                        break

        if len(region) < capacity:
            # Neighbour graph exhausted; take whatever is left globally
            fallbacks += 1
            for leftover in np.flatnonzero(~assigned)[:capacity - len(region)].tolist():
                claim(region, leftover)

    unassigned = int(np.count_nonzero(~assigned))
    total = sum(len(r) for r in regions)
    if unassigned:
        raise AssignmentExhaustionError(
            "Not all samples were assigned to a site",
            unassigned=unassigned, assigned=total, num_samples=num_samples,
        )
    if total != num_samples:
        raise AssignmentExhaustionError(
            "Voronoi regions don't contain all samples",
            unassigned=unassigned, assigned=total, num_samples=num_samples,
        )
    for i, region in enumerate(regions):
        if capacities[i] > 0 and not region:
            raise EmptyRegionError(
                f"Site {i} has no region despite capacity {capacities[i]}",
                site=i, capacity=int(capacities[i]),
            )

    logger.info("Regions assigned", sites=num_sites, samples=num_samples,
                global_fallbacks=fallbacks)
    return RegionAssignment.from_regions(regions, num_samples=num_samples, capacities=capacities)
