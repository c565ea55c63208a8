"""
Capacity-constrained Voronoi tessellation.

Ties the stages together: capacities are planned (or checked), samples are
assigned to sites using a Voronoi index of the samples, sites move to their
region centroids, and exchange balancing runs over a Voronoi index of the
sites until no pair of regions can improve by trading samples.
"""

from dataclasses import dataclass
from typing import Callable, Optional, Sequence, Union

import numpy as np
import structlog

from ..models import RunSummary
from .assignment import RegionAssignment
from .balancer import Balancer, BalanceReport, BalancerOptions
from .capacity import check_sizes, plan_capacities, validate_capacities
from .progress import ProgressCallback, emit
from .quality import QualityReport, check_density, evaluate_quality
from .region_assigner import assign_regions
from .spatial_index import SpatialIndex, as_points

logger = structlog.get_logger()


@dataclass
class CapConResult:
    """Final state of a run."""
    sites: np.ndarray
    assignment: RegionAssignment
    capacities: np.ndarray
    quality: QualityReport
    report: BalanceReport

    def summary(self) -> RunSummary:
        return RunSummary(
            num_sites=len(self.sites),
            num_samples=self.assignment.num_samples,
            outcome=self.report.outcome.value,
            sweeps=self.report.sweeps,
            swaps=self.report.swaps,
            swaps_per_sweep=list(self.report.swaps_per_sweep),
            capacities=[int(c) for c in self.capacities],
            sample_error=self.quality.sample_error,
            pixel_error=self.quality.pixel_error,
            c_star=self.quality.c_star,
            sites=self.sites.tolist(),
        )


class CapConVoronoi:
    """
    One capacity-constrained run over fixed samples and moving sites.

    The site buffer is moved in place; keep a copy if the starting
    positions matter.
    """

    def __init__(
        self,
        samples,
        sites,
        width: int,
        height: int,
        densities=None,
        capacities: Optional[Sequence[int]] = None,
        assignment: Optional[Union[RegionAssignment, np.ndarray, Sequence[Sequence[int]]]] = None,
        options: Optional[BalancerOptions] = None,
        on_progress: Optional[ProgressCallback] = None,
    ):
        """
        Args:
            samples: Sample buffer (flat or (N, 2))
            sites: Site buffer (flat or (S, 2)), mutated in place
            width: Width of the plane (and of the density field)
            height: Height of the plane (and of the density field)
            densities: Optional row-major density field for diagnostics
            capacities: Optional per-site capacities; planned if omitted
            assignment: Optional precomputed assignment (RegionAssignment,
                slot table, or one sample list per site)
            options: Balancing parameters
            on_progress: Receives site snapshots while the run progresses
        """
        self.samples = as_points(samples)
        self.sites = as_points(sites)
        self.width = int(width)
        self.height = int(height)
        self.bounds = (0.0, 0.0, float(width), float(height))
        self.densities = None if densities is None else check_density(densities, self.width, self.height)
        self.capacities = capacities
        self.assignment = assignment
        self.options = options or BalancerOptions.from_settings()
        self.on_progress = on_progress

        self.balancer: Optional[Balancer] = None

    @property
    def num_sites(self) -> int:
        return len(self.sites)

    @property
    def num_samples(self) -> int:
        return len(self.samples)

    def _resolve_capacities(self) -> np.ndarray:
        if self.capacities is None:
            return plan_capacities(self.num_samples, self.num_sites)
        return validate_capacities(self.capacities, self.num_samples, self.num_sites)

    def _resolve_assignment(self, capacities: np.ndarray) -> RegionAssignment:
        supplied = self.assignment
        if supplied is None:
            sample_index = SpatialIndex(self.samples, self.bounds)
            return assign_regions(self.sites, self.samples, capacities, sample_index)

        if isinstance(supplied, RegionAssignment):
            assignment = supplied
            if not np.array_equal(assignment.capacities, capacities):
                assignment = RegionAssignment.from_slot_table(
                    supplied.to_slot_table(), num_samples=self.num_samples, capacities=capacities
                )
        elif isinstance(supplied, np.ndarray) and supplied.ndim == 2:
            assignment = RegionAssignment.from_slot_table(
                supplied, num_samples=self.num_samples, capacities=capacities
            )
        else:
            assignment = RegionAssignment.from_regions(
                supplied, num_samples=self.num_samples, capacities=capacities
            )

        if assignment.num_samples != self.num_samples or assignment.num_sites != self.num_sites:
            raise ValueError(
                f"Assignment covers {assignment.num_samples} samples over {assignment.num_sites} "
                f"sites, expected {self.num_samples} over {self.num_sites}"
            )
        assignment.verify()
        logger.info("Using supplied region assignment", sites=assignment.num_sites)
        return assignment

    def run(self, should_cancel: Optional[Callable[[], bool]] = None) -> CapConResult:
        """
        Run every stage and return the final partition.

        Raises:
            PreconditionViolationError: bad sizing or capacities
            AssignmentExhaustionError: samples could not all be placed
            EmptyRegionError: a site ended initialisation without samples
        """
        logger.info("Starting capacity-constrained run",
                    sites=self.num_sites, samples=self.num_samples,
                    width=self.width, height=self.height)

        check_sizes(self.num_samples, self.num_sites)
        capacities = self._resolve_capacities()

        assignment = self._resolve_assignment(capacities)
        emit(self.on_progress, "assigned", 0, self.sites)

        self.balancer = Balancer(
            self.sites, self.samples, assignment,
            bounds=self.bounds, options=self.options, on_progress=self.on_progress,
        )
        emit(self.on_progress, "centroids", 0, self.sites)

        report = self.balancer.run(should_cancel=should_cancel)

        quality = evaluate_quality(
            self.balancer.index, self.samples,
            densities=self.densities, width=self.width, height=self.height,
        )
        emit(self.on_progress, "final", report.sweeps, self.sites)

        return CapConResult(
            sites=self.sites.copy(),
            assignment=assignment,
            capacities=capacities,
            quality=quality,
            report=report,
        )
