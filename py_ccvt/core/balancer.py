"""
Pairwise exchange balancing of a capacity-exact partition.

Starting from any assignment that meets every capacity, sites repeatedly
trade samples one for one with nearby sites. A trade only happens when it
lowers the combined squared distance of the two samples to their owners,
so region sizes never change while region shapes converge towards an
ordinary Voronoi partition.

Each sweep visits every site once. Sites only look at partners whose
bounding circles overlap their own, found by ring expansion over a Voronoi
index of the sites themselves. The run ends after one sweep without any
exchange followed by a second, confirming one.
"""

import heapq
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional, Tuple

import numpy as np
import structlog

from ..config import Settings, settings
from .assignment import RegionAssignment
from .progress import ProgressCallback, emit
from .spatial_index import Bounds, ExpansionMode, SpatialIndex, as_points

logger = structlog.get_logger()


@dataclass
class BalancerOptions:
    """Balancing parameters."""
    max_sweeps: Optional[int] = 100  # None runs until convergence
    priority_sweeps: int = 3  # Leading sweeps ordered by radius and searched exhaustively
    search_depth: int = 5  # Rings searched in exhaustive sweeps
    ring_depth: int = 8  # Rings searched in ring-by-ring sweeps
    empty_ring_limit: int = 2  # Consecutive rings without a partner that end a search
    fine_grained_progress: bool = False  # Snapshot after every exchanging pair

    @classmethod
    def from_settings(cls, config: Optional[Settings] = None) -> "BalancerOptions":
        config = config or settings
        return cls(
            max_sweeps=config.max_sweeps,
            priority_sweeps=config.priority_sweeps,
            search_depth=config.search_depth,
            ring_depth=config.ring_depth,
            empty_ring_limit=config.empty_ring_limit,
        )


class BalanceOutcome(str, Enum):
    CONVERGED = "converged"
    SWEEP_LIMIT = "sweep_limit"
    CANCELLED = "cancelled"


@dataclass
class SwapRecord:
    """One exchange between sites i and j."""
    sample_from_i: int
    sample_from_j: int
    energy_i: float
    energy_j: float


@dataclass
class BalanceReport:
    outcome: BalanceOutcome
    sweeps: int
    swaps: int
    swaps_per_sweep: List[int] = field(default_factory=list)

    @property
    def converged(self) -> bool:
        return self.outcome is BalanceOutcome.CONVERGED


def centroid(members: np.ndarray, samples: np.ndarray) -> Optional[np.ndarray]:
    """Mean position of the given samples, None for an empty region."""
    if len(members) == 0:
        return None
    return samples[members].mean(axis=0)


def bounding_radius(site: np.ndarray, members: np.ndarray, samples: np.ndarray) -> float:
    """Largest distance from ``site`` to any of its samples."""
    if len(members) == 0:
        return 0.0
    offsets = samples[members] - site
    return float(np.sqrt(np.max(np.einsum("ij,ij->i", offsets, offsets))))


class Balancer:
    """Runs exchange sweeps over a site-space spatial index."""

    def __init__(self, sites, samples, assignment: RegionAssignment,
                 bounds: Optional[Bounds] = None,
                 options: Optional[BalancerOptions] = None,
                 on_progress: Optional[ProgressCallback] = None,
                 index: Optional[SpatialIndex] = None):
        """
        Sites are moved to their region centroids on construction.

        Args:
            sites: Site buffer, moved in place as regions change
            samples: Sample buffer
            assignment: Capacity-exact assignment, mutated in place
            bounds: Rectangle the points live in
            options: Balancing parameters
            on_progress: Receives a snapshot after every sweep (and after
                every exchanging pair in fine-grained mode)
            index: Existing spatial index over ``sites``
        """
        self.sites = as_points(sites)
        self.samples = as_points(samples)
        self.assignment = assignment
        self.options = options or BalancerOptions.from_settings()
        self.on_progress = on_progress

        self.num_sites = len(self.sites)
        self.radii = np.zeros(self.num_sites, dtype=np.float64)
        self.stabilities = np.zeros(self.num_sites, dtype=bool)
        self.sweeps_done = 0

        # Heap buffers reused by every exchange
        self._heap_i: List[Tuple[float, int]] = []
        self._heap_j: List[Tuple[float, int]] = []

        self.index = index if index is not None else SpatialIndex(self.sites, bounds)
        # Sites start at the centroids of their regions
        self.recenter()

    def _refresh(self, site: int):
        members = self.assignment.members(site)
        position = centroid(members, self.samples)
        if position is not None:
            self.sites[site] = position
        self.radii[site] = bounding_radius(self.sites[site], members, self.samples)

    def recenter(self):
        """Move every site to the centroid of its region."""
        for i in range(self.num_sites):
            self._refresh(i)
        self.index.update()
        logger.info("Sites moved to region centroids", sites=self.num_sites)

    def _overlaps(self, i: int, j: int) -> bool:
        dx, dy = self.sites[i] - self.sites[j]
        reach = self.radii[i] + self.radii[j]
        return dx * dx + dy * dy < reach * reach

    def _energies(self, members: np.ndarray, own: np.ndarray, other: np.ndarray) -> np.ndarray:
        pts = self.samples[members]
        to_own = pts - own
        to_other = pts - other
        return np.einsum("ij,ij->i", to_own, to_own) - np.einsum("ij,ij->i", to_other, to_other)

    def energies(self, i: int, j: int) -> Tuple[np.ndarray, np.ndarray]:
        """
        Exchange energies of both regions of the pair (i, j).

        A sample's energy is its squared distance to its own site minus its
        squared distance to the other site; positive means it would rather
        belong to the other region.
        """
        members_i = self.assignment.members(i)
        members_j = self.assignment.members(j)
        return (
            self._energies(members_i, self.sites[i], self.sites[j]),
            self._energies(members_j, self.sites[j], self.sites[i]),
        )

    def exchange(self, i: int, j: int) -> List[SwapRecord]:
        """
        Trade samples between sites i and j while it pays off.

        The highest-energy sample of each side is swapped as long as both
        sides have one left and the two energies sum to a positive value.
        Region sizes never change. If anything moved, both sites are
        recentred and the index is rebuilt.

        Returns:
            The exchanges performed, in order
        """
        members_i = self.assignment.members(i).copy()
        members_j = self.assignment.members(j).copy()
        if len(members_i) == 0 or len(members_j) == 0:
            return []

        energy_i, energy_j = self.energies(i, j)
        if energy_i.max() + energy_j.max() <= 0:
            return []

        heap_i = self._heap_i
        heap_j = self._heap_j
        heap_i.clear()
        heap_j.clear()
        heap_i.extend(zip((-energy_i).tolist(), members_i.tolist()))
        heap_j.extend(zip((-energy_j).tolist(), members_j.tolist()))
        heapq.heapify(heap_i)
        heapq.heapify(heap_j)

        swaps: List[SwapRecord] = []
        while heap_i and heap_j and heap_i[0][0] + heap_j[0][0] < 0:
            neg_a, a = heapq.heappop(heap_i)
            neg_b, b = heapq.heappop(heap_j)
            self.assignment.swap(a, b)
            swaps.append(SwapRecord(a, b, -neg_a, -neg_b))

        if swaps:
            self.stabilities[i] = False
            self.stabilities[j] = False
            self._refresh(i)
            self._refresh(j)
            self.index.update()
            logger.debug("Exchanged samples", site_i=i, site_j=j, swaps=len(swaps))

        return swaps

    def _partner_rings(self, i: int, exhaustive: bool) -> List[List[int]]:
        overlaps: Callable[[int], bool] = lambda j: self._overlaps(i, j)
        if exhaustive:
            partners = self.index.neighbors_and_neighbors(
                i, depth=self.options.search_depth, accept=overlaps,
                mode=ExpansionMode.INDIVIDUALS,
            )
            return [partners]
        return self.index.neighbors_and_neighbors(
            i, depth=self.options.ring_depth, accept=overlaps, mode=ExpansionMode.RINGS,
        )

    def sweep(self, priority: bool = False, exhaustive: bool = True) -> int:
        """
        Visit every site once and exchange with its overlapping partners.

        Args:
            priority: Visit sites by descending bounding radius instead of
                index order
            exhaustive: Search all partners within ``search_depth`` rings at
                once; otherwise go ring by ring up to ``ring_depth`` and stop
                after ``empty_ring_limit`` rings without a partner

        Returns:
            Number of exchanges performed
        """
        if priority:
            order = np.argsort(-self.radii, kind="stable").tolist()
        else:
            order = range(self.num_sites)

        self.stabilities[:] = True
        total = 0

        for i in order:
            empty = 0
            for ring in self._partner_rings(i, exhaustive):
                if not ring:
                    empty += 1
                    if empty >= self.options.empty_ring_limit:
                        break
                    continue
                empty = 0

                for j in ring:
                    # Geometry may have moved since the candidates were gathered
                    if not self._overlaps(i, j):
                        continue
                    swaps = self.exchange(i, j)
                    if swaps:
                        total += len(swaps)
                        if self.options.fine_grained_progress:
                            emit(self.on_progress, "exchange", self.sweeps_done + 1, self.sites)

        self.sweeps_done += 1
        emit(self.on_progress, "sweep", self.sweeps_done, self.sites)
        return total

    def run(self, should_cancel: Optional[Callable[[], bool]] = None) -> BalanceReport:
        """
        Sweep until the partition is swap-free.

        The first sweep without exchanges marks the partition stable; one
        more exchange-free sweep confirms it, because a single sweep can look
        steady purely because of the order it visited sites in.

        Args:
            should_cancel: Polled between sweeps; returning True stops the run

        Returns:
            BalanceReport with the outcome and swap counts
        """
        logger.info("Starting swapping process", sites=self.num_sites,
                    samples=len(self.samples), max_sweeps=self.options.max_sweeps)

        stable = False
        steady = False
        confirming = False
        per_sweep: List[int] = []
        outcome = BalanceOutcome.CONVERGED

        while not (stable and steady):
            if self.options.max_sweeps is not None and len(per_sweep) >= self.options.max_sweeps:
                outcome = BalanceOutcome.SWEEP_LIMIT
                logger.warning("Balancing did not converge", sweeps=len(per_sweep),
                               last_swaps=per_sweep[-1] if per_sweep else 0)
                break
            if should_cancel is not None and should_cancel():
                outcome = BalanceOutcome.CANCELLED
                logger.warning("Balancing cancelled", sweeps=len(per_sweep))
                break

            early = len(per_sweep) < self.options.priority_sweeps
            swaps = self.sweep(priority=early or stable, exhaustive=early or confirming)
            per_sweep.append(swaps)
            confirming = False

            steady = swaps == 0
            logger.info("Sweep complete", sweep=len(per_sweep), swaps=swaps,
                        steady=steady, stable=stable)

            if steady and not stable:
                # Require one more clean pass before declaring convergence
                stable = True
                steady = False
                confirming = True

        report = BalanceReport(outcome=outcome, sweeps=len(per_sweep),
                               swaps=sum(per_sweep), swaps_per_sweep=per_sweep)
        logger.info("Finished balancing", outcome=outcome.value, sweeps=report.sweeps,
                    swaps=report.swaps)
        return report
