"""
Region assignment stored as a fixed-width slot table.

Row ``i`` of the table holds the samples owned by site ``i`` in its first
``capacities[i]`` slots; the remaining slots hold ``EMPTY_SLOT``. Because
every region is always full, exchanging two samples between regions is a
pair of slot writes.
"""

from typing import Iterable, List, Optional, Sequence, Set

import numpy as np

from .errors import AssignmentExhaustionError, PreconditionViolationError

EMPTY_SLOT = -1


class RegionAssignment:
    """Mapping from site to the exact set of samples its region contains."""

    def __init__(self, slots: np.ndarray, capacities: np.ndarray, num_samples: int):
        """
        Args:
            slots: (S, width) int64 table, each row left-packed and padded
                with EMPTY_SLOT
            capacities: Region size per site
            num_samples: Total number of samples
        """
        self.slots = slots
        self.capacities = np.asarray(capacities, dtype=np.uint32)
        self.num_samples = int(num_samples)

        self.owner = np.full(self.num_samples, EMPTY_SLOT, dtype=np.int64)
        self.slot = np.full(self.num_samples, EMPTY_SLOT, dtype=np.int64)
        for site in range(len(self.capacities)):
            row = self.members(site)
            self.owner[row] = site
            self.slot[row] = np.arange(len(row))

    @property
    def num_sites(self) -> int:
        return len(self.capacities)

    @classmethod
    def from_regions(cls, regions: Sequence[Iterable[int]], num_samples: Optional[int] = None,
                     capacities: Optional[Sequence[int]] = None) -> "RegionAssignment":
        """
        Build from one collection of sample ids per site.

        Raises:
            AssignmentExhaustionError: if a sample is missing or repeated
            PreconditionViolationError: if region sizes differ from capacities
        """
        rows = [np.fromiter((int(s) for s in region), dtype=np.int64) for region in regions]
        sizes = np.array([len(r) for r in rows], dtype=np.int64)
        if num_samples is None:
            num_samples = int(sizes.sum())
        if capacities is None:
            capacities = sizes
        capacities = np.asarray(capacities, dtype=np.int64)

        if len(capacities) != len(rows):
            raise PreconditionViolationError(
                f"Got {len(rows)} regions for {len(capacities)} capacities",
                num_samples, len(capacities),
            )
        mismatched = np.flatnonzero(sizes != capacities)
        if len(mismatched):
            site = int(mismatched[0])
            raise PreconditionViolationError(
                f"Region {site} holds {sizes[site]} samples, capacity is {capacities[site]}",
                num_samples, len(rows), capacity_total=int(capacities.sum()),
            )

        width = max(int(capacities.max()) if len(capacities) else 0, 1)
        slots = np.full((len(rows), width), EMPTY_SLOT, dtype=np.int64)
        for site, row in enumerate(rows):
            slots[site, :len(row)] = row

        _check_coverage(slots, num_samples)
        return cls(slots, capacities, num_samples)

    @classmethod
    def from_slot_table(cls, table, num_samples: Optional[int] = None,
                        capacities: Optional[Sequence[int]] = None) -> "RegionAssignment":
        """Build from an external (S, width) table padded with EMPTY_SLOT."""
        table = np.asarray(table, dtype=np.int64)
        if table.ndim != 2:
            raise ValueError(f"Slot table must be two-dimensional, got shape {table.shape}")
        regions = [row[row != EMPTY_SLOT] for row in table]
        return cls.from_regions(regions, num_samples=num_samples, capacities=capacities)

    def members(self, site: int) -> np.ndarray:
        """Sample ids owned by ``site`` (a view into the slot table)."""
        return self.slots[site, :int(self.capacities[site])]

    def site_of(self, sample: int) -> int:
        return int(self.owner[sample])

    def sizes(self) -> np.ndarray:
        return np.count_nonzero(self.slots != EMPTY_SLOT, axis=1)

    def swap(self, a: int, b: int):
        """Exchange samples ``a`` and ``b`` between their regions."""
        site_a, slot_a = self.owner[a], self.slot[a]
        site_b, slot_b = self.owner[b], self.slot[b]

        self.slots[site_a, slot_a] = b
        self.slots[site_b, slot_b] = a
        self.owner[a], self.owner[b] = site_b, site_a
        self.slot[a], self.slot[b] = slot_b, slot_a

    def to_slot_table(self) -> np.ndarray:
        return self.slots.copy()

    def to_regions(self) -> List[Set[int]]:
        return [set(self.members(site).tolist()) for site in range(self.num_sites)]

    def verify(self):
        """Re-check coverage and region sizes; raises on any violation."""
        _check_coverage(self.slots, self.num_samples)
        sizes = self.sizes()
        mismatched = np.flatnonzero(sizes != self.capacities)
        if len(mismatched):
            site = int(mismatched[0])
            raise PreconditionViolationError(
                f"Region {site} holds {sizes[site]} samples, capacity is {self.capacities[site]}",
                self.num_samples, self.num_sites, capacity_total=int(self.capacities.sum()),
            )


def _check_coverage(slots: np.ndarray, num_samples: int):
    ids = slots[slots != EMPTY_SLOT]
    if len(ids) and (ids.min() < 0 or ids.max() >= num_samples):
        raise AssignmentExhaustionError(
            "Region holds a sample id outside the sample buffer",
            unassigned=0, assigned=len(ids), num_samples=num_samples,
        )
    counts = np.bincount(ids, minlength=num_samples)
    missing = int(np.count_nonzero(counts == 0))
    if missing or len(ids) != num_samples:
        raise AssignmentExhaustionError(
            "Voronoi regions don't cover every sample exactly once",
            unassigned=missing, assigned=len(ids), num_samples=num_samples,
        )
