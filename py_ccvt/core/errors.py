"""
Fatal error types for capacity-constrained partitioning.

All of these abort the computation; nothing partial is usable afterwards.
They derive from ValueError so callers treating bad input generically keep
working, while the subclasses let callers tell bad sizing apart from
degenerate geometry.
"""

from typing import Optional


class CapacityConstraintError(ValueError):
    """Base class for capacity-constrained partitioning failures."""


class PreconditionViolationError(CapacityConstraintError):
    """Input sizing makes an exact partition impossible."""

    def __init__(self, message: str, num_samples: int, num_sites: int,
                 capacity_total: Optional[int] = None):
        super().__init__(message)
        self.num_samples = num_samples
        self.num_sites = num_sites
        self.capacity_total = capacity_total


class AssignmentExhaustionError(CapacityConstraintError):
    """The initial assignment could not place every sample."""

    def __init__(self, message: str, unassigned: int, assigned: int, num_samples: int):
        super().__init__(message)
        self.unassigned = unassigned
        self.assigned = assigned
        self.num_samples = num_samples


class EmptyRegionError(CapacityConstraintError):
    """A site with nonzero capacity ended initialisation without samples."""

    def __init__(self, message: str, site: int, capacity: int):
        super().__init__(message)
        self.site = site
        self.capacity = capacity
