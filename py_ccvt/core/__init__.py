"""
Core capacity-constrained partitioning functionality.
"""

from .spatial_index import SpatialIndex, ExpansionMode
from .capacity import plan_capacities, validate_capacities
from .assignment import RegionAssignment, EMPTY_SLOT
from .region_assigner import assign_regions
from .balancer import Balancer, BalancerOptions, BalanceOutcome, BalanceReport
from .quality import normalized_capacity_error, evaluate_quality, QualityReport
from .weighted_voronoi import weighted_lloyd, subsample_sites
from .capcon import CapConVoronoi, CapConResult
from .progress import ProgressSnapshot
from .errors import (
    CapacityConstraintError, PreconditionViolationError,
    AssignmentExhaustionError, EmptyRegionError,
)

__all__ = ['SpatialIndex', 'ExpansionMode', 'plan_capacities', 'validate_capacities',
           'RegionAssignment', 'EMPTY_SLOT', 'assign_regions',
           'Balancer', 'BalancerOptions', 'BalanceOutcome', 'BalanceReport',
           'normalized_capacity_error', 'evaluate_quality', 'QualityReport',
           'weighted_lloyd', 'subsample_sites', 'CapConVoronoi', 'CapConResult',
           'ProgressSnapshot', 'CapacityConstraintError', 'PreconditionViolationError',
           'AssignmentExhaustionError', 'EmptyRegionError']
