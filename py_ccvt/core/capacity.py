"""Per-site capacity planning."""

from typing import Optional, Sequence

import numpy as np
import structlog

from .errors import PreconditionViolationError

logger = structlog.get_logger()


def check_sizes(num_samples: int, num_sites: int) -> None:
    """Fail unless every site can receive at least one sample."""
    if num_sites <= 0:
        raise PreconditionViolationError(
            "At least one generator site is required", num_samples, num_sites
        )
    if num_samples < num_sites:
        raise PreconditionViolationError(
            f"Too few samples ({num_samples}) for {num_sites} generator sites",
            num_samples, num_sites,
        )


def plan_capacities(num_samples: int, num_sites: int) -> np.ndarray:
    """
    Split ``num_samples`` into ``num_sites`` exact capacities.

    Sequential allocation: site ``i`` takes ``floor(remaining / (S - i))``
    and the remainder moves on, so earlier sites get the floor of an even
    share and later sites absorb what is left over.

    Args:
        num_samples: Total number of samples N
        num_sites: Number of sites S (N >= S)

    Returns:
        uint32 array of S capacities summing to N
    """
    check_sizes(num_samples, num_sites)

    capacities = np.zeros(num_sites, dtype=np.uint32)
    remaining = num_samples
    for i in range(num_sites):
        capacity = remaining // (num_sites - i)
        capacities[i] = capacity
        remaining -= capacity

    logger.info("Capacities planned", samples=num_samples, sites=num_sites,
                min_capacity=int(capacities.min()), max_capacity=int(capacities.max()))
    return capacities


def validate_capacities(capacities: Sequence[int], num_samples: int,
                        num_sites: Optional[int] = None) -> np.ndarray:
    """
    Check externally supplied capacities and return them as a uint32 array.

    Raises:
        PreconditionViolationError: if the count does not match the sites,
            any capacity is negative or fractional, or they do not sum to
            ``num_samples``
    """
    raw = np.asarray(capacities)
    if raw.ndim != 1:
        raise ValueError(f"Capacities must be one-dimensional, got shape {raw.shape}")
    if num_sites is None:
        num_sites = len(raw)

    check_sizes(num_samples, num_sites)

    if len(raw) != num_sites:
        raise PreconditionViolationError(
            f"Got {len(raw)} capacities for {num_sites} sites",
            num_samples, num_sites,
        )
    if not (np.issubdtype(raw.dtype, np.integer) or np.issubdtype(raw.dtype, np.floating)):
        raise PreconditionViolationError(
            "Capacities must be numeric", num_samples, num_sites
        )
    if not np.issubdtype(raw.dtype, np.integer) and not np.all(np.isfinite(raw) & (raw == np.floor(raw))):
        raise PreconditionViolationError(
            "Capacities must be whole numbers", num_samples, num_sites
        )
    if np.any(raw < 0):
        raise PreconditionViolationError(
            "Capacities must be non-negative", num_samples, num_sites
        )

    capacities = raw.astype(np.uint32)
    total = int(capacities.sum())
    if total != num_samples:
        raise PreconditionViolationError(
            f"Capacities sum to {total}, expected {num_samples}",
            num_samples, num_sites, capacity_total=total,
        )
    return capacities
