"""Progress snapshots handed to an external consumer while a run is in flight."""

from dataclasses import dataclass
from typing import Callable, Optional

import numpy as np


@dataclass(frozen=True)
class ProgressSnapshot:
    """Site positions at one point of a run."""
    stage: str  # "assigned", "centroids", "exchange", "sweep", "lloyd", "final"
    sweep: int
    sites: np.ndarray  # (S, 2) copy, safe to keep


ProgressCallback = Callable[[ProgressSnapshot], None]


def emit(callback: Optional[ProgressCallback], stage: str, sweep: int, sites: np.ndarray):
    """Deliver a snapshot; the consumer's return value is ignored."""
    if callback is None:
        return
    callback(ProgressSnapshot(stage=stage, sweep=sweep, sites=np.array(sites, dtype=np.float64)))
