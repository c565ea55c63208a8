"""Serialisable summaries of a run."""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class RunSummary(BaseModel):
    """Plain-data summary of a capacity-constrained run."""

    model_config = ConfigDict(frozen=True)

    num_sites: int = Field(..., ge=1, description="Number of generator sites")
    num_samples: int = Field(..., ge=1, description="Number of samples")
    outcome: str = Field(..., description="converged, sweep_limit or cancelled")
    sweeps: int = Field(..., ge=0, description="Balancing sweeps run")
    swaps: int = Field(..., ge=0, description="Sample exchanges performed")
    swaps_per_sweep: List[int] = Field(default_factory=list)
    capacities: List[int] = Field(default_factory=list)
    sample_error: float = Field(..., ge=0, description="Capacity error over the samples")
    pixel_error: Optional[float] = Field(None, ge=0, description="Capacity error over the density field")
    c_star: Optional[float] = Field(None, description="Fair-share mass per site")
    sites: List[List[float]] = Field(default_factory=list, description="Final [x, y] per site")
