#!/usr/bin/env python3
"""
Demonstration of capacity-constrained Voronoi tessellation.

This script walks through the full run:
1. Weighted Lloyd relaxation of starting sites on a density field
2. Sampling the density field
3. Capacity-constrained balancing of the sites
4. Capacity error before and after
"""

import numpy as np

from py_ccvt.core import CapConVoronoi, weighted_lloyd, subsample_sites
from py_ccvt.core.quality import evaluate_quality
from py_ccvt.core.spatial_index import SpatialIndex
from py_ccvt.utils.logging import configure_logging
from py_ccvt.utils.random import get_rng


def radial_density(width, height):
    """Density peaking in the middle of the field, row-major."""
    ys, xs = np.mgrid[0:height, 0:width]
    dx = (xs - width / 2) / width
    dy = (ys - height / 2) / height
    return np.exp(-8.0 * (dx * dx + dy * dy)).ravel()


def sample_density(densities, width, height, count, rng):
    """Draw sample positions with probability proportional to density."""
    probabilities = densities / densities.sum()
    picks = rng.choice(len(densities), size=count, p=probabilities)
    xs = picks % width + rng.uniform(0, 1, size=count)
    ys = picks // width + rng.uniform(0, 1, size=count)
    return np.column_stack([xs, ys])


def main():
    configure_logging(level="warning", fmt="console")
    rng = get_rng("demo_seed")

    width, height = 128, 128
    num_sites, num_samples = 64, 64 * 40
    densities = radial_density(width, height)

    print("=== Capacity-Constrained Voronoi Demo ===\n")

    # 1. Relax starting sites
    print("1. Relaxing starting sites with weighted Lloyd...")
    initial = rng.uniform(0, width, size=(num_sites, 2))
    relaxed, c_star = weighted_lloyd(densities, width, height, initial, iterations=20)
    lloyd_quality = evaluate_quality(SpatialIndex(relaxed), np.zeros((0, 2)),
                                     densities=densities, width=width, height=height)
    print(f"   - Sites: {len(relaxed)}")
    print(f"   - Fair-share mass per site: {c_star:.2f}")
    print(f"   - Pixel capacity error after Lloyd: {lloyd_quality.pixel_error:.4f}")

    # 2. Sample the density field
    print("\n2. Sampling the density field...")
    samples = sample_density(densities, width, height, num_samples, rng)
    print(f"   - Samples: {len(samples)}")

    # 3. Balance
    print("\n3. Running capacity-constrained balancing...")
    runner = CapConVoronoi(samples, relaxed.copy(), width, height, densities=densities)
    result = runner.run()
    print(f"   - Outcome: {result.report.outcome.value}")
    print(f"   - Sweeps: {result.report.sweeps}")
    print(f"   - Swaps per sweep: {result.report.swaps_per_sweep}")

    # 4. Compare
    print("\n4. Capacity error...")
    print(f"   - Pixel error (Lloyd):   {lloyd_quality.pixel_error:.4f}")
    print(f"   - Pixel error (CapCon):  {result.quality.pixel_error:.4f}")
    print(f"   - Sample error (CapCon): {result.quality.sample_error:.4f}")

    # 5. Random subsampled start
    print("\n5. Starting from subsampled sites instead...")
    start = subsample_sites(samples, num_sites, rng=rng)
    other = CapConVoronoi(samples, start, width, height, densities=densities).run()
    print(f"   - Sweeps: {other.report.sweeps}")
    print(f"   - Pixel error: {other.quality.pixel_error:.4f}")

    print("\n=== Demo Complete ===")


if __name__ == "__main__":
    main()
