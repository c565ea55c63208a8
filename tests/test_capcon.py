"""End-to-end tests for the capacity-constrained run."""

import json

import pytest
import numpy as np
from pydantic import ValidationError
from py_ccvt.core import (
    BalancerOptions, CapConVoronoi, PreconditionViolationError, RegionAssignment
)
from py_ccvt.core.capacity import plan_capacities

CLUSTER_OFFSETS = np.array([[-2.0, 0.0], [2.0, 0.0], [0.0, 3.0]])
CLUSTER_CENTERS = np.array([[20.0, 20.0], [80.0, 20.0], [50.0, 80.0]])
CLUSTERS = [{0, 1, 2}, {3, 4, 5}, {6, 7, 8}]


@pytest.fixture
def samples():
    return np.vstack([center + CLUSTER_OFFSETS for center in CLUSTER_CENTERS])


@pytest.fixture
def sites():
    return np.array([[30.0, 30.0], [70.0, 25.0], [45.0, 70.0]])


class TestCapConVoronoi:
    """Test the full pipeline on three well separated clusters."""

    def test_default_assignment(self, samples, sites):
        result = CapConVoronoi(samples, sites, 100, 100).run()

        assert result.report.converged
        assert result.report.sweeps <= 5
        assert result.capacities.tolist() == [3, 3, 3]
        assert result.assignment.sizes().tolist() == [3, 3, 3]
        result.assignment.verify()

    def test_recovers_clusters(self, samples, sites):
        scrambled = [[0, 1, 3], [2, 4, 5], [6, 7, 8]]
        result = CapConVoronoi(samples, sites, 100, 100, assignment=scrambled).run()

        assert result.report.converged
        assert result.report.sweeps <= 5
        assert result.report.swaps == 1
        assert result.assignment.to_regions() == CLUSTERS
        assert result.quality.sample_error == pytest.approx(0.0)
        np.testing.assert_allclose(result.sites, CLUSTER_CENTERS + [0.0, 1.0])

    def test_sites_moved_in_place(self, samples):
        flat_sites = np.array([30.0, 30.0, 70.0, 25.0, 45.0, 70.0])
        result = CapConVoronoi(samples, flat_sites, 100, 100).run()

        np.testing.assert_array_equal(flat_sites.reshape(-1, 2), result.sites)
        # The result holds its own copy
        assert not np.shares_memory(result.sites, flat_sites)

    def test_progress_stage_order(self, samples, sites):
        snapshots = []
        result = CapConVoronoi(samples, sites, 100, 100, on_progress=snapshots.append).run()

        stages = [s.stage for s in snapshots]
        assert stages[:2] == ["assigned", "centroids"]
        assert stages[-1] == "final"
        assert stages[2:-1] == ["sweep"] * result.report.sweeps

    def test_supplied_slot_table(self, samples, sites):
        table = RegionAssignment.from_regions([[0, 1, 3], [2, 4, 5], [6, 7, 8]]).to_slot_table()
        result = CapConVoronoi(samples, sites, 100, 100, assignment=table).run()

        assert result.assignment.to_regions() == CLUSTERS

    def test_supplied_assignment_with_wrong_site_count(self, samples, sites):
        with pytest.raises(ValueError):
            CapConVoronoi(samples, sites, 100, 100,
                          assignment=[[0, 1, 2, 3], [4, 5, 6, 7, 8]]).run()

    def test_non_uniform_capacities(self, samples, sites):
        result = CapConVoronoi(samples, sites, 100, 100, capacities=[2, 3, 4]).run()

        assert result.report.converged
        assert result.assignment.sizes().tolist() == [2, 3, 4]
        result.assignment.verify()

    def test_density_diagnostics(self, samples, sites):
        densities = np.ones(100 * 100)
        result = CapConVoronoi(samples, sites, 100, 100, densities=densities).run()

        assert result.quality.c_star == pytest.approx(10000 / 3)
        assert result.quality.pixel_error is not None
        assert result.quality.pixel_error >= 0.0

    def test_coincident_sites(self, samples):
        sites = np.full((3, 2), 50.0)
        result = CapConVoronoi(samples, sites, 100, 100).run()

        assert result.report.converged
        assert len(np.unique(result.sites, axis=0)) == 3
        result.assignment.verify()

    def test_sweep_limit_still_returns(self, samples, sites):
        options = BalancerOptions(max_sweeps=1)
        scrambled = [[0, 1, 3], [2, 4, 5], [6, 7, 8]]
        result = CapConVoronoi(samples, sites, 100, 100, assignment=scrambled,
                               options=options).run()

        assert result.report.outcome.value == "sweep_limit"
        result.assignment.verify()

    def test_cancelled_run(self, samples, sites):
        result = CapConVoronoi(samples, sites, 100, 100).run(should_cancel=lambda: True)

        assert result.report.outcome.value == "cancelled"
        assert result.report.sweeps == 0


class TestPreconditions:
    """Test sizing failures abort before any work."""

    def test_too_few_samples(self, sites):
        snapshots = []
        runner = CapConVoronoi(np.zeros((2, 2)), sites, 10, 10, on_progress=snapshots.append)

        with pytest.raises(PreconditionViolationError) as exc_info:
            runner.run()

        assert exc_info.value.num_samples == 2
        assert exc_info.value.num_sites == 3
        assert snapshots == []

    def test_no_sites(self, samples):
        with pytest.raises(PreconditionViolationError):
            CapConVoronoi(samples, np.zeros((0, 2)), 10, 10).run()

    def test_capacities_must_sum(self, samples, sites):
        with pytest.raises(PreconditionViolationError) as exc_info:
            CapConVoronoi(samples, sites, 100, 100, capacities=[3, 3, 4]).run()

        assert exc_info.value.capacity_total == 10

    def test_density_size_checked(self, samples, sites):
        with pytest.raises(ValueError):
            CapConVoronoi(samples, sites, 10, 10, densities=np.ones(99))


class TestSummary:
    """Test the serialisable run summary."""

    def test_summary_round_trips_to_json(self, samples, sites):
        summary = CapConVoronoi(samples, sites, 100, 100).run().summary()
        payload = json.loads(summary.model_dump_json())

        assert payload["outcome"] == "converged"
        assert payload["num_sites"] == 3
        assert payload["num_samples"] == 9
        assert payload["capacities"] == [3, 3, 3]
        assert len(payload["sites"]) == 3
        assert payload["pixel_error"] is None

    def test_summary_is_frozen(self, samples, sites):
        summary = CapConVoronoi(samples, sites, 100, 100).run().summary()
        with pytest.raises(ValidationError):
            summary.sweeps = 0


def test_random_instance():
    """Larger random run keeps capacities and converges."""
    rng = np.random.default_rng(404)
    samples = rng.uniform(0, 256, size=(400, 2))
    sites = rng.uniform(0, 256, size=(16, 2))

    result = CapConVoronoi(samples, sites, 256, 256).run()

    assert result.report.converged
    np.testing.assert_array_equal(result.assignment.sizes(), plan_capacities(400, 16))
    result.assignment.verify()
