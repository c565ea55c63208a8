"""Tests for the slot-table region assignment."""

import pytest
import numpy as np
from py_ccvt.core.assignment import RegionAssignment, EMPTY_SLOT
from py_ccvt.core.errors import AssignmentExhaustionError, PreconditionViolationError


@pytest.fixture
def assignment():
    return RegionAssignment.from_regions([[0, 1], [2], [3, 4, 5]])


class TestRegionAssignment:
    """Test construction and exchanges."""

    def test_slot_table_padding(self, assignment):
        table = assignment.to_slot_table()

        assert table.shape == (3, 3)
        assert table[1].tolist() == [2, EMPTY_SLOT, EMPTY_SLOT]
        assert table[2].tolist() == [3, 4, 5]
        assert assignment.capacities.tolist() == [2, 1, 3]
        assert assignment.num_samples == 6

    def test_owner_lookup(self, assignment):
        assert [assignment.site_of(s) for s in range(6)] == [0, 0, 1, 2, 2, 2]

    def test_swap_preserves_sizes(self, assignment):
        assignment.swap(0, 4)

        assert assignment.sizes().tolist() == [2, 1, 3]
        assert set(assignment.members(0).tolist()) == {4, 1}
        assert set(assignment.members(2).tolist()) == {3, 0, 5}
        assert assignment.site_of(0) == 2
        assert assignment.site_of(4) == 0
        assignment.verify()

    def test_swap_back_restores(self, assignment):
        before = assignment.to_slot_table()
        assignment.swap(1, 2)
        assignment.swap(1, 2)
        np.testing.assert_array_equal(assignment.to_slot_table(), before)

    def test_to_regions(self, assignment):
        assert assignment.to_regions() == [{0, 1}, {2}, {3, 4, 5}]

    def test_from_slot_table(self):
        table = np.array([[3, EMPTY_SLOT], [0, 1], [EMPTY_SLOT, 2]])
        assignment = RegionAssignment.from_slot_table(table)

        assert assignment.capacities.tolist() == [1, 2, 1]
        assert assignment.members(2).tolist() == [2]

    def test_zero_capacity_region(self):
        assignment = RegionAssignment.from_regions([[], [0, 1]])
        assert assignment.members(0).tolist() == []
        assert assignment.sizes().tolist() == [0, 2]


class TestAssignmentValidation:
    """Test rejection of malformed assignments."""

    def test_missing_sample(self):
        with pytest.raises(AssignmentExhaustionError) as exc_info:
            RegionAssignment.from_regions([[0], [2]], num_samples=3)
        assert exc_info.value.unassigned == 1

    def test_repeated_sample(self):
        with pytest.raises(AssignmentExhaustionError):
            RegionAssignment.from_regions([[0, 1], [1]], num_samples=3)

    def test_out_of_range_sample(self):
        with pytest.raises(AssignmentExhaustionError):
            RegionAssignment.from_regions([[0], [7]], num_samples=2)

    def test_capacity_mismatch(self):
        with pytest.raises(PreconditionViolationError):
            RegionAssignment.from_regions([[0, 1], [2]], capacities=[1, 2])

    def test_region_count_mismatch(self):
        with pytest.raises(PreconditionViolationError):
            RegionAssignment.from_regions([[0, 1, 2]], capacities=[1, 2])

    def test_slot_table_must_be_2d(self):
        with pytest.raises(ValueError):
            RegionAssignment.from_slot_table(np.array([0, 1, 2]))
