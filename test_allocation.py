# test_allocation.py

import unittest
from datetime import date
from allocation import InsufficientCapacity, can_allocate, ensure_capacity, has_required_skill, ranges_overlap, assignment_status, hours_per_week

def d(value): return date.fromisoformat(value)

class AllocationTestCase(unittest.TestCase):
    """Test suite for the capacity check used by the assignment endpoints."""

    def setUp(self):
        self.existing = [{'id': 1, 'startDate': d('2025-01-01'), 'endDate': d('2025-06-30'), 'allocationPercentage': 70}]

    def test_01_over_allocation_rejected(self):
        check = can_allocate(100, self.existing, d('2025-03-01'), d('2025-04-01'), 40)
        self.assertFalse(check.allowed)
        self.assertEqual(check.available_capacity, 30)

    def test_02_allocation_within_remaining_capacity(self):
        check = can_allocate(100, self.existing, d('2025-03-01'), d('2025-04-01'), 20)
        self.assertTrue(check.allowed)
        self.assertEqual(check.available_capacity, 30)

    def test_03_exact_fit_allowed(self):
        self.assertTrue(can_allocate(100, self.existing, d('2025-03-01'), d('2025-04-01'), 30).allowed)

    def test_04_non_overlapping_candidate_sees_full_capacity(self):
        check = can_allocate(100, self.existing, d('2025-07-01'), d('2025-08-01'), 90)
        self.assertTrue(check.allowed)
        self.assertEqual(check.available_capacity, 100)

    def test_05_no_assignments(self):
        check = can_allocate(50, [], d('2025-01-01'), d('2025-01-31'), 60)
        self.assertFalse(check.allowed)
        self.assertEqual(check.available_capacity, 50)

    def test_06_shared_boundary_day_counts_as_overlap(self):
        check = can_allocate(100, self.existing, d('2025-06-30'), d('2025-07-31'), 40)
        self.assertFalse(check.allowed)
        self.assertEqual(check.available_capacity, 30)
        # Ending on the existing start date overlaps too
        self.assertEqual(can_allocate(100, self.existing, d('2024-12-01'), d('2025-01-01'), 10).available_capacity, 30)
        # The day after does not
        self.assertEqual(can_allocate(100, self.existing, d('2025-07-01'), d('2025-07-31'), 10).available_capacity, 100)

    def test_07_update_excludes_itself(self):
        # Raising assignment 1 from 70% to 100% must not count its own old 70%
        check = can_allocate(100, self.existing, d('2025-01-01'), d('2025-06-30'), 100, exclude_assignment_id=1)
        self.assertTrue(check.allowed)
        self.assertEqual(check.available_capacity, 100)
        self.assertFalse(can_allocate(100, self.existing, d('2025-01-01'), d('2025-06-30'), 100).allowed)

    def test_08_available_capacity_can_go_negative(self):
        existing = self.existing + [{'id': 2, 'startDate': d('2025-02-01'), 'endDate': d('2025-02-28'), 'allocationPercentage': 50}]
        check = can_allocate(100, existing, d('2025-02-10'), d('2025-02-11'), 1)
        self.assertFalse(check.allowed)
        self.assertEqual(check.available_capacity, -20)

    def test_09_sums_every_overlapping_assignment(self):
        existing = [
            {'id': 1, 'startDate': d('2025-01-01'), 'endDate': d('2025-01-31'), 'allocationPercentage': 20},
            {'id': 2, 'startDate': d('2025-01-15'), 'endDate': d('2025-03-31'), 'allocationPercentage': 30},
            {'id': 3, 'startDate': d('2025-04-01'), 'endDate': d('2025-04-30'), 'allocationPercentage': 40},
        ]
        self.assertEqual(can_allocate(100, existing, d('2025-01-20'), d('2025-02-05'), 10).available_capacity, 50)
        self.assertEqual(can_allocate(100, existing, d('2025-03-31'), d('2025-04-01'), 10).available_capacity, 30)

    def test_10_reads_model_style_attributes(self):
        class Row:
            def __init__(self, id, start_date, end_date, allocation_percentage):
                self.id, self.start_date, self.end_date, self.allocation_percentage = id, start_date, end_date, allocation_percentage
        check = can_allocate(100, [Row(5, d('2025-01-01'), d('2025-12-31'), 60)], d('2025-05-01'), d('2025-05-02'), 50)
        self.assertEqual(check.available_capacity, 40)
        self.assertFalse(check.allowed)

    def test_11_ensure_capacity_raises_with_available_capacity(self):
        with self.assertRaises(InsufficientCapacity) as ctx:
            ensure_capacity(100, self.existing, d('2025-03-01'), d('2025-04-01'), 40)
        self.assertEqual(ctx.exception.available_capacity, 30)
        self.assertEqual(str(ctx.exception), 'Engineer only has 30% capacity available during this period')
        self.assertTrue(ensure_capacity(100, self.existing, d('2025-03-01'), d('2025-04-01'), 30).allowed)

    def test_12_helpers(self):
        self.assertTrue(ranges_overlap(d('2025-01-01'), d('2025-01-10'), d('2025-01-10'), d('2025-01-20')))
        self.assertFalse(ranges_overlap(d('2025-01-01'), d('2025-01-10'), d('2025-01-11'), d('2025-01-20')))
        self.assertTrue(has_required_skill(['React', 'Python'], ['Python', 'AWS']))
        self.assertFalse(has_required_skill(['React'], ['Python']))
        self.assertFalse(has_required_skill(['React'], []))
        self.assertEqual(hours_per_week(50), 20)
        self.assertEqual(hours_per_week(33), 13)
        self.assertEqual(assignment_status(d('2025-03-01'), d('2025-03-31'), today=d('2025-02-28')), 'planned')
        self.assertEqual(assignment_status(d('2025-03-01'), d('2025-03-31'), today=d('2025-03-01')), 'active')
        self.assertEqual(assignment_status(d('2025-03-01'), d('2025-03-31'), today=d('2025-03-31')), 'active')
        self.assertEqual(assignment_status(d('2025-03-01'), d('2025-03-31'), today=d('2025-04-01')), 'completed')

if __name__ == '__main__':
    unittest.main()
