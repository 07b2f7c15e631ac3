# allocation.py

from collections import namedtuple
from datetime import date

HOURS_PER_WEEK = 40

AllocationCheck = namedtuple('AllocationCheck', ['allowed', 'available_capacity'])


class InsufficientCapacity(Exception):
    """Raised when a requested allocation does not fit in an engineer's remaining capacity."""
    def __init__(self, available_capacity):
        self.available_capacity = available_capacity
        super().__init__(f"Engineer only has {available_capacity}% capacity available during this period")


def _field(assignment, *names):
    for name in names:
        if isinstance(assignment, dict):
            if name in assignment: return assignment[name]
        elif hasattr(assignment, name):
            return getattr(assignment, name)
    raise KeyError(names[0])

def ranges_overlap(a_start, a_end, b_start, b_end):
    return a_start <= b_end and b_start <= a_end

def overlapping_assignments(existing_assignments, start, end, exclude_assignment_id=None):
    overlapping = []
    for a in existing_assignments:
        if exclude_assignment_id is not None and _field(a, 'id') == exclude_assignment_id: continue
        if ranges_overlap(_field(a, 'startDate', 'start_date'), _field(a, 'endDate', 'end_date'), start, end):
            overlapping.append(a)
    return overlapping

def can_allocate(max_capacity, existing_assignments, candidate_start, candidate_end, candidate_allocation, exclude_assignment_id=None):
    """Checks whether candidate_allocation fits next to the assignments overlapping the candidate range.

    Both ranges are inclusive calendar days, so sharing a single boundary day counts as overlap.
    The assignment being updated is left out of the sum via exclude_assignment_id.
    """
    overlapping = overlapping_assignments(existing_assignments, candidate_start, candidate_end, exclude_assignment_id)
    total_allocated = sum(_field(a, 'allocationPercentage', 'allocation_percentage') for a in overlapping)
    available_capacity = max_capacity - total_allocated
    return AllocationCheck(candidate_allocation <= available_capacity, available_capacity)

def ensure_capacity(max_capacity, existing_assignments, candidate_start, candidate_end, candidate_allocation, exclude_assignment_id=None):
    check = can_allocate(max_capacity, existing_assignments, candidate_start, candidate_end, candidate_allocation, exclude_assignment_id)
    if not check.allowed: raise InsufficientCapacity(check.available_capacity)
    return check

def has_required_skill(engineer_skills, required_skills):
    """An engineer qualifies for a project when they share at least one skill with it."""
    return bool(set(engineer_skills or []) & set(required_skills or []))

def assignment_status(start, end, today=None):
    today = today or date.today()
    if today < start: return 'planned'
    if today > end: return 'completed'
    return 'active'

def hours_per_week(allocation_percentage):
    return round(allocation_percentage / 100 * HOURS_PER_WEEK)
