"""
Scheduling configuration module.

This module defines the project schedule layout and the date rules used by
recalculation and dependent-task propagation.
"""

from typing import Dict, List


SINGLE_HOP = "single_hop"
TRANSITIVE = "transitive"


class SchedulingConfig:
    """
    Configuration for scheduling calculations.
    """

    # Duration used when a task has no duration_days (or zero)
    DEFAULT_DURATION_DAYS: int = 1

    # Dependent-task propagation mode:
    #   single_hop - only tasks that directly depend on the edited task move
    #   transitive - moved tasks push their own dependents, cycle-safe
    PROPAGATION_MODES = (SINGLE_HOP, TRANSITIVE)
    PROPAGATION_MODE: str = SINGLE_HOP

    # Installation campaign layout
    PROJECT_TOTAL_DAYS: int = 14
    TOTAL_VEHICLES: int = 24
    LOCATION_BREAKDOWN: List[Dict] = [
        {'name': 'Bahir Dar', 'start_day': 1, 'end_day': 8, 'vehicles': 15, 'duration': '8 Days'},
        {'name': 'Kombolcha', 'start_day': 10, 'end_day': 12, 'vehicles': 6, 'duration': '3 Days'},
        {'name': 'Addis Ababa', 'start_day': 13, 'end_day': 14, 'vehicles': 3, 'duration': '2 Days'},
    ]

    # Limits for choosing a project start date
    MAX_START_DATE_YEARS_AHEAD: int = 1

    # Record states
    VEHICLE_STATUSES = ('Pending', 'In Progress', 'Completed')
    TASK_STATUSES = ('Pending', 'In Progress', 'Completed', 'Blocked')
    TASK_PRIORITIES = ('High', 'Medium', 'Low')

    @classmethod
    def get_propagation_mode(cls, mode: str = None) -> str:
        """
        Resolve a propagation mode name.

        Raises:
            ValueError: for an unknown mode
        """
        resolved = (mode or cls.PROPAGATION_MODE or SINGLE_HOP).strip().lower()
        if resolved not in cls.PROPAGATION_MODES:
            raise ValueError(
                f"Unknown propagation mode '{mode}'; expected one of {', '.join(cls.PROPAGATION_MODES)}"
            )
        return resolved
