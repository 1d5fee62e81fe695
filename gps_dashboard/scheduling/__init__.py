"""
Scheduling module for the installation campaign.

Date rules (vehicle day offsets, inclusive task durations, dependent tasks
starting the day after their predecessor) live in the calculator; the service
applies them to store records.
"""

from gps_dashboard.scheduling.config import SchedulingConfig
from gps_dashboard.scheduling.calculator import (
    date_for_day,
    day_for_date,
    task_end_date,
    dependent_dates,
    get_project_phase,
    get_current_location,
    calculate_time_remaining,
    format_duration,
    validate_project_date,
    generate_schedule_summary,
)
from gps_dashboard.scheduling.service import (
    BatchResult,
    RecalculationResult,
    ResetResult,
    recalculate_schedule,
    propagate_dependent_tasks,
    reset_project,
)

__all__ = [
    'SchedulingConfig',
    'date_for_day',
    'day_for_date',
    'task_end_date',
    'dependent_dates',
    'get_project_phase',
    'get_current_location',
    'calculate_time_remaining',
    'format_duration',
    'validate_project_date',
    'generate_schedule_summary',
    'BatchResult',
    'RecalculationResult',
    'ResetResult',
    'recalculate_schedule',
    'propagate_dependent_tasks',
    'reset_project',
]
