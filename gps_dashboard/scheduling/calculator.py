"""
Scheduling calculation module.

Pure date arithmetic for the installation schedule. Nothing here talks to the
data store; the service module applies these results to records.
"""

from datetime import date, datetime, time, timedelta
from typing import Any, Dict, Optional, Tuple

from gps_dashboard.datetime_utils import parse_date, to_iso_date
from gps_dashboard.scheduling.config import SchedulingConfig


def normalize_duration(duration_days: Optional[int]) -> int:
    """Task/vehicle duration in days, falling back to the default for missing or zero values."""
    if not duration_days:
        return SchedulingConfig.DEFAULT_DURATION_DAYS
    return int(duration_days)


def date_for_day(project_start_date, day: int) -> date:
    """
    Calculate the calendar date for a given project day.

    Formula: project_start_date + (day - 1) days

    Args:
        project_start_date: Project start (date or ISO string)
        day: 1-based project day

    Returns:
        date: Calendar date of that project day
    """
    return parse_date(project_start_date) + timedelta(days=int(day) - 1)


def day_for_date(project_start_date, target_date) -> int:
    """
    Calculate the project day for a given calendar date (minimum 1).
    """
    diff = (parse_date(target_date) - parse_date(project_start_date)).days
    return max(1, diff + 1)


def task_end_date(start_date, duration_days: Optional[int]) -> date:
    """
    Inclusive end date: start_date + duration_days - 1.
    """
    return parse_date(start_date) + timedelta(days=normalize_duration(duration_days) - 1)


def vehicle_dates(project_start_date, day: int) -> Dict[str, str]:
    """
    Dates written to a vehicle during recalculation.

    start_date, end_date and installation_date all land on the vehicle's day.
    """
    iso = date_for_day(project_start_date, day).isoformat()
    return {
        'start_date': iso,
        'end_date': iso,
        'installation_date': iso,
    }


def task_dates(project_start_date, vehicle_day: int, duration_days: Optional[int]) -> Dict[str, str]:
    """
    Dates written to a task during recalculation, derived from its vehicle's day.
    """
    start = date_for_day(project_start_date, vehicle_day)
    return {
        'start_date': start.isoformat(),
        'end_date': task_end_date(start, duration_days).isoformat(),
    }


def dependent_dates(predecessor_end_date, duration_days: Optional[int]) -> Dict[str, str]:
    """
    Dates for a task that depends on a predecessor ending on predecessor_end_date.

    The dependent starts the day after the predecessor ends.
    """
    start = parse_date(predecessor_end_date) + timedelta(days=1)
    return {
        'start_date': start.isoformat(),
        'end_date': task_end_date(start, duration_days).isoformat(),
    }


def get_project_phase(project_start_date, today: Optional[date] = None) -> Dict[str, Any]:
    """
    Describe where the project stands relative to today.

    Returns:
        dict: phase ('planning' | 'active' | 'completed'), status, days_until_start,
              current_day, progress_percentage, description
    """
    if today is None:
        today = date.today()
    start = parse_date(project_start_date)
    total_days = SchedulingConfig.PROJECT_TOTAL_DAYS

    days_until_start = (start - today).days
    days_from_start = (today - start).days + 1

    if days_until_start > 0:
        return {
            'phase': 'planning',
            'status': 'Not Started',
            'days_until_start': days_until_start,
            'current_day': 0,
            'progress_percentage': 0,
            'description': f"Project starts in {days_until_start} day{'s' if days_until_start > 1 else ''}",
        }
    elif days_from_start <= total_days:
        return {
            'phase': 'active',
            'status': 'In Progress',
            'days_until_start': 0,
            'current_day': days_from_start,
            'progress_percentage': round(days_from_start / total_days * 100),
            'description': f"Day {days_from_start} of {total_days}",
        }
    return {
        'phase': 'completed',
        'status': 'Completed',
        'days_until_start': 0,
        'current_day': total_days,
        'progress_percentage': 100,
        'description': 'Project completed',
    }


def get_current_location(project_day: int) -> Optional[Dict[str, Any]]:
    """Location scheduled for a project day, or None on travel/rest days."""
    for location in SchedulingConfig.LOCATION_BREAKDOWN:
        if location['start_day'] <= project_day <= location['end_day']:
            return location
    return None


def calculate_time_remaining(project_start_date, now: Optional[datetime] = None) -> Dict[str, Any]:
    """
    Countdown until midnight of the project start date.
    """
    if now is None:
        now = datetime.now()
    start = datetime.combine(parse_date(project_start_date), time.min, tzinfo=now.tzinfo)
    difference = (start - now).total_seconds()

    if difference <= 0:
        return {'days': 0, 'hours': 0, 'minutes': 0, 'seconds': 0, 'total': 0, 'is_started': True}

    total_seconds = int(difference)
    days, rest = divmod(total_seconds, 86400)
    hours, rest = divmod(rest, 3600)
    minutes, seconds = divmod(rest, 60)
    return {
        'days': days,
        'hours': hours,
        'minutes': minutes,
        'seconds': seconds,
        'total': int(difference * 1000),
        'is_started': False,
    }


def format_duration(minutes: int) -> str:
    """45 -> '45min', 120 -> '2h', 90 -> '1h 30min'."""
    if minutes < 60:
        return f"{minutes}min"
    hours, remaining = divmod(minutes, 60)
    if remaining == 0:
        return f"{hours}h"
    return f"{hours}h {remaining}min"


def validate_project_date(value, today: Optional[date] = None) -> Tuple[bool, Optional[str]]:
    """
    Validate a proposed project start date.

    Returns:
        (is_valid, error_message)
    """
    if not value:
        return False, 'Date is required'
    try:
        selected = parse_date(value)
    except (TypeError, ValueError):
        return False, 'Date must be in YYYY-MM-DD format'

    if today is None:
        today = date.today()
    if selected < today:
        return False, 'Project start date cannot be in the past'

    years = SchedulingConfig.MAX_START_DATE_YEARS_AHEAD
    try:
        max_future = today.replace(year=today.year + years)
    except ValueError:
        # Feb 29 -> Feb 28
        max_future = today.replace(year=today.year + years, day=28)
    if selected > max_future:
        return False, f"Project start date cannot be more than {years} year in the future"

    return True, None


def generate_schedule_summary(project_start_date) -> Dict[str, Any]:
    """
    Calendar dates for each location block and the overall project end.
    """
    locations = []
    for location in SchedulingConfig.LOCATION_BREAKDOWN:
        locations.append({
            **location,
            'start_date': date_for_day(project_start_date, location['start_day']).isoformat(),
            'end_date': date_for_day(project_start_date, location['end_day']).isoformat(),
        })

    return {
        'project_start_date': to_iso_date(project_start_date),
        'project_end_date': date_for_day(project_start_date, SchedulingConfig.PROJECT_TOTAL_DAYS).isoformat(),
        'locations': locations,
        'total_duration': SchedulingConfig.PROJECT_TOTAL_DAYS,
    }
