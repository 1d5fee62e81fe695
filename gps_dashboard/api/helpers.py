"""
Helper functions for filtering, sorting and summarising rows for API responses.
"""
from collections import OrderedDict
from typing import Any, Dict, Iterable, List, Optional

from gps_dashboard.datetime_utils import parse_timestamp
from gps_dashboard.scheduling.config import SchedulingConfig

PRIORITY_ORDER = {'High': 3, 'Medium': 2, 'Low': 1}
STATUS_ORDER = {'In Progress': 3, 'Pending': 2, 'Completed': 1, 'Blocked': 0}
SORT_KEYS = ('priority', 'status', 'assigned_to', 'created_at')


def _matches(value: Optional[str], wanted: Optional[str]) -> bool:
    return wanted in (None, '', 'All') or value == wanted


def filter_tasks(tasks: Iterable[Dict[str, Any]], status: Optional[str] = None,
                 priority: Optional[str] = None, assigned_to: Optional[str] = None,
                 vehicle_id: Optional[str] = None, search: Optional[str] = None) -> List[Dict[str, Any]]:
    """
    Filter tasks the way the task manager does.

    'All' or an empty value disables a filter. search matches name or
    description, case-insensitive.
    """
    needle = (search or '').strip().lower()
    result = []
    for task in tasks:
        if not _matches(task.get('status'), status):
            continue
        if not _matches(task.get('priority'), priority):
            continue
        if not _matches(task.get('assigned_to'), assigned_to):
            continue
        if not _matches(task.get('vehicle_id'), vehicle_id):
            continue
        if needle:
            haystack = f"{task.get('name') or ''}\n{task.get('description') or ''}".lower()
            if needle not in haystack:
                continue
        result.append(task)
    return result


def sort_tasks(tasks: Iterable[Dict[str, Any]], sort_by: str = 'priority') -> List[Dict[str, Any]]:
    """
    Sort tasks.

    priority: High first. status: In Progress, Pending, Completed, Blocked.
    assigned_to: alphabetical. created_at: newest first.

    Raises:
        ValueError: for an unknown sort key
    """
    tasks = list(tasks)
    if sort_by == 'priority':
        return sorted(tasks, key=lambda t: PRIORITY_ORDER.get(t.get('priority'), 0), reverse=True)
    if sort_by == 'status':
        return sorted(tasks, key=lambda t: STATUS_ORDER.get(t.get('status'), -1), reverse=True)
    if sort_by == 'assigned_to':
        return sorted(tasks, key=lambda t: (t.get('assigned_to') or '').lower())
    if sort_by == 'created_at':
        def created(task):
            ts = parse_timestamp(task.get('created_at'))
            return ts.timestamp() if ts else float('-inf')
        return sorted(tasks, key=created, reverse=True)
    raise ValueError(f"sort must be one of: {', '.join(SORT_KEYS)}")


def task_statistics(tasks: Iterable[Dict[str, Any]]) -> Dict[str, Any]:
    tasks = list(tasks)
    counts = {status: 0 for status in SchedulingConfig.TASK_STATUSES}
    for task in tasks:
        status = task.get('status')
        if status in counts:
            counts[status] += 1
    total = len(tasks)
    return {
        'total': total,
        'completed': counts['Completed'],
        'in_progress': counts['In Progress'],
        'pending': counts['Pending'],
        'blocked': counts['Blocked'],
        'completion_rate': round(counts['Completed'] / total * 100) if total else 0,
    }


def team_workload(team_members: Iterable[Dict[str, Any]], tasks: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Task counts per team member.

    Tasks are matched on assigned_to == member name. Tasks assigned to
    someone not on the team are grouped under their assignee name as well,
    so no work disappears from the report.
    """
    workload = OrderedDict()
    for member in team_members:
        workload[member.get('name')] = {
            'id': member.get('id'),
            'name': member.get('name'),
            'role': member.get('role'),
            'tasks': [],
        }

    for task in tasks:
        assignee = task.get('assigned_to') or 'Unassigned'
        entry = workload.setdefault(assignee, {'id': None, 'name': assignee, 'role': None, 'tasks': []})
        entry['tasks'].append(task)

    report = []
    for entry in workload.values():
        stats = task_statistics(entry.pop('tasks'))
        report.append({**entry, **stats})
    return report


def vehicle_progress(vehicles: Iterable[Dict[str, Any]]) -> Dict[str, Any]:
    """Vehicle status counts overall and per location."""
    vehicles = list(vehicles)

    def counts(rows):
        result = {status: 0 for status in SchedulingConfig.VEHICLE_STATUSES}
        for row in rows:
            if row.get('status') in result:
                result[row['status']] += 1
        total = len(rows)
        return {
            'total': total,
            'pending': result['Pending'],
            'in_progress': result['In Progress'],
            'completed': result['Completed'],
            'completion_rate': round(result['Completed'] / total * 100) if total else 0,
        }

    by_location = OrderedDict()
    for vehicle in vehicles:
        by_location.setdefault(vehicle.get('location') or 'Unknown', []).append(vehicle)

    return {
        **counts(vehicles),
        'locations': {name: counts(rows) for name, rows in by_location.items()},
    }
