"""
Scheduling service for applying calculated dates to store records.

Recalculation and propagation are best-effort bulk operations: every record is
persisted on its own, a failure is logged and collected, and processing moves
on to the next record. Nothing is retried.
"""

from collections import deque
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from gps_dashboard.datetime_utils import parse_date, utc_now_iso
from gps_dashboard.errors import PersistenceError, handle_store_error, log_error
from gps_dashboard.logging_config import OperationContext, get_logger
from gps_dashboard.scheduling.calculator import dependent_dates, task_dates, vehicle_dates
from gps_dashboard.scheduling.config import TRANSITIVE, SchedulingConfig
from gps_dashboard.store.filters import contains, eq, match_all

logger = get_logger(__name__)

VEHICLE_RESET_VALUES = {
    'status': 'Pending',
    'installation_status': 'Not Started',
    'installation_notes': None,
    'technician_assigned': None,
    'gps_device_id': None,
    'fuel_sensor_ids': None,
    'installation_date': None,
}

TASK_RESET_VALUES = {
    'status': 'Pending',
    'actual_duration': None,
    'completed_at': None,
}

# Cleared in this order; a failure on one does not stop the others
AUXILIARY_TABLES = (
    'comments',
    'vehicle_registration_history',
    'vehicle_maintenance',
    'vehicle_documents',
)


@dataclass
class BatchResult:
    """Per-record outcome of a bulk update against one table."""
    table: str
    succeeded: List[Any] = field(default_factory=list)
    failed: Dict[Any, str] = field(default_factory=dict)
    skipped: List[Any] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed and not self.errors

    def to_dict(self) -> Dict[str, Any]:
        return {
            'table': self.table,
            'updated': len(self.succeeded),
            'succeeded': list(self.succeeded),
            'failed': dict(self.failed),
            'skipped': list(self.skipped),
            'errors': list(self.errors),
        }


@dataclass
class RecalculationResult:
    project_start_date: str
    vehicles: BatchResult = field(default_factory=lambda: BatchResult('vehicles'))
    tasks: BatchResult = field(default_factory=lambda: BatchResult('tasks'))

    @property
    def ok(self) -> bool:
        return self.vehicles.ok and self.tasks.ok

    def to_dict(self) -> Dict[str, Any]:
        return {
            'project_start_date': self.project_start_date,
            'vehicles': self.vehicles.to_dict(),
            'tasks': self.tasks.to_dict(),
        }


@dataclass
class ResetResult:
    vehicles_reset: int = 0
    tasks_reset: int = 0
    cleared: Dict[str, int] = field(default_factory=dict)
    warnings: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'vehicles_reset': self.vehicles_reset,
            'tasks_reset': self.tasks_reset,
            'cleared': dict(self.cleared),
            'warnings': dict(self.warnings),
        }


def _load(store, table: str, columns: str, filters=()) -> List[Dict[str, Any]]:
    try:
        return store.select(table, columns=columns, filters=filters) or []
    except Exception as e:
        raise handle_store_error(e, f"load {table}") from e


def _persist(store, table: str, record_id, changes: Dict[str, Any], result: BatchResult) -> bool:
    """Write one record; failures are logged and recorded, never raised."""
    try:
        store.update(table, changes, [eq('id', record_id)])
    except Exception as e:
        error = handle_store_error(e, f"update {table}")
        log_error(f"{table}:{record_id}", error)
        result.failed[record_id] = error.message
        return False
    result.succeeded.append(record_id)
    return True


def recalculate_schedule(store, project_start_date) -> RecalculationResult:
    """
    Recompute and persist vehicle and task dates from a new project start date.

    This function:
    1. Loads all vehicles (id, day) and moves each to start + (day - 1)
    2. Loads all tasks (id, vehicle_id, duration_days) and schedules each on
       its vehicle's day, ending after duration_days (inclusive)
    3. Persists every record individually, collecting failures

    Vehicles without a day and tasks without a resolvable vehicle are skipped
    and left untouched.

    Args:
        store: StoreAPI-like client
        project_start_date: New start date (date or ISO string)

    Returns:
        RecalculationResult with per-table succeeded/failed/skipped ids

    Raises:
        PersistenceError: if the vehicle or task list cannot be loaded
    """
    start = parse_date(project_start_date)
    result = RecalculationResult(project_start_date=start.isoformat())

    with OperationContext("schedule_recalculation") as operation:
        vehicles = _load(store, 'vehicles', 'id, day')
        vehicle_days: Dict[Any, int] = {}

        for vehicle in vehicles:
            vehicle_id = vehicle.get('id')
            day = vehicle.get('day')
            if day is None:
                logger.warning(f"Vehicle {vehicle_id} has no day assigned, skipping")
                result.vehicles.skipped.append(vehicle_id)
                continue

            vehicle_days[vehicle_id] = day
            changes = vehicle_dates(start, day)
            changes['updated_at'] = utc_now_iso()
            _persist(store, 'vehicles', vehicle_id, changes, result.vehicles)

        logger.info(
            f"Updated {len(result.vehicles.succeeded)}/{len(vehicles)} vehicles with new installation dates",
            failed=len(result.vehicles.failed),
        )

        tasks = _load(store, 'tasks', 'id, vehicle_id, duration_days')
        for task in tasks:
            task_id = task.get('id')
            day = vehicle_days.get(task.get('vehicle_id')) if task.get('vehicle_id') else None
            if day is None:
                result.tasks.skipped.append(task_id)
                continue

            changes = task_dates(start, day, task.get('duration_days'))
            changes['updated_at'] = utc_now_iso()
            _persist(store, 'tasks', task_id, changes, result.tasks)

        logger.info(
            f"Updated {len(result.tasks.succeeded)}/{len(tasks)} tasks with new dates",
            skipped=len(result.tasks.skipped),
            failed=len(result.tasks.failed),
        )
        operation.record(
            project_start_date=result.project_start_date,
            vehicles_failed=len(result.vehicles.failed),
            tasks_failed=len(result.tasks.failed),
        )

    return result


def propagate_dependent_tasks(store, task_id, new_end_date, mode: Optional[str] = None) -> BatchResult:
    """
    Shift the tasks that depend on task_id to start the day after new_end_date.

    In single_hop mode only direct dependents move. In transitive mode every
    moved task pushes its own dependents in turn (breadth first). A task
    reached through several predecessors ends up scheduled after the latest
    of them; it is only rewritten when a later path pushes its start forward.
    A dependent that is already on the path being followed is a cycle and is
    skipped.

    Args:
        store: StoreAPI-like client
        task_id: Task whose end date changed
        new_end_date: Its new end date (date or ISO string)
        mode: 'single_hop' or 'transitive' (defaults to SchedulingConfig.PROPAGATION_MODE)

    Returns:
        BatchResult: succeeded / failed / skipped dependent ids
    """
    mode = SchedulingConfig.get_propagation_mode(mode)
    result = BatchResult('tasks')

    with OperationContext("dependent_propagation") as operation:
        queue = deque([(task_id, parse_date(new_end_date), (task_id,))])
        scheduled = {}  # task id -> start date written during this call

        while queue:
            source_id, source_end, path = queue.popleft()
            try:
                dependents = _load(
                    store, 'tasks', 'id, duration_days, depends_on',
                    filters=[contains('depends_on', [source_id])],
                )
            except PersistenceError as e:
                log_error(f"dependents of {source_id}", e)
                result.errors.append(e.message)
                continue

            for dependent in dependents:
                dependent_id = dependent.get('id')
                if dependent_id in path:
                    logger.warning(
                        f"Dependency cycle at task {dependent_id}, not moving it again",
                        source_task=source_id,
                    )
                    if dependent_id not in result.skipped:
                        result.skipped.append(dependent_id)
                    continue

                changes = dependent_dates(source_end, dependent.get('duration_days'))
                start = parse_date(changes['start_date'])
                if dependent_id in scheduled and scheduled[dependent_id] >= start:
                    continue

                already_moved = dependent_id in scheduled
                changes['updated_at'] = utc_now_iso()
                if not _persist(store, 'tasks', dependent_id, changes, result):
                    continue
                if already_moved:
                    result.succeeded.pop()  # rescheduled; keep its first entry only
                result.failed.pop(dependent_id, None)
                scheduled[dependent_id] = start

                if mode == TRANSITIVE:
                    queue.append((dependent_id, parse_date(changes['end_date']), path + (dependent_id,)))

        operation.record(
            source_task=task_id,
            mode=mode,
            moved=len(result.succeeded),
            failed=len(result.failed),
            cycles=len(result.skipped),
        )

    return result


def reset_project(store) -> ResetResult:
    """
    Return every vehicle and task to its initial state and clear auxiliary records.

    Every statement carries match_all() so no request is an unfiltered bulk
    mutation. Vehicle and task resets raise on failure; auxiliary deletes only
    log a warning and continue.

    Returns:
        ResetResult with row counts and any auxiliary-table warnings

    Raises:
        PersistenceError: if vehicles or tasks cannot be reset
    """
    result = ResetResult()

    with OperationContext("project_reset") as operation:
        try:
            rows = store.update('vehicles', {**VEHICLE_RESET_VALUES, 'updated_at': utc_now_iso()}, [match_all()])
        except Exception as e:
            raise handle_store_error(e, "reset vehicles") from e
        result.vehicles_reset = len(rows or [])

        try:
            rows = store.update('tasks', {**TASK_RESET_VALUES, 'updated_at': utc_now_iso()}, [match_all()])
        except Exception as e:
            raise handle_store_error(e, "reset tasks") from e
        result.tasks_reset = len(rows or [])

        for table in AUXILIARY_TABLES:
            try:
                deleted = store.delete(table, [match_all()])
            except Exception as e:
                error = handle_store_error(e, f"clear {table}")
                logger.warning(f"Failed to clear {table}", error=error.message)
                result.warnings[table] = error.message
                continue
            result.cleared[table] = len(deleted or [])

        operation.record(
            vehicles=result.vehicles_reset,
            tasks=result.tasks_reset,
            cleared=result.cleared,
            warnings=sorted(result.warnings),
        )

    return result
