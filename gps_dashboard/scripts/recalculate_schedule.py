"""
Recalculate installation and task dates from a project start date.

Loads every vehicle and task from the data store and shows the dates each
would receive. With --execute the project start date is saved and the new
dates are written.

Usage:
    python -m gps_dashboard.scripts.recalculate_schedule 2024-01-01            # Preview only (dry run)
    python -m gps_dashboard.scripts.recalculate_schedule 2024-01-01 --execute  # Save and recalculate
"""

import argparse
import sys

from gps_dashboard.errors import AppError
from gps_dashboard.logging_config import get_logger
from gps_dashboard.scheduling.calculator import task_dates, validate_project_date, vehicle_dates
from gps_dashboard.datetime_utils import parse_date
from gps_dashboard.state import ProjectSettingsState
from gps_dashboard.store import get_store_client

logger = get_logger(__name__)


def preview_schedule(store, project_start_date):
    """
    Compute the new vehicle and task dates without writing anything.

    Returns:
        dict with 'vehicles' and 'tasks' lists of {id, current, proposed}
        and 'skipped_tasks' for tasks whose vehicle has no day
    """
    start = parse_date(project_start_date)
    vehicles = store.select('vehicles', columns='id, day, start_date', order='day') or []
    tasks = store.select('tasks', columns='id, vehicle_id, duration_days, start_date, end_date') or []

    vehicle_days = {v['id']: v.get('day') for v in vehicles if v.get('day') is not None}
    preview = {'vehicles': [], 'tasks': [], 'skipped_tasks': []}

    for vehicle in vehicles:
        if vehicle.get('day') is None:
            continue
        proposed = vehicle_dates(start, vehicle['day'])
        preview['vehicles'].append({
            'id': vehicle['id'],
            'current': vehicle.get('start_date'),
            'proposed': proposed['start_date'],
        })

    for task in tasks:
        day = vehicle_days.get(task.get('vehicle_id'))
        if day is None:
            preview['skipped_tasks'].append(task.get('id'))
            continue
        proposed = task_dates(start, day, task.get('duration_days'))
        preview['tasks'].append({
            'id': task.get('id'),
            'current': f"{task.get('start_date')}..{task.get('end_date')}",
            'proposed': f"{proposed['start_date']}..{proposed['end_date']}",
        })

    return preview


def recalculate(project_start_date, execute=False):
    print("=" * 80)
    print("RECALCULATE PROJECT SCHEDULE")
    print("=" * 80)
    mode = "DRY RUN (Preview Only)" if not execute else "LIVE MODE - WILL UPDATE DATES"
    print(f"\n[INFO] Mode: {mode}")
    print(f"[INFO] Project start date: {project_start_date}")

    store = get_store_client()

    if not execute:
        preview = preview_schedule(store, project_start_date)
        print(f"\n[STEP 1] Vehicles ({len(preview['vehicles'])}):")
        for row in preview['vehicles']:
            print(f"  - {row['id']}: {row['current'] or 'N/A'} -> {row['proposed']}")
        print(f"\n[STEP 2] Tasks ({len(preview['tasks'])}):")
        for row in preview['tasks']:
            print(f"  - {row['id']}: {row['current']} -> {row['proposed']}")
        if preview['skipped_tasks']:
            print(f"\n[WARNING] {len(preview['skipped_tasks'])} tasks have no scheduled vehicle and would be left unchanged")
        print("\n[INFO] Run with --execute to save the start date and apply these dates")
        return {"executed": False, **preview}

    settings = ProjectSettingsState(store)
    _, result = settings.update_project_start_date(project_start_date)

    print("\n" + "=" * 80)
    print("RECALCULATION RESULTS")
    print("=" * 80)
    for batch in (result.vehicles, result.tasks):
        print(f"  {batch.table}: {len(batch.succeeded)} updated, "
              f"{len(batch.skipped)} skipped, {len(batch.failed)} failed")
        for record_id, error in batch.failed.items():
            print(f"    [ERROR] {record_id}: {error}")

    return {"executed": True, **result.to_dict()}


def main(argv=None):
    parser = argparse.ArgumentParser(description="Recalculate vehicle and task dates from a project start date")
    parser.add_argument("start_date", help="Project start date (YYYY-MM-DD)")
    parser.add_argument("--execute", action="store_true",
                        help="Save the start date and write the new dates (default: dry run only)")
    args = parser.parse_args(argv)

    is_valid, error = validate_project_date(args.start_date)
    if not is_valid:
        print(f"[ERROR] {error}", file=sys.stderr)
        return 2

    try:
        recalculate(args.start_date, execute=args.execute)
    except AppError as e:
        logger.error("Schedule recalculation failed", error=e.message, error_type=type(e).__name__)
        print(f"\nFatal error: {e.message}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
