"""
Reset all installation progress.

Every vehicle and task goes back to Pending with cleared dates and notes,
and comments, registration history, maintenance and document records are
deleted. Without --execute only the affected row counts are shown.

Usage:
    python -m gps_dashboard.scripts.reset_project            # Preview only (dry run)
    python -m gps_dashboard.scripts.reset_project --execute  # Actually reset
"""

import argparse
import sys

from gps_dashboard.errors import AppError, handle_store_error
from gps_dashboard.logging_config import get_logger
from gps_dashboard.scheduling.service import AUXILIARY_TABLES, reset_project as run_reset
from gps_dashboard.store import get_store_client

logger = get_logger(__name__)


def count_rows(store):
    """Row counts for every table a reset touches. Unreadable tables map to None."""
    counts = {}
    for table in ('vehicles', 'tasks') + AUXILIARY_TABLES:
        try:
            counts[table] = len(store.select(table, columns='id') or [])
        except Exception as e:
            error = handle_store_error(e, f"count {table}")
            logger.warning(f"Could not count rows in {table}", error=error.message)
            counts[table] = None
    return counts


def reset(execute=False):
    print("=" * 80)
    print("RESET PROJECT")
    print("=" * 80)
    mode = "DRY RUN (Preview Only)" if not execute else "LIVE MODE - WILL RESET ALL PROGRESS"
    print(f"\n[INFO] Mode: {mode}")

    store = get_store_client()
    counts = count_rows(store)

    print("\n[STEP 1] Rows affected:")
    for table, count in counts.items():
        action = "reset to Pending" if table in ('vehicles', 'tasks') else "deleted"
        print(f"  - {table}: {'unknown' if count is None else count} ({action})")

    if not execute:
        print("\n[INFO] Run with --execute to actually reset the project")
        return {"executed": False, "counts": counts}

    print("\n[STEP 2] Resetting...")
    result = run_reset(store)
    print(f"[SUCCESS] Reset {result.vehicles_reset} vehicles and {result.tasks_reset} tasks")
    for table, deleted in result.cleared.items():
        print(f"  - {table}: {deleted} rows deleted")
    for table, warning in result.warnings.items():
        print(f"  [WARNING] {table}: {warning}")

    return {"executed": True, **result.to_dict()}


def main(argv=None):
    parser = argparse.ArgumentParser(description="Reset all vehicles and tasks to their initial state")
    parser.add_argument("--execute", action="store_true",
                        help="Actually reset the project (default: dry run only)")
    args = parser.parse_args(argv)

    try:
        reset(execute=args.execute)
    except AppError as e:
        logger.error("Project reset failed", error=e.message, error_type=type(e).__name__)
        print(f"\nFatal error: {e.message}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
