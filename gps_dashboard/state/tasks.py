from typing import Any, Dict, List, Optional, Tuple

from gps_dashboard.datetime_utils import parse_date, utc_now_iso
from gps_dashboard.errors import AppError, handle_store_error, log_error
from gps_dashboard.logging_config import get_logger
from gps_dashboard.scheduling.calculator import task_end_date
from gps_dashboard.scheduling.config import SchedulingConfig
from gps_dashboard.scheduling.service import BatchResult, propagate_dependent_tasks
from gps_dashboard.state.base import TableState, validate_choice
from gps_dashboard.store.filters import eq

logger = get_logger(__name__)


class TaskState(TableState):
    table = "tasks"
    label = "tasks"
    order_by = "priority"
    descending = True

    def __init__(self, store=None, max_retries: int = 1, propagation_mode: Optional[str] = None):
        super().__init__(store, max_retries)
        self.propagation_mode = SchedulingConfig.get_propagation_mode(propagation_mode)

    @staticmethod
    def _validate(changes: Dict[str, Any]):
        if "status" in changes:
            validate_choice(changes["status"], SchedulingConfig.TASK_STATUSES, "status")
        if "priority" in changes:
            validate_choice(changes["priority"], SchedulingConfig.TASK_PRIORITIES, "priority")

    def add(self, row: Dict[str, Any]) -> Dict[str, Any]:
        row = dict(row)
        row.setdefault("status", "Pending")
        row.setdefault("priority", "Medium")
        self._validate(row)
        if row.get("start_date") and not row.get("end_date"):
            row["end_date"] = task_end_date(row["start_date"], row.get("duration_days")).isoformat()
        return super().add(row)

    def update_status(self, task_id, status: str) -> Optional[Dict[str, Any]]:
        validate_choice(status, SchedulingConfig.TASK_STATUSES, "status")
        return self.update(task_id, {"status": status})

    def update_task(self, task_id, changes: Dict[str, Any]) -> Tuple[Optional[Dict[str, Any]], Optional[BatchResult]]:
        """
        Update a task and move the tasks that depend on it.

        When both start_date and duration_days are given, end_date is
        recomputed. If end_date changes, dependents are shifted according to
        the configured propagation mode; their failures are reported in the
        returned BatchResult rather than raised.

        Returns:
            (updated task, propagation result or None)

        Raises:
            ValueError: for an invalid status, priority or date, before anything is written
        """
        changes = dict(changes)
        self._validate(changes)
        for column in ("start_date", "end_date"):
            if changes.get(column):
                changes[column] = parse_date(changes[column]).isoformat()
        if changes.get("duration_days") and changes.get("start_date"):
            changes["end_date"] = task_end_date(changes["start_date"], changes["duration_days"]).isoformat()

        task = self.update(task_id, changes)

        propagation = None
        if changes.get("end_date"):
            propagation = propagate_dependent_tasks(
                self.store, task_id, changes["end_date"], mode=self.propagation_mode
            )
            if propagation.succeeded:
                self.fetch()
        return task, propagation

    # -------------------------
    # Comments
    # -------------------------
    def add_comment(self, task_id, text: str, author: str) -> Dict[str, Any]:
        text = (text or "").strip()
        author = (author or "").strip()
        if not text:
            raise ValueError("Comment text is required")
        if not author:
            raise ValueError("Comment author is required")

        comment = {
            "task_id": task_id,
            "text": text,
            "author": author,
            "created_at": utc_now_iso(),
        }
        inserted = self._run("add comments", lambda store: store.insert("comments", [comment]))
        logger.info(f"Comment added to task {task_id}")
        return inserted[0] if inserted else comment

    def load_comments(self, task_id) -> List[Dict[str, Any]]:
        """Comments for a task, oldest first. Store failures raise PersistenceError."""
        store = self._require_store()
        try:
            comments = store.select(
                "comments",
                filters=[eq("task_id", task_id)],
                order="created_at",
            )
        except Exception as e:
            raise handle_store_error(e, "fetch comments") from e
        return comments or []

    def fetch_comments(self, task_id) -> List[Dict[str, Any]]:
        """Like load_comments, but errors degrade to an empty list."""
        try:
            return self.load_comments(task_id)
        except AppError as e:
            log_error(f"fetch comments for {task_id}", e)
            return []
