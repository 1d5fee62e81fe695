from typing import Any, Dict, Optional, Tuple

from gps_dashboard.cache import instant_cache
from gps_dashboard.datetime_utils import parse_date, utc_now_iso
from gps_dashboard.logging_config import get_logger
from gps_dashboard.scheduling.service import (
    RecalculationResult,
    ResetResult,
    recalculate_schedule,
    reset_project,
)
from gps_dashboard.state.base import TableState
from gps_dashboard.store.filters import eq

logger = get_logger(__name__)


class ProjectSettingsState(TableState):
    """The singleton project_settings row."""

    table = "project_settings"
    label = "project settings"

    def __init__(self, store=None, max_retries: int = 1, cache=None):
        super().__init__(store, max_retries)
        self.cache = instant_cache if cache is None else cache

    @property
    def settings(self) -> Optional[Dict[str, Any]]:
        rows = self.rows
        return rows[0] if rows else None

    @property
    def project_start_date(self) -> Optional[str]:
        settings = self.settings
        return settings.get("project_start_date") if settings else None

    def _select_rows(self, store, max_retries=1):
        # No row yet is a valid state, not an error
        return store.select(self.table, limit=1, max_retries=max_retries)

    def apply_change(self, event) -> bool:
        if event.table != self.table or event.event_type not in ("INSERT", "UPDATE"):
            return False
        with self._lock:
            if not self._alive or not event.new:
                return False
            current = self.settings
            if current is not None and self._is_stale(current, event.new):
                return False
            self._rows.clear()
            self._rows[event.new.get(self.key_field)] = dict(event.new)
        return True

    def _save_start_date(self, store, iso_date: str):
        now = utc_now_iso()
        existing = store.select(self.table, columns="id", limit=1)
        if existing:
            return store.update(
                self.table,
                {"project_start_date": iso_date, "updated_at": now},
                [eq("id", existing[0]["id"])],
            )
        return store.insert(self.table, [{
            "project_start_date": iso_date,
            "created_at": now,
            "updated_at": now,
        }])

    def update_project_start_date(self, start_date) -> Tuple[Dict[str, Any], RecalculationResult]:
        """
        Save a new project start date and reschedule every vehicle and task.

        The settings row is updated if it exists and created otherwise. After
        recalculation the data cache is cleared so every view reloads.

        Raises:
            ValueError: for an unparseable date
            ConfigurationError / PersistenceError: if saving or loading fails
        """
        iso_date = parse_date(start_date).isoformat()

        rows = self._run(
            "update project start date",
            lambda store: self._save_start_date(store, iso_date),
        )
        settings = rows[0] if rows else {"project_start_date": iso_date}
        with self._lock:
            if self._alive:
                self._rows.clear()
                self._rows[settings.get(self.key_field)] = dict(settings)
                self.loaded = True
        logger.info("Project start date updated successfully", project_start_date=iso_date)

        result = self._run(
            "recalculate schedule",
            lambda store: recalculate_schedule(store, iso_date),
        )
        self.cache.clear()
        return self.settings or settings, result

    def reset_project(self) -> ResetResult:
        """Reset vehicles and tasks and clear auxiliary tables, then reload settings."""
        result = self._run("reset project", reset_project)
        self.cache.clear()
        self.fetch()
        return result
