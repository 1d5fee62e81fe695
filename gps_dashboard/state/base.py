"""
In-memory table state kept consistent with the data store.

Each TableState owns the rows of one table: it loads them, applies local
updates after successful writes, and folds change events into the same
collection. Once closed it ignores late fetch results and events.
"""
import threading
from collections import OrderedDict
from typing import Any, Dict, List, Optional

from gps_dashboard.datetime_utils import parse_timestamp, utc_now_iso
from gps_dashboard.errors import (
    NOT_CONFIGURED_MESSAGE,
    ConfigurationError,
    handle_store_error,
    log_error,
)
from gps_dashboard.logging_config import get_logger
from gps_dashboard.store.filters import eq

logger = get_logger(__name__)


def validate_choice(value, choices, field_name: str):
    """Raise ValueError unless value is one of choices."""
    if value not in choices:
        raise ValueError(f"{field_name} must be one of: {', '.join(choices)}")
    return value


class TableState:
    """Rows of one store table, keyed and kept in insertion order."""

    table: str = None
    label: str = "records"
    columns: str = "*"
    order_by: Optional[str] = None
    descending: bool = False
    key_field: str = "id"
    # Timestamp columns stamped on insert / update
    created_field: Optional[str] = "created_at"
    updated_field: Optional[str] = "updated_at"

    def __init__(self, store=None, max_retries: int = 1):
        self.store = store
        self.max_retries = max_retries
        self.loading = False
        self.loaded = False
        self.error: Optional[str] = None
        self._rows: "OrderedDict[Any, Dict[str, Any]]" = OrderedDict()
        self._lock = threading.RLock()
        self._alive = True
        self._subscription = None

    # -------------------------
    # Read access
    # -------------------------
    @property
    def is_alive(self) -> bool:
        return self._alive

    @property
    def rows(self) -> List[Dict[str, Any]]:
        with self._lock:
            return [dict(row) for row in self._rows.values()]

    def get(self, key) -> Optional[Dict[str, Any]]:
        with self._lock:
            row = self._rows.get(key)
            return dict(row) if row is not None else None

    def ensure_loaded(self) -> List[Dict[str, Any]]:
        if not self.loaded:
            self.fetch()
        return self.rows

    # -------------------------
    # Fetch
    # -------------------------
    def _select_rows(self, store, max_retries: int = 1) -> List[Dict[str, Any]]:
        return store.select(
            self.table,
            columns=self.columns,
            order=self.order_by,
            descending=self.descending,
            max_retries=max_retries,
        )

    def fetch(self) -> List[Dict[str, Any]]:
        """
        Load all rows from the store.

        Never raises: a missing configuration or failed read leaves the
        previous rows in place and sets `error`. Only the initial load
        retries transport failures; later refetches make a single attempt.
        """
        if self.store is None:
            with self._lock:
                if self._alive:
                    self.error = NOT_CONFIGURED_MESSAGE
                    self.loading = False
            return self.rows

        with self._lock:
            self.loading = True
            self.error = None

        max_retries = 1 if self.loaded else self.max_retries
        try:
            rows = self._select_rows(self.store, max_retries) or []
        except Exception as e:
            error = handle_store_error(e, f"fetch {self.table}")
            log_error(f"fetch {self.table}", error)
            with self._lock:
                if self._alive:
                    self.error = error.message
                    self.loading = False
            return self.rows

        with self._lock:
            if not self._alive:
                logger.debug(f"Discarding {self.table} fetch result after close")
                return []
            self._rows = OrderedDict((row.get(self.key_field), row) for row in rows)
            self.loaded = True
            self.loading = False

        logger.info(f"{self.label.capitalize()} fetched successfully", count=len(rows))
        return self.rows

    # -------------------------
    # Mutations
    # -------------------------
    def _require_store(self):
        if self.store is None:
            raise ConfigurationError()
        return self.store

    def _run(self, operation: str, func):
        """Run a single-record write; failures set `error` and propagate."""
        store = self._require_store()
        with self._lock:
            self.error = None
        try:
            return func(store)
        except Exception as e:
            error = handle_store_error(e, operation)
            log_error(operation, error)
            with self._lock:
                if self._alive:
                    self.error = error.message
            if error is e:
                raise
            raise error from e

    def _local_merge(self, key, changes: Dict[str, Any]):
        with self._lock:
            if self._alive and key in self._rows:
                self._rows[key] = {**self._rows[key], **changes}

    def add(self, row: Dict[str, Any]) -> Dict[str, Any]:
        """Insert a row, then reload the list."""
        payload = dict(row)
        now = utc_now_iso()
        if self.created_field:
            payload.setdefault(self.created_field, now)
        if self.updated_field:
            payload.setdefault(self.updated_field, now)

        inserted = self._run(f"add {self.table}", lambda store: store.insert(self.table, [payload]))
        logger.info(f"Added to {self.table}", key=payload.get(self.key_field))
        self.fetch()
        return inserted[0] if inserted else payload

    def update(self, key, changes: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Update one row and merge the changes into local state."""
        payload = dict(changes)
        if self.updated_field:
            payload[self.updated_field] = utc_now_iso()

        self._run(
            f"update {self.table}",
            lambda store: store.update(self.table, payload, [eq(self.key_field, key)]),
        )
        self._local_merge(key, payload)
        logger.info(f"Updated {self.table} record {key}", fields=sorted(changes))
        return self.get(key)

    def delete(self, key) -> None:
        self._run(
            f"delete {self.table}",
            lambda store: store.delete(self.table, [eq(self.key_field, key)]),
        )
        with self._lock:
            if self._alive:
                self._rows.pop(key, None)
        logger.info(f"Deleted {self.table} record {key}")

    # -------------------------
    # Change events
    # -------------------------
    def _is_stale(self, current: Dict[str, Any], incoming: Dict[str, Any]) -> bool:
        if not self.updated_field:
            return False
        current_ts = parse_timestamp(current.get(self.updated_field))
        incoming_ts = parse_timestamp(incoming.get(self.updated_field))
        if current_ts is None or incoming_ts is None:
            return False
        return incoming_ts < current_ts

    def apply_change(self, event) -> bool:
        """
        Fold a change event into local state.

        INSERT and UPDATE upsert by key, DELETE removes the key if present.
        Events older than the local row are ignored.

        Returns:
            bool: True if local state changed
        """
        if event.table != self.table:
            return False

        with self._lock:
            if not self._alive:
                return False

            key = event.key(self.key_field)
            if key is None:
                return False

            if event.event_type == "DELETE":
                return self._rows.pop(key, None) is not None

            incoming = dict(event.new or {})
            current = self._rows.get(key)
            if current is not None and self._is_stale(current, incoming):
                logger.debug(f"Ignoring stale {event.event_type} for {self.table} record {key}")
                return False
            self._rows[key] = incoming
            return True

    # -------------------------
    # Lifecycle
    # -------------------------
    def mount(self, feed):
        """Subscribe to the change feed, replacing any earlier subscription."""
        self.unmount()
        with self._lock:
            self._alive = True
        try:
            self._subscription = feed.subscribe(self.table, self.apply_change)
        except Exception as e:
            logger.warning(
                f"Failed to set up change subscription for {self.table}; "
                "continuing without live updates",
                error=str(e),
            )
            self._subscription = None
        return self._subscription

    def unmount(self):
        if self._subscription is not None:
            try:
                self._subscription.unsubscribe()
            except Exception as e:
                logger.warning(f"Error removing {self.table} subscription", error=str(e))
            self._subscription = None

    def close(self):
        """Stop applying fetch results and change events."""
        with self._lock:
            self._alive = False
        self.unmount()
