"""
Shared fixtures: an in-memory stand-in for the PostgREST store and a Flask app
wired to it.
"""
import itertools

import pytest

from gps_dashboard.cache import instant_cache
from gps_dashboard.config import Config


class FakeStore:
    """
    Dict-backed store with the StoreAPI call surface.

    Filters are interpreted (eq, neq, cs, in, is) so row targeting can be
    asserted. Failures are injected per (table, id) for updates and per table
    for selects and deletes.
    """

    def __init__(self, tables=None):
        self.tables = {name: [dict(row) for row in rows] for name, rows in (tables or {}).items()}
        self.calls = []
        self.failing_rows = set()
        self.failing_selects = set()
        self.failing_updates = set()
        self.failing_deletes = set()
        self._ids = itertools.count(1)

    @staticmethod
    def _match(row, flt):
        value = row.get(flt.column)
        if flt.operator == "eq":
            return value == flt.value
        if flt.operator == "neq":
            return value != flt.value
        if flt.operator == "cs":
            return all(v in (value or []) for v in flt.value)
        if flt.operator == "in":
            return value in flt.value
        if flt.operator == "is":
            return value is None
        raise AssertionError(f"unexpected operator {flt.operator}")

    def _matching(self, table, filters):
        return [row for row in self.tables.setdefault(table, []) if all(self._match(row, f) for f in filters)]

    def select(self, table, columns="*", filters=(), order=None, descending=False, limit=None, max_retries=1):
        self.calls.append(("select", table, list(filters)))
        if table in self.failing_selects:
            raise RuntimeError(f"select {table} failed")
        rows = [dict(row) for row in self._matching(table, filters)]
        if order:
            rows.sort(key=lambda r: (r.get(order) is None, r.get(order)), reverse=descending)
        if limit is not None:
            rows = rows[:limit]
        return rows

    def insert(self, table, rows):
        if isinstance(rows, dict):
            rows = [rows]
        self.calls.append(("insert", table, rows))
        inserted = []
        for row in rows:
            row = dict(row)
            row.setdefault("id", f"{table}-{next(self._ids)}")
            self.tables.setdefault(table, []).append(row)
            inserted.append(dict(row))
        return inserted

    def update(self, table, values, filters):
        self.calls.append(("update", table, list(filters)))
        if not filters:
            raise ValueError(f"Refusing unfiltered update on '{table}'")
        if table in self.failing_updates:
            raise RuntimeError(f"update {table} failed")
        rows = self._matching(table, filters)
        for row in rows:
            if (table, row.get("id")) in self.failing_rows:
                raise RuntimeError(f"update {table} {row.get('id')} failed")
        for row in rows:
            row.update(values)
        return [dict(row) for row in rows]

    def delete(self, table, filters):
        self.calls.append(("delete", table, list(filters)))
        if not filters:
            raise ValueError(f"Refusing unfiltered delete on '{table}'")
        if table in self.failing_deletes:
            raise RuntimeError(f"delete {table} failed")
        rows = self._matching(table, filters)
        matched = {id(row) for row in rows}
        self.tables[table] = [row for row in self.tables[table] if id(row) not in matched]
        return [dict(row) for row in rows]

    def check_connection(self):
        return True

    def row(self, table, row_id):
        for row in self.tables.get(table, []):
            if row.get("id") == row_id:
                return row
        return None


def make_tables():
    """Five vehicles on days 1-5, tasks on some of them, one dependency chain."""
    vehicles = [
        {"id": f"v{day}", "name": f"Truck {day}", "day": day, "location": "Bahir Dar",
         "status": "Pending", "updated_at": "2024-01-01T00:00:00+00:00"}
        for day in range(1, 6)
    ]
    vehicles[4]["location"] = "Kombolcha"
    tasks = [
        {"id": "t1", "name": "Wire harness", "vehicle_id": "v3", "duration_days": 4,
         "priority": "High", "status": "In Progress", "assigned_to": "Abebe", "depends_on": [],
         "created_at": "2024-01-01T08:00:00+00:00"},
        {"id": "t2", "name": "Install tracker", "vehicle_id": "v3", "duration_days": 2,
         "priority": "Medium", "status": "Pending", "assigned_to": "Sara", "depends_on": ["t1"],
         "created_at": "2024-01-02T08:00:00+00:00"},
        {"id": "t3", "name": "Calibrate", "vehicle_id": "v4", "duration_days": 1,
         "priority": "Low", "status": "Pending", "assigned_to": None, "depends_on": ["t2"],
         "created_at": "2024-01-03T08:00:00+00:00"},
        {"id": "t4", "name": "Orphan task", "vehicle_id": "missing", "duration_days": 3,
         "priority": "Low", "status": "Blocked", "assigned_to": "Abebe", "depends_on": [],
         "start_date": "2023-12-01", "end_date": "2023-12-03",
         "created_at": "2024-01-04T08:00:00+00:00"},
    ]
    return {
        "vehicles": vehicles,
        "tasks": tasks,
        "locations": [{"id": "l1", "name": "Bahir Dar"}, {"id": "l2", "name": "Addis Ababa"}],
        "team_members": [{"id": "m1", "name": "Abebe", "role": "Technician"},
                         {"id": "m2", "name": "Sara", "role": "Lead"}],
        "project_settings": [{"id": "ps1", "project_start_date": "2024-01-01"}],
        "comments": [{"id": "c1", "task_id": "t1", "text": "Started", "author": "Abebe",
                      "created_at": "2024-01-01T09:00:00+00:00"}],
        "vehicle_registration_history": [{"id": "r1", "vehicle_id": "v1"}],
        "vehicle_maintenance": [{"id": "mt1", "vehicle_id": "v2"}],
        "vehicle_documents": [{"id": "d1", "vehicle_id": "v1"}],
    }


class TestingConfig(Config):
    ENV = "testing"
    TESTING = True
    SUPABASE_URL = "http://store.test"
    SUPABASE_ANON_KEY = "test-anon-key"
    REALTIME_WEBHOOK_SECRET = None
    DEPENDENCY_PROPAGATION = "single_hop"
    LOG_LEVEL = "WARNING"
    LOG_FILE = None


@pytest.fixture
def store():
    return FakeStore(make_tables())


@pytest.fixture
def make_store():
    """Factory for a FakeStore over custom tables (defaults to the sample project)."""
    def factory(tables=None):
        return FakeStore(make_tables() if tables is None else tables)
    return factory


@pytest.fixture(autouse=True)
def clear_instant_cache():
    instant_cache.clear()
    yield
    instant_cache.clear()


@pytest.fixture
def app(store):
    """Create Flask application for testing."""
    from gps_dashboard import create_app

    app = create_app(config_class=TestingConfig, store=store)
    yield app
    app.extensions["gps_dashboard"].close()


@pytest.fixture
def make_app(store):
    """Factory for an app over the shared store with config overrides."""
    from gps_dashboard import create_app

    apps = []

    def factory(use_store=True, **overrides):
        config_class = type("OverrideConfig", (TestingConfig,), overrides)
        app = create_app(config_class=config_class, store=store if use_store else None)
        apps.append(app)
        return app

    yield factory
    for app in apps:
        app.extensions["gps_dashboard"].close()


@pytest.fixture
def client(app):
    """Create test client."""
    return app.test_client()
