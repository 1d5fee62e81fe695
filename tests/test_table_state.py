"""
Tests for the per-table in-memory state: fetch, writes, change events and lifecycle.
"""
import pytest
from unittest.mock import Mock

from gps_dashboard.cache import InstantCache
from gps_dashboard.errors import NOT_CONFIGURED_MESSAGE, ConfigurationError, PersistenceError
from gps_dashboard.realtime import ChangeEvent, ChangeFeed
from gps_dashboard.state import (
    DashboardState,
    LocationState,
    ProjectSettingsState,
    TaskState,
    VehicleState,
)


def _event(table, event_type, new=None, old=None):
    return ChangeEvent(table=table, event_type=event_type, new=new, old=old)


# ==============================================================================
# fetch
# ==============================================================================

class TestFetch:
    """Tests for loading rows from the store."""

    def test_fetch_orders_rows(self, store):
        """Vehicles come back ordered by day."""
        state = VehicleState(store)

        rows = state.fetch()

        assert [row["id"] for row in rows] == ["v1", "v2", "v3", "v4", "v5"]
        assert state.loaded is True
        assert state.error is None

    def test_fetch_without_store_reports_not_configured(self):
        """A missing store sets the not-configured error instead of raising."""
        state = VehicleState(None)

        assert state.fetch() == []
        assert state.error == NOT_CONFIGURED_MESSAGE
        assert state.loading is False

    def test_fetch_failure_keeps_previous_rows(self, store):
        """A failed reload sets error and leaves the last good rows in place."""
        state = LocationState(store)
        state.fetch()
        store.failing_selects.add("locations")

        rows = state.fetch()

        assert len(rows) == 2
        assert "fetch locations" in state.error

    def test_fetch_passes_retry_budget(self):
        """Reads use the configured retry count."""
        store = Mock()
        store.select.return_value = []
        state = VehicleState(store, max_retries=3)

        state.fetch()

        assert store.select.call_args.kwargs["max_retries"] == 3
        assert store.select.call_args.kwargs["order"] == "day"

    def test_refetch_does_not_retry(self):
        """Once loaded, refetches make a single attempt."""
        store = Mock()
        store.select.return_value = []
        state = VehicleState(store, max_retries=3)

        state.fetch()
        state.fetch()

        assert store.select.call_args_list[0].kwargs["max_retries"] == 3
        assert store.select.call_args_list[1].kwargs["max_retries"] == 1

    def test_failed_initial_fetch_keeps_retry_budget(self):
        """A load that never succeeded still retries on the next attempt."""
        store = Mock()
        store.select.side_effect = [RuntimeError("down"), []]
        state = VehicleState(store, max_retries=3)

        state.fetch()
        state.fetch()

        assert store.select.call_args.kwargs["max_retries"] == 3
        assert state.loaded

    def test_fetch_after_close_is_discarded(self, store):
        """A fetch that completes after close does not touch state."""
        state = VehicleState(store)
        state.close()

        assert state.fetch() == []
        assert state.rows == []
        assert state.loaded is False

    def test_ensure_loaded_fetches_once(self):
        """ensure_loaded only hits the store the first time."""
        store = Mock()
        store.select.return_value = [{"id": "l1", "name": "Bahir Dar"}]
        state = LocationState(store)

        state.ensure_loaded()
        state.ensure_loaded()

        assert store.select.call_count == 1


# ==============================================================================
# Mutations
# ==============================================================================

class TestMutations:
    """Tests for add / update / delete."""

    def test_add_stamps_timestamps_and_refetches(self, store):
        """add inserts with created_at/updated_at and reloads the list."""
        state = VehicleState(store)

        vehicle = state.add({"name": "Truck 6", "day": 6})

        assert vehicle["status"] == "Pending"
        assert "created_at" in vehicle and "updated_at" in vehicle
        assert len(state.rows) == 6

    def test_add_rejects_unknown_status(self, store):
        """An invalid vehicle status is a ValueError and nothing is written."""
        state = VehicleState(store)

        with pytest.raises(ValueError):
            state.add({"name": "Truck 6", "status": "Lost"})
        assert not [call for call in store.calls if call[0] == "insert"]

    def test_update_merges_locally(self, store):
        """A successful update is merged into local state without a reload."""
        state = VehicleState(store)
        state.fetch()
        selects_before = len(store.calls)

        vehicle = state.update_status("v2", "In Progress")

        assert vehicle["status"] == "In Progress"
        assert store.row("vehicles", "v2")["status"] == "In Progress"
        assert len(store.calls) == selects_before + 1

    def test_update_vehicle_derives_end_and_installation_dates(self, store):
        """start_date plus duration_days recomputes end_date and installation_date."""
        state = VehicleState(store)
        state.fetch()

        vehicle = state.update_vehicle("v1", {"start_date": "2024-02-01", "duration_days": 3})

        assert vehicle["end_date"] == "2024-02-03"
        assert vehicle["installation_date"] == "2024-02-01"

    def test_update_failure_raises_and_sets_error(self, store):
        """Direct mutations propagate store failures to the caller."""
        state = VehicleState(store)
        store.failing_rows.add(("vehicles", "v1"))

        with pytest.raises(PersistenceError) as exc_info:
            state.update("v1", {"name": "Renamed"})

        assert exc_info.value.operation == "update vehicles"
        assert state.error == exc_info.value.message

    def test_mutation_without_store_raises_configuration_error(self):
        """Writes are refused when the store is not configured."""
        state = TaskState(None)

        with pytest.raises(ConfigurationError):
            state.delete("t1")

    def test_delete_removes_row(self, store):
        """delete removes the row from the store and local state."""
        state = TaskState(store)
        state.fetch()

        state.delete("t4")

        assert state.get("t4") is None
        assert store.row("tasks", "t4") is None

    def test_locations_do_not_stamp_updated_at(self, store):
        """Reference tables without an updated_at column are written as given."""
        state = LocationState(store)

        state.update("l1", {"name": "Bahir Dar Depot"})

        assert "updated_at" not in store.row("locations", "l1")


# ==============================================================================
# Tasks
# ==============================================================================

class TestTaskState:
    """Tests for task-specific behaviour."""

    def test_add_defaults_and_end_date(self, store):
        """New tasks default to Pending / Medium and get an inclusive end date."""
        state = TaskState(store)

        task = state.add({"name": "Test drive", "start_date": "2024-01-10", "duration_days": 3})

        assert task["status"] == "Pending"
        assert task["priority"] == "Medium"
        assert task["end_date"] == "2024-01-12"

    def test_update_task_moves_dependents(self, store):
        """Changing a task's schedule shifts the tasks that depend on it."""
        state = TaskState(store)
        state.fetch()

        task, propagation = state.update_task("t1", {"start_date": "2024-01-03", "duration_days": 4})

        assert task["end_date"] == "2024-01-06"
        assert propagation.succeeded == ["t2"]
        assert state.get("t2")["start_date"] == "2024-01-07"
        assert state.get("t2")["end_date"] == "2024-01-08"

    def test_update_task_uses_configured_mode(self, store):
        """Transitive mode cascades through the dependency chain."""
        state = TaskState(store, propagation_mode="transitive")

        _, propagation = state.update_task("t1", {"end_date": "2024-01-06"})

        assert propagation.succeeded == ["t2", "t3"]

    def test_update_without_dates_does_not_propagate(self, store):
        """Edits that leave end_date alone return no propagation result."""
        state = TaskState(store)

        _, propagation = state.update_task("t1", {"assigned_to": "Sara"})

        assert propagation is None

    def test_update_task_rejects_malformed_date_before_writing(self, store):
        """An unparseable end_date raises ValueError and nothing is persisted."""
        with pytest.raises(ValueError):
            TaskState(store).update_task("t1", {"end_date": "2024-13-45"})

        assert "end_date" not in store.row("tasks", "t1")
        assert not [call for call in store.calls if call[0] == "update"]

    def test_update_task_rejects_unknown_priority(self, store):
        """An invalid priority is a ValueError."""
        with pytest.raises(ValueError):
            TaskState(store).update_task("t1", {"priority": "Urgent"})

    def test_add_comment_requires_text_and_author(self, store):
        """Empty comment text or author is rejected."""
        state = TaskState(store)

        with pytest.raises(ValueError):
            state.add_comment("t1", "   ", "Abebe")
        with pytest.raises(ValueError):
            state.add_comment("t1", "Done", "")

    def test_comments_round_trip(self, store):
        """A new comment is returned by fetch_comments after the existing ones."""
        state = TaskState(store)

        state.add_comment("t1", "Harness fitted", "Sara")
        comments = state.fetch_comments("t1")

        assert [c["text"] for c in comments] == ["Started", "Harness fitted"]

    def test_fetch_comments_degrades_to_empty(self, store):
        """A failed comment read returns an empty list."""
        store.failing_selects.add("comments")

        assert TaskState(store).fetch_comments("t1") == []

    def test_load_comments_raises_on_failure(self, store):
        """load_comments reports a failed read as a PersistenceError naming the operation."""
        store.failing_selects.add("comments")

        with pytest.raises(PersistenceError) as exc_info:
            TaskState(store).load_comments("t1")

        assert exc_info.value.operation == "fetch comments"


# ==============================================================================
# Change events
# ==============================================================================

class TestApplyChange:
    """Tests for folding change events into local state."""

    def test_insert_is_idempotent(self, store):
        """Applying the same insert twice leaves one row."""
        state = VehicleState(store)
        event = _event("vehicles", "INSERT", new={"id": "v9", "day": 9})

        assert state.apply_change(event) is True
        state.apply_change(event)

        assert [row["id"] for row in state.rows] == ["v9"]

    def test_update_for_absent_row_inserts_it(self, store):
        """An update for a key not held locally inserts the row."""
        state = VehicleState(store)

        state.apply_change(_event("vehicles", "UPDATE", new={"id": "v7", "status": "Completed"}))

        assert state.get("v7")["status"] == "Completed"

    def test_delete_of_absent_row_is_a_noop(self, store):
        """Deleting a key that is not present changes nothing."""
        state = VehicleState(store)
        state.fetch()

        assert state.apply_change(_event("vehicles", "DELETE", old={"id": "nope"})) is False
        assert len(state.rows) == 5

    def test_delete_removes_row(self, store):
        """A delete event removes the row."""
        state = VehicleState(store)
        state.fetch()

        assert state.apply_change(_event("vehicles", "DELETE", old={"id": "v1"})) is True
        assert state.get("v1") is None

    def test_stale_update_is_ignored(self, store):
        """An event older than the local row cannot regress it."""
        state = VehicleState(store)
        state.apply_change(_event("vehicles", "UPDATE", new={
            "id": "v1", "status": "Completed", "updated_at": "2024-01-05T10:00:00Z"}))

        changed = state.apply_change(_event("vehicles", "UPDATE", new={
            "id": "v1", "status": "Pending", "updated_at": "2024-01-05T09:00:00Z"}))

        assert changed is False
        assert state.get("v1")["status"] == "Completed"

    def test_other_tables_are_ignored(self, store):
        """Events for another table do not apply."""
        state = VehicleState(store)

        assert state.apply_change(_event("tasks", "INSERT", new={"id": "t9"})) is False

    def test_events_after_close_are_discarded(self, store):
        """Once closed, late events no longer mutate state."""
        state = VehicleState(store)
        state.close()

        assert state.apply_change(_event("vehicles", "INSERT", new={"id": "v9"})) is False
        assert state.rows == []


# ==============================================================================
# Lifecycle
# ==============================================================================

class TestLifecycle:
    """Tests for subscribing to and leaving the change feed."""

    def test_mount_twice_keeps_one_subscription(self, store):
        """Re-mounting drops the previous subscription first."""
        feed = ChangeFeed()
        state = VehicleState(store)

        state.mount(feed)
        state.mount(feed)

        assert feed.subscriber_count("vehicles") == 1

    def test_feed_events_reach_mounted_state(self, store):
        """Published events are applied to the subscribed state."""
        feed = ChangeFeed()
        state = VehicleState(store)
        state.mount(feed)

        feed.publish(_event("vehicles", "INSERT", new={"id": "v9"}))

        assert state.get("v9") == {"id": "v9"}

    def test_close_unsubscribes(self, store):
        """close() removes the subscription."""
        feed = ChangeFeed()
        state = VehicleState(store)
        state.mount(feed)

        state.close()

        assert feed.subscriber_count("vehicles") == 0
        assert state.is_alive is False

    def test_subscription_failure_is_not_fatal(self, store):
        """If subscribing fails the state still works without live updates."""
        feed = Mock()
        feed.subscribe.side_effect = RuntimeError("channel error")
        state = VehicleState(store)

        assert state.mount(feed) is None
        assert len(state.fetch()) == 5

    def test_dashboard_mounts_every_table(self, store):
        """DashboardState subscribes each table state."""
        feed = ChangeFeed()
        dashboard = DashboardState(store, feed)

        dashboard.mount()

        assert set(dashboard.tables) == {
            "vehicles", "locations", "team_members", "tasks", "project_settings"}
        assert feed.subscriber_count() == 5
        dashboard.close()
        assert feed.subscriber_count() == 0


# ==============================================================================
# Project settings
# ==============================================================================

class TestProjectSettingsState:
    """Tests for the singleton settings row."""

    def test_update_start_date_recalculates_and_clears_cache(self, store):
        """Saving a start date updates the row, reschedules and empties the cache."""
        cache = InstantCache()
        cache.set("project_summary", {"stale": True})
        state = ProjectSettingsState(store, cache=cache)

        settings, result = state.update_project_start_date("2024-03-01")

        assert settings["project_start_date"] == "2024-03-01"
        assert store.row("project_settings", "ps1")["project_start_date"] == "2024-03-01"
        assert store.row("vehicles", "v3")["start_date"] == "2024-03-03"
        assert result.vehicles.ok
        assert cache.size() == 0

    def test_first_start_date_creates_row(self, make_store):
        """Without a settings row one is inserted."""
        store = make_store({"project_settings": [], "vehicles": [], "tasks": []})
        state = ProjectSettingsState(store, cache=InstantCache())

        settings, _ = state.update_project_start_date("2024-03-01")

        assert len(store.tables["project_settings"]) == 1
        assert state.project_start_date == "2024-03-01"
        assert settings["id"]

    def test_invalid_date_rejected(self, store):
        """An unparseable date is a ValueError."""
        with pytest.raises(ValueError):
            ProjectSettingsState(store, cache=InstantCache()).update_project_start_date("next week")

    def test_change_event_replaces_settings(self, store):
        """An update event replaces the singleton row; deletes are ignored."""
        state = ProjectSettingsState(store, cache=InstantCache())
        state.fetch()

        state.apply_change(_event("project_settings", "UPDATE",
                                  new={"id": "ps1", "project_start_date": "2024-05-01"}))
        state.apply_change(_event("project_settings", "DELETE", old={"id": "ps1"}))

        assert state.project_start_date == "2024-05-01"

    def test_reset_project(self, store):
        """reset_project runs the reset and reloads settings."""
        state = ProjectSettingsState(store, cache=InstantCache())

        result = state.reset_project()

        assert result.vehicles_reset == 5
        assert state.loaded is True
