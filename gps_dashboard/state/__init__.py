"""
Per-table in-memory state for the dashboard, wired to the change feed.
"""
from gps_dashboard.logging_config import get_logger
from gps_dashboard.state.base import TableState, validate_choice
from gps_dashboard.state.directory import LocationState, TeamMemberState
from gps_dashboard.state.project_settings import ProjectSettingsState
from gps_dashboard.state.tasks import TaskState
from gps_dashboard.state.vehicles import VehicleState

logger = get_logger(__name__)


class DashboardState:
    """All table states of one application instance."""

    def __init__(self, store, feed, fetch_retries: int = 1, propagation_mode=None, cache=None):
        self.store = store
        self.feed = feed
        self.vehicles = VehicleState(store, fetch_retries)
        self.locations = LocationState(store, fetch_retries)
        self.team_members = TeamMemberState(store, fetch_retries)
        self.tasks = TaskState(store, fetch_retries, propagation_mode=propagation_mode)
        self.project_settings = ProjectSettingsState(store, fetch_retries, cache=cache)
        self.tables = {
            state.table: state
            for state in (
                self.vehicles,
                self.locations,
                self.team_members,
                self.tasks,
                self.project_settings,
            )
        }

    @property
    def configured(self) -> bool:
        return self.store is not None

    def mount(self):
        for state in self.tables.values():
            state.mount(self.feed)

    def refresh_all(self):
        for state in self.tables.values():
            state.fetch()

    def close(self):
        for state in self.tables.values():
            state.close()
        logger.info("Dashboard state closed")


__all__ = [
    'DashboardState',
    'TableState',
    'VehicleState',
    'LocationState',
    'TeamMemberState',
    'TaskState',
    'ProjectSettingsState',
    'validate_choice',
]
