"""
Reference tables edited from the team and location pages.
"""
from gps_dashboard.state.base import TableState


class LocationState(TableState):
    table = "locations"
    label = "locations"
    order_by = "name"
    updated_field = None


class TeamMemberState(TableState):
    table = "team_members"
    label = "team members"
    order_by = "name"
    updated_field = None
