from typing import Any, Dict, Optional

from gps_dashboard.scheduling.calculator import task_end_date
from gps_dashboard.scheduling.config import SchedulingConfig
from gps_dashboard.state.base import TableState, validate_choice


class VehicleState(TableState):
    table = "vehicles"
    label = "vehicles"
    order_by = "day"

    def add(self, row: Dict[str, Any]) -> Dict[str, Any]:
        row = dict(row)
        row.setdefault("status", "Pending")
        validate_choice(row["status"], SchedulingConfig.VEHICLE_STATUSES, "status")
        return super().add(row)

    def update_status(self, vehicle_id, status: str) -> Optional[Dict[str, Any]]:
        validate_choice(status, SchedulingConfig.VEHICLE_STATUSES, "status")
        return self.update(vehicle_id, {"status": status})

    def update_vehicle(self, vehicle_id, changes: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """
        Update a vehicle.

        When both start_date and duration_days are given, end_date is
        recomputed and installation_date follows start_date.
        """
        changes = dict(changes)
        if "status" in changes:
            validate_choice(changes["status"], SchedulingConfig.VEHICLE_STATUSES, "status")
        if changes.get("duration_days") and changes.get("start_date"):
            changes["end_date"] = task_end_date(changes["start_date"], changes["duration_days"]).isoformat()
            changes["installation_date"] = changes["start_date"]
        return self.update(vehicle_id, changes)
