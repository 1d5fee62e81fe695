"""
API routes for the installation dashboard.

Reads are served from the in-memory table states (loaded on first use and
kept current by change notifications); writes go to the data store and raise
on failure so the caller can show feedback.
"""
from datetime import date

from flask import current_app, jsonify, request

from gps_dashboard.api import api_bp
from gps_dashboard.api.helpers import (
    filter_tasks,
    sort_tasks,
    task_statistics,
    team_workload,
    vehicle_progress,
)
from gps_dashboard.cache import instant_cache, with_instant_cache
from gps_dashboard.errors import AppError, ConfigurationError, PersistenceError, log_error
from gps_dashboard.logging_config import get_logger
from gps_dashboard.scheduling.calculator import (
    calculate_time_remaining,
    get_current_location,
    get_project_phase,
    generate_schedule_summary,
    validate_project_date,
)

logger = get_logger(__name__)

SUMMARY_CACHE_KEY = "project_summary"


def _dashboard():
    return current_app.extensions["gps_dashboard"]


def _configured_dashboard():
    dashboard = _dashboard()
    if not dashboard.configured:
        raise ConfigurationError()
    return dashboard


def _json_body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValueError("Request body must be a JSON object")
    return data


def _invalidate(table):
    instant_cache.invalidate(SUMMARY_CACHE_KEY)
    instant_cache.invalidate_prefix(f"{table}:")


def _list_response(state, key):
    rows = state.ensure_loaded()
    return jsonify({key: rows, "total_count": len(rows), "error": state.error}), 200


@api_bp.errorhandler(AppError)
def handle_app_error(e):
    logger.error("API request failed", path=request.path, error=e.message, error_type=type(e).__name__)
    return jsonify(e.to_dict()), e.status_code


@api_bp.errorhandler(ValueError)
def handle_value_error(e):
    return jsonify({"error": str(e), "type": "ValidationError"}), 400


# -------------------------
# Vehicles
# -------------------------
@api_bp.route("/vehicles", methods=["GET"])
def get_vehicles():
    return _list_response(_configured_dashboard().vehicles, "vehicles")


@api_bp.route("/vehicles", methods=["POST"])
def add_vehicle():
    vehicle = _configured_dashboard().vehicles.add(_json_body())
    _invalidate("vehicles")
    return jsonify({"vehicle": vehicle}), 201


@api_bp.route("/vehicles/<vehicle_id>", methods=["PATCH"])
def update_vehicle(vehicle_id):
    vehicle = _configured_dashboard().vehicles.update_vehicle(vehicle_id, _json_body())
    _invalidate("vehicles")
    return jsonify({"vehicle": vehicle}), 200


@api_bp.route("/vehicles/<vehicle_id>/status", methods=["PUT"])
def update_vehicle_status(vehicle_id):
    vehicle = _configured_dashboard().vehicles.update_status(vehicle_id, _json_body().get("status"))
    _invalidate("vehicles")
    return jsonify({"vehicle": vehicle}), 200


@api_bp.route("/vehicles/<vehicle_id>", methods=["DELETE"])
def delete_vehicle(vehicle_id):
    _configured_dashboard().vehicles.delete(vehicle_id)
    _invalidate("vehicles")
    return jsonify({"deleted": vehicle_id}), 200


# -------------------------
# Tasks
# -------------------------
@api_bp.route("/tasks", methods=["GET"])
def get_tasks():
    state = _configured_dashboard().tasks
    tasks = state.ensure_loaded()
    tasks = filter_tasks(
        tasks,
        status=request.args.get("status"),
        priority=request.args.get("priority"),
        assigned_to=request.args.get("assigned_to"),
        vehicle_id=request.args.get("vehicle_id"),
        search=request.args.get("search"),
    )
    tasks = sort_tasks(tasks, request.args.get("sort", "priority"))
    return jsonify({
        "tasks": tasks,
        "total_count": len(tasks),
        "stats": task_statistics(tasks),
        "error": state.error,
    }), 200


@api_bp.route("/tasks", methods=["POST"])
def add_task():
    task = _configured_dashboard().tasks.add(_json_body())
    _invalidate("tasks")
    return jsonify({"task": task}), 201


@api_bp.route("/tasks/<task_id>", methods=["PATCH"])
def update_task(task_id):
    task, propagation = _configured_dashboard().tasks.update_task(task_id, _json_body())
    _invalidate("tasks")
    return jsonify({
        "task": task,
        "propagation": propagation.to_dict() if propagation else None,
    }), 200


@api_bp.route("/tasks/<task_id>/status", methods=["PUT"])
def update_task_status(task_id):
    task = _configured_dashboard().tasks.update_status(task_id, _json_body().get("status"))
    _invalidate("tasks")
    return jsonify({"task": task}), 200


@api_bp.route("/tasks/<task_id>", methods=["DELETE"])
def delete_task(task_id):
    _configured_dashboard().tasks.delete(task_id)
    _invalidate("tasks")
    return jsonify({"deleted": task_id}), 200


@api_bp.route("/tasks/<task_id>/comments", methods=["GET"])
def get_task_comments(task_id):
    tasks = _configured_dashboard().tasks
    try:
        comments = with_instant_cache(f"comments:{task_id}", lambda: tasks.load_comments(task_id))()
    except PersistenceError as e:
        # Not cached, so the next request reads the store again
        log_error(f"fetch comments for {task_id}", e)
        comments = []
    return jsonify({"comments": comments, "total_count": len(comments)}), 200


@api_bp.route("/tasks/<task_id>/comments", methods=["POST"])
def add_task_comment(task_id):
    data = _json_body()
    comment = _configured_dashboard().tasks.add_comment(task_id, data.get("text"), data.get("author"))
    instant_cache.invalidate(f"comments:{task_id}")
    return jsonify({"comment": comment}), 201


# -------------------------
# Locations
# -------------------------
@api_bp.route("/locations", methods=["GET"])
def get_locations():
    return _list_response(_configured_dashboard().locations, "locations")


@api_bp.route("/locations", methods=["POST"])
def add_location():
    location = _configured_dashboard().locations.add(_json_body())
    return jsonify({"location": location}), 201


@api_bp.route("/locations/<location_id>", methods=["PATCH"])
def update_location(location_id):
    location = _configured_dashboard().locations.update(location_id, _json_body())
    return jsonify({"location": location}), 200


@api_bp.route("/locations/<location_id>", methods=["DELETE"])
def delete_location(location_id):
    _configured_dashboard().locations.delete(location_id)
    return jsonify({"deleted": location_id}), 200


# -------------------------
# Team members
# -------------------------
@api_bp.route("/team-members", methods=["GET"])
def get_team_members():
    return _list_response(_configured_dashboard().team_members, "team_members")


@api_bp.route("/team-members/workload", methods=["GET"])
def get_team_workload():
    dashboard = _configured_dashboard()
    workload = team_workload(dashboard.team_members.ensure_loaded(), dashboard.tasks.ensure_loaded())
    return jsonify({"workload": workload}), 200


@api_bp.route("/team-members", methods=["POST"])
def add_team_member():
    member = _configured_dashboard().team_members.add(_json_body())
    return jsonify({"team_member": member}), 201


@api_bp.route("/team-members/<member_id>", methods=["PATCH"])
def update_team_member(member_id):
    member = _configured_dashboard().team_members.update(member_id, _json_body())
    return jsonify({"team_member": member}), 200


@api_bp.route("/team-members/<member_id>", methods=["DELETE"])
def delete_team_member(member_id):
    _configured_dashboard().team_members.delete(member_id)
    return jsonify({"deleted": member_id}), 200


# -------------------------
# Project
# -------------------------
@api_bp.route("/project-settings", methods=["GET"])
def get_project_settings():
    state = _configured_dashboard().project_settings
    state.ensure_loaded()
    return jsonify({"project_settings": state.settings, "error": state.error}), 200


@api_bp.route("/project-settings/start-date", methods=["PUT"])
def update_project_start_date():
    """
    Set the project start date and reschedule all vehicles and tasks.

    Body: {"project_start_date": "YYYY-MM-DD"}
    """
    dashboard = _configured_dashboard()
    start_date = _json_body().get("project_start_date")

    is_valid, error = validate_project_date(start_date)
    if not is_valid:
        return jsonify({"error": error, "type": "ValidationError"}), 400

    settings, result = dashboard.project_settings.update_project_start_date(start_date)
    dashboard.vehicles.fetch()
    dashboard.tasks.fetch()
    logger.info(
        "Schedule recalculated from API",
        project_start_date=settings.get("project_start_date"),
        vehicles_failed=len(result.vehicles.failed),
        tasks_failed=len(result.tasks.failed),
    )
    return jsonify({"project_settings": settings, "recalculation": result.to_dict()}), 200


@api_bp.route("/project/reset", methods=["POST"])
def reset_project():
    """Reset all progress. Body must contain {"confirm": true}."""
    if _json_body().get("confirm") is not True:
        return jsonify({"error": "Project reset requires {\"confirm\": true}", "type": "ValidationError"}), 400

    dashboard = _configured_dashboard()
    result = dashboard.project_settings.reset_project()
    dashboard.refresh_all()
    return jsonify({"reset": result.to_dict()}), 200


def _build_summary(dashboard):
    start_date = dashboard.project_settings.project_start_date
    vehicles = dashboard.vehicles.ensure_loaded()
    tasks = dashboard.tasks.ensure_loaded()

    summary = {
        "project_start_date": start_date,
        "vehicles": vehicle_progress(vehicles),
        "tasks": task_statistics(tasks),
        "phase": None,
        "current_location": None,
        "schedule": None,
        "time_remaining": None,
    }
    if start_date:
        phase = get_project_phase(start_date)
        summary["phase"] = phase
        summary["current_location"] = get_current_location(phase["current_day"])
        summary["schedule"] = generate_schedule_summary(start_date)
        summary["time_remaining"] = calculate_time_remaining(start_date)
    return summary


@api_bp.route("/project/summary", methods=["GET"])
def get_project_summary():
    dashboard = _configured_dashboard()
    dashboard.project_settings.ensure_loaded()
    summary = with_instant_cache(SUMMARY_CACHE_KEY, lambda: _build_summary(dashboard), ttl=30)()
    return jsonify({**summary, "generated_on": date.today().isoformat()}), 200


@api_bp.route("/health", methods=["GET"])
def health():
    dashboard = _dashboard()
    connected = dashboard.store.check_connection() if dashboard.configured else False
    return jsonify({
        "configured": dashboard.configured,
        "connected": connected,
        "subscriptions": dashboard.feed.subscriber_count(),
        "cache_entries": instant_cache.size(),
    }), 200 if connected else 503
