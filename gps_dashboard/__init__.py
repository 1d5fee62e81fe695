import os
import atexit

from flask import Flask, jsonify
from flask_cors import CORS

# scheduler imports
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.executors.pool import ThreadPoolExecutor

from gps_dashboard.cache import instant_cache
from gps_dashboard.logging_config import configure_logging, get_logger
from gps_dashboard.realtime import ALL_TABLES, ChangeFeed, realtime_bp
from gps_dashboard.state import DashboardState
from gps_dashboard.store import StoreAPI

logger = get_logger(__name__)

EXTENSION_KEY = "gps_dashboard"


def init_scheduler(app):
    """Initialize the background scheduler (cache sweep and heartbeat)."""

    # --- Prevent scheduler duplication in multi-worker environments ---
    # Only run the scheduler on one instance
    if os.environ.get("WERKZEUG_RUN_MAIN") != "true" and not os.environ.get("IS_SCHEDULER"):
        logger.info("Skipping scheduler startup on this worker")
        return None

    executors = {"default": ThreadPoolExecutor(2)}
    scheduler = BackgroundScheduler(executors=executors)

    scheduler.add_job(
        func=instant_cache.cleanup,
        trigger="interval",
        minutes=app.config.get("CACHE_SWEEP_MINUTES", 5),
        id="cache_cleanup",
        replace_existing=True,
    )
    scheduler.add_job(
        func=lambda: logger.info("Scheduler heartbeat: alive", cache_entries=instant_cache.size()),
        trigger="interval",
        minutes=30,
        id="heartbeat",
        replace_existing=True,
    )

    scheduler.start()
    atexit.register(lambda: scheduler.shutdown(wait=False))

    logger.info("Scheduler started (cache cleanup, heartbeat)")
    return scheduler


def _build_store(app):
    from gps_dashboard.config import is_store_configured

    url = app.config.get("SUPABASE_URL")
    key = app.config.get("SUPABASE_ANON_KEY")
    if not is_store_configured(url or "", key or ""):
        logger.warning("Data store credentials missing; the dashboard will report NOT_CONFIGURED")
        return None
    return StoreAPI(
        url,
        key,
        timeout=app.config.get("STORE_TIMEOUT_SECONDS", 30),
        client_info=app.config.get("CLIENT_INFO"),
        retry_delay=app.config.get("FETCH_RETRY_DELAY", 1.0),
    )


def _invalidate_cache_on_change(event):
    instant_cache.invalidate("project_summary")
    instant_cache.invalidate_prefix(f"{event.table}:")


def create_app(config_class=None, store=None):
    """
    Build the Flask application.

    Args:
        config_class: configuration object; defaults to get_config()
        store: data store client; built from the configuration when omitted
    """
    # Import config after dotenv is loaded
    from gps_dashboard.config import get_config

    if config_class is None:
        config_class = get_config()

    app = Flask(__name__)
    app.config.from_object(config_class)

    configure_logging(log_level=app.config.get("LOG_LEVEL", "INFO"), log_file=app.config.get("LOG_FILE"))
    logger.info(f"Starting application in {app.config.get('ENV', 'local')} environment")

    # Get allowed origins from environment variable
    allowed_origins = app.config.get("CORS_ORIGINS", "*")
    if allowed_origins != "*":
        # Parse comma-separated list if provided
        allowed_origins = [origin.strip() for origin in allowed_origins.split(",")]

    CORS(app,
         resources={r"/*": {"origins": allowed_origins}},
         supports_credentials=True,
         allow_headers=["Content-Type", "Authorization", "X-Webhook-Secret"],
         methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"])

    instant_cache.max_size = app.config.get("CACHE_MAX_SIZE", instant_cache.max_size)
    instant_cache.default_ttl = app.config.get("CACHE_TTL_SECONDS", instant_cache.default_ttl)

    if store is None:
        store = _build_store(app)

    feed = ChangeFeed()
    dashboard = DashboardState(
        store,
        feed,
        fetch_retries=app.config.get("FETCH_MAX_RETRIES", 1),
        propagation_mode=app.config.get("DEPENDENCY_PROPAGATION"),
    )
    dashboard.mount()
    feed.subscribe(ALL_TABLES, _invalidate_cache_on_change)
    app.extensions[EXTENSION_KEY] = dashboard

    from gps_dashboard.api import api_bp

    app.register_blueprint(api_bp, url_prefix="/api")
    app.register_blueprint(realtime_bp, url_prefix="/realtime")

    @app.route("/")
    def index():
        return jsonify({
            "service": "gps-tracking-dashboard",
            "configured": dashboard.configured,
        }), 200

    init_scheduler(app)

    return app
