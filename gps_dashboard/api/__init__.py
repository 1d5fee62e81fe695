# Package
from flask import Blueprint

from gps_dashboard.logging_config import get_logger

logger = get_logger(__name__)

api_bp = Blueprint("api", __name__)

from gps_dashboard.api import routes
