import hmac

from flask import Blueprint, current_app, jsonify, request

from gps_dashboard.logging_config import get_logger
from gps_dashboard.realtime.events import ChangeEvent, parse_change_payload
from gps_dashboard.realtime.feed import ALL_TABLES, ChangeFeed, Subscription

logger = get_logger(__name__)

# Blueprint for change notification routes
realtime_bp = Blueprint("realtime", __name__)


def _secret_matches(expected):
    if not expected:
        return True
    provided = request.headers.get("X-Webhook-Secret", "")
    return hmac.compare_digest(provided, expected)


@realtime_bp.route("/webhook", methods=["HEAD", "POST"])
def realtime_webhook():
    if request.method == "HEAD":
        return "", 200

    if not _secret_matches(current_app.config.get("REALTIME_WEBHOOK_SECRET")):
        logger.warning("Rejected change notification with bad secret")
        return jsonify({"error": "unauthorized"}), 401

    data = request.get_json(silent=True)
    event_info = parse_change_payload(data)

    # Skip unhandled notifications
    if not event_info.get("handled"):
        logger.info("Skipping unhandled change notification", reason=event_info.get("reason"))
        return jsonify({"status": "skipped", "reason": event_info.get("reason")}), 200

    event = event_info["event"]
    feed = current_app.extensions["gps_dashboard"].feed
    delivered = feed.publish(event)
    logger.info(
        "Change notification applied",
        table=event.table,
        event_type=event.event_type,
        delivered=delivered,
    )
    return jsonify({"status": "applied", "delivered": delivered}), 200


__all__ = [
    'realtime_bp',
    'ChangeEvent',
    'ChangeFeed',
    'Subscription',
    'ALL_TABLES',
    'parse_change_payload',
]
