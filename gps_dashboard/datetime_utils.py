"""
Date and time helpers shared by the scheduling and state layers.
"""
from datetime import date, datetime, timezone


def parse_date(value):
    """
    Parse a calendar date.

    Args:
        value: date, datetime, ISO string ('2024-01-03' or a full timestamp), or None

    Returns:
        date or None
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    # Timestamps from the store carry a time part; only the day matters here
    return date.fromisoformat(str(value)[:10])


def to_iso_date(value):
    """Format a date as 'YYYY-MM-DD', or None."""
    if value is None:
        return None
    return parse_date(value).isoformat()


def parse_timestamp(value):
    """
    Parse an ISO timestamp into an aware datetime (naive values are taken as UTC).

    Returns None when the value is missing or unparseable.
    """
    if not value:
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        try:
            dt = datetime.fromisoformat(str(value).replace('Z', '+00:00'))
        except ValueError:
            return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def utc_now_iso():
    return datetime.now(timezone.utc).isoformat()
