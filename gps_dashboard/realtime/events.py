from dataclasses import dataclass
from typing import Any, Dict, Optional

EVENT_TYPES = ("INSERT", "UPDATE", "DELETE")


@dataclass(frozen=True)
class ChangeEvent:
    """A row-level change notification for one table."""
    table: str
    event_type: str
    new: Optional[Dict[str, Any]] = None
    old: Optional[Dict[str, Any]] = None
    commit_timestamp: Optional[str] = None

    @property
    def record(self) -> Dict[str, Any]:
        """The row the event is about: the new image, or the old one for deletes."""
        if self.event_type == "DELETE":
            return self.old or {}
        return self.new or {}

    def key(self, key_field: str = "id"):
        return self.record.get(key_field)


def parse_change_payload(data):
    """
    Parses a change notification into a ChangeEvent.

    Accepts database-webhook payloads ({type, table, record, old_record}) and
    realtime payloads ({eventType, table, new, old}).
    Returns a dict describing whether the event is handled.
    """
    if not isinstance(data, dict):
        return {"handled": False, "reason": "payload is not an object"}

    event_type = (data.get("type") or data.get("eventType") or "").upper()
    table = data.get("table")

    if event_type not in EVENT_TYPES:
        return {"handled": False, "reason": f"unsupported event type '{event_type}'", "table": table}
    if not table:
        return {"handled": False, "reason": "missing table", "event_type": event_type}

    new = data.get("record") if "record" in data else data.get("new")
    old = data.get("old_record") if "old_record" in data else data.get("old")
    # Realtime sends {} rather than null for the absent image
    new = new or None
    old = old or None

    event = ChangeEvent(
        table=table,
        event_type=event_type,
        new=new,
        old=old,
        commit_timestamp=data.get("commit_timestamp"),
    )

    if event.key() is None:
        return {"handled": False, "reason": "row has no id", "table": table, "event_type": event_type}

    return {"handled": True, "event": event, "table": table, "event_type": event_type}
