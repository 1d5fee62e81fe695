import threading
from collections import defaultdict

from gps_dashboard.logging_config import get_logger

logger = get_logger(__name__)

ALL_TABLES = "*"


class Subscription:
    """Handle returned by ChangeFeed.subscribe(); call unsubscribe() on teardown."""

    def __init__(self, feed, table, callback):
        self.feed = feed
        self.table = table
        self.callback = callback
        self.active = True

    def unsubscribe(self):
        if self.active:
            self.feed._remove(self)
            self.active = False


class ChangeFeed:
    """
    In-process fan-out of row change events to per-table subscribers.

    A failing subscriber is logged and does not affect the others.
    """

    def __init__(self):
        self._subscriptions = defaultdict(list)
        self._lock = threading.Lock()
        self.stats = {"published": 0, "delivered": 0, "failed": 0}

    def subscribe(self, table, callback):
        subscription = Subscription(self, table, callback)
        with self._lock:
            self._subscriptions[table].append(subscription)
        logger.info(f"Change feed subscription established for {table}")
        return subscription

    def _remove(self, subscription):
        with self._lock:
            subscribers = self._subscriptions.get(subscription.table, [])
            if subscription in subscribers:
                subscribers.remove(subscription)
        logger.info(f"Change feed subscription closed for {subscription.table}")

    def subscriber_count(self, table=None):
        with self._lock:
            if table is None:
                return sum(len(subs) for subs in self._subscriptions.values())
            return len(self._subscriptions.get(table, []))

    def publish(self, event):
        """
        Deliver an event to the subscribers of its table and to wildcard subscribers.

        Returns:
            int: Number of subscribers that handled the event without error
        """
        with self._lock:
            targets = list(self._subscriptions.get(event.table, [])) + list(self._subscriptions.get(ALL_TABLES, []))
            self.stats["published"] += 1

        delivered = 0
        for subscription in targets:
            try:
                subscription.callback(event)
                delivered += 1
            except Exception as e:
                with self._lock:
                    self.stats["failed"] += 1
                logger.error(
                    f"Error handling change event for {event.table}",
                    event_type=event.event_type,
                    error=str(e),
                    exc_info=True,
                )

        with self._lock:
            self.stats["delivered"] += delivered
        return delivered
