"""Change notification bridge.

Committed writes to ``orders``, ``order_items`` and ``tables`` are turned into
opaque per-topic signals. Subscribers are told *that* something changed,
never what; cached views are dropped wholesale and refetched on next read.
"""
import logging
import threading
from typing import Callable, Dict, Iterable, List, Optional, Set

from sqlalchemy import event
from sqlalchemy.orm import Session

from models.order_management import Order, OrderItem
from models.table_management import Table

logger = logging.getLogger(__name__)

TOPIC_ORDERS = "orders"
TOPIC_ORDER_ITEMS = "order_items"
TOPIC_TABLES = "tables"
TOPICS = (TOPIC_ORDERS, TOPIC_ORDER_ITEMS, TOPIC_TABLES)

VIEW_ORDERS = "orders"
VIEW_TABLES = "tables"

# topic -> cached views that must be refetched when it fires
INVALIDATES: Dict[str, Set[str]] = {
    TOPIC_ORDERS: {VIEW_ORDERS, VIEW_TABLES},
    TOPIC_ORDER_ITEMS: {VIEW_ORDERS},
    TOPIC_TABLES: {VIEW_TABLES, VIEW_ORDERS},
}

_PENDING_KEY = "pending_change_topics"


class Subscription:
    def __init__(self, feed: "ChangeFeed", topic: str, callback: Callable[[str], None]):
        self.feed = feed
        self.topic = topic
        self.callback = callback
        self.active = True

    def unsubscribe(self):
        if self.active:
            self.feed._remove(self)
            self.active = False


class ChangeFeed:
    """Topic-keyed event source with subscribe/unsubscribe handles."""

    def __init__(self):
        self._subscribers: Dict[str, List[Subscription]] = {topic: [] for topic in TOPICS}
        self._lock = threading.Lock()

    def subscribe(self, topic: str, callback: Callable[[str], None]) -> Subscription:
        if topic not in self._subscribers:
            raise ValueError(f"Unknown topic {topic!r}, expected one of {TOPICS}")
        subscription = Subscription(self, topic, callback)
        with self._lock:
            self._subscribers[topic].append(subscription)
        logger.debug(f"Subscribed to {topic}. Total subscribers: {len(self._subscribers[topic])}")
        return subscription

    def subscribe_all(self, callback: Callable[[str], None]) -> List[Subscription]:
        return [self.subscribe(topic, callback) for topic in TOPICS]

    def _remove(self, subscription: Subscription):
        with self._lock:
            try:
                self._subscribers[subscription.topic].remove(subscription)
            except ValueError:
                pass

    def subscriber_count(self, topic: str) -> int:
        return len(self._subscribers.get(topic, []))

    def publish(self, topic: str):
        with self._lock:
            subscribers = list(self._subscribers.get(topic, []))
        logger.debug(f"Publishing change on {topic} to {len(subscribers)} subscriber(s)")
        for subscription in subscribers:
            try:
                subscription.callback(topic)
            except Exception as e:
                logger.warning(f"Change subscriber for {topic} failed: {str(e)}")

    def publish_many(self, topics: Iterable[str]):
        for topic in topics:
            self.publish(topic)

    def resync(self):
        """Signal every topic, e.g. after a client was suspended and may have missed messages."""
        self.publish_many(TOPICS)


class ViewCache:
    """Read-through cache of list views, invalidated by change topics."""

    def __init__(self, feed: Optional[ChangeFeed] = None):
        self._views: Dict[str, object] = {}
        self._lock = threading.Lock()
        self._subscriptions: List[Subscription] = []
        if feed is not None:
            self.attach(feed)

    def attach(self, feed: ChangeFeed):
        self._subscriptions = feed.subscribe_all(self.on_change)

    def detach(self):
        for subscription in self._subscriptions:
            subscription.unsubscribe()
        self._subscriptions = []

    def on_change(self, topic: str):
        self.invalidate(*INVALIDATES.get(topic, ()))

    def get(self, name: str, loader: Callable[[], object]):
        with self._lock:
            if name in self._views:
                return self._views[name]
        value = loader()
        with self._lock:
            self._views[name] = value
        return value

    def invalidate(self, *names: str):
        with self._lock:
            for name in names:
                self._views.pop(name, None)

    def clear(self):
        with self._lock:
            self._views.clear()

    def is_cached(self, name: str) -> bool:
        return name in self._views


change_feed = ChangeFeed()
view_cache = ViewCache(change_feed)


# ORM hooks: record touched topics per session, publish once committed

def _record(mapper, connection, target):
    session = Session.object_session(target)
    if session is None:
        return
    session.info.setdefault(_PENDING_KEY, set()).add(mapper.local_table.name)


for _model in (Order, OrderItem, Table):
    for _event_name in ("after_insert", "after_update", "after_delete"):
        event.listen(_model, _event_name, _record)


@event.listens_for(Session, "after_commit")
def _publish_committed(session):
    topics = session.info.pop(_PENDING_KEY, None)
    if topics:
        change_feed.publish_many(sorted(topics))


@event.listens_for(Session, "after_rollback")
def _discard_rolled_back(session):
    session.info.pop(_PENDING_KEY, None)
