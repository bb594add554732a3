"""
Change feed for real-time grid updates
"""

import asyncio
import logging
import threading
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from sqlalchemy import event
from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

# Collections the grids listen to
WATCHED_COLLECTIONS = ("bookings", "visitors")

ChangeCallback = Callable[[str], None]


@dataclass(eq=False)
class Subscription:
    """A listener on one collection, bound to the event loop it runs on"""
    collection: str
    callback: ChangeCallback
    loop: asyncio.AbstractEventLoop


class ChangeFeed:
    """Fans row change notifications out to subscribers, per collection"""

    def __init__(self):
        # collection -> list of subscriptions
        self.subscriptions: Dict[str, List[Subscription]] = {}
        self._lock = threading.Lock()

    def subscribe(
        self,
        collection: str,
        callback: ChangeCallback,
        loop: Optional[asyncio.AbstractEventLoop] = None
    ) -> Subscription:
        """Register a callback for changes on a collection.

        The callback always runs on ``loop`` (the running loop by default),
        whichever thread publishes the change.
        """
        subscription = Subscription(collection, callback, loop or asyncio.get_running_loop())
        with self._lock:
            self.subscriptions.setdefault(collection, []).append(subscription)
            count = len(self.subscriptions[collection])
        logger.info(f"Subscribed to {collection} changes. Total subscribers: {count}")
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        """Release a subscription; releasing twice is a no-op"""
        with self._lock:
            subscribers = self.subscriptions.get(subscription.collection)
            if not subscribers or subscription not in subscribers:
                return
            subscribers.remove(subscription)
            remaining = len(subscribers)
            if not subscribers:
                del self.subscriptions[subscription.collection]
        logger.info(f"Unsubscribed from {subscription.collection} changes. Remaining subscribers: {remaining}")

    def publish(self, collection: str, change_type: str = "*") -> int:
        """Notify every subscriber of a collection; returns how many were reached"""
        with self._lock:
            subscribers = list(self.subscriptions.get(collection, []))

        if not subscribers:
            logger.debug(f"No subscribers for {collection} change {change_type}")
            return 0

        dead = []
        for subscription in subscribers:
            try:
                subscription.loop.call_soon_threadsafe(subscription.callback, change_type)
            except RuntimeError as e:
                logger.error(f"Dropping {collection} subscriber with closed event loop: {e}")
                dead.append(subscription)

        for subscription in dead:
            self.unsubscribe(subscription)
        return len(subscribers) - len(dead)

    def get_subscriber_count(self, collection: str) -> int:
        with self._lock:
            return len(self.subscriptions.get(collection, []))

    def get_all_subscriber_counts(self) -> Dict[str, int]:
        with self._lock:
            return {
                collection: len(subscribers)
                for collection, subscribers in self.subscriptions.items()
            }


# Global change feed instance
change_feed = ChangeFeed()


# -------- SQLAlchemy source --------

_PENDING_CHANGES = "barpanel_pending_changes"


def _collect_changes(session, flush_context):
    pending = session.info.setdefault(_PENDING_CHANGES, set())
    for objects, change_type in (
        (session.new, "INSERT"),
        (session.dirty, "UPDATE"),
        (session.deleted, "DELETE"),
    ):
        for obj in objects:
            table = getattr(obj, "__tablename__", None)
            if table in WATCHED_COLLECTIONS:
                pending.add((table, change_type))


def _publish_committed(session):
    for table, change_type in sorted(session.info.pop(_PENDING_CHANGES, ())):
        change_feed.publish(table, change_type)


def _discard_pending(session):
    session.info.pop(_PENDING_CHANGES, None)


def install_sqlalchemy_hooks() -> None:
    """Publish committed ORM writes to the global change feed (idempotent)"""
    for name, handler in (
        ("after_flush", _collect_changes),
        ("after_commit", _publish_committed),
        ("after_rollback", _discard_pending),
    ):
        if not event.contains(Session, name, handler):
            event.listen(Session, name, handler)


# -------- Firestore source --------

_FIRESTORE_CHANGE_TYPES = {
    "ADDED": "INSERT",
    "MODIFIED": "UPDATE",
    "REMOVED": "DELETE",
}


def watch_firestore_collection(collection: str, feed: ChangeFeed = change_feed):
    """Forward Firestore snapshot changes on a collection to the feed.

    Returns the watch handle; call ``unsubscribe()`` on it to stop.
    """
    from barpanel.services.firebase_client import get_collection

    state = {"initial": True}

    def on_snapshot(docs, changes, read_time):
        # The first snapshot replays the whole collection
        if state["initial"]:
            state["initial"] = False
            return
        for change in changes:
            feed.publish(collection, _FIRESTORE_CHANGE_TYPES.get(change.type.name, "UPDATE"))

    watch = get_collection(collection).on_snapshot(on_snapshot)
    logger.info(f"Watching Firestore collection {collection}")
    return watch
