"""
Change feed: publish/subscribe of match row snapshots.
The match service publishes after every committed write; transports (WebSocket,
polling, tests) subscribe. Subscribers always get the full snapshot, never a diff.
"""

import logging
import threading
from collections import defaultdict
from typing import Any, Callable

logger = logging.getLogger(__name__)

Subscriber = Callable[[dict[str, Any]], None]


class ChangeFeed:
    """In-process channel keyed by match id. Safe to publish from any thread."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subscribers: dict[str, list[Subscriber]] = defaultdict(list)

    def subscribe(self, match_id: str, callback: Subscriber) -> Callable[[], None]:
        """Register callback for match_id. Returns a function that unsubscribes it."""
        with self._lock:
            self._subscribers[match_id].append(callback)

        def unsubscribe() -> None:
            with self._lock:
                subs = self._subscribers.get(match_id, [])
                if callback in subs:
                    subs.remove(callback)
                if not subs:
                    self._subscribers.pop(match_id, None)

        return unsubscribe

    def subscriber_count(self, match_id: str) -> int:
        with self._lock:
            return len(self._subscribers.get(match_id, []))

    def publish(self, match_id: str, snapshot: dict[str, Any]) -> None:
        """
        Deliver snapshot to every subscriber of match_id.
        A failing subscriber is logged and skipped; it never affects the writer.
        """
        with self._lock:
            subs = list(self._subscribers.get(match_id, []))
        for callback in subs:
            try:
                callback(snapshot)
            except Exception:
                logger.exception("Change feed subscriber failed for match %s", match_id)
