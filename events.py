"""In-process alert feed.

Subscribers are plain callables invoked once per newly created alert. The
feed is a convenience for live dashboards; monitoring works the same with
no subscribers at all.
"""

import logging
import threading
from typing import Callable, List

logger = logging.getLogger(__name__)

AlertCallback = Callable[[object], None]


class AlertFeed:
    def __init__(self):
        self._subscribers: List[AlertCallback] = []
        self._lock = threading.Lock()

    def subscribe(self, callback: AlertCallback) -> None:
        with self._lock:
            self._subscribers.append(callback)

    def unsubscribe(self, callback: AlertCallback) -> None:
        with self._lock:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def publish(self, alert) -> int:
        """Deliver ``alert`` to every subscriber; returns how many accepted it."""
        with self._lock:
            subscribers = list(self._subscribers)
        delivered = 0
        for callback in subscribers:
            try:
                callback(alert)
                delivered += 1
            except Exception:
                logger.exception("Alert subscriber %r failed", callback)
        return delivered


alert_feed = AlertFeed()
