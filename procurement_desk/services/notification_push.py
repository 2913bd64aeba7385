"""
Live notification push hub.

In-process registry of connected stream subscribers, each with a bounded
queue. Publishing is best effort: it never blocks the caller, and a
subscriber whose queue is full simply misses the message (the client
re-syncs through the REST inbox endpoints).

The SSE endpoint in notification_bp registers a subscriber per connection
and drains its queue.
"""

from __future__ import annotations

import itertools
import logging
import queue
from threading import RLock
from typing import Callable, Iterable

from procurement_desk.services.visibility import VisibilityScope

logger = logging.getLogger(__name__)

_DEFAULT_QUEUE_SIZE = 100


class Subscriber:
    """One connected client."""

    def __init__(self, subscriber_id: int, scope: VisibilityScope, maxsize: int) -> None:
        self.id = subscriber_id
        self.scope = scope
        self.queue: queue.Queue = queue.Queue(maxsize=maxsize)
        self.dropped = 0

    def offer(self, message: dict) -> bool:
        try:
            self.queue.put_nowait(message)
            return True
        except queue.Full:
            self.dropped += 1
            logger.warning(
                "Notification stream queue full for subscriber=%s user=%s; message dropped",
                self.id, self.scope.user_id,
            )
            return False

    def __repr__(self) -> str:
        return f"<Subscriber {self.id} user={self.scope.user_id}>"


class NotificationHub:
    def __init__(self, queue_size: int = _DEFAULT_QUEUE_SIZE) -> None:
        self._lock = RLock()
        self._subscribers: dict[int, Subscriber] = {}
        self._ids = itertools.count(1)
        self.queue_size = queue_size

    def subscribe(self, scope: VisibilityScope) -> Subscriber:
        with self._lock:
            sub = Subscriber(next(self._ids), scope, self.queue_size)
            self._subscribers[sub.id] = sub
        logger.debug("Stream subscriber %s connected (user=%s)", sub.id, scope.user_id)
        return sub

    def unsubscribe(self, subscriber: Subscriber) -> None:
        with self._lock:
            self._subscribers.pop(subscriber.id, None)
        logger.debug("Stream subscriber %s disconnected", subscriber.id)

    def subscribers(self, predicate: Callable[[VisibilityScope], bool] | None = None) -> list[Subscriber]:
        with self._lock:
            subs = list(self._subscribers.values())
        if predicate is None:
            return subs
        return [s for s in subs if predicate(s.scope)]

    def publish(self, message: dict, targets: Iterable[Subscriber] | None = None) -> int:
        """Offer a message to the targets (all subscribers when None). Returns deliveries."""
        recipients = self.subscribers() if targets is None else list(targets)
        delivered = 0
        for sub in recipients:
            if sub.offer(message):
                delivered += 1
        return delivered

    def clear(self) -> None:
        with self._lock:
            self._subscribers.clear()


_DEFAULT_HUB = NotificationHub()


def get_hub() -> NotificationHub:
    return _DEFAULT_HUB


def reset_hub_for_tests() -> None:
    _DEFAULT_HUB.clear()
