# src/remindsync/notifications.py

from __future__ import annotations

import logging
import threading
from collections.abc import Callable

from .reminders.models import NotificationPayload

logger = logging.getLogger(__name__)

Subscriber = Callable[[NotificationPayload], None]


class NotificationHub:
    """
    Fan-out for fired reminders.

    Keeps the latest undismissed payload as a snapshot so a presentation layer
    that attaches late (or restarts) can still show it.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._snapshot: NotificationPayload | None = None
        self._subscribers: list[Subscriber] = []

    def subscribe(self, fn: Subscriber) -> Callable[[], None]:
        """Register a subscriber; returns an unsubscribe callable."""
        with self._lock:
            self._subscribers.append(fn)

        def _unsubscribe() -> None:
            with self._lock:
                if fn in self._subscribers:
                    self._subscribers.remove(fn)

        return _unsubscribe

    def publish(self, payload: NotificationPayload) -> None:
        with self._lock:
            self._snapshot = payload
            subscribers = list(self._subscribers)
        for fn in subscribers:
            try:
                fn(payload)
            except Exception:
                logger.exception("Notification subscriber failed")

    def snapshot(self) -> NotificationPayload | None:
        with self._lock:
            return self._snapshot

    def clear(self, record_id: str | None = None) -> None:
        """Drop the snapshot (only if it belongs to `record_id`, when given)."""
        with self._lock:
            if self._snapshot is None:
                return
            if record_id is None or self._snapshot.record_id == record_id:
                self._snapshot = None
