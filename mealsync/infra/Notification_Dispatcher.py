"""Notification dispatcher: the boundary to the OS notification scheduler.

The platform implementation lives in the host application. This module
defines the contract plus an in-memory dispatcher that keeps the pending
schedule, used headless and in tests. Dispatchers are created and passed in
explicitly; each one has an initialize()/shutdown() lifecycle.
"""
import logging
from collections import deque
from datetime import datetime
from threading import Lock
from typing import Dict, List, Optional, Protocol, runtime_checkable

from mealsync.utilities.timestamps import to_iso

logger = logging.getLogger(__name__)

CANCELLED_HISTORY = 256


@runtime_checkable
class NotificationDispatcher(Protocol):
    def initialize(self) -> None: ...

    def schedule(self, notification_id: int, instant: datetime, title: str, body: str,
                 weekly: bool = False) -> None: ...

    def cancel(self, notification_id: int) -> None: ...

    def cancel_all(self) -> None: ...

    def shutdown(self) -> None: ...


class ScheduledNotification:
    def __init__(self, notification_id: int, instant: datetime, title: str, body: str, weekly: bool = False):
        self.notification_id = notification_id
        self.instant = instant
        self.title = title
        self.body = body
        self.weekly = weekly

    def __str__(self) -> str:
        repeat = " weekly" if self.weekly else ""
        return f"#{self.notification_id} {self.title} at {to_iso(self.instant)}{repeat}"

    __repr__ = __str__

    def to_dict(self):
        return {
            "id": self.notification_id,
            "instant": to_iso(self.instant),
            "title": self.title,
            "body": self.body,
            "weekly": self.weekly,
        }


class InMemoryNotificationDispatcher:
    """Keeps scheduled notifications in a dict keyed by notification id."""

    def __init__(self):
        self._lock = Lock()
        self._scheduled: Dict[int, ScheduledNotification] = {}
        # Most recent cancellations only, for inspection in tests and logs
        self.cancelled = deque(maxlen=CANCELLED_HISTORY)
        self.initialized = False

    def initialize(self) -> None:
        if self.initialized:
            return
        self.initialized = True
        logger.debug("Notification dispatcher initialized")

    def _ensure_initialized(self):
        # Callers may schedule before the host called initialize().
        if not self.initialized:
            self.initialize()

    def schedule(self, notification_id: int, instant: datetime, title: str, body: str,
                 weekly: bool = False) -> None:
        self._ensure_initialized()
        with self._lock:
            self._scheduled[notification_id] = ScheduledNotification(notification_id, instant, title, body, weekly)
        logger.debug(f"Scheduled notification #{notification_id} '{title}' at {to_iso(instant)}")

    def cancel(self, notification_id: int) -> None:
        self._ensure_initialized()
        with self._lock:
            self._scheduled.pop(notification_id, None)
            self.cancelled.append(notification_id)

    def cancel_all(self) -> None:
        self._ensure_initialized()
        with self._lock:
            self.cancelled.extend(self._scheduled)
            self._scheduled.clear()

    def shutdown(self) -> None:
        with self._lock:
            self._scheduled.clear()
        self.initialized = False

    def get(self, notification_id: int) -> Optional[ScheduledNotification]:
        with self._lock:
            return self._scheduled.get(notification_id)

    def pending(self) -> List[ScheduledNotification]:
        with self._lock:
            return sorted(self._scheduled.values(), key=lambda n: (n.instant, n.notification_id))


__all__ = ['NotificationDispatcher', 'ScheduledNotification', 'InMemoryNotificationDispatcher']
