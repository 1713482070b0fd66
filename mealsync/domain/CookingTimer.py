"""CookingTimer domain entity. Remaining time is always derived from timestamps, never stored."""
from datetime import datetime
from typing import Optional

from mealsync.utilities.constants import (
    COOKING_TIMERS, TIMER_RUNNING, TIMER_PAUSED, TIMER_COMPLETED, TIMER_CANCELLED, TIMER_TERMINAL
)
from mealsync.utilities.errors import InvalidTransition
from mealsync.utilities.timestamps import to_iso, from_iso, seconds_between

_TIMESTAMPS = ("started_at", "paused_at", "resumed_at", "completed_at", "cancelled_at", "notification_sent_at")


class CookingTimer:
    collection = COOKING_TIMERS

    def __init__(self, id: str, session_id: str, name: str, duration_seconds: int, started_at: datetime,
                 step_index: Optional[int] = None, status: str = TIMER_RUNNING,
                 paused_at: Optional[datetime] = None, resumed_at: Optional[datetime] = None,
                 completed_at: Optional[datetime] = None, cancelled_at: Optional[datetime] = None,
                 total_pause_duration_seconds: int = 0, notification_sent: bool = False,
                 notification_sent_at: Optional[datetime] = None):
        self.id = id
        self.session_id = session_id
        self.step_index = step_index
        self.name = name
        self.duration_seconds = duration_seconds
        self.status = status
        self.started_at = started_at
        self.paused_at = paused_at
        self.resumed_at = resumed_at
        self.completed_at = completed_at
        self.cancelled_at = cancelled_at
        self.total_pause_duration_seconds = total_pause_duration_seconds
        self.notification_sent = notification_sent
        self.notification_sent_at = notification_sent_at

    @property
    def is_terminal(self) -> bool:
        return self.status in TIMER_TERMINAL

    def _require(self, action: str, *allowed: str):
        if self.status not in allowed:
            raise InvalidTransition("timer", self.id, self.status, action)

    def _frozen_at(self, now: datetime) -> datetime:
        if self.status == TIMER_PAUSED and self.paused_at is not None:
            return self.paused_at
        if self.status == TIMER_COMPLETED and self.completed_at is not None:
            return self.completed_at
        if self.status == TIMER_CANCELLED and self.cancelled_at is not None:
            return self.cancelled_at
        return now

    def elapsed_seconds(self, now: datetime) -> int:
        return max(0, seconds_between(self.started_at, self._frozen_at(now)) - self.total_pause_duration_seconds)

    def overdue_seconds(self, now: datetime) -> int:
        '''Signed remaining time: negative once the timer has run past zero.'''
        return self.duration_seconds - self.elapsed_seconds(now)

    def remaining_seconds(self, now: datetime) -> int:
        if self.status == TIMER_COMPLETED:
            return 0
        return max(0, self.overdue_seconds(now))

    def is_due(self, now: datetime) -> bool:
        '''Eligible for the one-shot "timer complete" notification.'''
        return self.status == TIMER_RUNNING and not self.notification_sent and self.overdue_seconds(now) <= 0

    def pause(self, now: datetime):
        self._require("pause", TIMER_RUNNING)
        self.status = TIMER_PAUSED
        self.paused_at = now

    def resume(self, now: datetime):
        self._require("resume", TIMER_PAUSED)
        self._close_pause(now)
        self.status = TIMER_RUNNING
        self.resumed_at = now

    def complete(self, now: datetime):
        self._require("complete", TIMER_RUNNING, TIMER_PAUSED)
        self._close_pause(now)
        self.status = TIMER_COMPLETED
        self.completed_at = now

    def cancel(self, now: datetime):
        self._require("cancel", TIMER_RUNNING, TIMER_PAUSED)
        self._close_pause(now)
        self.status = TIMER_CANCELLED
        self.cancelled_at = now

    def extend(self, seconds: int):
        self._require("extend", TIMER_RUNNING, TIMER_PAUSED)
        self.duration_seconds += seconds

    def reset(self, now: datetime):
        """Back to the full duration, held paused until resumed."""
        self._require("reset", TIMER_RUNNING, TIMER_PAUSED)
        self.status = TIMER_PAUSED
        self.started_at = now
        self.paused_at = now
        self.resumed_at = None
        self.total_pause_duration_seconds = 0
        self.notification_sent = False
        self.notification_sent_at = None

    def _close_pause(self, now: datetime):
        if self.status == TIMER_PAUSED and self.paused_at is not None:
            self.total_pause_duration_seconds += seconds_between(self.paused_at, now)
            self.paused_at = None

    def __str__(self) -> str:
        return f"Timer {self.name} ({self.id}) - {self.status} - {self.duration_seconds}s"

    __repr__ = __str__

    @staticmethod
    def from_dict(data):
        '''Creates a CookingTimer from a dictionary. Ignores unknown keys (e.g. a server-side remaining_seconds).'''
        d = dict(data)
        allowed = {"id", "session_id", "step_index", "name", "duration_seconds", "status",
                   "total_pause_duration_seconds", "notification_sent", *_TIMESTAMPS}
        filtered = {k: v for k, v in d.items() if k in allowed}
        for key in _TIMESTAMPS:
            if key in filtered:
                filtered[key] = from_iso(filtered[key])
        filtered["duration_seconds"] = int(filtered["duration_seconds"])
        filtered["total_pause_duration_seconds"] = int(filtered.get("total_pause_duration_seconds") or 0)
        filtered["notification_sent"] = bool(filtered.get("notification_sent", False))
        return CookingTimer(**filtered)

    def to_dict(self):
        return {
            "id": self.id,
            "session_id": self.session_id,
            "step_index": self.step_index,
            "name": self.name,
            "duration_seconds": self.duration_seconds,
            "status": self.status,
            "started_at": to_iso(self.started_at),
            "paused_at": to_iso(self.paused_at),
            "resumed_at": to_iso(self.resumed_at),
            "completed_at": to_iso(self.completed_at),
            "cancelled_at": to_iso(self.cancelled_at),
            "total_pause_duration_seconds": self.total_pause_duration_seconds,
            "notification_sent": self.notification_sent,
            "notification_sent_at": to_iso(self.notification_sent_at),
        }
