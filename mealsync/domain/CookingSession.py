"""CookingSession domain entity: one run through a recipe, with pause-duration accounting."""
from datetime import datetime
from typing import Optional

from mealsync.utilities.constants import (
    COOKING_SESSIONS, SESSION_ACTIVE, SESSION_PAUSED, SESSION_COMPLETED,
    SESSION_ABANDONED, SESSION_TERMINAL
)
from mealsync.utilities.errors import InvalidTransition
from mealsync.utilities.timestamps import to_iso, from_iso, seconds_between

_TIMESTAMPS = ("started_at", "paused_at", "resumed_at", "completed_at", "abandoned_at")


class CookingSession:
    collection = COOKING_SESSIONS

    def __init__(self, id: str, recipe_id: str, started_at: datetime, breakdown_id: Optional[str] = None,
                 status: str = SESSION_ACTIVE, current_step_index: int = 0, total_steps: int = 0,
                 paused_at: Optional[datetime] = None, resumed_at: Optional[datetime] = None,
                 completed_at: Optional[datetime] = None, abandoned_at: Optional[datetime] = None,
                 total_pause_duration_seconds: int = 0, energy_level_at_start: Optional[int] = None,
                 notes: Optional[str] = None):
        self.id = id
        self.recipe_id = recipe_id
        self.breakdown_id = breakdown_id
        self.status = status
        self.current_step_index = current_step_index
        self.total_steps = total_steps
        self.started_at = started_at
        self.paused_at = paused_at
        self.resumed_at = resumed_at
        self.completed_at = completed_at
        self.abandoned_at = abandoned_at
        self.total_pause_duration_seconds = total_pause_duration_seconds
        self.energy_level_at_start = energy_level_at_start
        self.notes = notes

    @property
    def is_terminal(self) -> bool:
        return self.status in SESSION_TERMINAL

    def _require(self, action: str, *allowed: str):
        if self.status not in allowed:
            raise InvalidTransition("session", self.id, self.status, action)

    def pause(self, now: datetime):
        self._require("pause", SESSION_ACTIVE)
        self.status = SESSION_PAUSED
        self.paused_at = now

    def resume(self, now: datetime):
        self._require("resume", SESSION_PAUSED)
        self._close_pause(now)
        self.status = SESSION_ACTIVE
        self.resumed_at = now

    def complete(self, now: datetime):
        self._require("complete", SESSION_ACTIVE, SESSION_PAUSED)
        self._close_pause(now)
        self.status = SESSION_COMPLETED
        self.completed_at = now

    def abandon(self, now: datetime):
        self._require("abandon", SESSION_ACTIVE, SESSION_PAUSED)
        self._close_pause(now)
        self.status = SESSION_ABANDONED
        self.abandoned_at = now

    def _close_pause(self, now: datetime):
        # The pause total only grows, and only when leaving 'paused'.
        if self.status == SESSION_PAUSED and self.paused_at is not None:
            self.total_pause_duration_seconds += seconds_between(self.paused_at, now)
            self.paused_at = None

    def elapsed_active_seconds(self, now: datetime) -> int:
        '''Active cooking time: wall-clock time since start minus all pauses.'''
        if self.status == SESSION_COMPLETED and self.completed_at:
            end = self.completed_at
        elif self.status == SESSION_ABANDONED and self.abandoned_at:
            end = self.abandoned_at
        elif self.status == SESSION_PAUSED and self.paused_at:
            end = self.paused_at
        else:
            end = now
        return max(0, seconds_between(self.started_at, end) - self.total_pause_duration_seconds)

    def __str__(self) -> str:
        return (f"Session {self.id} - recipe {self.recipe_id} - {self.status} - "
                f"step {self.current_step_index}/{self.total_steps}")

    __repr__ = __str__

    @staticmethod
    def from_dict(data):
        '''Creates a CookingSession from a dictionary. Ignores unknown keys.'''
        d = dict(data)
        allowed = {"id", "recipe_id", "breakdown_id", "status", "current_step_index", "total_steps",
                   "total_pause_duration_seconds", "energy_level_at_start", "notes", *_TIMESTAMPS}
        filtered = {k: v for k, v in d.items() if k in allowed}
        for key in _TIMESTAMPS:
            if key in filtered:
                filtered[key] = from_iso(filtered[key])
        filtered["current_step_index"] = int(filtered.get("current_step_index") or 0)
        filtered["total_steps"] = int(filtered.get("total_steps") or 0)
        filtered["total_pause_duration_seconds"] = int(filtered.get("total_pause_duration_seconds") or 0)
        return CookingSession(**filtered)

    def to_dict(self):
        return {
            "id": self.id,
            "recipe_id": self.recipe_id,
            "breakdown_id": self.breakdown_id,
            "status": self.status,
            "current_step_index": self.current_step_index,
            "total_steps": self.total_steps,
            "started_at": to_iso(self.started_at),
            "paused_at": to_iso(self.paused_at),
            "resumed_at": to_iso(self.resumed_at),
            "completed_at": to_iso(self.completed_at),
            "abandoned_at": to_iso(self.abandoned_at),
            "total_pause_duration_seconds": self.total_pause_duration_seconds,
            "energy_level_at_start": self.energy_level_at_start,
            "notes": self.notes,
        }
