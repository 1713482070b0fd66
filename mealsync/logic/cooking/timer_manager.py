"""Cooking timer manager.

Timers belong to a cooking session; many can run at once and each keeps its
own pause accounting. Remaining time is recomputed from timestamps on every
read. check_due() is meant to be called from a UI tick or on app resume and
fires each finished timer's notification exactly once.
"""
import logging
import uuid
import zlib
from datetime import datetime
from typing import List, Optional, Union

from mealsync.domain.CookingSession import CookingSession
from mealsync.domain.CookingTimer import CookingTimer
from mealsync.events.Event_Bus import EventBus
from mealsync.events.event_helpers import publish_timer_completed
from mealsync.infra.Notification_Dispatcher import NotificationDispatcher
from mealsync.infra.Sync_Repository import SyncRepository
from mealsync.utilities.errors import InvalidTransition, NotFound, ServerRejected
from mealsync.utilities.timestamps import utcnow
from mealsync.utilities.validators import CreateTimerInput

logger = logging.getLogger(__name__)


def timer_notification_id(timer_id: str) -> int:
    # Offset keeps timer ids clear of the reminder id range.
    return 900_000_000 + zlib.crc32(timer_id.encode('utf-8')) % 100_000_000


class CookingTimerManager:
    def __init__(self, timers: SyncRepository, sessions: SyncRepository,
                 dispatcher: Optional[NotificationDispatcher] = None,
                 bus: Optional[EventBus] = None, clock=utcnow):
        self.timers = timers
        self.sessions = sessions
        self.dispatcher = dispatcher
        self.bus = bus
        self.clock = clock

    async def _session(self, session_id: str) -> CookingSession:
        record = self.sessions.get_local(session_id)
        if record is None:
            record = await self.sessions.read(session_id)
        return record.payload

    async def _timer(self, timer_id: str) -> CookingTimer:
        record = self.timers.get_local(timer_id)
        if record is None:
            record = await self.timers.read(timer_id)
        return record.payload

    async def create_timer(self, session_id: str, name: str, duration_seconds: int,
                           step_index: Optional[int] = None) -> CookingTimer:
        data = CreateTimerInput(name=name, duration_seconds=duration_seconds, step_index=step_index)
        session = await self._session(session_id)
        if session.is_terminal:
            raise InvalidTransition("session", session.id, session.status, "add a timer to")
        timer = CookingTimer(
            id=str(uuid.uuid4()),
            session_id=session_id,
            name=data.name,
            duration_seconds=data.duration_seconds,
            step_index=data.step_index,
            started_at=self.clock(),
        )
        record = await self.timers.write(timer)
        logger.info(f"Timer '{timer.name}' ({timer.duration_seconds}s) started for session {session_id}")
        return record.payload

    async def _transition(self, timer_id: str, action: str, *args) -> CookingTimer:
        timer = await self._timer(timer_id)
        getattr(timer, action)(*args)
        return (await self.timers.write(timer)).payload

    async def pause_timer(self, timer_id: str) -> CookingTimer:
        return await self._transition(timer_id, "pause", self.clock())

    async def resume_timer(self, timer_id: str) -> CookingTimer:
        return await self._transition(timer_id, "resume", self.clock())

    async def complete_timer(self, timer_id: str) -> CookingTimer:
        timer = await self._transition(timer_id, "complete", self.clock())
        self._cancel_notification(timer)
        return timer

    async def cancel_timer(self, timer_id: str) -> CookingTimer:
        timer = await self._transition(timer_id, "cancel", self.clock())
        self._cancel_notification(timer)
        return timer

    async def extend_timer(self, timer_id: str, seconds: int) -> CookingTimer:
        if seconds <= 0:
            raise ValueError("seconds must be positive")
        return await self._transition(timer_id, "extend", seconds)

    async def reset_timer(self, timer_id: str) -> CookingTimer:
        timer = await self._transition(timer_id, "reset", self.clock())
        self._cancel_notification(timer)
        return timer

    # ---------------- derived state ----------------
    def remaining_seconds(self, timer: Union[CookingTimer, str], now: Optional[datetime] = None) -> int:
        if isinstance(timer, str):
            record = self.timers.get_local(timer)
            if record is None:
                raise NotFound(self.timers.collection, timer)
            timer = record.payload
        return timer.remaining_seconds(now or self.clock())

    def session_timers(self, session_id: str) -> List[CookingTimer]:
        return [r.payload for r in self.timers.local_records(lambda t: t.session_id == session_id)]

    def active_timers(self, session_id: Optional[str] = None) -> List[CookingTimer]:
        return [r.payload for r in self.timers.local_records(
            lambda t: not t.is_terminal and (session_id is None or t.session_id == session_id))]

    def due_timers(self, now: Optional[datetime] = None) -> List[CookingTimer]:
        now = now or self.clock()
        return [r.payload for r in self.timers.local_records(lambda t: t.is_due(now))]

    # ---------------- side effects ----------------
    async def _force(self, timer: CookingTimer):
        """Apply a local state change that must stick even if the server refuses it."""
        self.timers.save_local(timer)
        try:
            await self.timers.push(timer.id)
        except ServerRejected as e:
            logger.warning(f"Server rejected forced update of timer {timer.id}: {e}; kept locally")

    async def check_due(self, now: Optional[datetime] = None) -> List[CookingTimer]:
        """Fire the "timer complete" notification for every running timer that reached zero."""
        now = now or self.clock()
        fired = []
        for timer in self.due_timers(now):
            if self.dispatcher is not None:
                self.dispatcher.schedule(timer_notification_id(timer.id), now,
                                         f"Timer done: {timer.name}", f"{timer.name} has finished.")
            timer.notification_sent = True
            timer.notification_sent_at = now
            timer.complete(now)
            await self._force(timer)
            publish_timer_completed(self.bus, timer)
            logger.info(f"Timer '{timer.name}' ({timer.id}) finished")
            fired.append(timer)
        return fired

    async def cancel_session_timers(self, session_id: str) -> List[CookingTimer]:
        """Force every non-terminal timer of a session to 'cancelled'."""
        now = self.clock()
        cancelled = []
        for timer in self.active_timers(session_id):
            timer.cancel(now)
            await self._force(timer)
            self._cancel_notification(timer)
            cancelled.append(timer)
        if cancelled:
            logger.info(f"Cancelled {len(cancelled)} timer(s) of session {session_id}")
        return cancelled

    async def delete_session_timers(self, session_id: str) -> int:
        timers = self.session_timers(session_id)
        for timer in timers:
            self._cancel_notification(timer)
            await self.timers.delete(timer.id)
        return len(timers)

    def _cancel_notification(self, timer: CookingTimer):
        if self.dispatcher is not None:
            self.dispatcher.cancel(timer_notification_id(timer.id))


__all__ = ['CookingTimerManager', 'timer_notification_id']
