"""Cooking session state machine.

    active <-> paused  ->  completed | abandoned   (terminal)

Each transition is applied to the local copy and written through the sync
repository, so it works offline and is pushed later. Disallowed transitions
raise InvalidTransition instead of doing nothing.
"""
import logging
import uuid
from datetime import datetime
from typing import List, Optional, Union

from mealsync.domain.CookingSession import CookingSession
from mealsync.domain.StepCompletion import StepCompletion
from mealsync.infra.Sync_Repository import SyncRepository
from mealsync.logic.cooking.timer_manager import CookingTimerManager
from mealsync.utilities.errors import InvalidTransition
from mealsync.utilities.timestamps import utcnow
from mealsync.utilities.validators import StartSessionInput, CompleteStepInput

logger = logging.getLogger(__name__)


class CookingSessionService:
    def __init__(self, sessions: SyncRepository, completions: SyncRepository, timers: CookingTimerManager,
                 breakdowns: Optional[SyncRepository] = None, clock=utcnow):
        self.sessions = sessions
        self.completions = completions
        self.timers = timers
        self.breakdowns = breakdowns
        self.clock = clock

    async def _load(self, session_id: str) -> CookingSession:
        # Local copy first: it holds any pending transition not yet on the server.
        record = self.sessions.get_local(session_id)
        if record is None:
            record = await self.sessions.read(session_id)
        return record.payload

    async def _save(self, session: CookingSession) -> CookingSession:
        return (await self.sessions.write(session)).payload

    async def start(self, recipe_id: str, breakdown_id: Optional[str] = None,
                    energy_level: Optional[int] = None, total_steps: Optional[int] = None) -> CookingSession:
        data = StartSessionInput(recipe_id=recipe_id, breakdown_id=breakdown_id,
                                 energy_level=energy_level, total_steps=total_steps)
        steps = data.total_steps or 0
        if data.breakdown_id and self.breakdowns is not None:
            breakdown = (await self.breakdowns.read(data.breakdown_id)).payload
            steps = breakdown.total_steps
        session = CookingSession(
            id=str(uuid.uuid4()),
            recipe_id=data.recipe_id,
            breakdown_id=data.breakdown_id,
            total_steps=steps,
            started_at=self.clock(),
            energy_level_at_start=data.energy_level,
        )
        session = await self._save(session)
        logger.info(f"Cooking session {session.id} started for recipe {recipe_id} ({steps} steps)")
        return session

    async def pause(self, session_id: str) -> CookingSession:
        session = await self._load(session_id)
        session.pause(self.clock())
        return await self._save(session)

    async def resume(self, session_id: str) -> CookingSession:
        session = await self._load(session_id)
        session.resume(self.clock())
        return await self._save(session)

    async def complete(self, session_id: str) -> CookingSession:
        session = await self._load(session_id)
        session.complete(self.clock())
        session = await self._save(session)
        await self.timers.cancel_session_timers(session_id)
        logger.info(f"Cooking session {session_id} completed")
        return session

    async def abandon(self, session_id: str) -> CookingSession:
        session = await self._load(session_id)
        session.abandon(self.clock())
        session = await self._save(session)
        await self.timers.cancel_session_timers(session_id)
        logger.info(f"Cooking session {session_id} abandoned")
        return session

    async def complete_step(self, session_id: str, step_index: int, time_taken_seconds: Optional[int] = None,
                            skipped: bool = False, notes: Optional[str] = None,
                            step_text: Optional[str] = None,
                            difficulty_rating: Optional[int] = None) -> StepCompletion:
        """Record a step as done; completing the same step again replaces the earlier record."""
        data = CompleteStepInput(step_index=step_index, step_text=step_text, time_taken_seconds=time_taken_seconds,
                                 skipped=skipped, difficulty_rating=difficulty_rating, notes=notes)
        session = await self._load(session_id)
        if session.is_terminal:
            raise InvalidTransition("session", session.id, session.status, "complete a step of")
        if session.total_steps and data.step_index >= session.total_steps:
            raise ValueError(f"step_index {data.step_index} out of range (session has {session.total_steps} steps)")
        completion = StepCompletion(
            session_id=session_id,
            step_index=data.step_index,
            completed_at=self.clock(),
            step_text=data.step_text,
            time_taken_seconds=data.time_taken_seconds,
            skipped=data.skipped,
            difficulty_rating=data.difficulty_rating,
            notes=data.notes,
        )
        completion = (await self.completions.write(completion)).payload
        if data.step_index == session.current_step_index:
            session.current_step_index = data.step_index + 1
            if session.total_steps:
                session.current_step_index = min(session.current_step_index, session.total_steps)
            await self._save(session)
        return completion

    async def update_progress(self, session_id: str, current_step_index: int,
                              notes: Optional[str] = None) -> CookingSession:
        session = await self._load(session_id)
        if session.is_terminal:
            raise InvalidTransition("session", session.id, session.status, "update progress of")
        if current_step_index < 0 or (session.total_steps and current_step_index > session.total_steps):
            raise ValueError(f"current_step_index {current_step_index} out of range")
        session.current_step_index = current_step_index
        if notes is not None:
            session.notes = notes
        return await self._save(session)

    async def delete_session(self, session_id: str) -> None:
        """Delete a session together with the timers and step completions it owns."""
        await self.timers.delete_session_timers(session_id)
        for completion in self.step_completions(session_id):
            await self.completions.delete(completion.id)
        await self.sessions.delete(session_id)

    # ---------------- queries ----------------
    async def get_session(self, session_id: str) -> CookingSession:
        return (await self.sessions.read(session_id)).payload

    async def list_sessions(self, status: Optional[str] = None) -> List[CookingSession]:
        params = {"status": status} if status else None
        predicate = (lambda s: s.status == status) if status else None
        return [r.payload for r in await self.sessions.list(params=params, predicate=predicate)]

    def step_completions(self, session_id: str) -> List[StepCompletion]:
        records = self.completions.local_records(lambda c: c.session_id == session_id)
        return sorted((r.payload for r in records), key=lambda c: c.step_index)

    def elapsed_active_seconds(self, session: Union[CookingSession, str], now: Optional[datetime] = None) -> int:
        if isinstance(session, str):
            record = self.sessions.get_local(session)
            if record is None:
                raise LookupError(session)
            session = record.payload
        return session.elapsed_active_seconds(now or self.clock())


__all__ = ['CookingSessionService']
