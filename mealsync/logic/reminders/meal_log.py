"""Meal logging and the eating timeline built from the logs.

Logs are written local-first like every other record. The timeline is
computed from the local copies, so it is available offline. A log made from
a Breakfast, Lunch or Dinner reminder counts as a meal. Any other log counts
as a snack.
"""
import logging
import uuid
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional

from mealsync.domain.MealLog import MealLog, TimelineSettings
from mealsync.infra.Sync_Repository import SyncRepository
from mealsync.utilities.constants import MAIN_MEAL_NAMES, TIMELINE_SETTINGS_ID
from mealsync.utilities.timestamps import localnow, to_local
from mealsync.utilities.validators import LogMealInput, TimelineSettingsInput

logger = logging.getLogger(__name__)


class MealLogService:
    def __init__(self, logs: SyncRepository, reminders: SyncRepository, settings: SyncRepository,
                 clock=localnow):
        self.logs = logs
        self.reminders = reminders
        self.settings = settings
        self.clock = clock

    def _local(self, dt: datetime) -> datetime:
        return to_local(dt, self.clock().tzinfo)

    def _reminder(self, reminder_id: Optional[str]):
        if not reminder_id:
            return None
        record = self.reminders.get_local(reminder_id)
        return record.payload if record is not None else None

    async def log_meal(self, reminder_id: Optional[str] = None, logged_at: Optional[datetime] = None,
                       notes: Optional[str] = None, energy_level: Optional[int] = None) -> MealLog:
        """Record an eaten meal.

        When logged from a known reminder, scheduled_for is that reminder's
        time on the day the meal was eaten.
        """
        data = LogMealInput(reminder_id=reminder_id, notes=notes, energy_level=energy_level)
        eaten = self._local(logged_at) if logged_at is not None else self.clock()
        scheduled_for = None
        reminder = self._reminder(data.reminder_id)
        if reminder is not None:
            scheduled_for = datetime.combine(eaten.date(), reminder.time_of_day, tzinfo=eaten.tzinfo)
        elif data.reminder_id:
            logger.info(f"Meal logged for unknown reminder {data.reminder_id}; no scheduled time")
        log = MealLog(id=str(uuid.uuid4()), logged_at=eaten, reminder_id=data.reminder_id,
                      scheduled_for=scheduled_for, notes=data.notes, energy_level=data.energy_level)
        saved = (await self.logs.write(log)).payload
        logger.info(f"Meal logged: {saved}")
        return saved

    async def delete_log(self, log_id: str) -> None:
        await self.logs.delete(log_id)

    def meal_logs(self, start: date, end: date) -> List[MealLog]:
        """Local logs eaten between start and end (inclusive, local dates), oldest first."""
        logs = [r.payload for r in self.logs.local_records(
            lambda log: start <= self._local(log.logged_at).date() <= end)]
        return sorted(logs, key=lambda log: log.logged_at)

    # ---------------- settings ----------------
    def get_settings(self) -> TimelineSettings:
        record = self.settings.get_local(TIMELINE_SETTINGS_ID)
        return record.payload if record is not None else TimelineSettings()

    async def update_settings(self, **changes) -> TimelineSettings:
        merged = {**self.get_settings().to_dict(), **changes}
        merged.pop("id", None)
        data = TimelineSettingsInput(**merged)
        settings = TimelineSettings(id=TIMELINE_SETTINGS_ID, **data.model_dump())
        return (await self.settings.write(settings)).payload

    # ---------------- timeline ----------------
    def _is_main_meal(self, log: MealLog) -> bool:
        reminder = self._reminder(log.reminder_id)
        return reminder is not None and reminder.name.strip().lower() in MAIN_MEAL_NAMES

    def timeline(self, start: date, end: date) -> Dict[str, Any]:
        """One entry per day from start to end inclusive, empty days included.

        The streak counts consecutive days, ending at `end`, on which both
        the meal and the snack goal were met.
        """
        if end < start:
            raise ValueError(f"Timeline end {end} is before start {start}")
        settings = self.get_settings()
        by_day: Dict[date, List[MealLog]] = {}
        for log in self.meal_logs(start, end):
            by_day.setdefault(self._local(log.logged_at).date(), []).append(log)

        days = []
        day = start
        while day <= end:
            logs = by_day.get(day, [])
            meals = sum(1 for log in logs if self._is_main_meal(log))
            snacks = len(logs) - meals
            entry = {
                "date": day.isoformat(),
                "meals_logged": meals,
                "snacks_logged": snacks,
                "total_count": len(logs),
                "meal_goal": settings.daily_meal_goal,
                "snack_goal": settings.daily_snack_goal,
                "met_goals": meals >= settings.daily_meal_goal and snacks >= settings.daily_snack_goal,
                "logs": [log.to_dict() for log in logs],
            }
            if settings.show_missed_meals:
                entry["missed_meals"] = max(0, settings.daily_meal_goal - meals)
            days.append(entry)
            day += timedelta(days=1)

        streak = None
        if settings.show_streak:
            streak = 0
            for entry in reversed(days):
                if not entry["met_goals"]:
                    break
                streak += 1
        return {"settings": settings.to_dict(), "days": days, "streak_days": streak}


__all__ = ['MealLogService']
