"""Meal logging entities: one eaten meal, and the goals the eating timeline is drawn against."""
from datetime import datetime
from typing import Optional

from mealsync.utilities.constants import (
    MEAL_LOGS, TIMELINE_SETTINGS, TIMELINE_SETTINGS_ID, DEFAULT_DAILY_MEAL_GOAL, DEFAULT_DAILY_SNACK_GOAL
)
from mealsync.utilities.timestamps import to_iso, from_iso


class MealLog:
    collection = MEAL_LOGS

    def __init__(self, id: str, logged_at: datetime, reminder_id: Optional[str] = None,
                 scheduled_for: Optional[datetime] = None, notes: Optional[str] = None,
                 energy_level: Optional[int] = None):
        self.id = id
        self.logged_at = logged_at
        # None when the meal was logged by hand rather than from a reminder
        self.reminder_id = reminder_id
        self.scheduled_for = scheduled_for
        self.notes = notes
        self.energy_level = energy_level

    def __str__(self) -> str:
        source = f" (reminder {self.reminder_id})" if self.reminder_id else ""
        return f"Meal at {to_iso(self.logged_at)}{source}"

    __repr__ = __str__

    @staticmethod
    def from_dict(data):
        d = dict(data)
        energy = d.get("energy_level")
        return MealLog(
            id=d["id"],
            logged_at=from_iso(d["logged_at"]),
            reminder_id=d.get("reminder_id"),
            scheduled_for=from_iso(d.get("scheduled_for")),
            notes=d.get("notes"),
            energy_level=int(energy) if energy is not None else None,
        )

    def to_dict(self):
        return {
            "id": self.id,
            "logged_at": to_iso(self.logged_at),
            "reminder_id": self.reminder_id,
            "scheduled_for": to_iso(self.scheduled_for),
            "notes": self.notes,
            "energy_level": self.energy_level,
        }


class TimelineSettings:
    """Single per-user record; show_missed_meals is off unless the user asks for it."""
    collection = TIMELINE_SETTINGS

    def __init__(self, id: str = TIMELINE_SETTINGS_ID, daily_meal_goal: int = DEFAULT_DAILY_MEAL_GOAL,
                 daily_snack_goal: int = DEFAULT_DAILY_SNACK_GOAL, show_streak: bool = True,
                 show_missed_meals: bool = False):
        self.id = id
        self.daily_meal_goal = daily_meal_goal
        self.daily_snack_goal = daily_snack_goal
        self.show_streak = show_streak
        self.show_missed_meals = show_missed_meals

    def __str__(self) -> str:
        return f"Timeline goals: {self.daily_meal_goal} meals, {self.daily_snack_goal} snacks"

    __repr__ = __str__

    @staticmethod
    def from_dict(data):
        d = dict(data)
        return TimelineSettings(
            id=d.get("id", TIMELINE_SETTINGS_ID),
            daily_meal_goal=int(d.get("daily_meal_goal", DEFAULT_DAILY_MEAL_GOAL)),
            daily_snack_goal=int(d.get("daily_snack_goal", DEFAULT_DAILY_SNACK_GOAL)),
            show_streak=bool(d.get("show_streak", True)),
            show_missed_meals=bool(d.get("show_missed_meals", False)),
        )

    def to_dict(self):
        return {
            "id": self.id,
            "daily_meal_goal": self.daily_meal_goal,
            "daily_snack_goal": self.daily_snack_goal,
            "show_streak": self.show_streak,
            "show_missed_meals": self.show_missed_meals,
        }
