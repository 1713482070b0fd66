"""MealReminder domain entity: a named time of day repeated on a set of weekdays (0 = Sunday)."""
from datetime import time
from typing import Iterable, Optional

from mealsync.utilities.constants import MEAL_REMINDERS, ALL_DAYS, DAY_NAMES
from mealsync.utilities.config import DEFAULT_PRE_ALERT_MINUTES
from mealsync.utilities.validators import parse_time_of_day


class MealReminder:
    collection = MEAL_REMINDERS

    def __init__(self, id: str, name: str, scheduled_time: str, pre_alert_minutes: int = DEFAULT_PRE_ALERT_MINUTES,
                 enabled: bool = True, days_of_week: Optional[Iterable[int]] = None):
        self.id = id
        self.name = name
        self.scheduled_time = scheduled_time
        self.pre_alert_minutes = pre_alert_minutes
        self.enabled = enabled
        self.days_of_week = set(ALL_DAYS if days_of_week is None else days_of_week)

    @property
    def time_of_day(self) -> time:
        return parse_time_of_day(self.scheduled_time)

    def __str__(self) -> str:
        days = ", ".join(DAY_NAMES[d][:3] for d in sorted(self.days_of_week))
        state = "" if self.enabled else " (disabled)"
        return f"{self.name} at {self.scheduled_time} on {days}{state}"

    __repr__ = __str__

    @staticmethod
    def from_dict(data):
        d = dict(data)
        return MealReminder(
            id=d["id"],
            name=d.get("name", ""),
            scheduled_time=d["scheduled_time"],
            pre_alert_minutes=int(d.get("pre_alert_minutes", DEFAULT_PRE_ALERT_MINUTES)),
            enabled=bool(d.get("enabled", True)),
            days_of_week=d.get("days_of_week"),
        )

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "scheduled_time": self.scheduled_time,
            "pre_alert_minutes": self.pre_alert_minutes,
            "enabled": self.enabled,
            "days_of_week": sorted(self.days_of_week),
        }
