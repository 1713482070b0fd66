"""Energy tracking entities: a point-in-time energy level and the favorite meals matched against it."""
from datetime import datetime
from typing import Optional

from mealsync.utilities.constants import ENERGY_SNAPSHOTS, FAVORITE_MEALS
from mealsync.utilities.timestamps import to_iso, from_iso


class EnergySnapshot:
    collection = ENERGY_SNAPSHOTS

    def __init__(self, id: str, recorded_at: datetime, energy_level: int, time_of_day: str,
                 day_of_week: int, context: Optional[str] = None):
        self.id = id
        self.recorded_at = recorded_at
        self.energy_level = energy_level
        self.time_of_day = time_of_day
        self.day_of_week = day_of_week
        self.context = context

    def __str__(self) -> str:
        return f"Energy {self.energy_level} ({self.time_of_day}) at {to_iso(self.recorded_at)}"

    __repr__ = __str__

    @staticmethod
    def from_dict(data):
        d = dict(data)
        return EnergySnapshot(
            id=d["id"],
            recorded_at=from_iso(d["recorded_at"]),
            energy_level=int(d["energy_level"]),
            time_of_day=d["time_of_day"],
            day_of_week=int(d["day_of_week"]),
            context=d.get("context"),
        )

    def to_dict(self):
        return {
            "id": self.id,
            "recorded_at": to_iso(self.recorded_at),
            "energy_level": self.energy_level,
            "time_of_day": self.time_of_day,
            "day_of_week": self.day_of_week,
            "context": self.context,
        }


class FavoriteMeal:
    collection = FAVORITE_MEALS

    def __init__(self, id: str, meal_name: str, energy_level: int, recipe_id: Optional[str] = None,
                 typical_time_of_day: Optional[str] = None, frequency_score: int = 0,
                 last_eaten: Optional[datetime] = None, notes: Optional[str] = None):
        self.id = id
        self.meal_name = meal_name
        self.energy_level = energy_level
        self.recipe_id = recipe_id
        self.typical_time_of_day = typical_time_of_day
        self.frequency_score = frequency_score
        self.last_eaten = last_eaten
        self.notes = notes

    def __str__(self) -> str:
        return f"{self.meal_name} - energy {self.energy_level} - eaten {self.frequency_score}x"

    __repr__ = __str__

    @staticmethod
    def from_dict(data):
        d = dict(data)
        return FavoriteMeal(
            id=d["id"],
            meal_name=d["meal_name"],
            energy_level=int(d["energy_level"]),
            recipe_id=d.get("recipe_id"),
            typical_time_of_day=d.get("typical_time_of_day"),
            frequency_score=int(d.get("frequency_score") or 0),
            last_eaten=from_iso(d.get("last_eaten")),
            notes=d.get("notes"),
        )

    def to_dict(self):
        return {
            "id": self.id,
            "meal_name": self.meal_name,
            "energy_level": self.energy_level,
            "recipe_id": self.recipe_id,
            "typical_time_of_day": self.typical_time_of_day,
            "frequency_score": self.frequency_score,
            "last_eaten": to_iso(self.last_eaten),
            "notes": self.notes,
        }
