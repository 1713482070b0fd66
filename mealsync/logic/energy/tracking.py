"""Energy level tracking and favourite meals matched to how much energy is left."""
import logging
import uuid
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from mealsync.domain.EnergySnapshot import EnergySnapshot, FavoriteMeal
from mealsync.infra.Sync_Repository import SyncRepository
from mealsync.logic.reminders.schedule import weekday_of
from mealsync.utilities.constants import DEFAULT_ENERGY_LEVEL
from mealsync.utilities.timestamps import localnow
from mealsync.utilities.validators import RecordEnergyInput, FavoriteMealInput

logger = logging.getLogger(__name__)


def time_of_day_for(dt: datetime) -> str:
    hour = dt.hour
    if 5 <= hour < 12:
        return "morning"
    if 12 <= hour < 17:
        return "afternoon"
    if 17 <= hour < 22:
        return "evening"
    return "night"


def recommendation_reasoning(energy_level: int, time_of_day: str, meal_count: int) -> str:
    if meal_count == 0:
        return "No favorite meals saved yet. Add some meals you enjoy to get personalized recommendations!"
    if energy_level <= 2:
        energy_desc = "low energy"
    elif energy_level == 3:
        energy_desc = "moderate energy"
    else:
        energy_desc = "good energy"
    return (f"Showing meals appropriate for your {energy_desc} this {time_of_day}. "
            "These meals match your energy level and typical eating patterns.")


class EnergyTrackingService:
    def __init__(self, snapshots: SyncRepository, favorites: SyncRepository, clock=localnow):
        self.snapshots = snapshots
        self.favorites = favorites
        self.clock = clock

    # ---------------- snapshots ----------------
    async def record_energy(self, energy_level: int, context: Optional[str] = None) -> EnergySnapshot:
        data = RecordEnergyInput(energy_level=energy_level, context=context)
        now = self.clock()
        snapshot = EnergySnapshot(
            id=str(uuid.uuid4()),
            recorded_at=now,
            energy_level=data.energy_level,
            time_of_day=time_of_day_for(now),
            day_of_week=weekday_of(now),
            context=data.context,
        )
        return (await self.snapshots.write(snapshot)).payload

    async def energy_history(self, days: int = 30) -> List[EnergySnapshot]:
        """Snapshots of the last `days` days, newest first."""
        since = self.clock() - timedelta(days=days)
        records = await self.snapshots.list(params={"days": days}, predicate=lambda s: s.recorded_at >= since)
        return sorted((r.payload for r in records), key=lambda s: s.recorded_at, reverse=True)

    # ---------------- favourite meals ----------------
    async def save_favorite_meal(self, meal_name: str, energy_level: int, recipe_id: Optional[str] = None,
                                 typical_time_of_day: Optional[str] = None,
                                 notes: Optional[str] = None) -> FavoriteMeal:
        data = FavoriteMealInput(meal_name=meal_name, energy_level=energy_level, recipe_id=recipe_id,
                                 typical_time_of_day=typical_time_of_day, notes=notes)
        meal = FavoriteMeal(id=str(uuid.uuid4()), **data.model_dump())
        return (await self.favorites.write(meal)).payload

    async def _favorite(self, meal_id: str) -> FavoriteMeal:
        record = self.favorites.get_local(meal_id)
        if record is None:
            record = await self.favorites.read(meal_id)
        return record.payload

    async def update_favorite_meal(self, meal_id: str, **changes) -> FavoriteMeal:
        meal = await self._favorite(meal_id)
        merged = {
            "meal_name": meal.meal_name,
            "energy_level": meal.energy_level,
            "recipe_id": meal.recipe_id,
            "typical_time_of_day": meal.typical_time_of_day,
            "notes": meal.notes,
            **changes,
        }
        data = FavoriteMealInput(**merged)
        for key, value in data.model_dump().items():
            setattr(meal, key, value)
        return (await self.favorites.write(meal)).payload

    async def mark_meal_eaten(self, meal_id: str) -> FavoriteMeal:
        """Bump the meal's frequency score; offline bumps are replayed in order."""
        meal = await self._favorite(meal_id)
        meal.frequency_score += 1
        meal.last_eaten = self.clock()
        return (await self.favorites.write(meal)).payload

    async def delete_favorite_meal(self, meal_id: str) -> None:
        await self.favorites.delete(meal_id)

    def favorite_meals(self, max_energy: Optional[int] = None, time_of_day: Optional[str] = None,
                       max_results: Optional[int] = None) -> List[FavoriteMeal]:
        """Local favourites that suit the energy level and time of day, most eaten first."""
        def fits(meal: FavoriteMeal) -> bool:
            if max_energy is not None and meal.energy_level is not None and meal.energy_level > max_energy:
                return False
            if time_of_day is not None and meal.typical_time_of_day not in (None, time_of_day):
                return False
            return True

        meals = [r.payload for r in self.favorites.local_records(fits)]
        meals.sort(key=lambda m: m.frequency_score, reverse=True)
        return meals[:max_results] if max_results is not None else meals

    def recommendations(self, energy_level: Optional[int] = None) -> Dict[str, Any]:
        time_of_day = time_of_day_for(self.clock())
        meals = self.favorite_meals(max_energy=energy_level, time_of_day=time_of_day)
        current = energy_level if energy_level is not None else DEFAULT_ENERGY_LEVEL
        return {
            "meals": meals,
            "current_energy": current,
            "time_of_day": time_of_day,
            "reasoning": recommendation_reasoning(current, time_of_day, len(meals)),
        }


__all__ = ['EnergyTrackingService', 'time_of_day_for', 'recommendation_reasoning']
