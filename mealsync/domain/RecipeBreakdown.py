"""RecipeBreakdown domain entity: AI-generated step list that seeds a cooking session."""
from datetime import datetime
from typing import List, Optional, Dict, Any

from mealsync.utilities.constants import RECIPE_BREAKDOWNS
from mealsync.utilities.timestamps import to_iso, from_iso


class BreakdownStep:
    def __init__(self, text: str, estimated_minutes: Optional[int] = None):
        self.text = text
        self.estimated_minutes = estimated_minutes

    def __str__(self) -> str:
        if self.estimated_minutes:
            return f"{self.text} (~{self.estimated_minutes} min)"
        return self.text

    __repr__ = __str__

    @staticmethod
    def from_dict(data):
        if isinstance(data, str):
            return BreakdownStep(data)
        minutes = data.get("estimated_minutes")
        return BreakdownStep(str(data.get("text", "")).strip(), int(minutes) if minutes is not None else None)

    def to_dict(self):
        return {"text": self.text, "estimated_minutes": self.estimated_minutes}


class RecipeBreakdown:
    collection = RECIPE_BREAKDOWNS

    def __init__(self, id: str, recipe_id: str, steps: Optional[List[BreakdownStep]] = None,
                 granularity_level: int = 3, energy_level: Optional[int] = None,
                 ai_provider: Optional[str] = None, ai_model: Optional[str] = None,
                 generated_at: Optional[datetime] = None):
        self.id = id
        self.recipe_id = recipe_id
        self.steps = steps[:] if steps else []
        self.granularity_level = granularity_level
        self.energy_level = energy_level
        self.ai_provider = ai_provider
        self.ai_model = ai_model
        self.generated_at = generated_at

    @property
    def total_steps(self) -> int:
        return len(self.steps)

    def __str__(self) -> str:
        return f"Breakdown {self.id} for {self.recipe_id} - {self.total_steps} steps"

    __repr__ = __str__

    @staticmethod
    def from_dict(data: Dict[str, Any]):
        d = dict(data)
        return RecipeBreakdown(
            id=d["id"],
            recipe_id=d["recipe_id"],
            steps=[BreakdownStep.from_dict(s) for s in d.get("steps", [])],
            granularity_level=int(d.get("granularity_level", 3)),
            energy_level=d.get("energy_level"),
            ai_provider=d.get("ai_provider"),
            ai_model=d.get("ai_model"),
            generated_at=from_iso(d.get("generated_at")),
        )

    def to_dict(self):
        return {
            "id": self.id,
            "recipe_id": self.recipe_id,
            "steps": [s.to_dict() for s in self.steps],
            "granularity_level": self.granularity_level,
            "energy_level": self.energy_level,
            "ai_provider": self.ai_provider,
            "ai_model": self.ai_model,
            "generated_at": to_iso(self.generated_at),
        }
