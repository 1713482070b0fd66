"""Recipe breakdown seeding: ask an AI provider for small steps, store the result like any other record."""
import asyncio
import logging
import uuid
from typing import Optional, List

from mealsync.api.api_ai import AIProvider, parse_json_output
from mealsync.domain.RecipeBreakdown import RecipeBreakdown, BreakdownStep
from mealsync.infra.Sync_Repository import SyncRepository
from mealsync.utilities.constants import (
    BREAKDOWN_SYSTEM_MESSAGE, BREAKDOWN_PROMPT_TEMPLATE, BREAKDOWN_JSON_FORMAT, DEFAULT_ENERGY_LEVEL
)
from mealsync.utilities.timestamps import utcnow

logger = logging.getLogger(__name__)


class BreakdownGenerationError(ValueError):
    """The provider answered with something that is not a usable step list."""


def parse_steps(text: str) -> List[BreakdownStep]:
    parsed = parse_json_output(text)
    if isinstance(parsed, dict):
        parsed = parsed.get("steps")
    if not isinstance(parsed, list):
        raise BreakdownGenerationError("AI output does not contain a step list")
    steps = [BreakdownStep.from_dict(item) for item in parsed if isinstance(item, (dict, str))]
    steps = [s for s in steps if s.text]
    if not steps:
        raise BreakdownGenerationError("AI output contains no steps")
    return steps


class BreakdownService:
    def __init__(self, repository: SyncRepository, provider: AIProvider, clock=utcnow):
        self.repository = repository
        self.provider = provider
        self.clock = clock

    async def generate(self, recipe_id: str, recipe_text: str, granularity_level: int = 3,
                       energy_level: Optional[int] = None) -> RecipeBreakdown:
        prompt = BREAKDOWN_PROMPT_TEMPLATE.format(
            granularity=granularity_level,
            energy=energy_level or DEFAULT_ENERGY_LEVEL,
            recipe=recipe_text,
        ) + BREAKDOWN_JSON_FORMAT
        # Provider SDKs block; keep the event loop free.
        text = await asyncio.to_thread(self.provider.generate, prompt, BREAKDOWN_SYSTEM_MESSAGE)
        steps = parse_steps(text)
        breakdown = RecipeBreakdown(
            id=str(uuid.uuid4()),
            recipe_id=recipe_id,
            steps=steps,
            granularity_level=granularity_level,
            energy_level=energy_level,
            ai_provider=getattr(self.provider, "name", None),
            ai_model=getattr(self.provider, "model", None),
            generated_at=self.clock(),
        )
        record = await self.repository.write(breakdown)
        logger.info(f"Generated {breakdown.total_steps}-step breakdown {breakdown.id} for recipe {recipe_id}")
        return record.payload

    async def get(self, breakdown_id: str) -> RecipeBreakdown:
        return (await self.repository.read(breakdown_id)).payload

    def for_recipe(self, recipe_id: str, granularity_level: Optional[int] = None,
                   energy_level: Optional[int] = None) -> Optional[RecipeBreakdown]:
        """Best local match: exact granularity/energy if present, else the first for the recipe."""
        candidates = [r.payload for r in self.repository.local_records(lambda b: b.recipe_id == recipe_id)]
        for b in candidates:
            if ((granularity_level is None or b.granularity_level == granularity_level)
                    and (energy_level is None or b.energy_level == energy_level)):
                return b
        return candidates[0] if candidates else None
