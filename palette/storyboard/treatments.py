"""
Music-video treatments.

Before section breakdowns, a lyrics run can ask for a few competing
treatments (concept, visual theme, performance/narrative balance, hook
staging). The first one is threaded into every section prompt.
"""

from typing import List

from pydantic import BaseModel, Field

from palette.core.logging_config import get_logger
from .director_style import build_director_style
from .models import Treatment
from .prompts import TREATMENT_SYSTEM_PROMPT, build_treatment_prompt

logger = get_logger("storyboard.treatments")

TREATMENT_COUNT = 3


class TreatmentItem(BaseModel):
    name: str
    concept: str
    visual_theme: str = ""
    performance_ratio: float = Field(default=0.5, ge=0.0, le=1.0)
    hook_strategy: str = ""


class TreatmentSchema(BaseModel):
    treatments: List[TreatmentItem] = Field(default_factory=list)


class TreatmentGenerator:
    """Pitches music-video treatments for a lyrics document."""

    def __init__(self, generator, count: int = TREATMENT_COUNT):
        self.generator = generator
        self.count = count

    async def generate(self, document, units, style=None, artist: str = "") -> List[Treatment]:
        result = await self.generator.generate(
            TreatmentSchema,
            build_treatment_prompt(document, units, build_director_style(style), artist, self.count),
            system_prompt=TREATMENT_SYSTEM_PROMPT,
            defaults={"treatments": []},
            temperature=0.9,
        )
        if result.from_defaults:
            logger.warning("Treatment generation degraded; continuing without a treatment")

        treatments = [
            Treatment(
                treatment_id=f"treatment-{i}",
                name=item.name,
                concept=item.concept,
                visual_theme=item.visual_theme,
                performance_ratio=item.performance_ratio,
                hook_strategy=item.hook_strategy,
            )
            for i, item in enumerate(result.value.treatments[:self.count], start=1)
        ]
        logger.info(f"Generated {len(treatments)} treatments")
        return treatments
