"""
Unit Breakdown Generator

Produces the shot list, coverage analysis and additional shot ideas for
one NarrativeUnit. Every @handle in the returned shots is checked
against the run's ReferenceSet: known handles are normalized, unknown
ones lose their "@" and stay as plain words.
"""

import math
import re
from dataclasses import dataclass, field, replace
from typing import List, Optional, Set, Tuple

from pydantic import BaseModel, Field

from palette.core.constants import (
    HANDLE_TOKEN_PATTERN,
    MAX_ADDITIONAL_SHOTS,
    MAX_SHOTS_PER_UNIT,
    WORDS_PER_SHOT,
)
from palette.core.exceptions import ContentError
from palette.core.logging_config import get_logger
from palette.references.handles import normalize_handle
from palette.references.reference_set import ReferenceSet
from .director_style import build_director_style
from .models import NarrativeUnit, TitleCard, Treatment, UnitBreakdown, timestamp_now
from .prompts import (
    ADDITIONAL_SHOTS_SYSTEM_PROMPT,
    TITLE_CARD_SYSTEM_PROMPT,
    UNIT_SYSTEM_PROMPT,
    build_additional_shots_prompt,
    build_title_card_prompt,
    build_unit_prompt,
)

logger = get_logger("storyboard.unit_generator")

_HANDLE_TOKEN_RE = re.compile(HANDLE_TOKEN_PATTERN)


# =============================================================================
# SCHEMAS
# =============================================================================

class BreakdownSchema(BaseModel):
    shots: List[str]
    coverage_analysis: str
    additional_opportunities: List[str] = Field(default_factory=list)


class AdditionalShotsSchema(BaseModel):
    new_shots: List[str]
    coverage_analysis: str = ""


class TitleCardItem(BaseModel):
    style_label: str
    description: str


class TitleCardSchema(BaseModel):
    title_cards: List[TitleCardItem] = Field(default_factory=list)


BREAKDOWN_DEFAULTS = {"shots": [], "coverage_analysis": "", "additional_opportunities": []}
ADDITIONAL_DEFAULTS = {"new_shots": [], "coverage_analysis": ""}


# =============================================================================
# OPTIONS
# =============================================================================

@dataclass
class TitleCardOptions:
    """Title card generation settings."""
    enabled: bool = False
    format: str = "full"  # full | name-only | roman-numerals
    approaches: List[str] = field(default_factory=list)
    count: int = 3


@dataclass
class GenerationOptions:
    """Per-call generation options."""
    include_camera_style: bool = True
    include_color_palette: bool = True
    target_shot_count: Optional[int] = None
    director_notes: str = ""
    title_cards: TitleCardOptions = field(default_factory=TitleCardOptions)
    treatment: Optional[Treatment] = None
    is_lyrics: bool = False


# =============================================================================
# REFERENCE CLOSURE
# =============================================================================

def close_over_references(shot: str, references: ReferenceSet) -> Tuple[str, Set[str], List[str]]:
    """
    Rewrite @tokens in a shot so only known handles remain.

    Returns:
        (rewritten shot, handles used, unknown tokens)
    """
    used: Set[str] = set()
    unknown: List[str] = []

    def _replace(match: re.Match) -> str:
        token = match.group(0)
        handle = normalize_handle(token[1:])
        if handle in references:
            used.add(handle)
            return handle
        unknown.append(token)
        return token[1:]

    return _HANDLE_TOKEN_RE.sub(_replace, shot), used, unknown


def _clean_shots(shots: List[str], references: ReferenceSet, unit_id: str) -> Tuple[List[str], List[str]]:
    cleaned: List[str] = []
    used: Set[str] = set()
    unknown: List[str] = []
    for shot in shots:
        text = shot.strip()
        if not text:
            continue
        text, shot_used, shot_unknown = close_over_references(text, references)
        cleaned.append(text)
        used |= shot_used
        unknown += shot_unknown
    if unknown:
        logger.warning(f"{unit_id}: stripped unknown handles {sorted(set(unknown))}")
    ordered_used = [handle for handle in references.handles() if handle in used]
    return cleaned, ordered_used


def default_shot_count(unit: NarrativeUnit, maximum: int = MAX_SHOTS_PER_UNIT) -> int:
    """One shot per WORDS_PER_SHOT words, within [1, maximum]."""
    return max(1, min(maximum, math.ceil(unit.word_count / WORDS_PER_SHOT)))


class UnitBreakdownGenerator:
    """
    Generates UnitBreakdowns through a StructuredGenerator.

    Example:
        generator = UnitBreakdownGenerator(StructuredGenerator(provider))
        breakdown = await generator.generate(unit, references, style="Wes Anderson")
    """

    def __init__(
        self,
        generator,
        max_shots: int = MAX_SHOTS_PER_UNIT,
        max_additional: int = MAX_ADDITIONAL_SHOTS
    ):
        self.generator = generator
        self.max_shots = max_shots
        self.max_additional = max_additional

    def _shot_count(self, unit: NarrativeUnit, options: GenerationOptions) -> int:
        if options.target_shot_count:
            return max(1, min(self.max_shots, options.target_shot_count))
        return default_shot_count(unit, self.max_shots)

    async def generate(
        self,
        unit: NarrativeUnit,
        references: ReferenceSet,
        style=None,
        options: GenerationOptions = None
    ) -> UnitBreakdown:
        """
        Build a complete breakdown for `unit`.

        Raises:
            ContentError: the response was unusable or had no shots
            LLMError: transport failure after all retries
        """
        options = options or GenerationOptions()
        style_profile = build_director_style(
            style, options.include_camera_style, options.include_color_palette
        )

        prompt = build_unit_prompt(
            unit,
            references.to_prompt_block(),
            style_profile,
            self._shot_count(unit, options),
            self.max_additional,
            options.is_lyrics,
            director_notes=options.director_notes,
            treatment=options.treatment,
            include_camera_style=options.include_camera_style,
            include_color_palette=options.include_color_palette,
        )

        result = await self.generator.generate(
            BreakdownSchema,
            prompt,
            system_prompt=UNIT_SYSTEM_PROMPT,
            defaults=BREAKDOWN_DEFAULTS,
        )
        if result.from_defaults:
            raise ContentError(unit.unit_id, "generator response did not match the breakdown shape")

        shots, used = _clean_shots(result.value.shots, references, unit.unit_id)
        if not shots:
            raise ContentError(unit.unit_id, "generator returned an empty shot list")
        if len(shots) > self.max_shots:
            logger.info(f"{unit.unit_id}: trimming {len(shots)} shots to {self.max_shots}")
            shots = shots[:self.max_shots]
            _, used = _clean_shots(shots, references, unit.unit_id)

        opportunities, _ = _clean_shots(result.value.additional_opportunities, references, unit.unit_id)

        title_cards: List[TitleCard] = []
        if options.title_cards.enabled:
            title_cards = await self.generate_title_cards(unit, options.title_cards, style_profile)

        logger.info(f"{unit.unit_id}: {len(shots)} shots, {len(used)} references")
        return UnitBreakdown(
            unit_id=unit.unit_id,
            shots=shots,
            references_used=used,
            coverage_analysis=result.value.coverage_analysis.strip(),
            additional_opportunities=opportunities[:self.max_additional],
            title_cards=title_cards,
        )

    async def generate_title_cards(
        self,
        unit: NarrativeUnit,
        card_options: TitleCardOptions,
        style_profile: str
    ) -> List[TitleCard]:
        """Title cards are optional garnish; a degraded response yields none."""
        result = await self.generator.generate(
            TitleCardSchema,
            build_title_card_prompt(
                unit, card_options.count, card_options.format, card_options.approaches, style_profile
            ),
            system_prompt=TITLE_CARD_SYSTEM_PROMPT,
            defaults={"title_cards": []},
        )
        return [
            TitleCard(f"{unit.unit_id}-card-{i}", item.style_label, item.description)
            for i, item in enumerate(result.value.title_cards[:card_options.count], start=1)
        ]

    async def add_shots(
        self,
        unit: NarrativeUnit,
        breakdown: UnitBreakdown,
        references: ReferenceSet,
        categories: List[str] = None,
        custom_request: str = "",
        count: int = 5,
        style=None,
        options: GenerationOptions = None
    ) -> UnitBreakdown:
        """
        Ask for more shots for a unit that already has a breakdown.

        The result is a new record; `breakdown` is left untouched. Added
        shots never exceed max_additional in total.

        Raises:
            ContentError: the limit is reached or no new shots came back
        """
        options = options or GenerationOptions()
        remaining = self.max_additional - len(breakdown.added_shots)
        if remaining <= 0:
            raise ContentError(unit.unit_id, f"already has {self.max_additional} added shots")
        count = max(1, min(count, remaining))

        style_profile = build_director_style(
            style, options.include_camera_style, options.include_color_palette
        )
        prompt = build_additional_shots_prompt(
            unit,
            breakdown.all_shots,
            references.to_prompt_block(),
            style_profile,
            categories or [],
            custom_request,
            count,
            include_camera_style=options.include_camera_style,
            include_color_palette=options.include_color_palette,
        )

        result = await self.generator.generate(
            AdditionalShotsSchema,
            prompt,
            system_prompt=ADDITIONAL_SHOTS_SYSTEM_PROMPT,
            defaults=ADDITIONAL_DEFAULTS,
        )
        if result.from_defaults:
            raise ContentError(unit.unit_id, "generator response did not match the added-shots shape")

        new_shots, _ = _clean_shots(result.value.new_shots, references, unit.unit_id)
        existing = {shot.casefold() for shot in breakdown.all_shots}
        fresh = []
        for shot in new_shots:
            if shot.casefold() not in existing:
                existing.add(shot.casefold())
                fresh.append(shot)
        fresh = fresh[:count]
        if not fresh:
            raise ContentError(unit.unit_id, "generator returned no new shots")

        added = breakdown.added_shots + fresh
        _, used = _clean_shots(breakdown.shots + added, references, unit.unit_id)
        logger.info(f"{unit.unit_id}: added {len(fresh)} shots ({len(added)}/{self.max_additional})")

        return replace(
            breakdown,
            added_shots=added,
            references_used=used,
            coverage_analysis=result.value.coverage_analysis.strip() or breakdown.coverage_analysis,
            shots=list(breakdown.shots),
            title_cards=list(breakdown.title_cards),
            media=list(breakdown.media),
            generated_at=timestamp_now(),
        )
