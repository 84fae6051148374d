"""
Tests for Unit Breakdown Generator Module

Tests for palette/storyboard/unit_generator.py
"""

import pytest

from palette.core.exceptions import ContentError
from palette.storyboard.models import NarrativeUnit, UnitBreakdown
from palette.storyboard.prompts import (
    CAMERA_MINIMIZE,
    COLOR_MINIMIZE,
    TITLE_CARD_SYSTEM_PROMPT,
    UNIT_SYSTEM_PROMPT,
)
from palette.storyboard.unit_generator import (
    GenerationOptions,
    TitleCardOptions,
    UnitBreakdownGenerator,
    close_over_references,
    default_shot_count,
)

CHAPTER_TEXT = (
    "Chapter 1: The Meeting\n"
    "John walked into the warehouse at dusk. Sarah was already waiting by the crates.\n"
)

BREAKDOWN_RESPONSE = {
    "shots": [
        "Wide shot of @Warehouse at dusk.",
        "@john pushes the door open.",
        "   ",
        "@sarah watches from the crates as @Marcus hides.",
    ],
    "coverage_analysis": "  Covers the arrival.  ",
    "additional_opportunities": ["Insert on @marcus's watch", "Low angle on @john"],
}


@pytest.fixture
def unit():
    return NarrativeUnit("chapter-1", 1, "Chapter 1: The Meeting", 0, len(CHAPTER_TEXT), CHAPTER_TEXT, beat="setup")


@pytest.fixture
def breakdown():
    return UnitBreakdown(
        unit_id="chapter-1",
        shots=["@john opens the door.", "Wide shot of @warehouse."],
        references_used=["@john", "@warehouse"],
        coverage_analysis="Arrival only.",
    )


class TestCloseOverReferences:
    """Tests for close_over_references."""

    def test_known_handles_normalized(self, sample_references):
        text, used, unknown = close_over_references("@John enters @Warehouse.", sample_references)

        assert text == "@john enters @warehouse."
        assert used == {"@john", "@warehouse"}
        assert unknown == []

    def test_unknown_handles_lose_prefix(self, sample_references):
        text, used, unknown = close_over_references("@sarah hands @Marcus the key.", sample_references)

        assert text == "@sarah hands Marcus the key."
        assert used == {"@sarah"}
        assert unknown == ["@Marcus"]

    def test_email_addresses_untouched(self, sample_references):
        text, used, _ = close_over_references("A note from john@example.com.", sample_references)

        assert text == "A note from john@example.com."
        assert used == set()


class TestDefaultShotCount:
    def test_scales_with_words(self, unit):
        assert default_shot_count(unit) == 1

    def test_capped(self, unit):
        long_unit = NarrativeUnit("chapter-9", 9, "Long", 0, 0, "word " * 3000)

        assert default_shot_count(long_unit, maximum=12) == 12


class TestGenerate:
    """Tests for UnitBreakdownGenerator.generate."""

    @pytest.mark.asyncio
    async def test_breakdown_closed_over_references(self, make_generator, unit, sample_references):
        generator = make_generator([BREAKDOWN_RESPONSE])

        result = await UnitBreakdownGenerator(generator).generate(unit, sample_references)

        assert result.unit_id == "chapter-1"
        assert result.shots == [
            "Wide shot of @warehouse at dusk.",
            "@john pushes the door open.",
            "@sarah watches from the crates as Marcus hides.",
        ]
        assert result.references_used == ["@john", "@sarah", "@warehouse"]
        assert result.coverage_analysis == "Covers the arrival."
        assert result.additional_opportunities == ["Insert on marcus's watch", "Low angle on @john"]
        assert result.title_cards == []

    @pytest.mark.asyncio
    async def test_prompt_contents(self, make_generator, unit, sample_references):
        generator = make_generator([BREAKDOWN_RESPONSE])
        options = GenerationOptions(
            include_camera_style=False,
            target_shot_count=7,
            director_notes="Handheld throughout",
        )

        await UnitBreakdownGenerator(generator).generate(unit, sample_references, "Wes Anderson", options)

        call = generator.provider.calls[0]
        assert call["system_prompt"] == UNIT_SYSTEM_PROMPT
        assert "about 7 shots" in call["prompt"]
        assert "TITLE: Chapter 1: The Meeting (setup)" in call["prompt"]
        assert "STYLE: Wes Anderson" in call["prompt"]
        assert "DIRECTOR NOTES: Handheld throughout" in call["prompt"]
        assert "@john (John)" in call["prompt"]
        assert CAMERA_MINIMIZE in call["prompt"]
        assert COLOR_MINIMIZE not in call["prompt"]

    @pytest.mark.asyncio
    async def test_unusable_response_is_content_error(self, make_generator, unit, sample_references):
        generator = make_generator(["I'd rather not."])

        with pytest.raises(ContentError) as exc_info:
            await UnitBreakdownGenerator(generator).generate(unit, sample_references)

        assert exc_info.value.unit_id == "chapter-1"

    @pytest.mark.asyncio
    async def test_empty_shot_list_is_content_error(self, make_generator, unit, sample_references):
        generator = make_generator([{"shots": ["  "], "coverage_analysis": "Nothing."}])

        with pytest.raises(ContentError):
            await UnitBreakdownGenerator(generator).generate(unit, sample_references)

    @pytest.mark.asyncio
    async def test_shots_trimmed_to_maximum(self, make_generator, unit, sample_references):
        generator = make_generator([BREAKDOWN_RESPONSE])

        result = await UnitBreakdownGenerator(generator, max_shots=2).generate(unit, sample_references)

        assert len(result.shots) == 2
        assert result.references_used == ["@john", "@warehouse"]

    @pytest.mark.asyncio
    async def test_regeneration_builds_fresh_record(self, make_generator, unit, sample_references):
        generator = make_generator([BREAKDOWN_RESPONSE, BREAKDOWN_RESPONSE])
        unit_generator = UnitBreakdownGenerator(generator)

        first = await unit_generator.generate(unit, sample_references)
        second = await unit_generator.generate(unit, sample_references)

        assert first.shots == second.shots
        assert first is not second
        assert first.shots is not second.shots


class TestTitleCards:
    """Title cards ride along with the breakdown."""

    @staticmethod
    def handler(cards_response):
        def _handle(prompt, system_prompt):
            if system_prompt == TITLE_CARD_SYSTEM_PROMPT:
                return cards_response
            return BREAKDOWN_RESPONSE
        return _handle

    @pytest.mark.asyncio
    async def test_cards_generated(self, make_generator, unit, sample_references):
        cards = {"title_cards": [
            {"style_label": "Noir", "description": "White serif on black."},
            {"style_label": "Neon", "description": "Flickering pink tube letters."},
            {"style_label": "Type", "description": "Typewriter reveal."},
        ]}
        generator = make_generator(handler=self.handler(cards))
        options = GenerationOptions(title_cards=TitleCardOptions(enabled=True, format="roman-numerals", count=2))

        result = await UnitBreakdownGenerator(generator).generate(unit, sample_references, options=options)

        assert [card.card_id for card in result.title_cards] == ["chapter-1-card-1", "chapter-1-card-2"]
        assert result.title_cards[0].style_label == "Noir"
        card_prompt = generator.provider.calls[-1]["prompt"]
        assert "roman numeral" in card_prompt

    @pytest.mark.asyncio
    async def test_unusable_cards_do_not_fail_unit(self, make_generator, unit, sample_references):
        generator = make_generator(handler=self.handler("no cards today"))
        options = GenerationOptions(title_cards=TitleCardOptions(enabled=True))

        result = await UnitBreakdownGenerator(generator).generate(unit, sample_references, options=options)

        assert result.title_cards == []
        assert len(result.shots) == 3


class TestAddShots:
    """Tests for UnitBreakdownGenerator.add_shots."""

    @pytest.mark.asyncio
    async def test_new_shots_appended(self, make_generator, unit, breakdown, sample_references):
        generator = make_generator([{
            "new_shots": ["@JOHN opens the door.", "Close on @sarah.", "Close on @sarah.", "Rain on glass."],
        }])

        updated = await UnitBreakdownGenerator(generator).add_shots(
            unit, breakdown, sample_references, categories=["insert"], custom_request="More rain"
        )

        assert updated.added_shots == ["Close on @sarah.", "Rain on glass."]
        assert updated.all_shots[:2] == breakdown.shots
        assert updated.references_used == ["@john", "@sarah", "@warehouse"]
        assert updated.coverage_analysis == "Arrival only."
        prompt = generator.provider.calls[0]["prompt"]
        assert "SHOT CATEGORIES: insert" in prompt
        assert "- @john opens the door." in prompt

    @pytest.mark.asyncio
    async def test_original_breakdown_untouched(self, make_generator, unit, breakdown, sample_references):
        generator = make_generator([{"new_shots": ["Rain on glass."]}])

        await UnitBreakdownGenerator(generator).add_shots(unit, breakdown, sample_references)

        assert breakdown.added_shots == []
        assert breakdown.references_used == ["@john", "@warehouse"]

    @pytest.mark.asyncio
    async def test_count_limited_by_remaining_allowance(self, make_generator, unit, breakdown, sample_references):
        breakdown.added_shots = ["Extra one.", "Extra two."]
        generator = make_generator([{"new_shots": ["Shot A.", "Shot B.", "Shot C."]}])

        updated = await UnitBreakdownGenerator(generator, max_additional=3).add_shots(
            unit, breakdown, sample_references, count=5
        )

        assert updated.added_shots == ["Extra one.", "Extra two.", "Shot A."]

    @pytest.mark.asyncio
    async def test_limit_reached(self, make_generator, unit, breakdown, sample_references):
        breakdown.added_shots = ["One.", "Two."]
        generator = make_generator([])

        with pytest.raises(ContentError):
            await UnitBreakdownGenerator(generator, max_additional=2).add_shots(unit, breakdown, sample_references)

        assert generator.provider.calls == []

    @pytest.mark.asyncio
    async def test_only_duplicates_is_content_error(self, make_generator, unit, breakdown, sample_references):
        generator = make_generator([{"new_shots": ["Wide shot of @warehouse."]}])

        with pytest.raises(ContentError):
            await UnitBreakdownGenerator(generator).add_shots(unit, breakdown, sample_references)
