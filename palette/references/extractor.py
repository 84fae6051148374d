"""
Reference Extractor

Asks the model for the characters, locations, props and wardrobe that
are explicitly present in a document, then keeps only entities whose
name actually occurs in the text.
"""

import re
import unicodedata
from dataclasses import dataclass, field
from typing import List

from pydantic import BaseModel, Field

from palette.core.constants import ReferenceKind
from palette.core.logging_config import get_logger
from .reference_set import ReferenceSet

logger = get_logger("references.extractor")

# Tokens too generic to ground an entity on their own
STOPWORDS = {
    "the", "and", "for", "with", "from", "into", "onto", "over", "under",
    "his", "her", "their", "its", "our", "your", "this", "that", "these",
    "those", "old", "new", "big", "small", "little", "young", "man", "woman",
    "mr", "mrs", "ms", "dr", "sir", "lady", "one", "two",
}

_LEADING_ARTICLE = re.compile(r"^(?:the|a|an)\s+", re.IGNORECASE)
_TOKEN_RE = re.compile(r"[a-z0-9]+")

EXTRACTION_SYSTEM_PROMPT = """You are a script supervisor preparing a shot breakdown.
List only entities that are explicitly named or described in the text.
Never invent characters, places, objects or costumes that do not appear in the text.
Use the entity's name exactly as written in the text."""


class ExtractedEntity(BaseModel):
    name: str
    description: str = ""


class ExtractionSchema(BaseModel):
    characters: List[ExtractedEntity] = Field(default_factory=list)
    locations: List[ExtractedEntity] = Field(default_factory=list)
    props: List[ExtractedEntity] = Field(default_factory=list)
    wardrobe: List[ExtractedEntity] = Field(default_factory=list)
    themes: List[str] = Field(default_factory=list)


EMPTY_EXTRACTION = {"characters": [], "locations": [], "props": [], "wardrobe": [], "themes": []}

_SCHEMA_FIELDS = {
    ReferenceKind.CHARACTER: "characters",
    ReferenceKind.LOCATION: "locations",
    ReferenceKind.PROP: "props",
    ReferenceKind.WARDROBE: "wardrobe",
}


@dataclass
class ExtractionResult:
    """References found in a document."""
    references: ReferenceSet
    degraded: bool = False
    themes: List[str] = field(default_factory=list)
    dropped: List[str] = field(default_factory=list)


def _fold(text: str) -> str:
    return unicodedata.normalize("NFKD", text).encode("ascii", "ignore").decode("ascii").lower()


def _contains_word(term: str, text: str) -> bool:
    pattern = r"(?<![a-z0-9])" + re.escape(term) + r"(?![a-z0-9])"
    return re.search(pattern, text) is not None


def is_grounded(name: str, text: str) -> bool:
    """
    Check an entity name against the source text.

    Either the whole name occurs as a whole word, or every significant
    token of it (three or more characters, not a stopword) does. A name
    with no significant tokens must match whole.
    """
    folded_name = _fold(name).strip()
    folded_text = _fold(text)
    if not folded_name:
        return False
    if _contains_word(folded_name, folded_text):
        return True
    significant = [
        token for token in _TOKEN_RE.findall(folded_name)
        if len(token) >= 3 and token not in STOPWORDS
    ]
    return bool(significant) and all(_contains_word(token, folded_text) for token in significant)


def build_extraction_prompt(text: str, style_hint: str = "", director_notes: str = "") -> str:
    sections = [
        "Identify the recurring entities in the text below.",
        "- characters: people or creatures who appear or are addressed",
        "- locations: places where action happens",
        "- props: notable objects that are handled or focused on",
        "- wardrobe: distinctive clothing or costume pieces",
        "- themes: a few words naming the main themes",
        "Give each entity a one-sentence visual description.",
    ]
    if style_hint:
        sections.append(f"Phrase visual descriptions to suit this style: {style_hint}")
    if director_notes:
        sections.append(f"Director notes: {director_notes}")
    sections.append(f"\nTEXT:\n{text}")
    return "\n".join(sections)


class ReferenceExtractor:
    """Extracts a grounded ReferenceSet from a document."""

    def __init__(self, generator):
        self.generator = generator

    async def extract(
        self,
        document,
        style_hint: str = "",
        director_notes: str = ""
    ) -> ExtractionResult:
        """
        Extract references from `document`.

        Transport errors from the generator propagate. A response that
        degrades to defaults yields an empty, degraded result.
        """
        text = document.text
        result = await self.generator.generate(
            ExtractionSchema,
            build_extraction_prompt(text, style_hint, director_notes),
            system_prompt=EXTRACTION_SYSTEM_PROMPT,
            defaults=EMPTY_EXTRACTION,
            temperature=0.2,
        )

        if result.from_defaults:
            logger.warning("Reference extraction degraded to defaults; continuing with no references")
            return ExtractionResult(ReferenceSet(), degraded=True)

        references = ReferenceSet()
        dropped: List[str] = []
        seen_names = set()
        for kind, field_name in _SCHEMA_FIELDS.items():
            for entity in getattr(result.value, field_name):
                name = _LEADING_ARTICLE.sub("", entity.name.strip())
                key = (kind, _fold(name))
                if not name or key in seen_names:
                    continue
                if not is_grounded(name, text):
                    dropped.append(entity.name)
                    continue
                seen_names.add(key)
                references.add_named(name, kind, entity.description.strip())

        if dropped:
            logger.info(f"Dropped {len(dropped)} ungrounded entities: {', '.join(dropped)}")
        logger.info(f"Extracted {len(references)} references")

        return ExtractionResult(
            references=references,
            degraded=result.degraded,
            themes=list(result.value.themes),
            dropped=dropped,
        )
