"""
Segmenter

Splits an InputDocument into ordered NarrativeUnits (chapters for prose,
sections for lyrics).

Modes:
- existing: split at structural markers already in the text (chapter and
  act headings, Markdown headings, "[Verse 1]" style labels). Falls back
  to ai-generated when the text has no markers.
- ai-generated: the model picks unit starts from numbered passages.
- hybrid: markers are authoritative; the model only divides the text in
  front of the first marker.

Every unit covers text[start:end]; consecutive units share a boundary, so
the units always partition the whole document. Empty units are merged
into a neighbour and the count is clamped to [min_units, max_units].
"""

import math
import re
from dataclasses import dataclass, replace
from typing import List, Optional, Tuple

from pydantic import BaseModel, Field

from palette.core.constants import (
    DetectionMode,
    NarrativeBeat,
    SectionType,
    UnitSource,
    MIN_UNITS,
    MAX_UNITS,
    DEFAULT_TARGET_UNITS,
)
from palette.core.exceptions import LLMError
from palette.core.logging_config import get_logger
from .models import InputDocument, NarrativeUnit

logger = get_logger("storyboard.segmenter")

# =============================================================================
# MARKER DETECTION
# =============================================================================

_NUMBER_WORDS = (
    "one|two|three|four|five|six|seven|eight|nine|ten|eleven|twelve|thirteen|"
    "fourteen|fifteen|sixteen|seventeen|eighteen|nineteen|twenty"
)
_HEADING_RE = re.compile(
    r"^[ \t]*(?:(?:chapter|part|act|book)[ \t]+(?:\d+|[ivxlc]+|" + _NUMBER_WORDS + r")\b[^\n]{0,60}"
    r"|#{1,6}[ \t]+\S[^\n]*)$",
    re.IGNORECASE | re.MULTILINE,
)
# Short numbered or roman headings such as "IV." or "12. The Return"
_NUMBERED_RE = re.compile(r"^[ \t]*(?:[IVXLC]+|\d+)\.(?:[ \t]+\S.{0,50})?[ \t]*$", re.MULTILINE)
_LABEL_RE = re.compile(r"^[ \t]*\[([^\[\]\n]{1,40})\][ \t]*$", re.MULTILINE)

_SENTENCE_BREAK_RE = re.compile(r"(?<=[.!?])\s+(?=\S)")

# Longest names first so "pre-chorus" wins over "chorus"
_SECTION_TYPES = sorted((t.value for t in SectionType), key=len, reverse=True)


@dataclass
class Marker:
    """A structural marker line."""
    start: int
    line_end: int
    title: str
    section_type: Optional[str] = None


def section_type_for_label(label: str) -> Optional[str]:
    """Map a lyric label like "Pre Chorus 2" to a section type."""
    normalized = re.sub(r"[\s_]+", "-", label.strip().lower())
    for section in _SECTION_TYPES:
        if normalized.startswith(section):
            return section
    for section in _SECTION_TYPES:
        if section in normalized:
            return section
    return None


def detect_markers(text: str) -> List[Marker]:
    """Find structural marker lines in document order."""
    markers = {}
    for match in _HEADING_RE.finditer(text):
        title = match.group(0).strip().lstrip("#").strip()
        markers[match.start()] = Marker(match.start(), match.end(), title)
    for match in _NUMBERED_RE.finditer(text):
        markers.setdefault(match.start(), Marker(match.start(), match.end(), match.group(0).strip()))
    for match in _LABEL_RE.finditer(text):
        label = match.group(1).strip()
        markers[match.start()] = Marker(match.start(), match.end(), label, section_type_for_label(label))
    return [markers[key] for key in sorted(markers)]


# =============================================================================
# AI SCHEMA
# =============================================================================

class SegmentProposal(BaseModel):
    title: str
    start_passage: int
    beat: Optional[str] = None
    section_type: Optional[str] = None


class SegmentationSchema(BaseModel):
    units: List[SegmentProposal] = Field(default_factory=list)


SEGMENTATION_SYSTEM_PROMPT = """You are a story editor dividing text into units for a shot breakdown.
Units must follow the order of the text and every unit must start at a passage boundary."""


@dataclass
class SegmentationResult:
    """Units plus how they were produced."""
    units: List[NarrativeUnit]
    mode_used: DetectionMode
    degraded: bool = False


@dataclass
class _Span:
    start: int
    end: int
    title: str
    source: UnitSource
    beat: Optional[str] = None
    section_type: Optional[str] = None
    heading_end: Optional[int] = None  # end of the marker line, if any


def _passages(text: str, base: int, minimum: int) -> List[Tuple[int, int]]:
    """
    Cut text into passages: non-blank lines, or sentences when there are
    fewer lines than `minimum`. Returns absolute (start, end) offsets that
    partition text.
    """
    starts = [m.start() for m in re.finditer(r"^[ \t]*\S", text, re.MULTILINE)]
    if len(starts) < minimum:
        sentence_starts = [0] + [m.end() for m in _SENTENCE_BREAK_RE.finditer(text)]
        if len(sentence_starts) > len(starts):
            starts = sentence_starts
    if not starts:
        return [(base, base + len(text))]
    starts[0] = 0
    starts = sorted(set(starts))
    ends = starts[1:] + [len(text)]
    return [(base + s, base + e) for s, e in zip(starts, ends)]


class Segmenter:
    """
    Splits documents into narrative units.

    Args:
        generator: StructuredGenerator used by ai-generated and hybrid modes
        min_units: lower bound on unit count
        max_units: upper bound on unit count
        default_target: target count when the caller gives none
    """

    def __init__(
        self,
        generator=None,
        min_units: int = MIN_UNITS,
        max_units: int = MAX_UNITS,
        default_target: int = DEFAULT_TARGET_UNITS
    ):
        self.generator = generator
        self.min_units = max(1, min_units)
        self.max_units = max(self.min_units, max_units)
        self.default_target = default_target

    async def segment(
        self,
        document: InputDocument,
        mode: DetectionMode = DetectionMode.EXISTING,
        target_count: Optional[int] = None
    ) -> SegmentationResult:
        """Segment `document`. Returns no units only for a blank document."""
        text = document.text
        if not text.strip():
            logger.warning("Document is blank; nothing to segment")
            return SegmentationResult([], mode, degraded=True)

        target = self._clamp(target_count or self.default_target)
        markers = detect_markers(text)
        degraded = False

        if mode == DetectionMode.EXISTING and markers:
            spans = self._marker_spans(text, markers)
            mode_used = DetectionMode.EXISTING
        elif mode == DetectionMode.HYBRID and markers:
            spans, degraded = await self._hybrid_spans(document, markers, target)
            mode_used = DetectionMode.HYBRID
        else:
            if mode != DetectionMode.AI_GENERATED:
                logger.info(f"No structural markers found; falling back from {mode.value} to ai-generated")
            spans, degraded = await self._ai_spans(document, 0, len(text), target)
            mode_used = DetectionMode.AI_GENERATED

        spans = self._merge_degenerate(text, spans)
        spans = self._enforce_bounds(text, spans)
        units = self._to_units(document, spans)

        logger.info(f"Segmented document into {len(units)} units ({mode_used.value})")
        return SegmentationResult(units, mode_used, degraded)

    def _clamp(self, count: int) -> int:
        return max(self.min_units, min(self.max_units, count))

    # -------------------------------------------------------------------------
    # Marker spans
    # -------------------------------------------------------------------------

    def _marker_spans(self, text: str, markers: List[Marker], start: int = 0) -> List[_Span]:
        spans = []
        first = markers[0].start
        preamble = text[start:first]
        if preamble.strip():
            spans.append(_Span(start, first, "Opening", UnitSource.MARKER))
        else:
            first = start

        for i, marker in enumerate(markers):
            span_start = first if i == 0 else marker.start
            span_end = markers[i + 1].start if i + 1 < len(markers) else len(text)
            spans.append(_Span(
                span_start, span_end, marker.title, UnitSource.MARKER,
                section_type=marker.section_type, heading_end=marker.line_end
            ))
        return spans

    async def _hybrid_spans(
        self,
        document: InputDocument,
        markers: List[Marker],
        target: int
    ) -> Tuple[List[_Span], bool]:
        text = document.text
        first = markers[0].start
        degraded = False
        gap_spans: List[_Span] = []

        if text[:first].strip():
            share = first / max(1, len(text))
            gap_target = max(1, min(target - len(markers), round(target * share)))
            gap_spans, degraded = await self._ai_spans(document, 0, first, gap_target)
            marker_spans = self._marker_spans(text, markers, start=first)
        else:
            marker_spans = self._marker_spans(text, markers)

        return gap_spans + marker_spans, degraded

    # -------------------------------------------------------------------------
    # AI spans
    # -------------------------------------------------------------------------

    async def _ai_spans(
        self,
        document: InputDocument,
        start: int,
        end: int,
        target: int
    ) -> Tuple[List[_Span], bool]:
        text = document.text[start:end]
        passages = _passages(text, start, target)
        if len(passages) == 1:
            return self._even_split(passages, 1, document.is_lyrics), False

        if self.generator is not None:
            try:
                proposals = await self._propose(document, passages, target)
            except LLMError as e:
                logger.warning(f"AI segmentation failed ({e}); using even split")
                proposals = None
            if proposals:
                return self._spans_from_proposals(passages, proposals, document.is_lyrics), False

        return self._even_split(passages, target, document.is_lyrics), True

    async def _propose(self, document, passages, target) -> Optional[List[SegmentProposal]]:
        numbered = "\n".join(
            f"[{i}] {document.text[s:e].strip()}" for i, (s, e) in enumerate(passages, start=1)
        )
        if document.is_lyrics:
            labels = ", ".join(t.value for t in SectionType)
            classify = f"For each section give section_type, one of: {labels}."
            noun = "song sections"
        else:
            beats = ", ".join(b.value for b in NarrativeBeat)
            classify = f"For each chapter give beat, one of: {beats}."
            noun = "chapters"

        prompt = (
            f"Divide the numbered passages below into about {target} {noun}.\n"
            f"For each unit give a short title and start_passage, the number of its first passage.\n"
            f"The first unit starts at passage 1. {classify}\n\n"
            f"PASSAGES:\n{numbered}"
        )

        result = await self.generator.generate(
            SegmentationSchema,
            prompt,
            system_prompt=SEGMENTATION_SYSTEM_PROMPT,
            defaults={"units": []},
            temperature=0.3,
        )
        if result.from_defaults or not result.value.units:
            logger.warning("AI segmentation returned no usable units")
            return None
        return result.value.units

    def _spans_from_proposals(
        self,
        passages: List[Tuple[int, int]],
        proposals: List[SegmentProposal],
        is_lyrics: bool
    ) -> List[_Span]:
        by_start = {}
        for proposal in proposals:
            index = min(max(proposal.start_passage, 1), len(passages)) - 1
            by_start.setdefault(index, proposal)
        if 0 not in by_start:
            # Move the earliest proposal to the top so nothing is left uncovered
            earliest = min(by_start)
            by_start[0] = by_start.pop(earliest)

        indexes = sorted(by_start)
        spans = []
        for i, index in enumerate(indexes):
            proposal = by_start[index]
            span_end = passages[indexes[i + 1]][0] if i + 1 < len(indexes) else passages[-1][1]
            if is_lyrics:
                section = section_type_for_label(proposal.section_type or "") or SectionType.VERSE.value
                spans.append(_Span(passages[index][0], span_end, proposal.title.strip(),
                                   UnitSource.AI, section_type=section))
            else:
                spans.append(_Span(passages[index][0], span_end, proposal.title.strip(),
                                   UnitSource.AI, beat=proposal.beat))
        return spans

    def _even_split(self, passages: List[Tuple[int, int]], target: int, is_lyrics: bool) -> List[_Span]:
        count = max(1, min(target, len(passages)))
        per_unit = len(passages) / count
        label = "Section" if is_lyrics else "Part"
        spans = []
        for i in range(count):
            first = passages[math.floor(i * per_unit)]
            last = passages[math.floor((i + 1) * per_unit) - 1]
            spans.append(_Span(first[0], last[1], f"{label} {i + 1}", UnitSource.HEURISTIC,
                               section_type=SectionType.VERSE.value if is_lyrics else None))
        return spans

    # -------------------------------------------------------------------------
    # Normalization
    # -------------------------------------------------------------------------

    @staticmethod
    def _body(text: str, span: _Span) -> str:
        body_start = span.heading_end if span.heading_end and span.heading_end <= span.end else span.start
        return text[body_start:span.end]

    @staticmethod
    def _join(first: _Span, second: _Span) -> _Span:
        return replace(first, end=second.end)

    def _merge_degenerate(self, text: str, spans: List[_Span]) -> List[_Span]:
        """Fold units with no body text into a neighbour."""
        merged = list(spans)
        i = 0
        while len(merged) > 1 and i < len(merged):
            if self._body(text, merged[i]).strip():
                i += 1
                continue
            if i + 1 < len(merged):
                # A bare heading introduces the next unit's text
                merged[i:i + 2] = [self._join(merged[i], merged[i + 1])]
            else:
                merged[i - 1:i + 1] = [self._join(merged[i - 1], merged[i])]
                i -= 1
        return merged

    def _enforce_bounds(self, text: str, spans: List[_Span]) -> List[_Span]:
        spans = list(spans)

        while len(spans) > self.max_units:
            candidates = range(len(spans) - 1)
            same_source = [i for i in candidates if spans[i].source == spans[i + 1].source]
            pool = same_source or list(candidates)
            i = min(pool, key=lambda k: spans[k + 1].end - spans[k].start)
            spans[i:i + 2] = [self._join(spans[i], spans[i + 1])]

        while len(spans) < self.min_units:
            order = sorted(range(len(spans)), key=lambda k: spans[k].end - spans[k].start, reverse=True)
            for i in order:
                halves = self._split(text, spans[i])
                if halves:
                    spans[i:i + 1] = list(halves)
                    break
            else:
                logger.warning(f"Cannot reach {self.min_units} units; document too short")
                break

        return spans

    @staticmethod
    def _split(text: str, span: _Span) -> Optional[Tuple[_Span, _Span]]:
        """Split at the whitespace nearest the midpoint, keeping both halves non-blank."""
        lower = span.heading_end if span.heading_end and span.heading_end < span.end else span.start
        middle = (lower + span.end) // 2
        positions = [p for p in range(lower + 1, span.end) if text[p].isspace()]
        for p in sorted(positions, key=lambda p: abs(p - middle)):
            if text[span.start:p].strip() and text[p:span.end].strip():
                first = replace(span, end=p)
                second = replace(span, start=p, title=f"{span.title} (cont.)", heading_end=None)
                return first, second
        return None

    def _to_units(self, document: InputDocument, spans: List[_Span]) -> List[NarrativeUnit]:
        prefix = "section" if document.is_lyrics else "chapter"
        total = len(spans)
        valid_beats = {b.value for b in NarrativeBeat}
        units = []
        for ordinal, span in enumerate(spans, start=1):
            beat = None
            if not document.is_lyrics:
                beat = span.beat if span.beat in valid_beats else positional_beat(ordinal, total)
            units.append(NarrativeUnit(
                unit_id=f"{prefix}-{ordinal}",
                ordinal=ordinal,
                title=span.title or f"{prefix.title()} {ordinal}",
                start=span.start,
                end=span.end,
                text=document.text[span.start:span.end],
                beat=beat,
                section_type=span.section_type if document.is_lyrics else None,
                source=span.source,
            ))
        return units


def positional_beat(ordinal: int, total: int) -> str:
    """Beat for the unit at 1-indexed `ordinal` out of `total`."""
    if ordinal == 1:
        return NarrativeBeat.SETUP.value
    if ordinal == total:
        return NarrativeBeat.RESOLUTION.value
    if ordinal == total - 1:
        return NarrativeBeat.CLIMAX.value
    return NarrativeBeat.RISING_ACTION.value
