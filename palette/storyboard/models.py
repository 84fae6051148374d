"""
Storyboard data model.

Plain dataclasses with to_dict/from_dict so a whole PipelineRun
round-trips through JSON for persistence and the HTTP layer.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from palette.core.constants import (
    DetectionMode,
    DocumentKind,
    MediaKind,
    RunStatus,
    UnitSource,
    UnitState,
)
from palette.references.reference_set import ReferenceSet
from .director_style import DirectorStyle


def timestamp_now() -> str:
    return datetime.now().isoformat()


def new_run_id() -> str:
    return f"run_{uuid.uuid4().hex[:12]}"


@dataclass(frozen=True)
class InputDocument:
    """Story prose or lyrics submitted to a run. Never modified by the pipeline."""
    text: str
    kind: DocumentKind = DocumentKind.STORY
    title: str = ""

    @property
    def is_lyrics(self) -> bool:
        return self.kind == DocumentKind.LYRICS

    def to_dict(self) -> dict:
        return {"text": self.text, "kind": self.kind.value, "title": self.title}

    @classmethod
    def from_dict(cls, data: dict) -> 'InputDocument':
        return cls(
            text=data.get("text", ""),
            kind=DocumentKind(data.get("kind", DocumentKind.STORY.value)),
            title=data.get("title", ""),
        )


@dataclass
class NarrativeUnit:
    """A chapter or song section covering text[start:end]."""
    unit_id: str
    ordinal: int
    title: str
    start: int
    end: int
    text: str
    beat: Optional[str] = None
    section_type: Optional[str] = None
    source: UnitSource = UnitSource.MARKER
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def word_count(self) -> int:
        return len(self.text.split())

    def to_dict(self) -> dict:
        return {
            "unit_id": self.unit_id,
            "ordinal": self.ordinal,
            "title": self.title,
            "start": self.start,
            "end": self.end,
            "text": self.text,
            "beat": self.beat,
            "section_type": self.section_type,
            "source": self.source.value,
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'NarrativeUnit':
        return cls(
            unit_id=data["unit_id"],
            ordinal=data.get("ordinal", 0),
            title=data.get("title", ""),
            start=data.get("start", 0),
            end=data.get("end", 0),
            text=data.get("text", ""),
            beat=data.get("beat"),
            section_type=data.get("section_type"),
            source=UnitSource(data.get("source", UnitSource.MARKER.value)),
            metadata=dict(data.get("metadata") or {}),
        )


@dataclass
class TitleCard:
    """A text card designed to introduce a unit."""
    card_id: str
    style_label: str
    description: str

    def to_dict(self) -> dict:
        return {"card_id": self.card_id, "style_label": self.style_label, "description": self.description}

    @classmethod
    def from_dict(cls, data: dict) -> 'TitleCard':
        return cls(data.get("card_id", ""), data.get("style_label", ""), data.get("description", ""))


@dataclass
class ShotMedia:
    """Rendered media for one shot."""
    shot_index: int
    kind: MediaKind
    prompt: str
    status: str
    output_urls: List[str] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status == "succeeded"

    def to_dict(self) -> dict:
        return {
            "shot_index": self.shot_index,
            "kind": self.kind.value,
            "prompt": self.prompt,
            "status": self.status,
            "output_urls": list(self.output_urls),
            "error": self.error,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'ShotMedia':
        return cls(
            shot_index=data["shot_index"],
            kind=MediaKind(data.get("kind", MediaKind.IMAGE.value)),
            prompt=data.get("prompt", ""),
            status=data.get("status", "failed"),
            output_urls=list(data.get("output_urls") or []),
            error=data.get("error"),
        )


@dataclass
class UnitBreakdown:
    """Generated shot list and analysis for one NarrativeUnit."""
    unit_id: str
    shots: List[str]
    references_used: List[str] = field(default_factory=list)
    coverage_analysis: str = ""
    additional_opportunities: List[str] = field(default_factory=list)
    added_shots: List[str] = field(default_factory=list)
    title_cards: List[TitleCard] = field(default_factory=list)
    media: List[ShotMedia] = field(default_factory=list)
    generated_at: str = field(default_factory=timestamp_now)

    @property
    def all_shots(self) -> List[str]:
        return self.shots + self.added_shots

    def to_dict(self) -> dict:
        return {
            "unit_id": self.unit_id,
            "shots": list(self.shots),
            "references_used": list(self.references_used),
            "coverage_analysis": self.coverage_analysis,
            "additional_opportunities": list(self.additional_opportunities),
            "added_shots": list(self.added_shots),
            "title_cards": [card.to_dict() for card in self.title_cards],
            "media": [item.to_dict() for item in self.media],
            "generated_at": self.generated_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'UnitBreakdown':
        return cls(
            unit_id=data["unit_id"],
            shots=list(data.get("shots") or []),
            references_used=list(data.get("references_used") or []),
            coverage_analysis=data.get("coverage_analysis", ""),
            additional_opportunities=list(data.get("additional_opportunities") or []),
            added_shots=list(data.get("added_shots") or []),
            title_cards=[TitleCard.from_dict(c) for c in data.get("title_cards") or []],
            media=[ShotMedia.from_dict(m) for m in data.get("media") or []],
            generated_at=data.get("generated_at") or timestamp_now(),
        )


@dataclass
class UnitStatus:
    """Per-unit slot in a run's status map."""
    state: UnitState = UnitState.PENDING
    reason: Optional[str] = None
    attempts: int = 0

    def to_dict(self) -> dict:
        return {"state": self.state.value, "reason": self.reason, "attempts": self.attempts}

    @classmethod
    def from_dict(cls, data: dict) -> 'UnitStatus':
        return cls(
            state=UnitState(data.get("state", UnitState.PENDING.value)),
            reason=data.get("reason"),
            attempts=data.get("attempts", 0),
        )


@dataclass
class Treatment:
    """A music-video concept applied across all sections."""
    treatment_id: str
    name: str
    concept: str
    visual_theme: str = ""
    performance_ratio: float = 0.5
    hook_strategy: str = ""

    def to_prompt(self) -> str:
        return (
            f"Treatment '{self.name}': {self.concept}\n"
            f"Visual theme: {self.visual_theme}\n"
            f"Performance vs narrative ratio: {self.performance_ratio:.0%} performance\n"
            f"Hook strategy: {self.hook_strategy}"
        )

    def to_dict(self) -> dict:
        return {
            "treatment_id": self.treatment_id,
            "name": self.name,
            "concept": self.concept,
            "visual_theme": self.visual_theme,
            "performance_ratio": self.performance_ratio,
            "hook_strategy": self.hook_strategy,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'Treatment':
        return cls(
            treatment_id=data.get("treatment_id", ""),
            name=data.get("name", ""),
            concept=data.get("concept", ""),
            visual_theme=data.get("visual_theme", ""),
            performance_ratio=data.get("performance_ratio", 0.5),
            hook_strategy=data.get("hook_strategy", ""),
        )


@dataclass
class ProgressUpdate:
    """Emitted after each unit finishes."""
    run_id: str
    current: int
    total: int
    message: str
    stage: str

    @property
    def percent(self) -> float:
        return (self.current / self.total * 100) if self.total else 100.0

    def to_dict(self) -> dict:
        return {
            "run_id": self.run_id,
            "current": self.current,
            "total": self.total,
            "message": self.message,
            "stage": self.stage,
            "percent": self.percent,
        }


@dataclass
class RunOptions:
    """Caller options for one run."""
    detection_mode: DetectionMode = DetectionMode.EXISTING
    target_unit_count: Optional[int] = None
    style: Any = None  # DirectorStyle or plain hint string
    director_notes: str = ""
    include_camera_style: bool = True
    include_color_palette: bool = True
    target_shot_count: Optional[int] = None
    title_cards: bool = False
    title_card_format: str = "full"
    title_card_approaches: List[str] = field(default_factory=list)
    generate_treatments: bool = False
    artist: str = ""
    media_kind: Optional[MediaKind] = None  # None disables the media stage

    def to_dict(self) -> dict:
        style = self.style.to_dict() if hasattr(self.style, "to_dict") else self.style
        return {
            "detection_mode": self.detection_mode.value,
            "target_unit_count": self.target_unit_count,
            "style": style,
            "director_notes": self.director_notes,
            "include_camera_style": self.include_camera_style,
            "include_color_palette": self.include_color_palette,
            "target_shot_count": self.target_shot_count,
            "title_cards": self.title_cards,
            "title_card_format": self.title_card_format,
            "title_card_approaches": list(self.title_card_approaches),
            "generate_treatments": self.generate_treatments,
            "artist": self.artist,
            "media_kind": self.media_kind.value if self.media_kind else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'RunOptions':
        style = data.get("style")
        if isinstance(style, dict):
            style = DirectorStyle.from_dict(style)
        media_kind = data.get("media_kind")
        return cls(
            detection_mode=DetectionMode(data.get("detection_mode", DetectionMode.EXISTING.value)),
            target_unit_count=data.get("target_unit_count"),
            style=style,
            director_notes=data.get("director_notes", ""),
            include_camera_style=data.get("include_camera_style", True),
            include_color_palette=data.get("include_color_palette", True),
            target_shot_count=data.get("target_shot_count"),
            title_cards=data.get("title_cards", False),
            title_card_format=data.get("title_card_format", "full"),
            title_card_approaches=list(data.get("title_card_approaches") or []),
            generate_treatments=data.get("generate_treatments", False),
            artist=data.get("artist", ""),
            media_kind=MediaKind(media_kind) if media_kind else None,
        )


@dataclass
class PipelineRun:
    """
    Aggregate state of one breakdown run.

    Only the BreakdownPipeline mutates a run; callers read it.
    """
    project_id: str
    document: InputDocument
    options: RunOptions = field(default_factory=RunOptions)
    run_id: str = field(default_factory=new_run_id)
    references: ReferenceSet = field(default_factory=ReferenceSet)
    units: List[NarrativeUnit] = field(default_factory=list)
    breakdowns: Dict[str, UnitBreakdown] = field(default_factory=dict)
    unit_status: Dict[str, UnitStatus] = field(default_factory=dict)
    status: RunStatus = RunStatus.PENDING
    error: Optional[str] = None
    treatments: List[Treatment] = field(default_factory=list)
    themes: List[str] = field(default_factory=list)
    references_supplied: bool = False
    reserved_credits: int = 0
    media_skipped: Optional[str] = None
    created_at: str = field(default_factory=timestamp_now)
    updated_at: str = field(default_factory=timestamp_now)

    def touch(self) -> None:
        self.updated_at = timestamp_now()

    def get_unit(self, unit_id: str) -> Optional[NarrativeUnit]:
        return next((unit for unit in self.units if unit.unit_id == unit_id), None)

    def ordered_breakdowns(self) -> List[Optional[UnitBreakdown]]:
        """Breakdowns in unit order, None where a unit has none."""
        return [self.breakdowns.get(unit.unit_id) for unit in self.units]

    def units_in_state(self, *states: UnitState) -> List[NarrativeUnit]:
        return [
            unit for unit in self.units
            if self.unit_status.get(unit.unit_id, UnitStatus()).state in states
        ]

    @property
    def failed_units(self) -> List[NarrativeUnit]:
        return self.units_in_state(UnitState.FAILED, UnitState.CANCELLED)

    def to_dict(self) -> dict:
        return {
            "run_id": self.run_id,
            "project_id": self.project_id,
            "document": self.document.to_dict(),
            "options": self.options.to_dict(),
            "references": self.references.to_dict(),
            "units": [unit.to_dict() for unit in self.units],
            "breakdowns": {uid: b.to_dict() for uid, b in self.breakdowns.items()},
            "unit_status": {uid: s.to_dict() for uid, s in self.unit_status.items()},
            "status": self.status.value,
            "error": self.error,
            "treatments": [t.to_dict() for t in self.treatments],
            "themes": list(self.themes),
            "references_supplied": self.references_supplied,
            "reserved_credits": self.reserved_credits,
            "media_skipped": self.media_skipped,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'PipelineRun':
        return cls(
            run_id=data["run_id"],
            project_id=data["project_id"],
            document=InputDocument.from_dict(data["document"]),
            options=RunOptions.from_dict(data.get("options") or {}),
            references=ReferenceSet.from_dict(data.get("references") or {}),
            units=[NarrativeUnit.from_dict(u) for u in data.get("units") or []],
            breakdowns={uid: UnitBreakdown.from_dict(b) for uid, b in (data.get("breakdowns") or {}).items()},
            unit_status={uid: UnitStatus.from_dict(s) for uid, s in (data.get("unit_status") or {}).items()},
            status=RunStatus(data.get("status", RunStatus.PENDING.value)),
            error=data.get("error"),
            treatments=[Treatment.from_dict(t) for t in data.get("treatments") or []],
            themes=list(data.get("themes") or []),
            references_supplied=data.get("references_supplied", False),
            reserved_credits=data.get("reserved_credits", 0),
            media_skipped=data.get("media_skipped"),
            created_at=data.get("created_at") or timestamp_now(),
            updated_at=data.get("updated_at") or timestamp_now(),
        )
