"""
Tests for Storyboard Models Module

Tests for palette/storyboard/models.py and director_style.py
"""

import json

from palette.core.constants import DetectionMode, DocumentKind, MediaKind, RunStatus, UnitState
from palette.storyboard.director_style import (
    DEFAULT_STYLE_PROFILE,
    DirectorStyle,
    build_director_style,
    style_name,
)
from palette.storyboard.models import (
    InputDocument,
    NarrativeUnit,
    PipelineRun,
    ProgressUpdate,
    RunOptions,
    ShotMedia,
    TitleCard,
    UnitBreakdown,
    UnitStatus,
)

KUBRICK = DirectorStyle(
    name="Stanley Kubrick",
    description="Cold, controlled and symmetrical",
    visual_language="One-point perspective",
    camera_style="Slow dolly pushes",
    color_palette="Desaturated with red accents",
    tags=["symmetry", "dread"],
)


class TestPipelineRun:
    """Tests for PipelineRun serialization."""

    def test_json_round_trip(self, sample_references):
        run = PipelineRun(
            project_id="proj-1",
            document=InputDocument("Verse text", DocumentKind.LYRICS, "Neon"),
            options=RunOptions(detection_mode=DetectionMode.HYBRID, style=KUBRICK, media_kind=MediaKind.IMAGE),
            references=sample_references,
        )
        run.units = [NarrativeUnit("section-1", 1, "Verse 1", 0, 10, "Verse text", section_type="verse")]
        run.breakdowns["section-1"] = UnitBreakdown(
            unit_id="section-1",
            shots=["@sarah under neon."],
            references_used=["@sarah"],
            title_cards=[TitleCard("section-1-card-1", "Neon", "Pink tubes")],
            media=[ShotMedia(0, MediaKind.IMAGE, "@sarah under neon.", "succeeded", ["https://x/1.png"])],
        )
        run.unit_status["section-1"] = UnitStatus(UnitState.SUCCEEDED, attempts=2)
        run.status = RunStatus.COMPLETE

        restored = PipelineRun.from_dict(json.loads(json.dumps(run.to_dict())))

        assert restored.to_dict() == run.to_dict()
        assert restored.options.style.camera_style == "Slow dolly pushes"
        assert restored.breakdowns["section-1"].media[0].succeeded
        assert restored.unit_status["section-1"].state == UnitState.SUCCEEDED

    def test_failed_units_include_cancelled(self):
        run = PipelineRun("proj-1", InputDocument("text"))
        run.units = [
            NarrativeUnit(f"chapter-{i}", i, f"Chapter {i}", 0, 0, "") for i in range(1, 4)
        ]
        run.unit_status = {
            "chapter-1": UnitStatus(UnitState.SUCCEEDED),
            "chapter-2": UnitStatus(UnitState.FAILED, "bad"),
            "chapter-3": UnitStatus(UnitState.CANCELLED),
        }

        assert [u.unit_id for u in run.failed_units] == ["chapter-2", "chapter-3"]
        assert run.ordered_breakdowns() == [None, None, None]

    def test_run_ids_unique(self):
        first = PipelineRun("proj-1", InputDocument("a"))
        second = PipelineRun("proj-1", InputDocument("a"))

        assert first.run_id != second.run_id
        assert first.run_id.startswith("run_")


class TestProgressUpdate:
    def test_percent(self):
        assert ProgressUpdate("run_1", 2, 5, "", "generating-units").percent == 40.0
        assert ProgressUpdate("run_1", 0, 0, "", "generating-units").percent == 100.0


class TestDirectorStyle:
    """Tests for build_director_style."""

    def test_no_style(self):
        assert build_director_style(None) == DEFAULT_STYLE_PROFILE
        assert build_director_style("   ") == DEFAULT_STYLE_PROFILE

    def test_free_text_hint(self):
        assert build_director_style(" Wes Anderson ") == "STYLE: Wes Anderson"

    def test_full_profile(self):
        profile = build_director_style(KUBRICK)

        assert "DIRECTOR: Stanley Kubrick" in profile
        assert "VISUAL LANGUAGE: One-point perspective; Slow dolly pushes" in profile
        assert "COLOR PALETTE: Desaturated with red accents" in profile
        assert "STYLE TAGS: symmetry, dread" in profile
        assert "CATEGORY" not in profile

    def test_camera_and_color_excluded(self):
        profile = build_director_style(KUBRICK, include_camera_style=False, include_color_palette=False)

        assert "Slow dolly pushes" not in profile
        assert "COLOR PALETTE" not in profile
        assert "VISUAL LANGUAGE: One-point perspective" in profile

    def test_style_name(self):
        assert style_name(KUBRICK) == "Stanley Kubrick"
        assert style_name(" noir ") == "noir"
        assert style_name(None) == ""
