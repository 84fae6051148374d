"""Runs router for the Palette API.

Start breakdown runs, poll their state and drive follow-up operations
(cancel, retry failed units, regenerate a unit, add shots).
"""

from typing import Dict, List, Optional, Union

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request
from pydantic import BaseModel, Field
from slowapi import Limiter
from slowapi.util import get_remote_address

from palette.core.constants import (
    MAX_ADDITIONAL_SHOTS,
    MAX_SHOTS_PER_UNIT,
    MAX_UNITS,
    TERMINAL_RUN_STATUSES,
    DetectionMode,
    DocumentKind,
    MediaKind,
    RunStatus,
)
from palette.core.exceptions import RunNotFoundError
from palette.core.logging_config import get_logger
from palette.pipelines.breakdown_pipeline import BreakdownPipeline
from palette.references.reference_set import ReferenceSet
from palette.storage.run_repository import RunRepository
from palette.storyboard.director_style import DirectorStyle
from palette.storyboard.models import InputDocument, PipelineRun, RunOptions
from ..deps import get_pipeline, get_repository
from ..settings import get_settings
from .sse import create_event_queue, emit_event, progress_emitter, release_when_idle

logger = get_logger("api.runs")

router = APIRouter()

# Rate limiter for starting runs
limiter = Limiter(key_func=get_remote_address)


class ReferenceIn(BaseModel):
    handle: str
    name: Optional[str] = None
    description: Optional[str] = None
    image_url: Optional[str] = None


class RunRequest(BaseModel):
    project_id: str
    text: str
    kind: DocumentKind = DocumentKind.STORY
    title: str = ""
    detection_mode: DetectionMode = DetectionMode.EXISTING
    target_unit_count: Optional[int] = Field(default=None, ge=1, le=MAX_UNITS)
    style: Optional[Union[str, dict]] = None
    director_notes: str = ""
    include_camera_style: bool = True
    include_color_palette: bool = True
    target_shot_count: Optional[int] = Field(default=None, ge=1, le=MAX_SHOTS_PER_UNIT)
    title_cards: bool = False
    title_card_format: str = "full"
    title_card_approaches: List[str] = []
    generate_treatments: bool = False
    artist: str = ""
    media_kind: Optional[MediaKind] = None
    # Keyed by reference kind: character, location, prop, wardrobe
    references: Optional[Dict[str, List[ReferenceIn]]] = None

    def to_options(self) -> RunOptions:
        style = DirectorStyle.from_dict(self.style) if isinstance(self.style, dict) else self.style
        return RunOptions(
            detection_mode=self.detection_mode,
            target_unit_count=self.target_unit_count,
            style=style,
            director_notes=self.director_notes,
            include_camera_style=self.include_camera_style,
            include_color_palette=self.include_color_palette,
            target_shot_count=self.target_shot_count,
            title_cards=self.title_cards,
            title_card_format=self.title_card_format,
            title_card_approaches=list(self.title_card_approaches),
            generate_treatments=self.generate_treatments,
            artist=self.artist,
            media_kind=self.media_kind,
        )

    def to_references(self) -> Optional[ReferenceSet]:
        if self.references is None:
            return None
        return ReferenceSet.from_dict({
            kind: [item.model_dump(exclude_none=True) for item in items]
            for kind, items in self.references.items()
        })


class AddShotsRequest(BaseModel):
    categories: List[str] = []
    custom_request: str = ""
    count: int = Field(default=5, ge=1, le=MAX_ADDITIONAL_SHOTS)


class RunResponse(BaseModel):
    success: bool
    message: str
    run_id: Optional[str] = None
    status: Optional[str] = None


async def _load_run(run_id: str, repository: RunRepository) -> PipelineRun:
    run = await repository.get(run_id)
    if run is None:
        raise RunNotFoundError(run_id)
    return run


def _require_finished(run: PipelineRun) -> None:
    if run.status not in TERMINAL_RUN_STATUSES:
        raise HTTPException(status_code=409, detail=f"Run {run.run_id} is still {run.status.value}")


async def _execute_run(pipeline: BreakdownPipeline, run: PipelineRun, retry: bool = False):
    """Background task: drive the run and publish its terminal event."""
    on_progress = progress_emitter(run.run_id)
    if retry:
        run = await pipeline.retry_failed_units(run, on_progress)
    else:
        run = await pipeline.execute(run, on_progress)

    event = "error" if run.status == RunStatus.FAILED else "complete"
    await emit_event(run.run_id, event, {
        "run_id": run.run_id,
        "status": run.status.value,
        "error": run.error,
    })
    release_when_idle(run.run_id)


@router.post("", response_model=RunResponse)
@limiter.limit(get_settings().run_rate_limit)
async def start_run(
    request: Request,
    run_request: RunRequest,
    background_tasks: BackgroundTasks,
    pipeline: BreakdownPipeline = Depends(get_pipeline)
):
    """Create a run and execute it in the background.

    Progress is available from GET /api/runs/stream/{run_id}.
    """
    document = InputDocument(run_request.text, run_request.kind, run_request.title)
    run = await pipeline.create_run(
        run_request.project_id,
        document,
        run_request.to_options(),
        run_request.to_references(),
    )
    create_event_queue(run.run_id)
    background_tasks.add_task(_execute_run, pipeline, run)

    return RunResponse(success=True, message="Run started", run_id=run.run_id, status=run.status.value)


@router.get("/{run_id}")
async def get_run(run_id: str, repository: RunRepository = Depends(get_repository)):
    """Full run state: references, units, breakdowns and per-unit status."""
    run = await _load_run(run_id, repository)
    return run.to_dict()


@router.get("/project/{project_id}")
async def get_latest_run(project_id: str, repository: RunRepository = Depends(get_repository)):
    """Most recently updated run of a project."""
    run = await repository.load(project_id)
    if run is None:
        raise HTTPException(status_code=404, detail=f"No runs for project {project_id}")
    return run.to_dict()


@router.post("/{run_id}/cancel", response_model=RunResponse)
async def cancel_run(
    run_id: str,
    pipeline: BreakdownPipeline = Depends(get_pipeline),
    repository: RunRepository = Depends(get_repository)
):
    """Request cancellation. Units already issued finish and are discarded."""
    run = await _load_run(run_id, repository)
    if run.status in TERMINAL_RUN_STATUSES or not pipeline.cancel(run_id):
        return RunResponse(
            success=False,
            message=f"Run not active (status: {run.status.value})",
            run_id=run_id,
            status=run.status.value,
        )
    return RunResponse(success=True, message="Cancellation requested", run_id=run_id, status=run.status.value)


@router.post("/{run_id}/retry", response_model=RunResponse)
async def retry_run(
    run_id: str,
    background_tasks: BackgroundTasks,
    pipeline: BreakdownPipeline = Depends(get_pipeline),
    repository: RunRepository = Depends(get_repository)
):
    """Re-run failed and cancelled units in the background."""
    run = await _load_run(run_id, repository)
    _require_finished(run)
    failed = len(run.failed_units)
    if not failed:
        return RunResponse(success=False, message="No failed units", run_id=run_id, status=run.status.value)

    create_event_queue(run_id)
    background_tasks.add_task(_execute_run, pipeline, run, True)
    return RunResponse(success=True, message=f"Retrying {failed} units", run_id=run_id, status=run.status.value)


@router.post("/{run_id}/units/{unit_id}/regenerate")
async def regenerate_unit(
    run_id: str,
    unit_id: str,
    pipeline: BreakdownPipeline = Depends(get_pipeline),
    repository: RunRepository = Depends(get_repository)
):
    """Replace one unit's breakdown and return it."""
    run = await _load_run(run_id, repository)
    _require_finished(run)
    run = await pipeline.regenerate_unit(run, unit_id)
    return run.breakdowns[unit_id].to_dict()


@router.post("/{run_id}/units/{unit_id}/shots")
async def add_shots(
    run_id: str,
    unit_id: str,
    shots_request: AddShotsRequest,
    pipeline: BreakdownPipeline = Depends(get_pipeline),
    repository: RunRepository = Depends(get_repository)
):
    """Append shots to a unit's breakdown and return it."""
    run = await _load_run(run_id, repository)
    _require_finished(run)
    run = await pipeline.add_shots(
        run,
        unit_id,
        categories=shots_request.categories,
        custom_request=shots_request.custom_request,
        count=shots_request.count,
    )
    return run.breakdowns[unit_id].to_dict()
