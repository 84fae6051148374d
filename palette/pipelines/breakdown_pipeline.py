"""
Palette Breakdown Pipeline

Coordinates a run from document to per-unit shot breakdowns:

    pending -> extracting-references -> segmenting -> generating-units -> complete

Reference extraction and segmentation run strictly in order. Unit
breakdowns then fan out under a semaphore and land in their unit's slot,
so one unit failing never affects its siblings.
"""

import asyncio
from datetime import datetime
from typing import List, Optional

from palette.core.config import PaletteConfig, get_config
from palette.core.constants import RunStatus, UnitState
from palette.core.exceptions import (
    ConfigurationError,
    ContentError,
    InsufficientCreditsError,
    MissingConfigError,
    PaletteError,
    UnitNotFoundError,
)
from palette.core.logging_config import get_logger
from palette.references.extractor import ReferenceExtractor
from palette.references.reference_set import ReferenceSet
from palette.storyboard.director_style import style_name
from palette.storyboard.media_stage import ShotMediaGenerator, estimate_media_cost
from palette.storyboard.models import (
    InputDocument,
    NarrativeUnit,
    PipelineRun,
    ProgressUpdate,
    RunOptions,
    UnitStatus,
)
from palette.storyboard.segmenter import Segmenter
from palette.storyboard.treatments import TreatmentGenerator
from palette.storyboard.unit_generator import (
    GenerationOptions,
    TitleCardOptions,
    UnitBreakdownGenerator,
)
from .base_pipeline import BasePipeline, ProgressCallback

logger = get_logger("pipelines.breakdown")


class BreakdownPipeline(BasePipeline):
    """
    Runs the full breakdown for a document.

    Args:
        generator: StructuredGenerator shared by every stage
        config: PaletteConfig (defaults to the global config)
        media_client: MediaClient, required only when runs request media
        credits: CreditLedger charged for media generation
        repository: RunRepository the run is saved through after each phase

    Example:
        pipeline = BreakdownPipeline(StructuredGenerator(provider))
        run = await pipeline.run("project-1", InputDocument(text), RunOptions())
    """

    def __init__(
        self,
        generator,
        config: PaletteConfig = None,
        media_client=None,
        credits=None,
        repository=None
    ):
        super().__init__("breakdown")
        self.config = config or get_config()
        self.generator = generator
        self.media_client = media_client
        self.credits = credits
        self.repository = repository

        settings = self.config.pipeline
        self.extractor = ReferenceExtractor(generator)
        self.segmenter = Segmenter(
            generator,
            min_units=settings.min_units,
            max_units=settings.max_units,
            default_target=settings.default_target_units,
        )
        self.unit_generator = UnitBreakdownGenerator(
            generator,
            max_shots=settings.max_shots_per_unit,
            max_additional=settings.max_additional_shots,
        )
        self.treatment_generator = TreatmentGenerator(generator)
        self.media_generator = (
            ShotMediaGenerator(media_client, self.config.media) if media_client else None
        )

    # =========================================================================
    # RUN CREATION
    # =========================================================================

    async def create_run(
        self,
        project_id: str,
        document: InputDocument,
        options: RunOptions = None,
        references: Optional[ReferenceSet] = None
    ) -> PipelineRun:
        """
        Validate configuration and reserve credits, then create a pending run.

        Raises:
            ConfigurationError: no usable provider, or media requested without a client
            InsufficientCreditsError: the credit ledger refused the reservation
        """
        options = options or RunOptions()

        if not self.generator.is_available:
            raise MissingConfigError(
                f"LLM provider '{self.generator.provider_name}' is not configured",
                {"provider": self.generator.provider_name},
            )

        reserved = 0
        if options.media_kind is not None:
            if self.media_generator is None or not self.media_client.is_available:
                raise ConfigurationError(
                    "Media generation requested but no media provider is configured",
                    {"media_kind": options.media_kind.value},
                )
            unit_estimate = options.target_unit_count or self.config.pipeline.default_target_units
            cost = estimate_media_cost(unit_estimate, options.media_kind, self.config.media)
            if self.credits is not None:
                if not await self.credits.check_and_reserve(cost):
                    raise InsufficientCreditsError(cost)
                reserved = cost

        run = PipelineRun(project_id=project_id, document=document, options=options)
        run.reserved_credits = reserved
        if references is not None:
            run.references = references.copy()
            run.references_supplied = True

        self._track(run.run_id)
        logger.info(f"Created run {run.run_id} for project {project_id}")
        await self._save(run)
        return run

    async def run(
        self,
        project_id: str,
        document: InputDocument,
        options: RunOptions = None,
        references: Optional[ReferenceSet] = None,
        progress_callback: ProgressCallback = None
    ) -> PipelineRun:
        """Create a run and execute it."""
        run = await self.create_run(project_id, document, options, references)
        return await self.execute(run, progress_callback)

    # =========================================================================
    # EXECUTION
    # =========================================================================

    async def execute(self, run: PipelineRun, progress_callback: ProgressCallback = None) -> PipelineRun:
        """
        Drive `run` to complete, failed or cancelled.

        Always returns the run; stage errors are recorded on it.
        """
        start_time = datetime.now()
        self._track(run.run_id)
        logger.info(f"Starting run {run.run_id} ({len(run.document.text)} chars)")

        try:
            extraction_failed = await self._extract_references(run)
            if self._stop_if_cancelled(run):
                return run
            await self._save(run)

            segmentation_failed = await self._segment(run)
            if self._stop_if_cancelled(run):
                return run
            await self._save(run)

            if segmentation_failed and (extraction_failed or not run.references):
                run.status = RunStatus.FAILED
                run.error = run.error or "Neither references nor units could be produced"
                logger.error(f"Run {run.run_id} failed: {run.error}")
                return run

            await self._reserve_media_for_units(run)
            await self._generate_treatments(run)
            await self._generate_units(run, run.units, progress_callback)

            run.status = RunStatus.CANCELLED if self.is_cancelled(run.run_id) else RunStatus.COMPLETE
            failed = len(run.units_in_state(UnitState.FAILED))
            logger.info(
                f"Run {run.run_id} {run.status.value}: "
                f"{len(run.breakdowns)}/{len(run.units)} units, {failed} failed, "
                f"{self._get_duration(start_time):.1f}s"
            )
        except Exception as e:
            run.status = RunStatus.FAILED
            run.error = str(e)
            logger.error(f"Run {run.run_id} failed: {e}", exc_info=not isinstance(e, PaletteError))
        finally:
            self._release(run.run_id)
            run.touch()
            await self._save(run)

        return run

    async def _extract_references(self, run: PipelineRun) -> bool:
        """Returns True when extraction failed outright."""
        run.status = RunStatus.EXTRACTING_REFERENCES
        run.touch()
        if run.references_supplied:
            logger.info(f"Using {len(run.references)} supplied references")
            return False

        try:
            result = await self.extractor.extract(
                run.document,
                style_hint=style_name(run.options.style),
                director_notes=run.options.director_notes,
            )
        except PaletteError as e:
            logger.warning(f"Reference extraction failed: {e}")
            run.error = f"Reference extraction failed: {e.message}"
            return True

        run.references = result.references
        run.themes = result.themes
        return False

    async def _segment(self, run: PipelineRun) -> bool:
        """Returns True when segmentation produced no units."""
        run.status = RunStatus.SEGMENTING
        run.touch()
        try:
            result = await self.segmenter.segment(
                run.document,
                run.options.detection_mode,
                run.options.target_unit_count,
            )
        except PaletteError as e:
            logger.warning(f"Segmentation failed: {e}")
            run.error = f"Segmentation failed: {e.message}"
            return True

        run.units = result.units
        run.unit_status = {unit.unit_id: UnitStatus() for unit in run.units}
        if not run.units:
            run.error = "Segmentation produced no units"
            return True
        return False

    async def _reserve_media_for_units(self, run: PipelineRun) -> None:
        """
        Top up the media reservation to cover the units actually produced.

        create_run reserves for the expected unit count. When segmentation
        yields more units the difference is reserved here; if the ledger
        refuses, the run continues without media and says why.
        """
        kind = run.options.media_kind
        if kind is None or self.credits is None or not run.units:
            return

        cost = estimate_media_cost(len(run.units), kind, self.config.media)
        top_up = cost - run.reserved_credits
        if top_up <= 0:
            return

        try:
            allowed = await self.credits.check_and_reserve(top_up)
        except PaletteError as e:
            logger.warning(f"Run {run.run_id}: media credit top-up failed: {e}")
            run.media_skipped = f"Credit reservation failed: {e.message}"
            return

        if not allowed:
            run.media_skipped = (
                f"Insufficient credits: {cost} needed for {len(run.units)} units, "
                f"{run.reserved_credits} reserved"
            )
            logger.warning(f"Run {run.run_id}: {run.media_skipped}; skipping media")
            return

        run.reserved_credits = cost
        logger.info(f"Run {run.run_id}: reserved {top_up} more credits for {len(run.units)} units")

    def _media_enabled(self, run: PipelineRun) -> bool:
        return (
            self.media_generator is not None
            and run.options.media_kind is not None
            and run.media_skipped is None
        )

    async def _generate_treatments(self, run: PipelineRun) -> None:
        if not (run.document.is_lyrics and run.options.generate_treatments):
            return
        try:
            run.treatments = await self.treatment_generator.generate(
                run.document, run.units, run.options.style, run.options.artist
            )
        except PaletteError as e:
            logger.warning(f"Treatment generation failed, continuing without: {e}")

    def _stop_if_cancelled(self, run: PipelineRun) -> bool:
        if not self.is_cancelled(run.run_id):
            return False
        stage = run.status.value
        for unit in run.units:
            run.unit_status[unit.unit_id] = UnitStatus(UnitState.CANCELLED, "run cancelled before unit started")
        run.status = RunStatus.CANCELLED
        logger.info(f"Run {run.run_id} cancelled during {stage}")
        return True

    # =========================================================================
    # UNIT FAN-OUT
    # =========================================================================

    def _generation_options(self, run: PipelineRun) -> GenerationOptions:
        options = run.options
        return GenerationOptions(
            include_camera_style=options.include_camera_style,
            include_color_palette=options.include_color_palette,
            target_shot_count=options.target_shot_count,
            director_notes=options.director_notes,
            title_cards=TitleCardOptions(
                enabled=options.title_cards,
                format=options.title_card_format,
                approaches=list(options.title_card_approaches),
            ),
            treatment=run.treatments[0] if run.treatments else None,
            is_lyrics=run.document.is_lyrics,
        )

    async def _generate_units(
        self,
        run: PipelineRun,
        units: List[NarrativeUnit],
        progress_callback: ProgressCallback = None
    ) -> None:
        run.status = RunStatus.GENERATING_UNITS
        run.touch()
        for unit in units:
            previous = run.unit_status.get(unit.unit_id, UnitStatus())
            run.unit_status[unit.unit_id] = UnitStatus(UnitState.PENDING, attempts=previous.attempts)

        semaphore = asyncio.Semaphore(self.config.pipeline.max_concurrency)
        progress_lock = asyncio.Lock()
        options = self._generation_options(run)
        total = len(units)
        completed = 0

        async def worker(unit: NarrativeUnit) -> None:
            nonlocal completed
            async with semaphore:
                if self.is_cancelled(run.run_id):
                    run.unit_status[unit.unit_id] = UnitStatus(
                        UnitState.CANCELLED, "run cancelled before unit started",
                        run.unit_status[unit.unit_id].attempts,
                    )
                else:
                    await self._generate_unit(run, unit, options)

            async with progress_lock:
                completed += 1
                state = run.unit_status[unit.unit_id].state
                await self._report_progress(
                    ProgressUpdate(
                        run_id=run.run_id,
                        current=completed,
                        total=total,
                        message=f"{unit.title}: {state.value}",
                        stage=RunStatus.GENERATING_UNITS.value,
                    ),
                    progress_callback,
                )

        logger.info(f"Generating {total} units (concurrency {self.config.pipeline.max_concurrency})")
        await asyncio.gather(*[worker(unit) for unit in units])

    async def _generate_unit(self, run: PipelineRun, unit: NarrativeUnit, options: GenerationOptions) -> None:
        attempts = run.unit_status[unit.unit_id].attempts + 1
        run.unit_status[unit.unit_id] = UnitStatus(UnitState.RUNNING, attempts=attempts)

        try:
            breakdown = await self.unit_generator.generate(
                unit, run.references, style=run.options.style, options=options
            )
            if self._media_enabled(run):
                breakdown.media = await self.media_generator.render(
                    unit, breakdown, run.references, run.options.media_kind
                )
        except PaletteError as e:
            logger.warning(f"{unit.unit_id} failed: {e}")
            run.unit_status[unit.unit_id] = UnitStatus(UnitState.FAILED, e.message, attempts)
            return
        except Exception as e:
            logger.error(f"{unit.unit_id} failed unexpectedly: {e}", exc_info=True)
            run.unit_status[unit.unit_id] = UnitStatus(UnitState.FAILED, str(e), attempts)
            return

        if self.is_cancelled(run.run_id):
            logger.info(f"{unit.unit_id}: discarding result of cancelled run")
            run.unit_status[unit.unit_id] = UnitStatus(
                UnitState.CANCELLED, "run cancelled; result discarded", attempts
            )
            return

        run.breakdowns[unit.unit_id] = breakdown
        run.unit_status[unit.unit_id] = UnitStatus(UnitState.SUCCEEDED, attempts=attempts)

    # =========================================================================
    # FOLLOW-UP OPERATIONS
    # =========================================================================

    async def retry_failed_units(self, run: PipelineRun, progress_callback: ProgressCallback = None) -> PipelineRun:
        """Re-run only failed and cancelled units, reusing references and units."""
        units = run.failed_units
        if not units:
            logger.info(f"Run {run.run_id}: no failed units to retry")
            return run

        logger.info(f"Run {run.run_id}: retrying {len(units)} units")
        self._track(run.run_id)
        run.error = None
        try:
            await self._generate_units(run, units, progress_callback)
            run.status = RunStatus.CANCELLED if self.is_cancelled(run.run_id) else RunStatus.COMPLETE
        finally:
            self._release(run.run_id)
            run.touch()
            await self._save(run)
        return run

    def _require_unit(self, run: PipelineRun, unit_id: str) -> NarrativeUnit:
        unit = run.get_unit(unit_id)
        if unit is None:
            raise UnitNotFoundError(unit_id, run.run_id)
        return unit

    async def regenerate_unit(self, run: PipelineRun, unit_id: str) -> PipelineRun:
        """
        Replace one unit's breakdown.

        On failure the previous breakdown is kept and the error propagates.
        """
        unit = self._require_unit(run, unit_id)
        attempts = run.unit_status.get(unit_id, UnitStatus()).attempts + 1

        breakdown = await self.unit_generator.generate(
            unit, run.references, style=run.options.style, options=self._generation_options(run)
        )
        run.breakdowns[unit_id] = breakdown
        run.unit_status[unit_id] = UnitStatus(UnitState.SUCCEEDED, attempts=attempts)
        run.touch()
        await self._save(run)
        logger.info(f"Regenerated {unit_id} in run {run.run_id}")
        return run

    async def add_shots(
        self,
        run: PipelineRun,
        unit_id: str,
        categories: List[str] = None,
        custom_request: str = "",
        count: int = 5
    ) -> PipelineRun:
        """Append extra shots to a unit that already has a breakdown."""
        unit = self._require_unit(run, unit_id)
        breakdown = run.breakdowns.get(unit_id)
        if breakdown is None:
            raise ContentError(unit_id, "unit has no breakdown to extend")

        run.breakdowns[unit_id] = await self.unit_generator.add_shots(
            unit,
            breakdown,
            run.references,
            categories=categories,
            custom_request=custom_request,
            count=count,
            style=run.options.style,
            options=self._generation_options(run),
        )
        run.touch()
        await self._save(run)
        return run

    async def _save(self, run: PipelineRun) -> None:
        if self.repository is None:
            return
        try:
            await self.repository.save(run)
        except Exception as e:
            logger.error(f"Failed to save run {run.run_id}: {e}")
