"""
Palette Base Pipeline

Abstract base class for run-oriented pipelines.
"""

import inspect
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Callable, Optional, Set

from palette.core.logging_config import get_logger

logger = get_logger("pipelines.base")

ProgressCallback = Callable[[Any], Any]


class BasePipeline(ABC):
    """
    Abstract base class for processing pipelines.

    Features:
    - Per-run cancellation flags, honoured only for runs this pipeline has open
    - Progress callbacks (sync or async)
    - Duration tracking
    """

    def __init__(self, name: str):
        """
        Initialize the pipeline.

        Args:
            name: Pipeline name
        """
        self.name = name
        self._cancelled: Set[str] = set()
        self._open: Set[str] = set()
        self._progress_callback: Optional[ProgressCallback] = None

    @abstractmethod
    async def execute(self, run: Any, progress_callback: ProgressCallback = None) -> Any:
        """Drive `run` to a terminal state. Override in subclasses."""
        pass

    def _track(self, run_id: str) -> None:
        """Mark a run as open so cancel requests for it are accepted."""
        self._open.add(run_id)

    def cancel(self, run_id: str) -> bool:
        """
        Request cancellation of an open run.

        Returns False, and records nothing, for runs that are not open.
        """
        if run_id not in self._open:
            logger.info(f"Pipeline {self.name}: ignoring cancel for {run_id}, not running")
            return False
        self._cancelled.add(run_id)
        logger.info(f"Pipeline {self.name}: cancellation requested for {run_id}")
        return True

    def is_cancelled(self, run_id: str) -> bool:
        return run_id in self._cancelled

    def _release(self, run_id: str) -> None:
        """Forget a run that reached a terminal state, with any pending cancel."""
        self._open.discard(run_id)
        self._cancelled.discard(run_id)

    def set_progress_callback(self, callback: ProgressCallback) -> None:
        """Set a default callback for progress updates."""
        self._progress_callback = callback

    async def _report_progress(self, update: Any, callback: ProgressCallback = None) -> None:
        """Deliver `update` to the callback, awaiting it when it is a coroutine."""
        callback = callback or self._progress_callback
        if callback is None:
            return
        try:
            result = callback(update)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.warning(f"Progress callback failed: {e}")

    def _get_duration(self, start_time: datetime) -> float:
        """Get duration since start time."""
        return (datetime.now() - start_time).total_seconds()
