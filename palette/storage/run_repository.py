"""
Run persistence.

RunRepository is the narrow interface the pipeline saves through. Runs
are stored as their to_dict() form so stored copies never alias live
objects.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Dict, Optional

from palette.core.logging_config import get_logger
from palette.storyboard.models import PipelineRun

logger = get_logger("storage.runs")

RUNS_TABLE = "palette_runs"


class RunRepository(ABC):
    """Load and save PipelineRuns."""

    @abstractmethod
    async def save(self, run: PipelineRun) -> None:
        pass

    @abstractmethod
    async def get(self, run_id: str) -> Optional[PipelineRun]:
        """Fetch a run by id."""
        pass

    @abstractmethod
    async def load(self, project_id: str) -> Optional[PipelineRun]:
        """Fetch the most recently updated run of a project."""
        pass


class InMemoryRunRepository(RunRepository):
    """Process-local repository used by the CLI and tests."""

    def __init__(self):
        self._runs: Dict[str, dict] = {}
        self._latest: Dict[str, str] = {}

    async def save(self, run: PipelineRun) -> None:
        self._runs[run.run_id] = run.to_dict()
        self._latest[run.project_id] = run.run_id

    async def get(self, run_id: str) -> Optional[PipelineRun]:
        data = self._runs.get(run_id)
        return PipelineRun.from_dict(data) if data else None

    async def load(self, project_id: str) -> Optional[PipelineRun]:
        run_id = self._latest.get(project_id)
        return await self.get(run_id) if run_id else None


class SupabaseRunRepository(RunRepository):
    """
    Stores runs in a Supabase table.

    Expected columns: run_id (primary key), project_id, status,
    data (jsonb), updated_at.
    """

    def __init__(self, client, table: str = RUNS_TABLE):
        self.client = client
        self.table = table

    def _upsert(self, run: PipelineRun) -> None:
        self.client.table(self.table).upsert({
            "run_id": run.run_id,
            "project_id": run.project_id,
            "status": run.status.value,
            "data": run.to_dict(),
            "updated_at": run.updated_at,
        }, on_conflict="run_id").execute()

    def _select_one(self, column: str, value: str) -> Optional[dict]:
        response = self.client.table(self.table) \
            .select("data") \
            .eq(column, value) \
            .order("updated_at", desc=True) \
            .limit(1) \
            .execute()
        rows = response.data or []
        return rows[0]["data"] if rows else None

    async def save(self, run: PipelineRun) -> None:
        await asyncio.to_thread(self._upsert, run)
        logger.debug(f"Saved run {run.run_id} ({run.status.value})")

    async def get(self, run_id: str) -> Optional[PipelineRun]:
        data = await asyncio.to_thread(self._select_one, "run_id", run_id)
        return PipelineRun.from_dict(data) if data else None

    async def load(self, project_id: str) -> Optional[PipelineRun]:
        data = await asyncio.to_thread(self._select_one, "project_id", project_id)
        return PipelineRun.from_dict(data) if data else None
