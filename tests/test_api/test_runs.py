"""
Tests for the Runs API

Tests for palette/api/main.py, routers/runs.py and routers/sse.py using
FastAPI's TestClient. The pipeline and repository dependencies are
overridden; background tasks finish before each request returns.
"""

import asyncio
import re

import pytest
from fastapi.testclient import TestClient

from palette.api.deps import get_pipeline, get_repository
from palette.api.main import app
from palette.api.routers import runs
from palette.pipelines.breakdown_pipeline import BreakdownPipeline
from palette.references.extractor import EXTRACTION_SYSTEM_PROMPT
from palette.storage.credits import InMemoryCreditLedger
from palette.storage.run_repository import InMemoryRunRepository
from palette.storyboard.models import InputDocument, PipelineRun
from palette.storyboard.prompts import ADDITIONAL_SHOTS_SYSTEM_PROMPT, UNIT_SYSTEM_PROMPT


class AvailableMediaClient:
    is_available = True

    async def generate(self, request):
        raise AssertionError("media should not be rendered in these tests")


@pytest.fixture
def failing_titles():
    return set()


@pytest.fixture
def handler(story_extraction, title_of, failing_titles):
    def _handle(prompt, system_prompt):
        if system_prompt == EXTRACTION_SYSTEM_PROMPT:
            return story_extraction
        if system_prompt == UNIT_SYSTEM_PROMPT:
            title = title_of(prompt)
            if title in failing_titles:
                return "not a breakdown"
            return {"shots": [f"@john in {title}."], "coverage_analysis": "ok"}
        if system_prompt == ADDITIONAL_SHOTS_SYSTEM_PROMPT:
            return {"new_shots": ["Close on @sarah's hands."]}
        return ""
    return _handle


@pytest.fixture
def repository():
    return InMemoryRunRepository()


@pytest.fixture
def make_client(make_generator, engine_config, repository, handler):
    """Yield a factory for TestClients bound to a custom pipeline."""
    clients = []

    def _make(available=True, **pipeline_kwargs):
        pipeline = BreakdownPipeline(
            make_generator(handler=handler, available=available),
            config=engine_config,
            repository=repository,
            **pipeline_kwargs,
        )
        app.dependency_overrides[get_pipeline] = lambda: pipeline
        app.dependency_overrides[get_repository] = lambda: repository
        runs.limiter.reset()
        client = TestClient(app)
        client.__enter__()
        clients.append(client)
        client.pipeline = pipeline
        return client

    yield _make

    for client in clients:
        client.__exit__(None, None, None)
    app.dependency_overrides.clear()


@pytest.fixture
def client(make_client):
    return make_client()


def start_run(client, text, **extra):
    response = client.post("/api/runs", json={"project_id": "proj-1", "text": text, **extra})
    assert response.status_code == 200, response.text
    return response.json()["run_id"]


class TestHealth:
    def test_health(self, client):
        response = client.get("/api/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_root(self, client):
        assert client.get("/").json()["message"] == "Palette API"


class TestStartRun:
    """POST /api/runs and GET /api/runs/{run_id}."""

    def test_run_completes(self, client, sample_story_text):
        run_id = start_run(client, sample_story_text)

        response = client.get(f"/api/runs/{run_id}")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "complete"
        assert [u["unit_id"] for u in body["units"]] == [f"chapter-{i}" for i in range(1, 6)]
        assert body["breakdowns"]["chapter-1"]["shots"] == ["@john in Chapter 1: The Meeting."]
        assert {s["state"] for s in body["unit_status"].values()} == {"succeeded"}

    def test_latest_run_for_project(self, client, sample_story_text):
        run_id = start_run(client, sample_story_text)

        assert client.get("/api/runs/project/proj-1").json()["run_id"] == run_id
        assert client.get("/api/runs/project/proj-unknown").status_code == 404

    def test_supplied_references(self, client, sample_story_text):
        run_id = start_run(client, sample_story_text, references={
            "character": [{"handle": "@john", "name": "John", "description": "Grey coat"}],
        })

        body = client.get(f"/api/runs/{run_id}").json()

        assert body["references_supplied"] is True
        assert [r["handle"] for r in body["references"]["character"]] == ["@john"]

    def test_style_record_accepted(self, client, sample_story_text):
        run_id = start_run(client, sample_story_text, style={"name": "Wes Anderson", "color_palette": "Pastel"})

        body = client.get(f"/api/runs/{run_id}").json()

        assert body["options"]["style"]["name"] == "Wes Anderson"

    def test_invalid_request(self, client, sample_story_text):
        response = client.post("/api/runs", json={
            "project_id": "proj-1", "text": sample_story_text, "target_unit_count": 0,
        })

        assert response.status_code == 422

    def test_unknown_run(self, client):
        response = client.get("/api/runs/run_missing")

        assert response.status_code == 404
        assert response.json()["error"] == "RunNotFoundError"

    def test_unconfigured_provider(self, make_client, sample_story_text):
        client = make_client(available=False)

        response = client.post("/api/runs", json={"project_id": "proj-1", "text": sample_story_text})

        assert response.status_code == 503
        assert response.json()["error"] == "MissingConfigError"

    def test_insufficient_credits(self, make_client, sample_story_text):
        client = make_client(media_client=AvailableMediaClient(), credits=InMemoryCreditLedger(balance=0))

        response = client.post("/api/runs", json={
            "project_id": "proj-1", "text": sample_story_text, "media_kind": "image",
        })

        assert response.status_code == 402
        assert response.json()["details"]["required"] == 12


class TestProgressStream:
    """GET /api/runs/stream/{run_id}."""

    def test_events_replayed_until_complete(self, client, sample_story_text):
        run_id = start_run(client, sample_story_text)

        body = client.get(f"/api/runs/stream/{run_id}").text

        events = re.findall(r"^event: (\w+)$", body, re.MULTILINE)
        assert events == ["progress"] * 5 + ["complete"]

    def test_unknown_stream(self, client):
        body = client.get("/api/runs/stream/run_missing").text

        assert "Run stream not found" in body


class TestFollowUps:
    """Cancel, retry, regenerate and add shots."""

    def test_cancel_finished_run(self, client, sample_story_text):
        run_id = start_run(client, sample_story_text)

        body = client.post(f"/api/runs/{run_id}/cancel").json()

        assert body["success"] is False
        assert body["status"] == "complete"

    def test_cancel_active_run(self, client):
        run = asyncio.run(client.pipeline.create_run("proj-1", InputDocument("Chapter 1\nText.")))

        body = client.post(f"/api/runs/{run.run_id}/cancel").json()

        assert body["success"] is True
        assert client.pipeline.is_cancelled(run.run_id)

    def test_cancel_run_unknown_to_pipeline(self, client, repository):
        run = PipelineRun("proj-1", InputDocument("Chapter 1\nText."))
        asyncio.run(repository.save(run))

        body = client.post(f"/api/runs/{run.run_id}/cancel").json()

        assert body["success"] is False
        assert not client.pipeline.is_cancelled(run.run_id)

    def test_follow_up_on_active_run_conflicts(self, client, repository):
        run = PipelineRun("proj-1", InputDocument("Chapter 1\nText."))
        asyncio.run(repository.save(run))

        response = client.post(f"/api/runs/{run.run_id}/units/chapter-1/regenerate")

        assert response.status_code == 409

    def test_retry_failed_units(self, client, failing_titles, sample_story_text):
        failing_titles.add("Chapter 3: The Betrayal")
        run_id = start_run(client, sample_story_text)
        assert client.get(f"/api/runs/{run_id}").json()["unit_status"]["chapter-3"]["state"] == "failed"

        failing_titles.clear()
        body = client.post(f"/api/runs/{run_id}/retry").json()

        assert body["success"] is True
        assert body["message"] == "Retrying 1 units"
        status = client.get(f"/api/runs/{run_id}").json()["unit_status"]["chapter-3"]
        assert status == {"state": "succeeded", "reason": None, "attempts": 2}

    def test_retry_with_nothing_failed(self, client, sample_story_text):
        run_id = start_run(client, sample_story_text)

        assert client.post(f"/api/runs/{run_id}/retry").json()["success"] is False

    def test_regenerate_unit(self, client, sample_story_text):
        run_id = start_run(client, sample_story_text)

        response = client.post(f"/api/runs/{run_id}/units/chapter-2/regenerate")

        assert response.status_code == 200
        assert response.json()["shots"] == ["@john in Chapter 2: The Deal."]

    def test_regenerate_unknown_unit(self, client, sample_story_text):
        run_id = start_run(client, sample_story_text)

        response = client.post(f"/api/runs/{run_id}/units/chapter-99/regenerate")

        assert response.status_code == 404
        assert response.json()["error"] == "UnitNotFoundError"

    def test_regenerate_failure_keeps_breakdown(self, client, failing_titles, sample_story_text):
        run_id = start_run(client, sample_story_text)
        failing_titles.add("Chapter 2: The Deal")

        response = client.post(f"/api/runs/{run_id}/units/chapter-2/regenerate")

        assert response.status_code == 422
        breakdown = client.get(f"/api/runs/{run_id}").json()["breakdowns"]["chapter-2"]
        assert breakdown["shots"] == ["@john in Chapter 2: The Deal."]

    def test_add_shots(self, client, sample_story_text):
        run_id = start_run(client, sample_story_text)

        response = client.post(f"/api/runs/{run_id}/units/chapter-1/shots", json={
            "categories": ["insert"], "custom_request": "Hands", "count": 1,
        })

        assert response.status_code == 200
        assert response.json()["added_shots"] == ["Close on @sarah's hands."]

    def test_add_shots_count_validated(self, client, sample_story_text):
        run_id = start_run(client, sample_story_text)

        response = client.post(f"/api/runs/{run_id}/units/chapter-1/shots", json={"count": 0})

        assert response.status_code == 422
