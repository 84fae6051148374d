"""
Tests for SSE Queue Lifetime

Tests for palette/api/routers/sse.py queue bookkeeping.
"""

import asyncio

import pytest

from palette.api.routers import sse


@pytest.fixture(autouse=True)
def clean_queues():
    yield
    sse._event_queues.clear()
    sse._run_complete.clear()
    sse._listeners.clear()


class TestReleaseWhenIdle:
    """Tests for release_when_idle."""

    @pytest.mark.asyncio
    async def test_unread_queue_released(self):
        sse.create_event_queue("run_1")
        await sse.emit_event("run_1", "complete", {"run_id": "run_1"})

        sse.release_when_idle("run_1", delay=0)
        await asyncio.sleep(0.01)

        assert sse.get_event_queue("run_1") is None
        assert "run_1" not in sse._run_complete

    @pytest.mark.asyncio
    async def test_replacement_queue_kept(self):
        """A retry's new queue survives the release scheduled for the first run."""
        sse.create_event_queue("run_1")
        sse.release_when_idle("run_1", delay=0)
        retry_queue = sse.create_event_queue("run_1")
        await asyncio.sleep(0.01)

        assert sse.get_event_queue("run_1") is retry_queue

    @pytest.mark.asyncio
    async def test_queue_kept_while_client_reading(self):
        sse.create_event_queue("run_1")
        sse._listeners["run_1"] = 1

        sse.release_when_idle("run_1", delay=0)
        await asyncio.sleep(0.01)

        assert sse.get_event_queue("run_1") is not None

    @pytest.mark.asyncio
    async def test_unknown_run_ignored(self):
        sse.release_when_idle("missing", delay=0)
        await asyncio.sleep(0.01)

        assert sse.get_event_queue("missing") is None
