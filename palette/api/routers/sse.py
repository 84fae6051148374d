"""SSE (Server-Sent Events) router for run progress.

Clients subscribe to a run's queue and receive `progress` events after
each unit, then a single terminal `complete` or `error` event.
"""

import asyncio
import json
from typing import AsyncGenerator, Dict, Optional

from fastapi import APIRouter, Request
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

from palette.core.logging_config import get_logger

logger = get_logger("api.sse")

router = APIRouter()

TERMINAL_EVENTS = ("complete", "error")

KEEPALIVE_SECONDS = 30.0

# How long a finished run's events stay available to late subscribers
STREAM_RETENTION_SECONDS = 120.0

# Key: run_id, Value: asyncio.Queue of SSE events
_event_queues: Dict[str, asyncio.Queue] = {}

_run_complete: Dict[str, bool] = {}

_listeners: Dict[str, int] = {}


class SSEEvent(BaseModel):
    """SSE event structure."""
    event: str
    data: dict


def create_event_queue(run_id: str) -> asyncio.Queue:
    """Create a new event queue for a run."""
    queue = asyncio.Queue()
    _event_queues[run_id] = queue
    _run_complete[run_id] = False
    return queue


def get_event_queue(run_id: str) -> Optional[asyncio.Queue]:
    return _event_queues.get(run_id)


async def emit_event(run_id: str, event_type: str, data: dict):
    """Queue an event for listeners of a run."""
    queue = _event_queues.get(run_id)
    if queue:
        await queue.put(SSEEvent(event=event_type, data=data))
        if event_type in TERMINAL_EVENTS:
            _run_complete[run_id] = True


def progress_emitter(run_id: str):
    """Progress callback that forwards ProgressUpdates to the run's stream."""
    async def _emit(update) -> None:
        await emit_event(run_id, "progress", update.to_dict())
    return _emit


def cleanup_run(run_id: str):
    """Release the queue of a finished run."""
    _event_queues.pop(run_id, None)
    _run_complete.pop(run_id, None)


def release_when_idle(run_id: str, delay: float = STREAM_RETENTION_SECONDS) -> None:
    """
    Schedule the queue of a finished run for release.

    After `delay` seconds the queue is dropped unless a client is still
    reading it (that client releases it on the terminal event) or a retry
    has replaced it with a new queue.
    """
    queue = _event_queues.get(run_id)
    if queue is None:
        return

    def _release() -> None:
        if _event_queues.get(run_id) is not queue or _listeners.get(run_id, 0) > 0:
            return
        logger.debug(f"Releasing unread event queue of run {run_id}")
        cleanup_run(run_id)

    asyncio.get_running_loop().call_later(delay, _release)


def format_event(event: SSEEvent) -> str:
    return f"event: {event.event}\ndata: {json.dumps(event.data)}\n\n"


async def event_generator(run_id: str, request: Request) -> AsyncGenerator[str, None]:
    """Generate SSE events for a run."""
    queue = get_event_queue(run_id)

    if not queue:
        yield f"event: error\ndata: {json.dumps({'message': 'Run stream not found'})}\n\n"
        return

    _listeners[run_id] = _listeners.get(run_id, 0) + 1
    try:
        while True:
            if await request.is_disconnected():
                logger.info(f"SSE client disconnected from run {run_id}")
                break

            try:
                event = await asyncio.wait_for(queue.get(), timeout=KEEPALIVE_SECONDS)
                yield format_event(event)

                if _run_complete.get(run_id, False) and queue.empty():
                    logger.info(f"Run {run_id} finished, closing SSE stream")
                    cleanup_run(run_id)
                    break

            except asyncio.TimeoutError:
                yield ": keepalive\n\n"

    except asyncio.CancelledError:
        logger.info(f"SSE stream cancelled for run {run_id}")
    finally:
        remaining = _listeners.pop(run_id, 1) - 1
        if remaining > 0:
            _listeners[run_id] = remaining
        elif _run_complete.get(run_id, False) and _event_queues.get(run_id) is queue:
            cleanup_run(run_id)


@router.get("/stream/{run_id}")
async def stream_run_events(run_id: str, request: Request):
    """Stream SSE events for a run.

    Event types:
    - progress: a unit finished (current, total, message, stage, percent)
    - complete: the run reached complete or cancelled
    - error: the run failed
    """
    return StreamingResponse(
        event_generator(run_id, request),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        }
    )
