"""Crawl job API: submit, poll, list, delete, and a live update stream."""

import json
from typing import AsyncIterator, Awaitable, Callable

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from harvest_api.api.deps import get_broadcaster, get_registry, get_runner, get_settings
from harvest_api.config import Settings
from harvest_api.errors import JobNotFound
from harvest_api.jobs.broadcaster import EventBroadcaster, QueueSink, Subscription
from harvest_api.jobs.models import CrawlJobParams
from harvest_api.jobs.registry import JobRegistry
from harvest_api.jobs.runner import JobRunner

router = APIRouter(prefix="/crawl")

_STREAM_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


@router.post("/start")
async def start_crawl(
    params: CrawlJobParams,
    runner: JobRunner = Depends(get_runner),
):
    """Start a crawl in the background and return its job (already running)."""
    job = await runner.submit(params)
    return job.to_wire()


@router.get("/status/{job_id}")
async def get_job_status(job_id: str, registry: JobRegistry = Depends(get_registry)):
    """Current job snapshot; also the polling fallback for the event stream."""
    return registry.get(job_id).to_wire()


@router.get("/jobs")
async def list_jobs(registry: JobRegistry = Depends(get_registry)):
    return [job.to_wire() for job in registry.list()]


@router.delete("/jobs/{job_id}")
async def delete_job(job_id: str, registry: JobRegistry = Depends(get_registry)):
    """Forget a job record. Its artifact, if any, is left alone."""
    if not registry.delete(job_id):
        raise JobNotFound(job_id)
    return {"success": True}


@router.get("/events/{job_id}")
async def job_events(
    job_id: str,
    request: Request,
    registry: JobRegistry = Depends(get_registry),
    broadcaster: EventBroadcaster = Depends(get_broadcaster),
    settings: Settings = Depends(get_settings),
):
    """Server-Sent Events stream of job snapshots, one per state change.

    Nothing is replayed on connect; read /status first for the current state.
    The stream ends once a terminal status has been sent, or immediately if
    the job had already finished when the client connected.
    """
    # Subscribe before reading the snapshot so no transition falls in between
    sink = QueueSink()
    handle = broadcaster.subscribe(job_id, sink)
    try:
        snapshot = registry.get(job_id)
    except JobNotFound:
        broadcaster.unsubscribe(handle)
        raise

    if snapshot.status.is_terminal:
        broadcaster.unsubscribe(handle)
        return StreamingResponse(
            iter(()), media_type="text/event-stream", headers=_STREAM_HEADERS
        )

    return StreamingResponse(
        stream_job_updates(
            broadcaster, handle, sink,
            keepalive=settings.sse_keepalive_seconds,
            is_disconnected=request.is_disconnected,
        ),
        media_type="text/event-stream",
        headers=_STREAM_HEADERS,
    )


async def stream_job_updates(
    broadcaster: EventBroadcaster,
    handle: Subscription,
    sink: QueueSink,
    keepalive: float,
    is_disconnected: Callable[[], Awaitable[bool]],
) -> AsyncIterator[str]:
    try:
        while True:
            job = await sink.get(timeout=keepalive)
            if job is None:
                if await is_disconnected():
                    break
                yield ": keep-alive\n\n"
                continue
            yield f"data: {json.dumps(job.to_wire())}\n\n"
            if job.status.is_terminal:
                break
    finally:
        broadcaster.unsubscribe(handle)
