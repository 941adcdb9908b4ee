"""Health check endpoint."""

import platform
import sys

from fastapi import APIRouter, Request

router = APIRouter()


@router.get("/health")
async def health_check(request: Request):
    """Service liveness plus in-memory job and stream counts."""
    state = request.app.state
    return {
        "status": "healthy",
        "jobs": len(state.registry),
        "running": len(state.runner.active_jobs()),
        "subscribers": state.broadcaster.subscriber_count(),
        "data_dir": str(state.result_store.base_dir),
        "python_version": sys.version,
        "platform": platform.platform(),
    }
