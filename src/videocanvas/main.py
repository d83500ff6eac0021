"""
videocanvas Preprocessing Service
=================================

FastAPI entry point for the video preprocessing scheduler.

Each request is downloaded and packed through the bounded download and
process queues of one VideoPreprocessor; the response body is the packed
payload consumed by VideoCanvas.load().

Endpoints:
    POST /video_preprocess - Canvas options JSON -> packed payload
    GET  /                 - Service information
    GET  /health           - Liveness probe (is process alive?)
    GET  /ready            - Readiness probe (scheduler loops running?)
    GET  /metrics          - Queue and scheduler metrics
"""

import logging
import os
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI, HTTPException
from fastapi.responses import JSONResponse, Response

from videocanvas.config import settings
from videocanvas.errors import FetchError, SchedulerTaskError
from videocanvas.models import VideoCanvasOptions
from videocanvas.scheduler import VideoPreprocessor


logger = logging.getLogger(__name__)


# =============================================================================
# Global State
# =============================================================================

_preprocessor: Optional[VideoPreprocessor] = None
_startup_time: float = 0.0

# Request counters
_requests_served: int = 0
_requests_failed: int = 0
_scheduler_error_count: int = 0


# =============================================================================
# Getters
# =============================================================================

def get_preprocessor() -> Optional[VideoPreprocessor]:
    return _preprocessor

def is_ready() -> bool:
    return _preprocessor is not None and _preprocessor.running


def _on_scheduler_error(error: SchedulerTaskError) -> None:
    global _scheduler_error_count
    _scheduler_error_count += 1
    logger.error(f"Scheduler error (queue={error.queue}): {error}")


# =============================================================================
# Lifespan Management
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan manager: runs the scheduler loops."""
    global _preprocessor, _startup_time

    _startup_time = time.time()
    logger.info(f"Starting {settings.app.name} {settings.app.version}")

    _preprocessor = VideoPreprocessor(
        parallel_downloads=settings.scheduler.parallel_downloads,
        parallel_process=settings.scheduler.parallel_process,
        dispatch_interval=settings.scheduler.dispatch_interval_ms / 1000.0,
        download_timeout=settings.scheduler.download_timeout_seconds,
        cache_max_entries=settings.scheduler.cache_max_entries,
        cache_max_bytes=settings.scheduler.cache_max_mb * 1024 * 1024,
    )
    _preprocessor.add_error_listener(_on_scheduler_error)
    _preprocessor.start()

    yield

    logger.info("Shutting down gracefully...")
    await _preprocessor.stop()
    _preprocessor.remove_error_listener(_on_scheduler_error)
    logger.info("Shutdown complete")


# =============================================================================
# FastAPI Application
# =============================================================================

app = FastAPI(
    title="videocanvas",
    description="Video download and payload packing service",
    version=settings.app.version,
    lifespan=lifespan,
)


# =============================================================================
# HTTP Endpoints
# =============================================================================

@app.post("/video_preprocess")
async def video_preprocess(options: VideoCanvasOptions) -> Response:
    """
    Download the source (and mask) and return the packed payload.

    Returns 502 if a download failed after its retries, 503 if the
    scheduler is not running.
    """
    global _requests_served, _requests_failed

    preprocessor = get_preprocessor()
    if preprocessor is None or not preprocessor.running:
        raise HTTPException(status_code=503, detail="Scheduler not running")

    try:
        payload = await preprocessor.process(options)
    except FetchError as e:
        _requests_failed += 1
        logger.warning(f"Preprocess failed for {options.url}: {e}")
        raise HTTPException(status_code=502, detail=str(e))

    _requests_served += 1
    return Response(content=payload, media_type="application/octet-stream")


@app.get("/")
async def root() -> JSONResponse:
    """Service information endpoint."""
    return JSONResponse({
        "service": "videocanvas",
        "version": settings.app.version,
        "name": settings.app.name,
        "status": "running",
    })


@app.get("/health")
async def health() -> JSONResponse:
    """
    Liveness probe - is the process alive?

    Always returns 200 if the service is running.
    """
    return JSONResponse({
        "status": "healthy",
        "uptime_seconds": round(time.time() - _startup_time, 1),
    })


@app.get("/ready")
async def ready() -> JSONResponse:
    """
    Readiness probe - are the scheduler loops running?

    Returns 503 if not ready.
    """
    if is_ready():
        return JSONResponse({
            "status": "ready",
            "scheduler_running": True,
        })
    return JSONResponse(
        {
            "status": "not_ready",
            "scheduler_running": False,
        },
        status_code=503,
    )


@app.get("/metrics")
async def metrics() -> JSONResponse:
    """Detailed metrics for observability."""
    preprocessor = get_preprocessor()
    scheduler_metrics = preprocessor.metrics() if preprocessor else {}

    return JSONResponse({
        "uptime_seconds": round(time.time() - _startup_time, 1),
        "requests_served": _requests_served,
        "requests_failed": _requests_failed,
        "scheduler_errors": _scheduler_error_count,
        "scheduler": scheduler_metrics,
    })


# =============================================================================
# Main Entry Point
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    # Cloud Run uses PORT env var
    port = int(os.environ.get("PORT", settings.server.port))

    uvicorn.run(
        "videocanvas.main:app",
        host=settings.server.host,
        port=port,
        reload=False,
    )
