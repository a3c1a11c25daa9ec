# app/features/story_generation/router.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, BackgroundTasks, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from app.config import config
from app.features.story_generation import service
from app.features.story_generation.schemas import AsyncAccepted, GenerationRequest, JobStatus, StorySummary
from app.lib import jobs
from app.lib.errors import DispatchError, PersistenceError
from app.lib.rate_limit import UserRateLimiter
from app.lib.single_flight import FlightHandle, SingleFlightRegistry
from app.logger import get_logger

router = APIRouter(prefix="/api/v1", tags=["stories"])
log = get_logger(__name__)


def _registry(request: Request) -> SingleFlightRegistry:
    return request.app.state.single_flight


def _cancel_hook(request_id: str) -> None:
    service.cancel_story_job(request_id)


def _run_and_release(registry: SingleFlightRegistry, user_id: str, request_id: str) -> None:
    try:
        service.run_story_job(request_id)
    finally:
        registry.release(user_id, request_id)


def _job_or_404(request_id: str) -> dict:
    try:
        mf = jobs.get_job(request_id)
    except ValueError:
        mf = None
    if mf is None:
        raise HTTPException(404, f"unknown request_id {request_id}")
    return mf


def _enforce_rate_limit(request: Request, user_id: str) -> None:
    limiter: UserRateLimiter = request.app.state.rate_limiter
    decision = limiter.check(user_id)
    if not decision.allowed:
        raise HTTPException(
            status_code=429,
            detail={
                "error": f"Rate limit exceeded. You can generate up to {decision.limit} stories "
                         f"per {limiter.window_s} seconds. Please wait before creating more.",
                "limit": decision.limit,
                "remaining": decision.remaining,
                "reset": decision.reset,
            },
            headers=decision.headers(),
        )


@router.post("/stories/generate", response_model=StorySummary)
def generate_story(req: GenerationRequest, request: Request) -> StorySummary:
    """Blocking variant: runs the full pipeline and returns the saved story."""
    _enforce_rate_limit(request, req.user_id)
    log.info(f"sync generation for user {req.user_id} ({len(req.images)} image(s), {req.language})")
    try:
        return service.generate_story_sync(req)
    except PersistenceError as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/stories/generate/async", status_code=202, response_model=AsyncAccepted)
def enqueue_story(req: GenerationRequest, request: Request, background_tasks: BackgroundTasks) -> AsyncAccepted:
    """
    Fire-and-forget. Creates and dispatches the job (Cloud Tasks or an
    in-process background task), then supersedes the user's previous one.
    """
    _enforce_rate_limit(request, req.user_id)
    try:
        request_id, request_gcs = service.create_story_job(req)
        if config.use_cloud_tasks:
            service.enqueue_story_job(request_id, request_gcs)
    except DispatchError as e:
        # the new job is already failed; the previous one keeps running
        log.error(f"could not dispatch story for user {req.user_id}: {e}")
        raise HTTPException(503, "could not queue story generation")

    registry = _registry(request)
    previous = registry.supersede(req.user_id, FlightHandle(request_id, on_cancel=_cancel_hook))
    if not config.use_cloud_tasks:
        background_tasks.add_task(_run_and_release, registry, req.user_id, request_id)

    log.info(f"[{request_id}] queued for user {req.user_id}")
    return AsyncAccepted(
        request_id=request_id,
        status_url=f"/api/v1/stories/generate/status/{request_id}",
        stop_url=f"/api/v1/stories/generate/stop/{request_id}",
        worker_url=f"/api/v1/tasks/worker/story/{request_id}",  # local testing
        superseded=previous.request_id if previous else None,
    )


@router.get("/stories/generate/status/{request_id}", response_model=JobStatus)
def story_status(request_id: str) -> JobStatus:
    return JobStatus.from_manifest(_job_or_404(request_id))


@router.post("/stories/generate/stop/{request_id}")
def stop_story(request_id: str, request: Request) -> dict:
    mf = _job_or_404(request_id)
    outcome = service.cancel_story_job(request_id)
    if outcome is None:
        raise HTTPException(404, f"unknown request_id {request_id}")
    _registry(request).release(mf.get("user_id") or "", request_id)
    return {"request_id": request_id, **outcome}


@router.post("/tasks/worker/story/{request_id}")
async def story_worker(request_id: str, request: Request) -> JSONResponse:
    """
    Cloud Tasks target. Idempotent: a job that is already running, finished
    or cancelled is acked without running again. A job created on another
    instance is adopted from its mirrored request.
    """
    request_gcs: Optional[str] = None
    raw = await request.body()
    if raw:
        try:
            body = await request.json()
        except ValueError:
            raise HTTPException(status_code=400, detail="invalid JSON body")
        if isinstance(body, dict):
            request_gcs = body.get("request_gcs")

    try:
        mf = jobs.get_job(request_id)
    except ValueError:
        log.error(f"[{request_id}] worker called with an invalid request id; acking")
        return JSONResponse({"request_id": request_id, "ok": False, "error": "invalid request_id"})
    if mf is None and request_gcs:
        mf = await run_in_threadpool(service.adopt_story_job, request_id, request_gcs)
    if mf is None:
        # nothing to run here and nothing to fetch; ack so the queue stops retrying
        log.error(f"[{request_id}] worker called for unknown job; acking")
        return JSONResponse({"request_id": request_id, "ok": False, "error": "unknown request_id"})
    if mf.get("cancelled"):
        log.info(f"[{request_id}] already cancelled; acking")
        return JSONResponse({"request_id": request_id, "ok": True, "cancelled": True})

    await run_in_threadpool(service.run_story_job, request_id, request_gcs=request_gcs)
    _registry(request).release(mf.get("user_id") or "", request_id)

    final = jobs.get_job(request_id) or mf
    return JSONResponse({"request_id": request_id, "ok": True, "state": final["state"]})
