# app/features/story_generation/service.py
"""
Story pipeline orchestration.

    ingestion -> analysis -> prompt -> narrative -> narration -> persistence

Stages run strictly in sequence. Image, scene, title and narration failures
degrade the story; only persistence of the story row (or an unexpected
exception) fails the job.
"""
from __future__ import annotations

import json
import os
import uuid
from typing import Callable, Dict, Optional, Tuple

from pydantic import ValidationError as RequestValidationError

from app.config import config
from app.features.story_generation.assets import ingest_images
from app.features.story_generation.narration import synthesize_narration
from app.features.story_generation.narrative import generate_narrative
from app.features.story_generation.persistence import persist_story
from app.features.story_generation.prompt import build_story_prompt
from app.features.story_generation.scenes import analyze_scenes
from app.features.story_generation.schemas import GenerationRequest, NarrationAsset, StorySummary
from app.lib import cloud_tasks, gcs_storage, jobs
from app.lib.errors import DispatchError, PipelineError, SynthesisError, ValidationError
from app.lib.outcome import Outcome
from app.lib.paths import job_dir, request_path
from app.logger import job_logger

ProgressFn = Callable[[float, str], None]

# progress reported when each stage starts
CHECKPOINTS: Dict[str, float] = {
    "ingestion": 0.1,
    "analysis": 0.2,
    "narrative": 0.4,
    "narration": 0.8,
    "persistence": 0.9,
}


def _noop_progress(progress: float, step: str) -> None:
    return None


def run_pipeline(
    req: GenerationRequest,
    *,
    story_id: str,
    on_progress: Optional[ProgressFn] = None,
) -> StorySummary:
    log = job_logger(__name__, story_id)
    report = on_progress or _noop_progress

    def checkpoint(step: str) -> None:
        log.info(f"{step} ({CHECKPOINTS[step]:.0%})")
        report(CHECKPOINTS[step], step)

    checkpoint("ingestion")
    image_urls = ingest_images(story_id, req.images)

    checkpoint("analysis")
    scenes = analyze_scenes(image_urls)

    checkpoint("narrative")
    prompt = build_story_prompt(
        scenes=scenes,
        characters=req.characters,
        theme=req.theme,
        duration=req.duration,
        language=req.language,
    )
    story = generate_narrative(prompt, req.language, log=log)

    checkpoint("narration")

    def _silent(err: PipelineError) -> NarrationAsset:
        log.warning(f"narration unavailable, saving story without audio: {err}")
        return NarrationAsset(audio_url=None, source_text=story.content)

    narration = Outcome.attempt(
        synthesize_narration,
        story_id,
        story.content,
        voice=req.voice,
        language=req.language,
        log=log,
        kind=SynthesisError,
    ).recover(_silent)

    checkpoint("persistence")
    summary = persist_story(
        story_id=story_id,
        req=req,
        story=story,
        narration=narration,
        image_urls=image_urls,
        scenes=scenes,
        log=log,
    )
    log.info(f"story {summary.title!r} ready (audio={'yes' if summary.audio_url else 'no'})")
    return summary


def generate_story_sync(req: GenerationRequest) -> StorySummary:
    """Run the whole pipeline on the calling thread. Raises PersistenceError."""
    return run_pipeline(req, story_id=str(uuid.uuid4()))


# ---------------------------
# Async jobs
# ---------------------------

def request_object_name(request_id: str) -> str:
    return f"jobs/{request_id}/request.json"


def create_story_job(req: GenerationRequest) -> Tuple[str, Optional[str]]:
    """
    Register a pending job and persist its request.
    Returns (request_id, gs_uri of the mirrored request or None).
    Raises DispatchError (with the job already failed) if the mirror upload fails.
    """
    request_id = str(uuid.uuid4())
    jobs.create_job(request_id, user_id=req.user_id)

    payload = req.model_dump(mode="json")
    with open(request_path(job_dir(request_id)), "w") as f:
        json.dump(payload, f, indent=2, ensure_ascii=False)

    request_gcs = None
    if config.use_cloud_tasks:
        mirrored = Outcome.attempt(
            gcs_storage.upload_json_to_gcs,
            payload,
            object_name=request_object_name(request_id),
            kind=DispatchError,
        )
        if not mirrored.ok:
            _fail_dispatch(request_id, f"request upload failed: {mirrored.error}")
        request_gcs = mirrored.unwrap()["gs_uri"]
    return request_id, request_gcs


def enqueue_story_job(request_id: str, request_gcs: Optional[str]) -> str:
    """
    Hand the job to Cloud Tasks; returns the task name.
    Raises DispatchError (with the job already failed) if the queue refuses it.
    """
    queued = Outcome.attempt(cloud_tasks.enqueue_story_job, request_id, request_gcs=request_gcs, kind=DispatchError)
    if not queued.ok:
        _fail_dispatch(request_id, f"enqueue failed: {queued.error}")
    task = queued.unwrap()
    jobs.set_task_name(request_id, task.name)
    return task.name


def _fail_dispatch(request_id: str, error: str) -> None:
    job_logger(__name__, request_id).error(error)
    jobs.update_job(request_id, state=jobs.FAILED, step="failed", error=error)


def load_job_request(request_id: str, *, request_gcs: Optional[str] = None) -> GenerationRequest:
    path = request_path(job_dir(request_id))
    if not os.path.exists(path):
        if not request_gcs:
            raise ValidationError(f"no stored request for job {request_id}")
        gcs_storage.download_gcs_object_to_file(request_gcs, path)
    with open(path, "r") as f:
        data = json.load(f)
    try:
        return GenerationRequest.model_validate(data)
    except RequestValidationError as e:
        raise ValidationError(f"stored request is invalid: {e}", cause=e)


def adopt_story_job(request_id: str, request_gcs: str) -> Optional[dict]:
    """
    Take over a job created on another instance: fetch its mirrored request
    and register a pending manifest here so the worker can claim it.
    Returns the manifest, or None when the mirrored request is unusable.
    Download errors propagate so the queue retries the task.
    """
    log = job_logger(__name__, request_id)
    try:
        req = load_job_request(request_id, request_gcs=request_gcs)
    except ValidationError as e:
        log.error(f"cannot adopt job: {e}")
        return None
    log.info(f"adopting job from {request_gcs}")
    return jobs.ensure_job(request_id, user_id=req.user_id)


def cancel_story_job(request_id: str) -> Optional[dict]:
    """
    Stop listening to a job: flag it cancelled (a pending job is failed right
    away) and drop its queued Cloud Task if it has one.
    Returns {"cancelled", "state", "queued_task_deleted"} or None if unknown.
    """
    log = job_logger(__name__, request_id)
    mf = jobs.set_cancelled(request_id, True)
    if mf is None:
        return None

    deleted = False
    task_name = mf.get("task_name")
    if task_name:
        try:
            deleted = cloud_tasks.delete_task(task_name)
        except Exception as e:
            # the worker still sees the cancelled flag and acks
            log.warning(f"could not delete queued task {task_name}: {e}")
    log.info(f"cancelled (state={mf['state']}, task_deleted={deleted})")
    return {"cancelled": True, "state": mf["state"], "queued_task_deleted": deleted}


def run_story_job(request_id: str, *, request_gcs: Optional[str] = None) -> Optional[StorySummary]:
    """
    Execute a queued job once. Safe to call repeatedly: jobs that are unknown,
    cancelled, already running or finished are left alone and None is returned.
    """
    log = job_logger(__name__, request_id)
    if jobs.claim_job(request_id) is None:
        log.info("job not claimable (unknown, cancelled, running or finished); skipping")
        return None

    def progress(p: float, step: str) -> None:
        jobs.update_job(request_id, progress=p, step=step)

    try:
        req = load_job_request(request_id, request_gcs=request_gcs)
        summary = run_pipeline(req, story_id=request_id, on_progress=progress)
    except PipelineError as e:
        log.error(f"job failed ({e.kind}): {e}")
        jobs.update_job(request_id, state=jobs.FAILED, step="failed", error=str(e))
        return None
    except Exception as e:
        log.exception("job crashed")
        jobs.update_job(request_id, state=jobs.FAILED, step="failed", error=f"unexpected error: {e}")
        return None

    jobs.update_job(
        request_id,
        state=jobs.COMPLETED,
        progress=1.0,
        step="completed",
        result=summary.model_dump(mode="json"),
    )
    return summary
