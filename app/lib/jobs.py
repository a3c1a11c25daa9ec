# app/lib/jobs.py
"""
Job-status store: one manifest.json per async generation request.

    <data_dir>/jobs/<request_id>/manifest.json

Transitions are monotonic (pending -> running -> completed|failed) and
progress never decreases; out-of-order updates are ignored rather than raised.
"""
from __future__ import annotations

import json
import os
import threading
import time
from typing import Any, Dict, Optional

from app.lib.paths import job_dir, manifest_path
from app.logger import get_logger

log = get_logger(__name__)

PENDING = "pending"
RUNNING = "running"
COMPLETED = "completed"
FAILED = "failed"
TERMINAL_STATES = {COMPLETED, FAILED}

_ALLOWED = {
    PENDING: {RUNNING, FAILED},
    RUNNING: {COMPLETED, FAILED},
    COMPLETED: set(),
    FAILED: set(),
}

_lock = threading.RLock()


def load_manifest(path: str) -> Optional[Dict[str, Any]]:
    if not os.path.exists(path):
        return None
    with open(path, "r") as f:
        return json.load(f)


def save_manifest(path: str, manifest: Dict[str, Any]) -> None:
    tmp = f"{path}.tmp"
    with open(tmp, "w") as f:
        json.dump(manifest, f, indent=2, ensure_ascii=False)
    os.replace(tmp, path)


def create_job(request_id: str, *, user_id: str) -> Dict[str, Any]:
    now = time.time()
    mf = {
        "request_id": request_id,
        "user_id": user_id,
        "state": PENDING,
        "progress": 0.0,
        "step": "queued",
        "result": None,
        "error": None,
        "cancelled": False,
        "task_name": None,
        "created_at": now,
        "updated_at": now,
    }
    with _lock:
        save_manifest(manifest_path(job_dir(request_id)), mf)
    return mf


def ensure_job(request_id: str, *, user_id: str) -> Dict[str, Any]:
    """Return the job's manifest, creating a pending one if this instance has none."""
    with _lock:
        mf = load_manifest(manifest_path(job_dir(request_id)))
        if mf is not None:
            return mf
        return create_job(request_id, user_id=user_id)


def get_job(request_id: str) -> Optional[Dict[str, Any]]:
    with _lock:
        return load_manifest(manifest_path(job_dir(request_id, create=False)))


def update_job(
    request_id: str,
    *,
    state: Optional[str] = None,
    progress: Optional[float] = None,
    step: Optional[str] = None,
    result: Optional[Dict[str, Any]] = None,
    error: Optional[str] = None,
) -> Optional[Dict[str, Any]]:
    with _lock:
        path = manifest_path(job_dir(request_id, create=False))
        mf = load_manifest(path)
        if mf is None:
            log.warning(f"[{request_id}] status update for unknown job ignored")
            return None

        current = mf["state"]
        if state and state != current:
            if state not in _ALLOWED.get(current, set()):
                log.warning(f"[{request_id}] ignoring transition {current} -> {state}")
                return mf
            mf["state"] = state
        elif current in TERMINAL_STATES:
            return mf

        if progress is not None:
            mf["progress"] = max(float(mf.get("progress") or 0.0), min(1.0, max(0.0, float(progress))))
        if step:
            mf["step"] = step
        if result is not None:
            mf["result"] = result
        if error is not None:
            mf["error"] = error
        mf["updated_at"] = time.time()
        save_manifest(path, mf)
        return mf


def set_cancelled(request_id: str, cancelled: bool = True) -> Optional[Dict[str, Any]]:
    """
    Flag a job as cancelled. A job that has not started yet is failed on the
    spot; a running one keeps going and only the flag changes.
    """
    with _lock:
        path = manifest_path(job_dir(request_id, create=False))
        mf = load_manifest(path)
        if mf is None:
            return None
        mf["cancelled"] = bool(cancelled)
        if cancelled and mf["state"] == PENDING:
            mf["state"] = FAILED
            mf["step"] = "cancelled"
            mf["error"] = "cancelled"
        mf["updated_at"] = time.time()
        save_manifest(path, mf)
        return mf


def set_task_name(request_id: str, task_name: str) -> None:
    with _lock:
        path = manifest_path(job_dir(request_id, create=False))
        mf = load_manifest(path)
        if mf is None:
            return
        mf["task_name"] = task_name
        save_manifest(path, mf)


def claim_job(request_id: str) -> Optional[Dict[str, Any]]:
    """
    Atomically move a pending, non-cancelled job to running.
    Returns the manifest when this caller owns the run, else None
    (unknown, cancelled, already running or finished).
    """
    with _lock:
        path = manifest_path(job_dir(request_id, create=False))
        mf = load_manifest(path)
        if mf is None or mf["state"] != PENDING or mf.get("cancelled"):
            return None
        mf["state"] = RUNNING
        mf["progress"] = max(float(mf.get("progress") or 0.0), 0.05)
        mf["step"] = "starting"
        mf["updated_at"] = time.time()
        save_manifest(path, mf)
        return mf
