# app/lib/paths.py
from __future__ import annotations
from pathlib import Path
from app.config import config

def data_dir() -> str:
    """
    Root folder for all job artifacts: <base_output_dir>/data
    Ensures it exists and returns it as a string.
    """
    root = Path(config.base_output_dir) / "data"
    root.mkdir(parents=True, exist_ok=True)
    return str(root)

def jobs_root() -> str:
    root = Path(data_dir()) / "jobs"
    root.mkdir(parents=True, exist_ok=True)
    return str(root)

def job_dir(job_id: str, *, create: bool = True) -> str:
    """
    Folder for a specific job: <data_dir>/jobs/<job_id>
    """
    if not job_id or "/" in job_id or job_id in {".", ".."}:
        raise ValueError(f"invalid job id: {job_id!r}")
    jd = Path(jobs_root()) / job_id
    if create:
        jd.mkdir(parents=True, exist_ok=True)
    return str(jd)

def manifest_path(workdir: str) -> str:
    """
    Path to the manifest.json inside a job directory.
    """
    return str(Path(workdir) / "manifest.json")

def request_path(workdir: str) -> str:
    return str(Path(workdir) / "request.json")
