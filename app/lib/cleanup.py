import os
import time
import shutil
from pathlib import Path

from app.lib.jobs import TERMINAL_STATES, load_manifest
from app.lib.paths import manifest_path
from app.logger import get_logger

log = get_logger(__name__)

def sweep_finished_jobs(base_dir: str, *, ttl_hours: int) -> int:
    """
    Delete entire job folders that:
      - contain a manifest in a terminal state (completed/failed)
      - and are older than ttl_hours
    Returns how many folders were removed.
    """
    now = time.time()
    removed = 0
    base = Path(base_dir)
    if not base.exists():
        return 0

    for sub in base.iterdir():
        if not sub.is_dir():
            continue
        mf = manifest_path(sub.as_posix())
        if not os.path.exists(mf):
            continue
        try:
            age_hours = (now - sub.stat().st_mtime) / 3600.0
            manifest = load_manifest(mf) or {}
            if manifest.get("state") in TERMINAL_STATES and age_hours >= ttl_hours:
                shutil.rmtree(sub.as_posix(), ignore_errors=True)
                removed += 1
        except (OSError, ValueError) as e:
            log.warning(f"skipping {sub.name} during sweep: {e}")
            continue
    if removed:
        log.info(f"swept {removed} finished job folder(s) from {base_dir}")
    return removed
