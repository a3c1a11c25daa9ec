from fastapi import APIRouter, Request
from app.lib.cleanup import sweep_finished_jobs
from app.lib.paths import jobs_root
from app.config import config

router = APIRouter(prefix="/api/v1/admin", tags=["admin"])

@router.post("/sweep")
def sweep(ttl_hours: int | None = None):
    base = jobs_root()
    ttl = config.sweep_ttl_hours if ttl_hours is None else ttl_hours
    removed = sweep_finished_jobs(base, ttl_hours=ttl)
    return {"removed": removed, "base_dir": base, "ttl_hours": ttl}

@router.get("/flights")
def flights(request: Request):
    """Number of users with a generation currently registered."""
    return {"active": len(request.app.state.single_flight)}
