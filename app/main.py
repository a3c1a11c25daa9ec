from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import config
from app.features.admin.router import router as admin_router
from app.features.story_generation.router import router as story_router
from app.lib.cleanup import sweep_finished_jobs
from app.lib.paths import jobs_root
from app.lib.rate_limit import UserRateLimiter
from app.lib.single_flight import SingleFlightRegistry
from app.logger import get_logger

log = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if config.sweep_jobs_on_startup:
        sweep_finished_jobs(jobs_root(), ttl_hours=config.sweep_ttl_hours)
    log.info(f"story API up (cloud_tasks={config.use_cloud_tasks}, bucket={config.gcs_bucket})")
    yield


app = FastAPI(title="Lullaby Story API", lifespan=lifespan)
# one live generation per user, per process
app.state.single_flight = SingleFlightRegistry()
app.state.rate_limiter = UserRateLimiter(config.rate_limit_requests, config.rate_limit_window_s)

# credentials cannot be combined with a wildcard origin
_wildcard = "*" in config.allowed_origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.allowed_origins,
    allow_credentials=not _wildcard,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(story_router)
app.include_router(admin_router)


@app.get("/health")
def health() -> dict:
    return {"ok": True}
