import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

def _env_bool(name: str, default: bool = False) -> bool:
    val = os.getenv(name)
    if val is None:
        return default
    return val.strip().lower() in {"1", "true", "yes", "on"}

def _env_csv(name: str, default: str = "*") -> List[str]:
    raw = os.getenv(name, default)
    return [x.strip() for x in raw.split(",") if x.strip()]

def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        return default

@dataclass(frozen=True)
class Config:
    # OpenAI (vision) + OpenAI-compatible text endpoint (e.g. DeepSeek)
    openai_api_key: str
    openai_vision_model: str
    text_api_key: str
    text_api_base_url: Optional[str]
    text_model: str
    # ElevenLabs
    elevenlabs_api_key: str
    elevenlabs_base_url: str
    elevenlabs_model_id: str
    elevenlabs_output_format: str
    # Timeouts (seconds)
    narrative_timeout_s: float
    synthesis_timeout_s: float
    vision_timeout_s: float
    image_fetch_timeout_s: float
    # Storage
    gcs_bucket: str
    gcs_public_base_url: str
    placeholder_image_url: str
    # Datastore
    supabase_url: str
    supabase_service_key: str
    # API / CORS
    allowed_origins: List[str]
    # Job manifests
    base_output_dir: Path
    # Concurrency
    max_workers: int
    max_images: int
    rate_limit_requests: int                # per user per window; 0 disables
    rate_limit_window_s: int
    # Logging
    log_level: str

    # Cloud Tasks / GCP
    use_cloud_tasks: bool
    gcp_project: str
    gcp_location: str
    tasks_queue: str
    public_base_url: str
    sweep_jobs_on_startup: bool             # optional: run a sweep on app startup
    sweep_ttl_hours: int                    # delete finished jobs older than this

def load_config() -> Config:
    openai_key = os.getenv("OPENAI_API_KEY", "")
    bucket = os.getenv("GCS_BUCKET", "lullaby-story-assets")
    return Config(
        openai_api_key = openai_key,
        openai_vision_model = os.getenv("OPENAI_VISION_MODEL", "gpt-4o-mini"),
        # falls back to the OpenAI key/endpoint when no separate text provider is set
        text_api_key = os.getenv("TEXT_API_KEY", "") or openai_key,
        text_api_base_url = os.getenv("TEXT_API_BASE_URL") or None,
        text_model = os.getenv("TEXT_MODEL", "gpt-4o-mini"),
        elevenlabs_api_key = os.getenv("ELEVENLABS_API_KEY", ""),
        elevenlabs_base_url = os.getenv("ELEVENLABS_BASE_URL", "https://api.elevenlabs.io/v1"),
        elevenlabs_model_id = os.getenv("ELEVENLABS_MODEL_ID", "eleven_multilingual_v2"),
        elevenlabs_output_format = os.getenv("ELEVENLABS_OUTPUT_FORMAT", "mp3_44100_128"),
        narrative_timeout_s = _env_float("NARRATIVE_TIMEOUT_S", 120.0),
        synthesis_timeout_s = _env_float("SYNTHESIS_TIMEOUT_S", 120.0),
        vision_timeout_s = _env_float("VISION_TIMEOUT_S", 60.0),
        image_fetch_timeout_s = _env_float("IMAGE_FETCH_TIMEOUT_S", 30.0),
        gcs_bucket = bucket,
        gcs_public_base_url = os.getenv("GCS_PUBLIC_BASE_URL", f"https://storage.googleapis.com/{bucket}").rstrip("/"),
        placeholder_image_url = os.getenv("PLACEHOLDER_IMAGE_URL", "https://placehold.co/600x400?text=Story+Image"),
        supabase_url = os.getenv("SUPABASE_URL", ""),
        supabase_service_key = os.getenv("SUPABASE_SERVICE_ROLE_KEY", ""),
        allowed_origins = _env_csv("ALLOWED_ORIGINS", "*"),
        base_output_dir = Path(os.getenv("OUTPUT_DIR") or (Path(__file__).resolve().parent / "output")),
        max_workers = int(os.getenv("MAX_WORKERS", "5")),
        max_images = int(os.getenv("MAX_IMAGES", "5")),
        rate_limit_requests = int(os.getenv("RATE_LIMIT_REQUESTS", "5")),
        rate_limit_window_s = int(os.getenv("RATE_LIMIT_WINDOW_S", "60")),
        log_level = os.getenv("LOG_LEVEL", "INFO"),
        use_cloud_tasks = _env_bool("USE_CLOUD_TASKS", False),
        gcp_location = os.getenv("REGION", "us-central1"),
        gcp_project = os.getenv("PROJECT_ID", "lullaby-ai"),
        public_base_url = os.getenv("BASE_URL", "http://localhost:8080"),
        tasks_queue = os.getenv("TASKS_QUEUE", "story-worker-queue"),
        sweep_jobs_on_startup = _env_bool("SWEEP_JOBS_ON_STARTUP", False),
        sweep_ttl_hours = int(os.getenv("SWEEP_TTL_HOURS", 24))
    )

# Load once and ensure output directory exists
config = load_config()
config.base_output_dir.mkdir(parents=True, exist_ok=True)
