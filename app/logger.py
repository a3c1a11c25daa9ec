# app/logger.py
import logging
import sys
from typing import Any, MutableMapping, Optional, Tuple
from app.config import config

_DEFAULT_FMT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
_configured = False

def configure_logging(level: Optional[str] = None, fmt: str = _DEFAULT_FMT) -> None:
    """Configure logging once, respecting LOG_LEVEL and overruling prior basicConfig."""
    global _configured
    if _configured:
        return

    level_name = (level or config.log_level).upper()
    level_value = getattr(logging, level_name, logging.INFO)

    root = logging.getLogger()
    root.setLevel(level_value)

    if not root.handlers:
        h = logging.StreamHandler(sys.stdout)
        h.setLevel(level_value)
        h.setFormatter(logging.Formatter(fmt))
        root.addHandler(h)
    else:
        for h in root.handlers:
            h.setLevel(level_value)
            if not h.formatter:
                h.setFormatter(logging.Formatter(fmt))

    for name in ("uvicorn", "uvicorn.error", "uvicorn.access", "gunicorn.error", "gunicorn.access"):
        logging.getLogger(name).setLevel(level_value)

    # SDK request logs are noisy at DEBUG and may echo base64 payloads
    for name in ("httpx", "httpcore", "openai", "hpack"):
        logging.getLogger(name).setLevel(max(level_value, logging.INFO))

    _configured = True

def get_logger(name: Optional[str] = None) -> logging.Logger:
    configure_logging()  # ensures configured on first use
    return logging.getLogger(name or __name__)


class JobLogger(logging.LoggerAdapter):
    """Prefixes every message with the job/story id: `[<id>] message`."""

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> Tuple[Any, MutableMapping[str, Any]]:
        return f"[{self.extra['job_id']}] {msg}", kwargs


def job_logger(name: str, job_id: str) -> JobLogger:
    return JobLogger(get_logger(name), {"job_id": job_id})
