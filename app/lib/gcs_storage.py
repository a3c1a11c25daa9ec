# app/lib/gcs_storage.py
import io
import json
import os
import re
from typing import Any, Dict, Tuple

from google.cloud import storage

from app.config import config
from app.logger import get_logger

log = get_logger(__name__)

_storage = None
def _client():
    global _storage
    if _storage is None:
        _storage = storage.Client()
    return _storage

def public_url(object_name: str) -> str:
    return f"{config.gcs_public_base_url}/{object_name}"

def story_object_name(story_id: str, filename: str) -> str:
    """All assets of one story live under stories/<story_id>/ so re-uploads overwrite."""
    return f"stories/{story_id}/{filename}"

def upload_bytes(
    data: bytes,
    *,
    object_name: str,
    content_type: str,
    cache_control: str = "public, max-age=31536000",
) -> Dict[str, Any]:
    """
    Upload raw bytes to GCS_BUCKET/<object_name> and return its public URL.
    Same object_name => overwrite, so retries are safe.
    """
    if not config.gcs_bucket:
        raise RuntimeError("GCS_BUCKET not configured")

    bucket = _client().bucket(config.gcs_bucket)
    blob = bucket.blob(object_name)
    blob.cache_control = cache_control
    blob.upload_from_file(io.BytesIO(data), size=len(data), content_type=content_type)
    log.debug(f"uploaded {len(data)} bytes to gs://{config.gcs_bucket}/{object_name}")

    return {
        "bucket": config.gcs_bucket,
        "object": object_name,
        "gs_uri": f"gs://{config.gcs_bucket}/{object_name}",
        "public_url": public_url(object_name),
        "content_type": content_type,
        "size": len(data),
    }

def upload_json_to_gcs(
    data: Any,
    *,
    object_name: str,
    cache_control: str = "no-cache",
) -> Dict[str, Any]:
    """Serialize `data` to JSON (utf-8) and upload it."""
    payload = json.dumps(data, ensure_ascii=False, separators=(",", ":")).encode("utf-8")
    return upload_bytes(
        payload,
        object_name=object_name,
        content_type="application/json",
        cache_control=cache_control,
    )

_GS_RE = re.compile(r"^gs://([^/]+)/(.+)$")

def _parse_gs_uri(gs_uri: str) -> Tuple[str, str]:
    """
    Parse 'gs://bucket/key' -> (bucket, key)
    """
    m = _GS_RE.match(gs_uri)
    if not m:
        raise ValueError(f"Invalid gs:// URI: {gs_uri}")
    return m.group(1), m.group(2)

def download_gcs_object_to_file(gs_uri: str, dest_path: str) -> None:
    """
    Download a GCS object specified as 'gs://bucket/key' to a local file path.
    Creates parent directories as needed.
    """
    bucket_name, object_name = _parse_gs_uri(gs_uri)

    bucket = _client().bucket(bucket_name)
    blob = bucket.blob(object_name)

    os.makedirs(os.path.dirname(dest_path) or ".", exist_ok=True)
    blob.download_to_filename(dest_path)
