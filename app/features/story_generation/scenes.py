# app/features/story_generation/scenes.py
import base64
import concurrent.futures
from typing import Any, Dict, List, Optional, Sequence

import httpx

from app.config import config
from app.features.story_generation.assets import is_placeholder
from app.features.story_generation.schemas import SceneDescription
from app.lib.errors import AssetError
from app.lib.imaging import sniff_ext_from_bytes
from app.lib.json_tools import parse_json_object
from app.lib.openai_client import vision_client
from app.lib.outcome import Outcome
from app.logger import get_logger

log = get_logger(__name__)

MAX_SCENES = 5

VISION_INSTRUCTION = (
    "Describe this image for a children's bedtime story. Identify main subjects, setting, mood, "
    "and notable details. Format response as JSON with these fields: subjects (array of strings), "
    "setting (string), themes (array of strings), mood (string), details (array of strings), "
    "raw (string with full description)."
)

GENERIC_RAW = "An image showing a magical scene perfect for a bedtime story."

_MIME_BY_EXT = {".png": "image/png", ".jpg": "image/jpeg", ".gif": "image/gif", ".webp": "image/webp"}


def generic_scene(raw_text: str = GENERIC_RAW) -> SceneDescription:
    return SceneDescription(
        subjects=["child", "character"],
        setting="magical scene",
        mood="peaceful",
        details=["colorful imagery", "gentle surroundings"],
        themes=["adventure", "friendship", "bedtime"],
        raw_text=raw_text,
        fallback=True,
    )


def _str_list(value: Any) -> List[str]:
    if isinstance(value, list):
        return [str(v) for v in value if v is not None and str(v).strip()]
    if isinstance(value, str) and value.strip():
        return [value.strip()]
    return []


def parse_scene(text: str) -> SceneDescription:
    """
    Turn the vision model's reply into a SceneDescription.
    Anything that is not a JSON object yields the generic description
    carrying the raw reply.
    """
    data: Optional[Dict[str, Any]] = parse_json_object(text)
    if data is None:
        return generic_scene(raw_text=(text or "").strip() or GENERIC_RAW)
    return SceneDescription(
        subjects=_str_list(data.get("subjects")),
        setting=str(data.get("setting") or ""),
        mood=str(data.get("mood") or ""),
        details=_str_list(data.get("details")),
        themes=_str_list(data.get("themes")),
        raw_text=str(data.get("raw") or data.get("raw_text") or text or ""),
    )


def fetch_image(url: str) -> bytes:
    with httpx.Client(timeout=config.image_fetch_timeout_s, follow_redirects=True) as http:
        r = http.get(url)
        r.raise_for_status()
        return r.content


def _describe(url: str) -> SceneDescription:
    data = fetch_image(url)
    if not data:
        raise AssetError(f"empty image body from {url}")
    mime = _MIME_BY_EXT.get(sniff_ext_from_bytes(data), "image/jpeg")
    data_uri = f"data:{mime};base64,{base64.b64encode(data).decode('ascii')}"
    log.debug(f"describing {url} ({len(data)} bytes)")

    resp = vision_client.chat.completions.create(
        model=config.openai_vision_model,
        messages=[
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": VISION_INSTRUCTION},
                    {"type": "image_url", "image_url": {"url": data_uri}},
                ],
            }
        ],
        max_tokens=500,
    )
    if not resp.choices:
        raise AssetError("vision model returned no choices")
    return parse_scene(resp.choices[0].message.content or "")


def analyze_scene(url: str) -> SceneDescription:
    if is_placeholder(url):
        return generic_scene()

    def _fallback(err) -> SceneDescription:
        log.warning(f"scene analysis failed for {url}: {err}")
        return generic_scene()

    return Outcome.attempt(_describe, url, kind=AssetError).recover(_fallback)


def analyze_scenes(urls: Sequence[str]) -> List[SceneDescription]:
    """One description per URL (at most MAX_SCENES), in input order. Never empty."""
    targets = list(urls)[:MAX_SCENES]
    if not targets:
        return [generic_scene()]

    results: List[Optional[SceneDescription]] = [None] * len(targets)
    with concurrent.futures.ThreadPoolExecutor(max_workers=max(1, min(config.max_workers, len(targets)))) as ex:
        fut_map = {ex.submit(analyze_scene, u): i for i, u in enumerate(targets)}
        for fut in concurrent.futures.as_completed(fut_map):
            i = fut_map[fut]
            try:
                results[i] = fut.result()
            except Exception as e:
                log.warning(f"scene {i + 1} failed unexpectedly: {e}")
                results[i] = generic_scene()
    return [r or generic_scene() for r in results]
