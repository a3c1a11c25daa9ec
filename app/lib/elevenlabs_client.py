# app/lib/elevenlabs_client.py
from __future__ import annotations

import json
import time
from typing import Optional

import httpx

from app.config import config
from app.lib.errors import SynthesisError
from app.logger import get_logger

log = get_logger(__name__)

VOICE_SETTINGS = {"stability": 0.5, "similarity_boost": 0.75}

def _headers() -> dict:
    if not config.elevenlabs_api_key:
        raise SynthesisError("ELEVENLABS_API_KEY is not configured")
    return {
        "xi-api-key": config.elevenlabs_api_key,
        "Accept": "audio/mpeg",
        "Content-Type": "application/json",
    }

def error_detail(resp: httpx.Response) -> str:
    """
    Best available error text for a failed call:
    structured `detail` (or `error`) field, else raw body, else the status code.
    """
    try:
        body = resp.json()
    except (ValueError, json.JSONDecodeError):
        body = None
    if isinstance(body, dict):
        detail = body.get("detail", body.get("error"))
        if isinstance(detail, dict):
            detail = detail.get("message") or json.dumps(detail, ensure_ascii=False)
        if detail:
            return str(detail)
        return json.dumps(body, ensure_ascii=False)[:200]
    text = (resp.text or "").strip()
    if text:
        return text[:200]
    return f"status {resp.status_code}"

def synthesize(
    text: str,
    *,
    voice_id: str,
    language_code: Optional[str] = None,
    output_format: Optional[str] = None,
    timeout: Optional[float] = None,
    max_retries: int = 2,
    client: Optional[httpx.Client] = None,
) -> bytes:
    """
    Text-to-speech via ElevenLabs. Returns raw audio bytes.
    Retries only on 429 with exponential backoff; everything else raises SynthesisError.
    """
    url = f"{config.elevenlabs_base_url}/text-to-speech/{voice_id}"
    params = {"output_format": output_format or config.elevenlabs_output_format}
    payload = {
        "text": text,
        "model_id": config.elevenlabs_model_id,
        "voice_settings": VOICE_SETTINGS,
    }
    if language_code:
        payload["language_code"] = language_code

    headers = _headers()
    http = client or httpx.Client(timeout=timeout or config.synthesis_timeout_s)
    try:
        for attempt in range(max_retries + 1):
            try:
                r = http.post(url, headers=headers, params=params, json=payload)
            except httpx.TimeoutException as e:
                raise SynthesisError(f"speech request timed out after {timeout or config.synthesis_timeout_s:.0f}s", cause=e)
            except httpx.HTTPError as e:
                raise SynthesisError(f"speech request failed: {e}", cause=e)

            if r.status_code == 429 and attempt < max_retries:
                wait_time = 2 ** attempt
                log.warning(f"ElevenLabs rate limited (429); retrying in {wait_time}s (attempt {attempt + 1}/{max_retries + 1})")
                time.sleep(wait_time)
                continue

            if r.status_code < 200 or r.status_code >= 300:
                detail = error_detail(r)
                log.error(f"ElevenLabs returned {r.status_code}: {detail}")
                raise SynthesisError(f"ElevenLabs API error: {detail}", status_code=r.status_code)

            audio = r.content
            if not audio:
                raise SynthesisError("ElevenLabs returned an empty audio body", status_code=r.status_code)
            if len(audio) < 1000:
                log.warning(f"audio body is suspiciously small ({len(audio)} bytes)")
            return audio
        raise SynthesisError("ElevenLabs rate limit exceeded", status_code=429)
    finally:
        if client is None:
            http.close()
