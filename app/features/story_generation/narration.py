# app/features/story_generation/narration.py
from typing import Dict, Optional

from app.features.story_generation.catalog import resolve_language_code
from app.features.story_generation.schemas import NarrationAsset
from app.lib import elevenlabs_client, gcs_storage
from app.lib.errors import SynthesisError
from app.logger import get_logger

log = get_logger(__name__)

MAX_SPEECH_CHARS = 5000
# a paragraph break earlier than this is not worth cutting at
MIN_BREAK_INDEX = 2000
AUDIO_FILENAME = "audio.mp3"

VOICE_ALIASES: Dict[str, str] = {
    "default": "21m00Tcm4TlvDq8ikWAM",
    "female": "21m00Tcm4TlvDq8ikWAM",
    "male": "AZnzlk1XvdvUeBnXmlld",
    "child": "XB0fDUnXU5powFXDhCwa",
    "storyteller": "pNInz6obpgDQGcFmaJgB",
}


def truncate_for_speech(text: str, limit: int = MAX_SPEECH_CHARS) -> str:
    """
    Cap narration text at `limit` chars, preferring to end on a paragraph
    break (kept in the output) when one exists past MIN_BREAK_INDEX.
    """
    if len(text) <= limit:
        return text
    cut = text[:limit]
    idx = cut.rfind("\n\n")
    if idx > MIN_BREAK_INDEX:
        return cut[: idx + 2]
    return cut


def resolve_voice_id(voice: str) -> str:
    return VOICE_ALIASES.get((voice or "").strip().lower(), voice)


def audio_object_name(story_id: str) -> str:
    return gcs_storage.story_object_name(story_id, AUDIO_FILENAME)


def synthesize_narration(story_id: str, text: str, *, voice: str, language: str, log=log) -> NarrationAsset:
    """
    Speak the story and upload the audio. Raises SynthesisError on any
    failure; the caller decides whether a missing narration is acceptable.
    """
    source = truncate_for_speech(text)
    if len(source) < len(text):
        log.info(f"narration text truncated from {len(text)} to {len(source)} chars")

    voice_id = resolve_voice_id(voice)
    language_code: Optional[str] = resolve_language_code(language) or None
    audio = elevenlabs_client.synthesize(source, voice_id=voice_id, language_code=language_code)
    log.info(f"synthesized {len(audio)} bytes of audio with voice {voice_id} ({language_code})")

    try:
        info = gcs_storage.upload_bytes(audio, object_name=audio_object_name(story_id), content_type="audio/mpeg")
    except Exception as e:
        raise SynthesisError(f"audio upload failed: {e}", cause=e)
    return NarrationAsset(audio_url=info["public_url"], source_text=source)
