# app/features/story_generation/persistence.py
import re
from typing import List, Optional, Sequence

from app.features.story_generation.catalog import duration_seconds
from app.features.story_generation.narration import audio_object_name
from app.features.story_generation.schemas import (
    CharacterIn,
    GeneratedStory,
    GenerationRequest,
    NarrationAsset,
    SceneDescription,
    StorySummary,
)
from app.lib import datastore
from app.lib.errors import ChildPersistenceError, PersistenceError
from app.lib.outcome import Outcome
from app.logger import get_logger

log = get_logger(__name__)

_UUID_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[1-5][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$",
    re.IGNORECASE,
)


def is_uuid(value: str) -> bool:
    return bool(_UUID_RE.match(value or ""))


def resolve_background_music(ref: Optional[str], *, log=log) -> Optional[str]:
    """
    Track id for the story row: UUIDs pass through, category names are
    looked up in background_music. Unknown categories and lookup errors
    mean no music.
    """
    value = (ref or "").strip()
    if not value or value.lower() == "none":
        return None
    if is_uuid(value):
        return value

    def _lookup() -> Optional[str]:
        row = datastore.get_datastore().select_first("background_music", column="category", value=value)
        return row["id"] if row else None

    def _no_music(err) -> Optional[str]:
        log.warning(f"background music lookup for {value!r} failed: {err}")
        return None

    track = Outcome.attempt(_lookup, kind=ChildPersistenceError).recover(_no_music)
    if track is None:
        log.info(f"no background music found for category {value!r}")
    return track


def _image_rows(story_id: str, user_id: str, urls: Sequence[str], scenes: Sequence[SceneDescription]) -> List[dict]:
    rows = []
    for i, url in enumerate(urls):
        scene = scenes[i] if i < len(scenes) else None
        rows.append({
            "story_id": story_id,
            "user_id": user_id,
            "storage_path": url,
            "sequence_index": i + 1,
            "analysis_result": scene.model_dump() if scene else None,
        })
    return rows


def _character_rows(story_id: str, characters: Sequence[CharacterIn]) -> List[dict]:
    return [
        {"story_id": story_id, "name": c.name.strip(), "description": c.description}
        for c in characters
        if c.name and c.name.strip()
    ]


def _insert_children(table: str, rows: List[dict]) -> None:
    if not rows:
        return
    try:
        datastore.get_datastore().insert(table, rows)
    except Exception as e:
        raise ChildPersistenceError(f"{table} insert failed: {e}", cause=e)


def persist_story(
    *,
    story_id: str,
    req: GenerationRequest,
    story: GeneratedStory,
    narration: NarrationAsset,
    image_urls: Sequence[str],
    scenes: Sequence[SceneDescription],
    log=log,
) -> StorySummary:
    """
    Write the story row (fatal on failure) and then the image/character rows
    (best effort). Returns the summary handed back to the caller.
    """
    music_id = resolve_background_music(req.background_music, log=log)
    seconds = duration_seconds(req.duration)

    row = {
        "id": story_id,
        "user_id": req.user_id,
        "title": story.title,
        "text_content": story.content,
        "theme": req.theme,
        "duration": seconds,
        "language": req.language,
        "audio_url": narration.audio_url,
        "background_music_id": music_id,
        # system voice; per-user voice profiles are not stored here
        "voice_profile_id": None,
        "storage_path": audio_object_name(story_id) if narration.audio_url else None,
    }

    def _insert_story() -> None:
        try:
            datastore.get_datastore().insert("stories", row)
        except Exception as e:
            raise PersistenceError(f"failed to save story: {e}", cause=e)

    Outcome.attempt(_insert_story, kind=PersistenceError).unwrap()
    log.info(f"story row saved ({seconds}s, music={music_id})")

    children = (
        ("images", _image_rows(story_id, req.user_id, image_urls, scenes)),
        ("characters", _character_rows(story_id, req.characters)),
    )
    for table, rows in children:
        outcome = Outcome.attempt(_insert_children, table, rows, kind=ChildPersistenceError)
        if not outcome.ok:
            log.error(f"{outcome.error} (story {story_id} kept)")

    return StorySummary(
        story_id=story_id,
        title=story.title,
        text_content=story.content,
        audio_url=narration.audio_url,
        duration_seconds=seconds,
        language=req.language,
        theme=req.theme,
        background_music_id=music_id,
        image_urls=list(image_urls),
    )
