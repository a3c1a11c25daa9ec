# app/features/story_generation/narrative.py
"""
Story text generation: one call for title + body, an optional second call
to repair a missing or wrong-language title, and an offline fallback story
for when the text model is unavailable.
"""
import re
from typing import Tuple

from app.config import config
from app.features.story_generation.catalog import resolve_language_code, title_instruction
from app.features.story_generation.schemas import GeneratedStory
from app.lib.errors import GenerationError
from app.lib.openai_client import text_client
from app.lib.outcome import Outcome
from app.logger import get_logger

log = get_logger(__name__)

SYSTEM = (
    "You are a professional children's author specializing in bedtime stories that help children "
    "fall asleep. You write engaging, warm, and calming stories with gentle pacing that gradually "
    "become more soothing toward the end."
)
TITLE_SYSTEM = (
    "You are a professional children's book title creator. "
    "Create short, engaging titles that capture the essence of a story."
)

PLACEHOLDER_TITLE = "Bedtime Adventure"
TITLE_EXCERPT_CHARS = 500

FALLBACK_STORY = GeneratedStory(
    title="The Magical Bedtime Journey",
    content=(
        "Once upon a time, in a land of sweet dreams, a child was ready for sleep.\n\n"
        "The stars twinkled in the night sky, and the moon cast a gentle glow through the window.\n\n"
        "\"Time for bed,\" whispered the night breeze, as eyelids grew heavy and the world grew quiet.\n\n"
        "Sweet dreams awaited, just around the corner of imagination.\n\n"
        "The End."
    ),
    used_fallback=True,
)

_TITLE_LINE_RE = re.compile(r"Title:\s*(.*?)(?:\n|$)")
_HEADING_RE = re.compile(r"^#\s*(.*?)(?:\n|$)")
_QUOTED_RE = re.compile(r"^[\"'](.*)[\"']$", re.DOTALL)
_TITLE_PREFIX_RE = re.compile(r"^Title:\s*")


def parse_story(text: str) -> Tuple[str, str]:
    """
    Split model output into (title, body). A `Title: ...` line wins, then a
    leading markdown heading; the matched line is removed from the body.
    """
    raw = text or ""
    m = _TITLE_LINE_RE.search(raw)
    if m and m.group(1).strip():
        return m.group(1).strip(), _TITLE_LINE_RE.sub("", raw, count=1).strip()
    m = _HEADING_RE.search(raw)
    if m and m.group(1).strip():
        return m.group(1).strip(), _HEADING_RE.sub("", raw, count=1).strip()
    return PLACEHOLDER_TITLE, raw.strip()


def clean_title(raw: str) -> str:
    title = (raw or "").strip()
    title = _QUOTED_RE.sub(r"\1", title)
    title = _TITLE_PREFIX_RE.sub("", title)
    return title.strip()


def title_needs_fix(title: str, language: str) -> bool:
    """Placeholder titles, and ASCII-only titles for non-English stories, get regenerated."""
    if title == PLACEHOLDER_TITLE:
        return True
    code = resolve_language_code(language).lower()
    return code != "en" and title.isascii()


def _complete_story(prompt: str) -> GeneratedStory:
    resp = text_client.chat.completions.create(
        model=config.text_model,
        temperature=0.7,
        max_tokens=2000,
        messages=[
            {"role": "system", "content": SYSTEM},
            {"role": "user", "content": prompt},
        ],
    )
    if not getattr(resp, "choices", None):
        raise GenerationError("text model returned no choices")
    title, content = parse_story(resp.choices[0].message.content or "")
    if not content:
        raise GenerationError("text model returned an empty story")
    return GeneratedStory(title=title, content=content)


def generate_title(content: str, language: str) -> str:
    excerpt = content[:TITLE_EXCERPT_CHARS] + ("..." if len(content) > TITLE_EXCERPT_CHARS else "")
    resp = text_client.chat.completions.create(
        model=config.text_model,
        temperature=0.7,
        max_tokens=30,
        messages=[
            {"role": "system", "content": TITLE_SYSTEM},
            {
                "role": "user",
                "content": f"{title_instruction(language)}\n\nHere is the beginning of the story:\n\n{excerpt}",
            },
        ],
    )
    if not getattr(resp, "choices", None):
        raise GenerationError("title call returned no choices")
    title = clean_title(resp.choices[0].message.content or "")
    if not title:
        raise GenerationError("title call returned an empty title")
    return title


def fix_title(story: GeneratedStory, language: str, *, log=log) -> GeneratedStory:
    if story.used_fallback or not title_needs_fix(story.title, language):
        return story

    log.info(f"regenerating title {story.title!r} for language {language}")

    def _keep(err) -> str:
        log.warning(f"title regeneration failed, keeping {story.title!r}: {err}")
        return story.title

    title = Outcome.attempt(generate_title, story.content, language, kind=GenerationError).recover(_keep)
    return story.model_copy(update={"title": title})


def generate_narrative(prompt: str, language: str, *, log=log) -> GeneratedStory:
    """Story text for the prompt. Falls back to FALLBACK_STORY on any model failure."""

    def _fallback(err) -> GeneratedStory:
        log.error(f"story generation failed, using fallback story: {err}")
        return FALLBACK_STORY.model_copy()

    log.debug(f"story prompt is {len(prompt)} chars")
    story = Outcome.attempt(_complete_story, prompt, kind=GenerationError).recover(_fallback)
    return fix_title(story, language, log=log)
