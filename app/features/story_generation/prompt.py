# app/features/story_generation/prompt.py
from typing import List, Sequence

from app.features.story_generation.catalog import (
    PROMPT_PREFIXES,
    duration_spec,
    language_display_name,
    resolve_language_code,
    theme_description,
)
from app.features.story_generation.schemas import CharacterIn, SceneDescription

DEFAULT_NAMES = ["the child", "the little one", "the dreamer"]


def _character_names(characters: Sequence[CharacterIn]) -> List[str]:
    named = [c.name.strip() for c in characters if c.name and c.name.strip()]
    return named or list(DEFAULT_NAMES)


def _character_details(characters: Sequence[CharacterIn]) -> List[str]:
    lines = []
    for c in characters:
        name = (c.name or "").strip()
        if not name:
            continue
        desc = (c.description or "").strip()
        lines.append(f"{name}: {desc}" if desc else name)
    return lines


def _scene_lines(scenes: Sequence[SceneDescription], names: List[str]) -> List[str]:
    lines = []
    for i, scene in enumerate(scenes):
        who = names[i % len(names)]
        setting = scene.setting or "magical place"
        mood = scene.mood or "peaceful"
        lines.append(
            f"Scene {i + 1} with {who}: {who} in a {setting} with {', '.join(scene.subjects)}. "
            f"Mood: {mood}. Details: {', '.join(scene.details)}."
        )
    if not lines:
        lines.append(f"Scene 1 with {names[0]}: {names[0]} embarks on a magical journey.")
    return lines


def build_story_prompt(
    *,
    scenes: Sequence[SceneDescription],
    characters: Sequence[CharacterIn],
    theme: str,
    duration: str,
    language: str,
) -> str:
    names = _character_names(characters)
    details = _character_details(characters)
    spec = duration_spec(duration)
    prefix = PROMPT_PREFIXES.get(resolve_language_code(language).lower(), PROMPT_PREFIXES["en"])
    details_block = ("Character Details:\n" + "\n".join(details) + "\n\n") if details else ""

    return f"""{prefix} bedtime story for children featuring these characters: {', '.join(names)}

{details_block}Scenes to include:
{chr(10).join(_scene_lines(scenes, names))}

Story Requirements:
- Theme: {theme_description(theme)}
- Length: {spec.description} (around {spec.words} words, approximately {spec.paragraphs} paragraphs)
- Structure: Create a flowing narrative with gentle transitions between scenes
- Characters: Use the provided character names naturally in the story
- Language: Write in {language_display_name(language)}

Story should:
- Be soothing and calming, perfect for bedtime reading
- Feature the named characters prominently in their scenes
- Create meaningful interactions between characters
- Include peaceful pauses between scene transitions
- Have a peaceful conclusion

Elements to Include:
- Each character's unique personality
- Gentle interactions between characters
- Soft sounds and sensory details
- Calming actions and movements
- Soothing repetitive elements
- Relaxing breathing moments
- Gradual transition to sleepiness

Make the story progressively more calming, leading to a peaceful conclusion.

Return the story with a creative title and engaging content. Format your response as:

Title: [The title of the story]

[The full story content with paragraphs]"""
