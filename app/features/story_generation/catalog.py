# app/features/story_generation/catalog.py
"""Lookup tables shared by the prompt composer, narration and persistence."""
from __future__ import annotations

from typing import Dict, NamedTuple, Optional


class DurationSpec(NamedTuple):
    words: int
    paragraphs: int
    seconds: int
    description: str


THEME_DESCRIPTIONS: Dict[str, str] = {
    "adventure": "an exciting journey of discovery that ends peacefully",
    "fantasy": "a magical world with enchanting elements and mystical creatures",
    "bedtime": "a calm and peaceful story perfect for transitioning to sleep",
    "educational": "a gentle learning experience with interesting facts woven into the narrative",
    "customized": "a personalized adventure based on the images provided",
}
DEFAULT_THEME = "adventure"

# one table for word targets and persisted seconds
DURATIONS: Dict[str, DurationSpec] = {
    "short": DurationSpec(words=300, paragraphs=5, seconds=300, description="short and sweet (2-3 minutes)"),
    "medium": DurationSpec(words=600, paragraphs=8, seconds=600, description="medium length (4-5 minutes)"),
    "long": DurationSpec(words=900, paragraphs=12, seconds=900, description="longer and detailed (6-8 minutes)"),
}
DEFAULT_DURATION = "medium"

# display name -> speech-service language code
LANGUAGE_CODES: Dict[str, str] = {
    "english": "en",
    "french": "fr",
    "japanese": "ja",
    "indonesian": "id",
    "german": "de",
    "spanish": "es",
    "italian": "it",
    "portuguese": "pt",
    "russian": "ru",
    "chinese": "zh",
    "mandarin": "zh",
    "korean": "ko",
    "arabic": "ar",
    "hindi": "hi",
    "dutch": "nl",
    "polish": "pl",
    "swedish": "sv",
    "turkish": "tr",
    "czech": "cs",
    "danish": "da",
    "finnish": "fi",
    "greek": "el",
    "hungarian": "hu",
    "norwegian": "no",
    "romanian": "ro",
    "slovak": "sk",
    "ukrainian": "uk",
    "vietnamese": "vi",
    "thai": "th",
    "malay": "ms",
    "filipino": "fil",
    "tagalog": "fil",
    "croatian": "hr",
    "bulgarian": "bg",
    "tamil": "ta",
}

# opening words of the prompt, in the story's own language
PROMPT_PREFIXES: Dict[str, str] = {
    "en": "Write a soothing",
    "fr": "Écrivez une apaisante",
    "ja": "子供向けの穏やかな",
    "id": "Tulislah sebuah",
}

TITLE_INSTRUCTIONS: Dict[str, str] = {
    "en": "Create a short, catchy title for this children's bedtime story in English. The title should be 2-6 words.",
    "fr": "Créez un titre court et accrocheur pour cette histoire pour enfants en français. Le titre doit comporter 2 à 6 mots.",
    "ja": "この子供向けのお話に日本語で短くて魅力的なタイトルをつけてください。タイトルは2〜6語程度にしてください。",
    "zh": "为这个儿童睡前故事创建一个简短、吸引人的中文标题。标题应为2-6个词。",
    "de": "Erstellen Sie einen kurzen, einprägsamen Titel für diese Kindergeschichte auf Deutsch. Der Titel sollte 2-6 Wörter umfassen.",
    "es": "Crea un título corto y atractivo para este cuento infantil en español. El título debe tener entre 2 y 6 palabras.",
    "it": "Crea un titolo breve e accattivante per questa storia per bambini in italiano. Il titolo dovrebbe essere di 2-6 parole.",
    "pt": "Crie um título curto e cativante para esta história infantil em português. O título deve ter entre 2 e 6 palavras.",
    "ru": "Создайте короткое, запоминающееся название для этой детской сказки на русском языке. Название должно состоять из 2-6 слов.",
    "id": "Buatlah judul pendek dan menarik untuk cerita anak ini dalam bahasa Indonesia. Judul sebaiknya terdiri dari 2-6 kata.",
}


def resolve_language_code(language: str) -> str:
    """Map a display name to its code; unknown values are assumed to already be codes."""
    key = (language or "").strip().lower()
    return LANGUAGE_CODES.get(key, (language or "").strip())


def language_display_name(language: str) -> str:
    value = (language or "").strip()
    return value[:1].upper() + value[1:] if value else "English"


def theme_description(theme: str) -> str:
    return THEME_DESCRIPTIONS.get((theme or "").strip().lower(), THEME_DESCRIPTIONS[DEFAULT_THEME])


def duration_spec(duration: str) -> DurationSpec:
    return DURATIONS.get((duration or "").strip().lower(), DURATIONS[DEFAULT_DURATION])


def duration_seconds(duration: Optional[str]) -> int:
    """Bucket name -> seconds; a numeric string is taken as seconds; anything else -> medium."""
    key = (str(duration) if duration is not None else "").strip().lower()
    if key in DURATIONS:
        return DURATIONS[key].seconds
    try:
        value = int(key)
    except ValueError:
        return DURATIONS[DEFAULT_DURATION].seconds
    return value if value > 0 else DURATIONS[DEFAULT_DURATION].seconds


def title_instruction(language: str) -> str:
    code = resolve_language_code(language).lower()
    if code in TITLE_INSTRUCTIONS:
        return TITLE_INSTRUCTIONS[code]
    return f"{TITLE_INSTRUCTIONS['en']} Write the title in {language_display_name(language)}."
