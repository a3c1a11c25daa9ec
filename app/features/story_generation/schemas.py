# app/features/story_generation/schemas.py
from typing import Any, Dict, List, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from app.config import config


class CharacterIn(BaseModel):
    name: str = ""
    description: Optional[str] = None


class GenerationRequest(BaseModel):
    """
    Body of POST /api/v1/stories/generate[/async].
    Field names follow the API; the camelCase names sent by the web client
    are accepted as well.
    """

    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(validation_alias=AliasChoices("user_id", "userId"))
    images: List[str] = Field(default_factory=list, description="0-5 data:image/...;base64 URIs")
    characters: List[CharacterIn] = Field(default_factory=list)
    theme: str
    duration: str = Field(
        validation_alias=AliasChoices("duration", "durationBucket"),
        description="short | medium | long, or a number of seconds",
    )
    language: str = Field(description="Display name, e.g. 'english', 'french'")
    background_music: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("background_music", "backgroundMusic"),
        description="Track UUID or category name; 'none' disables music",
    )
    voice: str = Field(validation_alias=AliasChoices("voice", "voiceId"))

    @field_validator("user_id", "theme", "duration", "language", "voice", mode="before")
    @classmethod
    def _required_text(cls, v: Any) -> Any:
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            v = str(v)
        if isinstance(v, str) and not v.strip():
            raise ValueError("must not be blank")
        return v.strip() if isinstance(v, str) else v

    @field_validator("images")
    @classmethod
    def _cap_images(cls, v: List[str]) -> List[str]:
        if len(v) > config.max_images:
            raise ValueError(f"at most {config.max_images} images are allowed")
        return v


class SceneDescription(BaseModel):
    subjects: List[str] = Field(default_factory=list)
    setting: str = ""
    mood: str = ""
    details: List[str] = Field(default_factory=list)
    themes: List[str] = Field(default_factory=list)
    raw_text: str = ""
    fallback: bool = False


class GeneratedStory(BaseModel):
    title: str
    content: str
    used_fallback: bool = False


class NarrationAsset(BaseModel):
    audio_url: Optional[str] = None
    source_text: str = ""


class StorySummary(BaseModel):
    story_id: str
    title: str
    text_content: str
    audio_url: Optional[str] = None
    duration_seconds: int
    language: str
    theme: str
    background_music_id: Optional[str] = None
    image_urls: List[str] = Field(default_factory=list)


class JobStatus(BaseModel):
    request_id: str
    state: Literal["pending", "running", "completed", "failed"]
    progress: float = 0.0
    step: str = ""
    result: Optional[StorySummary] = None
    error: Optional[str] = None
    cancelled: bool = False
    created_at: float
    updated_at: float

    @classmethod
    def from_manifest(cls, mf: Dict[str, Any]) -> "JobStatus":
        return cls(**{k: mf.get(k) for k in cls.model_fields if k in mf})


class AsyncAccepted(BaseModel):
    request_id: str
    status_url: str
    stop_url: str
    worker_url: str
    superseded: Optional[str] = None
