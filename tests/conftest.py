# tests/conftest.py
import base64
import io
import os
import tempfile

import pytest
from PIL import Image

# must be set before app.config is imported
os.environ.setdefault("OUTPUT_DIR", tempfile.mkdtemp(prefix="story-tests-"))
os.environ.setdefault("GCS_BUCKET", "test-bucket")
os.environ["USE_CLOUD_TASKS"] = "false"

from fastapi.testclient import TestClient  # noqa: E402

from app.main import app  # noqa: E402

STORAGE_PREFIX = "https://storage.googleapis.com/test-bucket/"

DEFAULT_STORY = (
    "Title: Moonlight Dreams\n\n"
    "Mia looked up at the silver moon.\n\n"
    "The stars hummed a quiet song, and the garden fell asleep.\n\n"
    "The End."
)


# -------- Test client --------
@pytest.fixture(scope="session")
def client():
    return TestClient(app)


# -------- Utilities --------
def png_bytes(w: int = 8, h: int = 8) -> bytes:
    im = Image.new("RGB", (w, h), (123, 45, 67))
    buf = io.BytesIO()
    im.save(buf, format="PNG")
    return buf.getvalue()


def png_data_uri(w: int = 8, h: int = 8) -> str:
    return "data:image/png;base64," + base64.b64encode(png_bytes(w, h)).decode("ascii")


# -------- Mocks for OpenAI --------
class _MockMessage:
    def __init__(self, content: str):
        self.content = content

class _MockChoice:
    def __init__(self, content: str):
        self.message = _MockMessage(content)

class _MockChatResponse:
    def __init__(self, content: str):
        self.choices = [_MockChoice(content)]


class FakeModels:
    """Scripted replies for the text and vision clients; records every call."""

    def __init__(self):
        self.story_text = DEFAULT_STORY
        self.title_text = "Le Jardin de la Lune"
        self.vision_text = '{"subjects": ["girl", "cat"], "setting": "garden", "mood": "calm", "details": ["moon"], "themes": ["night"], "raw": "A girl and a cat in a garden."}'
        self.fail_story = False
        self.fail_title = False
        self.fail_vision = False
        self.story_calls = []
        self.title_calls = []
        self.vision_calls = []

    def text_create(self, model, messages, **kwargs):
        from app.features.story_generation import narrative

        system = messages[0]["content"]
        if system == narrative.TITLE_SYSTEM:
            self.title_calls.append({"messages": messages, **kwargs})
            if self.fail_title:
                raise RuntimeError("title model down")
            return _MockChatResponse(self.title_text)
        self.story_calls.append({"messages": messages, **kwargs})
        if self.fail_story:
            raise RuntimeError("text model down")
        return _MockChatResponse(self.story_text)

    def vision_create(self, model, messages, **kwargs):
        self.vision_calls.append({"messages": messages, **kwargs})
        if self.fail_vision:
            raise RuntimeError("vision model down")
        return _MockChatResponse(self.vision_text)


# -------- Storage / datastore / speech fakes --------
class FakeStorage:
    prefix = STORAGE_PREFIX

    def __init__(self):
        self.objects = {}
        self.fail = False

    def upload_bytes(self, data, *, object_name, content_type, cache_control="public, max-age=31536000"):
        if self.fail:
            raise RuntimeError("bucket unreachable")
        self.objects[object_name] = {"data": data, "content_type": content_type}
        return {
            "bucket": "test-bucket",
            "object": object_name,
            "gs_uri": f"gs://test-bucket/{object_name}",
            "public_url": f"{STORAGE_PREFIX}{object_name}",
            "content_type": content_type,
            "size": len(data),
        }


class FakeDatastore:
    """In-memory stand-in for SupabaseDatastore; `fail` names tables whose inserts raise."""

    def __init__(self):
        self.tables = {"stories": [], "images": [], "characters": [], "background_music": []}
        self.fail = set()
        self.fail_select = False

    def insert(self, table, rows):
        if table in self.fail:
            raise RuntimeError(f"insert into {table} refused")
        rows = rows if isinstance(rows, list) else [rows]
        self.tables.setdefault(table, []).extend(dict(r) for r in rows)
        return rows

    def select_first(self, table, *, column, value, columns="id"):
        if self.fail_select:
            raise RuntimeError("select failed")
        for row in self.tables.get(table, []):
            if row.get(column) == value:
                return {c.strip(): row.get(c.strip()) for c in columns.split(",")}
        return None


class FakeSpeech:
    def __init__(self):
        self.calls = []
        self.error = None

    def synthesize(self, text, *, voice_id, language_code=None, **kwargs):
        self.calls.append({"text": text, "voice_id": voice_id, "language_code": language_code})
        if self.error:
            raise self.error
        return b"ID3" + b"\x00" * 2048


class Fakes:
    def __init__(self):
        self.models = FakeModels()
        self.storage = FakeStorage()
        self.db = FakeDatastore()
        self.speech = FakeSpeech()
        self.fetch_fail = False


@pytest.fixture(autouse=True)
def fakes(monkeypatch):
    """
    Auto-mock every external service so tests never hit the network.
    """
    from app.features.story_generation import scenes
    from app.lib import datastore, elevenlabs_client, gcs_storage, openai_client

    f = Fakes()

    def _fake_fetch(url):
        if f.fetch_fail:
            raise RuntimeError("fetch failed")
        return png_bytes()

    monkeypatch.setattr(openai_client.text_client.chat.completions, "create", f.models.text_create)
    monkeypatch.setattr(openai_client.vision_client.chat.completions, "create", f.models.vision_create)
    monkeypatch.setattr(gcs_storage, "upload_bytes", f.storage.upload_bytes)
    monkeypatch.setattr(datastore, "get_datastore", lambda: f.db)
    monkeypatch.setattr(elevenlabs_client, "synthesize", f.speech.synthesize)
    monkeypatch.setattr(scenes, "fetch_image", _fake_fetch)
    yield f


@pytest.fixture
def png_uri():
    return png_data_uri


@pytest.fixture
def make_request():
    from app.features.story_generation.schemas import GenerationRequest

    def _make(**overrides):
        data = {
            "user_id": "user-1",
            "images": [png_data_uri()],
            "characters": [{"name": "Mia", "description": "a curious girl"}],
            "theme": "bedtime",
            "duration": "short",
            "language": "french",
            "background_music": None,
            "voice": "v1",
        }
        data.update(overrides)
        return GenerationRequest(**data)

    return _make


@pytest.fixture(autouse=True)
def fresh_rate_limits():
    # the app is shared across tests; start every test with an empty window
    app.state.rate_limiter.reset()
