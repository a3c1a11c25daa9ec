# tests/test_scenes.py
from app.config import config
from app.features.story_generation.scenes import analyze_scenes, parse_scene


def test_fenced_json_is_parsed():
    scene = parse_scene('Here you go:\n```json\n{"subjects": ["dog"], "setting": "park", "mood": "happy", "details": ["ball"], "raw": "A dog."}\n```')
    assert scene.subjects == ["dog"]
    assert scene.setting == "park"
    assert scene.raw_text == "A dog."
    assert not scene.fallback


def test_embedded_object_is_parsed():
    scene = parse_scene('Sure! {"subjects": "a fox", "setting": "forest"} Hope that helps.')
    assert scene.subjects == ["a fox"]
    assert scene.setting == "forest"


def test_prose_reply_keeps_raw_text():
    scene = parse_scene("A small boy sleeping under the stars.")
    assert scene.fallback
    assert scene.subjects == ["child", "character"]
    assert scene.setting == "magical scene"
    assert scene.raw_text == "A small boy sleeping under the stars."


def test_array_reply_is_not_an_object():
    scene = parse_scene('["cat", "dog"]')
    assert scene.fallback


def test_placeholder_is_never_sent_to_the_model(fakes):
    scenes = analyze_scenes([config.placeholder_image_url])
    assert len(scenes) == 1 and scenes[0].fallback
    assert fakes.models.vision_calls == []


def test_one_failed_image_only_affects_itself(fakes, monkeypatch):
    from app.features.story_generation import scenes as scenes_mod

    def _fetch(url):
        if "bad" in url:
            raise RuntimeError("404")
        return b"\x89PNG\r\n\x1a\n" + b"\x00" * 16

    monkeypatch.setattr(scenes_mod, "fetch_image", _fetch)
    out = analyze_scenes(["https://x/good-1.png", "https://x/bad.png", "https://x/good-2.png"])
    assert [s.fallback for s in out] == [False, True, False]
    assert out[0].setting == "garden"
    assert len(fakes.models.vision_calls) == 2


def test_vision_outage_still_yields_descriptions(fakes):
    fakes.models.fail_vision = True
    out = analyze_scenes(["https://x/1.png", "https://x/2.png"])
    assert len(out) == 2 and all(s.fallback for s in out)


def test_at_most_five_scenes(fakes):
    out = analyze_scenes([f"https://x/{i}.png" for i in range(7)])
    assert len(out) == 5


def test_image_is_sent_inline(fakes):
    analyze_scenes(["https://x/1.png"])
    content = fakes.models.vision_calls[0]["messages"][0]["content"]
    assert content[1]["image_url"]["url"].startswith("data:image/png;base64,")
    assert fakes.models.vision_calls[0]["max_tokens"] == 500
