import json
import re
from typing import Any, Optional

_FENCED_RE = re.compile(r"```(?:json)?\s*\n?(.*?)\n?\s*```", re.IGNORECASE | re.DOTALL)

def extract_json_block(text: str) -> str:
    """
    Best-effort pull of a JSON document out of model output:
    fenced ```json block first, then the whole text, then the first {...} / [...] span.
    """
    s = (text or "").strip()
    m = _FENCED_RE.search(s)
    if m:
        return m.group(1).strip()
    try:
        json.loads(s)
        return s
    except Exception:
        pass
    m = re.search(r"\{.*\}", s, flags=re.DOTALL)
    if m:
        return m.group(0)
    m = re.search(r"\[.*\]", s, flags=re.DOTALL)
    return m.group(0) if m else s

def parse_json_object(text: str) -> Optional[dict]:
    """Return the parsed JSON object, or None when the text holds no usable object."""
    try:
        data: Any = json.loads(extract_json_block(text))
    except (ValueError, TypeError):
        return None
    return data if isinstance(data, dict) else None
