from __future__ import annotations
import base64
import binascii
import io
import re
from dataclasses import dataclass

from PIL import Image, UnidentifiedImageError

_DATAURL_RE = re.compile(r"^data:(image/[\w+.-]+);base64,(.*)$", re.IGNORECASE | re.DOTALL)

_EXT_CONTENT_TYPES = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".gif": "image/gif",
    ".webp": "image/webp",
}


@dataclass(frozen=True)
class DecodedImage:
    data: bytes
    ext: str
    content_type: str


def sniff_ext_from_bytes(data: bytes) -> str:
    # PNG
    if data.startswith(b"\x89PNG\r\n\x1a\n"):
        return ".png"
    # JPEG
    if data.startswith(b"\xff\xd8"):
        return ".jpg"
    # GIF87a / GIF89a
    if data.startswith(b"GIF87a") or data.startswith(b"GIF89a"):
        return ".gif"
    # WEBP: RIFF....WEBP
    if len(data) >= 12 and data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return ".webp"
    return ""  # unknown

def is_data_url(s: object) -> bool:
    return isinstance(s, str) and s.startswith("data:")

def decode_image_data_url(data_url: str) -> DecodedImage:
    """
    Decode 'data:image/<type>;base64,<payload>' into bytes.
    The declared MIME is not trusted: bytes must sniff as PNG/JPEG/GIF/WEBP
    and open with Pillow. Raises ValueError otherwise.
    """
    if not is_data_url(data_url):
        raise ValueError("not a data: URI")
    m = _DATAURL_RE.match(data_url.strip())
    if not m:
        raise ValueError("not a base64 image data URI")

    b64 = "".join(m.group(2).split())
    missing_padding = (-len(b64)) % 4
    if missing_padding:
        b64 += "=" * missing_padding
    try:
        data = base64.b64decode(b64, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValueError(f"invalid base64 payload: {e}")

    ext = sniff_ext_from_bytes(data)
    if not ext:
        raise ValueError("unrecognized image encoding")
    try:
        with Image.open(io.BytesIO(data)) as im:
            im.verify()
    except (UnidentifiedImageError, OSError, SyntaxError) as e:
        raise ValueError(f"corrupt image: {e}")

    return DecodedImage(data=data, ext=ext, content_type=_EXT_CONTENT_TYPES[ext])
