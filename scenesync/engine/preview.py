"""
Scene screenshot handling.

The screenshot endpoint is loose about its payload: it may return a raw
base64 string, a proper data URL, or a data URL that was prefixed twice.
normalize_data_url() turns all of those into one data URL; decode_preview()
also reads the image with Pillow to learn its pixel size, which the overlay
mapper and renderer need.
"""
from __future__ import annotations

import base64
import binascii
import io
import logging
import re
from typing import Optional

from PIL import Image, UnidentifiedImageError

from scenesync.schemas.layout import PreviewImage

logger = logging.getLogger(__name__)

_DATA_URL_MARKER = "data:image"
_BASE64_RE = re.compile(r"^[A-Za-z0-9+/=]+$")


def normalize_data_url(raw: Optional[str]) -> Optional[str]:
    if not raw:
        return None
    shot = str(raw)

    # Keep only the last prefix of a double data URL.
    last = shot.rfind(_DATA_URL_MARKER)
    if last > 0:
        shot = shot[last:]

    if not shot.startswith(_DATA_URL_MARKER):
        if not _BASE64_RE.match(shot[:100]):
            return None
        shot = f"data:image/png;base64,{shot}"
    return shot


def image_bytes(data_url: str) -> bytes:
    """Decode the base64 payload of a data URL."""
    _, _, payload = data_url.partition(",")
    return base64.b64decode(payload, validate=False)


def decode_preview(raw: Optional[str]) -> Optional[PreviewImage]:
    """
    Build a PreviewImage from a screenshot payload.

    Returns None when there is no payload.  A payload Pillow cannot read is
    still returned (size 0x0) so the caller can show it; the overlay mapper
    then falls back to the scene's base aspect ratio.
    """
    data_url = normalize_data_url(raw)
    if data_url is None:
        return None

    try:
        with Image.open(io.BytesIO(image_bytes(data_url))) as img:
            width, height = img.size
    except (binascii.Error, UnidentifiedImageError, OSError, ValueError) as exc:
        logger.debug("Could not decode scene screenshot: %s", exc)
        width, height = 0, 0

    return PreviewImage(data_url=data_url, width=width, height=height)


def encode_png_data_url(img: Image.Image) -> str:
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return "data:image/png;base64," + base64.b64encode(buf.getvalue()).decode("ascii")
