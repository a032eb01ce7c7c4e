"""
Overlay renderer — draws slot labels onto the scene preview.

Each label ("#1 — CAM1", "#2 — choose source") is drawn at its mapped
overlay position on a translucent dark box with light text, the way the
editor shows them over the live screenshot.

Output is deterministic for the same (preview, labels, font).
"""
from __future__ import annotations

import io
import logging
from pathlib import Path
from typing import Optional

from PIL import Image, ImageDraw, ImageFont

from scenesync.engine.coords import OverlayLabel
from scenesync.engine.preview import image_bytes
from scenesync.schemas.layout import PreviewImage

logger = logging.getLogger(__name__)

_BOX_FILL = (0, 0, 0, 166)       # rgba(0,0,0,0.65)
_TEXT_FILL = (255, 255, 255, 255)
_PAD_X, _PAD_Y = 6, 2


def render_overlay(
    preview: PreviewImage,
    labels: list[OverlayLabel],
    output_path: Path,
    font_path: Optional[str] = None,
    font_size: int = 12,
) -> Path:
    """
    Draw *labels* over the preview and save a PNG at *output_path*.

    Label coordinates must already be in the preview's pixel space (see
    engine/coords.py with rendered size = preview size).

    Raises:
        ValueError: the preview payload is not a decodable image.
    """
    try:
        base = Image.open(io.BytesIO(image_bytes(preview.data_url))).convert("RGBA")
    except (OSError, ValueError) as exc:
        raise ValueError(f"Preview image cannot be decoded: {exc}") from exc

    layer = Image.new("RGBA", base.size, (0, 0, 0, 0))
    draw = ImageDraw.Draw(layer)
    font = _load_font(font_path, font_size)

    for label in labels:
        x, y = int(round(label.x)), int(round(label.y))
        text = _drawable_text(label.text, font)
        _, _, right, bottom = draw.textbbox((x + _PAD_X, y + _PAD_Y), text, font=font)
        draw.rectangle(
            (x, y, right + _PAD_X, bottom + _PAD_Y),
            fill=_BOX_FILL,
        )
        draw.text((x + _PAD_X, y + _PAD_Y), text, fill=_TEXT_FILL, font=font)

    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    Image.alpha_composite(base, layer).convert("RGB").save(
        str(output_path), format="PNG", compress_level=9, optimize=False,
    )
    logger.debug("Rendered %d overlay label(s) to %s", len(labels), output_path)
    return output_path


def _drawable_text(text: str, font) -> str:
    # The bitmap fallback font only covers latin-1.
    if isinstance(font, ImageFont.FreeTypeFont):
        return text
    return text.replace("—", "-").encode("latin-1", "replace").decode("latin-1")


def _load_font(font_path: Optional[str], font_size: int) -> "ImageFont.FreeTypeFont | ImageFont.ImageFont":
    """Load a TrueType font or fall back to Pillow's built-in."""
    if font_path:
        try:
            return ImageFont.truetype(font_path, size=font_size)
        except OSError as exc:
            logger.debug("Could not load font %r: %s; using built-in", font_path, exc)

    return ImageFont.load_default(size=font_size)
