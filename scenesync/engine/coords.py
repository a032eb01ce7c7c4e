"""
Coordinate mapping from scene pixels to the rendered preview.

    scale_x = rendered.w / base.w
    scale_y = rendered.h / base.h      (scale_x when rendered.h is unknown)

OverlayTracker keeps the label positions for the current preview size and
recomputes them only when a resize notification reports a new size.
"""
from __future__ import annotations

from typing import NamedTuple, Optional

from scenesync.engine.reconciler import order_placeholders
from scenesync.schemas.layout import Placeholder, Rect, Resolution
from scenesync.schemas.slot import Slot

LABEL_OFFSET_PX = 4
DEFAULT_ASPECT = 1080 / 1920


class Point(NamedTuple):
    x: float
    y: float


class RenderedSize(NamedTuple):
    w: float
    h: Optional[float] = None


class OverlayLabel(NamedTuple):
    slot_number: int
    text: str
    x: float
    y: float


def scale_factors(base: Resolution, rendered: RenderedSize) -> tuple[float, float]:
    scale_x = rendered.w / base.w if rendered.w and base.w else 1.0
    scale_y = rendered.h / base.h if rendered.h and base.h else scale_x
    return scale_x, scale_y


def to_overlay(rect: Rect, base: Resolution, rendered: RenderedSize) -> Point:
    scale_x, scale_y = scale_factors(base, rendered)
    return Point(rect.x * scale_x, rect.y * scale_y)


def rendered_size(width: float, base: Optional[Resolution] = None) -> RenderedSize:
    """Size of a preview rendered *width* pixels wide, keeping the base aspect ratio."""
    if base is not None and base.w and base.h:
        ratio = base.h / base.w
    else:
        ratio = DEFAULT_ASPECT
    return RenderedSize(width, round(width * ratio))


def label_text(slot_number: int, slot: Optional[Slot]) -> str:
    source = slot.selected_source if slot is not None and slot.selected_source else "choose source"
    return f"#{slot_number} — {source}"


def label_positions(
    placeholders: list[Placeholder],
    slots: list[Slot],
    base: Resolution,
    rendered: RenderedSize,
    offset: float = LABEL_OFFSET_PX,
) -> list[OverlayLabel]:
    """One label per placeholder in slot order, nudged off the corner by *offset*."""
    by_number = {s.slot_number: s for s in slots}
    labels = []
    for number, placeholder in enumerate(order_placeholders(placeholders), start=1):
        point = to_overlay(placeholder.rect, base, rendered)
        labels.append(
            OverlayLabel(number, label_text(number, by_number.get(number)), point.x + offset, point.y + offset)
        )
    return labels


class OverlayTracker:
    def __init__(self, base: Resolution) -> None:
        self.base = base
        self.size: Optional[RenderedSize] = None
        self.placeholders: list[Placeholder] = []
        self.slots: list[Slot] = []
        self.labels: list[OverlayLabel] = []

    def set_content(self, placeholders: list[Placeholder], slots: list[Slot], base: Optional[Resolution] = None) -> list[OverlayLabel]:
        self.placeholders = list(placeholders)
        self.slots = list(slots)
        if base is not None:
            self.base = base
        return self._recompute()

    def resize(self, width: float) -> bool:
        """Handle a resize notification.  Returns True if the labels moved."""
        size = rendered_size(width, self.base)
        if size == self.size:
            return False
        self.size = size
        self._recompute()
        return True

    def _recompute(self) -> list[OverlayLabel]:
        if self.size is None:
            self.labels = []
        else:
            self.labels = label_positions(self.placeholders, self.slots, self.base, self.size)
        return self.labels
