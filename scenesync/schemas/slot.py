"""
Slot schema — the persisted per-item record of what fills each placeholder.

Persisted as item.data.slots on the rundown item, using the backend's
camelCase keys:

    {"slot": 1, "replaceable": true, "selectedSource": "CAM1",
     "sourceProps": {"placeholder": {...}, "base": {...}, "fit": "contain"},
     "genericType": "Existing Source", "mediaData": null}

Keys written by other editors are kept (extra="allow") so a load/save
round trip never drops them.
"""
from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from scenesync.schemas.layout import Rect, Resolution

# Prefixes for sources managed by the rundown rather than the mixer.
GRAPHIC_PREFIX = "GRAPHIC:"
MEDIA_PREFIX = "MEDIA:"
YOUTUBE_PREFIX = "YOUTUBE:"
PDFIMAGE_PREFIX = "PDFIMAGE:"
INTERNAL_SOURCE_PREFIXES = (GRAPHIC_PREFIX, MEDIA_PREFIX, YOUTUBE_PREFIX, PDFIMAGE_PREFIX)


class FitMode(str, Enum):
    CONTAIN = "contain"
    COVER = "cover"
    FILL = "fill"
    NONE = "none"


class GenericType(str, Enum):
    """Content categories the rundown editor assigns to a slot."""
    EXISTING_SOURCE = "Existing Source"
    GRAPHICS = "Graphics"
    VIDEO = "Video"
    YOUTUBE = "YouTube"
    PDF_IMAGE = "PDF/Image"


class SourceProps(BaseModel):
    """Geometry of the placeholder a slot is bound to, plus the fit rule."""
    model_config = ConfigDict(extra="allow", use_enum_values=True)

    placeholder: Rect = Field(default_factory=Rect)
    base: Resolution = Field(default_factory=Resolution)
    fit: FitMode = FitMode.CONTAIN


class Slot(BaseModel):
    """
    One placeholder assignment of a rundown item.

    slot_number is 1-based and derived from the placeholder's position in the
    last fetched layout (top-to-bottom, then left-to-right).  It never changes
    because a selection changed.
    """
    model_config = ConfigDict(populate_by_name=True, extra="allow", use_enum_values=True)

    slot_number: int = Field(alias="slot", ge=1)
    replaceable: bool = True
    selected_source: str = Field(default="", alias="selectedSource")
    source_props: SourceProps = Field(default_factory=SourceProps, alias="sourceProps")
    # Free-form on the wire; GenericType lists the values the rundown writes.
    generic_type: Optional[str] = Field(default=None, alias="genericType")
    media_data: Optional[dict[str, Any]] = Field(default=None, alias="mediaData")

    @property
    def has_selection(self) -> bool:
        return bool(self.selected_source)

    @property
    def is_internal_source(self) -> bool:
        return self.selected_source.startswith(INTERNAL_SOURCE_PREFIXES)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


def slots_from_wire(raw: Optional[list[Any]]) -> list[Slot]:
    """Parse item.data.slots; non-dict entries are ignored."""
    return [Slot.model_validate(entry) for entry in (raw or []) if isinstance(entry, dict)]


def slots_to_wire(slots: list[Slot]) -> list[dict[str, Any]]:
    return [s.to_wire() for s in slots]
