"""
Scene layout schemas — what the mixer reports for one scene.

A SceneLayout is produced by the layout fetcher on every fetch and is never
persisted.  Geometry is always in scene-native pixels (the scene's base
canvas, normally 1920x1080); overlay coordinates are derived from it by
engine/coords.py.

Placeholder order here is the order the backend returned.  Slot numbering
is assigned by the reconciler, not by this module.
"""
from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_BASE_WIDTH = 1920
DEFAULT_BASE_HEIGHT = 1080


class Rect(BaseModel):
    """Axis-aligned rectangle in scene pixels."""
    x: float = 0.0
    y: float = 0.0
    w: float = 0.0
    h: float = 0.0


class Resolution(BaseModel):
    """Pixel size. Persisted as {w, h} inside slot sourceProps."""
    w: int = DEFAULT_BASE_WIDTH
    h: int = DEFAULT_BASE_HEIGHT


class Placeholder(BaseModel):
    """
    A positioned region of a scene that a managed source can fill.

    is_placeholder=False marks a fixed scene item the backend reports next to
    the placeholders; the reconciler turns it into a non-replaceable slot.
    """
    model_config = ConfigDict(populate_by_name=True)

    external_item_id: Optional[Any] = Field(default=None, alias="sceneItemId")
    rect: Rect = Field(default_factory=Rect)
    base_resolution: Resolution = Field(default_factory=Resolution, alias="base")
    is_placeholder: bool = Field(default=True, alias="isPlaceholder")


class PreviewImage(BaseModel):
    """Scene screenshot as a data URL plus its decoded pixel size."""
    data_url: str
    width: int = 0
    height: int = 0


class InputSource(BaseModel):
    """One selectable input of the mixer."""
    name: str
    kind: str = "input"


class SceneLayout(BaseModel):
    """
    Result of one layout fetch.

    stale=True means retries were exhausted and this is either the previous
    snapshot for the scene or an empty layout; error carries the last failure.
    """
    scene_name: str = ""
    placeholders: list[Placeholder] = Field(default_factory=list)
    base_resolution: Resolution = Field(default_factory=Resolution)
    preview: Optional[PreviewImage] = None
    stale: bool = False
    error: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not self.placeholders
