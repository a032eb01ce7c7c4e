"""
Plan and apply-report schemas.

ScenePlan is the outbound notification emitted on every edit-mode
recomputation; the on-air trigger later applies exactly the latest plan of
the item that goes live.  ApplyReport records what one applier pass did
(or would do) per slot.
"""
from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from scenesync.schemas.layout import Placeholder
from scenesync.schemas.slot import Slot


class ApplyMode(str, Enum):
    """EDIT plans only; APPLY mutates the live mixer."""
    EDIT = "edit"
    APPLY = "apply"


class ActionKind(str, Enum):
    REMOVE = "remove"
    REPLACE = "replace"
    TRANSFORM = "transform"
    SKIP = "skip"


class ScenePlan(BaseModel):
    """Desired state of one item's scene: {itemId, sceneName, placeholders, slots}."""
    model_config = ConfigDict(populate_by_name=True)

    item_id: Optional[int] = Field(default=None, alias="itemId")
    scene_name: str = Field(default="", alias="sceneName")
    placeholders: list[Placeholder] = Field(default_factory=list)
    slots: list[Slot] = Field(default_factory=list)


class SlotAction(BaseModel):
    """One slot's outcome within an applier pass."""
    model_config = ConfigDict(use_enum_values=True)

    slot_number: int
    kind: ActionKind
    source: str = ""                # desired source ("" when removing)
    previous: Optional[str] = None  # last pushed source, if any
    ok: bool = True
    fallback_used: bool = False     # replace fell back to remove + ensure + paste
    error: Optional[str] = None


class ApplyReport(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    item_id: Optional[int] = None
    scene_name: str
    mode: ApplyMode
    actions: list[SlotAction] = Field(default_factory=list)

    @property
    def failed(self) -> list[SlotAction]:
        return [a for a in self.actions if not a.ok]

    @property
    def mutations(self) -> list[SlotAction]:
        return [a for a in self.actions if a.kind != ActionKind.SKIP.value]
