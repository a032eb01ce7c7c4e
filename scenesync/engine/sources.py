"""
Source catalog — which existing mixer inputs a slot may select.

Only real inputs are offered (scenes and groups are not), mixer-internal
names are hidden, and the list is deduplicated and sorted.  A selection
that is no longer in the live list is cleared from its slot.
"""
from __future__ import annotations

import logging
from typing import Iterable, Optional

from scenesync.client.http import FetchError
from scenesync.client.scene_api import SceneApi
from scenesync.engine.notify import Notifier, log_notifier
from scenesync.engine.slot_store import SlotStore
from scenesync.schemas.layout import InputSource
from scenesync.schemas.slot import Slot

logger = logging.getLogger(__name__)

ALL_SOURCES_SCENE = "ALL-SOURCES"


class SourceNotFound(Exception):
    """A slot selects an input that no longer exists in the mixer."""

    def __init__(self, slot_number: int, source_name: str) -> None:
        super().__init__(f"Source no longer exists: {source_name}")
        self.slot_number = slot_number
        self.source_name = source_name


def filter_inputs(
    sources: Iterable[InputSource],
    internal_prefixes: Iterable[str] = ("__",),
) -> list[InputSource]:
    prefixes = tuple(internal_prefixes)
    seen: set[str] = set()
    kept: list[InputSource] = []
    for source in sources:
        if source.kind != "input" or not source.name:
            continue
        if prefixes and source.name.startswith(prefixes):
            continue
        if source.name in seen:
            continue
        seen.add(source.name)
        kept.append(source)
    return sorted(kept, key=lambda s: s.name)


class SourceCatalog:
    def __init__(
        self,
        scenes: SceneApi,
        internal_prefixes: Iterable[str] = ("__",),
        notify: Notifier = log_notifier,
    ) -> None:
        self.scenes = scenes
        self.internal_prefixes = tuple(internal_prefixes)
        self._notify = notify
        self.inputs: list[InputSource] = []

    def list_inputs(self, scene_name: str = ALL_SOURCES_SCENE) -> list[InputSource]:
        """Refresh the selectable inputs; an unreachable mixer yields []."""
        try:
            raw = self.scenes.list_inputs(scene_name)
        except FetchError as exc:
            logger.warning("Mixer sources not available yet; continuing without them: %s", exc)
            return []
        self.inputs = filter_inputs(raw, self.internal_prefixes)
        return self.inputs

    def find_missing(
        self,
        slots: list[Slot],
        inputs: Optional[list[InputSource]] = None,
    ) -> list[SourceNotFound]:
        """Plain input selections absent from *inputs* (prefixed references are skipped)."""
        names = {s.name for s in (self.inputs if inputs is None else inputs)}
        return [
            SourceNotFound(slot.slot_number, slot.selected_source)
            for slot in slots
            if slot.replaceable
            and slot.has_selection
            and not slot.is_internal_source
            and slot.selected_source not in names
        ]

    def validate_selections(
        self,
        store: SlotStore,
        inputs: Optional[list[InputSource]] = None,
    ) -> list[SourceNotFound]:
        """Clear every slot whose selected input is gone and tell the user."""
        missing = self.find_missing(store.slots, inputs)
        index_of = {slot.slot_number: i for i, slot in enumerate(store.slots)}
        for error in missing:
            logger.info("%s (slot %d)", error, error.slot_number)
            store.update(index_of[error.slot_number], "")
            self._notify("error", str(error))
        return missing
