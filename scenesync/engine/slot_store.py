"""
Slot store — persisted slot array of one rundown item.

Hydration guard
    load() marks the store *hydrating* until the item fetch returns.  While
    hydrating (or before any successful load) saves are no-ops, so a default
    merge computed from the layout cannot overwrite persisted selections
    that have not arrived yet.

Stale responses
    Every load() bumps a generation counter.  A fetch that returns after a
    newer load() (or reset()) started raises StaleResponse and its result is
    discarded.

Debounced writes
    update()/replace() patch memory immediately and schedule a save through
    a Debouncer (300 ms by default).  Only the last save of a burst is sent,
    and only when the scene-relevant fields (scene name + slots) differ from
    what was last persisted.

Failed writes
    A failed PATCH keeps the optimistic in-memory state, marks the store
    dirty and notifies a warning.  Dirty forces the next save to be sent even
    if it matches the last persisted fingerprint; retry_save() sends it now.

Reloads
    load() first sends any pending save of the current item (the same item
    included) and retries a dirty one.  Only if that retry fails too are the
    local changes dropped, with a warning naming the item.
"""
from __future__ import annotations

import json
import logging
import threading
from typing import Any, Optional, Union

from scenesync.client.http import FetchError
from scenesync.client.item_api import ItemApi
from scenesync.engine.debounce import Debouncer, TimerFactory
from scenesync.engine.notify import Notifier, log_notifier
from scenesync.schemas.slot import (
    MEDIA_PREFIX,
    PDFIMAGE_PREFIX,
    YOUTUBE_PREFIX,
    Slot,
    slots_from_wire,
    slots_to_wire,
)

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_S = 0.3

# Python attribute name -> persisted key, for partial updates given either way.
_WIRE_KEYS = {name: (field.alias or name) for name, field in Slot.model_fields.items()}


class StaleResponse(Exception):
    """A load finished for an item that is no longer the active one."""


class SaveError(Exception):
    """Persisting the slot array failed; in-memory state was kept."""


def media_source_name(media_data: Optional[dict[str, Any]]) -> str:
    """selectedSource value for a media payload chosen in the media picker."""
    if not media_data:
        return ""
    if media_data.get("media"):
        return f"{MEDIA_PREFIX}{media_data['media'].get('id')}"
    if media_data.get("youtube"):
        return f"{YOUTUBE_PREFIX}{media_data['youtube'].get('videoId')}"
    if media_data.get("pdfImage"):
        return f"{PDFIMAGE_PREFIX}{media_data['pdfImage'].get('id')}"
    return ""


def persisted_fingerprint(scene: Any, slots: list[Slot]) -> str:
    return json.dumps(
        {"scene": scene, "slots": slots_to_wire(slots)},
        sort_keys=True,
        separators=(",", ":"),
    )


class SlotStore:
    def __init__(
        self,
        items: ItemApi,
        debounce_s: float = DEFAULT_DEBOUNCE_S,
        timer_factory: TimerFactory = threading.Timer,
        notify: Notifier = log_notifier,
    ) -> None:
        self.items = items
        self._notify = notify
        self._lock = threading.RLock()
        self._debouncer = Debouncer(debounce_s, self._save, timer_factory=timer_factory)
        self._generation = 0

        self.item_id: Optional[int] = None
        self.item: dict[str, Any] = {}
        self.data: dict[str, Any] = {}
        self.slots: list[Slot] = []
        self.hydrating = False
        self.loaded = False
        self.dirty = False
        self.last_error: Optional[SaveError] = None
        self._persisted: Optional[str] = None

    # ------------------------------------------------------------------
    # Load
    # ------------------------------------------------------------------

    def load(self, item_id: int) -> list[Slot]:
        """
        Fetch item *item_id* and make it the active item.

        Raises:
            StaleResponse: another load()/reset() started while this one was
                           in flight; nothing was changed.
            FetchError:    the item could not be fetched; the store stays
                           un-hydrated so merges remain deferred.
        """
        with self._lock:
            if self.item_id is not None:
                self._release_outgoing()
            self._debouncer.cancel()
            self._generation += 1
            generation = self._generation
            self.item_id = item_id
            self.item, self.data, self.slots = {}, {}, []
            self.hydrating = True
            self.loaded = False
            self.dirty = False
            self.last_error = None
            self._persisted = None

        try:
            item = self.items.get_item(item_id)
        except FetchError:
            with self._lock:
                if generation == self._generation:
                    self.hydrating = False
            logger.warning("Loading slots for item %s failed", item_id)
            raise

        with self._lock:
            if generation != self._generation:
                raise StaleResponse(
                    f"Discarding slots of item {item_id}: active item is now {self.item_id}"
                )
            data = dict(item.get("data") or {})
            self.item = item
            self.data = data
            self.slots = slots_from_wire(data.get("slots"))
            self._persisted = persisted_fingerprint(data.get("scene"), self.slots)
            self.hydrating = False
            self.loaded = True
            logger.debug("Loaded %d slot(s) for item %s", len(self.slots), item_id)
            return list(self.slots)

    def is_active(self, item_id: Optional[int]) -> bool:
        return item_id is not None and item_id == self.item_id

    # ------------------------------------------------------------------
    # Mutations (optimistic, debounced save)
    # ------------------------------------------------------------------

    def update(self, slot_index: int, change: Union[str, dict[str, Any]]) -> Slot:
        """
        Patch one slot.  *change* is a new selectedSource or a partial slot
        (attribute names or persisted keys; sourceProps is merged key-wise).
        """
        with self._lock:
            if not 0 <= slot_index < len(self.slots):
                raise IndexError(f"slot index {slot_index} out of range ({len(self.slots)} slots)")
            patch = {"selected_source": change} if isinstance(change, str) else change
            current = self.slots[slot_index].model_dump(by_alias=True)
            for key, value in patch.items():
                wire_key = _WIRE_KEYS.get(key, key)
                if wire_key == "sourceProps" and isinstance(value, dict):
                    value = {**current.get("sourceProps", {}), **value}
                current[wire_key] = value
            updated = Slot.model_validate(current)
            self.slots = [*self.slots[:slot_index], updated, *self.slots[slot_index + 1:]]
            self._schedule_save()
            return updated

    def update_media(self, slot_index: int, media_data: Optional[dict[str, Any]]) -> Slot:
        return self.update(
            slot_index,
            {"media_data": media_data, "selected_source": media_source_name(media_data)},
        )

    def replace(self, slots: list[Slot]) -> None:
        """Swap in a whole new slot array (a reconciler result)."""
        with self._lock:
            self.slots = list(slots)
            self._schedule_save()

    def update_data(self, **fields: Any) -> None:
        """Set sibling fields of item.data (e.g. scene) and schedule a save."""
        with self._lock:
            self.data = {**self.data, **fields}
            self._schedule_save()

    def reset(self) -> None:
        """Forget the active item (it was deleted); in-flight loads become stale."""
        with self._lock:
            self._debouncer.cancel()
            self._generation += 1
            self.item_id = None
            self.item, self.data, self.slots = {}, {}, []
            self.hydrating = False
            self.loaded = False
            self.dirty = False
            self.last_error = None
            self._persisted = None

    # ------------------------------------------------------------------
    # Saving
    # ------------------------------------------------------------------

    @property
    def save_pending(self) -> bool:
        return self._debouncer.pending

    def flush(self) -> None:
        """Send a pending debounced save immediately."""
        self._debouncer.flush()

    def retry_save(self) -> None:
        """Resend the current state after a failed save."""
        with self._lock:
            if not self.dirty:
                return
            self._schedule_save()
        self._debouncer.flush()

    def _release_outgoing(self) -> None:
        """Send what the current item still owes the backend before it is replaced."""
        self._debouncer.flush()
        if self.dirty:
            self.retry_save()
        if self.dirty:
            logger.warning("Discarding unsaved slots of item %s", self.item_id)
            self._notify("warning", f"Unsaved changes for item {self.item_id} were discarded")

    def _schedule_save(self) -> None:
        if self.hydrating or not self.loaded or self.item_id is None:
            logger.debug("Skipping save for item %s: slots not loaded yet", self.item_id)
            return
        self._debouncer.call(self.item_id, list(self.slots), dict(self.data))

    def _save(self, item_id: int, slots: list[Slot], data: dict[str, Any]) -> None:
        with self._lock:
            if self.hydrating:
                logger.debug("Skipping save for item %s: hydrating", item_id)
                return
            fingerprint = persisted_fingerprint(data.get("scene"), slots)
            if fingerprint == self._persisted and not self.dirty:
                logger.debug("Skipping save for item %s: unchanged", item_id)
                return

        body = {**data, "slots": slots_to_wire(slots)}
        try:
            self.items.patch_item_data(item_id, body)
        except FetchError as exc:
            error = SaveError(f"Saving slots of item {item_id} failed: {exc}")
            with self._lock:
                if item_id == self.item_id:
                    self.dirty = True
                    self.last_error = error
            logger.warning("%s", error)
            self._notify("warning", "Save failed; changes are kept locally and will be resent")
            return

        with self._lock:
            if item_id == self.item_id:
                self._persisted = fingerprint
                self.dirty = False
                self.last_error = None
        logger.debug("Saved %d slot(s) for item %s", len(slots), item_id)
