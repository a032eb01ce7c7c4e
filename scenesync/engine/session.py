"""
Editor session — one editing context over the slot engine.

Wires the pieces together with explicit state instead of UI render timing:

    open(item)    load slots → resolve scene name → silent layout fetch
                  → merge → store → recompute
    refresh()     manual layout fetch → merge → store → recompute
    select()      optimistic slot edit → debounced save → recompute
    recompute()   APPLY when this item is armed, EDIT (plan event) otherwise
    take(item)    on-air trigger: apply the latest plan of exactly that item

Responses that arrive after the active item changed are dropped.
"""
from __future__ import annotations

import logging
import re
from typing import Any, Optional, Union

from scenesync.client.http import JsonHttpClient
from scenesync.client.item_api import ItemApi
from scenesync.client.scene_api import SceneApi
from scenesync.engine.applier import SlotApplier
from scenesync.engine.events import PlanEmitter
from scenesync.engine.layout_fetcher import LayoutFetcher, normalize_scene_name
from scenesync.engine.notify import Notifier, log_notifier
from scenesync.engine.reconciler import merge, slots_equal
from scenesync.engine.slot_store import SlotStore, StaleResponse
from scenesync.engine.sources import SourceCatalog, SourceNotFound
from scenesync.schemas.config import SyncConfig
from scenesync.schemas.layout import SceneLayout
from scenesync.schemas.plan import ApplyMode, ApplyReport

logger = logging.getLogger(__name__)

_SCENE_TITLE_RE = re.compile(r"^Switch to Scene:\s*(.+)$", re.IGNORECASE)


def resolve_scene_name(item: dict[str, Any], data: dict[str, Any]) -> tuple[str, bool]:
    """
    Scene name of an item and whether it had to be guessed.

    data.scene wins; data.sceneName and the legacy "Switch to Scene: X" title
    are fallbacks (guessed=True, the caller persists them into data.scene).
    """
    explicit = normalize_scene_name(data.get("scene"))
    if explicit:
        return explicit, False
    legacy = normalize_scene_name(data.get("sceneName"))
    if legacy:
        return legacy, True
    match = _SCENE_TITLE_RE.match(str(item.get("title") or ""))
    if match:
        return match.group(1).strip(), True
    return "", False


class SceneEditorSession:
    def __init__(
        self,
        store: SlotStore,
        fetcher: LayoutFetcher,
        applier: SlotApplier,
        catalog: Optional[SourceCatalog] = None,
        config: Optional[SyncConfig] = None,
        notify: Notifier = log_notifier,
    ) -> None:
        self.store = store
        self.fetcher = fetcher
        self.applier = applier
        self.catalog = catalog
        self.config = config or SyncConfig()
        self._notify = notify

        self.item_id: Optional[int] = None
        self.scene_name = ""
        self.layout = SceneLayout()
        self.armed_item_id: Optional[int] = None

    @classmethod
    def from_config(
        cls,
        config: SyncConfig,
        notify: Notifier = log_notifier,
        emitter: Optional[PlanEmitter] = None,
    ) -> "SceneEditorSession":
        """Build a session talking to the backend at config.api_url."""
        http = JsonHttpClient(config.api_url, timeout_s=config.timeout_s)
        scenes = SceneApi(http, default_base=config.default_base)
        return cls(
            store=SlotStore(ItemApi(http), debounce_s=config.debounce_ms / 1000, notify=notify),
            fetcher=LayoutFetcher(scenes, base_delay_s=config.retry.base_delay_ms / 1000, notify=notify),
            applier=SlotApplier(scenes, emitter=emitter or PlanEmitter(), notify=notify),
            catalog=SourceCatalog(scenes, config.internal_prefixes, notify=notify),
            config=config,
            notify=notify,
        )

    # ------------------------------------------------------------------
    # Item lifecycle
    # ------------------------------------------------------------------

    def open(self, item_id: int) -> Optional[ApplyReport]:
        """Make *item_id* the active item.  Returns None if superseded meanwhile."""
        self.item_id = item_id
        self.layout = SceneLayout()
        try:
            self.store.load(item_id)
        except StaleResponse as exc:
            logger.debug("%s", exc)
            return None

        scene_name, guessed = resolve_scene_name(self.store.item, self.store.data)
        if guessed:
            logger.info("Item %s has no scene set; using %r", item_id, scene_name)
            self.store.update_data(scene=scene_name)
        self.scene_name = scene_name

        return self.refresh(silent=True, retries=self.config.retry.auto_retries)

    def set_scene(self, scene_name: str) -> Optional[ApplyReport]:
        """Point the active item at another scene and load its layout silently."""
        self.scene_name = normalize_scene_name(scene_name)
        self.store.update_data(scene=self.scene_name)
        return self.refresh(silent=True, retries=self.config.retry.auto_retries)

    def delete_item(self) -> None:
        """The active item was deleted: drop its slots, plan and arming."""
        if self.applier.emitter is not None:
            self.applier.emitter.forget(self.item_id)
        if self.armed_item_id == self.item_id:
            self.armed_item_id = None
        self.store.reset()
        self.item_id = None
        self.scene_name = ""
        self.layout = SceneLayout()

    def close(self) -> None:
        self.store.flush()

    # ------------------------------------------------------------------
    # Layout
    # ------------------------------------------------------------------

    def refresh(self, silent: bool = False, retries: Optional[int] = None) -> Optional[ApplyReport]:
        item_id = self.item_id
        if retries is None:
            retries = self.config.retry.manual_retries
        layout = self.fetcher.fetch_layout(
            self.scene_name,
            silent=silent,
            retries=retries,
            preview_width=self.config.preview_width,
        )
        if item_id != self.item_id or not self.store.is_active(item_id):
            logger.debug("Dropping layout of %r: item %s is no longer active", layout.scene_name, item_id)
            return None

        self.layout = layout
        hydrated = self.store.loaded and not self.store.hydrating
        merged = merge(self.store.slots, layout.placeholders, hydrated=hydrated)
        if hydrated and not slots_equal(merged, self.store.slots):
            self.store.replace(merged)
        return self.recompute()

    # ------------------------------------------------------------------
    # Edits
    # ------------------------------------------------------------------

    def select(self, slot_index: int, change: Union[str, dict[str, Any]]) -> ApplyReport:
        self.store.update(slot_index, change)
        return self.recompute()

    def select_media(self, slot_index: int, media_data: Optional[dict[str, Any]]) -> ApplyReport:
        self.store.update_media(slot_index, media_data)
        return self.recompute()

    def validate_sources(self) -> list[SourceNotFound]:
        """Clear selections of inputs that disappeared from the mixer."""
        if self.catalog is None:
            return []
        inputs = self.catalog.list_inputs(self.config.inputs_scene)
        if not inputs:
            # Unknown live list: nothing can be judged missing.
            return []
        missing = self.catalog.validate_selections(self.store, inputs)
        if missing:
            self.recompute()
        return missing

    # ------------------------------------------------------------------
    # Edit / apply mode
    # ------------------------------------------------------------------

    @property
    def mode(self) -> ApplyMode:
        if self.item_id is not None and self.armed_item_id == self.item_id:
            return ApplyMode.APPLY
        return ApplyMode.EDIT

    def recompute(self) -> ApplyReport:
        return self.applier.reconcile_external(
            self.scene_name,
            self.store.slots,
            self.layout.placeholders,
            mode=self.mode,
            item_id=self.item_id,
        )

    def arm(self, item_id: Optional[int] = None) -> Optional[ApplyReport]:
        """Arm *item_id* (default: the active item) for live application."""
        self.armed_item_id = self.item_id if item_id is None else item_id
        logger.info("Armed item %s", self.armed_item_id)
        if self.armed_item_id == self.item_id:
            return self.recompute()
        return None

    def disarm(self) -> None:
        self.armed_item_id = None

    def take(self, item_id: int) -> Optional[ApplyReport]:
        """On-air trigger: apply the latest plan emitted for *item_id*."""
        emitter = self.applier.emitter
        plan = emitter.latest(item_id) if emitter is not None else None
        if plan is None:
            logger.warning("No plan recorded for item %s; nothing to apply", item_id)
            self._notify("warning", f"Nothing to apply for item {item_id}")
            return None
        return self.applier.reconcile_external(
            plan.scene_name,
            plan.slots,
            plan.placeholders,
            mode=ApplyMode.APPLY,
            item_id=item_id,
        )
