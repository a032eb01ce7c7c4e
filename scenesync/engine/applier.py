"""
Applier — push desired slot selections to the live mixer with minimal calls.

For every replaceable slot, with p = the slot's ordinal placeholder and
prev = the source last pushed for that slot:

    desired == ""  and prev set        → remove prev
    desired != prev and prev set       → replace-with-transform
                                          (fallback: remove, ensure, paste)
    desired == prev or prev unset      → ensure + paste transform
    desired == ""  and prev unset      → nothing

Bindings are only recorded after the mixer confirmed the call.  A failing
slot is logged, reported and skipped; the others are still applied.  Slots
of one scene are processed sequentially under a per-scene lock.

In EDIT mode nothing is sent: the pass only emits a ScenePlan and returns
the actions it would take.
"""
from __future__ import annotations

import logging
import threading
from collections import defaultdict, deque
from typing import Any, Optional

from scenesync.client.http import FetchError
from scenesync.client.scene_api import SceneApi
from scenesync.engine.events import PlanEmitter
from scenesync.engine.layout_fetcher import normalize_scene_name
from scenesync.engine.notify import Notifier, log_notifier
from scenesync.engine.reconciler import order_placeholders
from scenesync.schemas.layout import Placeholder
from scenesync.schemas.plan import ActionKind, ApplyMode, ApplyReport, ScenePlan, SlotAction
from scenesync.schemas.slot import Slot

logger = logging.getLogger(__name__)

HISTORY_SIZE = 256


class ApplyError(Exception):
    """The mixer rejected or never answered a mutation for one slot."""

    def __init__(self, slot_number: int, message: str) -> None:
        super().__init__(f"slot {slot_number}: {message}")
        self.slot_number = slot_number


class AppliedBindings:
    """
    What this process last pushed to each (scene, slot).

    A cache to avoid redundant mixer calls, never ground truth: after reset()
    (or a restart) the applier simply behaves like a first apply.
    history keeps the most recent changes as (scene, slot, old, new);
    re-pushing the same source is not a change.
    """

    def __init__(self, history_size: int = HISTORY_SIZE) -> None:
        self._bindings: dict[str, dict[int, str]] = defaultdict(dict)
        self.history: deque[tuple[str, int, Optional[str], Optional[str]]] = deque(maxlen=history_size)
        self._lock = threading.Lock()

    def get(self, scene_name: str, slot_number: int) -> Optional[str]:
        with self._lock:
            return self._bindings.get(scene_name, {}).get(slot_number)

    def set(self, scene_name: str, slot_number: int, source: str) -> None:
        with self._lock:
            old = self._bindings[scene_name].get(slot_number)
            self._bindings[scene_name][slot_number] = source
            if old != source:
                self.history.append((scene_name, slot_number, old, source))

    def clear(self, scene_name: str, slot_number: int) -> None:
        with self._lock:
            old = self._bindings.get(scene_name, {}).pop(slot_number, None)
            if old is not None:
                self.history.append((scene_name, slot_number, old, None))

    def snapshot(self, scene_name: str) -> dict[int, str]:
        with self._lock:
            return dict(self._bindings.get(scene_name, {}))

    def reset(self) -> None:
        with self._lock:
            self._bindings.clear()
            self.history.clear()


def plan_actions(
    scene_name: str,
    slots: list[Slot],
    placeholders: list[Placeholder],
    bindings: AppliedBindings,
) -> list[SlotAction]:
    """The per-slot actions an apply pass would take, without calling anything."""
    count = len(placeholders)
    actions: list[SlotAction] = []
    for slot in slots:
        desired = slot.selected_source
        prev = bindings.get(scene_name, slot.slot_number)

        if not slot.replaceable or slot.slot_number > count:
            kind = ActionKind.SKIP
        elif not desired:
            kind = ActionKind.REMOVE if prev else ActionKind.SKIP
        elif prev and desired != prev:
            kind = ActionKind.REPLACE
        else:
            kind = ActionKind.TRANSFORM

        actions.append(
            SlotAction(slot_number=slot.slot_number, kind=kind, source=desired, previous=prev)
        )
    return actions


class SlotApplier:
    def __init__(
        self,
        scenes: SceneApi,
        bindings: Optional[AppliedBindings] = None,
        emitter: Optional[PlanEmitter] = None,
        notify: Notifier = log_notifier,
    ) -> None:
        self.scenes = scenes
        self.bindings = bindings if bindings is not None else AppliedBindings()
        self.emitter = emitter
        self._notify = notify
        self._scene_locks: dict[str, threading.Lock] = defaultdict(threading.Lock)
        self._locks_guard = threading.Lock()

    def reconcile_external(
        self,
        scene_name: str,
        slots: list[Slot],
        placeholders: list[Placeholder],
        mode: ApplyMode = ApplyMode.EDIT,
        item_id: Optional[int] = None,
    ) -> ApplyReport:
        scene_name = normalize_scene_name(scene_name)
        report = ApplyReport(item_id=item_id, scene_name=scene_name, mode=mode)
        if not scene_name:
            return report

        if mode != ApplyMode.APPLY:
            report.actions = plan_actions(scene_name, slots, placeholders, self.bindings)
            if self.emitter is not None:
                self.emitter.emit(
                    ScenePlan(
                        item_id=item_id,
                        scene_name=scene_name,
                        placeholders=placeholders,
                        slots=slots,
                    )
                )
            return report

        ordered = order_placeholders(placeholders)
        with self._lock_for(scene_name):
            actions = plan_actions(scene_name, slots, ordered, self.bindings)
            for action in actions:
                if action.kind == ActionKind.SKIP.value:
                    continue
                placeholder = ordered[action.slot_number - 1]
                try:
                    self._execute(scene_name, action, placeholder)
                except ApplyError as exc:
                    action.ok = False
                    action.error = str(exc)
                    logger.warning("Applying %s to scene %r failed: %s", action.kind, scene_name, exc)
                    self._notify("warning", f"Could not update slot {action.slot_number} in {scene_name}")
            report.actions = actions

        logger.info(
            "Applied scene %r: %d mutation(s), %d failed",
            scene_name, len(report.mutations), len(report.failed),
        )
        return report

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _lock_for(self, scene_name: str) -> threading.Lock:
        with self._locks_guard:
            return self._scene_locks[scene_name]

    def _execute(self, scene_name: str, action: SlotAction, placeholder: Placeholder) -> None:
        number = action.slot_number
        ph_id = placeholder.external_item_id
        try:
            if action.kind == ActionKind.REMOVE.value:
                self.scenes.remove_binding(scene_name, action.previous)
                self.bindings.clear(scene_name, number)
            elif action.kind == ActionKind.REPLACE.value:
                action.fallback_used = self._replace(scene_name, number, ph_id, action)
                self.bindings.set(scene_name, number, action.source)
            else:
                self._ensure_and_paste(scene_name, number, ph_id, action.source)
                self.bindings.set(scene_name, number, action.source)
        except FetchError as exc:
            raise ApplyError(number, str(exc)) from exc

    def _replace(self, scene_name: str, number: int, ph_id: Any, action: SlotAction) -> bool:
        """Returns True when the three-step fallback had to be used."""
        try:
            self.scenes.replace_with_transform(
                scene_name, number, ph_id, action.source, action.previous,
            )
            return False
        except FetchError as exc:
            logger.info(
                "replace-with-transform unavailable for slot %d (%s); using remove/ensure/paste",
                number, exc,
            )
        self.scenes.remove_binding(scene_name, action.previous)
        # prev is gone from the mixer even if the insert below fails.
        self.bindings.clear(scene_name, number)
        self._ensure_and_paste(scene_name, number, ph_id, action.source)
        return True

    def _ensure_and_paste(self, scene_name: str, number: int, ph_id: Any, source: str) -> None:
        self.scenes.ensure_source(scene_name, source)
        self.scenes.paste_transform(scene_name, number, ph_id, source)
