"""
Plan notifications.

PlanEmitter delivers ScenePlan events to in-process subscribers (the
runtime/preview layer) and remembers the latest plan per item so the on-air
trigger can apply exactly the plan of the item that goes live.

Delivery is fire-and-forget: a failing subscriber is logged and never
affects the emitter or the other subscribers.
"""
from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

from scenesync.schemas.plan import ScenePlan

logger = logging.getLogger(__name__)

PlanListener = Callable[[ScenePlan], None]


class PlanEmitter:
    def __init__(self) -> None:
        self._listeners: list[PlanListener] = []
        self._latest: dict[Optional[int], ScenePlan] = {}
        self._lock = threading.Lock()

    def subscribe(self, listener: PlanListener) -> Callable[[], None]:
        """Register *listener*; returns a function that unsubscribes it."""
        with self._lock:
            self._listeners.append(listener)

        def _unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return _unsubscribe

    def emit(self, plan: ScenePlan) -> None:
        with self._lock:
            self._latest[plan.item_id] = plan
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(plan)
            except Exception:  # noqa: BLE001
                logger.exception("Plan listener %r failed", listener)

    def latest(self, item_id: Optional[int]) -> Optional[ScenePlan]:
        with self._lock:
            return self._latest.get(item_id)

    def forget(self, item_id: Optional[int]) -> None:
        with self._lock:
            self._latest.pop(item_id, None)
