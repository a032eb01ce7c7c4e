"""
Layout fetcher — placeholder layout + preview snapshot for one scene.

Retry policy:
  attempt 1, then up to *retries* more; the delay before retry n is
  base_delay * 2**(n-1)  (200 ms, 400 ms, 800 ms, ... by default).

Failure policy:
  On exhaustion the previous snapshot for the scene is returned (stale=True),
  or an empty stale layout if the scene was never fetched.  silent=True only
  logs; silent=False also notifies the user.  Nothing is raised.

The fetcher never touches the slot store.
"""
from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from scenesync.client.http import FetchError
from scenesync.client.scene_api import SceneApi
from scenesync.engine.notify import Notifier, log_notifier
from scenesync.engine.preview import decode_preview
from scenesync.schemas.layout import SceneLayout

logger = logging.getLogger(__name__)

DEFAULT_BASE_DELAY_S = 0.2


def normalize_scene_name(name: Optional[str]) -> str:
    return "" if name is None else str(name).strip()


def backoff_delay(attempt: int, base_delay_s: float = DEFAULT_BASE_DELAY_S) -> float:
    """Delay before retry number *attempt* (1-based)."""
    return base_delay_s * (2 ** (attempt - 1))


class LayoutFetcher:
    def __init__(
        self,
        scenes: SceneApi,
        base_delay_s: float = DEFAULT_BASE_DELAY_S,
        sleep: Callable[[float], None] = time.sleep,
        notify: Notifier = log_notifier,
    ) -> None:
        self.scenes = scenes
        self.base_delay_s = base_delay_s
        self._sleep = sleep
        self._notify = notify
        self._snapshots: dict[str, SceneLayout] = {}

    def snapshot(self, scene_name: str) -> Optional[SceneLayout]:
        """Last successfully fetched layout for *scene_name*, if any."""
        return self._snapshots.get(normalize_scene_name(scene_name))

    def fetch_layout(
        self,
        scene_name: str,
        silent: bool = False,
        retries: int = 3,
        preview_width: int = 720,
    ) -> SceneLayout:
        scene_name = normalize_scene_name(scene_name)
        if not scene_name:
            return SceneLayout()

        attempt = 0
        last_error: Optional[Exception] = None
        while attempt <= retries:
            try:
                layout = self._fetch_once(scene_name, preview_width)
            except FetchError as exc:
                last_error = exc
                attempt += 1
                logger.debug(
                    "Layout fetch for %r failed (attempt %d/%d): %s",
                    scene_name, attempt, retries + 1, exc,
                )
                if attempt > retries:
                    break
                self._sleep(backoff_delay(attempt, self.base_delay_s))
                continue

            self._snapshots[scene_name] = layout
            logger.debug(
                "Fetched layout for %r: %d placeholder(s)",
                scene_name, len(layout.placeholders),
            )
            return layout

        return self._exhausted(scene_name, last_error, silent)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _fetch_once(self, scene_name: str, preview_width: int) -> SceneLayout:
        placeholders, base = self.scenes.get_layout(scene_name)

        # A missing screenshot never fails the layout.
        try:
            raw_shot = self.scenes.get_screenshot(scene_name, preview_width)
        except FetchError as exc:
            logger.debug("Screenshot for %r unavailable: %s", scene_name, exc)
            raw_shot = None

        return SceneLayout(
            scene_name=scene_name,
            placeholders=placeholders,
            base_resolution=base,
            preview=decode_preview(raw_shot),
        )

    def _exhausted(
        self,
        scene_name: str,
        error: Optional[Exception],
        silent: bool,
    ) -> SceneLayout:
        message = f"Failed to load scene layout for {scene_name!r}: {error}"
        if silent:
            logger.info("%s (silent load, keeping previous layout)", message)
        else:
            logger.error(message)
            self._notify("error", f"Failed to load scene layout: {scene_name}")

        previous = self._snapshots.get(scene_name)
        if previous is not None:
            return previous.model_copy(update={"stale": True, "error": str(error)})
        return SceneLayout(scene_name=scene_name, stale=True, error=str(error))
