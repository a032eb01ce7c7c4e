"""
Shared pytest fixtures for scenesync/tests/.

Provides in-memory stand-ins for the backend so no test touches the network:
  - FakeSceneApi:  layouts, screenshots, inputs and a log of mixer mutations
  - FakeItemApi:   rundown items and a log of PATCH bodies
  - ManualTimer:   a threading.Timer replacement fired explicitly by the test
  - sleep recorder for retry backoff assertions
  - a solid-colour PNG screenshot generated with Pillow
"""
from __future__ import annotations

import copy
from typing import Any, Callable, Optional

import pytest
from PIL import Image

from scenesync.client.http import FetchError
from scenesync.engine.applier import AppliedBindings, SlotApplier
from scenesync.engine.events import PlanEmitter
from scenesync.engine.layout_fetcher import LayoutFetcher
from scenesync.engine.preview import encode_png_data_url
from scenesync.engine.session import SceneEditorSession
from scenesync.engine.slot_store import SlotStore
from scenesync.engine.sources import SourceCatalog
from scenesync.schemas.layout import InputSource, Placeholder, Resolution

from _fixture_builders import BASE


# ---------------------------------------------------------------------------
# Backend fakes
# ---------------------------------------------------------------------------

class FakeSceneApi:
    def __init__(self) -> None:
        self.layouts: dict[str, list[Placeholder]] = {}
        self.screenshots: dict[str, Optional[str]] = {}
        self.inputs: list[InputSource] = []
        self.layout_failures = 0           # next N get_layout calls raise
        self.screenshot_fails = False
        self.inputs_fail = False
        self.replace_supported = True
        self.failing_sources: set[str] = set()   # mutations targeting these raise
        self.calls: list[tuple] = []
        self.layout_calls = 0

    # read side
    def get_layout(self, scene_name: str) -> tuple[list[Placeholder], Resolution]:
        self.layout_calls += 1
        if self.layout_failures > 0:
            self.layout_failures -= 1
            raise FetchError("mixer unavailable", status_code=500)
        return list(self.layouts.get(scene_name, [])), BASE

    def get_screenshot(self, scene_name: str, width: int) -> Optional[str]:
        if self.screenshot_fails:
            raise FetchError("screenshot failed")
        return self.screenshots.get(scene_name)

    def list_inputs(self, scene_name: str) -> list[InputSource]:
        if self.inputs_fail:
            raise FetchError("sources unavailable")
        return list(self.inputs)

    # mutations
    def _check(self, source: Optional[str]) -> None:
        if source in self.failing_sources:
            raise FetchError(f"mixer rejected {source}")

    def remove_binding(self, scene_name: str, source_name: str) -> None:
        self.calls.append(("remove", scene_name, source_name))
        self._check(source_name)

    def ensure_source(self, scene_name: str, source_name: str) -> dict:
        self.calls.append(("ensure", scene_name, source_name))
        self._check(source_name)
        return {}

    def paste_transform(self, scene_name: str, placeholder_index: int, placeholder_id: Any,
                        target_source_name: str) -> None:
        self.calls.append(("paste", scene_name, placeholder_index, placeholder_id, target_source_name))
        self._check(target_source_name)

    def replace_with_transform(self, scene_name: str, placeholder_index: int, placeholder_id: Any,
                               target_source_name: str, remove_source_name: str) -> None:
        self.calls.append(("replace", scene_name, placeholder_index, placeholder_id,
                           target_source_name, remove_source_name))
        if not self.replace_supported:
            raise FetchError("POST /api/obs/replace-with-transform returned 404", status_code=404)
        self._check(target_source_name)

    def mutation_names(self) -> list[str]:
        return [call[0] for call in self.calls]


class FakeItemApi:
    def __init__(self) -> None:
        self.items: dict[int, dict[str, Any]] = {}
        self.patches: list[tuple[int, dict[str, Any]]] = []
        self.patch_fails = False
        self.get_fails = False
        self.on_get: Optional[Callable[[int], None]] = None

    def get_item(self, item_id: int) -> dict[str, Any]:
        if self.on_get is not None:
            hook, self.on_get = self.on_get, None
            hook(item_id)
        if self.get_fails:
            raise FetchError("item fetch failed", status_code=503)
        return copy.deepcopy(self.items.get(item_id, {"id": item_id, "data": {}}))

    def patch_item_data(self, item_id: int, data: dict[str, Any]) -> dict:
        if self.patch_fails:
            raise FetchError("item save failed", status_code=500)
        self.patches.append((item_id, copy.deepcopy(data)))
        stored = self.items.setdefault(item_id, {"id": item_id, "data": {}})
        stored["data"] = {**stored.get("data", {}), **copy.deepcopy(data)}
        return stored


class ManualTimer:
    """threading.Timer look-alike that only runs when the test fires it."""

    def __init__(self, delay: float, fn: Callable[[], None]) -> None:
        self.delay = delay
        self.fn = fn
        self.started = False
        self.cancelled = False
        self.daemon = False

    def start(self) -> None:
        self.started = True

    def cancel(self) -> None:
        self.cancelled = True

    def fire(self) -> None:
        if self.started and not self.cancelled:
            self.fn()


class ManualTimerFactory:
    def __init__(self) -> None:
        self.timers: list[ManualTimer] = []

    def __call__(self, delay: float, fn: Callable[[], None]) -> ManualTimer:
        timer = ManualTimer(delay, fn)
        self.timers.append(timer)
        return timer

    @property
    def live(self) -> list[ManualTimer]:
        return [t for t in self.timers if t.started and not t.cancelled]

    def fire_all(self) -> None:
        for timer in self.live:
            timer.fire()


class Notifications(list):
    def __call__(self, level: str, message: str) -> None:
        self.append((level, message))

    def levels(self) -> list[str]:
        return [level for level, _ in self]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def scene_api() -> FakeSceneApi:
    return FakeSceneApi()


@pytest.fixture
def item_api() -> FakeItemApi:
    return FakeItemApi()


@pytest.fixture
def timers() -> ManualTimerFactory:
    return ManualTimerFactory()


@pytest.fixture
def notifications() -> Notifications:
    return Notifications()


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def store(item_api, timers, notifications) -> SlotStore:
    return SlotStore(item_api, debounce_s=0.3, timer_factory=timers, notify=notifications)


@pytest.fixture
def fetcher(scene_api, sleeps, notifications) -> LayoutFetcher:
    return LayoutFetcher(scene_api, sleep=sleeps.append, notify=notifications)


@pytest.fixture
def bindings() -> AppliedBindings:
    return AppliedBindings()


@pytest.fixture
def emitter() -> PlanEmitter:
    return PlanEmitter()


@pytest.fixture
def applier(scene_api, bindings, emitter, notifications) -> SlotApplier:
    return SlotApplier(scene_api, bindings=bindings, emitter=emitter, notify=notifications)


@pytest.fixture
def session(store, fetcher, applier, scene_api, notifications) -> SceneEditorSession:
    catalog = SourceCatalog(scene_api, notify=notifications)
    return SceneEditorSession(store, fetcher, applier, catalog=catalog, notify=notifications)


@pytest.fixture(scope="session")
def screenshot_data_url() -> str:
    """A 480x270 solid-colour PNG as a data URL (16:9, a quarter of 1920x1080)."""
    return encode_png_data_url(Image.new("RGB", (480, 270), color=(40, 90, 160)))
