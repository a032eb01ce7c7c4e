"""
Client for the backend's /api/obs routes.

Read side: placeholder layout, screenshot, input list.
Write side: the four mutations the applier issues against one scene.

The placeholder endpoint has grown several response shapes over time; all
of them are normalized here into Placeholder models:

  - a bare list of placeholder dicts
  - {"placeholders": [...], "baseWidth": W, "baseHeight": H}
  - {"items": [...]} or {"placeholders": {"items": [...]}} or a dict of dicts

Each placeholder carries its position as rect/x/y/w/h, as
transform.positionX/Y, or as norm.{x,y,w,h} fractions of the base canvas.
"""
from __future__ import annotations

import logging
from typing import Any, Optional

from scenesync.client.http import JsonHttpClient
from scenesync.schemas.layout import (
    DEFAULT_BASE_HEIGHT,
    DEFAULT_BASE_WIDTH,
    InputSource,
    Placeholder,
    Rect,
    Resolution,
)

logger = logging.getLogger(__name__)


class SceneApi:
    def __init__(self, http: JsonHttpClient, default_base: Optional[Resolution] = None) -> None:
        self.http = http
        self.default_base = default_base or Resolution()

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def get_layout(self, scene_name: str) -> tuple[list[Placeholder], Resolution]:
        raw = self.http.get("/api/obs/placeholders", params={"scene": scene_name})
        return parse_layout(raw, self.default_base)

    def get_screenshot(self, scene_name: str, width: int) -> Optional[str]:
        raw = self.http.get("/api/obs/screenshot", params={"scene": scene_name, "width": width})
        if isinstance(raw, dict):
            shot = raw.get("screenshot")
            return str(shot) if shot else None
        return None

    def list_inputs(self, scene_name: str) -> list[InputSource]:
        raw = self.http.get("/api/obs/sources", params={"scene": scene_name})
        entries = raw if isinstance(raw, list) else (raw or {}).get("sources", [])
        sources: list[InputSource] = []
        for entry in entries or []:
            if not isinstance(entry, dict):
                continue
            name = entry.get("name") or entry.get("sourceName") or entry.get("inputName") or ""
            kind = str(entry.get("sourceType") or entry.get("kind") or "").lower()
            sources.append(InputSource(name=str(name), kind=kind))
        return sources

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def remove_binding(self, scene_name: str, source_name: str) -> None:
        self.http.post(
            "/api/obs/remove-binding",
            {"sceneName": scene_name, "sourceName": source_name},
        )

    def ensure_source(self, scene_name: str, source_name: str) -> Any:
        """Add *source_name* to the scene (on top) if it is not there yet."""
        return self.http.post(
            "/api/obs/add-source-to-scene",
            {"sceneName": scene_name, "sourceName": source_name, "makeTop": True},
        )

    def paste_transform(
        self,
        scene_name: str,
        placeholder_index: int,
        placeholder_id: Any,
        target_source_name: str,
    ) -> None:
        """Copy the placeholder's transform onto *target_source_name*. Index is 1-based."""
        self.http.post(
            "/api/obs/paste-placeholder-transform",
            {
                "sceneName": scene_name,
                "placeholderIndex": placeholder_index,
                "placeholderId": placeholder_id,
                "targetSourceName": target_source_name,
            },
        )

    def replace_with_transform(
        self,
        scene_name: str,
        placeholder_index: int,
        placeholder_id: Any,
        target_source_name: str,
        remove_source_name: str,
    ) -> None:
        """Atomic remove + insert + paste; older backends do not have it."""
        self.http.post(
            "/api/obs/replace-with-transform",
            {
                "sceneName": scene_name,
                "placeholderIndex": placeholder_index,
                "placeholderId": placeholder_id,
                "targetSourceName": target_source_name,
                "removeSourceName": remove_source_name,
            },
        )


# ---------------------------------------------------------------------------
# Response normalization
# ---------------------------------------------------------------------------

def parse_layout(
    raw: Any,
    default_base: Optional[Resolution] = None,
) -> tuple[list[Placeholder], Resolution]:
    """Normalize any placeholder response shape into (placeholders, base)."""
    default_base = default_base or Resolution()
    body = raw if isinstance(raw, dict) else {}
    base = Resolution(
        w=int(body.get("baseWidth") or default_base.w or DEFAULT_BASE_WIDTH),
        h=int(body.get("baseHeight") or default_base.h or DEFAULT_BASE_HEIGHT),
    )

    entries = body.get("placeholders", body.get("items", raw)) if body else raw
    if isinstance(entries, dict):
        entries = entries["items"] if isinstance(entries.get("items"), list) else list(entries.values())
    if not isinstance(entries, list):
        entries = []

    placeholders = [
        _parse_placeholder(entry, base) for entry in entries if isinstance(entry, dict)
    ]
    # Bare-list responses carry the base size per placeholder.
    if not body.get("baseWidth") and placeholders:
        base = placeholders[0].base_resolution
    return placeholders, base


def _parse_placeholder(entry: dict, base: Resolution) -> Placeholder:
    norm = entry.get("norm") or {}
    rect = entry.get("rect") or {}
    transform = entry.get("transform") or {}

    if isinstance(norm.get("x"), (int, float)) and isinstance(norm.get("y"), (int, float)):
        box = Rect(
            x=norm["x"] * base.w,
            y=norm["y"] * base.h,
            w=(norm.get("w") or 0) * base.w,
            h=(norm.get("h") or 0) * base.h,
        )
    else:
        box = Rect(
            x=_first_number(rect.get("x"), entry.get("x"), transform.get("positionX")),
            y=_first_number(rect.get("y"), entry.get("y"), transform.get("positionY")),
            w=_first_number(rect.get("w"), entry.get("w")),
            h=_first_number(rect.get("h"), entry.get("h")),
        )

    item_id = entry.get("sceneItemId", entry.get("id"))
    own_base = Resolution(
        w=int(entry.get("baseWidth") or base.w),
        h=int(entry.get("baseHeight") or base.h),
    )
    return Placeholder(
        external_item_id=item_id,
        rect=box,
        base_resolution=own_base,
        is_placeholder=entry.get("isPlaceholder") is not False,
    )


def _first_number(*values: Any) -> float:
    for value in values:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return float(value)
    return 0.0
