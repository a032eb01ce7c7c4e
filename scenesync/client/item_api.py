"""Client for the rundown item endpoints the slot store persists through."""
from __future__ import annotations

from typing import Any

from scenesync.client.http import JsonHttpClient


class ItemApi:
    def __init__(self, http: JsonHttpClient) -> None:
        self.http = http

    def get_item(self, item_id: int) -> dict[str, Any]:
        item = self.http.get(f"/api/items/{item_id}")
        return item if isinstance(item, dict) else {}

    def patch_item_data(self, item_id: int, data: dict[str, Any]) -> Any:
        """PATCH {data: ...}; the backend merges it into the stored data object."""
        return self.http.patch(f"/api/items/{item_id}", {"data": data})
