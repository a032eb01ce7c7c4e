"""
SyncConfig — runtime settings for the engine and CLI.

Defaults match the rundown backend's stock deployment.  A JSON file can
override any field; SCENESYNC_API_URL overrides api_url last.
"""
from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field

from scenesync.schemas.layout import Resolution

API_URL_ENV = "SCENESYNC_API_URL"


class RetryConfig(BaseModel):
    """
    Layout fetch retry policy.
    auto_retries applies to silent loads after a scene change; manual_retries
    to an explicit refresh.  Delay before retry n is base_delay_ms * 2**(n-1).
    """
    base_delay_ms: int = 200
    auto_retries: int = 4
    manual_retries: int = 0


class SyncConfig(BaseModel):
    api_url: str = "http://localhost:5050"
    timeout_s: float = 10.0
    debounce_ms: int = 300
    preview_width: int = 720
    default_base: Resolution = Field(default_factory=Resolution)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    # Pseudo-scene the backend resolves to "every input".
    inputs_scene: str = "ALL-SOURCES"
    # Input names starting with these are mixer plumbing, not user content.
    internal_prefixes: list[str] = Field(default_factory=lambda: ["__"])


def load_config(path: Optional[Path] = None) -> SyncConfig:
    """Build a SyncConfig from an optional JSON file plus the environment."""
    if path is not None:
        config = SyncConfig.model_validate_json(Path(path).read_text(encoding="utf-8"))
    else:
        config = SyncConfig()

    api_url = os.environ.get(API_URL_ENV)
    if api_url:
        config = config.model_copy(update={"api_url": api_url})
    return config
