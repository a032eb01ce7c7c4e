"""
User-facing notifications (the editor's toasts).

Engine components never talk to a UI directly; they call an injected
notifier with a level ("info" | "warning" | "error") and a message.  The
default notifier writes to the "scenesync.notify" logger.
"""
from __future__ import annotations

import logging
from typing import Callable

Notifier = Callable[[str, str], None]

_notify_logger = logging.getLogger("scenesync.notify")

_LEVELS = {
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def log_notifier(level: str, message: str) -> None:
    _notify_logger.log(_LEVELS.get(level, logging.INFO), message)
