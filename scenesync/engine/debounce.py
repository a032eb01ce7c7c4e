"""
Trailing-edge debouncer.

Each call() cancels the pending timer and schedules a new one, so a burst of
calls inside the window results in exactly one invocation carrying the
arguments of the last call.  flush() runs the pending invocation right away.

The timer factory defaults to threading.Timer; tests inject a manual timer.
"""
from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

TimerFactory = Callable[[float, Callable[[], None]], Any]


class Debouncer:
    def __init__(
        self,
        delay_s: float,
        fn: Callable[..., None],
        timer_factory: TimerFactory = threading.Timer,
    ) -> None:
        self.delay_s = delay_s
        self._fn = fn
        self._timer_factory = timer_factory
        self._lock = threading.Lock()
        self._timer: Optional[Any] = None
        self._pending: Optional[tuple[tuple, dict]] = None

    @property
    def pending(self) -> bool:
        return self._pending is not None

    def call(self, *args: Any, **kwargs: Any) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._pending = (args, kwargs)
            timer = self._timer_factory(self.delay_s, self._fire)
            if hasattr(timer, "daemon"):
                timer.daemon = True
            self._timer = timer
        timer.start()

    def flush(self) -> None:
        """Run the pending call now, if any."""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
        self._fire()

    def cancel(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._timer = None
            self._pending = None

    def _fire(self) -> None:
        with self._lock:
            pending, self._pending = self._pending, None
            self._timer = None
        if pending is None:
            return
        args, kwargs = pending
        self._fn(*args, **kwargs)
