from __future__ import annotations

import logging
import time
from typing import Awaitable, Callable, Optional

from ..errors import ErrorCategory

log = logging.getLogger("tipline.errors")

AlertFn = Callable[[ErrorCategory, int], Awaitable[None]]


class ErrorCounter:
    """Per-category error counts over a fixed window.

    The window rolls over on the first ``record`` after it ends. Reaching
    ``threshold`` within one window fires ``on_threshold`` once for that
    category; the alert re-arms when the window resets.
    """

    def __init__(
        self,
        threshold: int = 10,
        window_seconds: float = 3600,
        on_threshold: Optional[AlertFn] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.threshold = max(1, int(threshold))
        self.window_seconds = float(window_seconds)
        self.on_threshold = on_threshold
        self._clock = clock
        self._counts: dict[ErrorCategory, int] = {}
        self._window_started = clock()

    def reset(self) -> None:
        self._counts.clear()
        self._window_started = self._clock()

    def count(self, category: ErrorCategory) -> int:
        self._roll()
        return self._counts.get(category, 0)

    async def record(self, category: ErrorCategory) -> int:
        self._roll()
        current = self._counts.get(category, 0) + 1
        self._counts[category] = current
        if current == self.threshold and self.on_threshold is not None:
            log.error("Error threshold reached: %s x%d within %ss", category.value, current, int(self.window_seconds))
            try:
                await self.on_threshold(category, current)
            except Exception:
                log.exception("Operator alert for %s failed", category.value)
        return current

    def _roll(self) -> None:
        if self._clock() - self._window_started >= self.window_seconds:
            self.reset()
