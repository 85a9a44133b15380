from __future__ import annotations

from datetime import datetime
from typing import Hashable

from messenger_sync.application.ports.clock import Clock


class KeyedRateLimiter:
    """Admits at most one call per key per window; extra calls are dropped."""

    def __init__(self, window_seconds: float, clock: Clock) -> None:
        self._window = window_seconds
        self._clock = clock
        self._last: dict[Hashable, datetime] = {}

    def try_acquire(self, key: Hashable) -> bool:
        now = self._clock.now()
        last = self._last.get(key)
        if last is not None and (now - last).total_seconds() < self._window:
            return False
        self._last[key] = now
        return True

    def reset(self, key: Hashable | None = None) -> None:
        if key is None:
            self._last.clear()
        else:
            self._last.pop(key, None)
