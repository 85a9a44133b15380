from __future__ import annotations

import logging
from typing import Callable

logger = logging.getLogger(__name__)

ChangeListener = Callable[[str], None]


class Observable:
    """Minimal change-notification hub for a read model."""

    def __init__(self) -> None:
        self._listeners: list[ChangeListener] = []

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def notify(self, topic: str) -> None:
        for listener in list(self._listeners):
            try:
                listener(topic)
            except Exception:
                logger.exception("Change listener failed for topic=%s", topic)
