from __future__ import annotations

from collections.abc import Mapping
from types import MappingProxyType


class UploadProgressTracker:
    """Percent-complete of media uploads keyed by temporary message id."""

    def __init__(self, maximum: int = 100) -> None:
        self._maximum = maximum
        self._progress: dict[str, int] = {}

    def __contains__(self, key: object) -> bool:
        return key in self._progress

    def view(self) -> Mapping[str, int]:
        return MappingProxyType(self._progress)

    def get(self, key: str) -> int | None:
        return self._progress.get(key)

    def start(self, key: str) -> None:
        self._progress[key] = 0

    def update(self, key: str, value: float) -> bool:
        """Record progress for a tracked upload; unknown keys are ignored."""
        if key not in self._progress:
            return False
        self._progress[key] = int(min(value, self._maximum))
        return True

    def remove(self, key: str) -> bool:
        return self._progress.pop(key, None) is not None
