from __future__ import annotations

from datetime import datetime, timezone
from typing import Protocol


class Clock(Protocol):
    """Source of timezone-aware UTC timestamps."""

    def now(self) -> datetime: ...


class SystemClock:
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


def epoch_millis(moment: datetime) -> int:
    return int(moment.timestamp() * 1000)
