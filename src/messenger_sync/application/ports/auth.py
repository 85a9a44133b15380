from __future__ import annotations

from typing import Callable, Protocol

TokenListener = Callable[[str], None]


class TokenSource(Protocol):
    def get_access_token(self) -> str: ...

    def subscribe(self, listener: TokenListener) -> Callable[[], None]:
        """Register a listener for token changes; returns the unsubscribe call."""
        ...
