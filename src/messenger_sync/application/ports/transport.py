from __future__ import annotations

from typing import Any, Callable, Protocol

PushHandler = Callable[[dict[str, Any]], None]


class RequestChannel(Protocol):
    async def request(self, method: str, **params: Any) -> Any: ...


class SocketChannel(RequestChannel, Protocol):
    """Live bidirectional channel bound to one messenger user."""

    user_id: int

    def subscribe(self, event: str, handler: PushHandler) -> None: ...
    def set_access_token(self, token: str) -> None: ...
    async def close(self) -> None: ...


class MessengerApi(RequestChannel, Protocol):
    def connect(self, url: str, user_id: int, token: str) -> SocketChannel: ...
