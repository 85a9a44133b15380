from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True, slots=True)
class OutgoingMessageDTO:
    conversation_id: int
    client_token: str
    body: str | None = None
    channel_set_id: str = ""
    reply_to_id: int | None = None
    forward_from_id: int | None = None

    def to_params(self) -> dict[str, Any]:
        params: dict[str, Any] = {
            "conversation_id": self.conversation_id,
            "client_token": self.client_token,
        }
        if self.body is not None:
            params["body"] = self.body
        if self.channel_set_id:
            params["channel_set_id"] = self.channel_set_id
        if self.reply_to_id is not None:
            params["reply_to_id"] = self.reply_to_id
        if self.forward_from_id is not None:
            params["forward_from_id"] = self.forward_from_id
        return params
