from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True)
class ConversationStatus:
    user_id: int | None = None
    conversation_id: int | None = None
    label: str | None = None
    last_visit: str | None = None
    online: bool = False
    typing: bool = False

    def merge(self, other: ConversationStatus) -> None:
        self.label = other.label
        self.last_visit = other.last_visit
        self.online = other.online
        self.typing = other.typing
        if other.conversation_id is not None:
            self.conversation_id = other.conversation_id
