from __future__ import annotations

from dataclasses import dataclass, field

from messenger_sync.domain.entities.settings import UserSettings
from messenger_sync.domain.entities.status import ConversationStatus
from messenger_sync.domain.value_objects.enums import ConversationType


@dataclass(frozen=True, slots=True)
class MessengerUser:
    id: int
    name: str = ""


@dataclass(slots=True)
class ConversationInfo:
    """Roster entry: enough to list a conversation without its messages."""

    id: int
    name: str
    type: ConversationType = ConversationType.CONVERSATION
    unread_count: int = 0
    notification: bool = True
    status: ConversationStatus = field(default_factory=ConversationStatus)

    @property
    def is_group(self) -> bool:
        return self.type.is_group

    def update_status(self, status: ConversationStatus) -> None:
        self.status.merge(status)


@dataclass(slots=True)
class MessengerInfo:
    messenger_user: MessengerUser
    ws_url: str = ""
    conversations: list[ConversationInfo] = field(default_factory=list)
    groups: list[ConversationInfo] = field(default_factory=list)
    user_settings: UserSettings = field(default_factory=UserSettings)

    def entries(self) -> list[ConversationInfo]:
        return [*self.conversations, *self.groups]

    def by_id(self, conversation_id: int) -> ConversationInfo | None:
        for info in self.entries():
            if info.id == conversation_id:
                return info
        return None

    def get_conversation_type(self, conversation_id: int) -> ConversationType:
        info = self.by_id(conversation_id)
        return info.type if info else ConversationType.CONVERSATION

    def get_default_conversation(self) -> ConversationInfo | None:
        entries = self.entries()
        return entries[0] if entries else None

    def index_of_group(self, group_id: int) -> int:
        for idx, group in enumerate(self.groups):
            if group.id == group_id:
                return idx
        return -1

    def remove_group(self, group_id: int) -> bool:
        before = len(self.groups)
        self.groups = [g for g in self.groups if g.id != group_id]
        return len(self.groups) != before
