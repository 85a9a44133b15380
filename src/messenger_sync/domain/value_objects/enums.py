from __future__ import annotations

from enum import StrEnum


class ConversationType(StrEnum):
    CONVERSATION = "conversation"
    CHAT_GROUP = "chat-group"
    MARKETING_GROUP = "marketing-group"

    @property
    def is_group(self) -> bool:
        return self.value.endswith("group")


class GroupState(StrEnum):
    NONE = "none"
    SETTINGS_LOADING = "settings-loading"
    ACTIVE = "active"


class PushEvent(StrEnum):
    MESSAGE_CREATED = "message.created"
    MESSAGE_UPDATED = "message.updated"
    STATUS_UPDATED = "status.updated"
    STATUS_TYPING = "status.typing"
    MESSAGES_READ = "messages.read"
    MEMBER_ADDED = "group.member_added"
    MEMBER_REMOVED = "group.member_removed"


class ChangeTopic(StrEnum):
    CONVERSATIONS = "conversations"
    MESSAGES = "messages"
    ROSTER = "roster"
    SELECTION = "selection"
    SEARCH = "search"
    UPLOADS = "uploads"
    STATUS = "status"
    LOADING = "loading"
