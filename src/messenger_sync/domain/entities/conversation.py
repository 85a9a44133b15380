from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Callable

from messenger_sync.domain.entities.message import Message
from messenger_sync.domain.entities.settings import (
    ConversationSettings,
    GroupMember,
    GroupSettings,
)
from messenger_sync.domain.entities.status import ConversationStatus
from messenger_sync.domain.value_objects.enums import ConversationType
from messenger_sync.domain.value_objects.ids import MessageId

DEFAULT_TYPING_QUIET_SECONDS = 6.0


@dataclass(eq=False)
class Conversation:
    """One chat thread with the messages fetched so far.

    ``loaded`` is False for conversations that were created from an inbound
    push before their history was ever requested.
    """

    id: int
    name: str
    type: ConversationType
    messages: list[Message] = field(default_factory=list)
    status: ConversationStatus | None = None
    settings: ConversationSettings | GroupSettings | None = None
    all_messages_fetched: bool = False
    archived: bool = False
    loaded: bool = True
    typing_quiet_seconds: float = DEFAULT_TYPING_QUIET_SECONDS
    on_change: Callable[[Conversation], None] | None = field(default=None, repr=False)

    _typing_timer: asyncio.TimerHandle | None = field(default=None, init=False, repr=False)

    def __post_init__(self) -> None:
        if self.status is not None:
            self.status.typing = False

    @property
    def is_group(self) -> bool:
        return self.type.is_group

    @property
    def notification_enabled(self) -> bool:
        return self.settings is not None and self.settings.notification

    @property
    def members(self) -> list[GroupMember]:
        if isinstance(self.settings, GroupSettings):
            return self.settings.members
        return []

    # -- messages -----------------------------------------------------------

    def find_message(self, message_id: MessageId) -> Message | None:
        for m in self.messages:
            if m.id == message_id:
                return m
        return None

    def append_message(self, message: Message) -> None:
        self.messages.append(message)

    def update_message(self, message: Message) -> Message | None:
        """Insert or replace a message in place.

        A message replaces the entry with the same id, or the temporary entry
        carrying the same client token. Returns the replaced entry, if any.
        """
        if message.conversation_id != self.id:
            return None

        for idx, existing in enumerate(self.messages):
            if existing.matches(message):
                self.messages[idx] = message
                self._drop_duplicates(idx, message)
                return existing

        self.messages.append(message)
        return None

    def _drop_duplicates(self, keep_idx: int, message: Message) -> None:
        self.messages = [
            m for i, m in enumerate(self.messages)
            if i == keep_idx or not m.matches(message)
        ]

    def get_unread_ids(self) -> list[MessageId]:
        return [m.id for m in self.messages if m.unread]

    def mark_all_read(self) -> None:
        for m in self.messages:
            m.unread = False

    def set_read_status(self, message_ids: list[MessageId]) -> int:
        """Clear the opponent-unread flag; returns how many messages changed."""
        wanted = set(message_ids)
        changed = 0
        for m in self.messages:
            if m.id in wanted and m.opponent_unread:
                m.opponent_unread = False
                changed += 1
        return changed

    # -- settings / membership ---------------------------------------------

    def set_settings(self, settings: ConversationSettings | GroupSettings | None) -> None:
        self.settings = settings

    def set_notification(self, state: bool) -> None:
        if self.settings is None:
            self.settings = GroupSettings() if self.is_group else ConversationSettings()
        self.settings.notification = state

    def add_member(self, member: GroupMember) -> None:
        if not isinstance(self.settings, GroupSettings):
            self.settings = GroupSettings(
                notification=self.notification_enabled if self.settings else True,
            )
        self.settings.add_member(member)

    def remove_member(self, member_id: int | str) -> bool:
        if not isinstance(self.settings, GroupSettings):
            return False
        return self.settings.remove_member(member_id)

    # -- status / typing ----------------------------------------------------

    def update_status(self, status: ConversationStatus, typing: bool = False) -> None:
        if self.status is None:
            self.status = ConversationStatus(user_id=status.user_id)

        if not typing:
            self.status.merge(status)
            return

        self.status.typing = True
        self.status.online = True
        self.status.last_visit = status.last_visit
        self._restart_typing_timer()

    def _restart_typing_timer(self) -> None:
        if self._typing_timer is not None:
            self._typing_timer.cancel()
        loop = asyncio.get_running_loop()
        self._typing_timer = loop.call_later(
            self.typing_quiet_seconds, self._on_typing_quiet,
        )

    def _on_typing_quiet(self) -> None:
        self._typing_timer = None
        if self.status is None or not self.status.typing:
            return
        self.status.typing = False
        if self.on_change is not None:
            self.on_change(self)

    def dispose(self) -> None:
        if self._typing_timer is not None:
            self._typing_timer.cancel()
            self._typing_timer = None
