"""Loaded conversations keyed by id, with load bookkeeping."""
from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator, Mapping
from types import MappingProxyType

from messenger_sync.domain.entities.conversation import Conversation
from messenger_sync.domain.entities.message import Message

logger = logging.getLogger(__name__)


def merge_messages(persisted: Iterable[Message], sending: Iterable[Message]) -> list[Message]:
    """Newest first; messages with equal dates keep their relative order."""
    return sorted([*persisted, *sending], key=lambda m: m.date, reverse=True)


class ConversationStore:
    """Holds the conversations that have been loaded or pushed so far.

    Every load gets a sequence number when it is issued. A finished load only
    replaces the stored entry if no load issued after it has already been
    applied for the same id.
    """

    def __init__(self) -> None:
        self._items: dict[int, Conversation] = {}
        self._issued: dict[int, int] = {}
        self._applied: dict[int, int] = {}
        self._in_flight: dict[int, int] = {}

    def __contains__(self, conversation_id: object) -> bool:
        return conversation_id in self._items

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[Conversation]:
        return iter(list(self._items.values()))

    def view(self) -> Mapping[int, Conversation]:
        return MappingProxyType(self._items)

    def get(self, conversation_id: int | None) -> Conversation | None:
        if conversation_id is None:
            return None
        return self._items.get(conversation_id)

    def is_loaded(self, conversation_id: int) -> bool:
        conversation = self._items.get(conversation_id)
        return conversation is not None and conversation.loaded

    def is_loading(self, conversation_id: int) -> bool:
        return self._in_flight.get(conversation_id, 0) > 0

    def ensure(self, conversation: Conversation) -> Conversation:
        """Insert ``conversation`` unless an entry already exists; return the stored one."""
        existing = self._items.get(conversation.id)
        if existing is not None:
            return existing
        self._items[conversation.id] = conversation
        return conversation

    # -- loads --------------------------------------------------------------

    def begin_load(self, conversation_id: int) -> int:
        seq = self._issued.get(conversation_id, 0) + 1
        self._issued[conversation_id] = seq
        self._in_flight[conversation_id] = self._in_flight.get(conversation_id, 0) + 1
        return seq

    def end_load(self, conversation_id: int) -> None:
        remaining = self._in_flight.get(conversation_id, 0) - 1
        if remaining > 0:
            self._in_flight[conversation_id] = remaining
        else:
            self._in_flight.pop(conversation_id, None)

    def commit_load(self, conversation_id: int, seq: int, conversation: Conversation) -> bool:
        """Store a loaded conversation unless a later-issued load already landed.

        Unconfirmed messages of the replaced entry are carried over so that a
        reload never drops a message that is still being sent.
        """
        if seq <= self._applied.get(conversation_id, 0):
            logger.debug(
                "Dropping stale load #%d for conversation %s (applied #%d)",
                seq, conversation_id, self._applied[conversation_id],
            )
            return False

        prior = self._items.get(conversation_id)
        if prior is not None and prior is not conversation:
            for message in prior.messages:
                if message.is_temporary and not any(
                    m.matches(message) for m in conversation.messages
                ):
                    conversation.append_message(message)
            prior.dispose()

        self._items[conversation_id] = conversation
        self._applied[conversation_id] = seq
        return True

    def next_page_limit(self, conversation_id: int, page_size: int) -> int | None:
        """Limit for fetching one more page, or None when paging is not possible."""
        conversation = self._items.get(conversation_id)
        if conversation is None or not conversation.loaded:
            return None
        if conversation.all_messages_fetched or self.is_loading(conversation_id):
            return None
        confirmed = sum(1 for m in conversation.messages if not m.is_temporary)
        return confirmed + page_size

    def dispose(self) -> None:
        for conversation in self._items.values():
            conversation.dispose()
