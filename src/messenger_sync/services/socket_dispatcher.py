"""Inbound push events → read-model mutations."""
from __future__ import annotations

import logging
from typing import Any, Callable, Protocol

from pydantic import ValidationError

from messenger_sync.application.ports.transport import SocketChannel
from messenger_sync.domain.entities.message import Message
from messenger_sync.domain.entities.settings import GroupMember
from messenger_sync.domain.entities.status import ConversationStatus
from messenger_sync.domain.value_objects.enums import PushEvent
from messenger_sync.infrastructure.wire.mappers import (
    member_to_entity,
    message_to_entity,
    status_to_entity,
)
from messenger_sync.infrastructure.wire.schemas import (
    MemberChangePayload,
    MessagePayload,
    PushEnvelope,
    ReadReceiptPayload,
    StatusPayload,
)

logger = logging.getLogger(__name__)


class PushTarget(Protocol):
    def apply_pushed_message(self, message: Message) -> None: ...
    def apply_status(self, status: ConversationStatus, typing: bool = False) -> None: ...
    def apply_read_receipts(self, message_ids: list[int], conversation_id: int | None) -> None: ...
    def apply_member_added(self, group_id: int, member: GroupMember) -> None: ...
    def apply_member_removed(self, group_id: int, member_id: int | str) -> None: ...


class SocketEventDispatcher:
    """Applies pushed events to the store in arrival order.

    Each event is handled synchronously, so a mutation is never interleaved
    with another event or with a command response.
    """

    def __init__(self, target: PushTarget) -> None:
        self._target = target
        self._handlers: dict[str, Callable[[dict[str, Any]], None]] = {
            PushEvent.MESSAGE_CREATED: self._on_message,
            PushEvent.MESSAGE_UPDATED: self._on_message,
            PushEvent.STATUS_UPDATED: self._on_status,
            PushEvent.STATUS_TYPING: self._on_typing,
            PushEvent.MESSAGES_READ: self._on_read,
            PushEvent.MEMBER_ADDED: self._on_member_added,
            PushEvent.MEMBER_REMOVED: self._on_member_removed,
        }

    def bind(self, socket: SocketChannel) -> None:
        for event in self._handlers:
            socket.subscribe(event, self._make_listener(event))

    def _make_listener(self, event: str) -> Callable[[dict[str, Any]], None]:
        def listener(data: dict[str, Any]) -> None:
            self.dispatch(event, data)

        return listener

    def dispatch(self, event: str, data: dict[str, Any]) -> bool:
        handler = self._handlers.get(event)
        if handler is None:
            logger.debug("Ignoring unknown push event: %s", event)
            return False
        try:
            handler(data)
        except ValidationError:
            logger.warning("Malformed %s push: %r", event, data)
            return False
        except Exception:
            logger.exception("Error applying %s push", event)
            return False
        return True

    def dispatch_raw(self, raw: str | bytes) -> bool:
        try:
            envelope = PushEnvelope.model_validate_json(raw)
        except ValidationError:
            logger.warning("Undecodable push frame dropped")
            return False
        return self.dispatch(envelope.type, envelope.data)

    # -- handlers -----------------------------------------------------------

    def _on_message(self, data: dict[str, Any]) -> None:
        payload = MessagePayload.model_validate(data.get("message", data))
        if payload.conversation_id is None and "conversation_id" in data:
            payload.conversation_id = int(data["conversation_id"])
        if payload.conversation_id is None:
            logger.warning("Message push %s has no conversation id", payload.id)
            return
        self._target.apply_pushed_message(message_to_entity(payload))

    def _on_status(self, data: dict[str, Any]) -> None:
        status = status_to_entity(StatusPayload.model_validate(data))
        self._target.apply_status(status)

    def _on_typing(self, data: dict[str, Any]) -> None:
        status = status_to_entity(StatusPayload.model_validate(data))
        self._target.apply_status(status, typing=True)

    def _on_read(self, data: dict[str, Any]) -> None:
        payload = ReadReceiptPayload.model_validate(data)
        self._target.apply_read_receipts(payload.message_ids, payload.conversation_id)

    def _on_member_added(self, data: dict[str, Any]) -> None:
        payload = MemberChangePayload.model_validate(data)
        if payload.member is None:
            logger.warning("Member-added push for group %s carries no member", payload.group_id)
            return
        self._target.apply_member_added(payload.group_id, member_to_entity(payload.member))

    def _on_member_removed(self, data: dict[str, Any]) -> None:
        payload = MemberChangePayload.model_validate(data)
        member_id = payload.member_id
        if member_id is None and payload.member is not None:
            member_id = payload.member.id
        if member_id is None:
            logger.warning("Member-removed push for group %s carries no member", payload.group_id)
            return
        self._target.apply_member_removed(payload.group_id, member_id)
