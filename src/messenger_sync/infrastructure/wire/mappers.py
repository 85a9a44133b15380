from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from messenger_sync.domain.entities.contact import Contact
from messenger_sync.domain.entities.conversation import Conversation
from messenger_sync.domain.entities.message import Author, Message
from messenger_sync.domain.entities.messenger_info import (
    ConversationInfo,
    MessengerInfo,
    MessengerUser,
)
from messenger_sync.domain.entities.settings import (
    ConversationSettings,
    GroupMember,
    GroupSettings,
    UserSettings,
)
from messenger_sync.domain.entities.status import ConversationStatus
from messenger_sync.infrastructure.wire.schemas import (
    ContactPayload,
    ConversationInfoPayload,
    ConversationPayload,
    ConversationSettingsPayload,
    GroupMemberPayload,
    GroupSettingsPayload,
    MessagePayload,
    MessengerInfoPayload,
    StatusPayload,
)


def _aware(value: datetime) -> datetime:
    # Naive timestamps from the server are UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def message_to_entity(payload: MessagePayload, conversation_id: int | None = None) -> Message:
    return Message(
        id=payload.id,
        conversation_id=(
            payload.conversation_id
            if payload.conversation_id is not None
            else conversation_id
        ),
        body=payload.body,
        author=(
            Author(id=payload.author.id, name=payload.author.name)
            if payload.author
            else None
        ),
        date=_aware(payload.date),
        client_token=payload.client_token,
        reply_to_id=payload.reply_to_id,
        forward_from_id=payload.forward_from_id,
        unread=payload.unread,
        opponent_unread=payload.opponent_unread,
        deleted=payload.deleted,
        deletable=payload.deletable,
        edited=payload.edited,
    )


def status_to_entity(payload: StatusPayload | None) -> ConversationStatus | None:
    if payload is None:
        return None
    return ConversationStatus(
        user_id=payload.user_id,
        conversation_id=payload.conversation_id,
        label=payload.label,
        last_visit=payload.last_visit,
        online=payload.online,
    )


def conversation_to_entity(
    payload: ConversationPayload,
    info: ConversationInfo | None = None,
    **kwargs: Any,
) -> Conversation:
    """Build a Conversation; roster data fills in what the payload lacks."""
    conversation_type = payload.type
    if info is not None and "type" not in payload.model_fields_set:
        conversation_type = info.type
    return Conversation(
        id=payload.id,
        name=payload.name or (info.name if info else ""),
        type=conversation_type,
        messages=[message_to_entity(m, payload.id) for m in payload.messages],
        status=status_to_entity(payload.status),
        archived=payload.archived,
        **kwargs,
    )


def conversation_info_to_entity(payload: ConversationInfoPayload) -> ConversationInfo:
    return ConversationInfo(
        id=payload.id,
        name=payload.name,
        type=payload.type,
        unread_count=payload.unread_count,
        notification=payload.notification,
        status=status_to_entity(payload.status) or ConversationStatus(),
    )


def messenger_info_to_entity(payload: MessengerInfoPayload) -> MessengerInfo:
    return MessengerInfo(
        messenger_user=MessengerUser(
            id=payload.messenger_user.id,
            name=payload.messenger_user.name,
        ),
        ws_url=payload.ws_url,
        conversations=[conversation_info_to_entity(c) for c in payload.conversations],
        groups=[conversation_info_to_entity(g) for g in payload.groups],
        user_settings=(
            UserSettings(
                notification=payload.user_settings.notification,
                sound=payload.user_settings.sound,
            )
            if payload.user_settings
            else UserSettings()
        ),
    )


def member_to_entity(payload: GroupMemberPayload) -> GroupMember:
    return GroupMember(id=payload.id, name=payload.name, alias=payload.alias)


def conversation_settings_to_entity(payload: ConversationSettingsPayload) -> ConversationSettings:
    return ConversationSettings(notification=payload.notification)


def group_settings_to_entity(payload: GroupSettingsPayload) -> GroupSettings:
    return GroupSettings(
        notification=payload.notification,
        name=payload.name,
        owner_id=payload.owner_id,
        allow_group_chat=payload.allow_group_chat,
        members=[member_to_entity(m) for m in payload.members],
    )


def contact_to_entity(payload: ContactPayload) -> Contact:
    return Contact(id=payload.id, name=payload.name, saved_id=payload.saved_id)
