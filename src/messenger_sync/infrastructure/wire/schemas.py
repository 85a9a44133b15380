"""Validated shapes of request results and pushed events."""
from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from messenger_sync.domain.value_objects.enums import ConversationType


class WireModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class AuthorPayload(WireModel):
    id: int
    name: str = ""


class MessagePayload(WireModel):
    id: int
    conversation_id: int | None = None
    body: str | None = None
    author: AuthorPayload | None = None
    date: datetime
    client_token: str | None = None
    reply_to_id: int | None = None
    forward_from_id: int | None = None
    unread: bool = False
    opponent_unread: bool = False
    deleted: bool = False
    deletable: bool = False
    edited: bool = False


class StatusPayload(WireModel):
    user_id: int | None = None
    conversation_id: int | None = None
    label: str | None = None
    last_visit: str | None = None
    online: bool = False


class ConversationPayload(WireModel):
    id: int
    name: str = ""
    type: ConversationType = ConversationType.CONVERSATION
    messages: list[MessagePayload] = Field(default_factory=list)
    status: StatusPayload | None = None
    archived: bool = False


class ConversationInfoPayload(WireModel):
    id: int
    name: str = ""
    type: ConversationType = ConversationType.CONVERSATION
    unread_count: int = 0
    notification: bool = True
    status: StatusPayload | None = None


class MessengerUserPayload(WireModel):
    id: int
    name: str = ""


class UserSettingsPayload(WireModel):
    notification: bool = True
    sound: bool = True


class MessengerInfoPayload(WireModel):
    ws_url: str = ""
    messenger_user: MessengerUserPayload
    conversations: list[ConversationInfoPayload] = Field(default_factory=list)
    groups: list[ConversationInfoPayload] = Field(default_factory=list)
    user_settings: UserSettingsPayload | None = None


class ConversationSettingsPayload(WireModel):
    notification: bool = True


class GroupMemberPayload(WireModel):
    id: int | str
    name: str = ""
    alias: str | None = None


class GroupSettingsPayload(WireModel):
    notification: bool = True
    name: str = ""
    owner_id: int | None = None
    allow_group_chat: bool = False
    members: list[GroupMemberPayload] = Field(default_factory=list)


class ContactPayload(WireModel):
    id: int | str
    name: str = ""
    saved_id: int | None = None


class SearchResultPayload(WireModel):
    messages: list[MessagePayload] = Field(default_factory=list)


class ReadReceiptPayload(WireModel):
    conversation_id: int | None = None
    message_ids: list[int] = Field(default_factory=list)


class MemberChangePayload(WireModel):
    group_id: int
    member: GroupMemberPayload | None = None
    member_id: int | str | None = None


class PushEnvelope(BaseModel):
    """A raw push frame: ``{"type": "<event>", "data": {...}}``."""

    type: str
    data: dict[str, Any] = Field(default_factory=dict)
