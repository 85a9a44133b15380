from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from messenger_sync.domain.value_objects.ids import MessageId


@dataclass(frozen=True, slots=True)
class Author:
    id: int
    name: str = ""


@dataclass(frozen=True, slots=True)
class MediaFileInfo:
    file_name: str
    uri: str
    path: str | None = None
    width: int | None = None
    height: int | None = None
    file_size: int | None = None
    is_picture: bool = False


@dataclass(slots=True)
class Message:
    id: MessageId
    conversation_id: int
    body: str | None
    author: Author | None
    date: datetime
    client_token: str | None = None
    reply_to_id: int | None = None
    forward_from_id: int | None = None
    media: MediaFileInfo | None = None

    unread: bool = False
    opponent_unread: bool = False
    deleted: bool = False
    deletable: bool = False
    edited: bool = False

    is_sending_message: bool = False
    is_file_uploading: bool = False
    failed: bool = False

    @property
    def is_temporary(self) -> bool:
        """True until the server has assigned an integer id."""
        return isinstance(self.id, str)

    def matches(self, other: Message) -> bool:
        if self.id == other.id:
            return True
        return (
            self.client_token is not None
            and self.client_token == other.client_token
        )

