"""Shared test fixtures."""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

import pytest

from messenger_sync.application.dto.profile import Profile
from messenger_sync.application.ports.transport import PushHandler
from messenger_sync.config import Settings
from messenger_sync.domain.entities.settings import UserSettings
from messenger_sync.services.communication_store import CommunicationStore

BASE_DATE = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)
WS_URL = "wss://messenger.test/ws"
USER_ID = 1


def message_payload(
    message_id: int,
    conversation_id: int = 5,
    *,
    body: str = "hello",
    minutes: int | None = None,
    unread: bool = False,
    client_token: str | None = None,
    deletable: bool = True,
    author_id: int = 2,
) -> dict[str, Any]:
    date = BASE_DATE + timedelta(minutes=message_id if minutes is None else minutes)
    data: dict[str, Any] = {
        "id": message_id,
        "conversationId": conversation_id,
        "body": body,
        "author": {"id": author_id, "name": "Opponent"},
        "date": date.isoformat(),
        "unread": unread,
        "deletable": deletable,
    }
    if client_token is not None:
        data["clientToken"] = client_token
    return data


def conversation_payload(
    conversation_id: int = 5,
    count: int = 0,
    *,
    type: str = "conversation",
    name: str = "Alice",
    unread: int = 0,
    status_user_id: int | None = 2,
    first_id: int = 100,
) -> dict[str, Any]:
    messages = [
        message_payload(first_id + i, conversation_id, unread=i >= count - unread)
        for i in range(count)
    ]
    data: dict[str, Any] = {
        "id": conversation_id,
        "name": name,
        "type": type,
        "messages": messages,
    }
    if status_user_id is not None:
        data["status"] = {"userId": status_user_id, "label": "offline", "online": False}
    return data


def messenger_info_payload(
    *,
    conversations: list[dict[str, Any]] | None = None,
    groups: list[dict[str, Any]] | None = None,
) -> dict[str, Any]:
    return {
        "wsUrl": WS_URL,
        "messengerUser": {"id": USER_ID, "name": "Me"},
        "conversations": conversations if conversations is not None else [
            {"id": 5, "name": "Alice", "type": "conversation", "unreadCount": 0,
             "status": {"userId": 2, "online": False}},
        ],
        "groups": groups if groups is not None else [],
    }


@dataclass
class FakeRequester:
    """Answers ``request`` calls from canned responses and records them.

    A response may be a value, an exception instance (raised), or a callable
    receiving the call params. A method listed in ``gates`` blocks until its
    event is set.
    """

    responses: dict[str, Any] = field(default_factory=dict)
    calls: list[tuple[str, dict[str, Any]]] = field(default_factory=list)
    gates: dict[str, asyncio.Event] = field(default_factory=dict)

    async def request(self, method: str, **params: Any) -> Any:
        self.calls.append((method, params))
        gate = self.gates.get(method)
        if gate is not None:
            await gate.wait()
        response = self.responses.get(method)
        if isinstance(response, BaseException):
            raise response
        if callable(response):
            response = response(**params)
            if isinstance(response, BaseException):
                raise response
        return response

    def calls_to(self, method: str) -> list[dict[str, Any]]:
        return [params for name, params in self.calls if name == method]


@dataclass
class FakeSocket(FakeRequester):
    user_id: int = USER_ID
    url: str = WS_URL
    tokens: list[str] = field(default_factory=list)
    handlers: dict[str, list[PushHandler]] = field(default_factory=dict)
    closed: bool = False

    def subscribe(self, event: str, handler: PushHandler) -> None:
        self.handlers.setdefault(event, []).append(handler)

    def set_access_token(self, token: str) -> None:
        self.tokens.append(token)

    async def close(self) -> None:
        self.closed = True

    def push(self, event: str, data: dict[str, Any]) -> None:
        for handler in self.handlers.get(event, []):
            handler(data)


@dataclass
class FakeApi(FakeRequester):
    # Sockets handed out by ``connect`` in order; fresh ones once exhausted.
    prepared_sockets: list[FakeSocket] = field(default_factory=list)
    sockets: list[FakeSocket] = field(default_factory=list)

    def connect(self, url: str, user_id: int, token: str) -> FakeSocket:
        if self.prepared_sockets:
            socket = self.prepared_sockets.pop(0)
            socket.user_id = user_id
            socket.url = url
        else:
            socket = FakeSocket(user_id=user_id, url=url)
        self.sockets.append(socket)
        return socket


@dataclass
class FakeTokenSource:
    token: str = "token-1"
    listeners: list[Callable[[str], None]] = field(default_factory=list)

    def get_access_token(self) -> str:
        return self.token

    def subscribe(self, listener: Callable[[str], None]) -> Callable[[], None]:
        self.listeners.append(listener)

        def unsubscribe() -> None:
            self.listeners.remove(listener)

        return unsubscribe

    def set_token(self, token: str) -> None:
        self.token = token
        for listener in list(self.listeners):
            listener(token)


@dataclass
class FakeSound:
    played: int = 0
    user_settings: UserSettings | None = None

    def play_message_sent(self) -> None:
        self.played += 1

    def set_user_settings(self, settings: UserSettings) -> None:
        self.user_settings = settings


@dataclass
class FakeClock:
    current: datetime = BASE_DATE + timedelta(days=1)

    def now(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += timedelta(seconds=seconds)


def make_settings(**overrides: Any) -> Settings:
    values: dict[str, Any] = {
        "MESSAGES_REQUEST_LIMIT": 30,
        "TYPING_THROTTLE_SECONDS": 5.0,
        "TYPING_QUIET_SECONDS": 0.05,
    }
    values.update(overrides)
    return Settings(**values)


@dataclass
class Harness:
    store: CommunicationStore
    api: FakeApi
    socket: FakeSocket
    auth: FakeTokenSource
    sound: FakeSound
    clock: FakeClock
    topics: list[str] = field(default_factory=list)


def make_harness(**settings_overrides: Any) -> Harness:
    socket = FakeSocket()
    socket.responses.update({
        "getConversationSettings": {"notification": True},
        "getChatGroupSettings": {"notification": True, "members": []},
        "getMarketingGroupSettings": {"notification": False, "members": []},
        "updateMessagesReadStatus": {"ok": True},
    })
    api = FakeApi(prepared_sockets=[socket])
    api.responses["getPrivate"] = messenger_info_payload()
    auth = FakeTokenSource()
    sound = FakeSound()
    clock = FakeClock()
    store = CommunicationStore(
        api,
        auth,
        sound=sound,
        clock=clock,
        config=make_settings(**settings_overrides),
        phone_mode=True,
    )
    harness = Harness(store=store, api=api, socket=socket, auth=auth, sound=sound, clock=clock)
    store.subscribe(harness.topics.append)
    return harness


async def connected_harness(
    *,
    conversations: list[dict[str, Any]] | None = None,
    groups: list[dict[str, Any]] | None = None,
    **settings_overrides: Any,
) -> Harness:
    """A harness whose roster is loaded and channel is connected."""
    harness = make_harness(**settings_overrides)
    harness.api.responses["getPrivate"] = messenger_info_payload(
        conversations=conversations, groups=groups,
    )
    await harness.store.load_messenger_info(Profile(id=10))
    return harness


@pytest.fixture
def harness() -> Harness:
    return make_harness()


async def drain(rounds: int = 10) -> None:
    """Let scheduled tasks run up to their next real suspension point."""
    for _ in range(rounds):
        await asyncio.sleep(0)
