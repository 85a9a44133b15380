from __future__ import annotations

import json

import pytest

from messenger_sync.domain.value_objects.enums import ChangeTopic, PushEvent
from messenger_sync.services.socket_dispatcher import SocketEventDispatcher
from tests.conftest import FakeSocket, connected_harness, conversation_payload, drain, message_payload


class RecordingTarget:
    def __init__(self) -> None:
        self.calls: list[tuple] = []

    def apply_pushed_message(self, message):
        self.calls.append(("message", message.id, message.conversation_id))

    def apply_status(self, status, typing=False):
        self.calls.append(("status", status.user_id, typing))

    def apply_read_receipts(self, message_ids, conversation_id):
        self.calls.append(("read", message_ids, conversation_id))

    def apply_member_added(self, group_id, member):
        self.calls.append(("added", group_id, member.id))

    def apply_member_removed(self, group_id, member_id):
        self.calls.append(("removed", group_id, member_id))


@pytest.fixture
def target():
    return RecordingTarget()


@pytest.fixture
def dispatcher(target):
    return SocketEventDispatcher(target)


def test_bind_subscribes_every_push_event(dispatcher, target):
    socket = FakeSocket()

    dispatcher.bind(socket)

    assert set(socket.handlers) == set(PushEvent)
    socket.push("status.typing", {"userId": 2})
    assert target.calls == [("status", 2, True)]


def test_message_event_accepts_wrapped_and_bare_payloads(dispatcher, target):
    assert dispatcher.dispatch("message.created", message_payload(1, 5))
    bare = message_payload(2)
    del bare["conversationId"]
    assert dispatcher.dispatch("message.updated", {"message": bare, "conversation_id": 6})

    assert target.calls == [("message", 1, 5), ("message", 2, 6)]


def test_message_without_conversation_is_dropped(dispatcher, target):
    payload = message_payload(1)
    del payload["conversationId"]

    dispatcher.dispatch("message.created", payload)

    assert target.calls == []


def test_status_and_typing_events(dispatcher, target):
    dispatcher.dispatch("status.updated", {"userId": 2, "online": True})
    dispatcher.dispatch("status.typing", {"userId": 2})

    assert target.calls == [("status", 2, False), ("status", 2, True)]


def test_member_events(dispatcher, target):
    dispatcher.dispatch("group.member_added", {"groupId": 9, "member": {"id": 4, "name": "Zed"}})
    dispatcher.dispatch("group.member_removed", {"groupId": 9, "memberId": 4})
    dispatcher.dispatch("group.member_removed", {"groupId": 9, "member": {"id": 5}})
    dispatcher.dispatch("group.member_added", {"groupId": 9})

    assert target.calls == [("added", 9, 4), ("removed", 9, 4), ("removed", 9, 5)]


def test_malformed_and_unknown_events_are_dropped(dispatcher, target):
    assert dispatcher.dispatch("message.created", {"id": "not a number"}) is False
    assert dispatcher.dispatch("presence.changed", {}) is False
    assert target.calls == []


def test_dispatch_raw_decodes_envelopes(dispatcher, target):
    frame = json.dumps({"type": "messages.read", "data": {"messageIds": [1, 2]}})

    assert dispatcher.dispatch_raw(frame) is True
    assert dispatcher.dispatch_raw(b"{not json") is False
    assert target.calls == [("read", [1, 2], None)]


def test_handler_errors_do_not_escape(target):
    def boom(message):
        raise RuntimeError("broken target")

    target.apply_pushed_message = boom
    dispatcher = SocketEventDispatcher(target)

    assert dispatcher.dispatch("message.created", message_payload(1)) is False


@pytest.mark.asyncio
async def test_unread_push_bumps_roster_counter():
    h = await connected_harness()
    h.socket.responses["getConversation"] = conversation_payload(5, 1)
    await h.store.load_conversation(5)

    h.socket.push("message.created", message_payload(50, 5, unread=True))
    h.socket.push("message.updated", message_payload(50, 5, unread=True, body="edited"))

    assert h.store.messenger_info.by_id(5).unread_count == 1
    assert h.store.conversations[5].messages[-1].body == "edited"


@pytest.mark.asyncio
async def test_push_for_conversation_missing_from_roster_reloads_roster():
    h = await connected_harness()

    h.socket.push("message.created", message_payload(50, 77, unread=True))
    await drain(20)

    assert not h.store.conversations[77].loaded
    assert len(h.api.calls_to("getPrivate")) == 2


@pytest.mark.asyncio
async def test_pushed_message_for_unloaded_conversation_triggers_load_on_select():
    h = await connected_harness()
    h.socket.push("message.created", message_payload(50, 5))
    h.socket.responses["getConversation"] = conversation_payload(5, 2)

    conv = await h.store.set_selected_conversation_id(5)

    assert conv.loaded
    assert h.socket.calls_to("getConversation")


@pytest.mark.asyncio
async def test_status_push_reaches_conversation_and_roster():
    h = await connected_harness()
    h.socket.responses["getConversation"] = conversation_payload(5, 1)
    await h.store.load_conversation(5)
    h.topics.clear()

    h.socket.push("status.updated", {"userId": 2, "online": True, "label": "online"})

    assert h.store.conversations[5].status.online is True
    assert h.store.messenger_info.by_id(5).status.online is True
    assert ChangeTopic.STATUS in h.topics


@pytest.mark.asyncio
async def test_member_pushes_update_loaded_group():
    h = await connected_harness(groups=[{"id": 9, "name": "Team", "type": "chat-group"}])
    h.socket.responses["getConversation"] = conversation_payload(9, 0, type="chat-group")
    await h.store.load_conversation(9)

    h.socket.push("group.member_added", {"groupId": 9, "member": {"id": 4, "name": "Zed"}})
    assert [m.id for m in h.store.conversations[9].members] == [4]

    h.socket.push("group.member_removed", {"groupId": 9, "memberId": 4})
    assert h.store.conversations[9].members == []
