from __future__ import annotations

import pytest

from messenger_sync.domain.entities.contact import AddressBookContact, Contact
from messenger_sync.services.selection import SelectionSets
from tests.conftest import connected_harness, conversation_payload


def test_reply_target_leaves_edit_and_multi_select(harness):
    store = harness.store
    store.set_select_mode(True)
    store.set_forward_mode(True)
    store.set_message_for_edit(object())

    target = object()
    store.set_message_for_reply(target)

    assert store.message_for_reply is target
    assert store.message_for_edit is None
    assert store.selected_messages == ()
    assert not store.select_mode
    assert not store.forward_mode


def test_contacts_for_action_are_deduplicated_by_either_id():
    sets = SelectionSets()

    assert sets.add_contact_for_action(Contact(id=7, name="Dan", saved_id=70))
    assert not sets.add_contact_for_action(Contact(id=7, name="Dan"))
    assert sets.is_contact_staged_for_action(70)
    sets.remove_contact_for_action(7)
    assert not sets.has_staged_recipients


def test_recipient_lists_order_the_two_contact_kinds():
    sets = SelectionSets()
    sets.add_contact_for_action(Contact(id=7, name="Dan"))
    sets.stage_contact(AddressBookContact(id=3, name="Eve"))
    sets.stage_contact(AddressBookContact(id=3, name="Eve"))

    assert sets.group_recipients("contact-") == "7,contact-3"
    assert sets.invite_recipients("contact-") == "contact-3,7"
    assert sets.member_aliases("contact-") == ["contact-3", "7"]


def test_clear_staging_empties_both_lists():
    sets = SelectionSets()
    sets.add_contact_for_action(Contact(id=7, name="Dan"))
    sets.stage_contact(AddressBookContact(id=3, name="Eve"))

    sets.clear_staging()

    assert sets.contacts_for_action == []
    assert sets.staged_contacts == []


@pytest.mark.asyncio
async def test_message_selection_through_store():
    h = await connected_harness()
    h.socket.responses["getConversation"] = conversation_payload(5, 3)
    conv = await h.store.set_selected_conversation_id(5)
    first, second = conv.messages[:2]

    h.store.select_message(first)
    h.store.select_message(first)
    h.store.select_message(second)
    assert [m.id for m in h.store.selected_messages] == [100, 101]
    assert h.store.is_message_selected(101)

    h.store.deselect_message(100)
    assert [m.id for m in h.store.selected_messages] == [101]

    h.store.clear_selected_messages()
    assert h.store.selected_messages == ()


@pytest.mark.asyncio
async def test_deleting_a_message_forgets_references_to_it():
    h = await connected_harness()
    h.socket.responses["getConversation"] = conversation_payload(5, 3)
    conv = await h.store.set_selected_conversation_id(5)
    target = conv.messages[0]
    h.store.set_message_for_edit(target)
    h.store.select_message(target)

    await h.store.delete_message(target.id)

    assert h.socket.calls_to("deleteMessage") == [{"id": 100}]
    assert h.store.message_for_edit is None
    assert h.store.selected_messages == ()


@pytest.mark.asyncio
async def test_delete_selected_skips_undeletable_messages():
    h = await connected_harness()
    payload = conversation_payload(5, 3)
    payload["messages"][1]["deletable"] = False
    h.socket.responses["getConversation"] = payload
    conv = await h.store.set_selected_conversation_id(5)
    for m in conv.messages:
        h.store.select_message(m)

    await h.store.delete_selected_messages()

    assert [c["id"] for c in h.socket.calls_to("deleteMessage")] == [100, 102]


@pytest.mark.asyncio
async def test_delete_all_in_selected_conversation():
    h = await connected_harness()
    h.socket.responses["getConversation"] = conversation_payload(5, 2)
    await h.store.set_selected_conversation_id(5)

    await h.store.delete_all_messages_in_selected_conversation()

    assert [c["id"] for c in h.socket.calls_to("deleteMessage")] == [100, 101]


@pytest.mark.asyncio
async def test_forward_selected_messages_to_selected_conversation():
    h = await connected_harness()
    h.socket.responses["getConversation"] = conversation_payload(5, 2)
    conv = await h.store.set_selected_conversation_id(5)
    for m in conv.messages:
        h.store.select_message(m)

    await h.store.forward_selected_messages()

    sent = h.socket.calls_to("sendMessage")
    assert [c["forward_from_id"] for c in sent] == [100, 101]
    assert all(c["conversation_id"] == 5 and "body" not in c for c in sent)
    assert h.store.selected_messages == ()


@pytest.mark.asyncio
async def test_edit_message_sends_new_value():
    h = await connected_harness()

    await h.store.edit_message(100, "fixed")

    assert h.socket.calls_to("editMessage") == [{"id": 100, "new_value": "fixed"}]


def test_store_contact_staging(harness):
    store = harness.store
    store.add_contact_for_action(Contact(id=7, name="Dan"))
    store.stage_contact(AddressBookContact(id=3, name="Eve"))

    assert store.is_contacts_for_action_available
    assert store.is_contact_staged_for_action(7)

    store.remove_contact_for_action(7)
    store.unstage_contact(3)
    assert not store.is_contacts_for_action_available
    assert store.staged_contacts == ()
