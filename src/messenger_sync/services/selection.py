from __future__ import annotations

from dataclasses import dataclass, field

from messenger_sync.domain.entities.contact import AddressBookContact, Contact
from messenger_sync.domain.entities.message import Message
from messenger_sync.domain.value_objects.ids import MessageId


@dataclass
class SelectionSets:
    """Ephemeral interaction state: picked messages, reply/edit targets, staged contacts.

    Reply targeting, edit targeting and multi-selection are exclusive modes:
    choosing a reply target leaves the other two.
    """

    selected_messages: list[Message] = field(default_factory=list)
    message_for_reply: Message | None = None
    message_for_edit: Message | None = None
    select_mode: bool = False
    forward_mode: bool = False
    # Messenger users picked from contact search.
    contacts_for_action: list[Contact] = field(default_factory=list)
    # Address-book entries picked from the user's own contact list.
    staged_contacts: list[AddressBookContact] = field(default_factory=list)

    # -- messages -----------------------------------------------------------

    def is_message_selected(self, message_id: MessageId) -> bool:
        return any(m.id == message_id for m in self.selected_messages)

    def select_message(self, message: Message) -> bool:
        if self.is_message_selected(message.id):
            return False
        self.selected_messages = [*self.selected_messages, message]
        return True

    def deselect_message(self, message_id: MessageId) -> bool:
        before = len(self.selected_messages)
        self.selected_messages = [m for m in self.selected_messages if m.id != message_id]
        return len(self.selected_messages) != before

    def clear_selected_messages(self) -> None:
        self.selected_messages = []

    def set_reply_target(self, message: Message) -> None:
        self.message_for_edit = None
        self.clear_selected_messages()
        self.select_mode = False
        self.forward_mode = False
        self.message_for_reply = message

    def take_reply_target(self) -> Message | None:
        message, self.message_for_reply = self.message_for_reply, None
        return message

    def forget_message(self, message_id: MessageId) -> None:
        """Drop every reference to a message that is going away."""
        if self.message_for_edit is not None and self.message_for_edit.id == message_id:
            self.message_for_edit = None
        if self.message_for_reply is not None and self.message_for_reply.id == message_id:
            self.message_for_reply = None
        self.deselect_message(message_id)

    # -- contacts -----------------------------------------------------------

    def is_contact_staged_for_action(self, contact_id: int | str) -> bool:
        # saved_id is set when an address-book entry was resolved to a
        # messenger contact, so either id identifies the same person.
        return any(
            c.id == contact_id or c.saved_id == contact_id
            for c in self.contacts_for_action
        )

    def add_contact_for_action(self, contact: Contact) -> bool:
        if self.is_contact_staged_for_action(contact.id):
            return False
        self.contacts_for_action.append(contact)
        return True

    def remove_contact_for_action(self, contact_id: int | str) -> None:
        self.contacts_for_action = [c for c in self.contacts_for_action if c.id != contact_id]

    def clear_contacts_for_action(self) -> None:
        self.contacts_for_action = []

    def stage_contact(self, contact: AddressBookContact) -> bool:
        if any(c.id == contact.id for c in self.staged_contacts):
            return False
        self.staged_contacts.append(contact)
        return True

    def unstage_contact(self, contact_id: int) -> None:
        self.staged_contacts = [c for c in self.staged_contacts if c.id != contact_id]

    def clear_staged_contacts(self) -> None:
        self.staged_contacts = []

    def clear_staging(self) -> None:
        self.clear_contacts_for_action()
        self.clear_staged_contacts()

    @property
    def has_staged_recipients(self) -> bool:
        return bool(self.contacts_for_action or self.staged_contacts)

    # -- recipient lists ----------------------------------------------------

    def _address_book_ids(self, prefix: str) -> list[str]:
        return [f"{prefix}{c.id}" for c in self.staged_contacts]

    def _messenger_ids(self) -> list[str]:
        return [str(c.id) for c in self.contacts_for_action]

    def group_recipients(self, prefix: str) -> str:
        """Recipients for a new group: messenger contacts first."""
        return ",".join([*self._messenger_ids(), *self._address_book_ids(prefix)])

    def invite_recipients(self, prefix: str) -> str:
        """Recipients for an invite: address-book contacts first."""
        return ",".join([*self._address_book_ids(prefix), *self._messenger_ids()])

    def member_aliases(self, prefix: str) -> list[str]:
        return [*self._address_book_ids(prefix), *self._messenger_ids()]
