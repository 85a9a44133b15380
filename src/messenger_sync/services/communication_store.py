"""Client-side messenger state and the operations that change it."""
from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Coroutine, Mapping
from dataclasses import asdict, dataclass
from typing import Any, Callable

from messenger_sync.application.dto.outgoing import OutgoingMessageDTO
from messenger_sync.application.dto.profile import Profile
from messenger_sync.application.exceptions import (
    NotConnectedError,
    NotFoundError,
    ValidationError,
)
from messenger_sync.application.observable import Observable
from messenger_sync.application.ports.auth import TokenSource
from messenger_sync.application.ports.clock import Clock, SystemClock, epoch_millis
from messenger_sync.application.ports.sound import NullSoundPlayer, SoundPlayer
from messenger_sync.application.ports.transport import MessengerApi, SocketChannel
from messenger_sync.application.rate_limit import KeyedRateLimiter
from messenger_sync.application.request_cache import RequestCache
from messenger_sync.config import Settings, settings as default_settings
from messenger_sync.domain.entities.contact import AddressBookContact, Contact
from messenger_sync.domain.entities.conversation import Conversation
from messenger_sync.domain.entities.message import Author, MediaFileInfo, Message
from messenger_sync.domain.entities.messenger_info import ConversationInfo, MessengerInfo
from messenger_sync.domain.entities.settings import (
    ConversationSettings,
    GroupMember,
    GroupSettings,
    UserSettings,
)
from messenger_sync.domain.entities.status import ConversationStatus
from messenger_sync.domain.value_objects.enums import (
    ChangeTopic,
    ConversationType,
    GroupState,
)
from messenger_sync.domain.value_objects.ids import MessageId
from messenger_sync.infrastructure.wire.mappers import (
    contact_to_entity,
    conversation_settings_to_entity,
    conversation_to_entity,
    group_settings_to_entity,
    member_to_entity,
    message_to_entity,
    messenger_info_to_entity,
)
from messenger_sync.infrastructure.wire.schemas import (
    ContactPayload,
    ConversationPayload,
    ConversationSettingsPayload,
    GroupMemberPayload,
    GroupSettingsPayload,
    MessagePayload,
    MessengerInfoPayload,
    SearchResultPayload,
)
from messenger_sync.services.conversation_store import ConversationStore, merge_messages
from messenger_sync.services.selection import SelectionSets
from messenger_sync.services.socket_dispatcher import SocketEventDispatcher
from messenger_sync.services.upload_progress import UploadProgressTracker

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class RosterSection:
    title: str
    items: list[Any]


class CommunicationStore(Observable):
    """Owns the messenger read model and is the only way to change it.

    Command responses and pushed events both land here. Each one is applied
    as a single synchronous step after its await completes, so listeners
    registered with ``subscribe`` never see a half-applied change.
    """

    def __init__(
        self,
        api: MessengerApi,
        auth: TokenSource,
        *,
        sound: SoundPlayer | None = None,
        clock: Clock | None = None,
        config: Settings | None = None,
        phone_mode: bool = False,
    ) -> None:
        super().__init__()
        self._api = api
        self._auth = auth
        self._sound = sound or NullSoundPlayer()
        self._clock = clock or SystemClock()
        self._config = config or default_settings
        self.phone_mode = phone_mode

        self._requests = RequestCache(on_pending_change=self._on_pending_change)
        self._conversations = ConversationStore()
        self._uploads = UploadProgressTracker(self._config.UPLOAD_PROGRESS_MAX)
        self._selection = SelectionSets()
        self._typing_limiter = KeyedRateLimiter(self._config.TYPING_THROTTLE_SECONDS, self._clock)
        self._dispatcher = SocketEventDispatcher(self)

        self._profile: Profile | None = None
        self._messenger_info: MessengerInfo | None = None
        self._selected_conversation_id: int | None = None
        self._sending_messages: list[Message] = []
        self._found_messages: list[Message] = []
        self._contacts_filter = ""
        self._contacts_autocomplete: list[Contact] = []
        self._group_states: dict[int, GroupState] = {}
        self._error: Exception | None = None

        self._socket: SocketChannel | None = None
        self._token_unsubscribe: Callable[[], None] | None = None
        self._background: set[asyncio.Task[Any]] = set()

    # ------------------------------------------------------------------
    # Read model
    # ------------------------------------------------------------------

    @property
    def messenger_info(self) -> MessengerInfo | None:
        return self._messenger_info

    @property
    def conversations(self) -> Mapping[int, Conversation]:
        return self._conversations.view()

    @property
    def selected_conversation_id(self) -> int | None:
        return self._selected_conversation_id

    @property
    def selected_conversation(self) -> Conversation | None:
        return self._conversations.get(self._selected_conversation_id)

    @property
    def conversation_messages(self) -> list[Message]:
        """Messages of the selected conversation plus its pending sends, newest first."""
        conversation = self.selected_conversation
        if conversation is None:
            return []
        sending = [
            m for m in self._sending_messages
            if m.conversation_id == conversation.id
        ]
        return merge_messages(conversation.messages, sending)

    @property
    def sending_messages(self) -> tuple[Message, ...]:
        return tuple(self._sending_messages)

    @property
    def found_messages(self) -> tuple[Message, ...]:
        return tuple(self._found_messages)

    @property
    def contacts_filter(self) -> str:
        return self._contacts_filter

    @property
    def contacts_autocomplete(self) -> tuple[Contact, ...]:
        return tuple(self._contacts_autocomplete)

    @property
    def selected_messages(self) -> tuple[Message, ...]:
        return tuple(self._selection.selected_messages)

    @property
    def message_for_reply(self) -> Message | None:
        return self._selection.message_for_reply

    @property
    def message_for_edit(self) -> Message | None:
        return self._selection.message_for_edit

    @property
    def select_mode(self) -> bool:
        return self._selection.select_mode

    @property
    def forward_mode(self) -> bool:
        return self._selection.forward_mode

    @property
    def contacts_for_action(self) -> tuple[Contact, ...]:
        return tuple(self._selection.contacts_for_action)

    @property
    def staged_contacts(self) -> tuple[AddressBookContact, ...]:
        return tuple(self._selection.staged_contacts)

    @property
    def is_contacts_for_action_available(self) -> bool:
        return len(self._selection.contacts_for_action) > 0

    @property
    def upload_progress(self) -> Mapping[str, int]:
        return self._uploads.view()

    @property
    def is_loading(self) -> bool:
        return self._requests.pending_count > 0

    @property
    def error(self) -> Exception | None:
        """The last handled request failure, until cleared."""
        return self._error

    def clear_error(self) -> None:
        self._error = None

    @property
    def socket(self) -> SocketChannel | None:
        return self._socket

    @property
    def conversations_count(self) -> int:
        info = self._messenger_info
        if info is None:
            return len(self._found_messages)
        return len(info.conversations) + len(info.groups) + len(self._found_messages)

    def group_state(self, group_id: int) -> GroupState:
        return self._group_states.get(group_id, GroupState.NONE)

    def filtered_roster(self) -> list[RosterSection]:
        needle = self._contacts_filter.lower()
        info = self._messenger_info
        contacts = list(info.conversations) if info else []
        groups = list(info.groups) if info else []
        if needle:
            contacts = [c for c in contacts if needle in c.name.lower()]
            groups = [g for g in groups if needle in g.name.lower()]
        return [
            RosterSection("contacts", contacts),
            RosterSection("groups", groups),
            RosterSection("foundMessages", list(self._found_messages)),
        ]

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    async def init_socket(self, url: str, user_id: int) -> SocketChannel:
        if self._socket is not None and self._socket.user_id == user_id:
            return self._socket

        await self._release_socket()

        socket = self._api.connect(url, user_id, self._auth.get_access_token())
        self._socket = socket
        self._dispatcher.bind(socket)
        self._token_unsubscribe = self._auth.subscribe(socket.set_access_token)
        socket.set_access_token(self._auth.get_access_token())
        logger.info("Messenger channel connected for user %s", user_id)
        return socket

    async def _release_socket(self) -> None:
        if self._token_unsubscribe is not None:
            self._token_unsubscribe()
            self._token_unsubscribe = None
        if self._socket is not None:
            old, self._socket = self._socket, None
            logger.info("Closing messenger channel for user %s", old.user_id)
            await old.close()

    async def close(self) -> None:
        await self._release_socket()
        for task in list(self._background):
            task.cancel()
        self._conversations.dispose()

    def _require_socket(self) -> SocketChannel:
        if self._socket is None:
            raise NotConnectedError("Messenger channel is not connected")
        return self._socket

    def _require_messenger_info(self) -> MessengerInfo:
        if self._messenger_info is None:
            raise NotConnectedError("Messenger info is not loaded")
        return self._messenger_info

    # ------------------------------------------------------------------
    # Roster
    # ------------------------------------------------------------------

    async def load_messenger_info(self, profile: Profile) -> MessengerInfo | None:
        self._profile = profile
        if profile.is_business:
            method, params = "getBusiness", {"slug": profile.business_slug}
        else:
            method, params = "getPrivate", {}

        async def on_success(data: Any) -> MessengerInfo:
            info = messenger_info_to_entity(MessengerInfoPayload.model_validate(data))
            await self.init_socket(info.ws_url, info.messenger_user.id)
            self._messenger_info = info
            self.notify(ChangeTopic.ROSTER)
            return info

        info = await self._requests.run(
            self._config.cache_key("messengerInfo", profile.id),
            lambda: self._api.request(method, **params),
            on_success=on_success,
        )

        if not self.phone_mode and self._selected_conversation_id is None:
            default = info.get_default_conversation()
            if default is not None:
                await self.set_selected_conversation_id(default.id)
        return info

    async def _reload_messenger_info(self) -> None:
        if self._profile is None:
            return
        try:
            await self.load_messenger_info(self._profile)
        except Exception:
            logger.exception("Roster reload failed")

    def _roster_entry(self, conversation_id: int) -> ConversationInfo | None:
        if self._messenger_info is None:
            return None
        return self._messenger_info.by_id(conversation_id)

    # ------------------------------------------------------------------
    # Conversations
    # ------------------------------------------------------------------

    def _conversation_key(self, user_id: int, conversation_id: int) -> str:
        return self._config.cache_key("conversations", user_id, conversation_id)

    def _new_conversation(self, payload: ConversationPayload) -> Conversation:
        return conversation_to_entity(
            payload,
            self._roster_entry(payload.id),
            typing_quiet_seconds=self._config.TYPING_QUIET_SECONDS,
            on_change=self._on_conversation_changed,
        )

    def _on_conversation_changed(self, conversation: Conversation) -> None:
        self.notify(ChangeTopic.STATUS)

    async def load_conversation(
        self,
        conversation_id: int,
        limit: int | None = None,
    ) -> Conversation | None:
        socket = self._require_socket()
        limit = limit or self._config.MESSAGES_REQUEST_LIMIT
        conversation_type = (
            self._messenger_info.get_conversation_type(conversation_id)
            if self._messenger_info is not None
            else ConversationType.CONVERSATION
        )
        key = self._conversation_key(socket.user_id, conversation_id)

        # Callers joining a pending load share its result and its hooks.
        seq = 0 if self._requests.is_pending(key) else self._conversations.begin_load(conversation_id)

        async def fetch() -> ConversationPayload:
            data = await socket.request(
                "getConversation",
                id=conversation_id,
                type=conversation_type.value,
                limit=limit,
            )
            return ConversationPayload.model_validate(data)

        async def on_success(payload: ConversationPayload) -> Conversation | None:
            conversation = self._new_conversation(payload)
            conversation.all_messages_fetched = len(payload.messages) < limit
            conversation.set_settings(await self._load_settings(conversation))

            applied = self._conversations.commit_load(conversation_id, seq, conversation)
            stored = self._conversations.get(conversation_id)
            if stored is not None and stored.is_group:
                self._group_states[conversation_id] = GroupState.ACTIVE
            if applied:
                self.notify(ChangeTopic.CONVERSATIONS)
                self._sync_roster_unread(stored)
            return stored

        return await self._requests.run(
            key,
            fetch,
            on_success=on_success,
            on_error=self._log_failure(f"Loading conversation {conversation_id}"),
            on_complete=lambda: self._conversations.end_load(conversation_id),
        )

    def _sync_roster_unread(self, conversation: Conversation) -> None:
        # The roster may count unread messages older than the loaded page.
        info = self._roster_entry(conversation.id)
        unread = len(conversation.get_unread_ids())
        if info is not None and info.unread_count < unread:
            info.unread_count = unread
            self.notify(ChangeTopic.ROSTER)

    async def _load_settings(
        self, conversation: Conversation,
    ) -> ConversationSettings | GroupSettings | None:
        if conversation.is_group:
            self._group_states[conversation.id] = GroupState.SETTINGS_LOADING
            return await self.get_group_settings(conversation.id, conversation.type)
        return await self.get_conversation_settings(conversation.id)

    async def load_older_messages(self, conversation_id: int) -> Conversation | None:
        limit = self._conversations.next_page_limit(
            conversation_id, self._config.MESSAGES_REQUEST_LIMIT,
        )
        if limit is None:
            return None
        return await self.load_conversation(conversation_id, limit)

    async def set_selected_conversation_id(self, conversation_id: int | None) -> Conversation | None:
        self._selected_conversation_id = conversation_id
        self.notify(ChangeTopic.SELECTION)
        if conversation_id is None:
            return None

        conversation = self._conversations.get(conversation_id)
        if conversation is None or not conversation.loaded:
            conversation = await self.load_conversation(conversation_id)

        if conversation is not None and self._selected_conversation_id == conversation_id:
            await self.mark_conversation_as_read(conversation_id)
        return conversation

    async def mark_conversation_as_read(self, conversation_id: int | None) -> None:
        if conversation_id is None:
            return
        conversation = self._conversations.get(conversation_id)
        unread_ids: list[MessageId] = []
        if conversation is not None:
            unread_ids = conversation.get_unread_ids()
            conversation.mark_all_read()

        info = self._roster_entry(conversation_id)
        if info is not None:
            info.unread_count = 0
        self.notify(ChangeTopic.MESSAGES)

        if not unread_ids:
            return
        socket = self._require_socket()
        await self._requests.run(
            None,
            lambda: socket.request("updateMessagesReadStatus", ids=unread_ids),
            on_error=self._log_failure("Marking messages read"),
        )

    # ------------------------------------------------------------------
    # Search and contacts
    # ------------------------------------------------------------------

    async def search(self, text: str | None) -> list[Message]:
        self._contacts_filter = text or ""
        self.notify(ChangeTopic.SEARCH)
        if not text:
            self.clear_found_messages()
            return []
        return await self.search_messages(self._contacts_filter.lower())

    async def search_messages(self, query: str) -> list[Message]:
        socket = self._require_socket()

        def on_success(data: Any) -> list[Message]:
            payload = SearchResultPayload.model_validate(data or {})
            self._found_messages = [message_to_entity(m) for m in payload.messages]
            self.notify(ChangeTopic.SEARCH)
            return list(self._found_messages)

        found = await self._requests.run(
            None,
            lambda: socket.request("searchMessages", query=query),
            on_success=on_success,
            on_error=self._log_failure("Message search"),
        )
        return found if found is not None else list(self._found_messages)

    def clear_found_messages(self) -> None:
        self._found_messages = []
        self.notify(ChangeTopic.SEARCH)

    async def search_contacts_autocomplete(self, query: str) -> list[Contact]:
        info = self._require_messenger_info()

        def on_success(data: Any) -> list[Contact]:
            self._contacts_autocomplete = [
                contact_to_entity(ContactPayload.model_validate(c)) for c in data or []
            ]
            self.notify(ChangeTopic.SEARCH)
            return list(self._contacts_autocomplete)

        found = await self._requests.run(
            None,
            lambda: self._api.request(
                "getAvailableContacts", user_id=info.messenger_user.id, query=query,
            ),
            on_success=on_success,
            on_error=self._log_failure("Contact search"),
        )
        return found if found is not None else list(self._contacts_autocomplete)

    def clear_autocomplete_contacts_search(self) -> None:
        self._contacts_autocomplete = []
        self.notify(ChangeTopic.SEARCH)

    async def get_contact_data(self, contact_id: int) -> Contact:
        return await self._requests.run(
            None,
            lambda: self._api.request("getContactData", contact_id=contact_id),
            on_success=lambda data: contact_to_entity(ContactPayload.model_validate(data)),
        )

    # ------------------------------------------------------------------
    # Sending
    # ------------------------------------------------------------------

    def _new_temporary_message(
        self,
        conversation_id: int,
        body: str | None,
        *,
        reply_to_id: int | None = None,
        media: MediaFileInfo | None = None,
    ) -> Message:
        now = self._clock.now()
        token = uuid.uuid4().hex
        user = self._messenger_info.messenger_user if self._messenger_info else None
        return Message(
            id=f"{epoch_millis(now)}-{token[:8]}",
            conversation_id=conversation_id,
            body=body,
            author=Author(id=user.id, name=user.name) if user else None,
            date=now,
            client_token=token,
            reply_to_id=reply_to_id,
            media=media,
            is_sending_message=True,
            is_file_uploading=media is not None,
        )

    def _add_sending_message(self, message: Message) -> None:
        conversation = self._conversations.get(message.conversation_id)
        if conversation is not None:
            conversation.append_message(message)
        else:
            self._sending_messages.append(message)
        self.notify(ChangeTopic.MESSAGES)

    def _find_temporary(self, conversation_id: int, message_id: MessageId) -> Message | None:
        conversation = self._conversations.get(conversation_id)
        if conversation is not None:
            found = conversation.find_message(message_id)
            if found is not None:
                return found
        for m in self._sending_messages:
            if m.id == message_id:
                return m
        return None

    def _play_sent_cue(self, conversation_id: int) -> None:
        conversation = self._conversations.get(conversation_id)
        if conversation is not None and conversation.notification_enabled:
            self._sound.play_message_sent()

    async def send_message(
        self,
        conversation_id: int,
        body: str,
        channel_set_id: str = "",
    ) -> Message | None:
        """Show ``body`` right away as a temporary message, then send it.

        Returns the confirmed message when the send call echoes it back, the
        still-temporary message when confirmation is left to a push, or
        ``None`` when the call failed (the temporary entry is then marked
        ``failed`` and can be resent with ``retry_message``).
        """
        socket = self._require_socket()
        reply = self._selection.take_reply_target()
        reply_to_id = reply.id if reply is not None and not reply.is_temporary else None
        if reply is not None:
            self.notify(ChangeTopic.SELECTION)

        message = self._new_temporary_message(conversation_id, body, reply_to_id=reply_to_id)
        self._add_sending_message(message)
        self._play_sent_cue(conversation_id)

        outgoing = OutgoingMessageDTO(
            conversation_id=conversation_id,
            client_token=message.client_token,
            body=body,
            channel_set_id=channel_set_id,
            reply_to_id=reply_to_id,
        )
        return await self._deliver(message, lambda: socket.request("sendMessage", **outgoing.to_params()))

    async def retry_message(self, conversation_id: int, message_id: MessageId) -> Message | None:
        message = self._find_temporary(conversation_id, message_id)
        if message is None or not message.is_temporary:
            raise NotFoundError(f"No unsent message {message_id} in conversation {conversation_id}")
        if not message.failed:
            return message
        if message.media is not None:
            raise ValidationError("Media messages must be re-uploaded")

        socket = self._require_socket()
        message.failed = False
        message.is_sending_message = True
        self.notify(ChangeTopic.MESSAGES)

        outgoing = OutgoingMessageDTO(
            conversation_id=conversation_id,
            client_token=message.client_token,
            body=message.body,
            reply_to_id=message.reply_to_id,
        )
        return await self._deliver(message, lambda: socket.request("sendMessage", **outgoing.to_params()))

    async def _deliver(self, message: Message, call: Callable[[], Coroutine[Any, Any, Any]]) -> Message | None:
        def on_success(data: Any) -> Message:
            if isinstance(data, dict) and "id" in data:
                confirmed = message_to_entity(
                    MessagePayload.model_validate(data), message.conversation_id,
                )
                if confirmed.client_token is None:
                    confirmed.client_token = message.client_token
                self.apply_message(confirmed)
                return confirmed
            return message

        def on_error(exc: Exception) -> None:
            message.is_sending_message = False
            message.is_file_uploading = False
            message.failed = True
            self._error = exc
            self._uploads.remove(str(message.id))
            self.notify(ChangeTopic.MESSAGES)
            logger.warning(
                "Sending message %s to conversation %s failed: %s",
                message.id, message.conversation_id, exc,
            )

        return await self._requests.run(None, call, on_success=on_success, on_error=on_error)

    async def send_message_with_medias(
        self,
        body: str | None,
        media: MediaFileInfo,
        conversation_id: int | None = None,
    ) -> Message | None:
        conversation_id = conversation_id or self._selected_conversation_id
        if conversation_id is None:
            raise ValidationError("No conversation selected")
        info = self._require_messenger_info()

        self._play_sent_cue(conversation_id)
        message = self._new_temporary_message(conversation_id, body, media=media)
        progress_key = str(message.id)
        self._uploads.start(progress_key)
        self._add_sending_message(message)
        self.notify(ChangeTopic.UPLOADS)

        return await self._deliver(
            message,
            lambda: self._api.request(
                "sendMessageWithMedias",
                user_id=info.messenger_user.id,
                conversation_id=conversation_id,
                body=body,
                media=asdict(media),
                client_token=message.client_token,
                upload_progress_key=progress_key,
                on_progress=self.update_file_upload_progress,
            ),
        )

    def update_file_upload_progress(self, progress_id: str, value: float) -> None:
        if self._uploads.update(progress_id, value):
            self.notify(ChangeTopic.UPLOADS)

    def remove_file_uploading_progress(self, progress_id: str) -> None:
        if self._uploads.remove(progress_id):
            self.notify(ChangeTopic.UPLOADS)

    # ------------------------------------------------------------------
    # Forward / edit / delete
    # ------------------------------------------------------------------

    async def forward_message(self, forward_from_id: int) -> Any:
        socket = self._require_socket()
        if self._selected_conversation_id is None:
            raise ValidationError("No conversation selected")
        outgoing = OutgoingMessageDTO(
            conversation_id=self._selected_conversation_id,
            client_token=uuid.uuid4().hex,
            forward_from_id=forward_from_id,
        )
        return await self._requests.run(
            None, lambda: socket.request("sendMessage", **outgoing.to_params()),
        )

    async def forward_selected_messages(self) -> None:
        selected = list(self._selection.selected_messages)
        self.clear_selected_messages()
        for m in selected:
            await self.forward_message(m.id)

    async def delete_message(self, message_id: MessageId) -> Any:
        socket = self._require_socket()
        self._selection.forget_message(message_id)
        self.notify(ChangeTopic.SELECTION)
        return await self._requests.run(
            None,
            lambda: socket.request("deleteMessage", id=message_id),
            on_error=self._log_failure(f"Deleting message {message_id}"),
        )

    async def delete_selected_messages(self) -> None:
        for m in list(self._selection.selected_messages):
            if not m.deleted and m.deletable:
                await self.delete_message(m.id)

    async def delete_all_messages_in_selected_conversation(self) -> None:
        self.clear_selected_messages()
        conversation = self.selected_conversation
        if conversation is None:
            return
        for m in list(conversation.messages):
            if not m.deleted and m.deletable:
                await self.delete_message(m.id)

    async def edit_message(self, message_id: int, new_value: str) -> Any:
        socket = self._require_socket()
        return await self._requests.run(
            None, lambda: socket.request("editMessage", id=message_id, new_value=new_value),
        )

    # ------------------------------------------------------------------
    # Selection sets
    # ------------------------------------------------------------------

    def select_message(self, message: Message) -> None:
        if self._selection.select_message(message):
            self.notify(ChangeTopic.SELECTION)

    def deselect_message(self, message_id: MessageId) -> None:
        if self._selection.deselect_message(message_id):
            self.notify(ChangeTopic.SELECTION)

    def clear_selected_messages(self) -> None:
        self._selection.clear_selected_messages()
        self.notify(ChangeTopic.SELECTION)

    def is_message_selected(self, message_id: MessageId) -> bool:
        return self._selection.is_message_selected(message_id)

    def set_select_mode(self, enabled: bool) -> None:
        self._selection.select_mode = enabled
        self.notify(ChangeTopic.SELECTION)

    def set_forward_mode(self, enabled: bool) -> None:
        self._selection.forward_mode = enabled
        self.notify(ChangeTopic.SELECTION)

    def set_message_for_reply(self, message: Message) -> None:
        self._selection.set_reply_target(message)
        self.notify(ChangeTopic.SELECTION)

    def remove_message_for_reply(self) -> None:
        self._selection.message_for_reply = None
        self.notify(ChangeTopic.SELECTION)

    def set_message_for_edit(self, message: Message) -> None:
        self._selection.message_for_edit = message
        self.notify(ChangeTopic.SELECTION)

    def remove_message_for_edit(self) -> None:
        self._selection.message_for_edit = None
        self.notify(ChangeTopic.SELECTION)

    def add_contact_for_action(self, contact: Contact) -> None:
        if self._selection.add_contact_for_action(contact):
            self.notify(ChangeTopic.SELECTION)

    def remove_contact_for_action(self, contact_id: int | str) -> None:
        self._selection.remove_contact_for_action(contact_id)
        self.notify(ChangeTopic.SELECTION)

    def is_contact_staged_for_action(self, contact_id: int | str) -> bool:
        return self._selection.is_contact_staged_for_action(contact_id)

    def clear_contacts_for_action(self) -> None:
        self._selection.clear_contacts_for_action()
        self.notify(ChangeTopic.SELECTION)

    def stage_contact(self, contact: AddressBookContact) -> None:
        if self._selection.stage_contact(contact):
            self.notify(ChangeTopic.SELECTION)

    def unstage_contact(self, contact_id: int) -> None:
        self._selection.unstage_contact(contact_id)
        self.notify(ChangeTopic.SELECTION)

    def clear_staged_contacts(self) -> None:
        self._selection.clear_staged_contacts()
        self.notify(ChangeTopic.SELECTION)

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    async def get_conversation_settings(self, conversation_id: int) -> ConversationSettings | None:
        socket = self._require_socket()
        return await self._requests.run(
            self._config.cache_key("settings", "conversation", conversation_id),
            lambda: socket.request("getConversationSettings", id=conversation_id),
            on_success=lambda data: conversation_settings_to_entity(
                ConversationSettingsPayload.model_validate(data or {}),
            ),
            on_error=self._log_failure(f"Loading settings of conversation {conversation_id}"),
        )

    async def get_chat_group_settings(self, group_id: int) -> GroupSettings | None:
        return await self._fetch_group_settings("getChatGroupSettings", group_id)

    async def get_marketing_group_settings(self, group_id: int) -> GroupSettings | None:
        return await self._fetch_group_settings("getMarketingGroupSettings", group_id)

    async def _fetch_group_settings(self, method: str, group_id: int) -> GroupSettings | None:
        socket = self._require_socket()
        return await self._requests.run(
            self._config.cache_key("settings", method, group_id),
            lambda: socket.request(method, id=group_id),
            on_success=lambda data: group_settings_to_entity(
                GroupSettingsPayload.model_validate(data or {}),
            ),
            on_error=self._log_failure(f"Loading settings of group {group_id}"),
        )

    async def get_group_settings(
        self, group_id: int, group_type: ConversationType,
    ) -> GroupSettings | None:
        if group_type is ConversationType.CHAT_GROUP:
            return await self.get_chat_group_settings(group_id)
        if group_type is ConversationType.MARKETING_GROUP:
            return await self.get_marketing_group_settings(group_id)
        return None

    async def change_conversation_notification(self, state: bool) -> None:
        conversation = self.selected_conversation
        if conversation is None:
            raise NotFoundError("No conversation selected")
        socket = self._require_socket()

        conversation.set_notification(state)
        info = self._roster_entry(conversation.id)
        if info is not None:
            info.notification = state
        self.notify(ChangeTopic.CONVERSATIONS)

        await self._requests.run(
            None,
            lambda: socket.request(
                "changeConvNotificationProp", id=conversation.id, state=state,
            ),
            on_error=self._log_failure("Changing notification setting"),
        )

    async def save_user_settings(self, user_settings: UserSettings) -> None:
        info = self._require_messenger_info()

        def on_success(_data: Any) -> None:
            info.user_settings = user_settings
            self._sound.set_user_settings(user_settings)
            self.notify(ChangeTopic.ROSTER)

        await self._requests.run(
            None,
            lambda: self._api.request(
                "saveSettings", user_id=info.messenger_user.id, settings=asdict(user_settings),
            ),
            on_success=on_success,
            on_error=self._log_failure("Saving user settings"),
        )

    async def update_typing_status(self, conversation_id: int) -> bool:
        """Tell the peer we are typing; repeated calls inside the window are dropped."""
        socket = self._require_socket()
        if not self._typing_limiter.try_acquire(conversation_id):
            return False
        await self._requests.run(
            None,
            lambda: socket.request("updateTypingStatus", conversation_id=conversation_id),
            on_error=self._log_failure("Typing status update"),
        )
        return True

    # ------------------------------------------------------------------
    # Groups
    # ------------------------------------------------------------------

    async def create_new_group(self, group_name: str, allow_group_chat: bool) -> Any:
        info = self._require_messenger_info()
        if not self._selection.has_staged_recipients:
            raise ValidationError("No contacts staged for the new group")
        recipients = self._selection.group_recipients(self._config.CONTACT_RECIPIENT_PREFIX)

        def on_success(data: Any) -> Any:
            self._selection.clear_staging()
            self.notify(ChangeTopic.SELECTION)
            return data if data is not None else True

        created = await self._requests.run(
            None,
            lambda: self._api.request(
                "createNewGroup",
                user_id=info.messenger_user.id,
                name=group_name,
                recipients=recipients,
                allow_group_chat=allow_group_chat,
            ),
            on_success=on_success,
            on_error=self._log_failure(f"Creating group {group_name!r}"),
        )
        if created is not None:
            await self._reload_messenger_info()
        return created

    def _require_group(self, group_id: int) -> Conversation:
        conversation = self._conversations.get(group_id)
        if conversation is None:
            raise NotFoundError(f"Group {group_id} is not loaded")
        if not conversation.is_group:
            raise ValidationError(f"Conversation {group_id} is not a group")
        return conversation

    async def add_group_member(self, group_id: int, member_alias: str) -> GroupMember | None:
        conversation = self._require_group(group_id)
        socket = self._require_socket()

        def on_success(data: Any) -> GroupMember:
            member = member_to_entity(GroupMemberPayload.model_validate(data))
            conversation.add_member(member)
            self.notify(ChangeTopic.CONVERSATIONS)
            return member

        member = await self._requests.run(
            None,
            lambda: socket.request("addGroupMember", group_id=group_id, alias=member_alias),
            on_success=on_success,
            on_error=self._log_failure(f"Adding {member_alias} to group {group_id}"),
        )
        if member is not None:
            # The membership change arrives as a message of its own.
            await self.mark_conversation_as_read(group_id)
        return member

    async def remove_group_member(self, group_id: int, member_id: int | str) -> bool:
        conversation = self._require_group(group_id)
        socket = self._require_socket()

        def on_success(_data: Any) -> bool:
            conversation.remove_member(member_id)
            self.notify(ChangeTopic.CONVERSATIONS)
            return True

        removed = await self._requests.run(
            None,
            lambda: socket.request("removeGroupMember", group_id=group_id, member_id=member_id),
            on_success=on_success,
            on_error=self._log_failure(f"Removing {member_id} from group {group_id}"),
        )
        if removed:
            await self.mark_conversation_as_read(group_id)
        return bool(removed)

    async def add_all_members_to_group(self, group_id: int) -> list[GroupMember]:
        added: list[GroupMember] = []
        for alias in self._selection.member_aliases(self._config.CONTACT_RECIPIENT_PREFIX):
            member = await self.add_group_member(group_id, alias)
            if member is not None:
                added.append(member)
        return added

    async def delete_group(self, group_id: int) -> bool:
        socket = self._require_socket()
        deleted = await self._requests.run(
            None,
            lambda: socket.request("deleteGroup", id=group_id),
            on_success=lambda _data: True,
            on_error=self._log_failure(f"Deleting group {group_id}"),
        )
        if not deleted:
            return False

        next_id: int | None = None
        info = self._messenger_info
        if info is not None:
            idx = info.index_of_group(group_id)
            if idx != -1 and len(info.groups) > 1:
                next_id = info.groups[idx - 1 if idx > 0 else idx + 1].id
            info.remove_group(group_id)
        self._group_states.pop(group_id, None)
        self.notify(ChangeTopic.ROSTER)
        logger.info("Group %s deleted", group_id)

        if self._selected_conversation_id == group_id:
            await self.set_selected_conversation_id(next_id)
        return True

    async def send_invite_message_to_contacts(self, message: str) -> bool:
        info = self._require_messenger_info()
        recipients = self._selection.invite_recipients(self._config.CONTACT_RECIPIENT_PREFIX)

        def on_success(_data: Any) -> bool:
            self._contacts_autocomplete = []
            self._selection.clear_staging()
            self.notify(ChangeTopic.SELECTION)
            return True

        sent = await self._requests.run(
            None,
            lambda: self._api.request(
                "sendMessage",
                user_id=info.messenger_user.id,
                recipients=recipients,
                body=message,
            ),
            on_success=on_success,
            on_error=self._log_failure("Sending invites"),
        )
        if sent:
            await self._reload_messenger_info()
        return bool(sent)

    async def send_message_to_marketing_group(self, group_recipient_id: str, message: str) -> Any:
        info = self._require_messenger_info()
        return await self._requests.run(
            None,
            lambda: self._api.request(
                "sendMessage",
                user_id=info.messenger_user.id,
                recipients=group_recipient_id,
                body=message,
            ),
            on_error=self._log_failure("Sending to marketing group"),
        )

    # ------------------------------------------------------------------
    # Applying server state (command echoes and pushes)
    # ------------------------------------------------------------------

    def apply_message(self, message: Message) -> Message | None:
        """Insert or reconcile a server-confirmed message; returns what it replaced."""
        replaced: Message | None = None
        conversation = self._conversations.get(message.conversation_id)
        if conversation is not None:
            replaced = conversation.update_message(message)

        for idx, pending in enumerate(self._sending_messages):
            if pending.matches(message):
                del self._sending_messages[idx]
                replaced = replaced or pending
                break

        if replaced is not None and replaced.is_temporary:
            if self._uploads.remove(str(replaced.id)):
                self.notify(ChangeTopic.UPLOADS)
        self.notify(ChangeTopic.MESSAGES)
        return replaced

    def apply_pushed_message(self, message: Message) -> None:
        conversation_id = message.conversation_id
        info = self._roster_entry(conversation_id)
        if conversation_id not in self._conversations:
            self._conversations.ensure(
                Conversation(
                    id=conversation_id,
                    name=info.name if info else "",
                    type=info.type if info else ConversationType.CONVERSATION,
                    loaded=False,
                    typing_quiet_seconds=self._config.TYPING_QUIET_SECONDS,
                    on_change=self._on_conversation_changed,
                )
            )
            self.notify(ChangeTopic.CONVERSATIONS)

        replaced = self.apply_message(message)

        if info is None:
            self._spawn(self._reload_messenger_info())
            return
        if message.unread and replaced is None:
            info.unread_count += 1
            logger.debug("Unread count of %s is now %d", conversation_id, info.unread_count)
            self.notify(ChangeTopic.ROSTER)

    def apply_status(self, status: ConversationStatus, typing: bool = False) -> None:
        for conversation in self._conversations:
            if conversation.status is None or conversation.status.user_id != status.user_id:
                continue
            conversation.update_status(status, typing)

        if self._messenger_info is not None:
            for info in self._messenger_info.conversations:
                if info.status.user_id == status.user_id:
                    info.update_status(status)
        self.notify(ChangeTopic.STATUS)

    def apply_read_receipts(self, message_ids: list[int], conversation_id: int | None = None) -> None:
        if conversation_id is not None:
            targets = [c for c in [self._conversations.get(conversation_id)] if c is not None]
        else:
            targets = list(self._conversations)
        changed = sum(c.set_read_status(list(message_ids)) for c in targets)
        if changed:
            self.notify(ChangeTopic.MESSAGES)

    def apply_member_added(self, group_id: int, member: GroupMember) -> None:
        conversation = self._conversations.get(group_id)
        if conversation is None or not conversation.is_group:
            return
        conversation.add_member(member)
        self.notify(ChangeTopic.CONVERSATIONS)

    def apply_member_removed(self, group_id: int, member_id: int | str) -> None:
        conversation = self._conversations.get(group_id)
        if conversation is None or not conversation.is_group:
            return
        if conversation.remove_member(member_id):
            self.notify(ChangeTopic.CONVERSATIONS)

    # ------------------------------------------------------------------

    def _log_failure(self, action: str) -> Callable[[Exception], None]:
        def on_error(exc: Exception) -> None:
            logger.error("%s failed: %s", action, exc, exc_info=exc)
            self._error = exc

        return on_error

    def _on_pending_change(self, pending: int) -> None:
        if pending in (0, 1):
            self.notify(ChangeTopic.LOADING)

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> None:
        task = asyncio.ensure_future(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
