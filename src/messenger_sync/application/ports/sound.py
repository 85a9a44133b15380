from __future__ import annotations

from typing import Protocol

from messenger_sync.domain.entities.settings import UserSettings


class SoundPlayer(Protocol):
    def play_message_sent(self) -> None: ...
    def set_user_settings(self, settings: UserSettings) -> None: ...


class NullSoundPlayer:
    def play_message_sent(self) -> None:
        pass

    def set_user_settings(self, settings: UserSettings) -> None:
        pass
