from __future__ import annotations

from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    MESSAGES_REQUEST_LIMIT: int = 30

    TYPING_THROTTLE_SECONDS: float = 5.0
    TYPING_QUIET_SECONDS: float = 6.0

    CACHE_KEY_PREFIX: str = "communication"
    CONTACT_RECIPIENT_PREFIX: str = "contact-"

    UPLOAD_PROGRESS_MAX: int = 100

    def cache_key(self, *parts: object) -> str:
        return ":".join([self.CACHE_KEY_PREFIX, *(str(p) for p in parts)])

    model_config = ConfigDict(
        env_file=".env",
        extra="ignore",
    )


settings = Settings()
