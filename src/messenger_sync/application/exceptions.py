from __future__ import annotations


class AppError(Exception):
    """Base application error."""

    def __init__(self, detail: str = "") -> None:
        self.detail = detail
        super().__init__(detail)


class NotFoundError(AppError):
    """A conversation, group or unsent message the call refers to is not held locally."""


class ValidationError(AppError):
    """The call cannot be made with the current local state or arguments."""


class NotConnectedError(AppError):
    """The messenger channel or roster is required but not available yet."""
