from __future__ import annotations

MISSING_CONFIG_MESSAGE = "Missing Supabase env vars. See README setup steps."
MISSING_FIELDS_MESSAGE = "Please provide both a URL and a title."


class BookmarkAppError(Exception):
    """Base class for errors surfaced to the user as a banner message."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ConfigurationError(BookmarkAppError):
    def __init__(self, message: str = MISSING_CONFIG_MESSAGE) -> None:
        super().__init__(message)


class RemoteError(BookmarkAppError):
    """An auth, table or realtime call failed; `message` is the service's text."""


class BookmarkValidationError(BookmarkAppError):
    def __init__(self, message: str = MISSING_FIELDS_MESSAGE) -> None:
        super().__init__(message)


def remote_message(exc: BaseException) -> str:
    message = getattr(exc, "message", None)
    if isinstance(message, str) and message.strip():
        return message
    text = str(exc).strip()
    return text or exc.__class__.__name__
