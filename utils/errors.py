"""Error types shared by the chat routing core and its collaborators."""

from __future__ import annotations


class ChatError(Exception):
    """Base class for errors raised while handling chat events."""


class ValidationError(ChatError):
    """An inbound event or record is missing fields or has malformed values."""


class UnknownSessionError(ChatError, KeyError):
    """The connection has no active session."""

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else "Unknown session"


class StoreError(ChatError):
    """The message or room store failed to read or write."""


class StaleSessionError(ChatError):
    """The session changed or vanished while a handler was suspended."""
