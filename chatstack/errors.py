"""Exception types shared across the engine."""

from __future__ import annotations


class ChatStackError(RuntimeError):
    """Base class for engine errors."""


class ConfigError(ChatStackError):
    """Raised when the engine is constructed with missing collaborators."""


class TransportError(ChatStackError):
    """Raised by a gateway when a request to the chat platform fails."""


class StorageError(ChatStackError):
    """Raised by user or session stores when reading or writing fails."""


class MailboxClosed(ChatStackError):
    """Raised when work is submitted to a session that has been shut down."""
