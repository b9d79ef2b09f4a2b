from __future__ import annotations


class BananaGameError(Exception):
    """Base class for errors raised by the game core and its collaborators."""


class InvalidStateError(BananaGameError):
    """A command is not legal in the session's current phase."""


class ProviderError(BananaGameError):
    """The external question source is unavailable or returned garbage."""


class StorageError(BananaGameError):
    """Persistence is unavailable."""
