"""Exceptions raised by the entry mirror."""


class MirrorError(Exception):
    """Base exception for entry mirror errors."""

    pass


class NotCachedError(MirrorError, KeyError):
    """Raised when cache control is requested for an entry that is not cached.

    This signals a caller bug: the caller kept a reference to an entry that was
    never cached or has been evicted since.
    """

    def __init__(self, uri: str):
        self.uri = uri
        super().__init__(f"No cache control of existing entry: {uri}")

    def __str__(self) -> str:
        # KeyError would otherwise quote the message
        return self.args[0]


class FetchError(MirrorError):
    """Raised when an entry or a list page cannot be fetched from the repository."""

    pass


class AuthError(MirrorError):
    """Raised when an authentication exchange or identity lookup fails."""

    pass


class ConfigError(MirrorError, ValueError):
    """Raised when configuration values are invalid."""

    pass
