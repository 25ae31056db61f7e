"""entrymirror: Local, partially populated mirror of a remote entry repository."""

__version__ = "0.1.0"

from entrymirror.auth import GUEST, AuthSession, AuthState, Identity
from entrymirror.cache import EntryCache, MirrorConfig
from entrymirror.entry import Entry
from entrymirror.exceptions import (
    AuthError,
    ConfigError,
    FetchError,
    MirrorError,
    NotCachedError,
)
from entrymirror.lists import ListWindow, SortSpec
from entrymirror.repository import Repository
from entrymirror.transport import HttpTransport, Transport

__all__ = [
    "Repository",
    "EntryCache",
    "MirrorConfig",
    "ListWindow",
    "SortSpec",
    "AuthSession",
    "AuthState",
    "Identity",
    "GUEST",
    "Entry",
    "HttpTransport",
    "Transport",
    "MirrorError",
    "NotCachedError",
    "FetchError",
    "AuthError",
    "ConfigError",
    "__version__",
]
