"""Local entry cache with staleness tracking.

Key components:
- EntryCache: Entries by identity URI, resource index, change notification
- CacheControl: Per-entry freshness record
- MirrorConfig: Configuration management
"""

from entrymirror.cache.config import MirrorConfig
from entrymirror.cache.control import CacheControl
from entrymirror.cache.manager import (
    ALL_NEED_REFRESH,
    NEED_REFRESH,
    REFRESHED,
    EntryCache,
)

__all__ = [
    "EntryCache",
    "CacheControl",
    "MirrorConfig",
    "REFRESHED",
    "NEED_REFRESH",
    "ALL_NEED_REFRESH",
]
