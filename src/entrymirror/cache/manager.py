"""Entry cache for the local mirror of a repository."""

import logging
from typing import Any, Dict, Iterable, List, Optional

from entrymirror.cache.control import CacheControl
from entrymirror.entry import CacheableEntry
from entrymirror.exceptions import NotCachedError
from entrymirror.listeners import Listener, ListenerRegistry

logger = logging.getLogger(__name__)

# Notification topics
REFRESHED = "refreshed"
NEED_REFRESH = "needRefresh"
ALL_NEED_REFRESH = "allNeedRefresh"


class EntryCache:
    """Caches loaded entries and tracks which of them need a refresh.

    Entries are keyed by their identity URI. A secondary index maps resource
    URIs to the entries exposing that resource, since several entries (for
    instance links) may share a resource. Listeners registered with
    ``subscribe`` are told, synchronously and in registration order, when
    entries are refreshed or marked stale.

    Topics:
        refreshed: An already cached entry was replaced, payload is the entry
        needRefresh: An entry was marked stale, payload is the entry
        allNeedRefresh: Every entry was marked stale, payload is None
    """

    def __init__(self) -> None:
        self._entries: Dict[str, CacheableEntry] = {}
        self._controls: Dict[str, CacheControl] = {}
        self._by_resource: Dict[str, List[str]] = {}
        self._listeners = ListenerRegistry()
        self._hits = 0
        self._misses = 0

    def put(self, entry: CacheableEntry, silent: bool = False) -> None:
        """Add or replace an entry in the cache.

        This is the only operation that clears staleness.

        Args:
            entry: Entry to cache
            silent: If True, listeners are not told about a refresh
        """
        uri = entry.uri
        previous = self._entries.get(uri)
        if previous is not None and previous.resource_uri != entry.resource_uri:
            self._unindex(uri, previous.resource_uri)

        self._entries[uri] = entry
        bucket = self._by_resource.setdefault(entry.resource_uri, [])
        if uri not in bucket:
            bucket.append(uri)
        self._controls[uri] = CacheControl()

        if previous is not None and not silent:
            self._listeners.notify(REFRESHED, entry)

    def put_all(self, entries: Iterable[CacheableEntry], silent: bool = False) -> None:
        """Cache several entries, see ``put``."""
        for entry in entries:
            self.put(entry, silent=silent)

    def remove(self, uri: str) -> None:
        """Remove a single entry from the cache without notifying listeners.

        Args:
            uri: Identity URI of the entry
        """
        entry = self._entries.pop(uri, None)
        self._controls.pop(uri, None)
        if entry is not None:
            self._unindex(uri, entry.resource_uri)

    def _unindex(self, uri: str, resource_uri: str) -> None:
        bucket = self._by_resource.get(resource_uri)
        if bucket is None:
            return
        if uri in bucket:
            bucket.remove(uri)
        if not bucket:
            del self._by_resource[resource_uri]

    def get(self, uri: str) -> Optional[CacheableEntry]:
        """Get a cached entry by identity URI, or None."""
        return self._entries.get(uri)

    def get_by_resource(self, resource_uri: str) -> List[CacheableEntry]:
        """Get all cached entries exposing a resource.

        Args:
            resource_uri: URI of the resource

        Returns:
            New list of entries in caching order, empty if none are cached
        """
        return [self._entries[uri] for uri in self._by_resource.get(resource_uri, ())]

    def _control(self, uri: str) -> CacheControl:
        ctrl = self._controls.get(uri)
        if ctrl is None:
            raise NotCachedError(uri)
        return ctrl

    def mark_stale(self, uri: str, silent: bool = False) -> None:
        """Mark an entry as in need of a refresh from the repository.

        Args:
            uri: Identity URI of a cached entry
            silent: If True, listeners are not notified

        Raises:
            NotCachedError: If the entry is not cached
        """
        self._control(uri).stale = True
        if not silent:
            self._listeners.notify(NEED_REFRESH, self._entries[uri])

    def is_stale(self, uri: str) -> bool:
        """Tell whether a cached entry needs a refresh.

        Raises:
            NotCachedError: If the entry is not cached
        """
        return self._control(uri).stale

    def invalidate_all(self) -> None:
        """Mark every entry stale and send a single ``allNeedRefresh``."""
        for uri in self._entries:
            self.mark_stale(uri, silent=True)
        logger.debug(f"Marked {len(self._entries)} cached entries as stale")
        self._listeners.notify(ALL_NEED_REFRESH, None)

    def clear(self) -> None:
        """Drop all cached entries without notifying listeners.

        References to previously cached entries must be discarded by callers,
        they will no longer be kept in sync.
        """
        self._entries = {}
        self._controls = {}
        self._by_resource = {}

    def subscribe(self, listener: Listener) -> Listener:
        """Register a cache listener, called as ``listener(topic, entry)``."""
        return self._listeners.add(listener)

    def unsubscribe(self, listener: Listener) -> None:
        """Remove a cache listener. Unknown listeners are ignored."""
        self._listeners.remove(listener)

    def record_hit(self) -> None:
        """Record a read served from the cache."""
        self._hits += 1

    def record_miss(self) -> None:
        """Record a read that had to go to the repository."""
        self._misses += 1

    def get_status(self, uri: str) -> Optional[Dict[str, Any]]:
        """Get cache status for an entry.

        Args:
            uri: Identity URI of the entry

        Returns:
            Status dict, or None if not cached
        """
        entry = self._entries.get(uri)
        if entry is None:
            return None
        status = {"cached": True, "uri": uri, "resource_uri": entry.resource_uri}
        status.update(self._controls[uri].to_dict())
        return status

    def get_stats(self) -> Dict[str, Any]:
        """Get cache statistics.

        Returns:
            Statistics dict
        """
        total_requests = self._hits + self._misses
        return {
            "total_entries": len(self._entries),
            "stale_entries": sum(1 for ctrl in self._controls.values() if ctrl.stale),
            "resources": len(self._by_resource),
            "cache_hits": self._hits,
            "cache_misses": self._misses,
            "cache_hit_rate": self._hits / total_requests if total_requests > 0 else 0.0,
        }

    def __contains__(self, uri: object) -> bool:
        return uri in self._entries

    def __len__(self) -> int:
        return len(self._entries)
