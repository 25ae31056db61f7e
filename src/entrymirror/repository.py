"""Connection to a remote entry repository."""

import logging
from dataclasses import replace
from typing import Any, Dict, List, Optional

from entrymirror.auth import AuthSession, Identity
from entrymirror.cache.config import MirrorConfig
from entrymirror.cache.manager import EntryCache
from entrymirror.entry import Entry
from entrymirror.exceptions import ConfigError, FetchError, MirrorError
from entrymirror.lists.sort import SortSpec
from entrymirror.lists.window import UNSET, ListWindow
from entrymirror.transport import HttpTransport, Transport

logger = logging.getLogger(__name__)


class Repository:
    """A connection to a repository and the local mirror of its entries.

    The repository owns the entry cache. List windows and the auth session
    share it, reading and invalidating entries but never replacing it.

    Examples:
        >>> async with Repository('https://example.com/store/') as repo:
        ...     await repo.auth.login('alice', 'secret')
        ...     entry = await repo.get_entry(repo.get_entry_uri('1', '42'))
        ...     members = await repo.get_list_entries(repo.get_entry_uri('1', '_top'))
    """

    def __init__(
        self,
        base_uri: Optional[str] = None,
        transport: Optional[Transport] = None,
        config: Optional[MirrorConfig] = None,
    ):
        """Initialize the connection.

        Args:
            base_uri: Base URI of the repository (overrides config.base_uri)
            transport: Repository access, an HttpTransport is created if None
            config: Connection configuration (defaults if None)

        Raises:
            ConfigError: If no base URI is given either way
        """
        self.config = config or MirrorConfig()
        if base_uri is not None:
            self.config = replace(self.config, base_uri=base_uri)
        if not self.config.base_uri:
            raise ConfigError("A repository base URI is required")
        self.base_uri = self.config.base_uri

        self._owns_transport = transport is None
        self.transport = transport or HttpTransport(
            self.base_uri, timeout=self.config.request_timeout
        )
        self.cache = EntryCache()
        self.auth = AuthSession(
            self.transport,
            self.cache,
            self._load_principal_entry,
            max_age=self.config.auth_max_age,
        )
        self._lists: Dict[str, ListWindow] = {}

    async def __aenter__(self) -> "Repository":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the transport if this repository created it."""
        if self._owns_transport:
            await self.transport.aclose()

    def get_entry_uri(self, context_id: str, entry_id: str) -> str:
        return f"{self.base_uri}{context_id}/entry/{entry_id}"

    def get_resource_uri(self, context_id: str, entry_id: str) -> str:
        return f"{self.base_uri}{context_id}/resource/{entry_id}"

    async def get_entry(self, uri: str, force: bool = False) -> Entry:
        """Get an entry, from cache when it is there and fresh.

        Args:
            uri: Entry identity URI
            force: Fetch from the repository even if a fresh copy is cached

        Returns:
            The entry

        Raises:
            FetchError: If the entry has to be fetched and fetching fails
        """
        entry = self.cache.get(uri)
        if entry is not None and not force and not self.cache.is_stale(uri):
            self.cache.record_hit()
            return entry

        self.cache.record_miss()
        try:
            rep = await self.transport.fetch_entry(uri)
        except MirrorError:
            logger.warning(f"Failed fetching entry {uri}")
            raise
        except Exception as e:
            logger.error(f"Failed fetching entry {uri}: {e}")
            raise FetchError(f"Failed fetching entry {uri}: {e}") from e

        try:
            entry = Entry.from_representation(rep)
        except ValueError as e:
            raise FetchError(f"Malformed entry {uri}: {e}") from e
        self.cache.put(entry)
        return entry

    def get_entries_by_resource(self, resource_uri: str) -> List[Entry]:
        """Get cached entries for a resource without asking the repository."""
        return self.cache.get_by_resource(resource_uri)

    def get_list(
        self,
        list_uri: str,
        page_size: Optional[int] = None,
        sort: Optional[SortSpec] = UNSET,
    ) -> ListWindow:
        """Get the window over a list, one per list URI.

        Windows are kept for the life of the connection, or until ``clear``.

        Args:
            list_uri: Entry URI of the list
            page_size: Page size, keeps the current one (or the configured
                default for a new window) if None
            sort: Sort order, keeps the current one (or the configured default
                for a new window) if not given

        Returns:
            ListWindow for the list
        """
        window = self._lists.get(list_uri)
        if window is None:
            window = ListWindow(
                list_uri,
                self.cache,
                self.transport.fetch_list_page,
                page_size=page_size if page_size is not None else self.config.default_limit,
                sort=self.config.default_sort if sort is UNSET else sort,
            )
            self._lists[list_uri] = window
            return window

        if sort is not UNSET and sort != window.sort:
            window.configure(page_size=page_size, sort=sort)
        elif page_size is not None:
            window.configure(page_size=page_size)
        return window

    async def get_list_entries(
        self,
        list_uri: str,
        page: int = 0,
        page_size: Optional[int] = None,
        sort: Optional[SortSpec] = UNSET,
    ) -> List[Entry]:
        """Get one page of a list's members, see ``get_list``."""
        return await self.get_list(list_uri, page_size=page_size, sort=sort).get_page(page)

    def clear(self) -> None:
        """Drop every cached entry and every list window."""
        self.cache.clear()
        self._lists.clear()
        logger.debug("Cleared entry cache and list windows")

    async def _load_principal_entry(self, identity: Identity) -> Entry:
        return await self.get_entry(self.get_entry_uri("_principals", identity.id))

    def __repr__(self) -> str:
        return f"Repository({self.base_uri!r}, cached={len(self.cache)})"
