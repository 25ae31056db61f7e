"""Paginated, sorted windows over repository lists."""

import inspect
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

from entrymirror.cache.manager import EntryCache
from entrymirror.entry import Entry, EntryRepresentation, ListPage
from entrymirror.exceptions import FetchError, MirrorError
from entrymirror.lists.sort import SortSpec

logger = logging.getLogger(__name__)

FetchPage = Callable[..., Awaitable[ListPage]]

# Distinguishes "not given" from an explicit None sort order
UNSET: Any = object()


class ListWindow:
    """Lazily populated view of the ordered members of a repository list.

    Member positions are known only for the windows fetched so far. Slots map
    an absolute offset to the identity URI of the entry at that position; a
    missing key means the position is unknown. The entries themselves live in
    the shared ``EntryCache`` and a page is served locally only if every one
    of its slots is known and cached (and fresh, unless freshness is waived).
    Otherwise exactly that page is fetched again.

    Examples:
        >>> window = ListWindow(list_uri, cache, transport.fetch_list_page)
        >>> first = await window.get_page(0)
    """

    def __init__(
        self,
        list_uri: str,
        cache: EntryCache,
        fetch_page: FetchPage,
        page_size: int = 50,
        sort: Optional[SortSpec] = None,
        entry_factory: Callable[[EntryRepresentation], Entry] = Entry.from_representation,
    ):
        """Initialize a list window.

        Args:
            list_uri: URI of the list
            cache: Entry cache shared with the repository connection
            fetch_page: Coroutine function called as
                ``fetch_page(list_uri, limit=, offset=, sort=)`` returning a ListPage
            page_size: Number of entries per page
            sort: Server-side sort order, None for the list's natural order
            entry_factory: Builds entries from fetched representations
        """
        if page_size <= 0:
            raise ValueError(f"page_size must be positive, got {page_size}")
        self.list_uri = list_uri
        self._cache = cache
        self._fetch_page = fetch_page
        self._entry_factory = entry_factory
        self._page_size = page_size
        self._sort = sort
        self._slots: Dict[int, str] = {}
        self._size: Optional[int] = None
        # Bumped whenever slot contents stop being trustworthy
        self._generation = 0

    @property
    def page_size(self) -> int:
        return self._page_size

    @property
    def sort(self) -> Optional[SortSpec]:
        return self._sort

    @property
    def size(self) -> int:
        """Number of entries in the list as last reported, -1 if unknown."""
        return self._size if self._size is not None else -1

    def configure(
        self, page_size: Optional[int] = None, sort: Optional[SortSpec] = UNSET
    ) -> "ListWindow":
        """Change pagination or sort order.

        A new page size only changes later window math. Setting the sort order
        (including setting it to None) forgets all known positions, but the
        last known size is kept as a hint until the next fetch.

        Args:
            page_size: New number of entries per page
            sort: New sort order

        Returns:
            The window itself, for chaining
        """
        if page_size is not None:
            if page_size <= 0:
                raise ValueError(f"page_size must be positive, got {page_size}")
            self._page_size = page_size
        if sort is not UNSET:
            self._sort = sort
            self._slots = {}
            self._generation += 1
        return self

    def need_refresh(self) -> None:
        """Forget all known positions and the size."""
        self._slots = {}
        self._size = None
        self._generation += 1

    async def get_page(self, page: int = 0, care_about_fresh: bool = True) -> List[Entry]:
        """Get the entries of one page.

        Args:
            page: Page index, first page is 0
            care_about_fresh: If False, cached entries marked stale are accepted

        Returns:
            Entries of the page in list order, empty past the end of the list

        Raises:
            FetchError: If the page had to be fetched and fetching failed
        """
        if page < 0:
            raise ValueError(f"page must be non-negative, got {page}")
        offset = page * self._page_size
        entries = self._reconstruct(offset, care_about_fresh)
        if entries is not None:
            logger.debug(f"Serving {self.list_uri} page {page} from cache")
            return entries
        return await self._load(offset)

    def _reconstruct(self, offset: int, care_about_fresh: bool) -> Optional[List[Entry]]:
        """Build a page from cache, or None if any position is unusable."""
        if self._size is None:
            return None
        results = []
        for i in range(offset, min(offset + self._page_size, self._size)):
            uri = self._slots.get(i)
            if uri is None:
                return None
            entry = self._cache.get(uri)
            if entry is None:
                return None
            if care_about_fresh and self._cache.is_stale(uri):
                return None
            results.append(entry)
        return results

    async def _load(self, offset: int) -> List[Entry]:
        """Fetch the window starting at offset and record it."""
        generation = self._generation
        limit = self._page_size
        try:
            response = await self._fetch_page(
                self.list_uri, limit=limit, offset=offset, sort=self._sort
            )
        except MirrorError:
            logger.warning(f"Failed loading {self.list_uri} at offset {offset}")
            raise
        except Exception as e:
            logger.error(f"Failed loading {self.list_uri} at offset {offset}: {e}")
            raise FetchError(f"Failed loading list {self.list_uri}: {e}") from e

        try:
            entries = [self._entry_factory(rep) for rep in response["items"]]
            total_size = int(response["total_size"])
        except (KeyError, TypeError, ValueError) as e:
            raise FetchError(f"Malformed list page for {self.list_uri}: {e}") from e

        if generation == self._generation:
            for i, entry in enumerate(entries):
                self._slots[offset + i] = entry.uri
            self._size = total_size
            # Drop positions beyond the end if the list shrank
            for i in [i for i in self._slots if i >= total_size]:
                del self._slots[i]
        else:
            logger.debug(f"Sort order of {self.list_uri} changed while loading, not recording")

        self._cache.put_all(entries)
        return entries

    async def for_each(self, func: Callable[[Entry, int], Any]) -> int:
        """Call func on each member of the list in list order.

        Iteration stops early if func returns False. func may be a plain
        function or a coroutine function.

        Args:
            func: Called as ``func(entry, index)``

        Returns:
            Number of entries func was called with
        """
        page = 0
        index = 0
        while True:
            entries = await self.get_page(page)
            for entry in entries:
                result = func(entry, index)
                if inspect.isawaitable(result):
                    result = await result
                index += 1
                if result is False:
                    return index
            if len(entries) < self._page_size:
                return index
            page += 1

    def __repr__(self) -> str:
        return f"ListWindow({self.list_uri!r}, size={self.size}, page_size={self._page_size})"
