"""Access to the remote repository.

The mirror only needs four operations from the repository: fetch an entry,
fetch a window of a list, perform an authentication exchange and ask who the
current session belongs to. ``Transport`` names them; ``HttpTransport``
implements them over the repository's REST interface using httpx.
"""

import logging
from typing import Any, Dict, Optional

import httpx
from typing_extensions import Protocol

from entrymirror.entry import EntryRepresentation, IdentityRepresentation, ListPage
from entrymirror.exceptions import AuthError, FetchError
from entrymirror.lists.sort import SortSpec

logger = logging.getLogger(__name__)


class Transport(Protocol):
    """Operations the mirror consumes from the repository."""

    async def fetch_entry(self, uri: str) -> EntryRepresentation: ...

    async def fetch_list_page(
        self, list_uri: str, limit: int, offset: int, sort: Optional[SortSpec]
    ) -> ListPage: ...

    async def perform_auth_exchange(
        self, credentials: Optional[Dict[str, Any]]
    ) -> IdentityRepresentation: ...

    async def fetch_identity(self) -> IdentityRepresentation: ...


class HttpTransport:
    """Talks to a repository over HTTP.

    Authentication state is kept in the client's cookie jar. A successful
    login stores the repository's ``auth_token`` cookie, which is sent with
    every later request until logout drops it.

    Examples:
        >>> transport = HttpTransport('https://example.com/store/')
        >>> rep = await transport.fetch_entry('https://example.com/store/1/entry/2')
    """

    def __init__(
        self,
        base_uri: str,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """Initialize the transport.

        Args:
            base_uri: Base URI of the repository, ending with '/'
            timeout: Request timeout in seconds
            client: Preconfigured client, e.g. with a mock transport in tests
        """
        if not base_uri.endswith("/"):
            base_uri = base_uri + "/"
        self.base_uri = base_uri
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=timeout,
            headers={"Accept": "application/json"},
        )

    async def aclose(self) -> None:
        """Close the underlying client if this transport created it."""
        if self._owns_client:
            await self._client.aclose()

    async def _get_json(self, url: str, params: Optional[Dict[str, Any]] = None) -> Any:
        response = await self._client.get(url, params=params)
        response.raise_for_status()
        return response.json()

    def _entry_from_json(self, uri: str, data: Dict[str, Any]) -> EntryRepresentation:
        """Convert an entry payload into an EntryRepresentation."""
        context_id = data.get("contextId")
        entry_id = data.get("entryId")
        if not uri and context_id and entry_id:
            uri = f"{self.base_uri}{context_id}/entry/{entry_id}"
        rep: EntryRepresentation = {"uri": uri}
        resource_uri = data.get("resourceURI") or (
            f"{self.base_uri}{context_id}/resource/{entry_id}"
            if context_id and entry_id
            else None
        )
        if resource_uri:
            rep["resource_uri"] = resource_uri
        if entry_id is not None:
            rep["entry_id"] = entry_id
        if context_id is not None:
            rep["context_id"] = context_id
        for source, target in (("info", "info"), ("metadata", "metadata"), ("rights", "rights")):
            if source in data:
                rep[target] = data[source]
        return rep

    async def fetch_entry(self, uri: str) -> EntryRepresentation:
        """Fetch one entry.

        Raises:
            FetchError: On HTTP or decoding failure
        """
        try:
            data = await self._get_json(uri, params={"includeAll": ""})
        except (httpx.HTTPError, ValueError) as e:
            raise FetchError(f"Failed fetching entry {uri}: {e}") from e
        return self._entry_from_json(uri, data)

    async def fetch_list_page(
        self,
        list_uri: str,
        limit: int,
        offset: int,
        sort: Optional[SortSpec] = None,
    ) -> ListPage:
        """Fetch one window of a list.

        Args:
            list_uri: Entry URI of the list
            limit: Page size
            offset: Position of the first member to return
            sort: Sort order, None for the natural list order

        Returns:
            The members of the window and the total size of the list

        Raises:
            FetchError: On HTTP or decoding failure
        """
        params: Dict[str, Any] = {"includeAll": "", "limit": limit}
        if offset:
            params["offset"] = offset
        if sort is not None:
            params.update(sort.to_params())
        try:
            data = await self._get_json(list_uri, params=params)
            resource = data.get("resource") or {}
            children = resource.get("children") or []
            items = [self._entry_from_json(child.get("uri", ""), child) for child in children]
            total_size = resource.get("size", data.get("size"))
        except (httpx.HTTPError, ValueError, AttributeError) as e:
            raise FetchError(f"Failed fetching list {list_uri}: {e}") from e
        if total_size is None:
            total_size = offset + len(items)
        return {"items": items, "total_size": int(total_size)}

    async def fetch_identity(self) -> IdentityRepresentation:
        """Ask the repository who the current session belongs to.

        Raises:
            AuthError: On HTTP or decoding failure
        """
        try:
            return await self._get_json(f"{self.base_uri}auth/user")
        except (httpx.HTTPError, ValueError) as e:
            raise AuthError(f"Failed fetching user information: {e}") from e

    async def perform_auth_exchange(
        self, credentials: Optional[Dict[str, Any]]
    ) -> IdentityRepresentation:
        """Sign in with credentials, or sign out when credentials is None.

        Args:
            credentials: Dict with 'user', 'password' and 'max_age', or None

        Returns:
            Identity of the session after the exchange

        Raises:
            AuthError: If the exchange is rejected or fails
        """
        try:
            if credentials is None:
                response = await self._client.get(f"{self.base_uri}auth/logout")
                response.raise_for_status()
                self._client.cookies.delete("auth_token")
                return {"user": "guest", "id": "_guest"}

            # A new auth_token cookie replaces the old one on success
            response = await self._client.post(
                f"{self.base_uri}auth/cookie",
                data={
                    "auth_username": credentials["user"],
                    "auth_password": credentials["password"],
                    "auth_maxage": str(credentials["max_age"]),
                },
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise AuthError(
                f"Authentication rejected with status {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            raise AuthError(f"Authentication exchange failed: {e}") from e

        logger.debug(f"Signed in as {credentials['user']}")
        return await self.fetch_identity()
