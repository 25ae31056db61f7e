"""Entry values and the representations exchanged with the repository."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from typing_extensions import Protocol, TypedDict


class EntryRepresentation(TypedDict, total=False):
    """Entry as returned by the repository."""

    uri: str  # Entry identity URI
    resource_uri: str  # URI of the resource the entry describes
    entry_id: str
    context_id: str
    info: Dict[str, Any]  # Entry information graph, opaque here
    metadata: Dict[str, Any]  # Metadata graph, opaque here
    rights: List[str]


class ListPage(TypedDict):
    """One window of a list as returned by the repository."""

    items: List[EntryRepresentation]
    total_size: int


class IdentityRepresentation(TypedDict, total=False):
    """Who-am-I information for the current session."""

    user: str
    id: str
    homecontext: Optional[str]


class CacheableEntry(Protocol):
    """Anything the entry cache can hold."""

    @property
    def uri(self) -> str: ...

    @property
    def resource_uri(self) -> str: ...


@dataclass(eq=False)
class Entry:
    """A locally materialized repository entry.

    Two entries describe the same repository entity iff their ``uri`` values
    are equal. Entry objects compare by identity so the cache can tell a
    refreshed object from the one it replaced.

    Attributes:
        uri: Entry identity URI
        resource_uri: URI of the underlying resource, may be shared by entries
        data: Remaining representation payload, not interpreted by the cache
    """

    uri: str
    resource_uri: str
    data: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_representation(cls, rep: EntryRepresentation) -> "Entry":
        """Build an entry from a repository representation.

        Args:
            rep: Representation with at least ``uri`` and ``resource_uri``

        Returns:
            Entry instance

        Raises:
            ValueError: If the representation lacks an identity URI
        """
        if not rep.get("uri"):
            raise ValueError("Entry representation has no uri")
        data = {k: v for k, v in rep.items() if k not in ("uri", "resource_uri")}
        # Entries without a separate resource describe themselves
        return cls(uri=rep["uri"], resource_uri=rep.get("resource_uri") or rep["uri"], data=data)

    @property
    def entry_id(self) -> Optional[str]:
        return self.data.get("entry_id")

    @property
    def context_id(self) -> Optional[str]:
        return self.data.get("context_id")

    def __repr__(self) -> str:
        return f"Entry(uri={self.uri!r}, resource_uri={self.resource_uri!r})"
