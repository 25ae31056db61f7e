"""Sort order for list windows."""

from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class SortSpec:
    """Server-side sort order of a list.

    Attributes:
        sort_by: Field to sort on, e.g. 'title', 'created', 'modified' or 'size'
        descending: Reverse the order
        prio: Entry type sorted to the top regardless of order (e.g. 'List')
    """

    sort_by: Optional[str] = "title"
    descending: bool = False
    prio: Optional[str] = None

    def to_params(self) -> Dict[str, str]:
        """Get query parameters for this sort order."""
        params = {}
        if self.sort_by is not None:
            params["sort"] = self.sort_by
        if self.descending:
            params["order"] = "desc"
        if self.prio is not None:
            params["prio"] = self.prio
        return params

    def to_dict(self) -> Dict[str, Any]:
        return {"sort_by": self.sort_by, "descending": self.descending, "prio": self.prio}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SortSpec":
        return cls(
            sort_by=data.get("sort_by"),
            descending=bool(data.get("descending", False)),
            prio=data.get("prio"),
        )


DEFAULT_SORT = SortSpec("title", prio="List")
