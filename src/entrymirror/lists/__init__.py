"""Paginated and sorted list windows."""

from entrymirror.lists.sort import DEFAULT_SORT, SortSpec
from entrymirror.lists.window import ListWindow

__all__ = ["ListWindow", "SortSpec", "DEFAULT_SORT"]
