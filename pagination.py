#!/usr/bin/env python3
"""
Pagination state and the response envelope built from it.

Every list the client returns in paginated form goes through build_response,
which reports the size of the whole collection alongside the requested page.
"""

from dataclasses import dataclass, field
from math import ceil
from typing import Any, Dict, List, Optional, Sequence


@dataclass
class PaginationState:
    """Page size and page index for one client. ``items_per_page=None`` means unbounded."""
    items_per_page: Optional[int] = None
    current_page: int = 1

    @property
    def unbounded(self) -> bool:
        return self.items_per_page is None


@dataclass
class PaginatedResponse:
    total_items: int
    items_per_page: Optional[int]
    total_pages: int
    current_page: int
    data: List[Any] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Render the envelope with the camelCase keys used on the wire."""
        return {
            "totalItems": self.total_items,
            "itemsPerPage": self.items_per_page,
            "totalPages": self.total_pages,
            "currentPage": self.current_page,
            "data": self.data,
        }


def build_response(collection: Sequence[Any], state: PaginationState) -> PaginatedResponse:
    """Wrap ``collection`` in a PaginatedResponse according to ``state``.

    Unbounded state returns the whole collection as page 1 of 1. Otherwise the
    page is a window of ``items_per_page`` items starting at
    ``items_per_page * (current_page - 1)``; it is shorter at the tail and
    empty past the end.
    """
    items = list(collection)
    if state.unbounded:
        return PaginatedResponse(
            total_items=len(items),
            items_per_page=None,
            total_pages=1,
            current_page=1,
            data=items,
        )

    per_page = state.items_per_page
    offset = per_page * (state.current_page - 1)
    return PaginatedResponse(
        total_items=len(items),
        items_per_page=per_page,
        total_pages=ceil(len(items) / per_page),
        current_page=state.current_page,
        data=items[offset:offset + per_page],
    )
