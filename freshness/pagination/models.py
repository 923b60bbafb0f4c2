"""
Pagination state and paged fetch results.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Generic, Mapping, Optional, Sequence, Tuple, TypeVar

T = TypeVar("T")


class Phase(Enum):
    """Loading phase of a paginated list."""
    IDLE = "idle"
    LOADING_INITIAL = "loading_initial"
    REFRESHING = "refreshing"
    LOADING_MORE = "loading_more"
    ERROR = "error"


@dataclass(frozen=True)
class PaginationState(Generic[T]):
    """
    Snapshot of a paginated list.

    ``page`` counts loaded pages; 0 means nothing has been loaded yet.
    ``error`` holds the failure reason while ``phase`` is ERROR.
    """
    items: Tuple[T, ...] = ()
    page: int = 0
    has_more: bool = True
    phase: Phase = Phase.IDLE
    error: Optional[str] = None

    @property
    def is_loading(self) -> bool:
        return self.phase in (Phase.LOADING_INITIAL, Phase.REFRESHING, Phase.LOADING_MORE)

    @property
    def is_empty(self) -> bool:
        return not self.items


@dataclass(frozen=True)
class PagedResult(Generic[T]):
    """One page returned by a paged fetch function."""
    items: Tuple[T, ...] = field(default_factory=tuple)
    has_more: Optional[bool] = None
    page: Optional[int] = None
    total: Optional[int] = None

    @classmethod
    def coerce(cls, raw: Any, page_size: int, page: Optional[int] = None) -> "PagedResult[Any]":
        """
        Normalize a fetch result into a PagedResult.

        Accepts a PagedResult, a mapping with ``data``/``items`` and
        ``hasMore``/``has_more``, or a plain sequence of items. When the
        transport gives no ``has_more``, a short page means the last page.
        """
        total = None
        if isinstance(raw, PagedResult):
            items, has_more, page, total = raw.items, raw.has_more, raw.page or page, raw.total
        elif isinstance(raw, Mapping):
            items = raw.get("data", raw.get("items"))
            has_more = raw.get("hasMore", raw.get("has_more"))
            total = raw.get("total")
            page = raw.get("page", page)
        elif isinstance(raw, Sequence) and not isinstance(raw, (str, bytes)):
            items, has_more = raw, None
        else:
            raise TypeError(f"Unsupported page result type: {type(raw).__name__}")

        if items is None or isinstance(items, (str, bytes)) or not isinstance(items, Sequence):
            raise TypeError("Page result has no item sequence")

        items = tuple(items)
        if has_more is None:
            has_more = len(items) >= page_size
        return cls(items=items, has_more=bool(has_more), page=page, total=total)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "data": list(self.items),
            "hasMore": self.has_more,
            "page": self.page,
            "total": self.total,
        }
