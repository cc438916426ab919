from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Generic, List, Optional, Sequence, TypeVar

from rmp_search.models import to_int


T = TypeVar("T")

UNLIMITED_TOKENS = ("0", "all")

# Largest value SQLite accepts as a bound integer; offsets never exceed it.
MAX_SQL_INT = 2**63 - 1


@dataclass(frozen=True)
class PageRequest:
    page: int = 1
    # None means unlimited: the whole filtered set as one page.
    per_page: Optional[int] = 20

    @property
    def unlimited(self) -> bool:
        return self.per_page is None

    @property
    def offset(self) -> int:
        if self.per_page is None:
            return 0
        return (self.page - 1) * self.per_page


@dataclass
class Page(Generic[T]):
    total: int
    page: int
    per_page: int
    items: List[T] = field(default_factory=list)

    def to_dict(self, items_key: str = "facilities") -> dict:
        return {
            "total": self.total,
            "page": self.page,
            "perPage": self.per_page,
            items_key: [getattr(i, "to_dict", lambda: i)() for i in self.items],
        }


def parse_page_request(page: Any = None, per_page: Any = None, default_per_page: int = 20) -> PageRequest:
    """Lenient page parsing; malformed input falls back to defaults."""

    per_page_raw = "" if per_page is None else str(per_page).strip().lower()
    if per_page_raw in UNLIMITED_TOKENS:
        return PageRequest(page=1, per_page=None)

    page_n = to_int(page)
    size = to_int(per_page_raw) if per_page_raw else None
    if size == 0:
        return PageRequest(page=1, per_page=None)
    if size is None:
        size = default_per_page
    size = min(max(1, size), MAX_SQL_INT)
    page_n = min(max(1, page_n or 1), MAX_SQL_INT // size)
    return PageRequest(page=page_n, per_page=size)


def make_page(total: int, request: PageRequest, items: List[T]) -> Page[T]:
    if request.unlimited:
        return Page(total=total, page=1, per_page=total, items=items)
    return Page(total=total, page=request.page, per_page=request.per_page, items=items)


def paginate(items: Sequence[T], request: PageRequest) -> Page[T]:
    """Slice an already filtered and ordered sequence."""

    total = len(items)
    if request.unlimited:
        return make_page(total, request, list(items))
    start = request.offset
    return make_page(total, request, list(items[start : start + request.per_page]))
