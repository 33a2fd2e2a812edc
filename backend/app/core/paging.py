from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from sqlalchemy.orm import Query

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 200


@dataclass(frozen=True)
class PageWindow:
    page: int
    page_size: int

    @classmethod
    def clamp(cls, page: int, page_size: int = DEFAULT_PAGE_SIZE) -> "PageWindow":
        return cls(page=max(1, page), page_size=max(1, min(page_size, MAX_PAGE_SIZE)))

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size


def fetch_page(query: Query, window: PageWindow, serialize: Callable[[Any], dict]) -> dict:
    """Run one page of ``query`` and wrap it with totals for the admin tables."""
    total = query.order_by(None).count()
    rows = query.offset(window.offset).limit(window.page_size).all()
    return {
        "items": [serialize(row) for row in rows],
        "total": total,
        "page": window.page,
        "page_size": window.page_size,
        "pages": (total + window.page_size - 1) // window.page_size,
    }
