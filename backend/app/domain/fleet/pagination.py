"""
Sorting and pagination helpers for list queries.
"""

from dataclasses import dataclass
from typing import Any, List, Optional, Sequence

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.config import settings
from backend.app.core.exceptions import DomainValidationError


@dataclass
class Page:
    """One page of results plus the total match count."""
    items: List[Any]
    total: int
    page: int
    page_size: int

    @property
    def pages(self) -> int:
        if self.page_size <= 0:
            return 0
        return (self.total + self.page_size - 1) // self.page_size


def apply_sort(query: Select, model, sort: Optional[str], allowed: Sequence[str],
               default: str = "-created_at") -> Select:
    """
    Order query by a "field" or "-field" (descending) sort key.

    Ties are broken by primary key so pages are stable.
    """
    sort = sort or default
    descending = sort.startswith("-")
    field = sort.lstrip("-+")
    if field not in allowed:
        raise DomainValidationError(
            f"Cannot sort by '{field}'",
            {"allowed": list(allowed)}
        )
    column = getattr(model, field)
    if descending:
        return query.order_by(column.desc(), model.id.desc())
    return query.order_by(column.asc(), model.id.asc())


async def paginate(db: AsyncSession, query: Select, page: int = 1,
                   page_size: int = settings.default_page_size) -> Page:
    """Run query for one page and count the full result set."""
    page = max(page, 1)
    page_size = min(max(page_size, 1), settings.max_page_size)

    count_query = select(func.count()).select_from(query.order_by(None).subquery())
    total = (await db.execute(count_query)).scalar() or 0

    offset = (page - 1) * page_size
    result = await db.execute(query.offset(offset).limit(page_size))
    return Page(items=list(result.scalars().all()), total=total, page=page, page_size=page_size)
