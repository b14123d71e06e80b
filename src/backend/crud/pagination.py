"""
Generic list query helper: free-text search plus pagination.

`filter_and_paginate` is store-agnostic. It talks to any `DataSource` that can
count and fetch rows for a `Criteria`; `SQLModelSource` is the SQLAlchemy
implementation used by the services.

Usage:
    query = ListQuery.from_params(request.query_params)
    page = await filter_and_paginate(
        SQLModelSource(db, Incident),
        query,
        search_fields=("incident_number", "location", "incident_type.name"),
        order_by=(Incident.occured_at.desc(),),
    )
"""
import math
from dataclasses import dataclass, field
from typing import (
    Any,
    Generic,
    List,
    Mapping,
    Optional,
    Protocol,
    Sequence,
    Tuple,
    Type,
    TypeVar,
)

from sqlalchemy import and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import SQLModel

T = TypeVar("T")
ModelType = TypeVar("ModelType", bound=SQLModel)

PAGE_SIZE_ALL = "all"
DEFAULT_PAGE_SIZE = 10


def _parse_int(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


@dataclass(frozen=True)
class ListQuery:
    """Search term and page window requested by a list view.

    `page_size` is None when the caller asked for every row (`pageSize=all`).
    """

    search_term: Optional[str] = None
    page: int = 1
    page_size: Optional[int] = DEFAULT_PAGE_SIZE

    @classmethod
    def from_params(
        cls,
        params: Mapping[str, str],
        default_page_size: int = DEFAULT_PAGE_SIZE,
    ) -> "ListQuery":
        """Parse `search`, `page` and `pageSize` from query parameters.

        An empty `search` means no filter. Missing or invalid numbers fall
        back to the defaults; `page` is clamped to at least 1.
        """
        search_term = params.get("search") or None

        page = _parse_int(params.get("page")) or 1
        page = max(page, 1)

        raw_size = params.get("pageSize")
        if raw_size is not None and raw_size.strip().lower() == PAGE_SIZE_ALL:
            page_size = None
        else:
            page_size = _parse_int(raw_size)
            if page_size is None or page_size <= 0:
                page_size = default_page_size

        return cls(search_term=search_term, page=page, page_size=page_size)

    @property
    def is_paged(self) -> bool:
        return self.page_size is not None

    @property
    def skip(self) -> Optional[int]:
        if self.page_size is None:
            return None
        return (self.page - 1) * self.page_size

    @property
    def take(self) -> Optional[int]:
        return self.page_size


@dataclass(frozen=True)
class SearchFilter:
    """Case-insensitive "contains `term`" on any of `fields`."""

    term: str
    fields: Tuple[str, ...]


@dataclass(frozen=True)
class Criteria:
    """Fixed filter (store-specific, opaque here) AND optional search."""

    fixed: Any = None
    search: Optional[SearchFilter] = None


@dataclass
class Page(Generic[T]):
    data: List[T] = field(default_factory=list)
    total_pages: int = 1
    current_page: int = 1
    total_items: int = 0


class DataSource(Protocol[T]):
    """What `filter_and_paginate` needs from a store."""

    async def count(self, criteria: Criteria) -> int:
        ...

    async def find_many(
        self,
        criteria: Criteria,
        *,
        order_by: Sequence[Any] = (),
        take: Optional[int] = None,
        skip: Optional[int] = None,
    ) -> List[T]:
        ...


async def filter_and_paginate(
    source: DataSource[T],
    query: ListQuery,
    *,
    search_fields: Sequence[str],
    where: Any = None,
    order_by: Sequence[Any] = (),
) -> Page[T]:
    """
    Count and fetch one page of rows matching the fixed filter and search.

    Args:
        source: Store adapter exposing count/find_many
        query: Parsed list query
        search_fields: Trusted field names (flat or dot paths); never user input
        where: Optional fixed filter understood by the source
        order_by: Ordering understood by the source

    Returns:
        Page with data, total_pages and current_page

    Store errors propagate unchanged.
    """
    search = None
    if query.search_term and search_fields:
        search = SearchFilter(term=query.search_term, fields=tuple(search_fields))
    criteria = Criteria(fixed=where, search=search)

    total_items = await source.count(criteria)
    if query.page_size:
        total_pages = math.ceil(total_items / query.page_size)
    else:
        total_pages = 1

    data = await source.find_many(
        criteria,
        order_by=order_by,
        take=query.take,
        skip=query.skip,
    )
    return Page(
        data=list(data),
        total_pages=total_pages,
        current_page=query.page,
        total_items=total_items,
    )


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _contains(model: Type[SQLModel], path: Sequence[str], pattern: str):
    """Build an ILIKE predicate for `path`, following relationships for dot paths."""
    attr = getattr(model, path[0])
    if len(path) == 1:
        return attr.ilike(pattern, escape="\\")

    target = attr.property.mapper.class_
    inner = _contains(target, path[1:], pattern)
    if attr.property.uselist:
        return attr.any(inner)
    return attr.has(inner)


class SQLModelSource(Generic[ModelType]):
    """SQLAlchemy-backed DataSource for one SQLModel table."""

    def __init__(
        self,
        db: AsyncSession,
        model: Type[ModelType],
        *,
        options: Sequence[Any] = (),
    ):
        self.db = db
        self.model = model
        self.options = tuple(options)

    def _predicate(self, criteria: Criteria):
        clauses = []
        if criteria.fixed is not None:
            if isinstance(criteria.fixed, (list, tuple)):
                clauses.extend(criteria.fixed)
            else:
                clauses.append(criteria.fixed)
        if criteria.search is not None:
            pattern = f"%{_escape_like(criteria.search.term)}%"
            clauses.append(
                or_(
                    *(
                        _contains(self.model, name.split("."), pattern)
                        for name in criteria.search.fields
                    )
                )
            )
        if not clauses:
            return None
        return and_(*clauses)

    async def count(self, criteria: Criteria) -> int:
        stmt = select(func.count()).select_from(self.model)
        predicate = self._predicate(criteria)
        if predicate is not None:
            stmt = stmt.where(predicate)
        result = await self.db.execute(stmt)
        return result.scalar_one()

    async def find_many(
        self,
        criteria: Criteria,
        *,
        order_by: Sequence[Any] = (),
        take: Optional[int] = None,
        skip: Optional[int] = None,
    ) -> List[ModelType]:
        stmt = select(self.model)
        predicate = self._predicate(criteria)
        if predicate is not None:
            stmt = stmt.where(predicate)
        if order_by:
            stmt = stmt.order_by(*order_by)
        if self.options:
            stmt = stmt.options(*self.options)
        if skip:
            stmt = stmt.offset(skip)
        if take is not None:
            stmt = stmt.limit(take)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())
