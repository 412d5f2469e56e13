"""
Result pager - resource-agnostic pagination, sorting and projection.
Challenge: One envelope for every listing; total counted before skip/limit.
Design: Depends only on the PageableRepository protocol, never on an entity.
"""

import asyncio
import logging
import math
import re
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Generic, Protocol, TypeVar

from app.core.errors import InvalidParameterError, StoreTimeoutError
from app.search.predicates import (
    RECENT,
    SORT_ALIASES,
    ComparisonPredicate,
    EqualityPredicate,
    Filter,
    Predicate,
    SortSpec,
    parse_sort,
)

logger = logging.getLogger(__name__)

RecordT = TypeVar("RecordT")
T = TypeVar("T")

# Query parameters that shape the page instead of filtering it.
RESERVED_PARAMS = frozenset({"select", "sort", "page", "limit"})

_OPERATOR_PARAM = re.compile(r"^(?P<field>\w+)\[(?P<op>gt|gte|lt|lte|in)\]$")

# Largest OFFSET a store can bind (signed 64-bit).
MAX_SKIP = 2**63 - 1


class PageableRepository(Protocol[RecordT]):
    """Narrow read interface a store offers to the pager."""

    async def count(self, filter: Filter) -> int: ...

    async def find(
        self,
        filter: Filter,
        sort: SortSpec,
        *,
        skip: int,
        limit: int,
        projection: Sequence[str] | None = None,
        expand: Sequence[str] = (),
    ) -> list[RecordT]: ...


def parse_positive_int(raw: object, default: int) -> int:
    """Lenient integer parse: missing, invalid or < 1 gives the default."""
    if raw is None:
        return default
    try:
        value = int(str(raw).strip())
    except ValueError:
        return default
    return value if value >= 1 else default


def parse_query_filters(
    params: Mapping[str, str], fields: Mapping[str, Callable[[str], Any]]
) -> list[Predicate]:
    """Turn leftover query params into predicates: `category=books`, `owner_id[in]=1,2`,
    `created_at[gte]=2024-01-01`. Params naming no filterable field are ignored."""
    predicates: list[Predicate] = []
    for key, raw in params.items():
        if key in RESERVED_PARAMS:
            continue
        match = _OPERATOR_PARAM.match(key)
        field, operator = (match["field"], match["op"]) if match else (key, None)
        convert = fields.get(field)
        if convert is None:
            continue
        try:
            if operator == "in":
                value: Any = tuple(convert(v.strip()) for v in raw.split(",") if v.strip())
            else:
                value = convert(raw)
        except ValueError as exc:
            raise InvalidParameterError(key, str(exc)) from exc
        if operator is None:
            predicates.append(EqualityPredicate(field, value))
        else:
            predicates.append(ComparisonPredicate(field, operator, value))
    return predicates


def parse_projection(select: str | None) -> tuple[str, ...] | None:
    """'title,category' -> ('title', 'category'). None selects every field."""
    if not select:
        return None
    fields = tuple(f.strip() for f in select.split(",") if f.strip())
    return fields or None


def resolve_sort_param(value: str | None) -> SortSpec:
    """Resolve a `sort` query value through the alias table; other values are literal keys."""
    if value is None or not value.strip():
        return RECENT
    value = value.strip()
    if value in SORT_ALIASES:
        return SORT_ALIASES[value]
    return parse_sort(value) or RECENT


@dataclass(frozen=True)
class PageRequest:
    page: int
    limit: int

    @classmethod
    def parse(cls, page: object, limit: object, *, default_limit: int, max_limit: int) -> "PageRequest":
        """Lenient page/limit. Pages past MAX_SKIP are clamped; they are empty either way."""
        size = min(parse_positive_int(limit, default_limit), max_limit)
        return cls(page=min(parse_positive_int(page, 1), MAX_SKIP // size + 1), limit=size)

    @property
    def skip(self) -> int:
        return (self.page - 1) * self.limit


@dataclass(frozen=True)
class PageDescriptor:
    """Pagination math for one page; derived, never stored."""

    page: int
    limit: int
    total: int

    @property
    def skip(self) -> int:
        return (self.page - 1) * self.limit

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit)

    @property
    def has_next(self) -> bool:
        return self.page * self.limit < self.total

    @property
    def has_prev(self) -> bool:
        return self.skip > 0

    @property
    def next_page(self) -> int | None:
        return self.page + 1 if self.has_next else None

    @property
    def prev_page(self) -> int | None:
        return self.page - 1 if self.has_prev else None

    def as_pagination(self) -> dict[str, Any]:
        pagination: dict[str, Any] = {
            "page": self.page,
            "limit": self.limit,
            "total": self.total,
            "totalPages": self.total_pages,
        }
        if self.has_next:
            pagination["next"] = {"page": self.next_page, "limit": self.limit}
        if self.has_prev:
            pagination["prev"] = {"page": self.prev_page, "limit": self.limit}
        return pagination


@dataclass
class PageResult(Generic[RecordT]):
    descriptor: PageDescriptor
    data: list[RecordT]

    def to_envelope(self) -> dict[str, Any]:
        """{success, count, pagination, data}; count is the page size, not the total."""
        return {
            "success": True,
            "count": len(self.data),
            "pagination": self.descriptor.as_pagination(),
            "data": self.data,
        }


async def run_bounded(awaitable: Awaitable[T], timeout_seconds: float) -> T:
    """Await with a deadline; expiry becomes StoreTimeoutError."""
    try:
        return await asyncio.wait_for(awaitable, timeout_seconds)
    except asyncio.TimeoutError as exc:
        raise StoreTimeoutError() from exc


class ResultPager(Generic[RecordT]):
    """Runs one count and one fetch against a repository and builds the page."""

    def __init__(self, repository: PageableRepository[RecordT], *, timeout_seconds: float):
        self.repository = repository
        self.timeout_seconds = timeout_seconds

    async def paginate(
        self,
        filter: Filter,
        sort: SortSpec,
        page_request: PageRequest,
        *,
        projection: Sequence[str] | None = None,
        expand: Sequence[str] = (),
    ) -> PageResult[RecordT]:
        """Count matches, fetch the requested page. Store errors propagate; nothing partial is returned."""

        async def run() -> PageResult[RecordT]:
            # Sequential: both reads share the request's session
            total = await self.repository.count(filter)
            data = await self.repository.find(
                filter,
                sort,
                skip=page_request.skip,
                limit=page_request.limit,
                projection=projection,
                expand=expand,
            )
            return PageResult(
                descriptor=PageDescriptor(page=page_request.page, limit=page_request.limit, total=total),
                data=data,
            )

        result = await run_bounded(run(), self.timeout_seconds)
        logger.debug(
            "Paged %s: page=%d limit=%d total=%d returned=%d",
            type(self.repository).__name__,
            page_request.page,
            page_request.limit,
            result.descriptor.total,
            len(result.data),
        )
        return result
