"""
Result pager tests - envelope math, parameter parsing and store interaction.
Uses an in-memory repository; no database.
"""

import asyncio
from datetime import datetime

import pytest

from app.core.errors import InvalidParameterError, StoreTimeoutError, StoreUnavailableError
from app.search.predicates import (
    OLDEST,
    RECENT,
    TITLE_ASC,
    TITLE_DESC,
    ComparisonPredicate,
    EqualityPredicate,
    Filter,
    SortKey,
)
from app.search.result_pager import (
    PageDescriptor,
    PageRequest,
    PageResult,
    ResultPager,
    parse_positive_int,
    parse_projection,
    parse_query_filters,
    resolve_sort_param,
)


class InMemoryRepository:
    """Pageable store over a list of dicts; records every call."""

    def __init__(self, records, *, delay: float = 0.0, fail: Exception | None = None):
        self.records = records
        self.delay = delay
        self.fail = fail
        self.count_calls = 0
        self.find_calls: list[dict] = []

    async def count(self, filter):
        self.count_calls += 1
        if self.fail:
            raise self.fail
        return len(self.records)

    async def find(self, filter, sort, *, skip, limit, projection=None, expand=()):
        self.find_calls.append(
            {"sort": sort, "skip": skip, "limit": limit, "projection": projection, "expand": expand}
        )
        if self.delay:
            await asyncio.sleep(self.delay)
        return self.records[skip : skip + limit]


def make_records(n):
    return [{"id": i + 1} for i in range(n)]


# --- PageDescriptor / envelope ---


def test_first_of_two_pages():
    pagination = PageDescriptor(page=1, limit=12, total=15).as_pagination()
    assert pagination == {
        "page": 1,
        "limit": 12,
        "total": 15,
        "totalPages": 2,
        "next": {"page": 2, "limit": 12},
    }


def test_last_page_has_only_prev():
    pagination = PageDescriptor(page=2, limit=12, total=15).as_pagination()
    assert pagination["prev"] == {"page": 1, "limit": 12}
    assert "next" not in pagination


def test_middle_page_has_both_links():
    descriptor = PageDescriptor(page=2, limit=10, total=35)
    assert descriptor.skip == 10
    assert descriptor.next_page == 3
    assert descriptor.prev_page == 1


def test_exact_multiple_has_no_next():
    descriptor = PageDescriptor(page=2, limit=10, total=20)
    assert descriptor.total_pages == 2
    assert not descriptor.has_next


def test_empty_result():
    envelope = PageResult(PageDescriptor(page=1, limit=25, total=0), []).to_envelope()
    assert envelope == {
        "success": True,
        "count": 0,
        "pagination": {"page": 1, "limit": 25, "total": 0, "totalPages": 0},
        "data": [],
    }


def test_page_beyond_the_end_links_back():
    pagination = PageDescriptor(page=5, limit=10, total=15).as_pagination()
    assert pagination["prev"] == {"page": 4, "limit": 10}
    assert "next" not in pagination


# --- Parsing ---


@pytest.mark.parametrize(
    "raw,expected",
    [(None, 7), ("3", 3), (" 4 ", 4), ("0", 7), ("-2", 7), ("abc", 7), ("2.5", 7), (5, 5)],
)
def test_parse_positive_int(raw, expected):
    assert parse_positive_int(raw, 7) == expected


def test_page_request_defaults_and_cap():
    assert PageRequest.parse(None, None, default_limit=25, max_limit=100) == PageRequest(1, 25)
    assert PageRequest.parse("3", "500", default_limit=25, max_limit=100) == PageRequest(3, 100)
    assert PageRequest.parse("x", "-1", default_limit=12, max_limit=100) == PageRequest(1, 12)
    assert PageRequest(3, 10).skip == 20


@pytest.mark.parametrize(
    "value,expected",
    [
        (None, RECENT),
        ("", RECENT),
        ("recent", RECENT),
        ("oldest", OLDEST),
        ("title_asc", TITLE_ASC),
        ("title_desc", TITLE_DESC),
        ("-title", (SortKey("title", descending=True),)),
        ("category,-created_at", (SortKey("category"), SortKey("created_at", descending=True))),
        (",", RECENT),
    ],
)
def test_resolve_sort_param(value, expected):
    assert resolve_sort_param(value) == expected


def test_parse_projection():
    assert parse_projection(None) is None
    assert parse_projection("") is None
    assert parse_projection(" , ") is None
    assert parse_projection("title, category") == ("title", "category")


def test_parse_query_filters():
    fields = {"category": str, "owner_id": int, "created_at": datetime.fromisoformat}
    params = {
        "category": "books",
        "owner_id[in]": "1, 2,3",
        "created_at[gte]": "2024-01-01",
        "page": "2",
        "sort": "-title",
        "unknown": "x",
        "unknown[gt]": "1",
    }
    predicates = parse_query_filters(params, fields)
    assert predicates == [
        EqualityPredicate("category", "books"),
        ComparisonPredicate("owner_id", "in", (1, 2, 3)),
        ComparisonPredicate("created_at", "gte", datetime(2024, 1, 1)),
    ]


def test_parse_query_filters_rejects_bad_values():
    with pytest.raises(InvalidParameterError) as exc_info:
        parse_query_filters({"owner_id[gt]": "abc"}, {"owner_id": int})
    assert exc_info.value.status_code == 400
    assert "owner_id[gt]" in exc_info.value.message


def test_unknown_operator_is_treated_as_unknown_field():
    assert parse_query_filters({"owner_id[ne]": "1"}, {"owner_id": int}) == []


# --- ResultPager ---


@pytest.mark.asyncio
async def test_paginate_counts_once_and_fetches_once():
    repo = InMemoryRepository(make_records(15))
    pager = ResultPager(repo, timeout_seconds=1)
    result = await pager.paginate(Filter(), RECENT, PageRequest(2, 12), projection=("title",), expand=("owner",))

    assert repo.count_calls == 1
    assert repo.find_calls == [
        {"sort": RECENT, "skip": 12, "limit": 12, "projection": ("title",), "expand": ("owner",)}
    ]
    envelope = result.to_envelope()
    assert envelope["count"] == 3
    assert envelope["pagination"]["total"] == 15
    assert envelope["pagination"]["prev"] == {"page": 1, "limit": 12}
    assert [r["id"] for r in envelope["data"]] == [13, 14, 15]


@pytest.mark.asyncio
async def test_paginate_propagates_store_errors():
    repo = InMemoryRepository([], fail=StoreUnavailableError())
    pager = ResultPager(repo, timeout_seconds=1)
    with pytest.raises(StoreUnavailableError):
        await pager.paginate(Filter(), RECENT, PageRequest(1, 10))
    assert repo.find_calls == []


@pytest.mark.asyncio
async def test_paginate_times_out():
    repo = InMemoryRepository(make_records(3), delay=0.5)
    pager = ResultPager(repo, timeout_seconds=0.01)
    with pytest.raises(StoreTimeoutError) as exc_info:
        await pager.paginate(Filter(), RECENT, PageRequest(1, 10))
    assert exc_info.value.status_code == 500


def test_page_request_clamps_huge_page_to_a_bindable_offset():
    request = PageRequest.parse("99999999999999999999", "12", default_limit=12, max_limit=100)
    assert request.limit == 12
    assert request.page == (2**63 - 1) // 12 + 1
    assert request.skip <= 2**63 - 1
