"""
BDD step definitions for the pagination feature (pytest-bdd).
Challenge: Express the envelope contract in Gherkin; run it against an in-memory store.
"""

import asyncio

import pytest
from pytest_bdd import given, parsers, scenarios, then, when

from app.search.predicates import RECENT, Filter
from app.search.result_pager import PageRequest, ResultPager

# Load all scenarios from the feature file
scenarios("../features/pagination.feature")


class ListRepository:
    def __init__(self, records):
        self.records = records

    async def count(self, filter):
        return len(self.records)

    async def find(self, filter, sort, *, skip, limit, projection=None, expand=()):
        return self.records[skip : skip + limit]


@pytest.fixture
def context():
    """Shared state between steps."""
    return {}


@given(parsers.parse("a store with {n:d} matching records"))
def store_with_records(context, n):
    context["repo"] = ListRepository([{"id": i + 1} for i in range(n)])


@when(parsers.parse("I request page {page:d} with limit {limit:d}"))
def request_page(context, page, limit):
    pager = ResultPager(context["repo"], timeout_seconds=1)
    result = asyncio.run(pager.paginate(Filter(), RECENT, PageRequest(page=page, limit=limit)))
    context["envelope"] = result.to_envelope()


@then(parsers.parse("the envelope count should be {count:d}"))
def envelope_count(context, count):
    assert context["envelope"]["count"] == count
    assert len(context["envelope"]["data"]) == count


@then(parsers.parse("the pagination total should be {total:d}"))
def pagination_total(context, total):
    assert context["envelope"]["pagination"]["total"] == total


@then(parsers.parse("the pagination should have {pages:d} total pages"))
def total_pages(context, pages):
    assert context["envelope"]["pagination"]["totalPages"] == pages


@then(parsers.parse("the next page should be {page:d}"))
def next_page(context, page):
    assert context["envelope"]["pagination"]["next"]["page"] == page


@then(parsers.parse("the previous page should be {page:d}"))
def prev_page(context, page):
    assert context["envelope"]["pagination"]["prev"]["page"] == page


@then("there should be no next page")
def no_next(context):
    assert "next" not in context["envelope"]["pagination"]


@then("there should be no previous page")
def no_prev(context):
    assert "prev" not in context["envelope"]["pagination"]
