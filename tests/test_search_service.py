"""
Search service tests - orchestration, index fallback, nearby validation.
"""

import pytest
from elastic_transport import ConnectionError as TransportConnectionError

from app.config import Settings
from app.core.errors import GeoCapabilityError, InvalidParameterError, MissingParameterError
from app.db.repositories.item_repository import ItemRepository
from app.schemas.search import SearchRequest
from app.services.search_service import SearchService, annotate_distances
from app.search.predicates import GeoPredicate

MADRID = (40.4168, -3.7038)


class BrokenElasticsearch:
    def __init__(self):
        self.calls = 0

    async def count(self, **kwargs):
        self.calls += 1
        raise TransportConnectionError("connection refused")

    async def search(self, **kwargs):
        self.calls += 1
        raise TransportConnectionError("connection refused")


def make_service(session, es=None, **overrides) -> SearchService:
    settings = Settings(database_url="sqlite+aiosqlite:///:memory:", **overrides)
    return SearchService(
        ItemRepository(session, geo_capable=settings.geo_search_enabled),
        settings=settings,
        es=es,
    )


@pytest.mark.asyncio
async def test_search_returns_envelope_with_owner(session, make_item, test_user):
    await make_item("Laptop")
    service = make_service(session)

    envelope = await service.search(SearchRequest(q="laptop"))

    assert envelope["success"] is True
    assert envelope["count"] == 1
    assert envelope["data"][0]["owner"] == {"id": test_user.id, "full_name": "Test User"}
    assert envelope["pagination"]["limit"] == 12


@pytest.mark.asyncio
async def test_search_adds_distance_under_geo_filter(session, make_item):
    lat, lng = MADRID
    await make_item("near", latitude=lat + 0.01, longitude=lng)
    service = make_service(session)

    envelope = await service.search(SearchRequest(lat=str(lat), lng=str(lng), sort="nearest"))

    assert envelope["data"][0]["distance"] == pytest.approx(1.11, abs=0.01)


@pytest.mark.asyncio
async def test_search_falls_back_to_database_when_index_is_down(session, make_item):
    await make_item("Laptop")
    es = BrokenElasticsearch()
    service = make_service(session, es=es, search_backend="elasticsearch")

    envelope = await service.search(SearchRequest(q="laptop"))

    assert es.calls == 1
    assert envelope["count"] == 1


@pytest.mark.asyncio
async def test_search_geo_without_capability(session):
    service = make_service(session, geo_search_enabled=False)
    with pytest.raises(GeoCapabilityError):
        await service.search(SearchRequest(lat="1", lng="2"))


@pytest.mark.asyncio
async def test_nearby_requires_lat_then_lng(session):
    service = make_service(session)
    with pytest.raises(MissingParameterError) as exc_info:
        await service.nearby(None, None)
    assert exc_info.value.field == "lat"
    with pytest.raises(MissingParameterError) as exc_info:
        await service.nearby("40.4", " ")
    assert exc_info.value.field == "lng"


@pytest.mark.asyncio
async def test_nearby_rejects_malformed_coordinates(session):
    service = make_service(session)
    with pytest.raises(InvalidParameterError) as exc_info:
        await service.nearby("north", "-3.7")
    assert exc_info.value.field == "lat"
    with pytest.raises(InvalidParameterError) as exc_info:
        await service.nearby("40.4", "200")
    assert exc_info.value.field == "lng"


@pytest.mark.asyncio
async def test_nearby_without_capability(session):
    service = make_service(session, geo_search_enabled=False)
    with pytest.raises(GeoCapabilityError):
        await service.nearby("40.4", "-3.7")


@pytest.mark.asyncio
async def test_nearby_is_nearest_first_and_limited(session, make_item):
    lat, lng = MADRID
    await make_item("2km", latitude=lat + 0.018, longitude=lng)
    await make_item("1km", latitude=lat + 0.009, longitude=lng)
    await make_item("3km", latitude=lat + 0.027, longitude=lng)
    await make_item("traded", latitude=lat, longitude=lng, available=False)
    service = make_service(session)

    records = await service.nearby(str(lat), str(lng), limit="2")

    assert [r["title"] for r in records] == ["1km", "2km"]
    assert records[0]["distance"] < records[1]["distance"]


@pytest.mark.asyncio
async def test_nearby_falls_back_to_database(session, make_item):
    lat, lng = MADRID
    await make_item("here", latitude=lat, longitude=lng)
    service = make_service(session, es=BrokenElasticsearch(), search_backend="elasticsearch")

    records = await service.nearby(str(lat), str(lng))

    assert [r["title"] for r in records] == ["here"]


@pytest.mark.asyncio
async def test_list_items_applies_gate_and_filters(session, make_item, admin_user):
    await make_item("mine")
    await make_item("theirs", owner=admin_user)
    await make_item("hidden", owner=admin_user, available=False)
    service = make_service(session)

    envelope = await service.list_items({"owner_id": str(admin_user.id), "select": "title"})

    assert envelope["count"] == 1
    assert envelope["data"][0]["title"] == "theirs"
    assert "description" not in envelope["data"][0]


def test_annotate_distances_skips_unlocated_records():
    records = [{"coordinates": None}, {"coordinates": {"type": "Point", "coordinates": [0.0, 0.0]}}]
    annotate_distances(records, GeoPredicate(latitude=0.0, longitude=0.0, max_distance_m=1000))
    assert "distance" not in records[0]
    assert records[1]["distance"] == 0.0
