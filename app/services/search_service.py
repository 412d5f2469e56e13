"""
Search service - item search, nearby lookup, listing and geo index maintenance.
Challenge: Orchestrate compositor, pager and stores; keep controllers thin.
Design: Elasticsearch is optional; when it fails the database answers instead.
"""

import logging
from collections.abc import Callable, Mapping
from datetime import datetime
from typing import Any

from elastic_transport import TransportError
from elasticsearch import ApiError, AsyncElasticsearch

from app.config import Settings
from app.core.errors import (
    GeoCapabilityError,
    IndexMaintenanceError,
    InvalidParameterError,
    MissingParameterError,
    SearchIndexUnavailableError,
)
from app.db.repositories.item_repository import ItemRepository
from app.schemas.search import SearchRequest
from app.search.elasticsearch_client import ensure_geo_mapping
from app.search.elasticsearch_repository import ElasticsearchItemRepository
from app.search.geo import haversine_km, parse_coordinate, parse_radius_km
from app.search.predicates import (
    STORE_ORDER,
    AvailabilityGate,
    Filter,
    FilterBuilder,
    GeoPredicate,
    SortSpec,
)
from app.search.query_compositor import compose
from app.search.result_pager import (
    PageableRepository,
    PageRequest,
    PageResult,
    ResultPager,
    parse_positive_int,
    parse_projection,
    parse_query_filters,
    resolve_sort_param,
    run_bounded,
)

logger = logging.getLogger(__name__)

# Relations returned with every item record (database store only)
ITEM_EXPANSIONS = ("owner",)

# Fields GET /items may filter on, with their value parsers
LISTING_FILTER_FIELDS: Mapping[str, Callable[[str], Any]] = {
    "category": str,
    "condition": str,
    "location": str,
    "owner_id": int,
    "created_at": datetime.fromisoformat,
}


def annotate_distances(records: list[dict[str, Any]], geo: GeoPredicate | None) -> None:
    """Add `distance` (km, 2 decimals) to located records when a proximity filter applied."""
    if geo is None:
        return
    for record in records:
        point = record.get("coordinates")
        if not point:
            continue
        lng, lat = point["coordinates"]
        record["distance"] = round(haversine_km(geo.latitude, geo.longitude, lat, lng), 2)


class SearchService:
    """Handles item search use cases against the configured store."""

    def __init__(
        self,
        item_repo: ItemRepository,
        *,
        settings: Settings,
        es: AsyncElasticsearch | None = None,
    ):
        self.item_repo = item_repo
        self.settings = settings
        self.es = es

    @property
    def geo_capable(self) -> bool:
        return self.settings.geo_search_enabled

    def _index_repo(self) -> ElasticsearchItemRepository | None:
        if self.settings.search_backend != "elasticsearch" or self.es is None:
            return None
        return ElasticsearchItemRepository(self.es, self.settings.items_index, geo_capable=self.geo_capable)

    async def _paginate(
        self, repo: PageableRepository, filter: Filter, sort: SortSpec, page_request: PageRequest
    ) -> PageResult:
        pager = ResultPager(repo, timeout_seconds=self.settings.search_timeout_seconds)
        return await pager.paginate(filter, sort, page_request, expand=ITEM_EXPANSIONS)

    async def search(self, request: SearchRequest) -> dict[str, Any]:
        """Compile the request, page it through the index (or database) and return the envelope."""
        compiled = compose(
            request,
            geo_capable=self.geo_capable,
            default_radius_km=self.settings.default_search_radius_km,
            max_radius_km=self.settings.max_search_radius_km,
        )
        page_request = PageRequest.parse(
            request.page,
            request.limit,
            default_limit=self.settings.search_page_size,
            max_limit=self.settings.max_page_size,
        )
        index_repo = self._index_repo()
        result = None
        if index_repo is not None:
            try:
                result = await self._paginate(index_repo, compiled.filter, compiled.sort, page_request)
            except SearchIndexUnavailableError as exc:
                logger.warning("Search index unavailable (%r); falling back to database search", exc.__cause__)
        if result is None:
            result = await self._paginate(self.item_repo, compiled.filter, compiled.sort, page_request)
        annotate_distances(result.data, compiled.filter.geo)
        return result.to_envelope()

    async def nearby(
        self,
        lat: str | None,
        lng: str | None,
        distance: str | None = None,
        limit: str | None = None,
    ) -> list[dict[str, Any]]:
        """Available items within `distance` km, nearest first. Coordinates are required here."""
        for name, raw in (("lat", lat), ("lng", lng)):
            if raw is None or not raw.strip():
                raise MissingParameterError(name)
        if not self.geo_capable:
            raise GeoCapabilityError()
        latitude = parse_coordinate(lat, 90)
        if latitude is None:
            raise InvalidParameterError("lat", "must be a number between -90 and 90")
        longitude = parse_coordinate(lng, 180)
        if longitude is None:
            raise InvalidParameterError("lng", "must be a number between -180 and 180")

        radius_km = parse_radius_km(
            distance, self.settings.default_search_radius_km, self.settings.max_search_radius_km
        )
        geo = GeoPredicate(latitude=latitude, longitude=longitude, max_distance_m=radius_km * 1000)
        filter = FilterBuilder().add(geo).add(AvailabilityGate()).build()
        size = min(parse_positive_int(limit, self.settings.nearby_page_size), self.settings.max_page_size)

        records = None
        index_repo = self._index_repo()
        if index_repo is not None:
            try:
                records = await run_bounded(
                    index_repo.find(filter, STORE_ORDER, skip=0, limit=size),
                    self.settings.search_timeout_seconds,
                )
            except SearchIndexUnavailableError as exc:
                logger.warning("Search index unavailable (%r); falling back to database search", exc.__cause__)
        if records is None:
            records = await run_bounded(
                self.item_repo.find(filter, STORE_ORDER, skip=0, limit=size, expand=ITEM_EXPANSIONS),
                self.settings.search_timeout_seconds,
            )
        annotate_distances(records, geo)
        return records

    async def list_items(self, params: Mapping[str, str]) -> dict[str, Any]:
        """Generic listing of eligible items: query-string filters, select, sort and paging."""
        filter = (
            FilterBuilder()
            .extend(parse_query_filters(params, LISTING_FILTER_FIELDS))
            .add(AvailabilityGate())
            .build()
        )
        pager = ResultPager(self.item_repo, timeout_seconds=self.settings.search_timeout_seconds)
        result = await pager.paginate(
            filter,
            resolve_sort_param(params.get("sort")),
            PageRequest.parse(
                params.get("page"),
                params.get("limit"),
                default_limit=self.settings.default_page_size,
                max_limit=self.settings.max_page_size,
            ),
            projection=parse_projection(params.get("select")),
            expand=ITEM_EXPANSIONS,
        )
        return result.to_envelope()

    async def ensure_geo_index(self) -> None:
        """Create the database coordinates index and, with Elasticsearch, the geo_point mapping."""
        await self.item_repo.ensure_geo_index()
        if self.settings.search_backend == "elasticsearch" and self.es is not None:
            try:
                await ensure_geo_mapping(self.es, self.settings.items_index)
            except (ApiError, TransportError) as exc:
                raise IndexMaintenanceError() from exc
            logger.info("geo_point mapping present on index %s", self.settings.items_index)
