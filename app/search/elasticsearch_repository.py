"""
Elasticsearch item repository - the pager protocol over the items index.
Challenge: Weighted full-text ranking and proximity search on the text index.
Design: Compiles the shared predicates to query DSL; transport or API errors become
SearchIndexUnavailableError so callers can fall back to the database.
"""

import logging
from collections.abc import Mapping, Sequence
from typing import Any

from elastic_transport import TransportError
from elasticsearch import ApiError, AsyncElasticsearch

from app.core.errors import GeoCapabilityError, SearchIndexUnavailableError
from app.search.predicates import (
    RELEVANCE_FIELD,
    AvailabilityGate,
    ComparisonPredicate,
    EqualityPredicate,
    Filter,
    GeoPredicate,
    Predicate,
    SortSpec,
    SubstringPredicate,
    TextPredicate,
)

logger = logging.getLogger(__name__)

RECORD_FIELDS = (
    "id",
    "title",
    "description",
    "category",
    "condition",
    "location",
    "coordinates",
    "available",
    "moderation_status",
    "owner_id",
    "created_at",
    "updated_at",
)

# Sort key -> indexed field; text fields sort on their keyword subfield.
SORT_FIELDS: Mapping[str, str] = {
    "id": "id",
    "title": "title.keyword",
    "category": "category",
    "condition": "condition",
    "location": "location.keyword",
    "owner_id": "owner_id",
    "created_at": "created_at",
    "updated_at": "updated_at",
    RELEVANCE_FIELD: RELEVANCE_FIELD,
}

KEYWORD_FIELDS: Mapping[str, str] = {"title": "title.keyword", "location": "location.keyword"}


def _wildcard_escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace("*", "\\*").replace("?", "\\?")


class ElasticsearchItemRepository:
    """Read-only item store backed by the items index."""

    def __init__(self, es: AsyncElasticsearch, index: str, *, geo_capable: bool = True):
        self.es = es
        self.index = index
        self.geo_capable = geo_capable

    async def count(self, filter: Filter) -> int:
        try:
            response = await self.es.count(index=self.index, query=self.build_query(filter))
        except (ApiError, TransportError) as exc:
            raise SearchIndexUnavailableError() from exc
        body = getattr(response, "body", response)
        return int(body["count"])

    async def find(
        self,
        filter: Filter,
        sort: SortSpec,
        *,
        skip: int,
        limit: int,
        projection: Sequence[str] | None = None,
        expand: Sequence[str] = (),
    ) -> list[dict[str, Any]]:
        """One page of records from `_source`. Relations are not indexed, so `expand` is ignored."""
        fields = RECORD_FIELDS if projection is None else tuple(
            f for f in RECORD_FIELDS if f == "id" or f in set(projection)
        )
        try:
            response = await self.es.search(
                index=self.index,
                query=self.build_query(filter),
                sort=self.build_sort(filter, sort),
                from_=skip,
                size=limit,
                source_includes=list(fields),
            )
        except (ApiError, TransportError) as exc:
            raise SearchIndexUnavailableError() from exc
        body = getattr(response, "body", response)
        return [
            {name: hit["_source"].get(name) for name in fields}
            for hit in body["hits"]["hits"]
        ]

    # --- Query DSL ---

    def build_query(self, filter: Filter) -> dict[str, Any]:
        """Text predicates score (`must`); everything else only filters."""
        must: list[dict[str, Any]] = []
        filters: list[dict[str, Any]] = []
        for predicate in filter.predicates:
            if isinstance(predicate, TextPredicate):
                must.append(self._text_clause(predicate))
            else:
                filters.extend(self._filter_clauses(predicate))
        if not must and not filters:
            return {"match_all": {}}
        query: dict[str, Any] = {}
        if must:
            query["must"] = must
        if filters:
            query["filter"] = filters
        return {"bool": query}

    @staticmethod
    def _text_clause(predicate: TextPredicate) -> dict[str, Any]:
        return {
            "multi_match": {
                "query": predicate.query,
                "fields": [f"{name}^{weight}" for name, weight in predicate.weights],
            }
        }

    def _filter_clauses(self, predicate: Predicate) -> list[dict[str, Any]]:
        if isinstance(predicate, EqualityPredicate):
            return [{"term": {predicate.field: predicate.value}}]
        if isinstance(predicate, ComparisonPredicate):
            if predicate.operator == "in":
                return [{"terms": {predicate.field: list(predicate.value)}}]
            return [{"range": {predicate.field: {predicate.operator: predicate.value}}}]
        if isinstance(predicate, SubstringPredicate):
            pattern = f"*{_wildcard_escape(predicate.value)}*"
            should = [
                {"wildcard": {KEYWORD_FIELDS.get(name, name): {"value": pattern, "case_insensitive": True}}}
                for name in predicate.fields
            ]
            return [{"bool": {"should": should, "minimum_should_match": 1}}]
        if isinstance(predicate, AvailabilityGate):
            return [
                {"term": {"available": predicate.available}},
                {"term": {"moderation_status": predicate.moderation_status}},
            ]
        if isinstance(predicate, GeoPredicate):
            if not self.geo_capable:
                raise GeoCapabilityError()
            return [
                {
                    "geo_distance": {
                        "distance": f"{predicate.max_distance_m}m",
                        "coordinates": {"lat": predicate.latitude, "lon": predicate.longitude},
                    }
                }
            ]
        raise TypeError(f"Unsupported predicate: {predicate!r}")

    def build_sort(self, filter: Filter, sort: SortSpec) -> list[dict[str, Any]]:
        """Same policy as the database store: explicit keys, else nearest-first under a geo
        filter with an empty sort, else newest-first. Id breaks ties."""
        clauses: list[dict[str, Any]] = []
        for key in sort:
            field = SORT_FIELDS.get(key.field)
            if field is None:
                logger.debug("Ignoring sort key %r for index %s", key.field, self.index)
                continue
            clauses.append({field: {"order": "desc" if key.descending else "asc"}})
        if not clauses:
            geo = filter.geo
            if not sort and geo is not None:
                clauses.append(
                    {
                        "_geo_distance": {
                            "coordinates": {"lat": geo.latitude, "lon": geo.longitude},
                            "order": "asc",
                            "unit": "m",
                        }
                    }
                )
            else:
                clauses.append({"created_at": {"order": "desc"}})
        clauses.append({"id": {"order": "asc"}})
        return clauses
