"""
Query compositor - turns a SearchRequest into a Filter and a SortSpec.
Challenge: Combine text, categorical, location and proximity filters with
graceful degradation for malformed optional input.
Design: Pure functions; no store access and no shared state.
"""

import logging
from dataclasses import dataclass

from app.core.errors import GeoCapabilityError
from app.schemas.search import SearchRequest
from app.search.geo import MAX_RADIUS_KM, parse_coordinate, parse_radius_km
from app.search.predicates import (
    OLDEST,
    RECENT,
    RELEVANCE,
    STORE_ORDER,
    TITLE_ASC,
    TITLE_DESC,
    AvailabilityGate,
    EqualityPredicate,
    Filter,
    FilterBuilder,
    GeoPredicate,
    SortSpec,
    SubstringPredicate,
    TextPredicate,
)

logger = logging.getLogger(__name__)

DEFAULT_RADIUS_KM = 10

_SORTS: dict[str, SortSpec] = {
    "recent": RECENT,
    "oldest": OLDEST,
    "az": TITLE_ASC,
    "za": TITLE_DESC,
}


@dataclass(frozen=True)
class CompiledQuery:
    filter: Filter
    sort: SortSpec


def build_geo_predicate(
    lat: str | None,
    lng: str | None,
    distance: str | None,
    default_radius_km: int = DEFAULT_RADIUS_KM,
    max_radius_km: int = MAX_RADIUS_KM,
) -> GeoPredicate | None:
    """Proximity predicate, or None unless both coordinates parse and are in range."""
    latitude = parse_coordinate(lat, 90)
    longitude = parse_coordinate(lng, 180)
    if latitude is None or longitude is None:
        if lat is not None or lng is not None:
            logger.debug("Ignoring geo filter: lat=%r lng=%r", lat, lng)
        return None
    radius_km = parse_radius_km(distance, default_radius_km, max_radius_km)
    return GeoPredicate(latitude=latitude, longitude=longitude, max_distance_m=radius_km * 1000)


def resolve_sort(sort: str, has_text: bool, has_geo: bool) -> SortSpec:
    """Map a search sort name to a SortSpec. Unsatisfiable or unknown sorts fall back to recent."""
    if sort == "relevance":
        return RELEVANCE if has_text else RECENT
    if sort == "nearest":
        # The proximity predicate already orders nearest-first
        return STORE_ORDER if has_geo else RECENT
    return _SORTS.get(sort, RECENT)


def compose(
    request: SearchRequest,
    *,
    geo_capable: bool = True,
    default_radius_km: int = DEFAULT_RADIUS_KM,
    max_radius_km: int = MAX_RADIUS_KM,
) -> CompiledQuery:
    """Compile a search request. Raises GeoCapabilityError only for geo requests on a store without geo."""
    if request.wants_geo and not geo_capable:
        raise GeoCapabilityError()

    builder = FilterBuilder()

    text = request.text
    if text:
        builder.add(TextPredicate(text))
    if request.category is not None:
        builder.add(EqualityPredicate("category", request.category.value))
    if request.condition is not None:
        builder.add(EqualityPredicate("condition", request.condition.value))
    if request.location and request.location.strip():
        builder.add(SubstringPredicate(("location",), request.location.strip()))

    geo = build_geo_predicate(request.lat, request.lng, request.distance, default_radius_km, max_radius_km)
    if geo is not None:
        builder.add(geo)

    builder.add(AvailabilityGate())

    compiled = CompiledQuery(
        filter=builder.build(),
        sort=resolve_sort(request.sort, has_text=bool(text), has_geo=geo is not None),
    )
    logger.debug("Compiled search: filter=%s sort=%s", compiled.filter, compiled.sort)
    return compiled
