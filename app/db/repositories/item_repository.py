"""
Item repository - item reads, proximity filtering and the coordinates index (SOLID: Single Responsibility).
Challenge: Geo search without a spatial extension; avoid N+1 when loading owners.
"""

import logging
from typing import Any

from sqlalchemy import ColumnElement, and_
from sqlalchemy.exc import SQLAlchemyError

from app.core.errors import GeoCapabilityError, IndexMaintenanceError
from app.db.models.item import GEO_INDEX, Item
from app.db.repositories.base_repository import BaseRepository
from app.search.geo import bounding_box, planar_distance_sq_m
from app.search.predicates import GeoPredicate

logger = logging.getLogger(__name__)


class ItemRepository(BaseRepository[Item]):
    """Item-specific queries. Proximity uses a bounding box plus an equirectangular distance bound."""

    record_fields = (
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
    derived_fields = {"coordinates": ("latitude", "longitude")}
    expansions = {"owner": ("id", "full_name")}

    def __init__(self, session, *, geo_capable: bool = True):
        super().__init__(session, Item)
        self.geo_capable = geo_capable

    def _geo_clause(self, predicate: GeoPredicate) -> ColumnElement[bool]:
        if not self.geo_capable:
            raise GeoCapabilityError()
        (min_lat, max_lat), lng_range = bounding_box(
            predicate.latitude, predicate.longitude, predicate.max_distance_m
        )
        clauses = [
            Item.latitude.is_not(None),
            Item.longitude.is_not(None),
            Item.latitude.between(min_lat, max_lat),
        ]
        if lng_range is not None:
            clauses.append(Item.longitude.between(*lng_range))
        clauses.append(self._distance_sq(predicate) <= float(predicate.max_distance_m) ** 2)
        return and_(*clauses)

    def _geo_order(self, predicate: GeoPredicate) -> list[ColumnElement[Any]]:
        if not self.geo_capable:
            raise GeoCapabilityError()
        return [self._distance_sq(predicate).asc()]

    @staticmethod
    def _distance_sq(predicate: GeoPredicate):
        return planar_distance_sq_m(Item.latitude, Item.longitude, predicate.latitude, predicate.longitude)

    async def ensure_geo_index(self) -> None:
        """Create the coordinates index if missing. Idempotent."""
        try:
            conn = await self.session.connection()
            await conn.run_sync(lambda sync_conn: GEO_INDEX.create(sync_conn, checkfirst=True))
        except SQLAlchemyError as exc:
            raise IndexMaintenanceError() from exc
        logger.info("Coordinates index %s is present", GEO_INDEX.name)
