"""
Base repository - generic filtered, sorted, paged reads (SOLID: Interface Segregation, Dependency Inversion).
Challenge: Compile the shared predicate vocabulary to SQL once, for every model.
Design: Implements the pager's count/find protocol; subclasses add model specifics (geo, relations).
"""

import logging
from collections.abc import Mapping, Sequence
from typing import Any, Generic, TypeVar

from sqlalchemy import ColumnElement, and_, func, inspect, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import load_only, selectinload

from app.core.errors import GeoCapabilityError, StoreUnavailableError
from app.db.base import Base
from app.search.predicates import (
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

# Driver errors not wrapped by SQLAlchemy (e.g. an unbindable integer) count as store failures
STORE_ERRORS = (SQLAlchemyError, OverflowError)

ModelType = TypeVar("ModelType", bound=Base)


class BaseRepository(Generic[ModelType]):
    """Generic async repository. Subclasses declare their public fields and relations."""

    # Fields returned in records; also the fields a projection may select.
    record_fields: tuple[str, ...] = ("id",)
    # Record fields computed from other columns (e.g. coordinates from lat/lng).
    derived_fields: Mapping[str, tuple[str, ...]] = {}
    # Relation name -> fields of the related record.
    expansions: Mapping[str, tuple[str, ...]] = {}

    def __init__(self, session: AsyncSession, model: type[ModelType]):
        self.session = session
        self.model = model
        self._columns = {c.key for c in inspect(model).column_attrs}

    async def get_by_id(self, id: int) -> ModelType | None:
        """Fetch single entity by primary key."""
        result = await self.session.execute(select(self.model).where(self.model.id == id))
        return result.scalar_one_or_none()

    async def add(self, entity: ModelType) -> ModelType:
        """Persist new entity. Caller commits session."""
        self.session.add(entity)
        await self.session.flush()  # Get ID without committing
        await self.session.refresh(entity)
        return entity

    # --- Pager protocol ---

    async def count(self, filter: Filter) -> int:
        """Number of rows matching the filter, ignoring paging."""
        stmt = select(func.count()).select_from(self.model).where(*self._where(filter))
        try:
            result = await self.session.execute(stmt)
        except STORE_ERRORS as exc:
            raise StoreUnavailableError() from exc
        return result.scalar_one()

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
        """One page of records. Relations in `expand` are loaded in one extra query (no N+1)."""
        fields = self._selected_fields(projection)
        stmt = (
            select(self.model)
            .where(*self._where(filter))
            .order_by(*self._order_by(filter, sort))
            .offset(skip)
            .limit(limit)
        )
        relations = [name for name in expand if name in self.expansions]
        if projection is not None:
            stmt = stmt.options(load_only(*self._columns_for(fields, relations)))
        for name in relations:
            stmt = stmt.options(selectinload(getattr(self.model, name)))
        try:
            result = await self.session.execute(stmt)
        except STORE_ERRORS as exc:
            raise StoreUnavailableError() from exc
        return [self._to_record(entity, fields, relations) for entity in result.scalars().all()]

    # --- Filter compilation ---

    def _where(self, filter: Filter) -> list[ColumnElement[bool]]:
        return [self._clause(predicate) for predicate in filter.predicates]

    def _clause(self, predicate: Predicate) -> ColumnElement[bool]:
        if isinstance(predicate, EqualityPredicate):
            return self._column(predicate.field) == predicate.value
        if isinstance(predicate, ComparisonPredicate):
            return self._comparison(predicate)
        if isinstance(predicate, SubstringPredicate):
            return self._substring(predicate.fields, predicate.value)
        if isinstance(predicate, TextPredicate):
            # No text index in the database: substring match on any weighted field
            return self._substring(predicate.fields, predicate.query)
        if isinstance(predicate, AvailabilityGate):
            return and_(
                self._column("available") == predicate.available,
                self._column("moderation_status") == predicate.moderation_status,
            )
        if isinstance(predicate, GeoPredicate):
            return self._geo_clause(predicate)
        raise TypeError(f"Unsupported predicate: {predicate!r}")

    def _comparison(self, predicate: ComparisonPredicate) -> ColumnElement[bool]:
        column = self._column(predicate.field)
        value = predicate.value
        if predicate.operator == "in":
            return column.in_(list(value))
        if predicate.operator == "gt":
            return column > value
        if predicate.operator == "gte":
            return column >= value
        if predicate.operator == "lt":
            return column < value
        return column <= value

    def _substring(self, fields: Sequence[str], value: str) -> ColumnElement[bool]:
        return or_(*(self._column(name).icontains(value, autoescape=True) for name in fields))

    def _geo_clause(self, predicate: GeoPredicate) -> ColumnElement[bool]:
        raise GeoCapabilityError()

    def _geo_order(self, predicate: GeoPredicate) -> list[ColumnElement[Any]]:
        raise GeoCapabilityError()

    # --- Sorting ---

    def _order_by(self, filter: Filter, sort: SortSpec) -> list[ColumnElement[Any]]:
        """Explicit keys on real columns; store order (nearest-first) for an empty sort under a
        geo filter; newest-first when nothing usable remains. Primary key breaks ties."""
        clauses: list[ColumnElement[Any]] = []
        for key in sort:
            if key.field not in self._columns:
                logger.debug("Ignoring sort key %r for %s", key.field, self.model.__name__)
                continue
            column = getattr(self.model, key.field)
            clauses.append(column.desc() if key.descending else column.asc())
        if not clauses:
            geo = filter.geo
            if not sort and geo is not None:
                clauses = self._geo_order(geo)
            else:
                clauses = self._default_order()
        clauses.append(self.model.id.asc())
        return clauses

    def _default_order(self) -> list[ColumnElement[Any]]:
        if "created_at" in self._columns:
            return [self.model.created_at.desc()]
        return []

    # --- Records ---

    def _column(self, name: str):
        if name not in self._columns:
            raise ValueError(f"Unknown field {name!r} on {self.model.__name__}")
        return getattr(self.model, name)

    def _selected_fields(self, projection: Sequence[str] | None) -> tuple[str, ...]:
        if projection is None:
            return self.record_fields
        wanted = set(projection)
        return tuple(f for f in self.record_fields if f == "id" or f in wanted)

    def _columns_for(self, fields: Sequence[str], relations: Sequence[str] = ()) -> list:
        names: list[str] = []
        for name in fields:
            names.extend(self.derived_fields.get(name, (name,)))
        # Relation loaders need the join columns even when not selected
        mapper = inspect(self.model)
        for relation in relations:
            names.extend(column.key for column in mapper.relationships[relation].local_columns)
        return [getattr(self.model, name) for name in dict.fromkeys(names) if name in self._columns]

    def _to_record(self, entity: ModelType, fields: Sequence[str], relations: Sequence[str] = ()) -> dict[str, Any]:
        record = {name: getattr(entity, name) for name in fields}
        for name in relations:
            related = getattr(entity, name)
            if related is None:
                record[name] = None
            elif isinstance(related, list):
                record[name] = [self._related_record(name, r) for r in related]
            else:
                record[name] = self._related_record(name, related)
        return record

    def _related_record(self, relation: str, entity: Any) -> dict[str, Any]:
        return {name: getattr(entity, name) for name in self.expansions[relation]}
