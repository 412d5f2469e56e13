"""
Filter and sort vocabulary shared by the query compositor, the pager and the stores.
Challenge: One closed set of predicate types every store knows how to compile.
Design: Immutable dataclasses; a Filter is the conjunction of its predicates.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any, Union

# Field weights for text search: titles rank above descriptions.
TEXT_WEIGHTS: Mapping[str, int] = {"title": 10, "description": 5}

# Pseudo-field for sorting by text relevance score.
RELEVANCE_FIELD = "_score"

COMPARISON_OPERATORS = ("gt", "gte", "lt", "lte", "in")


@dataclass(frozen=True)
class TextPredicate:
    """Free-text match across weighted fields."""

    query: str
    # (field, weight) pairs
    weights: tuple[tuple[str, int], ...] = tuple(TEXT_WEIGHTS.items())

    @property
    def fields(self) -> tuple[str, ...]:
        return tuple(name for name, _ in self.weights)


@dataclass(frozen=True)
class EqualityPredicate:
    field: str
    value: Any


@dataclass(frozen=True)
class ComparisonPredicate:
    field: str
    operator: str
    value: Any

    def __post_init__(self) -> None:
        if self.operator not in COMPARISON_OPERATORS:
            raise ValueError(f"Unsupported operator: {self.operator}")


@dataclass(frozen=True)
class SubstringPredicate:
    """Case-insensitive substring match against any of the fields."""

    fields: tuple[str, ...]
    value: str


@dataclass(frozen=True)
class GeoPredicate:
    """Within max_distance_m of the point. Stores yield nearest-first order for it."""

    latitude: float
    longitude: float
    max_distance_m: int


@dataclass(frozen=True)
class AvailabilityGate:
    """Only available, approved records. Always applied to item searches."""

    available: bool = True
    moderation_status: str = "approved"


Predicate = Union[
    TextPredicate,
    EqualityPredicate,
    ComparisonPredicate,
    SubstringPredicate,
    GeoPredicate,
    AvailabilityGate,
]


@dataclass(frozen=True)
class Filter:
    """Conjunction of predicates. An empty filter matches everything."""

    predicates: tuple[Predicate, ...] = ()

    def of_type(self, kind: type) -> list:
        return [p for p in self.predicates if isinstance(p, kind)]

    @property
    def text(self) -> TextPredicate | None:
        found = self.of_type(TextPredicate)
        return found[0] if found else None

    @property
    def geo(self) -> GeoPredicate | None:
        found = self.of_type(GeoPredicate)
        return found[0] if found else None

    @property
    def is_gated(self) -> bool:
        return bool(self.of_type(AvailabilityGate))

    def without(self, kind: type) -> "Filter":
        return Filter(tuple(p for p in self.predicates if not isinstance(p, kind)))


class FilterBuilder:
    """Accumulates predicates and builds an immutable Filter."""

    def __init__(self) -> None:
        self._predicates: list[Predicate] = []

    def add(self, predicate: Predicate) -> "FilterBuilder":
        self._predicates.append(predicate)
        return self

    def extend(self, predicates: Iterable[Predicate]) -> "FilterBuilder":
        self._predicates.extend(predicates)
        return self

    def build(self) -> Filter:
        # At most one gate, however many times it was added
        seen_gate = False
        predicates: list[Predicate] = []
        for predicate in self._predicates:
            if isinstance(predicate, AvailabilityGate):
                if seen_gate:
                    continue
                seen_gate = True
            predicates.append(predicate)
        return Filter(tuple(predicates))


@dataclass(frozen=True)
class SortKey:
    field: str
    descending: bool = False

    @classmethod
    def parse(cls, token: str) -> "SortKey":
        """'-created_at' -> created_at descending."""
        token = token.strip()
        if token.startswith("-"):
            return cls(token[1:], descending=True)
        return cls(token.lstrip("+"))

    def __str__(self) -> str:
        return f"-{self.field}" if self.descending else self.field


# Empty tuple means "store order" (nearest-first for geo filters).
SortSpec = tuple[SortKey, ...]

RECENT: SortSpec = (SortKey("created_at", descending=True),)
OLDEST: SortSpec = (SortKey("created_at"),)
TITLE_ASC: SortSpec = (SortKey("title"),)
TITLE_DESC: SortSpec = (SortKey("title", descending=True),)
RELEVANCE: SortSpec = (SortKey(RELEVANCE_FIELD, descending=True),)
STORE_ORDER: SortSpec = ()

# Aliases accepted by the generic pager's `sort` parameter.
SORT_ALIASES: Mapping[str, SortSpec] = {
    "recent": RECENT,
    "oldest": OLDEST,
    "title_asc": TITLE_ASC,
    "title_desc": TITLE_DESC,
}


def parse_sort(value: str) -> SortSpec:
    """Comma-separated sort keys: 'category,-created_at'."""
    return tuple(SortKey.parse(token) for token in value.split(",") if token.strip().lstrip("+-"))
