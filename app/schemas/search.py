"""Search request schema - raw query-string parameters for item search."""

from pydantic import BaseModel

from app.db.models.item import Category, Condition


class SearchRequest(BaseModel):
    """Parameters of GET /items/search.

    Geo and paging values stay raw strings: malformed values are dropped or
    defaulted by the compositor and the pager instead of failing the request.
    """

    q: str | None = None
    category: Category | None = None
    condition: Condition | None = None
    location: str | None = None
    lat: str | None = None
    lng: str | None = None
    distance: str | None = None
    sort: str = "recent"
    page: str | None = None
    limit: str | None = None

    @property
    def text(self) -> str:
        return (self.q or "").strip()

    @property
    def wants_geo(self) -> bool:
        """True when any part of a proximity search was asked for."""
        return self.sort == "nearest" or _present(self.lat) or _present(self.lng)


def _present(value: str | None) -> bool:
    return value is not None and value.strip() != ""
