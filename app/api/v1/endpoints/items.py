"""
Item read endpoints - listing, search, nearby and geo index maintenance.
Challenge: Lenient query parsing, uniform paginated envelope, privileged maintenance.
Design: Thin controller; SearchService holds the logic.
"""

from fastapi import APIRouter, Query, Request

from app.core.dependencies import AdminUser, SearchServiceDep
from app.db.models.item import Category, Condition
from app.schemas.search import SearchRequest

router = APIRouter()


@router.get("")
async def list_items(request: Request, service: SearchServiceDep):
    """Available items. Filters from the query string: GET /items?category=books&owner_id[in]=1,2&sort=-created_at&select=title&page=2."""
    return await service.list_items(request.query_params)


@router.get("/search")
async def search_items(
    service: SearchServiceDep,
    q: str | None = Query(None, description="Free text over title and description"),
    category: Category | None = None,
    condition: Condition | None = None,
    location: str | None = Query(None, description="Substring of the item's location"),
    lat: str | None = None,
    lng: str | None = None,
    distance: str | None = Query(None, description="Radius in km (default 10)"),
    sort: str = Query("recent", description="recent | oldest | az | za | relevance | nearest"),
    page: str | None = None,
    limit: str | None = None,
):
    """Search available items. Malformed geo or paging values are ignored, never rejected."""
    search_request = SearchRequest(
        q=q,
        category=category,
        condition=condition,
        location=location,
        lat=lat,
        lng=lng,
        distance=distance,
        sort=sort,
        page=page,
        limit=limit,
    )
    return await service.search(search_request)


@router.get("/nearby")
async def nearby_items(
    service: SearchServiceDep,
    lat: str | None = None,
    lng: str | None = None,
    distance: str | None = None,
    limit: str | None = None,
):
    """Available items near a point, nearest first. lat and lng are required (400 otherwise)."""
    return await service.nearby(lat, lng, distance, limit)


@router.post("/geo-index")
async def update_geo_index(service: SearchServiceDep, admin: AdminUser):
    """Create the geospatial index if missing (admin only, idempotent)."""
    await service.ensure_geo_index()
    return {"success": True, "message": "Geospatial index created"}
