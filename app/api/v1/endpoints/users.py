"""
User listing endpoint - the generic result pager over a second resource (admin only).
"""

from fastapi import APIRouter, Request

from app.config import get_settings
from app.core.dependencies import AdminUser
from app.db.repositories.user_repository import UserRepository
from app.db.session import DbSession
from app.search.predicates import FilterBuilder
from app.search.result_pager import (
    PageRequest,
    ResultPager,
    parse_projection,
    parse_query_filters,
    resolve_sort_param,
)

router = APIRouter()


def _parse_bool(raw: str) -> bool:
    value = raw.strip().lower()
    if value in ("true", "1", "yes"):
        return True
    if value in ("false", "0", "no"):
        return False
    raise ValueError(f"expected a boolean, got {raw!r}")


USER_FILTER_FIELDS = {"role": str, "email": str, "is_active": _parse_bool}


@router.get("")
async def list_users(request: Request, session: DbSession, admin: AdminUser):
    """Paged users. GET /users?role=admin&select=email&expand=items&sort=oldest."""
    settings = get_settings()
    params = request.query_params
    pager = ResultPager(UserRepository(session), timeout_seconds=settings.search_timeout_seconds)
    result = await pager.paginate(
        FilterBuilder().extend(parse_query_filters(params, USER_FILTER_FIELDS)).build(),
        resolve_sort_param(params.get("sort")),
        PageRequest.parse(
            params.get("page"),
            params.get("limit"),
            default_limit=settings.default_page_size,
            max_limit=settings.max_page_size,
        ),
        projection=parse_projection(params.get("select")),
        expand=tuple(name.strip() for name in params.get("expand", "").split(",") if name.strip()),
    )
    return result.to_envelope()
