"""
FastAPI dependencies - injection for DB, auth and the search service (SOLID: Dependency Inversion).
Challenge: Reusable auth and role checks, consistent error responses.
"""

from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.config import get_settings
from app.core.security import decode_access_token
from app.db.models.user import User
from app.db.repositories.item_repository import ItemRepository
from app.db.repositories.user_repository import UserRepository
from app.db.session import DbSession
from app.search.elasticsearch_client import get_elasticsearch
from app.services.search_service import SearchService

security = HTTPBearer(auto_error=False)


async def get_current_user(
    session: DbSession,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
) -> User:
    """Resolve JWT to an active user. Raises 401 if missing or invalid."""
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    payload = decode_access_token(credentials.credentials)
    if not payload or "sub" not in payload:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )
    repo = UserRepository(session)
    user = await repo.get_by_id(int(payload["sub"]))
    if not user or not user.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found or inactive")
    return user


async def get_admin_user(user: Annotated[User, Depends(get_current_user)]) -> User:
    """Require the admin role. Raises 403 for other roles."""
    if not user.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not authorized to perform this action")
    return user


async def get_search_service(session: DbSession) -> SearchService:
    """Factory for the search service with repository and index client injection."""
    settings = get_settings()
    es = await get_elasticsearch() if settings.search_backend == "elasticsearch" else None
    return SearchService(
        ItemRepository(session, geo_capable=settings.geo_search_enabled),
        settings=settings,
        es=es,
    )


CurrentUser = Annotated[User, Depends(get_current_user)]
AdminUser = Annotated[User, Depends(get_admin_user)]
SearchServiceDep = Annotated[SearchService, Depends(get_search_service)]
