"""
Async database session management.
Challenge: Connection pooling, request-scoped sessions, bounded waits for a connection.
Design: Dependency injection for request-scoped sessions (no connection leaks).
"""

from collections.abc import AsyncGenerator
from typing import Annotated, Any

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.config import get_settings

settings = get_settings()


def _engine_options(url: str) -> dict[str, Any]:
    """Pool settings; checkout waits no longer than a search may take."""
    options: dict[str, Any] = {"echo": settings.debug, "pool_pre_ping": True}
    if not url.startswith("sqlite"):
        options.update(
            pool_size=10,
            max_overflow=20,
            pool_timeout=settings.search_timeout_seconds,
        )
    return options


engine = create_async_engine(settings.database_url, **_engine_options(settings.database_url))

# Session factory: one session per request
async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield a database session per request. Ensures rollback on error, close on exit."""
    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def dispose_engine() -> None:
    """Close pooled connections on shutdown."""
    await engine.dispose()


# Type alias for FastAPI dependency injection
DbSession = Annotated[AsyncSession, Depends(get_db)]
