"""
Pytest fixtures - test DB, client, auth and item factories (TDD/BDD support).
Challenge: Isolated tests; each test gets a fresh in-memory database.
"""

import os

# Must be set before app modules build the engine from settings
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("SEARCH_BACKEND", "database")

from collections.abc import AsyncGenerator
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.core.security import create_access_token
from app.db.base import Base
from app.db.models import Item, User
from app.db.models.item import Category, Condition, ModerationStatus
from app.db.models.user import ROLE_ADMIN
from app.db.session import get_db
from app.main import app

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# Fixed clock so "recent" ordering is deterministic
BASE_TIME = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session(engine) -> AsyncGenerator[AsyncSession, None]:
    async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with async_session() as s:
        yield s


@pytest_asyncio.fixture
async def client(session: AsyncSession):
    async def override_get_db():
        yield session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def test_user(session: AsyncSession) -> User:
    user = User(email="test@example.com", full_name="Test User")
    session.add(user)
    await session.flush()
    await session.refresh(user)
    return user


@pytest_asyncio.fixture
async def admin_user(session: AsyncSession) -> User:
    user = User(email="admin@example.com", full_name="Admin User", role=ROLE_ADMIN)
    session.add(user)
    await session.flush()
    await session.refresh(user)
    return user


@pytest.fixture
def auth_headers(test_user: User) -> dict:
    token = create_access_token(test_user.id)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin_headers(admin_user: User) -> dict:
    token = create_access_token(admin_user.id)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def make_item(session: AsyncSession, test_user: User):
    """Factory for persisted items. Defaults pass the availability gate.

    `age_minutes` sets created_at relative to BASE_TIME: larger is older.
    """

    async def factory(
        title: str = "Item",
        *,
        description: str = "",
        category: Category = Category.OTHER,
        condition: Condition = Condition.GOOD,
        location: str = "Madrid",
        latitude: float | None = None,
        longitude: float | None = None,
        available: bool = True,
        moderation_status: ModerationStatus = ModerationStatus.APPROVED,
        owner: User | None = None,
        age_minutes: int = 0,
    ) -> Item:
        created = BASE_TIME - timedelta(minutes=age_minutes)
        item = Item(
            title=title,
            description=description,
            category=category.value,
            condition=condition.value,
            location=location,
            latitude=latitude,
            longitude=longitude,
            available=available,
            moderation_status=moderation_status.value,
            owner_id=(owner or test_user).id,
            created_at=created,
            updated_at=created,
        )
        session.add(item)
        await session.flush()
        await session.refresh(item)
        return item

    return factory
