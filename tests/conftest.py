"""Pytest configuration and fixtures."""

import os

# Settings are read when app.core.config is first imported, so the test
# environment must be in place before any app import
os.environ["DEBUG"] = "true"
os.environ.setdefault("OTEL_ENABLED", "false")
os.environ.setdefault("ALLOWED_ORIGINS", "http://localhost:5173")
os.environ.setdefault("SECRET_DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("AUTH0_DOMAIN", "test.auth0.com")
os.environ.setdefault("AUTH0_API_AUDIENCE", "test-audience")
os.environ.setdefault("AUTH0_ALGORITHMS", "RS256")

import uuid
from collections.abc import AsyncGenerator, Generator

import httpx
import pytest
from app.api.dependencies import get_ztm_service
from app.core.auth import clear_jwks_cache, set_mock_jwks
from app.core.cache import FeedCache
from app.core.database import enable_sqlite_foreign_keys, get_db
from app.main import app
from app.models import Base
from app.services.ztm_service import ZtmService
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from tests.helpers.clock import MutableClock
from tests.helpers.jwt_helpers import MockJWTGenerator
from tests.helpers.ztm_feed import DEPARTURES_URL, STOPS_URL, FakeZtmFeed

pytest_plugins = ["tests.fixtures.otel"]


# ==================== Database ====================


@pytest.fixture
async def db_engine() -> AsyncGenerator[AsyncEngine]:
    """
    Fresh in-memory SQLite database per test.

    StaticPool keeps a single connection so every session sees the same
    in-memory database. Tables, the name index and the position/quota
    triggers come from ``Base.metadata.create_all``.

    Yields:
        Async engine bound to the test database
    """
    engine = create_async_engine("sqlite+aiosqlite://", poolclass=StaticPool)
    enable_sqlite_foreign_keys(engine)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory configured like the application's."""
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def db_session(session_factory: async_sessionmaker[AsyncSession]) -> AsyncGenerator[AsyncSession]:
    """
    Database session for service-level tests.

    Yields:
        Async SQLAlchemy session
    """
    async with session_factory() as session:
        yield session


# ==================== Upstream Feed ====================


@pytest.fixture
def feed() -> FakeZtmFeed:
    """Fake ZTM endpoints; tests configure responses per stop."""
    return FakeZtmFeed()


@pytest.fixture
def feed_clock() -> MutableClock:
    """Controllable clock for the feed cache."""
    return MutableClock()


@pytest.fixture
async def feed_cache(feed_clock: MutableClock) -> AsyncGenerator[FeedCache]:
    """
    Feed cache driven by ``feed_clock``.

    Cleared before and after the test: the in-memory backend may share its
    store between instances.

    Yields:
        Empty feed cache
    """
    cache = FeedCache(clock=feed_clock)
    await cache.clear()
    yield cache
    await cache.clear()


@pytest.fixture
async def ztm_service(feed: FakeZtmFeed, feed_cache: FeedCache) -> AsyncGenerator[ZtmService]:
    """
    Feed gateway wired to the fake feed through httpx.MockTransport.

    Yields:
        ZtmService with default TTLs and timeouts
    """
    async with httpx.AsyncClient(transport=feed.transport()) as client:
        yield ZtmService(client, feed_cache, stops_url=STOPS_URL, departures_url=DEPARTURES_URL)


# ==================== HTTP Client ====================


@pytest.fixture
async def async_client(
    session_factory: async_sessionmaker[AsyncSession],
    ztm_service: ZtmService,
) -> AsyncGenerator[AsyncClient]:
    """
    Async HTTP client against the app with the test database and fake feed.

    Yields:
        Async HTTP client with ASGI transport
    """

    async def override_get_db() -> AsyncGenerator[AsyncSession]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_ztm_service] = lambda: ztm_service

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ==================== Auth ====================


@pytest.fixture(scope="session", autouse=True)
def setup_mock_jwks() -> None:
    """Install the test JWKS so DEBUG-mode verification accepts MockJWTGenerator tokens."""
    set_mock_jwks(MockJWTGenerator.get_mock_jwks())


@pytest.fixture
def reset_jwks_cache() -> Generator[None]:
    """
    Reset the provider JWKS cache before and after a test.

    Yields:
        None
    """
    clear_jwks_cache()
    yield
    clear_jwks_cache()


@pytest.fixture
def user_id() -> str:
    """Unique identity-provider subject for the calling user."""
    return f"auth0|user_{uuid.uuid4().hex[:8]}"


@pytest.fixture
def other_user_id() -> str:
    """Unique subject for a second, unrelated user."""
    return f"auth0|other_{uuid.uuid4().hex[:8]}"


@pytest.fixture
def auth_headers(user_id: str) -> dict[str, str]:
    """Authorization header for ``user_id``."""
    return {"Authorization": f"Bearer {MockJWTGenerator.generate(user_id)}"}


@pytest.fixture
def other_auth_headers(other_user_id: str) -> dict[str, str]:
    """Authorization header for ``other_user_id``."""
    return {"Authorization": f"Bearer {MockJWTGenerator.generate(other_user_id)}"}
