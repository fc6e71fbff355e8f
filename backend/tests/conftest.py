import os
from collections.abc import AsyncGenerator
from datetime import datetime, timezone

import pytest
from sqlalchemy import select
from sqlalchemy.pool import NullPool
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

# Set test env vars before importing pagestats modules
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///./test.db"

from pagestats.core.config import Settings  # noqa: E402
from pagestats.db.base import Base  # noqa: E402
from pagestats.db.session import install_sqlite_locking  # noqa: E402
from pagestats.schemas.hit import HitIn  # noqa: E402
from pagestats.services.store import StatsStore  # noqa: E402

import pagestats.models  # noqa: E402,F401  registers all tables for create_all

# Test database URL (use SQLite for tests)
TEST_DATABASE_URL = "sqlite+aiosqlite:///./test.db"

# NullPool: every test runs on its own event loop
engine = create_async_engine(TEST_DATABASE_URL, echo=False, poolclass=NullPool)
install_sqlite_locking(engine)
TestingSessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture(autouse=True)
async def setup_database():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
def test_settings() -> Settings:
    return Settings(DATABASE_URL=TEST_DATABASE_URL, MERGE_TIMEOUT_SECONDS=None)


@pytest.fixture
def store(test_settings: Settings) -> StatsStore:
    return StatsStore(TestingSessionLocal, test_settings)


@pytest.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    async with TestingSessionLocal() as session:
        yield session


def make_hit(**overrides) -> HitIn:
    """Build a hit with sensible defaults."""
    values = {
        "tenant_id": None,
        "fingerprint": "fp-1",
        "path": "/",
        "url": "https://example.com/",
        "language": "en",
        "user_agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) Chrome/120.0.0.0",
        "ref": "https://google.com",
        "os": "Windows",
        "os_version": "10",
        "browser": "Chrome",
        "browser_version": "120.0",
        "desktop": True,
        "mobile": False,
        "time": datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc),
    }
    values.update(overrides)
    return HitIn(**values)


async def fetch_all(model) -> list:
    """Read every row of ``model`` on a fresh session."""
    async with TestingSessionLocal() as session:
        result = await session.execute(select(model).order_by(model.id))
        return list(result.scalars().all())
