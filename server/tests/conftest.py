"""
Shared test fixtures.

Services run against a real in-memory SQLite database through aiosqlite;
only third-party HTTP is mocked (with respx).
"""
import os

# Settings are read once at import time, so the test environment has to be in
# place before anything from cryptoledger is imported.
os.environ["ENVIRONMENT"] = "testing"
os.environ["ENABLE_CACHING"] = "false"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["ENABLE_PRICE_ENRICHMENT"] = "true"

from decimal import Decimal
from typing import AsyncGenerator

import httpx
import pytest
from httpx import AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from cryptoledger.core.config import RetryPolicy
from cryptoledger.core.database import Base
from cryptoledger.core.dependencies import get_db, get_coingecko_service
from cryptoledger.main import app
import cryptoledger.models  # noqa: F401


@pytest.fixture
async def db_engine() -> AsyncGenerator[AsyncEngine, None]:
    """Fresh in-memory database with the full schema"""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    @event.listens_for(engine.sync_engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(db_engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def db_session(session_maker: async_sessionmaker) -> AsyncGenerator[AsyncSession, None]:
    async with session_maker() as session:
        yield session


@pytest.fixture
async def client(session_maker: async_sessionmaker) -> AsyncGenerator[AsyncClient, None]:
    """API client bound to the test database, with CoinGecko switched off"""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_coingecko_service] = lambda: None

    async with AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def no_wait_retry() -> RetryPolicy:
    """Three attempts without sleeping between them"""
    return RetryPolicy(max_attempts=3, backoff_seconds=0)


def D(value) -> Decimal:
    return Decimal(str(value))
