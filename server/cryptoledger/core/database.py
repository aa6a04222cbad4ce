"""
Database configuration and session management using SQLAlchemy
"""
from decimal import Decimal
from typing import Any, AsyncGenerator, Dict, Optional

from sqlalchemy import MetaData, String, event, text
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    create_async_engine,
    async_sessionmaker,
    AsyncEngine
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.types import TypeDecorator
from sqlalchemy.pool import NullPool

from cryptoledger.core.config import settings
from cryptoledger.core.logging import get_logger

logger = get_logger(__name__)


# Naming convention for database constraints
NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s"
}

metadata = MetaData(naming_convention=NAMING_CONVENTION)


class Base(DeclarativeBase):
    """Base class for all database models"""
    metadata = metadata


class ExactDecimal(TypeDecorator):
    """Decimal stored as its canonical string, read back at full scale"""
    impl = String(80)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if not isinstance(value, Decimal):
            value = Decimal(str(value))
        return str(value)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return Decimal(value)


def _engine_options() -> Dict[str, Any]:
    """Pool options for the configured backend"""
    options: Dict[str, Any] = {"echo": settings.database.echo}
    if settings.is_testing:
        options["poolclass"] = NullPool
    elif not settings.is_sqlite:
        options.update(
            pool_size=settings.database.pool_size,
            max_overflow=settings.database.max_overflow,
            pool_timeout=settings.database.pool_timeout,
            pool_recycle=settings.database.pool_recycle,
            pool_pre_ping=True,
        )
    return options


engine: Optional[AsyncEngine] = None
async_session_maker: Optional[async_sessionmaker] = None

if settings.enable_database and settings.async_database_url:
    engine = create_async_engine(settings.async_database_url, **_engine_options())

    async_session_maker = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    if settings.is_sqlite:
        @event.listens_for(engine.sync_engine, "connect")
        def set_sqlite_pragma(dbapi_connection, connection_record):
            """Enforce foreign keys on SQLite connections"""
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency function to get database session.

    Any exception raised while the session is in use rolls back every pending
    write, so a failed multi-step operation leaves no partial state.

    Usage in FastAPI:
        @router.get("/claims")
        async def list_claims(db: AsyncSession = Depends(get_db)):
            ...
    """
    if not settings.enable_database:
        raise RuntimeError("Database is not enabled. Set ENABLE_DATABASE=true to use database features.")

    if not async_session_maker:
        raise RuntimeError("Database is not properly configured. Check DATABASE_URL setting.")

    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


class DatabaseManager:
    """Manager class for database operations"""

    @staticmethod
    async def create_all():
        """Create all tables (local SQLite development only; use Alembic elsewhere)"""
        if not engine:
            raise RuntimeError("Database engine is not initialized")

        # Register models on the metadata before creating tables
        import cryptoledger.models  # noqa: F401

        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
            logger.info("Database tables created successfully")

    @staticmethod
    async def check_connection() -> bool:
        """Check if database connection is healthy"""
        if not settings.enable_database:
            logger.info("Database is disabled")
            return False

        if not engine:
            logger.error("Database engine is not initialized")
            return False

        try:
            async with engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.error("Database connection check failed", error=e)
            return False

    @staticmethod
    async def close():
        """Close database connections"""
        if engine:
            await engine.dispose()
            logger.info("Database connections closed")
