import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from article_scout.database.models.base import Base
from article_scout.shared.config import Settings, get_settings
from article_scout.shared.exceptions import DatabaseConnectionError

logger = logging.getLogger(__name__)


class DatabaseConnection:
    def __init__(self, settings: Settings):
        self.settings = settings
        self._engine: Optional[AsyncEngine] = None
        self._session_factory: Optional[async_sessionmaker] = None

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            raise DatabaseConnectionError("Database engine not initialized. Call setup() first.")
        return self._engine

    @property
    def session_factory(self) -> async_sessionmaker:
        if self._session_factory is None:
            raise DatabaseConnectionError("Database session factory not initialized. Call setup() first.")
        return self._session_factory

    def setup(self) -> None:
        database_url = self.settings.DATABASE_URL

        # Convert postgresql:// to postgresql+asyncpg:// if needed
        if database_url.startswith("postgresql://"):
            database_url = database_url.replace("postgresql://", "postgresql+asyncpg://", 1)

        engine_kwargs = {
            "echo": self.settings.DATABASE_ECHO,
            "pool_size": self.settings.DATABASE_POOL_SIZE,
            "max_overflow": self.settings.DATABASE_MAX_OVERFLOW,
            "pool_timeout": self.settings.DATABASE_POOL_TIMEOUT,
            "pool_pre_ping": True,
        }

        if database_url.startswith("sqlite"):
            engine_kwargs.pop("pool_size")
            engine_kwargs.pop("max_overflow")
            engine_kwargs.pop("pool_timeout")
            if ":memory:" in database_url:
                engine_kwargs.update({
                    "poolclass": StaticPool,
                    "connect_args": {"check_same_thread": False},
                })

        self._engine = create_async_engine(database_url, **engine_kwargs)
        self._session_factory = async_sessionmaker(
            bind=self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=True,
        )

        logger.info(f"Database connection initialized for environment: {self.settings.ENVIRONMENT}")

    async def create_tables(self) -> None:
        """Create missing tables. Schema migrations are managed outside this package."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def close(self) -> None:
        if self._engine:
            await self._engine.dispose()
            self._engine = None
            self._session_factory = None
            logger.info("Database connection closed")

    @asynccontextmanager
    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        async with self.session_factory() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise

    async def health_check(self) -> bool:
        try:
            async with self.get_session() as session:
                result = await session.execute(text("SELECT 1"))
                return result.scalar() == 1
        except Exception as e:
            logger.error(f"Database health check failed: {e}")
            return False


# Global database connection instance
_db_connection: Optional[DatabaseConnection] = None


def get_database_connection(settings: Optional[Settings] = None) -> DatabaseConnection:
    global _db_connection

    if _db_connection is None:
        _db_connection = DatabaseConnection(settings or get_settings())
        _db_connection.setup()

    return _db_connection


async def close_database_connection() -> None:
    global _db_connection
    if _db_connection:
        await _db_connection.close()
        _db_connection = None
