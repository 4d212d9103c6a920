"""Database session management and connection handling."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any, Optional

from sqlalchemy import event, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.ext.asyncio.engine import AsyncEngine
from sqlalchemy.pool import StaticPool

from ...config.settings import DatabaseSettings
from ...utils.async_utils import AsyncContextManager
from ...utils.logging import get_structured_logger
from ..types import StorageError
from .models import Base

logger = get_structured_logger(__name__)


SQLITE_PRAGMAS = (
    "PRAGMA journal_mode=WAL",
    "PRAGMA foreign_keys=ON",
    "PRAGMA synchronous=NORMAL",
)


def to_async_url(url: str) -> str:
    """Map a plain SQLite URL onto the aiosqlite driver."""
    if url.startswith("sqlite+aiosqlite:"):
        return url
    if url.startswith("sqlite:///"):
        return url.replace("sqlite:///", "sqlite+aiosqlite:///", 1)
    if url.startswith("sqlite:"):
        return url.replace("sqlite:", "sqlite+aiosqlite:", 1)
    return url


def _engine_options(async_url: str, echo: bool) -> dict[str, Any]:
    if async_url.startswith("sqlite"):
        # one shared connection; file databases wait up to 30s on a locked writer
        return {
            "echo": echo,
            "poolclass": StaticPool,
            "connect_args": {"check_same_thread": False, "timeout": 30},
        }
    return {"echo": echo, "pool_pre_ping": True, "pool_recycle": 3600}


def _apply_sqlite_pragmas(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    for pragma in SQLITE_PRAGMAS:
        cursor.execute(pragma)
    cursor.close()


class DatabaseManager(AsyncContextManager):
    """Owns the async engine and hands out sessions to the storage layer."""

    def __init__(self, settings: DatabaseSettings):
        self.settings = settings
        self.engine: Optional[AsyncEngine] = None
        self.session_factory: Optional[async_sessionmaker[AsyncSession]] = None
        self._initialized = False

    @property
    def is_file_backed(self) -> bool:
        url = to_async_url(self.settings.url)
        return url.startswith("sqlite") and ":memory:" not in url

    async def setup(self) -> None:
        """Create the engine, install pragmas for file databases and create tables."""
        if self._initialized:
            return

        async_url = to_async_url(self.settings.url)
        logger.info("Opening database", url=async_url)

        self.engine = create_async_engine(
            async_url, **_engine_options(async_url, self.settings.echo)
        )
        if self.is_file_backed:
            event.listen(self.engine.sync_engine, "connect", _apply_sqlite_pragmas)

        self.session_factory = async_sessionmaker(
            bind=self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )
        await self.create_tables()

        self._initialized = True
        logger.info("Database ready", file_backed=self.is_file_backed)

    async def cleanup(self) -> None:
        if self.engine is None:
            return
        logger.info("Disposing database engine")
        await self.engine.dispose()
        self.engine = None
        self.session_factory = None
        self._initialized = False

    async def create_tables(self) -> None:
        """Create database tables."""
        if not self.engine:
            raise StorageError("Database engine not initialized")

        try:
            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to create tables: {str(e)}") from e
        logger.debug("Database tables created")

    @asynccontextmanager
    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        """Get a database session that commits on success and rolls back on error.

        Driver errors surface as StorageError so callers only deal with one
        persistence failure type.
        """
        if not self.session_factory:
            raise StorageError("Database not initialized")

        session = self.session_factory()
        try:
            yield session
            await session.commit()
        except SQLAlchemyError as e:
            logger.error("Session error, rolling back", error=str(e))
            await session.rollback()
            raise StorageError(str(e)) from e
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    async def health_check(self) -> bool:
        """Perform database health check."""
        if not self.engine:
            return False
        try:
            async with self.get_session() as session:
                result = await session.execute(text("SELECT 1"))
                return result.scalar() == 1
        except StorageError as e:
            logger.error("Database health check failed", error=str(e))
            return False


_db_manager: Optional[DatabaseManager] = None


async def get_database_manager(
    settings: Optional[DatabaseSettings] = None,
) -> DatabaseManager:
    """Get or create the global database manager."""
    global _db_manager

    if _db_manager is None:
        if settings is None:
            from ...config import get_settings

            settings = get_settings().database

        _db_manager = DatabaseManager(settings)
        await _db_manager.setup()

    return _db_manager


async def cleanup_database_manager() -> None:
    """Clean up the global database manager."""
    global _db_manager

    if _db_manager:
        await _db_manager.cleanup()
        _db_manager = None
