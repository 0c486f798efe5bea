"""Async engine and session lifecycle for the label database (Supabase Postgres)."""

import os
from collections.abc import AsyncGenerator, Callable
from contextlib import asynccontextmanager

import structlog
from sqlalchemy import MetaData, make_url, text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import AsyncAdaptedQueuePool, NullPool

from inrecord.models.base import Base

logger = structlog.get_logger(__name__)

# Supabase's transaction-mode pooler (pgbouncer) listens here
SUPABASE_POOLER_PORT = 6543


def to_async_url(database_url: str) -> str:
    """Rewrite a plain Postgres URL (as handed out by Supabase) to the asyncpg driver."""
    if database_url.startswith("postgres://"):
        database_url = "postgresql://" + database_url[len("postgres://"):]
    if database_url.startswith("postgresql://"):
        return database_url.replace("postgresql://", "postgresql+asyncpg://", 1)
    return database_url


def uses_transaction_pooler(database_url: str) -> bool:
    url = make_url(database_url)
    return url.get_backend_name() == "postgresql" and url.port == SUPABASE_POOLER_PORT


class DatabaseManager:
    """Owns the async engine and hands out sessions.

    Sessions from ``get_async_session`` commit when the block exits
    cleanly and roll back on any exception.
    """

    def __init__(self, database_url: str, pool_size: int = 10, max_overflow: int = 10):
        self.database_url = to_async_url(database_url)
        self.pool_size = pool_size
        self.max_overflow = max_overflow

        self._async_engine: AsyncEngine | None = None
        self._async_session_factory: async_sessionmaker[AsyncSession] | None = None

    @property
    def initialized(self) -> bool:
        return self._async_engine is not None

    def _engine_options(self) -> tuple[str, dict]:
        """URL and engine keyword arguments for the configured backend."""
        if self.database_url.startswith("sqlite"):
            if ":memory:" in self.database_url:
                return self.database_url, {"poolclass": NullPool}
            return self.database_url, {}

        if uses_transaction_pooler(self.database_url):
            # pgbouncer in transaction mode cannot keep prepared statements
            url = make_url(self.database_url).update_query_dict({"prepared_statement_cache_size": "0"})
            return url.render_as_string(hide_password=False), {
                "poolclass": NullPool,
                "connect_args": {"statement_cache_size": 0},
            }

        return self.database_url, {
            "poolclass": AsyncAdaptedQueuePool,
            "pool_size": self.pool_size,
            "max_overflow": self.max_overflow,
            "pool_pre_ping": True,
        }

    async def initialize_async(self) -> None:
        if self._async_engine is not None:
            return

        url, options = self._engine_options()
        self._async_engine = create_async_engine(url, echo=False, **options)
        self._async_session_factory = async_sessionmaker(
            bind=self._async_engine,
            class_=AsyncSession,
            autoflush=False,
            expire_on_commit=False,
        )
        logger.info(
            "database_initialized",
            backend=self._async_engine.dialect.name,
            pooled=options.get("poolclass") is AsyncAdaptedQueuePool,
        )

    @asynccontextmanager
    async def get_async_session(self) -> AsyncGenerator[AsyncSession, None]:
        """Session scoped to one unit of work.

        Raises:
            RuntimeError: If ``initialize_async`` has not run
        """
        if self._async_session_factory is None:
            raise RuntimeError("Async database not initialized. Call initialize_async() first.")

        session = self._async_session_factory()
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    async def _run_metadata(self, operation: Callable[[MetaData], Callable]) -> None:
        if self._async_engine is None:
            await self.initialize_async()

        # Registers every ORM model with Base.metadata
        import inrecord.models  # noqa: F401

        async with self._async_engine.begin() as conn:
            await conn.run_sync(operation(Base.metadata))

    async def create_tables(self) -> None:
        """Create every table directly; deployed databases use Alembic."""
        await self._run_metadata(lambda metadata: metadata.create_all)

    async def drop_tables(self) -> None:
        await self._run_metadata(lambda metadata: metadata.drop_all)

    async def health_check(self) -> bool:
        """True when ``SELECT 1`` succeeds."""
        try:
            if self._async_engine is None:
                await self.initialize_async()

            async with self.get_async_session() as session:
                await session.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.warning("database_health_check_failed", error=str(e))
            return False

    async def close(self) -> None:
        if self._async_engine is not None:
            await self._async_engine.dispose()
            self._async_engine = None
            self._async_session_factory = None


# Set during application startup when DATABASE_URL is configured
_db_manager: DatabaseManager | None = None


def initialize_database(database_url: str | None = None) -> DatabaseManager:
    """Create the process-wide manager from ``database_url`` or ``DATABASE_URL``."""
    global _db_manager

    database_url = database_url or os.getenv("DATABASE_URL")
    if not database_url:
        raise ValueError("DATABASE_URL environment variable not set")

    _db_manager = DatabaseManager(database_url)
    return _db_manager


def get_db_manager() -> DatabaseManager | None:
    return _db_manager


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency yielding a request-scoped session."""
    if _db_manager is None:
        raise RuntimeError("Database not initialized. Call initialize_database() first.")

    async with _db_manager.get_async_session() as session:
        yield session


async def shutdown_database() -> None:
    global _db_manager
    if _db_manager is not None:
        await _db_manager.close()
        _db_manager = None
