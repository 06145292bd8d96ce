"""
Async engine and session lifecycle for the territory ledger.

``get_transaction()`` is how every capture, rollback and leaderboard refresh
writes: it commits when the block exits cleanly and rolls back on any
exception, then re-raises. Service code never calls ``commit()`` itself.
``get_session()`` is for reads and never commits.

On PostgreSQL every session starts with ``SET LOCAL statement_timeout`` so a
stuck lock wait cannot hold a pooled connection forever. The testing
environment uses ``NullPool``; everywhere else an
``AsyncAdaptedQueuePool`` sized from ``Config``.

>>> async with DatabaseService.get_transaction() as session:
...     existing = await tile_repository.lock_tiles(session, tile_ids)
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, Optional

from sqlalchemy import text
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import AsyncAdaptedQueuePool, NullPool

from hexturf.core.config.config import Config
from hexturf.core.database.base import Base
from hexturf.core.logging.logger import get_logger

logger = get_logger(__name__)


class DatabaseInitializationError(RuntimeError):
    """DATABASE_URL is missing or the engine could not be created."""


class DatabaseNotInitializedError(RuntimeError):
    """A session was requested before ``initialize()`` or after ``shutdown()``."""


def _engine_options() -> Dict[str, Any]:
    if Config.is_testing():
        return {"echo": Config.DATABASE_ECHO, "poolclass": NullPool}
    return {
        "echo": Config.DATABASE_ECHO,
        "poolclass": AsyncAdaptedQueuePool,
        "pool_size": Config.DATABASE_POOL_SIZE,
        "max_overflow": Config.DATABASE_MAX_OVERFLOW,
        "pool_recycle": Config.DATABASE_POOL_RECYCLE,
        "pool_timeout": Config.DATABASE_POOL_TIMEOUT,
        "pool_pre_ping": True,
    }


class DatabaseService:
    _engine: Optional[AsyncEngine] = None
    _session_factory: Optional[async_sessionmaker[AsyncSession]] = None
    _statement_timeout_ms: Optional[int] = None
    _init_lock: asyncio.Lock = asyncio.Lock()

    @classmethod
    async def initialize(cls, url: Optional[str] = None) -> None:
        """
        Create the engine once; later calls are no-ops.

        Raises
        ------
        DatabaseInitializationError
            No URL was configured or ``create_async_engine`` rejected it.
        """
        async with cls._init_lock:
            if cls._engine is not None:
                return

            database_url = url or Config.DATABASE_URL
            if not database_url:
                raise DatabaseInitializationError("DATABASE_URL is not configured")

            options = _engine_options()
            try:
                cls._engine = create_async_engine(database_url, **options)
            except Exception as exc:
                logger.error("Database engine creation failed", exc_info=True)
                raise DatabaseInitializationError(f"Database initialization failed: {exc}") from exc

            cls._session_factory = async_sessionmaker(
                bind=cls._engine, class_=AsyncSession, expire_on_commit=False
            )
            cls._statement_timeout_ms = (
                Config.DATABASE_STATEMENT_TIMEOUT_MS if database_url.startswith("postgresql") else None
            )
            logger.info(
                "Database engine ready",
                extra={
                    "driver": database_url.split(":", 1)[0],
                    "pool": options["poolclass"].__name__,
                    "statement_timeout_ms": cls._statement_timeout_ms,
                },
            )

    @classmethod
    async def shutdown(cls) -> None:
        async with cls._init_lock:
            if cls._engine is None:
                return
            try:
                await cls._engine.dispose()
            finally:
                cls._engine = None
                cls._session_factory = None
                cls._statement_timeout_ms = None
            logger.info("Database engine disposed")

    @classmethod
    def get_engine(cls) -> AsyncEngine:
        if cls._engine is None:
            raise DatabaseNotInitializedError("Call DatabaseService.initialize() first")
        return cls._engine

    @classmethod
    async def create_schema(cls) -> None:
        """Create missing tables. ``hexturf.database.models`` must be imported."""
        async with cls.get_engine().begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database schema ensured", extra={"tables": len(Base.metadata.tables)})

    @classmethod
    async def drop_schema(cls) -> None:
        async with cls.get_engine().begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
        logger.warning("Database schema dropped")

    @classmethod
    async def health_check(cls) -> bool:
        """``SELECT 1``; False when uninitialized or unreachable."""
        if cls._engine is None:
            return False
        try:
            async with cls._engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except (DBAPIError, OSError) as exc:
            logger.warning("Database health check failed", extra={"error_type": type(exc).__name__})
            return False
        return True

    @classmethod
    def _new_session(cls) -> AsyncSession:
        if cls._session_factory is None:
            raise DatabaseNotInitializedError("Call DatabaseService.initialize() first")
        return cls._session_factory()

    @classmethod
    async def _set_timeout(cls, session: AsyncSession) -> None:
        if cls._statement_timeout_ms is not None:
            await session.execute(text(f"SET LOCAL statement_timeout = {int(cls._statement_timeout_ms)}"))

    @classmethod
    @asynccontextmanager
    async def get_session(cls) -> AsyncGenerator[AsyncSession, None]:
        async with cls._new_session() as session:
            await cls._set_timeout(session)
            yield session

    @classmethod
    @asynccontextmanager
    async def get_transaction(cls) -> AsyncGenerator[AsyncSession, None]:
        """
        Raises
        ------
        DatabaseNotInitializedError
            Before ``initialize()``.
        Exception
            Whatever the block raised, after rollback.
        """
        async with cls._new_session() as session:
            try:
                await cls._set_timeout(session)
                yield session
                await session.commit()
            except Exception as exc:
                await session.rollback()
                level = logger.error if isinstance(exc, DBAPIError) else logger.debug
                level("Transaction rolled back", extra={"error_type": type(exc).__name__})
                raise
