"""
RedisService: async Redis client and distributed locking.

Purpose
-------
Hold the process-wide Redis client used when several engine processes share
one database and the periodic leaderboard aggregation must run at most once
at a time across all of them.

Responsibilities
----------------
- Initialize and manage a singleton Redis connection pool
- Provide distributed locking via SET NX + Lua compare-and-delete
- Health check via PING

Non-Responsibilities
--------------------
- Caching ledger data (the leaderboard cache lives in PostgreSQL)
- Business logic of any kind

Configuration
-------------
- Config.REDIS_URL, Config.REDIS_PASSWORD
- Config.REDIS_MAX_CONNECTIONS, Config.REDIS_SOCKET_TIMEOUT
"""

from __future__ import annotations

import asyncio
import time
import uuid
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from redis.asyncio import Redis as AsyncRedis
from redis.exceptions import ConnectionError as RedisClientConnectionError
from redis.exceptions import RedisError

from hexturf.core.config.config import Config
from hexturf.core.exceptions import LockAcquisitionError, RedisConnectionError
from hexturf.core.logging.logger import get_logger

logger = get_logger(__name__)


class RedisService:
    """Singleton async Redis client with token-safe distributed locks."""

    _client: Optional[AsyncRedis] = None
    _init_lock: asyncio.Lock = asyncio.Lock()
    _is_healthy: bool = False

    _LUA_UNLOCK_SCRIPT = """
    if redis.call("GET", KEYS[1]) == ARGV[1] then
        return redis.call("DEL", KEYS[1])
    else
        return 0
    end
    """

    # ═══════════════════════════════════════════════════════════════════════
    # LIFECYCLE MANAGEMENT
    # ═══════════════════════════════════════════════════════════════════════

    @classmethod
    async def initialize(cls, url: Optional[str] = None) -> None:
        """
        Create the client and verify it with PING. Idempotent.

        Raises
        ------
        RedisConnectionError
            If the server cannot be reached.
        """
        if cls._client is not None:
            logger.debug("RedisService already initialized, skipping")
            return

        async with cls._init_lock:
            if cls._client is not None:
                return

            redis_url = url or Config.REDIS_URL
            url_scheme = redis_url.split("://")[0] if "://" in redis_url else "unknown"
            start_time = time.monotonic()
            client: Optional[AsyncRedis] = None

            try:
                client = AsyncRedis.from_url(
                    redis_url,
                    password=Config.REDIS_PASSWORD or None,
                    socket_timeout=Config.REDIS_SOCKET_TIMEOUT,
                    max_connections=Config.REDIS_MAX_CONNECTIONS,
                    decode_responses=True,
                    retry_on_timeout=False,
                    health_check_interval=30,
                )
                await client.ping()  # type: ignore[misc]

                cls._client = client
                cls._is_healthy = True

                logger.info(
                    "RedisService initialized successfully",
                    extra={
                        "url_scheme": url_scheme,
                        "max_connections": Config.REDIS_MAX_CONNECTIONS,
                        "initialization_time_ms": round(
                            (time.monotonic() - start_time) * 1000, 2
                        ),
                    },
                )

            except (RedisError, OSError) as exc:
                if client is not None:
                    await client.aclose()
                cls._client = None
                cls._is_healthy = False

                logger.critical(
                    "Failed to initialize RedisService",
                    extra={
                        "error": str(exc),
                        "error_type": type(exc).__name__,
                        "url_scheme": url_scheme,
                    },
                    exc_info=True,
                )
                raise RedisConnectionError("initialize", exc) from exc

    @classmethod
    async def shutdown(cls) -> None:
        """Close the client. Safe to call even if not initialized."""
        client = cls._client
        if client is None:
            logger.debug("RedisService not initialized, nothing to shutdown")
            return

        cls._client = None
        cls._is_healthy = False

        try:
            await client.aclose()
            logger.info("RedisService shutdown complete")
        except RedisError as exc:
            logger.error(
                "Error during RedisService shutdown",
                extra={"error": str(exc), "error_type": type(exc).__name__},
                exc_info=True,
            )

    @classmethod
    def client(cls) -> AsyncRedis:
        if cls._client is None:
            raise RedisConnectionError("client")
        return cls._client

    # ═══════════════════════════════════════════════════════════════════════
    # HEALTH
    # ═══════════════════════════════════════════════════════════════════════

    @classmethod
    async def health_check(cls) -> bool:
        if cls._client is None:
            logger.warning("Health check failed: RedisService not initialized")
            cls._is_healthy = False
            return False

        try:
            start_time = time.monotonic()
            pong = await cls._client.ping()  # type: ignore[misc]
            cls._is_healthy = bool(pong)
            logger.debug(
                "Redis health check completed",
                extra={
                    "healthy": cls._is_healthy,
                    "latency_ms": round((time.monotonic() - start_time) * 1000, 2),
                },
            )
            return cls._is_healthy

        except (RedisClientConnectionError, RedisError) as exc:
            cls._is_healthy = False
            logger.error(
                "Redis health check failed",
                extra={"error": str(exc), "error_type": type(exc).__name__},
            )
            return False

    @classmethod
    def is_healthy(cls) -> bool:
        return cls._is_healthy

    # ═══════════════════════════════════════════════════════════════════════
    # DISTRIBUTED LOCKING
    # ═══════════════════════════════════════════════════════════════════════

    @classmethod
    @asynccontextmanager
    async def acquire_lock(
        cls,
        key: str,
        timeout: int,
        wait_timeout: float,
        retry_interval: float = 0.1,
    ) -> AsyncGenerator[None, None]:
        """
        Acquire a distributed lock using SET NX with a unique token.

        The lock expires after ``timeout`` seconds if the holder dies. Release
        only deletes the key while it still carries our token.

        Parameters
        ----------
        key:
            Lock identifier (e.g. ``"hexturf:leaderboard:refresh"``).
        timeout:
            Lock expiration in seconds.
        wait_timeout:
            Maximum time to wait for acquisition. ``0`` tries exactly once.
        retry_interval:
            Sleep between acquisition attempts.

        Raises
        ------
        LockAcquisitionError
            If the lock cannot be acquired within ``wait_timeout``.
        RedisConnectionError
            If Redis errors while acquiring.
        """
        client = cls.client()
        token = str(uuid.uuid4())
        deadline = time.monotonic() + max(0.0, wait_timeout)
        acquired = False
        hold_start: Optional[float] = None

        try:
            while True:
                try:
                    acquired = bool(
                        await client.set(name=key, value=token, nx=True, ex=timeout)
                    )
                except RedisError as exc:
                    logger.error(
                        "Redis lock acquisition error",
                        extra={
                            "lock_key": key,
                            "error": str(exc),
                            "error_type": type(exc).__name__,
                        },
                    )
                    raise RedisConnectionError("acquire_lock", exc) from exc

                if acquired:
                    hold_start = time.monotonic()
                    logger.debug(
                        "Redis lock acquired",
                        extra={"lock_key": key, "timeout_seconds": timeout},
                    )
                    break

                if time.monotonic() >= deadline:
                    logger.warning(
                        "Failed to acquire Redis lock within timeout",
                        extra={"lock_key": key, "wait_timeout_seconds": wait_timeout},
                    )
                    raise LockAcquisitionError(key, wait_timeout)

                await asyncio.sleep(retry_interval)

            yield

        finally:
            if acquired:
                try:
                    released = await client.eval(  # type: ignore[misc]
                        cls._LUA_UNLOCK_SCRIPT, 1, key, token
                    )
                    hold_ms = (
                        round((time.monotonic() - hold_start) * 1000, 2)
                        if hold_start is not None
                        else None
                    )
                    if released:
                        logger.debug(
                            "Redis lock released",
                            extra={"lock_key": key, "hold_ms": hold_ms},
                        )
                    else:
                        logger.warning(
                            "Redis lock already expired or stolen",
                            extra={"lock_key": key, "hold_ms": hold_ms},
                        )
                except RedisError as exc:
                    logger.warning(
                        "Failed to release Redis lock (will expire automatically)",
                        extra={
                            "lock_key": key,
                            "timeout_seconds": timeout,
                            "error": str(exc),
                            "error_type": type(exc).__name__,
                        },
                    )
