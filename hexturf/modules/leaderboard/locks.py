"""
Aggregation locks.

The leaderboard aggregation must never run twice at once. Which guard is
used depends on the deployment:

- ``ProcessLocalLock``: an ``asyncio.Lock`` owned by one aggregator; enough
  for a single engine process.
- ``RedisAggregationLock``: a Redis SET NX lock shared by every process
  pointed at the same Redis.

Both are async context managers through ``hold()``; callers queue behind an
in-flight run.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional, Protocol

from hexturf.core.config.manager import ConfigManager
from hexturf.core.exceptions import ConfigurationError
from hexturf.core.logging.logger import get_logger
from hexturf.core.redis.service import RedisService

logger = get_logger(__name__)

REDIS_LOCK_KEY = "hexturf:leaderboard:aggregation"


class AggregationLock(Protocol):
    def hold(self) -> AsyncIterator[None]:
        ...


class ProcessLocalLock:
    def __init__(self) -> None:
        self._lock = asyncio.Lock()

    @property
    def locked(self) -> bool:
        return self._lock.locked()

    @asynccontextmanager
    async def hold(self) -> AsyncIterator[None]:
        async with self._lock:
            yield


class RedisAggregationLock:
    """
    Distributed guard.

    Parameters
    ----------
    timeout_seconds:
        Lock expiry, covering a crashed holder.
    blocking_timeout_seconds:
        How long a caller queues before ``LockAcquisitionError``.
    """

    def __init__(
        self,
        timeout_seconds: Optional[int] = None,
        blocking_timeout_seconds: Optional[float] = None,
        key: str = REDIS_LOCK_KEY,
        redis_service: type[RedisService] = RedisService,
    ) -> None:
        self.key = key
        self.timeout_seconds = int(
            timeout_seconds
            if timeout_seconds is not None
            else ConfigManager.get("leaderboard.lock_timeout_seconds", 120)
        )
        self.blocking_timeout_seconds = float(
            blocking_timeout_seconds
            if blocking_timeout_seconds is not None
            else ConfigManager.get("leaderboard.lock_blocking_timeout_seconds", 60)
        )
        self._redis = redis_service

    @asynccontextmanager
    async def hold(self) -> AsyncIterator[None]:
        async with self._redis.acquire_lock(
            self.key,
            timeout=self.timeout_seconds,
            wait_timeout=self.blocking_timeout_seconds,
        ):
            yield


def build_aggregation_lock(backend: Optional[str] = None) -> AggregationLock:
    """
    Build the lock named by ``leaderboard.lock_backend`` (``local`` or ``redis``).

    Raises
    ------
    ConfigurationError
        For any other backend name.
    """
    name = (backend or ConfigManager.get("leaderboard.lock_backend", "local")).lower()
    if name == "local":
        return ProcessLocalLock()
    if name == "redis":
        return RedisAggregationLock()

    logger.error("Unknown leaderboard lock backend", extra={"backend": name})
    raise ConfigurationError(
        "leaderboard.lock_backend",
        f"Unknown lock backend '{name}'; expected 'local' or 'redis'",
    )
