"""In-process TTL cache for upstream feed documents."""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

import structlog
from aiocache import Cache
from aiocache.base import BaseCache

logger = structlog.get_logger(__name__)

STOPS_CACHE_KEY = "stops"
ALL_DEPARTURES_CACHE_KEY = "departures:all"


def departures_cache_key(stop_id: int) -> str:
    """Cache key for a single stop's departures."""
    return f"departures:{stop_id}"


def _utc_now() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True)
class CacheEntry:
    """Cached value with the absolute time it stops being served."""

    value: Any
    expires_at: datetime

    def is_live(self, now: datetime) -> bool:
        """True while ``now`` is before the expiry time."""
        return now < self.expires_at


class FeedCache:
    """
    TTL cache for upstream documents, one slot per key.

    Expiry is tracked on each entry (not delegated to the backend) so that a
    read after ``expires_at`` is always a miss. Entries are replaced whole on
    refresh. There is no locking: concurrent misses may each fetch upstream and
    the last write wins.
    """

    def __init__(
        self,
        backend: BaseCache | None = None,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        """
        Initialize the cache.

        Args:
            backend: aiocache backend; defaults to an in-memory cache (namespace "ztm")
            clock: Returns the current time, injectable for tests
        """
        self._backend = backend if backend is not None else Cache(Cache.MEMORY, namespace="ztm")
        self._clock = clock

    def now(self) -> datetime:
        """Current time according to the cache clock."""
        return self._clock()

    async def get(self, key: str) -> CacheEntry | None:
        """Return the live entry for ``key``, or None if absent or expired."""
        entry: CacheEntry | None = await self._backend.get(key)
        if entry is None:
            return None
        if not entry.is_live(self._clock()):
            await self._backend.delete(key)
            logger.debug("feed_cache_entry_expired", key=key, expired_at=entry.expires_at.isoformat())
            return None
        return entry

    async def set(self, key: str, value: Any, ttl: timedelta) -> CacheEntry:  # noqa: ANN401
        """Store ``value`` under ``key`` until now + ``ttl``."""
        entry = CacheEntry(value=value, expires_at=self._clock() + ttl)
        await self._backend.set(key, entry)
        return entry

    async def clear(self) -> None:
        """Drop every cached entry."""
        await self._backend.clear()
