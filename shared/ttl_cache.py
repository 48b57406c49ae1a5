"""
In-process TTL caches for weather readings and conversation context.

Both caches are bounded key/value stores with:
- Lazy expiry on read (an expired entry is never returned)
- A periodic sweep task that reclaims memory from expired entries
- Oldest-insertion (FIFO) eviction when the store is full
- Hit/miss/set counters for observability

Instances are created by the application composition root (api/main.py) and
injected into the services that use them. Nothing here is a module-level
singleton, so tests can build as many independent caches as they need.

Usage:
    cache = WeatherCache()
    cache.start()                      # Start background sweep (needs running loop)
    cache.set("New Delhi", reading, ttl_minutes=60)
    cache.get(" new   delhi ")         # Same entry (normalized key)
    await cache.stop()
"""

import asyncio
import logging
import re
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any, Awaitable, Callable

from pydantic import BaseModel

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

_WHITESPACE_RE = re.compile(r"\s+")


def utc_now() -> datetime:
    """Default cache clock (timezone-aware UTC)."""
    return datetime.now(UTC)


def normalize_location(location: str) -> str:
    """
    Normalize a location string for consistent cache keys.

    "New Delhi", "new delhi" and " New   Delhi " all map to "new_delhi".
    """
    return _WHITESPACE_RE.sub("_", location.strip().lower())


@dataclass
class CacheEntry:
    """Single cached value with absolute expiry."""

    key: str
    data: Any
    expires_at: datetime
    last_accessed_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at


class CacheStats(BaseModel):
    """Snapshot of cache counters."""

    hits: int
    misses: int
    sets: int
    size: int
    hit_rate: float


class TTLCache:
    """
    Bounded TTL cache with FIFO eviction.

    Eviction removes the least-recently-inserted key, not the least-recently
    used one. `last_accessed_at` is tracked for diagnostics only.
    """

    name = "Cache"

    def __init__(
        self,
        max_size: int,
        sweep_interval_seconds: float,
        clock: Clock = utc_now,
    ):
        """
        Initialize an empty cache.

        Args:
            max_size: Maximum number of entries held at once
            sweep_interval_seconds: Interval between background cleanup passes
            clock: Callable returning the current aware datetime (injectable for tests)
        """
        self.max_size = max_size
        self.sweep_interval_seconds = sweep_interval_seconds
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._in_flight: dict[str, asyncio.Task] = {}
        self._sweep_task: asyncio.Task | None = None
        self.hits = 0
        self.misses = 0
        self.sets = 0

        logger.info(
            f"{self.name} initialized | max_size={max_size} | "
            f"sweep_interval={sweep_interval_seconds}s"
        )

    def normalize_key(self, key: str) -> str:
        """Return the storage key for `key` (verbatim by default)."""
        return key

    def set(self, key: str, data: Any, ttl_minutes: float = 60) -> None:
        """
        Store data under key with a TTL.

        Re-setting an existing key replaces the entry completely and moves it
        to the newest insertion position. Inserting a new key into a full
        store evicts the oldest-inserted entry first.
        """
        key = self.normalize_key(key)
        now = self._clock()

        self._entries.pop(key, None)

        if len(self._entries) >= self.max_size:
            oldest_key = next(iter(self._entries))
            del self._entries[oldest_key]
            logger.debug(f"{self.name} EVICT: {oldest_key}", extra={"cache": self.name})

        self._entries[key] = CacheEntry(
            key=key,
            data=data,
            expires_at=now + timedelta(minutes=ttl_minutes),
            last_accessed_at=now,
        )
        self.sets += 1
        logger.debug(f"{self.name} SET: {key} (TTL: {ttl_minutes}m)", extra={"cache": self.name})

    def get(self, key: str) -> Any | None:
        """
        Return cached data, or None if the key is absent or expired.

        Expired entries are deleted on read and count as misses.
        """
        key = self.normalize_key(key)
        entry = self._entries.get(key)

        if entry is None:
            self.misses += 1
            logger.debug(f"{self.name} MISS: {key}", extra={"cache": self.name})
            return None

        now = self._clock()
        if entry.is_expired(now):
            del self._entries[key]
            self.misses += 1
            logger.debug(f"{self.name} EXPIRED: {key}", extra={"cache": self.name})
            return None

        entry.last_accessed_at = now
        self.hits += 1
        logger.debug(f"{self.name} HIT: {key}", extra={"cache": self.name})
        return entry.data

    def delete(self, key: str) -> bool:
        """
        Remove a single entry. Returns True if it existed.

        A load still in flight for the key is detached: its waiters get the
        value, but it is not written back.
        """
        key = self.normalize_key(key)
        self._in_flight.pop(key, None)
        return self._entries.pop(key, None) is not None

    async def get_or_load(
        self,
        key: str,
        loader: Callable[[], Awaitable[Any]],
        ttl_minutes: float = 60,
    ) -> Any | None:
        """
        Cache-first read that loads and stores on miss.

        Concurrent misses on the same key share a single in-flight load, so
        the upstream source is called once. A None result is returned to all
        waiters but not cached. Exceptions raised by `loader` propagate to
        every waiter.

        Args:
            key: Cache key (normalized like get/set)
            loader: Zero-argument coroutine function producing the value
            ttl_minutes: TTL applied when the loaded value is stored

        Returns:
            Cached or freshly loaded value, or None
        """
        cached = self.get(key)
        if cached is not None:
            return cached

        key = self.normalize_key(key)
        task = self._in_flight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._load(key, loader, ttl_minutes))
            self._in_flight[key] = task
            task.add_done_callback(lambda done, k=key: self._release(k, done))
        else:
            logger.debug(f"{self.name} JOIN in-flight load: {key}", extra={"cache": self.name})

        return await asyncio.shield(task)

    async def _load(
        self,
        key: str,
        loader: Callable[[], Awaitable[Any]],
        ttl_minutes: float,
    ) -> Any | None:
        data = await loader()
        if data is not None and self._in_flight.get(key) is asyncio.current_task():
            self.set(key, data, ttl_minutes)
        return data

    def _release(self, key: str, task: asyncio.Task) -> None:
        if self._in_flight.get(key) is task:
            del self._in_flight[key]

    def cleanup(self) -> int:
        """
        Remove all expired entries and log cache statistics.

        Returns:
            Number of entries removed
        """
        now = self._clock()
        expired_keys = [key for key, entry in self._entries.items() if entry.is_expired(now)]

        for key in expired_keys:
            del self._entries[key]

        if expired_keys:
            logger.info(f"{self.name} cleanup: removed {len(expired_keys)} expired entries")

        logger.info(
            f"{self.name} stats - Size: {len(self._entries)}, Hit rate: {self.hit_rate:.2f}%"
        )
        return len(expired_keys)

    @property
    def hit_rate(self) -> float:
        """Hit percentage over all lookups (0.0 before the first lookup)."""
        lookups = self.hits + self.misses
        if lookups == 0:
            return 0.0
        return self.hits / lookups * 100

    def get_stats(self) -> CacheStats:
        return CacheStats(
            hits=self.hits,
            misses=self.misses,
            sets=self.sets,
            size=len(self._entries),
            hit_rate=self.hit_rate,
        )

    def clear(self) -> None:
        """Empty the store and reset all counters."""
        self._entries.clear()
        self._in_flight.clear()
        self.hits = 0
        self.misses = 0
        self.sets = 0
        logger.info(f"{self.name} cleared")

    def __len__(self) -> int:
        return len(self._entries)

    # =========================================================================
    # Background sweep lifecycle
    # =========================================================================

    @property
    def is_running(self) -> bool:
        return self._sweep_task is not None and not self._sweep_task.done()

    def start(self) -> None:
        """Start the periodic cleanup task. Must be called from a running loop."""
        if self.is_running:
            return
        self._sweep_task = asyncio.create_task(self._sweep_loop())
        logger.debug(f"{self.name} sweep started")

    async def stop(self) -> None:
        """Cancel the periodic cleanup task and wait for it to finish."""
        task = self._sweep_task
        self._sweep_task = None
        if task is None:
            return

        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.debug(f"{self.name} sweep stopped")

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval_seconds)
            try:
                self.cleanup()
            except Exception as e:
                logger.error(f"{self.name} cleanup failed: {e}", exc_info=True)


class WeatherCache(TTLCache):
    """Weather readings keyed by normalized location (500 entries, 10 min sweep)."""

    name = "Weather cache"

    def __init__(
        self,
        max_size: int = 500,
        sweep_interval_seconds: float = 10 * 60,
        clock: Clock = utc_now,
    ):
        super().__init__(max_size, sweep_interval_seconds, clock)

    def normalize_key(self, key: str) -> str:
        return normalize_location(key)


class ContextCache(TTLCache):
    """Context facets keyed verbatim, e.g. "user:<id>" (1000 entries, 5 min sweep)."""

    name = "Context cache"

    def __init__(
        self,
        max_size: int = 1000,
        sweep_interval_seconds: float = 5 * 60,
        clock: Clock = utc_now,
    ):
        super().__init__(max_size, sweep_interval_seconds, clock)
