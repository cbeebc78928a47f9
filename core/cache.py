"""
Bounded in-memory cache with per-entry TTL.

Used to memoize store searches per query variant. Expiry is checked lazily on
access and eagerly by cleanup(), which an optional asyncio sweeper task runs
every CACHE_CHECK_PERIOD_SECONDS. When a new key is set at capacity, the
least-recently touched entry is evicted; get() and set() both count as a
touch.

Every operation takes an internal lock, so one cache instance can be shared
by concurrent requests (and threads). There is no cross-key atomicity.
"""

import asyncio
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Protocol

from core.config import get_cache_settings
from utils.logger import get_logger

logger = get_logger(__name__)


class CacheBackend(Protocol):
    """Cache surface the retrieval orchestrator depends on."""

    def get(self, key: str) -> Optional[Any]: ...

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None: ...

    def delete(self, key: str) -> bool: ...

    def has(self, key: str) -> bool: ...


@dataclass
class CacheEntry:
    """Cached value with its creation and expiry times (clock seconds)."""

    value: Any
    created_at: float
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now > self.expires_at


class BoundedCache:
    """
    Key/value cache with TTL and least-recently-touched eviction.

    Entries live in an OrderedDict kept in touch order: the first item is
    always the eviction candidate.
    """

    def __init__(
        self,
        max_entries: Optional[int] = None,
        ttl: Optional[float] = None,
        check_period: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the cache.

        Args:
            max_entries: Capacity (default: CACHE_MAX_ENTRIES)
            ttl: Default TTL in seconds (default: CACHE_TTL_SECONDS)
            check_period: Sweeper interval in seconds (default: CACHE_CHECK_PERIOD_SECONDS)
            clock: Monotonic time source, injectable for tests

        Raises:
            ValueError: If capacity, TTL or period is not positive
        """
        settings = get_cache_settings()
        self.max_entries = max_entries if max_entries is not None else settings.MAX_ENTRIES
        self.default_ttl = ttl if ttl is not None else settings.TTL_SECONDS
        self.check_period = (
            check_period if check_period is not None else settings.CHECK_PERIOD_SECONDS
        )

        if self.max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        if self.default_ttl <= 0:
            raise ValueError("ttl must be positive")
        if self.check_period <= 0:
            raise ValueError("check_period must be positive")

        self._clock = clock
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._lock = threading.Lock()
        self._sweeper: Optional[asyncio.Task] = None
        self._stats = {
            "hits": 0,
            "misses": 0,
            "sets": 0,
            "deletes": 0,
            "evictions": 0,
            "expirations": 0,
        }

        logger.info(
            f"BoundedCache initialized (max_entries={self.max_entries}, "
            f"ttl={self.default_ttl}s, check_period={self.check_period}s)"
        )

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: str) -> Optional[Any]:
        """Return the cached value, or None if absent or expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._stats["misses"] += 1
                return None

            if entry.is_expired(self._clock()):
                del self._entries[key]
                self._stats["expirations"] += 1
                self._stats["misses"] += 1
                return None

            self._entries.move_to_end(key)
            self._stats["hits"] += 1
            return entry.value

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        """
        Store a value.

        Args:
            key: Cache key
            value: Value to store (stored as-is, not copied)
            ttl: TTL in seconds (default: the cache's TTL)
        """
        effective_ttl = ttl if ttl else self.default_ttl
        with self._lock:
            now = self._clock()

            if key not in self._entries and len(self._entries) >= self.max_entries:
                evicted_key, _ = self._entries.popitem(last=False)
                self._stats["evictions"] += 1
                logger.debug(f"Evicted least recently touched key: {evicted_key}")

            self._entries[key] = CacheEntry(
                value=value, created_at=now, expires_at=now + effective_ttl
            )
            self._entries.move_to_end(key)
            self._stats["sets"] += 1

    def delete(self, key: str) -> bool:
        with self._lock:
            if self._entries.pop(key, None) is None:
                return False
            self._stats["deletes"] += 1
            return True

    def has(self, key: str) -> bool:
        """True if the key holds a live entry. Does not count as a touch."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return False
            if entry.is_expired(self._clock()):
                del self._entries[key]
                self._stats["expirations"] += 1
                return False
            return True

    def clear(self) -> int:
        """Remove every entry and return how many there were."""
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
        if count:
            logger.info(f"Cache cleared ({count} entries)")
        return count

    def keys(self) -> List[str]:
        """Live keys, least recently touched first."""
        with self._lock:
            now = self._clock()
            return [k for k, e in self._entries.items() if not e.is_expired(now)]

    def cleanup(self) -> int:
        """Sweep expired entries and return how many were removed."""
        with self._lock:
            now = self._clock()
            expired = [k for k, e in self._entries.items() if e.is_expired(now)]
            for key in expired:
                del self._entries[key]
            self._stats["expirations"] += len(expired)

        if expired:
            logger.debug(f"Cache cleanup removed {len(expired)} expired entries")
        return len(expired)

    def invalidate_prefix(self, prefix: str) -> int:
        """Remove every entry whose key starts with prefix."""
        with self._lock:
            matching = [k for k in self._entries if k.startswith(prefix)]
            for key in matching:
                del self._entries[key]
            self._stats["deletes"] += len(matching)

        logger.info(f"Invalidated {len(matching)} cache entries with prefix '{prefix}'")
        return len(matching)

    def get_stats(self) -> Dict[str, Any]:
        """Counters plus hit rate (percent) and current size."""
        with self._lock:
            stats: Dict[str, Any] = dict(self._stats)
            size = len(self._entries)

        lookups = stats["hits"] + stats["misses"]
        stats["hit_rate"] = round(stats["hits"] / lookups * 100, 2) if lookups else 0.0
        stats["size"] = size
        stats["max_entries"] = self.max_entries
        return stats

    # Periodic sweep

    async def _sweep_forever(self) -> None:
        while True:
            await asyncio.sleep(self.check_period)
            self.cleanup()

    def start(self) -> None:
        """Start the periodic sweeper on the running event loop."""
        if self._sweeper is not None and not self._sweeper.done():
            return
        self._sweeper = asyncio.get_running_loop().create_task(self._sweep_forever())
        logger.debug("Cache sweeper started")

    async def close(self) -> None:
        """Stop the sweeper and drop all entries."""
        if self._sweeper is not None:
            self._sweeper.cancel()
            try:
                await self._sweeper
            except asyncio.CancelledError:
                pass
            self._sweeper = None
        self.clear()
        logger.info("Cache closed")
