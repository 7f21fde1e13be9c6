"""
In-memory TTL cache for source fetch results.

Entries are grouped into TTL classes (rss, newsapi, processed). Keys embed the
calendar date so results roll over daily without explicit invalidation. Every
operation is fail-open: an internal error is counted, logged and treated as a
miss so caching never takes a fetch down with it.
"""

import asyncio
import hashlib
import json
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional


class CacheError(Exception):
    """Internal cache failure. Never propagates past CacheService."""
    pass


@dataclass
class CacheEntry:
    """Cached value with expiry metadata"""
    key: str
    value: Any
    cache_class: str
    inserted_at: float
    ttl_seconds: float

    def is_expired(self, now: Optional[float] = None) -> bool:
        now = time.monotonic() if now is None else now
        return (now - self.inserted_at) >= self.ttl_seconds


class CacheService:
    """
    Keyed TTL memoization shared by all sources for the process lifetime.

    Constructed explicitly and passed to the pipeline so tests can run
    independent instances side by side.
    """

    DEFAULT_TTLS = {
        "rss": 6 * 3600,
        "newsapi": 24 * 3600,
        "processed": 24 * 3600,
    }

    def __init__(
        self,
        ttls: Optional[Dict[str, float]] = None,
        check_period: float = 600,
        enabled: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.logger = logging.getLogger(__name__)
        self.ttls: Dict[str, float] = {**self.DEFAULT_TTLS, **(ttls or {})}
        self.check_period = check_period
        self.enabled = enabled
        self._clock = clock
        self._stores: Dict[str, Dict[str, CacheEntry]] = {name: {} for name in self.ttls}
        self._sweeper: Optional[asyncio.Task] = None

        self.stats: Dict[str, int] = {
            "hits": 0,
            "misses": 0,
            "sets": 0,
            "deletes": 0,
            "errors": 0,
            "evictions": 0,
        }

        self.logger.info(
            f"Initialized CacheService: enabled={enabled}, "
            + ", ".join(f"{name}={int(ttl)}s" for name, ttl in self.ttls.items())
        )

    @staticmethod
    def generate_key(prefix: str, params: Any, today: Optional[datetime] = None) -> str:
        """Deterministic key: prefix, short hash of the parameters, UTC calendar date."""
        payload = json.dumps(params, sort_keys=True, default=str)
        digest = hashlib.md5(payload.encode("utf-8")).hexdigest()[:8]
        day = (today or datetime.now(timezone.utc)).strftime("%Y-%m-%d")
        return f"{prefix}:{digest}:{day}"

    def _store(self, cache_class: str) -> Dict[str, CacheEntry]:
        if cache_class not in self._stores:
            raise CacheError(f"Unknown cache class: {cache_class}")
        return self._stores[cache_class]

    def _record_error(self, operation: str, cache_class: str, key: str, error: Exception) -> None:
        self.stats["errors"] += 1
        self.logger.error(f"❌ Cache {operation} failed for {cache_class}:{key}: {error}")

    def get(self, cache_class: str, key: str) -> Optional[Any]:
        """Return the cached value, or None on miss, expiry or error."""
        if not self.enabled:
            return None
        try:
            store = self._store(cache_class)
            entry = store.get(key)
            if entry is None:
                self.stats["misses"] += 1
                return None
            if entry.is_expired(self._clock()):
                del store[key]
                self.stats["misses"] += 1
                self.stats["evictions"] += 1
                return None
            self.stats["hits"] += 1
            self.logger.debug(f"Cache hit: {cache_class}:{key}")
            return entry.value
        except CacheError as e:
            self._record_error("get", cache_class, key, e)
            self.stats["misses"] += 1
            return None

    def set(self, cache_class: str, key: str, value: Any, ttl: Optional[float] = None) -> bool:
        if not self.enabled:
            return False
        try:
            store = self._store(cache_class)
            ttl_seconds = float(ttl if ttl is not None else self.ttls[cache_class])
            if ttl_seconds <= 0:
                raise CacheError(f"Non-positive TTL {ttl_seconds}")
            store[key] = CacheEntry(
                key=key,
                value=value,
                cache_class=cache_class,
                inserted_at=self._clock(),
                ttl_seconds=ttl_seconds,
            )
            self.stats["sets"] += 1
            self.logger.debug(f"Cached {cache_class}:{key} for {ttl_seconds:.0f}s")
            return True
        except (CacheError, TypeError, ValueError) as e:
            self._record_error("set", cache_class, key, e)
            return False

    def delete(self, cache_class: str, key: str) -> bool:
        if not self.enabled:
            return False
        try:
            removed = self._store(cache_class).pop(key, None) is not None
            if removed:
                self.stats["deletes"] += 1
            return removed
        except CacheError as e:
            self._record_error("delete", cache_class, key, e)
            return False

    def has(self, cache_class: str, key: str) -> bool:
        if not self.enabled:
            return False
        try:
            entry = self._store(cache_class).get(key)
            return entry is not None and not entry.is_expired(self._clock())
        except CacheError as e:
            self._record_error("has", cache_class, key, e)
            return False

    async def wrap(
        self,
        cache_class: str,
        key: str,
        producer: Callable[[], Awaitable[Any]],
        ttl: Optional[float] = None,
    ) -> Any:
        """
        Return the cached value, or await the producer and cache its result.

        Results that are None are returned but not stored. Producer errors
        propagate without anything being cached.
        """
        cached = self.get(cache_class, key)
        if cached is not None:
            return cached

        value = await producer()
        if value is not None:
            self.set(cache_class, key, value, ttl)
        return value

    def flush(self) -> None:
        for store in self._stores.values():
            store.clear()
        self.logger.info("🧹 Cache flushed")

    def flush_class(self, cache_class: str) -> int:
        try:
            store = self._store(cache_class)
        except CacheError as e:
            self._record_error("flush", cache_class, "*", e)
            return 0
        count = len(store)
        store.clear()
        self.logger.info(f"🧹 Flushed {count} {cache_class} entries")
        return count

    def keys(self, cache_class: Optional[str] = None) -> List[str]:
        classes = [cache_class] if cache_class else list(self._stores)
        result: List[str] = []
        for name in classes:
            result.extend(f"{name}:{key}" for key in self._stores.get(name, {}))
        return result

    def evict_expired(self) -> int:
        """Remove every expired entry. Returns the number evicted."""
        now = self._clock()
        evicted = 0
        for store in self._stores.values():
            expired = [key for key, entry in store.items() if entry.is_expired(now)]
            for key in expired:
                del store[key]
            evicted += len(expired)
        if evicted:
            self.stats["evictions"] += evicted
            self.logger.debug(f"Evicted {evicted} expired cache entries")
        return evicted

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.check_period)
            self.evict_expired()

    def start_sweeper(self) -> None:
        """Start the periodic eviction task on the running loop."""
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.get_running_loop().create_task(self._sweep_loop())

    async def stop_sweeper(self) -> None:
        if self._sweeper and not self._sweeper.done():
            self._sweeper.cancel()
            await asyncio.gather(self._sweeper, return_exceptions=True)
        self._sweeper = None

    def get_stats(self) -> Dict[str, Any]:
        lookups = self.stats["hits"] + self.stats["misses"]
        return {
            **self.stats,
            "enabled": self.enabled,
            "hit_rate": (self.stats["hits"] / lookups) if lookups else 0.0,
            "keys": {name: len(store) for name, store in self._stores.items()},
        }
