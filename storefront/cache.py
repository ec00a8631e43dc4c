"""
Product cache - in-memory TTL + LRU store for catalog reads.

Expiry is lazy: an expired entry is dropped when it is next read, there
is no background sweep. Recency is refreshed on every successful get and
set, so eviction removes the least recently touched key.

Two `with_cache` calls racing on the same cold key may both run their
producer; the last `set` wins. Catalog data is safe to refetch, so this
is accepted.
"""

import asyncio
import re
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Pattern, TypeVar, Union

from storefront.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass
class CacheEntry:
    """Single cached value."""
    data: Any
    written_at: float
    ttl: float

    def is_expired(self, now: float) -> bool:
        return now - self.written_at > self.ttl


class CacheKeys:
    """Cache key names for catalog data."""

    HEALTH_PRODUCTS = "products:health"
    ELECTRONICS_PRODUCTS = "products:electronics"
    ALL_PRODUCTS = "products:all"
    REGIONS = "regions"

    @staticmethod
    def store_products(store: str) -> str:
        return f"products:{store}"

    @staticmethod
    def product_detail(product_id: str) -> str:
        return f"product:{product_id}"

    @staticmethod
    def search_results(query: str) -> str:
        return f"search:{query.strip().lower()}"


class TTL:
    """Time-to-live presets (seconds)."""

    DEFAULT = 600  # 10 minutes
    PRODUCT_LIST = 600
    PRODUCT_DETAIL = 300
    SEARCH = 120


class ProductCache:
    """
    Bounded key/value cache with per-entry TTL.

    Features:
    - Lazy expiry on read
    - LRU eviction when inserting a new key at capacity
    - Injectable clock for deterministic tests
    """

    def __init__(
        self,
        max_size: int = 100,
        default_ttl: float = TTL.DEFAULT,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._max_size = max_size
        self._default_ttl = default_ttl
        self._clock = clock
        self._preloads: set[asyncio.Task] = set()

    def __len__(self) -> int:
        return len(self._entries)

    def set(self, key: str, data: Any, ttl: Optional[float] = None) -> None:
        """Store a value; evicts the least recently used key when full."""
        if key in self._entries:
            self._entries.move_to_end(key)
        elif len(self._entries) >= self._max_size:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug("Cache evicted: %s", evicted)

        self._entries[key] = CacheEntry(
            data=data,
            written_at=self._clock(),
            ttl=self._default_ttl if ttl is None else ttl,
        )

    def _live_entry(self, key: str) -> Optional[CacheEntry]:
        """Entry for `key` if present and fresh; expired entries are dropped."""
        entry = self._entries.get(key)
        if entry is None:
            return None

        if entry.is_expired(self._clock()):
            del self._entries[key]
            return None

        self._entries.move_to_end(key)
        return entry

    def get(self, key: str, default: Any = None) -> Any:
        """Return the cached value, or `default` if absent or expired."""
        entry = self._live_entry(key)
        return default if entry is None else entry.data

    def has(self, key: str) -> bool:
        """Check if key exists and is not expired. A cached None counts."""
        return self._live_entry(key) is not None

    def invalidate(self, key: str) -> None:
        self._entries.pop(key, None)

    def invalidate_pattern(self, pattern: Union[str, Pattern]) -> int:
        """Drop every key matching `pattern` (regex search). Returns count."""
        regex = re.compile(pattern) if isinstance(pattern, str) else pattern
        matched = [key for key in self._entries if regex.search(key)]
        for key in matched:
            del self._entries[key]
        return len(matched)

    def clear(self) -> None:
        self._entries.clear()

    def stats(self) -> dict:
        """Cache statistics."""
        return {
            "size": len(self._entries),
            "max_size": self._max_size,
            "keys": list(self._entries.keys()),
        }

    async def with_cache(
        self,
        key: str,
        producer: Callable[[], Awaitable[T]],
        ttl: Optional[float] = None,
    ) -> T:
        """
        Return the cached value for `key`, producing and caching it on a miss.

        Args:
            key: Cache key
            producer: Coroutine function fetching fresh data
            ttl: Optional TTL override (seconds)

        Returns:
            Cached or freshly produced value
        """
        entry = self._live_entry(key)
        if entry is not None:
            logger.debug("Cache HIT: %s", key)
            return entry.data

        logger.debug("Cache MISS: %s, fetching...", key)
        data = await producer()
        self.set(key, data, ttl)
        return data

    def preload(
        self,
        key: str,
        producer: Callable[[], Awaitable[Any]],
        ttl: Optional[float] = None,
    ) -> None:
        """
        Warm `key` in a detached background task.

        No-op if the key is already warm. Failures are logged and dropped;
        nothing is reported back to the caller.
        """
        if self.has(key):
            return

        task = asyncio.get_running_loop().create_task(self._run_preload(key, producer, ttl))
        self._preloads.add(task)
        task.add_done_callback(self._preloads.discard)

    async def _run_preload(
        self,
        key: str,
        producer: Callable[[], Awaitable[Any]],
        ttl: Optional[float],
    ) -> None:
        if self.has(key):
            return
        try:
            data = await producer()
        except Exception:
            logger.warning("Failed to preload cache: %s", key, exc_info=True)
            return
        self.set(key, data, ttl)
        logger.debug("Preloaded cache: %s", key)

    @property
    def pending_preloads(self) -> tuple:
        """Background warm-up tasks still running."""
        return tuple(self._preloads)
