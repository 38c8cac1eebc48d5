"""
In-memory cache engine for the tour service.
"""

import threading
import time
from collections import OrderedDict
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from shared.logging import get_logger
from .entry import CacheBatchEntry, CacheEntry, CacheStats, WarmCacheResult, WarmCacheTask
from .wildcard import compile_wildcard, has_wildcard


BatchItem = Union[CacheBatchEntry, Tuple[str, Any], Tuple[str, Any, Optional[float]]]


class CacheManager:
    """
    LRU cache with optional per-entry TTL, wildcard invalidation and hit/miss stats.

    Entries are kept in an ``OrderedDict`` in recency order: least recently
    used first, most recently used last. Expired entries are treated as
    absent and are dropped lazily by ``get``/``set`` or by the prune pass
    that ``set`` and ``get_stats`` run. There is no background sweeper.

    All access to the entry map goes through a single lock, so an instance
    can be shared between threads. ``warm_cache`` awaits its fetchers outside
    the lock.
    """

    def __init__(
        self,
        *,
        default_ttl_seconds: Optional[float] = None,
        max_size: Optional[int] = None,
        enable_stats_logging: bool = False,
        logger: Optional[Any] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        if max_size is not None and max_size < 1:
            raise ValueError(f"max_size must be at least 1, got {max_size}")

        self._default_ttl_seconds = default_ttl_seconds
        self._max_size = max_size
        self._enable_stats_logging = enable_stats_logging
        self.logger = logger if logger is not None else get_logger("tour.cache_manager")
        self._clock = clock or time.monotonic

        self._entries: "OrderedDict[str, CacheEntry[Any]]" = OrderedDict()
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    @property
    def default_ttl_seconds(self) -> Optional[float]:
        return self._default_ttl_seconds

    @property
    def max_size(self) -> Optional[int]:
        return self._max_size

    @property
    def hits(self) -> int:
        return self._hits

    @property
    def misses(self) -> int:
        return self._misses

    @property
    def evictions(self) -> int:
        return self._evictions

    def size(self) -> int:
        """Number of stored entries, including expired ones not yet pruned."""
        with self._lock:
            return len(self._entries)

    def __len__(self) -> int:
        return self.size()

    def __contains__(self, key: object) -> bool:
        """Live-entry check that leaves counters and recency untouched."""
        with self._lock:
            entry = self._entries.get(key)  # type: ignore[arg-type]
            return entry is not None and not entry.is_expired(self._clock())

    def set(self, key: str, value: Any, ttl_seconds: Optional[float] = None) -> None:
        """Store ``value`` under ``key`` at the most-recently-used position."""
        with self._lock:
            now = self._clock()
            self._prune_expired(now)

            # Re-inserting moves an existing key to the MRU end.
            self._entries.pop(key, None)
            self._entries[key] = CacheEntry(
                data=value,
                expires_at=self._compute_expiry(ttl_seconds, now),
                last_accessed=now,
            )
            self._enforce_size_limit()

    def get(self, key: str) -> Optional[Any]:
        """Return the cached value, or None on a miss or an expired entry."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None

            now = self._clock()
            if entry.is_expired(now):
                del self._entries[key]
                self._misses += 1
                return None

            self._hits += 1
            entry.last_accessed = now
            self._entries.move_to_end(key)
            return entry.data

    def get_many(self, keys: Sequence[str]) -> Dict[str, Optional[Any]]:
        """Apply ``get`` to each key in order."""
        return {key: self.get(key) for key in keys}

    def set_many(self, entries: Iterable[BatchItem]) -> None:
        """Apply ``set`` to each entry in order; earlier items stay stored if a later one fails."""
        for item in entries:
            if isinstance(item, CacheBatchEntry):
                self.set(item.key, item.data, item.ttl_seconds)
            else:
                self.set(*item)

    def invalidate(self, pattern: str) -> int:
        """
        Remove the exact key, or every key matching a ``*`` glob.

        Returns the number of entries removed.
        """
        with self._lock:
            if not has_wildcard(pattern):
                removed = 1 if self._entries.pop(pattern, None) is not None else 0
            else:
                matcher = compile_wildcard(pattern)
                matched = [key for key in self._entries if matcher(key)]
                for key in matched:
                    del self._entries[key]
                removed = len(matched)

        self.logger.debug("Cache invalidated", pattern=pattern, removed=removed)
        return removed

    def clear(self) -> None:
        """Drop every entry. Lifetime hit/miss/eviction counters are kept."""
        with self._lock:
            removed = len(self._entries)
            self._entries.clear()
        self.logger.info("Cache cleared", removed=removed)

    def get_stats(self) -> CacheStats:
        """Prune expired entries and return a counters snapshot."""
        with self._lock:
            self._prune_expired(self._clock())
            total = self._hits + self._misses
            stats = CacheStats(
                size=len(self._entries),
                hits=self._hits,
                misses=self._misses,
                evictions=self._evictions,
                hit_rate=self._hits / total if total > 0 else 0.0,
            )

        if self._enable_stats_logging:
            self.logger.info(
                "Cache stats",
                size=stats.size,
                hits=stats.hits,
                misses=stats.misses,
                evictions=stats.evictions,
                hit_rate=round(stats.hit_rate, 3),
            )

        return stats

    async def warm_cache(self, tasks: Iterable[WarmCacheTask]) -> WarmCacheResult:
        """
        Populate entries by awaiting each task's fetcher, one after another.

        A failing fetcher is recorded under its key and the batch moves on;
        the exception object itself is kept in ``failures``.
        """
        result = WarmCacheResult()
        for task in tasks:
            try:
                data = await task.fetcher()
            except Exception as exc:
                result.failures[task.key] = exc
                self.logger.warning("Cache warm task failed", key=task.key, error=str(exc))
                continue

            self.set(task.key, data, task.ttl_seconds)
            result.successes.append(task.key)

        self.logger.info(
            "Cache warm completed",
            successes=len(result.successes),
            failures=len(result.failures),
        )
        return result

    def keys(self) -> List[str]:
        """Stored keys in recency order, least recently used first."""
        with self._lock:
            return list(self._entries)

    def _compute_expiry(self, ttl_seconds: Optional[float], now: float) -> Optional[float]:
        ttl = ttl_seconds if ttl_seconds is not None else self._default_ttl_seconds
        if ttl is None:
            return None
        if ttl <= 0:
            # Stored, but already expired on the next read.
            return now
        return now + ttl

    def _prune_expired(self, now: float) -> None:
        if not self._entries:
            return
        expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
        for key in expired:
            del self._entries[key]
        if expired:
            self.logger.debug("Pruned expired cache entries", count=len(expired))

    def _enforce_size_limit(self) -> None:
        if self._max_size is None:
            return
        evicted = 0
        while len(self._entries) > self._max_size:
            self._entries.popitem(last=False)
            self._evictions += 1
            evicted += 1
        if evicted:
            self.logger.debug("Evicted least recently used entries", count=evicted)
