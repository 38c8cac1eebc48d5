"""
Tour service caching package.

In-memory LRU/TTL cache engine and the response-caching wrapper used by the
tour routes. Entries live for the process lifetime only; prefer short TTLs
and explicit invalidation.
"""

from .cache_manager import CacheManager
from .entry import CacheBatchEntry, CacheEntry, CacheStats, WarmCacheResult, WarmCacheTask
from .keys import format_cache_key, generate_cache_key
from .middleware import CACHE_HEADER, build_cached_response, with_cache

__all__ = [
    "CACHE_HEADER",
    "CacheBatchEntry",
    "CacheEntry",
    "CacheManager",
    "CacheStats",
    "WarmCacheResult",
    "WarmCacheTask",
    "build_cached_response",
    "format_cache_key",
    "generate_cache_key",
    "with_cache",
]
