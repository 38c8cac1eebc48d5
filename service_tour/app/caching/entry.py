"""
Value types shared by the cache engine and its callers.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Generic, List, Optional, TypeVar

from pydantic import BaseModel


T = TypeVar("T")


@dataclass
class CacheEntry(Generic[T]):
    """Stored value plus expiry and recency metadata (monotonic seconds)."""

    data: T
    expires_at: Optional[float]
    last_accessed: float

    def is_expired(self, now: float) -> bool:
        return self.expires_at is not None and self.expires_at <= now


class CacheStats(BaseModel):
    """Snapshot returned by ``CacheManager.get_stats``."""

    size: int
    hits: int
    misses: int
    evictions: int
    hit_rate: float


@dataclass(frozen=True)
class CacheBatchEntry(Generic[T]):
    """One item of a ``set_many`` batch."""

    key: str
    data: T
    ttl_seconds: Optional[float] = None


@dataclass(frozen=True)
class WarmCacheTask(Generic[T]):
    """Key to populate plus the coroutine factory producing its value."""

    key: str
    fetcher: Callable[[], Awaitable[T]]
    ttl_seconds: Optional[float] = None


@dataclass
class WarmCacheResult:
    """Outcome of ``CacheManager.warm_cache``; failures keep the raised exception."""

    successes: List[str] = field(default_factory=list)
    failures: Dict[str, BaseException] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "successes": list(self.successes),
            "failures": {key: str(error) for key, error in self.failures.items()},
        }
