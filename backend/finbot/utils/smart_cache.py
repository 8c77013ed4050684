"""
Snapshot Cache for FinBot

A short-TTL read-through cache for the latest market snapshot. There is one
writer (the quote fetch) and any number of readers. An entry is always
replaced as a whole object, so readers never see a half-updated snapshot.

Features:
- TTL-based invalidation (60 seconds by default)
- Read-through helper that fetches and stores on a miss
- Cache hit/miss statistics
"""

import time
import json
import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Generic, Optional, Tuple, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar('T')


class SnapshotCache(Generic[T]):
    """
    Holds a single value for `ttl_seconds`, then lets it expire
    """

    def __init__(self, ttl_seconds: float = 60, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entry: Optional[Tuple[float, T]] = None  # (stored_at, value)

        # Statistics
        self.stats = {
            'hits': 0,
            'misses': 0,
            'total_requests': 0
        }

    def get(self) -> Optional[T]:
        """
        Get the cached value if it has not expired

        Returns:
            Cached value if valid, None if expired or empty
        """
        self.stats['total_requests'] += 1

        if self._entry is None:
            self.stats['misses'] += 1
            logger.debug("Snapshot cache miss")
            return None

        stored_at, value = self._entry
        if self._clock() - stored_at >= self.ttl_seconds:
            self._entry = None
            self.stats['misses'] += 1
            logger.debug("Snapshot cache expired")
            return None

        self.stats['hits'] += 1
        return value

    def set(self, value: T) -> None:
        self._entry = (self._clock(), value)
        logger.debug(f"Snapshot cache set, ttl: {self.ttl_seconds}s")

    def age(self) -> Optional[float]:
        """Seconds since the current entry was stored, or None if empty"""
        if self._entry is None:
            return None
        return self._clock() - self._entry[0]

    def invalidate(self) -> None:
        self._entry = None
        logger.info("Snapshot cache invalidated")

    async def get_or_fetch(self, fetch: Callable[[], Awaitable[T]], force_refresh: bool = False) -> Tuple[T, bool]:
        """
        Read-through access

        Args:
            fetch: Coroutine function producing a fresh value
            force_refresh: Skip the cache and always fetch

        Returns:
            (value, cached) where cached tells whether the value came from the cache
        """
        if not force_refresh:
            cached = self.get()
            if cached is not None:
                return cached, True

        value = await fetch()
        self.set(value)
        return value, False

    def get_stats(self) -> Dict[str, Any]:
        """Get cache statistics"""
        hit_rate = (self.stats['hits'] / max(1, self.stats['total_requests'])) * 100
        age = self.age()

        return {
            'hit_rate': f"{hit_rate:.1f}%",
            'hits': self.stats['hits'],
            'misses': self.stats['misses'],
            'total_requests': self.stats['total_requests'],
            'ttl_seconds': self.ttl_seconds,
            'entry_age_seconds': round(age, 1) if age is not None else None
        }

    def export_stats(self) -> str:
        """Export cache statistics as JSON"""
        stats = self.get_stats()
        stats['timestamp'] = datetime.now().isoformat()
        return json.dumps(stats, indent=2)
