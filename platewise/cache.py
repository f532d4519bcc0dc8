"""In-memory TTL cache shared by extractors and pricing lookups."""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    """A cached value and when it was stored."""

    key: str
    value: Any
    stored_at: float


class ExtractionCache:
    """
    Keyed store whose entries expire after a time-to-live.

    Expiry is checked at read time: an entry older than the TTL is evicted and the
    lookup reports a miss. Lookups never block, so a miss always falls through to
    a live call. Concurrent writers to one key are last-writer-wins.
    """

    def __init__(self, ttl: float, clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._hits = 0
        self._misses = 0

    def get(self, key: str, ttl: float | None = None) -> Any | None:
        """
        Look up a value.

        Args:
            key: Cache key (usually a source URL)
            ttl: Override the cache's default time-to-live for this read

        Returns:
            The cached value, or None if absent or expired
        """
        entry = self._entries.get(key)
        if entry is None:
            self._misses += 1
            return None

        max_age = self.ttl if ttl is None else ttl
        if self._clock() - entry.stored_at > max_age:
            self._entries.pop(key, None)
            self._misses += 1
            logger.debug(f"Cache entry expired for {key}")
            return None

        self._hits += 1
        return entry.value

    def set(self, key: str, value: Any) -> None:
        """Store a value, replacing any existing entry for the key."""
        self._entries[key] = CacheEntry(key=key, value=value, stored_at=self._clock())

    def has(self, key: str) -> bool:
        """Check for a live entry without counting a hit or miss."""
        entry = self._entries.get(key)
        return entry is not None and self._clock() - entry.stored_at <= self.ttl

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def cleanup(self) -> int:
        """
        Evict every expired entry.

        Returns:
            Number of entries removed
        """
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if now - entry.stored_at > self.ttl]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug(f"Evicted {len(expired)} expired cache entries")
        return len(expired)

    def stats(self) -> dict[str, int]:
        return {"size": len(self._entries), "hits": self._hits, "misses": self._misses}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return self.has(key)
