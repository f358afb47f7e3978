"""Interface for caching mechanisms.

Defines the contract for storing, retrieving, and managing cached data
with a freshness TTL and a longer max-age window bounding stale reads.
Also defines the storage port that cache implementations persist through.
"""

import abc
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

# Import relevant domain models
from ..models.common import CacheKey, CacheSource

CACHE_VERSION = "1.0.0"

@dataclass
class CacheEntry:
    """A cached value with its lifecycle metadata (times are Unix seconds)."""
    data: Any
    created_at: float
    expires_at: float
    source: CacheSource
    version: str = CACHE_VERSION

    def age(self, now: float) -> float:
        return now - self.created_at

    def is_expired(self, now: float) -> bool:
        return now > self.expires_at


@dataclass(frozen=True)
class CacheEntryInfo:
    """Metadata about one entry, as reported by `stats()`."""
    key: CacheKey
    source: CacheSource
    age_s: float
    is_expired: bool
    size: int


@dataclass(frozen=True)
class CacheStats:
    total_entries: int
    fresh_entries: int
    stale_entries: int
    expired_entries: int
    total_size: int
    entries: List[CacheEntryInfo]


class CacheService(abc.ABC):
    """Abstract Base Class for caching operations."""

    @abc.abstractmethod
    async def get(self, key: CacheKey) -> Optional[Any]:
        """Retrieves an item if present and not past its expiry.

        Args:
            key: The cache key to retrieve.

        Returns:
            The cached item if found and fresh, otherwise None.
        """
        pass

    @abc.abstractmethod
    async def get_stale(self, key: CacheKey) -> Optional[Any]:
        """Retrieves an item even past its expiry, within the max-age window.

        Expired entries older than the max age are purged and None is returned.
        """
        pass

    @abc.abstractmethod
    async def get_with_meta(self, key: CacheKey) -> Optional[CacheEntry]:
        """Returns the raw entry (possibly expired) without purging it."""
        pass

    @abc.abstractmethod
    async def set(
        self,
        key: CacheKey,
        value: Any,
        ttl: Optional[float] = None,
        source: str = "api",
    ) -> None:
        """Stores an item, fully replacing any previous entry for the key.

        Args:
            key: The cache key to store the item under.
            value: The item to store.
            ttl: Time-to-live in seconds (uses the default if None).
            source: Where the data came from ('api', 'manual', 'fallback').
        """
        pass

    @abc.abstractmethod
    async def clear(self, key: CacheKey) -> None:
        """Deletes a single entry."""
        pass

    @abc.abstractmethod
    async def clear_all(self) -> None:
        """Deletes every entry."""
        pass

    @abc.abstractmethod
    async def stats(self) -> CacheStats:
        """Reports fresh, stale and expired counts and approximate size."""
        pass


class CacheStorage(abc.ABC):
    """Durable (or not) home for the full entry map."""

    @abc.abstractmethod
    def load(self) -> Dict[CacheKey, CacheEntry]:
        """Returns all stored entries, or an empty dict."""
        pass

    @abc.abstractmethod
    def save(self, entries: Dict[CacheKey, CacheEntry]) -> None:
        """Persists the full entry map."""
        pass
