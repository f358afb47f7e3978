"""Concrete implementation of the Caching Service.

Keeps entries in an in-memory map keyed by string, with a freshness TTL and
a max age that bounds how long an expired entry may still be read as stale. The map is
mirrored to an injected storage backend after every mutation, and the clock
is injectable so expiry can be tested without sleeping.
"""

import logging
import pickle
import time
from typing import Any, Callable, Dict, List, Optional

# Domain Layer Imports
from circlestats.domain.interfaces.cache import (
    CacheEntry, CacheEntryInfo, CacheService, CacheStats, CacheStorage
)
from circlestats.domain.models.common import CacheKey, CacheSource
from circlestats.infrastructure.cache.storage import MemoryCacheStorage

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 5 * 60       # 5 minutes
DEFAULT_MAX_AGE_SECONDS = 30 * 60  # 30 minutes
MANUAL_DATA_TTL_SECONDS = 24 * 60 * 60

# Logical keys used by the stats service and the CLI
class CacheKeys:
    STATS = CacheKey("circle-stats")
    MANUAL_DATA = CacheKey("circle-manual-data")
    CONNECTION_TEST = CacheKey("circle-connection-test")

    ALL = (STATS, MANUAL_DATA, CONNECTION_TEST)


def _approximate_size(data: Any) -> int:
    try:
        return len(pickle.dumps(data))
    except (pickle.PicklingError, TypeError, AttributeError):
        return len(repr(data))


class CachingServiceImpl(CacheService):
    """TTL cache with stale-but-usable reads and pluggable persistence."""

    def __init__(
        self,
        storage: Optional[CacheStorage] = None,
        clock: Callable[[], float] = time.time,
        default_ttl: float = DEFAULT_TTL_SECONDS,
        max_age: float = DEFAULT_MAX_AGE_SECONDS,
    ):
        """Initializes the caching service and loads persisted entries.

        Args:
            storage: Where entries are persisted (memory only if None).
            clock: Returns the current time in seconds.
            default_ttl: Freshness window used when `set` gets no ttl.
            max_age: Age after which an expired entry is no longer served stale.
        """
        self.storage = storage or MemoryCacheStorage()
        self.clock = clock
        self.default_ttl = default_ttl
        self.max_age = max_age
        self._entries: Dict[CacheKey, CacheEntry] = {}
        self._load()

        logger.info(
            f"CachingService initialized. ttl={default_ttl}s, max_age={max_age}s, "
            f"storage={self.storage.__class__.__name__}, entries={len(self._entries)}"
        )

    def _load(self) -> None:
        """Loads entries from storage, dropping anything past max age."""
        now = self.clock()
        loaded = self.storage.load()
        kept = {k: v for k, v in loaded.items() if not self._too_old(v, now)}
        self._entries = kept
        cleaned = len(loaded) - len(kept)
        if cleaned:
            logger.info(f"Cleaned {cleaned} entries past max age on load.")
            self._persist()

    def _too_old(self, entry: CacheEntry, now: float) -> bool:
        """Expired and older than max age: not even usable as stale data."""
        return entry.is_expired(now) and entry.age(now) > self.max_age

    def _persist(self) -> None:
        self.storage.save(dict(self._entries))

    def _purge(self, key: CacheKey) -> None:
        if self._entries.pop(key, None) is not None:
            self._persist()

    # --- CacheService Interface Implementation ---

    async def get(self, key: CacheKey) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            logger.debug(f"Cache miss for key: {key}")
            return None

        now = self.clock()
        if self._too_old(entry, now):
            logger.debug(f"Cache entry past max age for key: {key}. Removing.")
            self._purge(key)
            return None
        if entry.is_expired(now):
            # Kept for get_stale until max age
            logger.debug(f"Cache expired for key: {key} (age: {entry.age(now):.1f}s)")
            return None

        logger.debug(f"Cache hit for key: {key} (age: {entry.age(now):.1f}s, source: {entry.source})")
        return entry.data

    async def get_stale(self, key: CacheKey) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            return None

        now = self.clock()
        age = entry.age(now)
        if self._too_old(entry, now):
            logger.info(f"Removing stale cache entry {key} (age: {age:.1f}s > max: {self.max_age}s)")
            self._purge(key)
            return None

        if entry.is_expired(now):
            logger.debug(f"Returning stale cache entry {key} (age: {age:.1f}s)")
        return entry.data

    async def get_with_meta(self, key: CacheKey) -> Optional[CacheEntry]:
        return self._entries.get(key)

    async def set(
        self,
        key: CacheKey,
        value: Any,
        ttl: Optional[float] = None,
        source: str = "api",
    ) -> None:
        now = self.clock()
        effective_ttl = ttl if ttl is not None else self.default_ttl
        self._entries[key] = CacheEntry(
            data=value,
            created_at=now,
            expires_at=now + effective_ttl,
            source=CacheSource(source),
        )
        self._persist()
        logger.debug(f"Stored cache entry: key={key}, source={source}, ttl={effective_ttl}s")

    async def clear(self, key: CacheKey) -> None:
        self._purge(key)
        logger.debug(f"Cleared cache entry: key={key}")

    async def clear_all(self) -> None:
        self._entries.clear()
        self._persist()
        logger.info("Cleared all cache entries.")

    async def stats(self) -> CacheStats:
        now = self.clock()
        infos: List[CacheEntryInfo] = []
        fresh = stale = expired = 0

        for key, entry in self._entries.items():
            age = entry.age(now)
            is_expired = entry.is_expired(now)
            infos.append(CacheEntryInfo(
                key=key,
                source=entry.source,
                age_s=age,
                is_expired=is_expired,
                size=_approximate_size(entry.data),
            ))
            if not is_expired:
                fresh += 1
            elif age <= self.max_age:
                stale += 1
            else:
                expired += 1

        return CacheStats(
            total_entries=len(self._entries),
            fresh_entries=fresh,
            stale_entries=stale,
            expired_entries=expired,
            total_size=sum(info.size for info in infos),
            entries=infos,
        )
