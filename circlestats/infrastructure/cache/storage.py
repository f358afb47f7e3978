"""Storage backends for the caching service.

`MemoryCacheStorage` keeps nothing beyond the process. `PickleFileCacheStorage`
writes the whole entry map to one pickle file so the last good statistics
survive between CLI invocations.
"""

import logging
import os
import pickle
from pathlib import Path
from typing import Dict

from circlestats.domain.interfaces.cache import CacheEntry, CacheStorage
from circlestats.domain.models.common import CacheKey

logger = logging.getLogger(__name__)

DEFAULT_CACHE_FILE = Path.home() / ".circlestats" / "cache.pkl"


class MemoryCacheStorage(CacheStorage):
    """No-op persistence; the cache's own map is the only copy."""

    def load(self) -> Dict[CacheKey, CacheEntry]:
        return {}

    def save(self, entries: Dict[CacheKey, CacheEntry]) -> None:
        pass


class PickleFileCacheStorage(CacheStorage):
    """Persists the entry map to a single pickle file."""

    def __init__(self, path: Path = DEFAULT_CACHE_FILE):
        self.path = Path(path)

    def load(self) -> Dict[CacheKey, CacheEntry]:
        if not self.path.exists():
            logger.debug(f"Cache file not found: {self.path}")
            return {}
        try:
            with open(self.path, 'rb') as f:
                entries = pickle.load(f)
        except (pickle.UnpicklingError, EOFError, AttributeError, ImportError, OSError) as e:
            logger.warning(f"Failed to read cache file {self.path}: {e}. Starting empty.")
            return {}
        if not isinstance(entries, dict):
            logger.warning(f"Cache file {self.path} did not contain a mapping. Starting empty.")
            return {}
        return entries

    def save(self, entries: Dict[CacheKey, CacheEntry]) -> None:
        temp_path = self.path.with_suffix('.tmp')
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(temp_path, 'wb') as f:
                pickle.dump(entries, f)
            # os.replace is atomic on Windows and Unix
            os.replace(str(temp_path), str(self.path))
            logger.debug(f"Saved {len(entries)} cache entries to {self.path}")
        except (pickle.PicklingError, OSError) as e:
            logger.warning(f"Failed to save cache file {self.path}: {e}")
            if temp_path.exists():
                temp_path.unlink(missing_ok=True)
