"""Defines common Value Objects used across different domain contexts.

These objects represent simple values such as endpoint URLs, cache keys and
raw upstream records, ensuring consistency and type safety.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, NewType, Optional, TypedDict
import asyncio

# === Upstream API Context ===
EndpointUrl = NewType("EndpointUrl", str)      # Fully built URL incl. query string
ResourceName = NewType("ResourceName", str)    # 'members' or 'invitationLinks'

# A single member or invitation-link entry exactly as returned upstream.
# The shape is not stable across endpoints and must be treated as untrusted.
RawRecord = Dict[str, Any]
RawRecords = List[RawRecord]

# === Caching Context ===
CacheKey = NewType("CacheKey", str)              # Unique key for a cache entry
CacheSource = NewType("CacheSource", str)        # 'api', 'manual' or 'fallback'

# --- Structured Data ---

@dataclass(frozen=True)
class Credentials:
    """Static credentials forwarded to the upstream API."""
    api_key: str
    community_id: str

    def masked_key(self) -> str:
        """Returns the first 8 characters of the key for logging."""
        return f"{self.api_key[:8]}..."


@dataclass
class FetchOptions:
    """Per-call configuration for the fetch pipeline."""
    timeout_s: float = 30.0
    max_retries: int = 3
    cancel_event: Optional[asyncio.Event] = None

    @property
    def is_cancelled(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()


class BackoffPolicy(TypedDict):
    """Value Object representing retry backoff configuration."""
    max_retries: int
    retry_delays_s: List[float]
