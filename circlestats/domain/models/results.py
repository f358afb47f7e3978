"""Discriminated result types returned by the fetch pipeline.

Every public fetch operation returns one of these instead of raising. Each
pair shares a `success` flag so callers can branch without isinstance checks.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, List, Optional, Tuple, Union

from .common import EndpointUrl, RawRecords, ResourceName
from .community import SummaryStats
from .errors import DetailedError


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# --- Single request (Retrying Fetcher) ---

@dataclass(frozen=True)
class FetchSuccess:
    data: Any
    endpoint: EndpointUrl
    attempts: int = 1
    success: bool = field(default=True, init=False)


@dataclass(frozen=True)
class FetchFailure:
    error: DetailedError
    attempts: int = 1
    success: bool = field(default=False, init=False)


FetchResult = Union[FetchSuccess, FetchFailure]


# --- One logical resource (Endpoint Resolver) ---

@dataclass
class ResourceResult:
    """Records gathered for one resource plus how they were obtained."""
    resource: ResourceName
    records: RawRecords = field(default_factory=list)
    endpoint: Optional[EndpointUrl] = None
    error: Optional[DetailedError] = None
    attempted: List[EndpointUrl] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.endpoint is not None

    @property
    def aborts_operation(self) -> bool:
        """Fatal and cancelled failures stop the whole fetch, not just this resource."""
        return self.error is not None and (self.error.is_fatal or self.error.is_cancelled)


# --- Whole operation (Circle API client) ---

@dataclass(frozen=True)
class CommunityFetchSuccess:
    data: SummaryStats
    endpoint: str
    timestamp: datetime = field(default_factory=_utcnow)
    success: bool = field(default=True, init=False)


@dataclass(frozen=True)
class CommunityFetchFailure:
    error: DetailedError
    timestamp: datetime = field(default_factory=_utcnow)
    success: bool = field(default=False, init=False)


CommunityFetchResult = Union[CommunityFetchSuccess, CommunityFetchFailure]


# --- Stats service (cache-aware) ---

@dataclass(frozen=True)
class StatsResult:
    """What the dashboard receives: statistics with provenance, or an error.

    `source` is one of 'api', 'api-cache' or 'manual'. When statistics come
    from a cache fallback after a failed fetch, `error` still carries the
    failure that triggered the fallback.
    """
    data: Optional[SummaryStats] = None
    source: Optional[str] = None
    is_fresh: bool = False
    endpoint: Optional[str] = None
    error: Optional[DetailedError] = None

    @property
    def success(self) -> bool:
        return self.data is not None


# --- Diagnostics ---

@dataclass(frozen=True)
class ConnectionProbe:
    """Outcome of one unretried request against a candidate endpoint."""
    endpoint: str
    status: int
    content_type: str
    is_json: bool
    is_cloudflare: bool
    preview: str
    response_time_ms: float


@dataclass(frozen=True)
class ConnectionTestResult:
    success: bool
    results: Tuple[ConnectionProbe, ...] = ()
    error: Optional[str] = None
    timestamp: datetime = field(default_factory=_utcnow)
