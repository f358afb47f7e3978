"""Domain Events related to upstream API calls and resilience.

Examples include events for when calls start, are retried, fail, succeed,
or when a page or endpoint variant is given up on.
"""

from dataclasses import dataclass, field
import logging
import time
from typing import Callable, Optional

logger = logging.getLogger(__name__)

@dataclass
class DomainEvent:
    """Base class for domain events."""
    pass

# --- Specific API Events ---

@dataclass
class ApiCallInitiated(DomainEvent):
    """Event triggered when an attempt is about to be made."""
    endpoint: str
    attempt_number: int
    timestamp: float = field(default_factory=time.time)

@dataclass
class ApiCallSucceeded(DomainEvent):
    """Event triggered when an attempt returns a usable JSON body."""
    endpoint: str
    attempt_number: int
    latency_ms: float
    timestamp: float = field(default_factory=time.time)

@dataclass
class ApiCallFailed(DomainEvent):
    """Event triggered when a call fails definitively (after retries)."""
    endpoint: str
    error_kind: str
    error_message: str
    attempts: int
    timestamp: float = field(default_factory=time.time)

@dataclass
class RetryScheduled(DomainEvent):
    """Event triggered when a retry is scheduled for a failed attempt."""
    endpoint: str
    attempt_number: int # The attempt that will run after the delay
    delay_seconds: float
    error_kind: str
    timestamp: float = field(default_factory=time.time)

@dataclass
class PageFetched(DomainEvent):
    """Event triggered after each follow-up page of a paginated collection."""
    endpoint: str
    page: int
    record_count: int
    failed: bool = False
    timestamp: float = field(default_factory=time.time)

@dataclass
class EndpointVariantFailed(DomainEvent):
    """Event triggered when the resolver moves past a failing variant."""
    resource: str
    endpoint: str
    error_kind: str
    timestamp: float = field(default_factory=time.time)


EventListener = Callable[[DomainEvent], None]


def log_event(event: DomainEvent) -> None:
    """Default listener: events are only logged."""
    logger.debug(f"EVENT: {event}")


def dispatch_event(event: DomainEvent, listener: Optional[EventListener] = None) -> None:
    """Sends an event to the given listener, falling back to the log."""
    (listener or log_event)(event)
