"""Error taxonomy for upstream API failures.

Errors travel through the fetch pipeline as immutable `DetailedError`
values. `CircleApiError` wraps one for the few places that raise (credential
loading); the client converts it back to a value at its public boundary.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Tuple


class ErrorKind(str, Enum):
    """Classification tag attached to every failed upstream call."""
    CLOUDFLARE_BLOCKED = "CLOUDFLARE_BLOCKED"
    INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
    RATE_LIMITED = "RATE_LIMITED"
    NETWORK_ERROR = "NETWORK_ERROR"
    INVALID_RESPONSE = "INVALID_RESPONSE"
    TIMEOUT = "TIMEOUT"
    UNKNOWN = "UNKNOWN"


# These invalidate the whole session; retrying cannot help.
FATAL_KINDS = frozenset({ErrorKind.INVALID_CREDENTIALS, ErrorKind.CLOUDFLARE_BLOCKED})

RETRYABLE_KINDS = frozenset({
    ErrorKind.RATE_LIMITED,
    ErrorKind.NETWORK_ERROR,
    ErrorKind.TIMEOUT,
    ErrorKind.INVALID_RESPONSE,
})


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class DetailedError:
    """A classified failure, constructed where it happened."""
    kind: ErrorKind
    message: str
    timestamp: datetime = field(default_factory=_utcnow)
    endpoint: Optional[str] = None
    status_code: Optional[int] = None
    details: Optional[Dict[str, Any]] = None

    @property
    def is_fatal(self) -> bool:
        return self.kind in FATAL_KINDS

    @property
    def is_cancelled(self) -> bool:
        return bool(self.details and self.details.get("cancelled"))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "message": self.message,
            "timestamp": self.timestamp.isoformat(),
            "endpoint": self.endpoint,
            "status_code": self.status_code,
            "details": self.details,
        }


def cancelled_error(endpoint: Optional[str] = None) -> DetailedError:
    """The error reported when the caller's cancel event fires."""
    return DetailedError(
        kind=ErrorKind.NETWORK_ERROR,
        message="Request cancelled",
        endpoint=endpoint,
        details={"cancelled": True},
    )


class CircleApiError(Exception):
    """Exception carrying a DetailedError across a raising code path."""

    def __init__(self, error: DetailedError):
        self.error = error
        super().__init__(error.message)

    @classmethod
    def of(cls, kind: ErrorKind, message: str, **kwargs: Any) -> "CircleApiError":
        return cls(DetailedError(kind=kind, message=message, **kwargs))


# --- Human-facing descriptions ---

@dataclass(frozen=True)
class ErrorDescription:
    """Title, description and troubleshooting steps for one error kind."""
    title: str
    description: str
    steps: Tuple[str, ...]


ERROR_DESCRIPTIONS: Dict[ErrorKind, ErrorDescription] = {
    ErrorKind.CLOUDFLARE_BLOCKED: ErrorDescription(
        title="Cloudflare Protection Active",
        description="The API is protected by Cloudflare security measures.",
        steps=(
            "Wait a few minutes and try again",
            "Check if you can access Circle directly in your browser",
            "Contact Circle support if the issue persists",
        ),
    ),
    ErrorKind.INVALID_CREDENTIALS: ErrorDescription(
        title="Authentication Failed",
        description="Your API key or community ID is incorrect or missing.",
        steps=(
            "Verify your API key in the Circle admin panel",
            "Check that your community ID is correct",
            "Ensure your API key has member read permissions",
            "Make sure CIRCLE_API_KEY and CIRCLE_COMMUNITY_ID are set",
        ),
    ),
    ErrorKind.RATE_LIMITED: ErrorDescription(
        title="Rate Limit Exceeded",
        description="Too many requests. Please wait before trying again.",
        steps=(
            "Wait for the rate limit to reset (usually 1 hour)",
            "Reduce the frequency of API calls",
            "Contact Circle to increase your rate limits",
        ),
    ),
    ErrorKind.NETWORK_ERROR: ErrorDescription(
        title="Network Connection Error",
        description="Unable to connect to the Circle API.",
        steps=(
            "Check your internet connection",
            "Verify that Circle is accessible",
            "Try again in a few minutes",
            "Check if there are any firewall restrictions",
        ),
    ),
    ErrorKind.INVALID_RESPONSE: ErrorDescription(
        title="Invalid API Response",
        description="The API returned an unexpected response format.",
        steps=(
            "Try refreshing the data",
            "Check if Circle has updated their API",
            "Contact support if the issue persists",
        ),
    ),
    ErrorKind.TIMEOUT: ErrorDescription(
        title="Request Timeout",
        description="The API request took too long to complete.",
        steps=(
            "Try again with a smaller page size",
            "Check your internet connection speed",
            "The API might be experiencing high load",
        ),
    ),
    ErrorKind.UNKNOWN: ErrorDescription(
        title="Unknown Error",
        description="An unexpected error occurred.",
        steps=(
            "Try refreshing the data",
            "Re-run with logging.level=DEBUG for more details",
            "Contact support with the error details",
        ),
    ),
}


def describe_error(kind: ErrorKind) -> ErrorDescription:
    """Looks up the remediation text for an error kind."""
    return ERROR_DESCRIPTIONS[kind]
