"""Classification of upstream HTTP responses into error kinds.

Pure functions over (status, content type, body text); no I/O.
"""

from circlestats.domain.models.errors import ErrorKind, FATAL_KINDS, RETRYABLE_KINDS

# Substrings of anti-bot interstitial pages (matched case-insensitively)
CHALLENGE_MARKERS = (
    "checking your browser",
    "cloudflare",
    "ray id",
    "please wait while we check",
    "security check",
)

JSON_CONTENT_TYPE = "application/json"


def is_cloudflare_challenge(body_text: str) -> bool:
    """Checks whether a response body looks like a bot-protection challenge."""
    lowered = (body_text or "").lower()
    return any(marker in lowered for marker in CHALLENGE_MARKERS)


def is_json_content_type(content_type: str) -> bool:
    return JSON_CONTENT_TYPE in (content_type or "").lower()


def classify_response(status: int, content_type: str, body_text: str) -> ErrorKind:
    """Assigns exactly one ErrorKind to a non-successful response.

    Rules are evaluated in order and the first match wins. A status of 0
    means the request never completed.
    """
    if status in (401, 403):
        return ErrorKind.INVALID_CREDENTIALS
    if status == 429:
        return ErrorKind.RATE_LIMITED
    if status == 0 or status >= 500:
        return ErrorKind.NETWORK_ERROR
    if is_cloudflare_challenge(body_text):
        return ErrorKind.CLOUDFLARE_BLOCKED
    if not is_json_content_type(content_type):
        return ErrorKind.INVALID_RESPONSE
    return ErrorKind.UNKNOWN


def is_fatal(kind: ErrorKind) -> bool:
    return kind in FATAL_KINDS


def is_retryable(kind: ErrorKind) -> bool:
    """UNKNOWN and the fatal kinds are surfaced at their first occurrence."""
    return kind in RETRYABLE_KINDS
