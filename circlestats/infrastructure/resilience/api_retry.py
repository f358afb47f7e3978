"""Retrying fetcher for single upstream GET requests.

Implements a progressive backoff schedule for transient failures (rate
limits, 5xx, timeouts, connection problems) and fails fast on errors that
retrying cannot fix (bad credentials, bot-protection challenges). Every
outcome is returned as a FetchResult value; nothing raises past `fetch`.
"""

import asyncio
import json
import logging
import time
from typing import Any, Awaitable, Callable, Mapping, Optional, Sequence

import httpx

from circlestats.domain.events.api_events import (
    ApiCallFailed, ApiCallInitiated, ApiCallSucceeded, EventListener,
    RetryScheduled, dispatch_event,
)
from circlestats.domain.models.common import EndpointUrl, FetchOptions
from circlestats.domain.models.errors import DetailedError, ErrorKind, cancelled_error
from circlestats.domain.models.results import FetchFailure, FetchResult, FetchSuccess
from circlestats.infrastructure.resilience.error_classifier import (
    classify_response, is_fatal, is_json_content_type, is_retryable,
)

logger = logging.getLogger(__name__)

DEFAULT_RETRY_DELAYS_S = (1.0, 2.0, 4.0)
BODY_PREVIEW_CHARS = 200

_NOT_JSON = object()


class FetchCancelled(Exception):
    """Raised internally when the caller's cancel event fires."""


async def run_cancellable(awaitable: Awaitable[Any], cancel_event: Optional[asyncio.Event]) -> Any:
    """Awaits `awaitable` unless `cancel_event` fires first.

    Raises:
        FetchCancelled: If the event was set before the awaitable finished.
    """
    if cancel_event is None:
        return await awaitable

    task = asyncio.ensure_future(awaitable)
    if cancel_event.is_set():
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        raise FetchCancelled()

    waiter = asyncio.ensure_future(cancel_event.wait())
    try:
        done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        task.cancel()
        raise
    finally:
        waiter.cancel()

    if task in done:
        return task.result()

    task.cancel()
    await asyncio.gather(task, return_exceptions=True)
    raise FetchCancelled()


class RetryingFetcher:
    """Performs one logical GET with bounded retries and backoff."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        retry_delays_s: Sequence[float] = DEFAULT_RETRY_DELAYS_S,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        event_listener: Optional[EventListener] = None,
    ):
        """Initializes the fetcher.

        Args:
            client: HTTP client used for every attempt.
            retry_delays_s: Delay before attempt 2, 3, ...; the last value is
                reused for any further attempts.
            sleep: Awaitable sleep, replaceable in tests.
            event_listener: Receives domain events (logged if None).
        """
        if not retry_delays_s:
            raise ValueError("retry_delays_s must contain at least one delay")
        self.client = client
        self.retry_delays_s = tuple(retry_delays_s)
        self.sleep = sleep
        self.event_listener = event_listener

    def delay_before(self, attempt_number: int) -> float:
        """Returns the backoff delay preceding the given (1-based) attempt."""
        if attempt_number <= 1:
            return 0.0
        index = min(attempt_number - 2, len(self.retry_delays_s) - 1)
        return self.retry_delays_s[index]

    async def fetch(
        self,
        url: str,
        headers: Mapping[str, str],
        options: Optional[FetchOptions] = None,
    ) -> FetchResult:
        """Fetches `url`, retrying transient failures.

        Returns:
            FetchSuccess with the parsed JSON body, or FetchFailure with the
            last classified error.
        """
        options = options or FetchOptions()
        endpoint = EndpointUrl(url)
        total_attempts = max(0, options.max_retries) + 1
        last_error: Optional[DetailedError] = None
        attempts_made = 0

        for attempt in range(1, total_attempts + 1):
            if attempt > 1:
                delay = self.delay_before(attempt)
                logger.warning(
                    f"Retryable error calling {url} on attempt {attempt - 1}/{total_attempts}: "
                    f"{last_error.kind.value}. Waiting {delay:.2f}s..."
                )
                dispatch_event(RetryScheduled(
                    endpoint=url, attempt_number=attempt, delay_seconds=delay,
                    error_kind=last_error.kind.value,
                ), self.event_listener)
                try:
                    await run_cancellable(self.sleep(delay), options.cancel_event)
                except FetchCancelled:
                    return self._cancelled(endpoint, attempts_made)

            attempts_made = attempt
            dispatch_event(ApiCallInitiated(endpoint=url, attempt_number=attempt), self.event_listener)
            start_time = time.perf_counter()
            try:
                response = await run_cancellable(
                    asyncio.wait_for(self.client.get(url, headers=dict(headers)), timeout=options.timeout_s),
                    options.cancel_event,
                )
            except FetchCancelled:
                return self._cancelled(endpoint, attempts_made)
            except (asyncio.TimeoutError, httpx.TimeoutException):
                last_error = DetailedError(
                    kind=ErrorKind.TIMEOUT,
                    message=f"Request timed out after {options.timeout_s}s",
                    endpoint=url,
                    details={"attempt": attempt},
                )
                continue
            except httpx.HTTPError as e:
                last_error = DetailedError(
                    kind=ErrorKind.NETWORK_ERROR,
                    message=f"Network error: {str(e) or type(e).__name__}",
                    endpoint=url,
                    status_code=0,
                    details={"attempt": attempt, "exception": type(e).__name__},
                )
                continue

            latency_ms = (time.perf_counter() - start_time) * 1000
            data, error = self._evaluate(response, url)
            if error is None:
                logger.debug(f"Fetched {url} on attempt {attempt} ({latency_ms:.0f}ms)")
                dispatch_event(ApiCallSucceeded(
                    endpoint=url, attempt_number=attempt, latency_ms=latency_ms,
                ), self.event_listener)
                return FetchSuccess(data=data, endpoint=endpoint, attempts=attempt)

            last_error = error
            if not is_retryable(error.kind):
                log = logger.error if is_fatal(error.kind) else logger.warning
                log(f"Non-retryable error calling {url} on attempt {attempt}: {error.kind.value} ({error.message})")
                return self._failed(error, attempts_made)

        logger.error(f"Max retries ({options.max_retries}) reached for {url}. Last error: {last_error.kind.value}")
        return self._failed(last_error, attempts_made)

    def _evaluate(self, response: httpx.Response, url: str):
        """Returns (parsed_body, None) on success or (None, DetailedError)."""
        content_type = response.headers.get("content-type", "")
        text = response.text
        preview = {"response_text": text[:BODY_PREVIEW_CHARS]}

        if response.is_success:
            data = _parse_json(text)
            if data is not _NOT_JSON:
                return data, None
            if is_json_content_type(content_type):
                return None, DetailedError(
                    kind=ErrorKind.INVALID_RESPONSE,
                    message="Failed to parse JSON response",
                    endpoint=url,
                    status_code=response.status_code,
                    details=preview,
                )

        kind = classify_response(response.status_code, content_type, text)
        return None, DetailedError(
            kind=kind,
            message=f"API request failed: {response.status_code} {response.reason_phrase}".strip(),
            endpoint=url,
            status_code=response.status_code,
            details=preview,
        )

    def _failed(self, error: DetailedError, attempts: int) -> FetchFailure:
        dispatch_event(ApiCallFailed(
            endpoint=error.endpoint or "",
            error_kind=error.kind.value,
            error_message=error.message,
            attempts=attempts,
        ), self.event_listener)
        return FetchFailure(error=error, attempts=attempts)

    def _cancelled(self, endpoint: EndpointUrl, attempts: int) -> FetchFailure:
        logger.info(f"Fetch of {endpoint} cancelled by caller after {attempts} attempt(s)")
        return self._failed(cancelled_error(endpoint), attempts)


def _parse_json(text: str) -> Any:
    try:
        return json.loads(text)
    except ValueError:
        return _NOT_JSON
