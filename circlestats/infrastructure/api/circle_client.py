"""Circle Admin API client.

Wires the resilience stages together (Endpoint Resolver → Retrying Fetcher
→ Paginator) for the two resources the dashboard needs, folds the records
into SummaryStats and returns a discriminated result. Also provides the
unretried connection probe used for troubleshooting.
"""

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable, Dict, List, Optional, Sequence

import httpx

from circlestats.core.services.aggregation import aggregate
from circlestats.domain.events.api_events import EventListener
from circlestats.domain.models.common import Credentials, FetchOptions
from circlestats.domain.models.errors import CircleApiError, DetailedError, ErrorKind
from circlestats.domain.models.results import (
    CommunityFetchFailure, CommunityFetchResult, CommunityFetchSuccess,
    ConnectionProbe, ConnectionTestResult, ResourceResult,
)
from circlestats.infrastructure.config.settings import DEFAULT_BASE_URL, load_credentials
from circlestats.infrastructure.resilience.api_retry import DEFAULT_RETRY_DELAYS_S, RetryingFetcher
from circlestats.infrastructure.resilience.endpoint_resolver import (
    DEFAULT_PER_PAGE, INVITATION_LINKS, MEMBERS, EndpointResolver, build_url,
)
from circlestats.infrastructure.resilience.error_classifier import (
    is_cloudflare_challenge, is_json_content_type,
)
from circlestats.infrastructure.resilience.paginator import (
    DEFAULT_MAX_CONSECUTIVE_EMPTY, DEFAULT_MAX_PAGES, Paginator,
)

logger = logging.getLogger(__name__)

BROWSER_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
DEFAULT_PROBE_TIMEOUT_S = 10.0
PROBE_PREVIEW_CHARS = 150


def create_headers(api_key: str, origin: str = "https://app.circle.so") -> Dict[str, str]:
    """Request headers for the upstream API.

    The browser-like headers are there to get past the bot protection in
    front of the API, not for security.
    """
    return {
        'Authorization': f'Token {api_key}',
        'Content-Type': 'application/json',
        'Accept': 'application/json',
        'User-Agent': BROWSER_USER_AGENT,
        'Accept-Language': 'en-US,en;q=0.9',
        'Cache-Control': 'no-cache',
        'Pragma': 'no-cache',
        'Referer': f'{origin}/',
        'Origin': origin,
    }


def _origin_of(base_url: str) -> str:
    url = httpx.URL(base_url)
    return f"{url.scheme}://{url.host}" if url.host else "https://app.circle.so"


class CircleApiClient:
    """Fetches community members and invitation links and aggregates them."""

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        http_client: Optional[httpx.AsyncClient] = None,
        credentials_loader: Callable[[], Credentials] = load_credentials,
        retry_delays_s: Sequence[float] = DEFAULT_RETRY_DELAYS_S,
        per_page: int = DEFAULT_PER_PAGE,
        max_pages: int = DEFAULT_MAX_PAGES,
        max_consecutive_empty: int = DEFAULT_MAX_CONSECUTIVE_EMPTY,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        event_listener: Optional[EventListener] = None,
    ):
        """Initializes the client.

        Args:
            base_url: API root; resource paths are appended to it.
            http_client: Shared client. If None, one is opened per operation.
            credentials_loader: Returns Credentials or raises CircleApiError.
            retry_delays_s: Backoff schedule for the retrying fetcher.
            per_page: Page size requested from the upstream.
            max_pages: Safety limit on pages followed per resource.
            max_consecutive_empty: Empty/failed pages tolerated in a row.
            sleep: Awaitable sleep used between retries.
            event_listener: Receives domain events from every stage.
        """
        self.base_url = base_url
        self.http_client = http_client
        self.credentials_loader = credentials_loader
        self.retry_delays_s = tuple(retry_delays_s)
        self.per_page = per_page
        self.max_pages = max_pages
        self.max_consecutive_empty = max_consecutive_empty
        self.sleep = sleep
        self.event_listener = event_listener

    @asynccontextmanager
    async def _client(self) -> AsyncIterator[httpx.AsyncClient]:
        if self.http_client is not None:
            yield self.http_client
            return
        async with httpx.AsyncClient(follow_redirects=True) as client:
            yield client

    def _build_resolver(self, client: httpx.AsyncClient) -> EndpointResolver:
        fetcher = RetryingFetcher(
            client,
            retry_delays_s=self.retry_delays_s,
            sleep=self.sleep,
            event_listener=self.event_listener,
        )
        paginator = Paginator(
            fetcher,
            max_pages=self.max_pages,
            max_consecutive_empty=self.max_consecutive_empty,
            event_listener=self.event_listener,
        )
        return EndpointResolver(fetcher, paginator, per_page=self.per_page, event_listener=self.event_listener)

    async def fetch_community_stats(self, options: Optional[FetchOptions] = None) -> CommunityFetchResult:
        """Fetches members and invitation links and aggregates them.

        Never raises. Fatal errors (bad credentials, bot challenge) and
        cancellation abort the whole operation. A resource that fails
        non-fatally contributes no records; if neither resource could be
        fetched the last error is returned.
        """
        try:
            credentials = self.credentials_loader()
        except CircleApiError as e:
            logger.error(f"Cannot fetch community stats: {e.error.message}")
            return CommunityFetchFailure(error=e.error)

        headers = create_headers(credentials.api_key, origin=_origin_of(self.base_url))
        logger.info(
            f"Starting Circle API fetch (key: {credentials.masked_key()}, "
            f"community: {credentials.community_id})"
        )

        try:
            async with self._client() as client:
                resolver = self._build_resolver(client)
                results: List[ResourceResult] = []
                for resource in (MEMBERS, INVITATION_LINKS):
                    result = await resolver.resolve(
                        resource, self.base_url, headers, options,
                        community_id=credentials.community_id,
                    )
                    if result.aborts_operation:
                        return CommunityFetchFailure(error=result.error)
                    results.append(result)
        except Exception as e:
            logger.exception(f"Unexpected error during Circle API fetch: {e}")
            return CommunityFetchFailure(error=DetailedError(
                kind=ErrorKind.UNKNOWN,
                message=str(e) or "An unexpected error occurred",
                details={"exception": type(e).__name__},
            ))

        members, links = results
        if not members.succeeded and not links.succeeded:
            logger.error("All API endpoints failed for every resource.")
            return CommunityFetchFailure(error=links.error or members.error)

        stats = aggregate(members.records, links.records)
        endpoint = members.endpoint or links.endpoint or ""
        top = stats.broker_details[0].broker_name if stats.broker_details else "None"
        logger.info(
            f"Final stats: members={stats.total_members}, brokers={stats.total_brokers}, "
            f"links={stats.total_invitation_links}, top broker={top}"
        )
        return CommunityFetchSuccess(data=stats, endpoint=endpoint)

    def candidate_endpoints(self, community_id: str = "") -> List[str]:
        """Every variant URL of every resource, in resolution order."""
        return [
            build_url(self.base_url, resource, variant, self.per_page, community_id)
            for resource in (MEMBERS, INVITATION_LINKS)
            for variant in resource.variants
        ]

    async def test_connection(self, timeout_s: float = DEFAULT_PROBE_TIMEOUT_S) -> ConnectionTestResult:
        """Probes each candidate endpoint once, without retries.

        Reports status, content type and timing per endpoint so an operator
        can tell bad credentials from bot blocking from network trouble.
        """
        try:
            credentials = self.credentials_loader()
        except CircleApiError as e:
            return ConnectionTestResult(success=False, error=e.error.message)

        headers = create_headers(credentials.api_key, origin=_origin_of(self.base_url))
        probes: List[ConnectionProbe] = []
        async with self._client() as client:
            for endpoint in self.candidate_endpoints(credentials.community_id):
                probes.append(await self._probe(client, endpoint, headers, timeout_s))

        return ConnectionTestResult(success=True, results=tuple(probes))

    async def _probe(
        self,
        client: httpx.AsyncClient,
        endpoint: str,
        headers: Dict[str, str],
        timeout_s: float,
    ) -> ConnectionProbe:
        start_time = time.perf_counter()
        try:
            response = await asyncio.wait_for(client.get(endpoint, headers=headers), timeout=timeout_s)
        except (asyncio.TimeoutError, httpx.HTTPError) as e:
            elapsed_ms = (time.perf_counter() - start_time) * 1000
            message = str(e) or type(e).__name__
            logger.warning(f"Connection probe failed for {endpoint}: {message}")
            return ConnectionProbe(
                endpoint=endpoint,
                status=0,
                content_type="error",
                is_json=False,
                is_cloudflare=False,
                preview=f"Error: {message}",
                response_time_ms=elapsed_ms,
            )

        elapsed_ms = (time.perf_counter() - start_time) * 1000
        content_type = response.headers.get("content-type", "")
        text = response.text
        logger.info(f"Probe {endpoint}: {response.status_code} {content_type} ({elapsed_ms:.0f}ms)")
        return ConnectionProbe(
            endpoint=endpoint,
            status=response.status_code,
            content_type=content_type,
            is_json=is_json_content_type(content_type),
            is_cloudflare=is_cloudflare_challenge(text),
            preview=text[:PROBE_PREVIEW_CHARS],
            response_time_ms=elapsed_ms,
        )
