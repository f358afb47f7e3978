"""Pagination over the upstream collection endpoints.

Follows `page_count` / `has_next_page` from the first response and keeps
whatever it manages to collect. A failed page never aborts the walk on its
own; a run of empty or failed pages does.
"""

import logging
from typing import Any, Mapping, Optional

import httpx

from circlestats.domain.events.api_events import EventListener, PageFetched, dispatch_event
from circlestats.domain.models.common import FetchOptions, RawRecords
from circlestats.infrastructure.resilience.api_retry import RetryingFetcher

logger = logging.getLogger(__name__)

# Checked in order; the first field present in a response wins
RECORD_FIELDS = ("records", "members", "community_members", "data")

DEFAULT_MAX_PAGES = 20
DEFAULT_MAX_CONSECUTIVE_EMPTY = 3


def extract_records(body: Any) -> RawRecords:
    """Locates the record array in a parsed response body."""
    if isinstance(body, list):
        return list(body)
    if not isinstance(body, dict):
        return []
    for name in RECORD_FIELDS:
        value = body.get(name)
        if value is not None:
            return list(value) if isinstance(value, list) else []
    return []


def _as_int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def page_url(url: str, page: int) -> str:
    """Returns `url` with its `page` query parameter set to `page`."""
    return str(httpx.URL(url).copy_set_param("page", str(page)))


class Paginator:
    """Collects the records of every page of a paginated collection."""

    def __init__(
        self,
        fetcher: RetryingFetcher,
        max_pages: int = DEFAULT_MAX_PAGES,
        max_consecutive_empty: int = DEFAULT_MAX_CONSECUTIVE_EMPTY,
        event_listener: Optional[EventListener] = None,
    ):
        self.fetcher = fetcher
        self.max_pages = max_pages
        self.max_consecutive_empty = max_consecutive_empty
        self.event_listener = event_listener

    async def collect(
        self,
        initial_body: Any,
        url: str,
        headers: Mapping[str, str],
        options: Optional[FetchOptions] = None,
    ) -> RawRecords:
        """Concatenates the records of the initial response and later pages.

        Args:
            initial_body: Parsed body of page 1.
            url: The URL page 1 was fetched from.
            headers: Request headers reused for every page.
            options: Fetch options forwarded to the retrying fetcher.

        Returns:
            All records gathered, possibly partial.
        """
        records = extract_records(initial_body)
        if not isinstance(initial_body, dict):
            return records

        page_count = _as_int(initial_body.get("page_count"))
        if not (initial_body.get("has_next_page") and page_count > 1):
            return records

        last_page = min(page_count, self.max_pages)
        logger.info(
            f"Fetching {page_count} total pages from {url} "
            f"({initial_body.get('count', 'unknown')} total records)"
        )
        if page_count > self.max_pages:
            logger.warning(f"Page count {page_count} exceeds the limit of {self.max_pages}; truncating.")

        consecutive_empty = 0
        for page in range(2, last_page + 1):
            if options is not None and options.is_cancelled:
                logger.info(f"Pagination of {url} cancelled before page {page}")
                break

            result = await self.fetcher.fetch(page_url(url, page), headers, options)
            if result.success:
                page_records = extract_records(result.data)
                logger.debug(f"Page {page}/{last_page} fetched: {len(page_records)} records")
            else:
                page_records = []
                logger.warning(f"Failed to fetch page {page}: {result.error.message}")
            dispatch_event(PageFetched(
                endpoint=url, page=page, record_count=len(page_records),
                failed=not result.success,
            ), self.event_listener)

            if page_records:
                records.extend(page_records)
                consecutive_empty = 0
                continue

            consecutive_empty += 1
            if consecutive_empty >= self.max_consecutive_empty:
                logger.warning(
                    f"Stopping pagination at page {page}: {consecutive_empty} consecutive "
                    f"empty or failed pages. Keeping {len(records)} records."
                )
                break

        return records
