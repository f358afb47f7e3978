"""Endpoint variant fallback for each logical upstream resource.

Which query parameters the upstream honours for exposing relationships
(who invited whom, who joined through which link) is not reliably known, so
each resource lists several parameter variants. They are tried in order and
the first one that answers is paginated and used.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Mapping, Optional, Tuple

import httpx

from circlestats.domain.events.api_events import EndpointVariantFailed, EventListener, dispatch_event
from circlestats.domain.models.common import EndpointUrl, FetchOptions, ResourceName
from circlestats.domain.models.errors import cancelled_error
from circlestats.domain.models.results import ResourceResult
from circlestats.infrastructure.resilience.api_retry import RetryingFetcher
from circlestats.infrastructure.resilience.paginator import Paginator

logger = logging.getLogger(__name__)

DEFAULT_PER_PAGE = 100


@dataclass(frozen=True)
class EndpointVariant:
    """One query-parameter combination to try against a resource path."""
    name: str
    params: Tuple[Tuple[str, str], ...] = ()


@dataclass(frozen=True)
class ResourceSpec:
    """A logical resource: its path (may contain `{community_id}`) and variants."""
    name: ResourceName
    path: str
    variants: Tuple[EndpointVariant, ...]


MEMBERS = ResourceSpec(
    name=ResourceName("members"),
    path="community_members",
    variants=(
        EndpointVariant("with invitation data", (("include", "invitation_link,invited_by"),)),
        EndpointVariant("plain listing"),
    ),
)

INVITATION_LINKS = ResourceSpec(
    name=ResourceName("invitationLinks"),
    path="invitation_links",
    variants=(
        EndpointVariant("with joined members", (("include", "members,users,invited_users"),)),
        EndpointVariant("plain listing"),
    ),
)

RESOURCES: Dict[str, ResourceSpec] = {spec.name: spec for spec in (MEMBERS, INVITATION_LINKS)}


def build_url(
    base_url: str,
    resource: ResourceSpec,
    variant: EndpointVariant,
    per_page: int = DEFAULT_PER_PAGE,
    community_id: str = "",
) -> EndpointUrl:
    """Builds the full URL for one variant of a resource."""
    path = resource.path.format(community_id=community_id).lstrip("/")
    url = httpx.URL(f"{base_url.rstrip('/')}/{path}")
    params = {"per_page": str(per_page)}
    params.update(dict(variant.params))
    return EndpointUrl(str(url.copy_merge_params(params)))


class EndpointResolver:
    """Tries each variant of a resource until one succeeds."""

    def __init__(
        self,
        fetcher: RetryingFetcher,
        paginator: Paginator,
        per_page: int = DEFAULT_PER_PAGE,
        event_listener: Optional[EventListener] = None,
    ):
        self.fetcher = fetcher
        self.paginator = paginator
        self.per_page = per_page
        self.event_listener = event_listener

    async def resolve(
        self,
        resource: ResourceSpec,
        base_url: str,
        headers: Mapping[str, str],
        options: Optional[FetchOptions] = None,
        community_id: str = "",
    ) -> ResourceResult:
        """Fetches all records of `resource` from the first working variant.

        Returns:
            A ResourceResult. On success `endpoint` is set and `error` is None.
            If every variant failed, `records` is empty and `error` holds the
            last failure. A fatal or cancelled failure stops the search early, and
            cancellation during pagination discards the pages gathered so far.
        """
        result = ResourceResult(resource=resource.name)

        for variant in resource.variants:
            url = build_url(base_url, resource, variant, self.per_page, community_id)
            result.attempted.append(url)
            logger.info(f"Trying {resource.name} endpoint ({variant.name}): {url}")

            fetched = await self.fetcher.fetch(url, headers, options)
            if fetched.success:
                records = await self.paginator.collect(fetched.data, url, headers, options)
                if options is not None and options.is_cancelled:
                    logger.info(f"{resource.name} pagination cancelled; discarding {len(records)} records")
                    result.error = cancelled_error(url)
                    return result
                result.records = records
                result.endpoint = fetched.endpoint
                result.error = None
                logger.info(f"Resolved {resource.name} via {url}: {len(result.records)} records")
                return result

            result.error = fetched.error
            dispatch_event(EndpointVariantFailed(
                resource=resource.name, endpoint=url, error_kind=fetched.error.kind.value,
            ), self.event_listener)
            if fetched.error.is_fatal or fetched.error.is_cancelled:
                logger.error(
                    f"Aborting {resource.name} resolution: {fetched.error.kind.value} "
                    f"({fetched.error.message})"
                )
                return result
            logger.warning(f"Endpoint variant failed ({variant.name}): {fetched.error.message}")

        logger.warning(
            f"All {len(resource.variants)} {resource.name} endpoint variants failed; "
            f"continuing with no {resource.name} records."
        )
        return result
