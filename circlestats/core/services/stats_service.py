"""Application service for community statistics.

Sits between the dashboard and the API client and applies the cache
fallback order: fresh API data, then a fresh fetch, then stale API data
(within the cache's max age), then manually seeded data.
"""

import logging
from typing import Optional, Sequence

from circlestats.core.services.aggregation import aggregate
from circlestats.domain.interfaces.cache import CacheService, CacheStats
from circlestats.domain.models.common import CacheKey, FetchOptions, RawRecord
from circlestats.domain.models.community import SummaryStats
from circlestats.domain.models.errors import DetailedError
from circlestats.domain.models.results import ConnectionTestResult, StatsResult
from circlestats.infrastructure.api.circle_client import CircleApiClient
from circlestats.infrastructure.cache.caching_service import CacheKeys, MANUAL_DATA_TTL_SECONDS

logger = logging.getLogger(__name__)

CONNECTION_TEST_TTL_SECONDS = 5 * 60


class StatsService:
    """Serves SummaryStats with cache-backed fallbacks."""

    def __init__(
        self,
        api_client: CircleApiClient,
        cache_service: CacheService,
        ttl: Optional[float] = None,
        manual_ttl: float = MANUAL_DATA_TTL_SECONDS,
    ):
        self.api_client = api_client
        self.cache_service = cache_service
        self.ttl = ttl
        self.manual_ttl = manual_ttl

    async def get_stats(
        self,
        force_refresh: bool = False,
        options: Optional[FetchOptions] = None,
    ) -> StatsResult:
        """Returns the best statistics available.

        Args:
            force_refresh: Skip the fresh-cache check and always fetch.
            options: Fetch options for the API call.
        """
        if not force_refresh:
            cached = await self.cache_service.get(CacheKeys.STATS)
            if cached is not None:
                logger.info("Serving statistics from fresh cache.")
                return StatsResult(data=cached, source="api-cache", is_fresh=True)

        result = await self.api_client.fetch_community_stats(options)
        if result.success:
            await self.cache_service.set(CacheKeys.STATS, result.data, ttl=self.ttl, source="api")
            return StatsResult(data=result.data, source="api", is_fresh=True, endpoint=result.endpoint)

        logger.warning(f"Fetch failed ({result.error.kind.value}); trying cached fallbacks.")
        return await self._fallback(result.error)

    async def _fallback(self, error: DetailedError) -> StatsResult:
        stale = await self.cache_service.get_stale(CacheKeys.STATS)
        if stale is not None:
            logger.info("Serving stale API statistics.")
            return StatsResult(data=stale, source="api-cache", is_fresh=False, error=error)

        manual = await self.cache_service.get(CacheKeys.MANUAL_DATA)
        if manual is not None:
            logger.info("Serving manually seeded statistics.")
            return StatsResult(data=manual, source="manual", is_fresh=True, error=error)

        return StatsResult(error=error)

    async def seed_manual_data(
        self,
        member_records: Sequence[RawRecord],
        invitation_link_records: Sequence[RawRecord] = (),
    ) -> SummaryStats:
        """Aggregates raw records supplied by an operator and stores them
        as the last-resort fallback."""
        stats = aggregate(member_records, invitation_link_records)
        await self.cache_service.set(CacheKeys.MANUAL_DATA, stats, ttl=self.manual_ttl, source="manual")
        logger.info(f"Seeded manual statistics: {stats.total_members} members, {stats.total_brokers} brokers")
        return stats

    async def test_connection(self, use_cache: bool = True) -> ConnectionTestResult:
        if use_cache:
            cached = await self.cache_service.get(CacheKeys.CONNECTION_TEST)
            if cached is not None:
                return cached
        result = await self.api_client.test_connection()
        if result.success:
            await self.cache_service.set(
                CacheKeys.CONNECTION_TEST, result, ttl=CONNECTION_TEST_TTL_SECONDS, source="api",
            )
        return result

    async def clear_cache(self, key: Optional[str] = None) -> None:
        if key:
            await self.cache_service.clear(CacheKey(key))
        else:
            await self.cache_service.clear_all()

    async def cache_stats(self) -> CacheStats:
        return await self.cache_service.stats()
