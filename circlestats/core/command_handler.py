"""Command Handler: Orchestrates CLI command execution.

Receives commands from the main entry point (main.py) and delegates
the work to the StatsService, then hands the results to the UserInterface.
Each handler returns True on success so the CLI can set its exit code.
"""

import json
import logging
from pathlib import Path
from typing import Any, Optional

from circlestats.core.services.aggregation import summarize_invitation_links
from circlestats.core.services.stats_service import StatsService
from circlestats.domain.interfaces.user_interface import UserInterface
from circlestats.domain.models.common import FetchOptions
from circlestats.infrastructure.cache.caching_service import CacheKeys

logger = logging.getLogger(__name__)


class CommandHandler:
    """Handles incoming commands and delegates to appropriate services."""

    def __init__(
        self,
        stats_service: StatsService,
        ui: UserInterface,
        fetch_options: Optional[FetchOptions] = None,
    ):
        """Initializes the CommandHandler with required services."""
        self.stats_service = stats_service
        self.ui = ui
        self.fetch_options = fetch_options

    async def handle_stats(self, force_refresh: bool = False, top: int = 10, as_json: bool = False) -> bool:
        """Handles the 'stats' command."""
        logger.info(f"Handling 'stats' command (refresh={force_refresh}, top={top})")
        try:
            result = await self.stats_service.get_stats(force_refresh=force_refresh, options=self.fetch_options)
        except Exception as e:
            logger.error(f"Stats command failed: {e}", exc_info=True)
            self.ui.display_error(f"Failed to load statistics: {e}")
            return False

        if as_json:
            self.ui.display_json({
                'data': result.data.to_dict() if result.data else None,
                'source': result.source,
                'is_fresh': result.is_fresh,
                'endpoint': result.endpoint,
                'error': result.error.to_dict() if result.error else None,
            })
        else:
            self.ui.display_stats(result, top=top)
        return result.success

    async def handle_links(self, top: int = 5) -> bool:
        """Handles the 'links' command."""
        logger.info(f"Handling 'links' command (top={top})")
        try:
            result = await self.stats_service.get_stats(options=self.fetch_options)
        except Exception as e:
            logger.error(f"Links command failed: {e}", exc_info=True)
            self.ui.display_error(f"Failed to load invitation links: {e}")
            return False

        if result.data is None:
            if result.error is not None:
                self.ui.display_detailed_error(result.error)
            return False
        self.ui.display_link_summary(summarize_invitation_links(result.data, top=top))
        return True

    async def handle_test_connection(self) -> bool:
        """Handles the 'test-connection' command. Always probes live."""
        logger.info("Handling 'test-connection' command")
        self.ui.display_info("Probing Circle API endpoints...")
        try:
            result = await self.stats_service.test_connection(use_cache=False)
        except Exception as e:
            logger.error(f"Connection test failed: {e}", exc_info=True)
            self.ui.display_error(f"Connection test failed: {e}")
            return False
        self.ui.display_connection_test(result)
        return result.success

    async def handle_seed(self, file_path: Path) -> bool:
        """Handles the 'seed' command.

        The file holds a JSON object with a `members` list and an optional
        `invitation_links` list of raw records, or just a list of members.
        """
        logger.info(f"Handling 'seed' command with file: {file_path}")
        try:
            payload = json.loads(Path(file_path).read_text(encoding='utf-8'))
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Cannot read seed file {file_path}: {e}")
            self.ui.display_error(f"Cannot read seed file: {e}")
            return False

        members, links = _split_seed_payload(payload)
        if members is None:
            self.ui.display_error("Seed file must contain a 'members' list or be a list of member records.")
            return False

        try:
            stats = await self.stats_service.seed_manual_data(members, links)
        except Exception as e:
            logger.error(f"Seeding manual data failed: {e}", exc_info=True)
            self.ui.display_error(f"Failed to seed manual data: {e}")
            return False
        self.ui.display_info(
            f"Stored manual data: {stats.total_members} members, {stats.total_brokers} brokers, "
            f"{stats.total_invitation_links} invitation links."
        )
        return True

    async def handle_cache_stats(self) -> bool:
        logger.info("Handling 'cache-stats' command")
        try:
            stats = await self.stats_service.cache_stats()
        except Exception as e:
            logger.error(f"Failed to read cache stats: {e}", exc_info=True)
            self.ui.display_error(f"Failed to read cache: {e}")
            return False
        self.ui.display_cache_stats(stats)
        return True

    async def handle_clear_cache(self, key: Optional[str] = None) -> bool:
        """Handles the 'clear-cache' command."""
        logger.info(f"Handling 'clear-cache' command for key: {key or 'all'}")
        if key and key not in CacheKeys.ALL:
            self.ui.display_error(f"Unknown cache key '{key}'. Choose one of: {', '.join(CacheKeys.ALL)}.")
            return False
        try:
            await self.stats_service.clear_cache(key)
        except Exception as e:
            logger.error(f"Failed to clear cache: {e}", exc_info=True)
            self.ui.display_error(f"Failed to clear cache: {e}")
            return False
        self.ui.display_info(f"Cache entry '{key}' cleared." if key else "Cache cleared.")
        return True


def _split_seed_payload(payload: Any):
    if isinstance(payload, list):
        return payload, []
    if not isinstance(payload, dict):
        return None, []
    members = payload.get('members')
    if not isinstance(members, list):
        return None, []
    links = payload.get('invitation_links') or payload.get('invitationLinks') or []
    if not isinstance(links, list):
        links = []
    return members, links
