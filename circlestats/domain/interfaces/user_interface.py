"""Interface for presenting results to the user.

Defines the contract for displaying statistics, diagnostics, errors and
plain messages, allowing different UI implementations (e.g., console, web).
"""

import abc
from typing import Any

# Import relevant domain models
from ..interfaces.cache import CacheStats
from ..models.community import InvitationLinkSummary
from ..models.errors import DetailedError
from ..models.results import ConnectionTestResult, StatsResult

class UserInterface(abc.ABC):
    """Abstract Base Class for user interaction."""

    @abc.abstractmethod
    def display_error(self, error_message: str, **kwargs: Any) -> None:
        """Displays an error message to the user.

        Args:
            error_message: The error message string.
            **kwargs: Additional arguments for formatting.
        """
        pass

    @abc.abstractmethod
    def display_warning(self, warning_message: str, **kwargs: Any) -> None:
        """Displays a warning message to the user."""
        pass

    @abc.abstractmethod
    def display_info(self, info_message: str, **kwargs: Any) -> None:
        """Displays an informational message to the user."""
        pass

    @abc.abstractmethod
    def display_detailed_error(self, error: DetailedError) -> None:
        """Displays a classified error with its troubleshooting steps."""
        pass

    @abc.abstractmethod
    def display_stats(self, result: StatsResult, top: int = 10) -> None:
        """Displays summary cards and the broker ranking.

        Args:
            result: Statistics with their source and freshness.
            top: Maximum number of brokers to list.
        """
        pass

    @abc.abstractmethod
    def display_link_summary(self, summary: InvitationLinkSummary) -> None:
        """Displays the invitation link roll-up."""
        pass

    @abc.abstractmethod
    def display_connection_test(self, result: ConnectionTestResult) -> None:
        """Displays one row per probed endpoint."""
        pass

    @abc.abstractmethod
    def display_cache_stats(self, stats: CacheStats) -> None:
        """Displays cache entry counts and sizes."""
        pass

    @abc.abstractmethod
    def display_json(self, data: Any) -> None:
        """Writes machine-readable output."""
        pass
