import json
import logging
from typing import Any

from rich.box import HEAVY, ROUNDED, SIMPLE
from rich.columns import Columns
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from circlestats.core.services.aggregation import broker_shares
from circlestats.domain.interfaces.cache import CacheStats
from circlestats.domain.interfaces.user_interface import UserInterface
from circlestats.domain.models.community import InvitationLinkSummary
from circlestats.domain.models.errors import DetailedError, describe_error
from circlestats.domain.models.results import ConnectionTestResult, StatsResult

logger = logging.getLogger(__name__)

SOURCE_LABELS = {
    "api": "live API",
    "api-cache": "cached API data",
    "manual": "manually seeded data",
}

class ConsoleDisplay(UserInterface):
    """Concrete implementation of UserInterface using the rich library for console output."""

    def __init__(self, console: Console = None):
        """Initializes the rich Console."""
        self._console = console or Console()

    @property
    def console(self) -> Console:
        """Get the Rich console instance for direct operations."""
        return self._console

    def display_error(self, error_message: str, **kwargs: Any) -> None:
        panel = Panel(
            Text(error_message, style="white"),
            title="[bold red]Error[/bold red]",
            border_style="red",
            box=HEAVY,
            padding=(0, 1)
        )
        self.console.print(panel)

    def display_info(self, info_message: str, **kwargs: Any) -> None:
        panel = Panel(
            Text(info_message, style="white"),
            title="[bold blue]Info[/bold blue]",
            border_style="blue",
            box=SIMPLE,
            padding=(0, 1)
        )
        self.console.print(panel)

    def display_warning(self, warning_message: str, **kwargs: Any) -> None:
        panel = Panel(
            Text(warning_message, style="white"),
            title="[bold yellow]Warning[/bold yellow]",
            border_style="yellow",
            box=HEAVY,
            padding=(0, 1)
        )
        self.console.print(panel)

    def display_detailed_error(self, error: DetailedError) -> None:
        """Shows the error kind, message and troubleshooting steps."""
        description = describe_error(error.kind)
        body = Text()
        body.append(f"{description.description}\n\n", style="white")
        body.append(f"{error.message}\n", style="bold white")
        if error.status_code:
            body.append(f"Status: {error.status_code}\n", style="dim")
        if error.endpoint:
            body.append(f"Endpoint: {error.endpoint}\n", style="dim")
        body.append("\nTroubleshooting:\n", style="bold")
        for step in description.steps:
            body.append(f"  • {step}\n")

        self.console.print(Panel(
            body,
            title=f"[bold red]{description.title}[/bold red] [dim]({error.kind.value})[/dim]",
            border_style="red",
            box=HEAVY,
            padding=(0, 1),
        ))

    def display_stats(self, result: StatsResult, top: int = 10) -> None:
        stats = result.data
        if stats is None:
            if result.error is not None:
                self.display_detailed_error(result.error)
            return

        if result.error is not None:
            freshness = "fresh" if result.is_fresh else "stale"
            self.display_warning(
                f"Live fetch failed ({result.error.kind.value}): showing {freshness} "
                f"{SOURCE_LABELS.get(result.source, result.source)}."
            )

        cards = [
            self._card("Total Members", stats.total_members),
            self._card("Brokers", stats.total_brokers),
            self._card("Invitation Links", stats.total_invitation_links),
        ]
        self.console.print(Columns(cards, equal=True, expand=True))

        table = Table(title="Top Brokers", box=ROUNDED, show_lines=False)
        table.add_column("#", justify="right", style="dim")
        table.add_column("Broker", style="bold")
        table.add_column("Referrals", justify="right")
        table.add_column("Share", justify="right")
        for rank, share in enumerate(broker_shares(stats)[:top], start=1):
            table.add_row(
                str(rank),
                share.broker.broker_name,
                str(share.broker.referred_count),
                f"{share.percentage:.1f}%",
            )
        if stats.broker_details:
            self.console.print(table)
        else:
            self.console.print(Text("No referrals found in the member data.", style="dim"))

        source = SOURCE_LABELS.get(result.source, result.source or "unknown")
        footer = f"Source: {source}"
        if result.endpoint:
            footer += f" · {result.endpoint}"
        self.console.print(Text(footer, style="dim"))

    def _card(self, title: str, value: int) -> Panel:
        return Panel(
            Text(str(value), style="bold cyan", justify="center"),
            title=title,
            border_style="cyan",
            box=ROUNDED,
        )

    def display_link_summary(self, summary: InvitationLinkSummary) -> None:
        cards = [
            self._card("Links", summary.total_links),
            self._card("Active", summary.active_links),
            self._card("Inactive", summary.inactive_links),
            self._card("Members via Links", summary.total_members_through_links),
        ]
        self.console.print(Columns(cards, equal=True, expand=True))
        self.console.print(Text(
            f"Average members per link: {summary.average_members_per_link:.1f}", style="dim"
        ))

        if not summary.top_links:
            self.console.print(Text("No invitation link reports any joined members.", style="dim"))
            return

        table = Table(title="Top Performing Links", box=ROUNDED)
        table.add_column("Link", overflow="fold")
        table.add_column("Created by")
        table.add_column("Joined", justify="right")
        table.add_column("Status")
        for link in summary.top_links:
            table.add_row(
                link.url or link.id,
                link.created_by.name if link.created_by else "-",
                str(link.joined_count),
                "[green]active[/green]" if link.is_active else "[dim]inactive[/dim]",
            )
        self.console.print(table)

    def display_connection_test(self, result: ConnectionTestResult) -> None:
        if not result.success:
            self.display_error(result.error or "Connection test failed")
            return

        table = Table(title="Connection Test", box=ROUNDED)
        table.add_column("Endpoint", overflow="fold")
        table.add_column("Status", justify="right")
        table.add_column("Content-Type")
        table.add_column("JSON")
        table.add_column("Cloudflare")
        table.add_column("Time", justify="right")
        for probe in result.results:
            status_style = "green" if 200 <= probe.status < 300 else "red"
            table.add_row(
                probe.endpoint,
                f"[{status_style}]{probe.status}[/{status_style}]",
                probe.content_type,
                "yes" if probe.is_json else "no",
                "[red]blocked[/red]" if probe.is_cloudflare else "-",
                f"{probe.response_time_ms:.0f}ms",
            )
        self.console.print(table)

    def display_cache_stats(self, stats: CacheStats) -> None:
        table = Table(title="Cache", box=ROUNDED)
        table.add_column("Key")
        table.add_column("Source")
        table.add_column("Age", justify="right")
        table.add_column("State")
        table.add_column("Size", justify="right")
        for entry in stats.entries:
            table.add_row(
                entry.key,
                entry.source,
                f"{entry.age_s:.0f}s",
                "expired" if entry.is_expired else "fresh",
                f"{entry.size}B",
            )
        self.console.print(table)
        self.console.print(Text(
            f"{stats.total_entries} entries: {stats.fresh_entries} fresh, {stats.stale_entries} stale, "
            f"{stats.expired_entries} expired · {stats.total_size} bytes",
            style="dim",
        ))

    def display_json(self, data: Any) -> None:
        self.console.print_json(json.dumps(data, default=str))
