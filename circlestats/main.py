"""Main entry point for the circlestats application.

Sets up the Typer CLI application, performs dependency injection (Composition Root),
defines CLI commands, and delegates execution to the CommandHandler.
"""

import asyncio
import logging
import sys
from pathlib import Path
from typing import Any, Coroutine, Dict, Optional

import typer
from typing_extensions import Annotated

# --- Core Layer ---
from circlestats.core.command_handler import CommandHandler
from circlestats.core.services.stats_service import StatsService

# --- Infrastructure Layer ---
# Config
from circlestats.infrastructure.config.settings import (
    get_backoff_policy, get_base_url, get_cache_file, get_config, get_fetch_options, load_configuration,
)
# UI
from circlestats.infrastructure.cli.display import ConsoleDisplay
# API
from circlestats.infrastructure.api.circle_client import CircleApiClient
# Cache
from circlestats.infrastructure.cache.caching_service import CachingServiceImpl
from circlestats.infrastructure.cache.storage import MemoryCacheStorage, PickleFileCacheStorage
# Monitoring
from circlestats.infrastructure.monitoring.logger_setup import level_from_name, setup_logging

logger = logging.getLogger(__name__)

# --- Dependency Injection Container (Manual) ---

def create_dependencies() -> Dict[str, Any]:
    """Creates and wires up all dependencies for the application.

    This acts as the Composition Root.
    """
    dependencies: Dict[str, Any] = {}
    try:
        # 1. Load Configuration First
        load_configuration()
        setup_logging(
            log_level=level_from_name(get_config('logging.level', 'INFO')),
            log_file=get_config('logging.file'),
            log_format=get_config('logging.format', '%(asctime)s - %(name)s - %(levelname)s - %(message)s'),
        )
        logger.info("Configuration and logging initialized.")

        # 2. Instantiate Infrastructure Adapters & Services
        dependencies['ui'] = ConsoleDisplay()
        cache_file = get_cache_file()
        storage = PickleFileCacheStorage(cache_file) if cache_file else MemoryCacheStorage()
        dependencies['cache_service'] = CachingServiceImpl(
            storage=storage,
            default_ttl=float(get_config('cache.ttl_seconds')),
            max_age=float(get_config('cache.max_age_seconds')),
        )

        backoff = get_backoff_policy()
        dependencies['api_client'] = CircleApiClient(
            base_url=get_base_url(),
            retry_delays_s=backoff['retry_delays_s'],
            per_page=int(get_config('circle.per_page')),
            max_pages=int(get_config('pagination.max_pages')),
            max_consecutive_empty=int(get_config('pagination.max_consecutive_empty')),
        )

        # 3. Instantiate Core Services (injecting dependencies)
        dependencies['stats_service'] = StatsService(
            api_client=dependencies['api_client'],
            cache_service=dependencies['cache_service'],
        )
        fetch_options = get_fetch_options()
        fetch_options.max_retries = backoff['max_retries']

        # 4. Instantiate Command Handler
        dependencies['command_handler'] = CommandHandler(
            stats_service=dependencies['stats_service'],
            ui=dependencies['ui'],
            fetch_options=fetch_options,
        )
        logger.debug("All dependencies initialized successfully.")
        return dependencies

    except Exception as e:
        logger.error(f"Fatal Error during application initialization: {e}", exc_info=True)
        if dependencies.get('ui'):
            dependencies['ui'].display_error(f"Application Initialization Failed: {e}")
        else:
            print(f"FATAL ERROR during initialization: {e}", file=sys.stderr)
        sys.exit(1)

# --- Get Wired-up Dependencies ---
# Built on first use so that importing the module stays side-effect free
_dependencies: Optional[Dict[str, Any]] = None


def get_dependencies() -> Dict[str, Any]:
    global _dependencies
    if _dependencies is None:
        _dependencies = create_dependencies()
    return _dependencies

# --- Typer App Definition ---
app = typer.Typer(
    name="circlestats",
    help="circlestats: Circle community member and referral statistics from the Admin API.",
    add_completion=False,
)

# --- Helper for Running Async Commands ---
def run_async(coro: Coroutine[Any, Any, bool]) -> None:
    """Runs an async handler from a sync Typer command and maps its result to the exit code."""
    try:
        succeeded = asyncio.run(coro)
    except KeyboardInterrupt:
        logger.warning("Interrupted by user.")
        raise typer.Exit(code=130)
    except Exception as e:
        logger.error(f"Error executing async command: {e}", exc_info=True)
        get_dependencies()['ui'].display_error(f"Command execution failed: {e}")
        raise typer.Exit(code=1)
    if not succeeded:
        raise typer.Exit(code=1)

# --- CLI Commands ---

TopOption = Annotated[
    int,
    typer.Option("--top", "-n", min=1, help="How many rows to show."),
]

@app.command()
def stats(
    refresh: Annotated[bool, typer.Option("--refresh", "-r", help="Skip the cache and fetch live data.")] = False,
    top: TopOption = 10,
    as_json: Annotated[bool, typer.Option("--json", help="Print machine-readable JSON.")] = False,
):
    """Show member totals and the broker referral ranking."""
    handler: CommandHandler = get_dependencies()['command_handler']
    run_async(handler.handle_stats(force_refresh=refresh, top=top, as_json=as_json))

@app.command()
def links(
    top: TopOption = 5,
):
    """Show the invitation link summary and the best performing links."""
    handler: CommandHandler = get_dependencies()['command_handler']
    run_async(handler.handle_links(top=top))

@app.command(name="test-connection")
def test_connection_command():
    """Probe every candidate endpoint once and report what came back."""
    handler: CommandHandler = get_dependencies()['command_handler']
    run_async(handler.handle_test_connection())

@app.command()
def seed(
    file: Annotated[Path, typer.Argument(
        exists=True, file_okay=True, dir_okay=False, readable=True, resolve_path=True,
        help="JSON file with raw 'members' and optional 'invitation_links' records.",
    )],
):
    """Store manually exported data as the last-resort fallback."""
    handler: CommandHandler = get_dependencies()['command_handler']
    run_async(handler.handle_seed(file))

@app.command(name="cache-stats")
def cache_stats_command():
    """Show cached entries with their age and freshness."""
    handler: CommandHandler = get_dependencies()['command_handler']
    run_async(handler.handle_cache_stats())

@app.command(name="clear-cache")
def clear_cache_command(
    key: Annotated[Optional[str], typer.Option("--key", "-k", help="Only clear this entry.")] = None,
):
    """Clears the application cache."""
    handler: CommandHandler = get_dependencies()['command_handler']
    run_async(handler.handle_clear_cache(key))

# --- Main Execution Guard ---

def cli_entry_point():
    """Function to be called by the script entry point in pyproject.toml."""
    app()

if __name__ == "__main__":
    cli_entry_point()
