import json
from pathlib import Path

import httpx
import pytest
from typer.testing import CliRunner
from unittest.mock import MagicMock

from circlestats import main
from circlestats.core.command_handler import CommandHandler
from circlestats.core.services.stats_service import StatsService
from circlestats.domain.models.common import FetchOptions
from circlestats.domain.models.errors import CircleApiError, ErrorKind
from circlestats.infrastructure.api.circle_client import CircleApiClient
from circlestats.infrastructure.cache.caching_service import CacheKeys, CachingServiceImpl
from circlestats.infrastructure.cache.storage import PickleFileCacheStorage
from circlestats.infrastructure.cli.display import ConsoleDisplay
from circlestats.main import app

from conftest import TEST_BASE_URL, json_response, member

ALICE = {"id": "a", "name": "Alice"}


def upstream(request: httpx.Request) -> httpx.Response:
    if request.url.path.endswith("/invitation_links"):
        return json_response({"records": [{"id": 1, "url": "https://c.test/join/1", "usage_count": 2}]})
    return json_response({"records": [member(1, "M1", ALICE), member(2, "M2", ALICE), member(3, "M3")]})


def failing_upstream(request: httpx.Request) -> httpx.Response:
    return json_response({"error": "down"}, 503)


def build_dependencies(handler, fake_sleep, credentials_loader, clock):
    """Real services over a fake upstream, with the console display mocked."""
    ui = MagicMock(spec=ConsoleDisplay)
    cache_service = CachingServiceImpl(clock=clock)
    api_client = CircleApiClient(
        base_url=TEST_BASE_URL,
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        credentials_loader=credentials_loader,
        sleep=fake_sleep,
    )
    stats_service = StatsService(api_client=api_client, cache_service=cache_service)
    return {
        'ui': ui,
        'cache_service': cache_service,
        'api_client': api_client,
        'stats_service': stats_service,
        'command_handler': CommandHandler(stats_service, ui, fetch_options=FetchOptions(max_retries=0)),
    }


@pytest.fixture
def wire(monkeypatch, fake_sleep, credentials, clock):
    """Installs dependencies built around `handler` into the CLI module."""
    def install(handler, credentials_loader=None):
        deps = build_dependencies(handler, fake_sleep, credentials_loader or (lambda: credentials), clock)
        monkeypatch.setattr(main, '_dependencies', deps)
        return deps
    return install


def test_stats_command_flow(runner: CliRunner, wire):
    deps = wire(upstream)

    result = runner.invoke(app, ["stats", "--top", "5"])

    assert result.exit_code == 0, result.stdout
    deps['ui'].display_stats.assert_called_once()
    shown = deps['ui'].display_stats.call_args.args[0]
    assert shown.source == "api"
    assert shown.data.total_members == 3
    assert shown.data.broker_details[0].broker_name == "Alice"
    assert deps['ui'].display_stats.call_args.kwargs == {"top": 5}


def test_stats_json_output(runner: CliRunner, wire):
    deps = wire(upstream)

    result = runner.invoke(app, ["stats", "--json"])

    assert result.exit_code == 0
    payload = deps['ui'].display_json.call_args.args[0]
    assert payload["data"]["total_brokers"] == 1
    assert payload["data"]["broker_details"][0]["referred_count"] == 2


def test_stats_command_fails_without_any_data(runner: CliRunner, wire):
    deps = wire(failing_upstream)

    result = runner.invoke(app, ["stats"])

    assert result.exit_code == 1
    shown = deps['ui'].display_stats.call_args.args[0]
    assert shown.error.kind == ErrorKind.NETWORK_ERROR


def test_stats_uses_seeded_data_when_upstream_is_down(runner: CliRunner, wire, tmp_path: Path):
    deps = wire(failing_upstream)
    seed_file = tmp_path / "export.json"
    seed_file.write_text(json.dumps({"members": [member(1, "M1", ALICE), member(2, "M2")]}))

    seeded = runner.invoke(app, ["seed", str(seed_file)])
    result = runner.invoke(app, ["stats"])

    assert seeded.exit_code == 0
    assert result.exit_code == 0
    shown = deps['ui'].display_stats.call_args.args[0]
    assert shown.source == "manual"
    assert shown.data.total_members == 2
    assert shown.error.kind == ErrorKind.NETWORK_ERROR


def test_missing_credentials_are_reported(runner: CliRunner, wire):
    def loader():
        raise CircleApiError.of(ErrorKind.INVALID_CREDENTIALS, "Missing API credentials.")

    deps = wire(upstream, credentials_loader=loader)

    result = runner.invoke(app, ["links"])

    assert result.exit_code == 1
    error = deps['ui'].display_detailed_error.call_args.args[0]
    assert error.kind == ErrorKind.INVALID_CREDENTIALS


def test_links_command_flow(runner: CliRunner, wire):
    deps = wire(upstream)

    result = runner.invoke(app, ["links", "--top", "3"])

    assert result.exit_code == 0
    summary = deps['ui'].display_link_summary.call_args.args[0]
    assert summary.total_links == 1
    assert summary.total_members_through_links == 2


def test_test_connection_command_flow(runner: CliRunner, wire):
    deps = wire(upstream)

    result = runner.invoke(app, ["test-connection"])

    assert result.exit_code == 0
    probes = deps['ui'].display_connection_test.call_args.args[0].results
    assert [p.status for p in probes] == [200, 200, 200, 200]


def test_cache_commands(runner: CliRunner, wire):
    deps = wire(upstream)
    runner.invoke(app, ["stats"])

    listed = runner.invoke(app, ["cache-stats"])
    cleared = runner.invoke(app, ["clear-cache", "--key", CacheKeys.STATS])
    rejected = runner.invoke(app, ["clear-cache", "--key", "bogus"])

    assert listed.exit_code == 0
    assert deps['ui'].display_cache_stats.call_args.args[0].total_entries == 1
    assert cleared.exit_code == 0
    assert rejected.exit_code == 1
    assert deps['cache_service']._entries == {}


def test_seed_requires_existing_file(runner: CliRunner, wire, tmp_path: Path):
    wire(upstream)
    result = runner.invoke(app, ["seed", str(tmp_path / "missing.json")])
    assert result.exit_code != 0


def test_create_dependencies_wires_configured_components(mocker, tmp_path: Path):
    mocker.patch('circlestats.main.setup_logging')

    deps = main.create_dependencies()

    assert isinstance(deps['command_handler'], CommandHandler)
    assert isinstance(deps['ui'], ConsoleDisplay)
    assert isinstance(deps['cache_service'].storage, PickleFileCacheStorage)
    assert deps['cache_service'].storage.path == tmp_path / "cache.pkl"
    assert deps['api_client'].base_url == TEST_BASE_URL
    assert deps['api_client'].retry_delays_s == (1.0, 2.0, 4.0)
    assert deps['command_handler'].fetch_options.max_retries == 3
