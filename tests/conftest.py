import json
from pathlib import Path
from typing import Callable, Dict, List

import httpx
import pytest
from typer.testing import CliRunner

from circlestats.domain.models.common import Credentials
from circlestats.infrastructure.config.settings import clear_test_config, set_config_for_testing

TEST_BASE_URL = "https://circle.test/api/admin/v2"


@pytest.fixture(scope="session")
def runner():
    """Provides a Typer CliRunner instance."""
    return CliRunner()


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch, tmp_path: Path):
    """Keeps each test away from the developer's real credentials and cache file."""
    for name in ("CIRCLE_API_KEY", "CIRCLE_COMMUNITY_ID", "CIRCLE_BASE_URL", "CACHE_FILE"):
        monkeypatch.delenv(name, raising=False)
    set_config_for_testing({
        'circle.base_url': TEST_BASE_URL,
        'cache.file': str(tmp_path / "cache.pkl"),
    })
    yield
    clear_test_config()


@pytest.fixture
def credentials() -> Credentials:
    return Credentials(api_key="test-key-0123456789", community_id="4242")


class FakeClock:
    """Manually advanced replacement for time.time."""

    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def recorded_sleeps() -> List[float]:
    return []


@pytest.fixture
def fake_sleep(recorded_sleeps: List[float]):
    """Awaitable sleep that records delays instead of waiting."""
    async def sleep(delay: float) -> None:
        recorded_sleeps.append(delay)
    return sleep


def json_response(payload, status_code: int = 200) -> httpx.Response:
    return httpx.Response(
        status_code,
        content=json.dumps(payload).encode(),
        headers={"content-type": "application/json; charset=utf-8"},
    )


def html_response(text: str, status_code: int = 200) -> httpx.Response:
    return httpx.Response(status_code, text=text, headers={"content-type": "text/html"})


@pytest.fixture
def make_client():
    """Builds an httpx.AsyncClient whose requests are answered by `handler`."""
    def factory(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return factory


def member(member_id: int, name: str, inviter: Dict = None) -> Dict:
    record = {"id": member_id, "name": name, "email": f"{name.lower()}@example.com"}
    if inviter is not None:
        record["invited_by"] = inviter
    return record


def fresh(response: httpx.Response) -> httpx.Response:
    """Copy of a canned response, so one fixture can answer several requests."""
    return httpx.Response(response.status_code, headers=response.headers, content=response.content)
