import asyncio
from typing import List

import httpx
import pytest

from circlestats.domain.models.common import FetchOptions
from circlestats.domain.models.community import BrokerDetail
from circlestats.domain.models.errors import CircleApiError, ErrorKind
from circlestats.infrastructure.api.circle_client import CircleApiClient, create_headers

from conftest import TEST_BASE_URL, html_response, json_response, member

ALICE = {"id": "a", "name": "Alice"}
NO_RETRY = FetchOptions(max_retries=0)


def make_api_client(make_client, fake_sleep, credentials, handler) -> CircleApiClient:
    return CircleApiClient(
        base_url=TEST_BASE_URL,
        http_client=make_client(handler),
        credentials_loader=lambda: credentials,
        sleep=fake_sleep,
    )


def two_page_members(requested: List[httpx.Request]):
    def handler(request: httpx.Request) -> httpx.Response:
        requested.append(request)
        if request.url.path.endswith("/invitation_links"):
            return json_response({"records": [{"id": 1, "url": "https://c.test/join/1", "is_active": True}]})
        if request.url.params.get("page") == "2":
            return json_response({"records": [member(3, "M3", ALICE)]})
        return json_response({
            "records": [member(1, "M1", ALICE), member(2, "M2")],
            "page_count": 2,
            "has_next_page": True,
            "count": 3,
        })
    return handler


@pytest.mark.asyncio
async def test_two_page_scenario(make_client, fake_sleep, credentials):
    requested = []
    client = make_api_client(make_client, fake_sleep, credentials, two_page_members(requested))

    result = await client.fetch_community_stats(NO_RETRY)

    assert result.success
    assert result.data.total_members == 3
    assert result.data.total_brokers == 1
    assert result.data.broker_details == (BrokerDetail(broker_id="a", broker_name="Alice", referred_count=2),)
    assert result.data.total_invitation_links == 1
    assert "community_members" in result.endpoint
    assert httpx.URL(result.endpoint).params["include"] == "invitation_link,invited_by"


@pytest.mark.asyncio
async def test_requests_carry_token_and_browser_headers(make_client, fake_sleep, credentials):
    requested = []
    client = make_api_client(make_client, fake_sleep, credentials, two_page_members(requested))

    await client.fetch_community_stats(NO_RETRY)

    headers = requested[0].headers
    assert headers["Authorization"] == "Token test-key-0123456789"
    assert headers["Origin"] == "https://circle.test"
    assert headers["Referer"] == "https://circle.test/"
    assert "Mozilla" in headers["User-Agent"]
    assert headers["Accept"] == "application/json"


def test_create_headers_defaults_to_circle_origin():
    headers = create_headers("k")
    assert headers["Origin"] == "https://app.circle.so"
    assert headers["Cache-Control"] == "no-cache"
    assert headers["Pragma"] == "no-cache"


@pytest.mark.asyncio
async def test_missing_credentials_fail_without_requests(make_client, fake_sleep):
    requested = []

    def loader():
        raise CircleApiError.of(ErrorKind.INVALID_CREDENTIALS, "Missing API credentials.")

    client = CircleApiClient(
        base_url=TEST_BASE_URL,
        http_client=make_client(two_page_members(requested)),
        credentials_loader=loader,
        sleep=fake_sleep,
    )

    result = await client.fetch_community_stats()

    assert not result.success
    assert result.error.kind == ErrorKind.INVALID_CREDENTIALS
    assert requested == []


@pytest.mark.asyncio
async def test_challenge_aborts_the_whole_operation(make_client, fake_sleep, credentials):
    requested = []

    def handler(request: httpx.Request) -> httpx.Response:
        requested.append(request)
        return html_response("<html>Checking your browser before accessing. Cloudflare Ray ID: 1</html>")

    client = make_api_client(make_client, fake_sleep, credentials, handler)

    result = await client.fetch_community_stats(NO_RETRY)

    assert not result.success
    assert result.error.kind == ErrorKind.CLOUDFLARE_BLOCKED
    assert len(requested) == 1
    assert all("invitation_links" not in str(r.url) for r in requested)


@pytest.mark.asyncio
async def test_failing_link_endpoints_still_produce_stats(make_client, fake_sleep, credentials):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/invitation_links"):
            return json_response({"error": "not found"}, 404)
        return json_response({"records": [member(1, "M1", ALICE)]})

    client = make_api_client(make_client, fake_sleep, credentials, handler)

    result = await client.fetch_community_stats(NO_RETRY)

    assert result.success
    assert result.data.total_members == 1
    assert result.data.total_invitation_links == 0


@pytest.mark.asyncio
async def test_every_resource_failing_returns_last_error(make_client, fake_sleep, credentials):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/invitation_links"):
            return json_response({"error": "gone"}, 404)
        return json_response({"error": "down"}, 503)

    client = make_api_client(make_client, fake_sleep, credentials, handler)

    result = await client.fetch_community_stats(NO_RETRY)

    assert not result.success
    assert result.error.kind == ErrorKind.UNKNOWN
    assert "invitation_links" in result.error.endpoint


def test_candidate_endpoints_cover_every_variant(credentials):
    client = CircleApiClient(base_url=TEST_BASE_URL, credentials_loader=lambda: credentials)
    endpoints = client.candidate_endpoints(credentials.community_id)
    assert len(endpoints) == 4
    assert sum("community_members" in e for e in endpoints) == 2
    assert sum("invitation_links" in e for e in endpoints) == 2


@pytest.mark.asyncio
async def test_connection_probe_reports_each_endpoint(make_client, fake_sleep, credentials):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/invitation_links"):
            raise httpx.ConnectError("refused", request=request)
        return json_response({"records": []})

    client = make_api_client(make_client, fake_sleep, credentials, handler)

    result = await client.test_connection()

    assert result.success
    assert len(result.results) == 4
    members_probe, links_probe = result.results[0], result.results[-1]
    assert members_probe.status == 200
    assert members_probe.is_json
    assert not members_probe.is_cloudflare
    assert members_probe.preview == '{"records": []}'
    assert links_probe.status == 0
    assert links_probe.content_type == "error"
    assert links_probe.preview == "Error: refused"


@pytest.mark.asyncio
async def test_connection_probe_flags_challenge_pages(make_client, fake_sleep, credentials):
    body = "<html>" + "Cloudflare security check " * 20 + "</html>"

    def handler(request: httpx.Request) -> httpx.Response:
        return html_response(body, 403)

    client = make_api_client(make_client, fake_sleep, credentials, handler)

    result = await client.test_connection()

    probe = result.results[0]
    assert probe.status == 403
    assert probe.is_cloudflare
    assert not probe.is_json
    assert len(probe.preview) == 150


@pytest.mark.asyncio
async def test_connection_probe_without_credentials(fake_sleep):
    def loader():
        raise CircleApiError.of(ErrorKind.INVALID_CREDENTIALS, "Missing API credentials.")

    client = CircleApiClient(base_url=TEST_BASE_URL, credentials_loader=loader, sleep=fake_sleep)

    result = await client.test_connection()

    assert not result.success
    assert result.error == "Missing API credentials."


def cancel_on_second_link_page(cancel: asyncio.Event):
    def handler(request: httpx.Request) -> httpx.Response:
        if not request.url.path.endswith("/invitation_links"):
            return json_response({"records": [member(1, "M1", ALICE)]})
        if request.url.params.get("page") == "2":
            cancel.set()
            return json_response({"records": [{"id": 3, "url": "https://c.test/join/3"}]})
        return json_response({
            "records": [{"id": 1, "url": "https://c.test/join/1"}, {"id": 2, "url": "https://c.test/join/2"}],
            "page_count": 4,
            "has_next_page": True,
        })
    return handler


@pytest.mark.asyncio
async def test_cancellation_while_paging_links_fails_the_operation(make_client, fake_sleep, credentials):
    cancel = asyncio.Event()
    client = make_api_client(make_client, fake_sleep, credentials, cancel_on_second_link_page(cancel))

    result = await client.fetch_community_stats(FetchOptions(max_retries=0, cancel_event=cancel))

    assert not result.success
    assert result.error.kind == ErrorKind.NETWORK_ERROR
    assert result.error.is_cancelled
