import pytest

from circlestats.domain.models.errors import ErrorKind
from circlestats.infrastructure.resilience.error_classifier import (
    classify_response, is_cloudflare_challenge, is_fatal, is_json_content_type, is_retryable,
)

CHALLENGE_PAGE = "<html><title>Just a moment...</title><body>Checking your browser before accessing</body></html>"


@pytest.mark.parametrize("status", [401, 403])
def test_auth_statuses_are_invalid_credentials(status):
    assert classify_response(status, "application/json", "{}") == ErrorKind.INVALID_CREDENTIALS


def test_auth_status_wins_over_challenge_body():
    assert classify_response(403, "text/html", CHALLENGE_PAGE) == ErrorKind.INVALID_CREDENTIALS


def test_429_is_rate_limited():
    assert classify_response(429, "text/plain", "slow down") == ErrorKind.RATE_LIMITED


@pytest.mark.parametrize("status", [0, 500, 502, 503, 504])
def test_server_errors_and_no_response_are_network_errors(status):
    assert classify_response(status, "text/html", CHALLENGE_PAGE) == ErrorKind.NETWORK_ERROR


def test_challenge_body_is_cloudflare_blocked():
    assert classify_response(200, "text/html", CHALLENGE_PAGE) == ErrorKind.CLOUDFLARE_BLOCKED


def test_non_json_content_type_is_invalid_response():
    assert classify_response(200, "text/html", "<html>maintenance</html>") == ErrorKind.INVALID_RESPONSE


def test_json_client_error_is_unknown():
    assert classify_response(404, "application/json", '{"error": "not found"}') == ErrorKind.UNKNOWN


@pytest.mark.parametrize("body", ["Ray ID: 7d2f", "CLOUDFLARE", "Security Check required", "please wait while we check"])
def test_challenge_markers_match_case_insensitively(body):
    assert is_cloudflare_challenge(body)


def test_plain_body_is_not_a_challenge():
    assert not is_cloudflare_challenge('{"records": []}')
    assert not is_cloudflare_challenge("")


def test_json_content_type_detection():
    assert is_json_content_type("application/json; charset=utf-8")
    assert is_json_content_type("Application/JSON")
    assert not is_json_content_type("text/html")
    assert not is_json_content_type("")


def test_fatal_and_retryable_sets():
    assert is_fatal(ErrorKind.INVALID_CREDENTIALS)
    assert is_fatal(ErrorKind.CLOUDFLARE_BLOCKED)
    for kind in (ErrorKind.RATE_LIMITED, ErrorKind.NETWORK_ERROR, ErrorKind.TIMEOUT, ErrorKind.INVALID_RESPONSE):
        assert is_retryable(kind)
        assert not is_fatal(kind)
    assert not is_retryable(ErrorKind.UNKNOWN)
    assert not is_retryable(ErrorKind.INVALID_CREDENTIALS)
