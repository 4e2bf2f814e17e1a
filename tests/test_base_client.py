"""Tests for request building, status classification and the retry loop."""

import json
from datetime import timedelta
from email.utils import format_datetime

import httpx
import pytest
import tenacity

from vend_cli.clients import (
    AuthenticationError,
    BadRequestError,
    NetworkError,
    NotFoundError,
    RateLimitError,
    SerializationError,
    ServerError,
    UnknownStatusError,
    VendClient,
    backoff_duration,
    classify_status,
    rate_limit_wait,
)

from .conftest import FIXED_NOW

URL = "https://mystore.vendhq.com/api/2.0/customers"


def sequence_handler(*steps):
    """Answer requests with the given responses/exceptions in order."""
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        step = steps[len(calls)]
        calls.append(request)
        if isinstance(step, Exception):
            raise step
        return step

    handler.calls = calls
    return handler


def retry_after(seconds: int) -> str:
    return format_datetime(FIXED_NOW + timedelta(seconds=seconds), usegmt=True)


# ---------------------------------------------------------------------------
# Request building
# ---------------------------------------------------------------------------


def test_requests_carry_identity_and_auth_headers(make_client):
    handler = sequence_handler(httpx.Response(200, json={"data": []}))
    client = make_client(handler)

    client.get(URL)

    request = handler.calls[0]
    assert request.headers["User-Agent"] == "Vend CLI"
    assert request.headers["Content-Type"] == "application/json"
    assert request.headers["Authorization"] == "Bearer secret-token"


def test_body_is_sent_as_json(make_client):
    handler = sequence_handler(httpx.Response(201, json={"data": {"id": "1"}}))
    client = make_client(handler)

    result = client.post(URL, {"first_name": "Ada"})

    assert json.loads(handler.calls[0].content) == {"first_name": "Ada"}
    assert result == {"data": {"id": "1"}}


def test_bodyless_request_sends_no_content(make_client):
    handler = sequence_handler(httpx.Response(204))
    client = make_client(handler)

    assert client.delete(URL + "/abc") is None
    assert handler.calls[0].content == b""


def test_unserializable_body_fails_before_any_request(make_client):
    handler = sequence_handler()
    client = make_client(handler)

    with pytest.raises(SerializationError):
        client.post(URL, {"when": object()})
    assert handler.calls == []


@pytest.mark.parametrize("value", [float("nan"), float("inf"), float("-inf")])
def test_non_finite_numbers_are_not_valid_json(make_client, value):
    handler = sequence_handler()
    client = make_client(handler)

    with pytest.raises(SerializationError):
        client.post(URL, {"balance": value})
    assert handler.calls == []


# ---------------------------------------------------------------------------
# Status classification
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "status_code, expected",
    [
        (200, None),
        (201, None),
        (204, None),
        (400, BadRequestError),
        (401, AuthenticationError),
        (404, NotFoundError),
        (429, RateLimitError),
        (500, ServerError),
        (502, ServerError),
        (302, UnknownStatusError),
        (409, UnknownStatusError),
        (999, UnknownStatusError),
    ],
)
def test_classify_status(status_code, expected):
    error = classify_status(status_code)
    if expected is None:
        assert error is None
    else:
        assert type(error) is expected
        assert error.status_code == status_code


def test_unauthorized_mentions_the_token():
    assert "check API token" in str(classify_status(401))


def test_bad_request_includes_response_detail():
    error = classify_status(400, b'{"error": "customer_code taken"}')
    assert "customer_code taken" in str(error)


def test_client_errors_are_raised_without_retry(make_client, sleeps):
    handler = sequence_handler(httpx.Response(401))
    client = make_client(handler)

    with pytest.raises(AuthenticationError):
        client.get(URL)
    assert len(handler.calls) == 1
    assert sleeps == []


def test_server_errors_are_not_retried(make_client, sleeps):
    handler = sequence_handler(httpx.Response(502), httpx.Response(200, json={}))
    client = make_client(handler)

    with pytest.raises(ServerError) as excinfo:
        client.get(URL)
    assert excinfo.value.status_code == 502
    assert len(handler.calls) == 1
    assert sleeps == []


# ---------------------------------------------------------------------------
# Backoff on network failures
# ---------------------------------------------------------------------------


def test_backoff_duration_formula():
    assert backoff_duration(1) == pytest.approx(6.0)
    assert backoff_duration(2) == pytest.approx(2 ** 3.5 + 5)
    assert backoff_duration(3) == pytest.approx(3 ** 3.5 + 5)
    # attempts below one are treated as the first
    assert backoff_duration(0) == backoff_duration(1)


def test_network_failures_back_off_then_succeed(make_client, sleeps):
    request = httpx.Request("GET", URL)
    handler = sequence_handler(
        httpx.ConnectError("refused", request=request),
        httpx.ReadTimeout("timed out", request=request),
        httpx.ConnectError("refused", request=request),
        httpx.Response(200, json={"data": [{"id": "a"}]}),
    )
    client = make_client(handler)

    assert client.get(URL) == {"data": [{"id": "a"}]}
    assert len(handler.calls) == 4
    assert sleeps == pytest.approx([1 ** 3.5 + 5, 2 ** 3.5 + 5, 3 ** 3.5 + 5])
    assert sleeps == sorted(sleeps)


def test_attempt_cap_gives_up_with_network_error(make_client, sleeps):
    request = httpx.Request("GET", URL)
    failure = httpx.ConnectError("refused", request=request)
    handler = sequence_handler(failure, failure, failure)
    client = make_client(handler, max_attempts=3)

    with pytest.raises(NetworkError):
        client.get(URL)
    assert len(handler.calls) == 3
    assert len(sleeps) == 2


# ---------------------------------------------------------------------------
# Rate limiting
# ---------------------------------------------------------------------------


def test_rate_limit_waits_until_retry_after(make_client, sleeps):
    handler = sequence_handler(
        httpx.Response(429, headers={"Retry-After": retry_after(2)}),
        httpx.Response(200, json={"data": []}),
    )
    client = make_client(handler)

    assert client.get(URL) == {"data": []}
    assert len(handler.calls) == 2
    assert sleeps == [pytest.approx(2.0)]
    assert sleeps[0] >= 2.0


def test_rate_limit_does_not_advance_backoff(make_client, sleeps):
    request = httpx.Request("GET", URL)
    handler = sequence_handler(
        httpx.Response(429, headers={"Retry-After": retry_after(2)}),
        httpx.ConnectError("refused", request=request),
        httpx.Response(200, json={}),
    )
    client = make_client(handler)

    client.get(URL)

    # the network failure is the first counted attempt
    assert sleeps == pytest.approx([2.0, backoff_duration(1)])


def test_rate_limit_without_header_waits_default(make_client, sleeps):
    handler = sequence_handler(httpx.Response(429), httpx.Response(200, json={}))
    client = make_client(handler)

    client.get(URL)

    assert sleeps == [30.0]


def test_rate_limits_can_repeat(make_client, sleeps):
    handler = sequence_handler(
        httpx.Response(429, headers={"Retry-After": retry_after(5)}),
        httpx.Response(429, headers={"Retry-After": retry_after(1)}),
        httpx.Response(200, json={}),
    )
    client = make_client(handler)

    client.get(URL)

    assert sleeps == pytest.approx([5.0, 1.0])


@pytest.mark.parametrize(
    "header, expected",
    [
        (None, 30.0),
        ("", 30.0),
        ("soon", 30.0),
        ("12", 12.0),
        (retry_after(10), 10.0),
        (retry_after(-10), 0.0),
    ],
)
def test_rate_limit_wait(header, expected):
    assert rate_limit_wait(header, FIXED_NOW) == pytest.approx(expected)


def test_recovery_from_rate_limit_is_logged(make_client, caplog):
    handler = sequence_handler(httpx.Response(429), httpx.Response(200, json={}))
    client = make_client(handler)

    with caplog.at_level("INFO", logger="vend_cli.clients.base"):
        client.get(URL)

    assert "Recovered from rate limiting" in caplog.text


# ---------------------------------------------------------------------------
# Deadline
# ---------------------------------------------------------------------------


@pytest.fixture
def virtual_time(monkeypatch):
    """A monotonic clock that only moves when the client sleeps."""
    now = [1000.0]
    slept = []

    def sleep(seconds: float) -> None:
        slept.append(seconds)
        now[0] += seconds

    monkeypatch.setattr(tenacity.time, "monotonic", lambda: now[0])
    return sleep, slept


def deadline_client(config, handler, deadline, sleep):
    return VendClient(
        config.model_copy(update={"deadline": deadline}),
        transport=httpx.MockTransport(handler),
        sleep=sleep,
        clock=lambda: FIXED_NOW,
    )


def test_deadline_bounds_total_backoff(config, virtual_time):
    sleep, slept = virtual_time
    request = httpx.Request("GET", URL)
    failure = httpx.ConnectError("refused", request=request)
    handler = sequence_handler(*[failure] * 10)

    with deadline_client(config, handler, 60, sleep) as client:
        with pytest.raises(NetworkError):
            client.get(URL)

    # 6 + 16.3 fit, the third backoff (~52s) would overrun
    assert slept == pytest.approx([backoff_duration(1), backoff_duration(2)])
    assert sum(slept) <= 60
    assert len(handler.calls) == 3


def test_deadline_stops_a_rate_limit_wait_that_would_overrun(config, virtual_time):
    sleep, slept = virtual_time
    handler = sequence_handler(
        httpx.Response(429, headers={"Retry-After": retry_after(120)}),
        httpx.Response(200, json={}),
    )

    with deadline_client(config, handler, 60, sleep) as client:
        with pytest.raises(RateLimitError):
            client.get(URL)

    assert slept == []
    assert len(handler.calls) == 1


def test_deadline_allows_retries_that_fit(config, virtual_time):
    sleep, slept = virtual_time
    request = httpx.Request("GET", URL)
    handler = sequence_handler(
        httpx.ConnectError("refused", request=request),
        httpx.Response(200, json={"data": []}),
    )

    with deadline_client(config, handler, 60, sleep) as client:
        assert client.get(URL) == {"data": []}

    assert slept == pytest.approx([backoff_duration(1)])
