"""Base HTTP client with retry logic and rate limiting."""

import json
import logging
import time
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Callable, Dict, List, Optional

import httpx
from pydantic import BaseModel
from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    stop_before_delay,
    stop_never,
)

from ..config import ClientConfig


logger = logging.getLogger(__name__)

# Used when a 429 carries no usable Retry-After header
DEFAULT_RATE_LIMIT_WAIT = 30.0


class VendAPIError(Exception):
    """Base API error.

    Pagination helpers attach whatever records were fetched before the
    failure to ``partial_results`` so callers can keep them.
    """

    def __init__(self, message: str, status_code: Optional[int] = None, body: Optional[bytes] = None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body
        self.partial_results: List[Any] = []


class BadRequestError(VendAPIError):
    """The API rejected the request (400)."""


class AuthenticationError(VendAPIError):
    """The token was refused (401)."""


class NotFoundError(VendAPIError):
    """Resource not found (404)."""


class RateLimitError(VendAPIError):
    """Rate limit exceeded (429)."""

    def __init__(self, message: str, status_code: Optional[int] = 429, body: Optional[bytes] = None,
                 retry_after: float = DEFAULT_RATE_LIMIT_WAIT):
        super().__init__(message, status_code, body)
        self.retry_after = retry_after


class ServerError(VendAPIError):
    """The API failed with a 5xx status."""


class UnknownStatusError(VendAPIError):
    """Any other non-success status."""


class NetworkError(VendAPIError):
    """The request never got a response (connection error, timeout)."""


class SerializationError(VendAPIError):
    """The request body could not be encoded as JSON."""


class ProtocolViolationError(VendAPIError):
    """The API answered with something the client cannot make sense of."""


class RetryState(BaseModel):
    """Per-call retry bookkeeping."""

    attempt: int = 0
    rate_limited: bool = False


def _snippet(body: Optional[bytes], limit: int = 200) -> str:
    if not body:
        return ""
    text = body.decode("utf-8", errors="replace").strip()
    return text[:limit]


def classify_status(status_code: int, body: Optional[bytes] = None) -> Optional[VendAPIError]:
    """Map an HTTP status code onto the error taxonomy.

    Returns None for success (< 300), otherwise an unraised error instance.
    """
    if status_code < 300:
        return None
    if status_code == 400:
        detail = _snippet(body)
        message = f"Bad request: {detail}" if detail else "Bad request"
        return BadRequestError(message, status_code, body)
    if status_code == 401:
        return AuthenticationError("Access denied - check API token", status_code, body)
    if status_code == 404:
        return NotFoundError(f"URL not found - status {status_code}", status_code, body)
    if status_code == 429:
        return RateLimitError(f"Rate limited by the Vend API - status {status_code}", status_code, body)
    if 500 <= status_code < 600:
        return ServerError(f"Server error - status {status_code}", status_code, body)
    return UnknownStatusError(f"Unknown status code - status {status_code}", status_code, body)


def backoff_duration(attempt: int) -> float:
    """Seconds to wait after the given network-failure attempt."""
    if attempt <= 0:
        attempt = 1
    return attempt ** 3.5 + 5


def rate_limit_wait(retry_after: Optional[str], now: datetime) -> float:
    """Seconds until the time given in a Retry-After header.

    The API sends an RFC 1123 date. A plain number of seconds is accepted
    as well; anything else falls back to a fixed wait.
    """
    if not retry_after:
        return DEFAULT_RATE_LIMIT_WAIT

    value = retry_after.strip()
    if value.isdigit():
        return float(value)

    try:
        retry_time = parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError):
        return DEFAULT_RATE_LIMIT_WAIT
    if retry_time is None:
        return DEFAULT_RATE_LIMIT_WAIT
    if retry_time.tzinfo is None:
        retry_time = retry_time.replace(tzinfo=timezone.utc)

    return max(0.0, (retry_time - now).total_seconds())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BaseClient:
    """Blocking HTTP client with retry logic and rate limiting.

    Network failures are retried with a growing backoff and 429 responses
    are retried after the server's Retry-After; every other non-success
    status is raised to the caller straight away.
    """

    def __init__(
        self,
        config: ClientConfig,
        transport: Optional[httpx.BaseTransport] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.config = config
        self._sleep = sleep
        self._clock = clock

        self.client = httpx.Client(
            timeout=httpx.Timeout(config.timeout),
            limits=httpx.Limits(max_keepalive_connections=10, max_connections=20),
            transport=transport,
        )

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def close(self) -> None:
        self.client.close()

    def _get_headers(self) -> Dict[str, str]:
        """Get headers for API requests."""
        return {
            "User-Agent": self.config.user_agent,
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.config.token}",
        }

    def build_request(self, method: str, url: str, body: Any = None) -> httpx.Request:
        """Build a request with auth headers and a JSON encoded body."""
        content = None
        if body is not None:
            try:
                content = json.dumps(body, allow_nan=False).encode("utf-8")
            except (TypeError, ValueError) as e:
                raise SerializationError(f"Could not encode request body for {method} {url}: {e}") from e

        return self.client.build_request(method, url, content=content, headers=self._get_headers())

    def _send_once(self, method: str, url: str, body: Any) -> bytes:
        # A fresh request per attempt, the previous body stream may be spent
        request = self.build_request(method, url, body)

        try:
            response = self.client.send(request)
        except httpx.TransportError as e:
            raise NetworkError(f"Error performing {method} {url}: {e}") from e

        error = classify_status(response.status_code, response.content)
        if isinstance(error, RateLimitError):
            error.retry_after = rate_limit_wait(response.headers.get("Retry-After"), self._clock())
        if error is not None:
            raise error

        return response.content

    def _stop_policy(self):
        conditions = []
        if self.config.max_attempts is not None:
            conditions.append(stop_after_attempt(self.config.max_attempts))
        if self.config.deadline is not None:
            # counts the upcoming sleep, so no wait runs past the deadline
            conditions.append(stop_before_delay(self.config.deadline))

        if not conditions:
            return stop_never
        stop = conditions[0]
        for condition in conditions[1:]:
            stop = stop | condition
        return stop

    @staticmethod
    def _wait_policy(state: RetryState):
        def wait(retry_state) -> float:
            error = retry_state.outcome.exception()
            if isinstance(error, RateLimitError):
                # Rate limiting does not count towards the backoff
                state.rate_limited = True
                return error.retry_after
            state.attempt += 1
            return backoff_duration(state.attempt)

        return wait

    def request(self, method: str, url: str, body: Any = None) -> bytes:
        """Perform a request and return the raw response body."""
        state = RetryState()
        retrying = Retrying(
            stop=self._stop_policy(),
            wait=self._wait_policy(state),
            retry=retry_if_exception_type((NetworkError, RateLimitError)),
            sleep=self._sleep,
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )

        content = retrying(self._send_once, method, url, body)

        if state.rate_limited:
            logger.info("Recovered from rate limiting on %s %s", method, url)
            state.rate_limited = False

        return content

    def request_json(self, method: str, url: str, body: Any = None) -> Any:
        """Perform a request and decode the JSON response body."""
        content = self.request(method, url, body)
        if not content.strip():
            return None

        try:
            return json.loads(content)
        except ValueError as e:
            raise ProtocolViolationError(f"Invalid JSON returned by {method} {url}: {e}", body=content) from e

    def get(self, url: str) -> Any:
        """Make a GET request."""
        return self.request_json("GET", url)

    def post(self, url: str, body: Any = None) -> Any:
        """Make a POST request."""
        return self.request_json("POST", url, body)

    def put(self, url: str, body: Any = None) -> Any:
        """Make a PUT request."""
        return self.request_json("PUT", url, body)

    def delete(self, url: str) -> Any:
        """Make a DELETE request."""
        return self.request_json("DELETE", url)
