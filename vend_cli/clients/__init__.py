"""HTTP clients for the Vend API."""

from .vend import API_V09, API_V2, VendClient, parse_vend_datetime
from .base import (
    BaseClient,
    VendAPIError,
    BadRequestError,
    AuthenticationError,
    NotFoundError,
    RateLimitError,
    ServerError,
    UnknownStatusError,
    NetworkError,
    SerializationError,
    ProtocolViolationError,
    backoff_duration,
    classify_status,
    rate_limit_wait,
)

__all__ = [
    "API_V2",
    "API_V09",
    "VendClient",
    "BaseClient",
    "parse_vend_datetime",
    "VendAPIError",
    "BadRequestError",
    "AuthenticationError",
    "NotFoundError",
    "RateLimitError",
    "ServerError",
    "UnknownStatusError",
    "NetworkError",
    "SerializationError",
    "ProtocolViolationError",
    "backoff_duration",
    "classify_status",
    "rate_limit_wait",
]
