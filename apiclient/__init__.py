"""Resilient asynchronous API client.

This package provides an HTTP API client that layers response caching,
in-flight request deduplication, retry with exponential backoff and bearer
token refresh over a pluggable transport.

Example:
    Basic usage::

        from apiclient import ApiClient, ClientConfig, StaticTokenProvider

        config = ClientConfig(base_url="https://api.example.com")
        async with ApiClient(config, auth=StaticTokenProvider("secret")) as client:
            profile = await client.get("/users/me")

Exports:
    ApiClient: The request orchestrator.
    ClientConfig: Client configuration.
    RequestDescriptor: Description of one call.
    ApiResponse: Success envelope.
    AuthToken: Bearer token with expiry.

    Collaborators:
        RequestCache, RequestDeduplicator, RetryPolicy, HttpxTransport,
        StaticTokenProvider, RefreshingTokenProvider, StdlibRequestLogger,
        NullRequestLogger.

    Exceptions:
        ApiError: Base exception carrying the error ``kind``.
        ErrorKind: The closed taxonomy of failure kinds.
        NetworkError, TimeoutError, UnauthorizedError, ForbiddenError,
        NotFoundError, ServerError, ValidationError, UnknownError,
        CancelledError: One subclass per kind.
"""

from apiclient._auth import AuthTokenProvider, RefreshingTokenProvider, StaticTokenProvider
from apiclient._cache import CacheEntry, RequestCache
from apiclient._classify import classify, classify_exception, classify_response
from apiclient._dedup import PendingRequest, RequestDeduplicator
from apiclient._logging import NullRequestLogger, RequestLogger, StdlibRequestLogger
from apiclient._retry import RETRYABLE_STATUS_CODES, RetryPolicy, parse_retry_after
from apiclient._transport import HttpxTransport, Transport
from apiclient.exceptions import (
    ApiError,
    CancelledError,
    ErrorKind,
    ForbiddenError,
    NetworkError,
    NotFoundError,
    ServerError,
    TimeoutError,
    UnauthorizedError,
    UnknownError,
    ValidationError,
    error_for_kind,
)
from apiclient.models import (
    ApiResponse,
    AuthToken,
    ClientConfig,
    RequestDescriptor,
    build_signature,
)
from apiclient.client import ApiClient

__all__ = [
    # Main client
    "ApiClient",
    # Models
    "ApiResponse",
    "AuthToken",
    "ClientConfig",
    "RequestDescriptor",
    "build_signature",
    # Collaborators
    "AuthTokenProvider",
    "CacheEntry",
    "HttpxTransport",
    "NullRequestLogger",
    "PendingRequest",
    "RefreshingTokenProvider",
    "RequestCache",
    "RequestDeduplicator",
    "RequestLogger",
    "RetryPolicy",
    "StaticTokenProvider",
    "StdlibRequestLogger",
    "Transport",
    "RETRYABLE_STATUS_CODES",
    "parse_retry_after",
    # Classification
    "classify",
    "classify_exception",
    "classify_response",
    # Exceptions
    "ApiError",
    "CancelledError",
    "ErrorKind",
    "ForbiddenError",
    "NetworkError",
    "NotFoundError",
    "ServerError",
    "TimeoutError",
    "UnauthorizedError",
    "UnknownError",
    "ValidationError",
    "error_for_kind",
]
