"""Value models for the resilient API client.

This module defines the immutable values that flow through the client:
- RequestDescriptor: One logical call (method, path, params, body, ...)
- ApiResponse: The success envelope returned to callers
- AuthToken: A bearer token and its expiry
- ClientConfig: Validated client configuration, loadable from the environment
"""

import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Literal
from urllib.parse import urlencode

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, field_validator

# HTTP methods supported by the client
HttpMethod = Literal["GET", "POST", "PUT", "PATCH", "DELETE"]

# Methods that may be retried and cached
IDEMPOTENT_METHODS = frozenset({"GET"})


def normalize_path(path: str) -> str:
    """Return ``path`` with a single leading slash.

    Raises:
        ValueError: If the path is empty or blank.
    """
    if not path or not path.strip():
        raise ValueError("Request path must be non-empty")
    path = path.strip()
    if not path.startswith("/"):
        path = f"/{path}"
    return path


def _param_value(value: Any) -> str | tuple[str, ...]:
    if isinstance(value, (list, tuple)):
        return tuple(str(v) for v in value)
    return str(value)


def build_signature(
    method: str,
    path: str,
    params: dict[str, Any] | None = None,
) -> str:
    """Build the deterministic signature of a request.

    The signature is made from the upper-cased method, the normalized path
    and the query parameters sorted by name. ``None`` values are dropped,
    so ``{"page": None}`` and ``{}`` share a signature. The body never
    takes part.

    Examples:
        >>> build_signature("get", "users", {"b": 2, "a": 1})
        'GET /users?a=1&b=2'

    Args:
        method: The HTTP method.
        path: The request path.
        params: Query parameters, in any order.

    Returns:
        A string key for cache lookup and deduplication.
    """
    items = sorted(
        (str(key), _param_value(value))
        for key, value in (params or {}).items()
        if value is not None
    )
    signature = f"{method.upper()} {normalize_path(path)}"
    if items:
        signature = f"{signature}?{urlencode(items, doseq=True)}"
    return signature


class RequestDescriptor(BaseModel):
    """Immutable description of one logical call.

    Header names are stored lower-cased so lookups are case-insensitive.

    Args:
        method: HTTP method.
        path: Request path relative to the configured base URL.
        params: Query parameters (order is irrelevant to the signature).
        body: JSON-serializable payload, or None.
        headers: Extra request headers.
        timeout: Per-attempt timeout in seconds; None uses the client default.
        bypass_cache: Skip the cache read for this GET.
    """

    model_config = ConfigDict(frozen=True)

    method: HttpMethod = Field(default="GET", description="HTTP method")
    path: str = Field(description="Request path relative to the base URL")
    params: dict[str, Any] = Field(default_factory=dict, description="Query parameters")
    body: Any = Field(default=None, description="Request payload")
    headers: dict[str, str] = Field(default_factory=dict, description="Extra headers")
    timeout: float | None = Field(
        default=None, gt=0.0, description="Per-attempt timeout in seconds"
    )
    bypass_cache: bool = Field(default=False, description="Skip the cache read")

    @field_validator("method", mode="before")
    @classmethod
    def validate_method(cls, v: Any) -> Any:
        """Accept lower-case method names."""
        if isinstance(v, str):
            return v.upper()
        return v

    @field_validator("path")
    @classmethod
    def validate_path(cls, v: str) -> str:
        """Ensure the path is non-empty and starts with a slash."""
        return normalize_path(v)

    @field_validator("headers", mode="before")
    @classmethod
    def validate_headers(cls, v: Any) -> Any:
        """Lower-case header names."""
        if v is None:
            return {}
        if hasattr(v, "items"):
            return {str(key).lower(): value for key, value in v.items()}
        return v

    @property
    def signature(self) -> str:
        """Signature used for cache lookup and deduplication."""
        return build_signature(self.method, self.path, self.params)

    @property
    def is_idempotent(self) -> bool:
        return self.method in IDEMPOTENT_METHODS

    def query_params(self) -> dict[str, Any]:
        """Return the query parameters with None values removed."""
        return {key: value for key, value in self.params.items() if value is not None}


class ApiResponse(BaseModel):
    """Success envelope produced at the client boundary.

    Servers may wrap payloads as ``{"success": true, "data": ..., "message": ...}``;
    bare payloads are wrapped into the same shape by the client.
    The same instance is cached and handed to every caller of a shared
    GET, so it is frozen; treat ``data`` as read-only.
    """

    model_config = ConfigDict(frozen=True)

    success: bool = Field(default=True, description="Whether the call succeeded")
    data: Any = Field(default=None, description="Response payload")
    message: str | None = Field(default=None, description="Optional server message")
    status: int | None = Field(default=None, description="HTTP status of the response")


class AuthToken(BaseModel):
    """A bearer token and its expiry.

    Args:
        access_token: The bearer string.
        expires_at: When the token stops being valid (timezone-aware), or None.
    """

    model_config = ConfigDict(frozen=True)

    access_token: str = Field(min_length=1, description="The bearer string")
    expires_at: datetime | None = Field(default=None, description="Expiry timestamp")

    @field_validator("expires_at")
    @classmethod
    def validate_timezone_aware(cls, v: datetime | None) -> datetime | None:
        """Ensure datetime is timezone-aware."""
        if v is not None and v.tzinfo is None:
            raise ValueError("Datetime must be timezone-aware (recommend UTC)")
        return v

    def is_expired(self, now: datetime | None = None) -> bool:
        """Check whether the token has expired.

        Args:
            now: Reference time (defaults to the current UTC time).

        Returns:
            True if the token has an expiry and it is not in the future.
        """
        if self.expires_at is None:
            return False
        now = now or datetime.now(timezone.utc)
        return now >= self.expires_at


class ClientConfig(BaseModel):
    """Configuration for an ApiClient.

    Durations are in seconds.

    Args:
        base_url: Base URL every request path is appended to.
        timeout: Default per-attempt timeout.
        retries: Maximum number of transport attempts for a retryable call.
        retry_delay: Base delay of the exponential backoff.
        max_retry_delay: Upper bound for a computed backoff delay.
        cache_ttl: Lifetime of a cached GET response.
        max_cache_entries: Maximum number of cached responses.
        enable_logging: Emit request/response/error events to the logger.
        headers: Default headers sent with every request.
    """

    base_url: str = Field(description="Base URL for all requests")
    timeout: float = Field(default=10.0, gt=0.0, description="Default timeout")
    retries: int = Field(default=3, ge=1, description="Maximum attempts")
    retry_delay: float = Field(default=1.0, ge=0.0, description="Backoff base delay")
    max_retry_delay: float = Field(default=30.0, ge=0.0, description="Backoff cap")
    cache_ttl: float = Field(default=300.0, gt=0.0, description="Cache entry lifetime")
    max_cache_entries: int = Field(default=100, ge=1, description="Cache capacity")
    enable_logging: bool = Field(default=False, description="Log request events")
    headers: dict[str, str] = Field(default_factory=dict, description="Default headers")

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        """Strip whitespace and trailing slashes."""
        v = v.strip().rstrip("/")
        if not v:
            raise ValueError("base_url must be non-empty")
        return v

    @classmethod
    def from_env(
        cls,
        prefix: str = "API_CLIENT_",
        env_file: str | Path | None = None,
        **overrides: Any,
    ) -> "ClientConfig":
        """Build a config from environment variables.

        Values from a ``.env`` file are loaded first (without overriding
        variables already set in the process environment). Keyword
        overrides win over both.

        Args:
            prefix: Prefix of the recognized variables (e.g. ``API_CLIENT_BASE_URL``).
            env_file: Path to a dotenv file; None searches for ``.env``.
            **overrides: Explicit field values.

        Returns:
            The validated configuration.

        Raises:
            pydantic.ValidationError: If a value is missing or invalid.
        """
        load_dotenv(dotenv_path=env_file)
        values: dict[str, Any] = {}
        for name in (
            "base_url",
            "timeout",
            "retries",
            "retry_delay",
            "max_retry_delay",
            "cache_ttl",
            "max_cache_entries",
            "enable_logging",
        ):
            raw = os.environ.get(f"{prefix}{name.upper()}")
            if raw is not None and raw != "":
                values[name] = raw
        values.update(overrides)
        return cls.model_validate(values)
