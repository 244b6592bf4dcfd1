"""Unit tests for the retry policy (apiclient/_retry.py)."""

from datetime import datetime, timedelta, timezone
from email.utils import format_datetime

import pytest

from apiclient._retry import (
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_RETRY_BACKOFF_BASE,
    RETRYABLE_STATUS_CODES,
    RetryPolicy,
    parse_retry_after,
)
from apiclient.exceptions import (
    NetworkError,
    NotFoundError,
    ServerError,
    TimeoutError,
    UnauthorizedError,
    ValidationError,
)


class TestDefaults:
    """Default configuration."""

    def test_defaults(self) -> None:
        policy = RetryPolicy()

        assert policy.max_attempts == DEFAULT_MAX_ATTEMPTS == 3
        assert policy.base_delay == DEFAULT_RETRY_BACKOFF_BASE == 1.0
        assert policy.jitter == 0.0

    def test_retryable_status_codes(self) -> None:
        assert RETRYABLE_STATUS_CODES == {408, 429, 500, 502, 503, 504}

    def test_invalid_configuration(self) -> None:
        with pytest.raises(ValueError):
            RetryPolicy(max_attempts=0)
        with pytest.raises(ValueError):
            RetryPolicy(base_delay=-1)


class TestComputeDelay:
    """Exponential backoff."""

    def test_exponential_growth(self) -> None:
        """Retry k waits base * 2^(k-1)."""
        policy = RetryPolicy(base_delay=1.0, max_delay=100.0)

        assert policy.compute_delay(1) == 1.0
        assert policy.compute_delay(2) == 2.0
        assert policy.compute_delay(3) == 4.0
        assert policy.compute_delay(4) == 8.0

    def test_custom_base(self) -> None:
        policy = RetryPolicy(base_delay=0.25)
        assert policy.compute_delay(3) == 1.0

    def test_capped_at_max(self) -> None:
        policy = RetryPolicy(base_delay=1.0, max_delay=5.0)
        assert policy.compute_delay(10) == 5.0

    def test_larger_retry_after_wins(self) -> None:
        policy = RetryPolicy(base_delay=1.0)
        assert policy.compute_delay(1, retry_after=7.0) == 7.0

    def test_smaller_retry_after_ignored(self) -> None:
        policy = RetryPolicy(base_delay=1.0)
        assert policy.compute_delay(3, retry_after=1.0) == 4.0

    def test_jitter_bounds(self) -> None:
        policy = RetryPolicy(base_delay=1.0, jitter=0.5)
        for _ in range(50):
            delay = policy.compute_delay(1)
            assert 1.0 <= delay <= 1.5


class TestShouldRetry:
    """Retry decisions."""

    @pytest.mark.parametrize("status", sorted(RETRYABLE_STATUS_CODES))
    def test_retryable_statuses_on_get(self, status: int) -> None:
        policy = RetryPolicy()
        error = ServerError("transient", status=status)
        assert policy.should_retry("GET", error, 0)

    @pytest.mark.parametrize(
        "error",
        [
            NetworkError("refused"),
            TimeoutError("slow", timeout=1.0),
        ],
    )
    def test_transport_failures_on_get(self, error) -> None:
        assert RetryPolicy().should_retry("GET", error, 0)

    @pytest.mark.parametrize(
        "error",
        [
            ValidationError("bad", status=422),
            NotFoundError("missing", status=404),
            UnauthorizedError("denied", status=401),
            ServerError("not implemented", status=501),
        ],
    )
    def test_non_retryable_errors(self, error) -> None:
        assert not RetryPolicy().should_retry("GET", error, 0)

    @pytest.mark.parametrize("method", ["POST", "PUT", "PATCH", "DELETE"])
    def test_non_idempotent_methods_never_retry(self, method: str) -> None:
        policy = RetryPolicy()
        assert not policy.should_retry(method, ServerError("down", status=503), 0)
        assert not policy.should_retry(method, NetworkError("refused"), 0)

    def test_attempt_limit(self) -> None:
        """With max_attempts=3, retries stop after the third attempt."""
        policy = RetryPolicy(max_attempts=3)
        error = ServerError("down", status=503)

        assert policy.should_retry("GET", error, 0)
        assert policy.should_retry("GET", error, 1)
        assert not policy.should_retry("GET", error, 2)

    def test_single_attempt_never_retries(self) -> None:
        policy = RetryPolicy(max_attempts=1)
        assert not policy.should_retry("GET", ServerError("down", status=503), 0)

    def test_custom_idempotent_methods(self) -> None:
        policy = RetryPolicy(idempotent_methods={"GET", "put"})
        assert policy.should_retry("PUT", ServerError("down", status=503), 0)


class TestParseRetryAfter:
    """Retry-After header parsing."""

    def test_seconds(self) -> None:
        assert parse_retry_after({"Retry-After": "12"}) == 12.0

    def test_lower_case_header(self) -> None:
        assert parse_retry_after({"retry-after": "3"}) == 3.0

    def test_http_date(self) -> None:
        when = datetime.now(timezone.utc) + timedelta(seconds=120)
        delay = parse_retry_after({"Retry-After": format_datetime(when, usegmt=True)})

        assert delay is not None
        assert 100 <= delay <= 121

    def test_past_date_is_zero(self) -> None:
        when = datetime.now(timezone.utc) - timedelta(hours=1)
        assert parse_retry_after({"Retry-After": format_datetime(when, usegmt=True)}) == 0.0

    @pytest.mark.parametrize("headers", [None, {}, {"Retry-After": ""}, {"Retry-After": "soon"}])
    def test_missing_or_invalid(self, headers) -> None:
        assert parse_retry_after(headers) is None
