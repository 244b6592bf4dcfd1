"""Retry policy with exponential backoff.

Retries are only permitted for idempotent methods (GET). A failed attempt
is retried when it is a transient transport failure (NETWORK / TIMEOUT)
or its status is one of ``RETRYABLE_STATUS_CODES``, and the call has not
used up ``max_attempts`` transport invocations.

The wait before retry ``k`` (1-indexed) is ``base_delay * 2 ** (k - 1)``,
capped at ``max_delay``. A Retry-After hint on the response raises the
wait to the hinted value when it is larger.

This is an internal module and should not be imported directly by users.
"""

import random
from collections.abc import Collection, Mapping
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime

from apiclient.exceptions import ApiError
from apiclient.models import IDEMPOTENT_METHODS

# Status codes that trigger automatic retry
RETRYABLE_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504})

# Default backoff settings for retry logic
DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_RETRY_BACKOFF_BASE = 1.0  # seconds
DEFAULT_RETRY_BACKOFF_MAX = 30.0  # seconds


def parse_retry_after(headers: Mapping[str, str] | None) -> float | None:
    """Parse a Retry-After header into seconds, if available.

    Both forms are accepted: delta-seconds and an HTTP date.
    """
    if not headers:
        return None
    value = headers.get("Retry-After") or headers.get("retry-after")
    if not value:
        return None
    value = value.strip()
    if value.isdigit():
        return float(value)
    try:
        dt = parsedate_to_datetime(value)
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        delta = (dt - datetime.now(timezone.utc)).total_seconds()
        return max(0.0, delta)
    except (AttributeError, OverflowError, TypeError, ValueError):
        return None


class RetryPolicy:
    """Decides whether to retry a failed attempt and how long to wait.

    Attributes:
        max_attempts: Maximum transport invocations for one call.
        base_delay: Delay before the first retry, in seconds.
        max_delay: Cap for the computed exponential delay.
        jitter: Upper bound of a random extra delay added to each wait.
        retry_statuses: Status codes considered transient.
        idempotent_methods: Methods that may be retried.
    """

    def __init__(
        self,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        base_delay: float = DEFAULT_RETRY_BACKOFF_BASE,
        max_delay: float = DEFAULT_RETRY_BACKOFF_MAX,
        jitter: float = 0.0,
        retry_statuses: Collection[int] = RETRYABLE_STATUS_CODES,
        idempotent_methods: Collection[str] = IDEMPOTENT_METHODS,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if base_delay < 0 or max_delay < 0 or jitter < 0:
            raise ValueError("Delays must not be negative")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.jitter = jitter
        self.retry_statuses = frozenset(retry_statuses)
        self.idempotent_methods = frozenset(m.upper() for m in idempotent_methods)

    def is_retryable(self, error: ApiError) -> bool:
        """Whether ``error`` is a transient failure worth retrying."""
        if error.status is not None:
            return error.status in self.retry_statuses
        return error.retryable_kind

    def should_retry(self, method: str, error: ApiError, attempt: int) -> bool:
        """Decide whether to retry after a failed attempt.

        Args:
            method: The HTTP method of the call.
            error: The classified failure of the attempt.
            attempt: Retries already performed (0 after the first attempt).

        Returns:
            True if another attempt should be made.
        """
        if method.upper() not in self.idempotent_methods:
            return False
        if not self.is_retryable(error):
            return False
        return attempt + 1 < self.max_attempts

    def compute_delay(self, attempt: int, retry_after: float | None = None) -> float:
        """Compute the wait before retry number ``attempt``.

        Args:
            attempt: The retry about to be made (1 for the first retry).
            retry_after: Server-supplied Retry-After hint in seconds.

        Returns:
            The delay in seconds.
        """
        delay = min(self.base_delay * (2 ** max(attempt - 1, 0)), self.max_delay)
        if retry_after is not None:
            delay = max(delay, float(retry_after))
        if self.jitter > 0:
            delay += random.uniform(0.0, self.jitter)
        return delay
