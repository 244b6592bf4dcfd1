"""In-memory response cache for GET requests.

Entries live for a fixed TTL and the cache holds a bounded number of them.
When a new entry would exceed the bound, the entry inserted first is
evicted (insertion order, not access order). Expired entries read as a miss
and are removed on that read; ``purge_expired`` removes them eagerly.

This is an internal module and should not be imported directly by users.
"""

import logging
import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_CACHE_TTL = 300.0  # seconds
DEFAULT_MAX_CACHE_ENTRIES = 100


@dataclass(frozen=True)
class CacheEntry:
    """A cached response.

    Attributes:
        signature: The request signature this entry answers.
        response: The cached response value.
        created_at: Clock reading when the entry was stored.
        expires_at: Clock reading after which the entry is stale.
    """

    signature: str
    response: Any
    created_at: float
    expires_at: float

    def is_fresh(self, now: float) -> bool:
        return now < self.expires_at


class RequestCache:
    """TTL cache with insertion-order eviction.

    Mutation is expected to happen from a single event loop; no locking is done.

    Attributes:
        ttl: Lifetime of an entry in seconds.
        max_entries: Maximum number of entries held at once.
    """

    def __init__(
        self,
        ttl: float = DEFAULT_CACHE_TTL,
        max_entries: int = DEFAULT_MAX_CACHE_ENTRIES,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the cache.

        Args:
            ttl: Lifetime of an entry in seconds (must be > 0).
            max_entries: Maximum number of entries (must be >= 1).
            clock: Monotonic clock returning seconds.

        Raises:
            ValueError: If ``ttl`` or ``max_entries`` is out of range.
        """
        if ttl <= 0:
            raise ValueError("Cache TTL must be positive")
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.ttl = ttl
        self.max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, signature: object) -> bool:
        return self.get_entry(signature) is not None  # type: ignore[arg-type]

    def get_entry(self, signature: str) -> CacheEntry | None:
        """Return the fresh entry for ``signature``, or None.

        An expired entry is removed and reported as a miss.
        """
        entry = self._entries.get(signature)
        if entry is None:
            return None
        if not entry.is_fresh(self._clock()):
            del self._entries[signature]
            logger.debug(f"Cache entry expired: {signature}")
            return None
        return entry

    def get(self, signature: str) -> Any | None:
        """Return the cached response for ``signature``, or None on a miss."""
        entry = self.get_entry(signature)
        if entry is None:
            return None
        return entry.response

    def set(self, signature: str, response: Any) -> CacheEntry:
        """Store ``response`` under ``signature``.

        Re-setting an existing signature replaces it and counts as a new
        insertion. Expired entries are purged first, then the oldest
        insertions are evicted until the cache fits.

        Returns:
            The stored entry.
        """
        now = self._clock()
        self._entries.pop(signature, None)
        entry = CacheEntry(
            signature=signature,
            response=response,
            created_at=now,
            expires_at=now + self.ttl,
        )
        self._entries[signature] = entry
        if len(self._entries) > self.max_entries:
            self.purge_expired()
        while len(self._entries) > self.max_entries:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug(f"Cache entry evicted: {evicted}")
        return entry

    def invalidate(self, signature: str) -> bool:
        """Remove the entry for ``signature``.

        Returns:
            True if an entry was removed.
        """
        return self._entries.pop(signature, None) is not None

    def clear(self) -> None:
        """Remove every entry."""
        self._entries.clear()

    def purge_expired(self) -> int:
        """Eagerly remove expired entries.

        Returns:
            The number of entries removed.
        """
        now = self._clock()
        stale = [sig for sig, entry in self._entries.items() if not entry.is_fresh(now)]
        for signature in stale:
            del self._entries[signature]
        return len(stale)
