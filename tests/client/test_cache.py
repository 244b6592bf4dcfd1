"""Unit tests for the GET response cache (apiclient/_cache.py)."""

import pytest

from apiclient._cache import CacheEntry, RequestCache


class TestRequestCacheBasics:
    """Storage and lookup."""

    def test_miss_returns_none(self, fake_clock) -> None:
        cache = RequestCache(clock=fake_clock)
        assert cache.get("GET /users") is None

    def test_set_then_get(self, fake_clock) -> None:
        cache = RequestCache(clock=fake_clock)
        cache.set("GET /users", {"users": []})

        assert cache.get("GET /users") == {"users": []}
        assert "GET /users" in cache
        assert len(cache) == 1

    def test_set_returns_entry(self, fake_clock) -> None:
        """The entry records creation and expiry times."""
        cache = RequestCache(ttl=60.0, clock=fake_clock)
        entry = cache.set("GET /users", "payload")

        assert isinstance(entry, CacheEntry)
        assert entry.created_at == fake_clock.now
        assert entry.expires_at == fake_clock.now + 60.0

    @pytest.mark.parametrize("ttl, max_entries", [(0, 10), (-1, 10), (60, 0)])
    def test_invalid_configuration(self, ttl: float, max_entries: int) -> None:
        with pytest.raises(ValueError):
            RequestCache(ttl=ttl, max_entries=max_entries)


class TestRequestCacheExpiry:
    """TTL behaviour."""

    def test_fresh_before_ttl(self, fake_clock) -> None:
        cache = RequestCache(ttl=60.0, clock=fake_clock)
        cache.set("GET /a", 1)

        fake_clock.advance(59.9)

        assert cache.get("GET /a") == 1

    def test_expired_at_ttl(self, fake_clock) -> None:
        """Entries are visible only while now < expiry."""
        cache = RequestCache(ttl=60.0, clock=fake_clock)
        cache.set("GET /a", 1)

        fake_clock.advance(60.0)

        assert cache.get("GET /a") is None

    def test_expired_entry_is_removed_on_read(self, fake_clock) -> None:
        cache = RequestCache(ttl=10.0, clock=fake_clock)
        cache.set("GET /a", 1)
        fake_clock.advance(11)

        cache.get("GET /a")

        assert len(cache) == 0

    def test_purge_expired(self, fake_clock) -> None:
        cache = RequestCache(ttl=10.0, clock=fake_clock)
        cache.set("GET /old", 1)
        fake_clock.advance(5)
        cache.set("GET /new", 2)
        fake_clock.advance(6)

        removed = cache.purge_expired()

        assert removed == 1
        assert cache.get("GET /new") == 2
        assert "GET /old" not in cache

    def test_reset_refreshes_expiry(self, fake_clock) -> None:
        cache = RequestCache(ttl=10.0, clock=fake_clock)
        cache.set("GET /a", 1)
        fake_clock.advance(8)
        cache.set("GET /a", 2)
        fake_clock.advance(8)

        assert cache.get("GET /a") == 2


class TestRequestCacheEviction:
    """Bounded size with insertion-order eviction."""

    def test_oldest_insertion_evicted(self, fake_clock) -> None:
        cache = RequestCache(max_entries=2, clock=fake_clock)
        cache.set("GET /1", 1)
        cache.set("GET /2", 2)
        cache.set("GET /3", 3)

        assert len(cache) == 2
        assert cache.get("GET /1") is None
        assert cache.get("GET /2") == 2
        assert cache.get("GET /3") == 3

    def test_reads_do_not_affect_eviction_order(self, fake_clock) -> None:
        """Eviction is by insertion time, not access time."""
        cache = RequestCache(max_entries=2, clock=fake_clock)
        cache.set("GET /1", 1)
        cache.set("GET /2", 2)
        cache.get("GET /1")
        cache.set("GET /3", 3)

        assert cache.get("GET /1") is None
        assert cache.get("GET /2") == 2

    def test_reinsertion_counts_as_new(self, fake_clock) -> None:
        cache = RequestCache(max_entries=2, clock=fake_clock)
        cache.set("GET /1", 1)
        cache.set("GET /2", 2)
        cache.set("GET /1", 10)
        cache.set("GET /3", 3)

        assert cache.get("GET /2") is None
        assert cache.get("GET /1") == 10

    def test_expired_entries_go_before_live_ones(self, fake_clock) -> None:
        cache = RequestCache(ttl=10.0, max_entries=2, clock=fake_clock)
        cache.set("GET /1", 1)
        fake_clock.advance(5)
        cache.set("GET /2", 2)
        fake_clock.advance(6)  # /1 expired, /2 still fresh
        cache.set("GET /3", 3)

        assert cache.get("GET /2") == 2
        assert cache.get("GET /3") == 3


class TestRequestCacheInvalidation:
    """Explicit removal."""

    def test_invalidate(self, fake_clock) -> None:
        cache = RequestCache(clock=fake_clock)
        cache.set("GET /a", 1)

        assert cache.invalidate("GET /a") is True
        assert cache.get("GET /a") is None

    def test_invalidate_missing(self, fake_clock) -> None:
        cache = RequestCache(clock=fake_clock)
        assert cache.invalidate("GET /missing") is False

    def test_clear(self, fake_clock) -> None:
        cache = RequestCache(clock=fake_clock)
        cache.set("GET /a", 1)
        cache.set("GET /b", 2)

        cache.clear()

        assert len(cache) == 0
