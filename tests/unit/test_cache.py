"""Tests for cache utilities."""

from __future__ import annotations

from nsx_operator.utils.cache import TTLCache


class TestTTLCache:
    """Test cases for TTLCache."""

    def setup_method(self):
        """Create a cache driven by a fake clock."""
        self.now = [0.0]
        self.cache = TTLCache(30.0, clock=lambda: self.now[0])

    def test_set_and_get(self):
        """Test setting and getting a cached value."""
        self.cache.set("ns1", True)
        assert self.cache.get("ns1") is True

    def test_get_missing(self):
        """Test a missing key returns None."""
        assert self.cache.get("missing") is None

    def test_falsy_values_are_cached(self):
        """Test False is a cached verdict, not a miss."""
        self.cache.set("ns1", False)
        assert self.cache.get("ns1") is False

    def test_expiry(self):
        """Test entries expire after the TTL."""
        self.cache.set("ns1", True)
        self.now[0] = 30.0
        assert self.cache.get("ns1") is True
        self.now[0] = 30.1
        assert self.cache.get("ns1") is None
        assert len(self.cache) == 0

    def test_invalidate_one(self):
        """Test invalidating a single key."""
        self.cache.set("ns1", True)
        self.cache.set("ns2", True)
        self.cache.invalidate("ns1")
        assert self.cache.get("ns1") is None
        assert self.cache.get("ns2") is True

    def test_invalidate_all(self):
        """Test invalidating every key."""
        self.cache.set("ns1", True)
        self.cache.set("ns2", True)
        self.cache.invalidate()
        assert len(self.cache) == 0

    def test_invalidate_missing_key(self):
        """Test invalidating a missing key is a no-op."""
        self.cache.invalidate("missing")
        assert len(self.cache) == 0
