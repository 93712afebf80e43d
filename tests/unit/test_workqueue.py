"""Tests for the rate-limiting work queue."""

from __future__ import annotations

import threading
import time

from nsx_operator.workqueue import ItemExponentialFailureRateLimiter, RateLimitingQueue


class TestItemExponentialFailureRateLimiter:
    """Test cases for ItemExponentialFailureRateLimiter."""

    def test_delay_doubles(self):
        """Test each failure doubles the delay of that item."""
        limiter = ItemExponentialFailureRateLimiter(base_delay=1.0, max_delay=100.0)
        assert [limiter.when("a") for _ in range(4)] == [1.0, 2.0, 4.0, 8.0]
        assert limiter.when("b") == 1.0
        assert limiter.num_requeues("a") == 4

    def test_delay_capped(self):
        """Test the delay never exceeds max_delay, even after many failures."""
        limiter = ItemExponentialFailureRateLimiter(base_delay=1.0, max_delay=10.0)
        for _ in range(100):
            delay = limiter.when("a")
        assert delay == 10.0

    def test_forget_resets(self):
        """Test forget resets the failure count."""
        limiter = ItemExponentialFailureRateLimiter(base_delay=1.0)
        limiter.when("a")
        limiter.when("a")
        limiter.forget("a")
        assert limiter.when("a") == 1.0


class TestRateLimitingQueue:
    """Test cases for RateLimitingQueue."""

    def setup_method(self):
        """Create a queue."""
        self.queue = RateLimitingQueue(name="test")

    def teardown_method(self):
        """Stop background threads."""
        self.queue.shut_down()

    def test_add_deduplicates(self):
        """Test a key queued twice is handed out once."""
        self.queue.add("ns/a")
        self.queue.add("ns/a")
        assert len(self.queue) == 1

    def test_fifo_order(self):
        """Test keys come out in insertion order."""
        for key in ("ns/a", "ns/b", "ns/c"):
            self.queue.add(key)
        assert [self.queue.get(timeout=1)[0] for _ in range(3)] == ["ns/a", "ns/b", "ns/c"]

    def test_key_in_progress_is_not_handed_out_again(self):
        """Test a key re-added while processed waits until done."""
        self.queue.add("ns/a")
        item, _ = self.queue.get(timeout=1)
        self.queue.add("ns/a")

        assert len(self.queue) == 0
        assert self.queue.get(timeout=0.01) == (None, False)

        self.queue.done(item)
        assert self.queue.get(timeout=1) == ("ns/a", False)

    def test_done_without_readd(self):
        """Test done on a clean key does not requeue it."""
        self.queue.add("ns/a")
        item, _ = self.queue.get(timeout=1)
        self.queue.done(item)
        assert len(self.queue) == 0

    def test_shutdown_wakes_getters(self):
        """Test a blocked get returns on shutdown."""
        result = []
        thread = threading.Thread(target=lambda: result.append(self.queue.get()))
        thread.start()
        self.queue.shut_down()
        thread.join(5)
        assert result == [(None, True)]

    def test_add_after_shutdown_is_ignored(self):
        """Test adds after shutdown are dropped."""
        self.queue.shut_down()
        self.queue.add("ns/a")
        self.queue.add_after("ns/b", 0.01)
        assert len(self.queue) == 0

    def test_add_after_delays(self):
        """Test add_after queues the key once the delay elapsed."""
        self.queue.add_after("ns/a", 0.05)
        assert len(self.queue) == 0
        item, _ = self.queue.get(timeout=5)
        assert item == "ns/a"

    def test_add_after_zero_adds_now(self):
        """Test a non-positive delay adds immediately."""
        self.queue.add_after("ns/a", 0)
        assert len(self.queue) == 1

    def test_add_after_keeps_earliest(self):
        """Test a later add_after of a waiting key does not postpone it."""
        started = time.monotonic()
        self.queue.add_after("ns/a", 0.05)
        self.queue.add_after("ns/a", 30)
        item, _ = self.queue.get(timeout=5)
        assert item == "ns/a"
        assert time.monotonic() - started < 5

    def test_add_rate_limited_counts_requeues(self):
        """Test add_rate_limited records the failure and forget clears it."""
        queue = RateLimitingQueue(ItemExponentialFailureRateLimiter(base_delay=0.001), name="rl")
        queue.add_rate_limited("ns/a")
        assert queue.num_requeues("ns/a") == 1
        assert queue.get(timeout=5)[0] == "ns/a"
        queue.forget("ns/a")
        assert queue.num_requeues("ns/a") == 0
        queue.shut_down()
