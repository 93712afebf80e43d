"""Tests for garbage collection and the scheduled task runner."""

from __future__ import annotations

import threading
from unittest.mock import MagicMock

import pytest

from nsx_operator.gc import ScheduledTask, collect_garbage
from nsx_operator.utils.context import ReconcileContext
from nsx_operator.utils.errors import BackendUnavailableError, GarbageCollectionError, ReconcileCancelled


class TestCollectGarbage:
    """Test cases for collect_garbage."""

    def setup_method(self):
        """Create a mocked resource service."""
        self.service = MagicMock()
        self.service.list_tracked_ids.return_value = {"1234", "2345"}

    def test_deletes_only_orphans(self):
        """Test only tracked UIDs without a live CR are deleted."""
        deleted = collect_garbage("ipaddressallocation", self.service, lambda: {"1234"})

        assert deleted == {"2345"}
        self.service.delete.assert_called_once()
        assert self.service.delete.call_args[0][0] == "2345"

    def test_nothing_tracked_skips_live_list(self):
        """Test the live list is not read when nothing is tracked."""
        self.service.list_tracked_ids.return_value = set()
        list_live = MagicMock()

        assert collect_garbage("ipaddressallocation", self.service, list_live) == set()
        list_live.assert_not_called()
        self.service.delete.assert_not_called()

    def test_store_read_before_live_list(self):
        """Test tracked IDs are read before the live CR list."""
        order = []
        self.service.list_tracked_ids.side_effect = lambda: order.append("tracked") or {"1234"}

        def list_live():
            order.append("live")
            return {"1234"}

        collect_garbage("ipaddressallocation", self.service, list_live)
        assert order == ["tracked", "live"]

    def test_errors_are_aggregated(self):
        """Test every orphan is attempted and failures are reported together."""
        self.service.list_tracked_ids.return_value = {"a", "b", "c"}
        self.service.delete.side_effect = [BackendUnavailableError("503"), None, BackendUnavailableError("timeout")]

        with pytest.raises(GarbageCollectionError) as exc_info:
            collect_garbage("ipaddressallocation", self.service, set)

        assert self.service.delete.call_count == 3
        assert len(exc_info.value.errors) == 2
        assert "ipaddressallocation" in str(exc_info.value)

    def test_cancelled_context_stops(self):
        """Test a cancelled context aborts collection."""
        ctx = ReconcileContext()
        ctx.cancel()
        with pytest.raises(ReconcileCancelled):
            collect_garbage("ipaddressallocation", self.service, set, ctx)
        self.service.delete.assert_not_called()


class TestScheduledTask:
    """Test cases for ScheduledTask."""

    def test_run_once_calls_fn(self):
        """Test run_once passes the task context to the function."""
        fn = MagicMock()
        task = ScheduledTask("gc", 60, fn)

        assert task.run_once() is True
        fn.assert_called_once()
        assert isinstance(fn.call_args[0][0], ReconcileContext)

    def test_run_once_is_single_flight(self):
        """Test a run started while another is in progress is skipped."""
        entered = threading.Event()
        release = threading.Event()
        calls = []

        def slow(ctx):
            calls.append(1)
            entered.set()
            release.wait(5)

        task = ScheduledTask("gc", 60, slow)
        thread = threading.Thread(target=task.run_once)
        thread.start()
        assert entered.wait(5)

        assert task.run_once() is False
        release.set()
        thread.join(5)
        assert calls == [1]

    def test_errors_do_not_propagate(self):
        """Test a failing run is logged and the task stays usable."""
        fn = MagicMock(side_effect=[RuntimeError("boom"), None])
        task = ScheduledTask("gc", 60, fn)

        assert task.run_once() is True
        assert task.run_once() is True
        assert fn.call_count == 2

    def test_start_and_stop(self):
        """Test the background loop runs and stops."""
        ran = threading.Event()
        task = ScheduledTask("gc", 0.01, lambda ctx: ran.set())

        task.start()
        assert task.running
        assert ran.wait(5)
        task.stop(timeout=5)
        assert not task.running
