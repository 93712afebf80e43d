"""Unit tests for condition utilities."""

from __future__ import annotations

from datetime import datetime, timezone

from nsx_operator.utils.conditions import (
    conditions_equal,
    format_time,
    get_condition,
    is_ready,
    merge_conditions,
    ready_condition,
    update_condition,
)


class TestConditions:
    """Test condition utilities."""

    def test_update_condition_new(self) -> None:
        """Test adding a new condition."""
        result = update_condition([], "Ready", "True", "TestReason", "Test message", observed_generation=1)

        assert len(result) == 1
        assert result[0]["type"] == "Ready"
        assert result[0]["status"] == "True"
        assert result[0]["reason"] == "TestReason"
        assert result[0]["message"] == "Test message"
        assert result[0]["observedGeneration"] == 1

    def test_update_condition_existing(self) -> None:
        """Test updating an existing condition replaces it in place."""
        conditions = [
            {
                "type": "Ready",
                "status": "False",
                "reason": "OldReason",
                "message": "Old message",
                "lastTransitionTime": "2023-01-01T00:00:00Z",
            }
        ]

        result = update_condition(conditions, "Ready", "True", "NewReason", "New message")

        assert len(result) == 1
        assert result[0]["status"] == "True"
        assert result[0]["reason"] == "NewReason"
        assert result[0]["lastTransitionTime"] != "2023-01-01T00:00:00Z"

    def test_merge_keeps_transition_time_when_status_unchanged(self) -> None:
        """Test lastTransitionTime only moves when the status flips."""
        existing = [ready_condition(True, "A", "a", "2023-01-01T00:00:00Z")]
        result = merge_conditions(existing, [ready_condition(True, "B", "b", "2024-01-01T00:00:00Z")])
        assert result[0]["lastTransitionTime"] == "2023-01-01T00:00:00Z"
        assert result[0]["reason"] == "B"

    def test_merge_does_not_mutate_input(self) -> None:
        """Test the existing list is left untouched."""
        existing = [ready_condition(False, "A", "a", "2023-01-01T00:00:00Z")]
        merge_conditions(existing, [ready_condition(True, "B", "b")])
        assert existing[0]["status"] == "False"

    def test_merge_appends_other_types(self) -> None:
        """Test conditions of other types are kept."""
        existing = [{"type": "Other", "status": "True"}]
        result = merge_conditions(existing, [ready_condition(True, "A", "a")])
        assert [c["type"] for c in result] == ["Other", "Ready"]

    def test_is_ready(self) -> None:
        """Test Ready detection."""
        assert is_ready({"status": {"conditions": [ready_condition(True, "A", "a")]}})
        assert not is_ready({"status": {"conditions": [ready_condition(False, "A", "a")]}})
        assert not is_ready({})

    def test_get_condition(self) -> None:
        """Test looking up a condition by type."""
        cond = ready_condition(True, "A", "a")
        assert get_condition([cond], "Ready") == cond
        assert get_condition([cond], "Missing") is None
        assert get_condition(None, "Ready") is None

    def test_conditions_equal_ignores_time(self) -> None:
        """Test comparison ignores lastTransitionTime."""
        left = [ready_condition(True, "A", "a", "2023-01-01T00:00:00Z")]
        right = [ready_condition(True, "A", "a", "2024-01-01T00:00:00Z")]
        assert conditions_equal(left, right)
        assert not conditions_equal(left, [ready_condition(False, "A", "a")])

    def test_format_time(self) -> None:
        """Test timestamps use the API server format in UTC."""
        moment = datetime(2024, 5, 6, 7, 8, 9, tzinfo=timezone.utc)
        assert format_time(moment) == "2024-05-06T07:08:09Z"
