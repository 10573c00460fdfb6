"""Tests for the record request status machine and bookkeeping rules."""

from datetime import datetime, timezone
from unittest.mock import patch

import pytest

from tracking import workflow
from tracking.workflow import (
    TransitionError,
    apply_transition,
    build_timeline,
    check_transition,
    compute_stats,
    due_date_for,
    estimated_completion_for,
    progress_for,
    status_event,
    tracking_number_candidates,
)

NOW = datetime(2025, 3, 10, 12, 0, tzinfo=timezone.utc)


class TestTransitions:
    @pytest.mark.parametrize("current,new", [
        ("pending", "in_progress"),
        ("pending", "cancelled"),
        ("in_progress", "completed"),
        ("in_progress", "cancelled"),
    ])
    def test_allowed(self, current, new):
        check_transition(current, new)

    @pytest.mark.parametrize("current,new", [
        ("pending", "completed"),
        ("in_progress", "pending"),
        ("completed", "in_progress"),
        ("completed", "cancelled"),
        ("cancelled", "pending"),
        ("cancelled", "in_progress"),
    ])
    def test_rejected(self, current, new):
        with pytest.raises(TransitionError) as exc_info:
            check_transition(current, new)
        assert exc_info.value.current == current
        assert exc_info.value.requested == new

    def test_apply_complete_sets_timestamp_and_progress(self):
        updates = apply_transition({"status": "in_progress", "progress": 40}, "completed", now=NOW)
        assert updates == {"status": "completed", "progress": 100, "completed_at": "2025-03-10T12:00:00Z"}

    def test_apply_cancel_keeps_progress(self):
        updates = apply_transition({"status": "in_progress", "progress": 40}, "cancelled", reason="Moved", now=NOW)
        assert updates["progress"] == 40
        assert updates["cancelled_at"] == "2025-03-10T12:00:00Z"
        assert updates["cancellation_reason"] == "Moved"


class TestProgress:
    def test_pending_is_zero(self):
        assert progress_for("pending", 50) == 0

    def test_completed_is_hundred(self):
        assert progress_for("completed", 10) == 100

    def test_in_progress_default(self):
        assert progress_for("in_progress", 0) == 10

    def test_in_progress_clamped(self):
        assert progress_for("in_progress", 0, 0) == 1
        assert progress_for("in_progress", 0, 100) == 99
        assert progress_for("in_progress", 0, 55) == 55

    def test_in_progress_keeps_current(self):
        assert progress_for("in_progress", 30) == 30


class TestDatesAndEstimates:
    def test_due_dates(self):
        assert due_date_for("high", NOW) == "2025-03-17"
        assert due_date_for("medium", NOW) == "2025-03-24"
        assert due_date_for("low", NOW) == "2025-03-31"

    def test_estimates(self):
        assert estimated_completion_for("complete_records") == "5-10 business days"
        assert estimated_completion_for("lab_results") == "1-3 business days"
        assert estimated_completion_for("something_else") == "3-7 business days"


class TestTrackingNumber:
    def test_format(self):
        number = next(tracking_number_candidates(now=NOW))
        prefix, digits, year = number.split("-")
        assert prefix == "REQ"
        assert len(digits) == 6 and digits.isdigit()
        assert year == "2025"

    def test_digits_follow_clock(self):
        now = datetime(2025, 3, 10, 12, 0, 0, 123000, tzinfo=timezone.utc)
        assert next(tracking_number_candidates(now=now)) == "REQ-000123-2025"

    def test_fallbacks_are_random(self):
        with patch.object(workflow.random, "randint", return_value=42):
            candidates = list(tracking_number_candidates(now=NOW, max_attempts=3))
        assert candidates[1:] == ["REQ-000042-2025", "REQ-000042-2025"]

    def test_bounded(self):
        assert len(list(tracking_number_candidates(now=NOW, max_attempts=3))) == 3


class TestTimelineAndStats:
    def test_last_event_is_current(self):
        events = [
            {"id": 1, "event_type": "created", "title": "Request Submitted", "created_at": "2025-01-01T00:00:00Z"},
            {"id": 2, "event_type": "in_progress", "title": "Processing Started", "created_at": "2025-01-02T00:00:00Z"},
        ]
        timeline = build_timeline(events)
        assert [t["current"] for t in timeline] == [False, True]
        assert timeline[1]["status"] == "in_progress"

    def test_empty_timeline(self):
        assert build_timeline([]) == []

    def test_status_event_text(self):
        title, description = status_event("pending", "REQ-123456-2025")
        assert title == "Request Submitted"
        assert "REQ-123456-2025" in description
        _, description = status_event("cancelled", reason="No longer needed")
        assert description.endswith("No longer needed")

    def test_stats(self):
        rows = [
            {"status": "pending", "created_at": "2025-01-01T00:00:00Z", "completed_at": None},
            {"status": "completed", "created_at": "2025-01-01T00:00:00Z", "completed_at": "2025-01-03T00:00:00Z"},
            {"status": "completed", "created_at": "2025-01-01T00:00:00Z", "completed_at": "2025-01-05T00:00:00Z"},
            {"status": "cancelled", "created_at": "2025-01-01T00:00:00Z", "completed_at": None},
        ]
        stats = compute_stats(rows)
        assert stats["total"] == 4
        assert stats["completed"] == 2
        assert stats["average_completion_days"] == 3.0
        assert stats["success_rate"] == 66.7

    def test_stats_empty(self):
        stats = compute_stats([])
        assert stats["average_completion_days"] is None
        assert stats["success_rate"] == 0.0
