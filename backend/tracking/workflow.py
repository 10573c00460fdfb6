"""
Status machine and bookkeeping rules for record requests.

A request moves pending -> in_progress -> completed, and may be cancelled
from either open state. Completed and cancelled requests are terminal.
"""

from __future__ import annotations

import random
from datetime import datetime, timedelta, timezone
from typing import Any, Iterator, Optional

PENDING = "pending"
IN_PROGRESS = "in_progress"
COMPLETED = "completed"
CANCELLED = "cancelled"

ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    PENDING: frozenset({IN_PROGRESS, CANCELLED}),
    IN_PROGRESS: frozenset({COMPLETED, CANCELLED}),
    COMPLETED: frozenset(),
    CANCELLED: frozenset(),
}

OPEN_STATUSES = (PENDING, IN_PROGRESS)

DEFAULT_IN_PROGRESS = 10

_DUE_DAYS = {"high": 7, "medium": 14, "low": 21}

_ESTIMATES = {
    "complete_records": "5-10 business days",
    "lab_results": "1-3 business days",
    "medications": "2-3 business days",
    "procedures": "3-5 business days",
    "imaging": "3-5 business days",
    "visits": "2-4 business days",
}
DEFAULT_ESTIMATE = "3-7 business days"

# Timeline entry recorded for each status a request enters
_STATUS_EVENTS = {
    PENDING: ("Request Submitted", "Your request has been submitted and assigned tracking number {tracking_number}"),
    IN_PROGRESS: ("Processing Started", "Medical records department has begun processing your request"),
    COMPLETED: ("Request Completed", "Your records are ready for delivery"),
    CANCELLED: ("Request Cancelled", "This request was cancelled"),
}


class TransitionError(ValueError):
    """Raised when a status change is not allowed from the current status."""

    def __init__(self, current: str, requested: str) -> None:
        self.current = current
        self.requested = requested
        super().__init__(f"Cannot change status from {current} to {requested}.")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _format_ts(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def parse_timestamp(value: str) -> datetime:
    """Parse a stored ISO timestamp (with trailing Z) into an aware datetime."""
    dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def tracking_number_candidates(
    now: Optional[datetime] = None,
    max_attempts: int = 20,
) -> Iterator[str]:
    """Yield up to ``max_attempts`` ``REQ-<6 digits>-<year>`` candidates.

    The first takes its digits from the millisecond clock of ``now``; the
    rest are random, for when the store reports a collision.
    """
    now = now or _utcnow()
    yield f"REQ-{int(now.timestamp() * 1000) % 1000000:06d}-{now.year}"
    for _ in range(max_attempts - 1):
        yield f"REQ-{random.randint(0, 999999):06d}-{now.year}"


def due_date_for(priority: str, created_at: datetime) -> str:
    """Due date is 7, 14 or 21 days after creation for high, medium, low."""
    days = _DUE_DAYS.get(priority, _DUE_DAYS["medium"])
    return (created_at + timedelta(days=days)).date().isoformat()


def estimated_completion_for(request_type: str) -> str:
    return _ESTIMATES.get(request_type, DEFAULT_ESTIMATE)


def check_transition(current: str, requested: str) -> None:
    if requested not in ALLOWED_TRANSITIONS.get(current, frozenset()):
        raise TransitionError(current, requested)


def progress_for(status: str, current_progress: int, requested: Optional[int] = None) -> int:
    """Return the progress value a request should carry in ``status``."""
    if status == PENDING:
        return 0
    if status == COMPLETED:
        return 100
    if status == IN_PROGRESS:
        if requested is not None:
            return min(max(requested, 1), 99)
        if 1 <= current_progress <= 99:
            return current_progress
        return DEFAULT_IN_PROGRESS
    # cancelled keeps whatever progress was made
    return current_progress


def apply_transition(
    request: dict[str, Any],
    new_status: str,
    progress: Optional[int] = None,
    reason: Optional[str] = None,
    now: Optional[datetime] = None,
) -> dict[str, Any]:
    """Validate a status change and return the column updates it implies."""
    check_transition(request["status"], new_status)
    now = now or _utcnow()
    updates: dict[str, Any] = {
        "status": new_status,
        "progress": progress_for(new_status, request.get("progress") or 0, progress),
    }
    if new_status == COMPLETED:
        updates["completed_at"] = _format_ts(now)
    elif new_status == CANCELLED:
        updates["cancelled_at"] = _format_ts(now)
        updates["cancellation_reason"] = reason
    return updates


def status_event(status: str, tracking_number: str = "", reason: Optional[str] = None) -> tuple[str, str]:
    """Return (title, description) of the timeline entry for entering ``status``."""
    title, description = _STATUS_EVENTS[status]
    description = description.format(tracking_number=tracking_number)
    if status == CANCELLED and reason:
        description = f"{description}: {reason}"
    return title, description


def build_timeline(events: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Chronological timeline with the latest entry flagged as current."""
    timeline = []
    for i, event in enumerate(events):
        timeline.append({
            "id": event["id"],
            "status": event["event_type"],
            "title": event["title"],
            "description": event.get("description"),
            "timestamp": event["created_at"],
            "current": i == len(events) - 1,
        })
    return timeline


def compute_stats(rows: list[dict[str, Any]]) -> dict[str, Any]:
    """Summarise requests given their status, created_at and completed_at."""
    counts = {PENDING: 0, IN_PROGRESS: 0, COMPLETED: 0, CANCELLED: 0}
    durations: list[float] = []
    for row in rows:
        status = row["status"]
        counts[status] = counts.get(status, 0) + 1
        if status == COMPLETED and row.get("completed_at") and row.get("created_at"):
            delta = parse_timestamp(row["completed_at"]) - parse_timestamp(row["created_at"])
            durations.append(delta.total_seconds() / 86400)

    finished = counts[COMPLETED] + counts[CANCELLED]
    success_rate = round(counts[COMPLETED] / finished * 100, 1) if finished else 0.0
    avg_days = round(sum(durations) / len(durations), 1) if durations else None

    return {
        "total": len(rows),
        "pending": counts[PENDING],
        "in_progress": counts[IN_PROGRESS],
        "completed": counts[COMPLETED],
        "cancelled": counts[CANCELLED],
        "average_completion_days": avg_days,
        "success_rate": success_rate,
    }
