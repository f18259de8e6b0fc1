"""
Dashboard aggregation over a single task snapshot.

Counts are recomputed on every read from the same list of rows, so the
kanban buckets always add up to the total.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, time
from zoneinfo import ZoneInfo

from intake.models.domain.task_domain import COMPLETED_STATUSES, DashboardStats, TaskStatus


@dataclass(slots=True, frozen=True)
class TaskSnapshotRow:
    """The three columns the dashboard needs from each task."""

    status: TaskStatus
    sla_deadline: datetime | None
    completed_at: datetime | None


def start_of_day(now: datetime, timezone_name: str) -> datetime:
    """Local midnight of `now`'s date in the given IANA timezone."""
    tz = ZoneInfo(timezone_name)
    local_now = now.astimezone(tz)
    return datetime.combine(local_now.date(), time.min, tzinfo=tz)


def compute_dashboard_stats(
    rows: Iterable[TaskSnapshotRow],
    now: datetime,
    day_start: datetime,
) -> DashboardStats:
    kanban_counts = {status: 0 for status in TaskStatus}
    total = pending_review = overdue = completed_today = 0

    for row in rows:
        total += 1
        kanban_counts[row.status] += 1

        if row.status == TaskStatus.READY_FOR_REVIEW:
            pending_review += 1

        finished = row.status in COMPLETED_STATUSES
        if row.sla_deadline is not None and row.sla_deadline < now and not finished:
            overdue += 1
        if finished and row.completed_at is not None and row.completed_at >= day_start:
            completed_today += 1

    return DashboardStats(
        total_tasks=total,
        pending_review=pending_review,
        overdue_sla=overdue,
        completed_today=completed_today,
        kanban_counts=kanban_counts,
    )
