"""
Field updates derived from a status transition.

Pure functions of (task snapshot, target status, now). State entry timestamps
are write-once so rework loops that re-enter a state keep the first stamp.
"""

from datetime import datetime, timedelta
from typing import Any

from intake.models.domain.task_domain import Task, TaskStatus

# State -> timestamp column stamped on first entry
ENTRY_TIMESTAMPS: dict[TaskStatus, str] = {
    TaskStatus.ASSIGNED: "assigned_at",
    TaskStatus.IN_PROGRESS: "started_at",
    TaskStatus.PUBLISHED: "published_at",
    TaskStatus.DONE: "completed_at",
}


def elapsed_minutes(start: datetime, end: datetime) -> int:
    """Whole minutes between two instants, floored."""
    return int((end - start) // timedelta(minutes=1))


def derive_transition_fields(task: Task, target: TaskStatus, now: datetime) -> dict[str, Any]:
    """
    Compute the column updates for moving `task` to `target` at `now`.

    Returns:
        dict of column -> value, always including status and updated_at
    """
    updates: dict[str, Any] = {"status": target, "updated_at": now}

    stamp_field = ENTRY_TIMESTAMPS.get(target)
    if stamp_field and getattr(task, stamp_field) is None:
        updates[stamp_field] = now

    if target == TaskStatus.DONE:
        if task.assigned_at is not None and task.lead_time_minutes is None:
            updates["lead_time_minutes"] = elapsed_minutes(task.assigned_at, now)
        if task.started_at is not None and task.cycle_time_minutes is None:
            updates["cycle_time_minutes"] = elapsed_minutes(task.started_at, now)

    return updates


def compute_sla_deadline(received_date: datetime, sla_hours: int) -> datetime:
    return received_date + timedelta(hours=sla_hours)
