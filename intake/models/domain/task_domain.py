"""
Domain models for the product intake workflow.
Pydantic models that match the database schema for users, products, tasks
and notifications.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class TaskStatus(str, Enum):
    """Workflow states, declared in pipeline order."""

    NEW = "NEW"
    TRIAGE = "TRIAGE"
    ASSIGNED = "ASSIGNED"
    IN_PROGRESS = "IN_PROGRESS"
    READY_FOR_REVIEW = "READY_FOR_REVIEW"
    PUBLISHED = "PUBLISHED"
    QA_APPROVED = "QA_APPROVED"
    DONE = "DONE"


class UserRole(str, Enum):
    SuperAdmin = "SuperAdmin"
    WarehouseManager = "WarehouseManager"
    Editor = "Editor"
    Auditor = "Auditor"


class TaskPriority(str, Enum):
    high = "high"
    medium = "medium"
    low = "low"


# Statuses that count as finished for SLA and completion reporting
COMPLETED_STATUSES = frozenset({TaskStatus.DONE, TaskStatus.QA_APPROVED})


class User(BaseModel):
    """Workflow user. Only id and role matter to the state machine."""

    id: str
    username: str
    email: str
    role: UserRole = UserRole.Editor
    first_name: str | None = None
    last_name: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class Product(BaseModel):
    """Item being brought to market; owned 1:1 by its intake task."""

    id: str
    title: str
    description: str | None = None
    vendor: str
    order_number: str | None = None
    sku: str | None = None
    price: str | None = None
    category: str | None = None
    images: list[str] | None = None
    metadata: dict[str, Any] | None = None
    created_at: datetime
    updated_at: datetime


class Task(BaseModel):
    """Unit of work tracked through the intake pipeline."""

    id: str
    product_id: str
    title: str
    status: TaskStatus = TaskStatus.NEW
    priority: TaskPriority = TaskPriority.medium
    assigned_to: str | None = None
    created_by: str
    received_date: datetime

    # Write-once state entry timestamps
    assigned_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    published_at: datetime | None = None

    sla_deadline: datetime | None = None
    notes: str | None = None
    checklist: dict[str, Any] = Field(default_factory=dict)

    # Derived on entry to DONE
    lead_time_minutes: int | None = None
    cycle_time_minutes: int | None = None

    created_at: datetime
    updated_at: datetime


class TaskWithDetails(Task):
    """Task joined with its product, assignee and creator."""

    product: Product
    assignee: User | None = None
    creator: User | None = None


class Notification(BaseModel):
    """Polled in-app notification addressed to a single user."""

    id: str
    user_id: str
    task_id: str | None = None
    title: str
    message: str
    read: bool = False
    created_at: datetime


class DashboardStats(BaseModel):
    """Counts computed from a single snapshot of the task table."""

    model_config = ConfigDict(populate_by_name=True)

    total_tasks: int = Field(0, alias="totalTasks")
    pending_review: int = Field(0, alias="pendingReview")
    overdue_sla: int = Field(0, alias="overdueSLA")
    completed_today: int = Field(0, alias="completedToday")
    kanban_counts: dict[TaskStatus, int] = Field(default_factory=dict, alias="kanbanCounts")


def timestamps_are_ordered(task: Task) -> bool:
    """
    Check assigned_at <= started_at <= completed_at across whichever are set.

    Rework loops and SuperAdmin shortcuts make violations possible, so this
    is reported rather than enforced.
    """
    stamps = [ts for ts in (task.assigned_at, task.started_at, task.completed_at) if ts]
    return all(earlier <= later for earlier, later in zip(stamps, stamps[1:]))
