"""
Audit trail domain models.

Details payloads are a discriminated union keyed on the action name so every
entry carries a typed shape instead of an open JSON blob.
"""

from datetime import datetime
from typing import Annotated, Literal

from pydantic import BaseModel, Field

from intake.models.domain.task_domain import TaskStatus

TASK_CREATED = "TASK_CREATED"
STATUS_CHANGED = "STATUS_CHANGED"

AuditAction = Literal["TASK_CREATED", "STATUS_CHANGED"]


class TaskCreatedDetails(BaseModel):
    action: Literal["TASK_CREATED"] = TASK_CREATED
    task_id: str
    title: str


class StatusChangedDetails(BaseModel):
    action: Literal["STATUS_CHANGED"] = STATUS_CHANGED
    from_status: TaskStatus
    to_status: TaskStatus


AuditDetails = Annotated[
    TaskCreatedDetails | StatusChangedDetails,
    Field(discriminator="action"),
]


class AuditLogEntry(BaseModel):
    """Immutable record of a task creation or status change."""

    id: str
    task_id: str | None = None
    user_id: str
    action: AuditAction
    from_status: TaskStatus | None = None
    to_status: TaskStatus | None = None
    details: AuditDetails | None = None
    timestamp: datetime
