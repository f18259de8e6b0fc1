"""
Task workflow API response models.
Used by routes for output formatting.
"""

from pydantic import BaseModel, Field

from intake.models.domain.task_domain import Product, Task, TaskStatus


class CreateProductTaskResponse(BaseModel):
    """Response for a newly registered product and its task."""

    product: Product
    task: Task


class AvailableTransitionsResponse(BaseModel):
    """Statuses the caller may move the task to, in pipeline order."""

    task_id: str
    current_status: TaskStatus
    valid_transitions: list[TaskStatus] = Field(default_factory=list)


class MarkReadResponse(BaseModel):
    success: bool = True


class WebhookAckResponse(BaseModel):
    """Acknowledgement returned to Shopify after a webhook is processed."""

    received: bool = True
    topic: str | None = None
