"""
Task workflow API request models.
Used by routes for input validation.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from intake.models.domain.task_domain import TaskPriority, TaskStatus


class ProductInput(BaseModel):
    """Product fields supplied when registering a new item."""

    model_config = ConfigDict(extra="forbid")

    title: str = Field(..., min_length=1, max_length=500, description="Product title")
    vendor: str = Field(..., min_length=1, max_length=200, description="Vendor or supplier")
    description: str | None = Field(default=None, description="Product description")
    order_number: str | None = Field(default=None, description="Purchase order reference")
    sku: str | None = Field(default=None, max_length=100)
    price: str | None = Field(default=None, description="Price as entered, e.g. '19.99'")
    category: str | None = None
    images: list[str] | None = Field(default=None, description="Image URLs")
    metadata: dict[str, Any] | None = None


class TaskInput(BaseModel):
    """Optional task fields supplied alongside a new product."""

    model_config = ConfigDict(extra="forbid")

    priority: TaskPriority = TaskPriority.medium
    assigned_to: str | None = Field(default=None, description="Initial assignee user id")
    received_date: datetime | None = Field(
        default=None, description="When the item arrived (default: now)"
    )
    notes: str | None = None
    checklist: dict[str, Any] | None = None


class CreateProductTaskRequest(BaseModel):
    """Request for creating a product and its intake task."""

    product: ProductInput
    task: TaskInput = Field(default_factory=TaskInput)


class TaskUpdateRequest(BaseModel):
    """
    Plain task edit. Status, timestamps and metrics are not accepted here:
    they only change through status transitions.
    """

    model_config = ConfigDict(extra="forbid")

    title: str | None = Field(None, min_length=1, max_length=500)
    priority: TaskPriority | None = None
    assigned_to: str | None = None
    notes: str | None = None
    checklist: dict[str, Any] | None = None


class ProductUpdateRequest(BaseModel):
    """Plain edit of the product owned by a task."""

    model_config = ConfigDict(extra="forbid")

    title: str | None = Field(None, min_length=1, max_length=500)
    vendor: str | None = Field(None, min_length=1, max_length=200)
    description: str | None = None
    order_number: str | None = None
    sku: str | None = Field(None, max_length=100)
    price: str | None = None
    category: str | None = None
    images: list[str] | None = None
    metadata: dict[str, Any] | None = None


class StatusTransitionRequest(BaseModel):
    """Request for moving a task to another workflow state."""

    status: TaskStatus = Field(..., description="Target status")
