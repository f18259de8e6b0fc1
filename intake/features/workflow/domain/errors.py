"""
Workflow error taxonomy.

Every error surfaced to callers of the workflow service derives from
WorkflowServiceError; the API layer maps each subclass to an HTTP status.
"""

from collections.abc import Iterable

from intake.models.domain.task_domain import TaskStatus, UserRole


class WorkflowServiceError(Exception):
    """Base exception for workflow service operations."""

    def __init__(self, message: str, recoverable: bool = True):
        super().__init__(message)
        self.message = message
        self.recoverable = recoverable


class NotFoundError(WorkflowServiceError):
    """A task, product, user or notification id did not resolve."""

    def __init__(self, resource: str, resource_id: str):
        super().__init__(f"{resource.capitalize()} not found", recoverable=False)
        self.resource = resource
        self.resource_id = resource_id


class InvalidTransitionError(WorkflowServiceError):
    """Requested status is not in the allowed set for the actor's role and current state."""

    def __init__(
        self,
        current_status: TaskStatus,
        attempted_status: TaskStatus,
        valid_transitions: Iterable[TaskStatus],
    ):
        super().__init__("Invalid status transition", recoverable=False)
        self.current_status = current_status
        self.attempted_status = attempted_status
        self.valid_transitions = list(valid_transitions)

    def to_payload(self) -> dict:
        return {
            "message": self.message,
            "currentStatus": self.current_status.value,
            "attemptedStatus": self.attempted_status.value,
            "validTransitions": [status.value for status in self.valid_transitions],
        }


class PermissionDeniedError(WorkflowServiceError):
    """Actor's role does not permit the requested operation."""

    def __init__(self, action: str, role: UserRole | None = None, message: str | None = None):
        super().__init__(message or "Insufficient permissions", recoverable=False)
        self.action = action
        self.role = role


class WorkflowValidationError(WorkflowServiceError):
    """Malformed creation or edit input, rejected before touching the store."""

    def __init__(self, message: str, errors: list[dict] | None = None):
        super().__init__(message, recoverable=False)
        self.errors = errors or []
