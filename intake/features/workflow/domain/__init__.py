"""
Domain subpackage for the task workflow feature.
"""

from .dashboard import TaskSnapshotRow, compute_dashboard_stats, start_of_day
from .errors import (
    InvalidTransitionError,
    NotFoundError,
    PermissionDeniedError,
    WorkflowServiceError,
    WorkflowValidationError,
)
from .metrics import compute_sla_deadline, derive_transition_fields
from .notifications import NotificationPlan, plan_status_notification, resolve_recipients
from .transitions import (
    TRANSITIONS,
    allowed_transitions,
    can_create_task,
    can_edit_task,
    can_view_audit_log,
    can_view_task,
    validate_transition,
)

__all__ = [
    "InvalidTransitionError",
    "NotFoundError",
    "NotificationPlan",
    "PermissionDeniedError",
    "TRANSITIONS",
    "TaskSnapshotRow",
    "WorkflowServiceError",
    "WorkflowValidationError",
    "allowed_transitions",
    "can_create_task",
    "can_edit_task",
    "can_view_audit_log",
    "can_view_task",
    "compute_dashboard_stats",
    "compute_sla_deadline",
    "derive_transition_fields",
    "plan_status_notification",
    "resolve_recipients",
    "start_of_day",
    "validate_transition",
]
