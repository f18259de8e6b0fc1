"""
Task status state machine.

The legal moves are a fixed table keyed by (current status, role). Nothing
else participates in the decision: assignment ownership is an edit-permission
concern handled by can_edit_task, not by this table.
"""

from intake.features.workflow.domain.errors import InvalidTransitionError
from intake.models.domain.task_domain import TaskStatus, UserRole

S = TaskStatus
R = UserRole

TRANSITIONS: dict[TaskStatus, dict[UserRole, frozenset[TaskStatus]]] = {
    S.NEW: {
        R.SuperAdmin: frozenset({S.TRIAGE, S.ASSIGNED, S.DONE}),
        R.WarehouseManager: frozenset({S.TRIAGE, S.ASSIGNED}),
    },
    S.TRIAGE: {
        R.SuperAdmin: frozenset({S.ASSIGNED, S.NEW, S.DONE}),
        R.WarehouseManager: frozenset({S.ASSIGNED, S.NEW}),
    },
    S.ASSIGNED: {
        R.SuperAdmin: frozenset({S.IN_PROGRESS, S.TRIAGE, S.DONE}),
        R.WarehouseManager: frozenset({S.IN_PROGRESS, S.TRIAGE}),
        R.Editor: frozenset({S.IN_PROGRESS}),
    },
    S.IN_PROGRESS: {
        R.SuperAdmin: frozenset({S.READY_FOR_REVIEW, S.ASSIGNED, S.DONE}),
        R.WarehouseManager: frozenset({S.READY_FOR_REVIEW, S.ASSIGNED}),
        R.Editor: frozenset({S.READY_FOR_REVIEW, S.ASSIGNED}),
    },
    S.READY_FOR_REVIEW: {
        R.SuperAdmin: frozenset({S.PUBLISHED, S.IN_PROGRESS, S.QA_APPROVED}),
        R.WarehouseManager: frozenset({S.PUBLISHED, S.IN_PROGRESS}),
        # Auditors can send work back for changes
        R.Auditor: frozenset({S.IN_PROGRESS}),
    },
    S.PUBLISHED: {
        R.SuperAdmin: frozenset({S.QA_APPROVED, S.READY_FOR_REVIEW, S.DONE}),
        R.WarehouseManager: frozenset({S.QA_APPROVED}),
        R.Auditor: frozenset({S.QA_APPROVED, S.READY_FOR_REVIEW}),
    },
    S.QA_APPROVED: {
        R.SuperAdmin: frozenset({S.DONE, S.PUBLISHED}),
        R.Auditor: frozenset({S.DONE}),
    },
    # Terminal for every role
    S.DONE: {},
}

_PIPELINE_ORDER = {status: index for index, status in enumerate(TaskStatus)}

EDIT_ROLES = frozenset({R.SuperAdmin, R.WarehouseManager})
AUDIT_VIEW_ROLES = frozenset({R.SuperAdmin, R.Auditor})
CREATE_ROLES = frozenset({R.SuperAdmin, R.WarehouseManager, R.Editor})


def allowed_transitions(current: TaskStatus, role: UserRole) -> frozenset[TaskStatus]:
    """Return the exact set of states `role` may move a task to from `current`."""
    return TRANSITIONS.get(current, {}).get(role, frozenset())


def ordered_transitions(current: TaskStatus, role: UserRole) -> list[TaskStatus]:
    """Allowed targets sorted in pipeline order, for display."""
    return sorted(allowed_transitions(current, role), key=_PIPELINE_ORDER.__getitem__)


def is_transition_allowed(current: TaskStatus, target: TaskStatus, role: UserRole) -> bool:
    return target in allowed_transitions(current, role)


def validate_transition(current: TaskStatus, target: TaskStatus, role: UserRole) -> None:
    """
    Raise InvalidTransitionError unless `target` is reachable from `current` for `role`.

    The error carries the computed legal set so clients can offer valid moves.
    """
    if not is_transition_allowed(current, target, role):
        raise InvalidTransitionError(current, target, ordered_transitions(current, role))


def can_edit_task(role: UserRole, assigned_to: str | None, actor_id: str) -> bool:
    """Plain (non-status) edits: managers always, editors only on their own tasks."""
    if role in EDIT_ROLES:
        return True
    return role == R.Editor and assigned_to is not None and assigned_to == actor_id


def can_view_task(role: UserRole, assigned_to: str | None, actor_id: str) -> bool:
    if role == R.Editor:
        return assigned_to == actor_id
    return True


def can_view_audit_log(role: UserRole) -> bool:
    return role in AUDIT_VIEW_ROLES


def can_create_task(role: UserRole) -> bool:
    return role in CREATE_ROLES
