"""
Status change notification planning.

plan_status_notification decides who should hear about a transition;
resolve_recipients turns role targets into user ids and drops the actor.
Delivery is the service's job.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

from intake.models.domain.task_domain import Task, TaskStatus, UserRole


@dataclass(slots=True, frozen=True)
class NotificationPlan:
    title: str
    message: str
    recipient_roles: tuple[UserRole, ...] = ()
    recipient_ids: tuple[str, ...] = field(default_factory=tuple)


@dataclass(slots=True, frozen=True)
class NotificationDraft:
    recipient_id: str
    task_id: str
    title: str
    message: str


def plan_status_notification(task: Task, new_status: TaskStatus) -> NotificationPlan | None:
    """Map (task, new status) to a notification plan, or None when nobody is notified."""
    if new_status == TaskStatus.TRIAGE:
        return NotificationPlan(
            title="New Task in Triage",
            message=f'Task "{task.title}" needs to be assigned',
            recipient_roles=(UserRole.WarehouseManager,),
        )

    if new_status == TaskStatus.READY_FOR_REVIEW:
        return NotificationPlan(
            title="Task Ready for Review",
            message=f'Task "{task.title}" is ready for quality review',
            recipient_roles=(UserRole.Auditor, UserRole.SuperAdmin),
        )

    if new_status == TaskStatus.PUBLISHED:
        recipients = tuple(uid for uid in (task.assigned_to, task.created_by) if uid)
        return NotificationPlan(
            title="Task Published",
            message=f'Task "{task.title}" has been published',
            recipient_ids=recipients,
        )

    return None


def resolve_recipients(
    plan: NotificationPlan,
    role_members: Mapping[UserRole, Iterable[str]],
    actor_id: str,
) -> list[str]:
    """Explicit ids then role members, deduplicated in order, never the actor."""
    candidates: list[str] = list(plan.recipient_ids)
    for role in plan.recipient_roles:
        candidates.extend(role_members.get(role, ()))

    seen: set[str] = set()
    recipients: list[str] = []
    for user_id in candidates:
        if user_id == actor_id or user_id in seen:
            continue
        seen.add(user_id)
        recipients.append(user_id)
    return recipients


def build_drafts(task: Task, plan: NotificationPlan, recipients: Iterable[str]) -> list[NotificationDraft]:
    return [
        NotificationDraft(
            recipient_id=recipient_id,
            task_id=task.id,
            title=plan.title,
            message=plan.message,
        )
        for recipient_id in recipients
    ]
