"""
Task workflow service.

Orchestrates the transition procedure: lock, validate, derive, apply and
audit inside one transaction, then notify and publish after commit. Every
collaborator is passed in explicitly so tests can swap in fakes.
"""

import time
from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from typing import Any

from intake.config import Settings
from intake.config import settings as default_settings
from intake.features.workflow.domain.dashboard import compute_dashboard_stats, start_of_day
from intake.features.workflow.domain.errors import (
    NotFoundError,
    PermissionDeniedError,
    WorkflowValidationError,
)
from intake.features.workflow.domain.metrics import compute_sla_deadline, derive_transition_fields
from intake.features.workflow.domain.notifications import (
    build_drafts,
    plan_status_notification,
    resolve_recipients,
)
from intake.features.workflow.domain.transitions import (
    can_create_task,
    can_edit_task,
    can_view_audit_log,
    can_view_task,
    ordered_transitions,
    validate_transition,
)
from intake.features.workflow.repository import (
    NotificationRepository,
    TaskRepository,
    notification_repository,
    task_repository,
)
from intake.infrastructure.audit import AuditRecorder, audit_recorder
from intake.infrastructure.observability.logging import get_logger, log_transition
from intake.models.domain.audit_domain import AuditLogEntry
from intake.models.domain.task_domain import (
    DashboardStats,
    Notification,
    Product,
    Task,
    TaskStatus,
    TaskWithDetails,
    User,
    UserRole,
    timestamps_are_ordered,
)
from intake.services.publishing import ShopifyPublisher, shopify_publisher
from intake.services.user_service import UserDirectory, user_directory

logger = get_logger(__name__)

# Fields the plain edit paths may touch. Status, timestamps and metrics only
# change through transitions.
EDITABLE_TASK_FIELDS = frozenset({"priority", "assigned_to", "notes", "checklist", "title"})
EDITABLE_PRODUCT_FIELDS = frozenset(
    {
        "title",
        "description",
        "vendor",
        "order_number",
        "sku",
        "price",
        "category",
        "images",
        "metadata",
    }
)
REQUIRED_PRODUCT_FIELDS = ("title", "vendor")
# Task columns that may be edited but never cleared.
NON_NULLABLE_TASK_FIELDS = ("priority", "checklist")


def utc_now() -> datetime:
    return datetime.now(UTC)


def _reject_unknown_fields(changes: Mapping[str, Any], allowed: frozenset[str]) -> None:
    unknown = sorted(set(changes) - allowed)
    if unknown:
        raise WorkflowValidationError(
            "Fields cannot be edited directly",
            errors=[{"field": name, "message": "not editable"} for name in unknown],
        )


def _blank_fields(data: Mapping[str, Any], names) -> list[dict]:
    return [
        {"field": name, "message": "required"}
        for name in names
        if not str(data.get(name) or "").strip()
    ]


class TaskWorkflowService:
    """Product intake workflow operations for an acting user."""

    def __init__(
        self,
        repository: TaskRepository,
        audit: AuditRecorder,
        notifications: NotificationRepository,
        directory: UserDirectory,
        publisher: ShopifyPublisher | None = None,
        clock: Callable[[], datetime] = utc_now,
        settings: Settings = default_settings,
    ):
        self.repository = repository
        self.audit = audit
        self.notifications = notifications
        self.directory = directory
        self.publisher = publisher
        self.clock = clock
        self.settings = settings

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def transition_task(self, task_id: str, target: TaskStatus, actor: User) -> Task:
        """
        Move a task to `target` on behalf of `actor`.

        The row lock, field updates and audit entry share one transaction; an
        audit failure rolls the whole transition back. Notifications and
        publishing happen after commit and never fail the call.

        Raises:
            NotFoundError: task does not exist
            InvalidTransitionError: target not allowed for actor's role
        """
        started = time.perf_counter()

        async with self.repository.transaction() as conn:
            task = await self.repository.get_task_for_update(task_id, connection=conn)
            if task is None:
                raise NotFoundError("task", task_id)

            previous_status = task.status
            validate_transition(previous_status, target, actor.role)

            now = self.clock()
            updates = derive_transition_fields(task, target, now)
            updated = await self.repository.apply_updates(task_id, updates, connection=conn)

            await self.audit.record_status_change(
                task_id=task_id,
                user_id=actor.id,
                from_status=previous_status,
                to_status=target,
                at=now,
                connection=conn,
            )

        log_transition(
            task_id=task_id,
            from_status=previous_status.value,
            to_status=target.value,
            user_id=actor.id,
            role=actor.role.value,
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
        )

        if target == TaskStatus.DONE and not timestamps_are_ordered(updated):
            logger.warning(
                "Task completed with out-of-order timestamps",
                task_id=task_id,
                assigned_at=updated.assigned_at,
                started_at=updated.started_at,
                completed_at=updated.completed_at,
            )

        await self._dispatch_notifications(updated, target, actor)

        if target == TaskStatus.PUBLISHED:
            await self._publish(updated)

        return updated

    async def get_available_transitions(self, task_id: str, actor: User) -> list[TaskStatus]:
        """Targets the actor could move this task to right now, pipeline ordered."""
        task = await self.get_task(task_id, actor)
        return ordered_transitions(task.status, actor.role)

    async def _dispatch_notifications(self, task: Task, new_status: TaskStatus, actor: User) -> int:
        """Create one notification per recipient; returns how many were stored."""
        plan = plan_status_notification(task, new_status)
        if plan is None:
            return 0

        try:
            role_members = await self.directory.get_role_members(plan.recipient_roles)
        except Exception as e:
            logger.error(
                "Failed to resolve notification recipients",
                task_id=task.id,
                status=new_status.value,
                error=str(e),
            )
            return 0

        recipients = resolve_recipients(plan, role_members, actor.id)
        delivered = 0
        for draft in build_drafts(task, plan, recipients):
            try:
                await self.notifications.create(draft)
                delivered += 1
            except Exception as e:
                logger.error(
                    "Failed to create notification",
                    task_id=task.id,
                    recipient_id=draft.recipient_id,
                    error=str(e),
                )

        logger.debug(
            "Notifications dispatched",
            task_id=task.id,
            status=new_status.value,
            recipients=len(recipients),
            delivered=delivered,
        )
        return delivered

    async def _publish(self, task: Task) -> None:
        if self.publisher is None:
            return

        try:
            product = await self.repository.get_product(task.product_id)
            if product is None:
                logger.warning("Published task has no product", task_id=task.id)
                return
            await self.publisher.publish_product(product)
        except Exception as e:
            logger.error(
                "Failed to publish product",
                task_id=task.id,
                product_id=task.product_id,
                error=str(e),
            )

    async def _require_user(self, user_id: str) -> User:
        user = await self.directory.get_user(user_id)
        if user is None:
            raise NotFoundError("user", user_id)
        return user

    # ------------------------------------------------------------------
    # Plain edits
    # ------------------------------------------------------------------

    async def update_task(self, task_id: str, changes: Mapping[str, Any], actor: User) -> Task:
        """Edit priority, assignee, notes, checklist or title. Not audited."""
        _reject_unknown_fields(changes, EDITABLE_TASK_FIELDS)
        if "title" in changes and not (changes["title"] or "").strip():
            raise WorkflowValidationError(
                "Title cannot be empty", errors=[{"field": "title", "message": "required"}]
            )
        cleared = [
            name for name in NON_NULLABLE_TASK_FIELDS if name in changes and changes[name] is None
        ]
        if cleared:
            raise WorkflowValidationError(
                "Fields cannot be cleared",
                errors=[{"field": name, "message": "cannot be null"} for name in cleared],
            )
        if changes.get("assigned_to") is not None:
            await self._require_user(changes["assigned_to"])

        async with self.repository.transaction() as conn:
            task = await self.repository.get_task_for_update(task_id, connection=conn)
            if task is None:
                raise NotFoundError("task", task_id)
            if not can_edit_task(actor.role, task.assigned_to, actor.id):
                raise PermissionDeniedError("edit_task", actor.role)

            if not changes:
                return task

            fields = {**changes, "updated_at": self.clock()}
            updated = await self.repository.apply_updates(task_id, fields, connection=conn)

        logger.info(
            "Task updated",
            task_id=task_id,
            user_id=actor.id,
            fields=sorted(changes),
        )
        return updated

    async def update_product(
        self, task_id: str, changes: Mapping[str, Any], actor: User
    ) -> Product:
        """Edit the product owned by a task under the task's edit permission."""
        _reject_unknown_fields(changes, EDITABLE_PRODUCT_FIELDS)
        errors = _blank_fields(changes, [name for name in REQUIRED_PRODUCT_FIELDS if name in changes])
        if errors:
            raise WorkflowValidationError("Required product fields cannot be empty", errors=errors)

        async with self.repository.transaction() as conn:
            task = await self.repository.get_task_for_update(task_id, connection=conn)
            if task is None:
                raise NotFoundError("task", task_id)
            if not can_edit_task(actor.role, task.assigned_to, actor.id):
                raise PermissionDeniedError("edit_product", actor.role)

            if not changes:
                product = await self.repository.get_product(task.product_id, connection=conn)
                if product is None:
                    raise NotFoundError("product", task.product_id)
                return product

            fields = {**changes, "updated_at": self.clock()}
            product = await self.repository.update_product(
                task.product_id, fields, connection=conn
            )

        logger.info(
            "Product updated",
            task_id=task_id,
            product_id=product.id,
            user_id=actor.id,
            fields=sorted(changes),
        )
        return product

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def create_task(
        self,
        product_data: Mapping[str, Any],
        task_data: Mapping[str, Any],
        actor: User,
    ) -> tuple[Product, Task]:
        """
        Create a product, its task and the TASK_CREATED audit entry atomically.

        The task starts in NEW. An initial assignee does not stamp
        assigned_at; that only happens on entry to ASSIGNED.
        """
        if not can_create_task(actor.role):
            raise PermissionDeniedError("create_task", actor.role)

        _reject_unknown_fields(product_data, EDITABLE_PRODUCT_FIELDS)
        errors = _blank_fields(product_data, REQUIRED_PRODUCT_FIELDS)
        if errors:
            raise WorkflowValidationError("Invalid product data", errors=errors)

        now = self.clock()
        received_date = task_data.get("received_date") or now

        task_fields: dict[str, Any] = {
            "title": product_data["title"],
            "status": TaskStatus.NEW,
            "created_by": actor.id,
            "received_date": received_date,
            "sla_deadline": compute_sla_deadline(received_date, self.settings.SLA_HOURS),
            "created_at": now,
            "updated_at": now,
        }
        for optional in ("priority", "assigned_to", "notes", "checklist"):
            if task_data.get(optional) is not None:
                task_fields[optional] = task_data[optional]
        if "assigned_to" in task_fields:
            await self._require_user(task_fields["assigned_to"])

        async with self.repository.transaction() as conn:
            product = await self.repository.insert_product(
                {**product_data, "created_at": now, "updated_at": now}, connection=conn
            )
            task = await self.repository.insert_task(
                {**task_fields, "product_id": product.id}, connection=conn
            )
            await self.audit.record_task_created(task, connection=conn)

        logger.info(
            "Task created",
            task_id=task.id,
            product_id=product.id,
            user_id=actor.id,
            assigned_to=task.assigned_to,
        )
        return product, task

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_task(self, task_id: str, actor: User) -> TaskWithDetails:
        task = await self.repository.get_task(task_id)
        if task is None:
            raise NotFoundError("task", task_id)
        if not can_view_task(actor.role, task.assigned_to, actor.id):
            raise PermissionDeniedError("view_task", actor.role)
        return task

    async def list_tasks(
        self,
        actor: User,
        status: TaskStatus | None = None,
        assigned_to: str | None = None,
    ) -> list[TaskWithDetails]:
        """Tasks visible to the actor. Editors only ever see their own assignments."""
        if actor.role == UserRole.Editor:
            assigned_to = actor.id
        return await self.repository.list_tasks(status=status, assigned_to=assigned_to)

    async def get_task_audit_log(self, task_id: str, actor: User) -> list[AuditLogEntry]:
        task = await self.repository.get_task(task_id)
        if task is None:
            raise NotFoundError("task", task_id)
        if not can_view_audit_log(actor.role):
            raise PermissionDeniedError("view_audit_log", actor.role)
        return await self.audit.get_task_audit_log(task_id)

    async def get_all_audit_logs(self, actor: User, limit: int | None = None) -> list[AuditLogEntry]:
        if not can_view_audit_log(actor.role):
            raise PermissionDeniedError("view_audit_log", actor.role)
        return await self.audit.get_all_audit_logs(limit or self.settings.AUDIT_LOG_LIMIT)

    async def compute_dashboard_stats(self) -> DashboardStats:
        rows = await self.repository.fetch_dashboard_rows()
        now = self.clock()
        return compute_dashboard_stats(
            rows, now, start_of_day(now, self.settings.DASHBOARD_TIMEZONE)
        )

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    async def get_user_notifications(
        self, actor: User, limit: int | None = None
    ) -> list[Notification]:
        return await self.notifications.list_for_user(
            actor.id, limit or self.settings.NOTIFICATION_LIMIT
        )

    async def mark_notification_read(self, notification_id: str, actor: User) -> None:
        notification = await self.notifications.get(notification_id)
        if notification is None:
            raise NotFoundError("notification", notification_id)
        if notification.user_id != actor.id:
            raise PermissionDeniedError(
                "mark_notification_read", actor.role, message="Cannot modify this notification"
            )
        await self.notifications.mark_read(notification_id)


# Global singleton instance
task_workflow_service = TaskWorkflowService(
    repository=task_repository,
    audit=audit_recorder,
    notifications=notification_repository,
    directory=user_directory,
    publisher=shopify_publisher,
)
