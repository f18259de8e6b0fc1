"""
AuditRecorder - append-only workflow audit trail.

Every task creation and status transition writes one audit_log row inside the
caller's transaction. Unlike operational logging, an audit write failure is
NOT swallowed: it propagates so the surrounding transaction rolls back and a
committed transition can never be missing its entry.

Usage:
    from intake.infrastructure.audit import audit_recorder

    async with db_pool.transaction() as conn:
        ...
        await audit_recorder.record_status_change(
            task_id=task.id,
            user_id=actor.id,
            from_status=TaskStatus.NEW,
            to_status=TaskStatus.TRIAGE,
            at=now,
            connection=conn,
        )

Design Principles:
- Write to both database (immutable) and structured logs (searchable)
- Entries are never updated or deleted
- Reads are newest first
"""

from datetime import datetime

import psycopg
from psycopg.types.json import Jsonb

from intake.db.helpers import fetch_all, fetch_one
from intake.infrastructure.observability.logging import get_logger
from intake.models.domain.audit_domain import (
    STATUS_CHANGED,
    TASK_CREATED,
    AuditLogEntry,
    StatusChangedDetails,
    TaskCreatedDetails,
)
from intake.models.domain.task_domain import Task, TaskStatus

logger = get_logger(__name__)

_COLUMNS = "id, task_id, user_id, action, from_status, to_status, details, timestamp"


class AuditRecorder:
    """
    Audit trail writer and reader.

    Writes require an open transaction connection; reads go through the pool.
    """

    async def record_task_created(
        self, task: Task, *, connection: psycopg.AsyncConnection
    ) -> AuditLogEntry:
        """Append the TASK_CREATED entry for a freshly inserted task."""
        details = TaskCreatedDetails(task_id=task.id, title=task.title)
        return await self._append(
            task_id=task.id,
            user_id=task.created_by,
            action=TASK_CREATED,
            from_status=None,
            to_status=task.status,
            details=details,
            at=task.created_at,
            connection=connection,
        )

    async def record_status_change(
        self,
        task_id: str,
        user_id: str,
        from_status: TaskStatus,
        to_status: TaskStatus,
        at: datetime,
        *,
        connection: psycopg.AsyncConnection,
    ) -> AuditLogEntry:
        """Append the STATUS_CHANGED entry for a transition.

        `from_status` must be the status read under the row lock.
        """
        details = StatusChangedDetails(from_status=from_status, to_status=to_status)
        return await self._append(
            task_id=task_id,
            user_id=user_id,
            action=STATUS_CHANGED,
            from_status=from_status,
            to_status=to_status,
            details=details,
            at=at,
            connection=connection,
        )

    async def _append(
        self,
        *,
        task_id: str | None,
        user_id: str,
        action: str,
        from_status: TaskStatus | None,
        to_status: TaskStatus | None,
        details: TaskCreatedDetails | StatusChangedDetails,
        at: datetime,
        connection: psycopg.AsyncConnection,
    ) -> AuditLogEntry:
        logger.info(
            "Audit event",
            audit_action=action,
            task_id=task_id,
            user_id=user_id,
            from_status=from_status.value if from_status else None,
            to_status=to_status.value if to_status else None,
        )

        row = await fetch_one(
            f"""
            INSERT INTO audit_log (
                task_id, user_id, action, from_status, to_status, details, timestamp
            ) VALUES (%s, %s, %s, %s, %s, %s, %s)
            RETURNING {_COLUMNS}
            """,
            (
                task_id,
                user_id,
                action,
                from_status.value if from_status else None,
                to_status.value if to_status else None,
                Jsonb(details.model_dump(mode="json")),
                at,
            ),
            connection=connection,
        )
        if row is None:
            raise RuntimeError(f"Audit insert returned no row for action {action}")

        return AuditLogEntry.model_validate(row)

    async def get_task_audit_log(self, task_id: str) -> list[AuditLogEntry]:
        """Replay the trail for one task, newest first."""
        rows = await fetch_all(
            f"""
            SELECT {_COLUMNS}
            FROM audit_log
            WHERE task_id = %s
            ORDER BY timestamp DESC, id DESC
            """,
            (task_id,),
        )
        return [AuditLogEntry.model_validate(row) for row in rows]

    async def get_all_audit_logs(self, limit: int = 500) -> list[AuditLogEntry]:
        """Most recent entries across all tasks."""
        rows = await fetch_all(
            f"""
            SELECT {_COLUMNS}
            FROM audit_log
            ORDER BY timestamp DESC, id DESC
            LIMIT %s
            """,
            (limit,),
        )
        return [AuditLogEntry.model_validate(row) for row in rows]


# Global singleton instance
audit_recorder = AuditRecorder()
