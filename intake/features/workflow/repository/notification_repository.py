"""
Notification persistence. Notifications are polled by clients; the only
mutation after creation is the read flag.
"""

from intake.db.helpers import execute_query, fetch_all, fetch_one, with_db_retry
from intake.features.workflow.domain.notifications import NotificationDraft
from intake.models.domain.task_domain import Notification

_COLUMNS = "id, user_id, task_id, title, message, read, created_at"


class NotificationRepository:
    async def create(self, draft: NotificationDraft) -> Notification:
        row = await fetch_one(
            f"""
            INSERT INTO notifications (user_id, task_id, title, message)
            VALUES (%s, %s, %s, %s)
            RETURNING {_COLUMNS}
            """,
            (draft.recipient_id, draft.task_id, draft.title, draft.message),
        )
        return Notification.model_validate(row)

    @with_db_retry(max_retries=3, base_delay=0.1)
    async def get(self, notification_id: str) -> Notification | None:
        row = await fetch_one(
            f"SELECT {_COLUMNS} FROM notifications WHERE id = %s", (notification_id,)
        )
        return Notification.model_validate(row) if row else None

    @with_db_retry(max_retries=3, base_delay=0.1)
    async def list_for_user(self, user_id: str, limit: int = 10) -> list[Notification]:
        rows = await fetch_all(
            f"""
            SELECT {_COLUMNS}
            FROM notifications
            WHERE user_id = %s
            ORDER BY created_at DESC
            LIMIT %s
            """,
            (user_id, limit),
        )
        return [Notification.model_validate(row) for row in rows]

    async def mark_read(self, notification_id: str) -> bool:
        affected = await execute_query(
            "UPDATE notifications SET read = TRUE WHERE id = %s", (notification_id,)
        )
        return affected > 0


# Global singleton instance
notification_repository = NotificationRepository()
