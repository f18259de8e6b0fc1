"""
Task and product persistence.

All status-changing writes go through get_task_for_update inside a
transaction: the row lock is the single-writer-per-task serialization point.
"""

from collections.abc import Mapping
from contextlib import AbstractAsyncContextManager
from enum import Enum
from typing import Any

import psycopg
from psycopg import sql
from psycopg.types.json import Jsonb

from intake.db.helpers import fetch_all, fetch_one, with_db_retry
from intake.db.pool import db_pool
from intake.features.workflow.domain.dashboard import TaskSnapshotRow
from intake.infrastructure.observability.logging import get_logger
from intake.models.domain.task_domain import Product, Task, TaskStatus, TaskWithDetails

logger = get_logger(__name__)

TASK_COLUMNS = (
    "id",
    "product_id",
    "title",
    "status",
    "priority",
    "assigned_to",
    "created_by",
    "received_date",
    "assigned_at",
    "started_at",
    "completed_at",
    "published_at",
    "sla_deadline",
    "notes",
    "checklist",
    "lead_time_minutes",
    "cycle_time_minutes",
    "created_at",
    "updated_at",
)

PRODUCT_COLUMNS = (
    "id",
    "title",
    "description",
    "vendor",
    "order_number",
    "sku",
    "price",
    "category",
    "images",
    "metadata",
    "created_at",
    "updated_at",
)

# Columns a caller may write through apply_updates / update_product
WRITABLE_TASK_COLUMNS = frozenset(TASK_COLUMNS) - {"id", "product_id", "created_by", "created_at"}
WRITABLE_PRODUCT_COLUMNS = frozenset(PRODUCT_COLUMNS) - {"id", "created_at"}


def _column_list(columns, prefix: str | None = None) -> sql.Composable:
    if prefix:
        return sql.SQL(", ").join(sql.Identifier(prefix, col) for col in columns)
    return sql.SQL(", ").join(sql.Identifier(col) for col in columns)


def _adapt(value: Any) -> Any:
    """Convert domain values to psycopg parameters."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return Jsonb(value)
    return value


def _set_clause(fields: Mapping[str, Any], allowed: frozenset[str]) -> sql.Composable:
    unknown = set(fields) - allowed
    if unknown:
        raise ValueError(f"Columns not writable: {', '.join(sorted(unknown))}")
    return sql.SQL(", ").join(
        sql.SQL("{} = %s").format(sql.Identifier(col)) for col in fields
    )


_DETAILS_QUERY = sql.SQL(
    """
    SELECT {task_cols},
           to_jsonb(p) AS product,
           CASE WHEN a.id IS NULL THEN NULL ELSE to_jsonb(a) - 'password' END AS assignee,
           CASE WHEN c.id IS NULL THEN NULL ELSE to_jsonb(c) - 'password' END AS creator
    FROM tasks t
    JOIN products p ON p.id = t.product_id
    LEFT JOIN users a ON a.id = t.assigned_to
    LEFT JOIN users c ON c.id = t.created_by
    """
).format(task_cols=_column_list(TASK_COLUMNS, prefix="t"))


class TaskRepository:
    """SQL access for tasks and their products."""

    def transaction(self) -> AbstractAsyncContextManager[psycopg.AsyncConnection]:
        return db_pool.transaction()

    async def get_task_for_update(
        self, task_id: str, *, connection: psycopg.AsyncConnection
    ) -> Task | None:
        """Load a task and hold its row lock until the transaction ends."""
        query = sql.SQL("SELECT {} FROM tasks WHERE id = %s FOR UPDATE").format(
            _column_list(TASK_COLUMNS)
        )
        row = await fetch_one(query, (task_id,), connection=connection)
        return Task.model_validate(row) if row else None

    async def apply_updates(
        self, task_id: str, fields: Mapping[str, Any], *, connection: psycopg.AsyncConnection
    ) -> Task:
        query = sql.SQL("UPDATE tasks SET {} WHERE id = %s RETURNING {}").format(
            _set_clause(fields, WRITABLE_TASK_COLUMNS), _column_list(TASK_COLUMNS)
        )
        params = tuple(_adapt(value) for value in fields.values()) + (task_id,)
        row = await fetch_one(query, params, connection=connection)
        if row is None:
            raise RuntimeError(f"Task {task_id} disappeared while locked")

        logger.debug("Task row updated", task_id=task_id, columns=sorted(fields))
        return Task.model_validate(row)

    async def insert_product(
        self, fields: Mapping[str, Any], *, connection: psycopg.AsyncConnection
    ) -> Product:
        query = sql.SQL("INSERT INTO products ({}) VALUES ({}) RETURNING {}").format(
            _column_list(fields.keys()),
            sql.SQL(", ").join(sql.Placeholder() for _ in fields),
            _column_list(PRODUCT_COLUMNS),
        )
        row = await fetch_one(query, tuple(_adapt(v) for v in fields.values()), connection=connection)
        return Product.model_validate(row)

    async def insert_task(
        self, fields: Mapping[str, Any], *, connection: psycopg.AsyncConnection
    ) -> Task:
        query = sql.SQL("INSERT INTO tasks ({}) VALUES ({}) RETURNING {}").format(
            _column_list(fields.keys()),
            sql.SQL(", ").join(sql.Placeholder() for _ in fields),
            _column_list(TASK_COLUMNS),
        )
        row = await fetch_one(query, tuple(_adapt(v) for v in fields.values()), connection=connection)
        return Task.model_validate(row)

    async def get_product(
        self, product_id: str, *, connection: psycopg.AsyncConnection | None = None
    ) -> Product | None:
        query = sql.SQL("SELECT {} FROM products WHERE id = %s").format(
            _column_list(PRODUCT_COLUMNS)
        )
        row = await fetch_one(query, (product_id,), connection=connection)
        return Product.model_validate(row) if row else None

    async def update_product(
        self, product_id: str, fields: Mapping[str, Any], *, connection: psycopg.AsyncConnection
    ) -> Product:
        query = sql.SQL("UPDATE products SET {} WHERE id = %s RETURNING {}").format(
            _set_clause(fields, WRITABLE_PRODUCT_COLUMNS), _column_list(PRODUCT_COLUMNS)
        )
        params = tuple(_adapt(value) for value in fields.values()) + (product_id,)
        row = await fetch_one(query, params, connection=connection)
        if row is None:
            raise RuntimeError(f"Product {product_id} not found for update")
        return Product.model_validate(row)

    @with_db_retry(max_retries=3, base_delay=0.1)
    async def get_task(self, task_id: str) -> TaskWithDetails | None:
        query = _DETAILS_QUERY + sql.SQL(" WHERE t.id = %s")
        row = await fetch_one(query, (task_id,))
        return TaskWithDetails.model_validate(row) if row else None

    @with_db_retry(max_retries=3, base_delay=0.1)
    async def list_tasks(
        self,
        status: TaskStatus | None = None,
        assigned_to: str | None = None,
        created_by: str | None = None,
    ) -> list[TaskWithDetails]:
        """Tasks matching every given filter, newest first."""
        conditions: list[sql.Composable] = []
        params: list[Any] = []
        for column, value in (
            ("status", status),
            ("assigned_to", assigned_to),
            ("created_by", created_by),
        ):
            if value is not None:
                conditions.append(sql.SQL("{} = %s").format(sql.Identifier("t", column)))
                params.append(_adapt(value))

        query = _DETAILS_QUERY
        if conditions:
            query = query + sql.SQL(" WHERE ") + sql.SQL(" AND ").join(conditions)
        query = query + sql.SQL(" ORDER BY t.created_at DESC")

        rows = await fetch_all(query, tuple(params))
        return [TaskWithDetails.model_validate(row) for row in rows]

    @with_db_retry(max_retries=3, base_delay=0.1)
    async def fetch_dashboard_rows(self) -> list[TaskSnapshotRow]:
        """One statement, one snapshot: every task's status, deadline and completion."""
        rows = await fetch_all("SELECT status, sla_deadline, completed_at FROM tasks")
        return [
            TaskSnapshotRow(
                status=TaskStatus(row["status"]),
                sla_deadline=row["sla_deadline"],
                completed_at=row["completed_at"],
            )
            for row in rows
        ]


# Global singleton instance
task_repository = TaskRepository()
