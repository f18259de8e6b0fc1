import asyncio
import itertools
from contextlib import asynccontextmanager
from datetime import UTC, datetime, timedelta
from types import SimpleNamespace

import pytest

from intake.auth.verify import get_current_user
from intake.features.workflow.domain.dashboard import TaskSnapshotRow
from intake.features.workflow.services.task_service import TaskWorkflowService
from intake.models.domain.audit_domain import (
    STATUS_CHANGED,
    TASK_CREATED,
    AuditLogEntry,
    StatusChangedDetails,
    TaskCreatedDetails,
)
from intake.models.domain.task_domain import (
    Notification,
    Product,
    Task,
    TaskStatus,
    TaskWithDetails,
    User,
    UserRole,
)

T0 = datetime(2024, 3, 4, 9, 0, tzinfo=UTC)

_ids = itertools.count(1)


def next_id(prefix: str) -> str:
    return f"{prefix}-{next(_ids)}"


def make_user(role: UserRole, user_id: str | None = None) -> User:
    user_id = user_id or next_id(role.value.lower())
    return User(id=user_id, username=user_id, email=f"{user_id}@example.com", role=role)


class FakeClock:
    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class FakeTaskRepository:
    """In-memory stand-in for TaskRepository with rollback-on-error transactions."""

    def __init__(self, directory: "FakeUserDirectory"):
        self.directory = directory
        self.tasks: dict[str, Task] = {}
        self.products: dict[str, Product] = {}
        self.audit: "FakeAuditRecorder | None" = None
        self.commits = 0
        self._lock = asyncio.Lock()

    @asynccontextmanager
    async def transaction(self):
        async with self._lock:
            tasks = dict(self.tasks)
            products = dict(self.products)
            entries = list(self.audit.entries) if self.audit else []
            try:
                yield SimpleNamespace(name="fake-connection")
            except BaseException:
                self.tasks = tasks
                self.products = products
                if self.audit:
                    self.audit.entries = entries
                raise
            self.commits += 1

    async def get_task_for_update(self, task_id, *, connection):
        return self.tasks.get(task_id)

    async def apply_updates(self, task_id, fields, *, connection):
        task = self.tasks[task_id].model_copy(update=dict(fields))
        self.tasks[task_id] = task
        return task

    async def insert_product(self, fields, *, connection):
        product = Product(id=next_id("product"), **fields)
        self.products[product.id] = product
        return product

    async def insert_task(self, fields, *, connection):
        task = Task(id=next_id("task"), **fields)
        self.tasks[task.id] = task
        return task

    async def get_product(self, product_id, *, connection=None):
        return self.products.get(product_id)

    async def update_product(self, product_id, fields, *, connection):
        product = self.products[product_id].model_copy(update=dict(fields))
        self.products[product_id] = product
        return product

    def _details(self, task: Task) -> TaskWithDetails:
        return TaskWithDetails(
            **task.model_dump(),
            product=self.products[task.product_id],
            assignee=self.directory.users.get(task.assigned_to),
            creator=self.directory.users.get(task.created_by),
        )

    async def get_task(self, task_id):
        task = self.tasks.get(task_id)
        return self._details(task) if task else None

    async def list_tasks(self, status=None, assigned_to=None, created_by=None):
        matches = [
            task
            for task in self.tasks.values()
            if (status is None or task.status == status)
            and (assigned_to is None or task.assigned_to == assigned_to)
            and (created_by is None or task.created_by == created_by)
        ]
        matches.sort(key=lambda t: t.created_at, reverse=True)
        return [self._details(task) for task in matches]

    async def fetch_dashboard_rows(self):
        return [
            TaskSnapshotRow(
                status=task.status, sla_deadline=task.sla_deadline, completed_at=task.completed_at
            )
            for task in self.tasks.values()
        ]


class FakeAuditRecorder:
    def __init__(self):
        self.entries: list[AuditLogEntry] = []
        self.fail_writes = False

    def _append(self, **kwargs) -> AuditLogEntry:
        if self.fail_writes:
            raise RuntimeError("audit store unavailable")
        entry = AuditLogEntry(id=next_id("audit"), **kwargs)
        self.entries.append(entry)
        return entry

    async def record_task_created(self, task, *, connection):
        return self._append(
            task_id=task.id,
            user_id=task.created_by,
            action=TASK_CREATED,
            from_status=None,
            to_status=task.status,
            details=TaskCreatedDetails(task_id=task.id, title=task.title),
            timestamp=task.created_at,
        )

    async def record_status_change(self, task_id, user_id, from_status, to_status, at, *, connection):
        return self._append(
            task_id=task_id,
            user_id=user_id,
            action=STATUS_CHANGED,
            from_status=from_status,
            to_status=to_status,
            details=StatusChangedDetails(from_status=from_status, to_status=to_status),
            timestamp=at,
        )

    async def get_task_audit_log(self, task_id):
        entries = [e for e in self.entries if e.task_id == task_id]
        return list(reversed(entries))

    async def get_all_audit_logs(self, limit=500):
        return list(reversed(self.entries))[:limit]


class FakeNotificationRepository:
    def __init__(self):
        self.items: dict[str, Notification] = {}
        self.failing_recipients: set[str] = set()

    async def create(self, draft):
        if draft.recipient_id in self.failing_recipients:
            raise RuntimeError("notification insert failed")
        notification = Notification(
            id=next_id("notification"),
            user_id=draft.recipient_id,
            task_id=draft.task_id,
            title=draft.title,
            message=draft.message,
            created_at=T0,
        )
        self.items[notification.id] = notification
        return notification

    async def get(self, notification_id):
        return self.items.get(notification_id)

    async def list_for_user(self, user_id, limit=10):
        return [n for n in self.items.values() if n.user_id == user_id][:limit]

    async def mark_read(self, notification_id):
        notification = self.items.get(notification_id)
        if notification is None:
            return False
        self.items[notification_id] = notification.model_copy(update={"read": True})
        return True

    def for_user(self, user_id) -> list[Notification]:
        return [n for n in self.items.values() if n.user_id == user_id]


class FakeUserDirectory:
    def __init__(self):
        self.users: dict[str, User] = {}

    def add(self, role: UserRole, user_id: str | None = None) -> User:
        user = make_user(role, user_id)
        self.users[user.id] = user
        return user

    async def get_user(self, user_id):
        return self.users.get(user_id)

    async def get_role_members(self, roles):
        return {
            role: [u.id for u in self.users.values() if u.role == role] for role in roles
        }


class FakePublisher:
    def __init__(self):
        self.published: list[Product] = []
        self.error: Exception | None = None

    async def publish_product(self, product):
        if self.error:
            raise self.error
        self.published.append(product)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def workflow(clock):
    """Workflow service wired to in-memory fakes, plus a cast of users."""
    directory = FakeUserDirectory()
    repository = FakeTaskRepository(directory)
    audit = FakeAuditRecorder()
    repository.audit = audit
    notifications = FakeNotificationRepository()
    publisher = FakePublisher()

    service = TaskWorkflowService(
        repository=repository,
        audit=audit,
        notifications=notifications,
        directory=directory,
        publisher=publisher,
        clock=clock,
    )

    return SimpleNamespace(
        service=service,
        repository=repository,
        audit=audit,
        notifications=notifications,
        directory=directory,
        publisher=publisher,
        clock=clock,
        admin=directory.add(UserRole.SuperAdmin, "admin-1"),
        manager=directory.add(UserRole.WarehouseManager, "manager-1"),
        editor=directory.add(UserRole.Editor, "editor-1"),
        other_editor=directory.add(UserRole.Editor, "editor-2"),
        auditor=directory.add(UserRole.Auditor, "auditor-1"),
    )


@pytest.fixture
def create_task(workflow):
    """Create a product + task through the service as the given actor."""

    async def _create(actor=None, title="Walnut side table", **task_data):
        product, task = await workflow.service.create_task(
            {"title": title, "vendor": "Acme Furniture", "price": "129.00"},
            task_data,
            actor or workflow.manager,
        )
        return task

    return _create


@pytest.fixture
def set_status(workflow):
    """Force a task into a status without going through the state machine."""

    def _set(task_id: str, status: TaskStatus, **fields):
        task = workflow.repository.tasks[task_id]
        workflow.repository.tasks[task_id] = task.model_copy(update={"status": status, **fields})
        return workflow.repository.tasks[task_id]

    return _set


@pytest.fixture
def current_user_override():
    def _factory(user: User):
        async def _override():
            return user

        return _override

    return _factory


@pytest.fixture
def apply_user_override(current_user_override):
    def _apply(app, user: User):
        app.dependency_overrides[get_current_user] = current_user_override(user)

    return _apply
