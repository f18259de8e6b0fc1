"""
Repository layer for the task workflow feature.
"""

from .notification_repository import NotificationRepository, notification_repository
from .task_repository import TaskRepository, task_repository

__all__ = [
    "NotificationRepository",
    "TaskRepository",
    "notification_repository",
    "task_repository",
]
