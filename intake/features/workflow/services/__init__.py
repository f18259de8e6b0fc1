"""
Service layer for the task workflow feature.
"""

from .task_service import TaskWorkflowService, task_workflow_service

__all__ = [
    "TaskWorkflowService",
    "task_workflow_service",
]
