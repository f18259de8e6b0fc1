"""
Audit trail infrastructure.

Append-only record of task creation and status transitions, written in the
same transaction as the change it describes.
"""

from intake.infrastructure.audit.audit_logger import AuditRecorder, audit_recorder

__all__ = ["AuditRecorder", "audit_recorder"]
