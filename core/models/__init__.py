"""Shared reference models."""

from core.models.refs import AuditEvent, AuditSeverity

__all__ = [
    "AuditEvent",
    "AuditSeverity",
]
