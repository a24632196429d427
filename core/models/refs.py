"""Audit models for tracking who changed what."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field


class AuditSeverity(str, Enum):
    """Severity levels for audit events."""
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"


class AuditEvent(BaseModel):
    """An audit event for tracking system actions.

    Every create/update/delete of a fuel record, LPO entry, yard dispense or
    checkpoint produces one event, as do reconciliation side effects.
    """
    event_id: str = Field(..., description="Unique event identifier")
    timestamp: datetime = Field(default_factory=datetime.utcnow, description="Event timestamp")
    event_type: str = Field(..., description="Type of event (CREATE, UPDATE, DELTA_APPLIED, ...)")
    severity: AuditSeverity = Field(default=AuditSeverity.INFO, description="Event severity")

    # Context
    resource_type: Optional[str] = Field(None, description="FuelRecord, LPOEntry, YardFuelDispense, ...")
    resource_id: Optional[str] = Field(None, description="Identifier of the affected resource")
    truck_no: Optional[str] = Field(None, description="Truck involved, if any")

    # Details
    message: str = Field(..., description="Human-readable message")
    previous_value: Optional[dict] = Field(None, description="State before the change")
    new_value: Optional[dict] = Field(None, description="State after the change")
    details: dict = Field(default_factory=dict, description="Additional event details")

    # Actor
    actor: str = Field(default="system", description="Who/what performed the action")
