"""Yard Fuel Data Models.

A yard dispense is one truck refueling event at a company yard
(DAR YARD, TANGA YARD, MMSA YARD). Dispenses start `pending` and are linked
to the truck's active fuel record as soon as one exists.

State machine:
    pending -> linked     (automatic, at creation or retroactively)
    pending -> manual     (operator links to an explicit fuel record)
    pending/linked/manual -> rejected   (operator, reason required)
"""

from datetime import date as date_type, datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class YardFuelStatus(str, Enum):
    PENDING = "pending"
    LINKED = "linked"
    MANUAL = "manual"
    REJECTED = "rejected"


class HistoryAction(str, Enum):
    CREATED = "created"
    LINKED = "linked"
    MANUAL_LINKED = "manual_linked"
    UPDATED = "updated"
    REJECTED = "rejected"
    DELETED = "deleted"


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class HistoryEntry(_CamelModel):
    """One state transition of a dispense."""
    action: HistoryAction
    performed_by: str
    timestamp: datetime
    details: Dict[str, Any] = Field(default_factory=dict)


class YardFuelDispense(_CamelModel):
    id: int
    date: date_type
    truck_no: str
    liters: float
    yard: str
    entered_by: str
    notes: Optional[str] = None

    status: YardFuelStatus = YardFuelStatus.PENDING
    linked_fuel_record_id: Optional[int] = None
    linked_do_number: Optional[str] = Field(default=None, alias="linkedDONumber")
    auto_linked: bool = False
    # Liters currently counted in the linked record's yard column
    applied_liters: float = 0
    linked_at: Optional[datetime] = None

    rejection_reason: Optional[str] = None
    rejected_by: Optional[str] = None
    rejected_at: Optional[datetime] = None
    rejection_resolved: bool = False
    rejection_resolved_at: Optional[datetime] = None
    rejection_resolved_by: Optional[str] = None

    is_deleted: bool = False
    deleted_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    history: List[HistoryEntry] = Field(default_factory=list)

    @property
    def is_linked(self) -> bool:
        return self.status in (YardFuelStatus.LINKED, YardFuelStatus.MANUAL)


class YardFuelCreate(_CamelModel):
    """Payload recorded by yard staff."""
    date: Optional[date_type] = None
    truck_no: str = Field(..., min_length=1)
    liters: float = Field(..., gt=0)
    yard: str = Field(..., min_length=1)
    notes: Optional[str] = None


class YardFuelUpdate(_CamelModel):
    date: Optional[date_type] = None
    liters: Optional[float] = Field(default=None, gt=0)
    notes: Optional[str] = None


class YardFuelReject(_CamelModel):
    reason: str = ""


class YardFuelManualLink(_CamelModel):
    fuel_record_id: int


class LinkPendingRequest(_CamelModel):
    fuel_record_id: int


class LinkSummary(_CamelModel):
    """Result of a retroactive link pass for one fuel record."""
    fuel_record_id: int
    truck_no: str
    linked_count: int = 0
    total_liters: float = 0
    dispense_ids: List[int] = Field(default_factory=list)


class YardSummary(_CamelModel):
    """Per-yard totals of non-deleted dispenses."""
    yard: str
    count: int = 0
    total_liters: float = 0
    pending_count: int = 0
    linked_count: int = 0
