"""LPO Data Models.

An LPO (local purchase order) authorizes fuel for one or more trucks at a
single station. The LPO summary is the document header; each truck line is
an LPO entry. Entries are stored once and shared by the summary view and
the flat entry list.

Each entry remembers where its liters landed (`fuel_record_id`,
`fuel_field`, `applied_liters`) so later edits, cancellations and deletes
adjust exactly that column.
"""

from datetime import date as date_type, datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from core.normalize import normalize_truck_no


class ReconciliationStatus(str, Enum):
    """Where an entry stands against the fuel records."""
    NONE = "none"                        # cancelled / driver account / zero liters
    APPLIED = "applied"
    PENDING = "pending"                  # no fuel record found yet
    JOURNEY_COMPLETE = "journey_complete"
    UNKNOWN_STATION = "unknown_station"


class DriverAccountStatus(str, Enum):
    PENDING = "pending"
    SETTLED = "settled"
    CANCELLED = "cancelled"


DEFAULT_CANCELLATION_POINT = "DAR_GOING"


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class LPOEntry(_CamelModel):
    id: int
    lpo_no: str
    date: date_type
    station: str
    do_no: str
    truck_no: str
    liters: float
    rate: float = 0
    amount: float = 0
    dest: Optional[str] = None

    is_cancelled: bool = False
    cancelled_at: Optional[datetime] = None
    cancellation_point: Optional[str] = None
    is_driver_account: bool = False
    original_do_no: Optional[str] = None

    original_liters: Optional[float] = None
    amended_at: Optional[datetime] = None

    fuel_record_id: Optional[int] = None
    fuel_field: Optional[str] = None
    applied_liters: float = 0
    reconciliation_status: ReconciliationStatus = ReconciliationStatus.NONE

    is_deleted: bool = False
    deleted_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def key(self) -> str:
        return entry_key(self.do_no, self.truck_no)

    @property
    def target_liters(self) -> float:
        """Liters this entry should currently have applied to its fuel record."""
        if self.is_deleted or self.is_cancelled or self.is_driver_account:
            return 0
        return self.liters


def entry_key(do_no: str, truck_no: str) -> str:
    """Key used to pair old and new lines of an LPO, e.g. "DO123-T100ABC"."""
    return f"{(do_no or '').strip()}-{normalize_truck_no(truck_no)}"


class LPOLine(_CamelModel):
    """One truck line of an LPO as submitted by the fuel office."""
    do_no: str = Field(..., min_length=1)
    truck_no: str = Field(..., min_length=1)
    liters: float = Field(..., ge=0)
    rate: float = Field(default=0, ge=0)
    amount: Optional[float] = None
    dest: Optional[str] = None
    is_cancelled: bool = False
    is_driver_account: bool = False
    cancellation_point: Optional[str] = None
    original_do_no: Optional[str] = None

    @model_validator(mode="after")
    def _default_amount(self):
        if self.amount is None:
            self.amount = round(self.liters * self.rate, 2)
        return self

    @property
    def key(self) -> str:
        return entry_key(self.do_no, self.truck_no)


class LPOEntryCreate(LPOLine):
    """Standalone LPO entry (flat list view)."""
    lpo_no: str = Field(..., min_length=1)
    date: date_type
    station: str = Field(..., min_length=1)


class LPOEntryUpdate(_CamelModel):
    date: Optional[date_type] = None
    liters: Optional[float] = Field(default=None, ge=0)
    rate: Optional[float] = Field(default=None, ge=0)
    amount: Optional[float] = None
    dest: Optional[str] = None


class LPOSummary(_CamelModel):
    id: int
    lpo_no: str
    date: date_type
    year: int
    station: str
    order_of: Optional[str] = None
    total: float = 0
    created_by: Optional[str] = None
    is_deleted: bool = False
    deleted_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    entries: List[LPOEntry] = Field(default_factory=list)


class LPOSummaryCreate(_CamelModel):
    lpo_no: Optional[str] = None  # next free number when omitted
    date: date_type
    station: str = Field(..., min_length=1)
    order_of: Optional[str] = None
    entries: List[LPOLine] = Field(default_factory=list)


class LPOSummaryUpdate(_CamelModel):
    """Header changes and/or the full new list of lines (None keeps the lines)."""
    date: Optional[date_type] = None
    station: Optional[str] = None
    order_of: Optional[str] = None
    entries: Optional[List[LPOLine]] = None


class CancelTruckRequest(_CamelModel):
    truck_no: str = Field(..., min_length=1)
    cancellation_point: Optional[str] = None
    reason: Optional[str] = None


class DriverAccountEntry(_CamelModel):
    """Fuel charged to the driver instead of the journey allocation."""
    id: int
    date: date_type
    month: str
    year: int
    lpo_no: str
    truck_no: str
    liters: float
    rate: float = 0
    amount: float = 0
    station: str
    cancellation_point: str = DEFAULT_CANCELLATION_POINT
    original_do_no: Optional[str] = None
    status: DriverAccountStatus = DriverAccountStatus.PENDING
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None


class NextLPONumber(_CamelModel):
    next_lpo_no: str
