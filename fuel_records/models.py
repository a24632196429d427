"""Fuel Record Data Models.

This module defines the Pydantic models for fuel records:
- FuelRecord: One allocation record per truck journey leg
- FuelRecordCreate / FuelRecordUpdate: API payloads
- JourneyStatus: queued | active | completed

Field names are snake_case in Python and in SQLite; the API speaks the
camelCase names the front office has always used (zambiaGoing, goingDo...).
"""

from datetime import date as date_type, datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class JourneyStatus(str, Enum):
    """Lifecycle of a truck journey."""
    QUEUED = "queued"
    ACTIVE = "active"
    COMPLETED = "completed"


class Direction(str, Enum):
    """Journey leg a liters delta belongs to."""
    GOING = "going"
    RETURNING = "returning"


# Yard allocations
YARD_FIELDS = ("mmsa_yard", "tanga_yard", "dar_yard")

# Going fuel
GOING_FIELDS = ("dar_going", "moro_going", "mbeya_going", "tdm_going", "zambia_going", "congo_fuel")

# Return fuel
RETURN_FIELDS = ("zambia_return", "tunduma_return", "mbeya_return", "moro_return", "dar_return", "tanga_return")

CHECKPOINT_FIELDS = YARD_FIELDS + GOING_FIELDS + RETURN_FIELDS

# Liters are kept to centiliter precision so a drained balance is exactly 0
LITERS_PRECISION = 2

# camelCase (API / legacy documents) -> column name
FIELD_ALIASES: Dict[str, str] = {to_camel(name): name for name in CHECKPOINT_FIELDS}


def to_column_name(field_name: str) -> Optional[str]:
    """Resolve a checkpoint field given in either naming style.

    Returns None for names that are not checkpoint columns.
    """
    if field_name in CHECKPOINT_FIELDS:
        return field_name
    return FIELD_ALIASES.get(field_name)


def round_liters(value: Optional[float]) -> float:
    return round(value or 0, LITERS_PRECISION) + 0.0


def month_label(value: date_type) -> str:
    """Month bucket used by the fuel sheets, e.g. "October 2026"."""
    return value.strftime("%B %Y")


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class FuelRecord(_CamelModel):
    """Fuel allocation for one truck journey.

    Invariant: balance == (total_lts + extra) - sum(checkpoint columns).
    """
    id: int
    date: date_type
    month: Optional[str] = None
    truck_no: str
    going_do: str
    return_do: Optional[str] = None

    start: Optional[str] = None
    from_location: Optional[str] = None
    to_location: Optional[str] = None
    original_going_from: Optional[str] = None
    original_going_to: Optional[str] = None

    total_lts: float = 0
    extra: float = 0

    mmsa_yard: float = 0
    tanga_yard: float = 0
    dar_yard: float = 0

    dar_going: float = 0
    moro_going: float = 0
    mbeya_going: float = 0
    tdm_going: float = 0
    zambia_going: float = 0
    congo_fuel: float = 0

    zambia_return: float = 0
    tunduma_return: float = 0
    mbeya_return: float = 0
    moro_return: float = 0
    dar_return: float = 0
    tanga_return: float = 0

    balance: float = 0

    journey_status: JourneyStatus = JourneyStatus.ACTIVE
    queue_order: Optional[int] = None
    previous_journey_id: Optional[int] = None
    activated_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    is_cancelled: bool = False
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    cancelled_by: Optional[str] = None

    is_deleted: bool = False
    deleted_at: Optional[datetime] = None

    version: int = 1
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def checkpoint_total(self) -> float:
        return sum(getattr(self, name) or 0 for name in CHECKPOINT_FIELDS)

    def expected_balance(self) -> float:
        return round_liters((self.total_lts or 0) + (self.extra or 0) - self.checkpoint_total())

    def checkpoint_values(self) -> Dict[str, float]:
        return {name: getattr(self, name) for name in CHECKPOINT_FIELDS}


class FuelRecordCreate(_CamelModel):
    """Payload for creating a fuel record from a going delivery order."""
    date: date_type
    month: Optional[str] = None
    truck_no: str = Field(..., min_length=1)
    going_do: str = Field(..., min_length=1)
    return_do: Optional[str] = None
    start: Optional[str] = None
    from_location: Optional[str] = None
    to_location: Optional[str] = None
    total_lts: float = Field(default=0, ge=0)
    extra: float = 0

    mmsa_yard: float = 0
    tanga_yard: float = 0
    dar_yard: float = 0
    dar_going: float = 0
    moro_going: float = 0
    mbeya_going: float = 0
    tdm_going: float = 0
    zambia_going: float = 0
    congo_fuel: float = 0
    zambia_return: float = 0
    tunduma_return: float = 0
    mbeya_return: float = 0
    moro_return: float = 0
    dar_return: float = 0
    tanga_return: float = 0


class FuelRecordUpdate(_CamelModel):
    """Manual correction of a fuel record. Only provided fields change.

    `balance` is never accepted from callers; it is recomputed.
    """
    date: Optional[date_type] = None
    month: Optional[str] = None
    truck_no: Optional[str] = None
    going_do: Optional[str] = None
    return_do: Optional[str] = None
    start: Optional[str] = None
    from_location: Optional[str] = None
    to_location: Optional[str] = None
    total_lts: Optional[float] = Field(default=None, ge=0)
    extra: Optional[float] = None

    mmsa_yard: Optional[float] = None
    tanga_yard: Optional[float] = None
    dar_yard: Optional[float] = None
    dar_going: Optional[float] = None
    moro_going: Optional[float] = None
    mbeya_going: Optional[float] = None
    tdm_going: Optional[float] = None
    zambia_going: Optional[float] = None
    congo_fuel: Optional[float] = None
    zambia_return: Optional[float] = None
    tunduma_return: Optional[float] = None
    mbeya_return: Optional[float] = None
    moro_return: Optional[float] = None
    dar_return: Optional[float] = None
    tanga_return: Optional[float] = None


class MonthlyFuelSummary(_CamelModel):
    """Totals for one month of fuel records."""
    month: Optional[str] = None
    record_count: int = 0
    total_liters: float = 0
    total_extra: float = 0
    total_balance: float = 0
    by_status: Dict[str, int] = Field(default_factory=dict)


class FuelRecordPage(_CamelModel):
    """Paginated list of fuel records."""
    items: List[FuelRecord]
    total: int
    page: int
    page_size: int
