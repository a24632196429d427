"""Notification models.

Notifications tell the fuel office about yard dispenses and LPO lines that
need attention. A `pending` notification stays open until the thing it is
about gets linked (`resolved`) or rejected (`dismissed`).
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class NotificationType(str, Enum):
    YARD_FUEL_RECORDED = "yard_fuel_recorded"
    TRUCK_PENDING_LINKING = "truck_pending_linking"
    YARD_FUEL_LINKED = "yard_fuel_linked"
    TRUCK_ENTRY_REJECTED = "truck_entry_rejected"
    LPO_ENTRY_PENDING = "lpo_entry_pending"
    UNKNOWN_STATION = "unknown_station"
    JOURNEY_COMPLETED = "journey_completed"


class NotificationStatus(str, Enum):
    PENDING = "pending"
    RESOLVED = "resolved"
    DISMISSED = "dismissed"
    INFO = "info"


class RelatedModel(str, Enum):
    YARD_FUEL_DISPENSE = "YardFuelDispense"
    LPO_ENTRY = "LPOEntry"
    FUEL_RECORD = "FuelRecord"


class Notification(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: int
    type: NotificationType
    title: str
    message: str
    related_model: Optional[RelatedModel] = None
    related_id: Optional[str] = None
    status: NotificationStatus = NotificationStatus.INFO
    is_read: bool = False
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    resolved_by: Optional[str] = None
