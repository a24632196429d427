"""LPO - local purchase orders for fuel bought at stations on the route.

Usage:
    from lpo import LPOService, LPOSummaryCreate, LPOLine

    service = LPOService(engine, db_path="fuel_logistics.db")
    summary = await service.create_summary(LPOSummaryCreate(
        date=date.today(),
        station="LAKE NDOLA",
        entries=[LPOLine(do_no="DO123", truck_no="T100 ABC", liters=350, rate=1.35)],
    ))
"""

from lpo.db import init_lpo_db, list_driver_account_entries
from lpo.models import (
    CancelTruckRequest,
    DriverAccountEntry,
    DriverAccountStatus,
    LPOEntry,
    LPOEntryCreate,
    LPOEntryUpdate,
    LPOLine,
    LPOSummary,
    LPOSummaryCreate,
    LPOSummaryUpdate,
    ReconciliationStatus,
)
from lpo.service import LPOService

__all__ = [
    # Models
    "LPOEntry",
    "LPOEntryCreate",
    "LPOEntryUpdate",
    "LPOLine",
    "LPOSummary",
    "LPOSummaryCreate",
    "LPOSummaryUpdate",
    "CancelTruckRequest",
    "DriverAccountEntry",
    "DriverAccountStatus",
    "ReconciliationStatus",
    # Service
    "LPOService",
    # Database
    "init_lpo_db",
    "list_driver_account_entries",
]
