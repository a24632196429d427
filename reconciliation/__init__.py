"""Reconciliation - keeps fuel record balances consistent with their sources.

This package provides:
- Truck number and station normalization
- StationFieldMap: station/yard → fuel record column configuration
- FuelRecordResolver: DO match, then truck + month-window fallback
- ReconciliationEngine: atomic liters deltas against one column + balance
- EventBus: domain events for audit and notifications

Usage:
    from reconciliation import ReconciliationEngine, StationFieldMap

    engine = ReconciliationEngine(db_path="fuel_logistics.db", station_map=StationFieldMap.default())
    outcome = await engine.reconcile_station_delta(
        do_number="DO123",
        truck_no="T100 ABC",
        station="LAKE NDOLA",
        liters_delta=100,
    )

    if outcome.applied:
        print(f"Applied to record {outcome.fuel_record_id}.{outcome.field}")
    else:
        print(f"Not applied: {outcome.status.value}")
"""

from core.normalize import format_truck_no, is_truck_no_match, normalize_truck_no
from reconciliation.audit import ReconciliationAuditor
from reconciliation.engine import (
    DeltaResult,
    OutcomeStatus,
    ReconciliationEngine,
    ReconciliationOutcome,
)
from reconciliation.events import (
    EventBus,
    ReconciliationEvent,
    ReconciliationEventType,
    RecordingSubscriber,
)
from reconciliation.resolver import FuelRecordResolution, FuelRecordResolver, MatchType
from reconciliation.stations import FieldPair, StationFieldMap, load_station_map

__all__ = [
    # Engine
    "ReconciliationEngine",
    "DeltaResult",
    "ReconciliationOutcome",
    "OutcomeStatus",
    # Events
    "EventBus",
    "ReconciliationAuditor",
    "ReconciliationEvent",
    "ReconciliationEventType",
    "RecordingSubscriber",
    # Resolver
    "FuelRecordResolver",
    "FuelRecordResolution",
    "MatchType",
    # Stations
    "StationFieldMap",
    "FieldPair",
    "load_station_map",
    # Normalization
    "normalize_truck_no",
    "format_truck_no",
    "is_truck_no_match",
]
