"""Audit trail for reconciliation side effects.

CRUD audit is written by the services themselves. This subscriber records
what the engine did to fuel records as a consequence: applied deltas,
skipped deltas and entries left pending.
"""

from typing import Optional

from core.audit.events import AuditEventType, AuditLogger
from reconciliation.events import ReconciliationEvent, ReconciliationEventType

FUEL_RECORD = "FuelRecord"

_SKIPPED = {
    ReconciliationEventType.JOURNEY_COMPLETE: "journey already complete",
    ReconciliationEventType.UNKNOWN_STATION: "unknown station",
    ReconciliationEventType.RECORD_NOT_FOUND: "fuel record not found",
}


class ReconciliationAuditor:
    """Subscribe with `event_bus.subscribe(ReconciliationAuditor(audit))`."""

    def __init__(self, audit: Optional[AuditLogger] = None):
        self.audit = audit or AuditLogger()

    def __call__(self, event: ReconciliationEvent) -> None:
        source = {"sourceType": event.source_type, "sourceId": event.source_id}

        if event.event_type == ReconciliationEventType.DELTA_APPLIED:
            self.audit.log_info(
                AuditEventType.DELTA_APPLIED,
                f"{event.liters:+g}L applied to {event.field} of fuel record {event.fuel_record_id}",
                resource_type=FUEL_RECORD,
                resource_id=event.fuel_record_id,
                truck_no=event.truck_no,
                previous_value={event.field: event.details.get("old_value"),
                                "balance": event.details.get("old_balance")},
                new_value={event.field: event.details.get("new_value"),
                           "balance": event.details.get("new_balance")},
                details=source,
                actor=event.actor,
            )
        elif event.event_type in _SKIPPED:
            self.audit.log_warning(
                AuditEventType.DELTA_SKIPPED,
                f"{event.liters:+g}L at {event.station or event.field} not applied: {_SKIPPED[event.event_type]}",
                resource_type=FUEL_RECORD,
                resource_id=event.fuel_record_id,
                truck_no=event.truck_no,
                details={**source, "station": event.station, "doNumber": event.do_number},
                actor=event.actor,
            )
        elif event.event_type == ReconciliationEventType.ENTRY_PENDING:
            self.audit.log_info(
                AuditEventType.ENTRY_PENDING,
                f"{event.liters:+g}L at {event.station} for {event.truck_no} left pending",
                resource_type=event.source_type,
                resource_id=event.source_id,
                truck_no=event.truck_no,
                details={"station": event.station, "doNumber": event.do_number},
                actor=event.actor,
            )
