"""Fuel record and journey lifecycle.

A truck has at most one active journey. Fuel records created while the
truck is still on a journey are queued behind it; when the active journey
completes (balance 0 and the return-leg marker column filled) the next
queued journey is activated and pending yard fuel is linked to it.

Manual corrections use an optimistic version check. Engine deltas bump the
version too, so a correction computed from a stale read is retried against
fresh values instead of overwriting a delta.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from core.audit import AuditEventType, AuditLogger
from core.config import get_settings
from core.db import DbPath
from core.errors import ConflictError, NotFoundError, ValidationError
from core.normalize import format_truck_no
from core.observability.logging import get_logger, with_correlation
from core.observability.metrics import get_metrics
from fuel_records.db import (
    find_active_for_truck,
    find_by_going_do,
    find_by_return_do,
    get_fuel_record,
    insert_fuel_record,
    list_for_truck,
    list_fuel_records,
    list_queued_for_truck,
    monthly_summary,
    set_fuel_record_fields,
    update_fuel_record_if_version,
)
from fuel_records.models import (
    CHECKPOINT_FIELDS,
    FuelRecord,
    FuelRecordCreate,
    FuelRecordUpdate,
    JourneyStatus,
    MonthlyFuelSummary,
    month_label,
    round_liters,
)
from reconciliation.events import EventBus, ReconciliationEvent, ReconciliationEventType
from yard_fuel.linker import YardFuelLinker

logger = get_logger(__name__)

RESOURCE_TYPE = "FuelRecord"
BALANCE_FIELDS = set(CHECKPOINT_FIELDS) | {"total_lts", "extra"}
MSA_MARKERS = ("MSA", "MOMBASA")


def is_journey_complete(record: FuelRecord) -> bool:
    """Balance is exactly 0 and the return-leg marker column is filled.

    The marker is `tanga_return` for Mombasa destinations, `mbeya_return`
    otherwise.
    """
    if record.balance != 0:
        return False
    destination = (record.original_going_to or record.to_location or "").upper()
    if any(marker in destination for marker in MSA_MARKERS):
        return record.tanga_return != 0
    return record.mbeya_return != 0


def compute_balance(values: Dict[str, Any]) -> float:
    """(total_lts + extra) - sum(checkpoint columns)."""
    allocated = (values.get("total_lts") or 0) + (values.get("extra") or 0)
    return round_liters(allocated - sum(values.get(name) or 0 for name in CHECKPOINT_FIELDS))


class FuelRecordService:
    """Create, correct and retire fuel records.

    Example:
        service = FuelRecordService(linker, db_path, event_bus=bus)
        record = await service.create_fuel_record(payload, actor="fuel_office")
    """

    def __init__(
        self,
        linker: YardFuelLinker,
        db_path: DbPath = None,
        event_bus: Optional[EventBus] = None,
        audit: Optional[AuditLogger] = None,
        max_conflict_retries: Optional[int] = None,
    ):
        self.linker = linker
        self.db_path = db_path
        self.event_bus = event_bus or linker.engine.event_bus
        self.audit = audit or AuditLogger()
        if max_conflict_retries is None:
            max_conflict_retries = get_settings().max_conflict_retries
        self.max_conflict_retries = max_conflict_retries

    # =========================================================================
    # Create
    # =========================================================================

    async def create_fuel_record(self, payload: FuelRecordCreate, actor: str = "system") -> FuelRecord:
        values = payload.model_dump()
        values["truck_no"] = format_truck_no(payload.truck_no)
        values["going_do"] = payload.going_do.strip()
        if not values.get("month"):
            values["month"] = month_label(payload.date)
        values["original_going_from"] = payload.from_location
        values["original_going_to"] = payload.to_location
        for name in BALANCE_FIELDS:
            values[name] = round_liters(values.get(name))
        values["balance"] = compute_balance(values)

        if find_by_going_do(values["going_do"], db_path=self.db_path):
            raise ValidationError(f"A fuel record for DO {values['going_do']} already exists",
                                  details={"goingDo": values["going_do"]})

        with with_correlation(truck_no=values["truck_no"], do_number=values["going_do"], actor=actor):
            active = find_active_for_truck(values["truck_no"], db_path=self.db_path)
            if active:
                queued = list_queued_for_truck(values["truck_no"], db_path=self.db_path)
                values["journey_status"] = JourneyStatus.QUEUED
                values["queue_order"] = len(queued) + 1
                values["previous_journey_id"] = active.id
                logger.info(
                    f"Creating queued journey for truck {values['truck_no']} "
                    f"(position: {values['queue_order']}, waiting for: {active.going_do})"
                )
            else:
                values["journey_status"] = JourneyStatus.ACTIVE
                values["activated_at"] = datetime.utcnow()
                logger.info(f"Creating active journey for truck {values['truck_no']}")

            record = insert_fuel_record(values, db_path=self.db_path)
            self.audit.log_create(RESOURCE_TYPE, record.id, _audit_view(record), actor=actor)

            if record.journey_status == JourneyStatus.ACTIVE:
                await self.linker.link_pending_for_truck(record.id, actor=actor)
                record = get_fuel_record(record.id, db_path=self.db_path)

            return record

    # =========================================================================
    # Update
    # =========================================================================

    async def update_fuel_record(self, record_id: int, payload: FuelRecordUpdate, actor: str = "system") -> FuelRecord:
        """Apply a manual correction, recomputing balance from the final values."""
        changes = {k: v for k, v in payload.model_dump(exclude_unset=True).items() if v is not None}
        if "truck_no" in changes:
            changes["truck_no"] = format_truck_no(changes["truck_no"])
        if "date" in changes and "month" not in changes:
            changes["month"] = month_label(changes["date"])
        for name in BALANCE_FIELDS & set(changes):
            changes[name] = round_liters(changes[name])

        attempts = self.max_conflict_retries + 1
        for attempt in range(attempts):
            current = self._get_or_raise(record_id)
            values = dict(changes)
            if BALANCE_FIELDS & set(values):
                merged = current.model_dump()
                merged.update(values)
                values["balance"] = compute_balance(merged)

            if update_fuel_record_if_version(record_id, current.version, values, db_path=self.db_path):
                break

            get_metrics().record_conflict_retry()
            logger.warning(
                f"Fuel record {record_id} changed during update (version {current.version}), "
                f"retry {attempt + 1}/{self.max_conflict_retries}"
            )
        else:
            get_metrics().record_conflict()
            self.audit.log_warning(
                AuditEventType.CONFLICT,
                f"Fuel record {record_id} update abandoned after {attempts} attempts",
                resource_type=RESOURCE_TYPE, resource_id=record_id, actor=actor,
            )
            raise ConflictError(
                f"Fuel record {record_id} was modified concurrently, please retry",
                details={"attempts": attempts},
            )

        updated = get_fuel_record(record_id, db_path=self.db_path)
        self.audit.log_update(RESOURCE_TYPE, record_id, _audit_view(current), _audit_view(updated), actor=actor)
        if "balance" in values:
            self.audit.log_info(
                AuditEventType.BALANCE_RECALCULATED,
                f"Fuel record {record_id} balance {current.balance:g} -> {updated.balance:g}",
                resource_type=RESOURCE_TYPE, resource_id=record_id, truck_no=updated.truck_no, actor=actor,
            )

        await self.check_journey_completion(updated, actor=actor)
        return get_fuel_record(record_id, db_path=self.db_path)

    # =========================================================================
    # Journey lifecycle
    # =========================================================================

    async def check_journey_completion(self, record: FuelRecord, actor: str = "system") -> Optional[FuelRecord]:
        """Complete an active journey that is finished and activate the next one.

        Returns:
            The newly activated record, if any
        """
        if record.journey_status != JourneyStatus.ACTIVE or not is_journey_complete(record):
            return None

        set_fuel_record_fields(record.id, {
            "journey_status": JourneyStatus.COMPLETED,
            "completed_at": datetime.utcnow(),
        }, db_path=self.db_path)
        logger.info(f"Journey {record.going_do} for truck {record.truck_no} marked as completed")
        self.audit.log_info(
            AuditEventType.JOURNEY_COMPLETED,
            f"Journey {record.going_do} completed",
            resource_type=RESOURCE_TYPE, resource_id=record.id, truck_no=record.truck_no, actor=actor,
        )
        await self._publish(ReconciliationEventType.JOURNEY_COMPLETED, record, actor)

        return await self.activate_next_journey(record.truck_no, actor=actor)

    async def activate_next_journey(self, truck_no: str, actor: str = "system") -> Optional[FuelRecord]:
        """Activate the first queued journey and renumber the rest."""
        queued = list_queued_for_truck(truck_no, db_path=self.db_path)
        if not queued:
            return None

        next_journey, remaining = queued[0], queued[1:]
        set_fuel_record_fields(next_journey.id, {
            "journey_status": JourneyStatus.ACTIVE,
            "queue_order": None,
            "activated_at": datetime.utcnow(),
        }, db_path=self.db_path)
        logger.info(
            f"Activated queued journey {next_journey.going_do} for truck {truck_no} "
            f"(was position {next_journey.queue_order})"
        )
        self._renumber_queue(remaining)

        self.audit.log_info(
            AuditEventType.JOURNEY_ACTIVATED,
            f"Journey {next_journey.going_do} activated",
            resource_type=RESOURCE_TYPE, resource_id=next_journey.id, truck_no=truck_no, actor=actor,
        )
        activated = get_fuel_record(next_journey.id, db_path=self.db_path)
        await self._publish(ReconciliationEventType.JOURNEY_ACTIVATED, activated, actor)

        await self.linker.link_pending_for_truck(activated.id, actor=actor)
        return get_fuel_record(activated.id, db_path=self.db_path)

    def _renumber_queue(self, queued: List[FuelRecord]) -> None:
        for position, record in enumerate(queued, start=1):
            if record.queue_order != position:
                set_fuel_record_fields(record.id, {"queue_order": position}, db_path=self.db_path)

    async def handle_event(self, event: ReconciliationEvent) -> None:
        """Event bus subscriber: a delta that drains a balance may finish a journey."""
        if event.event_type != ReconciliationEventType.DELTA_APPLIED or event.fuel_record_id is None:
            return
        if event.details.get("new_balance") != 0:
            return
        record = get_fuel_record(event.fuel_record_id, db_path=self.db_path)
        if record:
            await self.check_journey_completion(record, actor=event.actor)

    # =========================================================================
    # Cancel / delete
    # =========================================================================

    async def cancel_fuel_record(self, record_id: int, reason: str = "", actor: str = "system") -> FuelRecord:
        record = self._get_or_raise(record_id)
        if record.is_cancelled:
            raise ValidationError(f"Fuel record {record_id} is already cancelled")

        set_fuel_record_fields(record_id, {
            "is_cancelled": True,
            "cancelled_at": datetime.utcnow(),
            "cancellation_reason": reason or None,
            "cancelled_by": actor,
        }, db_path=self.db_path)
        self.audit.log_info(
            AuditEventType.CANCEL,
            f"Fuel record {record_id} cancelled",
            resource_type=RESOURCE_TYPE, resource_id=record_id, truck_no=record.truck_no, actor=actor,
            details={"reason": reason},
        )
        await self._leave_queue(record, actor)
        return get_fuel_record(record_id, db_path=self.db_path)

    async def delete_fuel_record(self, record_id: int, actor: str = "system") -> None:
        record = self._get_or_raise(record_id)
        set_fuel_record_fields(record_id, {"is_deleted": True, "deleted_at": datetime.utcnow()},
                               db_path=self.db_path)
        self.audit.log_delete(RESOURCE_TYPE, record_id, _audit_view(record), actor=actor)
        await self._leave_queue(record, actor)

    async def _leave_queue(self, record: FuelRecord, actor: str) -> None:
        if record.journey_status == JourneyStatus.ACTIVE:
            await self.activate_next_journey(record.truck_no, actor=actor)
        elif record.journey_status == JourneyStatus.QUEUED:
            self._renumber_queue([
                r for r in list_queued_for_truck(record.truck_no, db_path=self.db_path)
                if r.id != record.id
            ])

    # =========================================================================
    # Queries
    # =========================================================================

    def get(self, record_id: int) -> FuelRecord:
        return self._get_or_raise(record_id)

    def list_records(self, **filters) -> Tuple[List[FuelRecord], int]:
        return list_fuel_records(db_path=self.db_path, **filters)

    def by_truck(self, truck_no: str) -> List[FuelRecord]:
        return list_for_truck(truck_no, db_path=self.db_path)

    def by_do(self, do_number: str) -> FuelRecord:
        record = find_by_going_do(do_number, db_path=self.db_path) or find_by_return_do(do_number, db_path=self.db_path)
        if record is None:
            raise NotFoundError(f"No fuel record for DO {do_number}")
        return record

    def monthly_summary(self, month: Optional[str] = None) -> MonthlyFuelSummary:
        return monthly_summary(month, db_path=self.db_path)

    def _get_or_raise(self, record_id: int) -> FuelRecord:
        record = get_fuel_record(record_id, db_path=self.db_path)
        if record is None:
            raise NotFoundError(f"Fuel record {record_id} not found")
        return record

    async def _publish(self, event_type: ReconciliationEventType, record: FuelRecord, actor: str) -> None:
        await self.event_bus.publish(ReconciliationEvent(
            event_type=event_type,
            truck_no=record.truck_no,
            do_number=record.going_do,
            fuel_record_id=record.id,
            source_type="fuel_record",
            source_id=record.id,
            actor=actor,
        ))


def _audit_view(record: FuelRecord) -> Dict[str, Any]:
    return record.model_dump(mode="json", by_alias=True, exclude={"created_at", "updated_at"})
