"""Yard fuel auto-linking.

Drives the dispense state machine:
- create: record pending, then try to link to the truck's active fuel record
- link_pending_for_truck: retroactive pass when a fuel record becomes active
- link_manually: operator picks the fuel record
- reject / update / delete: keep the linked record's yard column in step

A dispense moves out of `pending` through a conditional UPDATE, and the
yard delta is only applied by the caller that won that update. Linking the
same dispense twice therefore never counts its liters twice.
"""

from datetime import date, datetime, timedelta
from typing import List, Optional

from core.audit import AuditLogger
from core.config import get_settings
from core.db import DbPath
from core.errors import NotFoundError, ValidationError
from core.normalize import format_truck_no, normalize_station
from core.observability.logging import get_logger, with_correlation
from core.observability.metrics import get_metrics
from fuel_records.db import find_active_for_truck, get_fuel_record
from fuel_records.models import FuelRecord
from reconciliation.engine import ReconciliationEngine
from reconciliation.events import ReconciliationEvent, ReconciliationEventType
from yard_fuel.db import (
    get_dispense,
    insert_dispense,
    list_dispenses,
    list_pending_for_truck,
    list_rejections,
    mark_linked_if_pending,
    mark_rejected,
    resolve_recent_rejections,
    revert_to_pending,
    soft_delete_dispense,
    summarize_by_yard,
    update_dispense,
)
from yard_fuel.models import (
    LinkSummary,
    YardFuelCreate,
    YardFuelDispense,
    YardFuelStatus,
    YardFuelUpdate,
    YardSummary,
)

logger = get_logger(__name__)

RESOURCE_TYPE = "YardFuelDispense"


class YardFuelLinker:
    """Yard dispense lifecycle on top of the reconciliation engine.

    Example:
        linker = YardFuelLinker(engine, db_path)
        dispense = await linker.create_dispense(
            YardFuelCreate(truck_no="T100 ABC", liters=250, yard="DAR YARD"),
            actor="dar_yard",
        )
        print(dispense.status)  # linked if the truck has an active journey
    """

    def __init__(
        self,
        engine: ReconciliationEngine,
        db_path: DbPath = None,
        audit: Optional[AuditLogger] = None,
        rejection_resolve_days: Optional[int] = None,
    ):
        self.engine = engine
        self.db_path = db_path
        self.audit = audit or AuditLogger()
        if rejection_resolve_days is None:
            rejection_resolve_days = get_settings().rejection_resolve_days
        self.rejection_resolve_days = rejection_resolve_days

    # =========================================================================
    # Create
    # =========================================================================

    async def create_dispense(self, payload: YardFuelCreate, actor: str = "system") -> YardFuelDispense:
        """Record a dispense and link it immediately when possible."""
        yard = self._validate_yard(payload.yard)
        truck_no = format_truck_no(payload.truck_no)

        with with_correlation(truck_no=truck_no, actor=actor):
            dispense = insert_dispense(
                date=(payload.date or date.today()).isoformat(),
                truck_no=truck_no,
                liters=payload.liters,
                yard=yard,
                entered_by=actor,
                notes=payload.notes,
                db_path=self.db_path,
            )
            get_metrics().record_yard_created(yard)
            self.audit.log_create(RESOURCE_TYPE, dispense.id, dispense.model_dump(mode="json", by_alias=True),
                                  actor=actor)
            await self._publish(ReconciliationEventType.YARD_RECORDED, dispense, actor,
                                details={"notes": dispense.notes})

            active = find_active_for_truck(truck_no, db_path=self.db_path)
            if active:
                await self._link(dispense, active, actor, status=YardFuelStatus.LINKED)
            else:
                logger.warning(f"No active fuel record for {truck_no}, {yard} dispense {dispense.id} left pending")
                await self._publish(ReconciliationEventType.YARD_PENDING, dispense, actor)

            return get_dispense(dispense.id, db_path=self.db_path)

    # =========================================================================
    # Linking
    # =========================================================================

    async def link_pending_for_truck(self, fuel_record_id: int, actor: str = "system") -> LinkSummary:
        """Link every pending dispense of the record's truck to the record."""
        record = get_fuel_record(fuel_record_id, db_path=self.db_path)
        if record is None:
            raise NotFoundError(f"Fuel record {fuel_record_id} not found")

        summary = LinkSummary(fuel_record_id=record.id, truck_no=record.truck_no)
        if record.is_cancelled:
            logger.info(f"Fuel record {record.id} is cancelled, pending yard fuel not linked")
            return summary

        with with_correlation(truck_no=record.truck_no, fuel_record_id=record.id, actor=actor):
            for dispense in list_pending_for_truck(record.truck_no, db_path=self.db_path):
                if await self._link(dispense, record, actor, status=YardFuelStatus.LINKED):
                    summary.linked_count += 1
                    summary.total_liters += dispense.liters
                    summary.dispense_ids.append(dispense.id)

            if summary.linked_count:
                logger.info(
                    f"Linked {summary.linked_count} pending yard dispenses "
                    f"({summary.total_liters:g}L) to fuel record {record.id}"
                )
        return summary

    async def link_manually(self, dispense_id: int, fuel_record_id: int, actor: str = "system") -> YardFuelDispense:
        """Operator links a pending dispense to a chosen fuel record."""
        dispense = self._get_or_raise(dispense_id)
        if dispense.status != YardFuelStatus.PENDING or dispense.is_deleted:
            raise ValidationError(
                f"Yard dispense {dispense_id} is {dispense.status.value}, only pending dispenses can be linked"
            )

        record = get_fuel_record(fuel_record_id, db_path=self.db_path)
        if record is None:
            raise NotFoundError(f"Fuel record {fuel_record_id} not found")

        with with_correlation(truck_no=dispense.truck_no, fuel_record_id=record.id, actor=actor):
            linked = await self._link(dispense, record, actor, status=YardFuelStatus.MANUAL)
        if not linked:
            raise ValidationError(f"Yard dispense {dispense_id} could not be linked to fuel record {fuel_record_id}")
        return get_dispense(dispense_id, db_path=self.db_path)

    async def _link(
        self,
        dispense: YardFuelDispense,
        record: FuelRecord,
        actor: str,
        status: YardFuelStatus,
    ) -> bool:
        do_number = record.going_do
        claimed = mark_linked_if_pending(
            dispense.id,
            fuel_record_id=record.id,
            do_number=do_number,
            applied_liters=dispense.liters,
            performed_by=actor,
            status=status,
            auto_linked=status == YardFuelStatus.LINKED,
            db_path=self.db_path,
        )
        if not claimed:
            logger.info(f"Yard dispense {dispense.id} is no longer pending, skipped")
            return False

        result = await self.engine.apply_yard_delta(
            record.id, dispense.yard, dispense.liters, source_id=dispense.id, actor=actor,
        )
        if not result.applied:
            logger.warning(
                f"Yard delta for dispense {dispense.id} not applied ({result.reason}), back to pending"
            )
            revert_to_pending(dispense.id, db_path=self.db_path)
            return False

        since = datetime.utcnow() - timedelta(days=self.rejection_resolve_days)
        resolved = resolve_recent_rejections(dispense.truck_no, dispense.yard, since, actor, db_path=self.db_path)
        if resolved:
            logger.info(f"Marked {resolved} recent {dispense.yard} rejections for {dispense.truck_no} resolved")

        get_metrics().record_yard_linked(dispense.yard, manual=status == YardFuelStatus.MANUAL)
        self.audit.log_update(
            RESOURCE_TYPE, dispense.id,
            previous_value={"status": YardFuelStatus.PENDING.value, "truckNo": dispense.truck_no},
            new_value={"status": status.value, "linkedFuelRecordId": record.id, "linkedDONumber": do_number},
            actor=actor,
        )
        await self._publish(
            ReconciliationEventType.YARD_LINKED, dispense, actor,
            fuel_record_id=record.id, do_number=do_number, field=result.field,
            details={"status": status.value, "resolvedRejections": resolved},
        )
        return True

    # =========================================================================
    # Operator corrections
    # =========================================================================

    async def reject(self, dispense_id: int, reason: str, actor: str = "system") -> YardFuelDispense:
        """Reject a dispense. A linked dispense has its delta reversed."""
        reason = (reason or "").strip()
        if not reason:
            raise ValidationError("Rejection reason is required")

        dispense = self._get_or_raise(dispense_id)
        if dispense.status == YardFuelStatus.REJECTED or dispense.is_deleted:
            raise ValidationError(f"Yard dispense {dispense_id} is already rejected or deleted")

        with with_correlation(truck_no=dispense.truck_no, actor=actor):
            reversed_liters = await self._reverse_link(dispense, actor)
            if not mark_rejected(dispense_id, reason, actor,
                                 details={"previousStatus": dispense.status.value,
                                          "reversedLiters": reversed_liters},
                                 db_path=self.db_path):
                raise ValidationError(f"Yard dispense {dispense_id} is already rejected or deleted")

            get_metrics().record_yard_rejected(dispense.yard)
            self.audit.log_update(
                RESOURCE_TYPE, dispense_id,
                previous_value={"status": dispense.status.value, "truckNo": dispense.truck_no},
                new_value={"status": YardFuelStatus.REJECTED.value, "rejectionReason": reason},
                actor=actor,
            )
            await self._publish(
                ReconciliationEventType.YARD_REJECTED, dispense, actor,
                details={"reason": reason, "reversedLiters": reversed_liters},
            )
        return get_dispense(dispense_id, db_path=self.db_path)

    async def update_dispense(self, dispense_id: int, payload: YardFuelUpdate, actor: str = "system") -> YardFuelDispense:
        """Edit a dispense. Changing liters on a linked dispense applies the difference."""
        dispense = self._get_or_raise(dispense_id)
        if dispense.is_deleted:
            raise NotFoundError(f"Yard dispense {dispense_id} not found")

        applied_liters = None
        if payload.liters is not None and dispense.is_linked and payload.liters != dispense.applied_liters:
            difference = payload.liters - dispense.applied_liters
            result = await self.engine.apply_yard_delta(
                dispense.linked_fuel_record_id, dispense.yard, difference, source_id=dispense.id, actor=actor,
            )
            if result.applied:
                applied_liters = payload.liters

        update_dispense(
            dispense_id,
            performed_by=actor,
            date=payload.date.isoformat() if payload.date else None,
            liters=payload.liters,
            notes=payload.notes,
            applied_liters=applied_liters,
            db_path=self.db_path,
        )
        updated = get_dispense(dispense_id, db_path=self.db_path)
        self.audit.log_update(
            RESOURCE_TYPE, dispense_id,
            previous_value=dispense.model_dump(mode="json", by_alias=True, exclude={"history"}),
            new_value=updated.model_dump(mode="json", by_alias=True, exclude={"history"}),
            actor=actor,
        )
        return updated

    async def delete_dispense(self, dispense_id: int, actor: str = "system") -> YardFuelDispense:
        """Soft-delete a dispense, reversing its delta if linked."""
        dispense = self._get_or_raise(dispense_id)
        if dispense.is_deleted:
            raise NotFoundError(f"Yard dispense {dispense_id} not found")

        await self._reverse_link(dispense, actor)
        soft_delete_dispense(dispense_id, actor, db_path=self.db_path)
        self.audit.log_delete(
            RESOURCE_TYPE, dispense_id,
            dispense.model_dump(mode="json", by_alias=True, exclude={"history"}),
            actor=actor,
        )
        return get_dispense(dispense_id, db_path=self.db_path)

    async def _reverse_link(self, dispense: YardFuelDispense, actor: str) -> float:
        if not dispense.is_linked or not dispense.applied_liters:
            return 0
        result = await self.engine.apply_yard_delta(
            dispense.linked_fuel_record_id, dispense.yard, -dispense.applied_liters,
            source_id=dispense.id, actor=actor,
        )
        return dispense.applied_liters if result.applied else 0

    # =========================================================================
    # Queries
    # =========================================================================

    def get(self, dispense_id: int) -> YardFuelDispense:
        return self._get_or_raise(dispense_id)

    def list_dispenses(self, **filters) -> List[YardFuelDispense]:
        return list_dispenses(db_path=self.db_path, **filters)

    def rejection_history(self, yard: Optional[str] = None, **filters) -> List[YardFuelDispense]:
        if yard:
            yard = normalize_station(yard)
        return list_rejections(db_path=self.db_path, yard=yard, **filters)

    def summary(self) -> List[YardSummary]:
        return summarize_by_yard(db_path=self.db_path)

    # =========================================================================
    # Helpers
    # =========================================================================

    def _validate_yard(self, yard: str) -> str:
        name = normalize_station(yard)
        if self.engine.station_map.yard_field(name) is None:
            raise ValidationError(f"Unknown yard: {yard}", details={"yard": yard})
        return name

    def _get_or_raise(self, dispense_id: int) -> YardFuelDispense:
        dispense = get_dispense(dispense_id, db_path=self.db_path)
        if dispense is None:
            raise NotFoundError(f"Yard dispense {dispense_id} not found")
        return dispense

    async def _publish(self, event_type: ReconciliationEventType, dispense: YardFuelDispense, actor: str,
                       **fields) -> None:
        fields.setdefault("fuel_record_id", dispense.linked_fuel_record_id)
        fields.setdefault("do_number", dispense.linked_do_number)
        await self.engine.event_bus.publish(ReconciliationEvent(
            event_type=event_type,
            truck_no=dispense.truck_no,
            station=dispense.yard,
            liters=dispense.liters,
            source_type="yard_fuel",
            source_id=dispense.id,
            actor=actor,
            **fields,
        ))

