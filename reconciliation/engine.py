"""Reconciliation engine for fuel record balances.

Exposes:
- ReconciliationEngine.apply_delta(fuel_record_id, field, delta) -> DeltaResult
- ReconciliationEngine.reconcile_station_delta(do_number, truck_no, station, liters_delta)
    -> ReconciliationOutcome
- ReconciliationEngine.apply_yard_delta(fuel_record_id, yard, liters_delta) -> DeltaResult

Every delta moves liters between one checkpoint column and `balance`
(column += delta, balance -= delta) in a single atomic UPDATE, so the
balance invariant holds after each call and concurrent deltas are never lost.

Reconciliation is a best-effort side effect: a missing record, an unknown
station or a completed journey is logged and reported in the outcome, never
raised, so the LPO entry or yard dispense that triggered it is still saved.
"""

import time
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel

from core.db import DbPath
from core.observability.logging import get_logger, with_correlation
from core.observability.metrics import get_metrics, record_processing_time
from fuel_records.db import apply_field_delta
from fuel_records.models import Direction, to_column_name
from reconciliation.events import EventBus, ReconciliationEvent, ReconciliationEventType
from reconciliation.resolver import FuelRecordResolver, MatchType
from reconciliation.stations import StationFieldMap

logger = get_logger(__name__)


# =============================================================================
# Results
# =============================================================================

class OutcomeStatus(str, Enum):
    APPLIED = "applied"
    PENDING = "pending"
    JOURNEY_COMPLETE = "journey_complete"
    UNKNOWN_STATION = "unknown_station"
    NO_CHANGE = "no_change"


class DeltaResult(BaseModel):
    """What one delta did to one fuel record column."""
    applied: bool
    fuel_record_id: Optional[int] = None
    field: Optional[str] = None
    delta: float = 0
    old_value: Optional[float] = None
    new_value: Optional[float] = None
    old_balance: Optional[float] = None
    new_balance: Optional[float] = None
    reason: Optional[str] = None


class ReconciliationOutcome(BaseModel):
    """Result of reconciling a station purchase against the fuel records."""
    status: OutcomeStatus
    fuel_record_id: Optional[int] = None
    field: Optional[str] = None
    direction: Optional[Direction] = None
    match_type: Optional[MatchType] = None
    delta: float = 0
    result: Optional[DeltaResult] = None

    @property
    def applied(self) -> bool:
        return self.status == OutcomeStatus.APPLIED


# =============================================================================
# Engine
# =============================================================================

class ReconciliationEngine:
    """Applies liters deltas to fuel records and keeps balances consistent.

    Example:
        engine = ReconciliationEngine(db_path, station_map=StationFieldMap.default(), event_bus=bus)
        outcome = await engine.reconcile_station_delta("DO123", "T100 ABC", "LAKE NDOLA", 100)
        if outcome.applied:
            print(outcome.fuel_record_id, outcome.field)
    """

    def __init__(
        self,
        db_path: DbPath = None,
        station_map: Optional[StationFieldMap] = None,
        resolver: Optional[FuelRecordResolver] = None,
        event_bus: Optional[EventBus] = None,
    ):
        self.db_path = db_path
        self.station_map = station_map or StationFieldMap.default()
        self.resolver = resolver or FuelRecordResolver(db_path)
        self.event_bus = event_bus or EventBus()

    async def apply_delta(
        self,
        fuel_record_id: int,
        field: str,
        delta: float,
        source_type: Optional[str] = None,
        source_id: Optional[Any] = None,
        actor: str = "system",
    ) -> DeltaResult:
        """Apply `field += delta; balance -= delta` to one fuel record.

        Args:
            fuel_record_id: Target record
            field: Checkpoint column, snake_case or camelCase
            delta: Signed liters (negative reverses an earlier delta)
            source_type: What caused the delta ("lpo_entry", "yard_fuel", ...)
            source_id: Id of the causing entry
            actor: Who performed the triggering action

        Returns:
            DeltaResult; `applied` is False for unknown fields, missing
            records and zero deltas.
        """
        column = to_column_name(field)
        if column is None:
            logger.warning(
                f"Unknown fuel field {field}, delta skipped",
                extra_fields={"fuel_record_id": fuel_record_id, "delta": delta},
            )
            return DeltaResult(applied=False, fuel_record_id=fuel_record_id, field=field,
                               delta=delta, reason="unknown_field")

        if delta == 0:
            return DeltaResult(applied=False, fuel_record_id=fuel_record_id, field=column,
                               delta=0, reason="no_change")

        start_time = time.time()
        write = apply_field_delta(fuel_record_id, column, delta, db_path=self.db_path)
        record_processing_time("apply_delta", (time.time() - start_time) * 1000)

        if write is None:
            logger.warning(
                f"Fuel record {fuel_record_id} not found, {delta:+g}L to {column} skipped",
                extra_fields={"source_type": source_type, "source_id": source_id},
            )
            await self._publish(
                ReconciliationEventType.RECORD_NOT_FOUND,
                fuel_record_id=fuel_record_id, field=column, liters=delta,
                source_type=source_type, source_id=source_id, actor=actor,
            )
            return DeltaResult(applied=False, fuel_record_id=fuel_record_id, field=column,
                               delta=delta, reason="record_not_found")

        logger.info(
            f"Fuel record {fuel_record_id}: {column} {write.old_value:g} -> {write.new_value:g}, "
            f"balance {write.old_balance:g} -> {write.new_balance:g}",
            extra_fields={"delta": delta, "version": write.version},
        )
        get_metrics().record_delta_applied(column, delta)

        await self._publish(
            ReconciliationEventType.DELTA_APPLIED,
            fuel_record_id=fuel_record_id, field=column, liters=delta,
            source_type=source_type, source_id=source_id, actor=actor,
            details={
                "old_value": write.old_value,
                "new_value": write.new_value,
                "old_balance": write.old_balance,
                "new_balance": write.new_balance,
            },
        )

        return DeltaResult(
            applied=True,
            fuel_record_id=fuel_record_id,
            field=column,
            delta=delta,
            old_value=write.old_value,
            new_value=write.new_value,
            old_balance=write.old_balance,
            new_balance=write.new_balance,
        )

    async def reconcile_station_delta(
        self,
        do_number: Optional[str],
        truck_no: str,
        station: str,
        liters_delta: float,
        source_type: Optional[str] = "lpo_entry",
        source_id: Optional[Any] = None,
        actor: str = "system",
    ) -> ReconciliationOutcome:
        """Resolve the fuel record for a station purchase and apply the delta.

        Never raises for reconciliation failures; the outcome status says
        what happened.
        """
        with with_correlation(truck_no=truck_no, do_number=do_number):
            if liters_delta == 0:
                get_metrics().record_outcome(OutcomeStatus.NO_CHANGE.value)
                return ReconciliationOutcome(status=OutcomeStatus.NO_CHANGE)

            pair = self.station_map.get(station)
            if pair is None:
                logger.warning(f"Unknown station {station!r}, {liters_delta:+g}L not applied")
                get_metrics().record_outcome(OutcomeStatus.UNKNOWN_STATION.value)
                await self._publish(
                    ReconciliationEventType.UNKNOWN_STATION,
                    truck_no=truck_no, do_number=do_number, station=station, liters=liters_delta,
                    source_type=source_type, source_id=source_id, actor=actor,
                )
                return ReconciliationOutcome(status=OutcomeStatus.UNKNOWN_STATION, delta=liters_delta)

            resolution = await self.resolver.resolve(do_number=do_number, truck_no=truck_no)

            if resolution.journey_complete:
                get_metrics().record_outcome(OutcomeStatus.JOURNEY_COMPLETE.value)
                await self._publish(
                    ReconciliationEventType.JOURNEY_COMPLETE,
                    truck_no=truck_no, do_number=do_number, station=station, liters=liters_delta,
                    fuel_record_id=resolution.fuel_record.id,
                    source_type=source_type, source_id=source_id, actor=actor,
                )
                return ReconciliationOutcome(
                    status=OutcomeStatus.JOURNEY_COMPLETE,
                    fuel_record_id=resolution.fuel_record.id,
                    match_type=resolution.match_type,
                    delta=liters_delta,
                )

            if not resolution.found:
                logger.warning(f"No fuel record for DO {do_number or '-'} / truck {truck_no}, entry left pending")
                return await self._pending(do_number, truck_no, station, liters_delta,
                                           source_type, source_id, actor, resolution.match_type)

            column = pair.for_direction(resolution.direction)
            result = await self.apply_delta(
                resolution.fuel_record.id, column, liters_delta,
                source_type=source_type, source_id=source_id, actor=actor,
            )
            if not result.applied:
                return await self._pending(do_number, truck_no, station, liters_delta,
                                           source_type, source_id, actor, resolution.match_type)

            return ReconciliationOutcome(
                status=OutcomeStatus.APPLIED,
                fuel_record_id=resolution.fuel_record.id,
                field=column,
                direction=resolution.direction,
                match_type=resolution.match_type,
                delta=liters_delta,
                result=result,
            )

    async def apply_yard_delta(
        self,
        fuel_record_id: int,
        yard: str,
        liters_delta: float,
        source_id: Optional[Any] = None,
        actor: str = "system",
    ) -> DeltaResult:
        """Apply a yard dispense delta to the yard's column."""
        column = self.station_map.yard_field(yard)
        if column is None:
            logger.warning(f"Unknown yard {yard!r}, {liters_delta:+g}L not applied",
                           extra_fields={"fuel_record_id": fuel_record_id})
            return DeltaResult(applied=False, fuel_record_id=fuel_record_id, delta=liters_delta,
                               reason="unknown_yard")
        return await self.apply_delta(
            fuel_record_id, column, liters_delta,
            source_type="yard_fuel", source_id=source_id, actor=actor,
        )

    async def _pending(self, do_number, truck_no, station, liters_delta, source_type, source_id,
                       actor, match_type) -> ReconciliationOutcome:
        get_metrics().record_outcome(OutcomeStatus.PENDING.value)
        await self._publish(
            ReconciliationEventType.ENTRY_PENDING,
            truck_no=truck_no, do_number=do_number, station=station, liters=liters_delta,
            source_type=source_type, source_id=source_id, actor=actor,
        )
        return ReconciliationOutcome(status=OutcomeStatus.PENDING, match_type=match_type, delta=liters_delta)

    async def _publish(self, event_type: ReconciliationEventType, **fields) -> None:
        await self.event_bus.publish(ReconciliationEvent(event_type=event_type, **fields))
