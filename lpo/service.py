"""LPO bookkeeping.

Every LPO entry keeps its fuel record in step through one operation,
`_sync_entry`: it moves the liters already applied by the entry to the
liters the entry should now have applied (0 when cancelled, deleted or
charged to the driver). Because the difference is always applied to the
remembered record and column, create, edit and delete net to zero.

Entries that could not be matched to a fuel record stay `pending` and are
retried on their next change or by `retry_pending_entries`.
"""

from datetime import datetime
from typing import Dict, List, Optional

from core.audit import AuditLogger
from core.db import DbPath
from core.errors import NotFoundError, ValidationError
from core.normalize import format_truck_no, is_truck_no_match, normalize_station
from core.observability.logging import get_logger, with_correlation
from fuel_records.models import month_label
from lpo.db import (
    cancel_driver_account_entries,
    get_entry,
    get_summary,
    get_summary_by_lpo_no,
    insert_driver_account_entry,
    insert_entry,
    insert_summary,
    list_driver_account_entries,
    list_entries,
    list_summaries,
    lpo_number_exists,
    next_lpo_number,
    update_entry,
    update_summary,
)
from lpo.models import (
    DEFAULT_CANCELLATION_POINT,
    DriverAccountEntry,
    LPOEntry,
    LPOEntryCreate,
    LPOEntryUpdate,
    LPOLine,
    LPOSummary,
    LPOSummaryCreate,
    LPOSummaryUpdate,
    ReconciliationStatus,
)
from reconciliation.engine import OutcomeStatus, ReconciliationEngine

logger = get_logger(__name__)

ENTRY_RESOURCE = "LPOEntry"
SUMMARY_RESOURCE = "LPOSummary"

OUTCOME_TO_STATUS = {
    OutcomeStatus.PENDING: ReconciliationStatus.PENDING,
    OutcomeStatus.JOURNEY_COMPLETE: ReconciliationStatus.JOURNEY_COMPLETE,
    OutcomeStatus.UNKNOWN_STATION: ReconciliationStatus.UNKNOWN_STATION,
}


class LPOService:
    """LPO entries and documents, reconciled against fuel records.

    Example:
        service = LPOService(engine, db_path)
        entry = await service.create_entry(LPOEntryCreate(
            lpo_no="2444", date=date.today(), station="LAKE NDOLA",
            do_no="DO123", truck_no="T100 ABC", liters=100, rate=1.2,
        ))
        print(entry.reconciliation_status)  # applied / pending / ...
    """

    def __init__(
        self,
        engine: ReconciliationEngine,
        db_path: DbPath = None,
        audit: Optional[AuditLogger] = None,
    ):
        self.engine = engine
        self.db_path = db_path
        self.audit = audit or AuditLogger()

    # =========================================================================
    # Reconciliation of one entry
    # =========================================================================

    async def _sync_entry(self, entry: LPOEntry, actor: str) -> LPOEntry:
        """Bring the entry's applied liters to its target liters."""
        target = entry.target_liters
        delta = target - entry.applied_liters

        with with_correlation(truck_no=entry.truck_no, do_number=entry.do_no, lpo_no=entry.lpo_no):
            if entry.fuel_record_id and entry.fuel_field:
                if delta == 0:
                    return entry
                result = await self.engine.apply_delta(
                    entry.fuel_record_id, entry.fuel_field, delta,
                    source_type="lpo_entry", source_id=entry.id, actor=actor,
                )
                if not result.applied:
                    logger.warning(
                        f"LPO entry {entry.id}: fuel record {entry.fuel_record_id} no longer accepts deltas "
                        f"({result.reason}), {delta:+g}L not applied"
                    )
                    return entry
                applied = entry.applied_liters + delta
                values = {
                    "applied_liters": applied,
                    "reconciliation_status": ReconciliationStatus.APPLIED if target else ReconciliationStatus.NONE,
                }
                if applied == 0:
                    values.update({"fuel_record_id": None, "fuel_field": None})
                return update_entry(entry.id, values, db_path=self.db_path)

            if target == 0:
                return update_entry(entry.id, {"reconciliation_status": ReconciliationStatus.NONE},
                                    db_path=self.db_path)

            outcome = await self.engine.reconcile_station_delta(
                entry.do_no, entry.truck_no, entry.station, target,
                source_type="lpo_entry", source_id=entry.id, actor=actor,
            )
            if outcome.status == OutcomeStatus.APPLIED:
                return update_entry(entry.id, {
                    "fuel_record_id": outcome.fuel_record_id,
                    "fuel_field": outcome.field,
                    "applied_liters": target,
                    "reconciliation_status": ReconciliationStatus.APPLIED,
                }, db_path=self.db_path)

            status = OUTCOME_TO_STATUS.get(outcome.status, ReconciliationStatus.NONE)
            return update_entry(entry.id, {"reconciliation_status": status}, db_path=self.db_path)

    # =========================================================================
    # Entries
    # =========================================================================

    async def create_entry(self, payload: LPOEntryCreate, actor: str = "system") -> LPOEntry:
        values = payload.model_dump()
        values["truck_no"] = format_truck_no(payload.truck_no)
        values["station"] = normalize_station(payload.station)
        values["do_no"] = payload.do_no.strip()
        if payload.is_cancelled:
            values["cancelled_at"] = datetime.utcnow()

        entry = insert_entry(values, db_path=self.db_path)
        self.audit.log_create(ENTRY_RESOURCE, entry.id, _audit_view(entry), actor=actor)

        if entry.is_driver_account and not entry.is_cancelled:
            self._record_driver_account(entry, actor)
        return await self._sync_entry(entry, actor)

    async def update_entry(self, entry_id: int, payload: LPOEntryUpdate, actor: str = "system") -> LPOEntry:
        entry = self._get_entry_or_raise(entry_id)
        changes = {k: v for k, v in payload.model_dump(exclude_unset=True).items() if v is not None}

        if "liters" in changes and changes["liters"] != entry.liters:
            changes["original_liters"] = entry.original_liters if entry.original_liters is not None else entry.liters
            changes["amended_at"] = datetime.utcnow()
            if "amount" not in changes:
                changes["amount"] = round(changes["liters"] * changes.get("rate", entry.rate), 2)
        elif "rate" in changes and "amount" not in changes:
            changes["amount"] = round(entry.liters * changes["rate"], 2)

        updated = update_entry(entry_id, changes, db_path=self.db_path)
        updated = await self._sync_entry(updated, actor)
        self.audit.log_update(ENTRY_RESOURCE, entry_id, _audit_view(entry), _audit_view(updated), actor=actor)
        return updated

    async def cancel_entry(
        self,
        entry_id: int,
        cancellation_point: Optional[str] = None,
        actor: str = "system",
    ) -> LPOEntry:
        entry = self._get_entry_or_raise(entry_id)
        if entry.is_cancelled:
            raise ValidationError(f"LPO entry {entry_id} is already cancelled")
        return await self._cancel(entry, cancellation_point, actor)

    async def _cancel(self, entry: LPOEntry, cancellation_point: Optional[str], actor: str) -> LPOEntry:
        updated = update_entry(entry.id, {
            "is_cancelled": True,
            "cancelled_at": datetime.utcnow(),
            "cancellation_point": cancellation_point or entry.cancellation_point,
        }, db_path=self.db_path)
        updated = await self._sync_entry(updated, actor)
        self.audit.log_update(ENTRY_RESOURCE, entry.id, _audit_view(entry), _audit_view(updated), actor=actor)
        return updated

    async def delete_entry(self, entry_id: int, actor: str = "system") -> LPOEntry:
        entry = self._get_entry_or_raise(entry_id)
        deleted = await self._delete(entry, actor)
        self.audit.log_delete(ENTRY_RESOURCE, entry_id, _audit_view(entry), actor=actor)
        return deleted

    async def _delete(self, entry: LPOEntry, actor: str) -> LPOEntry:
        deleted = update_entry(entry.id, {"is_deleted": True, "deleted_at": datetime.utcnow()},
                               db_path=self.db_path)
        return await self._sync_entry(deleted, actor)

    async def retry_pending_entries(self, actor: str = "system") -> List[LPOEntry]:
        """Retry reconciliation for entries still waiting for a fuel record.

        Returns:
            Entries that were applied on this pass
        """
        applied = []
        for entry in list_entries(db_path=self.db_path, status=ReconciliationStatus.PENDING):
            synced = await self._sync_entry(entry, actor)
            if synced.reconciliation_status == ReconciliationStatus.APPLIED:
                applied.append(synced)
        if applied:
            logger.info(f"Applied {len(applied)} pending LPO entries")
        return applied

    def get_entry(self, entry_id: int) -> LPOEntry:
        return self._get_entry_or_raise(entry_id)

    def list_entries(self, **filters) -> List[LPOEntry]:
        return list_entries(db_path=self.db_path, **filters)

    # =========================================================================
    # LPO documents
    # =========================================================================

    async def create_summary(self, payload: LPOSummaryCreate, actor: str = "system") -> LPOSummary:
        lpo_no = (payload.lpo_no or "").strip() or next_lpo_number(db_path=self.db_path)
        if lpo_number_exists(lpo_no, db_path=self.db_path):
            raise ValidationError(f"LPO {lpo_no} already exists", details={"lpoNo": lpo_no})

        station = normalize_station(payload.station)
        summary_id = insert_summary({
            "lpo_no": lpo_no,
            "date": payload.date,
            "year": payload.date.year,
            "station": station,
            "order_of": payload.order_of,
            "total": _total(payload.entries),
            "created_by": actor,
        }, db_path=self.db_path)

        with with_correlation(lpo_no=lpo_no, actor=actor):
            for line in payload.entries:
                await self._add_line(lpo_no, payload.date, station, line, actor)
            logger.info(f"LPO document created: {lpo_no} with {len(payload.entries)} entries")

        summary = get_summary(summary_id, db_path=self.db_path)
        self.audit.log_create(SUMMARY_RESOURCE, summary_id, _summary_view(summary), actor=actor)
        return summary

    async def update_summary(self, summary_id: int, payload: LPOSummaryUpdate, actor: str = "system") -> LPOSummary:
        """Update header fields and diff the lines against the stored entries.

        Lines are paired by "doNo-truckNo":
        - removed line: entry deleted, its liters reverted
        - newly cancelled: liters reverted
        - converted to driver account: liters reverted, driver account entry recorded
        - liters changed: difference applied, original liters kept for amendment tracking
        - new line: entry created and applied
        """
        existing = self._get_summary_or_raise(summary_id)
        date = payload.date or existing.date
        station = normalize_station(payload.station) if payload.station else existing.station

        with with_correlation(lpo_no=existing.lpo_no, actor=actor):
            if payload.entries is not None:
                await self._diff_lines(existing, payload.entries, date, station, actor)
            elif payload.date or payload.station:
                for entry in existing.entries:
                    update_entry(entry.id, {"date": date, "station": station}, db_path=self.db_path)

            header = {"date": date, "year": date.year, "station": station}
            if payload.order_of is not None:
                header["order_of"] = payload.order_of
            refreshed = get_summary(summary_id, db_path=self.db_path)
            header["total"] = sum(e.amount for e in refreshed.entries if not e.is_cancelled)
            update_summary(summary_id, header, db_path=self.db_path)

        updated = get_summary(summary_id, db_path=self.db_path)
        self.audit.log_update(SUMMARY_RESOURCE, summary_id, _summary_view(existing), _summary_view(updated),
                              actor=actor)
        logger.info(f"LPO document updated: {updated.lpo_no}")
        return updated

    async def _diff_lines(
        self,
        existing: LPOSummary,
        lines: List[LPOLine],
        date,
        station: str,
        actor: str,
    ) -> None:
        old_entries: Dict[str, LPOEntry] = {e.key: e for e in existing.entries}
        new_lines: Dict[str, LPOLine] = {line.key: line for line in lines}

        for key, old in old_entries.items():
            line = new_lines.get(key)
            if line is None:
                logger.info(f"Entry removed: {key}, reverting {old.applied_liters:g}L")
                await self._delete(old, actor)
                continue

            values = {
                "date": date,
                "station": station,
                "rate": line.rate,
                "amount": line.amount,
                "dest": line.dest,
                "is_cancelled": line.is_cancelled,
                "is_driver_account": line.is_driver_account,
                "cancellation_point": line.cancellation_point,
                "original_do_no": line.original_do_no,
            }
            if line.is_cancelled and not old.is_cancelled:
                logger.info(f"Entry cancelled: {key}, reverting {old.applied_liters:g}L")
                values["cancelled_at"] = datetime.utcnow()
            elif not line.is_cancelled and old.is_cancelled:
                values["cancelled_at"] = None

            if line.liters != old.liters:
                logger.info(f"Entry {key} liters changed: {old.liters:g} -> {line.liters:g}")
                values["liters"] = line.liters
                values["original_liters"] = old.original_liters if old.original_liters is not None else old.liters
                values["amended_at"] = datetime.utcnow()

            entry = update_entry(old.id, values, db_path=self.db_path)

            if line.is_driver_account and not old.is_driver_account and not line.is_cancelled:
                logger.info(f"Entry converted to driver account: {key}")
                self._record_driver_account(entry, actor)
            elif old.is_driver_account and not line.is_driver_account:
                cancel_driver_account_entries(entry.lpo_no, entry.truck_no, db_path=self.db_path)

            await self._sync_entry(entry, actor)

        for key, line in new_lines.items():
            if key not in old_entries:
                logger.info(f"New entry: {key}, adding {line.liters:g}L")
                await self._add_line(existing.lpo_no, date, station, line, actor)

    async def delete_summary(self, summary_id: int, actor: str = "system") -> None:
        """Soft-delete an LPO document and revert all of its entries."""
        existing = self._get_summary_or_raise(summary_id)
        with with_correlation(lpo_no=existing.lpo_no, actor=actor):
            for entry in existing.entries:
                await self._delete(entry, actor)
            update_summary(summary_id, {"is_deleted": True, "deleted_at": datetime.utcnow()},
                           db_path=self.db_path)
        self.audit.log_delete(SUMMARY_RESOURCE, summary_id, _summary_view(existing), actor=actor)
        logger.info(f"LPO document deleted: {existing.lpo_no}")

    async def cancel_truck(
        self,
        lpo_no: str,
        truck_no: str,
        cancellation_point: Optional[str] = None,
        actor: str = "system",
    ) -> LPOEntry:
        """Cancel one truck's line in an LPO, reverting its liters."""
        summary = get_summary_by_lpo_no(lpo_no, db_path=self.db_path)
        if summary is None:
            raise NotFoundError(f"LPO {lpo_no} not found")

        entry = next((e for e in summary.entries if is_truck_no_match(e.truck_no, truck_no)), None)
        if entry is None:
            raise NotFoundError(f"Truck {truck_no} is not on LPO {lpo_no}")
        if entry.is_cancelled:
            raise ValidationError(f"Truck {entry.truck_no} is already cancelled on LPO {lpo_no}")

        cancelled = await self._cancel(entry, cancellation_point, actor)
        refreshed = get_summary(summary.id, db_path=self.db_path)
        update_summary(summary.id, {"total": sum(e.amount for e in refreshed.entries if not e.is_cancelled)},
                       db_path=self.db_path)
        return cancelled

    def get_summary(self, summary_id: int) -> LPOSummary:
        return self._get_summary_or_raise(summary_id)

    def get_summary_by_lpo_no(self, lpo_no: str) -> LPOSummary:
        summary = get_summary_by_lpo_no(lpo_no, db_path=self.db_path)
        if summary is None:
            raise NotFoundError(f"LPO {lpo_no} not found")
        return summary

    def next_lpo_number(self) -> str:
        return next_lpo_number(db_path=self.db_path)

    def list_summaries(self, **filters) -> List[LPOSummary]:
        return list_summaries(db_path=self.db_path, **filters)

    def list_driver_account_entries(self, **filters) -> List[DriverAccountEntry]:
        return list_driver_account_entries(db_path=self.db_path, **filters)

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _add_line(self, lpo_no: str, date, station: str, line: LPOLine, actor: str) -> LPOEntry:
        values = line.model_dump()
        values.update({
            "lpo_no": lpo_no,
            "date": date,
            "station": station,
            "truck_no": format_truck_no(line.truck_no),
            "do_no": line.do_no.strip(),
        })
        if line.is_cancelled:
            values["cancelled_at"] = datetime.utcnow()
            logger.info(f"Skipping fuel record update for cancelled entry: {values['truck_no']}")

        entry = insert_entry(values, db_path=self.db_path)
        if entry.is_driver_account and not entry.is_cancelled:
            self._record_driver_account(entry, actor)
        return await self._sync_entry(entry, actor)

    def _record_driver_account(self, entry: LPOEntry, actor: str) -> DriverAccountEntry:
        logger.info(f"Creating driver account entry for: {entry.truck_no}")
        return insert_driver_account_entry({
            "date": entry.date,
            "month": month_label(entry.date),
            "year": entry.date.year,
            "lpo_no": entry.lpo_no,
            "truck_no": entry.truck_no,
            "liters": entry.liters,
            "rate": entry.rate,
            "amount": entry.amount,
            "station": entry.station,
            "cancellation_point": entry.cancellation_point or DEFAULT_CANCELLATION_POINT,
            "original_do_no": entry.original_do_no or entry.do_no,
            "created_by": actor,
        }, db_path=self.db_path)

    def _get_entry_or_raise(self, entry_id: int) -> LPOEntry:
        entry = get_entry(entry_id, db_path=self.db_path)
        if entry is None:
            raise NotFoundError(f"LPO entry {entry_id} not found")
        return entry

    def _get_summary_or_raise(self, summary_id: int) -> LPOSummary:
        summary = get_summary(summary_id, db_path=self.db_path)
        if summary is None:
            raise NotFoundError(f"LPO document {summary_id} not found")
        return summary


def _total(lines: List[LPOLine]) -> float:
    return sum(line.amount or 0 for line in lines if not line.is_cancelled)


def _audit_view(entry: LPOEntry) -> dict:
    return entry.model_dump(mode="json", by_alias=True, exclude={"created_at", "updated_at"})


def _summary_view(summary: LPOSummary) -> dict:
    return summary.model_dump(mode="json", by_alias=True, exclude={"entries", "created_at", "updated_at"})
