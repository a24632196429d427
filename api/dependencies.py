"""Service wiring and request dependencies.

`build_services` creates one set of services per application; the routers
reach them through `get_services`. The acting user comes from the
`X-Actor` header.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from fastapi import Header, HTTPException, Request

from checkpoints import init_checkpoints_db
from core.audit import AuditLogger, JSONFileAuditBackend
from core.config import Settings
from core.errors import FuelLogisticsError
from fuel_records import init_fuel_records_db
from fuel_records.service import FuelRecordService
from lpo import init_lpo_db
from lpo.service import LPOService
from notifications import NotificationService, SlackConfig, SlackNotifier, init_notifications_db
from reconciliation import (
    EventBus,
    FuelRecordResolver,
    ReconciliationAuditor,
    ReconciliationEngine,
    load_station_map,
)
from yard_fuel import YardFuelLinker, init_yard_fuel_db


@dataclass
class AppServices:
    settings: Settings
    db_path: Path
    audit: AuditLogger
    event_bus: EventBus
    engine: ReconciliationEngine
    linker: YardFuelLinker
    fuel_records: FuelRecordService
    lpo: LPOService
    notifications: NotificationService


def init_databases(db_path: Path) -> None:
    """Create every table the services use (idempotent)."""
    init_fuel_records_db(db_path)
    init_yard_fuel_db(db_path)
    init_lpo_db(db_path)
    init_checkpoints_db(db_path)
    init_notifications_db(db_path)


def build_services(settings: Settings) -> AppServices:
    db_path = settings.db_path
    init_databases(db_path)

    audit = AuditLogger()
    audit.add_backend(JSONFileAuditBackend(settings.audit_dir))

    event_bus = EventBus()
    engine = ReconciliationEngine(
        db_path=db_path,
        station_map=load_station_map(settings.station_map_path),
        resolver=FuelRecordResolver(db_path),
        event_bus=event_bus,
    )
    linker = YardFuelLinker(engine, db_path, audit=audit,
                            rejection_resolve_days=settings.rejection_resolve_days)
    fuel_records = FuelRecordService(linker, db_path, event_bus=event_bus, audit=audit,
                                     max_conflict_retries=settings.max_conflict_retries)
    lpo = LPOService(engine, db_path, audit=audit)

    slack = None
    if settings.slack_webhook_url:
        slack = SlackNotifier(SlackConfig(webhook_url=settings.slack_webhook_url))
    notifications = NotificationService(db_path, slack=slack)

    event_bus.subscribe(ReconciliationAuditor(audit))
    event_bus.subscribe(notifications.handle_event)
    event_bus.subscribe(fuel_records.handle_event)

    return AppServices(
        settings=settings,
        db_path=db_path,
        audit=audit,
        event_bus=event_bus,
        engine=engine,
        linker=linker,
        fuel_records=fuel_records,
        lpo=lpo,
        notifications=notifications,
    )


def get_services(request: Request) -> AppServices:
    return request.app.state.services


def get_actor(x_actor: Optional[str] = Header(None)) -> str:
    """Acting user for audit and history entries."""
    return (x_actor or "").strip() or "system"


def to_http_exception(error: FuelLogisticsError) -> HTTPException:
    detail = {"message": error.message, **error.details} if error.details else error.message
    return HTTPException(status_code=error.status_code, detail=detail)
