"""Yard fuel endpoints.

Dispenses recorded at company yards. A dispense links to the truck's
active fuel record immediately or waits as `pending` until one exists.
"""

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from api.dependencies import AppServices, get_actor, get_services, to_http_exception
from core.errors import FuelLogisticsError
from yard_fuel.models import (
    LinkPendingRequest,
    LinkSummary,
    YardFuelCreate,
    YardFuelDispense,
    YardFuelManualLink,
    YardFuelReject,
    YardFuelStatus,
    YardFuelUpdate,
    YardSummary,
)


router = APIRouter()


@router.get("", response_model=List[YardFuelDispense])
async def list_yard_fuel(
    status: Optional[YardFuelStatus] = None,
    yard: Optional[str] = None,
    truck_no: Optional[str] = None,
    include_deleted: bool = False,
    limit: int = Query(200, ge=1, le=2000),
    services: AppServices = Depends(get_services),
) -> List[YardFuelDispense]:
    """List dispenses, newest first. Rejected dispenses need include_deleted."""
    return services.linker.list_dispenses(status=status, yard=yard, truck_no=truck_no,
                                          include_deleted=include_deleted, limit=limit)


@router.post("", response_model=YardFuelDispense, status_code=201)
async def create_yard_fuel(
    payload: YardFuelCreate,
    services: AppServices = Depends(get_services),
    actor: str = Depends(get_actor),
) -> YardFuelDispense:
    try:
        return await services.linker.create_dispense(payload, actor=actor)
    except FuelLogisticsError as e:
        raise to_http_exception(e)


@router.get("/pending", response_model=List[YardFuelDispense])
async def list_pending_yard_fuel(services: AppServices = Depends(get_services)) -> List[YardFuelDispense]:
    return services.linker.list_dispenses(status=YardFuelStatus.PENDING)


@router.get("/summary", response_model=List[YardSummary])
async def yard_summary(services: AppServices = Depends(get_services)) -> List[YardSummary]:
    """Totals per yard."""
    return services.linker.summary()


@router.get("/rejections", response_model=List[YardFuelDispense])
async def rejection_history(
    yard: Optional[str] = None,
    show_resolved: bool = True,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    limit: int = Query(50, ge=1, le=500),
    services: AppServices = Depends(get_services),
) -> List[YardFuelDispense]:
    """Rejected dispenses, most recent first. show_resolved=false hides the ones a later link resolved."""
    return services.linker.rejection_history(yard=yard, show_resolved=show_resolved,
                                             date_from=date_from, date_to=date_to, limit=limit)


@router.post("/link-pending", response_model=LinkSummary)
async def link_pending(
    request: LinkPendingRequest,
    services: AppServices = Depends(get_services),
    actor: str = Depends(get_actor),
) -> LinkSummary:
    """Link every pending dispense of the fuel record's truck to that record."""
    try:
        return await services.linker.link_pending_for_truck(request.fuel_record_id, actor=actor)
    except FuelLogisticsError as e:
        raise to_http_exception(e)


@router.get("/{dispense_id}", response_model=YardFuelDispense)
async def get_yard_fuel(dispense_id: int, services: AppServices = Depends(get_services)) -> YardFuelDispense:
    try:
        return services.linker.get(dispense_id)
    except FuelLogisticsError as e:
        raise to_http_exception(e)


@router.put("/{dispense_id}", response_model=YardFuelDispense)
async def update_yard_fuel(
    dispense_id: int,
    payload: YardFuelUpdate,
    services: AppServices = Depends(get_services),
    actor: str = Depends(get_actor),
) -> YardFuelDispense:
    try:
        return await services.linker.update_dispense(dispense_id, payload, actor=actor)
    except FuelLogisticsError as e:
        raise to_http_exception(e)


@router.post("/{dispense_id}/reject", response_model=YardFuelDispense)
async def reject_yard_fuel(
    dispense_id: int,
    request: YardFuelReject,
    services: AppServices = Depends(get_services),
    actor: str = Depends(get_actor),
) -> YardFuelDispense:
    """Reject a dispense (reason required); a linked dispense is reversed."""
    try:
        return await services.linker.reject(dispense_id, request.reason, actor=actor)
    except FuelLogisticsError as e:
        raise to_http_exception(e)


@router.post("/{dispense_id}/link", response_model=YardFuelDispense)
async def link_yard_fuel(
    dispense_id: int,
    request: YardFuelManualLink,
    services: AppServices = Depends(get_services),
    actor: str = Depends(get_actor),
) -> YardFuelDispense:
    """Manually link a pending dispense to a chosen fuel record."""
    try:
        return await services.linker.link_manually(dispense_id, request.fuel_record_id, actor=actor)
    except FuelLogisticsError as e:
        raise to_http_exception(e)


@router.delete("/{dispense_id}", response_model=YardFuelDispense)
async def delete_yard_fuel(
    dispense_id: int,
    services: AppServices = Depends(get_services),
    actor: str = Depends(get_actor),
) -> YardFuelDispense:
    try:
        return await services.linker.delete_dispense(dispense_id, actor=actor)
    except FuelLogisticsError as e:
        raise to_http_exception(e)
