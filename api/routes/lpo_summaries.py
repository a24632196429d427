"""LPO document endpoints.

An LPO summary is the header plus its truck lines. Updating a summary
diffs the old and new lines by DO number and truck, so only what changed
reaches the fuel records.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends

from api.dependencies import AppServices, get_actor, get_services, to_http_exception
from core.errors import FuelLogisticsError
from lpo.models import (
    CancelTruckRequest,
    DriverAccountEntry,
    LPOEntry,
    LPOSummary,
    LPOSummaryCreate,
    LPOSummaryUpdate,
    NextLPONumber,
)


router = APIRouter()


@router.get("", response_model=List[LPOSummary])
async def list_lpo_summaries(
    station: Optional[str] = None,
    year: Optional[int] = None,
    lpo_no: Optional[str] = None,
    services: AppServices = Depends(get_services),
) -> List[LPOSummary]:
    return services.lpo.list_summaries(station=station, year=year, lpo_no=lpo_no)


@router.post("", response_model=LPOSummary, status_code=201)
async def create_lpo_summary(
    payload: LPOSummaryCreate,
    services: AppServices = Depends(get_services),
    actor: str = Depends(get_actor),
) -> LPOSummary:
    try:
        return await services.lpo.create_summary(payload, actor=actor)
    except FuelLogisticsError as e:
        raise to_http_exception(e)


@router.get("/next-number", response_model=NextLPONumber)
async def next_lpo_number(services: AppServices = Depends(get_services)) -> NextLPONumber:
    """Next free LPO number (highest existing + 1)."""
    return NextLPONumber(next_lpo_no=services.lpo.next_lpo_number())


@router.get("/driver-account", response_model=List[DriverAccountEntry])
async def list_driver_account_entries(
    lpo_no: Optional[str] = None,
    truck_no: Optional[str] = None,
    services: AppServices = Depends(get_services),
) -> List[DriverAccountEntry]:
    return services.lpo.list_driver_account_entries(lpo_no=lpo_no, truck_no=truck_no)


@router.get("/by-number/{lpo_no}", response_model=LPOSummary)
async def get_lpo_summary_by_number(lpo_no: str, services: AppServices = Depends(get_services)) -> LPOSummary:
    try:
        return services.lpo.get_summary_by_lpo_no(lpo_no)
    except FuelLogisticsError as e:
        raise to_http_exception(e)


@router.post("/by-number/{lpo_no}/cancel-truck", response_model=LPOEntry)
async def cancel_truck(
    lpo_no: str,
    request: CancelTruckRequest,
    services: AppServices = Depends(get_services),
    actor: str = Depends(get_actor),
) -> LPOEntry:
    """Cancel one truck's line on an LPO and revert its liters."""
    try:
        return await services.lpo.cancel_truck(lpo_no, request.truck_no, request.cancellation_point, actor=actor)
    except FuelLogisticsError as e:
        raise to_http_exception(e)


@router.get("/{summary_id}", response_model=LPOSummary)
async def get_lpo_summary(summary_id: int, services: AppServices = Depends(get_services)) -> LPOSummary:
    try:
        return services.lpo.get_summary(summary_id)
    except FuelLogisticsError as e:
        raise to_http_exception(e)


@router.put("/{summary_id}", response_model=LPOSummary)
async def update_lpo_summary(
    summary_id: int,
    payload: LPOSummaryUpdate,
    services: AppServices = Depends(get_services),
    actor: str = Depends(get_actor),
) -> LPOSummary:
    try:
        return await services.lpo.update_summary(summary_id, payload, actor=actor)
    except FuelLogisticsError as e:
        raise to_http_exception(e)


@router.delete("/{summary_id}", status_code=204)
async def delete_lpo_summary(
    summary_id: int,
    services: AppServices = Depends(get_services),
    actor: str = Depends(get_actor),
) -> None:
    try:
        await services.lpo.delete_summary(summary_id, actor=actor)
    except FuelLogisticsError as e:
        raise to_http_exception(e)
