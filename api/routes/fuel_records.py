"""Fuel record endpoints.

Handles journeys (fuel records) and their queue per truck.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from api.dependencies import AppServices, get_actor, get_services, to_http_exception
from core.errors import FuelLogisticsError
from fuel_records.models import (
    FuelRecord,
    FuelRecordCreate,
    FuelRecordPage,
    FuelRecordUpdate,
    JourneyStatus,
    MonthlyFuelSummary,
)


router = APIRouter()


class CancelFuelRecordRequest(BaseModel):
    reason: str = ""


@router.get("", response_model=FuelRecordPage)
async def list_fuel_records(
    truck_no: Optional[str] = None,
    month: Optional[str] = None,
    journey_status: Optional[JourneyStatus] = None,
    include_cancelled: bool = True,
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=500),
    services: AppServices = Depends(get_services),
) -> FuelRecordPage:
    """List fuel records with optional filtering."""
    items, total = services.fuel_records.list_records(
        truck_no=truck_no,
        month=month,
        journey_status=journey_status,
        include_cancelled=include_cancelled,
        page=page,
        page_size=page_size,
    )
    return FuelRecordPage(items=items, total=total, page=page, page_size=page_size)


@router.post("", response_model=FuelRecord, status_code=201)
async def create_fuel_record(
    payload: FuelRecordCreate,
    services: AppServices = Depends(get_services),
    actor: str = Depends(get_actor),
) -> FuelRecord:
    """Create a fuel record; pending yard fuel for the truck is linked when it is active."""
    try:
        return await services.fuel_records.create_fuel_record(payload, actor=actor)
    except FuelLogisticsError as e:
        raise to_http_exception(e)


@router.get("/summary/monthly", response_model=MonthlyFuelSummary)
async def monthly_summary(
    month: Optional[str] = None,
    services: AppServices = Depends(get_services),
) -> MonthlyFuelSummary:
    return services.fuel_records.monthly_summary(month)


@router.get("/truck/{truck_no}", response_model=List[FuelRecord])
async def fuel_records_by_truck(truck_no: str, services: AppServices = Depends(get_services)) -> List[FuelRecord]:
    """All journeys of a truck, newest first."""
    return services.fuel_records.by_truck(truck_no)


@router.get("/do/{do_number}", response_model=FuelRecord)
async def fuel_record_by_do(do_number: str, services: AppServices = Depends(get_services)) -> FuelRecord:
    try:
        return services.fuel_records.by_do(do_number)
    except FuelLogisticsError as e:
        raise to_http_exception(e)


@router.get("/{record_id}", response_model=FuelRecord)
async def get_fuel_record(record_id: int, services: AppServices = Depends(get_services)) -> FuelRecord:
    """Get a specific fuel record by ID."""
    try:
        return services.fuel_records.get(record_id)
    except FuelLogisticsError as e:
        raise to_http_exception(e)


@router.put("/{record_id}", response_model=FuelRecord)
async def update_fuel_record(
    record_id: int,
    payload: FuelRecordUpdate,
    services: AppServices = Depends(get_services),
    actor: str = Depends(get_actor),
) -> FuelRecord:
    """Manual correction; the balance is recomputed from the final values."""
    try:
        return await services.fuel_records.update_fuel_record(record_id, payload, actor=actor)
    except FuelLogisticsError as e:
        raise to_http_exception(e)


@router.post("/{record_id}/cancel", response_model=FuelRecord)
async def cancel_fuel_record(
    record_id: int,
    request: CancelFuelRecordRequest,
    services: AppServices = Depends(get_services),
    actor: str = Depends(get_actor),
) -> FuelRecord:
    try:
        return await services.fuel_records.cancel_fuel_record(record_id, reason=request.reason, actor=actor)
    except FuelLogisticsError as e:
        raise to_http_exception(e)


@router.delete("/{record_id}", status_code=204)
async def delete_fuel_record(
    record_id: int,
    services: AppServices = Depends(get_services),
    actor: str = Depends(get_actor),
) -> None:
    try:
        await services.fuel_records.delete_fuel_record(record_id, actor=actor)
    except FuelLogisticsError as e:
        raise to_http_exception(e)

