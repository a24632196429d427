"""LPO entry endpoints (flat list of truck lines)."""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from api.dependencies import AppServices, get_actor, get_services, to_http_exception
from core.errors import FuelLogisticsError
from lpo.models import LPOEntry, LPOEntryCreate, LPOEntryUpdate, ReconciliationStatus


router = APIRouter()


class CancelEntryRequest(BaseModel):
    cancellation_point: Optional[str] = None


@router.get("", response_model=List[LPOEntry])
async def list_lpo_entries(
    lpo_no: Optional[str] = None,
    truck_no: Optional[str] = None,
    station: Optional[str] = None,
    status: Optional[ReconciliationStatus] = None,
    limit: int = Query(500, ge=1, le=5000),
    services: AppServices = Depends(get_services),
) -> List[LPOEntry]:
    return services.lpo.list_entries(lpo_no=lpo_no, truck_no=truck_no, station=station,
                                     status=status, limit=limit)


@router.post("", response_model=LPOEntry, status_code=201)
async def create_lpo_entry(
    payload: LPOEntryCreate,
    services: AppServices = Depends(get_services),
    actor: str = Depends(get_actor),
) -> LPOEntry:
    """Create an entry and apply its liters to the matching fuel record."""
    try:
        return await services.lpo.create_entry(payload, actor=actor)
    except FuelLogisticsError as e:
        raise to_http_exception(e)


@router.post("/retry-pending", response_model=List[LPOEntry])
async def retry_pending_entries(
    services: AppServices = Depends(get_services),
    actor: str = Depends(get_actor),
) -> List[LPOEntry]:
    """Re-run reconciliation for entries still waiting for a fuel record."""
    return await services.lpo.retry_pending_entries(actor=actor)


@router.get("/{entry_id}", response_model=LPOEntry)
async def get_lpo_entry(entry_id: int, services: AppServices = Depends(get_services)) -> LPOEntry:
    try:
        return services.lpo.get_entry(entry_id)
    except FuelLogisticsError as e:
        raise to_http_exception(e)


@router.put("/{entry_id}", response_model=LPOEntry)
async def update_lpo_entry(
    entry_id: int,
    payload: LPOEntryUpdate,
    services: AppServices = Depends(get_services),
    actor: str = Depends(get_actor),
) -> LPOEntry:
    """Amend an entry; only the liters difference reaches the fuel record."""
    try:
        return await services.lpo.update_entry(entry_id, payload, actor=actor)
    except FuelLogisticsError as e:
        raise to_http_exception(e)


@router.post("/{entry_id}/cancel", response_model=LPOEntry)
async def cancel_lpo_entry(
    entry_id: int,
    request: CancelEntryRequest,
    services: AppServices = Depends(get_services),
    actor: str = Depends(get_actor),
) -> LPOEntry:
    try:
        return await services.lpo.cancel_entry(entry_id, request.cancellation_point, actor=actor)
    except FuelLogisticsError as e:
        raise to_http_exception(e)


@router.delete("/{entry_id}", response_model=LPOEntry)
async def delete_lpo_entry(
    entry_id: int,
    services: AppServices = Depends(get_services),
    actor: str = Depends(get_actor),
) -> LPOEntry:
    try:
        return await services.lpo.delete_entry(entry_id, actor=actor)
    except FuelLogisticsError as e:
        raise to_http_exception(e)
