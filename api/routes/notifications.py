"""Notification endpoints."""

from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, Query

from api.dependencies import AppServices, get_actor, get_services, to_http_exception
from core.errors import FuelLogisticsError
from notifications import Notification, NotificationStatus


router = APIRouter()


@router.get("", response_model=List[Notification])
async def list_notifications(
    status: Optional[NotificationStatus] = None,
    unread_only: bool = False,
    limit: int = Query(100, ge=1, le=1000),
    services: AppServices = Depends(get_services),
) -> List[Notification]:
    """Newest first."""
    return services.notifications.list_recent(status=status, unread_only=unread_only, limit=limit)


@router.get("/unread-count")
async def unread_count(services: AppServices = Depends(get_services)) -> Dict[str, int]:
    return {"count": services.notifications.unread_count()}


@router.post("/read-all")
async def mark_all_read(services: AppServices = Depends(get_services)) -> Dict[str, int]:
    return {"updated": services.notifications.mark_all_read()}


@router.post("/{notification_id}/read", response_model=Notification)
async def mark_read(notification_id: int, services: AppServices = Depends(get_services)) -> Notification:
    try:
        return services.notifications.mark_read(notification_id)
    except FuelLogisticsError as e:
        raise to_http_exception(e)


@router.post("/{notification_id}/dismiss", response_model=Notification)
async def dismiss(
    notification_id: int,
    services: AppServices = Depends(get_services),
    actor: str = Depends(get_actor),
) -> Notification:
    try:
        return services.notifications.dismiss(notification_id, actor=actor)
    except FuelLogisticsError as e:
        raise to_http_exception(e)
