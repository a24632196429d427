"""Checkpoint endpoints (route reference data)."""

from typing import Dict, List

from fastapi import APIRouter, Depends

from api.dependencies import AppServices, get_actor, get_services, to_http_exception
from checkpoints import (
    Checkpoint,
    CheckpointCreate,
    CheckpointReorder,
    CheckpointUpdate,
    create_checkpoint,
    delete_checkpoint,
    get_checkpoint,
    list_checkpoints,
    reorder_checkpoints,
    update_checkpoint,
)
from core.audit import AuditEventType
from core.errors import FuelLogisticsError, NotFoundError


router = APIRouter()

RESOURCE_TYPE = "Checkpoint"


@router.get("", response_model=List[Checkpoint])
async def list_all_checkpoints(
    include_inactive: bool = False,
    services: AppServices = Depends(get_services),
) -> List[Checkpoint]:
    """Checkpoints in route order."""
    return list_checkpoints(services.db_path, include_inactive=include_inactive)


@router.post("", response_model=Checkpoint, status_code=201)
async def create_new_checkpoint(
    payload: CheckpointCreate,
    services: AppServices = Depends(get_services),
    actor: str = Depends(get_actor),
) -> Checkpoint:
    try:
        checkpoint = create_checkpoint(payload, created_by=actor, db_path=services.db_path)
    except FuelLogisticsError as e:
        raise to_http_exception(e)
    services.audit.log_create(RESOURCE_TYPE, checkpoint.id, checkpoint.model_dump(mode="json", by_alias=True),
                              actor=actor)
    return checkpoint


@router.put("/reorder")
async def reorder(
    request: CheckpointReorder,
    services: AppServices = Depends(get_services),
    actor: str = Depends(get_actor),
) -> Dict[str, int]:
    """Bulk position update, e.g. after drag-and-drop in the admin UI."""
    try:
        updated = reorder_checkpoints(request.checkpoints, db_path=services.db_path)
    except FuelLogisticsError as e:
        raise to_http_exception(e)
    services.audit.log_info(
        AuditEventType.CHECKPOINTS_REORDERED,
        f"{updated} checkpoints reordered",
        resource_type=RESOURCE_TYPE,
        details={"positions": [p.model_dump() for p in request.checkpoints]},
        actor=actor,
    )
    return {"updated": updated}


@router.get("/{checkpoint_id}", response_model=Checkpoint)
async def get_one_checkpoint(checkpoint_id: int, services: AppServices = Depends(get_services)) -> Checkpoint:
    checkpoint = get_checkpoint(checkpoint_id, db_path=services.db_path)
    if checkpoint is None:
        raise to_http_exception(NotFoundError(f"Checkpoint {checkpoint_id} not found"))
    return checkpoint


@router.put("/{checkpoint_id}", response_model=Checkpoint)
async def update_one_checkpoint(
    checkpoint_id: int,
    payload: CheckpointUpdate,
    services: AppServices = Depends(get_services),
    actor: str = Depends(get_actor),
) -> Checkpoint:
    """Update display fields; name and order are not changed here."""
    previous = get_checkpoint(checkpoint_id, db_path=services.db_path)
    try:
        checkpoint = update_checkpoint(checkpoint_id, payload, db_path=services.db_path)
    except FuelLogisticsError as e:
        raise to_http_exception(e)
    services.audit.log_update(
        RESOURCE_TYPE, checkpoint_id,
        previous.model_dump(mode="json", by_alias=True),
        checkpoint.model_dump(mode="json", by_alias=True),
        actor=actor,
    )
    return checkpoint


@router.delete("/{checkpoint_id}", response_model=Checkpoint)
async def delete_one_checkpoint(
    checkpoint_id: int,
    services: AppServices = Depends(get_services),
    actor: str = Depends(get_actor),
) -> Checkpoint:
    try:
        checkpoint = delete_checkpoint(checkpoint_id, db_path=services.db_path)
    except FuelLogisticsError as e:
        raise to_http_exception(e)
    services.audit.log_delete(RESOURCE_TYPE, checkpoint_id, checkpoint.model_dump(mode="json", by_alias=True),
                              actor=actor)
    return checkpoint
