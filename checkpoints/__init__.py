"""Checkpoints - ordered route waypoints (reference data).

Usage:
    from checkpoints import create_checkpoint, CheckpointCreate

    create_checkpoint(
        CheckpointCreate(name="TUNDUMA", display_name="Tunduma", region="Mbeya",
                         country="Tanzania", insert_after="MBEYA"),
        created_by="admin",
    )
"""

from checkpoints.db import (
    create_checkpoint,
    delete_checkpoint,
    get_checkpoint,
    init_checkpoints_db,
    list_checkpoints,
    reorder_checkpoints,
    update_checkpoint,
)
from checkpoints.models import (
    Checkpoint,
    CheckpointCreate,
    CheckpointPosition,
    CheckpointReorder,
    CheckpointUpdate,
)

# __all__ = [
#     "Checkpoint", "CheckpointCreate", "CheckpointUpdate",
#     "CheckpointPosition", "CheckpointReorder",
#     "init_checkpoints_db", "create_checkpoint", "update_checkpoint",
#     "delete_checkpoint", "reorder_checkpoints", "get_checkpoint", "list_checkpoints",
# ]
