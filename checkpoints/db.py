"""Checkpoint Database Operations.

Checkpoints keep a dense 1..N order among non-deleted rows:
- create appends, takes an explicit position, or goes right after another
  checkpoint; later checkpoints shift down by one
- delete closes the gap
- reorder sets positions in bulk
"""

import json
import sqlite3
from typing import Any, Dict, List, Optional

from core.db import DbPath, default_db_path, get_db_connection, utc_now
from core.errors import NotFoundError, ValidationError
from core.normalize import normalize_station
from checkpoints.models import Checkpoint, CheckpointCreate, CheckpointPosition, CheckpointUpdate


def init_checkpoints_db(db_path: DbPath = None) -> None:
    """Initialize the checkpoints table."""
    db_path = db_path or default_db_path()
    conn = get_db_connection(db_path)
    try:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS checkpoints (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                display_name TEXT NOT NULL,
                sort_order INTEGER NOT NULL,
                region TEXT NOT NULL,
                country TEXT NOT NULL,
                is_active INTEGER NOT NULL DEFAULT 1,
                is_major INTEGER NOT NULL DEFAULT 0,
                fuel_available INTEGER NOT NULL DEFAULT 0,
                border_crossing INTEGER NOT NULL DEFAULT 0,
                alternative_names TEXT NOT NULL DEFAULT '[]',
                created_by TEXT,
                is_deleted INTEGER NOT NULL DEFAULT 0,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)
        conn.execute("CREATE INDEX IF NOT EXISTS idx_checkpoints_order ON checkpoints(is_deleted, sort_order)")
    finally:
        conn.close()


def _row_to_checkpoint(row: sqlite3.Row) -> Checkpoint:
    data = dict(row)
    data["order"] = data.pop("sort_order")
    data["alternative_names"] = json.loads(data["alternative_names"] or "[]")
    return Checkpoint.model_validate(data)


def _find_by_name(conn: sqlite3.Connection, name: str) -> Optional[sqlite3.Row]:
    return conn.execute(
        "SELECT * FROM checkpoints WHERE name = ? AND is_deleted = 0", (name,)
    ).fetchone()


def create_checkpoint(payload: CheckpointCreate, created_by: str = "system", db_path: DbPath = None) -> Checkpoint:
    """Insert a checkpoint, shifting later checkpoints when inserting mid-list.

    Raises:
        ValidationError: name already used
        NotFoundError: `insert_after` names an unknown checkpoint
    """
    db_path = db_path or default_db_path()
    name = normalize_station(payload.name)
    now = utc_now()

    conn = get_db_connection(db_path)
    try:
        conn.execute("BEGIN IMMEDIATE")
        if _find_by_name(conn, name):
            raise ValidationError(f"Checkpoint {name} already exists")

        last = conn.execute(
            "SELECT COALESCE(MAX(sort_order), 0) FROM checkpoints WHERE is_deleted = 0"
        ).fetchone()[0]

        if payload.insert_after:
            after = _find_by_name(conn, normalize_station(payload.insert_after))
            if after is None:
                raise NotFoundError(f"Checkpoint {payload.insert_after} not found")
            position = after["sort_order"] + 1
        elif payload.order:
            position = min(payload.order, last + 1)
        else:
            position = last + 1

        conn.execute(
            "UPDATE checkpoints SET sort_order = sort_order + 1, updated_at = ? WHERE sort_order >= ? AND is_deleted = 0",
            (now, position),
        )
        cursor = conn.execute(
            """
            INSERT INTO checkpoints
                (name, display_name, sort_order, region, country, is_active, is_major,
                 fuel_available, border_crossing, alternative_names, created_by, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (name, payload.display_name, position, payload.region, payload.country,
             int(payload.is_active), int(payload.is_major), int(payload.fuel_available),
             int(payload.border_crossing), json.dumps(payload.alternative_names), created_by, now, now),
        )
        checkpoint_id = cursor.lastrowid
        conn.execute("COMMIT")
    except Exception:
        if conn.in_transaction:
            conn.execute("ROLLBACK")
        raise
    finally:
        conn.close()

    return get_checkpoint(checkpoint_id, db_path=db_path)


def update_checkpoint(checkpoint_id: int, payload: CheckpointUpdate, db_path: DbPath = None) -> Checkpoint:
    db_path = db_path or default_db_path()
    values: Dict[str, Any] = {}
    for key, value in payload.model_dump(exclude_unset=True).items():
        if value is None:
            continue
        if key == "alternative_names":
            values[key] = json.dumps(value)
        elif isinstance(value, bool):
            values[key] = int(value)
        else:
            values[key] = value

    if get_checkpoint(checkpoint_id, db_path=db_path) is None:
        raise NotFoundError(f"Checkpoint {checkpoint_id} not found")

    if values:
        values["updated_at"] = utc_now()
        conn = get_db_connection(db_path)
        try:
            conn.execute(
                f"UPDATE checkpoints SET {', '.join(f'{c} = ?' for c in values)} WHERE id = ?",
                (*values.values(), checkpoint_id),
            )
        finally:
            conn.close()
    return get_checkpoint(checkpoint_id, db_path=db_path)


def delete_checkpoint(checkpoint_id: int, db_path: DbPath = None) -> Checkpoint:
    """Soft-delete and move later checkpoints up by one."""
    db_path = db_path or default_db_path()
    now = utc_now()
    conn = get_db_connection(db_path)
    try:
        conn.execute("BEGIN IMMEDIATE")
        row = conn.execute(
            "SELECT * FROM checkpoints WHERE id = ? AND is_deleted = 0", (checkpoint_id,)
        ).fetchone()
        if row is None:
            raise NotFoundError(f"Checkpoint {checkpoint_id} not found")

        conn.execute(
            "UPDATE checkpoints SET is_deleted = 1, is_active = 0, updated_at = ? WHERE id = ?",
            (now, checkpoint_id),
        )
        conn.execute(
            "UPDATE checkpoints SET sort_order = sort_order - 1, updated_at = ? WHERE sort_order > ? AND is_deleted = 0",
            (now, row["sort_order"]),
        )
        conn.execute("COMMIT")
    except Exception:
        if conn.in_transaction:
            conn.execute("ROLLBACK")
        raise
    finally:
        conn.close()
    return _row_to_checkpoint(row)


def reorder_checkpoints(positions: List[CheckpointPosition], db_path: DbPath = None) -> int:
    """Set the order of several checkpoints at once.

    Returns:
        Number of checkpoints updated
    """
    if not positions:
        raise ValidationError("Checkpoints array is required")

    db_path = db_path or default_db_path()
    ids = [p.id for p in positions]
    now = utc_now()
    conn = get_db_connection(db_path)
    try:
        conn.execute("BEGIN IMMEDIATE")
        placeholders = ", ".join("?" for _ in ids)
        found = conn.execute(
            f"SELECT COUNT(*) FROM checkpoints WHERE id IN ({placeholders}) AND is_deleted = 0", ids
        ).fetchone()[0]
        if found != len(set(ids)):
            raise ValidationError("Some checkpoints not found")

        for position in positions:
            conn.execute(
                "UPDATE checkpoints SET sort_order = ?, updated_at = ? WHERE id = ?",
                (position.order, now, position.id),
            )
        conn.execute("COMMIT")
    except Exception:
        if conn.in_transaction:
            conn.execute("ROLLBACK")
        raise
    finally:
        conn.close()
    return len(positions)


def get_checkpoint(checkpoint_id: int, db_path: DbPath = None) -> Optional[Checkpoint]:
    db_path = db_path or default_db_path()
    conn = get_db_connection(db_path)
    try:
        row = conn.execute(
            "SELECT * FROM checkpoints WHERE id = ? AND is_deleted = 0", (checkpoint_id,)
        ).fetchone()
        return _row_to_checkpoint(row) if row else None
    finally:
        conn.close()


def list_checkpoints(db_path: DbPath = None, include_inactive: bool = False) -> List[Checkpoint]:
    """Non-deleted checkpoints in route order."""
    db_path = db_path or default_db_path()
    query = "SELECT * FROM checkpoints WHERE is_deleted = 0"
    if not include_inactive:
        query += " AND is_active = 1"
    query += " ORDER BY sort_order, id"

    conn = get_db_connection(db_path)
    try:
        return [_row_to_checkpoint(r) for r in conn.execute(query).fetchall()]
    finally:
        conn.close()
