"""Yard Fuel Database Operations.

Tables:
- yard_fuel_dispenses: one row per dispense
- yard_fuel_history: append-only state transitions per dispense

Linking is a conditional UPDATE (`WHERE status = 'pending'`), so only one
caller can ever move a given dispense out of pending.
"""

import json
import sqlite3
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional

from core.db import DbPath, default_db_path, get_db_connection, utc_now
from core.normalize import normalize_truck_no
from yard_fuel.models import HistoryAction, HistoryEntry, YardFuelDispense, YardFuelStatus, YardSummary


def init_yard_fuel_db(db_path: DbPath = None) -> None:
    """Initialize yard fuel tables."""
    db_path = db_path or default_db_path()
    conn = get_db_connection(db_path)
    try:
        cursor = conn.cursor()
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS yard_fuel_dispenses (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                date TEXT NOT NULL,
                truck_no TEXT NOT NULL,
                truck_key TEXT NOT NULL,
                liters REAL NOT NULL,
                yard TEXT NOT NULL,
                entered_by TEXT NOT NULL,
                notes TEXT,
                status TEXT NOT NULL DEFAULT 'pending',
                linked_fuel_record_id INTEGER,
                linked_do_number TEXT,
                auto_linked INTEGER NOT NULL DEFAULT 0,
                applied_liters REAL NOT NULL DEFAULT 0,
                linked_at TEXT,
                rejection_reason TEXT,
                rejected_by TEXT,
                rejected_at TEXT,
                rejection_resolved INTEGER NOT NULL DEFAULT 0,
                rejection_resolved_at TEXT,
                rejection_resolved_by TEXT,
                is_deleted INTEGER NOT NULL DEFAULT 0,
                deleted_at TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS yard_fuel_history (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                dispense_id INTEGER NOT NULL,
                action TEXT NOT NULL,
                performed_by TEXT NOT NULL,
                timestamp TEXT NOT NULL,
                details TEXT
            )
        """)
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_yard_fuel_truck ON yard_fuel_dispenses(truck_key, status)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_yard_fuel_yard ON yard_fuel_dispenses(yard, date DESC)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_yard_fuel_history ON yard_fuel_history(dispense_id)")
    finally:
        conn.close()


def _load_history(conn: sqlite3.Connection, dispense_id: int) -> List[HistoryEntry]:
    rows = conn.execute(
        "SELECT * FROM yard_fuel_history WHERE dispense_id = ? ORDER BY id",
        (dispense_id,),
    ).fetchall()
    return [
        HistoryEntry(
            action=row["action"],
            performed_by=row["performed_by"],
            timestamp=row["timestamp"],
            details=json.loads(row["details"]) if row["details"] else {},
        )
        for row in rows
    ]


def _row_to_dispense(conn: sqlite3.Connection, row: sqlite3.Row) -> YardFuelDispense:
    data = dict(row)
    data.pop("truck_key", None)
    data["history"] = _load_history(conn, row["id"])
    return YardFuelDispense.model_validate(data)


def _insert_history(
    conn: sqlite3.Connection,
    dispense_id: int,
    action: HistoryAction,
    performed_by: str,
    details: Optional[Dict[str, Any]] = None,
) -> None:
    conn.execute(
        """
        INSERT INTO yard_fuel_history (dispense_id, action, performed_by, timestamp, details)
        VALUES (?, ?, ?, ?, ?)
        """,
        (dispense_id, action.value, performed_by, utc_now(), json.dumps(details or {}, default=str)),
    )


# =============================================================================
# Writes
# =============================================================================

def insert_dispense(
    date: str,
    truck_no: str,
    liters: float,
    yard: str,
    entered_by: str,
    notes: Optional[str] = None,
    db_path: DbPath = None,
) -> YardFuelDispense:
    """Insert a pending dispense together with its `created` history entry."""
    db_path = db_path or default_db_path()
    now = utc_now()
    conn = get_db_connection(db_path)
    try:
        conn.execute("BEGIN IMMEDIATE")
        cursor = conn.execute(
            """
            INSERT INTO yard_fuel_dispenses
                (date, truck_no, truck_key, liters, yard, entered_by, notes, status, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (date, truck_no, normalize_truck_no(truck_no), liters, yard, entered_by, notes,
             YardFuelStatus.PENDING.value, now, now),
        )
        dispense_id = cursor.lastrowid
        _insert_history(conn, dispense_id, HistoryAction.CREATED, entered_by,
                        {"liters": liters, "yard": yard})
        conn.execute("COMMIT")
    except Exception:
        if conn.in_transaction:
            conn.execute("ROLLBACK")
        raise
    finally:
        conn.close()

    return get_dispense(dispense_id, db_path=db_path)


def mark_linked_if_pending(
    dispense_id: int,
    fuel_record_id: int,
    do_number: Optional[str],
    applied_liters: float,
    performed_by: str,
    status: YardFuelStatus = YardFuelStatus.LINKED,
    auto_linked: bool = True,
    db_path: DbPath = None,
) -> bool:
    """Move a pending dispense to linked/manual.

    Returns:
        False if the dispense was no longer pending (already linked by
        someone else, rejected or deleted).
    """
    db_path = db_path or default_db_path()
    action = HistoryAction.LINKED if status == YardFuelStatus.LINKED else HistoryAction.MANUAL_LINKED
    now = utc_now()

    conn = get_db_connection(db_path)
    try:
        conn.execute("BEGIN IMMEDIATE")
        cursor = conn.execute(
            """
            UPDATE yard_fuel_dispenses
            SET status = ?, linked_fuel_record_id = ?, linked_do_number = ?,
                auto_linked = ?, applied_liters = ?, linked_at = ?, updated_at = ?
            WHERE id = ? AND status = ? AND is_deleted = 0
            """,
            (status.value, fuel_record_id, do_number, int(auto_linked), applied_liters, now, now,
             dispense_id, YardFuelStatus.PENDING.value),
        )
        if cursor.rowcount != 1:
            conn.execute("ROLLBACK")
            return False

        _insert_history(conn, dispense_id, action, performed_by, {
            "fuelRecordId": fuel_record_id,
            "doNumber": do_number,
            "liters": applied_liters,
        })
        conn.execute("COMMIT")
        return True
    except Exception:
        if conn.in_transaction:
            conn.execute("ROLLBACK")
        raise
    finally:
        conn.close()


def revert_to_pending(dispense_id: int, db_path: DbPath = None) -> None:
    """Undo a link whose delta could not be applied."""
    db_path = db_path or default_db_path()
    conn = get_db_connection(db_path)
    try:
        conn.execute(
            """
            UPDATE yard_fuel_dispenses
            SET status = ?, linked_fuel_record_id = NULL, linked_do_number = NULL,
                auto_linked = 0, applied_liters = 0, linked_at = NULL, updated_at = ?
            WHERE id = ?
            """,
            (YardFuelStatus.PENDING.value, utc_now(), dispense_id),
        )
    finally:
        conn.close()


def mark_rejected(
    dispense_id: int,
    reason: str,
    rejected_by: str,
    details: Optional[Dict[str, Any]] = None,
    db_path: DbPath = None,
) -> bool:
    """Reject and soft-delete a dispense. False if already rejected/deleted."""
    db_path = db_path or default_db_path()
    now = utc_now()
    conn = get_db_connection(db_path)
    try:
        conn.execute("BEGIN IMMEDIATE")
        cursor = conn.execute(
            """
            UPDATE yard_fuel_dispenses
            SET status = ?, rejection_reason = ?, rejected_by = ?, rejected_at = ?,
                applied_liters = 0, is_deleted = 1, deleted_at = ?, updated_at = ?
            WHERE id = ? AND is_deleted = 0 AND status != ?
            """,
            (YardFuelStatus.REJECTED.value, reason, rejected_by, now, now, now,
             dispense_id, YardFuelStatus.REJECTED.value),
        )
        if cursor.rowcount != 1:
            conn.execute("ROLLBACK")
            return False

        _insert_history(conn, dispense_id, HistoryAction.REJECTED, rejected_by,
                        {"reason": reason, **(details or {})})
        conn.execute("COMMIT")
        return True
    except Exception:
        if conn.in_transaction:
            conn.execute("ROLLBACK")
        raise
    finally:
        conn.close()


def resolve_recent_rejections(
    truck_no: str,
    yard: str,
    since: datetime,
    resolved_by: str,
    db_path: DbPath = None,
) -> int:
    """Flag rejected dispenses for the same truck and yard as resolved.

    Returns:
        Number of rejections marked resolved
    """
    db_path = db_path or default_db_path()
    now = utc_now()
    conn = get_db_connection(db_path)
    try:
        cursor = conn.execute(
            """
            UPDATE yard_fuel_dispenses
            SET rejection_resolved = 1, rejection_resolved_at = ?, rejection_resolved_by = ?, updated_at = ?
            WHERE truck_key = ? AND yard = ? AND status = ?
              AND rejection_resolved = 0 AND rejected_at >= ?
            """,
            (now, resolved_by, now, normalize_truck_no(truck_no), yard,
             YardFuelStatus.REJECTED.value, since.isoformat()),
        )
        return cursor.rowcount
    finally:
        conn.close()


def update_dispense(
    dispense_id: int,
    performed_by: str,
    date: Optional[str] = None,
    liters: Optional[float] = None,
    notes: Optional[str] = None,
    applied_liters: Optional[float] = None,
    db_path: DbPath = None,
) -> bool:
    """Update editable fields and record an `updated` history entry."""
    db_path = db_path or default_db_path()
    values: Dict[str, Any] = {}
    if date is not None:
        values["date"] = date
    if liters is not None:
        values["liters"] = liters
    if notes is not None:
        values["notes"] = notes
    if applied_liters is not None:
        values["applied_liters"] = applied_liters
    if not values:
        return True

    values["updated_at"] = utc_now()
    assignments = ", ".join(f"{col} = ?" for col in values)

    conn = get_db_connection(db_path)
    try:
        conn.execute("BEGIN IMMEDIATE")
        cursor = conn.execute(
            f"UPDATE yard_fuel_dispenses SET {assignments} WHERE id = ? AND is_deleted = 0",
            (*values.values(), dispense_id),
        )
        if cursor.rowcount != 1:
            conn.execute("ROLLBACK")
            return False
        history = {k: v for k, v in values.items() if k in ("date", "liters", "notes")}
        _insert_history(conn, dispense_id, HistoryAction.UPDATED, performed_by, history)
        conn.execute("COMMIT")
        return True
    except Exception:
        if conn.in_transaction:
            conn.execute("ROLLBACK")
        raise
    finally:
        conn.close()


def soft_delete_dispense(dispense_id: int, performed_by: str, db_path: DbPath = None) -> bool:
    db_path = db_path or default_db_path()
    now = utc_now()
    conn = get_db_connection(db_path)
    try:
        conn.execute("BEGIN IMMEDIATE")
        cursor = conn.execute(
            """
            UPDATE yard_fuel_dispenses
            SET is_deleted = 1, deleted_at = ?, applied_liters = 0, updated_at = ?
            WHERE id = ? AND is_deleted = 0
            """,
            (now, now, dispense_id),
        )
        if cursor.rowcount != 1:
            conn.execute("ROLLBACK")
            return False
        _insert_history(conn, dispense_id, HistoryAction.DELETED, performed_by)
        conn.execute("COMMIT")
        return True
    except Exception:
        if conn.in_transaction:
            conn.execute("ROLLBACK")
        raise
    finally:
        conn.close()


# =============================================================================
# Reads
# =============================================================================

def get_dispense(
    dispense_id: int,
    db_path: DbPath = None,
    include_deleted: bool = True,
) -> Optional[YardFuelDispense]:
    """Get a dispense by id. Rejected dispenses are soft-deleted, so they are
    included by default."""
    db_path = db_path or default_db_path()
    query = "SELECT * FROM yard_fuel_dispenses WHERE id = ?"
    if not include_deleted:
        query += " AND is_deleted = 0"

    conn = get_db_connection(db_path)
    try:
        row = conn.execute(query, (dispense_id,)).fetchone()
        return _row_to_dispense(conn, row) if row else None
    finally:
        conn.close()


def list_dispenses(
    db_path: DbPath = None,
    status: Optional[YardFuelStatus] = None,
    yard: Optional[str] = None,
    truck_no: Optional[str] = None,
    include_deleted: bool = False,
    limit: int = 200,
) -> List[YardFuelDispense]:
    """Filtered list, newest first. Rejected dispenses need include_deleted."""
    db_path = db_path or default_db_path()
    where = []
    params: List[Any] = []
    if status:
        where.append("status = ?")
        params.append(status.value)
    if yard:
        where.append("yard = ?")
        params.append(yard)
    if truck_no:
        where.append("truck_key = ?")
        params.append(normalize_truck_no(truck_no))
    if not include_deleted:
        where.append("is_deleted = 0")

    clause = f"WHERE {' AND '.join(where)}" if where else ""
    conn = get_db_connection(db_path)
    try:
        rows = conn.execute(
            f"SELECT * FROM yard_fuel_dispenses {clause} ORDER BY date DESC, id DESC LIMIT ?",
            (*params, limit),
        ).fetchall()
        return [_row_to_dispense(conn, r) for r in rows]
    finally:
        conn.close()


def list_rejections(
    db_path: DbPath = None,
    yard: Optional[str] = None,
    show_resolved: bool = True,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    limit: int = 50,
) -> List[YardFuelDispense]:
    """Rejected dispenses, most recently rejected first."""
    db_path = db_path or default_db_path()
    where = ["is_deleted = 1", "rejection_reason IS NOT NULL"]
    params: List[Any] = []
    if not show_resolved:
        where.append("rejection_resolved = 0")
    if yard:
        where.append("yard = ?")
        params.append(yard)
    if date_from:
        where.append("rejected_at >= ?")
        params.append(date_from.isoformat())
    if date_to:
        # rejected_at is a full timestamp; include the whole of date_to
        where.append("rejected_at < ?")
        params.append((date_to + timedelta(days=1)).isoformat())

    conn = get_db_connection(db_path)
    try:
        rows = conn.execute(
            f"SELECT * FROM yard_fuel_dispenses WHERE {' AND '.join(where)} "
            "ORDER BY rejected_at DESC, id DESC LIMIT ?",
            (*params, limit),
        ).fetchall()
        return [_row_to_dispense(conn, r) for r in rows]
    finally:
        conn.close()


def list_pending_for_truck(truck_no: str, db_path: DbPath = None) -> List[YardFuelDispense]:
    """Pending, non-deleted dispenses for a truck, oldest first."""
    db_path = db_path or default_db_path()
    conn = get_db_connection(db_path)
    try:
        rows = conn.execute(
            """
            SELECT * FROM yard_fuel_dispenses
            WHERE truck_key = ? AND status = ? AND is_deleted = 0
            ORDER BY date ASC, id ASC
            """,
            (normalize_truck_no(truck_no), YardFuelStatus.PENDING.value),
        ).fetchall()
        return [_row_to_dispense(conn, r) for r in rows]
    finally:
        conn.close()


def list_pending_trucks(db_path: DbPath = None) -> List[str]:
    """Distinct truck numbers that still have pending dispenses."""
    db_path = db_path or default_db_path()
    conn = get_db_connection(db_path)
    try:
        rows = conn.execute(
            """
            SELECT MIN(truck_no) AS truck_no FROM yard_fuel_dispenses
            WHERE status = ? AND is_deleted = 0
            GROUP BY truck_key
            """,
            (YardFuelStatus.PENDING.value,),
        ).fetchall()
        return [row["truck_no"] for row in rows]
    finally:
        conn.close()


def summarize_by_yard(db_path: DbPath = None) -> List[YardSummary]:
    """Count and liters per yard for non-deleted dispenses."""
    db_path = db_path or default_db_path()
    conn = get_db_connection(db_path)
    try:
        rows = conn.execute(
            """
            SELECT yard,
                   COUNT(*) AS count,
                   COALESCE(SUM(liters), 0) AS total_liters,
                   SUM(CASE WHEN status = 'pending' THEN 1 ELSE 0 END) AS pending_count,
                   SUM(CASE WHEN status IN ('linked', 'manual') THEN 1 ELSE 0 END) AS linked_count
            FROM yard_fuel_dispenses
            WHERE is_deleted = 0
            GROUP BY yard
            ORDER BY yard
            """
        ).fetchall()
        return [YardSummary.model_validate(dict(row)) for row in rows]
    finally:
        conn.close()
