"""LPO Database Operations.

Tables:
- lpo_summaries: LPO document headers
- lpo_entries: truck lines, shared by the LPO documents and the flat list
- driver_account_entries: fuel charged to drivers instead of journeys
"""

import sqlite3
from typing import Any, Dict, List, Optional

from core.db import DbPath, default_db_path, get_db_connection, utc_now
from core.normalize import normalize_truck_no
from lpo.models import DriverAccountEntry, DriverAccountStatus, LPOEntry, LPOSummary, ReconciliationStatus

DEFAULT_FIRST_LPO_NO = 2445

ENTRY_COLUMNS = {
    "lpo_no", "date", "station", "do_no", "truck_no", "liters", "rate", "amount", "dest",
    "is_cancelled", "cancelled_at", "cancellation_point", "is_driver_account", "original_do_no",
    "original_liters", "amended_at", "fuel_record_id", "fuel_field", "applied_liters",
    "reconciliation_status", "is_deleted", "deleted_at",
}
SUMMARY_COLUMNS = {"lpo_no", "date", "year", "station", "order_of", "total", "created_by", "is_deleted", "deleted_at"}


def init_lpo_db(db_path: DbPath = None) -> None:
    """Initialize LPO tables."""
    db_path = db_path or default_db_path()
    conn = get_db_connection(db_path)
    try:
        cursor = conn.cursor()
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS lpo_summaries (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                lpo_no TEXT NOT NULL,
                date TEXT NOT NULL,
                year INTEGER NOT NULL,
                station TEXT NOT NULL,
                order_of TEXT,
                total REAL NOT NULL DEFAULT 0,
                created_by TEXT,
                is_deleted INTEGER NOT NULL DEFAULT 0,
                deleted_at TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS lpo_entries (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                lpo_no TEXT NOT NULL,
                date TEXT NOT NULL,
                station TEXT NOT NULL,
                do_no TEXT NOT NULL,
                truck_no TEXT NOT NULL,
                truck_key TEXT NOT NULL,
                liters REAL NOT NULL DEFAULT 0,
                rate REAL NOT NULL DEFAULT 0,
                amount REAL NOT NULL DEFAULT 0,
                dest TEXT,
                is_cancelled INTEGER NOT NULL DEFAULT 0,
                cancelled_at TEXT,
                cancellation_point TEXT,
                is_driver_account INTEGER NOT NULL DEFAULT 0,
                original_do_no TEXT,
                original_liters REAL,
                amended_at TEXT,
                fuel_record_id INTEGER,
                fuel_field TEXT,
                applied_liters REAL NOT NULL DEFAULT 0,
                reconciliation_status TEXT NOT NULL DEFAULT 'none',
                is_deleted INTEGER NOT NULL DEFAULT 0,
                deleted_at TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS driver_account_entries (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                date TEXT NOT NULL,
                month TEXT NOT NULL,
                year INTEGER NOT NULL,
                lpo_no TEXT NOT NULL,
                truck_no TEXT NOT NULL,
                truck_key TEXT NOT NULL,
                liters REAL NOT NULL,
                rate REAL NOT NULL DEFAULT 0,
                amount REAL NOT NULL DEFAULT 0,
                station TEXT NOT NULL,
                cancellation_point TEXT NOT NULL,
                original_do_no TEXT,
                status TEXT NOT NULL DEFAULT 'pending',
                created_by TEXT,
                created_at TEXT NOT NULL
            )
        """)
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_lpo_summaries_no ON lpo_summaries(lpo_no)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_lpo_entries_no ON lpo_entries(lpo_no)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_lpo_entries_truck ON lpo_entries(truck_key)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_lpo_entries_status ON lpo_entries(reconciliation_status)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_driver_account_lpo ON driver_account_entries(lpo_no, truck_key)")
    finally:
        conn.close()


def _serialize(value: Any) -> Any:
    if hasattr(value, "isoformat"):
        return value.isoformat()
    if hasattr(value, "value"):  # Enum
        return value.value
    if isinstance(value, bool):
        return int(value)
    return value


def _row_to_entry(row: sqlite3.Row) -> LPOEntry:
    data = dict(row)
    data.pop("truck_key", None)
    return LPOEntry.model_validate(data)


# =============================================================================
# LPO entries
# =============================================================================

def insert_entry(values: Dict[str, Any], db_path: DbPath = None) -> LPOEntry:
    db_path = db_path or default_db_path()
    unknown = set(values) - ENTRY_COLUMNS
    if unknown:
        raise ValueError(f"Unknown LPO entry columns: {sorted(unknown)}")

    now = utc_now()
    row = {k: _serialize(v) for k, v in values.items()}
    row["truck_key"] = normalize_truck_no(values["truck_no"])
    row["created_at"] = now
    row["updated_at"] = now

    conn = get_db_connection(db_path)
    try:
        cursor = conn.execute(
            f"INSERT INTO lpo_entries ({', '.join(row)}) VALUES ({', '.join('?' for _ in row)})",
            tuple(row.values()),
        )
        entry_id = cursor.lastrowid
    finally:
        conn.close()
    return get_entry(entry_id, db_path=db_path)


def update_entry(entry_id: int, values: Dict[str, Any], db_path: DbPath = None) -> Optional[LPOEntry]:
    db_path = db_path or default_db_path()
    unknown = set(values) - ENTRY_COLUMNS
    if unknown:
        raise ValueError(f"Unknown LPO entry columns: {sorted(unknown)}")
    if values:
        row = {k: _serialize(v) for k, v in values.items()}
        if "truck_no" in values:
            row["truck_key"] = normalize_truck_no(values["truck_no"])
        row["updated_at"] = utc_now()
        conn = get_db_connection(db_path)
        try:
            conn.execute(
                f"UPDATE lpo_entries SET {', '.join(f'{c} = ?' for c in row)} WHERE id = ?",
                (*row.values(), entry_id),
            )
        finally:
            conn.close()
    return get_entry(entry_id, db_path=db_path, include_deleted=True)


def get_entry(entry_id: int, db_path: DbPath = None, include_deleted: bool = False) -> Optional[LPOEntry]:
    db_path = db_path or default_db_path()
    query = "SELECT * FROM lpo_entries WHERE id = ?"
    if not include_deleted:
        query += " AND is_deleted = 0"
    conn = get_db_connection(db_path)
    try:
        row = conn.execute(query, (entry_id,)).fetchone()
        return _row_to_entry(row) if row else None
    finally:
        conn.close()


def list_entries(
    db_path: DbPath = None,
    lpo_no: Optional[str] = None,
    truck_no: Optional[str] = None,
    station: Optional[str] = None,
    status: Optional[ReconciliationStatus] = None,
    include_deleted: bool = False,
    limit: int = 500,
) -> List[LPOEntry]:
    """Filtered list; entries of one LPO come back in insertion order."""
    db_path = db_path or default_db_path()
    where = []
    params: List[Any] = []
    if lpo_no:
        where.append("lpo_no = ?")
        params.append(lpo_no)
    if truck_no:
        where.append("truck_key = ?")
        params.append(normalize_truck_no(truck_no))
    if station:
        where.append("station = ?")
        params.append(station)
    if status:
        where.append("reconciliation_status = ?")
        params.append(status.value)
    if not include_deleted:
        where.append("is_deleted = 0")

    clause = f"WHERE {' AND '.join(where)}" if where else ""
    order = "id ASC" if lpo_no else "date DESC, id DESC"
    conn = get_db_connection(db_path)
    try:
        rows = conn.execute(
            f"SELECT * FROM lpo_entries {clause} ORDER BY {order} LIMIT ?",
            (*params, limit),
        ).fetchall()
        return [_row_to_entry(r) for r in rows]
    finally:
        conn.close()


# =============================================================================
# LPO summaries
# =============================================================================

def insert_summary(values: Dict[str, Any], db_path: DbPath = None) -> int:
    db_path = db_path or default_db_path()
    unknown = set(values) - SUMMARY_COLUMNS
    if unknown:
        raise ValueError(f"Unknown LPO summary columns: {sorted(unknown)}")

    now = utc_now()
    row = {k: _serialize(v) for k, v in values.items()}
    row["created_at"] = now
    row["updated_at"] = now
    conn = get_db_connection(db_path)
    try:
        cursor = conn.execute(
            f"INSERT INTO lpo_summaries ({', '.join(row)}) VALUES ({', '.join('?' for _ in row)})",
            tuple(row.values()),
        )
        return cursor.lastrowid
    finally:
        conn.close()


def update_summary(summary_id: int, values: Dict[str, Any], db_path: DbPath = None) -> None:
    db_path = db_path or default_db_path()
    unknown = set(values) - SUMMARY_COLUMNS
    if unknown:
        raise ValueError(f"Unknown LPO summary columns: {sorted(unknown)}")
    if not values:
        return
    row = {k: _serialize(v) for k, v in values.items()}
    row["updated_at"] = utc_now()
    conn = get_db_connection(db_path)
    try:
        conn.execute(
            f"UPDATE lpo_summaries SET {', '.join(f'{c} = ?' for c in row)} WHERE id = ?",
            (*row.values(), summary_id),
        )
    finally:
        conn.close()


def _load_summary(row: Optional[sqlite3.Row], db_path: DbPath) -> Optional[LPOSummary]:
    if row is None:
        return None
    data = dict(row)
    data["entries"] = list_entries(db_path=db_path, lpo_no=row["lpo_no"])
    return LPOSummary.model_validate(data)


def get_summary(summary_id: int, db_path: DbPath = None) -> Optional[LPOSummary]:
    db_path = db_path or default_db_path()
    conn = get_db_connection(db_path)
    try:
        row = conn.execute(
            "SELECT * FROM lpo_summaries WHERE id = ? AND is_deleted = 0", (summary_id,)
        ).fetchone()
    finally:
        conn.close()
    return _load_summary(row, db_path)


def get_summary_by_lpo_no(lpo_no: str, db_path: DbPath = None) -> Optional[LPOSummary]:
    db_path = db_path or default_db_path()
    conn = get_db_connection(db_path)
    try:
        row = conn.execute(
            "SELECT * FROM lpo_summaries WHERE lpo_no = ? AND is_deleted = 0", (lpo_no,)
        ).fetchone()
    finally:
        conn.close()
    return _load_summary(row, db_path)


def list_summaries(
    db_path: DbPath = None,
    station: Optional[str] = None,
    year: Optional[int] = None,
    lpo_no: Optional[str] = None,
    limit: int = 200,
) -> List[LPOSummary]:
    db_path = db_path or default_db_path()
    where = ["is_deleted = 0"]
    params: List[Any] = []
    if station:
        where.append("station = ?")
        params.append(station)
    if year:
        where.append("year = ?")
        params.append(year)
    if lpo_no:
        where.append("lpo_no LIKE ?")
        params.append(f"%{lpo_no}%")

    conn = get_db_connection(db_path)
    try:
        rows = conn.execute(
            f"SELECT * FROM lpo_summaries WHERE {' AND '.join(where)} ORDER BY date DESC, id DESC LIMIT ?",
            (*params, limit),
        ).fetchall()
    finally:
        conn.close()
    return [_load_summary(row, db_path) for row in rows]


def lpo_number_exists(lpo_no: str, db_path: DbPath = None) -> bool:
    db_path = db_path or default_db_path()
    conn = get_db_connection(db_path)
    try:
        row = conn.execute(
            "SELECT 1 FROM lpo_summaries WHERE lpo_no = ? AND is_deleted = 0 LIMIT 1", (lpo_no,)
        ).fetchone()
        return row is not None
    finally:
        conn.close()


def next_lpo_number(db_path: DbPath = None) -> str:
    """Highest numeric LPO number + 1, skipping numbers already taken."""
    db_path = db_path or default_db_path()
    conn = get_db_connection(db_path)
    try:
        row = conn.execute(
            """
            SELECT MAX(CAST(lpo_no AS INTEGER)) AS last_no FROM lpo_summaries
            WHERE is_deleted = 0 AND lpo_no GLOB '[0-9]*'
            """
        ).fetchone()
    finally:
        conn.close()

    next_number = (row["last_no"] + 1) if row and row["last_no"] is not None else DEFAULT_FIRST_LPO_NO
    while lpo_number_exists(str(next_number), db_path=db_path):
        next_number += 1
    return str(next_number)


# =============================================================================
# Driver account entries
# =============================================================================

def insert_driver_account_entry(values: Dict[str, Any], db_path: DbPath = None) -> DriverAccountEntry:
    db_path = db_path or default_db_path()
    row = {k: _serialize(v) for k, v in values.items()}
    row["truck_key"] = normalize_truck_no(values["truck_no"])
    row["created_at"] = utc_now()
    conn = get_db_connection(db_path)
    try:
        cursor = conn.execute(
            f"INSERT INTO driver_account_entries ({', '.join(row)}) VALUES ({', '.join('?' for _ in row)})",
            tuple(row.values()),
        )
        row_id = cursor.lastrowid
        saved = conn.execute("SELECT * FROM driver_account_entries WHERE id = ?", (row_id,)).fetchone()
    finally:
        conn.close()
    data = dict(saved)
    data.pop("truck_key", None)
    return DriverAccountEntry.model_validate(data)


def list_driver_account_entries(
    db_path: DbPath = None,
    lpo_no: Optional[str] = None,
    truck_no: Optional[str] = None,
) -> List[DriverAccountEntry]:
    db_path = db_path or default_db_path()
    where = []
    params: List[Any] = []
    if lpo_no:
        where.append("lpo_no = ?")
        params.append(lpo_no)
    if truck_no:
        where.append("truck_key = ?")
        params.append(normalize_truck_no(truck_no))
    clause = f"WHERE {' AND '.join(where)}" if where else ""

    conn = get_db_connection(db_path)
    try:
        rows = conn.execute(f"SELECT * FROM driver_account_entries {clause} ORDER BY id", params).fetchall()
    finally:
        conn.close()
    result = []
    for row in rows:
        data = dict(row)
        data.pop("truck_key", None)
        result.append(DriverAccountEntry.model_validate(data))
    return result


def cancel_driver_account_entries(lpo_no: str, truck_no: str, db_path: DbPath = None) -> int:
    """Cancel pending driver account entries for one truck line of an LPO."""
    db_path = db_path or default_db_path()
    conn = get_db_connection(db_path)
    try:
        cursor = conn.execute(
            """
            UPDATE driver_account_entries SET status = ?
            WHERE lpo_no = ? AND truck_key = ? AND status = ?
            """,
            (DriverAccountStatus.CANCELLED.value, lpo_no, normalize_truck_no(truck_no),
             DriverAccountStatus.PENDING.value),
        )
        return cursor.rowcount
    finally:
        conn.close()
