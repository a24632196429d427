"""Fuel Record Store - SQLite operations.

This module handles all database operations for fuel records:
- Schema initialization
- Lookup by id, going/return DO, truck
- Atomic checkpoint deltas (column += delta, balance -= delta in one statement)
- Version-checked whole-record updates for manual corrections

Fuel records are never hard-deleted here; `is_deleted` is a soft delete.
"""

import sqlite3
from typing import Any, Dict, Iterator, List, NamedTuple, Optional, Tuple

from core.db import DbPath, default_db_path, get_db_connection, utc_now
from fuel_records.models import (
    CHECKPOINT_FIELDS,
    LITERS_PRECISION,
    FuelRecord,
    JourneyStatus,
    MonthlyFuelSummary,
    round_liters,
)
from core.normalize import normalize_truck_no


# Columns a caller may set through insert/update. Anything else is rejected
# before it reaches an f-string.
WRITABLE_COLUMNS = {
    "date", "month", "truck_no", "going_do", "return_do", "start",
    "from_location", "to_location", "original_going_from", "original_going_to",
    "total_lts", "extra", "balance",
    "journey_status", "queue_order", "previous_journey_id", "activated_at", "completed_at",
    "is_cancelled", "cancelled_at", "cancellation_reason", "cancelled_by",
    "is_deleted", "deleted_at",
} | set(CHECKPOINT_FIELDS)


class DeltaWrite(NamedTuple):
    """Values around one atomic checkpoint delta."""
    fuel_record_id: int
    field: str
    old_value: float
    new_value: float
    old_balance: float
    new_balance: float
    version: int


def init_fuel_records_db(db_path: DbPath = None) -> None:
    """Initialize fuel record tables.

    Creates:
    - fuel_records: one row per truck journey, one REAL column per checkpoint

    `truck_key` holds the normalized truck number used for matching.
    """
    db_path = db_path or default_db_path()
    checkpoint_columns = ",\n".join(
        f"                {name} REAL NOT NULL DEFAULT 0" for name in CHECKPOINT_FIELDS
    )
    conn = get_db_connection(db_path)
    try:
        cursor = conn.cursor()
        cursor.execute(f"""
            CREATE TABLE IF NOT EXISTS fuel_records (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                date TEXT NOT NULL,
                month TEXT,
                truck_no TEXT NOT NULL,
                truck_key TEXT NOT NULL,
                going_do TEXT NOT NULL,
                return_do TEXT,
                start TEXT,
                from_location TEXT,
                to_location TEXT,
                original_going_from TEXT,
                original_going_to TEXT,
                total_lts REAL NOT NULL DEFAULT 0,
                extra REAL NOT NULL DEFAULT 0,
{checkpoint_columns},
                balance REAL NOT NULL DEFAULT 0,
                journey_status TEXT NOT NULL DEFAULT 'active',
                queue_order INTEGER,
                previous_journey_id INTEGER,
                activated_at TEXT,
                completed_at TEXT,
                is_cancelled INTEGER NOT NULL DEFAULT 0,
                cancelled_at TEXT,
                cancellation_reason TEXT,
                cancelled_by TEXT,
                is_deleted INTEGER NOT NULL DEFAULT 0,
                deleted_at TEXT,
                version INTEGER NOT NULL DEFAULT 1,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)

        cursor.execute("CREATE INDEX IF NOT EXISTS idx_fuel_records_truck ON fuel_records(truck_key, date DESC)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_fuel_records_going_do ON fuel_records(going_do)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_fuel_records_return_do ON fuel_records(return_do)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_fuel_records_month ON fuel_records(month)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_fuel_records_status ON fuel_records(truck_key, journey_status)")
    finally:
        conn.close()


def _row_to_fuel_record(row: sqlite3.Row) -> FuelRecord:
    data = dict(row)
    data.pop("truck_key", None)
    return FuelRecord.model_validate(data)


def _check_columns(values: Dict[str, Any]) -> None:
    unknown = set(values) - WRITABLE_COLUMNS
    if unknown:
        raise ValueError(f"Unknown fuel record columns: {sorted(unknown)}")


def _serialize(value: Any) -> Any:
    if hasattr(value, "isoformat"):
        return value.isoformat()
    if hasattr(value, "value"):  # Enum
        return value.value
    if isinstance(value, bool):
        return int(value)
    return value


# =============================================================================
# Writes
# =============================================================================

def insert_fuel_record(values: Dict[str, Any], db_path: DbPath = None) -> FuelRecord:
    """Insert a fuel record and return it with id populated.

    Args:
        values: Column values (snake_case). `truck_no` is required.
        db_path: Path to database
    """
    db_path = db_path or default_db_path()
    _check_columns(values)
    now = utc_now()

    row = {k: _serialize(v) for k, v in values.items()}
    row["truck_key"] = normalize_truck_no(values["truck_no"])
    row["created_at"] = now
    row["updated_at"] = now

    columns = ", ".join(row.keys())
    placeholders = ", ".join("?" for _ in row)

    conn = get_db_connection(db_path)
    try:
        cursor = conn.execute(
            f"INSERT INTO fuel_records ({columns}) VALUES ({placeholders})",
            tuple(row.values()),
        )
        record_id = cursor.lastrowid
    finally:
        conn.close()

    return get_fuel_record(record_id, db_path=db_path)


def apply_field_delta(
    record_id: int,
    field: str,
    delta: float,
    db_path: DbPath = None,
) -> Optional[DeltaWrite]:
    """Atomically add `delta` to a checkpoint column and subtract it from balance.

    The column and balance change in one UPDATE inside an IMMEDIATE
    transaction, so concurrent deltas against the same record serialize on
    the SQLite write lock and none is lost.

    Returns:
        DeltaWrite with before/after values, or None if the record does not
        exist or is soft-deleted.
    """
    if field not in CHECKPOINT_FIELDS:
        raise ValueError(f"Unknown checkpoint field: {field}")
    delta = round_liters(delta)

    db_path = db_path or default_db_path()
    conn = get_db_connection(db_path)
    try:
        conn.execute("BEGIN IMMEDIATE")
        cursor = conn.execute(
            f"""
            UPDATE fuel_records
            SET {field} = ROUND({field} + ?, {LITERS_PRECISION}),
                balance = ROUND(balance - ?, {LITERS_PRECISION}),
                version = version + 1,
                updated_at = ?
            WHERE id = ? AND is_deleted = 0
            """,
            (delta, delta, utc_now(), record_id),
        )
        if cursor.rowcount != 1:
            conn.execute("ROLLBACK")
            return None

        row = conn.execute(
            f"SELECT {field} AS value, balance, version FROM fuel_records WHERE id = ?",
            (record_id,),
        ).fetchone()
        conn.execute("COMMIT")
    except Exception:
        if conn.in_transaction:
            conn.execute("ROLLBACK")
        raise
    finally:
        conn.close()

    return DeltaWrite(
        fuel_record_id=record_id,
        field=field,
        old_value=round_liters(row["value"] - delta),
        new_value=row["value"],
        old_balance=round_liters(row["balance"] + delta),
        new_balance=row["balance"],
        version=row["version"],
    )


def update_fuel_record_if_version(
    record_id: int,
    expected_version: int,
    values: Dict[str, Any],
    db_path: DbPath = None,
) -> bool:
    """Compare-and-swap update: only writes if the stored version matches.

    Returns:
        True if the row was updated, False if another writer got there first
        (or the record is gone).
    """
    db_path = db_path or default_db_path()
    _check_columns(values)
    if not values:
        return True

    row = {k: _serialize(v) for k, v in values.items()}
    if "truck_no" in values:
        row["truck_key"] = normalize_truck_no(values["truck_no"])
    row["updated_at"] = utc_now()

    assignments = ", ".join(f"{col} = ?" for col in row)
    conn = get_db_connection(db_path)
    try:
        cursor = conn.execute(
            f"""
            UPDATE fuel_records
            SET {assignments}, version = version + 1
            WHERE id = ? AND version = ? AND is_deleted = 0
            """,
            (*row.values(), record_id, expected_version),
        )
        return cursor.rowcount == 1
    finally:
        conn.close()


def set_fuel_record_fields(record_id: int, values: Dict[str, Any], db_path: DbPath = None) -> bool:
    """Unconditional update of non-balance bookkeeping fields (status, queue order...)."""
    db_path = db_path or default_db_path()
    _check_columns(values)
    if set(values) & (set(CHECKPOINT_FIELDS) | {"balance", "total_lts", "extra"}):
        raise ValueError("Balance-affecting fields must go through a version-checked update")

    row = {k: _serialize(v) for k, v in values.items()}
    row["updated_at"] = utc_now()
    assignments = ", ".join(f"{col} = ?" for col in row)

    conn = get_db_connection(db_path)
    try:
        cursor = conn.execute(
            f"UPDATE fuel_records SET {assignments}, version = version + 1 WHERE id = ?",
            (*row.values(), record_id),
        )
        return cursor.rowcount == 1
    finally:
        conn.close()


# =============================================================================
# Reads
# =============================================================================

def get_fuel_record(
    record_id: int,
    db_path: DbPath = None,
    include_deleted: bool = False,
) -> Optional[FuelRecord]:
    """Get one fuel record by id (soft-deleted records hidden by default)."""
    db_path = db_path or default_db_path()
    query = "SELECT * FROM fuel_records WHERE id = ?"
    if not include_deleted:
        query += " AND is_deleted = 0"

    conn = get_db_connection(db_path)
    try:
        row = conn.execute(query, (record_id,)).fetchone()
        return _row_to_fuel_record(row) if row else None
    finally:
        conn.close()


def find_by_going_do(do_number: str, db_path: DbPath = None) -> Optional[FuelRecord]:
    """Non-deleted fuel record whose going DO equals `do_number`."""
    return _find_one_by("going_do", do_number, db_path)


def find_by_return_do(do_number: str, db_path: DbPath = None) -> Optional[FuelRecord]:
    """Non-deleted fuel record whose return DO equals `do_number`."""
    return _find_one_by("return_do", do_number, db_path)


def _find_one_by(column: str, value: str, db_path: DbPath) -> Optional[FuelRecord]:
    if not value or not value.strip():
        return None
    db_path = db_path or default_db_path()
    conn = get_db_connection(db_path)
    try:
        row = conn.execute(
            f"""
            SELECT * FROM fuel_records
            WHERE {column} = ? AND is_deleted = 0
            ORDER BY date DESC, id DESC
            LIMIT 1
            """,
            (value.strip(),),
        ).fetchone()
        return _row_to_fuel_record(row) if row else None
    finally:
        conn.close()


def list_for_truck(
    truck_no: str,
    db_path: DbPath = None,
    include_cancelled: bool = True,
) -> List[FuelRecord]:
    """All non-deleted records for a truck, newest first."""
    db_path = db_path or default_db_path()
    query = "SELECT * FROM fuel_records WHERE truck_key = ? AND is_deleted = 0"
    if not include_cancelled:
        query += " AND is_cancelled = 0"
    query += " ORDER BY date DESC, id DESC"

    conn = get_db_connection(db_path)
    try:
        rows = conn.execute(query, (normalize_truck_no(truck_no),)).fetchall()
        return [_row_to_fuel_record(r) for r in rows]
    finally:
        conn.close()


def find_active_for_truck(truck_no: str, db_path: DbPath = None) -> Optional[FuelRecord]:
    """The truck's active, non-cancelled journey (newest if several)."""
    db_path = db_path or default_db_path()
    conn = get_db_connection(db_path)
    try:
        row = conn.execute(
            """
            SELECT * FROM fuel_records
            WHERE truck_key = ? AND journey_status = ? AND is_cancelled = 0 AND is_deleted = 0
            ORDER BY date DESC, id DESC
            LIMIT 1
            """,
            (normalize_truck_no(truck_no), JourneyStatus.ACTIVE.value),
        ).fetchone()
        return _row_to_fuel_record(row) if row else None
    finally:
        conn.close()


def list_queued_for_truck(truck_no: str, db_path: DbPath = None) -> List[FuelRecord]:
    """Queued journeys for a truck in queue order."""
    db_path = db_path or default_db_path()
    conn = get_db_connection(db_path)
    try:
        rows = conn.execute(
            """
            SELECT * FROM fuel_records
            WHERE truck_key = ? AND journey_status = ? AND is_deleted = 0
            ORDER BY queue_order ASC, id ASC
            """,
            (normalize_truck_no(truck_no), JourneyStatus.QUEUED.value),
        ).fetchall()
        return [_row_to_fuel_record(r) for r in rows]
    finally:
        conn.close()


def list_fuel_records(
    db_path: DbPath = None,
    truck_no: Optional[str] = None,
    month: Optional[str] = None,
    journey_status: Optional[JourneyStatus] = None,
    include_cancelled: bool = True,
    page: int = 1,
    page_size: int = 50,
) -> Tuple[List[FuelRecord], int]:
    """Paginated, filtered list of non-deleted records (newest first)."""
    db_path = db_path or default_db_path()
    where = ["is_deleted = 0"]
    params: List[Any] = []

    if truck_no:
        where.append("truck_key LIKE ?")
        params.append(f"%{normalize_truck_no(truck_no)}%")
    if month:
        where.append("month = ?")
        params.append(month)
    if journey_status:
        where.append("journey_status = ?")
        params.append(journey_status.value)
    if not include_cancelled:
        where.append("is_cancelled = 0")

    clause = " AND ".join(where)
    conn = get_db_connection(db_path)
    try:
        total = conn.execute(f"SELECT COUNT(*) FROM fuel_records WHERE {clause}", params).fetchone()[0]
        rows = conn.execute(
            f"""
            SELECT * FROM fuel_records WHERE {clause}
            ORDER BY date DESC, id DESC
            LIMIT ? OFFSET ?
            """,
            (*params, page_size, (page - 1) * page_size),
        ).fetchall()
        return [_row_to_fuel_record(r) for r in rows], total
    finally:
        conn.close()


def iter_fuel_records(db_path: DbPath = None, batch_size: int = 500) -> Iterator[FuelRecord]:
    """Iterate over every non-deleted record (used by maintenance scripts)."""
    db_path = db_path or default_db_path()
    last_id = 0
    while True:
        conn = get_db_connection(db_path)
        try:
            rows = conn.execute(
                "SELECT * FROM fuel_records WHERE is_deleted = 0 AND id > ? ORDER BY id LIMIT ?",
                (last_id, batch_size),
            ).fetchall()
        finally:
            conn.close()

        if not rows:
            return
        for row in rows:
            yield _row_to_fuel_record(row)
        last_id = rows[-1]["id"]


def monthly_summary(month: Optional[str] = None, db_path: DbPath = None) -> MonthlyFuelSummary:
    """Record count and liter totals, optionally for one month label."""
    db_path = db_path or default_db_path()
    where = "is_deleted = 0"
    params: Tuple = ()
    if month:
        where += " AND month = ?"
        params = (month,)

    conn = get_db_connection(db_path)
    try:
        totals = conn.execute(
            f"""
            SELECT COUNT(*) AS record_count,
                   COALESCE(SUM(total_lts), 0) AS total_liters,
                   COALESCE(SUM(extra), 0) AS total_extra,
                   COALESCE(SUM(balance), 0) AS total_balance
            FROM fuel_records WHERE {where}
            """,
            params,
        ).fetchone()
        statuses = conn.execute(
            f"SELECT journey_status, COUNT(*) AS n FROM fuel_records WHERE {where} GROUP BY journey_status",
            params,
        ).fetchall()
    finally:
        conn.close()

    return MonthlyFuelSummary(
        month=month,
        record_count=totals["record_count"],
        total_liters=totals["total_liters"],
        total_extra=totals["total_extra"],
        total_balance=totals["total_balance"],
        by_status={row["journey_status"]: row["n"] for row in statuses},
    )
