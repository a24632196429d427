"""Fuel Records - one fuel allocation record per truck journey.

This package provides:
- FuelRecord models (snake_case columns, camelCase API aliases)
- The SQLite store, including the atomic checkpoint delta update
- FuelRecordService (in fuel_records.service): journey queue, completion,
  manual corrections with optimistic concurrency

Usage:
    from fuel_records import init_fuel_records_db, get_fuel_record

    init_fuel_records_db("fuel_logistics.db")
    record = get_fuel_record(12, db_path="fuel_logistics.db")
    assert record.balance == record.expected_balance()
"""

from fuel_records.db import (
    apply_field_delta,
    find_active_for_truck,
    find_by_going_do,
    find_by_return_do,
    get_fuel_record,
    init_fuel_records_db,
    list_for_truck,
    list_fuel_records,
)
from fuel_records.models import (
    CHECKPOINT_FIELDS,
    Direction,
    FuelRecord,
    FuelRecordCreate,
    FuelRecordUpdate,
    JourneyStatus,
)

__all__ = [
    # Models
    "FuelRecord",
    "FuelRecordCreate",
    "FuelRecordUpdate",
    "JourneyStatus",
    "Direction",
    "CHECKPOINT_FIELDS",
    # Database
    "init_fuel_records_db",
    "apply_field_delta",
    "get_fuel_record",
    "find_by_going_do",
    "find_by_return_do",
    "find_active_for_truck",
    "list_for_truck",
    "list_fuel_records",
]
