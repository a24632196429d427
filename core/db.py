"""SQLite connection helpers shared by the store modules.

Every domain package keeps its own tables and init function
(`init_fuel_records_db`, `init_yard_fuel_db`, ...) but they all live in the
same database file.
"""

import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Union

from core.config import get_settings

DbPath = Union[str, Path]


def default_db_path() -> Path:
    """Database path from settings (FUEL_DB_PATH)."""
    return get_settings().db_path


def get_db_connection(db_path: DbPath) -> sqlite3.Connection:
    """Get database connection with row factory.

    Autocommit mode is used so callers can open explicit
    `BEGIN IMMEDIATE` transactions around read-modify-write sequences.
    """
    conn = sqlite3.connect(str(db_path), timeout=30, isolation_level=None)
    conn.row_factory = sqlite3.Row
    return conn


def utc_now() -> str:
    """Current UTC timestamp as ISO string for TEXT columns."""
    return datetime.utcnow().isoformat()
