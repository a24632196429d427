"""Application configuration.

Settings are read from environment variables. A `.env` file at the
repository root is loaded first if it exists.

Variables:
- FUEL_DB_PATH: SQLite database file (default: fuel_logistics.db at repo root)
- LOG_LEVEL: Logging level name (default: INFO)
- LOG_JSON: "1"/"true" for JSON log lines (default: human-readable)
- AUDIT_DIR: Directory for daily JSON audit files (default: ./audit)
- SLACK_WEBHOOK_URL: Optional Slack incoming webhook for notifications
- STATION_MAP_PATH: Optional JSON file overriding the station field map
- MAX_CONFLICT_RETRIES: Optimistic-concurrency retries (default: 3)
- REJECTION_RESOLVE_DAYS: Window for auto-resolving rejections (default: 7)
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

REPO_ROOT = Path(__file__).resolve().parents[1]

env_path = REPO_ROOT / ".env"
if env_path.exists():
    load_dotenv(env_path)


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {value!r}")


@dataclass
class Settings:
    """Runtime settings resolved from the environment."""
    db_path: Path
    log_level: str = "INFO"
    log_json: bool = False
    audit_dir: Path = REPO_ROOT / "audit"
    slack_webhook_url: Optional[str] = None
    station_map_path: Optional[Path] = None
    max_conflict_retries: int = 3
    rejection_resolve_days: int = 7

    @classmethod
    def from_env(cls) -> "Settings":
        station_map = os.getenv("STATION_MAP_PATH")
        return cls(
            db_path=Path(os.getenv("FUEL_DB_PATH", str(REPO_ROOT / "fuel_logistics.db"))),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            log_json=_env_bool("LOG_JSON"),
            audit_dir=Path(os.getenv("AUDIT_DIR", str(REPO_ROOT / "audit"))),
            slack_webhook_url=os.getenv("SLACK_WEBHOOK_URL") or None,
            station_map_path=Path(station_map) if station_map else None,
            max_conflict_retries=_env_int("MAX_CONFLICT_RETRIES", 3),
            rejection_resolve_days=_env_int("REJECTION_RESOLVE_DAYS", 7),
        )


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the process-wide settings (read once)."""
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings
