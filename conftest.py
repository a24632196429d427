"""Shared pytest fixtures: a throwaway database and the wired services."""

import tempfile
from datetime import date
from pathlib import Path

import pytest

from api.dependencies import build_services
from core.audit import InMemoryAuditBackend
from core.config import Settings
from fuel_records.models import FuelRecordCreate


@pytest.fixture
def db_path():
    """Create a temporary database path for testing."""
    with tempfile.TemporaryDirectory() as tmp:
        yield Path(tmp) / "fuel_logistics.db"


@pytest.fixture
def settings(db_path):
    return Settings(db_path=db_path, audit_dir=db_path.parent / "audit", max_conflict_retries=3)


@pytest.fixture
def services(settings):
    return build_services(settings)


@pytest.fixture
def audit_events(services):
    """In-memory copy of everything the services audit."""
    backend = InMemoryAuditBackend()
    services.audit.add_backend(backend)
    return backend


@pytest.fixture
def make_record():
    """Factory for fuel record payloads (2000L to Ndola by default)."""
    def _make(**overrides) -> FuelRecordCreate:
        values = {
            "date": date.today(),
            "truck_no": "T100 ABC",
            "going_do": "DO100",
            "from_location": "DAR",
            "to_location": "NDOLA",
            "total_lts": 2000,
        }
        values.update(overrides)
        return FuelRecordCreate(**values)
    return _make
