"""Audit event logging and persistence.

Provides structured audit logging for every create/update/delete and for
reconciliation side effects. Supports multiple persistence backends.
Audit is fire-and-forget: a failing backend never breaks the caller.
"""

import json
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

from core.models.refs import AuditEvent, AuditSeverity
from core.observability.logging import get_logger

logger = get_logger(__name__)


class AuditEventType(str, Enum):
    """Standard audit event types."""
    # CRUD
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    CANCEL = "CANCEL"

    # Reconciliation
    DELTA_APPLIED = "DELTA_APPLIED"
    DELTA_SKIPPED = "DELTA_SKIPPED"
    BALANCE_RECALCULATED = "BALANCE_RECALCULATED"
    CONFLICT = "CONFLICT"

    # Yard fuel linking
    ENTRY_LINKED = "ENTRY_LINKED"
    ENTRY_PENDING = "ENTRY_PENDING"
    ENTRY_REJECTED = "ENTRY_REJECTED"

    # Journeys
    JOURNEY_COMPLETED = "JOURNEY_COMPLETED"
    JOURNEY_ACTIVATED = "JOURNEY_ACTIVATED"

    # Reference data
    CHECKPOINTS_REORDERED = "CHECKPOINTS_REORDERED"


def create_audit_event(
    event_type: AuditEventType,
    message: str,
    severity: AuditSeverity = AuditSeverity.INFO,
    resource_type: Optional[str] = None,
    resource_id: Optional[Any] = None,
    truck_no: Optional[str] = None,
    previous_value: Optional[Dict[str, Any]] = None,
    new_value: Optional[Dict[str, Any]] = None,
    details: Optional[Dict[str, Any]] = None,
    actor: str = "system",
) -> AuditEvent:
    """Create a new audit event with auto-generated ID and timestamp.

    Args:
        event_type: Type of event
        message: Human-readable message
        severity: Event severity level
        resource_type: Model name of the affected resource
        resource_id: Identifier of the affected resource
        truck_no: Truck involved, if any
        previous_value: State before the change
        new_value: State after the change
        details: Additional structured details
        actor: Who/what performed the action

    Returns:
        Configured AuditEvent ready for logging
    """
    return AuditEvent(
        event_id=str(uuid.uuid4()),
        timestamp=datetime.utcnow(),
        event_type=event_type.value,
        severity=severity,
        resource_type=resource_type,
        resource_id=str(resource_id) if resource_id is not None else None,
        truck_no=truck_no,
        message=message,
        previous_value=previous_value,
        new_value=new_value,
        details=details or {},
        actor=actor,
    )


class AuditBackend(ABC):
    """Abstract base class for audit persistence backends."""

    @abstractmethod
    def log(self, event: AuditEvent) -> None:
        """Persist an audit event."""
        pass

    @abstractmethod
    def query(
        self,
        event_type: Optional[str] = None,
        resource_type: Optional[str] = None,
        start_time: Optional[datetime] = None,
        end_time: Optional[datetime] = None,
        limit: int = 100,
    ) -> List[AuditEvent]:
        """Query audit events with filters."""
        pass


def _matches(
    event: AuditEvent,
    event_type: Optional[str],
    resource_type: Optional[str],
    start_time: Optional[datetime],
    end_time: Optional[datetime],
) -> bool:
    if event_type and event.event_type != event_type:
        return False
    if resource_type and event.resource_type != resource_type:
        return False
    if start_time and event.timestamp < start_time:
        return False
    if end_time and event.timestamp > end_time:
        return False
    return True


class JSONFileAuditBackend(AuditBackend):
    """Audit backend that stores events in JSON files.

    Stores one file per day in YYYY-MM-DD.json format.
    """

    def __init__(self, base_path: Path):
        self.base_path = Path(base_path)
        self.base_path.mkdir(parents=True, exist_ok=True)

    def _get_file_path(self, date: datetime) -> Path:
        return self.base_path / f"{date.strftime('%Y-%m-%d')}.json"

    def log(self, event: AuditEvent) -> None:
        """Append event to daily file."""
        file_path = self._get_file_path(event.timestamp)

        events = []
        if file_path.exists():
            with open(file_path, "r", encoding="utf-8") as f:
                events = json.load(f)

        events.append(event.model_dump(mode="json"))

        with open(file_path, "w", encoding="utf-8") as f:
            json.dump(events, f, indent=2)

    def query(
        self,
        event_type: Optional[str] = None,
        resource_type: Optional[str] = None,
        start_time: Optional[datetime] = None,
        end_time: Optional[datetime] = None,
        limit: int = 100,
    ) -> List[AuditEvent]:
        """Query events from JSON files."""
        results = []

        if start_time is None:
            start_time = datetime(2020, 1, 1)
        if end_time is None:
            end_time = datetime.utcnow()

        current = datetime(start_time.year, start_time.month, start_time.day)
        while current <= end_time and len(results) < limit:
            file_path = self._get_file_path(current)
            if file_path.exists():
                with open(file_path, "r", encoding="utf-8") as f:
                    events = json.load(f)

                for event_data in events:
                    event = AuditEvent.model_validate(event_data)
                    if not _matches(event, event_type, resource_type, start_time, end_time):
                        continue
                    results.append(event)
                    if len(results) >= limit:
                        break

            current += timedelta(days=1)

        return results


class InMemoryAuditBackend(AuditBackend):
    """In-memory audit backend for testing."""

    def __init__(self):
        self._events: List[AuditEvent] = []

    def log(self, event: AuditEvent) -> None:
        self._events.append(event)

    def query(
        self,
        event_type: Optional[str] = None,
        resource_type: Optional[str] = None,
        start_time: Optional[datetime] = None,
        end_time: Optional[datetime] = None,
        limit: int = 100,
    ) -> List[AuditEvent]:
        results = []
        for event in self._events:
            if not _matches(event, event_type, resource_type, start_time, end_time):
                continue
            results.append(event)
            if len(results) >= limit:
                break
        return results

    def clear(self) -> None:
        """Clear all events (for testing)."""
        self._events.clear()


class AuditLogger:
    """Main audit logger that supports multiple backends.

    Usage:
        audit = AuditLogger()
        audit.add_backend(JSONFileAuditBackend(Path("./audit")))

        audit.log_create("YardFuelDispense", 12, {"truckNo": "T100 ABC"}, actor="dar_yard")
    """

    def __init__(self):
        self._backends: List[AuditBackend] = []

    def add_backend(self, backend: AuditBackend) -> None:
        """Add an audit backend."""
        self._backends.append(backend)

    def log(self, event: AuditEvent) -> None:
        """Log event to all backends."""
        for backend in self._backends:
            try:
                backend.log(event)
            except Exception as e:
                # Audit failures never break the triggering mutation
                logger.warning(
                    f"Audit logging failed for backend {type(backend).__name__}: {e}",
                    extra_fields={"event_type": event.event_type},
                )

    def log_info(self, event_type: AuditEventType, message: str, **kwargs) -> None:
        """Log an INFO level event."""
        self.log(create_audit_event(event_type, message, AuditSeverity.INFO, **kwargs))

    def log_warning(self, event_type: AuditEventType, message: str, **kwargs) -> None:
        """Log a WARN level event."""
        self.log(create_audit_event(event_type, message, AuditSeverity.WARN, **kwargs))

    def log_error(self, event_type: AuditEventType, message: str, **kwargs) -> None:
        """Log an ERROR level event."""
        self.log(create_audit_event(event_type, message, AuditSeverity.ERROR, **kwargs))

    def log_create(
        self,
        resource_type: str,
        resource_id: Any,
        new_value: Dict[str, Any],
        actor: str = "system",
    ) -> None:
        self.log_info(
            AuditEventType.CREATE,
            f"{resource_type} {resource_id} created",
            resource_type=resource_type,
            resource_id=resource_id,
            truck_no=new_value.get("truckNo"),
            new_value=new_value,
            actor=actor,
        )

    def log_update(
        self,
        resource_type: str,
        resource_id: Any,
        previous_value: Dict[str, Any],
        new_value: Dict[str, Any],
        actor: str = "system",
    ) -> None:
        self.log_info(
            AuditEventType.UPDATE,
            f"{resource_type} {resource_id} updated",
            resource_type=resource_type,
            resource_id=resource_id,
            truck_no=new_value.get("truckNo") or previous_value.get("truckNo"),
            previous_value=previous_value,
            new_value=new_value,
            actor=actor,
        )

    def log_delete(
        self,
        resource_type: str,
        resource_id: Any,
        previous_value: Dict[str, Any],
        actor: str = "system",
    ) -> None:
        self.log_info(
            AuditEventType.DELETE,
            f"{resource_type} {resource_id} deleted",
            resource_type=resource_type,
            resource_id=resource_id,
            truck_no=previous_value.get("truckNo"),
            previous_value=previous_value,
            actor=actor,
        )

    def query(
        self,
        event_type: Optional[str] = None,
        resource_type: Optional[str] = None,
        start_time: Optional[datetime] = None,
        end_time: Optional[datetime] = None,
        limit: int = 100,
    ) -> List[AuditEvent]:
        """Query events from all backends (returns first backend's results)."""
        if not self._backends:
            return []
        return self._backends[0].query(event_type, resource_type, start_time, end_time, limit)
