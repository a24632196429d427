"""Notification service.

Subscribes to the reconciliation event bus and turns domain events into
in-app notifications, optionally mirrored to Slack:

- yard_recorded     -> info "Yard Fuel Recorded"
- yard_pending      -> pending "Truck Pending Linking"
- yard_linked       -> pending notifications for the dispense resolved
- yard_rejected     -> pending notifications for the dispense dismissed
- entry_pending     -> pending "LPO Entry Pending" for LPO lines
- delta_applied     -> pending notifications for that LPO line resolved
- unknown_station   -> info
- journey_completed -> info
"""

import asyncio
from typing import Any, Dict, List, Optional, Set

from core.db import DbPath, default_db_path
from core.errors import NotFoundError
from core.observability.logging import get_logger
from notifications.db import (
    close_pending,
    count_unread,
    get_notification,
    insert_notification,
    list_notifications,
    mark_all_read,
    mark_read,
    set_status,
)
from notifications.models import Notification, NotificationStatus, NotificationType, RelatedModel
from notifications.slack import SlackNotifier
from reconciliation.events import ReconciliationEvent, ReconciliationEventType

logger = get_logger(__name__)


def _with_notes(message: str, notes: Optional[str]) -> str:
    if notes and notes.strip():
        return f"{message} Note: {notes.strip()}"
    return message


class NotificationService:
    """Store notifications and forward pending ones to Slack.

    Example:
        service = NotificationService(db_path, slack=SlackNotifier(config))
        event_bus.subscribe(service.handle_event)
    """

    def __init__(self, db_path: DbPath = None, slack: Optional[SlackNotifier] = None):
        self.db_path = db_path or default_db_path()
        self.slack = slack
        self._background: Set[asyncio.Task] = set()

    # =========================================================================
    # Event subscriber
    # =========================================================================

    async def handle_event(self, event: ReconciliationEvent) -> None:
        handler = {
            ReconciliationEventType.YARD_RECORDED: self._on_yard_recorded,
            ReconciliationEventType.YARD_PENDING: self._on_yard_pending,
            ReconciliationEventType.YARD_LINKED: self._on_yard_linked,
            ReconciliationEventType.YARD_REJECTED: self._on_yard_rejected,
            ReconciliationEventType.ENTRY_PENDING: self._on_entry_pending,
            ReconciliationEventType.DELTA_APPLIED: self._on_delta_applied,
            ReconciliationEventType.UNKNOWN_STATION: self._on_unknown_station,
            ReconciliationEventType.JOURNEY_COMPLETED: self._on_journey_completed,
        }.get(event.event_type)
        if handler is not None:
            handler(event)

    def _on_yard_recorded(self, event: ReconciliationEvent) -> None:
        notes = event.details.get("notes")
        self._create(
            NotificationType.YARD_FUEL_RECORDED,
            title=f"Yard Fuel Recorded: {event.truck_no}",
            message=_with_notes(
                f"{event.actor} recorded {event.liters:g}L for truck {event.truck_no} at {event.station}.", notes
            ),
            event=event,
            related_model=RelatedModel.YARD_FUEL_DISPENSE,
        )

    def _on_yard_pending(self, event: ReconciliationEvent) -> None:
        notification = self._create(
            NotificationType.TRUCK_PENDING_LINKING,
            title=f"Truck Pending Linking: {event.truck_no}",
            message=(
                f"Truck {event.truck_no} has {event.liters:g}L recorded at {event.station} by {event.actor}, "
                f"but no active fuel record was found. Create the fuel record to link this entry."
            ),
            event=event,
            related_model=RelatedModel.YARD_FUEL_DISPENSE,
            status=NotificationStatus.PENDING,
        )
        self._forward(notification)

    def _on_yard_linked(self, event: ReconciliationEvent) -> None:
        closed = close_pending(RelatedModel.YARD_FUEL_DISPENSE, event.source_id, NotificationStatus.RESOLVED,
                               resolved_by=event.actor, db_path=self.db_path)
        if closed:
            self._create(
                NotificationType.YARD_FUEL_LINKED,
                title=f"Truck Successfully Linked: {event.truck_no}",
                message=(
                    f"Pending fuel entry for truck {event.truck_no} ({event.liters:g}L at {event.station}) "
                    f"has been linked to DO {event.do_number}."
                ),
                event=event,
                related_model=RelatedModel.YARD_FUEL_DISPENSE,
            )

    def _on_yard_rejected(self, event: ReconciliationEvent) -> None:
        close_pending(RelatedModel.YARD_FUEL_DISPENSE, event.source_id, NotificationStatus.DISMISSED,
                      resolved_by=event.actor, db_path=self.db_path)
        reason = event.details.get("reason", "")
        self._create(
            NotificationType.TRUCK_ENTRY_REJECTED,
            title=f"Truck Entry Rejected: {event.truck_no}",
            message=(
                f"Fuel entry for truck {event.truck_no} ({event.liters:g}L at {event.station}) "
                f"was rejected by {event.actor}. Reason: {reason}."
            ),
            event=event,
            related_model=RelatedModel.YARD_FUEL_DISPENSE,
        )

    def _on_entry_pending(self, event: ReconciliationEvent) -> None:
        if event.source_type != "lpo_entry" or event.source_id is None:
            return
        # One open notification per LPO line is enough.
        if list_notifications(self.db_path, status=NotificationStatus.PENDING,
                              related_model=RelatedModel.LPO_ENTRY, related_id=event.source_id, limit=1):
            return
        notification = self._create(
            NotificationType.LPO_ENTRY_PENDING,
            title=f"LPO Entry Pending: {event.truck_no}",
            message=(
                f"{event.liters:g}L at {event.station} for truck {event.truck_no} (DO {event.do_number or '-'}) "
                f"could not be matched to a fuel record."
            ),
            event=event,
            related_model=RelatedModel.LPO_ENTRY,
            status=NotificationStatus.PENDING,
        )
        self._forward(notification)

    def _on_delta_applied(self, event: ReconciliationEvent) -> None:
        if event.source_type == "lpo_entry" and event.source_id is not None:
            close_pending(RelatedModel.LPO_ENTRY, event.source_id, NotificationStatus.RESOLVED,
                          resolved_by=event.actor, db_path=self.db_path)

    def _on_unknown_station(self, event: ReconciliationEvent) -> None:
        self._create(
            NotificationType.UNKNOWN_STATION,
            title=f"Unknown Station: {event.station}",
            message=(
                f"{event.liters:g}L for truck {event.truck_no} at {event.station} was not applied: "
                f"the station has no fuel record column."
            ),
            event=event,
            related_model=RelatedModel.LPO_ENTRY if event.source_type == "lpo_entry" else None,
        )

    def _on_journey_completed(self, event: ReconciliationEvent) -> None:
        self._create(
            NotificationType.JOURNEY_COMPLETED,
            title=f"Journey Completed: {event.truck_no}",
            message=f"Fuel record for truck {event.truck_no} (DO {event.do_number or '-'}) is complete.",
            event=event,
            related_model=RelatedModel.FUEL_RECORD,
            related_id=event.fuel_record_id,
        )

    def _create(
        self,
        type: NotificationType,
        title: str,
        message: str,
        event: ReconciliationEvent,
        related_model: Optional[RelatedModel],
        status: NotificationStatus = NotificationStatus.INFO,
        related_id: Any = None,
    ) -> Notification:
        metadata: Dict[str, Any] = {
            "truckNo": event.truck_no,
            "liters": event.liters,
            "station": event.station,
            "doNumber": event.do_number,
            "fuelRecordId": event.fuel_record_id,
            **event.details,
        }
        notification = insert_notification(
            type,
            title,
            message,
            status=status,
            related_model=related_model,
            related_id=related_id if related_id is not None else event.source_id,
            metadata=metadata,
            created_by=event.actor,
            db_path=self.db_path,
        )
        logger.info(f"Created {type.value} notification for truck {event.truck_no}")
        return notification

    # =========================================================================
    # Slack
    # =========================================================================

    def _forward(self, notification: Notification) -> None:
        if self.slack is None:
            return
        task = asyncio.create_task(self.slack.send(
            f"*{notification.title}*\n{notification.message}",
            fields={"Type": notification.type.value, "Status": notification.status.value},
        ))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def aclose(self) -> None:
        """Wait for in-flight Slack posts and close the HTTP session."""
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)
        if self.slack:
            await self.slack.close()

    # =========================================================================
    # Queries and user actions
    # =========================================================================

    def list_recent(self, status: Optional[NotificationStatus] = None, unread_only: bool = False,
                    limit: int = 100) -> List[Notification]:
        return list_notifications(self.db_path, status=status, unread_only=unread_only, limit=limit)

    def unread_count(self) -> int:
        return count_unread(self.db_path)

    def mark_read(self, notification_id: int) -> Notification:
        if not mark_read(notification_id, db_path=self.db_path):
            raise NotFoundError(f"Notification {notification_id} not found")
        return get_notification(notification_id, db_path=self.db_path)

    def mark_all_read(self) -> int:
        return mark_all_read(db_path=self.db_path)

    def dismiss(self, notification_id: int, actor: str = "system") -> Notification:
        if not set_status(notification_id, NotificationStatus.DISMISSED, actor, db_path=self.db_path):
            raise NotFoundError(f"Notification {notification_id} not found")
        return get_notification(notification_id, db_path=self.db_path)
