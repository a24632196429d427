"""
Notification Test

Validates that domain events become in-app notifications and that pending
notifications are closed when the underlying entry is linked, rejected or
applied.
"""

import asyncio
from datetime import date

import pytest

from core.errors import NotFoundError
from lpo import LPOEntryCreate
from notifications import (
    NotificationStatus,
    NotificationType,
    RelatedModel,
    SlackConfig,
    SlackNotifier,
)
from yard_fuel import YardFuelCreate


def run(coro):
    return asyncio.run(coro)


class RecordingSlack(SlackNotifier):
    """SlackNotifier that keeps messages instead of posting them."""

    def __init__(self):
        super().__init__(SlackConfig(webhook_url="https://hooks.slack.invalid/test"))
        self.sent = []

    async def send(self, text, fields=None):
        self.sent.append((text, fields))
        return True


def by_type(services, notification_type):
    return [n for n in services.notifications.list_recent() if n.type == notification_type]


class TestYardFuelNotifications:

    def test_pending_then_linked(self, services, make_record):
        dispense = run(services.linker.create_dispense(
            YardFuelCreate(truck_no="T100 ABC", liters=250, yard="DAR YARD", notes="night shift"),
            actor="dar_yard",
        ))

        recorded = by_type(services, NotificationType.YARD_FUEL_RECORDED)
        assert len(recorded) == 1
        assert "night shift" in recorded[0].message
        pending = by_type(services, NotificationType.TRUCK_PENDING_LINKING)
        assert len(pending) == 1
        assert pending[0].status == NotificationStatus.PENDING
        assert pending[0].related_model == RelatedModel.YARD_FUEL_DISPENSE
        assert pending[0].related_id == str(dispense.id)

        run(services.fuel_records.create_fuel_record(make_record()))

        pending = by_type(services, NotificationType.TRUCK_PENDING_LINKING)
        assert pending[0].status == NotificationStatus.RESOLVED
        linked = by_type(services, NotificationType.YARD_FUEL_LINKED)
        assert len(linked) == 1
        assert "DO100" in linked[0].message

    def test_immediate_link_has_no_linked_notification(self, services, make_record):
        run(services.fuel_records.create_fuel_record(make_record()))

        run(services.linker.create_dispense(YardFuelCreate(truck_no="T100 ABC", liters=250, yard="DAR YARD")))

        assert by_type(services, NotificationType.TRUCK_PENDING_LINKING) == []
        assert by_type(services, NotificationType.YARD_FUEL_LINKED) == []

    def test_rejection_dismisses_pending(self, services):
        dispense = run(services.linker.create_dispense(
            YardFuelCreate(truck_no="T100 ABC", liters=250, yard="DAR YARD")
        ))

        run(services.linker.reject(dispense.id, "Not our truck", actor="supervisor"))

        pending = by_type(services, NotificationType.TRUCK_PENDING_LINKING)
        assert pending[0].status == NotificationStatus.DISMISSED
        assert pending[0].resolved_by == "supervisor"
        rejected = by_type(services, NotificationType.TRUCK_ENTRY_REJECTED)
        assert "Not our truck" in rejected[0].message


class TestLPONotifications:

    def entry(self, **overrides):
        values = dict(lpo_no="4001", date=date.today(), station="LAKE NDOLA",
                      do_no="DO100", truck_no="T100 ABC", liters=100)
        values.update(overrides)
        return LPOEntryCreate(**values)

    def test_pending_entry_is_notified_once(self, services):
        entry = run(services.lpo.create_entry(self.entry()))
        run(services.lpo.retry_pending_entries())

        pending = by_type(services, NotificationType.LPO_ENTRY_PENDING)
        assert len(pending) == 1
        assert pending[0].related_id == str(entry.id)

    def test_pending_entry_resolved_when_applied(self, services, make_record):
        run(services.lpo.create_entry(self.entry()))
        run(services.fuel_records.create_fuel_record(make_record()))

        run(services.lpo.retry_pending_entries())

        pending = by_type(services, NotificationType.LPO_ENTRY_PENDING)
        assert pending[0].status == NotificationStatus.RESOLVED

    def test_unknown_station(self, services, make_record):
        run(services.fuel_records.create_fuel_record(make_record()))

        run(services.lpo.create_entry(self.entry(station="MYSTERY FUEL")))

        notes = by_type(services, NotificationType.UNKNOWN_STATION)
        assert len(notes) == 1
        assert notes[0].related_model == RelatedModel.LPO_ENTRY


class TestUserActions:

    def test_read_and_dismiss(self, services):
        run(services.linker.create_dispense(YardFuelCreate(truck_no="T100 ABC", liters=50, yard="DAR YARD")))
        assert services.notifications.unread_count() == 2

        first = services.notifications.list_recent()[0]
        assert services.notifications.mark_read(first.id).is_read
        assert services.notifications.unread_count() == 1
        assert services.notifications.mark_all_read() == 1
        assert services.notifications.unread_count() == 0

        dismissed = services.notifications.dismiss(first.id, actor="clerk")
        assert dismissed.status == NotificationStatus.DISMISSED

    def test_unknown_notification(self, services):
        with pytest.raises(NotFoundError):
            services.notifications.mark_read(404)
        with pytest.raises(NotFoundError):
            services.notifications.dismiss(404)


class TestSlackForwarding:

    def test_pending_notifications_are_forwarded(self, services):
        slack = RecordingSlack()
        services.notifications.slack = slack

        async def scenario():
            await services.linker.create_dispense(YardFuelCreate(truck_no="T100 ABC", liters=50, yard="DAR YARD"))
            await services.notifications.aclose()

        run(scenario())

        assert len(slack.sent) == 1
        text, fields = slack.sent[0]
        assert "Truck Pending Linking" in text
        assert fields["Status"] == "pending"

    def test_retry_delay_is_capped(self):
        from notifications import RetryConfig

        config = RetryConfig(base_delay=1, max_delay=5)

        assert [config.get_delay(n) for n in range(4)] == [1, 2, 4, 5]


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
