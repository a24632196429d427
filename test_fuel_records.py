"""
Fuel Record Lifecycle Test

Validates:
1. Journeys created while a truck is on the road are queued in order
2. Completing, cancelling or deleting the active journey activates the next
3. Activation links yard fuel that was waiting for the truck
4. Manual corrections recompute balance and fail with a conflict only after
   the configured retries
"""

import asyncio
from datetime import date

import pytest

from core.audit import AuditEventType
from core.errors import ConflictError, NotFoundError, ValidationError
from fuel_records import service as fuel_record_service
from fuel_records.db import apply_field_delta, get_fuel_record, update_fuel_record_if_version
from fuel_records.models import FuelRecord, FuelRecordUpdate, JourneyStatus
from fuel_records.service import is_journey_complete
from yard_fuel import YardFuelStatus
from yard_fuel.db import get_dispense, insert_dispense


def run(coro):
    return asyncio.run(coro)


def journey(**overrides) -> FuelRecord:
    values = {"id": 1, "date": date(2026, 3, 1), "truck_no": "T100 ABC", "going_do": "DO100"}
    values.update(overrides)
    return FuelRecord(**values)


class TestJourneyCompletionRule:

    def test_balance_must_be_zero(self):
        assert not is_journey_complete(journey(balance=10, mbeya_return=300))

    def test_mbeya_marker_for_inland_destinations(self):
        assert is_journey_complete(journey(to_location="NDOLA", balance=0, mbeya_return=300))
        assert not is_journey_complete(journey(to_location="NDOLA", balance=0, tanga_return=300))

    def test_tanga_marker_for_mombasa(self):
        assert is_journey_complete(journey(to_location="MSA", balance=0, tanga_return=200))
        assert not is_journey_complete(journey(original_going_to="Mombasa", balance=0, mbeya_return=200))


class TestQueue:
    """One active journey per truck; the rest wait in order."""

    def test_second_journey_is_queued(self, services, make_record):
        first = run(services.fuel_records.create_fuel_record(make_record()))
        second = run(services.fuel_records.create_fuel_record(make_record(going_do="DO101")))
        third = run(services.fuel_records.create_fuel_record(make_record(going_do="DO102")))

        assert first.journey_status == JourneyStatus.ACTIVE
        assert first.activated_at is not None
        assert second.journey_status == JourneyStatus.QUEUED
        assert (second.queue_order, third.queue_order) == (1, 2)
        assert second.previous_journey_id == first.id

    def test_new_record_defaults(self, services, make_record):
        record = run(services.fuel_records.create_fuel_record(make_record(truck_no="t100-abc", extra=60)))

        assert record.truck_no == "T100 ABC"
        assert record.balance == 2060
        assert record.original_going_to == "NDOLA"
        assert record.month == date.today().strftime("%B %Y")

    def test_duplicate_going_do(self, services, make_record):
        run(services.fuel_records.create_fuel_record(make_record()))

        with pytest.raises(ValidationError):
            run(services.fuel_records.create_fuel_record(make_record(truck_no="T200 BBB")))

    def test_deleting_queued_journey_renumbers(self, services, make_record):
        run(services.fuel_records.create_fuel_record(make_record()))
        second = run(services.fuel_records.create_fuel_record(make_record(going_do="DO101")))
        third = run(services.fuel_records.create_fuel_record(make_record(going_do="DO102")))

        run(services.fuel_records.delete_fuel_record(second.id))

        assert get_fuel_record(second.id, db_path=services.db_path) is None
        assert get_fuel_record(third.id, db_path=services.db_path).queue_order == 1

    def test_cancelling_active_journey_activates_next(self, services, make_record):
        first = run(services.fuel_records.create_fuel_record(make_record()))
        second = run(services.fuel_records.create_fuel_record(make_record(going_do="DO101")))

        cancelled = run(services.fuel_records.cancel_fuel_record(first.id, reason="Trip called off", actor="ops"))

        assert cancelled.is_cancelled
        assert cancelled.cancelled_by == "ops"
        activated = get_fuel_record(second.id, db_path=services.db_path)
        assert activated.journey_status == JourneyStatus.ACTIVE
        assert activated.queue_order is None

        with pytest.raises(ValidationError):
            run(services.fuel_records.cancel_fuel_record(first.id))


class TestCompletion:

    def test_return_fuel_completes_journey(self, services, make_record, audit_events):
        first = run(services.fuel_records.create_fuel_record(make_record(return_do="RDO100")))
        second = run(services.fuel_records.create_fuel_record(make_record(going_do="DO101")))
        waiting = insert_dispense(
            date=date.today().isoformat(), truck_no="T100 ABC", liters=120, yard="DAR YARD",
            entered_by="dar_yard", db_path=services.db_path,
        )

        run(services.fuel_records.update_fuel_record(first.id, FuelRecordUpdate(zambia_going=1500)))
        outcome = run(services.engine.reconcile_station_delta("RDO100", "T100 ABC", "INFINITY", 500))

        assert outcome.field == "mbeya_return"
        completed = get_fuel_record(first.id, db_path=services.db_path)
        assert completed.balance == 0
        assert completed.journey_status == JourneyStatus.COMPLETED
        assert completed.completed_at is not None

        activated = get_fuel_record(second.id, db_path=services.db_path)
        assert activated.journey_status == JourneyStatus.ACTIVE
        assert activated.dar_yard == 120
        assert activated.balance == 1880

        linked = get_dispense(waiting.id, db_path=services.db_path)
        assert linked.status == YardFuelStatus.LINKED
        assert linked.linked_fuel_record_id == second.id
        assert audit_events.query(event_type=AuditEventType.JOURNEY_COMPLETED.value)

    def test_drained_balance_without_marker_stays_active(self, services, make_record):
        record = run(services.fuel_records.create_fuel_record(make_record()))

        run(services.engine.apply_delta(record.id, "zambia_going", 2000))

        stored = get_fuel_record(record.id, db_path=services.db_path)
        assert stored.balance == 0
        assert stored.journey_status == JourneyStatus.ACTIVE


class TestManualCorrection:

    def test_balance_is_recomputed(self, services, make_record):
        record = run(services.fuel_records.create_fuel_record(make_record()))
        run(services.engine.apply_delta(record.id, "zambia_going", 100))

        updated = run(services.fuel_records.update_fuel_record(record.id, FuelRecordUpdate(total_lts=2200, extra=50)))

        assert updated.balance == 2150
        assert updated.zambia_going == 100
        assert updated.balance == updated.expected_balance()

    def test_non_balance_change_keeps_balance(self, services, make_record):
        record = run(services.fuel_records.create_fuel_record(make_record()))

        updated = run(services.fuel_records.update_fuel_record(record.id, FuelRecordUpdate(return_do="RDO9")))

        assert updated.return_do == "RDO9"
        assert updated.balance == 2000

    def test_stale_version_is_retried(self, services, make_record, monkeypatch):
        record = run(services.fuel_records.create_fuel_record(make_record()))
        real_update = fuel_record_service.update_fuel_record_if_version
        calls = []

        def lose_first_race(record_id, expected_version, values, db_path=None):
            calls.append(expected_version)
            if len(calls) == 1:
                return False
            return real_update(record_id, expected_version, values, db_path=db_path)

        monkeypatch.setattr(fuel_record_service, "update_fuel_record_if_version", lose_first_race)

        updated = run(services.fuel_records.update_fuel_record(record.id, FuelRecordUpdate(extra=100)))

        assert len(calls) == 2
        assert updated.balance == 2100

    def test_stale_version_write_is_refused(self, services, make_record):
        record = run(services.fuel_records.create_fuel_record(make_record()))
        apply_field_delta(record.id, "zambia_going", 300, db_path=services.db_path)

        written = update_fuel_record_if_version(record.id, record.version, {"extra": 100, "balance": 2100},
                                                db_path=services.db_path)

        assert not written
        stored = get_fuel_record(record.id, db_path=services.db_path)
        assert (stored.extra, stored.balance) == (0, 1700)

    def test_delta_between_read_and_write_is_kept(self, services, make_record, monkeypatch):
        record = run(services.fuel_records.create_fuel_record(make_record()))
        fuel_records = services.fuel_records
        read_record = fuel_records._get_or_raise
        reads = []

        def read_then_lpo_lands(record_id):
            current = read_record(record_id)
            reads.append(current.version)
            if len(reads) == 1:
                apply_field_delta(record_id, "zambia_going", 300, db_path=services.db_path)
            return current

        monkeypatch.setattr(fuel_records, "_get_or_raise", read_then_lpo_lands)

        updated = run(fuel_records.update_fuel_record(record.id, FuelRecordUpdate(extra=100)))

        assert reads == [record.version, record.version + 1]
        assert updated.zambia_going == 300
        assert updated.extra == 100
        assert updated.balance == 1800
        assert updated.balance == updated.expected_balance()

    def test_conflict_after_retries(self, services, make_record, monkeypatch, audit_events):
        record = run(services.fuel_records.create_fuel_record(make_record()))
        monkeypatch.setattr(fuel_record_service, "update_fuel_record_if_version",
                            lambda *args, **kwargs: False)

        with pytest.raises(ConflictError):
            run(services.fuel_records.update_fuel_record(record.id, FuelRecordUpdate(extra=100)))

        assert get_fuel_record(record.id, db_path=services.db_path).balance == 2000
        assert audit_events.query(event_type=AuditEventType.CONFLICT.value)

    def test_unknown_record(self, services):
        with pytest.raises(NotFoundError):
            run(services.fuel_records.update_fuel_record(404, FuelRecordUpdate(extra=1)))


class TestQueries:

    def test_lookup_by_do_and_truck(self, services, make_record):
        record = run(services.fuel_records.create_fuel_record(make_record(return_do="RDO100")))
        run(services.fuel_records.create_fuel_record(make_record(going_do="DO101")))

        assert services.fuel_records.by_do("RDO100").id == record.id
        assert len(services.fuel_records.by_truck("t100abc")) == 2
        with pytest.raises(NotFoundError):
            services.fuel_records.by_do("DO404")

    def test_paginated_list_and_summary(self, services, make_record):
        for i in range(3):
            run(services.fuel_records.create_fuel_record(make_record(truck_no=f"T10{i} ABC", going_do=f"DO{i}")))

        items, total = services.fuel_records.list_records(page=1, page_size=2)
        summary = services.fuel_records.monthly_summary(date.today().strftime("%B %Y"))

        assert total == 3
        assert len(items) == 2
        assert summary.record_count == 3
        assert summary.total_liters == 6000


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
