"""
Reconciliation Engine Test

Validates:
1. Every applied delta keeps balance == total_lts + extra - sum(checkpoints)
2. Deltas are reversible: +x then -x restores field and balance
3. Unknown fields, unknown stations and missing records never raise
4. Deltas from parallel writers are all counted
5. Fractional liters drain a record to exactly 0
"""

import asyncio
import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from fuel_records.db import apply_field_delta, get_fuel_record
from reconciliation import (
    MatchType,
    OutcomeStatus,
    ReconciliationEventType,
    RecordingSubscriber,
)
from fuel_records.models import Direction, JourneyStatus


def run(coro):
    return asyncio.run(coro)


class TestApplyDelta:
    """Atomic field += delta, balance -= delta."""

    def test_delta_keeps_balance_invariant(self, services, make_record):
        record = run(services.fuel_records.create_fuel_record(make_record()))
        assert record.balance == 2000

        result = run(services.engine.apply_delta(record.id, "zambia_going", 100))

        assert result.applied
        assert (result.old_value, result.new_value) == (0, 100)
        assert (result.old_balance, result.new_balance) == (2000, 1900)

        stored = get_fuel_record(record.id, db_path=services.db_path)
        assert stored.zambia_going == 100
        assert stored.balance == stored.expected_balance()
        assert stored.version == record.version + 1

    def test_camel_case_field_name(self, services, make_record):
        record = run(services.fuel_records.create_fuel_record(make_record()))

        result = run(services.engine.apply_delta(record.id, "zambiaGoing", 40))

        assert result.applied
        assert result.field == "zambia_going"

    def test_delta_sequence_is_reversible(self, services, make_record):
        record = run(services.fuel_records.create_fuel_record(make_record()))

        for delta in (100, 50, -150):
            run(services.engine.apply_delta(record.id, "zambia_going", delta))

        stored = get_fuel_record(record.id, db_path=services.db_path)
        assert stored.zambia_going == 0
        assert stored.balance == 2000

    def test_unknown_field_is_skipped(self, services, make_record):
        record = run(services.fuel_records.create_fuel_record(make_record()))

        result = run(services.engine.apply_delta(record.id, "balance", 100))

        assert not result.applied
        assert result.reason == "unknown_field"
        assert get_fuel_record(record.id, db_path=services.db_path).balance == 2000

    def test_missing_record_is_skipped(self, services):
        recorder = RecordingSubscriber()
        services.event_bus.subscribe(recorder)

        result = run(services.engine.apply_delta(9999, "zambia_going", 100))

        assert not result.applied
        assert result.reason == "record_not_found"
        assert len(recorder.of_type(ReconciliationEventType.RECORD_NOT_FOUND)) == 1

    def test_zero_delta_is_no_change(self, services, make_record):
        record = run(services.fuel_records.create_fuel_record(make_record()))

        result = run(services.engine.apply_delta(record.id, "zambia_going", 0))

        assert not result.applied
        assert result.reason == "no_change"
        assert get_fuel_record(record.id, db_path=services.db_path).version == record.version

    def test_parallel_writers_lose_no_delta(self, services, make_record):
        record = run(services.fuel_records.create_fuel_record(make_record()))
        writers = 8
        barrier = threading.Barrier(writers)

        def writer(_):
            barrier.wait()
            return [apply_field_delta(record.id, "zambia_going", 10, db_path=services.db_path) for _ in range(5)]

        with ThreadPoolExecutor(max_workers=writers) as pool:
            writes = [w for batch in pool.map(writer, range(writers)) for w in batch]

        assert all(w is not None for w in writes)
        assert sorted(w.version for w in writes) == list(range(record.version + 1, record.version + 41))
        stored = get_fuel_record(record.id, db_path=services.db_path)
        assert stored.zambia_going == 400
        assert stored.balance == 1600

    def test_parallel_engine_calls_lose_no_delta(self, services, make_record):
        record = run(services.fuel_records.create_fuel_record(make_record()))

        def apply(_):
            return run(services.engine.apply_delta(record.id, "mbeya_going", 25))

        with ThreadPoolExecutor(max_workers=4) as pool:
            results = list(pool.map(apply, range(20)))

        assert all(r.applied for r in results)
        stored = get_fuel_record(record.id, db_path=services.db_path)
        assert stored.mbeya_going == 500
        assert stored.balance == 1500
        assert stored.balance == stored.expected_balance()

    def test_delta_applied_event_carries_values(self, services, make_record):
        recorder = RecordingSubscriber()
        services.event_bus.subscribe(recorder)
        record = run(services.fuel_records.create_fuel_record(make_record()))

        run(services.engine.apply_delta(record.id, "zambia_going", 100,
                                        source_type="lpo_entry", source_id=5, actor="clerk"))

        events = recorder.of_type(ReconciliationEventType.DELTA_APPLIED)
        assert len(events) == 1
        assert events[0].details["new_balance"] == 1900
        assert events[0].source_id == 5
        assert events[0].actor == "clerk"


class TestReconcileStationDelta:
    """Station purchases resolved to a record and a column."""

    def test_going_do_lands_in_going_column(self, services, make_record):
        record = run(services.fuel_records.create_fuel_record(make_record()))

        outcome = run(services.engine.reconcile_station_delta("DO100", "T100 ABC", "LAKE NDOLA", 100))

        assert outcome.status == OutcomeStatus.APPLIED
        assert outcome.applied
        assert outcome.match_type == MatchType.GOING_DO
        assert outcome.direction == Direction.GOING
        assert outcome.field == "zambia_going"
        assert get_fuel_record(record.id, db_path=services.db_path).balance == 1900

    def test_return_do_lands_in_return_column(self, services, make_record):
        record = run(services.fuel_records.create_fuel_record(make_record(return_do="RDO200")))

        outcome = run(services.engine.reconcile_station_delta("RDO200", "T100 ABC", "LAKE NDOLA", 80))

        assert outcome.match_type == MatchType.RETURN_DO
        assert outcome.field == "zambia_return"
        assert get_fuel_record(record.id, db_path=services.db_path).zambia_return == 80

    def test_station_name_is_normalized(self, services, make_record):
        run(services.fuel_records.create_fuel_record(make_record()))

        outcome = run(services.engine.reconcile_station_delta("DO100", "T100 ABC", "  lake ndola ", 10))

        assert outcome.applied

    def test_unknown_station(self, services, make_record):
        record = run(services.fuel_records.create_fuel_record(make_record()))
        recorder = RecordingSubscriber()
        services.event_bus.subscribe(recorder)

        outcome = run(services.engine.reconcile_station_delta("DO100", "T100 ABC", "NOWHERE FUEL", 100))

        assert outcome.status == OutcomeStatus.UNKNOWN_STATION
        assert not outcome.applied
        assert get_fuel_record(record.id, db_path=services.db_path).balance == 2000
        assert len(recorder.of_type(ReconciliationEventType.UNKNOWN_STATION)) == 1

    def test_no_record_leaves_entry_pending(self, services):
        recorder = RecordingSubscriber()
        services.event_bus.subscribe(recorder)

        outcome = run(services.engine.reconcile_station_delta("DO404", "T999 ZZZ", "LAKE NDOLA", 100))

        assert outcome.status == OutcomeStatus.PENDING
        assert len(recorder.of_type(ReconciliationEventType.ENTRY_PENDING)) == 1

    def test_completed_journey_is_not_touched(self, services, make_record):
        record = run(services.fuel_records.create_fuel_record(make_record(total_lts=0)))

        outcome = run(services.engine.reconcile_station_delta(None, "T100 ABC", "LAKE NDOLA", 100))

        assert outcome.status == OutcomeStatus.JOURNEY_COMPLETE
        stored = get_fuel_record(record.id, db_path=services.db_path)
        assert stored.zambia_going == 0
        assert stored.balance == 0

    def test_zero_delta(self, services):
        outcome = run(services.engine.reconcile_station_delta("DO100", "T100 ABC", "LAKE NDOLA", 0))
        assert outcome.status == OutcomeStatus.NO_CHANGE


class TestYardDelta:

    def test_yard_delta_uses_yard_column(self, services, make_record):
        record = run(services.fuel_records.create_fuel_record(make_record()))

        result = run(services.engine.apply_yard_delta(record.id, "dar yard", 250))

        assert result.applied
        assert result.field == "dar_yard"
        assert result.new_balance == 1750

    def test_unknown_yard(self, services, make_record):
        record = run(services.fuel_records.create_fuel_record(make_record()))

        result = run(services.engine.apply_yard_delta(record.id, "MOON YARD", 250))

        assert not result.applied
        assert result.reason == "unknown_yard"


class TestFractionalLiters:
    """Liters are kept to centiliters so a drained record reads exactly 0."""

    def test_fractional_drain_reaches_zero(self, services, make_record):
        record = run(services.fuel_records.create_fuel_record(make_record(total_lts=300.3)))

        for _ in range(3):
            result = run(services.engine.apply_delta(record.id, "zambia_going", 100.1))

        assert result.new_balance == 0
        stored = get_fuel_record(record.id, db_path=services.db_path)
        assert stored.zambia_going == 300.3
        assert stored.balance == 0

    def test_late_entry_after_fractional_drain_is_not_applied(self, services, make_record):
        record = run(services.fuel_records.create_fuel_record(make_record(total_lts=300.3)))
        for _ in range(3):
            run(services.engine.apply_delta(record.id, "zambia_going", 100.1))

        outcome = run(services.engine.reconcile_station_delta(None, "T100 ABC", "LAKE NDOLA", 50))

        assert outcome.status == OutcomeStatus.JOURNEY_COMPLETE
        stored = get_fuel_record(record.id, db_path=services.db_path)
        assert stored.zambia_going == 300.3
        assert stored.balance == 0

    def test_fractional_drain_completes_journey(self, services, make_record):
        first = run(services.fuel_records.create_fuel_record(make_record(total_lts=300.3, return_do="RDO100")))
        second = run(services.fuel_records.create_fuel_record(make_record(going_do="DO101")))
        run(services.engine.apply_delta(first.id, "zambia_going", 200.2))

        run(services.engine.reconcile_station_delta("RDO100", "T100 ABC", "INFINITY", 100.1))

        assert get_fuel_record(first.id, db_path=services.db_path).journey_status == JourneyStatus.COMPLETED
        assert get_fuel_record(second.id, db_path=services.db_path).journey_status == JourneyStatus.ACTIVE


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
