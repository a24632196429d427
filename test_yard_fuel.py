"""
Yard Fuel Linking Test

Validates:
1. A dispense for a truck with an active journey is linked immediately
2. Pending dispenses are linked when the truck's journey is created
3. Linking is idempotent (a dispense is counted once)
4. Reject, update and delete keep the yard column in step
"""

import asyncio
from datetime import date

import pytest

from core.errors import NotFoundError, ValidationError
from fuel_records.db import get_fuel_record
from yard_fuel import YardFuelCreate, YardFuelStatus, YardFuelUpdate
from yard_fuel.db import get_dispense


def run(coro):
    return asyncio.run(coro)


def dispense(liters=250, yard="DAR YARD", truck_no="T100 ABC", **kwargs):
    return YardFuelCreate(truck_no=truck_no, liters=liters, yard=yard, **kwargs)


class TestLinking:
    """Automatic linking of yard dispenses to the active journey."""

    def test_links_immediately_when_journey_is_active(self, services, make_record):
        record = run(services.fuel_records.create_fuel_record(make_record()))

        created = run(services.linker.create_dispense(dispense(), actor="dar_yard"))

        assert created.status == YardFuelStatus.LINKED
        assert created.auto_linked
        assert created.linked_fuel_record_id == record.id
        assert created.linked_do_number == "DO100"
        assert created.applied_liters == 250

        stored = get_fuel_record(record.id, db_path=services.db_path)
        assert stored.dar_yard == 250
        assert stored.balance == 1750

    def test_pending_without_journey(self, services):
        created = run(services.linker.create_dispense(dispense(yard="tanga yard")))

        assert created.status == YardFuelStatus.PENDING
        assert created.yard == "TANGA YARD"
        assert created.linked_fuel_record_id is None

    def test_retroactive_link_on_record_creation(self, services, make_record):
        first = run(services.linker.create_dispense(dispense(liters=100)))
        second = run(services.linker.create_dispense(dispense(liters=150, yard="MMSA YARD", truck_no="t100abc")))

        record = run(services.fuel_records.create_fuel_record(make_record()))

        assert record.dar_yard == 100
        assert record.mmsa_yard == 150
        assert record.balance == 1750
        for dispense_id in (first.id, second.id):
            assert get_dispense(dispense_id, db_path=services.db_path).status == YardFuelStatus.LINKED

    def test_relink_is_idempotent(self, services, make_record):
        run(services.linker.create_dispense(dispense(liters=100)))
        record = run(services.fuel_records.create_fuel_record(make_record()))

        summary = run(services.linker.link_pending_for_truck(record.id))

        assert summary.linked_count == 0
        assert get_fuel_record(record.id, db_path=services.db_path).dar_yard == 100

    def test_history_records_transitions(self, services, make_record):
        created = run(services.linker.create_dispense(dispense(), actor="dar_yard"))
        run(services.fuel_records.create_fuel_record(make_record(), actor="fuel_office"))

        history = get_dispense(created.id, db_path=services.db_path).history

        assert [h.action.value for h in history] == ["created", "linked"]
        assert history[1].performed_by == "fuel_office"

    def test_unknown_yard_is_rejected(self, services):
        with pytest.raises(ValidationError):
            run(services.linker.create_dispense(dispense(yard="MOON YARD")))

    def test_manual_link(self, services, make_record):
        created = run(services.linker.create_dispense(dispense(truck_no="T555 XYZ")))
        record = run(services.fuel_records.create_fuel_record(make_record()))

        linked = run(services.linker.link_manually(created.id, record.id, actor="supervisor"))

        assert linked.status == YardFuelStatus.MANUAL
        assert not linked.auto_linked
        assert get_fuel_record(record.id, db_path=services.db_path).dar_yard == 250

    def test_manual_link_requires_pending(self, services, make_record):
        record = run(services.fuel_records.create_fuel_record(make_record()))
        created = run(services.linker.create_dispense(dispense()))

        with pytest.raises(ValidationError):
            run(services.linker.link_manually(created.id, record.id))

    def test_manual_link_unknown_record(self, services):
        created = run(services.linker.create_dispense(dispense()))

        with pytest.raises(NotFoundError):
            run(services.linker.link_manually(created.id, 9999))


class TestCorrections:
    """Reject, update and delete reverse or adjust the applied liters."""

    def test_reject_requires_reason(self, services):
        created = run(services.linker.create_dispense(dispense()))

        with pytest.raises(ValidationError):
            run(services.linker.reject(created.id, "  "))

    def test_reject_reverses_linked_delta(self, services, make_record):
        record = run(services.fuel_records.create_fuel_record(make_record()))
        created = run(services.linker.create_dispense(dispense()))

        rejected = run(services.linker.reject(created.id, "Wrong truck", actor="supervisor"))

        assert rejected.status == YardFuelStatus.REJECTED
        assert rejected.rejection_reason == "Wrong truck"
        assert rejected.is_deleted
        stored = get_fuel_record(record.id, db_path=services.db_path)
        assert stored.dar_yard == 0
        assert stored.balance == 2000

    def test_reject_twice_fails(self, services):
        created = run(services.linker.create_dispense(dispense()))
        run(services.linker.reject(created.id, "Duplicate"))

        with pytest.raises(ValidationError):
            run(services.linker.reject(created.id, "Duplicate"))

    def test_later_link_resolves_recent_rejection(self, services, make_record):
        rejected = run(services.linker.create_dispense(dispense()))
        run(services.linker.reject(rejected.id, "Truck number typo"))
        run(services.fuel_records.create_fuel_record(make_record()))

        run(services.linker.create_dispense(dispense()))

        stored = get_dispense(rejected.id, db_path=services.db_path)
        assert stored.rejection_resolved
        assert stored.rejection_resolved_by == "system"

    def test_rejection_history(self, services, make_record):
        dar = run(services.linker.create_dispense(dispense()))
        tanga = run(services.linker.create_dispense(dispense(yard="TANGA YARD")))
        deleted = run(services.linker.create_dispense(dispense(liters=10)))
        run(services.linker.reject(dar.id, "Truck number typo"))
        run(services.linker.reject(tanga.id, "Not our truck"))
        run(services.linker.delete_dispense(deleted.id))

        history = services.linker.rejection_history()

        assert [d.id for d in history] == [tanga.id, dar.id]
        assert [d.id for d in services.linker.rejection_history(yard="tanga yard")] == [tanga.id]
        assert len(services.linker.rejection_history(date_from=date.today(), date_to=date.today())) == 2

        run(services.fuel_records.create_fuel_record(make_record()))
        run(services.linker.create_dispense(dispense()))

        unresolved = services.linker.rejection_history(show_resolved=False)
        assert [d.id for d in unresolved] == [tanga.id]

    def test_update_applies_liters_difference(self, services, make_record):
        record = run(services.fuel_records.create_fuel_record(make_record()))
        created = run(services.linker.create_dispense(dispense()))

        updated = run(services.linker.update_dispense(created.id, YardFuelUpdate(liters=300)))

        assert updated.liters == 300
        assert updated.applied_liters == 300
        stored = get_fuel_record(record.id, db_path=services.db_path)
        assert stored.dar_yard == 300
        assert stored.balance == 1700

    def test_update_pending_changes_no_record(self, services):
        created = run(services.linker.create_dispense(dispense()))

        updated = run(services.linker.update_dispense(created.id, YardFuelUpdate(liters=80, notes="re-measured")))

        assert updated.liters == 80
        assert updated.applied_liters == 0
        assert updated.notes == "re-measured"

    def test_delete_reverses_linked_delta(self, services, make_record):
        record = run(services.fuel_records.create_fuel_record(make_record()))
        created = run(services.linker.create_dispense(dispense()))

        deleted = run(services.linker.delete_dispense(created.id))

        assert deleted.is_deleted
        assert get_fuel_record(record.id, db_path=services.db_path).balance == 2000
        assert services.linker.list_dispenses() == []

    def test_summary_by_yard(self, services):
        run(services.linker.create_dispense(dispense(liters=100)))
        run(services.linker.create_dispense(dispense(liters=50)))
        run(services.linker.create_dispense(dispense(liters=70, yard="TANGA YARD")))

        by_yard = {s.yard: s for s in services.linker.summary()}

        assert by_yard["DAR YARD"].count == 2
        assert by_yard["DAR YARD"].total_liters == 150
        assert by_yard["DAR YARD"].pending_count == 2
        assert by_yard["TANGA YARD"].total_liters == 70


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
