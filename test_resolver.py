"""
Fuel Record Resolver Test

Validates the lookup order used for station purchases:
1. Going DO, then return DO
2. Truck fallback over the current and two previous months (balance > 0)
3. Journey-complete guard when the newest record is drained
"""

import asyncio
from datetime import date

import pytest

from fuel_records import init_fuel_records_db
from fuel_records.db import insert_fuel_record
from fuel_records.models import Direction
from reconciliation import FuelRecordResolver, MatchType
from reconciliation.resolver import month_windows


def insert(db_path, record_date, going_do, truck_no="T100 ABC", balance=2000, return_do=None):
    return insert_fuel_record({
        "date": record_date,
        "truck_no": truck_no,
        "going_do": going_do,
        "return_do": return_do,
        "total_lts": 2000,
        "balance": balance,
    }, db_path=db_path)


@pytest.fixture
def resolver(db_path):
    init_fuel_records_db(db_path)
    return FuelRecordResolver(db_path, clock=lambda: date(2026, 3, 15))


def resolve(resolver, **kwargs):
    return asyncio.run(resolver.resolve(**kwargs))


class TestMonthWindows:

    def test_walks_back_three_months(self):
        assert month_windows(date(2026, 3, 15)) == [(2026, 3), (2026, 2), (2026, 1)]

    def test_crosses_year_boundary(self):
        assert month_windows(date(2026, 1, 31)) == [(2026, 1), (2025, 12), (2025, 11)]


class TestDoMatch:

    def test_going_do(self, resolver, db_path):
        record = insert(db_path, date(2025, 6, 1), "DO100")

        resolution = resolve(resolver, do_number="DO100", truck_no="T999 ZZZ")

        assert resolution.match_type == MatchType.GOING_DO
        assert resolution.fuel_record.id == record.id
        assert resolution.direction == Direction.GOING
        assert resolution.found

    def test_return_do(self, resolver, db_path):
        record = insert(db_path, date(2026, 3, 1), "DO100", return_do="RDO7")

        resolution = resolve(resolver, do_number=" RDO7 ")

        assert resolution.match_type == MatchType.RETURN_DO
        assert resolution.fuel_record.id == record.id
        assert resolution.direction == Direction.RETURNING

    def test_going_do_wins_over_return_do(self, resolver, db_path):
        going = insert(db_path, date(2026, 3, 1), "DO555")
        insert(db_path, date(2026, 3, 2), "DO556", truck_no="T200 XYZ", return_do="DO555")

        resolution = resolve(resolver, do_number="DO555")

        assert resolution.fuel_record.id == going.id


class TestTruckFallback:

    def test_current_month_first(self, resolver, db_path):
        insert(db_path, date(2026, 1, 5), "DO1")
        insert(db_path, date(2026, 2, 10), "DO2")
        current = insert(db_path, date(2026, 3, 2), "DO3")

        resolution = resolve(resolver, do_number="UNKNOWN", truck_no="t100abc")

        assert resolution.match_type == MatchType.TRUCK_FALLBACK
        assert resolution.fuel_record.id == current.id
        assert resolution.window == 0

    def test_skips_drained_records(self, resolver, db_path):
        older = insert(db_path, date(2026, 1, 20), "DO1")
        insert(db_path, date(2026, 3, 2), "DO2", balance=0)

        resolution = resolve(resolver, truck_no="T100 ABC")

        assert resolution.fuel_record.id == older.id
        assert resolution.window == 2

    def test_direction_follows_return_do(self, resolver, db_path):
        insert(db_path, date(2026, 3, 2), "DO2", return_do="RDO2")

        resolution = resolve(resolver, truck_no="T100 ABC")

        assert resolution.direction == Direction.RETURNING

    def test_direction_is_going_without_return_do(self, resolver, db_path):
        insert(db_path, date(2026, 3, 2), "DO2")

        resolution = resolve(resolver, truck_no="T100 ABC")

        assert resolution.direction == Direction.GOING

    def test_records_outside_window_are_ignored(self, resolver, db_path):
        insert(db_path, date(2025, 12, 20), "DO1")

        resolution = resolve(resolver, truck_no="T100 ABC")

        assert resolution.match_type == MatchType.NOT_FOUND
        assert not resolution.found

    def test_journey_complete(self, resolver, db_path):
        insert(db_path, date(2025, 11, 20), "DO1")
        drained = insert(db_path, date(2026, 3, 2), "DO2", balance=0)

        resolution = resolve(resolver, truck_no="T100 ABC")

        assert resolution.journey_complete
        assert resolution.fuel_record.id == drained.id
        assert not resolution.found

    def test_unknown_truck(self, resolver):
        resolution = resolve(resolver, do_number="DO404", truck_no="T404 NOP")

        assert resolution.match_type == MatchType.NOT_FOUND

    def test_nothing_to_resolve(self, resolver):
        assert resolve(resolver).match_type == MatchType.NOT_FOUND


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
