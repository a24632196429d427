"""Fuel Record Resolver.

This module finds the fuel record a liters delta belongs to:
1. Fuel record whose going DO matches (direction = going)
2. Fuel record whose return DO matches (direction = returning)
3. Truck fallback: newest record with balance > 0 in the current month,
   then the previous month, then two months prior
4. Journey-complete guard: the truck's most recent record has balance 0
5. Otherwise not found; the caller leaves its entry pending

The month windows are computed from an injectable clock so the fallback is
deterministic under test.
"""

import time
from datetime import date
from enum import Enum
from typing import Callable, List, Optional, Tuple

from pydantic import BaseModel

from core.db import DbPath
from core.observability.logging import get_logger
from core.observability.metrics import record_processing_time
from core.normalize import format_truck_no, is_truck_no_match
from fuel_records.db import find_by_going_do, find_by_return_do, list_for_truck
from fuel_records.models import Direction, FuelRecord

logger = get_logger(__name__)

# current, previous, two months prior
MONTH_WINDOWS = 3


class MatchType(str, Enum):
    GOING_DO = "going_do"
    RETURN_DO = "return_do"
    TRUCK_FALLBACK = "truck_fallback"
    JOURNEY_COMPLETE = "journey_complete"
    NOT_FOUND = "not_found"


class FuelRecordResolution(BaseModel):
    """Result of resolving a DO/truck to a fuel record."""
    match_type: MatchType
    fuel_record: Optional[FuelRecord] = None
    direction: Direction = Direction.GOING
    window: Optional[int] = None  # 0 = current month, 1 = previous, 2 = two months prior

    @property
    def journey_complete(self) -> bool:
        return self.match_type == MatchType.JOURNEY_COMPLETE

    @property
    def found(self) -> bool:
        """True when a delta may be applied to `fuel_record`."""
        return self.fuel_record is not None and not self.journey_complete


def month_windows(today: date, count: int = MONTH_WINDOWS) -> List[Tuple[int, int]]:
    """(year, month) pairs starting at today's month and walking backwards."""
    windows = []
    year, month = today.year, today.month
    for _ in range(count):
        windows.append((year, month))
        month -= 1
        if month == 0:
            year, month = year - 1, 12
    return windows


class FuelRecordResolver:
    """Resolves delivery orders and truck numbers to fuel records.

    Example:
        resolver = FuelRecordResolver(db_path)
        resolution = await resolver.resolve(do_number="DO123", truck_no="T100 ABC")
        if resolution.found:
            ...
    """

    def __init__(
        self,
        db_path: DbPath = None,
        clock: Callable[[], date] = date.today,
    ):
        """Initialize the resolver.

        Args:
            db_path: Path to SQLite database
            clock: Returns "today"; the month windows are relative to it
        """
        self.db_path = db_path
        self.clock = clock

    async def resolve(
        self,
        do_number: Optional[str] = None,
        truck_no: Optional[str] = None,
    ) -> FuelRecordResolution:
        """Resolve a DO number and/or truck number to a fuel record."""
        start_time = time.time()
        try:
            return self._resolve(do_number, truck_no)
        finally:
            record_processing_time("resolve", (time.time() - start_time) * 1000)

    def _resolve(self, do_number: Optional[str], truck_no: Optional[str]) -> FuelRecordResolution:
        do_number = (do_number or "").strip()

        if do_number:
            record = find_by_going_do(do_number, db_path=self.db_path)
            if record:
                return FuelRecordResolution(
                    match_type=MatchType.GOING_DO,
                    fuel_record=record,
                    direction=Direction.GOING,
                )

            record = find_by_return_do(do_number, db_path=self.db_path)
            if record:
                return FuelRecordResolution(
                    match_type=MatchType.RETURN_DO,
                    fuel_record=record,
                    direction=Direction.RETURNING,
                )

        if not truck_no:
            return FuelRecordResolution(match_type=MatchType.NOT_FOUND)

        return self._resolve_by_truck(truck_no)

    def _resolve_by_truck(self, truck_no: str) -> FuelRecordResolution:
        records = [
            r for r in list_for_truck(truck_no, db_path=self.db_path)
            if is_truck_no_match(r.truck_no, truck_no)
        ]
        if not records:
            logger.info(f"No fuel records for truck {format_truck_no(truck_no)}")
            return FuelRecordResolution(match_type=MatchType.NOT_FOUND)

        for index, (year, month) in enumerate(month_windows(self.clock())):
            for record in records:
                if record.date.year == year and record.date.month == month and record.balance > 0:
                    return FuelRecordResolution(
                        match_type=MatchType.TRUCK_FALLBACK,
                        fuel_record=record,
                        direction=Direction.RETURNING if record.return_do else Direction.GOING,
                        window=index,
                    )

        most_recent = records[0]
        if most_recent.balance == 0:
            logger.info(
                f"Truck {format_truck_no(truck_no)}: journey complete (balance=0), no fuel update needed",
                extra_fields={"fuel_record_id": most_recent.id},
            )
            return FuelRecordResolution(
                match_type=MatchType.JOURNEY_COMPLETE,
                fuel_record=most_recent,
                direction=Direction.GOING,
            )

        return FuelRecordResolution(match_type=MatchType.NOT_FOUND)
