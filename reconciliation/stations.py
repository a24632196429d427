"""Station → checkpoint field mapping.

Each fuel station that sells against LPOs maps to a pair of fuel record
columns: one for the going leg and one for the returning leg. Yards map to
a single yard column.

The map is a plain configuration object handed to the resolver and engine,
so tests and deployments can supply their own table (see `from_json`).

Notes:
- CASH entries default to the Dar es Salaam pair. This is an approximation
  carried over from the fuel office; cash purchases can happen anywhere.
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional, Union

from core.normalize import normalize_station
from fuel_records.models import CHECKPOINT_FIELDS, YARD_FIELDS, Direction, to_column_name


@dataclass(frozen=True)
class FieldPair:
    """Going/returning columns for one station. Either side may be missing."""
    going: Optional[str] = None
    returning: Optional[str] = None

    def for_direction(self, direction: Direction) -> Optional[str]:
        """Column for `direction`, falling back to the other leg's column."""
        if direction == Direction.RETURNING:
            return self.returning or self.going
        return self.going or self.returning


DEFAULT_STATION_FIELDS: Dict[str, FieldPair] = {
    # Zambia
    "LAKE CHILABOMBWE": FieldPair("zambia_going", "zambia_return"),
    "LAKE NDOLA": FieldPair("zambia_going", "zambia_return"),
    "LAKE KAPIRI": FieldPair("zambia_going", "zambia_return"),
    "LAKE KITWE": FieldPair("zambia_going", "zambia_return"),
    "LAKE KABANGWA": FieldPair("zambia_going", "zambia_return"),
    "LAKE CHINGOLA": FieldPair("zambia_going", "zambia_return"),
    # Tunduma border
    "LAKE TUNDUMA": FieldPair("tdm_going", "tunduma_return"),
    # Mbeya
    "INFINITY": FieldPair("mbeya_going", "mbeya_return"),
    # Morogoro
    "GBP MOROGORO": FieldPair("moro_going", "moro_return"),
    # Kange: going fuel is booked against Morogoro, return against Tanga
    "GBP KANGE": FieldPair("moro_going", "tanga_return"),
    "GPB KANGE": FieldPair("moro_going", "tanga_return"),
    "CASH": FieldPair("dar_going", "dar_return"),
}

DEFAULT_YARD_FIELDS: Dict[str, str] = {
    "DAR YARD": "dar_yard",
    "TANGA YARD": "tanga_yard",
    "MMSA YARD": "mmsa_yard",
}


class StationMapError(ValueError):
    """Raised when a station map refers to a column that does not exist."""


@dataclass
class StationFieldMap:
    """Lookup table from station/yard names to fuel record columns.

    Keys are normalized with `normalize_station`, so "lake ndola " and
    "LAKE NDOLA" are the same station.
    """
    stations: Dict[str, FieldPair] = field(default_factory=dict)
    yards: Dict[str, str] = field(default_factory=dict)

    def __post_init__(self):
        self.stations = {normalize_station(k): v for k, v in self.stations.items()}
        self.yards = {normalize_station(k): v for k, v in self.yards.items()}
        self._validate()

    def _validate(self) -> None:
        for station, pair in self.stations.items():
            if not pair.going and not pair.returning:
                raise StationMapError(f"Station {station} has no fuel columns")
            for column in (pair.going, pair.returning):
                if column and column not in CHECKPOINT_FIELDS:
                    raise StationMapError(f"Station {station} maps to unknown column {column}")
        for yard, column in self.yards.items():
            if column not in YARD_FIELDS:
                raise StationMapError(f"Yard {yard} maps to unknown yard column {column}")

    @classmethod
    def default(cls) -> "StationFieldMap":
        return cls(stations=dict(DEFAULT_STATION_FIELDS), yards=dict(DEFAULT_YARD_FIELDS))

    @classmethod
    def from_dict(cls, data: Dict) -> "StationFieldMap":
        """Build a map from plain data.

        Column names may be given as columns ("zambia_going") or in the
        camelCase the fuel office uses ("zambiaGoing"):

            {
              "stations": {"LAKE NDOLA": {"going": "zambiaGoing", "returning": "zambiaReturn"}},
              "yards": {"DAR YARD": "darYard"}
            }

        Stations or yards missing from the data keep their defaults.
        """
        stations = dict(DEFAULT_STATION_FIELDS)
        for name, pair in (data.get("stations") or {}).items():
            stations[normalize_station(name)] = FieldPair(
                going=_column(pair.get("going")),
                returning=_column(pair.get("returning")),
            )

        yards = dict(DEFAULT_YARD_FIELDS)
        for name, column in (data.get("yards") or {}).items():
            yards[normalize_station(name)] = _column(column)

        return cls(stations=stations, yards=yards)

    @classmethod
    def from_json(cls, path: Union[str, Path]) -> "StationFieldMap":
        with open(path, "r", encoding="utf-8") as f:
            return cls.from_dict(json.load(f))

    def get(self, station: str) -> Optional[FieldPair]:
        return self.stations.get(normalize_station(station))

    def field_for(self, station: str, direction: Direction) -> Optional[str]:
        """Column a liters delta at `station` lands in, or None if unknown."""
        pair = self.get(station)
        if pair is None:
            return None
        return pair.for_direction(direction)

    def yard_field(self, yard: str) -> Optional[str]:
        return self.yards.get(normalize_station(yard))

    def known_stations(self):
        return sorted(self.stations)


def _column(name: Optional[str]) -> Optional[str]:
    if not name:
        return None
    column = to_column_name(name)
    if column is None:
        raise StationMapError(f"Unknown fuel column: {name}")
    return column


def load_station_map(path: Optional[Union[str, Path]] = None) -> StationFieldMap:
    """Default map, overridden by a JSON file when `path` is given."""
    if path:
        return StationFieldMap.from_json(path)
    return StationFieldMap.default()
