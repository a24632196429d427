"""Truck Number and Station Normalization Utilities.

Truck numbers arrive in many shapes from yard staff, LPO sheets and
delivery orders. Matching is done on a normalized key:
1. Converts to uppercase
2. Removes spaces and hyphens

Display format puts a single space between the plate prefix and suffix.

Examples:
    "T991 EFN" → key "T991EFN", display "T991 EFN"
    "t991-efn" → key "T991EFN", display "T991 EFN"
    "lake  ndola " → station "LAKE NDOLA"
"""

import re

TRUCK_PATTERN = re.compile(r"^(T\d{3,4})([A-Z]{3})$")


def normalize_truck_no(truck_no: str) -> str:
    """Normalize a truck number into its matching key.

    Examples:
        >>> normalize_truck_no("T991 EFN")
        'T991EFN'
        >>> normalize_truck_no("t991-efn")
        'T991EFN'
    """
    if not truck_no:
        return ""
    return re.sub(r"[\s-]", "", truck_no).upper()


def is_truck_no_match(truck_no_1: str, truck_no_2: str) -> bool:
    """Check if two truck numbers refer to the same truck."""
    key = normalize_truck_no(truck_no_1)
    return bool(key) and key == normalize_truck_no(truck_no_2)


def format_truck_no(truck_no: str) -> str:
    """Format a truck number for display and storage (e.g. "T991 EFN").

    Numbers that do not follow the T + digits + 3 letters plate pattern are
    returned as their normalized key.
    """
    normalized = normalize_truck_no(truck_no)
    match = TRUCK_PATTERN.match(normalized)
    if match:
        return f"{match.group(1)} {match.group(2)}"
    return normalized


def is_valid_truck_no(truck_no: str) -> bool:
    """Validate the plate pattern (T + 3-4 digits + 3 letters)."""
    return bool(TRUCK_PATTERN.match(normalize_truck_no(truck_no)))


def normalize_station(station: str) -> str:
    """Upper-case and trim a station or yard name, collapsing inner whitespace."""
    if not station:
        return ""
    return " ".join(station.upper().split())
