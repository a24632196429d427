"""
Check every fuel record against the balance invariant:

    balance == total_lts + extra - sum(checkpoint columns)

With --fix, drifted balances are rewritten through the version-checked
update so a concurrent writer is never overwritten.
"""

import argparse
import json
from pathlib import Path
from typing import Dict, List

import sys
sys.path.append(str(Path(__file__).resolve().parents[1]))

from core.config import get_settings
from core.observability.logging import configure_logging, get_logger
from fuel_records.db import init_fuel_records_db, iter_fuel_records, update_fuel_record_if_version

logger = get_logger(__name__)

# Liters; float sums of checkpoint columns
TOLERANCE = 0.001


def find_drift(db_path) -> List[Dict]:
    drifted = []
    for record in iter_fuel_records(db_path):
        expected = record.expected_balance()
        if abs(record.balance - expected) > TOLERANCE:
            drifted.append({
                "id": record.id,
                "truckNo": record.truck_no,
                "goingDo": record.going_do,
                "balance": record.balance,
                "expected": expected,
                "difference": round(record.balance - expected, 3),
                "version": record.version,
            })
    return drifted


def fix_drift(db_path, drifted: List[Dict]) -> int:
    fixed = 0
    for item in drifted:
        if update_fuel_record_if_version(item["id"], item["version"], {"balance": item["expected"]},
                                         db_path=db_path):
            logger.info(f"Fuel record {item['id']}: balance {item['balance']:g} -> {item['expected']:g}")
            fixed += 1
        else:
            logger.warning(f"Fuel record {item['id']} changed while fixing, rerun the check")
    return fixed


def main() -> None:
    parser = argparse.ArgumentParser(description="Verify fuel record balances")
    parser.add_argument("--fix", action="store_true", help="Rewrite drifted balances")
    parser.add_argument("--output", type=Path, help="Output JSON file for the drift report")
    args = parser.parse_args()

    settings = get_settings()
    configure_logging(json_format=settings.log_json)
    init_fuel_records_db(settings.db_path)

    drifted = find_drift(settings.db_path)

    print("=" * 60)
    print("BALANCE VERIFICATION")
    print("=" * 60)
    if not drifted:
        print("All fuel records balance.")
    for item in drifted:
        print(f"  #{item['id']:<6} {item['truckNo']:<12} {item['goingDo']:<12} "
              f"balance {item['balance']:>10,.1f}  expected {item['expected']:>10,.1f}")

    if args.fix and drifted:
        fixed = fix_drift(settings.db_path, drifted)
        print(f"\nFixed {fixed}/{len(drifted)} records")

    if args.output:
        args.output.write_text(json.dumps(drifted, indent=2), encoding="utf-8")
        print(f"\nResults written to {args.output}")

    sys.exit(1 if drifted and not args.fix else 0)


if __name__ == "__main__":
    main()
