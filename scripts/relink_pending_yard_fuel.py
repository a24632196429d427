"""
Re-run linking for everything still waiting on a fuel record.

- Pending yard dispenses: linked to the truck's active fuel record
- Pending LPO entries: re-resolved against the fuel records

Normally both happen on their own when a fuel record is created; this is
for records that were imported or fixed by hand.
"""

import argparse
import asyncio
import json
from pathlib import Path

import sys
sys.path.append(str(Path(__file__).resolve().parents[1]))

from api.dependencies import build_services
from core.config import get_settings
from core.observability.logging import configure_logging
from fuel_records.db import find_active_for_truck
from yard_fuel.db import list_pending_trucks


async def relink(actor: str, dry_run: bool) -> dict:
    services = build_services(get_settings())
    report = {"trucks": [], "yardLinked": 0, "lpoApplied": 0}

    for truck_no in list_pending_trucks(services.db_path):
        active = find_active_for_truck(truck_no, db_path=services.db_path)
        if active is None:
            report["trucks"].append({"truckNo": truck_no, "status": "no active fuel record"})
            continue
        if dry_run:
            report["trucks"].append({"truckNo": truck_no, "status": f"would link to {active.id}"})
            continue
        summary = await services.linker.link_pending_for_truck(active.id, actor=actor)
        report["yardLinked"] += summary.linked_count
        report["trucks"].append({"truckNo": truck_no, "status": f"linked {summary.linked_count}",
                                 "fuelRecordId": active.id})

    if not dry_run:
        applied = await services.lpo.retry_pending_entries(actor=actor)
        report["lpoApplied"] = len(applied)

    await services.notifications.aclose()
    return report


def main() -> None:
    parser = argparse.ArgumentParser(description="Link pending yard fuel and LPO entries")
    parser.add_argument("--actor", default="relink_script", help="Actor recorded in audit/history")
    parser.add_argument("--dry-run", action="store_true", help="Only report what would be linked")
    parser.add_argument("--json", action="store_true", help="Print the report as JSON")
    args = parser.parse_args()

    settings = get_settings()
    configure_logging(json_format=settings.log_json)

    report = asyncio.run(relink(args.actor, args.dry_run))

    if args.json:
        print(json.dumps(report, indent=2))
        return

    print("=" * 60)
    print("PENDING RELINK")
    print("=" * 60)
    for truck in report["trucks"]:
        print(f"  {truck['truckNo']:<12} {truck['status']}")
    print(f"\nYard dispenses linked: {report['yardLinked']}")
    print(f"LPO entries applied:   {report['lpoApplied']}")


if __name__ == "__main__":
    main()
