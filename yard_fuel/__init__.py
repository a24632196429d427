"""Yard Fuel - dispenses at company yards and their auto-linking.

Usage:
    from yard_fuel import YardFuelLinker, YardFuelCreate

    linker = YardFuelLinker(engine, db_path="fuel_logistics.db")
    dispense = await linker.create_dispense(
        YardFuelCreate(truck_no="T100 ABC", liters=250, yard="DAR YARD"),
        actor="dar_yard",
    )

    # Later, when the truck's fuel record is created
    summary = await linker.link_pending_for_truck(fuel_record_id)
"""

from yard_fuel.db import (
    get_dispense,
    init_yard_fuel_db,
    list_dispenses,
    list_rejections,
    list_pending_for_truck,
    list_pending_trucks,
    summarize_by_yard,
)
from yard_fuel.linker import YardFuelLinker
from yard_fuel.models import (
    HistoryAction,
    HistoryEntry,
    LinkSummary,
    YardFuelCreate,
    YardFuelDispense,
    YardFuelStatus,
    YardFuelUpdate,
)

__all__ = [
    # Models
    "YardFuelDispense",
    "YardFuelCreate",
    "YardFuelUpdate",
    "YardFuelStatus",
    "HistoryAction",
    "HistoryEntry",
    "LinkSummary",
    # Linker
    "YardFuelLinker",
    # Database
    "init_yard_fuel_db",
    "get_dispense",
    "list_dispenses",
    "list_rejections",
    "list_pending_for_truck",
    "list_pending_trucks",
    "summarize_by_yard",
]
