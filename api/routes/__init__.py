"""API Routes Package."""

from api.routes import (
    checkpoints,
    fuel_records,
    health,
    lpo_entries,
    lpo_summaries,
    metrics,
    notifications,
    yard_fuel,
)

__all__ = [
    "health",
    "metrics",
    "fuel_records",
    "lpo_entries",
    "lpo_summaries",
    "yard_fuel",
    "checkpoints",
    "notifications",
]
