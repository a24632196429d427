"""Metrics endpoint (in-process counters and timings)."""

from typing import Any, Dict

from fastapi import APIRouter

from core.observability.metrics import get_metrics


router = APIRouter()


@router.get("/metrics")
async def metrics_summary() -> Dict[str, Any]:
    """Reconciliation, linking and concurrency counters."""
    return get_metrics().get_summary()
