"""Health check endpoints."""

import sqlite3
from datetime import datetime
from typing import Dict

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel

from api.dependencies import AppServices, get_services
from core.db import get_db_connection


router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    timestamp: str
    version: str
    services: Dict[str, str]


def _database_status(services: AppServices) -> str:
    try:
        conn = get_db_connection(services.db_path)
        try:
            conn.execute("SELECT 1 FROM fuel_records LIMIT 1")
        finally:
            conn.close()
        return "up"
    except sqlite3.Error:
        return "down"


@router.get("/health", response_model=HealthResponse)
async def health_check(services: AppServices = Depends(get_services)) -> HealthResponse:
    """Health check endpoint."""
    database = _database_status(services)
    return HealthResponse(
        status="healthy" if database == "up" else "degraded",
        timestamp=datetime.utcnow().isoformat(),
        version="1.0.0",
        services={
            "api": "up",
            "database": database,
            "slack": "configured" if services.settings.slack_webhook_url else "disabled",
        }
    )


@router.get("/ready")
async def readiness_check(response: Response, services: AppServices = Depends(get_services)) -> Dict[str, str]:
    """Readiness probe for Kubernetes."""
    if _database_status(services) != "up":
        response.status_code = 503
        return {"status": "not ready"}
    return {"status": "ready"}


@router.get("/live")
async def liveness_check(response: Response) -> Dict[str, str]:
    """Liveness probe for Kubernetes."""
    return {"status": "alive"}
