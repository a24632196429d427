"""FastAPI server for the fuel logistics back office.

Main entry point for the API server.
"""

import logging
import uuid
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from api.dependencies import build_services
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
from core.config import Settings, get_settings
from core.observability.logging import configure_logging, get_logger, with_correlation

logger = get_logger(__name__)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Create and configure the FastAPI application."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan handler."""
        resolved = settings or get_settings()
        configure_logging(getattr(logging, resolved.log_level, logging.INFO), json_format=resolved.log_json)

        # Startup
        app.state.services = build_services(resolved)
        logger.info(f"Fuel logistics API starting up (db: {resolved.db_path})")

        yield

        # Shutdown
        await app.state.services.notifications.aclose()
        logger.info("Fuel logistics API shutting down...")

    app = FastAPI(
        title="Fuel Logistics API",
        description="Fuel records, LPOs and yard dispenses kept in balance by the reconciliation engine",
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def correlation_middleware(request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        with with_correlation(request_id=request_id, actor=request.headers.get("X-Actor")):
            response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response

    # Include routers
    app.include_router(health.router, tags=["Health"])
    app.include_router(metrics.router, tags=["Metrics"])
    app.include_router(fuel_records.router, prefix="/fuel-records", tags=["Fuel Records"])
    app.include_router(lpo_entries.router, prefix="/lpo-entries", tags=["LPO Entries"])
    app.include_router(lpo_summaries.router, prefix="/lpo-summaries", tags=["LPO Summaries"])
    app.include_router(yard_fuel.router, prefix="/yard-fuel", tags=["Yard Fuel"])
    app.include_router(checkpoints.router, prefix="/checkpoints", tags=["Checkpoints"])
    app.include_router(notifications.router, prefix="/notifications", tags=["Notifications"])

    return app


# Default app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("api.server:app", host="0.0.0.0", port=8000, reload=True)
