"""Error taxonomy shared by the services and the API layer.

Routers translate these into HTTP status codes:
- NotFoundError -> 404
- ValidationError -> 400
- ConflictError -> 409
"""

from typing import Any, Dict, Optional


class FuelLogisticsError(Exception):
    """Base exception for domain errors."""
    status_code = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class NotFoundError(FuelLogisticsError):
    """Requested record does not exist (or is soft-deleted)."""
    status_code = 404


class ValidationError(FuelLogisticsError):
    """Request is well-formed but violates a business rule."""
    status_code = 400


class ConflictError(FuelLogisticsError):
    """Concurrent modification detected and retries were exhausted."""
    status_code = 409
