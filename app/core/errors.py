"""
Application errors and the JSON error envelope.
Challenge: Tell client mistakes, deployment defects and store outages apart.
Design: Services raise AppError subclasses; one handler renders {success, error}.
"""

import logging

from fastapi import Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class AppError(Exception):
    """Base error carrying the HTTP status the handler should answer with."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    message: str = "Server Error"

    def __init__(self, message: str | None = None, status_code: int | None = None):
        self.message = message or self.message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)


class MissingParameterError(AppError):
    """A required query parameter was not supplied."""

    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, field: str):
        self.field = field
        super().__init__(f"Missing required query parameter: {field}")


class InvalidParameterError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, field: str, reason: str):
        self.field = field
        super().__init__(f"Invalid query parameter '{field}': {reason}")


class GeoCapabilityError(AppError):
    """Geo search was requested against a store without geospatial support."""

    message = "Geospatial search is not available on this server"


class IndexMaintenanceError(AppError):
    message = "Failed to create geospatial index"


class StoreUnavailableError(AppError):
    """The backing store failed; safe for the caller to retry."""

    message = "Search is temporarily unavailable"


class StoreTimeoutError(StoreUnavailableError):
    message = "Search timed out"


class SearchIndexUnavailableError(StoreUnavailableError):
    """Elasticsearch could not answer; the database can serve instead."""


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Render AppError as {success: false, error}. Server-side errors are logged with their cause."""
    if exc.status_code >= 500:
        logger.error(
            "%s %s failed: %s: %s (cause: %r)",
            request.method,
            request.url.path,
            type(exc).__name__,
            exc.message,
            exc.__cause__,
        )
    else:
        logger.info("%s %s rejected: %s", request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.message},
    )
