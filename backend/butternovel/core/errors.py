"""
Centralized error taxonomy for the engagement services.

Services raise these; routes stay thin and never pattern-match on store internals.
register_exception_handlers maps each class to a status code and a user-facing message,
so callers see data, an empty set, or a generic "try again" - never a stack trace.
"""
from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class ServiceError(Exception):
    """Base class for errors raised by butternovel services."""


class NotFoundError(ServiceError):
    """Referenced novel/notification/user missing, or not owned by the caller."""


class ValidationError(ServiceError):
    """Malformed input (bad id, unusable pagination bounds)."""


class TransientStoreError(ServiceError):
    """Connectivity/timeout class store failure; eligible for bounded retry."""


class PermanentStoreError(ServiceError):
    """Constraint violation or other store failure that retrying will not fix."""


class UpstreamServiceError(ServiceError):
    """External collaborator (SMTP) failed. Never fatal to the primary operation."""


# ---------------------------------------------------------------------------
# Constants: status codes and user-facing messages
# ---------------------------------------------------------------------------

STATUS_BAD_REQUEST = 400
STATUS_NOT_FOUND = 404
STATUS_INTERNAL_ERROR = 500
STATUS_BAD_GATEWAY = 502
STATUS_SERVICE_UNAVAILABLE = 503

MSG_TRY_AGAIN = "Something went wrong, please try again"
MSG_UNAVAILABLE = "Service temporarily unavailable, please try again"

# (exception class, status code, detail). None detail = use the exception message.
# Subclasses must come before ServiceError; first match wins.
ERROR_RULES: list[tuple[type[ServiceError], int, str | None]] = [
    (NotFoundError, STATUS_NOT_FOUND, None),
    (ValidationError, STATUS_BAD_REQUEST, None),
    (TransientStoreError, STATUS_SERVICE_UNAVAILABLE, MSG_UNAVAILABLE),
    (PermanentStoreError, STATUS_INTERNAL_ERROR, MSG_TRY_AGAIN),
    (UpstreamServiceError, STATUS_BAD_GATEWAY, MSG_TRY_AGAIN),
    (ServiceError, STATUS_INTERNAL_ERROR, MSG_TRY_AGAIN),
]


def error_to_status(exc: ServiceError) -> tuple[int, str]:
    """Return (status_code, detail) for a service error using ERROR_RULES."""
    for exc_class, status_code, detail in ERROR_RULES:
        if isinstance(exc, exc_class):
            return status_code, detail if detail is not None else (str(exc) or MSG_TRY_AGAIN)
    return STATUS_INTERNAL_ERROR, MSG_TRY_AGAIN


async def _service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    status_code, detail = error_to_status(exc)
    if status_code >= STATUS_INTERNAL_ERROR:
        logger.error("%s %s failed: %s: %s", request.method, request.url.path, type(exc).__name__, exc)
    return JSONResponse(status_code=status_code, content={"detail": detail})


def register_exception_handlers(app: FastAPI) -> None:
    """Install one handler covering every ServiceError subclass."""
    app.add_exception_handler(ServiceError, _service_error_handler)
