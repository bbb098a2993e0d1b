"""
Custom exceptions and error handlers for consistent error responses.

Every error leaves the API as ``{"error": ..., "error_code": ..., "details": ...}``.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)


class AppException(Exception):
    """Base application exception."""

    def __init__(self, message: str, error_code: str, status_code: int = 500, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class ValidationError(AppException):
    """Raised for malformed notification input (missing fields, bad enums, empty recipients)."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            error_code="ERR_VALIDATION_001",
            status_code=status.HTTP_400_BAD_REQUEST,
            details=details
        )


class NotFoundError(AppException):
    """Raised when an addressed resource does not exist."""

    def __init__(self, resource: str, resource_id: Any = None):
        message = f"{resource} not found"
        if resource_id is not None:
            message = f"{resource} with ID {resource_id} not found"
        super().__init__(
            message=message,
            error_code="ERR_NOT_FOUND_001",
            status_code=status.HTTP_404_NOT_FOUND,
            details={"resource": resource, "id": resource_id}
        )


class InternalError(AppException):
    """Raised when the store is unavailable or fails unexpectedly."""

    def __init__(self, message: str = "An internal server error occurred"):
        super().__init__(
            message=message,
            error_code="ERR_INTERNAL_001",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR
        )


class GenerationInProgressError(AppException):
    """Raised when another activity-to-notification run holds the lock."""

    def __init__(self):
        super().__init__(
            message="Notification generation is already running",
            error_code="ERR_CONFLICT_001",
            status_code=status.HTTP_409_CONFLICT
        )


class AuthenticationError(AppException):
    """Raised when a supplied bearer token cannot be resolved to a user."""

    def __init__(self, message: str = "Could not validate credentials"):
        super().__init__(
            message=message,
            error_code="ERR_AUTH_001",
            status_code=status.HTTP_401_UNAUTHORIZED
        )


def _error_body(message: str, error_code: str, details: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    return {"error": message, "error_code": error_code, "details": details or {}}


# Global Exception Handlers

async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Handler for custom application exceptions."""
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(exc.message, exc.error_code, exc.details)
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handler for FastAPI HTTPException with standardized format."""
    error_code_map = {
        400: "ERR_BAD_REQUEST",
        401: "ERR_UNAUTHORIZED",
        403: "ERR_FORBIDDEN",
        404: "ERR_NOT_FOUND",
        405: "ERR_METHOD_NOT_ALLOWED",
        500: "ERR_INTERNAL_SERVER"
    }

    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(str(exc.detail), error_code_map.get(exc.status_code, "ERR_UNKNOWN")),
        headers=getattr(exc, "headers", None)
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Request payload/query validation failures are client errors (400)."""
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = f"{location}: {first.get('msg')}" if location else "Validation error"

    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=_error_body(message, "ERR_VALIDATION_001", {"errors": _jsonable_errors(errors)})
    )


def _jsonable_errors(errors):
    """Strip non-serialisable context (exception objects) from pydantic errors."""
    cleaned = []
    for error in errors:
        item = {key: value for key, value in error.items() if key not in ("ctx", "url", "input")}
        cleaned.append(item)
    return cleaned


async def sqlalchemy_exception_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """Store-level failures surface as InternalError."""
    logger.exception("Database error on %s %s", request.method, request.url.path, exc_info=exc)
    error = InternalError("The notification store is unavailable")
    return JSONResponse(
        status_code=error.status_code,
        content=_error_body(error.message, error.error_code)
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handler for unhandled exceptions."""
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path, exc_info=exc)
    error = InternalError()
    return JSONResponse(
        status_code=error.status_code,
        content=_error_body(error.message, error.error_code)
    )
