"""
Custom exceptions and error handlers for consistent error responses.

Provides standardized error codes, the fleet domain error taxonomy and
global exception handlers rendering the ``{success: false, ...}`` envelope.
"""

import logging
from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from typing import Any, Dict

logger = logging.getLogger(__name__)


class AppException(Exception):
    """Base application exception."""

    def __init__(self, message: str, error_code: str, status_code: int = 500, details: Dict[str, Any] = None):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class ResourceNotFoundError(AppException):
    """Raised when requested resource is not found."""

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


# Fleet domain errors

class DuplicateKeyError(AppException):
    """Raised when a unique key (route number, registration, serial) is already taken."""

    def __init__(self, resource: str, field: str, value: Any = None):
        message = f"{resource} with this {field} already exists"
        if value is not None:
            message = f"{resource} with {field} '{value}' already exists"
        super().__init__(
            message=message,
            error_code="ERR_DUPLICATE_001",
            status_code=status.HTTP_400_BAD_REQUEST,
            details={"resource": resource, "field": field, "value": value}
        )


class InvalidStateError(AppException):
    """Raised when a lifecycle operation is not allowed from the current state."""

    def __init__(self, message: str, current_state: Any = None):
        details = {}
        if current_state is not None:
            details["current_state"] = getattr(current_state, "value", current_state)
        super().__init__(
            message=message,
            error_code="ERR_STATE_001",
            status_code=status.HTTP_400_BAD_REQUEST,
            details=details
        )


class InvalidOdometerError(AppException):
    """Raised for a negative odometer or an arrival reading not past departure."""

    def __init__(self, message: str, details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_ODOMETER_001",
            status_code=status.HTTP_400_BAD_REQUEST,
            details=details
        )


class InvalidOdometerRegressionError(AppException):
    """Raised when an odometer update would move a reading backwards."""

    def __init__(self, resource: str, current: int, requested: int):
        super().__init__(
            message=f"{resource} odometer cannot decrease from {current} to {requested}",
            error_code="ERR_ODOMETER_002",
            status_code=status.HTTP_400_BAD_REQUEST,
            details={"resource": resource, "current": current, "requested": requested}
        )


class MissingDepartureError(AppException):
    """Raised when completing a route that never recorded a departure reading."""

    def __init__(self, route_id: Any):
        super().__init__(
            message=f"Route {route_id} has no departure odometer",
            error_code="ERR_ODOMETER_003",
            status_code=status.HTTP_400_BAD_REQUEST,
            details={"route_id": route_id}
        )


class VehicleUnavailableError(AppException):
    """Raised when a route is started on a truck that is not AVAILABLE."""

    def __init__(self, vehicle: str, vehicle_id: Any, current_status: Any):
        status_value = getattr(current_status, "value", current_status)
        super().__init__(
            message=f"{vehicle} {vehicle_id} is not available (status: {status_value})",
            error_code="ERR_VEHICLE_001",
            status_code=status.HTTP_400_BAD_REQUEST,
            details={"vehicle": vehicle, "id": vehicle_id, "status": status_value}
        )


class DomainValidationError(AppException):
    """Raised for required-field or range violations the request schema cannot express."""

    def __init__(self, message: str, details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_VALIDATION_001",
            status_code=status.HTTP_400_BAD_REQUEST,
            details=details
        )


class StorageError(AppException):
    """Raised when the database is unavailable or fails mid-operation. Safe to retry."""

    def __init__(self, message: str = "Storage operation failed"):
        super().__init__(
            message=message,
            error_code="ERR_STORAGE_001",
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE
        )


# Global Exception Handlers

def _error_body(error_code: str, message: Any, details: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "success": False,
        "error_code": error_code,
        "message": message,
        "details": details,
    }


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Handler for custom application exceptions."""
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(exc.error_code, exc.message, exc.details)
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handler for FastAPI HTTPException with standardized format."""
    # Map status code to error code
    error_code_map = {
        400: "ERR_BAD_REQUEST",
        401: "ERR_UNAUTHORIZED",
        403: "ERR_FORBIDDEN",
        404: "ERR_NOT_FOUND",
        500: "ERR_INTERNAL_SERVER"
    }

    error_code = error_code_map.get(exc.status_code, "ERR_UNKNOWN")

    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(error_code, exc.detail, {}),
        headers=getattr(exc, "headers", None)
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handler for Pydantic validation errors."""
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=_error_body(
            "ERR_VALIDATION",
            "Validation error",
            {"errors": jsonable_errors(exc)}
        )
    )


def jsonable_errors(exc: RequestValidationError) -> list:
    # ctx may carry exception instances that are not JSON serializable
    errors = []
    for error in exc.errors():
        error = dict(error)
        if "ctx" in error:
            error["ctx"] = {key: str(value) for key, value in error["ctx"].items()}
        errors.append(error)
    return errors


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handler for unhandled exceptions."""
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_error_body("ERR_INTERNAL_SERVER", "An internal server error occurred", {})
    )
