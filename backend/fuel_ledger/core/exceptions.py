"""
Ledger exceptions and the handlers that turn them into API responses.

Every error response uses the same envelope: ``{"message": ..., "error": ...}``
plus any extra details the error carries (e.g. the available vs. required
amounts of an insufficient-funds failure).
"""
from decimal import Decimal
from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError, ProgrammingError
from typing import Any, Dict, Optional
import logging

logger = logging.getLogger(__name__)


class LedgerError(Exception):
    """Base application exception."""

    error = "LedgerError"

    def __init__(self, message: str, status_code: int = 500, details: Dict[str, Any] = None):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class ValidationError(LedgerError, ValueError):
    """Missing or invalid input. Raised before anything is written."""

    error = "ValidationError"

    def __init__(self, message: str, details: Dict[str, Any] = None):
        super().__init__(message, status.HTTP_400_BAD_REQUEST, details)


class NotFoundError(LedgerError):
    """Referenced account, depot, receivable or trip is absent or inactive."""

    error = "NotFound"

    def __init__(self, resource: str, resource_id: Any = None):
        message = f"{resource} not found"
        if resource_id is not None:
            message = f"{resource} with ID {resource_id} not found"
        super().__init__(
            message,
            status.HTTP_404_NOT_FOUND,
            {"resource": resource, "id": resource_id}
        )


class InsufficientFundsError(LedgerError, ValueError):
    """Funding source balance is below the requested amount."""

    error = "InsufficientFunds"

    def __init__(self, source: str, available: Decimal, required: Decimal):
        self.available = Decimal(available)
        self.required = Decimal(required)
        message = (
            f"Insufficient funds in '{source}'. "
            f"Available balance: {float(self.available):,.2f}, "
            f"Required: {float(self.required):,.2f}"
        )
        super().__init__(
            message,
            status.HTTP_400_BAD_REQUEST,
            {
                "available": str(self.available),
                "required": str(self.required),
                "shortfall": str(self.required - self.available),
            }
        )


class ConflictError(LedgerError):
    """Duplicate of a business-unique record, or an action already applied."""

    error = "Conflict"

    def __init__(self, message: str, details: Dict[str, Any] = None):
        super().__init__(message, status.HTTP_409_CONFLICT, details)


class SchemaMismatchError(LedgerError):
    """The database is missing a table or column the ledger expects."""

    error = "SchemaMismatch"

    def __init__(self, message: str):
        super().__init__(message, status.HTTP_500_INTERNAL_SERVER_ERROR)


_MISSING_SCHEMA_MARKERS = (
    "no such table",
    "no such column",
    "doesn't exist",
    "does not exist",
    "unknown column",
    "has no column",
)


def is_schema_mismatch(exc: Exception) -> bool:
    """True when a driver error means the store lacks an expected table/column."""
    if not isinstance(exc, (OperationalError, ProgrammingError)):
        return False
    text = str(getattr(exc, "orig", exc)).lower()
    return any(marker in text for marker in _MISSING_SCHEMA_MARKERS)


def schema_mismatch_from(exc: Exception) -> Optional[SchemaMismatchError]:
    if is_schema_mismatch(exc):
        return SchemaMismatchError(f"Database schema mismatch: {getattr(exc, 'orig', exc)}")
    return None


# Global Exception Handlers

def _envelope(message: str, error: str, details: Dict[str, Any] = None) -> Dict[str, Any]:
    content = {"message": message, "error": error}
    if details:
        content["details"] = details
    return content


async def ledger_exception_handler(request: Request, exc: LedgerError) -> JSONResponse:
    """Handler for ledger exceptions."""
    if exc.status_code >= 500:
        logger.error(f"{exc.error} on {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content=_envelope(exc.message, exc.error, exc.details)
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Request bodies that fail pydantic validation are caller errors: 400."""
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "Invalid request")
    if field:
        message = f"{field}: {message}"
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=_envelope(message, ValidationError.error, {"errors": [
            {"loc": list(e.get("loc", ())), "msg": e.get("msg")} for e in errors
        ]})
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Anything else is a server error; schema problems get their own label."""
    mismatch = schema_mismatch_from(exc)
    if mismatch is not None:
        return await ledger_exception_handler(request, mismatch)
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_envelope("Server Error", str(exc))
    )
