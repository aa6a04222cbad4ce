"""
Domain-specific exceptions for ledger services.

Every error carries the machine-readable code and HTTP status used when it is
rendered by the API exception handler.
"""
from typing import Any, Dict, Optional, Union

from fastapi import status

from .responses import ErrorCode


class LedgerError(Exception):
    """Base exception for ledger operations"""
    error_code: str = ErrorCode.INVALID_REQUEST
    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details


class NotFoundError(LedgerError):
    """Raised when an operation targets a missing id"""
    error_code = ErrorCode.NOT_FOUND
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, resource: str, identifier: Union[int, str, None] = None):
        message = f"{resource} not found"
        if identifier is not None:
            message = f"{resource} with id '{identifier}' not found"
        super().__init__(message, {"resource": resource, "identifier": identifier})
        self.resource = resource
        self.identifier = identifier


class InvalidAmountError(LedgerError):
    """Raised for out-of-range quantities or amounts"""
    error_code = ErrorCode.INVALID_AMOUNT
    status_code = status.HTTP_422_UNPROCESSABLE_CONTENT


class InvalidStateError(LedgerError):
    """Raised when an operation is invalid for the current lifecycle state"""
    error_code = ErrorCode.INVALID_STATE
    status_code = status.HTTP_409_CONFLICT


class ValidationError(LedgerError):
    """Raised for malformed or missing input fields"""
    error_code = ErrorCode.VALIDATION_ERROR
    status_code = status.HTTP_422_UNPROCESSABLE_CONTENT


class AlreadyExistsError(ValidationError):
    error_code = ErrorCode.ALREADY_EXISTS
    status_code = status.HTTP_409_CONFLICT


class UpstreamUnavailableError(LedgerError):
    """Raised when a third-party price or metadata call failed after retries"""
    error_code = ErrorCode.EXTERNAL_API_ERROR
    status_code = status.HTTP_502_BAD_GATEWAY

    def __init__(self, service: str, message: Optional[str] = None):
        super().__init__(message or f"External service '{service}' is unavailable", {"service": service})
        self.service = service
