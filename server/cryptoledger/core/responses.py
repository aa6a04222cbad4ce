from typing import TypeVar, Generic, Optional, Any, Dict, List, Union, TYPE_CHECKING
from datetime import datetime, timezone
from pydantic import BaseModel, Field
from fastapi import status
from fastapi.responses import JSONResponse
from fastapi.encoders import jsonable_encoder

from .logging import get_logger, request_id_var

if TYPE_CHECKING:
    from .exceptions import LedgerError


logger = get_logger(__name__)

T = TypeVar('T')


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BaseResponse(BaseModel, Generic[T]):
    """Base response model for all API responses"""
    success: bool = Field(..., description="Whether the request was successful")
    message: str = Field(..., description="Human-readable message about the response")
    data: Optional[T] = Field(None, description="Response data payload")
    error: Optional[Dict[str, Any]] = Field(None, description="Error details if request failed")
    metadata: Optional[Dict[str, Any]] = Field(None, description="Additional metadata")
    request_id: Optional[str] = Field(None, description="Unique request identifier")
    timestamp: datetime = Field(default_factory=_utcnow, description="Response timestamp")


class SuccessResponse(BaseResponse[T]):
    """Success response (2xx status codes)"""
    success: bool = True
    error: None = None


class ErrorResponse(BaseResponse[None]):
    """Error response (4xx, 5xx status codes)"""
    success: bool = False
    data: None = None
    error_code: str = Field(..., description="Machine-readable error code")
    error_details: Optional[Dict[str, Any]] = Field(None, description="Additional error context")

    def build_error(self) -> Dict[str, Any]:
        """Build error object"""
        error_obj: Dict[str, Any] = {
            "code": self.error_code,
            "message": self.message,
        }
        if self.error_details:
            error_obj["details"] = self.error_details
        return error_obj


def create_success_response(
    data: Any = None,
    message: str = "Success",
    status_code: int = status.HTTP_200_OK,
    metadata: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None
) -> JSONResponse:
    """
    Create standardized success response

    Args:
        data: Response data payload; Decimal amounts are encoded as JSON numbers
        message: Success message
        status_code: HTTP status code (default: 200)
        metadata: Additional metadata
        headers: Additional response headers

    Returns:
        JSONResponse with standardized format
    """
    response = SuccessResponse(
        data=jsonable_encoder(data),
        message=message,
        metadata=metadata,
        request_id=request_id_var.get()
    )

    logger.debug(f"Success response: {message}", status_code=status_code)

    content = {
        "success": response.success,
        "message": response.message,
        "data": response.data,
        "metadata": response.metadata,
        "request_id": response.request_id,
        "timestamp": response.timestamp.isoformat()
    }

    # Remove None values
    content = {k: v for k, v in content.items() if v is not None}

    return JSONResponse(
        status_code=status_code,
        content=content,
        headers=headers
    )


def create_error_response(
    error_code: str,
    message: str,
    status_code: int = status.HTTP_400_BAD_REQUEST,
    error_details: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None
) -> JSONResponse:
    """
    Create standardized error response

    Args:
        error_code: Machine-readable error code
        message: Human-readable error message
        status_code: HTTP status code (default: 400)
        error_details: Additional error context
        headers: Additional response headers

    Returns:
        JSONResponse with standardized error format
    """
    response = ErrorResponse(
        error_code=error_code,
        message=message,
        error_details=jsonable_encoder(error_details) if error_details else None,
        request_id=request_id_var.get()
    )

    logger.warning(
        f"Error response: {message}",
        error_code=error_code,
        status_code=status_code,
        error_details=error_details
    )

    content = {
        "success": response.success,
        "message": response.message,
        "error": response.build_error(),
        "request_id": response.request_id,
        "timestamp": response.timestamp.isoformat()
    }

    content = {k: v for k, v in content.items() if v is not None}

    return JSONResponse(
        status_code=status_code,
        content=content,
        headers=headers
    )


class ErrorCode:
    """Common error codes"""
    # Client errors (4xx)
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    ALREADY_EXISTS = "ALREADY_EXISTS"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    INVALID_REQUEST = "INVALID_REQUEST"

    # Server errors (5xx)
    INTERNAL_ERROR = "INTERNAL_ERROR"
    DATABASE_ERROR = "DATABASE_ERROR"
    EXTERNAL_API_ERROR = "EXTERNAL_API_ERROR"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"

    # Business logic errors
    INVALID_AMOUNT = "INVALID_AMOUNT"
    INVALID_STATE = "INVALID_STATE"


def validation_error(
    message: str = "Validation failed",
    errors: Optional[List[Dict[str, Any]]] = None
) -> JSONResponse:
    """Create validation error response"""
    return create_error_response(
        error_code=ErrorCode.VALIDATION_ERROR,
        message=message,
        status_code=status.HTTP_422_UNPROCESSABLE_CONTENT,
        error_details={"validation_errors": errors} if errors else None
    )


def not_found_error(
    resource: str,
    identifier: Optional[Union[str, int]] = None
) -> JSONResponse:
    """Create not found error response"""
    message = f"{resource} not found"
    if identifier:
        message = f"{resource} with id '{identifier}' not found"

    return create_error_response(
        error_code=ErrorCode.NOT_FOUND,
        message=message,
        status_code=status.HTTP_404_NOT_FOUND,
        error_details={"resource": resource, "identifier": identifier} if identifier else None
    )


def ledger_error_response(exc: "LedgerError") -> JSONResponse:
    """Render a domain exception with its own code and status"""
    return create_error_response(
        error_code=exc.error_code,
        message=exc.message,
        status_code=exc.status_code,
        error_details=exc.details
    )


def rate_limit_error(
    message: str = "Rate limit exceeded",
    retry_after: Optional[int] = None
) -> JSONResponse:
    """Create rate limit error response"""
    headers = {}
    if retry_after:
        headers["Retry-After"] = str(retry_after)

    return create_error_response(
        error_code=ErrorCode.RATE_LIMIT_EXCEEDED,
        message=message,
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        error_details={"retry_after": retry_after} if retry_after else None,
        headers=headers
    )


def internal_error(
    message: str = "An internal error occurred",
    error: Optional[Exception] = None
) -> JSONResponse:
    """Create internal server error response"""
    error_details = None
    if error:
        error_details = {
            "error_type": type(error).__name__,
            "error_message": str(error)
        }

    return create_error_response(
        error_code=ErrorCode.INTERNAL_ERROR,
        message=message,
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        error_details=error_details
    )
