"""
olympia/errors.py
API error contract.

ERROR RESPONSE STRUCTURE:
{
    "success": false,
    "error": "ErrorType",
    "message": "Human-readable description",
    "code": "UNIQUE_ERROR_CODE",
    "details": {} (optional)
}

Service operations never raise for expected rule violations; they return a
failed ActionResult. ``raise_for_result`` maps that onto this contract:

- validation    -> 400
- forbidden     -> 403
- not_found     -> 404
- precondition  -> 409
- exhausted     -> 409
- persistence   -> 503
"""

import logging
from typing import Optional, Dict, Any
from fastapi import status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from olympia.core.results import ActionResult

logger = logging.getLogger(__name__)


class ErrorCode:
    """Unique error codes for machine-readable error handling"""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_INPUT = "INVALID_INPUT"

    AUTH_REQUIRED = "AUTH_REQUIRED"
    AUTH_INVALID = "AUTH_INVALID"

    FORBIDDEN = "FORBIDDEN"

    NOT_FOUND = "NOT_FOUND"

    INVALID_STATE = "INVALID_STATE"
    POOL_EXHAUSTED = "POOL_EXHAUSTED"

    RATE_LIMITED = "RATE_LIMITED"

    INTERNAL_ERROR = "INTERNAL_ERROR"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"


class ErrorResponse(BaseModel):
    """Standard error response model"""
    success: bool = False
    error: str
    message: str
    code: str
    details: Optional[Dict[str, Any]] = None


class APIError(Exception):
    """Base API exception with consistent structure"""

    def __init__(
        self,
        status_code: int,
        error: str,
        message: str,
        code: str,
        details: Optional[Dict[str, Any]] = None
    ):
        self.status_code = status_code
        self.error = error
        self.message = message
        self.code = code
        self.details = details
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "success": False,
            "error": self.error,
            "message": self.message,
            "code": self.code
        }
        if self.details:
            result["details"] = self.details
        return result

    def to_response(self) -> JSONResponse:
        """Convert to FastAPI JSONResponse"""
        return JSONResponse(status_code=self.status_code, content=self.to_dict())


class BadRequestError(APIError):
    """400 Bad Request - Invalid input"""
    def __init__(self, message: str, code: str = ErrorCode.INVALID_INPUT, details: Optional[Dict] = None):
        super().__init__(status.HTTP_400_BAD_REQUEST, "Bad Request", message, code, details)


class ForbiddenError(APIError):
    """403 Forbidden - Access denied"""
    def __init__(self, message: str, code: str = ErrorCode.FORBIDDEN):
        super().__init__(status.HTTP_403_FORBIDDEN, "Forbidden", message, code)


class NotFoundError(APIError):
    """404 Not Found - Resource does not exist"""
    def __init__(self, message: str, code: str = ErrorCode.NOT_FOUND):
        super().__init__(status.HTTP_404_NOT_FOUND, "Not Found", message, code)


class InvalidStateError(APIError):
    """409 Conflict - Request not allowed in the current live state"""
    def __init__(self, message: str, code: str = ErrorCode.INVALID_STATE):
        super().__init__(status.HTTP_409_CONFLICT, "Invalid State", message, code)


class PoolExhaustedError(APIError):
    """409 Conflict - A finish-round value tier has no unused question left"""
    def __init__(self, message: str):
        super().__init__(status.HTTP_409_CONFLICT, "Pool Exhausted", message, ErrorCode.POOL_EXHAUSTED)


class ServiceUnavailableError(APIError):
    """503 - The store rejected the operation"""
    def __init__(self, message: str = "Could not save changes. Please retry."):
        super().__init__(
            status.HTTP_503_SERVICE_UNAVAILABLE, "Service Unavailable", message, ErrorCode.SERVICE_UNAVAILABLE
        )


RESULT_ERRORS = {
    "validation": BadRequestError,
    "forbidden": ForbiddenError,
    "not_found": NotFoundError,
    "precondition": InvalidStateError,
    "exhausted": PoolExhaustedError,
    "persistence": ServiceUnavailableError,
}


def raise_for_result(result: ActionResult) -> ActionResult:
    """Return a successful result unchanged, raise the matching APIError otherwise."""
    if result.ok:
        return result
    error_class = RESULT_ERRORS.get(result.error_kind, InvalidStateError)
    raise error_class(result.message or "Request failed")


def respond(result: ActionResult) -> Dict[str, Any]:
    """Route helper: raise for failures, return the success envelope otherwise."""
    return raise_for_result(result).to_dict()
