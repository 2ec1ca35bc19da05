"""
hackjudge/errors.py
Centralized Error Handling

CORE PRINCIPLES:
- Deterministic rejections (4xx) are raised immediately, never retried
- Store/broker outages surface as 503 so callers know to retry
- Errors are user-safe (no stack traces) and machine-readable

ERROR RESPONSE STRUCTURE:
{
    "success": false,
    "error": "ErrorType",
    "message": "Human-readable description",
    "code": "UNIQUE_ERROR_CODE",
    "details": {} (optional)
}
"""

import logging
from typing import Optional, Dict, Any, Iterable

from fastapi import status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

logger = logging.getLogger(__name__)


class ErrorCode:
    """Unique error codes for machine-readable error handling"""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_INPUT = "INVALID_INPUT"

    AUTH_REQUIRED = "AUTH_REQUIRED"
    AUTH_INVALID = "AUTH_INVALID"

    ACCESS_DENIED = "ACCESS_DENIED"
    NOT_ASSIGNED = "NOT_ASSIGNED"
    NOT_ORGANIZER = "NOT_ORGANIZER"
    NOT_VERIFIED = "NOT_VERIFIED"
    INVALID_ATTENDANCE_CODE = "INVALID_ATTENDANCE_CODE"

    INVALID_CRITERIA = "INVALID_CRITERIA"
    INVALID_SCORE = "INVALID_SCORE"
    INVALID_RATING = "INVALID_RATING"

    NOT_FOUND = "NOT_FOUND"
    EVENT_NOT_FOUND = "EVENT_NOT_FOUND"
    SUBMISSION_NOT_FOUND = "SUBMISSION_NOT_FOUND"
    RUBRIC_NOT_FOUND = "RUBRIC_NOT_FOUND"
    REVIEW_NOT_FOUND = "REVIEW_NOT_FOUND"

    CONFLICT = "CONFLICT"
    ALREADY_FINALIZED = "ALREADY_FINALIZED"
    ROUND_FINALIZED = "ROUND_FINALIZED"
    RUBRIC_EXISTS = "RUBRIC_EXISTS"

    RATE_LIMITED = "RATE_LIMITED"

    INTERNAL_ERROR = "INTERNAL_ERROR"
    STORE_UNAVAILABLE = "STORE_UNAVAILABLE"


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

    @property
    def is_transient(self) -> bool:
        return self.status_code >= 500

    def to_response(self) -> JSONResponse:
        """Convert to FastAPI JSONResponse"""
        return JSONResponse(status_code=self.status_code, content=self.to_dict())

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        result = {
            "success": False,
            "error": self.error,
            "message": self.message,
            "code": self.code
        }
        if self.details:
            result["details"] = self.details
        return result


class BadRequestError(APIError):
    """400 Bad Request - Invalid input"""
    def __init__(self, message: str, code: str = ErrorCode.INVALID_INPUT, details: Optional[Dict] = None):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            error="Bad Request",
            message=message,
            code=code,
            details=details
        )


class UnauthorizedError(APIError):
    """401 Unauthorized - Authentication required"""
    def __init__(self, message: str = "Authentication required", code: str = ErrorCode.AUTH_REQUIRED):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            error="Unauthorized",
            message=message,
            code=code
        )


class AccessDeniedError(APIError):
    """403 Forbidden - Actor lacks the role or assignment for the event"""
    def __init__(self, message: str, code: str = ErrorCode.ACCESS_DENIED, details: Optional[Dict] = None):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            error="Access Denied",
            message=message,
            code=code,
            details=details
        )


class InvalidCriteriaError(BadRequestError):
    """400 - Submitted criterion keys do not belong to the event rubric"""
    def __init__(self, invalid_keys: Iterable[str], message: Optional[str] = None):
        self.invalid_keys = sorted(set(invalid_keys))
        super().__init__(
            message or f"Invalid criteria keys: {', '.join(self.invalid_keys)}",
            code=ErrorCode.INVALID_CRITERIA,
            details={"invalid_keys": self.invalid_keys}
        )


class InvalidScoreError(BadRequestError):
    """400 - A score value is outside the allowed bound"""
    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(message, code=ErrorCode.INVALID_SCORE, details=details)


class NotFoundError(APIError):
    """404 Not Found - Resource does not exist"""
    def __init__(self, resource: str, identifier: Any = None, code: str = ErrorCode.NOT_FOUND):
        message = f"{resource} not found"
        if identifier is not None:
            message = f"{resource} with id '{identifier}' not found"
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            error="Not Found",
            message=message,
            code=code
        )


class ConflictError(APIError):
    """409 Conflict - Request clashes with current state"""
    def __init__(self, message: str, code: str = ErrorCode.CONFLICT, details: Optional[Dict] = None):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            error="Conflict",
            message=message,
            code=code,
            details=details
        )


class AlreadyFinalizedError(ConflictError):
    """Round was already finalized."""
    def __init__(self, event_id: int, round_number: int):
        super().__init__(
            f"Round {round_number} of event {event_id} is already finalized",
            code=ErrorCode.ALREADY_FINALIZED,
            details={"event_id": event_id, "round_number": round_number}
        )


class RoundFinalizedError(ConflictError):
    """Scores cannot change once the round is finalized."""
    def __init__(self, event_id: int, round_number: int):
        super().__init__(
            f"Round {round_number} of event {event_id} is finalized; scores are locked",
            code=ErrorCode.ROUND_FINALIZED,
            details={"event_id": event_id, "round_number": round_number}
        )


class RateLimitError(APIError):
    """429 Too Many Requests"""
    def __init__(self, message: str = "Rate limit exceeded. Please try again later.", retry_after: int = 60):
        super().__init__(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            error="Rate Limited",
            message=message,
            code=ErrorCode.RATE_LIMITED,
            details={"retry_after_seconds": retry_after}
        )


class TransientStoreError(APIError):
    """503 - Persistence or broadcast collaborator unreachable; data may not be saved"""
    def __init__(self, message: str = "Storage is temporarily unavailable. Please try again.", log_id: Optional[str] = None):
        details = {"log_id": log_id} if log_id else None
        super().__init__(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            error="Service Unavailable",
            message=message,
            code=ErrorCode.STORE_UNAVAILABLE,
            details=details
        )


def new_log_id() -> str:
    import uuid
    return str(uuid.uuid4())[:8]


def wrap_store_failure(error: Exception, context: str = "") -> TransientStoreError:
    """Log a store failure and build the transient error surfaced to the caller"""
    log_id = new_log_id()
    logger.error(f"[{log_id}] Store failure in {context}: {type(error).__name__}: {str(error)}")
    return TransientStoreError(log_id=log_id)


ERROR_MAPPING = {
    400: ("Bad Request", ErrorCode.INVALID_INPUT),
    401: ("Unauthorized", ErrorCode.AUTH_REQUIRED),
    403: ("Access Denied", ErrorCode.ACCESS_DENIED),
    404: ("Not Found", ErrorCode.NOT_FOUND),
    409: ("Conflict", ErrorCode.CONFLICT),
    422: ("Validation Error", ErrorCode.VALIDATION_ERROR),
    429: ("Too Many Requests", ErrorCode.RATE_LIMITED),
    500: ("Internal Error", ErrorCode.INTERNAL_ERROR),
    503: ("Service Unavailable", ErrorCode.STORE_UNAVAILABLE),
}
