"""
Shared error handling for the Tour Explorer access layer.
"""

from datetime import datetime, timezone
from typing import Dict, Any, Optional
from pydantic import BaseModel, Field


def utc_timestamp() -> str:
    """ISO-8601 timestamp used in response envelopes."""
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class ErrorResponse(BaseModel):
    """Standard error response format."""

    success: bool = False
    code: str
    error: str
    details: Dict[str, Any] = Field(default_factory=dict)
    timestamp: str = Field(default_factory=utc_timestamp)


class TourExplorerException(Exception):
    """Base exception for Tour Explorer services."""

    status_code = 500

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None,
                 status_code: Optional[int] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        if status_code is not None:
            self.status_code = status_code
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            code=self.code,
            error=self.message,
            details=self.details
        )


class ValidationError(TourExplorerException):
    """Validation-related errors."""

    status_code = 400

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("VALIDATION_ERROR", message, details)


class NotFoundError(TourExplorerException):
    """Requested resource does not exist."""

    status_code = 404

    def __init__(self, resource: str = "Resource", details: Optional[Dict[str, Any]] = None):
        super().__init__("NOT_FOUND", f"{resource} not found", details)


class RateLimitError(TourExplorerException):
    """Rate limiting errors."""

    status_code = 429

    def __init__(self, message: str = "Rate limit exceeded", details: Optional[Dict[str, Any]] = None):
        super().__init__("RATE_LIMIT_ERROR", message, details)


class ExternalServiceError(TourExplorerException):
    """External service errors."""

    status_code = 502

    def __init__(self, service: str, message: str = "External service error", details: Optional[Dict[str, Any]] = None):
        super().__init__("EXTERNAL_SERVICE_ERROR", f"{service}: {message}", details)
