"""
Color Me Shop API errors.

Failures of the REST API and of configuration, classified so they can be
logged as structured data with ``to_dict()``.
"""
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict


class ErrorSeverity(str, Enum):
    ERROR = "error"
    CRITICAL = "critical"


class ErrorCategory(str, Enum):
    """What kind of failure an exception represents."""
    AUTHENTICATION = "authentication"
    AUTHORIZATION = "authorization"
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    RATE_LIMIT = "rate_limit"
    SERVER_ERROR = "server_error"
    NETWORK = "network"
    CONFIGURATION = "configuration"
    UNKNOWN = "unknown"


_STATUS_CATEGORIES = {
    400: ErrorCategory.VALIDATION,
    401: ErrorCategory.AUTHENTICATION,
    403: ErrorCategory.AUTHORIZATION,
    404: ErrorCategory.NOT_FOUND,
    422: ErrorCategory.VALIDATION,
    429: ErrorCategory.RATE_LIMIT,
}


class ErrorDetail(BaseModel):
    """An entry of the ``errors`` array in a Color Me Shop error body."""
    model_config = ConfigDict(extra="ignore")

    message: str
    code: Optional[int] = None
    status: Optional[int] = None


class ColorMeApiException(Exception):
    """Base class for Color Me Shop API failures."""

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.UNKNOWN,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category
        self.severity = severity
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": {
                "type": type(self).__name__,
                "message": self.message,
                "category": self.category.value,
                "severity": self.severity.value,
                "details": self.details,
            }
        }


class ColorMeApiError(ColorMeApiException):
    """
    A non-2xx response from the REST API.

    ``response_text`` is the body exactly as received; ``errors`` holds the
    parsed entries of the body's ``errors`` array, if there was one.
    """

    def __init__(self, status_code: int, response_text: str, error_response: Optional[Dict[str, Any]] = None):
        raw_errors = (error_response or {}).get("errors") or []
        self.errors: List[ErrorDetail] = [
            ErrorDetail.model_validate(e) for e in raw_errors if isinstance(e, dict) and "message" in e
        ]
        self.status_code = status_code
        self.response_text = response_text

        if not self.errors:
            message = f"API error: {status_code}"
        elif self.errors[0].code is None:
            message = self.errors[0].message
        else:
            message = f"{self.errors[0].message} (code: {self.errors[0].code})"

        if status_code >= 500:
            category, severity = ErrorCategory.SERVER_ERROR, ErrorSeverity.CRITICAL
        else:
            category, severity = _STATUS_CATEGORIES.get(status_code, ErrorCategory.UNKNOWN), ErrorSeverity.ERROR

        super().__init__(
            message,
            category,
            severity,
            {
                "status_code": status_code,
                "errors": [e.model_dump(exclude_none=True) for e in self.errors],
            },
        )


class NetworkError(ColorMeApiException):
    """The request never got an HTTP answer."""

    def __init__(self, message: str = "Network error", original_error: Optional[Exception] = None):
        details = {}
        if original_error is not None:
            details = {"error_type": type(original_error).__name__, "original_error": str(original_error)}
        super().__init__(message, ErrorCategory.NETWORK, ErrorSeverity.ERROR, details)


class ConfigurationError(ColorMeApiException):
    """Required settings are missing."""

    def __init__(self, message: str, missing_fields: Optional[List[str]] = None):
        self.missing_fields = missing_fields or []
        super().__init__(
            message,
            ErrorCategory.CONFIGURATION,
            ErrorSeverity.CRITICAL,
            {"missing_fields": self.missing_fields},
        )
