"""
Custom exceptions for the WanderLens location service.

Device, network and provider failures are raised as these exceptions inside
the services and converted to result values at the public boundary.
"""

from typing import Optional, Dict, Any
from enum import Enum


class ErrorCode(str, Enum):
    """Standardized error codes for the application."""

    # Geolocation errors
    PERMISSION_DENIED = "permission_denied"
    POSITION_UNAVAILABLE = "position_unavailable"
    TIMEOUT = "timeout"
    UNSUPPORTED = "unsupported"

    # Provider errors
    NETWORK_ERROR = "network_error"
    PARSE_ERROR = "parse_error"
    SEARCH_FAILED = "search_failed"

    # Generic errors
    SUPERSEDED = "superseded"
    NOT_FOUND = "not_found"
    VALIDATION_ERROR = "validation_error"
    INTERNAL_SERVER_ERROR = "internal_server_error"


class WanderlensException(Exception):
    """Base exception for the location service."""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode,
        details: Optional[Dict[str, Any]] = None,
        status_code: int = 500
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        self.status_code = status_code


class PermissionDeniedError(WanderlensException):
    """Raised when the user refused access to device geolocation."""

    def __init__(self, message: str = "Location permission denied", details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            error_code=ErrorCode.PERMISSION_DENIED,
            details=details,
            status_code=403
        )


class PositionUnavailableError(WanderlensException):
    """Raised when the device could not determine a position."""

    def __init__(self, message: str = "Location unavailable", details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            error_code=ErrorCode.POSITION_UNAVAILABLE,
            details=details,
            status_code=503
        )


class LocationTimeoutError(WanderlensException):
    """Raised when an external call exceeded its time budget."""

    def __init__(self, timeout_seconds: float, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=f"Location request timed out after {timeout_seconds:g} seconds",
            error_code=ErrorCode.TIMEOUT,
            details=details or {"timeout_seconds": timeout_seconds},
            status_code=504
        )


class GeolocationUnsupportedError(WanderlensException):
    """Raised when no geolocation capability is available."""

    def __init__(self, message: str = "Geolocation is not supported", details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            error_code=ErrorCode.UNSUPPORTED,
            details=details,
            status_code=501
        )


class NetworkError(WanderlensException):
    """Raised when an external service could not be reached."""

    def __init__(self, service_name: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=f"Service '{service_name}' is unreachable",
            error_code=ErrorCode.NETWORK_ERROR,
            details=details or {"service_name": service_name},
            status_code=503
        )


class ProviderParseError(WanderlensException):
    """Raised when a provider response does not match its documented schema."""

    def __init__(self, service_name: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=f"Malformed response from '{service_name}'",
            error_code=ErrorCode.PARSE_ERROR,
            details=details or {"service_name": service_name},
            status_code=502
        )


class SearchFailedError(WanderlensException):
    """Raised when every search backend failed and no earlier result exists."""

    def __init__(self, message: str = "Nearby place search failed", details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            error_code=ErrorCode.SEARCH_FAILED,
            details=details,
            status_code=503
        )


class SupersededError(WanderlensException):
    """Raised at the HTTP surface when a newer request for the same client won."""

    def __init__(self, operation: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=f"{operation} was superseded by a newer request",
            error_code=ErrorCode.SUPERSEDED,
            details=details or {"operation": operation},
            status_code=409
        )


class NotFoundError(WanderlensException):
    """Raised when a requested record does not exist."""

    def __init__(self, message: str = "Not found", details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            error_code=ErrorCode.NOT_FOUND,
            details=details,
            status_code=404
        )
