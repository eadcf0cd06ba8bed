"""
Custom exceptions for the TravlrHub proximity service.

Proximity features degrade to empty results instead of raising; the classes
below cover the failures that do surface: device geolocation errors, bad
input, missing users/places, provider outages and authentication.
"""

from typing import Optional, Dict, Any
from enum import Enum


class ErrorCode(str, Enum):
    """Standardized error codes for the application."""

    # Device geolocation errors
    LOCATION_PERMISSION_DENIED = "LOCATION_PERMISSION_DENIED"
    LOCATION_UNAVAILABLE = "LOCATION_UNAVAILABLE"
    LOCATION_TIMEOUT = "LOCATION_TIMEOUT"
    LOCATION_UNSUPPORTED = "LOCATION_UNSUPPORTED"

    # Input errors
    INVALID_COORDINATE = "INVALID_COORDINATE"
    VALIDATION_ERROR = "VALIDATION_ERROR"

    # Lookup errors
    USER_NOT_FOUND = "USER_NOT_FOUND"
    PLACE_NOT_FOUND = "PLACE_NOT_FOUND"

    # External collaborators
    PLACES_PROVIDER_FAILED = "PLACES_PROVIDER_FAILED"

    # Authentication errors
    MISSING_TOKEN = "MISSING_TOKEN"
    INVALID_TOKEN = "INVALID_TOKEN"

    INTERNAL_SERVER_ERROR = "INTERNAL_SERVER_ERROR"


class TravlrHubException(Exception):
    """Base exception for the proximity service."""

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


class GeolocationErrorReason(str, Enum):
    """Failure classes reported by a device location watch."""
    PERMISSION_DENIED = "permission_denied"
    POSITION_UNAVAILABLE = "position_unavailable"
    TIMEOUT = "timeout"
    UNSUPPORTED = "unsupported"


_REASON_CODES = {
    GeolocationErrorReason.PERMISSION_DENIED: ErrorCode.LOCATION_PERMISSION_DENIED,
    GeolocationErrorReason.POSITION_UNAVAILABLE: ErrorCode.LOCATION_UNAVAILABLE,
    GeolocationErrorReason.TIMEOUT: ErrorCode.LOCATION_TIMEOUT,
    GeolocationErrorReason.UNSUPPORTED: ErrorCode.LOCATION_UNSUPPORTED,
}


class GeolocationError(TravlrHubException):
    """A device location watch failed to produce a fix."""

    def __init__(self, reason: GeolocationErrorReason, message: str = ""):
        self.reason = GeolocationErrorReason(reason)
        super().__init__(
            message=message or self.reason.value.replace("_", " "),
            error_code=_REASON_CODES[self.reason],
            details={"reason": self.reason.value},
            status_code=400
        )

    @property
    def is_permission_denied(self) -> bool:
        return self.reason == GeolocationErrorReason.PERMISSION_DENIED


class InvalidCoordinateError(TravlrHubException):
    """Raised when a coordinate is missing or out of range."""

    def __init__(self, message: str = "A valid latitude and longitude are required", details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            error_code=ErrorCode.INVALID_COORDINATE,
            details=details,
            status_code=400
        )


class UserNotFoundError(TravlrHubException):
    """Raised when a user location record does not exist."""

    def __init__(self, user_id: str):
        super().__init__(
            message=f"User '{user_id}' not found",
            error_code=ErrorCode.USER_NOT_FOUND,
            details={"user_id": user_id},
            status_code=404
        )


class PlaceNotFoundError(TravlrHubException):
    """Raised when the places provider cannot resolve a place id."""

    def __init__(self, place_id: str):
        super().__init__(
            message=f"Place '{place_id}' not found",
            error_code=ErrorCode.PLACE_NOT_FOUND,
            details={"place_id": place_id},
            status_code=404
        )


class PlacesProviderError(TravlrHubException):
    """Raised on transport, authentication or status failures of the places provider."""

    def __init__(self, message: str = "Places provider request failed", details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            error_code=ErrorCode.PLACES_PROVIDER_FAILED,
            details=details,
            status_code=502
        )


class AuthenticationError(TravlrHubException):
    """Raised when a bearer token is missing or cannot be verified."""

    def __init__(self, missing: bool = False):
        super().__init__(
            message="Authorization bearer token required" if missing else "Invalid or expired token",
            error_code=ErrorCode.MISSING_TOKEN if missing else ErrorCode.INVALID_TOKEN,
            status_code=401
        )
