"""
Core infrastructure for the proximity service.
Provides persistence, caching, authentication tokens, logging and error handling.
"""

from .cache_client import CacheClient
from .exceptions import (
    ErrorCode,
    GeolocationError,
    GeolocationErrorReason,
    TravlrHubException,
)

__all__ = [
    "CacheClient",
    "ErrorCode",
    "GeolocationError",
    "GeolocationErrorReason",
    "TravlrHubException",
]
