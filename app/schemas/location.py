"""
Location schemas for fix reports, sharing preference and tracker state
"""
from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional

from app.core.exceptions import GeolocationErrorReason


class CoordinateIn(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)


class LocationFixRequest(CoordinateIn):
    """A device position fix"""
    accuracy_m: Optional[float] = Field(None, ge=0)
    timestamp: Optional[datetime] = Field(
        None, description="When the device took the fix; defaults to receipt time"
    )


class LocationErrorRequest(BaseModel):
    """A failed device position fix"""
    reason: GeolocationErrorReason
    message: Optional[str] = Field(None, max_length=500)


class SharingUpdate(BaseModel):
    share_location: bool


class CoordinateRead(BaseModel):
    latitude: float
    longitude: float


class TrackerStateRead(BaseModel):
    location: Optional[CoordinateRead] = None
    error: Optional[str] = None
    error_reason: Optional[str] = None
    loading: bool = False
    last_fix_at: Optional[datetime] = None
    stale_fixes: int = 0
    share_state: Optional[str] = None
    halted: bool = False
    accepted: Optional[bool] = Field(
        None, description="Set on fix reports: false when the fix is too old to use"
    )


class LocationStatusRead(BaseModel):
    """The caller's stored location record plus live tracker state"""
    user_id: str
    share_location: bool
    location: Optional[CoordinateRead] = None
    last_location_update: Optional[datetime] = None
    tracker: Optional[TrackerStateRead] = None
