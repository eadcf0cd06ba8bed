from pydantic import BaseModel
from datetime import datetime
from typing import Optional

from app.core.humanize import format_last_active
from app.services.geo import format_distance
from app.services.proximity_service import TravelerResult


class TravelerRead(BaseModel):
    user_id: str
    display_name: str
    photo_url: Optional[str] = None
    latitude: float
    longitude: float
    distance_km: float
    distance_label: str
    last_active: Optional[datetime] = None
    last_active_label: str
    last_location_update: Optional[datetime] = None

    @classmethod
    def from_result(cls, traveler: TravelerResult, now: Optional[datetime] = None) -> "TravelerRead":
        return cls(
            **traveler.to_dict(),
            distance_label=format_distance(traveler.distance_km),
            last_active_label=format_last_active(traveler.last_active, now),
        )


class TravelerListResponse(BaseModel):
    travelers: list[TravelerRead]
