"""
Place schemas - points of interest from the places provider, decorated locally
"""
from pydantic import BaseModel, Field, computed_field
from typing import Any, Optional

from app.services.geo import Coordinate


class Place(BaseModel):
    """A point of interest; traveler_count is computed here, never by the provider"""
    place_id: str
    name: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    vicinity: Optional[str] = None
    types: list[str] = Field(default_factory=list)
    rating: Optional[float] = None
    user_ratings_total: Optional[int] = None
    business_status: Optional[str] = None
    website: Optional[str] = None
    phone_number: Optional[str] = None
    opening_hours: Optional[dict[str, Any]] = None
    photo_references: list[str] = Field(default_factory=list)
    traveler_count: int = 0

    @computed_field
    @property
    def is_operational(self) -> bool:
        return self.business_status == "OPERATIONAL"

    @property
    def coordinate(self) -> Optional[Coordinate]:
        return Coordinate.from_mapping(self)

    @property
    def has_details(self) -> bool:
        return bool(self.website or self.opening_hours)

    def provider_fields(self) -> dict[str, Any]:
        """Everything except locally computed decorations."""
        return self.model_dump(exclude={"traveler_count", "is_operational"})


class PlaceListResponse(BaseModel):
    places: list[Place]


class TravelerCountResponse(BaseModel):
    latitude: float
    longitude: float
    radius_km: float
    traveler_count: int
