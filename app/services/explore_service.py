"""
Explore Service - nearby places decorated with live traveler counts
"""
import logging
from typing import List, Optional

from app.config.settings import PlacesSettings, get_settings
from app.core.exceptions import PlacesProviderError
from app.schemas.place import Place
from app.services.geo import Coordinate
from app.services.places_client import PlacesClient
from app.services.proximity_service import ProximityService

logger = logging.getLogger(__name__)


class ExploreService:
    """Combines the places provider with the proximity service"""

    def __init__(
        self,
        places: PlacesClient,
        proximity: ProximityService,
        config: Optional[PlacesSettings] = None,
    ):
        self.places = places
        self.proximity = proximity
        self.config = config or get_settings().places

    async def load_places(
        self,
        center: Coordinate,
        radius_m: Optional[int] = None,
        category: Optional[str] = None,
        viewer_id: Optional[str] = None,
    ) -> List[Place]:
        """
        Fetch places around center and attach a fresh traveler count to each.

        Args:
            center: Search center
            radius_m: Search radius, defaults to configuration (1500 m)
            category: Provider place type, defaults to configuration
            viewer_id: Caller, only excluded from counts when configured to

        Returns:
            Places in provider order; [] when the provider fails
        """
        radius_m = radius_m or self.config.default_radius_m
        category = category if category is not None else self.config.default_category

        try:
            places = await self.places.search_nearby(center, radius_m, category or None)
        except PlacesProviderError as e:
            logger.error(f"Error loading places: {e.message}", extra={"details": e.details})
            return []

        if not places:
            logger.info("No places found nearby", extra={"category": category})
            return []

        coordinates = []
        for place in places:
            if place.coordinate is None:
                logger.warning(f"Place {place.name or place.place_id} missing valid geometry, skipping traveler count")
            coordinates.append(place.coordinate)

        counts = await self.proximity.traveler_counts_near(coordinates, viewer_id=viewer_id)
        return [
            place.model_copy(update={"traveler_count": count or 0})
            for place, count in zip(places, counts)
        ]

    async def load_place_details(self, place: Place) -> Place:
        """
        Merge provider details into a place, keeping its traveler count.

        Places that already carry details are returned unchanged.
        """
        if place.has_details or not place.place_id:
            return place

        details = await self.get_details(place.place_id)
        if details is None:
            logger.warning(f"Failed to fetch details for place: {place.place_id}")
            return place

        merged = {
            **place.provider_fields(),
            **details.model_dump(exclude_none=True, exclude={"traveler_count", "is_operational"}),
        }
        return Place(**merged, traveler_count=place.traveler_count)

    async def get_details(self, place_id: str) -> Optional[Place]:
        try:
            return await self.places.get_details(place_id)
        except PlacesProviderError as e:
            logger.error(f"Error loading place details for {place_id}: {e.message}")
            return None
