"""
Proximity Service - nearby travelers and traveler counts at places.

Both operations are best-effort presentation features: they return an empty
list or zero on failure and never raise to their caller.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, List, Optional, Protocol, Sequence

from app.config.settings import ProximitySettings, get_settings
from app.core.humanize import as_utc
from app.services.geo import Coordinate, distance_km
from app.services.location_store import UserLocationRecord, utcnow

logger = logging.getLogger(__name__)

ANONYMOUS_TRAVELER = "Anonymous Traveler"

# A count has to see every candidate in the fetch batch, not a sample of it.
MIN_COUNT_RESULTS = 100


class LocationQuery(Protocol):
    async def recent_sharers(self, since: datetime, limit: int) -> List[UserLocationRecord]:
        ...


@dataclass
class TravelerResult:
    """A nearby traveler, produced fresh on every resolver call."""
    user_id: str
    display_name: str
    photo_url: Optional[str]
    coordinate: Coordinate
    distance_km: float
    last_active: Optional[datetime]
    last_location_update: Optional[datetime]

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "display_name": self.display_name,
            "photo_url": self.photo_url,
            "latitude": self.coordinate.latitude,
            "longitude": self.coordinate.longitude,
            "distance_km": self.distance_km,
            "last_active": self.last_active,
            "last_location_update": self.last_location_update,
        }


class ProximityService:
    """Resolves opted-in travelers around a reference point"""

    def __init__(
        self,
        store: LocationQuery,
        config: Optional[ProximitySettings] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.config = config or get_settings().proximity
        self.clock = clock

    async def find_nearby_travelers(
        self,
        reference: Optional[Coordinate],
        exclude_user_id: Optional[str] = None,
        max_distance_km: Optional[float] = None,
        max_results: Optional[int] = None,
    ) -> List[TravelerResult]:
        """
        Find opted-in travelers with a fresh location within a radius.

        Args:
            reference: Point distances are measured from
            exclude_user_id: Id to leave out (the caller); None disables exclusion
            max_distance_km: Inclusive radius, defaults to configuration
            max_results: Maximum number of travelers returned

        Returns:
            Travelers ordered by ascending distance; ties keep store order
        """
        if max_distance_km is None:
            max_distance_km = self.config.default_max_distance_km
        if max_results is None:
            max_results = self.config.default_max_results

        reference = Coordinate.from_mapping(reference)
        if reference is None:
            logger.warning("find_nearby_travelers called without a valid reference coordinate")
            return []
        if max_results <= 0:
            return []

        cutoff = self._cutoff()
        try:
            records = await self.store.recent_sharers(cutoff, self.config.fetch_batch_size)
        except Exception:
            logger.exception("Error fetching nearby travelers")
            return []

        travelers = self._resolve(records, reference, cutoff, exclude_user_id, max_distance_km)
        logger.debug(
            f"Found {len(travelers)} travelers within {max_distance_km}km "
            f"out of {len(records)} recent sharers"
        )
        return travelers[:max_results]

    def _cutoff(self) -> datetime:
        return self.clock() - timedelta(minutes=self.config.staleness_minutes)

    def _resolve(
        self,
        records: List[UserLocationRecord],
        reference: Coordinate,
        cutoff: datetime,
        exclude_user_id: Optional[str],
        max_distance_km: float,
    ) -> List[TravelerResult]:
        travelers: List[TravelerResult] = []
        for record in records:
            if exclude_user_id is not None and record.user_id == exclude_user_id:
                continue

            coordinate = record.coordinate
            if coordinate is None:
                continue

            updated = as_utc(record.last_location_update)
            if updated is None or updated <= cutoff:
                continue

            distance = distance_km(reference, coordinate)
            if distance > max_distance_km:
                continue

            travelers.append(TravelerResult(
                user_id=record.user_id,
                display_name=record.display_name or ANONYMOUS_TRAVELER,
                photo_url=record.photo_url,
                coordinate=coordinate,
                distance_km=distance,
                last_active=as_utc(record.last_active),
                last_location_update=updated,
            ))

        # list.sort is stable, so equal distances keep store order
        travelers.sort(key=lambda t: t.distance_km)
        return travelers

    async def traveler_count_near(
        self,
        place: Optional[Coordinate],
        radius_km: Optional[float] = None,
        viewer_id: Optional[str] = None,
        exclude_self: Optional[bool] = None,
    ) -> int:
        """
        Approximate how many travelers are at a place.

        The viewer is only left out of the count when exclude_self is set
        (configuration default: counted).
        """
        place = Coordinate.from_mapping(place)
        if place is None:
            logger.warning("traveler_count_near requires a valid place coordinate")
            return 0

        if radius_km is None:
            radius_km = self.config.place_count_radius_km
        if exclude_self is None:
            exclude_self = self.config.exclude_self_from_place_count

        try:
            travelers = await self.find_nearby_travelers(
                place,
                exclude_user_id=viewer_id if exclude_self else None,
                max_distance_km=radius_km,
                max_results=max(self.config.place_count_max_results, MIN_COUNT_RESULTS),
            )
        except Exception:
            logger.exception(f"Error getting traveler count near {place.to_dict()}")
            return 0
        return len(travelers)

    async def traveler_counts_near(
        self,
        places: Sequence[Optional[Coordinate]],
        radius_km: Optional[float] = None,
        viewer_id: Optional[str] = None,
        exclude_self: Optional[bool] = None,
    ) -> List[int]:
        """
        Traveler counts for a page of places from a single store snapshot.

        One query serves every place, so a page of results never fans out
        concurrent queries over one database session. Places without a valid
        coordinate count zero, as does every place when the store fails.
        """
        coordinates = [Coordinate.from_mapping(p) for p in places]
        if all(c is None for c in coordinates):
            return [0] * len(coordinates)

        if radius_km is None:
            radius_km = self.config.place_count_radius_km
        if exclude_self is None:
            exclude_self = self.config.exclude_self_from_place_count
        exclude_user_id = viewer_id if exclude_self else None

        cutoff = self._cutoff()
        try:
            records = await self.store.recent_sharers(cutoff, self.config.fetch_batch_size)
        except Exception:
            logger.exception(f"Error getting traveler counts for {len(coordinates)} places")
            return [0] * len(coordinates)

        return [
            len(self._resolve(records, c, cutoff, exclude_user_id, radius_km)) if c is not None else 0
            for c in coordinates
        ]
